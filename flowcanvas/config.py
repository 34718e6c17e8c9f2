"""Configuration management for the flowcanvas workflow graph engine."""

import os
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field, field_validator
from enum import Enum


class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class AppConfig(BaseModel):
    """Engine and collaborator configuration settings."""

    app_name: str = Field(default="flowcanvas", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Backend collaborator settings
    api_base_url: str = Field(
        default="http://localhost:8000",
        description="Base URL of the workflow backend"
    )
    api_prefix: str = Field(default="/api/v1", description="Path prefix of every backend route")
    request_timeout: float = Field(
        default=30.0,
        description="Timeout in seconds for catalogue, persistence and option requests"
    )
    execution_timeout: float = Field(
        default=120.0,
        description="Client-side timeout in seconds for a workflow execution request"
    )

    # Translation policy settings
    default_query: str = Field(
        default="Hi there!",
        description="Seed value for an empty query on the entry node"
    )
    default_service: str = Field(
        default="openai",
        description="Provider used when a language model node has no service selected"
    )
    require_connectivity: bool = Field(
        default=False,
        description="Require the terminal node to be reachable from the entry node"
    )
    enforce_single_inbound: bool = Field(
        default=False,
        description="Reject a second edge into an input that is not declared as multiple"
    )

    # Cache settings
    config_cache_max_entries: int = Field(
        default=256,
        description="Maximum number of node configurations kept in the session cache"
    )

    # Logging settings
    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")
    log_format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log message format"
    )
    log_file: Optional[str] = Field(default=None, description="Log file path")
    log_max_size: int = Field(default=10485760, description="Maximum log file size in bytes")  # 10MB
    log_backup_count: int = Field(default=5, description="Number of log backup files to keep")
    structured_logging: bool = Field(default=False, description="Emit JSON log records")

    @field_validator('api_base_url')
    @classmethod
    def validate_api_base_url(cls, v):
        """Validate backend URL format."""
        if not v:
            raise ValueError("API base URL cannot be empty")

        scheme = v.split('://')[0].lower()
        if scheme not in ('http', 'https'):
            raise ValueError(f"Unsupported API URL scheme: {scheme}. Supported: ['http', 'https']")

        return v.rstrip('/')

    @field_validator('api_prefix')
    @classmethod
    def validate_api_prefix(cls, v):
        """Normalize the route prefix to a leading slash and no trailing slash."""
        v = (v or "").strip()
        if not v:
            return ""
        return "/" + v.strip("/")

    @field_validator('request_timeout', 'execution_timeout')
    @classmethod
    def validate_timeouts(cls, v):
        """Validate timeout values."""
        if v <= 0:
            raise ValueError("Timeout must be a positive number of seconds")
        return v

    @field_validator('config_cache_max_entries')
    @classmethod
    def validate_cache_size(cls, v):
        """Validate cache size."""
        if v < 1:
            raise ValueError("Config cache must hold at least one entry")
        return v

    @property
    def api_root(self) -> str:
        """Base URL joined with the route prefix."""
        return f"{self.api_base_url}{self.api_prefix}"

    def get_logging_config(self) -> Dict[str, Any]:
        """Keyword arguments for ``setup_logging``."""
        return {
            "level": self.log_level.value,
            "log_file": self.log_file,
            "log_format": self.log_format,
            "structured": self.structured_logging,
            "max_size": self.log_max_size,
            "backup_count": self.log_backup_count
        }

    @classmethod
    def from_env(cls) -> 'AppConfig':
        """Create configuration from environment variables."""
        def get_env(key: str, default=None, type_func=str):
            """Get environment variable with type conversion."""
            value = os.getenv(f"FLOWCANVAS_{key}")
            if value is None:
                return default
            if type_func == bool:
                return str(value).lower() in ('true', '1', 'yes', 'on')
            return type_func(value)

        return cls(
            app_name=get_env("APP_NAME", "flowcanvas"),
            app_version=get_env("APP_VERSION", "1.0.0"),
            debug=get_env("DEBUG", False, bool),
            api_base_url=get_env("API_BASE_URL", "http://localhost:8000"),
            api_prefix=get_env("API_PREFIX", "/api/v1"),
            request_timeout=get_env("REQUEST_TIMEOUT", 30.0, float),
            execution_timeout=get_env("EXECUTION_TIMEOUT", 120.0, float),
            default_query=get_env("DEFAULT_QUERY", "Hi there!"),
            default_service=get_env("DEFAULT_SERVICE", "openai"),
            require_connectivity=get_env("REQUIRE_CONNECTIVITY", False, bool),
            enforce_single_inbound=get_env("ENFORCE_SINGLE_INBOUND", False, bool),
            config_cache_max_entries=get_env("CONFIG_CACHE_MAX_ENTRIES", 256, int),
            log_level=LogLevel(get_env("LOG_LEVEL", "INFO").upper()),
            log_format=get_env("LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"),
            log_file=get_env("LOG_FILE", None),
            log_max_size=get_env("LOG_MAX_SIZE", 10485760, int),
            log_backup_count=get_env("LOG_BACKUP_COUNT", 5, int),
            structured_logging=get_env("STRUCTURED_LOGGING", False, bool)
        )


_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get the process configuration instance."""
    global _config
    if _config is None:
        _config = AppConfig.from_env()
    return _config


def load_config(config_file: Optional[str] = None) -> AppConfig:
    """Load configuration from a .env file and environment variables."""
    global _config
    from dotenv import load_dotenv

    if config_file and os.path.exists(config_file):
        load_dotenv(config_file)
    elif os.path.exists('.env'):
        load_dotenv('.env')

    _config = AppConfig.from_env()

    return _config


def reset_config():
    """Reset the process configuration instance (mainly for testing)."""
    global _config
    _config = None


def validate_config(config: AppConfig) -> None:
    """Validate cross-field configuration settings."""
    errors = []

    if config.log_file:
        log_dir = os.path.dirname(config.log_file)
        if log_dir and not os.path.exists(log_dir):
            try:
                os.makedirs(log_dir, exist_ok=True)
            except OSError as e:
                errors.append(f"Cannot create log directory {log_dir}: {e}")

    if config.execution_timeout < config.request_timeout:
        errors.append("Execution timeout must not be shorter than the request timeout")

    if not config.default_service.strip():
        errors.append("Default service cannot be blank")

    if errors:
        raise ValueError(f"Configuration validation failed: {'; '.join(errors)}")


def get_testing_config() -> AppConfig:
    """Get testing configuration."""
    return AppConfig(
        debug=True,
        api_base_url="http://testserver",
        log_level=LogLevel.WARNING,
        request_timeout=5.0,
        execution_timeout=10.0,
        config_cache_max_entries=32
    )
