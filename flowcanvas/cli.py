"""Command line interface for translating and running workflow files."""

import argparse
import asyncio
import json
import sys
from typing import Any, Dict, Optional

from .api.client import BackendClient
from .config import AppConfig, get_testing_config, load_config, validate_config
from .core.exceptions import WorkflowEngineError
from .core.hydration import hydrate
from .core.logging import get_logger, setup_logging
from .core.translator import DefaultPolicy, ExecutionTranslator
from .models.core import NodeTypeSchema, TranslationResult
from .session import WorkflowSession


def create_argument_parser() -> argparse.ArgumentParser:
    """Create command line argument parser."""
    parser = argparse.ArgumentParser(
        prog="flowcanvas",
        description="Translate and execute visual workflow files"
    )

    parser.add_argument(
        "--env",
        choices=["testing"],
        help="Environment configuration preset"
    )

    parser.add_argument(
        "--config",
        help="Path to a .env configuration file"
    )

    parser.add_argument(
        "--api-url",
        help="Base URL of the workflow backend"
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level"
    )

    parser.add_argument(
        "--require-connectivity",
        action="store_true",
        help="Require the response node to be reachable from the query node"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    translate_parser = subparsers.add_parser("translate", help="Print the execution DAG of a workflow file")
    translate_parser.add_argument("workflow", help="Workflow JSON file")
    translate_parser.add_argument(
        "--catalog",
        help="Node schema JSON file; schemas embedded in the workflow are used when omitted"
    )

    execute_parser = subparsers.add_parser("execute", help="Run a workflow file against the backend")
    execute_parser.add_argument("workflow", help="Workflow JSON file")
    execute_parser.add_argument("--query", help="Query to send to the query node")

    config_parser = subparsers.add_parser("config", help="Configuration management")
    config_subparsers = config_parser.add_subparsers(dest="config_command", help="Config commands")
    config_subparsers.add_parser("show", help="Show current configuration")
    config_subparsers.add_parser("validate", help="Validate configuration")

    return parser


def load_configuration(args: argparse.Namespace) -> AppConfig:
    """Load configuration based on command line arguments."""
    if args.env == "testing":
        config = get_testing_config()
    else:
        config = load_config(args.config)

    overrides: Dict[str, Any] = {}
    if args.api_url:
        overrides["api_base_url"] = args.api_url
    if args.log_level:
        overrides["log_level"] = args.log_level
    if args.require_connectivity:
        overrides["require_connectivity"] = True

    if overrides:
        config = AppConfig.model_validate({**config.model_dump(), **overrides})
    return config


def read_json(path: str) -> Any:
    with open(path, "r", encoding="utf-8") as handle:
        return json.load(handle)


def graph_payload(document: Dict[str, Any]) -> Dict[str, Any]:
    """Accept either a bare ``{nodes, edges}`` file or a persisted workflow record."""
    if "nodes" not in document and isinstance(document.get("data"), dict):
        payload = dict(document["data"])
        payload.setdefault("name", document.get("name"))
        return payload
    return document


def read_catalog(path: Optional[str]) -> Dict[str, NodeTypeSchema]:
    if not path:
        return {}
    document = read_json(path)
    # Same shape as the backend catalogue envelope, or a bare mapping
    if isinstance(document.get("data"), dict):
        document = document["data"]
    raw_schemas = document.get("schemas", document)
    return {type_id: NodeTypeSchema.model_validate(raw) for type_id, raw in raw_schemas.items()}


def print_errors(result: TranslationResult) -> None:
    print(f"Translation failed with {len(result.errors)} error(s):")
    for error in result.errors:
        print(f"  [{error.error_code}] {error.message}")


def translate_command(args: argparse.Namespace, config: AppConfig) -> int:
    hydrated = hydrate(graph_payload(read_json(args.workflow)), read_catalog(args.catalog))
    translator = ExecutionTranslator(
        policy=DefaultPolicy.from_config(config),
        require_connectivity=config.require_connectivity
    )
    result = translator.translate(hydrated.nodes, hydrated.edges)
    if not result.is_valid:
        print_errors(result)
        return 1
    print(json.dumps(result.dag.to_payload(), indent=2))
    return 0


async def execute_command(args: argparse.Namespace, config: AppConfig) -> int:
    async with BackendClient(config) as client:
        session = WorkflowSession(client, config=config)
        await session.load_catalog()
        if session.import_file(graph_payload(read_json(args.workflow))) is None:
            print("Workflow file has no nodes or edges")
            return 1

        if args.query:
            report = await session.run(args.query)
        else:
            report = await session.run()

    for notification in session.notifications.all:
        line = f"{notification.level.value.upper()}: {notification.title}"
        if notification.description:
            line += f" - {notification.description}"
        print(line)

    for node_id, outputs in report.response_inputs.items():
        print(f"{node_id}: {json.dumps(outputs, default=str)}")

    return 0 if report.success and not report.node_errors else 1


def show_configuration(config: AppConfig):
    """Show current configuration."""
    print("Current Configuration:")
    print(f"  App Name: {config.app_name}")
    print(f"  Version: {config.app_version}")
    print(f"  API Root: {config.api_root}")
    print(f"  Request Timeout: {config.request_timeout:g}s")
    print(f"  Execution Timeout: {config.execution_timeout:g}s")
    print(f"  Default Query: {config.default_query}")
    print(f"  Default Service: {config.default_service}")
    print(f"  Require Connectivity: {config.require_connectivity}")
    print(f"  Enforce Single Inbound: {config.enforce_single_inbound}")
    print(f"  Log Level: {config.log_level.value}")


def validate_configuration_command(config: AppConfig) -> int:
    """Validate configuration and show results."""
    try:
        validate_config(config)
    except ValueError as e:
        print("Configuration validation: FAILED")
        print(f"Error: {e}")
        return 1
    print("Configuration validation: PASSED")
    return 0


def main(argv=None) -> int:
    """Main entry point."""
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    try:
        config = load_configuration(args)
        setup_logging(**config.get_logging_config())
        logger = get_logger(__name__)
        logger.debug(f"Running command {args.command}")

        if args.command == "translate":
            return translate_command(args, config)
        if args.command == "execute":
            validate_config(config)
            return asyncio.run(execute_command(args, config))
        if args.command == "config":
            if args.config_command == "show":
                show_configuration(config)
                return 0
            if args.config_command == "validate":
                return validate_configuration_command(config)
            print("Configuration command required. Use --help for options.")
            return 1

        parser.print_help()
        return 1

    except (OSError, ValueError, WorkflowEngineError) as e:
        print(f"Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
