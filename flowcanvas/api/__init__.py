"""Backend collaborator client."""

from .client import BackendClient

__all__ = ["BackendClient"]
