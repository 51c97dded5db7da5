"""API layer package for FastAPI application and route composition."""

from .application import create_api_application
from .client import StackgateApiClient, StackgateApiUnavailableError

__all__ = ["StackgateApiClient", "StackgateApiUnavailableError", "create_api_application"]
