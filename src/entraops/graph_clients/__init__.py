"""Microsoft Graph client package for entraops."""

from .manager import (
    GraphAuthenticationError,
    GraphClientManager,
    GraphError,
    GraphNotFoundError,
    GraphRequestError,
    GraphThrottledError,
)

__all__ = [
    "GraphAuthenticationError",
    "GraphClientManager",
    "GraphError",
    "GraphNotFoundError",
    "GraphRequestError",
    "GraphThrottledError",
]
