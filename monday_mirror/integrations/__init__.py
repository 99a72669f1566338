"""
External service integrations for Monday Mirror.
"""

from .monday_api import (
    MondayAPIClient,
    MondayAPIError,
    MondayClientError,
    MondayGraphQLError,
)

__all__ = [
    "MondayAPIClient",
    "MondayAPIError",
    "MondayClientError",
    "MondayGraphQLError",
]
