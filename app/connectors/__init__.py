"""
app/connectors package marker.
"""

from app.connectors.base import (
    BaseRegistryClient,
    MalformedResponseError,
    RegistryRequestError,
    build_http_client,
)
from app.connectors.primary_registry import PrimaryRegistryClient
from app.connectors.secondary_registry import RegistryLookupResult, SecondaryRegistryClient, TermLookup

__all__ = [
    "BaseRegistryClient",
    "MalformedResponseError",
    "PrimaryRegistryClient",
    "RegistryLookupResult",
    "RegistryRequestError",
    "SecondaryRegistryClient",
    "TermLookup",
    "build_http_client",
]
