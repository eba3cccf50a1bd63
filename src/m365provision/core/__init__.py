"""Core utilities: configuration, errors, and service clients."""

from m365provision.core.config import (
    ExchangeCredentials,
    get_exchange_credentials,
    get_graph_credentials,
)
from m365provision.core.errors import (
    DirectoryServiceError,
    ExchangeCommandError,
    ServiceError,
)

__all__ = [
    "DirectoryServiceError",
    "ExchangeCommandError",
    "ExchangeCredentials",
    "ServiceError",
    "get_exchange_credentials",
    "get_graph_credentials",
]
