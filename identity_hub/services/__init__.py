"""Services package: storage backends and the exchange rate provider."""

from identity_hub.services.rates import (
    FrankfurterRateProvider,
    RateProviderInterface,
    RateProviderUnavailableError,
)
from identity_hub.services.storage import (
    ConnectionError,
    DuplicateError,
    InMemoryStore,
    JsonFileStore,
    KeyedStore,
    NotFoundError,
    StorageError,
    create_store,
)

__all__ = [
    # Rates
    "FrankfurterRateProvider",
    "RateProviderInterface",
    "RateProviderUnavailableError",
    # Storage
    "ConnectionError",
    "DuplicateError",
    "InMemoryStore",
    "JsonFileStore",
    "KeyedStore",
    "NotFoundError",
    "StorageError",
    "create_store",
]
