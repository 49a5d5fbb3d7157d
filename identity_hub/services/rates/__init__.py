"""Exchange rate providers."""

from identity_hub.services.rates.provider import (
    FrankfurterRateProvider,
    RateProviderInterface,
    RateProviderUnavailableError,
)

__all__ = [
    "FrankfurterRateProvider",
    "RateProviderInterface",
    "RateProviderUnavailableError",
]
