"""
Exchange Rate Provider

DESIGN DECISION: The currency engine depends on a `(base, targets) -> rates`
contract only. Any failure of the remote side (network, HTTP status,
malformed body) surfaces as RateProviderUnavailableError so callers have
exactly one soft failure to fall back on.

The request is made once, with a timeout and no retry. A stale cached
table is preferable to holding up a dashboard.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx
import structlog
from pydantic import ValidationError

from identity_hub.config import get_settings
from identity_hub.models.currency import ExchangeRates

logger = structlog.get_logger(__name__)


class RateProviderUnavailableError(Exception):
    """The exchange rate provider could not return usable rates."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RateProviderInterface(ABC):
    """Something that can quote rates from one base into several targets."""

    @abstractmethod
    async def latest(self, base: str, targets: list[str]) -> ExchangeRates:
        """
        Fetch the latest rates.

        Raises:
            RateProviderUnavailableError: on any provider failure.
        """
        pass


class FrankfurterRateProvider(RateProviderInterface):
    """
    Rates from a Frankfurter-compatible API.

    GET {base_url}/latest?from=BASE&to=A,B,C -> {base, date, rates}
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        settings = get_settings().exchange_rates
        self.base_url = (base_url or settings.provider_url).rstrip("/")
        self._timeout = timeout or settings.request_timeout_seconds
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self._timeout),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "FrankfurterRateProvider":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def latest(self, base: str, targets: list[str]) -> ExchangeRates:
        base = base.upper()
        symbols = ",".join(t.upper() for t in targets)
        client = await self._get_client()

        try:
            response = await client.get(
                "/latest",
                params={"from": base, "to": symbols},
            )
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as e:
            logger.warning(
                "rate_provider_http_error",
                base=base,
                status_code=e.response.status_code,
            )
            raise RateProviderUnavailableError(
                f"Rate provider returned HTTP {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("rate_provider_request_failed", base=base, error=str(e))
            raise RateProviderUnavailableError(f"Rate provider request failed: {e}") from e

        try:
            rates = ExchangeRates.model_validate(body)
        except ValidationError as e:
            raise RateProviderUnavailableError(f"Malformed rate response: {e}") from e

        logger.info("rates_received", base=rates.base, count=len(rates.rates))
        return rates
