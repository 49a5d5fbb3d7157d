"""
Currency Models

Exchange rates are expressed as "1 base = rate x code".
"""

import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from identity_hub.models.identity import BillingCycle


class ExchangeRates(BaseModel):
    """A rate table as returned by the provider."""

    base: str = Field(..., min_length=3, max_length=3)
    date: Optional[datetime.date] = None
    rates: dict[str, Decimal] = Field(default_factory=dict)

    @field_validator('base')
    @classmethod
    def uppercase_base(cls, v: str) -> str:
        return v.upper()

    @field_validator('rates')
    @classmethod
    def uppercase_codes(cls, v: dict[str, Decimal]) -> dict[str, Decimal]:
        return {code.upper(): rate for code, rate in v.items()}

    def covers(self, targets) -> bool:
        """True if every target has a rate (the base itself always does)."""
        return all(t == self.base or t in self.rates for t in targets)


class CachedRates(BaseModel):
    """Persisted cache entry: the table plus when it was fetched (epoch ms)."""

    rates: ExchangeRates
    timestamp: int


class CostLine(BaseModel):
    """One costed entity feeding an aggregation."""

    source_id: Optional[str] = None
    name: str = ""
    amount: Decimal
    currency: str
    billing_cycle: BillingCycle = BillingCycle.MONTHLY

    @field_validator('currency')
    @classmethod
    def uppercase_currency(cls, v: str) -> str:
        return v.upper()


class CostAggregate(BaseModel):
    """
    Monthly recurring-cost summary.

    `subtotals` are monthly-equivalent amounts per original currency.
    `converted_total` is in `base_currency`, rounded once to cents.
    Any currency in `unconverted_currencies` was summed at face value.
    """

    base_currency: str
    subtotals: dict[str, Decimal] = Field(default_factory=dict)
    converted_total: Decimal = Decimal("0.00")
    unconverted_currencies: list[str] = Field(default_factory=list)
    line_count: int = 0

    @property
    def is_exact(self) -> bool:
        return not self.unconverted_currencies
