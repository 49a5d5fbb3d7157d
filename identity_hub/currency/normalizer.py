"""
Currency Normalization

Reporting across services and subscriptions that bill in different
currencies:

1. Detect the base currency (the most common one)
2. Find the foreign currencies that need rates
3. Convert each line's monthly equivalent into the base
4. Sum, then round once

DESIGN DECISION: Conversion is lenient by default.
When no usable rate exists the amount passes through unchanged so a
dashboard still renders, but aggregate_costs() reports every such
currency in `unconverted_currencies` so the mix is never silent.
Callers that need exact totals pass strict=True.
"""

from collections import Counter
from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from identity_hub.config import get_settings
from identity_hub.models.currency import CostAggregate, CostLine, ExchangeRates
from identity_hub.models.identity import (
    BILLABLE_STATUSES,
    BillingCycle,
    Service,
    SubscriptionRecord,
)

CENT = Decimal("0.01")
MONTHS_PER_YEAR = Decimal(12)


class UnconvertibleAmountError(ValueError):
    """No rate connects the two currencies (strict mode only)."""

    def __init__(self, from_currency: str, base: str):
        super().__init__(f"No exchange rate from {from_currency} to {base}")
        self.from_currency = from_currency
        self.base = base


def _codes(currencies: Iterable[str]) -> list[str]:
    return [c.strip().upper() for c in currencies if c and c.strip()]


def detect_base_currency(currencies: Iterable[str], fallback: Optional[str] = None) -> str:
    """
    The most frequent currency code.

    Ties go to whichever currency reached the top count first.
    With no costs at all the configured fallback is used.
    """
    codes = _codes(currencies)
    if not codes:
        return (fallback or get_settings().exchange_rates.fallback_currency).upper()

    counts: Counter = Counter()
    best, best_count = codes[0], 0
    for code in codes:
        counts[code] += 1
        if counts[code] > best_count:
            best, best_count = code, counts[code]
    return best


def detect_foreign_currencies(currencies: Iterable[str], base: str) -> list[str]:
    """Distinct codes other than `base`, in first-seen order."""
    base = base.upper()
    return list(dict.fromkeys(c for c in _codes(currencies) if c != base))


def convert(
    amount: Decimal,
    from_currency: str,
    base: str,
    rates: Optional[ExchangeRates],
    strict: bool = False,
) -> Decimal:
    """
    Convert `amount` in `from_currency` into `base`.

    Rates read as "1 rates.base = rate x code", so:
    - rates based on `base`:          amount / rate[from]
    - rates based on `from_currency`: amount * rate[base]

    Args:
        strict: Raise UnconvertibleAmountError instead of returning
                the amount unchanged when no rate applies.
    """
    from_currency = from_currency.upper()
    base = base.upper()

    if from_currency == base or rates is None:
        return amount

    rate = None
    if rates.base == base:
        rate = rates.rates.get(from_currency)
        if rate:
            return amount / rate
    elif rates.base == from_currency:
        rate = rates.rates.get(base)
        if rate:
            return amount * rate

    if strict:
        raise UnconvertibleAmountError(from_currency, base)
    return amount


def is_convertible(from_currency: str, base: str, rates: Optional[ExchangeRates]) -> bool:
    """True if convert() would actually convert (or needs no conversion)."""
    try:
        convert(Decimal(1), from_currency, base, rates, strict=True)
    except UnconvertibleAmountError:
        return False
    return rates is not None or from_currency.upper() == base.upper()


def monthly_equivalent(amount: Decimal, cycle) -> Decimal:
    """Yearly costs count 1/12, monthly in full, anything else not at all."""
    try:
        cycle = BillingCycle(cycle)
    except ValueError:
        return Decimal(0)
    if cycle is BillingCycle.YEARLY:
        return amount / MONTHS_PER_YEAR
    if cycle is BillingCycle.MONTHLY:
        return amount
    return Decimal(0)


def aggregate_costs(
    lines: Iterable[CostLine],
    base: str,
    rates: Optional[ExchangeRates],
    strict: bool = False,
) -> CostAggregate:
    """
    Monthly recurring cost per currency and in total.

    Each line is converted on its own and the grand total is rounded
    once at the end, so rounding error never compounds.
    """
    base = base.upper()
    subtotals: dict[str, Decimal] = {}
    unconverted: list[str] = []
    total = Decimal(0)
    count = 0

    for line in lines:
        count += 1
        monthly = monthly_equivalent(line.amount, line.billing_cycle)
        subtotals[line.currency] = subtotals.get(line.currency, Decimal(0)) + monthly

        if not is_convertible(line.currency, base, rates):
            if strict:
                raise UnconvertibleAmountError(line.currency, base)
            if line.currency not in unconverted:
                unconverted.append(line.currency)
        total += convert(monthly, line.currency, base, rates)

    return CostAggregate(
        base_currency=base,
        subtotals={code: value.quantize(CENT, rounding=ROUND_HALF_UP) for code, value in subtotals.items()},
        converted_total=total.quantize(CENT, rounding=ROUND_HALF_UP),
        unconverted_currencies=unconverted,
        line_count=count,
    )


# =============================================================================
# AGGREGATION INPUT
# =============================================================================

def cost_lines_from_services(services: Iterable[Service]) -> list[CostLine]:
    """Cost lines for active and trial services that have a cost."""
    return [
        CostLine(
            source_id=s.id,
            name=s.name,
            amount=s.cost.amount,
            currency=s.cost.currency,
            billing_cycle=s.billing_cycle,
        )
        for s in services
        if s.cost is not None and s.status in BILLABLE_STATUSES
    ]


def cost_lines_from_subscriptions(records: Iterable[SubscriptionRecord]) -> list[CostLine]:
    """Cost lines for module subscriptions (always recurring)."""
    return [
        CostLine(
            source_id=r.id,
            name=r.name,
            amount=r.amount,
            currency=r.currency,
            billing_cycle=BillingCycle(r.frequency.value),
        )
        for r in records
    ]
