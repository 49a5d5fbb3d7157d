"""Multi-currency cost normalization."""

from identity_hub.currency.normalizer import (
    UnconvertibleAmountError,
    aggregate_costs,
    convert,
    cost_lines_from_services,
    cost_lines_from_subscriptions,
    detect_base_currency,
    detect_foreign_currencies,
    is_convertible,
    monthly_equivalent,
)
from identity_hub.currency.rates import ExchangeRateService

__all__ = [
    "ExchangeRateService",
    "UnconvertibleAmountError",
    "aggregate_costs",
    "convert",
    "cost_lines_from_services",
    "cost_lines_from_subscriptions",
    "detect_base_currency",
    "detect_foreign_currencies",
    "is_convertible",
    "monthly_equivalent",
]
