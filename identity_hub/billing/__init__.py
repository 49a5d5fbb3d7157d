"""Billing cycle arithmetic and next-bill date validation."""

from identity_hub.billing.cycle import (
    DateValidationError,
    add_months,
    advance_once,
    effective_next_billing_date,
    roll_forward,
    suggest_reactivation_date,
    validate_future_or_today,
    with_effective_billing_dates,
)

__all__ = [
    "DateValidationError",
    "add_months",
    "advance_once",
    "effective_next_billing_date",
    "roll_forward",
    "suggest_reactivation_date",
    "validate_future_or_today",
    "with_effective_billing_dates",
]
