"""
Billing Cycle Engine

Pure date arithmetic for recurring services:

- advance_once: one billing period forward
- roll_forward: forward until the date is no longer in the past
- validate_future_or_today: reject historical next-bill dates on write

DESIGN DECISION: Roll-forward is a READ-time view.
A service whose nextBillingDate has passed is shown with its effective
date but the stored value is never rewritten here. Only writes are
validated, and a rejected write is never silently corrected.

DESIGN DECISION: Month arithmetic clamps to the end of the target month
(Jan 31 + 1 month = Feb 28/29). roll_forward is repeated advance_once,
so a clamped day carries into later periods: Jan 31 -> Feb 28 -> Mar 28.
"""

import calendar
from collections.abc import Iterable
from datetime import date, timedelta
from typing import Optional

from identity_hub.models.identity import (
    BILLABLE_STATUSES,
    INACTIVE_STATUSES,
    RECURRING_CYCLES,
    BillingCycle,
    Service,
    ServiceStatus,
)

# Months per step for the month-based cycles
_MONTH_STEPS = {
    BillingCycle.MONTHLY: 1,
    BillingCycle.QUARTERLY: 3,
    BillingCycle.YEARLY: 12,
}
_WEEKLY_STEP = timedelta(days=7)


class DateValidationError(ValueError):
    """A next-bill date was rejected on write."""

    def __init__(self, message: str = "date must be today or later", value: Optional[date] = None):
        super().__init__(message)
        self.value = value


def _coerce_cycle(cycle) -> Optional[BillingCycle]:
    """Accept enum members or raw strings; unknown values become None."""
    if isinstance(cycle, BillingCycle):
        return cycle
    try:
        return BillingCycle(cycle)
    except ValueError:
        return None


def add_months(anchor: date, months: int) -> date:
    """Add whole months, clamping the day to the target month's length."""
    month_index = anchor.month - 1 + months
    year = anchor.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return anchor.replace(year=year, month=month, day=min(anchor.day, last_day))


def advance_once(current: date, cycle) -> date:
    """
    Move a billing date forward by one period.

    Args:
        current: The billing date.
        cycle: A BillingCycle or its string value.

    Returns:
        The next billing date. One-time, none and unknown cycles return
        `current` unchanged.
    """
    cycle = _coerce_cycle(cycle)
    if cycle in _MONTH_STEPS:
        return add_months(current, _MONTH_STEPS[cycle])
    if cycle is BillingCycle.WEEKLY:
        return current + _WEEKLY_STEP
    return current


def roll_forward(anchor: date, cycle, today: Optional[date] = None) -> date:
    """
    Advance `anchor` by whole periods until it is today or later.

    Comparison is date-only. Non-recurring cycles return immediately.
    """
    today = today or date.today()
    cycle = _coerce_cycle(cycle)

    if cycle not in RECURRING_CYCLES or anchor >= today:
        return anchor

    if cycle is BillingCycle.WEEKLY:
        behind = (today - anchor).days
        steps = -(-behind // 7)
        return anchor + _WEEKLY_STEP * steps

    result = anchor
    while result < today:
        result = advance_once(result, cycle)
    return result


def validate_future_or_today(value: Optional[date], today: Optional[date] = None) -> None:
    """
    Reject dates strictly before today.

    A missing date is always valid.

    Raises:
        DateValidationError: if the date is in the past.
    """
    if value is None:
        return
    today = today or date.today()
    if value < today:
        raise DateValidationError(value=value)


# =============================================================================
# READ-TIME VIEWS
# =============================================================================

def effective_next_billing_date(service: Service, today: Optional[date] = None) -> Optional[date]:
    """The date a service will actually bill next, without persisting it."""
    if service.next_billing_date is None:
        return None
    if service.status not in BILLABLE_STATUSES or not service.is_recurring:
        return service.next_billing_date
    return roll_forward(service.next_billing_date, service.billing_cycle, today)


def with_effective_billing_dates(
    services: Iterable[Service],
    today: Optional[date] = None,
) -> list[Service]:
    """
    Copies of `services` with nextBillingDate rolled forward for display.

    The originals are left untouched.
    """
    today = today or date.today()
    result = []
    for service in services:
        effective = effective_next_billing_date(service, today)
        if effective != service.next_billing_date:
            service = service.model_copy(update={"next_billing_date": effective})
        result.append(service)
    return result


def suggest_reactivation_date(
    service: Service,
    new_status,
    today: Optional[date] = None,
) -> Optional[date]:
    """
    Suggested next-bill date when an inactive service is reactivated.

    Returns a date only for a cancelled/archived -> active/trial move on
    a recurring cycle with a known date. The caller decides whether to
    apply it.
    """
    try:
        new_status = ServiceStatus(new_status)
    except ValueError:
        return None

    if service.status not in INACTIVE_STATUSES or new_status not in BILLABLE_STATUSES:
        return None
    if service.next_billing_date is None or not service.is_recurring:
        return None
    return roll_forward(service.next_billing_date, service.billing_cycle, today)
