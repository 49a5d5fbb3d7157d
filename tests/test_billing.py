"""Tests for billing cycle date arithmetic."""

from datetime import date

import pytest

from identity_hub.billing import (
    DateValidationError,
    add_months,
    advance_once,
    effective_next_billing_date,
    roll_forward,
    suggest_reactivation_date,
    validate_future_or_today,
    with_effective_billing_dates,
)
from identity_hub.models.identity import BillingCycle, Service, ServiceStatus

TODAY = date(2026, 10, 19)


class TestAdvanceOnce:
    """One period forward."""

    @pytest.mark.parametrize("cycle,expected", [
        (BillingCycle.WEEKLY, date(2026, 1, 22)),
        (BillingCycle.MONTHLY, date(2026, 2, 15)),
        (BillingCycle.QUARTERLY, date(2026, 4, 15)),
        (BillingCycle.YEARLY, date(2027, 1, 15)),
    ])
    def test_recurring_cycles(self, cycle, expected):
        assert advance_once(date(2026, 1, 15), cycle) == expected

    @pytest.mark.parametrize("cycle", ["one-time", "none", "fortnightly"])
    def test_non_recurring_is_unchanged(self, cycle):
        assert advance_once(date(2026, 1, 15), cycle) == date(2026, 1, 15)

    def test_month_end_clamps(self):
        assert advance_once(date(2026, 1, 31), "monthly") == date(2026, 2, 28)
        assert advance_once(date(2028, 1, 31), "monthly") == date(2028, 2, 29)

    def test_leap_day_yearly_clamps(self):
        assert advance_once(date(2028, 2, 29), "yearly") == date(2029, 2, 28)

    def test_add_months_crosses_year(self):
        assert add_months(date(2026, 11, 30), 3) == date(2027, 2, 28)


class TestRollForward:
    """Advance until today or later."""

    def test_six_months_behind(self):
        assert roll_forward(date(2026, 4, 15), "monthly", TODAY) == date(2026, 11, 15)

    def test_future_date_unchanged(self):
        assert roll_forward(date(2026, 12, 1), "monthly", TODAY) == date(2026, 12, 1)

    def test_today_unchanged(self):
        assert roll_forward(TODAY, "weekly", TODAY) == TODAY

    def test_idempotent(self):
        once = roll_forward(date(2025, 3, 3), "quarterly", TODAY)
        assert roll_forward(once, "quarterly", TODAY) == once
        assert once >= TODAY

    def test_weekly_lands_on_same_weekday(self):
        anchor = date(2026, 9, 1)
        result = roll_forward(anchor, "weekly", TODAY)
        assert result >= TODAY
        assert (result - anchor).days % 7 == 0
        assert (result - TODAY).days < 7

    def test_month_end_clamp_carries_forward(self):
        """Jan 31 goes to Feb 28, and from there to Mar 28."""
        assert roll_forward(date(2026, 1, 31), "monthly", date(2026, 3, 2)) == date(2026, 3, 28)
        assert roll_forward(date(2026, 1, 31), "monthly", date(2026, 3, 29)) == date(2026, 4, 28)

    @pytest.mark.parametrize("anchor,cycle", [
        (date(2026, 1, 31), "monthly"),
        (date(2025, 11, 30), "quarterly"),
        (date(2024, 2, 29), "yearly"),
        (date(2026, 2, 3), "weekly"),
    ])
    def test_matches_repeated_advance_once(self, anchor, cycle):
        expected = anchor
        while expected < TODAY:
            expected = advance_once(expected, cycle)
        assert roll_forward(anchor, cycle, TODAY) == expected

    @pytest.mark.parametrize("cycle", ["one-time", "none"])
    def test_non_recurring_never_moves(self, cycle):
        assert roll_forward(date(2020, 1, 1), cycle, TODAY) == date(2020, 1, 1)


class TestValidation:
    def test_past_date_rejected(self):
        with pytest.raises(DateValidationError) as exc:
            validate_future_or_today(date(2026, 10, 18), TODAY)
        assert exc.value.value == date(2026, 10, 18)
        assert "today or later" in str(exc.value)

    def test_today_and_future_accepted(self):
        validate_future_or_today(TODAY, TODAY)
        validate_future_or_today(date(2027, 1, 1), TODAY)

    def test_missing_date_accepted(self):
        validate_future_or_today(None, TODAY)


class TestEffectiveDates:
    """Read-time views never rewrite the stored service."""

    def test_active_service_rolls(self):
        service = Service(name="Netflix", next_billing_date=date(2026, 4, 15))
        assert effective_next_billing_date(service, TODAY) == date(2026, 11, 15)

    def test_cancelled_service_keeps_date(self):
        service = Service(
            name="Netflix",
            status=ServiceStatus.CANCELLED,
            next_billing_date=date(2026, 4, 15),
        )
        assert effective_next_billing_date(service, TODAY) == date(2026, 4, 15)

    def test_originals_untouched(self):
        service = Service(name="Netflix", next_billing_date=date(2026, 4, 15))
        [shown] = with_effective_billing_dates([service], TODAY)
        assert shown.next_billing_date == date(2026, 11, 15)
        assert service.next_billing_date == date(2026, 4, 15)


class TestReactivation:
    def test_suggests_rolled_date(self):
        service = Service(
            name="Gym",
            status=ServiceStatus.ARCHIVED,
            next_billing_date=date(2026, 4, 15),
        )
        assert suggest_reactivation_date(service, "active", TODAY) == date(2026, 11, 15)

    def test_no_suggestion_for_active_service(self):
        service = Service(name="Gym", next_billing_date=date(2026, 4, 15))
        assert suggest_reactivation_date(service, "trial", TODAY) is None

    def test_no_suggestion_when_staying_inactive(self):
        service = Service(
            name="Gym",
            status=ServiceStatus.CANCELLED,
            next_billing_date=date(2026, 4, 15),
        )
        assert suggest_reactivation_date(service, "archived", TODAY) is None

    def test_no_suggestion_without_date(self):
        service = Service(name="Gym", status=ServiceStatus.CANCELLED)
        assert suggest_reactivation_date(service, "active", TODAY) is None
