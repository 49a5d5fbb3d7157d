"""Tests for currency detection, conversion and cost aggregation."""

from decimal import Decimal

import pytest

from identity_hub.currency import (
    UnconvertibleAmountError,
    aggregate_costs,
    convert,
    cost_lines_from_services,
    cost_lines_from_subscriptions,
    detect_base_currency,
    detect_foreign_currencies,
    monthly_equivalent,
)
from identity_hub.models.currency import CostLine, ExchangeRates
from identity_hub.models.identity import (
    Service,
    ServiceCost,
    ServiceStatus,
    SubscriptionRecord,
)

GBP_RATES = ExchangeRates(base="GBP", rates={"USD": Decimal("1.25"), "EUR": Decimal("1.20")})


def _line(amount: str, currency: str, cycle: str = "monthly") -> CostLine:
    return CostLine(
        source_id="x",
        name="x",
        amount=Decimal(amount),
        currency=currency,
        billing_cycle=cycle,
    )


class TestDetection:
    def test_most_common_wins(self):
        assert detect_base_currency(["GBP", "GBP", "USD"]) == "GBP"

    def test_tie_goes_to_first_to_reach_count(self):
        assert detect_base_currency(["USD", "GBP", "GBP", "USD"]) == "GBP"
        assert detect_base_currency(["EUR", "USD"]) == "EUR"

    def test_codes_normalized(self):
        assert detect_base_currency(["usd", " USD ", "gbp"]) == "USD"

    def test_empty_uses_fallback(self):
        assert detect_base_currency([], fallback="eur") == "EUR"
        assert detect_base_currency([]) == "GBP"

    def test_foreign_currencies_distinct_and_ordered(self):
        assert detect_foreign_currencies(["GBP", "USD", "EUR", "USD"], "GBP") == ["USD", "EUR"]

    def test_no_foreign_currencies(self):
        assert detect_foreign_currencies(["GBP", "gbp"], "GBP") == []


class TestConvert:
    """Conversion direction depends on the rates' base."""

    def test_same_currency_is_identity(self):
        assert convert(Decimal("10"), "GBP", "GBP", None) == Decimal("10")

    def test_rates_based_on_target_divide(self):
        assert convert(Decimal("12.50"), "USD", "GBP", GBP_RATES) == Decimal("10")

    def test_rates_based_on_source_multiply(self):
        usd_rates = ExchangeRates(base="USD", rates={"GBP": Decimal("0.8")})
        assert convert(Decimal("10"), "USD", "GBP", usd_rates) == Decimal("8.0")

    def test_missing_rate_passes_through(self):
        assert convert(Decimal("5"), "JPY", "GBP", GBP_RATES) == Decimal("5")

    def test_missing_rate_strict_raises(self):
        with pytest.raises(UnconvertibleAmountError) as exc:
            convert(Decimal("5"), "JPY", "GBP", GBP_RATES, strict=True)
        assert exc.value.from_currency == "JPY"
        assert exc.value.base == "GBP"


class TestMonthlyEquivalent:
    @pytest.mark.parametrize("cycle,expected", [
        ("monthly", Decimal("12")),
        ("yearly", Decimal("1")),
        ("weekly", Decimal("0")),
        ("one-time", Decimal("0")),
        ("bogus", Decimal("0")),
    ])
    def test_cycles(self, cycle, expected):
        assert monthly_equivalent(Decimal("12"), cycle) == expected


class TestAggregate:
    """Totals are rounded once, and unconverted currencies are reported."""

    def test_mixed_currencies(self):
        report = aggregate_costs(
            [_line("10", "GBP"), _line("12.50", "USD"), _line("120", "GBP", "yearly")],
            "GBP",
            GBP_RATES,
        )
        assert report.converted_total == Decimal("30.00")
        assert report.subtotals == {"GBP": Decimal("20.00"), "USD": Decimal("12.50")}
        assert report.unconverted_currencies == []
        assert report.line_count == 3
        assert report.is_exact

    def test_rounds_once_at_the_end(self):
        """Three 1/3 amounts sum to 1.00, not 0.99."""
        lines = [_line("4", "GBP", "yearly")] * 3
        assert aggregate_costs(lines, "GBP", None).converted_total == Decimal("1.00")

    def test_missing_rates_reported(self):
        report = aggregate_costs([_line("10", "GBP"), _line("5", "JPY")], "GBP", GBP_RATES)
        assert report.unconverted_currencies == ["JPY"]
        assert report.converted_total == Decimal("15.00")
        assert not report.is_exact

    def test_no_rates_at_all(self):
        report = aggregate_costs([_line("5", "USD")], "GBP", None)
        assert report.unconverted_currencies == ["USD"]

    def test_strict_raises(self):
        with pytest.raises(UnconvertibleAmountError):
            aggregate_costs([_line("5", "JPY")], "GBP", GBP_RATES, strict=True)

    def test_empty(self):
        report = aggregate_costs([], "GBP", None)
        assert report.converted_total == Decimal("0.00")
        assert report.line_count == 0


class TestCostLines:
    def test_only_billable_services_with_cost(self):
        services = [
            Service(name="A", cost=ServiceCost(amount=Decimal("5"), currency="GBP")),
            Service(name="B", status=ServiceStatus.TRIAL, cost=ServiceCost(amount=Decimal("1"), currency="USD")),
            Service(name="C", status=ServiceStatus.CANCELLED, cost=ServiceCost(amount=Decimal("9"), currency="GBP")),
            Service(name="D"),
        ]
        assert [line.name for line in cost_lines_from_services(services)] == ["A", "B"]

    def test_subscription_frequency_becomes_cycle(self):
        [line] = cost_lines_from_subscriptions([
            SubscriptionRecord(name="Gym", amount=Decimal("240"), currency="gbp", frequency="yearly"),
        ])
        assert line.billing_cycle.value == "yearly"
        assert line.currency == "GBP"
