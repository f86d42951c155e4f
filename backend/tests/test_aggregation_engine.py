"""
test_aggregation_engine.py — Unit tests for the profitability rollups.

Tests cover:
  - to_decimal coercion (None, booleans, NaN/inf, form strings, garbage)
  - Material totals: permutation invariance, null coercion, shipping
  - Time totals: per-entry rate precedence over the project fallback
  - Cost / profit / margin / outstanding arithmetic
  - summarize_project rollup and display helpers

All tests are pure unit tests; no database or external services required.
"""

import itertools
from decimal import Decimal
from types import SimpleNamespace

import pytest

from projectdesk.services.aggregation_engine import (
    MARGIN_PLACEHOLDER,
    actual_cost,
    bom_line_total,
    effective_rate,
    format_margin,
    margin_pct,
    material_total,
    outstanding,
    planned_cost,
    profit,
    round_money,
    sale_total,
    shipping_total,
    summarize_project,
    time_cost,
    time_hours,
    to_decimal,
)


D = Decimal


# ===========================================================================
# Class 1: Numeric coercion
# ===========================================================================

class TestToDecimal:
    """to_decimal never raises and never lets a non-finite value through."""

    @pytest.mark.parametrize("value, expected", [
        (None, D("0")),
        (True, D("0")),
        (False, D("0")),
        (3, D("3")),
        (2.5, D("2.5")),
        (0.1, D("0.1")),
        (D("7.25"), D("7.25")),
        ("12.5", D("12.5")),
        ("  4 ", D("4")),
        ("12.5 h", D("12.5")),
        ("-3", D("-3")),
        (".5", D("0.5")),
        ("1e2", D("100")),
        ("", D("0")),
        ("abc", D("0")),
        (float("nan"), D("0")),
        (float("inf"), D("0")),
        (D("NaN"), D("0")),
        ([1, 2], D("0")),
        ("9e999999", D("0")),
        ("1e600000", D("0")),
        ("-1e101", D("0")),
        ("1e-101", D("0")),
        (D("1E+200"), D("0")),
        (10 ** 150, D("0")),
        ("1e100", D("1e100")),
    ])
    def test_coercion_table(self, value, expected):
        assert to_decimal(value) == expected

    def test_custom_fallback_used_for_missing(self):
        assert to_decimal(None, fallback=D("65")) == D("65")
        assert to_decimal("n/a", fallback=D("1")) == D("1")

    def test_huge_exponents_do_not_overflow_totals(self):
        """Out-of-range magnitudes count as zero instead of raising decimal.Overflow."""
        from projectdesk.services.quote_engine import compute_quote_totals

        assert material_total([{"qty": "9e999999", "unit_price_net": "9e999999"}]) == D("0")
        totals = compute_quote_totals([{"qty": "1e600000", "unit_price_net": "1e600000"}], 19)
        assert totals.gross_total == D("0")
        assert time_cost([{"hours": "1e100", "hourly_rate": "1e100"}], 0) == D("1e200")

    def test_float_does_not_leak_binary_error(self):
        """0.1 + 0.2 summed through to_decimal is exactly 0.3."""
        assert to_decimal(0.1) + to_decimal(0.2) == D("0.3")


# ===========================================================================
# Class 2: Bill of materials
# ===========================================================================

class TestMaterialTotal:

    _ITEMS = [
        {"qty": 2, "unit_price_net": "19.99"},
        {"qty": D("0.5"), "unit_price_net": 120},
        {"qty": 10, "unit_price_net": D("1.05"), "shipping_cost_net": 4},
        {"qty": 1, "unit_price_net": 0.1},
    ]

    def test_sum_of_line_extensions(self):
        assert material_total(self._ITEMS) == D("39.98") + D("60") + D("10.5") + D("0.1")

    def test_permutation_invariance(self):
        """Every ordering of the same lines yields the identical total."""
        expected = material_total(self._ITEMS)
        for perm in itertools.permutations(self._ITEMS):
            assert material_total(list(perm)) == expected

    @pytest.mark.parametrize("broken", [
        {"qty": None, "unit_price_net": 50},
        {"unit_price_net": 50},
        {"qty": 3, "unit_price_net": None},
        {"qty": 3},
        {"qty": "x", "unit_price_net": "y"},
        {},
    ])
    def test_null_line_equals_omitted_line(self, broken):
        assert material_total(self._ITEMS + [broken]) == material_total(self._ITEMS)

    def test_empty_is_zero(self):
        assert material_total([]) == D("0")

    def test_shipping_included_only_on_request(self):
        assert shipping_total(self._ITEMS) == D("4")
        assert material_total(self._ITEMS, include_shipping=True) == material_total(self._ITEMS) + D("4")
        assert bom_line_total(self._ITEMS[2], include_shipping=True) == D("14.5")

    def test_sale_total_uses_sale_price(self):
        items = [{"qty": 2, "sale_price_net": 30}, {"qty": 1, "unit_price_net": 99}]
        assert sale_total(items) == D("60")

    def test_attribute_records_are_accepted(self):
        rows = [SimpleNamespace(qty=D("3"), unit_price_net=D("2"))]
        assert material_total(rows) == D("6")

    def test_inputs_not_mutated(self):
        items = [{"qty": "2", "unit_price_net": "5"}]
        material_total(items, include_shipping=True)
        assert items == [{"qty": "2", "unit_price_net": "5"}]


# ===========================================================================
# Class 3: Time tracking
# ===========================================================================

class TestTimeTotals:

    def test_entry_rate_wins_over_fallback(self):
        entry = {"hours": 2, "hourly_rate": 80}
        assert effective_rate(entry, 65) == D("80")
        assert time_cost([entry], D("65")) == D("160")

    def test_null_rate_uses_fallback(self):
        entry = {"hours": 2, "hourly_rate": None}
        assert effective_rate(entry, 65) == D("65")
        assert time_cost([entry], D("65")) == D("130")

    def test_zero_entry_rate_is_not_replaced(self):
        """Only a missing rate falls back; an explicit 0 is kept."""
        assert time_cost([{"hours": 3, "hourly_rate": 0}], D("65")) == D("0")

    def test_mixed_rates(self):
        entries = [
            {"hours": "1.5", "hourly_rate": 80},
            {"hours": 2},
            {"hours": None, "hourly_rate": 500},
        ]
        assert time_hours(entries) == D("3.5")
        assert time_cost(entries, 65) == D("120") + D("130")

    def test_missing_fallback_counts_as_zero(self):
        assert time_cost([{"hours": 4}], None) == D("0")

    def test_billable_only_filter(self):
        entries = [
            {"hours": 2, "billable": True, "hourly_rate": 50},
            {"hours": 5, "billable": False, "hourly_rate": 50},
        ]
        assert time_hours(entries) == D("7")
        assert time_hours(entries, billable_only=True) == D("2")
        assert time_cost(entries, 0, billable_only=True) == D("100")


# ===========================================================================
# Class 4: Cost, profit, margin
# ===========================================================================

class TestCostArithmetic:

    def test_planned_cost(self):
        assert planned_cost(10, 65, D("300"), 50) == D("1000")

    def test_actual_cost(self):
        assert actual_cost(D("480"), "300", None) == D("780")

    def test_profit_may_be_negative(self):
        assert profit(500, 800) == D("-300")

    def test_margin_pct(self):
        assert margin_pct(D("250"), D("1000")) == D("25")
        assert margin_pct(-50, 200) == D("-25")

    @pytest.mark.parametrize("profit_value", [0, 100, -100, D("0.01"), None])
    def test_margin_undefined_at_zero_revenue(self, profit_value):
        assert margin_pct(profit_value, 0) is None
        assert margin_pct(profit_value, None) is None
        assert margin_pct(profit_value, D("0.00")) is None

    def test_outstanding_sign(self):
        """Overpayment shows as negative outstanding, never clamped."""
        assert outstanding(1000, 1200) == D("-200")
        assert outstanding(1000, 400) == D("600")
        assert outstanding(None, None) == D("0")


# ===========================================================================
# Class 5: Project rollup and display
# ===========================================================================

class TestSummarizeProject:

    def test_full_rollup(self):
        project = {
            "hourly_rate": 65,
            "hours_planned": 10,
            "hours_actual": 9,
            "other_costs": 50,
            "quote_total_net": 2000,
            "invoiced_net": 1800,
            "payments_received": 1000,
        }
        bom = [{"qty": 2, "unit_price_net": 150}]
        entries = [{"hours": 4, "hourly_rate": 80}, {"hours": 4}]

        kpis = summarize_project(project, bom, entries)

        assert kpis.hours_tracked == D("8")
        assert kpis.hours_actual_manual == D("9")
        assert kpis.time_cost == D("580")
        assert kpis.material_total == D("300")
        assert kpis.planned_cost == D("1000")
        assert kpis.actual_cost == D("930")
        assert kpis.planned_profit == D("1000")
        assert kpis.actual_profit == D("870")
        assert kpis.planned_margin_pct == D("50")
        assert kpis.outstanding == D("800")

    def test_empty_project_has_undefined_margins(self):
        kpis = summarize_project(SimpleNamespace(), [], [])
        assert kpis.planned_cost == D("0")
        assert kpis.planned_margin_pct is None
        assert kpis.actual_margin_pct is None
        assert set(kpis.to_dict()) >= {"planned_cost", "actual_margin_pct", "outstanding"}

    def test_format_margin(self):
        assert format_margin(None) == MARGIN_PLACEHOLDER
        assert format_margin(D("12.345")) == "12.3 %"
        assert format_margin(D("-4.25")) == "-4.3 %"

    def test_round_money(self):
        assert round_money("2.675") == D("2.68")
        assert round_money(None) == D("0.00")
        assert round_money(D("1e100") * D("1e100")) == D("1e200")
        assert format_margin(D("1e200")).endswith(" %")
