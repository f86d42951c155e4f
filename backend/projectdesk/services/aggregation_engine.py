"""
AggregationEngine — profitability rollups over already-fetched project rows.

Covers:
  - Numeric normalization of loosely-typed form/DB values (to_decimal)
  - Bill-of-materials totals (material, shipping, sale value)
  - Time tracking totals (hours, cost with per-entry rate precedence)
  - Planned vs. actual cost, profit, margin and outstanding balance
  - Full project rollup for the profitability view (summarize_project)

Every function is pure: inputs are never mutated, no I/O is performed and
nothing raises for malformed numbers: missing or non-numeric values count
as zero. Records can be plain mappings or attribute objects (ORM rows,
pydantic models).
"""

import math
import re
from dataclasses import dataclass, asdict
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, localcontext
from typing import Any, Dict, Iterable, Mapping, Optional


ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")

MARGIN_PLACEHOLDER = "—"

# Leading numeric prefix of a form value, e.g. "12.5 h" -> "12.5"
_NUMERIC_PREFIX = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")

# Largest decimal exponent accepted from input; products of a few such
# values stay far inside the default context, so sums never overflow
MAX_EXPONENT = 100

# Digits needed to quantize any total built from such values
_DISPLAY_PRECISION = 10 * MAX_EXPONENT


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

def to_decimal(value: Any, fallback: Decimal = ZERO) -> Decimal:
    """
    Coerce *value* to a finite Decimal, returning *fallback* when that is
    not possible (None, booleans, NaN/inf, unparseable text, magnitudes
    beyond 1e+-MAX_EXPONENT).
    """
    result = _coerce(value)
    if result is None or not result.is_finite() or abs(result.adjusted()) > MAX_EXPONENT:
        return fallback
    return result


def _coerce(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(repr(value)) if math.isfinite(value) else None
    if isinstance(value, str):
        match = _NUMERIC_PREFIX.match(value.strip())
        if not match:
            return None
        text = match.group(0)
    else:
        text = str(value)
    try:
        return Decimal(text)
    except (InvalidOperation, ValueError, TypeError):
        return None


def field(record: Any, name: str, default: Any = None) -> Any:
    """Read *name* from a mapping or an attribute object."""
    if record is None:
        return default
    if isinstance(record, Mapping):
        return record.get(name, default)
    return getattr(record, name, default)


def round_money(value: Any) -> Decimal:
    """Quantize to cents for display. Totals are never rounded internally."""
    amount = value if isinstance(value, Decimal) and value.is_finite() else to_decimal(value)
    with localcontext() as ctx:
        ctx.prec = _DISPLAY_PRECISION
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def format_margin(margin: Optional[Decimal]) -> str:
    """'12.5 %' or the placeholder when the margin is undefined."""
    if margin is None:
        return MARGIN_PLACEHOLDER
    with localcontext() as ctx:
        ctx.prec = _DISPLAY_PRECISION
        return f"{margin.quantize(Decimal('0.1'), rounding=ROUND_HALF_UP)} %"


# ---------------------------------------------------------------------------
# Bill of materials
# ---------------------------------------------------------------------------

def bom_line_total(item: Any, include_shipping: bool = False) -> Decimal:
    """qty × unit_price_net, plus the line's shipping once when requested."""
    total = to_decimal(field(item, "qty")) * to_decimal(field(item, "unit_price_net"))
    if include_shipping:
        total += to_decimal(field(item, "shipping_cost_net"))
    return total


def material_total(items: Iterable[Any], include_shipping: bool = False) -> Decimal:
    return sum((bom_line_total(it, include_shipping) for it in items), ZERO)


def shipping_total(items: Iterable[Any]) -> Decimal:
    return sum((to_decimal(field(it, "shipping_cost_net")) for it in items), ZERO)


def sale_total(items: Iterable[Any]) -> Decimal:
    """Σ qty × sale_price_net, what the parts are sold for."""
    return sum(
        (to_decimal(field(it, "qty")) * to_decimal(field(it, "sale_price_net")) for it in items),
        ZERO,
    )


# ---------------------------------------------------------------------------
# Time tracking
# ---------------------------------------------------------------------------

def _counted(entry: Any, billable_only: bool) -> bool:
    return not billable_only or bool(field(entry, "billable"))


def effective_rate(entry: Any, fallback_rate: Any) -> Decimal:
    """The entry's own rate when set, otherwise the project-level fallback."""
    rate = field(entry, "hourly_rate")
    if rate is None:
        rate = fallback_rate
    return to_decimal(rate)


def time_hours(entries: Iterable[Any], billable_only: bool = False) -> Decimal:
    return sum(
        (to_decimal(field(e, "hours")) for e in entries if _counted(e, billable_only)),
        ZERO,
    )


def time_cost(entries: Iterable[Any], fallback_rate: Any, billable_only: bool = False) -> Decimal:
    return sum(
        (
            to_decimal(field(e, "hours")) * effective_rate(e, fallback_rate)
            for e in entries
            if _counted(e, billable_only)
        ),
        ZERO,
    )


# ---------------------------------------------------------------------------
# Cost / revenue arithmetic
# ---------------------------------------------------------------------------

def planned_cost(hours_planned: Any, hourly_rate: Any, material: Any, other_costs: Any) -> Decimal:
    return (
        to_decimal(hours_planned) * to_decimal(hourly_rate)
        + to_decimal(material)
        + to_decimal(other_costs)
    )


def actual_cost(labour_cost: Any, material: Any, other_costs: Any) -> Decimal:
    return to_decimal(labour_cost) + to_decimal(material) + to_decimal(other_costs)


def profit(revenue: Any, cost: Any) -> Decimal:
    return to_decimal(revenue) - to_decimal(cost)


def margin_pct(profit_value: Any, revenue: Any) -> Optional[Decimal]:
    """
    Profit as a percentage of revenue.

    Returns None when revenue is exactly zero: the margin is undefined there,
    and callers render a placeholder rather than "0 %".
    """
    rev = to_decimal(revenue)
    if rev == ZERO:
        return None
    return to_decimal(profit_value) / rev * HUNDRED


def outstanding(invoiced_net: Any, payments_received: Any) -> Decimal:
    """Invoiced minus paid. Negative means the customer overpaid."""
    return to_decimal(invoiced_net) - to_decimal(payments_received)


# ---------------------------------------------------------------------------
# Project rollup
# ---------------------------------------------------------------------------

@dataclass
class ProjectFinancials:
    hours_tracked: Decimal
    hours_actual_manual: Decimal
    time_cost: Decimal
    material_total: Decimal
    other_costs: Decimal
    planned_cost: Decimal
    actual_cost: Decimal
    planned_profit: Decimal
    actual_profit: Decimal
    planned_margin_pct: Optional[Decimal]
    actual_margin_pct: Optional[Decimal]
    outstanding: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def summarize_project(project: Any, bom_items: Iterable[Any], time_entries: Iterable[Any]) -> ProjectFinancials:
    """
    Profitability KPIs for one project.

    Plan side:   hours_planned × hourly_rate + BOM + other costs, against the
                 quoted net total.
    Actual side: tracked time cost + BOM + other costs, against invoiced net.
    """
    entries = list(time_entries)
    rate = field(project, "hourly_rate")
    material = material_total(bom_items)
    other = to_decimal(field(project, "other_costs"))
    quoted = to_decimal(field(project, "quote_total_net"))
    invoiced = to_decimal(field(project, "invoiced_net"))

    labour = time_cost(entries, rate)
    plan = planned_cost(field(project, "hours_planned"), rate, material, other)
    actual = actual_cost(labour, material, other)
    plan_profit = profit(quoted, plan)
    actual_profit_value = profit(invoiced, actual)

    return ProjectFinancials(
        hours_tracked=time_hours(entries),
        hours_actual_manual=to_decimal(field(project, "hours_actual")),
        time_cost=labour,
        material_total=material,
        other_costs=other,
        planned_cost=plan,
        actual_cost=actual,
        planned_profit=plan_profit,
        actual_profit=actual_profit_value,
        planned_margin_pct=margin_pct(plan_profit, quoted),
        actual_margin_pct=margin_pct(actual_profit_value, invoiced),
        outstanding=outstanding(invoiced, field(project, "payments_received")),
    )
