"""
Record payload schemas — insert defaults and partial-update patches.

Create models carry the defaults a fresh row gets when the user clicks "add";
Patch models have every field optional and are applied with
``model_dump(exclude_unset=True)`` so only touched fields are written.
"""
import datetime as _dt
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from projectdesk.config import DEFAULT_STATUS, DEFAULT_TAX_RATE_PCT


def _today() -> date:
    return date.today()


# ── Projects ──────────────────────────────────────────────────────────────────
class ProjectCreate(BaseModel):
    name: str = Field(..., description="Display name, e.g. 'Split-Klima Praxis Dr. Weber'")
    code: Optional[str] = Field(None, description="YYYY-NNN; assigned automatically when omitted")
    status: Optional[str] = Field(DEFAULT_STATUS, description="Lifecycle value, see config.STATUS_OPTIONS")
    notes: Optional[str] = None
    customer_address: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None


class ProjectPatch(BaseModel):
    code: Optional[str] = None
    name: Optional[str] = None
    status: Optional[str] = None
    notes: Optional[str] = None
    customer_address: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    quote_total_net: Optional[Decimal] = None
    hourly_rate: Optional[Decimal] = None
    hours_planned: Optional[Decimal] = None
    hours_actual: Optional[Decimal] = Field(None, description="Manual actual-hours override")
    other_costs: Optional[Decimal] = None
    invoiced_net: Optional[Decimal] = None
    payments_received: Optional[Decimal] = None


# ── Bill of materials ─────────────────────────────────────────────────────────
class BomItemCreate(BaseModel):
    item: str = ""
    unit: Optional[str] = None
    qty: Optional[Decimal] = Decimal("1")
    unit_price_net: Optional[Decimal] = Decimal("0")
    shipping_cost_net: Optional[Decimal] = None
    sale_price_net: Optional[Decimal] = None
    notes: Optional[str] = None


class BomItemPatch(BaseModel):
    item: Optional[str] = None
    unit: Optional[str] = None
    qty: Optional[Decimal] = None
    unit_price_net: Optional[Decimal] = None
    shipping_cost_net: Optional[Decimal] = None
    sale_price_net: Optional[Decimal] = None
    notes: Optional[str] = None


# ── Time tracking ─────────────────────────────────────────────────────────────
class TimeEntryCreate(BaseModel):
    work_date: date = Field(default_factory=_today)
    person: Optional[str] = ""
    description: Optional[str] = ""
    hours: Optional[Decimal] = Decimal("1")
    billable: Optional[bool] = True
    hourly_rate: Optional[Decimal] = Field(
        None, description="Left empty, the project's hourly_rate is copied in at insert"
    )


class TimeEntryPatch(BaseModel):
    work_date: Optional[date] = None
    person: Optional[str] = None
    description: Optional[str] = None
    hours: Optional[Decimal] = None
    billable: Optional[bool] = None
    hourly_rate: Optional[Decimal] = None


# ── Tasks ─────────────────────────────────────────────────────────────────────
class TaskCreate(BaseModel):
    title: str = ""
    due_at: Optional[datetime] = None
    is_done: Optional[bool] = False
    assigned_to: Optional[str] = ""
    notes: Optional[str] = ""


class TaskPatch(BaseModel):
    title: Optional[str] = None
    due_at: Optional[datetime] = None
    is_done: Optional[bool] = None
    assigned_to: Optional[str] = None
    notes: Optional[str] = None


# ── Quotes ────────────────────────────────────────────────────────────────────
class QuoteCreate(BaseModel):
    number: Optional[str] = None
    date: Optional[_dt.date] = Field(default_factory=_today)
    valid_until: Optional[_dt.date] = None
    tax_rate: Optional[Decimal] = DEFAULT_TAX_RATE_PCT
    notes: Optional[str] = ""


class QuotePatch(BaseModel):
    number: Optional[str] = None
    date: Optional[_dt.date] = None
    valid_until: Optional[_dt.date] = None
    tax_rate: Optional[Decimal] = None
    notes: Optional[str] = None


class QuoteItemCreate(BaseModel):
    pos: Optional[int] = None
    item: str = ""
    description: Optional[str] = ""
    unit: Optional[str] = ""
    qty: Optional[Decimal] = Decimal("1")
    unit_price_net: Optional[Decimal] = Decimal("0")
    discount_pct: Optional[Decimal] = Decimal("0")


class QuoteItemPatch(BaseModel):
    pos: Optional[int] = None
    item: Optional[str] = None
    description: Optional[str] = None
    unit: Optional[str] = None
    qty: Optional[Decimal] = None
    unit_price_net: Optional[Decimal] = None
    discount_pct: Optional[Decimal] = None
