"""ORM Models for ProjectDesk — SQLAlchemy 2.0"""
import uuid
import datetime as _dt
from datetime import datetime, date
from decimal import Decimal
from typing import Optional
from sqlalchemy import (
    String, Text, Boolean, Integer, Numeric, DateTime, Date,
    ForeignKey, UniqueConstraint, Index
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func
from projectdesk.db import Base


def gen_uuid():
    return str(uuid.uuid4())


# ── PROJECTS ──────────────────────────────────────────────────────────────────
class Project(Base):
    __tablename__ = "projects"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    # YYYY-NNN, sequence restarts per calendar year
    code: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[Optional[str]] = mapped_column(String(50), default="Neu")
    notes: Mapped[Optional[str]] = mapped_column(Text)
    # Customer
    customer_address: Mapped[Optional[str]] = mapped_column(Text)
    customer_email: Mapped[Optional[str]] = mapped_column(String(255))
    customer_phone: Mapped[Optional[str]] = mapped_column(String(50))
    # Financial overrides, null counts as 0
    quote_total_net: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    hourly_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    hours_planned: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    hours_actual: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    other_costs: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    invoiced_net: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    payments_received: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    bom_items: Mapped[list["BomItem"]] = relationship(
        "BomItem", back_populates="project", cascade="all, delete-orphan", passive_deletes=True
    )
    time_entries: Mapped[list["TimeEntry"]] = relationship(
        "TimeEntry", back_populates="project", cascade="all, delete-orphan", passive_deletes=True
    )
    tasks: Mapped[list["Task"]] = relationship(
        "Task", back_populates="project", cascade="all, delete-orphan", passive_deletes=True
    )
    quote: Mapped[Optional["Quote"]] = relationship(
        "Quote", back_populates="project", cascade="all, delete-orphan", passive_deletes=True
    )
    __table_args__ = (UniqueConstraint("code", name="uq_projects_code"),)


# ── BILL OF MATERIALS ─────────────────────────────────────────────────────────
class BomItem(Base):
    __tablename__ = "bom_items"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    project_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    item: Mapped[str] = mapped_column(Text, default="")
    unit: Mapped[Optional[str]] = mapped_column(String(20))
    qty: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 3), default=Decimal("1"))
    unit_price_net: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    shipping_cost_net: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    sale_price_net: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    project: Mapped["Project"] = relationship("Project", back_populates="bom_items")
    __table_args__ = (Index("ix_bom_items_project", "project_id", "created_at"),)


# ── TIME TRACKING ─────────────────────────────────────────────────────────────
class TimeEntry(Base):
    __tablename__ = "time_entries"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    project_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    work_date: Mapped[date] = mapped_column(Date, nullable=False)
    person: Mapped[Optional[str]] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text)
    hours: Mapped[Optional[Decimal]] = mapped_column(Numeric(8, 2), default=Decimal("1"))
    billable: Mapped[Optional[bool]] = mapped_column(Boolean, default=True)
    # Null means "use the project's hourly_rate"
    hourly_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    project: Mapped["Project"] = relationship("Project", back_populates="time_entries")
    __table_args__ = (Index("ix_time_entries_project", "project_id", "work_date"),)


# ── TASKS ─────────────────────────────────────────────────────────────────────
class Task(Base):
    __tablename__ = "tasks"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    project_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(Text, default="")
    due_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    is_done: Mapped[Optional[bool]] = mapped_column(Boolean, default=False)
    assigned_to: Mapped[Optional[str]] = mapped_column(String(255))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    project: Mapped["Project"] = relationship("Project", back_populates="tasks")
    __table_args__ = (Index("ix_tasks_open_due", "is_done", "due_at"),)


# ── QUOTES ────────────────────────────────────────────────────────────────────
class Quote(Base):
    __tablename__ = "quotes"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    project_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    number: Mapped[Optional[str]] = mapped_column(String(50))
    date: Mapped[Optional[_dt.date]] = mapped_column(Date)
    valid_until: Mapped[Optional[_dt.date]] = mapped_column(Date)
    tax_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2), default=Decimal("19"))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    project: Mapped["Project"] = relationship("Project", back_populates="quote")
    items: Mapped[list["QuoteItem"]] = relationship(
        "QuoteItem", back_populates="quote", cascade="all, delete-orphan", passive_deletes=True
    )


class QuoteItem(Base):
    __tablename__ = "quote_items"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    quote_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("quotes.id", ondelete="CASCADE"), nullable=False
    )
    pos: Mapped[Optional[int]] = mapped_column(Integer)
    item: Mapped[str] = mapped_column(Text, default="")
    description: Mapped[Optional[str]] = mapped_column(Text)
    unit: Mapped[Optional[str]] = mapped_column(String(20))
    qty: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 3), default=Decimal("1"))
    unit_price_net: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    discount_pct: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2), default=Decimal("0"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    quote: Mapped["Quote"] = relationship("Quote", back_populates="items")
    __table_args__ = (Index("ix_quote_items_quote", "quote_id", "pos"),)
