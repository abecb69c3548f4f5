"""Payroll run and payroll item models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from clinic_payroll.models.base import Base, JSONType, TimestampMixin, UpdatedAtMixin

GLOBAL_LOCATION_KEY = "global"


def location_key_for(location_id: UUID | None) -> str:
    """Natural-key form of a location scope ("global" when unscoped)."""
    return str(location_id) if location_id is not None else GLOBAL_LOCATION_KEY


def person_key_for(staff_id: UUID | None = None, locum_id: UUID | None = None) -> str:
    """Upsert key for a payroll item; exactly one identifier must be given."""
    if (staff_id is None) == (locum_id is None):
        raise ValueError("Exactly one of staff_id or locum_id is required")
    if staff_id is not None:
        return f"staff:{staff_id}"
    return f"locum:{locum_id}"


class PayrollRun(Base, TimestampMixin, UpdatedAtMixin):
    """Payroll computation for a tenant, optional location and date range.

    (tenant_id, location_key, start_date, end_date) is the natural key.
    """

    __tablename__ = "payroll_run"

    payroll_run_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(
        ForeignKey("tenant.tenant_id", ondelete="CASCADE"),
        nullable=False,
    )
    location_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("location.location_id", ondelete="CASCADE"),
        nullable=True,
    )
    location_key: Mapped[str] = mapped_column(String, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")
    month_units: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    marked_by_name: Mapped[str | None] = mapped_column(String, nullable=True)
    finalized_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    finalized_by: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "tenant_id",
            "location_key",
            "start_date",
            "end_date",
            name="payroll_run_natural_key",
        ),
        CheckConstraint("status IN ('draft', 'finalized')", name="payroll_run_status_check"),
        CheckConstraint("end_date >= start_date", name="payroll_run_dates_check"),
        CheckConstraint("month_units > 0", name="payroll_run_month_units_check"),
    )

    # Relationships
    items: Mapped[list[PayrollItem]] = relationship(
        back_populates="payroll_run",
        order_by="PayrollItem.person_name",
    )


class PayrollItem(Base, TimestampMixin, UpdatedAtMixin):
    """One person's computed payroll line within a run."""

    __tablename__ = "payroll_item"

    payroll_item_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    payroll_run_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_run.payroll_run_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    person_key: Mapped[str] = mapped_column(String, nullable=False)
    staff_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("staff_member.staff_id", ondelete="CASCADE"),
        nullable=True,
    )
    locum_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("external_locum.locum_id", ondelete="CASCADE"),
        nullable=True,
    )
    person_name: Mapped[str] = mapped_column(String, nullable=False, default="")
    role: Mapped[str | None] = mapped_column(String, nullable=True)

    # Computed by synchronization
    pay_method: Mapped[str] = mapped_column(String, nullable=False)
    base_rate: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    worked_units: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False, default=Decimal("0"))
    paid_leave_units: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False, default=Decimal("0"))
    unpaid_leave_units: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False, default=Decimal("0"))
    absent_units: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False, default=Decimal("0"))
    period_units: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    payable_base: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, default=Decimal("0"))
    breakdown: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    # Operator-entered; never reset by synchronization
    allowances: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)
    allowances_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    is_paid: Mapped[bool] = mapped_column(default=False, nullable=False)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_by: Mapped[str | None] = mapped_column(String, nullable=True)

    gross_pay: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))

    __table_args__ = (
        UniqueConstraint("payroll_run_id", "person_key", name="payroll_item_run_person_unique"),
        CheckConstraint(
            "(staff_id IS NULL) <> (locum_id IS NULL)",
            name="payroll_item_one_person_check",
        ),
        CheckConstraint(
            "pay_method IN ('fixed', 'prorated', 'daily')",
            name="payroll_item_pay_method_check",
        ),
    )

    # Relationships
    payroll_run: Mapped[PayrollRun] = relationship(back_populates="items")
