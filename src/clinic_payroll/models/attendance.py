"""Attendance and leave models (read-only inputs to payroll)."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from clinic_payroll.models.base import Base, TimestampMixin


class AttendanceRecord(Base, TimestampMixin):
    """One attendance record per person per calendar date."""

    __tablename__ = "attendance_record"

    attendance_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(
        ForeignKey("tenant.tenant_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    staff_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("staff_member.staff_id", ondelete="CASCADE"),
        nullable=True,
    )
    locum_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("external_locum.locum_id", ondelete="CASCADE"),
        nullable=True,
    )
    work_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    total_hours: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False, default=Decimal("0"))
    status: Mapped[str | None] = mapped_column(String, nullable=True)
    locum_status: Mapped[str | None] = mapped_column(String, nullable=True)
    location_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("location.location_id", ondelete="SET NULL"),
        nullable=True,
    )

    __table_args__ = (
        CheckConstraint(
            "(staff_id IS NULL) <> (locum_id IS NULL)",
            name="attendance_one_person_check",
        ),
        CheckConstraint(
            "status IS NULL OR status IN ('present_full', 'present_partial', 'absent')",
            name="attendance_status_check",
        ),
        CheckConstraint(
            "locum_status IS NULL OR locum_status IN ('WORKED', 'NO_SHOW')",
            name="attendance_locum_status_check",
        ),
        UniqueConstraint("staff_id", "work_date", name="attendance_staff_date_unique"),
        UniqueConstraint("locum_id", "work_date", name="attendance_locum_date_unique"),
    )


class LeaveType(Base, TimestampMixin):
    """Leave type configuration; decides whether leave is paid."""

    __tablename__ = "leave_type"

    leave_type_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(
        ForeignKey("tenant.tenant_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    is_paid: Mapped[bool] = mapped_column(default=True, nullable=False)

    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="leave_type_tenant_name_unique"),
    )


class LeaveRequest(Base, TimestampMixin):
    """Leave request covering a continuous date span."""

    __tablename__ = "leave_request"

    leave_request_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(
        ForeignKey("tenant.tenant_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    staff_id: Mapped[UUID] = mapped_column(
        ForeignKey("staff_member.staff_id", ondelete="CASCADE"),
        nullable=False,
    )
    leave_type: Mapped[str] = mapped_column(String, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    is_half_day: Mapped[bool] = mapped_column(default=False, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="leave_request_status_check",
        ),
        CheckConstraint("end_date >= start_date", name="leave_request_dates_check"),
    )
