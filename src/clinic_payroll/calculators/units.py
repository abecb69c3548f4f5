"""Unit calculation: attendance and leave facts to payable unit buckets."""

from __future__ import annotations

from decimal import Decimal

from clinic_payroll.calculators.types import (
    HALF,
    ONE,
    ZERO,
    AttendanceByDate,
    AttendanceStatus,
    DateRange,
    LeaveByDate,
    LocumStatus,
    UnitTotals,
)

FULL_DAY_HOURS = Decimal("6")
HALF_DAY_HOURS = Decimal("3")


def effective_status(status: str | None, locum_status: str | None) -> str | None:
    """Resolve a record's status, falling back to the locum status field."""
    if status:
        return status
    if locum_status == LocumStatus.WORKED:
        return AttendanceStatus.PRESENT_FULL.value
    if locum_status == LocumStatus.NO_SHOW:
        return AttendanceStatus.ABSENT.value
    return None


def attendance_units(
    status: str | None,
    total_hours: Decimal | None,
    locum_status: str | None = None,
) -> Decimal:
    """Convert one attendance record to a day credit of 0, 0.5 or 1.0.

    A full-day record needs 6 hours for a full unit and 3 for a half unit;
    a partial-day record is always a half unit.
    """
    hours = total_hours or ZERO
    resolved = effective_status(status, locum_status)

    if resolved == AttendanceStatus.PRESENT_FULL or locum_status == LocumStatus.WORKED:
        if hours >= FULL_DAY_HOURS:
            return ONE
        if hours >= HALF_DAY_HOURS:
            return HALF
        return ZERO
    if resolved == AttendanceStatus.PRESENT_PARTIAL:
        return HALF
    return ZERO


def compute_units(
    attendance_by_date: AttendanceByDate,
    leave_by_date: LeaveByDate,
    date_range: DateRange,
) -> UnitTotals:
    """Merge attendance and leave into unit buckets for one person.

    Precedence per day:
    1. Leave (paid or unpaid) claims its units. On a half-day leave, any
       attendance tops the day up to at most 1.0 as worked units.
    2. Otherwise attendance units count as worked.
    3. Otherwise an explicit "absent" record adds a full absent unit.

    A day with no records contributes nothing; absence is never inferred.
    """
    totals = UnitTotals(breakdown={})

    for day in date_range.days():
        leave = leave_by_date.get(day)
        attendance = attendance_by_date.get(day)

        if leave is not None:
            if leave.is_paid:
                totals.paid_leave += leave.units
            else:
                totals.unpaid_leave += leave.units
            totals.breakdown[leave.leave_type] = (
                totals.breakdown.get(leave.leave_type, ZERO) + leave.units
            )
            if leave.units < ONE and attendance is not None and attendance.units > 0:
                totals.worked += min(attendance.units, ONE - leave.units)

        elif attendance is not None and attendance.units > 0:
            totals.worked += attendance.units

        elif attendance is not None and attendance.status == AttendanceStatus.ABSENT:
            totals.absent += ONE

    return totals
