"""Type definitions for the payroll reconciliation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum
from typing import Iterator
from uuid import UUID

ZERO = Decimal("0")
HALF = Decimal("0.5")
ONE = Decimal("1")


class PayMethod(str, Enum):
    """How a person's payable base is derived."""

    FIXED = "fixed"
    PRORATED = "prorated"
    DAILY = "daily"

    @property
    def is_salaried(self) -> bool:
        return self in (PayMethod.FIXED, PayMethod.PRORATED)


class AttendanceStatus(str, Enum):
    """Attendance status values."""

    PRESENT_FULL = "present_full"
    PRESENT_PARTIAL = "present_partial"
    ABSENT = "absent"


class LocumStatus(str, Enum):
    """Locum attendance status values."""

    WORKED = "WORKED"
    NO_SHOW = "NO_SHOW"


@dataclass(frozen=True)
class DateRange:
    """Inclusive calendar date range."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError(f"end date {self.end} is before start date {self.start}")

    def days(self) -> Iterator[date]:
        """Yield every calendar day in the range, in order."""
        current = self.start
        while current <= self.end:
            yield current
            current += timedelta(days=1)

    def __contains__(self, day: object) -> bool:
        return isinstance(day, date) and self.start <= day <= self.end

    @property
    def day_count(self) -> int:
        return (self.end - self.start).days + 1


@dataclass(frozen=True)
class AttendanceDay:
    """One day of attendance, already converted to units."""

    units: Decimal
    status: str | None
    location_id: UUID | None = None


@dataclass(frozen=True)
class LeaveDay:
    """One day of approved leave."""

    units: Decimal
    is_paid: bool
    leave_type: str


AttendanceByDate = dict[date, AttendanceDay]
LeaveByDate = dict[date, LeaveDay]


@dataclass
class UnitTotals:
    """Unit buckets for one person over a date range."""

    worked: Decimal = ZERO
    paid_leave: Decimal = ZERO
    unpaid_leave: Decimal = ZERO
    absent: Decimal = ZERO
    breakdown: dict[str, Decimal] = field(default_factory=dict)

    @property
    def paid_units(self) -> Decimal:
        """Units that earn pay: worked plus paid leave."""
        return self.worked + self.paid_leave


@dataclass(frozen=True)
class PayrollPerson:
    """A staff member or locum as seen by eligibility and pay calculation."""

    staff_id: UUID | None
    locum_id: UUID | None
    name: str
    role: str | None
    pay_method: PayMethod
    rate: Decimal
    home_location_id: UUID | None = None

    @property
    def is_locum(self) -> bool:
        return self.locum_id is not None


@dataclass(frozen=True)
class ScopeDecision:
    """Eligibility outcome and the attendance that counts toward pay."""

    include: bool
    scoped_attendance: AttendanceByDate
