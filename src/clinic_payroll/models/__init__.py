"""ORM models."""

from clinic_payroll.models.attendance import AttendanceRecord, LeaveRequest, LeaveType
from clinic_payroll.models.base import Base, TimestampMixin, UpdatedAtMixin
from clinic_payroll.models.organization import Location, Tenant
from clinic_payroll.models.payroll import (
    GLOBAL_LOCATION_KEY,
    PayrollItem,
    PayrollRun,
    location_key_for,
    person_key_for,
)
from clinic_payroll.models.staff import ExternalLocum, StaffMember

__all__ = [
    "AttendanceRecord",
    "Base",
    "ExternalLocum",
    "GLOBAL_LOCATION_KEY",
    "LeaveRequest",
    "LeaveType",
    "Location",
    "PayrollItem",
    "PayrollRun",
    "StaffMember",
    "Tenant",
    "TimestampMixin",
    "UpdatedAtMixin",
    "location_key_for",
    "person_key_for",
]
