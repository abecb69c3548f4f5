"""Payroll reconciliation calculators."""

from clinic_payroll.calculators.eligibility import filter_attendance_to_location, select_scope
from clinic_payroll.calculators.pay import PayCalculator
from clinic_payroll.calculators.types import (
    AttendanceDay,
    DateRange,
    LeaveDay,
    PayMethod,
    PayrollPerson,
    ScopeDecision,
    UnitTotals,
)
from clinic_payroll.calculators.units import attendance_units, compute_units

__all__ = [
    "AttendanceDay",
    "DateRange",
    "LeaveDay",
    "PayCalculator",
    "PayMethod",
    "PayrollPerson",
    "ScopeDecision",
    "UnitTotals",
    "attendance_units",
    "compute_units",
    "filter_attendance_to_location",
    "select_scope",
]
