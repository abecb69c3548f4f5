"""Run eligibility and attendance scoping per pay method."""

from __future__ import annotations

from uuid import UUID

from clinic_payroll.calculators.types import (
    AttendanceByDate,
    PayMethod,
    PayrollPerson,
    ScopeDecision,
)


def filter_attendance_to_location(
    attendance_by_date: AttendanceByDate,
    location_id: UUID | None,
) -> AttendanceByDate:
    """Keep only attendance recorded at ``location_id`` (all of it when None)."""
    if location_id is None:
        return dict(attendance_by_date)
    return {
        day: entry
        for day, entry in attendance_by_date.items()
        if entry.location_id == location_id
    }


def select_scope(
    person: PayrollPerson,
    pay_method: PayMethod,
    target_location: UUID | None,
    attendance_by_date: AttendanceByDate,
    has_existing_item: bool = False,
) -> ScopeDecision:
    """Decide whether a person belongs in a run and which attendance counts.

    Salaried (fixed/prorated) staff are paid once, by their home location.
    A location-scoped run includes them only when the home location matches,
    but their attendance is never filtered: every location they worked at
    is credited.

    Daily workers and locums are paid per location. Their attendance is
    filtered to the run's location, and they are included when anything
    remains or when they already have an item in the run.
    """
    if person.is_locum:
        pay_method = PayMethod.DAILY

    if pay_method.is_salaried:
        if target_location is None:
            return ScopeDecision(include=True, scoped_attendance=dict(attendance_by_date))
        return ScopeDecision(
            include=person.home_location_id == target_location,
            scoped_attendance=dict(attendance_by_date),
        )

    scoped = filter_attendance_to_location(attendance_by_date, target_location)
    return ScopeDecision(include=bool(scoped) or has_existing_item, scoped_attendance=scoped)
