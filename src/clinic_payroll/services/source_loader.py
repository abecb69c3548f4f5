"""Loads tenant-scoped attendance, leave and staff records for synchronization."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_payroll.calculators.types import (
    HALF,
    ONE,
    ZERO,
    AttendanceByDate,
    AttendanceDay,
    DateRange,
    LeaveByDate,
    LeaveDay,
    PayMethod,
    PayrollPerson,
)
from clinic_payroll.calculators.units import attendance_units, effective_status
from clinic_payroll.models import (
    AttendanceRecord,
    ExternalLocum,
    LeaveRequest,
    LeaveType,
    StaffMember,
    person_key_for,
)

logger = logging.getLogger(__name__)


@dataclass
class PayrollSources:
    """Everything synchronization needs, keyed by person key."""

    people: list[PayrollPerson] = field(default_factory=list)
    attendance: dict[str, AttendanceByDate] = field(default_factory=dict)
    leave: dict[str, LeaveByDate] = field(default_factory=dict)

    def attendance_for(self, person_key: str) -> AttendanceByDate:
        return self.attendance.get(person_key, {})

    def leave_for(self, person_key: str) -> LeaveByDate:
        return self.leave.get(person_key, {})


class PayrollSourceLoader:
    """Fetches source records for one tenant and date range.

    All queries are tenant-scoped. Errors propagate to the caller so a failed
    fetch aborts the whole synchronization.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def load(self, tenant_id: UUID, date_range: DateRange) -> PayrollSources:
        staff = await self._get_active_staff(tenant_id)
        locums = await self._get_active_locums(tenant_id)
        attendance = await self._get_attendance(tenant_id, date_range)
        leave_types = await self._get_leave_type_map(tenant_id)
        leave_requests = await self._get_approved_leave(tenant_id, date_range)

        sources = PayrollSources()
        sources.people.extend(self._staff_to_person(member) for member in staff)
        sources.people.extend(self._locum_to_person(locum) for locum in locums)
        sources.attendance = self.build_attendance_maps(attendance)
        sources.leave = self.build_leave_maps(leave_requests, leave_types, date_range)

        logger.debug(
            "Loaded payroll sources for tenant %s (%s..%s): %d people, %d attendance, %d leave",
            tenant_id,
            date_range.start,
            date_range.end,
            len(sources.people),
            len(attendance),
            len(leave_requests),
        )
        return sources

    @staticmethod
    def build_attendance_maps(records: list[AttendanceRecord]) -> dict[str, AttendanceByDate]:
        """Group attendance records into per-person date maps."""
        maps: dict[str, AttendanceByDate] = {}
        for record in records:
            key = person_key_for(record.staff_id, record.locum_id)
            maps.setdefault(key, {})[record.work_date] = AttendanceDay(
                units=attendance_units(record.status, record.total_hours, record.locum_status),
                status=effective_status(record.status, record.locum_status),
                location_id=record.location_id,
            )
        return maps

    @staticmethod
    def build_leave_maps(
        requests: list[LeaveRequest],
        leave_types: dict[str, bool],
        date_range: DateRange,
    ) -> dict[str, LeaveByDate]:
        """Expand approved leave spans into per-person date maps.

        Days outside the range are dropped. When two requests cover the same
        day, the earlier-starting one is kept. Unknown leave types are paid.
        """
        maps: dict[str, LeaveByDate] = {}
        for request in sorted(requests, key=lambda r: (r.start_date, r.end_date)):
            key = person_key_for(staff_id=request.staff_id)
            entry = LeaveDay(
                units=HALF if request.is_half_day else ONE,
                is_paid=leave_types.get(request.leave_type, True),
                leave_type=request.leave_type,
            )
            span = DateRange(
                max(request.start_date, date_range.start),
                min(request.end_date, date_range.end),
            )
            person_leave = maps.setdefault(key, {})
            for day in span.days():
                person_leave.setdefault(day, entry)
        return maps

    async def _get_active_staff(self, tenant_id: UUID) -> list[StaffMember]:
        result = await self.session.execute(
            select(StaffMember)
            .where(StaffMember.tenant_id == tenant_id, StaffMember.is_active.is_(True))
            .order_by(StaffMember.first_name, StaffMember.last_name)
        )
        return list(result.scalars().all())

    async def _get_active_locums(self, tenant_id: UUID) -> list[ExternalLocum]:
        result = await self.session.execute(
            select(ExternalLocum)
            .where(ExternalLocum.tenant_id == tenant_id, ExternalLocum.is_active.is_(True))
            .order_by(ExternalLocum.name)
        )
        return list(result.scalars().all())

    async def _get_attendance(self, tenant_id: UUID, date_range: DateRange) -> list[AttendanceRecord]:
        result = await self.session.execute(
            select(AttendanceRecord)
            .where(
                AttendanceRecord.tenant_id == tenant_id,
                AttendanceRecord.work_date >= date_range.start,
                AttendanceRecord.work_date <= date_range.end,
            )
            .order_by(AttendanceRecord.work_date)
        )
        return list(result.scalars().all())

    async def _get_leave_type_map(self, tenant_id: UUID) -> dict[str, bool]:
        result = await self.session.execute(
            select(LeaveType.name, LeaveType.is_paid).where(LeaveType.tenant_id == tenant_id)
        )
        return {name: is_paid for name, is_paid in result.all()}

    async def _get_approved_leave(self, tenant_id: UUID, date_range: DateRange) -> list[LeaveRequest]:
        result = await self.session.execute(
            select(LeaveRequest).where(
                LeaveRequest.tenant_id == tenant_id,
                LeaveRequest.status == "approved",
                LeaveRequest.start_date <= date_range.end,
                LeaveRequest.end_date >= date_range.start,
            )
        )
        return list(result.scalars().all())

    @staticmethod
    def _staff_to_person(member: StaffMember) -> PayrollPerson:
        return PayrollPerson(
            staff_id=member.staff_id,
            locum_id=None,
            name=member.full_name,
            role=member.job_title,
            pay_method=PayMethod(member.pay_method),
            rate=member.pay_rate if member.pay_rate is not None else ZERO,
            home_location_id=member.home_location_id,
        )

    @staticmethod
    def _locum_to_person(locum: ExternalLocum) -> PayrollPerson:
        return PayrollPerson(
            staff_id=None,
            locum_id=locum.locum_id,
            name=locum.name,
            role=locum.role,
            pay_method=PayMethod.DAILY,
            rate=locum.daily_rate if locum.daily_rate is not None else ZERO,
        )
