"""Pytest fixtures for clinic payroll tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from clinic_payroll.models import (
    AttendanceRecord,
    Base,
    ExternalLocum,
    LeaveRequest,
    LeaveType,
    Location,
    StaffMember,
    Tenant,
)


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Create a fresh file-backed test database per test.

    A file (not :memory:) gives each session its own connection, as with
    Postgres.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'payroll.db'}",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def tenant(session: AsyncSession) -> Tenant:
    """Create a committed test tenant."""
    tenant = Tenant(tenant_id=uuid4(), name="Riverside Clinic", status="active")
    session.add(tenant)
    await session.commit()
    return tenant


@pytest_asyncio.fixture
async def locations(session: AsyncSession, tenant: Tenant) -> dict[str, Location]:
    """Two branches: north and south."""
    north = Location(location_id=uuid4(), tenant_id=tenant.tenant_id, name="North")
    south = Location(location_id=uuid4(), tenant_id=tenant.tenant_id, name="South")
    session.add_all([north, south])
    await session.commit()
    return {"north": north, "south": south}


@pytest.fixture
def make_staff(session: AsyncSession, tenant: Tenant) -> Callable[..., Any]:
    """Factory for committed staff members."""

    async def _make(
        first_name: str,
        pay_method: str = "fixed",
        pay_rate: str | None = "9000",
        home_location_id: UUID | None = None,
        job_title: str | None = "Nurse",
        is_active: bool = True,
    ) -> StaffMember:
        member = StaffMember(
            staff_id=uuid4(),
            tenant_id=tenant.tenant_id,
            first_name=first_name,
            last_name="Test",
            job_title=job_title,
            pay_method=pay_method,
            pay_rate=Decimal(pay_rate) if pay_rate is not None else None,
            home_location_id=home_location_id,
            is_active=is_active,
        )
        session.add(member)
        await session.commit()
        return member

    return _make


@pytest.fixture
def make_locum(session: AsyncSession, tenant: Tenant) -> Callable[..., Any]:
    """Factory for committed external locums."""

    async def _make(name: str, daily_rate: str = "1000", role: str = "Locum GP") -> ExternalLocum:
        locum = ExternalLocum(
            locum_id=uuid4(),
            tenant_id=tenant.tenant_id,
            name=name,
            role=role,
            daily_rate=Decimal(daily_rate),
        )
        session.add(locum)
        await session.commit()
        return locum

    return _make


@pytest.fixture
def add_attendance(session: AsyncSession, tenant: Tenant) -> Callable[..., Any]:
    """Factory for committed attendance records."""

    async def _add(
        work_date: date,
        staff: StaffMember | None = None,
        locum: ExternalLocum | None = None,
        status: str | None = "present_full",
        hours: str = "8",
        location_id: UUID | None = None,
        locum_status: str | None = None,
    ) -> AttendanceRecord:
        record = AttendanceRecord(
            attendance_id=uuid4(),
            tenant_id=tenant.tenant_id,
            staff_id=staff.staff_id if staff is not None else None,
            locum_id=locum.locum_id if locum is not None else None,
            work_date=work_date,
            total_hours=Decimal(hours),
            status=status,
            locum_status=locum_status,
            location_id=location_id,
        )
        session.add(record)
        await session.commit()
        return record

    return _add


@pytest.fixture
def add_leave(session: AsyncSession, tenant: Tenant) -> Callable[..., Any]:
    """Factory for committed leave requests (approved by default)."""

    async def _add(
        staff: StaffMember,
        start_date: date,
        end_date: date,
        leave_type: str = "Annual",
        status: str = "approved",
        is_half_day: bool = False,
    ) -> LeaveRequest:
        request = LeaveRequest(
            leave_request_id=uuid4(),
            tenant_id=tenant.tenant_id,
            staff_id=staff.staff_id,
            leave_type=leave_type,
            start_date=start_date,
            end_date=end_date,
            status=status,
            is_half_day=is_half_day,
        )
        session.add(request)
        await session.commit()
        return request

    return _add


@pytest_asyncio.fixture
async def leave_types(session: AsyncSession, tenant: Tenant) -> dict[str, LeaveType]:
    """Paid annual leave and unpaid leave."""
    annual = LeaveType(tenant_id=tenant.tenant_id, name="Annual", is_paid=True)
    unpaid = LeaveType(tenant_id=tenant.tenant_id, name="Unpaid", is_paid=False)
    session.add_all([annual, unpaid])
    await session.commit()
    return {"Annual": annual, "Unpaid": unpaid}
