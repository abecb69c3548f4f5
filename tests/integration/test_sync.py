"""Run synchronization against a real database."""

import asyncio
from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError

from clinic_payroll.calculators.types import DateRange
from clinic_payroll.models import AttendanceRecord, PayrollItem, PayrollRun, StaffMember, Tenant
from clinic_payroll.services.payroll_run_service import PayrollRunService
from clinic_payroll.services.sync_service import RunSynchronizer

pytestmark = pytest.mark.integration

JAN = DateRange(date(2024, 1, 1), date(2024, 1, 30))


def _day(n: int) -> date:
    return JAN.start + timedelta(days=n - 1)


def _by_name(items):
    return {item.person_name: item for item in items}


async def _sync(session, tenant, location_id=None, date_range=JAN):
    run, items = await RunSynchronizer(session).sync_run(tenant.tenant_id, location_id, date_range)
    await session.commit()
    return run, items


class TestSyncBasics:
    """Items reflect attendance, leave and pay profiles."""

    async def test_creates_draft_run_with_default_month_units(self, session, tenant):
        run, items = await _sync(session, tenant)

        assert run.status == "draft"
        assert run.month_units == 30
        assert run.location_key == "global"
        assert items == []

    async def test_prorated_three_days(self, session, tenant, make_staff, add_attendance):
        staff = await make_staff("Prorated", pay_method="prorated", pay_rate="9000")
        for n in (1, 2, 3):
            await add_attendance(_day(n), staff=staff)

        _, items = await _sync(session, tenant)

        item = items[0]
        assert item.worked_units == Decimal("3")
        assert item.payable_base == Decimal("900")
        assert item.gross_pay == Decimal("900")
        assert item.period_units == 30

    async def test_fixed_paid_in_full_with_no_attendance(self, session, tenant, make_staff):
        await make_staff("Fixed", pay_method="fixed", pay_rate="9000")

        _, items = await _sync(session, tenant)

        assert items[0].gross_pay == Decimal("9000")
        assert items[0].worked_units == 0

    async def test_daily_counts_paid_leave(
        self, session, tenant, make_staff, add_attendance, add_leave, leave_types
    ):
        staff = await make_staff("Daily", pay_method="daily", pay_rate="500")
        await add_attendance(_day(1), staff=staff)
        await add_attendance(_day(2), staff=staff, status="present_partial", hours="2")
        await add_leave(staff, _day(3), _day(3), leave_type="Annual")
        await add_leave(staff, _day(4), _day(4), leave_type="Unpaid")

        _, items = await _sync(session, tenant)

        item = items[0]
        assert item.worked_units == Decimal("1.5")
        assert item.paid_leave_units == Decimal("1")
        assert item.unpaid_leave_units == Decimal("1")
        assert item.payable_base == Decimal("1250")
        assert item.breakdown == {"Annual": 1.0, "Unpaid": 1.0}

    async def test_locum_paid_for_worked_days(self, session, tenant, make_locum, add_attendance):
        locum = await make_locum("Dr Locum", daily_rate="1000")
        await add_attendance(_day(1), locum=locum, status=None, locum_status="WORKED", hours="8")
        await add_attendance(_day(2), locum=locum, status=None, locum_status="WORKED", hours="7")
        await add_attendance(_day(3), locum=locum, status=None, locum_status="NO_SHOW", hours="0")

        _, items = await _sync(session, tenant)

        item = items[0]
        assert item.locum_id == locum.locum_id
        assert item.pay_method == "daily"
        assert item.worked_units == Decimal("2")
        assert item.absent_units == Decimal("1")
        assert item.gross_pay == Decimal("2000")

    async def test_leave_rules(self, session, tenant, make_staff, add_leave, leave_types):
        staff = await make_staff("Leaver", pay_method="prorated", pay_rate="3000")
        # Spans past the end of the range; only in-range days count
        await add_leave(staff, date(2024, 1, 29), date(2024, 2, 5), leave_type="Annual")
        # Overlaps the later request on day 29; the earlier start wins
        await add_leave(staff, date(2024, 1, 28), date(2024, 1, 29), leave_type="Unpaid")
        # Unknown types are paid
        await add_leave(staff, _day(5), _day(5), leave_type="Conference")
        # Not approved
        await add_leave(staff, _day(10), _day(12), status="pending")
        # Half day
        await add_leave(staff, _day(15), _day(15), is_half_day=True)

        _, items = await _sync(session, tenant)

        item = items[0]
        assert item.unpaid_leave_units == Decimal("2")
        assert item.paid_leave_units == Decimal("2.5")
        assert item.breakdown == {"Annual": 1.5, "Conference": 1.0, "Unpaid": 2.0}

    async def test_absence_only_from_explicit_records(self, session, tenant, make_staff, add_attendance):
        staff = await make_staff("Absent", pay_method="prorated")
        await add_attendance(_day(1), staff=staff, status="absent", hours="0")

        _, items = await _sync(session, tenant)

        assert items[0].absent_units == Decimal("1")

    async def test_inactive_staff_excluded(self, session, tenant, make_staff):
        await make_staff("Active")
        await make_staff("Gone", is_active=False)

        _, items = await _sync(session, tenant)

        assert [item.person_name for item in items] == ["Active Test"]

    async def test_other_tenants_data_ignored(self, session, tenant, make_staff):
        other = Tenant(tenant_id=uuid4(), name="Other Clinic")
        session.add(other)
        await session.commit()
        session.add(StaffMember(tenant_id=other.tenant_id, first_name="Stranger", pay_method="fixed"))
        await session.commit()
        await make_staff("Ours")

        _, items = await _sync(session, tenant)

        assert [item.person_name for item in items] == ["Ours Test"]


class TestSyncIdempotence:
    """Repeated syncs converge to the same state."""

    async def test_resync_is_idempotent(self, session, tenant, make_staff, add_attendance):
        staff = await make_staff("Steady", pay_method="prorated")
        await add_attendance(_day(1), staff=staff)

        run1, items1 = await _sync(session, tenant)
        snapshot = {i.payroll_item_id: (i.worked_units, i.payable_base, i.gross_pay) for i in items1}
        run2, items2 = await _sync(session, tenant)

        assert run1.payroll_run_id == run2.payroll_run_id
        assert {i.payroll_item_id: (i.worked_units, i.payable_base, i.gross_pay) for i in items2} == snapshot

        count = await session.scalar(select(func.count()).select_from(PayrollRun))
        assert count == 1

    async def test_resync_picks_up_new_attendance(self, session, tenant, make_staff, add_attendance):
        staff = await make_staff("Growing", pay_method="daily", pay_rate="100")
        await add_attendance(_day(1), staff=staff)
        _, items = await _sync(session, tenant)
        item_id = items[0].payroll_item_id

        await add_attendance(_day(2), staff=staff)
        _, items = await _sync(session, tenant)

        assert items[0].payroll_item_id == item_id
        assert items[0].worked_units == Decimal("2")
        assert items[0].gross_pay == Decimal("200")

    async def test_allowances_and_paid_flag_survive_resync(
        self, session, tenant, make_staff, add_attendance
    ):
        staff = await make_staff("Allowance", pay_method="daily", pay_rate="100")
        await add_attendance(_day(1), staff=staff)
        _, items = await _sync(session, tenant)

        service = PayrollRunService(session)
        await service.patch_item(
            tenant.tenant_id,
            items[0].payroll_item_id,
            actor="user-1",
            allowances=[{"label": "Transport", "amount": "50"}],
            is_paid=True,
        )
        await session.commit()

        await add_attendance(_day(2), staff=staff)
        _, items = await _sync(session, tenant)

        item = items[0]
        assert item.allowances == [{"label": "Transport", "amount": "50.00"}]
        assert item.allowances_amount == Decimal("50")
        assert item.is_paid is True
        assert item.paid_by == "user-1"
        assert item.gross_pay == Decimal("250")

    async def test_month_units_change_applies_on_next_sync(
        self, session, tenant, make_staff, add_attendance
    ):
        staff = await make_staff("Prorate", pay_method="prorated", pay_rate="3100")
        await add_attendance(_day(1), staff=staff)
        run, _ = await _sync(session, tenant)

        await PayrollRunService(session).patch_run(tenant.tenant_id, run.payroll_run_id, month_units=31)
        await session.commit()
        _, items = await _sync(session, tenant)

        assert items[0].period_units == 31
        assert items[0].payable_base == Decimal("100")

    async def test_concurrent_first_sync_creates_one_run(self, session_factory, tenant):
        async def first_sync():
            async with session_factory() as s:
                run = await RunSynchronizer(s).get_or_create_run(tenant.tenant_id, None, JAN)
                await s.commit()
                return run.payroll_run_id

        ids = await asyncio.gather(first_sync(), first_sync())

        assert ids[0] == ids[1]
        async with session_factory() as s:
            count = await s.scalar(select(func.count()).select_from(PayrollRun))
        assert count == 1

    async def test_distinct_ranges_get_distinct_runs(self, session, tenant):
        run1, _ = await _sync(session, tenant)
        run2, _ = await _sync(session, tenant, date_range=DateRange(date(2024, 2, 1), date(2024, 2, 29)))

        assert run1.payroll_run_id != run2.payroll_run_id


class TestLocationScope:
    """Location-scoped runs pay salaried staff once, daily staff per site."""

    async def test_salaried_included_only_at_home(
        self, session, tenant, locations, make_staff, add_attendance
    ):
        north, south = locations["north"].location_id, locations["south"].location_id
        staff = await make_staff("Salaried", pay_method="prorated", pay_rate="3000", home_location_id=north)
        await add_attendance(_day(1), staff=staff, location_id=north)
        await add_attendance(_day(2), staff=staff, location_id=south)

        north_run, north_items = await _sync(session, tenant, location_id=north)
        south_run, south_items = await _sync(session, tenant, location_id=south)

        assert north_run.location_key == str(north)
        assert north_run.payroll_run_id != south_run.payroll_run_id
        # Credited for both sites at home
        assert north_items[0].worked_units == Decimal("2")
        assert south_items == []

    async def test_daily_split_by_site(self, session, tenant, locations, make_staff, add_attendance):
        north, south = locations["north"].location_id, locations["south"].location_id
        staff = await make_staff("Roamer", pay_method="daily", pay_rate="100", home_location_id=north)
        await add_attendance(_day(1), staff=staff, location_id=north)
        await add_attendance(_day(2), staff=staff, location_id=south)
        await add_attendance(_day(3), staff=staff, location_id=south)

        _, north_items = await _sync(session, tenant, location_id=north)
        _, south_items = await _sync(session, tenant, location_id=south)

        assert north_items[0].worked_units == Decimal("1")
        assert south_items[0].worked_units == Decimal("2")

    async def test_daily_item_kept_after_attendance_removed(
        self, session, tenant, locations, make_staff, add_attendance
    ):
        south = locations["south"].location_id
        staff = await make_staff("Moved", pay_method="daily", pay_rate="100")
        record = await add_attendance(_day(1), staff=staff, location_id=south)
        _, items = await _sync(session, tenant, location_id=south)
        assert len(items) == 1

        await session.execute(
            delete(AttendanceRecord).where(AttendanceRecord.attendance_id == record.attendance_id)
        )
        await session.commit()
        _, items = await _sync(session, tenant, location_id=south)

        assert len(items) == 1
        assert items[0].worked_units == 0
        assert items[0].gross_pay == 0

    async def test_global_and_scoped_runs_are_separate(self, session, tenant, locations, make_staff):
        north = locations["north"].location_id
        await make_staff("Home", home_location_id=north)

        global_run, _ = await _sync(session, tenant)
        north_run, _ = await _sync(session, tenant, location_id=north)

        assert global_run.payroll_run_id != north_run.payroll_run_id
        items = (await session.execute(select(PayrollItem))).scalars().all()
        assert len(items) == 2


class TestConcurrentWrites:
    """Writes committed by other sessions while a sync is in flight.

    SQLite holds a database-wide write lock, so the in-flight sync commits
    after its reads to let the other session write. On PostgreSQL the run
    row lock makes the other writer wait instead.
    """

    async def _begin_sync(self, synchronizer, tenant):
        run = await synchronizer.get_or_create_run(tenant.tenant_id, None, JAN)
        existing = {i.person_key: i for i in await synchronizer.get_items(run.payroll_run_id)}
        await synchronizer.session.commit()
        return run, existing

    async def _finish_sync(self, synchronizer, tenant, run, existing):
        sources = await synchronizer.loader.load(tenant.tenant_id, JAN)
        payloads = synchronizer.build_payloads(run, sources, existing, JAN)
        written = await synchronizer._upsert_items(run, payloads)
        await synchronizer.session.commit()
        return written

    async def test_finalize_during_sync_freezes_items(
        self, session, session_factory, tenant, make_staff, add_attendance
    ):
        staff = await make_staff("Racer", pay_method="daily", pay_rate="100")
        await add_attendance(_day(1), staff=staff)
        await _sync(session, tenant)

        async with session_factory() as sync_session:
            synchronizer = RunSynchronizer(sync_session)
            run, existing = await self._begin_sync(synchronizer, tenant)

            async with session_factory() as other:
                await PayrollRunService(other).finalize_run(tenant.tenant_id, run.payroll_run_id)
                await other.commit()
            await add_attendance(_day(2), staff=staff)

            written = await self._finish_sync(synchronizer, tenant, run, existing)

        assert written is False
        async with session_factory() as check:
            items = await RunSynchronizer(check).get_items(run.payroll_run_id)
        assert items[0].worked_units == Decimal("1")
        assert items[0].gross_pay == Decimal("100")

    async def test_sync_returns_stored_items_when_finalized_underneath(
        self, session, session_factory, tenant, make_staff, add_attendance, monkeypatch
    ):
        staff = await make_staff("Racer", pay_method="daily", pay_rate="100")
        await add_attendance(_day(1), staff=staff)
        run, _ = await _sync(session, tenant)
        await add_attendance(_day(2), staff=staff)

        async def finalize_first(self, run, payloads):
            await self.session.execute(
                PayrollRun.__table__.update()
                .where(PayrollRun.payroll_run_id == run.payroll_run_id)
                .values(status="finalized")
            )
            return await original(self, run, payloads)

        original = RunSynchronizer._upsert_items
        monkeypatch.setattr(RunSynchronizer, "_upsert_items", finalize_first)

        async with session_factory() as sync_session:
            synced_run, items = await RunSynchronizer(sync_session).sync_run(tenant.tenant_id, None, JAN)
            await sync_session.commit()

        assert synced_run.status == "finalized"
        assert items[0].worked_units == Decimal("1")

    async def test_allowance_patch_during_sync_counts_in_gross(
        self, session, session_factory, tenant, make_staff
    ):
        await make_staff("Fixed", pay_method="fixed", pay_rate="1000")
        _, items = await _sync(session, tenant)
        item_id = items[0].payroll_item_id

        async with session_factory() as sync_session:
            synchronizer = RunSynchronizer(sync_session)
            run, existing = await self._begin_sync(synchronizer, tenant)

            async with session_factory() as other:
                await PayrollRunService(other).patch_item(
                    tenant.tenant_id, item_id, allowances=[{"label": "Bonus", "amount": "500"}]
                )
                await other.commit()

            written = await self._finish_sync(synchronizer, tenant, run, existing)

        assert written is True
        async with session_factory() as check:
            item = (await RunSynchronizer(check).get_items(run.payroll_run_id))[0]
        assert item.payable_base == Decimal("1000")
        assert item.allowances_amount == Decimal("500")
        assert item.gross_pay == Decimal("1500")


class TestFailedSync:
    """A sync that fails part-way leaves stored items as they were."""

    async def test_failed_upsert_rolls_back(
        self, session, session_factory, tenant, make_staff, add_attendance, monkeypatch
    ):
        staff = await make_staff("Stable", pay_method="daily", pay_rate="100")
        await add_attendance(_day(1), staff=staff)
        run, items = await _sync(session, tenant)
        await PayrollRunService(session).patch_item(
            tenant.tenant_id, items[0].payroll_item_id, allowances=[{"label": "Meals", "amount": "20"}]
        )
        await session.commit()
        await add_attendance(_day(2), staff=staff)

        original = RunSynchronizer.build_payloads

        def invalid_pay_method(self, *args, **kwargs):
            payloads = original(self, *args, **kwargs)
            for payload in payloads:
                payload["pay_method"] = "weekly"
            return payloads

        monkeypatch.setattr(RunSynchronizer, "build_payloads", invalid_pay_method)

        async with session_factory() as failing:
            with pytest.raises(IntegrityError):
                await RunSynchronizer(failing).sync_run(tenant.tenant_id, None, JAN)
            await failing.rollback()

        async with session_factory() as check:
            stored = await RunSynchronizer(check).get_items(run.payroll_run_id)
        assert len(stored) == 1
        assert stored[0].pay_method == "daily"
        assert stored[0].worked_units == Decimal("1")
        assert stored[0].payable_base == Decimal("100")
        assert stored[0].gross_pay == Decimal("120")
        assert stored[0].allowances == [{"label": "Meals", "amount": "20.00"}]
