"""Run synchronization: recompute payroll items from attendance and leave."""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_payroll.calculators.eligibility import select_scope
from clinic_payroll.calculators.pay import PayCalculator
from clinic_payroll.calculators.types import DateRange, PayrollPerson, UnitTotals
from clinic_payroll.calculators.units import compute_units
from clinic_payroll.config import get_settings
from clinic_payroll.database import dialect_insert
from clinic_payroll.models import (
    PayrollItem,
    PayrollRun,
    location_key_for,
    person_key_for,
)
from clinic_payroll.services.source_loader import PayrollSourceLoader, PayrollSources
from clinic_payroll.services.state_machine import PayrollRunStateMachine, PayrollRunStatus

logger = logging.getLogger(__name__)

# Columns recomputed on every sync. Operator-entered columns (allowances,
# allowances_amount, is_paid, paid_at, paid_by) are never overwritten here;
# gross_pay is recomputed in SQL from the stored allowances.
COMPUTED_COLUMNS = (
    "person_name",
    "role",
    "pay_method",
    "base_rate",
    "worked_units",
    "paid_leave_units",
    "unpaid_leave_units",
    "absent_units",
    "period_units",
    "payable_base",
    "breakdown",
)


class RunSynchronizer:
    """Get-or-create a payroll run and bring its items up to date.

    Steps (idempotent, safe to repeat):
    1. Atomically get-or-create the run by its natural key
    2. Return stored items untouched if the run is finalized
    3. Load staff, locums, attendance and leave for the tenant
    4. Per person: eligibility, units, payable base
    5. Upsert every item in one statement keyed by (run, person)
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.loader = PayrollSourceLoader(session)

    async def sync_run(
        self,
        tenant_id: UUID,
        location_id: UUID | None,
        date_range: DateRange,
    ) -> tuple[PayrollRun, list[PayrollItem]]:
        run = await self.get_or_create_run(tenant_id, location_id, date_range)

        if not PayrollRunStateMachine.can_sync(run.status):
            logger.debug("Run %s is %s; returning stored items", run.payroll_run_id, run.status)
            return run, await self.get_items(run.payroll_run_id)

        existing = {item.person_key: item for item in await self.get_items(run.payroll_run_id)}
        sources = await self.loader.load(tenant_id, date_range)

        payloads = self.build_payloads(run, sources, existing, date_range)
        if not await self._upsert_items(run, payloads):
            await self.session.refresh(run)
            logger.info("Run %s was finalized during sync; returning stored items", run.payroll_run_id)
            return run, await self.get_items(run.payroll_run_id)

        items = await self.get_items(run.payroll_run_id)
        logger.info(
            "Synchronized payroll run %s (%s, %s..%s): %d items",
            run.payroll_run_id,
            run.location_key,
            date_range.start,
            date_range.end,
            len(items),
        )
        return run, items

    async def get_or_create_run(
        self,
        tenant_id: UUID,
        location_id: UUID | None,
        date_range: DateRange,
    ) -> PayrollRun:
        """Insert-if-absent under the natural-key constraint, then read.

        The read locks the run row (PostgreSQL) so a concurrent finalize or
        item patch waits for this transaction.
        """
        location_key = location_key_for(location_id)

        stmt = (
            dialect_insert(self.session, PayrollRun)
            .values(
                payroll_run_id=uuid4(),
                tenant_id=tenant_id,
                location_id=location_id,
                location_key=location_key,
                start_date=date_range.start,
                end_date=date_range.end,
                status=PayrollRunStatus.DRAFT.value,
                month_units=get_settings().default_month_units,
            )
            .on_conflict_do_nothing(
                index_elements=["tenant_id", "location_key", "start_date", "end_date"]
            )
        )
        await self.session.execute(stmt)

        result = await self.session.execute(
            select(PayrollRun)
            .where(
                PayrollRun.tenant_id == tenant_id,
                PayrollRun.location_key == location_key,
                PayrollRun.start_date == date_range.start,
                PayrollRun.end_date == date_range.end,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def get_items(self, payroll_run_id: UUID) -> list[PayrollItem]:
        result = await self.session.execute(
            select(PayrollItem)
            .where(PayrollItem.payroll_run_id == payroll_run_id)
            .order_by(PayrollItem.pay_method, PayrollItem.person_name)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    def build_payloads(
        self,
        run: PayrollRun,
        sources: PayrollSources,
        existing: dict[str, PayrollItem],
        date_range: DateRange,
    ) -> list[dict[str, Any]]:
        """Compute one upsert payload per eligible person."""
        payloads: list[dict[str, Any]] = []

        for person in sources.people:
            key = person_key_for(person.staff_id, person.locum_id)
            previous = existing.get(key)

            decision = select_scope(
                person,
                person.pay_method,
                run.location_id,
                sources.attendance_for(key),
                has_existing_item=previous is not None,
            )
            if not decision.include and previous is None:
                continue

            # Locums are not leave-eligible
            leave = {} if person.is_locum else sources.leave_for(key)
            units = compute_units(decision.scoped_attendance, leave, date_range)
            payloads.append(self._build_payload(run, key, person, units, previous))

        return payloads

    def _build_payload(
        self,
        run: PayrollRun,
        person_key: str,
        person: PayrollPerson,
        units: UnitTotals,
        previous: PayrollItem | None,
    ) -> dict[str, Any]:
        pay_method = person.pay_method
        payable_base = PayCalculator.compute_base(
            pay_method,
            person.rate,
            units,
            run.month_units,
            is_locum=person.is_locum,
        )

        # Carry operator-entered fields forward unchanged
        allowances = list(previous.allowances) if previous is not None else []
        allowances_amount = PayCalculator.sum_allowances(allowances)

        return {
            "payroll_item_id": previous.payroll_item_id if previous is not None else uuid4(),
            "payroll_run_id": run.payroll_run_id,
            "person_key": person_key,
            "staff_id": person.staff_id,
            "locum_id": person.locum_id,
            "person_name": person.name,
            "role": person.role,
            "pay_method": pay_method.value,
            "base_rate": person.rate,
            "worked_units": units.worked,
            "paid_leave_units": units.paid_leave,
            "unpaid_leave_units": units.unpaid_leave,
            "absent_units": units.absent,
            "period_units": run.month_units,
            "payable_base": payable_base,
            "breakdown": {name: float(value) for name, value in sorted(units.breakdown.items())},
            "allowances": allowances,
            "allowances_amount": allowances_amount,
            "is_paid": previous.is_paid if previous is not None else False,
            "paid_at": previous.paid_at if previous is not None else None,
            "paid_by": previous.paid_by if previous is not None else None,
            "gross_pay": PayCalculator.compute_gross(payable_base, allowances_amount),
        }

    async def _upsert_items(self, run: PayrollRun, payloads: list[dict[str, Any]]) -> bool:
        """Single batched write; the only mutation point of a sync.

        Returns False without writing when the run is no longer a draft. The
        status re-check is itself a write, so it serializes with finalize on
        both PostgreSQL (row lock) and SQLite (database lock).
        """
        result = await self.session.execute(
            update(PayrollRun)
            .where(
                PayrollRun.payroll_run_id == run.payroll_run_id,
                PayrollRun.status == PayrollRunStatus.DRAFT.value,
            )
            .values(updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return False
        if not payloads:
            return True

        stmt = dialect_insert(self.session, PayrollItem).values(payloads)
        stmt = stmt.on_conflict_do_update(
            index_elements=["payroll_run_id", "person_key"],
            set_={
                **{column: stmt.excluded[column] for column in COMPUTED_COLUMNS},
                # Against the stored allowances, which a concurrent patch may have changed
                "gross_pay": func.round(
                    stmt.excluded.payable_base + PayrollItem.__table__.c.allowances_amount
                ),
                "updated_at": func.now(),
            },
        )
        await self.session.execute(stmt)
        return True
