"""Payroll run service - lifecycle, item edits and export."""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, Mapping
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_payroll.calculators.pay import PayCalculator
from clinic_payroll.calculators.types import ZERO, PayMethod
from clinic_payroll.models import PayrollItem, PayrollRun
from clinic_payroll.services.state_machine import (
    InvalidTransitionError,
    PayrollRunStateMachine,
    PayrollRunStatus,
)

logger = logging.getLogger(__name__)


class RunNotFoundError(Exception):
    """Raised when a payroll run does not exist for the tenant."""

    def __init__(self, payroll_run_id: UUID):
        self.payroll_run_id = payroll_run_id
        super().__init__(f"Payroll run {payroll_run_id} not found")


class ItemNotFoundError(Exception):
    """Raised when a payroll item does not exist for the tenant."""

    def __init__(self, payroll_item_id: UUID):
        self.payroll_item_id = payroll_item_id
        super().__init__(f"Payroll item {payroll_item_id} not found")


class RunFinalizedError(Exception):
    """Raised when an edit targets a finalized run."""

    def __init__(self, payroll_run_id: UUID, action: str):
        self.payroll_run_id = payroll_run_id
        self.action = action
        super().__init__(f"Cannot {action}: payroll run {payroll_run_id} is finalized")


@dataclass
class RunTotals:
    """Aggregate amounts across a run's items."""

    item_count: int = 0
    paid_count: int = 0
    total_payable_base: Decimal = ZERO
    total_allowances: Decimal = ZERO
    total_gross: Decimal = ZERO


EXPORT_HEADER = [
    "Staff",
    "Role",
    "DaysWorked",
    "PaidUnits",
    "MonthUnits",
    "Rate",
    "PayMethod",
    "BaseGross",
    "AllowancesTotal",
    "TotalGross",
    "Status",
    "PaidDate",
    "MarkedPaidBy",
]


class PayrollRunService:
    """Service for payroll run lifecycle and operator edits.

    Operations:
    - patch_run: change month units or the "marked by" display name
    - patch_item: edit allowances and/or the paid flag of one item
    - finalize_run: draft → finalized, optionally marking all items paid
    - export_csv: render a run's items as CSV

    Every lookup is tenant-scoped; rows of other tenants read as not found.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_run(
        self, tenant_id: UUID, payroll_run_id: UUID, for_update: bool = False
    ) -> PayrollRun:
        stmt = select(PayrollRun).where(
            PayrollRun.payroll_run_id == payroll_run_id,
            PayrollRun.tenant_id == tenant_id,
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        run = result.scalar_one_or_none()
        if run is None:
            raise RunNotFoundError(payroll_run_id)
        return run

    async def get_items(self, payroll_run_id: UUID) -> list[PayrollItem]:
        result = await self.session.execute(
            select(PayrollItem)
            .where(PayrollItem.payroll_run_id == payroll_run_id)
            .order_by(PayrollItem.pay_method, PayrollItem.person_name)
        )
        return list(result.scalars().all())

    async def get_item(self, tenant_id: UUID, payroll_item_id: UUID) -> tuple[PayrollItem, PayrollRun]:
        result = await self.session.execute(
            select(PayrollItem, PayrollRun)
            .join(PayrollRun, PayrollItem.payroll_run_id == PayrollRun.payroll_run_id)
            .where(
                PayrollItem.payroll_item_id == payroll_item_id,
                PayrollRun.tenant_id == tenant_id,
            )
            .with_for_update(of=PayrollRun)
            .execution_options(populate_existing=True)
        )
        row = result.one_or_none()
        if row is None:
            raise ItemNotFoundError(payroll_item_id)
        return row[0], row[1]

    async def patch_run(
        self,
        tenant_id: UUID,
        payroll_run_id: UUID,
        month_units: int | None = None,
        marked_by_name: str | None = None,
    ) -> PayrollRun:
        """Update run settings. Month units take effect on the next sync."""
        run = await self.get_run(tenant_id, payroll_run_id, for_update=True)
        if not PayrollRunStateMachine.can_edit(run.status):
            raise RunFinalizedError(payroll_run_id, "update run settings")

        if month_units is not None:
            if month_units <= 0:
                raise ValueError("month_units must be positive")
            run.month_units = month_units
        if marked_by_name is not None:
            run.marked_by_name = marked_by_name.strip() or None

        await self.session.flush()
        return run

    async def patch_item(
        self,
        tenant_id: UUID,
        payroll_item_id: UUID,
        actor: str | None = None,
        allowances: Iterable[Mapping[str, Any]] | None = None,
        is_paid: bool | None = None,
        paid_by: str | None = None,
    ) -> PayrollItem:
        """Edit allowances and/or payment status of one item.

        Gross is recomputed from the stored payable base; units and the base
        itself are left untouched.
        """
        item, run = await self.get_item(tenant_id, payroll_item_id)
        if not PayrollRunStateMachine.can_edit(run.status):
            raise RunFinalizedError(run.payroll_run_id, "edit payroll item")

        if allowances is not None:
            normalized = normalize_allowances(allowances)
            item.allowances = normalized
            item.allowances_amount = PayCalculator.sum_allowances(normalized)
            item.gross_pay = PayCalculator.compute_gross(item.payable_base, item.allowances_amount)

        if is_paid is not None:
            self._set_paid(item, is_paid, paid_by or run.marked_by_name or actor)

        await self.session.flush()
        return item

    async def finalize_run(
        self,
        tenant_id: UUID,
        payroll_run_id: UUID,
        actor: str | None = None,
        mark_all_paid: bool = True,
    ) -> PayrollRun:
        """Finalize a draft run. Irreversible.

        Unpaid items are marked paid first unless ``mark_all_paid`` is off.
        The status flip is a conditional update so a concurrent finalize
        cannot stamp the run twice.
        """
        run = await self.get_run(tenant_id, payroll_run_id, for_update=True)
        PayrollRunStateMachine.validate_transition(run.status, PayrollRunStatus.FINALIZED)

        if mark_all_paid:
            paid_by = run.marked_by_name or actor
            for item in await self.get_items(payroll_run_id):
                if not item.is_paid:
                    self._set_paid(item, True, paid_by)
            await self.session.flush()

        finalized_at = datetime.now(timezone.utc)
        result = await self.session.execute(
            update(PayrollRun)
            .where(
                PayrollRun.payroll_run_id == payroll_run_id,
                PayrollRun.status == PayrollRunStatus.DRAFT.value,
            )
            .values(
                status=PayrollRunStatus.FINALIZED.value,
                finalized_at=finalized_at,
                finalized_by=actor,
            )
        )
        await self.session.refresh(run)
        if result.rowcount == 0:
            raise InvalidTransitionError(
                run.status,
                PayrollRunStatus.FINALIZED.value,
                "Status changed during finalize",
            )

        logger.info("Finalized payroll run %s by %s", payroll_run_id, actor)
        return run

    async def export_csv(self, tenant_id: UUID, payroll_run_id: UUID) -> str:
        """Render the run's items as CSV, one row per person."""
        await self.get_run(tenant_id, payroll_run_id)
        items = await self.get_items(payroll_run_id)

        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
        writer.writerow(EXPORT_HEADER)
        for item in items:
            writer.writerow([
                item.person_name,
                item.role or "",
                item.worked_units,
                item.worked_units + item.paid_leave_units,
                item.period_units,
                item.base_rate,
                item.pay_method,
                PayCalculator.round_to_unit(item.payable_base),
                item.allowances_amount,
                item.gross_pay,
                "Paid" if item.is_paid else "Unpaid",
                item.paid_at.date().isoformat() if item.paid_at else "-",
                item.paid_by or "-",
            ])
        return buffer.getvalue()

    @staticmethod
    def _set_paid(item: PayrollItem, is_paid: bool, paid_by: str | None) -> None:
        item.is_paid = is_paid
        if is_paid:
            item.paid_at = datetime.now(timezone.utc)
            item.paid_by = paid_by
        else:
            item.paid_at = None
            item.paid_by = None


def normalize_allowances(allowances: Iterable[Mapping[str, Any]]) -> list[dict[str, str]]:
    """Store allowances as ordered {label, amount} pairs with string amounts."""
    normalized = []
    for allowance in allowances:
        raw = allowance.get("amount")
        amount = ZERO if raw in (None, "") else Decimal(str(raw))
        normalized.append({
            "label": str(allowance.get("label") or ""),
            "amount": str(amount.quantize(PayCalculator.ALLOWANCE_PRECISION)),
        })
    return normalized


def summarize_items(items: Iterable[PayrollItem], pay_type: str | None = None) -> RunTotals:
    """Totals across items, optionally limited to salaried or daily items."""
    totals = RunTotals()
    for item in filter_items(items, pay_type):
        totals.item_count += 1
        totals.paid_count += int(item.is_paid)
        totals.total_payable_base += item.payable_base
        totals.total_allowances += item.allowances_amount
        totals.total_gross += item.gross_pay
    return totals


def filter_items(items: Iterable[PayrollItem], pay_type: str | None) -> list[PayrollItem]:
    """Filter by pay type: "salaried" (fixed/prorated), "daily", or all."""
    if pay_type in (None, "", "all"):
        return list(items)
    if pay_type == "salaried":
        return [i for i in items if PayMethod(i.pay_method).is_salaried]
    if pay_type == "daily":
        return [i for i in items if not PayMethod(i.pay_method).is_salaried]
    raise ValueError(f"Unknown pay type filter: {pay_type}")
