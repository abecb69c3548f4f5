"""Payroll API endpoints."""

from datetime import date
from typing import Annotated, Literal
from uuid import UUID

from fastapi import APIRouter, HTTPException, Path, Query, status
from fastapi.responses import Response

from clinic_payroll.api.dependencies import Actor, DbSession, TenantId
from clinic_payroll.api.schemas import (
    ErrorResponse,
    FinalizeRequest,
    ItemPatchRequest,
    PayrollItemResponse,
    PayrollResponse,
    PayrollRunResponse,
    PayrollTotals,
    RunPatchRequest,
)
from clinic_payroll.calculators.types import DateRange
from clinic_payroll.services.payroll_run_service import (
    ItemNotFoundError,
    PayrollRunService,
    RunFinalizedError,
    RunNotFoundError,
    filter_items,
    summarize_items,
)
from clinic_payroll.services.state_machine import InvalidTransitionError
from clinic_payroll.services.sync_service import RunSynchronizer

router = APIRouter(prefix="/payroll", tags=["payroll"])

ALL_LOCATIONS = "all"


def _parse_date(value: str | None, name: str) -> date:
    if not value:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="startDate and endDate required",
        )
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {name}: expected YYYY-MM-DD",
        )


def _parse_location(value: str | None) -> UUID | None:
    if not value or value == ALL_LOCATIONS:
        return None
    try:
        return UUID(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid locationId format",
        )


# ============================================================================
# Synchronized payroll view
# ============================================================================


@router.get(
    "",
    response_model=PayrollResponse,
    responses={400: {"model": ErrorResponse}},
)
async def get_payroll(
    db: DbSession,
    tenant_id: TenantId,
    start_date: Annotated[str | None, Query(alias="startDate")] = None,
    end_date: Annotated[str | None, Query(alias="endDate")] = None,
    location_id: Annotated[str | None, Query(alias="locationId")] = None,
    pay_type: Annotated[Literal["salaried", "daily", "all"], Query(alias="payType")] = "all",
) -> PayrollResponse:
    """Get-or-create the run for the period and synchronize it.

    A finalized run is returned as stored.
    """
    start = _parse_date(start_date, "startDate")
    end = _parse_date(end_date, "endDate")
    if end < start:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="endDate must not be before startDate",
        )
    location = _parse_location(location_id)

    synchronizer = RunSynchronizer(db)
    run, items = await synchronizer.sync_run(tenant_id, location, DateRange(start, end))
    await db.commit()

    visible = filter_items(items, pay_type)
    return PayrollResponse(
        run=PayrollRunResponse.model_validate(run),
        items=[PayrollItemResponse.from_item(item) for item in visible],
        totals=PayrollTotals.model_validate(summarize_items(visible)),
    )


# ============================================================================
# Run lifecycle
# ============================================================================


@router.patch(
    "/runs/{run_id}",
    response_model=PayrollRunResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def patch_run(
    db: DbSession,
    tenant_id: TenantId,
    run_id: Annotated[UUID, Path()],
    payload: RunPatchRequest,
) -> PayrollRunResponse:
    """Update month units and/or the "marked by" name of a draft run."""
    service = PayrollRunService(db)
    try:
        run = await service.patch_run(
            tenant_id,
            run_id,
            month_units=payload.month_units,
            marked_by_name=payload.marked_by_name,
        )
    except RunNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except RunFinalizedError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    await db.commit()
    await db.refresh(run)
    return PayrollRunResponse.model_validate(run)


@router.post(
    "/runs/{run_id}/finalize",
    response_model=PayrollRunResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def finalize_run(
    db: DbSession,
    tenant_id: TenantId,
    actor: Actor,
    run_id: Annotated[UUID, Path()],
    payload: FinalizeRequest | None = None,
) -> PayrollRunResponse:
    """Finalize a run. Irreversible; later syncs return the stored items."""
    mark_all_paid = payload.mark_all_paid if payload is not None else True

    service = PayrollRunService(db)
    try:
        run = await service.finalize_run(tenant_id, run_id, actor=actor, mark_all_paid=mark_all_paid)
    except RunNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except InvalidTransitionError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    await db.commit()
    return PayrollRunResponse.model_validate(run)


@router.get(
    "/runs/{run_id}/export",
    response_class=Response,
    responses={404: {"model": ErrorResponse}},
)
async def export_run(
    db: DbSession,
    tenant_id: TenantId,
    run_id: Annotated[UUID, Path()],
) -> Response:
    """Download the run's items as CSV."""
    service = PayrollRunService(db)
    try:
        run = await service.get_run(tenant_id, run_id)
        content = await service.export_csv(tenant_id, run_id)
    except RunNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    filename = f"payroll-{run.start_date.isoformat()}-{run.end_date.isoformat()}.csv"
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ============================================================================
# Item edits
# ============================================================================


@router.patch(
    "/items/{item_id}",
    response_model=PayrollItemResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def patch_item(
    db: DbSession,
    tenant_id: TenantId,
    actor: Actor,
    item_id: Annotated[UUID, Path()],
    payload: ItemPatchRequest,
) -> PayrollItemResponse:
    """Edit allowances and/or paid status; gross follows the stored base."""
    allowances = (
        [entry.model_dump() for entry in payload.allowances]
        if payload.allowances is not None
        else None
    )

    service = PayrollRunService(db)
    try:
        item = await service.patch_item(
            tenant_id,
            item_id,
            actor=actor,
            allowances=allowances,
            is_paid=payload.is_paid,
            paid_by=payload.paid_by,
        )
    except ItemNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except RunFinalizedError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    await db.commit()
    await db.refresh(item)
    return PayrollItemResponse.from_item(item)
