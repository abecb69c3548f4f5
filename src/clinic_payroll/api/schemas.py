"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


# ============================================================================
# Payroll Run schemas
# ============================================================================


class PayrollRunResponse(BaseModel):
    """Schema for payroll run response."""

    model_config = ConfigDict(from_attributes=True)

    payroll_run_id: UUID
    tenant_id: UUID
    location_id: UUID | None = None
    start_date: date
    end_date: date
    status: str
    month_units: int
    marked_by_name: str | None = None
    finalized_at: datetime | None = None
    finalized_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class RunPatchRequest(BaseModel):
    """Schema for updating run settings."""

    month_units: int | None = Field(default=None, gt=0)
    marked_by_name: str | None = None


class FinalizeRequest(BaseModel):
    """Schema for finalizing a run."""

    mark_all_paid: bool = True


# ============================================================================
# Payroll Item schemas
# ============================================================================


class AllowanceEntry(BaseModel):
    """One operator-entered allowance line."""

    label: str = Field(default="", validation_alias=AliasChoices("label", "notes"))
    amount: Decimal = Decimal("0")


class PayrollItemResponse(BaseModel):
    """Schema for payroll item response."""

    model_config = ConfigDict(from_attributes=True)

    payroll_item_id: UUID
    payroll_run_id: UUID
    staff_id: UUID | None = None
    locum_id: UUID | None = None
    person_name: str
    role: str | None = None
    pay_method: str
    base_rate: Decimal
    worked_units: Decimal
    paid_leave_units: Decimal
    unpaid_leave_units: Decimal
    absent_units: Decimal
    period_units: int
    payable_base: Decimal
    breakdown: dict[str, float] = {}
    allowances: list[AllowanceEntry] = []
    allowances_amount: Decimal
    gross_pay: Decimal
    is_paid: bool
    paid_at: datetime | None = None
    paid_by: str | None = None

    # Derived for display
    paid_units: Decimal = Decimal("0")
    has_warning: bool = False

    @classmethod
    def from_item(cls, item: Any) -> "PayrollItemResponse":
        response = cls.model_validate(item)
        response.paid_units = item.worked_units + item.paid_leave_units
        # Salaried with nothing credited is worth a second look
        response.has_warning = item.pay_method != "daily" and response.paid_units == 0
        return response


class ItemPatchRequest(BaseModel):
    """Schema for editing a payroll item."""

    allowances: list[AllowanceEntry] | None = None
    is_paid: bool | None = None
    paid_by: str | None = None


# ============================================================================
# Payroll view schemas
# ============================================================================


class PayrollTotals(BaseModel):
    """Aggregate amounts across the returned items."""

    model_config = ConfigDict(from_attributes=True)

    item_count: int
    paid_count: int
    total_payable_base: Decimal
    total_allowances: Decimal
    total_gross: Decimal


class PayrollResponse(BaseModel):
    """Schema for the synchronized payroll view."""

    run: PayrollRunResponse
    items: list[PayrollItemResponse]
    totals: PayrollTotals


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    context: dict[str, Any] | None = None
