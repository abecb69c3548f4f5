"""Pay computation and rounding helpers."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Mapping

from clinic_payroll.calculators.types import ZERO, PayMethod, UnitTotals


class PayCalculator:
    """Derives payable base and gross amounts.

    Rounding:
    - Internal compute at 4 decimals (payable base)
    - Allowances kept at 2 decimals
    - Gross rounded once to the whole currency unit, half up
    """

    PRECISION = Decimal("0.0001")
    ALLOWANCE_PRECISION = Decimal("0.01")
    WHOLE_UNIT = Decimal("1")

    @staticmethod
    def round_internal(amount: Decimal) -> Decimal:
        return amount.quantize(PayCalculator.PRECISION, rounding=ROUND_HALF_UP)

    @staticmethod
    def round_to_unit(amount: Decimal) -> Decimal:
        """Round to the nearest whole currency unit (half up)."""
        return amount.quantize(PayCalculator.WHOLE_UNIT, rounding=ROUND_HALF_UP)

    @staticmethod
    def compute_base(
        pay_method: PayMethod,
        rate: Decimal,
        units: UnitTotals,
        period_units: int,
        is_locum: bool = False,
    ) -> Decimal:
        """Compute the payable base before allowances.

        - fixed: the full rate, regardless of units
        - prorated: rate * (worked + paid leave) / period_units
        - daily: rate * (worked + paid leave); locums credit worked units only
        """
        rate = rate or ZERO

        if is_locum:
            return PayCalculator.round_internal(rate * units.worked)

        if pay_method == PayMethod.FIXED:
            return PayCalculator.round_internal(rate)

        if pay_method == PayMethod.PRORATED:
            if period_units <= 0:
                return ZERO
            return PayCalculator.round_internal(rate * units.paid_units / Decimal(period_units))

        if pay_method == PayMethod.DAILY:
            return PayCalculator.round_internal(rate * units.paid_units)

        raise ValueError(f"Unsupported pay method: {pay_method}")

    @staticmethod
    def sum_allowances(allowances: Iterable[Mapping[str, Any]]) -> Decimal:
        """Sum allowance amounts; blank or missing amounts count as zero."""
        total = ZERO
        for allowance in allowances:
            raw = allowance.get("amount")
            if raw in (None, ""):
                continue
            total += Decimal(str(raw))
        return total.quantize(PayCalculator.ALLOWANCE_PRECISION, rounding=ROUND_HALF_UP)

    @staticmethod
    def compute_gross(payable_base: Decimal, allowances_amount: Decimal) -> Decimal:
        """GROSS = round(payable_base + allowances)."""
        return PayCalculator.round_to_unit(payable_base + allowances_amount)
