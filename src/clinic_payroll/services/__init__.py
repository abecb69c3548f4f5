"""Payroll reconciliation services."""

from clinic_payroll.services.payroll_run_service import (
    ItemNotFoundError,
    PayrollRunService,
    RunFinalizedError,
    RunNotFoundError,
)
from clinic_payroll.services.source_loader import PayrollSourceLoader, PayrollSources
from clinic_payroll.services.state_machine import (
    InvalidTransitionError,
    PayrollRunStateMachine,
    PayrollRunStatus,
)
from clinic_payroll.services.sync_service import RunSynchronizer

__all__ = [
    "InvalidTransitionError",
    "ItemNotFoundError",
    "PayrollRunService",
    "PayrollRunStateMachine",
    "PayrollRunStatus",
    "PayrollSourceLoader",
    "PayrollSources",
    "RunFinalizedError",
    "RunNotFoundError",
    "RunSynchronizer",
]
