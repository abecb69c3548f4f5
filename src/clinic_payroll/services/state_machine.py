"""Payroll run state machine with transition validation."""

from __future__ import annotations

from enum import Enum


class PayrollRunStatus(str, Enum):
    """Payroll run status values."""

    DRAFT = "draft"
    FINALIZED = "finalized"


class InvalidTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class PayrollRunStateMachine:
    """State machine for payroll run status transitions.

    Allowed transitions:
    - draft → finalized

    Finalized is terminal: synchronization becomes a read-only pass-through
    and item/run edits are rejected.
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        PayrollRunStatus.DRAFT.value: [PayrollRunStatus.FINALIZED.value],
        PayrollRunStatus.FINALIZED.value: [],  # Terminal state
    }

    # Statuses where synchronization recomputes items
    SYNC_ALLOWED = {PayrollRunStatus.DRAFT.value}

    # Statuses where allowances, paid flags and run settings can change
    EDITS_ALLOWED = {PayrollRunStatus.DRAFT.value}

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            reason = "run is already finalized" if from_status == PayrollRunStatus.FINALIZED else None
            raise InvalidTransitionError(from_status, to_status, reason)

    @classmethod
    def can_sync(cls, status: str) -> bool:
        """Check if synchronization may recompute items in this status."""
        return status in cls.SYNC_ALLOWED

    @classmethod
    def can_edit(cls, status: str) -> bool:
        """Check if item patches and run settings may change in this status."""
        return status in cls.EDITS_ALLOWED

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])
