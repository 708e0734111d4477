# loadwatch/models/execution.py

"""Execution-state models for the action state machine."""

from dataclasses import dataclass
from enum import Enum

from loadwatch.models.record import Record


class Phase(str, Enum):
    """Phases of one automated action."""

    IDLE = "idle"
    LOCATING = "locating"
    TRIGGERING = "triggering"
    AWAITING_SURFACE = "awaiting-surface"
    FILLING = "filling"
    SUBMITTING = "submitting"
    AWAITING_CONFIRMATION = "awaiting-confirmation"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """True for the phases that end an action."""
        return self in (Phase.DONE, Phase.FAILED)


class FailureReason:
    """Reason strings reported with a failed action."""

    CONTROL_NOT_FOUND = "control-not-found"
    SURFACE_TIMEOUT = "surface-timeout"
    CONFIRM_CONTROL_NOT_FOUND = "confirm-control-not-found"
    CONFIRMATION_TIMEOUT = "confirmation-timeout"
    ACTION_IN_PROGRESS = "action-in-progress"
    ENTRY_NOT_FOUND = "entry-not-found"
    UNEXPECTED_ERROR = "unexpected-error"


@dataclass
class ExecutionState:
    """The single in-flight action.

    ``attempts`` counts predicate checks made by the current bounded
    wait; ``deadline`` is the event-loop time at which it expires
    (``None`` outside a wait).
    """

    entry_id: str
    phase: Phase = Phase.LOCATING
    attempts: int = 0
    deadline: float | None = None


@dataclass
class ActionOutcome:
    """Terminal result of one action, emitted to the engine."""

    entry_id: str
    success: bool
    reason: str | None = None
    record: Record | None = None
    elapsed: float = 0.0

    def to_dict(self) -> dict[str, object]:
        """Serialise to the ``bookEntry`` response shape."""
        data: dict[str, object] = {"success": self.success}
        if self.reason:
            data["reason"] = self.reason
        return data
