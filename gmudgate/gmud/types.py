from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from pydantic import BaseModel

from gmudgate.errors import ApprovalRejectedError, ApprovalTimeoutError


class DecisionType(str, Enum):
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    TIMED_OUT = "TIMED_OUT"
    # Not a wait outcome: the run never created a ticket.
    SKIPPED = "SKIPPED"


@dataclass(frozen=True)
class ApprovalRequest:
    """In-memory wait state. Lost on restart."""

    task_id: str
    deadline: float  # absolute, on the same clock the wait loop reads
    poll_interval_seconds: float
    approved_label: str
    rejected_label: str
    timeout_minutes: Optional[float] = None

    @classmethod
    def start(
        cls,
        task_id: str,
        *,
        timeout_minutes: float,
        poll_interval_seconds: float,
        approved_label: str,
        rejected_label: str,
        clock: Callable[[], float],
    ) -> "ApprovalRequest":
        if approved_label.strip().casefold() == rejected_label.strip().casefold():
            raise ValueError("approved and rejected labels must differ")
        if poll_interval_seconds <= 0:
            raise ValueError("poll interval must be positive")
        return cls(
            task_id=task_id,
            deadline=clock() + float(timeout_minutes) * 60.0,
            poll_interval_seconds=float(poll_interval_seconds),
            approved_label=approved_label,
            rejected_label=rejected_label,
            timeout_minutes=timeout_minutes,
        )


class Decision(BaseModel):
    """Terminal result of a wait."""

    task_id: str
    outcome: DecisionType
    status: str = ""  # last observed label, "" if none was ever read
    polls: int = 0
    timeout_minutes: Optional[float] = None

    @property
    def approved(self) -> bool:
        return self.outcome == DecisionType.APPROVED

    def raise_for_outcome(self) -> None:
        if self.outcome == DecisionType.REJECTED:
            raise ApprovalRejectedError(self)
        if self.outcome == DecisionType.TIMED_OUT:
            raise ApprovalTimeoutError(self, self.timeout_minutes)


class GmudResult(BaseModel):
    """What an entry point reports after a full run."""

    task_id: Optional[str] = None
    outcome: DecisionType
    status: str = ""
    url: str = ""

    @property
    def approved(self) -> bool:
        return self.outcome in (DecisionType.APPROVED, DecisionType.SKIPPED)
