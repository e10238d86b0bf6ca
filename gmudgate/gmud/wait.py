"""
Approval wait loop.

Polls the ticket status until it matches the approved or rejected label
(case-insensitively) or the deadline passes. A match returns at once;
anything else sleeps one poll interval and reads again. Read errors
count as "still pending".
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Protocol

from gmudgate.gmud.types import ApprovalRequest, Decision, DecisionType
from gmudgate.integrations.clickup.client import ClickUpClientError
from gmudgate.observability.internal_metrics import incr

logger = logging.getLogger(__name__)


class StatusReader(Protocol):
    def get_status(self, task_id: str) -> str:
        ...


def _normalize(label: str) -> str:
    return (label or "").strip().casefold()


def classify_status(label: str, approved_label: str, rejected_label: str) -> DecisionType | None:
    """Map a ticket label to a terminal outcome, or None while pending."""
    current = _normalize(label)
    if current == _normalize(approved_label):
        return DecisionType.APPROVED
    if current == _normalize(rejected_label):
        return DecisionType.REJECTED
    return None


def wait_for_decision(
    client: StatusReader,
    request: ApprovalRequest,
    *,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> Decision:
    """
    Run the polling state machine for ``request``.

    ``clock`` must be the clock ``request.deadline`` was computed on. The
    sleep is never longer than the time left, so a timeout resolves no
    later than one poll interval past the deadline.
    """
    logger.info(
        "Waiting for GMUD %s approval (timeout: %smin, polling every %ss)",
        request.task_id,
        request.timeout_minutes,
        request.poll_interval_seconds,
    )
    polls = 0
    last_status = ""

    while clock() < request.deadline:
        try:
            polls += 1
            incr("gmud_status_polls")
            last_status = client.get_status(request.task_id)
        except ClickUpClientError as exc:
            incr("gmud_status_poll_errors")
            logger.warning("Failed to read GMUD %s status, will retry: %s", request.task_id, exc)
        else:
            logger.info("GMUD %s current status: %s", request.task_id, last_status)
            outcome = classify_status(last_status, request.approved_label, request.rejected_label)
            if outcome is not None:
                incr(f"gmud_decision_{outcome.value.lower()}")
                logger.info("GMUD %s resolved: %s", request.task_id, outcome.value)
                return Decision(
                    task_id=request.task_id,
                    outcome=outcome,
                    status=last_status,
                    polls=polls,
                    timeout_minutes=request.timeout_minutes,
                )

        remaining = request.deadline - clock()
        if remaining <= 0:
            break
        sleep(min(request.poll_interval_seconds, remaining))

    incr("gmud_decision_timed_out")
    logger.warning("GMUD %s not resolved before the deadline", request.task_id)
    return Decision(
        task_id=request.task_id,
        outcome=DecisionType.TIMED_OUT,
        status=last_status,
        polls=polls,
        timeout_minutes=request.timeout_minutes,
    )
