"""
Shared GMUD sequencing used by both the CI action and the HTTP service:

    validate -> (skip non-production) -> create ticket -> comment -> notify
             -> wait -> notify outcome -> (mark complete)

Comments, notifications and completion are best-effort; ticket creation
and the wait itself are not.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from gmudgate.config import DEFAULT_ACTOR, GateSettings, is_production_environment
from gmudgate.errors import ConfigurationError
from gmudgate.gmud.description import (
    CommitInfo,
    PullRequestInfo,
    build_description,
    build_task_name,
)
from gmudgate.gmud.types import ApprovalRequest, Decision, DecisionType, GmudResult
from gmudgate.gmud.wait import wait_for_decision
from gmudgate.integrations.clickup.client import ClickUpClient, ClickUpClientError
from gmudgate.integrations.clickup.types import Ticket, task_url
from gmudgate.notifications import WebhookNotifier
from gmudgate.observability.internal_metrics import incr

logger = logging.getLogger(__name__)

SKIPPED_STATUS = "SKIPPED"


@dataclass
class GmudRequest:
    """Per-deployment metadata."""

    house: str
    environment: str
    actor: str = DEFAULT_ACTOR
    pipeline_url: str = ""
    commit: Optional[CommitInfo] = None
    pull_request: Optional[PullRequestInfo] = None

    def validate(self) -> None:
        missing = [name for name in ("house", "environment") if not (getattr(self, name) or "").strip()]
        if missing:
            raise ConfigurationError(f"Input required and not supplied: {', '.join(missing)}")

    @property
    def title(self) -> str:
        return f"{self.house} - {self.environment}"


class GmudWorkflow:
    def __init__(
        self,
        settings: GateSettings,
        client: ClickUpClient,
        notifier: Optional[WebhookNotifier] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings
        self.client = client
        self.notifier = notifier or WebhookNotifier(settings.notification_webhook_url)
        self.clock = clock
        self.sleep = sleep

    def should_skip(self, environment: str) -> bool:
        if not self.settings.skip_non_production:
            return False
        return not is_production_environment(environment, self.settings.production_environments)

    def run(self, request: GmudRequest) -> GmudResult:
        request.validate()
        self.settings.require_credentials()

        skipped = self.skip_if_non_production(request)
        if skipped is not None:
            return skipped

        ticket = self.open(request)
        decision = self.await_decision(ticket.task_id, title=request.title, url=ticket.url)
        return GmudResult(
            task_id=ticket.task_id,
            outcome=decision.outcome,
            status=decision.status,
            url=ticket.url,
        )

    def skip_if_non_production(self, request: GmudRequest) -> Optional[GmudResult]:
        """Approved-equivalent result when no ticket is needed, else None."""
        if not self.should_skip(request.environment):
            return None
        incr("gmud_skipped")
        logger.info(
            "Environment %s is not production, skipping GMUD for %s",
            request.environment,
            request.house,
        )
        return GmudResult(outcome=DecisionType.SKIPPED, status=SKIPPED_STATUS)

    def open(self, request: GmudRequest, status: Optional[str] = None) -> Ticket:
        """Create the ticket, attach the description and announce it."""
        request.validate()
        if not self.settings.list_id:
            raise ConfigurationError("Input required and not supplied: list_id")

        name = build_task_name(request.house, request.environment, request.actor)
        initial_status = status or self.settings.status_pending
        logger.info("Creating GMUD: %s @ list %s (status: %s)", name, self.settings.list_id, initial_status)
        task_id = self.client.create_task(self.settings.list_id, name, initial_status)
        incr("gmud_created")
        ticket = Ticket(task_id=task_id, name=name, status=initial_status, url=task_url(task_id))

        description = build_description(
            request.environment,
            request.house,
            request.actor,
            request.pipeline_url,
            commit=request.commit if self.settings.include_commit_info else None,
            pull_request=request.pull_request if self.settings.include_pr_info else None,
        )
        try:
            self.client.add_comment(task_id, description)
            logger.info("Description comment added to GMUD %s", task_id)
        except ClickUpClientError as exc:
            logger.warning("Failed to add comment to GMUD %s: %s", task_id, exc)

        self.notifier.notify(f"📋 GMUD criada: {name}\n{ticket.url}")
        return ticket

    def await_decision(
        self,
        task_id: str,
        *,
        title: str = "",
        url: str = "",
        timeout_minutes: Optional[float] = None,
        poll_interval_seconds: Optional[float] = None,
        approved_label: Optional[str] = None,
        rejected_label: Optional[str] = None,
        complete_on_success: Optional[bool] = None,
    ) -> Decision:
        """Wait for the reviewer, report the outcome and optionally close the ticket."""
        settings = self.settings
        approval = ApprovalRequest.start(
            task_id,
            timeout_minutes=settings.timeout_minutes if timeout_minutes is None else timeout_minutes,
            poll_interval_seconds=poll_interval_seconds or settings.poll_interval_seconds,
            approved_label=approved_label or settings.status_approved,
            rejected_label=rejected_label or settings.status_rejected,
            clock=self.clock,
        )
        decision = wait_for_decision(self.client, approval, clock=self.clock, sleep=self.sleep)

        label = title or f"GMUD {task_id}"
        link = url or task_url(task_id)
        if decision.outcome == DecisionType.APPROVED:
            self.notifier.notify(f"✅ GMUD aprovada: {label}\n{link}")
            should_complete = settings.complete_on_success if complete_on_success is None else complete_on_success
            if should_complete:
                self._mark_complete(task_id)
        elif decision.outcome == DecisionType.REJECTED:
            logger.error("GMUD %s rejected (status: %s)", task_id, decision.status)
            self.notifier.notify(f"❌ GMUD negada: {label}\n{link}")
        else:
            logger.error(
                "Timed out waiting for GMUD %s approval (%s minutes)",
                task_id,
                approval.timeout_minutes,
            )
            self.notifier.notify(
                f"⏰ Timeout aguardando aprovação da GMUD: {label} ({approval.timeout_minutes} minutos)\n{link}"
            )
        return decision

    def _mark_complete(self, task_id: str) -> None:
        status = self.settings.status_complete
        try:
            self.client.set_status(task_id, status)
            logger.info("GMUD %s marked as %s", task_id, status)
        except ClickUpClientError as exc:
            logger.warning("Failed to mark GMUD %s as %s: %s", task_id, status, exc)
