import logging
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.responses import PlainTextResponse
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from gmudgate.config import DEFAULT_ACTOR, GateSettings
from gmudgate.errors import ConfigurationError
from gmudgate.gmud.types import DecisionType
from gmudgate.gmud.workflow import GmudRequest, GmudWorkflow
from gmudgate.integrations.clickup.client import ClickUpClient, ClickUpClientError
from gmudgate.logging_config import configure_logging
from gmudgate.observability.internal_metrics import snapshot as metrics_snapshot

configure_logging()

app = FastAPI(title="GMUD Gate API")
logger = logging.getLogger(__name__)


class CreateGmudRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    house: str = Field(default="", validation_alias=AliasChoices("house", "casa"))
    environment: str = Field(default="", validation_alias=AliasChoices("environment", "ambiente"))
    status: Optional[str] = None
    actor: str = Field(default=DEFAULT_ACTOR, validation_alias=AliasChoices("actor", "usuario"))
    pipeline_url: str = Field(default="", validation_alias=AliasChoices("pipeline_url", "pipelineUrl"))


class WaitRequest(BaseModel):
    timeout_minutes: Optional[float] = Field(
        default=None, ge=0, validation_alias=AliasChoices("timeout_minutes", "timeoutMinutes")
    )
    poll_interval_seconds: Optional[float] = Field(
        default=None, gt=0, validation_alias=AliasChoices("poll_interval_seconds", "pollIntervalSeconds")
    )
    approved_status: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("approved_status", "approvedStatus")
    )
    rejected_status: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("rejected_status", "rejectedStatus")
    )
    complete_on_success: Optional[bool] = Field(
        default=None, validation_alias=AliasChoices("complete_on_success", "completeOnSuccess")
    )


class UpdateStatusRequest(BaseModel):
    status: str = ""


class ClickUpWebhookEvent(BaseModel):
    model_config = ConfigDict(extra="allow")

    event: Optional[str] = None
    task_id: Optional[str] = None
    status: Optional[Any] = None


@lru_cache(maxsize=1)
def get_settings() -> GateSettings:
    return GateSettings.from_env()


def get_workflow(settings: GateSettings = Depends(get_settings)) -> GmudWorkflow:
    try:
        client = ClickUpClient.from_settings(settings)
    except ConfigurationError as exc:
        logger.error("ClickUp client not configured: %s", exc)
        raise HTTPException(status_code=500, detail={"error": "Service not configured", "details": str(exc)})
    return GmudWorkflow(settings, client)


def _upstream_error(message: str, exc: ClickUpClientError) -> HTTPException:
    logger.error("%s: %s", message, exc)
    return HTTPException(
        status_code=502,
        detail={
            "error": message,
            "details": str(exc),
            "upstream_status": exc.status_code,
        },
    )


@app.get("/health")
def health():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@app.get("/metrics", response_class=PlainTextResponse)
def metrics():
    snap = metrics_snapshot()
    lines = [
        "# HELP gmudgate_metric_total GMUD gate internal counters",
        "# TYPE gmudgate_metric_total counter",
    ]
    for metric_name in sorted(snap.keys()):
        lines.append(f'gmudgate_metric_total{{metric="{metric_name}"}} {int(snap[metric_name])}')
    return PlainTextResponse("\n".join(lines) + "\n", media_type="text/plain; version=0.0.4; charset=utf-8")


@app.post("/gmud")
def create_gmud(payload: CreateGmudRequest, workflow: GmudWorkflow = Depends(get_workflow)):
    request = GmudRequest(
        house=payload.house.strip(),
        environment=payload.environment.strip(),
        actor=payload.actor or DEFAULT_ACTOR,
        pipeline_url=payload.pipeline_url,
    )
    try:
        request.validate()
    except ConfigurationError as exc:
        raise HTTPException(status_code=400, detail={"error": "house and environment are required", "details": str(exc)})

    skipped = workflow.skip_if_non_production(request)
    if skipped is not None:
        return {
            "taskId": None,
            "name": "",
            "status": skipped.status,
            "url": "",
            "approved": True,
            "message": "Non-production environment, GMUD skipped",
        }

    try:
        ticket = workflow.open(request, status=payload.status)
    except ConfigurationError as exc:
        raise HTTPException(status_code=500, detail={"error": "Service not configured", "details": str(exc)})
    except ClickUpClientError as exc:
        raise _upstream_error("Failed to create GMUD", exc)

    return {
        "taskId": ticket.task_id,
        "name": ticket.name,
        "status": ticket.status,
        "url": ticket.url,
        "message": "GMUD created",
    }


@app.get("/gmud/{task_id}/status")
def get_gmud_status(task_id: str, workflow: GmudWorkflow = Depends(get_workflow)):
    try:
        ticket = workflow.client.get_task(task_id)
    except ClickUpClientError as exc:
        raise _upstream_error("Failed to fetch GMUD status", exc)
    return {"taskId": task_id, "status": ticket.model_dump(mode="json")}


@app.post("/gmud/{task_id}/wait")
def wait_for_gmud(
    task_id: str,
    payload: Optional[WaitRequest] = None,
    workflow: GmudWorkflow = Depends(get_workflow),
):
    """
    Blocks until the ticket is approved, rejected or the timeout elapses.
    Every terminal outcome answers 200; ``outcome`` tells them apart.
    """
    options = payload or WaitRequest()
    try:
        decision = workflow.await_decision(
            task_id,
            timeout_minutes=options.timeout_minutes,
            poll_interval_seconds=options.poll_interval_seconds,
            approved_label=options.approved_status,
            rejected_label=options.rejected_status,
            complete_on_success=options.complete_on_success,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail={"error": "Invalid wait options", "details": str(exc)})

    messages = {
        DecisionType.APPROVED: "GMUD approved",
        DecisionType.REJECTED: "GMUD rejected",
        DecisionType.TIMED_OUT: "Timed out waiting for approval",
    }
    return {
        "approved": decision.approved,
        "taskId": task_id,
        "status": decision.status.upper(),
        "outcome": decision.outcome.value,
        "message": messages[decision.outcome],
    }


@app.put("/gmud/{task_id}/status")
def update_gmud_status(
    task_id: str,
    payload: UpdateStatusRequest,
    workflow: GmudWorkflow = Depends(get_workflow),
):
    status = payload.status.strip()
    if not status:
        raise HTTPException(status_code=400, detail={"error": "status is required"})
    try:
        workflow.client.set_status(task_id, status)
    except ClickUpClientError as exc:
        raise _upstream_error("Failed to update GMUD status", exc)
    return {"taskId": task_id, "status": status, "message": "Status updated"}


@app.post("/webhook/clickup")
def clickup_webhook(payload: ClickUpWebhookEvent) -> Dict[str, Any]:
    # Gating is done by polling; this only records the event.
    logger.info(
        "ClickUp webhook: event=%s task=%s status=%s",
        payload.event,
        payload.task_id,
        payload.status,
    )
    return {"received": True}
