from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


TASK_URL_BASE = "https://app.clickup.com/t"


def task_url(task_id: str) -> str:
    return f"{TASK_URL_BASE}/{task_id}"


def _from_epoch_ms(raw: Any) -> Optional[datetime]:
    # ClickUp sends timestamps as epoch milliseconds encoded in strings.
    if raw in (None, ""):
        return None
    try:
        return datetime.fromtimestamp(int(raw) / 1000, tz=timezone.utc)
    except (TypeError, ValueError):
        return None


class Ticket(BaseModel):
    """Read model of a ClickUp task. Never cached; always freshly fetched."""

    task_id: str
    name: str = ""
    status: str = ""
    url: str = ""
    assignees: List[Dict[str, Any]] = Field(default_factory=list)
    date_created: Optional[datetime] = None
    date_updated: Optional[datetime] = None

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "Ticket":
        status = payload.get("status") or {}
        if isinstance(status, dict):
            label = str(status.get("status") or "")
        else:
            label = str(status)
        return cls(
            task_id=str(payload.get("id") or ""),
            name=str(payload.get("name") or ""),
            status=label,
            url=str(payload.get("url") or ""),
            assignees=[a for a in payload.get("assignees") or [] if isinstance(a, dict)],
            date_created=_from_epoch_ms(payload.get("date_created")),
            date_updated=_from_epoch_ms(payload.get("date_updated")),
        )
