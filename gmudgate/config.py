from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from gmudgate.errors import ConfigurationError

# Load params from .env file
load_dotenv()

CLICKUP_API_BASE = "https://api.clickup.com/api/v2"

DEFAULT_STATUS_PENDING = "EM ANÁLISE"
DEFAULT_STATUS_APPROVED = "APROVADAS"
DEFAULT_STATUS_REJECTED = "NEGADAS"
DEFAULT_STATUS_COMPLETE = "COMPLETE"
DEFAULT_ACTOR = "System"

DEFAULT_PRODUCTION_ENVIRONMENTS = ["prod", "production", "prd"]

# Environment variable -> GateSettings field
ENV_FIELDS = {
    "CLICKUP_TOKEN": "token",
    "CLICKUP_LIST_ID": "list_id",
    "CLICKUP_API_BASE_URL": "api_base_url",
    "CLICKUP_TIMEOUT_SECONDS": "request_timeout_seconds",
    "GMUD_STATUS_PENDING": "status_pending",
    "GMUD_STATUS_APPROVED": "status_approved",
    "GMUD_STATUS_REJECTED": "status_rejected",
    "GMUD_STATUS_COMPLETE": "status_complete",
    "GMUD_POLL_INTERVAL_SECONDS": "poll_interval_seconds",
    "GMUD_TIMEOUT_MINUTES": "timeout_minutes",
    "GMUD_COMPLETE_ON_SUCCESS": "complete_on_success",
    "NOTIFICATION_WEBHOOK_URL": "notification_webhook_url",
    "GMUD_INCLUDE_COMMIT_INFO": "include_commit_info",
    "GMUD_INCLUDE_PR_INFO": "include_pr_info",
    "GMUD_SKIP_NON_PRODUCTION": "skip_non_production",
    "GMUD_PRODUCTION_ENVIRONMENTS": "production_environments",
}

# GitHub Action input name -> GateSettings field. First match wins.
ACTION_INPUT_FIELDS = {
    "token": "token",
    "clickup_token": "token",
    "list_id": "list_id",
    "api_base_url": "api_base_url",
    "status_pending": "status_pending",
    "status_approved": "status_approved",
    "status_rejected": "status_rejected",
    "status_complete": "status_complete",
    "poll_interval_seconds": "poll_interval_seconds",
    "timeout_minutes": "timeout_minutes",
    "complete_on_success": "complete_on_success",
    "notification_webhook_url": "notification_webhook_url",
    "include_commit_info": "include_commit_info",
    "include_pr_info": "include_pr_info",
    "skip_non_production": "skip_non_production",
    "production_environments": "production_environments",
}

TRUE_VALUES = {"1", "true", "yes", "on"}


def parse_bool(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    return str(raw).strip().lower() in TRUE_VALUES


def split_csv(raw: Any) -> List[str]:
    if raw is None:
        return []
    if isinstance(raw, str):
        items: Sequence[Any] = raw.split(",")
    else:
        items = raw
    return [str(item).strip() for item in items if str(item).strip()]


def action_input(env: Mapping[str, str], name: str) -> str:
    """Read a GitHub Action input the way the runner exposes it (INPUT_<NAME>)."""
    key = "INPUT_" + name.replace(" ", "_").upper()
    return str(env.get(key, "") or "").strip()


class GateSettings(BaseModel):
    """
    Everything a GMUD run needs besides the per-deployment metadata.
    Built once at startup and passed down.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    token: str = ""
    list_id: str = ""
    api_base_url: str = CLICKUP_API_BASE
    request_timeout_seconds: float = Field(default=10.0, gt=0)

    status_pending: str = DEFAULT_STATUS_PENDING
    status_approved: str = DEFAULT_STATUS_APPROVED
    status_rejected: str = DEFAULT_STATUS_REJECTED
    status_complete: str = DEFAULT_STATUS_COMPLETE

    poll_interval_seconds: int = Field(default=30, ge=1)
    timeout_minutes: int = Field(default=60, ge=0)
    complete_on_success: bool = True

    notification_webhook_url: str = ""
    include_commit_info: bool = True
    include_pr_info: bool = True
    skip_non_production: bool = True
    production_environments: List[str] = Field(
        default_factory=lambda: list(DEFAULT_PRODUCTION_ENVIRONMENTS)
    )

    @field_validator("token", "list_id", "notification_webhook_url", mode="before")
    @classmethod
    def _strip_optional(cls, value: Any) -> str:
        return str(value or "").strip()

    @field_validator("api_base_url", mode="before")
    @classmethod
    def _normalize_base_url(cls, value: Any) -> str:
        cleaned = str(value or "").strip().rstrip("/")
        return cleaned or CLICKUP_API_BASE

    @field_validator("status_pending", "status_approved", "status_rejected", "status_complete")
    @classmethod
    def _require_label(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("status label must not be empty")
        return cleaned

    @field_validator(
        "complete_on_success",
        "include_commit_info",
        "include_pr_info",
        "skip_non_production",
        mode="before",
    )
    @classmethod
    def _parse_flag(cls, value: Any) -> bool:
        return parse_bool(value)

    @field_validator("production_environments", mode="before")
    @classmethod
    def _parse_environments(cls, value: Any) -> List[str]:
        return [item.lower() for item in split_csv(value)]

    @model_validator(mode="after")
    def _labels_must_differ(self) -> "GateSettings":
        if self.status_approved.casefold() == self.status_rejected.casefold():
            raise ValueError("status_approved and status_rejected must differ")
        return self

    @classmethod
    def build(cls, values: Mapping[str, Any]) -> "GateSettings":
        try:
            return cls(**dict(values))
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid configuration: {_format_validation_error(exc)}") from exc

    @classmethod
    def from_env(
        cls,
        env: Optional[Mapping[str, str]] = None,
        config_path: Optional[str] = None,
    ) -> "GateSettings":
        source = os.environ if env is None else env
        values = load_config_file(config_path) if config_path else {}
        for env_name, field_name in ENV_FIELDS.items():
            raw = source.get(env_name)
            if raw is not None and str(raw).strip() != "":
                values[field_name] = raw
        return cls.build(values)

    @classmethod
    def from_action_inputs(
        cls,
        env: Optional[Mapping[str, str]] = None,
        config_path: Optional[str] = None,
    ) -> "GateSettings":
        source = os.environ if env is None else env
        values = load_config_file(config_path) if config_path else {}
        assigned = set()
        for input_name, field_name in ACTION_INPUT_FIELDS.items():
            raw = action_input(source, input_name)
            if raw and field_name not in assigned:
                values[field_name] = raw
                assigned.add(field_name)
        return cls.build(values)

    def require_credentials(self) -> None:
        missing = [name for name in ("token", "list_id") if not getattr(self, name)]
        if missing:
            raise ConfigurationError(f"Input required and not supplied: {', '.join(missing)}")

    def timeout_seconds(self) -> float:
        return float(self.timeout_minutes) * 60.0


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "settings"
        parts.append(f"{loc}: {err.get('msg')}")
    return "; ".join(parts)


def load_config_file(path: str) -> Dict[str, Any]:
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigurationError(f"Config file not found: {path}")
    try:
        with config_path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Failed to parse config {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")
    return dict(data)


def is_production_environment(environment: str, production_names: Sequence[str]) -> bool:
    """
    Case-insensitive substring match of any production name inside the
    environment string ("prod-eu" and "production" both count).
    """
    haystack = (environment or "").strip().lower()
    if not haystack:
        return False
    return any(name and name.lower() in haystack for name in production_names)
