import logging
from typing import Any, Dict, Optional

import requests

from gmudgate.config import CLICKUP_API_BASE
from gmudgate.errors import ConfigurationError, GmudError
from gmudgate.integrations.clickup.types import Ticket

logger = logging.getLogger(__name__)

PERSONAL_TOKEN_PREFIX = "pk_"


class ClickUpClientError(GmudError):
    """Non-success response (or unusable payload) from the ClickUp API."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Any = None):
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class ClickUpDependencyTimeout(ClickUpClientError):
    """Raised when ClickUp API calls exceed the configured timeout."""


class ClickUpDependencyUnavailable(ClickUpClientError):
    """Raised for transport errors talking to ClickUp."""


def auth_header(token: str) -> Dict[str, str]:
    """
    Personal tokens (pk_...) go in the Authorization header verbatim;
    anything else is treated as an OAuth access token.
    """
    if token.startswith(PERSONAL_TOKEN_PREFIX):
        return {"Authorization": token}
    return {"Authorization": f"Bearer {token}"}


class ClickUpClient:
    def __init__(
        self,
        token: str,
        base_url: str = CLICKUP_API_BASE,
        timeout_seconds: float = 10.0,
    ):
        if not token:
            raise ConfigurationError("ClickUp token not configured")
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.headers = {
            **auth_header(token),
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        self.default_timeout_seconds = timeout_seconds

    @classmethod
    def from_settings(cls, settings) -> "ClickUpClient":
        return cls(
            settings.token,
            base_url=settings.api_base_url,
            timeout_seconds=settings.request_timeout_seconds,
        )

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _request(
        self,
        method: str,
        path: str,
        *,
        timeout: Optional[float] = None,
        **kwargs,
    ) -> requests.Response:
        effective_timeout = timeout if timeout is not None else self.default_timeout_seconds
        try:
            return requests.request(
                method.upper(),
                self._url(path),
                headers=self.headers,
                timeout=effective_timeout,
                **kwargs,
            )
        except requests.Timeout as exc:
            raise ClickUpDependencyTimeout(
                f"ClickUp {method.upper()} {path} timed out after {effective_timeout}s"
            ) from exc
        except requests.RequestException as exc:
            raise ClickUpDependencyUnavailable(f"ClickUp {method.upper()} {path} request failed: {exc}") from exc

    def _call(self, method: str, path: str, action: str, **kwargs) -> Any:
        resp = self._request(method, path, **kwargs)
        body = _decode_body(resp)
        if not resp.ok:
            raise ClickUpClientError(
                f"{action} failed: HTTP {resp.status_code} {body}",
                status_code=resp.status_code,
                body=body,
            )
        return body

    def check_permissions(self) -> bool:
        """Health check: verifies the token can authenticate."""
        try:
            resp = self._request("GET", "/user", timeout=min(self.default_timeout_seconds, 5))
            return resp.status_code == 200
        except ClickUpClientError:
            return False

    def create_task(self, list_id: str, name: str, status: str) -> str:
        """Create a task in ``list_id`` and return its id."""
        resp = self._request("POST", f"/list/{list_id}/task", json={"name": name, "status": status})
        data = _decode_body(resp)
        task_id = data.get("id") if isinstance(data, dict) else None
        if not resp.ok or not task_id:
            raise ClickUpClientError(
                f"Create GMUD failed: HTTP {resp.status_code} {data}",
                status_code=resp.status_code,
                body=data,
            )
        logger.info("Created ClickUp task %s in list %s", task_id, list_id)
        return str(task_id)

    def get_task(self, task_id: str) -> Ticket:
        data = self._call("GET", f"/task/{task_id}", "Fetch GMUD")
        return Ticket.from_api(data if isinstance(data, dict) else {})

    def get_status(self, task_id: str) -> str:
        return self.get_task(task_id).status

    def set_status(self, task_id: str, status: str) -> bool:
        self._call("PUT", f"/task/{task_id}", "Update GMUD status", json={"status": status})
        logger.info("ClickUp task %s moved to %s", task_id, status)
        return True

    def add_comment(self, task_id: str, text: str) -> bool:
        self._call(
            "POST",
            f"/task/{task_id}/comment",
            "Add GMUD comment",
            json={"comment_text": text},
        )
        return True

    def get_list_fields(self, list_id: str) -> Dict[str, Any]:
        """Custom fields available on a list."""
        data = self._call("GET", f"/list/{list_id}/field", "Fetch list fields")
        return data if isinstance(data, dict) else {"fields": data}


def _decode_body(resp: requests.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text
