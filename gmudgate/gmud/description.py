from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

logger = logging.getLogger(__name__)

PR_EVENTS = {"pull_request", "pull_request_target"}


@dataclass
class CommitInfo:
    sha: str
    ref: str = ""
    message: str = ""
    author: str = ""
    repository: str = ""


@dataclass
class PullRequestInfo:
    number: int
    title: str = ""
    url: str = ""
    author: str = ""
    head_ref: str = ""
    base_ref: str = ""


def build_task_name(house: str, environment: str, actor: str) -> str:
    return f"[GMUD] {house} - {environment} (por {actor})"


def build_description(
    environment: str,
    house: str,
    actor: str,
    pipeline_url: str = "",
    commit: Optional[CommitInfo] = None,
    pull_request: Optional[PullRequestInfo] = None,
) -> str:
    """
    Markdown body for the GMUD comment. Sections whose inputs are absent
    are left out entirely.
    """
    lines: List[str] = [f"🚀 **Pipeline iniciada por {actor}**", "", "📋 **Detalhes:**"]
    lines.append(f"- Casa: {house}")
    lines.append(f"- Ambiente: {environment}")
    lines.append(f"- Usuário: {actor}")
    if pipeline_url:
        lines.append(f"- Pipeline: {pipeline_url}")

    if commit is not None:
        lines += ["", "🔖 **Commit:**", f"- SHA: {commit.sha}"]
        if commit.repository:
            lines.append(f"- Repositório: {commit.repository}")
        if commit.ref:
            lines.append(f"- Ref: {commit.ref}")
        if commit.author:
            lines.append(f"- Autor: {commit.author}")
        if commit.message:
            lines.append(f"- Mensagem: {commit.message.splitlines()[0]}")

    if pull_request is not None:
        title = f"#{pull_request.number}"
        if pull_request.title:
            title += f" {pull_request.title}"
        lines += ["", "🔀 **Pull Request:**", f"- {title}"]
        if pull_request.url:
            lines.append(f"- Link: {pull_request.url}")
        if pull_request.author:
            lines.append(f"- Autor: {pull_request.author}")
        if pull_request.head_ref and pull_request.base_ref:
            lines.append(f"- Branches: {pull_request.head_ref} → {pull_request.base_ref}")

    lines += ["", "⏳ **Aguardando aprovação...**"]
    return "\n".join(lines)


def _load_event(env: Mapping[str, str]) -> Dict[str, Any]:
    path = env.get("GITHUB_EVENT_PATH", "")
    if not path or not os.path.exists(path):
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            payload = json.load(f)
    except (OSError, ValueError) as exc:
        logger.warning("Could not read GitHub event payload %s: %s", path, exc)
        return {}
    return payload if isinstance(payload, dict) else {}


def commit_info_from_github(env: Mapping[str, str]) -> Optional[CommitInfo]:
    sha = env.get("GITHUB_SHA", "")
    if not sha:
        return None
    event = _load_event(env)
    head_commit = event.get("head_commit") or {}
    author = (head_commit.get("author") or {}).get("name") or env.get("GITHUB_ACTOR", "")
    return CommitInfo(
        sha=sha,
        ref=env.get("GITHUB_REF_NAME", "") or env.get("GITHUB_REF", ""),
        message=str(head_commit.get("message") or ""),
        author=str(author or ""),
        repository=env.get("GITHUB_REPOSITORY", ""),
    )


def pull_request_info_from_github(env: Mapping[str, str]) -> Optional[PullRequestInfo]:
    if env.get("GITHUB_EVENT_NAME", "") not in PR_EVENTS:
        return None
    pr = _load_event(env).get("pull_request")
    if not isinstance(pr, dict):
        return None
    try:
        number = int(pr.get("number"))
    except (TypeError, ValueError):
        logger.warning("Ignoring pull request payload without a usable number: %r", pr.get("number"))
        return None
    return PullRequestInfo(
        number=number,
        title=str(pr.get("title") or ""),
        url=str(pr.get("html_url") or ""),
        author=str((pr.get("user") or {}).get("login") or ""),
        head_ref=str((pr.get("head") or {}).get("ref") or ""),
        base_ref=str((pr.get("base") or {}).get("ref") or ""),
    )


def pipeline_url_from_github(env: Mapping[str, str]) -> str:
    server = env.get("GITHUB_SERVER_URL", "")
    repo = env.get("GITHUB_REPOSITORY", "")
    run_id = env.get("GITHUB_RUN_ID", "")
    if not (server and repo and run_id):
        return ""
    return f"{server.rstrip('/')}/{repo}/actions/runs/{run_id}"
