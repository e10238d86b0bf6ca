"""
GitHub Action entry point.

Reads INPUT_* variables, runs the GMUD workflow and publishes the
``task_id``/``approved``/``status``/``decision`` outputs. Exit code is 0
only when the deployment may continue.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Mapping, Optional, TextIO

from gmudgate.config import DEFAULT_ACTOR, GateSettings, action_input
from gmudgate.errors import ConfigurationError, GmudError
from gmudgate.gmud.description import (
    commit_info_from_github,
    pipeline_url_from_github,
    pull_request_info_from_github,
)
from gmudgate.gmud.types import DecisionType, GmudResult
from gmudgate.gmud.workflow import GmudRequest, GmudWorkflow
from gmudgate.integrations.clickup.client import ClickUpClient
from gmudgate.logging_config import configure_logging

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CANCELLED = 130


class GitHubAnnotationHandler(logging.Handler):
    """Re-emits warnings and errors as workflow commands so they show up as annotations."""

    def __init__(self, stream: Optional[TextIO] = None):
        super().__init__(level=logging.WARNING)
        self.stream = stream

    def emit(self, record: logging.LogRecord) -> None:
        command = "error" if record.levelno >= logging.ERROR else "warning"
        message = record.getMessage().replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")
        stream = self.stream or sys.stdout
        stream.write(f"::{command}::{message}\n")
        stream.flush()


def set_output(name: str, value: str, env: Optional[Mapping[str, str]] = None) -> None:
    source = os.environ if env is None else env
    output_path = source.get("GITHUB_OUTPUT", "")
    if output_path:
        with open(output_path, "a", encoding="utf-8") as f:
            f.write(f"{name}={value}\n")
        return
    print(f"::set-output name={name}::{value}")


def request_from_inputs(env: Mapping[str, str]) -> GmudRequest:
    # include_commit_info / include_pr_info are applied by the workflow.
    return GmudRequest(
        house=action_input(env, "house_name") or action_input(env, "casa"),
        environment=action_input(env, "environment") or action_input(env, "ambiente"),
        actor=action_input(env, "actor") or action_input(env, "usuario") or DEFAULT_ACTOR,
        pipeline_url=action_input(env, "pipeline_url") or pipeline_url_from_github(env),
        commit=commit_info_from_github(env),
        pull_request=pull_request_info_from_github(env),
    )


def publish_result(result: GmudResult, env: Optional[Mapping[str, str]] = None) -> None:
    set_output("task_id", result.task_id or "", env)
    set_output("approved", "true" if result.approved else "false", env)
    set_output("status", (result.status or "").upper(), env)
    set_output("decision", result.outcome.value, env)


def run(env: Optional[Mapping[str, str]] = None, workflow: Optional[GmudWorkflow] = None) -> int:
    source = os.environ if env is None else env
    try:
        if workflow is None:
            settings = GateSettings.from_action_inputs(source)
            settings.require_credentials()
            workflow = GmudWorkflow(settings, ClickUpClient.from_settings(settings))
        request = request_from_inputs(source)
        request.validate()
        result = workflow.run(request)
    except ConfigurationError as exc:
        logger.error("%s", exc)
        return EXIT_FAILED
    except GmudError as exc:
        logger.error("GMUD failed: %s", exc)
        return EXIT_FAILED
    except KeyboardInterrupt:
        logger.error("GMUD wait cancelled")
        return EXIT_CANCELLED

    publish_result(result, source)
    if result.outcome == DecisionType.SKIPPED:
        logger.info("Non-production environment, GMUD skipped. Continuing the deploy...")
        return EXIT_OK
    if result.outcome == DecisionType.APPROVED:
        logger.info("GMUD %s approved. Continuing the deploy...", result.task_id)
        return EXIT_OK
    if result.outcome == DecisionType.REJECTED:
        logger.error("GMUD %s rejected. Aborting the deploy...", result.task_id)
    else:
        logger.error("GMUD %s timed out waiting for approval. Aborting the deploy...", result.task_id)
    return EXIT_FAILED


def main() -> int:
    configure_logging(default_format="text")
    logging.getLogger().addHandler(GitHubAnnotationHandler())
    return run()


if __name__ == "__main__":
    sys.exit(main())
