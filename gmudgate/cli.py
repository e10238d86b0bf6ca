import argparse
import json
import sys
from typing import Any, Dict

from gmudgate import __version__


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="gmudgate")
    p.add_argument("--config", help="Optional YAML file with gate settings")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("action", help="Run as a GitHub Action (reads INPUT_* variables).")

    serve_p = sub.add_parser("serve", help="Run the HTTP service.")
    serve_p.add_argument("--host", default="0.0.0.0")
    serve_p.add_argument("--port", type=int, default=3000)

    run_p = sub.add_parser("run", help="Create a GMUD and block until it is decided.")
    run_p.add_argument("--house", required=True)
    run_p.add_argument("--environment", required=True)
    run_p.add_argument("--actor", default="System")
    run_p.add_argument("--pipeline-url", default="")

    create_p = sub.add_parser("create", help="Create a GMUD without waiting.")
    create_p.add_argument("--house", required=True)
    create_p.add_argument("--environment", required=True)
    create_p.add_argument("--actor", default="System")
    create_p.add_argument("--pipeline-url", default="")
    create_p.add_argument("--status", help="Initial status (defaults to the pending label)")

    status_p = sub.add_parser("status", help="Show the current GMUD status.")
    status_p.add_argument("task_id")

    wait_p = sub.add_parser("wait", help="Wait for an existing GMUD to be decided.")
    wait_p.add_argument("task_id")
    wait_p.add_argument("--timeout-minutes", type=float)
    wait_p.add_argument("--poll-interval-seconds", type=float)

    set_p = sub.add_parser("set-status", help="Move a GMUD to another status.")
    set_p.add_argument("task_id")
    set_p.add_argument("status")

    comment_p = sub.add_parser("comment", help="Add a comment to a GMUD.")
    comment_p.add_argument("task_id")
    comment_p.add_argument("text")

    sub.add_parser("list-fields", help="Show custom fields of the configured list.")

    sub.add_parser("version", help="Print version.")
    return p


def _print(payload: Dict[str, Any]) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


def main() -> int:
    # If no arguments provided, show help
    if len(sys.argv) == 1:
        sys.argv.append("--help")

    p = build_parser()
    args = p.parse_args()

    if args.cmd == "version":
        print(f"gmudgate {__version__}")
        return 0

    if args.cmd == "action":
        from gmudgate.action import main as action_main
        return action_main()

    if args.cmd == "serve":
        import uvicorn
        uvicorn.run("gmudgate.server:app", host=args.host, port=args.port)
        return 0

    from gmudgate.config import GateSettings
    from gmudgate.errors import GmudError
    from gmudgate.gmud.types import DecisionType
    from gmudgate.gmud.workflow import GmudRequest, GmudWorkflow
    from gmudgate.integrations.clickup.client import ClickUpClient
    from gmudgate.logging_config import configure_logging

    configure_logging(default_format="text")
    try:
        settings = GateSettings.from_env(config_path=args.config)
        workflow = GmudWorkflow(settings, ClickUpClient.from_settings(settings))

        if args.cmd in ("run", "create"):
            request = GmudRequest(
                house=args.house,
                environment=args.environment,
                actor=args.actor,
                pipeline_url=args.pipeline_url,
            )
            if args.cmd == "create":
                ticket = workflow.open(request, status=args.status)
                _print(ticket.model_dump(mode="json"))
                return 0
            result = workflow.run(request)
            _print({**result.model_dump(mode="json"), "approved": result.approved})
            return 0 if result.approved else 1

        if args.cmd == "status":
            _print(workflow.client.get_task(args.task_id).model_dump(mode="json"))
            return 0

        if args.cmd == "wait":
            decision = workflow.await_decision(
                args.task_id,
                timeout_minutes=args.timeout_minutes,
                poll_interval_seconds=args.poll_interval_seconds,
            )
            _print({**decision.model_dump(mode="json"), "approved": decision.approved})
            return 0 if decision.outcome == DecisionType.APPROVED else 1

        if args.cmd == "set-status":
            workflow.client.set_status(args.task_id, args.status)
            _print({"taskId": args.task_id, "status": args.status})
            return 0

        if args.cmd == "comment":
            workflow.client.add_comment(args.task_id, args.text)
            _print({"taskId": args.task_id, "commented": True})
            return 0

        if args.cmd == "list-fields":
            settings.require_credentials()
            _print(workflow.client.get_list_fields(settings.list_id))
            return 0
    except GmudError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 1


if __name__ == "__main__":
    sys.exit(main())
