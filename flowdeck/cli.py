"""
flowdeck command line interface.

Usage:
    flowdeck policies list
    flowdeck policies show <role>
    flowdeck policies check <role> <tool>
    flowdeck policies filter <role>
    flowdeck policies delete <role>
    flowdeck run <workflow.yaml> --task-id <id> [--task-title <title>] [--stub-output <text>]
    flowdeck serve [--host HOST] [--port PORT]

``run`` drives the workflow through the stub session spawner, so it works
without an agent runtime and is useful for checking templates, tool
filters and acceptance criteria end to end.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from flowdeck.config.tool_policies import ToolPolicyError, ToolPolicyStore
from flowdeck.config.workflows import WorkflowLoadError, load_workflow
from flowdeck.runtime.engines import StubSessionSpawner
from flowdeck.runtime.errors import StepExecutionError
from flowdeck.runtime.step_executor import StepExecutor
from flowdeck.runtime.types import new_workflow_run, tool_policy_to_dict

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="flowdeck",
        description="Workflow step execution engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Policies command group
    policies_parser = subparsers.add_parser("policies", help="Inspect and manage tool policies")
    policies_parser.add_argument(
        "--policies-dir",
        type=Path,
        default=None,
        help="Tool policy directory (default: from runtime config)",
    )
    policy_commands = policies_parser.add_subparsers(dest="policy_command", help="Policy commands")
    policy_commands.add_parser("list", help="List all policies")
    show_parser = policy_commands.add_parser("show", help="Show one role's policy")
    show_parser.add_argument("role")
    check_parser = policy_commands.add_parser("check", help="Check whether a role may use a tool")
    check_parser.add_argument("role")
    check_parser.add_argument("tool")
    filter_parser = policy_commands.add_parser("filter", help="Show the session tool filter for a role")
    filter_parser.add_argument("role")
    delete_parser = policy_commands.add_parser("delete", help="Delete a custom policy")
    delete_parser.add_argument("role")

    # Run command
    run_parser = subparsers.add_parser("run", help="Run a workflow with the stub session spawner")
    run_parser.add_argument("workflow", type=Path, help="Workflow YAML file")
    run_parser.add_argument("--task-id", required=True, help="Task the run works on")
    run_parser.add_argument("--task-title", default="", help="Task title for templates")
    run_parser.add_argument(
        "--stub-output",
        default=None,
        help="Fixed output for every step (default: echo the request)",
    )
    run_parser.add_argument("--runs-dir", type=Path, default=None, help="Runs directory")
    run_parser.add_argument("--policies-dir", type=Path, default=None, help="Tool policy directory")

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API server")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    serve_parser.add_argument("--port", type=int, default=5002, help="Port to bind to")

    return parser


def _cmd_policies(args: argparse.Namespace) -> int:
    store = ToolPolicyStore(args.policies_dir)

    if args.policy_command == "list":
        for policy in sorted(store.list(), key=lambda p: p.role):
            allowed = ", ".join(policy.allowed) or "-"
            denied = ", ".join(policy.denied) or "-"
            print(f"{policy.role}: allowed=[{allowed}] denied=[{denied}]")
        return 0

    if args.policy_command == "show":
        policy = store.get(args.role)
        if policy is None:
            print(f"No tool policy for role: {args.role}", file=sys.stderr)
            return 1
        print(json.dumps(tool_policy_to_dict(policy), indent=2))
        return 0

    if args.policy_command == "check":
        allowed = store.resolve_tool_access(args.role, args.tool)
        print(f"{args.role} -> {args.tool}: {'allowed' if allowed else 'denied'}")
        return 0 if allowed else 1

    if args.policy_command == "filter":
        print(json.dumps(store.tool_filter_for_role(args.role), indent=2))
        return 0

    if args.policy_command == "delete":
        store.delete(args.role)
        print(f"Deleted tool policy: {args.role}")
        return 0

    print("Missing policies command (list, show, check, filter, delete)", file=sys.stderr)
    return 2


def _cmd_run(args: argparse.Namespace) -> int:
    workflow = load_workflow(args.workflow)
    task = {"id": args.task_id, "title": args.task_title}
    run = new_workflow_run(workflow, task_id=args.task_id, task=task)

    if args.stub_output is not None:
        stub_output = args.stub_output
        spawner = StubSessionSpawner(output_fn=lambda request: stub_output)
    else:
        spawner = StubSessionSpawner()

    executor = StepExecutor(ToolPolicyStore(args.policies_dir), spawner, runs_dir=args.runs_dir)
    print(f"Run {run.id}: workflow {workflow.id}, {len(workflow.steps)} steps")

    try:
        asyncio.run(executor.execute_run(workflow, run))
    finally:
        for step_run in run.steps:
            line = f"  {step_run.step_id}: {step_run.status.value}"
            if step_run.error:
                line += f" ({step_run.error})"
            print(line)

    print(f"Artifacts: {executor.runs_dir / run.id}")
    return 0


def _cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    from flowdeck.api.server import create_app

    uvicorn.run(create_app(), host=args.host, port=args.port)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        if args.command == "policies":
            return _cmd_policies(args)
        if args.command == "run":
            return _cmd_run(args)
        if args.command == "serve":
            return _cmd_serve(args)
    except (ToolPolicyError, StepExecutionError, WorkflowLoadError, FileNotFoundError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    parser.print_help()
    return 2


if __name__ == "__main__":
    sys.exit(main())
