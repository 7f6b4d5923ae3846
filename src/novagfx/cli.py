"""
Command-line interface for the Nova GFX interactive runtime (novagfx).
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict

from .config import GRAPH_MATCH_MODES, load_config
from .errors import InteractiveError
from .runtime.expressions import ScriptScope, collect_diagnostics, evaluate_expression, execute_script_async
from .sessions import dispatch_event_document, json_safe, run_actions_document, run_graph_document
from .version import __version__


def build_cli_parser() -> argparse.ArgumentParser:
    cli = argparse.ArgumentParser(prog="novagfx", description="Nova GFX interactive runtime CLI")
    cli.add_argument(
        "--version",
        action="version",
        version=f"novagfx {__version__} (Python {sys.version.split()[0]})",
    )
    sub = cli.add_subparsers(dest="command", required=True)

    validate_cmd = sub.add_parser("validate", help="Check an expression or script against the sandbox rules")
    validate_cmd.add_argument("file", nargs="?", type=Path, help="File containing the code")
    validate_cmd.add_argument("--code", help="Inline code (instead of a file)")
    validate_cmd.add_argument("--mode", choices=["eval", "exec"], default="eval")

    eval_cmd = sub.add_parser("eval", help="Evaluate an expression (or script) and print the result")
    eval_cmd.add_argument("code", help="Expression or script source")
    eval_cmd.add_argument("--script", action="store_true", help="Run as a multi-statement script")
    eval_cmd.add_argument("--state", type=Path, help="JSON file with the state mapping")
    eval_cmd.add_argument("--data", type=Path, help="JSON file with the data mapping")

    actions_cmd = sub.add_parser("run-actions", help="Execute an action list document")
    actions_cmd.add_argument("file", type=Path, help="JSON document with actions, app, state and designer")

    event_cmd = sub.add_parser("dispatch-event", help="Route an event through an app's handlers")
    event_cmd.add_argument("file", type=Path, help="JSON document with app, event, state and designer")
    event_cmd.add_argument("--event", dest="event_type", help="Event type (overrides the document)")
    event_cmd.add_argument("--element", dest="element_id", help="Triggering element id")

    graph_cmd = sub.add_parser("run-graph", help="Dispatch an event through a node graph document")
    graph_cmd.add_argument("file", type=Path, help="JSON document with nodes, edges, state and designer")
    graph_cmd.add_argument("--event", dest="event_type", help="Event type (overrides the document)")
    graph_cmd.add_argument("--element", dest="element_id", help="Triggering element id")
    graph_cmd.add_argument("--match-mode", choices=GRAPH_MATCH_MODES)

    serve_cmd = sub.add_parser("serve", help="Start the interactive runtime HTTP server")
    serve_cmd.add_argument("--host", default="127.0.0.1")
    serve_cmd.add_argument("--port", type=int, default=8000)
    serve_cmd.add_argument("--dry-run", action="store_true", help="Build the app without starting the server")
    return cli


def _read_json(path: Path | None) -> Any:
    if path is None:
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise SystemExit(f"File not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise SystemExit(f"Invalid JSON in {path}: {exc}") from exc


def _read_document(path: Path) -> Dict[str, Any]:
    document = _read_json(path)
    if not isinstance(document, dict):
        raise SystemExit(f"{path} must contain a JSON object")
    return document


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2))


def main(argv: list[str] | None = None) -> None:
    cli = build_cli_parser()
    args = cli.parse_args(argv)
    config = load_config()

    if args.command == "validate":
        if args.code is None and args.file is None:
            raise SystemExit("Provide a file or --code")
        code = args.code if args.code is not None else args.file.read_text(encoding="utf-8")
        diagnostics = collect_diagnostics(code, args.mode)
        _print_json({"valid": not diagnostics, "diagnostics": diagnostics})
        if diagnostics:
            raise SystemExit(1)
        return

    if args.command == "eval":
        scope = ScriptScope(state=_read_json(args.state) or {}, data=_read_json(args.data) or {}, config=config)
        try:
            if args.script:
                value = asyncio.run(execute_script_async(args.code, scope, config=config))
            else:
                value = evaluate_expression(args.code, scope, config=config)
        except InteractiveError as exc:
            raise SystemExit(f"{type(exc).__name__}: {exc}") from exc
        _print_json({"result": json_safe(value), "state": json_safe(scope.state)})
        return

    if args.command == "run-actions":
        document = _read_document(args.file)
        response = asyncio.run(run_actions_document(document, config=config))
        _print_json(response)
        if not response["result"]["ok"]:
            raise SystemExit(1)
        return

    if args.command == "dispatch-event":
        document = _read_document(args.file)
        if args.event_type or args.element_id:
            event = dict(document.get("event") or {})
            event["type"] = args.event_type or event.get("type") or "click"
            if args.element_id:
                event["elementId"] = args.element_id
            document["event"] = event
        _print_json(asyncio.run(dispatch_event_document(document, config=config)))
        return

    if args.command == "run-graph":
        document = _read_document(args.file)
        if args.event_type:
            document["event_type"] = args.event_type
        if args.element_id:
            document["element_id"] = args.element_id
        response = asyncio.run(run_graph_document(document, config=config, match_mode=args.match_mode))
        _print_json(response)
        if response["result"]["errors"]:
            raise SystemExit(1)
        return

    if args.command == "serve":
        try:
            from .server import create_app
        except Exception as exc:  # pragma: no cover - load-time guard
            raise SystemExit(f"Failed to import server: {exc}") from exc
        app = create_app(config)
        if args.dry_run:
            _print_json({"status": "ready", "host": args.host, "port": args.port})
            return
        try:
            import uvicorn
        except ImportError as exc:  # pragma: no cover - runtime check
            raise SystemExit("uvicorn is required to run the server") from exc
        uvicorn.run(app, host=args.host, port=args.port)
        return


if __name__ == "__main__":  # pragma: no cover
    main()
