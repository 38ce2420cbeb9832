"""Command-line interface router for crossexam."""

from __future__ import annotations

import argparse
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final

import yaml

from crossexam.config import (
    ConfigLoadError,
    ConfigValidationError,
    load_config,
    redact_config,
)
from crossexam.control_plane import SessionOrchestrator
from crossexam.domain.models import IssueFilter, Role, Verdict
from crossexam.observability import configure_logging
from crossexam.ui.render import CLIRenderer, OutputFormat, create_renderer, dump_payload

STDIN_MARKER: Final[str] = "-"


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 1

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for every session operation."""

    parser = argparse.ArgumentParser(
        prog="crossexam",
        description=(
            "crossexam — adversarial verifier/critic review sessions.\n\n"
            "Common workflows:\n"
            "  crossexam start src/auth -r 'security review'   Open a session\n"
            "  crossexam context <session-id>                  Show what the next role sees\n"
            "  crossexam submit <session-id> --role verifier -o round1.md --issues issues.yaml\n"
            "  crossexam end <session-id> --verdict PASS       Close the session\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to crossexam TOML config (default: ./crossexam.toml if present).",
    )
    common.add_argument("--profile", default=None, help="Optional config profile overlay name.")
    common.add_argument(
        "--sessions-dir",
        default=None,
        help="Override storage.sessions_dir for this invocation.",
    )
    common.add_argument(
        "--format",
        dest="output_format",
        choices=[item.value for item in OutputFormat],
        default=OutputFormat.JSON.value,
        help="Output format (default: json).",
    )
    common.add_argument("--log-level", default=None, help="Override observability.log_level.")
    common.add_argument(
        "--no-color",
        action="store_true",
        default=False,
        help="Disable colored output (also respects NO_COLOR env var).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # start ---------------------------------------------------------------
    start_parser = subparsers.add_parser(
        "start", parents=[common], help="Start a review session over a file or directory"
    )
    start_parser.add_argument("target", help="File or directory under review")
    start_parser.add_argument("--requirements", "-r", default="", help="Free-text review goals")
    start_parser.add_argument(
        "--working-dir", default=None, help="Directory paths are resolved against (default: cwd)"
    )
    start_parser.add_argument("--max-rounds", type=_positive_int, default=None)
    start_parser.set_defaults(handler=_cmd_start)

    # context -------------------------------------------------------------
    context_parser = subparsers.add_parser(
        "context", parents=[common], help="Show session context, round and issue summary"
    )
    context_parser.add_argument("session_id")
    context_parser.set_defaults(handler=_cmd_context)

    # submit --------------------------------------------------------------
    submit_parser = subparsers.add_parser(
        "submit",
        parents=[common],
        help="Submit one verifier or critic round",
        description=(
            "Record a round. Output text is read from --output (use '-' for stdin).\n"
            "--issues points at a JSON or YAML list of issue objects with\n"
            "id, category, severity, summary and optional location/description/evidence."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    submit_parser.add_argument("session_id")
    submit_parser.add_argument("--role", required=True, choices=[item.value for item in Role])
    submit_parser.add_argument("--output", "-o", dest="output_path", default=STDIN_MARKER)
    submit_parser.add_argument("--issues", dest="issues_path", default=None)
    submit_parser.add_argument("--resolved", nargs="*", default=[], metavar="ISSUE_ID")
    submit_parser.add_argument("--challenged", nargs="*", default=[], metavar="ISSUE_ID")
    submit_parser.set_defaults(handler=_cmd_submit)

    # issues --------------------------------------------------------------
    issues_parser = subparsers.add_parser("issues", parents=[common], help="List session issues")
    issues_parser.add_argument("session_id")
    issues_parser.add_argument(
        "--filter",
        dest="issue_filter",
        choices=[item.value for item in IssueFilter],
        default=IssueFilter.ALL.value,
    )
    issues_parser.set_defaults(handler=_cmd_issues)

    # checkpoint / rollback ----------------------------------------------
    checkpoint_parser = subparsers.add_parser(
        "checkpoint", parents=[common], help="Snapshot the session at its current round"
    )
    checkpoint_parser.add_argument("session_id")
    checkpoint_parser.set_defaults(handler=_cmd_checkpoint)

    rollback_parser = subparsers.add_parser(
        "rollback", parents=[common], help="Restore the session to a checkpointed round"
    )
    rollback_parser.add_argument("session_id")
    rollback_parser.add_argument("to_round", type=_non_negative_int)
    rollback_parser.set_defaults(handler=_cmd_rollback)

    # end / list ----------------------------------------------------------
    end_parser = subparsers.add_parser("end", parents=[common], help="Close a session")
    end_parser.add_argument("session_id")
    end_parser.add_argument("--verdict", required=True, choices=[item.value for item in Verdict])
    end_parser.set_defaults(handler=_cmd_end)

    list_parser = subparsers.add_parser("list", parents=[common], help="List stored sessions")
    list_parser.set_defaults(handler=_cmd_list)

    # graph ---------------------------------------------------------------
    ripple_parser = subparsers.add_parser(
        "ripple", parents=[common], help="Files affected by changing a file or function"
    )
    ripple_parser.add_argument("session_id")
    ripple_parser.add_argument("changed_file")
    ripple_parser.add_argument("--function", dest="changed_function", default=None)
    ripple_parser.set_defaults(handler=_cmd_ripple)

    mediator_parser = subparsers.add_parser(
        "mediator", parents=[common], help="Graph stats, coverage and intervention history"
    )
    mediator_parser.add_argument("session_id")
    mediator_parser.set_defaults(handler=_cmd_mediator)

    # config --------------------------------------------------------------
    config_parser = subparsers.add_parser(
        "config", parents=[common], help="Show effective configuration (redacted)"
    )
    config_parser.set_defaults(handler=_cmd_config)

    return parser


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_start(args: argparse.Namespace) -> int:
    orchestrator = _orchestrator(args)
    result = orchestrator.start_session(
        args.target,
        args.requirements,
        args.working_dir,
        max_rounds=args.max_rounds,
    )
    if result is None:
        raise CLIError("session could not be created")
    payload = result.to_dict()

    if _format(args) is OutputFormat.TEXT:
        renderer = _get_renderer(args)
        renderer.kv("Session", result.session_id)
        renderer.kv("Status", result.status.value)
        renderer.kv("Files", result.file_count)
        renderer.kv("Max rounds", result.max_rounds)
        if result.critical_files:
            renderer.section("Critical files:")
            renderer.items(list(result.critical_files))
        renderer.section(result.context_summary)
        renderer.next_steps([f"crossexam context {result.session_id}"])
        return 0
    return _emit(args, payload)


def _cmd_context(args: argparse.Namespace) -> int:
    view = _orchestrator(args).get_context(args.session_id)
    if view is None:
        raise CLIError(f"session not found: {args.session_id}")

    if _format(args) is OutputFormat.TEXT:
        renderer = _get_renderer(args)
        renderer.kv("Session", view.session_id)
        renderer.kv("Status", view.status.value)
        renderer.kv("Round", f"{view.current_round}/{view.max_rounds}")
        renderer.kv("Next role", view.next_role.value)
        renderer.kv("Unresolved issues", view.issues_summary.unresolved)
        rows = [
            [item.path, item.layer.value, str(item.added_in_round or "")] for item in view.files
        ]
        renderer.table(["PATH", "LAYER", "ROUND"], rows, title="Files:")
        return 0
    return _emit(args, view.to_dict())


def _cmd_submit(args: argparse.Namespace) -> int:
    output = _read_text(args.output_path)
    issues = _read_issues(args.issues_path) if args.issues_path else []
    result = _orchestrator(args).submit_round(
        args.session_id,
        args.role,
        output,
        issues_raised=issues,
        issues_resolved=list(args.resolved),
        issues_challenged=list(args.challenged),
    )
    if result is None:
        raise CLIError("round was not recorded")

    if _format(args) is OutputFormat.TEXT:
        renderer = _get_renderer(args)
        renderer.kv("Round", result.round_number)
        renderer.kv("Issues raised", result.issues_raised)
        renderer.kv("Issues resolved", result.issues_resolved)
        renderer.kv("Converged", result.convergence.is_converged)
        renderer.kv("Reason", result.convergence.reason)
        renderer.kv("Compliance score", result.compliance.score)
        if result.new_files_discovered:
            renderer.section("New files:")
            renderer.items(list(result.new_files_discovered))
        if result.intervention is not None:
            renderer.warning(f"{result.intervention.type.value}: {result.intervention.reason}")
        for item in result.mediator_interventions:
            renderer.warning(f"{item.type.value}: {item.reason}")
        renderer.kv("Next role", result.next_role.value)
        return 0
    return _emit(args, result.to_dict())


def _cmd_issues(args: argparse.Namespace) -> int:
    issues = _orchestrator(args).get_issues(args.session_id, args.issue_filter)
    if issues is None:
        raise CLIError(f"session not found: {args.session_id}")

    if _format(args) is OutputFormat.TEXT:
        renderer = _get_renderer(args)
        if not issues:
            renderer.text("No issues.")
            return 0
        renderer.table(
            ["ID", "SEVERITY", "STATUS", "SUMMARY"],
            [[item.id, item.severity.value, item.status.value, item.summary] for item in issues],
        )
        return 0
    return _emit(args, {"issues": [item.to_dict() for item in issues]})


def _cmd_checkpoint(args: argparse.Namespace) -> int:
    result = _orchestrator(args).checkpoint(args.session_id)
    if result is None:
        raise CLIError(f"session not found: {args.session_id}")
    return _emit(args, result.to_dict())


def _cmd_rollback(args: argparse.Namespace) -> int:
    result = _orchestrator(args).rollback(args.session_id, args.to_round)
    if result is None:
        raise CLIError(f"no checkpoint at round {args.to_round} for session {args.session_id}")
    return _emit(args, result.to_dict())


def _cmd_end(args: argparse.Namespace) -> int:
    summary = _orchestrator(args).end_session(args.session_id, args.verdict)
    if summary is None:
        raise CLIError(f"session not found: {args.session_id}")
    return _emit(args, summary.to_dict())


def _cmd_list(args: argparse.Namespace) -> int:
    session_ids = _orchestrator(args).list_sessions()
    if _format(args) is OutputFormat.TEXT:
        renderer = _get_renderer(args)
        if not session_ids:
            renderer.text("No sessions.")
        renderer.items(session_ids, prefix="")
        return 0
    return _emit(args, {"sessions": session_ids})


def _cmd_ripple(args: argparse.Namespace) -> int:
    effect = _orchestrator(args).ripple_effect(
        args.session_id, args.changed_file, args.changed_function
    )
    if effect is None:
        raise CLIError(f"file not found in session graph: {args.changed_file}")

    if _format(args) is OutputFormat.TEXT:
        renderer = _get_renderer(args)
        renderer.kv("Changed", effect.changed_file)
        renderer.kv("Total affected", effect.total_affected)
        renderer.kv("Max depth", effect.max_depth)
        renderer.table(
            ["DEPTH", "IMPACT", "PATH", "REASON"],
            [
                [str(item.depth), item.impact.value, item.path, item.reason]
                for item in effect.affected_files
            ],
            title="Affected files:",
        )
        return 0
    return _emit(args, effect.to_dict())


def _cmd_mediator(args: argparse.Namespace) -> int:
    summary = _orchestrator(args).mediator_summary(args.session_id)
    if summary is None:
        raise CLIError(f"session not found: {args.session_id}")
    return _emit(args, summary)


def _cmd_config(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    payload: dict[str, object] = {
        "command": "config",
        "active_profile": args.profile,
        "config": redact_config(config),
    }
    return _emit(args, payload)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _emit(args: argparse.Namespace, payload: Mapping[str, object]) -> int:
    selected = _format(args)
    if selected is OutputFormat.TEXT:
        _get_renderer(args).mapping(payload)
    else:
        sys.stdout.write(dump_payload(dict(payload), selected))
    return 0


def _format(args: argparse.Namespace) -> OutputFormat:
    return OutputFormat(getattr(args, "output_format", OutputFormat.JSON.value))


def _get_renderer(args: argparse.Namespace) -> CLIRenderer:
    return create_renderer(no_color=bool(getattr(args, "no_color", False)))


def _load_effective_config(args: argparse.Namespace) -> dict[str, Any]:
    overrides: dict[str, object] = {}
    sessions_dir = getattr(args, "sessions_dir", None)
    if sessions_dir:
        overrides["storage.sessions_dir"] = str(Path(sessions_dir).expanduser().resolve())
    log_level = getattr(args, "log_level", None)
    if log_level:
        overrides["observability.log_level"] = log_level.upper()

    try:
        return load_config(args.config_path, profile=args.profile, cli_overrides=overrides)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=2) from exc


def _orchestrator(args: argparse.Namespace) -> SessionOrchestrator:
    config = _load_effective_config(args)
    configure_logging(config.get("observability"))
    return SessionOrchestrator.from_config(config)


def _read_text(path_arg: str) -> str:
    if path_arg == STDIN_MARKER:
        return sys.stdin.read()
    path = Path(path_arg).expanduser()
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise CLIError(f"cannot read {path}: {exc}", exit_code=2) from exc


def _read_issues(path_arg: str) -> list[Mapping[str, object]]:
    """Load a JSON or YAML list of issue reports (JSON is valid YAML)."""

    raw = _read_text(path_arg)
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise CLIError(f"invalid issues file {path_arg}: {exc}", exit_code=2) from exc
    if parsed is None:
        return []
    if isinstance(parsed, Mapping) and "issues" in parsed:
        parsed = parsed["issues"]
    if not isinstance(parsed, list) or not all(isinstance(item, Mapping) for item in parsed):
        raise CLIError(f"issues file {path_arg} must contain a list of objects", exit_code=2)
    return list(parsed)


def _positive_int(raw: str) -> int:
    value = int(raw)
    if value < 1:
        raise argparse.ArgumentTypeError("must be >= 1")
    return value


def _non_negative_int(raw: str) -> int:
    value = int(raw)
    if value < 0:
        raise argparse.ArgumentTypeError("must be >= 0")
    return value


__all__ = ["CLIError", "build_parser", "run_cli"]
