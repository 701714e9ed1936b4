"""Command-line interface router for craftchain."""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final

from craftchain.config import (
    ConfigLoadError,
    ConfigValidationError,
    load_config,
    redact_config,
)
from craftchain.errors import CraftChainError
from craftchain.main import ExitCode, exit_code_for_error
from craftchain.observability import (
    LoggingConfig,
    configure_logging,
    correlation_scope,
    shutdown_logging,
)
from craftchain.persistence import StateDB
from craftchain.service import CraftChainService
from craftchain.ui.render import CLIRenderer, create_renderer

_DEPENDENCY_SEPARATOR: Final[str] = ":"


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = int(ExitCode.INVALID_REQUEST)

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for all supported CLI workflows."""

    parser = argparse.ArgumentParser(
        prog="craftchain",
        description=(
            "craftchain: dependency-gated progress tracking for crafting projects.\n\n"
            "Common workflows:\n"
            "  craftchain item create p1 Sword --required 1 --dep <hilt-id>:1\n"
            "  craftchain item craft <item-id> --by 3 --user alice\n"
            "  craftchain item tree <item-id>\n"
            "  craftchain project activity p1\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to craftchain TOML config (default: ./craftchain.toml if present).",
    )
    common.add_argument(
        "--db",
        dest="db_path",
        default=None,
        help="State DB path; overrides paths.state_db.",
    )
    common.add_argument("--json", action="store_true", help="Emit deterministic JSON output")
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Show detailed output and log to stderr.",
    )
    common.add_argument(
        "--no-color",
        action="store_true",
        default=False,
        help="Disable colored output (also respects NO_COLOR env var).",
    )
    acting_user = argparse.ArgumentParser(add_help=False)
    acting_user.add_argument("--user", dest="user_id", required=True, help="Acting user id")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # item ----------------------------------------------------------------
    item_parser = subparsers.add_parser("item", help="Create, link, craft and inspect items")
    item_commands = item_parser.add_subparsers(dest="item_command", required=True)

    create = item_commands.add_parser(
        "create",
        parents=[common],
        help="Create an item, optionally with initial dependencies",
    )
    create.add_argument("project_id")
    create.add_argument("name")
    create.add_argument("--required", dest="required_qty", type=int, required=True)
    create.add_argument(
        "--dep",
        dest="dependencies",
        action="append",
        default=[],
        metavar="ITEM_ID:QTY",
        help="Dependency item id with the quantity consumed (repeatable)",
    )
    create.set_defaults(handler=_cmd_item_create)

    add_dependency = item_commands.add_parser(
        "add-dependency",
        parents=[common],
        help="Add a dependency edge between two items by name",
    )
    add_dependency.add_argument("project_id")
    add_dependency.add_argument("parent_name")
    add_dependency.add_argument("dependency_name")
    add_dependency.add_argument("--qty", type=int, default=1)
    add_dependency.set_defaults(handler=_cmd_item_add_dependency)

    bulk = item_commands.add_parser(
        "bulk",
        parents=[common],
        help="Insert items from a JSON file without cycle validation",
    )
    bulk.add_argument("project_id")
    bulk.add_argument("file", help="JSON list of items, or an object with an 'items' list")
    bulk.set_defaults(handler=_cmd_item_bulk)

    tree = item_commands.add_parser("tree", parents=[common], help="Show the dependency tree")
    tree.add_argument("item_id")
    tree.set_defaults(handler=_cmd_item_tree)

    craft = item_commands.add_parser(
        "craft",
        parents=[common, acting_user],
        help="Apply dependency-gated crafting progress",
    )
    craft.add_argument("item_id")
    craft.add_argument("--by", dest="increment_by", type=int, default=1)
    craft.set_defaults(handler=_cmd_item_craft)

    readiness = item_commands.add_parser(
        "readiness",
        parents=[common],
        help="Report which dependencies block crafting",
    )
    readiness.add_argument("item_id")
    readiness.set_defaults(handler=_cmd_item_readiness)

    item_activity = item_commands.add_parser(
        "activity",
        parents=[common],
        help="Crafted history of one item, newest first",
    )
    item_activity.add_argument("item_id")
    item_activity.add_argument("--limit", type=int, default=None)
    item_activity.set_defaults(handler=_cmd_item_activity)

    contribute = item_commands.add_parser(
        "contribute",
        parents=[common, acting_user],
        help="Record a raw resource contribution",
    )
    contribute.add_argument("item_id")
    contribute.add_argument("qty", type=int)
    contribute.set_defaults(handler=_cmd_item_contribute)

    uncontribute = item_commands.add_parser(
        "uncontribute",
        parents=[common, acting_user],
        help="Remove a contribution (no-op when absent)",
    )
    uncontribute.add_argument("item_id")
    uncontribute.add_argument("contribution_id")
    uncontribute.set_defaults(handler=_cmd_item_uncontribute)

    # project -------------------------------------------------------------
    project_parser = subparsers.add_parser("project", help="Project-wide views")
    project_commands = project_parser.add_subparsers(dest="project_command", required=True)

    items = project_commands.add_parser("items", parents=[common], help="List project items")
    items.add_argument("project_id")
    items.set_defaults(handler=_cmd_project_items)

    activity = project_commands.add_parser(
        "activity",
        parents=[common],
        help="Recent crafted activity, newest first",
    )
    activity.add_argument("project_id")
    activity.add_argument("--limit", type=int, default=None)
    activity.set_defaults(handler=_cmd_project_activity)

    progress = project_commands.add_parser(
        "progress",
        parents=[common],
        help="Total contributed quantity and contributions, newest first",
    )
    progress.add_argument("project_id")
    progress.set_defaults(handler=_cmd_project_progress)

    # migrate -------------------------------------------------------------
    migrate = subparsers.add_parser(
        "migrate",
        parents=[common],
        help="Apply state DB migrations",
    )
    mode = migrate.add_mutually_exclusive_group()
    mode.add_argument("--status", action="store_true", help="List applied and pending migrations")
    mode.add_argument("--check", action="store_true", help="Run the SQLite integrity check")
    migrate.set_defaults(handler=_cmd_migrate)

    # config --------------------------------------------------------------
    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Print the effective (redacted) configuration",
    )
    config_parser.set_defaults(handler=_cmd_config)

    return parser


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler: Callable[[argparse.Namespace, dict[str, object]], int] | None = getattr(
        namespace, "handler", None
    )
    if not callable(handler):
        parser.print_help(sys.stderr)
        return int(ExitCode.CONFIG_ERROR)

    try:
        config = _load_effective_config(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code

    handle = configure_logging(
        LoggingConfig.from_settings(
            _section(config, "observability"),
            console=_flag(namespace, "verbose"),
            level_override="DEBUG" if _flag(namespace, "verbose") else None,
        )
    )
    try:
        with correlation_scope(command=_command_name(namespace)):
            return int(handler(namespace, config))
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    except CraftChainError as exc:
        if _flag(namespace, "json"):
            _emit_json({"command": _command_name(namespace), "error": exc.to_dict()})
        print(f"error: {exc.message}", file=sys.stderr)
        return int(exit_code_for_error(exc))
    finally:
        shutdown_logging(handle)


def main(argv: Sequence[str] | None = None) -> int:
    """Compatibility wrapper for main-module wiring."""

    return run_cli(argv)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_item_create(args: argparse.Namespace, config: dict[str, object]) -> int:
    dependencies = [_parse_dependency(raw) for raw in args.dependencies]
    item = _service(config).create_item(
        args.project_id, args.name, args.required_qty, dependencies
    )
    if _flag(args, "json"):
        _emit_json({"command": "item create", "item": item.to_dict()})
        return 0
    renderer = _get_renderer(args)
    renderer.text(f"Created {item.name} [{item.id}]")
    return 0


def _cmd_item_add_dependency(args: argparse.Namespace, config: dict[str, object]) -> int:
    parent = _service(config).add_dependency_by_name(
        args.project_id, args.parent_name, args.dependency_name, args.qty
    )
    if _flag(args, "json"):
        _emit_json({"command": "item add-dependency", "item": parent.to_dict()})
        return 0
    renderer = _get_renderer(args)
    renderer.text(f"{parent.name} now depends on {args.dependency_name} x{args.qty}")
    return 0


def _cmd_item_bulk(args: argparse.Namespace, config: dict[str, object]) -> int:
    entries = _read_bulk_file(Path(args.file))
    inserted = _service(config).bulk_insert(args.project_id, entries)
    if _flag(args, "json"):
        _emit_json({"command": "item bulk", "items": [item.to_dict() for item in inserted]})
        return 0
    renderer = _get_renderer(args)
    renderer.text(f"Inserted {len(inserted)} item(s) into {args.project_id}")
    if renderer.verbose:
        renderer.item_table(inserted)
    return 0


def _cmd_item_tree(args: argparse.Namespace, config: dict[str, object]) -> int:
    root = _service(config).full_tree(args.item_id)
    if _flag(args, "json"):
        _emit_json({"command": "item tree", "tree": root.to_dict()})
        return 0
    _get_renderer(args).tree(root)
    return 0


def _cmd_item_craft(args: argparse.Namespace, config: dict[str, object]) -> int:
    item = _service(config).craft(args.item_id, args.increment_by, user_id=args.user_id)
    if _flag(args, "json"):
        _emit_json({"command": "item craft", "item": item.to_dict()})
        return 0
    renderer = _get_renderer(args)
    renderer.text(f"Crafted {item.name}: {item.completed_qty}/{item.required_qty}")
    if item.is_complete:
        renderer.ok(f"{item.name} complete")
    return 0


def _cmd_item_readiness(args: argparse.Namespace, config: dict[str, object]) -> int:
    readiness = _service(config).readiness(args.item_id)
    if _flag(args, "json"):
        _emit_json({"command": "item readiness", "readiness": readiness.to_dict()})
        return 0
    renderer = _get_renderer(args)
    if readiness.ready:
        renderer.ok(f"{args.item_id} can be crafted")
        return 0
    for entry in readiness.unmet:
        renderer.fail(f"{entry.name}: {entry.completed_qty}/{entry.required_qty}")
    return 0


def _cmd_item_activity(args: argparse.Namespace, config: dict[str, object]) -> int:
    records = _service(config).item_activity(args.item_id, args.limit)
    if _flag(args, "json"):
        _emit_json(
            {
                "command": "item activity",
                "item_id": args.item_id,
                "activity": [record.to_dict() for record in records],
            }
        )
        return 0
    renderer = _get_renderer(args)
    if not records:
        renderer.text(f"No activity for {args.item_id}")
        return 0
    renderer.activity_table(records)
    return 0


def _cmd_item_contribute(args: argparse.Namespace, config: dict[str, object]) -> int:
    item = _service(config).contribute(args.item_id, args.qty, user_id=args.user_id)
    if _flag(args, "json"):
        _emit_json({"command": "item contribute", "item": item.to_dict()})
        return 0
    renderer = _get_renderer(args)
    newest = item.contributions[-1]
    renderer.text(f"Recorded {newest.id}: {args.user_id} +{newest.qty} to {item.name}")
    renderer.kv("Contributed total", item.contributed_qty)
    return 0


def _cmd_item_uncontribute(args: argparse.Namespace, config: dict[str, object]) -> int:
    item = _service(config).remove_contribution(
        args.item_id, args.contribution_id, user_id=args.user_id
    )
    if _flag(args, "json"):
        _emit_json({"command": "item uncontribute", "item": item.to_dict()})
        return 0
    renderer = _get_renderer(args)
    renderer.kv("Contributed total", item.contributed_qty)
    return 0


def _cmd_project_items(args: argparse.Namespace, config: dict[str, object]) -> int:
    items = _service(config).project_items(args.project_id)
    if _flag(args, "json"):
        _emit_json(
            {
                "command": "project items",
                "project_id": args.project_id,
                "items": [item.to_dict() for item in items],
            }
        )
        return 0
    renderer = _get_renderer(args)
    if not items:
        renderer.text(f"No items in {args.project_id}")
        return 0
    if renderer.verbose:
        for item in items:
            renderer.item(item)
        return 0
    renderer.item_table(items, title=f"Items in {args.project_id}:")
    return 0


def _cmd_project_activity(args: argparse.Namespace, config: dict[str, object]) -> int:
    records = _service(config).project_activity(args.project_id, args.limit)
    if _flag(args, "json"):
        _emit_json(
            {
                "command": "project activity",
                "project_id": args.project_id,
                "activity": [record.to_dict() for record in records],
            }
        )
        return 0
    renderer = _get_renderer(args)
    if not records:
        renderer.text(f"No activity in {args.project_id}")
        return 0
    renderer.activity_table(records)
    return 0


def _cmd_project_progress(args: argparse.Namespace, config: dict[str, object]) -> int:
    progress = _service(config).project_progress(args.project_id)
    if _flag(args, "json"):
        _emit_json({"command": "project progress", **progress.to_dict()})
        return 0
    renderer = _get_renderer(args)
    renderer.kv("Total contributed", progress.total_contributed)
    renderer.table(
        ("WHEN", "USER", "ITEM", "QTY"),
        [
            (str(entry.to_dict()["created_at"]), entry.user_id, item.name, str(entry.qty))
            for item, entry in progress.contributions
        ],
    )
    return 0


def _cmd_migrate(args: argparse.Namespace, config: dict[str, object]) -> int:
    db = _state_db(config)
    renderer = _get_renderer(args)

    if _flag(args, "check"):
        problems = db.integrity_check()
        if _flag(args, "json"):
            _emit_json({"command": "migrate", "ok": not problems, "problems": list(problems)})
        elif problems:
            for problem in problems:
                renderer.fail(problem)
        else:
            renderer.ok(f"integrity check passed for {db.path}")
        return int(ExitCode.STORAGE_ERROR) if problems else 0

    if _flag(args, "status"):
        pending = db.pending_migrations()
        history = db.schema_history()
        if _flag(args, "json"):
            _emit_json(
                {
                    "command": "migrate",
                    "applied": [
                        {
                            "version": record.version,
                            "name": record.name,
                            "applied_at": record.applied_at,
                        }
                        for record in history
                    ],
                    "pending": list(pending),
                }
            )
            return 0
        renderer.table(
            ("VERSION", "NAME", "APPLIED AT"),
            [(str(record.version), record.name, record.applied_at) for record in history],
            title="Applied migrations:",
        )
        if pending:
            renderer.section("Pending migrations:")
            renderer.items(list(pending))
        return 0

    pending = db.pending_migrations()
    version = db.migrate()
    if _flag(args, "json"):
        _emit_json({"command": "migrate", "applied": list(pending), "schema_version": version})
        return 0
    renderer.kv("Schema version", version)
    if pending:
        renderer.section("Applied:")
        renderer.items(list(pending))
    else:
        renderer.text("Already up to date.")
    return 0


def _cmd_config(args: argparse.Namespace, config: dict[str, object]) -> int:
    redacted = redact_config(config)
    if _flag(args, "json"):
        _emit_json({"command": "config", "config": redacted})
        return 0
    _get_renderer(args).text(json.dumps(redacted, indent=2, sort_keys=True, ensure_ascii=False))
    return 0


# ---------------------------------------------------------------------------
# Rendering helpers
# ---------------------------------------------------------------------------


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _get_renderer(args: argparse.Namespace) -> CLIRenderer:
    return create_renderer(no_color=_flag(args, "no_color"), verbose=_flag(args, "verbose"))


# ---------------------------------------------------------------------------
# Helpers: config, storage, argument parsing
# ---------------------------------------------------------------------------


def _load_effective_config(args: argparse.Namespace) -> dict[str, object]:
    config_path = getattr(args, "config_path", None)
    overrides = {"paths.state_db": getattr(args, "db_path", None)}
    try:
        return load_config(config_path, cli_overrides=overrides)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=int(ExitCode.CONFIG_ERROR)) from exc


def _state_db(config: Mapping[str, object]) -> StateDB:
    paths = _section(config, "paths")
    storage = _section(config, "storage")
    return StateDB(
        str(paths["state_db"]),
        busy_timeout_ms=int(storage["busy_timeout_ms"]),
        busy_retry_limit=int(storage["busy_retry_limit"]),
        busy_retry_backoff_ms=int(storage["busy_retry_backoff_ms"]),
    )


def _service(config: Mapping[str, object]) -> CraftChainService:
    activity = _section(config, "activity")
    return CraftChainService.from_state_db(
        _state_db(config),
        feed_limit=int(activity["feed_limit"]),
        max_feed_limit=int(activity["max_feed_limit"]),
    )


def _section(config: Mapping[str, object], name: str) -> Mapping[str, Any]:
    section = config.get(name)
    if not isinstance(section, Mapping):
        raise CLIError(f"config section {name!r} is missing", exit_code=int(ExitCode.CONFIG_ERROR))
    return section


def _parse_dependency(raw: str) -> tuple[str, int]:
    item_id, separator, qty_text = raw.rpartition(_DEPENDENCY_SEPARATOR)
    if not separator or not item_id.strip():
        raise CLIError(f"dependency must look like ITEM_ID:QTY, got {raw!r}")
    try:
        qty = int(qty_text)
    except ValueError as exc:
        raise CLIError(f"dependency quantity must be an integer, got {qty_text!r}") from exc
    return item_id, qty


def _read_bulk_file(path: Path) -> list[object]:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise CLIError(f"cannot read bulk file {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise CLIError(f"bulk file {path} is not valid JSON: {exc}") from exc
    if isinstance(payload, Mapping):
        payload = payload.get("items")
    if not isinstance(payload, list):
        raise CLIError("bulk file must hold a list of items or an object with an 'items' list")
    return payload


def _command_name(args: argparse.Namespace) -> str:
    parts = [str(args.command)]
    for attr in ("item_command", "project_command"):
        value = getattr(args, attr, None)
        if isinstance(value, str):
            parts.append(value)
    return " ".join(parts)


def _flag(args: argparse.Namespace, name: str) -> bool:
    return bool(getattr(args, name, False))


__all__ = ["CLIError", "build_parser", "main", "run_cli"]
