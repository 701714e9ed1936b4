"""
craftchain: CLI subprocess contracts

File: tests/integration/test_craftchain_cli.py

Purpose
- Exercise `python -m craftchain` end to end against a temporary SQLite state DB.
- Verify exit codes, JSON payloads, persisted side effects, and the JSONL log sink.
"""

from __future__ import annotations

import json
import os
import subprocess
import sys
from pathlib import Path
from typing import Any

from craftchain.domain.ids import generate_item_id

PROJECT_ROOT = Path(__file__).resolve().parents[2]
SRC_PATH = PROJECT_ROOT / "src"


def _run_cli(workdir: Path, *args: str) -> subprocess.CompletedProcess[str]:
    env = os.environ.copy()
    existing_pythonpath = env.get("PYTHONPATH")
    src_pythonpath = str(SRC_PATH)
    env["PYTHONPATH"] = (
        src_pythonpath if not existing_pythonpath else f"{src_pythonpath}:{existing_pythonpath}"
    )
    env["PYTHONIOENCODING"] = "utf-8"
    for name in list(env):
        if name.startswith("CRAFTCHAIN_"):
            del env[name]
    return subprocess.run(
        [sys.executable, "-m", "craftchain", *args],
        cwd=workdir,
        text=True,
        encoding="utf-8",
        capture_output=True,
        check=False,
        env=env,
    )


def _run_json(workdir: Path, *args: str, expected_code: int = 0) -> dict[str, Any]:
    completed = _run_cli(workdir, *args, "--db", "state.sqlite", "--json")
    assert completed.returncode == expected_code, completed.stderr
    payload = json.loads(completed.stdout)
    assert isinstance(payload, dict)
    return payload


def test_gated_crafting_flow(tmp_path: Path) -> None:
    a = _run_json(tmp_path, "item", "create", "p1", "A", "--required", "5")["item"]
    b = _run_json(
        tmp_path, "item", "create", "p1", "B", "--required", "1", "--dep", f"{a['id']}:5"
    )["item"]
    assert b["dependencies"] == [{"item_id": a["id"], "qty": 5}]

    crafted = _run_json(tmp_path, "item", "craft", a["id"], "--by", "2", "--user", "alice")
    assert crafted["item"]["completed_qty"] == 2

    blocked = _run_cli(
        tmp_path, "item", "craft", b["id"], "--user", "alice", "--db", "state.sqlite", "--json"
    )
    assert blocked.returncode == 1
    assert 'error: Cannot craft. Dependency "A" incomplete' in blocked.stderr
    error = json.loads(blocked.stdout)["error"]
    assert error["kind"] == "dependency_incomplete"
    assert (error["dependency_id"], error["completed_qty"], error["required_qty"]) == (
        a["id"],
        2,
        5,
    )

    readiness = _run_json(tmp_path, "item", "readiness", b["id"])["readiness"]
    assert readiness["ready"] is False

    _run_json(tmp_path, "item", "craft", a["id"], "--by", "10", "--user", "bob")
    finished = _run_json(tmp_path, "item", "craft", b["id"], "--user", "alice")["item"]
    assert finished["completed_qty"] == 1

    activity = _run_json(tmp_path, "project", "activity", "p1")["activity"]
    assert [(entry["item_id"], entry["quantity"]) for entry in activity] == [
        (b["id"], 1),
        (a["id"], 10),
        (a["id"], 2),
    ]
    limited = _run_json(tmp_path, "project", "activity", "p1", "--limit", "1")["activity"]
    assert len(limited) == 1

    history = _run_json(tmp_path, "item", "activity", a["id"])["activity"]
    assert [(entry["user_id"], entry["quantity"]) for entry in history] == [
        ("bob", 10),
        ("alice", 2),
    ]

    tree = _run_json(tmp_path, "item", "tree", b["id"])["tree"]
    assert tree["dependencies"][0]["node"]["completed_qty"] == 5

    log_path = tmp_path / "logs" / "craftchain.jsonl"
    rejected = [
        json.loads(line)
        for line in log_path.read_text(encoding="utf-8").splitlines()
        if "craft_rejected" in line
    ]
    assert len(rejected) == 1
    assert rejected[0]["command"] == "item craft"
    assert rejected[0]["user_id"] == "alice"


def test_add_dependency_by_name_rejects_cycles(tmp_path: Path) -> None:
    _run_json(tmp_path, "item", "create", "p1", "Sword", "--required", "1")
    _run_json(tmp_path, "item", "create", "p1", "Hilt", "--required", "1")
    linked = _run_json(tmp_path, "item", "add-dependency", "p1", "Hilt", "Sword")["item"]
    assert len(linked["dependencies"]) == 1

    payload = _run_json(
        tmp_path, "item", "add-dependency", "p1", "Sword", "Hilt", "--qty", "2", expected_code=1
    )

    error = payload["error"]
    assert error["kind"] == "invalid_operation"
    assert error["reason"] == "circular_dependency"
    assert error["message"] == "Circular dependency detected"

    missing = _run_json(
        tmp_path, "item", "add-dependency", "p1", "Sword", "Shield", expected_code=3
    )
    assert missing["error"]["kind"] == "not_found"


def test_contributions_and_progress(tmp_path: Path) -> None:
    ore = _run_json(tmp_path, "item", "create", "p1", "Ore", "--required", "10")["item"]
    updated = _run_json(tmp_path, "item", "contribute", ore["id"], "4", "--user", "bob")["item"]
    contribution_id = updated["contributions"][0]["id"]
    assert updated["completed_qty"] == 0

    progress = _run_json(tmp_path, "project", "progress", "p1")
    assert progress["total_contributed"] == 4
    assert progress["contributions"][0]["item_name"] == "Ore"

    for _ in range(2):
        removed = _run_json(
            tmp_path, "item", "uncontribute", ore["id"], contribution_id, "--user", "carol"
        )
        assert removed["item"]["contributions"] == []
    assert _run_json(tmp_path, "project", "progress", "p1")["total_contributed"] == 0


def test_bulk_insert_and_text_tree(tmp_path: Path) -> None:
    first, second = generate_item_id(), generate_item_id()
    bulk_file = tmp_path / "items.json"
    bulk_file.write_text(
        json.dumps(
            {
                "items": [
                    {
                        "id": first,
                        "name": "Gear",
                        "required_qty": 2,
                        "dependencies": [{"item_id": second, "qty": 3}],
                    },
                    {
                        "id": second,
                        "name": "Cog",
                        "required_qty": 3,
                        "dependencies": [{"item_id": first, "qty": 1}],
                    },
                ]
            }
        ),
        encoding="utf-8",
    )

    inserted = _run_json(tmp_path, "item", "bulk", "p2", str(bulk_file))["items"]
    assert [entry["name"] for entry in inserted] == ["Gear", "Cog"]
    assert len(_run_json(tmp_path, "project", "items", "p2")["items"]) == 2

    completed = _run_cli(tmp_path, "item", "tree", first, "--db", "state.sqlite", "--no-color")
    assert completed.returncode == 0, completed.stderr
    lines = completed.stdout.splitlines()
    assert lines == [
        f"Gear [{first}] 0/2",
        f"└── x3 Cog [{second}] 0/3",
        f"    └── x1 {first} (Circular dependency detected)",
    ]


def test_not_found_and_invalid_input_exit_codes(tmp_path: Path) -> None:
    missing = _run_cli(tmp_path, "item", "tree", generate_item_id(), "--db", "state.sqlite")
    assert missing.returncode == 3
    assert missing.stderr.startswith("error: Item not found")

    invalid = _run_cli(
        tmp_path, "item", "create", "p1", "Sword", "--required", "0", "--db", "state.sqlite"
    )
    assert invalid.returncode == 1

    bad_dep = _run_cli(
        tmp_path, "item", "create", "p1", "Sword", "--required", "1", "--dep", "nocolon"
    )
    assert bad_dep.returncode == 1
    assert "ITEM_ID:QTY" in bad_dep.stderr

    too_long = _run_json(
        tmp_path, "item", "create", "p1", "x" * 300, "--required", "1", expected_code=1
    )
    assert too_long["error"]["kind"] == "invalid_input"
    assert too_long["error"]["field"] == "name"

    plain = _run_cli(
        tmp_path, "item", "create", "p1", "x" * 300, "--required", "1", "--db", "state.sqlite"
    )
    assert plain.returncode == 1
    assert plain.stderr.startswith("error: name must be at most 256 characters")
    assert "Traceback" not in plain.stderr


def test_migrate_status_apply_and_check(tmp_path: Path) -> None:
    status = _run_json(tmp_path, "migrate", "--status")
    assert status["applied"] == []
    assert status["pending"] == ["initial_item_store", "craft_activity_ledger"]

    applied = _run_json(tmp_path, "migrate")
    assert applied["applied"] == ["initial_item_store", "craft_activity_ledger"]
    assert applied["schema_version"] == 2
    assert _run_json(tmp_path, "migrate")["applied"] == []

    after = _run_json(tmp_path, "migrate", "--status")
    assert [entry["version"] for entry in after["applied"]] == [1, 2]
    assert after["pending"] == []

    assert _run_json(tmp_path, "migrate", "--check") == {
        "command": "migrate",
        "ok": True,
        "problems": [],
    }


def test_config_errors_exit_with_config_code(tmp_path: Path) -> None:
    (tmp_path / "craftchain.toml").write_text("[activity]\nfeed_limit = 0\n", encoding="utf-8")

    completed = _run_cli(tmp_path, "project", "items", "p1")
    assert completed.returncode == 2
    assert "activity.feed_limit" in completed.stderr

    missing = _run_cli(tmp_path, "config", "--config", "nope.toml")
    assert missing.returncode == 2
    assert "config file not found" in missing.stderr


def test_config_command_prints_effective_config(tmp_path: Path) -> None:
    (tmp_path / "craftchain.toml").write_text("[activity]\nfeed_limit = 7\n", encoding="utf-8")

    config = _run_json(tmp_path, "config")["config"]

    assert config["activity"]["feed_limit"] == 7
    assert config["paths"]["state_db"] == (tmp_path.resolve() / "state.sqlite").as_posix()
    assert config["observability"]["redact_secrets"] is True
