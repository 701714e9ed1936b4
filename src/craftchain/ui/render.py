"""Output rendering abstraction for the craftchain CLI.

File: src/craftchain/ui/render.py

Purpose
- Provide a thin rendering layer for CLI output.
- Respect NO_COLOR environment variable and --no-color CLI flag.

What should be included in this file
- CLIRenderer class with methods for common output patterns.
- Dependency tree rendering with explicit markers for truncated and missing edges.
- Factory function to create a renderer with appropriate settings.

Functional requirements
- Plain-text rendering must always work without external dependencies.
- Tree rendering is iterative so deep graphs cannot exhaust the stack.
"""

from __future__ import annotations

import os
import sys
from typing import TYPE_CHECKING, Final, TextIO

from craftchain.domain.models import TreeEdgeStatus

if TYPE_CHECKING:
    from collections.abc import Sequence

    from craftchain.domain.models import ActivityRecord, Item, TreeEdge, TreeNode

_GREEN: Final[str] = "\033[32m"
_YELLOW: Final[str] = "\033[33m"
_RED: Final[str] = "\033[31m"
_RESET: Final[str] = "\033[0m"


def _color_allowed(no_color_flag: bool, stream: TextIO) -> bool:
    """Check whether color output should be attempted."""

    if no_color_flag:
        return False
    if os.environ.get("NO_COLOR", ""):
        return False
    return hasattr(stream, "isatty") and stream.isatty()


class CLIRenderer:
    """Thin CLI output renderer.

    Produces clean, deterministic plain-text output.
    Respects ``NO_COLOR`` env var and ``--no-color`` flag.
    """

    def __init__(
        self,
        *,
        no_color: bool = False,
        verbose: bool = False,
        stream: TextIO | None = None,
    ) -> None:
        self.verbose = verbose
        self._stream = stream if stream is not None else sys.stdout
        self._color = _color_allowed(no_color, self._stream)

    def _print(self, line: str = "") -> None:
        print(line, file=self._stream)

    def _paint(self, text: str, color: str) -> str:
        return f"{color}{text}{_RESET}" if self._color else text

    def heading(self, text: str) -> None:
        self._print(text)

    def kv(self, key: str, value: object) -> None:
        self._print(f"{key}: {value}")

    def text(self, line: str) -> None:
        self._print(line)

    def section(self, title: str) -> None:
        """Print a section header with a preceding blank line."""

        self._print(f"\n{title}")

    def warning(self, text: str) -> None:
        self._print(f"  Warning: {self._paint(text, _YELLOW)}")

    def items(self, entries: Sequence[str], *, prefix: str = "- ") -> None:
        for entry in entries:
            self._print(f"  {prefix}{entry}")

    def table(
        self,
        headers: Sequence[str],
        rows: Sequence[Sequence[str]],
        *,
        title: str | None = None,
    ) -> None:
        """Print a formatted ASCII table."""

        if not rows:
            return

        col_count = len(headers)
        widths = [len(h) for h in headers]
        for row in rows:
            for i in range(min(len(row), col_count)):
                widths[i] = max(widths[i], len(str(row[i])))

        def _pad(cells: Sequence[str]) -> str:
            parts: list[str] = []
            for i in range(col_count):
                cell = str(cells[i]) if i < len(cells) else ""
                parts.append(cell.ljust(widths[i]))
            return "  ".join(parts).rstrip()

        if title:
            self.section(title)
        self._print(f"  {_pad(list(headers))}")
        self._print(f"  {'  '.join('-' * w for w in widths)}")
        for row in rows:
            self._print(f"  {_pad(list(row))}")

    def ok(self, label: str) -> None:
        self._print(f"  {self._paint('OK', _GREEN)}  {label}")

    def fail(self, label: str) -> None:
        self._print(f"  {self._paint('FAIL', _RED)}  {label}")

    # ------------------------------------------------------------------
    # Domain views
    # ------------------------------------------------------------------

    def item(self, item: Item) -> None:
        """Print one item summary, with edges and contributions when verbose."""

        self.heading(f"{item.name} [{item.id}]")
        self.kv("  progress", _progress(item.completed_qty, item.required_qty))
        self.kv("  contributed", item.contributed_qty)
        if item.dependencies:
            self.kv("  dependencies", len(item.dependencies))
        if self.verbose:
            self.items([f"{edge.item_id} x{edge.qty}" for edge in item.dependencies])
            self.items(
                [
                    f"{entry.id} {entry.user_id} +{entry.qty}"
                    for entry in item.contributions
                ],
                prefix="* ",
            )

    def item_table(self, items: Sequence[Item], *, title: str | None = None) -> None:
        self.table(
            ("ID", "NAME", "PROGRESS", "CONTRIBUTED", "DEPS"),
            [
                (
                    entry.id,
                    entry.name,
                    _progress(entry.completed_qty, entry.required_qty),
                    str(entry.contributed_qty),
                    str(len(entry.dependencies)),
                )
                for entry in items
            ],
            title=title,
        )

    def activity_table(self, records: Sequence[ActivityRecord]) -> None:
        self.table(
            ("WHEN", "USER", "ITEM", "QTY", "TYPE"),
            [
                (
                    str(record.to_dict()["created_at"]),
                    record.user_id,
                    record.item_id,
                    str(record.quantity),
                    record.type.value,
                )
                for record in records
            ],
        )

    def tree(self, root: TreeNode) -> None:
        """Print a dependency tree using box-drawing guides."""

        self._print(_node_label(root))
        stack: list[tuple[TreeEdge, str, bool]] = [
            (edge, "", index == len(root.children) - 1)
            for index, edge in reversed(list(enumerate(root.children)))
        ]
        while stack:
            edge, indent, last = stack.pop()
            branch = "└── " if last else "├── "
            self._print(f"{indent}{branch}{self._edge_label(edge)}")
            if edge.node is None:
                continue
            child_indent = indent + ("    " if last else "│   ")
            children = edge.node.children
            stack.extend(
                (child, child_indent, index == len(children) - 1)
                for index, child in reversed(list(enumerate(children)))
            )

    def _edge_label(self, edge: TreeEdge) -> str:
        if edge.status is TreeEdgeStatus.EXPANDED and edge.node is not None:
            return f"x{edge.qty} {_node_label(edge.node)}"
        color = _YELLOW if edge.status is TreeEdgeStatus.TRUNCATED else _RED
        return f"x{edge.qty} {edge.dependency_id} " + self._paint(f"({edge.message})", color)


def _progress(completed: int, required: int) -> str:
    return f"{completed}/{required}"


def _node_label(node: TreeNode) -> str:
    return f"{node.name} [{node.id}] {_progress(node.completed_qty, node.required_qty)}"


def create_renderer(*, no_color: bool = False, verbose: bool = False) -> CLIRenderer:
    """Create a CLI renderer with the given settings."""

    return CLIRenderer(no_color=no_color, verbose=verbose)


__all__ = ["CLIRenderer", "create_renderer"]
