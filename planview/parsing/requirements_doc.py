"""Requirement document parser (``Plan/re-plan.md`` dialect).

Recognised line shapes, tested in this order on every stripped line::

    ## R1. Title            → requirement, level 0
    ### R1.2 Title          → sub-requirement, level 1, parent R1
    - T1.2.3 Title          → task, parent = most recent requirement header

Everything else is ignored.  Fenced code blocks are skipped verbatim up to
their closing fence, so headers inside a mermaid diagram never leak into the
tree.

Public API
----------
``parse_requirements(text, strategy=ParentStrategy.CONTEXT)`` → list[PlanNode]
``group_children(nodes)``  → (roots, {parent_id: [children]})
``task_alignments(nodes)`` → list[(task_id, title, requirement_id)]
"""

from __future__ import annotations

import re
from collections import defaultdict
from enum import Enum

from planview.core.logging import get_logger
from planview.parsing.models import PlanNode

logger = get_logger("parsing.requirements_doc")

_MAIN_REQ_RE = re.compile(r"^##\s+R(\d+)\.(?!\d)\s*(.*)$")
_SUB_REQ_RE = re.compile(r"^###\s+R(\d+)\.(\d+)\.?(?:\s+(.*))?$")
_TASK_RE = re.compile(r"^-\s+T(\d+)\.(\d+)\.(\d+)\.?\s+(.+)$")
_FENCE_RE = re.compile(r"^(`{3,})")


class ParentStrategy(str, Enum):
    """How a task line finds its parent requirement.

    ``CONTEXT``: the most recently seen requirement header, whatever the
    task's own number says.  ``NUMERIC``: ``T<a>.<b>.<c>`` belongs to
    ``R<a>.<b>``; the task is dropped when that requirement was not seen yet.
    """

    CONTEXT = "context"
    NUMERIC = "numeric"


def parse_requirements(
    text: str,
    strategy: ParentStrategy = ParentStrategy.CONTEXT,
) -> list[PlanNode]:
    """Parse a requirement document into an ordered list of ``PlanNode``.

    Single pass, no backtracking.  A task line seen before any requirement
    header is dropped.  Ids are unique: a repeated requirement header makes
    the earlier node the current context again, a repeated task id is dropped.
    """
    nodes: list[PlanNode] = []
    seen: dict[str, PlanNode] = {}
    current: PlanNode | None = None
    fence: str | None = None
    dropped = 0

    for raw_line in text.splitlines():
        line = raw_line.strip()

        if fence is not None:
            if line.startswith(fence):
                fence = None
            continue

        if not line or line.startswith("<!--") or line.startswith("---"):
            continue

        fence_match = _FENCE_RE.match(line)
        if fence_match:
            fence = fence_match.group(1)
            continue

        m = _MAIN_REQ_RE.match(line)
        if m:
            node_id = f"R{int(m.group(1))}"
            if node_id in seen:
                current = seen[node_id]
                continue
            current = PlanNode(id=node_id, text=m.group(2).strip(), level=0, kind="requirement")
            nodes.append(current)
            seen[node_id] = current
            continue

        m = _SUB_REQ_RE.match(line)
        if m:
            parent_id = f"R{int(m.group(1))}"
            node_id = f"{parent_id}.{int(m.group(2))}"
            if node_id in seen:
                current = seen[node_id]
                continue
            current = PlanNode(
                id=node_id,
                text=(m.group(3) or "").strip(),
                level=1,
                # Only link to a parent that already exists in this pass.
                parent_id=parent_id if parent_id in seen else None,
                kind="requirement",
            )
            nodes.append(current)
            seen[node_id] = current
            continue

        m = _TASK_RE.match(line)
        if m:
            a, b, c = (int(g) for g in m.group(1, 2, 3))
            node_id = f"T{a}.{b}.{c}"
            if strategy is ParentStrategy.NUMERIC:
                parent = seen.get(f"R{a}.{b}")
            else:
                parent = current
            if parent is None or node_id in seen:
                dropped += 1
                continue
            task = PlanNode(
                id=node_id,
                text=m.group(4).strip(),
                level=parent.level + 1,
                parent_id=parent.id,
                kind="task",
            )
            nodes.append(task)
            seen[node_id] = task

    logger.debug(
        "requirements: %d node(s), %d task line(s) dropped, strategy=%s",
        len(nodes), dropped, strategy.value,
    )
    return nodes


def group_children(nodes: list[PlanNode]) -> tuple[list[PlanNode], dict[str, list[PlanNode]]]:
    """Rebuild the tree from parent links.

    Returns ``(roots, children)`` where ``children`` maps a node id to its
    direct children in document order.
    """
    roots: list[PlanNode] = []
    children: dict[str, list[PlanNode]] = defaultdict(list)
    for node in nodes:
        if node.parent_id is None:
            roots.append(node)
        else:
            children[node.parent_id].append(node)
    return roots, dict(children)


def task_alignments(nodes: list[PlanNode]) -> list[tuple[str, str, str]]:
    """List every task with the requirement it is aligned to."""
    return [
        (node.id, node.text, node.parent_id)
        for node in nodes
        if node.kind == "task" and node.parent_id is not None
    ]
