"""Graph model: one node/edge representation for every hierarchical source.

Sources are first turned into ``TreeItem`` trees by the adapters below
(plan requirements, task documents, workspace file listings, AI analysis
payloads, raw analysis text) and then flattened by ``build_graph`` into a
``GraphModel`` of ``GraphNode`` / ``GraphEdge``.

Node ids are the items' own keys (plan ids, file paths, JSON key paths), so
rebuilding the graph from unchanged input yields identical ids.

Public API
----------
``build_graph(roots, links=None)``        → GraphModel
``plan_tree(nodes)``                      → list[TreeItem]
``task_tree(document)``                   → list[TreeItem]
``file_tree(entries)``                    → list[TreeItem]
``analysis_tree(payload, workspace_root)`` → (list[TreeItem], list[Link])
``raw_text_tree(raw)``                    → list[TreeItem]
"""

from __future__ import annotations

import hashlib
import re
from typing import TYPE_CHECKING, Any, Iterable

from pydantic import BaseModel, ConfigDict, Field

from planview.analysis.categorizer import categorize
from planview.core.logging import get_logger
from planview.parsing.analysis_payload import AnalysisPayload, ComponentInfo
from planview.parsing.models import PlanNode, TaskDocument

if TYPE_CHECKING:
    from planview.tools.filesystem import FileEntry

logger = get_logger("analysis.graph_model")

CONTAINS = "contains"

_RAW_TEXT_MAX_LINES = 15
_RAW_TEXT_MAX_CHARS = 80
_GLYPH_PREFIX_RE = re.compile(r"^[✅🔄📝❌]️?\s*")


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

class Point(BaseModel):
    model_config = ConfigDict(frozen=True)

    x: float = 0.0
    y: float = 0.0


class Size(BaseModel):
    model_config = ConfigDict(frozen=True)

    width: float = 200.0
    height: float = 80.0


DEFAULT_NODE_SIZE = Size()

_KIND_SIZES: dict[str, Size] = {
    "project": Size(width=300, height=80),
    "tech": Size(width=180, height=60),
    "method": Size(width=180, height=60),
    "route": Size(width=180, height=60),
    "checkpoint": Size(width=180, height=50),
    "line": Size(width=180, height=60),
}


class TreeItem(BaseModel):
    """Any hierarchical item: a key, a label, an optional category and children."""

    key: str
    label: str
    kind: str = "item"
    category: str | None = None
    description: str = ""
    data: dict[str, Any] = Field(default_factory=dict)
    children: list["TreeItem"] = Field(default_factory=list)


class GraphNode(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    label: str
    kind: str
    category: str | None = None
    description: str = ""
    position: Point = Field(default_factory=Point)
    size: Size = Field(default_factory=Size)
    data: dict[str, Any] = Field(default_factory=dict)


class GraphEdge(BaseModel):
    """Directed edge; ``source_face`` / ``target_face`` are set by the layout."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    source_id: str = Field(alias="sourceId")
    target_id: str = Field(alias="targetId")
    kind: str = CONTAINS
    source_face: str | None = Field(default=None, alias="sourceFace")
    target_face: str | None = Field(default=None, alias="targetFace")
    source_point: Point | None = Field(default=None, alias="sourcePoint")
    target_point: Point | None = Field(default=None, alias="targetPoint")


class GraphModel(BaseModel):
    """Flat node/edge collection.  Every edge endpoint is a node of the same model."""

    nodes: list[GraphNode] = Field(default_factory=list)
    edges: list[GraphEdge] = Field(default_factory=list)

    def node(self, node_id: str) -> GraphNode | None:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def node_ids(self) -> list[str]:
        return [n.id for n in self.nodes]

    def children_of(self, node_id: str) -> list[str]:
        return [e.target_id for e in self.edges if e.source_id == node_id]

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


# A cross-link between two tree items, added after the traversal:
# (source_key, target_key, edge_kind)
Link = tuple[str, str, str]


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------

def build_graph(
    roots: Iterable[TreeItem],
    links: Iterable[Link] | None = None,
    default_size: Size = DEFAULT_NODE_SIZE,
) -> GraphModel:
    """Flatten *roots* into a fresh ``GraphModel``.

    One pre-order traversal: one node per item, one ``contains`` edge per
    parent → child relation.  An item whose key was already emitted is not
    emitted again, but its parent edge is still recorded.  *links* whose
    endpoints are not both in the model are dropped.  Kinds without a fixed
    size (see ``_KIND_SIZES``) get *default_size*.
    """
    nodes: list[GraphNode] = []
    edges: list[GraphEdge] = []
    node_ids: set[str] = set()
    edge_ids: set[str] = set()

    def _add_edge(source: str, target: str, kind: str) -> None:
        edge_id = f"{source}->{target}" if kind == CONTAINS else f"{source}->{target}:{kind}"
        if edge_id in edge_ids or source == target:
            return
        edge_ids.add(edge_id)
        edges.append(GraphEdge(id=edge_id, source_id=source, target_id=target, kind=kind))

    stack: list[tuple[TreeItem, str | None]] = [(root, None) for root in reversed(list(roots))]
    while stack:
        item, parent_id = stack.pop()
        if parent_id is not None:
            _add_edge(parent_id, item.key, CONTAINS)
        if item.key in node_ids:
            continue
        node_ids.add(item.key)
        nodes.append(
            GraphNode(
                id=item.key,
                label=item.label,
                kind=item.kind,
                category=item.category,
                description=item.description,
                size=_KIND_SIZES.get(item.kind, default_size),
                data=dict(item.data),
            )
        )
        for child in reversed(item.children):
            stack.append((child, item.key))

    dropped = 0
    for source, target, kind in links or ():
        if source in node_ids and target in node_ids:
            _add_edge(source, target, kind)
        else:
            dropped += 1

    logger.debug("graph: %d node(s), %d edge(s), %d link(s) dropped", len(nodes), len(edges), dropped)
    return GraphModel(nodes=nodes, edges=edges)


# ---------------------------------------------------------------------------
# Adapters: requirement plan
# ---------------------------------------------------------------------------

def plan_tree(nodes: list[PlanNode]) -> list[TreeItem]:
    """Requirement / sub-requirement / task tree from a requirement parse."""
    items: dict[str, TreeItem] = {}
    roots: list[TreeItem] = []
    for node in nodes:
        if node.kind == "task":
            kind = "task"
        else:
            kind = "requirement" if node.level == 0 else "sub-requirement"
        item = TreeItem(
            key=node.id,
            label=f"{node.id}\n{node.text}" if node.text else node.id,
            kind=kind,
            data={"plan_id": node.id, "title": node.text, "level": node.level},
        )
        items[node.id] = item
        parent = items.get(node.parent_id) if node.parent_id else None
        if parent is None:
            roots.append(item)
        else:
            parent.children.append(item)
    return roots


# ---------------------------------------------------------------------------
# Adapters: task document
# ---------------------------------------------------------------------------

def task_key(title: str) -> str:
    """Stable key for a task: its title without the status glyph."""
    return "task/" + _GLYPH_PREFIX_RE.sub("", title).strip()


def _unique_key(key: str, seen: dict[str, int]) -> str:
    """*key* on first use, then ``key#2``, ``key#3``... for repeats."""
    count = seen.get(key, 0) + 1
    seen[key] = count
    return key if count == 1 else f"{key}#{count}"


def task_tree(document: TaskDocument) -> list[TreeItem]:
    """Project → task → checkpoint / related-file tree from a task document.

    Tasks sharing a title are told apart by occurrence (``task/Testing``,
    ``task/Testing#2``), so a status change alone never changes a key.
    """
    tasks: list[TreeItem] = []
    task_keys: dict[str, int] = {}
    for record in document.tasks:
        key = _unique_key(task_key(record.title), task_keys)
        child_keys: dict[str, int] = {}
        children = [
            TreeItem(
                key=_unique_key(f"{key}/checkpoint/{cp.name}", child_keys),
                label=cp.name,
                kind="checkpoint",
                data={"completed": cp.completed},
            )
            for cp in record.checkpoints
        ]
        children.extend(
            TreeItem(
                key=_unique_key(f"{key}/file/{rf.path}", child_keys),
                label=rf.path.rsplit("/", 1)[-1] or rf.path,
                kind="file",
                category=categorize(rf.path),
                description=rf.summary,
                data={"path": rf.path},
            )
            for rf in record.related_files
        )
        tasks.append(
            TreeItem(
                key=key,
                label=record.title,
                kind="task",
                description=record.description,
                data={"status": record.status, "progress": record.checkpoint_progress},
                children=children,
            )
        )

    if document.project is None:
        return tasks
    project = document.project
    return [
        TreeItem(
            key="project",
            label=project.name or "Project",
            kind="project",
            description=project.description,
            data={"type": project.type, "current_progress": project.current_progress},
            children=tasks,
        )
    ]


# ---------------------------------------------------------------------------
# Adapters: workspace file listing
# ---------------------------------------------------------------------------

def file_tree(entries: Iterable["FileEntry"]) -> list[TreeItem]:
    """Directory / file tree keyed by path."""
    return [_file_item(entry) for entry in entries]


def _file_item(entry: "FileEntry") -> TreeItem:
    children = [_file_item(child) for child in entry.children]
    description = entry.description
    if entry.is_dir and not description:
        description = f"{len(entry.children)} items"
    return TreeItem(
        key=entry.path,
        label=entry.name,
        kind="directory" if entry.is_dir else "file",
        category=entry.category,
        description=description,
        data={"path": entry.path},
        children=children,
    )


# ---------------------------------------------------------------------------
# Adapters: AI analysis payload
# ---------------------------------------------------------------------------

_LAYERS = (
    ("frontend", "Frontend Modules"),
    ("backend", "Backend Modules"),
    ("database", "Database Modules"),
)

_TECH_CATEGORIES = (("frontend", "frontend"), ("backend", "backend"), ("other", "config"))


def normalize_file_path(file_path: str, workspace_root: str | None = None) -> str:
    """Join a relative analysis path to *workspace_root*; absolute paths are kept."""
    if not file_path:
        return ""
    if re.match(r"^[a-zA-Z]:[\\/]", file_path) or file_path.startswith("/"):
        return file_path
    clean = re.sub(r"^\.[\\/]", "", file_path)
    if workspace_root:
        separator = "\\" if "\\" in workspace_root else "/"
        root = re.sub(r"[\\/]+$", "", workspace_root)
        relative = re.sub(r"^[\\/]+", "", clean)
        return f"{root}{separator}{relative}"
    return clean


def analysis_tree(
    payload: AnalysisPayload,
    workspace_root: str | None = None,
) -> tuple[list[TreeItem], list[Link]]:
    """Project → tech stack / layer → file → method / route tree plus connection links.

    Components sharing a file (or having none) get ``#<n>`` suffixed keys.
    A connection that would close a cycle among the accepted connections is
    skipped, so the resulting model stays acyclic for the layered layout.
    """
    root = TreeItem(
        key="project",
        label=payload.project_name or "Project",
        kind="project",
        category="project",
        description=payload.description or "Project Overview",
    )

    seen: dict[str, int] = {}
    for stack_key, category in _TECH_CATEGORIES:
        for tech in getattr(payload.tech_stack, stack_key):
            root.children.append(
                TreeItem(
                    key=_unique_key(f"project/tech/{stack_key}/{tech}", seen),
                    label=tech,
                    kind="tech",
                    category=category,
                )
            )

    file_keys: dict[str, str] = {}
    for layer, title in _LAYERS:
        members = getattr(payload.structure, layer)
        if not members:
            continue
        group = TreeItem(
            key=f"project/{layer}",
            label=title,
            kind="layer",
            category=layer,
            description=f"{len(members)} components",
        )
        for member in members:
            if layer == "database":
                name = member.model or member.file or "model"
                item = TreeItem(
                    key=_unique_key(f"project/database/{name}", seen),
                    label=name,
                    kind="model",
                    category="database",
                    description=member.description,
                    data={
                        "path": normalize_file_path(member.file, workspace_root),
                        "fields": list(member.field_names),
                        "used_by": list(member.used_by),
                    },
                )
                if member.model:
                    file_keys.setdefault(member.model, item.key)
            else:
                key = _unique_key(f"project/{layer}/{member.file or 'component'}", seen)
                item = _component_item(key, layer, member, workspace_root)
            if member.file:
                file_keys.setdefault(member.file, item.key)
                file_keys.setdefault(member.file.rsplit("/", 1)[-1], item.key)
            group.children.append(item)
        root.children.append(group)

    links: list[Link] = []
    reachable: dict[str, set[str]] = {}
    for conn in payload.connections:
        source = file_keys.get(conn.source) or file_keys.get(conn.source.rsplit("/", 1)[-1])
        target = file_keys.get(conn.target) or file_keys.get(conn.target.rsplit("/", 1)[-1])
        if not (source and target):
            continue
        if source == target or _reaches(reachable, target, source):
            logger.debug("analysis: skipping connection %s -> %s, it closes a cycle", source, target)
            continue
        reachable.setdefault(source, set()).add(target)
        links.append((source, target, f"connection:{conn.type}"))

    return [root], links


def _reaches(succ: dict[str, set[str]], start: str, goal: str) -> bool:
    stack = [start]
    visited: set[str] = set()
    while stack:
        node = stack.pop()
        if node == goal:
            return True
        if node in visited:
            continue
        visited.add(node)
        stack.extend(succ.get(node, ()))
    return False


def _component_item(key: str, layer: str, component: ComponentInfo, workspace_root: str | None) -> TreeItem:
    item = TreeItem(
        key=key,
        label=component.file.rsplit("/", 1)[-1] or component.file or "component",
        kind="file",
        category=layer,
        description=component.description,
        data={
            "path": normalize_file_path(component.file, workspace_root),
            "original_path": component.file,
            "dependencies": list(component.dependencies),
        },
    )
    child_keys: dict[str, int] = {}
    for route in component.routes:
        item.children.append(
            TreeItem(
                key=_unique_key(f"{key}/route/{route.method} {route.path}", child_keys),
                label=f"{route.method} {route.path}".strip(),
                kind="route",
                category=layer,
                description=route.description,
                data={"line": route.line},
            )
        )
    for method in component.methods:
        item.children.append(
            TreeItem(
                key=_unique_key(f"{key}/method/{method.name}", child_keys),
                label=f"{method.name}()",
                kind="method",
                category=layer,
                description=method.description,
                data={"line": method.line},
            )
        )
    return item


def raw_text_tree(raw: str) -> list[TreeItem]:
    """Fallback tree for analysis text without a usable payload."""
    root = TreeItem(key="ai-output", label="AI analysis", kind="project")
    lines = [line.strip() for line in raw.splitlines() if line.strip()]
    seen: dict[str, int] = {}
    for line in lines[:_RAW_TEXT_MAX_LINES]:
        label = line if len(line) <= _RAW_TEXT_MAX_CHARS else line[:_RAW_TEXT_MAX_CHARS] + "..."
        digest = hashlib.sha1(line.encode("utf-8")).hexdigest()[:12]
        root.children.append(TreeItem(key=_unique_key(f"ai-output/{digest}", seen), label=label, kind="line"))
    return [root]
