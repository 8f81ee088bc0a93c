"""FastAPI web server: plan documents, workspace structure and AI analysis as JSON.

Every graph endpoint returns a laid-out ``GraphModel`` (nodes with positions
and sizes, edges with anchor faces) ready for a canvas renderer.  The
workspace defaults to ``WORKSPACE_PATH`` and can be overridden per request
with ``?workspace=``.
"""

from __future__ import annotations

import math
import threading
from pathlib import Path
from typing import Literal

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from planview.agents.analysis import gather_context, run_analysis
from planview.agents.models import get_analysis_llm
from planview.analysis.cache import AnalysisCacheStore, JsonFilePersistence, workspace_key
from planview.analysis.graph_model import (
    GraphModel,
    Size,
    analysis_tree,
    build_graph,
    file_tree,
    plan_tree,
    raw_text_tree,
    task_tree,
)
from planview.analysis.layout import LayeredLayoutEngine, LayoutConfig
from planview.core.config import Settings, get_settings
from planview.core.logging import get_logger
from planview.parsing.analysis_payload import AnalysisOk
from planview.parsing.requirements_doc import ParentStrategy, parse_requirements, task_alignments
from planview.parsing.task_status import parse_task_document
from planview.tools.filesystem import (
    REQUIREMENT_FILES,
    TASK_FILES,
    LookupResult,
    PathEscapeError,
    iter_files,
    locate_plan_document,
    scan_workspace,
)

logger = get_logger("web.server")

app = FastAPI(title="planview", version="0.1.0")

# Files sent to the model when a request names none
MAX_DEFAULT_CONTEXT_FILES = 40

# ── Cache stores, one per workspace ───────────────────────────────────────
_cache_stores: dict[str, AnalysisCacheStore] = {}
_cache_lock = threading.Lock()


def get_cache_store(workspace: str, settings: Settings | None = None) -> AnalysisCacheStore:
    """Return the analysis cache for *workspace*, creating it on first use."""
    settings = settings or get_settings()
    with _cache_lock:
        store = _cache_stores.get(workspace)
        if store is None:
            store = AnalysisCacheStore(JsonFilePersistence(Path(workspace) / settings.cache_dir))
            _cache_stores[workspace] = store
        return store


def reset_cache_stores() -> None:
    with _cache_lock:
        _cache_stores.clear()


# ── Models ────────────────────────────────────────────────────────────────

class AnalysisRequest(BaseModel):
    paths: list[str] = []    # workspace-relative; empty = top-level files
    force: bool = False      # ignore a still-valid cached analysis
    workspace: str = ""


# ── Helpers ───────────────────────────────────────────────────────────────

def _workspace(settings: Settings, override: str = "") -> str | None:
    path = override or settings.workspace_path
    if not path:
        return None
    return str(Path(path).expanduser().resolve())


def _no_workspace() -> JSONResponse:
    return JSONResponse(
        {"error": "No workspace configured. Set WORKSPACE_PATH or pass ?workspace="},
        status_code=400,
    )


def _engine(settings: Settings, direction: str | None = None) -> LayeredLayoutEngine:
    return LayeredLayoutEngine(
        LayoutConfig(
            direction=direction or settings.layout_direction,
            rank_spacing=settings.layout_rank_spacing,
            node_spacing=settings.layout_node_spacing,
            ordering_passes=settings.layout_ordering_passes,
        )
    )


def _node_size(settings: Settings) -> Size:
    return Size(width=settings.layout_node_width, height=settings.layout_node_height)


def _lookup_fields(lookup: LookupResult) -> dict:
    return {"found": lookup.found, "path": lookup.path, "tried": lookup.tried}


def _empty_graph() -> dict:
    return GraphModel().to_dict()


def _parent_strategy(name: str) -> ParentStrategy:
    return ParentStrategy.NUMERIC if name == "numeric" else ParentStrategy.CONTEXT


# ── Endpoints ─────────────────────────────────────────────────────────────

@app.get("/api/health")
def health():
    settings = get_settings()
    return {"status": "ok", "workspace": settings.workspace_path or None}


@app.get("/api/requirements")
def get_requirements(workspace: str = "", strategy: Literal["context", "numeric"] = "context"):
    """Parsed requirement document: nodes in document order plus task alignment."""
    settings = get_settings()
    root = _workspace(settings, workspace)
    if root is None:
        return _no_workspace()

    lookup = locate_plan_document(root, REQUIREMENT_FILES, settings.plan_dirs)
    if not lookup.found:
        return {**_lookup_fields(lookup), "nodes": [], "alignments": []}

    nodes = parse_requirements(lookup.content, _parent_strategy(strategy))
    logger.info("GET /api/requirements | %s (%d nodes)", lookup.path, len(nodes))
    return {
        **_lookup_fields(lookup),
        "nodes": [n.model_dump() for n in nodes],
        "alignments": [
            {"task_id": task_id, "text": text, "requirement_id": parent_id}
            for task_id, text, parent_id in task_alignments(nodes)
        ],
    }


@app.get("/api/requirements/graph")
def get_requirements_graph(
    workspace: str = "",
    direction: Literal["TB", "LR"] | None = None,
    strategy: Literal["context", "numeric"] = "context",
):
    """Requirement mind map laid out in ranks."""
    settings = get_settings()
    root = _workspace(settings, workspace)
    if root is None:
        return _no_workspace()

    lookup = locate_plan_document(root, REQUIREMENT_FILES, settings.plan_dirs)
    if not lookup.found:
        return {**_lookup_fields(lookup), "graph": _empty_graph()}

    nodes = parse_requirements(lookup.content, _parent_strategy(strategy))
    model = build_graph(plan_tree(nodes), default_size=_node_size(settings))
    laid_out = _engine(settings, direction).layout(model, "layered")
    return {**_lookup_fields(lookup), "graph": laid_out.to_dict()}


@app.get("/api/tasks")
def get_tasks(workspace: str = ""):
    """Parsed task document with per-status counts."""
    settings = get_settings()
    root = _workspace(settings, workspace)
    if root is None:
        return _no_workspace()

    lookup = locate_plan_document(root, TASK_FILES, settings.plan_dirs)
    if not lookup.found:
        return {**_lookup_fields(lookup), "project": None, "tasks": [], "counts": {}}

    document = parse_task_document(lookup.content)
    logger.info("GET /api/tasks | %s (%d tasks)", lookup.path, len(document.tasks))
    return {
        **_lookup_fields(lookup),
        "project": document.project.model_dump() if document.project else None,
        "tasks": [
            {**t.model_dump(), "checkpoint_progress": t.checkpoint_progress}
            for t in document.tasks
        ],
        "counts": {
            status: len(document.by_status(status))
            for status in ("pending", "in-progress", "completed")
        },
    }


@app.get("/api/tasks/graph")
def get_tasks_graph(workspace: str = "", direction: Literal["TB", "LR"] | None = None):
    settings = get_settings()
    root = _workspace(settings, workspace)
    if root is None:
        return _no_workspace()

    lookup = locate_plan_document(root, TASK_FILES, settings.plan_dirs)
    if not lookup.found:
        return {**_lookup_fields(lookup), "graph": _empty_graph()}

    model = build_graph(task_tree(parse_task_document(lookup.content)), default_size=_node_size(settings))
    laid_out = _engine(settings, direction).layout(model, "layered")
    return {**_lookup_fields(lookup), "graph": laid_out.to_dict()}


@app.get("/api/structure/graph")
def get_structure_graph(
    workspace: str = "",
    layout: Literal["radial", "layered"] = "radial",
    depth: int = 1,
):
    """Workspace file tree, grouped by category (radial) or by depth (layered)."""
    settings = get_settings()
    root = _workspace(settings, workspace)
    if root is None:
        return _no_workspace()
    try:
        entries = scan_workspace(root, depth=max(0, depth))
    except FileNotFoundError as exc:
        return JSONResponse({"error": str(exc)}, status_code=404)

    model = build_graph(file_tree(entries), default_size=_node_size(settings))
    return {"layout": layout, "graph": _engine(settings).layout(model, layout).to_dict()}


@app.get("/api/analysis")
def get_analysis(workspace: str = ""):
    """Cached analysis for the workspace, with its age and validity."""
    settings = get_settings()
    root = _workspace(settings, workspace)
    if root is None:
        return _no_workspace()

    store = get_cache_store(root, settings)
    key = workspace_key(root)
    cached = store.get(key)
    if cached is None:
        return {"available": False, "valid": False, "age_seconds": None, "payload": None, "raw_text": ""}
    age = store.age(key)
    return {
        "available": True,
        "valid": age < settings.analysis_ttl_hours * 3600,
        "age_seconds": None if math.isinf(age) else age,
        "payload": cached.payload.to_dict(),
        "raw_text": cached.raw_text,
    }


@app.get("/api/analysis/graph")
def get_analysis_graph(workspace: str = "", direction: Literal["TB", "LR"] | None = None):
    settings = get_settings()
    root = _workspace(settings, workspace)
    if root is None:
        return _no_workspace()

    cached = get_cache_store(root, settings).get(workspace_key(root))
    if cached is None:
        return {"available": False, "graph": _empty_graph()}
    roots, links = analysis_tree(cached.payload, root)
    model = build_graph(roots, links, default_size=_node_size(settings))
    return {"available": True, "graph": _engine(settings, direction).layout(model, "layered").to_dict()}


@app.post("/api/analysis")
def post_analysis(req: AnalysisRequest):
    """Run (or serve from cache) the architecture analysis of the workspace."""
    settings = get_settings()
    root = _workspace(settings, req.workspace)
    if root is None:
        return _no_workspace()

    paths = list(req.paths)
    if not paths:
        try:
            entries = scan_workspace(root, depth=1)
        except FileNotFoundError as exc:
            return JSONResponse({"error": str(exc)}, status_code=404)
        paths = [entry.path for entry in iter_files(entries)][:MAX_DEFAULT_CONTEXT_FILES]

    try:
        context = gather_context(root, paths)
        result = run_analysis(
            lambda: get_analysis_llm(settings),
            context,
            get_cache_store(root, settings),
            key=workspace_key(root),
            ttl=settings.analysis_ttl_hours * 3600,
            force=req.force,
        )
    except (ValueError, PathEscapeError) as exc:
        logger.warning("POST /api/analysis rejected: %s", exc)
        return JSONResponse({"error": str(exc)}, status_code=400)

    engine = _engine(settings)
    if isinstance(result, AnalysisOk):
        roots, links = analysis_tree(result.payload, root)
        graph = engine.layout(build_graph(roots, links, default_size=_node_size(settings)), "layered")
        return {"kind": result.kind, "payload": result.payload.to_dict(), "raw": result.raw, "graph": graph.to_dict()}

    graph = engine.layout(build_graph(raw_text_tree(result.raw), default_size=_node_size(settings)), "layered")
    return {
        "kind": result.kind,
        "error": getattr(result, "error", ""),
        "raw": result.raw,
        "graph": graph.to_dict(),
    }


@app.delete("/api/analysis")
def delete_analysis(workspace: str = ""):
    settings = get_settings()
    root = _workspace(settings, workspace)
    if root is None:
        return _no_workspace()
    get_cache_store(root, settings).clear(workspace_key(root))
    logger.info("DELETE /api/analysis | %s", root)
    return {"cleared": True}
