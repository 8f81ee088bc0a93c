"""Graph layout: layered (Sugiyama-style) and radial/categorical placement.

Layered layout runs four phases over a ``GraphModel``:

1. rank assignment: longest-path distance (in edges) from the nearest root,
   so every edge strictly increases rank
2. ordering: barycenter sweeps against the neighbouring rank, keeping the
   ordering with the fewest crossings seen so far
3. coordinates: primary axis = rank × (rank spacing + max node extent),
   cross axis = cumulative size + node spacing of the earlier nodes in the rank
4. edge anchoring: edges leave the source face and enter the target face
   that match the layout direction

Radial layout puts every category on a ring around a centre and the
category's nodes on a smaller ring around that point.

Both strategies are pure: they return a new ``GraphModel`` and never mutate
their input.  Identical input (including node/edge order) gives identical
coordinates.
"""

from __future__ import annotations

import math
from collections import deque
from typing import Literal

from pydantic import BaseModel

from planview.analysis.graph_model import GraphEdge, GraphModel, GraphNode, Point
from planview.core.logging import get_logger

logger = get_logger("analysis.layout")

Direction = Literal["TB", "LR"]
Strategy = Literal["layered", "radial"]

# Face names, keyed by direction: (source face, target face)
_FACES: dict[str, tuple[str, str]] = {
    "TB": ("bottom", "top"),
    "LR": ("right", "left"),
}


class LayoutConfig(BaseModel):
    direction: Direction = "TB"
    rank_spacing: float = 100.0
    node_spacing: float = 150.0
    ordering_passes: int = 4
    # "start": ranks aligned on the cross-axis origin; "center": ranks centred
    # on the widest rank.
    align: Literal["start", "center"] = "start"


class RadialConfig(BaseModel):
    center_x: float = 400.0
    center_y: float = 300.0
    category_radius: float = 200.0
    item_radius: float = 80.0
    # grid for nodes without a category
    grid_columns: int = 5
    grid_dx: float = 120.0
    grid_dy: float = 100.0


# ---------------------------------------------------------------------------
# Phase 1: ranks
# ---------------------------------------------------------------------------

def _usable_edges(node_ids: list[str], edges: list[GraphEdge]) -> list[tuple[str, str]]:
    known = set(node_ids)
    pairs: list[tuple[str, str]] = []
    seen: set[tuple[str, str]] = set()
    for edge in edges:
        pair = (edge.source_id, edge.target_id)
        if pair[0] == pair[1] or pair in seen:
            continue
        if pair[0] in known and pair[1] in known:
            seen.add(pair)
            pairs.append(pair)
    return pairs


def _back_edges(node_ids: list[str], pairs: list[tuple[str, str]]) -> set[tuple[str, str]]:
    """Edges closing a cycle, found by iterative DFS in input order."""
    succ: dict[str, list[str]] = {n: [] for n in node_ids}
    for u, v in pairs:
        succ[u].append(v)

    state: dict[str, int] = {}  # 1 = on stack, 2 = done
    back: set[tuple[str, str]] = set()
    for start in node_ids:
        if start in state:
            continue
        state[start] = 1
        stack: list[tuple[str, int]] = [(start, 0)]
        while stack:
            node, idx = stack[-1]
            if idx < len(succ[node]):
                stack[-1] = (node, idx + 1)
                nxt = succ[node][idx]
                mark = state.get(nxt)
                if mark == 1:
                    back.add((node, nxt))
                elif mark is None:
                    state[nxt] = 1
                    stack.append((nxt, 0))
            else:
                state[node] = 2
                stack.pop()
    return back


def assign_ranks(node_ids: list[str], edges: list[GraphEdge]) -> dict[str, int]:
    """Longest-path rank of every node.

    Edges that close a cycle are ignored for ranking (cyclic input is outside
    the builder's contract; this only keeps the layout total).
    """
    pairs = _usable_edges(node_ids, edges)
    back = _back_edges(node_ids, pairs)
    dag = [p for p in pairs if p not in back]

    succ: dict[str, list[str]] = {n: [] for n in node_ids}
    indegree: dict[str, int] = {n: 0 for n in node_ids}
    for u, v in dag:
        succ[u].append(v)
        indegree[v] += 1

    rank = {n: 0 for n in node_ids}
    queue = deque(n for n in node_ids if indegree[n] == 0)
    while queue:
        node = queue.popleft()
        for nxt in succ[node]:
            rank[nxt] = max(rank[nxt], rank[node] + 1)
            indegree[nxt] -= 1
            if indegree[nxt] == 0:
                queue.append(nxt)
    return rank


# ---------------------------------------------------------------------------
# Phase 2: ordering
# ---------------------------------------------------------------------------

def count_crossings(layers: list[list[str]], pairs: list[tuple[str, str]], rank: dict[str, int]) -> int:
    """Number of crossings between edges joining adjacent ranks."""
    pos = {n: i for layer in layers for i, n in enumerate(layer)}
    by_rank: dict[int, list[tuple[int, int]]] = {}
    for u, v in pairs:
        if rank[v] == rank[u] + 1:
            by_rank.setdefault(rank[u], []).append((pos[u], pos[v]))

    crossings = 0
    for segment in by_rank.values():
        for i in range(len(segment)):
            a_u, a_v = segment[i]
            for j in range(i + 1, len(segment)):
                b_u, b_v = segment[j]
                if (a_u - b_u) * (a_v - b_v) < 0:
                    crossings += 1
    return crossings


def order_layers(
    node_ids: list[str],
    edges: list[GraphEdge],
    rank: dict[str, int],
    passes: int = 4,
) -> list[list[str]]:
    """Group nodes by rank and reduce crossings with barycenter sweeps.

    Sweeps alternate downward (against rank r-1) and upward (against rank
    r+1).  A node with no neighbour in the reference rank keeps its current
    slot value, and ties keep the current order, so the result depends only
    on the input order.
    """
    depth = max(rank.values(), default=-1) + 1
    layers: list[list[str]] = [[] for _ in range(depth)]
    for node in node_ids:
        layers[rank[node]].append(node)

    pairs = _usable_edges(node_ids, edges)
    preds: dict[str, list[str]] = {n: [] for n in node_ids}
    succs: dict[str, list[str]] = {n: [] for n in node_ids}
    for u, v in pairs:
        preds[v].append(u)
        succs[u].append(v)

    best = [list(layer) for layer in layers]
    best_crossings = count_crossings(best, pairs, rank)

    for sweep in range(max(0, passes)):
        downward = sweep % 2 == 0
        indices = range(1, depth) if downward else range(depth - 2, -1, -1)
        for r in indices:
            ref_rank = r - 1 if downward else r + 1
            ref_pos = {n: i for i, n in enumerate(layers[ref_rank])}
            neighbours = preds if downward else succs

            def _barycenter(item: tuple[int, str]) -> tuple[float, int]:
                idx, node = item
                linked = [ref_pos[n] for n in neighbours[node] if n in ref_pos]
                if not linked:
                    return float(idx), idx
                return sum(linked) / len(linked), idx

            layers[r] = [node for _, node in sorted(enumerate(layers[r]), key=_barycenter)]

        crossings = count_crossings(layers, pairs, rank)
        if crossings < best_crossings:
            best = [list(layer) for layer in layers]
            best_crossings = crossings
        if best_crossings == 0:
            break

    return best


# ---------------------------------------------------------------------------
# Phases 3 + 4: coordinates and anchors
# ---------------------------------------------------------------------------

def _anchor(node: GraphNode, face: str) -> Point:
    x, y = node.position.x, node.position.y
    w, h = node.size.width, node.size.height
    if face == "bottom":
        return Point(x=x + w / 2, y=y + h)
    if face == "top":
        return Point(x=x + w / 2, y=y)
    if face == "right":
        return Point(x=x + w, y=y + h / 2)
    return Point(x=x, y=y + h / 2)


def anchor_edges(nodes: list[GraphNode], edges: list[GraphEdge], direction: Direction) -> list[GraphEdge]:
    """Attach every edge to the node faces matching *direction*."""
    by_id = {n.id: n for n in nodes}
    source_face, target_face = _FACES[direction]
    anchored: list[GraphEdge] = []
    for edge in edges:
        source = by_id.get(edge.source_id)
        target = by_id.get(edge.target_id)
        if source is None or target is None:
            continue
        anchored.append(
            edge.model_copy(
                update={
                    "source_face": source_face,
                    "target_face": target_face,
                    "source_point": _anchor(source, source_face),
                    "target_point": _anchor(target, target_face),
                }
            )
        )
    return anchored


def layered_layout(model: GraphModel, config: LayoutConfig | None = None) -> GraphModel:
    """Positioned copy of *model* using the four-phase layered algorithm."""
    config = config or LayoutConfig()
    node_ids = model.node_ids()
    by_id = {n.id: n for n in model.nodes}

    rank = assign_ranks(node_ids, model.edges)
    layers = order_layers(node_ids, model.edges, rank, passes=config.ordering_passes)

    top_down = config.direction == "TB"

    def _primary(node: GraphNode) -> float:
        return node.size.height if top_down else node.size.width

    def _cross(node: GraphNode) -> float:
        return node.size.width if top_down else node.size.height

    max_extent = max((_primary(n) for n in model.nodes), default=0.0)
    pitch = config.rank_spacing + max_extent

    layer_spans = [
        sum(_cross(by_id[n]) for n in layer) + config.node_spacing * max(0, len(layer) - 1)
        for layer in layers
    ]
    widest = max(layer_spans, default=0.0)

    positioned: dict[str, GraphNode] = {}
    for r, layer in enumerate(layers):
        offset = (widest - layer_spans[r]) / 2 if config.align == "center" else 0.0
        primary = r * pitch
        for order, node_id in enumerate(layer):
            node = by_id[node_id]
            x, y = (offset, primary) if top_down else (primary, offset)
            positioned[node_id] = node.model_copy(
                update={
                    "position": Point(x=x, y=y),
                    "data": {**node.data, "rank": r, "order": order},
                }
            )
            offset += _cross(node) + config.node_spacing

    nodes = [positioned[n] for n in node_ids]
    edges = anchor_edges(nodes, model.edges, config.direction)
    logger.debug(
        "layered layout: %d node(s) in %d rank(s), direction=%s",
        len(nodes), len(layers), config.direction,
    )
    return GraphModel(nodes=nodes, edges=edges)


def radial_layout(model: GraphModel, config: RadialConfig | None = None) -> GraphModel:
    """Positioned copy of *model* with categories on a ring and items around them."""
    config = config or RadialConfig()

    categories: list[str] = []
    members: dict[str, list[str]] = {}
    loose: list[str] = []
    for node in model.nodes:
        if node.category:
            if node.category not in members:
                categories.append(node.category)
                members[node.category] = []
            members[node.category].append(node.id)
        else:
            loose.append(node.id)

    positions: dict[str, Point] = {}
    angle_step = 2 * math.pi / max(len(categories), 1)
    for ci, category in enumerate(categories):
        angle = ci * angle_step
        cx = config.center_x + math.cos(angle) * config.category_radius
        cy = config.center_y + math.sin(angle) * config.category_radius
        items = members[category]
        item_step = 2 * math.pi / max(len(items), 1)
        for ii, node_id in enumerate(items):
            item_angle = ii * item_step
            positions[node_id] = Point(
                x=cx + math.cos(item_angle) * config.item_radius,
                y=cy + math.sin(item_angle) * config.item_radius,
            )

    for i, node_id in enumerate(loose):
        positions[node_id] = Point(
            x=config.center_x + (i % config.grid_columns) * config.grid_dx,
            y=config.center_y + (i // config.grid_columns) * config.grid_dy,
        )

    nodes = [n.model_copy(update={"position": positions[n.id]}) for n in model.nodes]
    edges = [e.model_copy() for e in model.edges]
    logger.debug("radial layout: %d node(s) in %d categor(ies)", len(nodes), len(categories))
    return GraphModel(nodes=nodes, edges=edges)


class LayeredLayoutEngine:
    """Stateless facade selecting a strategy per call."""

    def __init__(self, config: LayoutConfig | None = None, radial: RadialConfig | None = None) -> None:
        self.config = config or LayoutConfig()
        self.radial = radial or RadialConfig()

    def layout(self, model: GraphModel, strategy: Strategy = "layered") -> GraphModel:
        if strategy == "radial":
            return radial_layout(model, self.radial)
        if strategy == "layered":
            return layered_layout(model, self.config)
        raise ValueError(f"Unknown layout strategy: {strategy!r}")
