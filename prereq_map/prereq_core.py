"""
Prerequisite graph engine: recursive tree building, layered layout,
highlight propagation and graph analysis.
"""

import asyncio
import logging
from collections import defaultdict, deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

import networkx as nx
import numpy as np
import pandas as pd
from pydantic import BaseModel

from .catalog import CourseRecord
from .config import Config
from .prereq_parser import (
    CourseRef,
    extract_course_refs,
    find_course_occurrences,
    group_or_alternatives,
    parse_course,
)

logger = logging.getLogger(__name__)

# ============================================================================
# DATA MODELS
# ============================================================================


class EdgeKind(str, Enum):
    AND = "AND"
    OR = "OR"


class CourseNode(BaseModel):
    id: str
    title: str = ""
    department: str = ""
    number: str = ""
    description: str = ""
    units: str = ""
    prerequisite_text: str = ""
    corequisite_text: str = ""
    depth: int = 0
    x: Optional[float] = None
    y: Optional[float] = None


class GraphEdge(BaseModel):
    source: str  # the prerequisite
    target: str  # the course requiring it
    kind: EdgeKind = EdgeKind.AND
    group_id: Optional[str] = None

    @property
    def key(self) -> Tuple[str, str]:
        return (self.source, self.target)


class PrereqGraph(BaseModel):
    nodes: Dict[str, CourseNode] = {}
    edges: List[GraphEdge] = []
    root: Optional[str] = None

    def valid_edges(self) -> List[GraphEdge]:
        """Edges whose endpoints are both nodes, first occurrence of each pair"""
        seen = set()
        edges = []
        for edge in self.edges:
            if edge.source not in self.nodes or edge.target not in self.nodes:
                continue
            if edge.key in seen:
                continue
            seen.add(edge.key)
            edges.append(edge)
        return edges

    def drop_dangling_edges(self) -> int:
        """Remove edges pointing at courses that never became nodes"""
        valid = self.valid_edges()
        dropped = len(self.edges) - len(valid)
        self.edges = valid
        return dropped


class NodePosition(BaseModel):
    x: float
    y: float
    depth: int
    pinned: bool = False


# ============================================================================
# RECURSIVE TREE BUILDER
# ============================================================================


class TreeBuilder:
    """
    Expands one start course into a prerequisite graph, depth first.

    Each prerequisite branch is fully expanded before its next sibling starts,
    so the first course discovered wins and output order is reproducible.
    The builder owns its visited set, nodes and edges for a single build.
    """

    def __init__(self,
                 catalog,
                 max_depth: int = Config.MAX_DEPTH,
                 deny_list: Iterable[str] = Config.DENY_LIST,
                 high_school_departments: Iterable[str] = Config.HIGH_SCHOOL_DEPARTMENTS):
        self.catalog = catalog
        self.max_depth = max_depth
        self.deny_list = {str(c).strip().upper() for c in deny_list}
        self.high_school_departments = tuple(high_school_departments)

        self.visited: Set[str] = set()
        self.graph = PrereqGraph()
        self.cancelled = False
        self._edge_keys: Set[Tuple[str, str]] = set()

    def cancel(self) -> None:
        """Stop scheduling further lookups"""
        self.cancelled = True

    def result(self) -> PrereqGraph:
        dropped = self.graph.drop_dangling_edges()
        if dropped:
            logger.debug("Dropped %d edges to unresolved courses", dropped)
        return self.graph

    async def build(self, start_text: str) -> PrereqGraph:
        await self._expand(str(start_text).strip(), 0)
        return self.result()

    def _is_denied(self, ref: CourseRef) -> bool:
        return ref.id in self.deny_list or f"{ref.department} {ref.number}" in self.deny_list

    async def _lookup(self, ref: CourseRef) -> Optional[CourseRecord]:
        try:
            return await self.catalog.lookup(ref)
        except Exception as e:
            logger.warning("Lookup for %s failed: %s", ref.id, e)
            return None

    def _add_node(self, record: CourseRecord, ref: CourseRef) -> str:
        parsed = parse_course(f"{record.department} {record.number}")
        course_id = parsed.id if parsed else ref.id

        if course_id not in self.graph.nodes:
            self.graph.nodes[course_id] = CourseNode(
                id=course_id,
                title=record.title or course_id,
                department=record.department,
                number=record.number,
                description=record.description,
                units=record.units,
                prerequisite_text=record.prerequisite_text,
                corequisite_text=record.corequisite_text,
            )
            if self.graph.root is None:
                self.graph.root = course_id
        return course_id

    async def _expand(self, course_text: str, depth: int) -> None:
        if self.cancelled:
            return
        if depth > self.max_depth:
            logger.debug("Depth bound reached at %s", course_text)
            return
        if course_text in self.visited:
            return
        self.visited.add(course_text)

        ref = parse_course(course_text)
        if ref is None:
            return
        if self._is_denied(ref):
            logger.debug("Skipping deny-listed course %s", ref.id)
            return

        record = await self._lookup(ref)
        if record is None or self.cancelled:
            return

        course_id = self._add_node(record, ref)

        prereq_text = record.prerequisite_text.strip()
        if not prereq_text:
            return

        occurrences = find_course_occurrences(prereq_text, self.high_school_departments)
        or_groups = group_or_alternatives(prereq_text, occurrences)
        prereq_ids = extract_course_refs(prereq_text, self.high_school_departments)

        group_ids = {}
        for index, group in enumerate(or_groups):
            for member in group:
                group_ids.setdefault(member, f"{course_id}#or{index}")

        for prereq_id in prereq_ids:
            key = (prereq_id, course_id)
            if key not in self._edge_keys:
                self._edge_keys.add(key)
                self.graph.edges.append(GraphEdge(
                    source=prereq_id,
                    target=course_id,
                    kind=EdgeKind.OR if prereq_id in group_ids else EdgeKind.AND,
                    group_id=group_ids.get(prereq_id),
                ))

            await self._expand(prereq_id, depth + 1)


async def build_graph(
        start_text: str,
        catalog,
        max_depth: int = Config.MAX_DEPTH,
        deny_list: Iterable[str] = Config.DENY_LIST,
        high_school_departments: Iterable[str] = Config.HIGH_SCHOOL_DEPARTMENTS,
        timeout: Optional[float] = Config.BUILD_TIMEOUT) -> PrereqGraph:
    """
    Build the full prerequisite graph for a start course.

    Args:
        start_text: Course code as typed by the user (e.g., "CMPT 307")
        catalog: Object with an async lookup(CourseRef) -> CourseRecord | None
        max_depth: Deepest recursion level that is still expanded
        deny_list: Course ids that are never expanded
        high_school_departments: Departments whose 11/12 courses are ignored
        timeout: Wall-clock limit in seconds (None for no limit)

    Returns:
        The graph accumulated so far; empty when nothing could be resolved
    """
    builder = TreeBuilder(catalog, max_depth, deny_list, high_school_departments)
    try:
        await asyncio.wait_for(builder.build(start_text), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("Build for %r timed out after %ss, returning partial graph",
                       start_text, timeout)
        builder.cancel()

    graph = builder.result()
    logger.info("Built graph for %r: %d courses, %d prerequisites",
                start_text, len(graph.nodes), len(graph.edges))
    return graph


# ============================================================================
# LAYOUT
# ============================================================================

TOP_MARGIN = 120
BOTTOM_PADDING = 48
SIDE_PADDING = 80


def find_root(graph: PrereqGraph) -> Optional[str]:
    """First discovered node that unlocks nothing else in the graph"""
    if not graph.nodes:
        return None
    sources = {edge.source for edge in graph.valid_edges() if edge.source != edge.target}
    for node_id in graph.nodes:
        if node_id not in sources:
            return node_id
    return next(iter(graph.nodes))


def assign_depths(graph: PrereqGraph) -> Dict[str, int]:
    """
    Breadth-first distance from the root over incoming (prerequisite) edges.

    The first time a node is reached fixes its depth. Nodes the traversal
    never reaches get depth 0.
    """
    root = find_root(graph)
    if root is None:
        return {}

    incoming = defaultdict(list)
    for edge in graph.valid_edges():
        incoming[edge.target].append(edge.source)

    depths = {root: 0}
    queue = deque([root])
    while queue:
        current = queue.popleft()
        for prereq in incoming[current]:
            if prereq not in depths:
                depths[prereq] = depths[current] + 1
                queue.append(prereq)

    return {node_id: depths.get(node_id, 0) for node_id in graph.nodes}


def _margins(width: float, height: float) -> Tuple[float, float, float]:
    side = min(SIDE_PADDING, width / 4)
    top = min(TOP_MARGIN, height / 4)
    bottom = min(BOTTOM_PADDING, height / 4)
    return side, top, bottom


def compute_layout(
        graph: PrereqGraph,
        width: float,
        height: float,
        manual_positions: Optional[Dict[str, Tuple[float, float]]] = None,
        relax: bool = False) -> Dict[str, NodePosition]:
    """
    Assign each node a depth and a canvas position.

    Depth 0 (the root) sits at the top and each prerequisite level is one band
    lower. Within a band nodes are ordered by id and spread evenly across the
    width. Positions are recomputed from scratch on every call; only
    manual_positions (nodes the user dragged) override the computed x/y.

    Args:
        graph: Graph to lay out
        width: Canvas width in pixels
        height: Canvas height in pixels
        manual_positions: node id -> (x, y) set by the user
        relax: Run the cosmetic spring relaxation pass

    Returns:
        Dict of node id -> NodePosition

    Raises:
        ValueError: If the canvas size is not positive
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Invalid canvas size: {width}x{height}")

    depths = assign_depths(graph)
    if not depths:
        return {}

    side, top, bottom = _margins(width, height)
    available_width = width - side * 2
    available_height = height - top - bottom

    levels = max(depths.values()) + 1
    depth_groups = defaultdict(list)
    for node_id, depth in depths.items():
        depth_groups[depth].append(node_id)

    positions = {}
    for depth, node_ids in sorted(depth_groups.items()):
        node_ids = sorted(node_ids)
        if levels > 1:
            y = top + depth * available_height / (levels - 1)
        else:
            y = top + available_height / 2

        if len(node_ids) > 1:
            xs = np.linspace(side, side + available_width, len(node_ids))
        else:
            xs = [side + available_width / 2]

        for node_id, x in zip(node_ids, xs):
            positions[node_id] = NodePosition(x=float(x), y=float(y), depth=depth)

    manual_positions = manual_positions or {}
    if relax:
        positions = relax_positions(graph, positions, width, height, fixed=manual_positions)

    for node_id, (x, y) in manual_positions.items():
        if node_id in positions:
            positions[node_id] = NodePosition(
                x=float(x), y=float(y), depth=positions[node_id].depth, pinned=True)

    return positions


def relax_positions(
        graph: PrereqGraph,
        positions: Dict[str, NodePosition],
        width: float,
        height: float,
        iterations: int = 50,
        seed: int = 42,
        strength: float = 0.5,
        fixed: Iterable[str] = ()) -> Dict[str, NodePosition]:
    """
    Nudge x positions with a spring layout for readability.

    Every node keeps its band (y) and its left-to-right order within the band,
    and stays inside the canvas. Fixed nodes are not moved.
    """
    fixed = set(fixed)
    movable = [n for n in positions if n not in fixed]
    if len(positions) < 2 or not movable:
        return dict(positions)

    G = to_networkx(graph)
    start = {n: (p.x, p.y) for n, p in positions.items()}
    spring = nx.spring_layout(G, pos=start, iterations=iterations, seed=seed)

    raw_x = np.array([spring[n][0] for n in movable])
    spread = raw_x.max() - raw_x.min()
    if spread == 0:
        return dict(positions)

    side, _, _ = _margins(width, height)
    available_width = width - side * 2
    scaled = side + (raw_x - raw_x.min()) / spread * available_width
    blended = {
        n: (1 - strength) * positions[n].x + strength * x
        for n, x in zip(movable, scaled)
    }

    bands = defaultdict(list)
    for n in movable:
        bands[positions[n].depth].append(n)

    relaxed = dict(positions)
    for node_ids in bands.values():
        node_ids.sort(key=lambda n: positions[n].x)
        xs = sorted(blended[n] for n in node_ids)
        for n, x in zip(node_ids, xs):
            x = min(max(x, side), side + available_width)
            relaxed[n] = NodePosition(x=float(x), y=positions[n].y, depth=positions[n].depth)
    return relaxed


def apply_layout(graph: PrereqGraph, positions: Dict[str, NodePosition]) -> PrereqGraph:
    """Copy depth and coordinates onto the graph's nodes"""
    for node_id, pos in positions.items():
        node = graph.nodes.get(node_id)
        if node is None:
            continue
        node.depth = pos.depth
        node.x = pos.x
        node.y = pos.y
    return graph


# ============================================================================
# HIGHLIGHT PROPAGATION
# ============================================================================


class EdgeRole(str, Enum):
    OUTGOING = "outgoing"
    INCOMING = "incoming"
    UNRELATED = "unrelated"


@dataclass
class HighlightResult:
    focus: Optional[str]
    emphasized_node_ids: Set[str] = field(default_factory=set)
    edge_classification: Dict[Tuple[str, str], EdgeRole] = field(default_factory=dict)

    def is_emphasized(self, node_id: str) -> bool:
        return node_id in self.emphasized_node_ids


def highlight(graph: PrereqGraph, focused_id: Optional[str] = None) -> HighlightResult:
    """
    Classify nodes and edges relative to a focused node.

    With no focus every node is emphasized and every edge is unrelated.
    Otherwise the focus, the courses it unlocks and its direct prerequisites
    are emphasized; edges leaving the focus are outgoing, edges entering it are
    incoming. Always computed from scratch.
    """
    edges = graph.valid_edges()

    if focused_id is not None and focused_id not in graph.nodes:
        logger.debug("Focus %s is not in the graph", focused_id)
        focused_id = None

    if focused_id is None:
        return HighlightResult(
            focus=None,
            emphasized_node_ids=set(graph.nodes),
            edge_classification={e.key: EdgeRole.UNRELATED for e in edges},
        )

    emphasized = {focused_id}
    classification = {}
    for edge in edges:
        if edge.source == focused_id:
            classification[edge.key] = EdgeRole.OUTGOING
            emphasized.add(edge.target)
        elif edge.target == focused_id:
            classification[edge.key] = EdgeRole.INCOMING
            emphasized.add(edge.source)
        else:
            classification[edge.key] = EdgeRole.UNRELATED

    return HighlightResult(
        focus=focused_id,
        emphasized_node_ids=emphasized,
        edge_classification=classification,
    )


class FocusMode(str, Enum):
    NONE = "none"
    HOVERED = "hovered"
    PINNED = "pinned"


class FocusController:
    """
    Hover/pin focus state for one rendered graph.

    A pinned node keeps the highlight until close() is called; hovering other
    nodes meanwhile changes nothing. Every transition recomputes the highlight
    and hands it to on_change.
    """

    def __init__(self,
                 graph: PrereqGraph,
                 on_change: Optional[Callable[[HighlightResult], None]] = None):
        self.graph = graph
        self.on_change = on_change
        self.mode = FocusMode.NONE
        self.node_id: Optional[str] = None
        self.current = highlight(graph, None)

    @property
    def focus(self) -> Optional[str]:
        return self.node_id if self.mode != FocusMode.NONE else None

    def pointer_enter(self, node_id: str) -> HighlightResult:
        if self.mode == FocusMode.PINNED:
            return self.current
        self.mode = FocusMode.HOVERED
        self.node_id = node_id
        return self._refresh()

    def pointer_leave(self) -> HighlightResult:
        if self.mode != FocusMode.HOVERED:
            return self.current
        self.mode = FocusMode.NONE
        self.node_id = None
        return self._refresh()

    def click(self, node_id: str) -> HighlightResult:
        self.mode = FocusMode.PINNED
        self.node_id = node_id
        return self._refresh()

    def close(self) -> HighlightResult:
        if self.mode != FocusMode.PINNED:
            return self.current
        self.mode = FocusMode.NONE
        self.node_id = None
        return self._refresh()

    def reset(self, graph: PrereqGraph) -> HighlightResult:
        """Swap in a freshly built graph and clear focus"""
        self.graph = graph
        self.mode = FocusMode.NONE
        self.node_id = None
        return self._refresh()

    def _refresh(self) -> HighlightResult:
        self.current = highlight(self.graph, self.focus)
        if self.on_change is not None:
            self.on_change(self.current)
        return self.current


def search_nodes(graph: PrereqGraph, term: str) -> List[CourseNode]:
    """Nodes whose id or title contains the term (case-insensitive)"""
    term = (term or "").strip().lower()
    if not term:
        return list(graph.nodes.values())
    return [
        node for node in graph.nodes.values()
        if term in node.id.lower() or term in node.title.lower()
    ]


# ============================================================================
# ANALYSIS AND EXPORT
# ============================================================================


def to_networkx(graph: PrereqGraph) -> nx.DiGraph:
    """Build a DiGraph with prerequisite -> dependent edges"""
    G = nx.DiGraph()
    for node_id, node in graph.nodes.items():
        G.add_node(node_id, title=node.title, depth=node.depth)
    for edge in graph.valid_edges():
        G.add_edge(edge.source, edge.target, kind=edge.kind.value, group_id=edge.group_id)
    return G


def detect_cycles(graph: PrereqGraph) -> List[List[str]]:
    """
    Find prerequisite cycles.

    Returns:
        List of cycles (each cycle is a list of course IDs)
    """
    cycles = list(nx.simple_cycles(to_networkx(graph)))
    return sorted(cycles, key=lambda x: (len(x), x[0]))


def analyze_graph(graph: PrereqGraph, top_n: int = 10) -> Dict:
    """
    Analyze a prerequisite graph and return key statistics.

    Args:
        graph: Graph from build_graph()
        top_n: Number of top courses to return in rankings

    Returns:
        Dictionary with analysis results
    """
    G = to_networkx(graph)
    depths = list(assign_depths(graph).values())
    edges = graph.valid_edges()

    prereq_counts = {node: G.in_degree(node) for node in G.nodes()}
    dependent_counts = {node: G.out_degree(node) for node in G.nodes()}

    return {
        "root": find_root(graph),
        "total_courses": G.number_of_nodes(),
        "total_prerequisites": G.number_of_edges(),
        "or_prerequisites": sum(1 for e in edges if e.kind == EdgeKind.OR),
        "courses_with_most_prereqs": sorted(
            prereq_counts.items(), key=lambda x: x[1], reverse=True)[:top_n],
        "most_required_courses": sorted(
            dependent_counts.items(), key=lambda x: x[1], reverse=True)[:top_n],
        "cycles": detect_cycles(graph),
        "max_depth": max(depths) if depths else 0,
        "avg_depth": sum(depths) / len(depths) if depths else 0,
    }


def print_graph_analysis(graph: PrereqGraph, top_n: int = 10):
    """Print a formatted analysis of a prerequisite graph."""
    analysis = analyze_graph(graph, top_n=top_n)

    print("=" * 70)
    print(f"PREREQUISITE GRAPH: {analysis['root'] or '(empty)'}")
    print("=" * 70)

    print("\nOverview:")
    print(f"  Total Courses: {analysis['total_courses']}")
    print(f"  Total Prerequisites: {analysis['total_prerequisites']}")
    print(f"  OR Alternatives: {analysis['or_prerequisites']}")
    print(f"  Max Depth: {analysis['max_depth']}")
    print(f"  Avg Depth: {analysis['avg_depth']:.2f}")

    print("\nCourses with Most Prerequisites:")
    for course_id, count in analysis["courses_with_most_prereqs"]:
        if count > 0:
            print(f"  {course_id}: {count} prerequisites")
            text = graph.nodes[course_id].prerequisite_text
            if text:
                print(f"    -> {text}")

    print("\nMost Required Courses (as prerequisites):")
    for course_id, count in analysis["most_required_courses"]:
        if count > 0:
            print(f"  {course_id}: required by {count} courses")

    if analysis["cycles"]:
        print(f"\nWARNING: Found {len(analysis['cycles'])} prerequisite cycles!")
        for cycle in analysis["cycles"][:3]:
            print(f"    {' -> '.join(cycle)}")

    print("=" * 70)


def graph_to_frames(
        graph: PrereqGraph,
        positions: Optional[Dict[str, NodePosition]] = None) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Nodes and edges as DataFrames (one row per course / prerequisite link)"""
    positions = positions or {}
    node_rows = []
    for node_id, node in graph.nodes.items():
        pos = positions.get(node_id)
        node_rows.append({
            "id": node_id,
            "title": node.title,
            "department": node.department,
            "number": node.number,
            "units": node.units,
            "prerequisites": node.prerequisite_text,
            "depth": pos.depth if pos else node.depth,
            "x": pos.x if pos else node.x,
            "y": pos.y if pos else node.y,
        })
    nodes_df = pd.DataFrame(
        node_rows,
        columns=["id", "title", "department", "number", "units", "prerequisites", "depth", "x", "y"])

    edges_df = pd.DataFrame(
        [{"source": e.source, "target": e.target, "kind": e.kind.value, "group_id": e.group_id}
         for e in graph.valid_edges()],
        columns=["source", "target", "kind", "group_id"])
    return nodes_df, edges_df


# ============================================================================
# GRAPH VISUALIZATION
# ============================================================================

ROLE_COLORS = {
    EdgeRole.OUTGOING: "#1f77b4",
    EdgeRole.INCOMING: "#ff7f0e",
    EdgeRole.UNRELATED: "#9E9E9E",
}


def visualize_graph(graph: PrereqGraph,
                    positions: Optional[Dict[str, NodePosition]] = None,
                    focus: Optional[str] = None,
                    figsize: tuple = (20, 15),
                    title: Optional[str] = None,
                    save_path: Optional[str] = None,
                    show: bool = False) -> tuple:
    """
    Draw a prerequisite graph with matplotlib.

    Nodes are coloured by depth, OR edges are dashed. With a focus, nodes
    outside the highlight are faded and edges are coloured by role.

    Args:
        graph: Graph from build_graph()
        positions: Layout from compute_layout() (a 1200x800 layout if None)
        focus: Optional focused node id
        figsize: Figure size (width, height)
        title: Graph title (auto-generated if None)
        save_path: Path to save figure (e.g., "graph.png")
        show: Whether to display the graph

    Returns:
        tuple: (figure, axis)

    Raises:
        ValueError: If the graph has no nodes
    """
    import matplotlib
    import matplotlib.colors as mcolors
    import matplotlib.pyplot as plt

    if not graph.nodes:
        raise ValueError("Graph has no nodes to draw")

    if positions is None:
        positions = compute_layout(graph, 1200, 800)

    G = to_networkx(graph)
    pos = {node_id: (p.x, p.y) for node_id, p in positions.items()}
    root = find_root(graph)
    state = highlight(graph, focus)

    max_depth = max(p.depth for p in positions.values()) or 1
    cmap = matplotlib.colormaps["viridis"]
    norm = mcolors.Normalize(vmin=0, vmax=max_depth)

    fig, ax = plt.subplots(figsize=figsize)

    for faded in (False, True):
        nodelist = [n for n in G.nodes() if state.is_emphasized(n) != faded]
        if not nodelist:
            continue
        nx.draw_networkx_nodes(
            G, pos,
            nodelist=nodelist,
            node_color=[cmap(norm(positions[n].depth)) for n in nodelist],
            node_size=[3000 if n == root else 2000 for n in nodelist],
            alpha=0.2 if faded else 1.0,
            ax=ax,
        )
    nx.draw_networkx_labels(G, pos, font_size=8, font_weight="bold", ax=ax)

    for kind, style in ((EdgeKind.AND, "solid"), (EdgeKind.OR, "dashed")):
        edgelist = [e.key for e in graph.valid_edges() if e.kind == kind]
        if not edgelist:
            continue
        nx.draw_networkx_edges(
            G, pos,
            edgelist=edgelist,
            edge_color=[ROLE_COLORS[state.edge_classification[k]] for k in edgelist],
            style=style,
            arrows=True,
            arrowsize=20,
            node_size=2000,
            ax=ax,
        )

    if title is None:
        title = f"{root} - Prerequisite Tree"
    ax.set_title(title, fontsize=16, fontweight="bold")
    ax.invert_yaxis()
    ax.axis("off")
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches="tight")
        logger.info("Graph saved to: %s", save_path)

    if show:
        plt.show()

    return fig, ax
