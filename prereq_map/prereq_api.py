#!/usr/bin/env python3
"""
Course Prerequisite Map API
"""

import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from .catalog import CourseRecord, SFUCatalogClient, load_catalog
from .config import Config
from .prereq_core import (
    CourseNode,
    EdgeRole,
    GraphEdge,
    NodePosition,
    PrereqGraph,
    apply_layout,
    build_graph,
    compute_layout,
    highlight,
)
from .prereq_parser import extract_course_refs, format_prerequisites, group_or_alternatives, parse_course

logger = logging.getLogger(__name__)

# ============================================================================
# DATA MODELS
# ============================================================================


class BuildTreeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    start_course: str = Field(alias="startCourse")
    width: float = Field(1200, gt=0)
    height: float = Field(800, gt=0)


class GraphResponse(BaseModel):
    root: Optional[str]
    found: bool
    nodes: List[CourseNode]
    edges: List[GraphEdge]


class ParseRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    prerequisite_text: str = Field("", alias="prerequisiteText")


class ParseResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    courses: List[str]
    or_groups: List[List[str]] = Field(alias="orGroups")
    formatted: str


class Point(BaseModel):
    x: float
    y: float


class LayoutRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    graph: PrereqGraph
    width: float = Field(1200, gt=0)
    height: float = Field(800, gt=0)
    manual_positions: Dict[str, Point] = Field(default_factory=dict, alias="manualPositions")
    relax: bool = False


class LayoutResponse(BaseModel):
    positions: Dict[str, NodePosition]


class HighlightRequest(BaseModel):
    graph: PrereqGraph
    focus: Optional[str] = None


class EdgeHighlight(BaseModel):
    source: str
    target: str
    role: EdgeRole


class HighlightResponse(BaseModel):
    focus: Optional[str]
    emphasized: List[str]
    edges: List[EdgeHighlight]


# ============================================================================
# API ENDPOINTS
# ============================================================================

router = APIRouter()


@router.get("/")
async def root(request: Request):
    """API health check"""
    return {
        "status": "online",
        "message": "Course Prerequisite Map API",
        "catalog": type(request.app.state.catalog).__name__,
    }


@router.post("/build-tree", response_model=GraphResponse)
async def build_tree(body: BuildTreeRequest, request: Request):
    """Build the prerequisite graph for a course, with node positions"""
    start = body.start_course.strip()
    if not start:
        raise HTTPException(status_code=400, detail="startCourse must not be empty")

    config = request.app.state.config
    graph = await build_graph(
        start,
        request.app.state.catalog,
        max_depth=config.MAX_DEPTH,
        deny_list=config.DENY_LIST,
        high_school_departments=config.HIGH_SCHOOL_DEPARTMENTS,
        timeout=config.BUILD_TIMEOUT,
    )
    apply_layout(graph, compute_layout(graph, body.width, body.height))

    return GraphResponse(
        root=graph.root,
        found=bool(graph.nodes),
        nodes=list(graph.nodes.values()),
        edges=graph.edges,
    )


@router.post("/parse-prerequisites", response_model=ParseResponse)
async def parse_prerequisites(body: ParseRequest, request: Request):
    """Extract course codes and OR groups from prerequisite text"""
    departments = request.app.state.config.HIGH_SCHOOL_DEPARTMENTS
    text = body.prerequisite_text or ""
    courses = extract_course_refs(text, departments)
    or_groups = group_or_alternatives(text, high_school_departments=departments)

    return ParseResponse(
        courses=courses,
        or_groups=[[c for c in courses if c in group] for group in or_groups],
        formatted=format_prerequisites(courses, or_groups),
    )


@router.get("/courses/{course_id}", response_model=CourseRecord)
async def get_course(course_id: str, request: Request):
    """Get details for a specific course"""
    ref = parse_course(course_id.replace("-", " "))
    if ref is None:
        raise HTTPException(status_code=400, detail="Invalid course ID format")

    record = await request.app.state.catalog.lookup(ref)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Course {ref.id} not found")
    return record


@router.post("/layout", response_model=LayoutResponse)
async def layout(body: LayoutRequest):
    """Compute node positions for a canvas size"""
    manual = {node_id: (p.x, p.y) for node_id, p in body.manual_positions.items()}
    positions = compute_layout(body.graph, body.width, body.height,
                               manual_positions=manual, relax=body.relax)
    return LayoutResponse(positions=positions)


@router.post("/highlight", response_model=HighlightResponse)
async def highlight_graph(body: HighlightRequest):
    """Classify nodes and edges around a focused course"""
    state = highlight(body.graph, body.focus)
    return HighlightResponse(
        focus=state.focus,
        emphasized=sorted(state.emphasized_node_ids),
        edges=[
            EdgeHighlight(source=source, target=target, role=role)
            for (source, target), role in state.edge_classification.items()
        ],
    )


# ============================================================================
# FASTAPI APPLICATION
# ============================================================================


def _default_catalog(config):
    if config.CATALOG_PATH:
        try:
            return load_catalog(config.CATALOG_PATH)
        except (FileNotFoundError, ValueError) as e:
            logger.warning("Could not load local catalog, using SFU API: %s", e)
    return SFUCatalogClient(config.CATALOG_URL, config.REQUEST_TIMEOUT)


def create_app(catalog=None, config=Config) -> FastAPI:
    """
    Build the API application.

    Args:
        catalog: Catalog lookup source (local file or SFU API from config if None)
        config: Settings object, Config by default
    """
    logging.basicConfig(level=config.LOG_LEVEL)

    app = FastAPI(
        title="Course Prerequisite Map API",
        description="Build, lay out and highlight course prerequisite graphs",
        version="1.0.0"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.config = config
    app.state.catalog = catalog if catalog is not None else _default_catalog(config)
    app.include_router(router)
    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="127.0.0.1", port=8000)
