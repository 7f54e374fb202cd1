"""
Course prerequisite graphs: parse prerequisite text, expand a course into its
transitive prerequisite graph, lay it out and drive focus highlighting.
"""

from .catalog import CourseRecord, DataFrameCatalog, SFUCatalogClient, load_catalog
from .prereq_core import (
    CourseNode,
    EdgeKind,
    EdgeRole,
    FocusController,
    GraphEdge,
    NodePosition,
    PrereqGraph,
    TreeBuilder,
    analyze_graph,
    build_graph,
    compute_layout,
    highlight,
)
from .prereq_parser import CourseRef, extract_course_refs, group_or_alternatives, parse_course

__all__ = [
    'CourseRecord',
    'DataFrameCatalog',
    'SFUCatalogClient',
    'load_catalog',
    'CourseNode',
    'EdgeKind',
    'EdgeRole',
    'FocusController',
    'GraphEdge',
    'NodePosition',
    'PrereqGraph',
    'TreeBuilder',
    'analyze_graph',
    'build_graph',
    'compute_layout',
    'highlight',
    'CourseRef',
    'extract_course_refs',
    'group_or_alternatives',
    'parse_course',
]
