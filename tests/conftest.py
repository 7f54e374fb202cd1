"""
Shared fixtures: in-memory catalogs and hand-built graphs.
"""

import pytest

from prereq_map.catalog import DataFrameCatalog
from prereq_map.config import Config
from prereq_map.prereq_core import CourseNode, EdgeKind, GraphEdge, PrereqGraph


def _record(course_id, prerequisites=""):
    dept, number = course_id.split(" ")
    return {
        "dept": dept,
        "number": number,
        "title": f"Title of {course_id}",
        "description": f"About {course_id}",
        "units": "3",
        "prerequisites": prerequisites,
        "corequisites": "",
    }


class RecordingCatalog(DataFrameCatalog):
    """DataFrameCatalog that remembers which course ids were looked up"""

    def __init__(self, courses_df):
        super().__init__(courses_df)
        self.lookups = []

    async def lookup(self, ref):
        self.lookups.append(ref.id)
        return await super().lookup(ref)


@pytest.fixture
def make_catalog():
    """make_catalog(("CMPT 307", "CMPT 225 and MACM 101"), ("CMPT 225", ""), ...)"""
    def _make(*courses):
        return RecordingCatalog.from_records([_record(*c) for c in courses])
    return _make


@pytest.fixture
def sfu_catalog(make_catalog):
    """A small slice of the SFU computing catalog"""
    return make_catalog(
        ("CMPT 307", "CMPT 225 and MACM 101, both with a minimum grade of C-."),
        ("CMPT 225", "CMPT 125 or CMPT 135, and MACM 101."),
        ("CMPT 125", "CMPT 120 or CMPT 130."),
        ("CMPT 135", "CMPT 130."),
        ("CMPT 120", "BC Math 12 (or equivalent)."),
        ("CMPT 130", ""),
        ("MACM 101", "BC Math 12 or MATH 100."),
        ("MATH 100", ""),
    )


@pytest.fixture
def make_graph():
    """make_graph(["A 100", ...], [("B 200", "A 100"), ("C 300", "A 100", "OR"), ...])"""
    def _make(node_ids, edges=()):
        graph = PrereqGraph()
        for node_id in node_ids:
            dept, number = node_id.split(" ")
            graph.nodes[node_id] = CourseNode(
                id=node_id, title=f"Title of {node_id}", department=dept, number=number)
        for edge in edges:
            source, target = edge[0], edge[1]
            kind = EdgeKind(edge[2]) if len(edge) > 2 else EdgeKind.AND
            graph.edges.append(GraphEdge(source=source, target=target, kind=kind))
        if node_ids:
            graph.root = node_ids[0]
        return graph
    return _make


class _TestConfig(Config):
    CATALOG_PATH = None
    BUILD_TIMEOUT = 5.0
    MAX_DEPTH = 5
    DENY_LIST = ("CMPT 300",)
    HIGH_SCHOOL_DEPARTMENTS = ("MATH", "CHEM", "PHYS", "ENGL", "BIO")
    LOG_LEVEL = "WARNING"


@pytest.fixture
def test_config():
    return _TestConfig
