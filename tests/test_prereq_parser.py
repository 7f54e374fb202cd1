"""
Tests for course reference extraction and OR grouping.
"""

import re

import pytest

from prereq_map import prereq_parser
from prereq_map.prereq_parser import (
    CourseRef,
    extract_course_refs,
    find_course_occurrences,
    format_prerequisites,
    group_or_alternatives,
    is_excluded,
    parse_course,
)

CANONICAL = re.compile(r"^[A-Z]{2,5} \d{3,4}[A-Z]{0,2}$")


# ============================================================================
# Course Reference Parser
# ============================================================================

def test_extracts_in_order_of_first_occurrence():
    text = "CMPT 225 and MACM 101, or CMPT 225 with a grade of C-"
    assert extract_course_refs(text) == ["CMPT 225", "MACM 101"]


def test_normalizes_case_spacing_and_suffix():
    text = "cmpt105w; MACM101 and Ensc 251d"
    assert extract_course_refs(text) == ["CMPT 105W", "MACM 101", "ENSC 251D"]


@pytest.mark.parametrize("text", [
    "CMPT 225 and MACM 101",
    "One of MATH 150, MATH 151, MATH 154 or MATH 157, with a minimum grade of C-.",
    "STAT 270 and (MATH 232 or MATH 240); CMPT 125/CMPT 135.",
    "Completion of 60 units, including CMPT 276 and CMPT 225.",
])
def test_output_is_unique_and_canonical(text):
    course_ids = extract_course_refs(text)
    assert len(course_ids) == len(set(course_ids))
    assert all(CANONICAL.match(c) for c in course_ids)


def test_parsing_is_idempotent():
    text = "MATH 151 or MATH 154; CMPT 120 and MACM 101"
    assert extract_course_refs(text) == extract_course_refs(text)


def test_bc_math_12_is_excluded():
    assert extract_course_refs("BC Math 12") == []


def test_high_school_courses_never_appear():
    text = "BC Math 12 (or equivalent), MATH 12 or BC 123, and MATH 100"
    course_ids = extract_course_refs(text)
    assert course_ids == ["MATH 100"]
    assert "MATH 12" not in course_ids
    assert "BC 123" not in course_ids


@pytest.mark.parametrize("course_id, departments, expected", [
    ("MATH 12", ("MATH",), True),
    ("PHYS 11", ("PHYS",), True),
    ("BC 101", (), True),
    ("MATH 120", ("MATH",), False),
    ("GEOG 12", ("GEOG",), True),
    ("MATH 12", ("GEOG",), False),
])
def test_is_excluded(course_id, departments, expected):
    assert is_excluded(course_id, departments) is expected


def test_high_school_pattern_is_compiled_once_per_text(monkeypatch):
    calls = []
    original = prereq_parser._high_school_pattern

    def counting(departments):
        calls.append(departments)
        return original(departments)

    monkeypatch.setattr(prereq_parser, "_high_school_pattern", counting)
    text = "MATH 12, PHYS 11, CMPT 120, CMPT 125 or CMPT 130, MACM 101"
    occurrences = find_course_occurrences(text, ("MATH", "PHYS"))

    assert [o.ref.id for o in occurrences] == ["CMPT 120", "CMPT 125", "CMPT 130", "MACM 101"]
    assert len(calls) == 1


def test_free_text_without_courses():
    assert extract_course_refs("Permission of the instructor.") == []
    assert extract_course_refs("") == []


def test_parse_course():
    assert parse_course("  cmpt 307 ") == CourseRef(department="CMPT", number="307")
    assert parse_course("CMPT105W").id == "CMPT 105W"
    assert parse_course("hello") is None
    assert parse_course("") is None


def test_course_ref_equality_by_canonical_form():
    a = parse_course("macm 101")
    b = parse_course("MACM101")
    assert a == b
    assert len({a, b}) == 1
    assert str(a) == "MACM 101"


def test_occurrences_keep_repeats_and_offsets():
    text = "MATH 151 or MATH 151"
    occurrences = find_course_occurrences(text)
    assert [o.ref.id for o in occurrences] == ["MATH 151", "MATH 151"]
    assert text[occurrences[1].start:occurrences[1].end] == "MATH 151"


# ============================================================================
# Prerequisite Clause Grouper
# ============================================================================

def test_or_pair_forms_one_group():
    assert group_or_alternatives("MATH 151 or MATH 154") == [{"MATH 151", "MATH 154"}]


def test_and_text_has_no_groups():
    assert group_or_alternatives("CMPT 225 and MACM 101") == []


@pytest.mark.parametrize("text", [
    "CMPT 125/CMPT 135",
    "either MATH 150 or MATH 151",
    "CMPT 120, either CMPT 125",
    "CMPT 120, one of CMPT 125",
])
def test_or_cues(text):
    groups = group_or_alternatives(text)
    assert len(groups) == 1
    assert len(groups[0]) == 2


def test_running_group_extends_and_closes():
    text = "MATH 150 or MATH 151 or MATH 154, and CMPT 120 or CMPT 125"
    assert group_or_alternatives(text) == [
        {"MATH 150", "MATH 151", "MATH 154"},
        {"CMPT 120", "CMPT 125"},
    ]


def test_comma_list_before_or_only_links_the_last_pair():
    text = "one of CMPT 120, CMPT 125 or CMPT 130"
    assert group_or_alternatives(text) == [{"CMPT 125", "CMPT 130"}]


def test_word_containing_or_is_not_a_cue():
    assert group_or_alternatives("CMPT 120 for majors, MATH 100") == []


def test_single_member_group_is_dropped():
    assert group_or_alternatives("MATH 151 or MATH 151") == []


def test_duplicate_groups_collapse():
    text = "MATH 151 or MATH 154; and MATH 154 or MATH 151"
    assert group_or_alternatives(text) == [{"MATH 151", "MATH 154"}]


def test_format_prerequisites():
    course_ids = ["MATH 151", "MATH 154", "CMPT 120"]
    groups = [{"MATH 151", "MATH 154"}]
    assert format_prerequisites(course_ids, groups) == "(MATH 151 or MATH 154) and CMPT 120"
    assert format_prerequisites(["MATH 151", "MATH 154"], groups) == "MATH 151 or MATH 154"
    assert format_prerequisites(["CMPT 225", "MACM 101"], []) == "CMPT 225 and MACM 101"
    assert format_prerequisites([], []) == ""
