"""
Course reference extraction and OR-group heuristics for prerequisite text
"""

import re
from typing import Iterable, List, NamedTuple, Optional, Set

from pydantic import BaseModel, ConfigDict

# ============================================================================
# PATTERNS
# ============================================================================

COURSE_PATTERN = re.compile(r"\b([A-Z]{2,5})\s*(\d{3,4})([A-Z]{0,2})\b", re.IGNORECASE)

DEFAULT_HIGH_SCHOOL_DEPARTMENTS = ("MATH", "CHEM", "PHYS", "ENGL", "BIO")

_BC_PATTERN = re.compile(r"^BC\s*\d+[A-Z]*$", re.IGNORECASE)

# "or" as a token, a slash, "either", or "one of"
_OR_CUE = re.compile(r"\bor\b|/|\beither\b|\bone\s+of\b")


class CourseRef(BaseModel):
    """A structured course identifier such as CMPT 225 or CMPT 105W"""

    model_config = ConfigDict(frozen=True)

    department: str
    number: str
    suffix: str = ""

    @property
    def id(self) -> str:
        return f"{self.department} {self.number}{self.suffix}"

    def __str__(self) -> str:
        return self.id


class CourseOccurrence(NamedTuple):
    ref: CourseRef
    start: int
    end: int


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================


def _ref_from_match(match: re.Match) -> CourseRef:
    return CourseRef(
        department=match.group(1).upper(),
        number=match.group(2),
        suffix=(match.group(3) or "").upper(),
    )


def _high_school_pattern(departments: Iterable[str]) -> Optional[re.Pattern]:
    depts = sorted({d.strip().upper() for d in departments if d and d.strip()})
    if not depts:
        return None
    return re.compile(
        r"^(" + "|".join(re.escape(d) for d in depts) + r")\s*1[12][A-Z]*$",
        re.IGNORECASE)


def is_excluded(
        course_id: str,
        high_school_departments: Iterable[str] = DEFAULT_HIGH_SCHOOL_DEPARTMENTS) -> bool:
    """True for high-school codes (BC 12, MATH 12 ...) that are not university courses"""
    return _is_excluded(course_id, _high_school_pattern(high_school_departments))


def _is_excluded(course_id: str, pattern: Optional[re.Pattern]) -> bool:
    if _BC_PATTERN.match(course_id):
        return True
    return bool(pattern and pattern.match(course_id))


# ============================================================================
# PARSER
# ============================================================================


def parse_course(text: str) -> Optional[CourseRef]:
    """
    Parse a single course string ("cmpt225", "CMPT 105W") into a CourseRef.

    Returns:
        The first course reference found in the text, or None
    """
    if not text:
        return None
    match = COURSE_PATTERN.search(str(text).strip())
    if not match:
        return None
    return _ref_from_match(match)


def find_course_occurrences(
        text: str,
        high_school_departments: Iterable[str] = DEFAULT_HIGH_SCHOOL_DEPARTMENTS
) -> List[CourseOccurrence]:
    """
    Find every non-excluded course reference in free text, with character spans.

    Repeated mentions of the same course are all returned, in textual order.
    """
    if not text:
        return []

    pattern = _high_school_pattern(high_school_departments)
    occurrences = []
    for match in COURSE_PATTERN.finditer(text):
        ref = _ref_from_match(match)
        if _is_excluded(ref.id, pattern):
            continue
        occurrences.append(CourseOccurrence(ref, match.start(), match.end()))
    return occurrences


def extract_course_refs(
        text: str,
        high_school_departments: Iterable[str] = DEFAULT_HIGH_SCHOOL_DEPARTMENTS) -> List[str]:
    """
    Extract canonical course ids from prerequisite text.

    Args:
        text: Free prerequisite text (e.g., "CMPT 225 and (MACM 101 or MATH 151)")
        high_school_departments: Departments whose 11/12 numbers are high-school courses

    Returns:
        Deduplicated canonical ids, in order of first occurrence
    """
    seen = set()
    course_ids = []
    for occurrence in find_course_occurrences(text, high_school_departments):
        course_id = occurrence.ref.id
        if course_id not in seen:
            seen.add(course_id)
            course_ids.append(course_id)
    return course_ids


# ============================================================================
# CLAUSE GROUPER
# ============================================================================


def group_or_alternatives(
        text: str,
        occurrences: Optional[List[CourseOccurrence]] = None,
        high_school_departments: Iterable[str] = DEFAULT_HIGH_SCHOOL_DEPARTMENTS
) -> List[Set[str]]:
    """
    Group course mentions into OR alternatives using lexical cues.

    Two consecutive mentions are OR-linked when the text between them contains
    "or", "/", "either" or "one of". Runs of linked mentions form one group.
    This is a heuristic: nested parentheses, "and/or" mixes and negations are
    not modelled, and unrelated neighbours can be grouped together.

    Args:
        text: Prerequisite text
        occurrences: Pre-computed occurrences (computed from text if omitted)
        high_school_departments: Used only when occurrences are computed here

    Returns:
        List of groups, each a set of at least two canonical ids
    """
    if occurrences is None:
        occurrences = find_course_occurrences(text, high_school_departments)

    groups = []
    current: List[str] = []

    def flush():
        members = set(current)
        if len(members) >= 2:
            groups.append(members)

    for left, right in zip(occurrences, occurrences[1:]):
        between = text[left.end:right.start].lower()
        if _OR_CUE.search(between):
            if not current:
                current.append(left.ref.id)
            current.append(right.ref.id)
        else:
            flush()
            current = []
    flush()

    # Deduplication
    unique_groups = []
    seen = set()
    for group in groups:
        frozen = frozenset(group)
        if frozen not in seen:
            seen.add(frozen)
            unique_groups.append(group)
    return unique_groups


def format_prerequisites(course_ids: List[str], or_groups: List[Set[str]]) -> str:
    """Format prerequisites as human-readable string with AND/OR logic"""
    formatted_groups = []
    placed = set()
    for course_id in course_ids:
        if course_id in placed:
            continue
        group = next((g for g in or_groups if course_id in g), None)
        if group is None:
            formatted_groups.append(course_id)
            placed.add(course_id)
            continue
        members = [c for c in course_ids if c in group]
        formatted_groups.append("(" + " or ".join(members) + ")")
        placed.update(members)

    if len(formatted_groups) == 1 and formatted_groups[0].startswith("("):
        return formatted_groups[0][1:-1]
    return " and ".join(formatted_groups)
