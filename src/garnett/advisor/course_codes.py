"""
Course code extraction and normalization.

Course codes are written "CSCE 221" everywhere in the advisor and map to
grade tables named "csce221".
"""

import re
from typing import List

# 2-4 letters, optional space or hyphen, 3 digits. The guards stop matches
# inside longer words ("SCORE 100") and longer numbers ("CSCE 2210").
COURSE_CODE_PATTERN = re.compile(r"(?<![A-Z])([A-Z]{2,4})[\s-]?([0-9]{3})(?![0-9])")
TABLE_NAME_PATTERN = re.compile(r"^[a-z]{2,4}[0-9]{3}$")


class InvalidCourseCode(ValueError):
    """Raised when a string cannot name a course grade table"""


def extract_course_codes(text: str) -> List[str]:
    """Return the unique course codes mentioned in text, in first-seen order.

    >>> extract_course_codes("compare csce221 and MATH-151, and CSCE 221 again")
    ['CSCE 221', 'MATH 151']
    """
    if not text:
        return []
    matches = COURSE_CODE_PATTERN.findall(text.upper())
    return list(dict.fromkeys(f"{dept} {number}" for dept, number in matches))


def normalize_course_code(code: str) -> str:
    """Normalize "csce221", " CSCE-221 " etc. to "CSCE 221"."""
    match = COURSE_CODE_PATTERN.fullmatch(code.strip().upper())
    if not match:
        raise InvalidCourseCode(f"Invalid course code: {code!r}")
    return f"{match.group(1)} {match.group(2)}"


def course_table_name(code: str) -> str:
    """Grade table name for a course code, e.g. "CSCE 221" -> "csce221"."""
    table = re.sub(r"[\s-]", "", code.strip().lower())
    if not TABLE_NAME_PATTERN.match(table):
        raise InvalidCourseCode(f"Invalid course code: {code!r}")
    return table
