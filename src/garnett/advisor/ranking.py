"""
Instructor ranking for "easiest professor" questions.

Rank primarily by average GPA; when two neighbours are within
GPA_TIE_THRESHOLD of each other, the one with the better review signal goes
first. This ranking is a hint placed in the prompt, the model still has the
final word.
"""

import re
from typing import Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel

from ..models.schema import CourseStatistics, ProfessorReview, ReviewEntry

GPA_TIE_THRESHOLD = 0.2


class InstructorRanking(BaseModel):
    instructor: str
    avg_gpa: Optional[float] = None
    sections: int = 0
    rating: Optional[float] = None
    difficulty: Optional[float] = None


def parse_number(value: Optional[str]) -> Optional[float]:
    """Pull the first number out of a scraped value ("4.5", "78%", "N/A")."""
    if not value:
        return None
    match = re.search(r"-?\d+(?:\.\d+)?", value)
    return float(match.group()) if match else None


def overall_gpa_by_instructor(stats: CourseStatistics) -> Dict[str, Tuple[Optional[float], int]]:
    """Section-weighted average GPA and section count per instructor."""
    totals: Dict[str, Tuple[float, int]] = {}
    sections: Dict[str, int] = {}
    for row in stats.per_term:
        sections[row.instructor] = sections.get(row.instructor, 0) + row.num_sections_in_term
        if row.avg_gpa_in_term is None:
            continue
        gpa_sum, weight = totals.get(row.instructor, (0.0, 0))
        totals[row.instructor] = (
            gpa_sum + row.avg_gpa_in_term * row.num_sections_in_term,
            weight + row.num_sections_in_term,
        )

    result: Dict[str, Tuple[Optional[float], int]] = {}
    for instructor in stats.overall:
        gpa_sum, weight = totals.get(instructor, (0.0, 0))
        avg = round(gpa_sum / weight, 2) if weight else None
        result[instructor] = (avg, sections.get(instructor, 0))
    return result


def _review_key(entry: InstructorRanking) -> Tuple[float, float]:
    # Higher rating first, then lower difficulty
    rating = entry.rating if entry.rating is not None else 0.0
    difficulty = entry.difficulty if entry.difficulty is not None else 5.0
    return (rating, -difficulty)


def _within_tie(a: InstructorRanking, b: InstructorRanking) -> bool:
    if a.avg_gpa is None or b.avg_gpa is None:
        return False
    # Rounded so 3.5 vs 3.3 counts as within 0.2 despite float error
    return round(abs(a.avg_gpa - b.avg_gpa), 6) <= GPA_TIE_THRESHOLD


def rank_instructors(
    stats: CourseStatistics,
    reviews_by_instructor: Mapping[str, Optional[ReviewEntry]],
) -> List[InstructorRanking]:
    """Order a course's instructors from "easiest" to hardest."""
    ranking = []
    for instructor, (avg_gpa, sections) in overall_gpa_by_instructor(stats).items():
        review = reviews_by_instructor.get(instructor)
        entry = InstructorRanking(instructor=instructor, avg_gpa=avg_gpa, sections=sections)
        if isinstance(review, ProfessorReview):
            entry.rating = parse_number(review.rating)
            entry.difficulty = parse_number(review.difficulty)
        ranking.append(entry)

    ranking.sort(key=lambda e: (e.avg_gpa is None, -(e.avg_gpa or 0.0)))

    # Neighbour swaps within the tie threshold; each swap puts a pair in
    # review order, so this terminates
    swapped = True
    while swapped:
        swapped = False
        for i in range(len(ranking) - 1):
            a, b = ranking[i], ranking[i + 1]
            if _within_tie(a, b) and _review_key(b) > _review_key(a):
                ranking[i], ranking[i + 1] = b, a
                swapped = True

    return ranking
