"""
Prompt assembly for the course advisor.

build_prompt is pure: the same inputs always produce the same text.
"""

import json
from typing import List, Mapping, Optional, Sequence

from ..models.schema import (
    ConversationTurn,
    CourseStatistics,
    ReviewEntry,
    SessionContext,
)
from .ranking import GPA_TIE_THRESHOLD, rank_instructors

ReviewsByInstructor = Mapping[str, Optional[ReviewEntry]]

RANKING_CRITERIA = f"""CRITICALLY IMPORTANT: When users ask about the "easiest" professor or class:
1. First compare by average GPA - professors with higher GPAs should typically rank higher
2. When GPAs are within {GPA_TIE_THRESHOLD} points of each other, use RateMyProfessor ratings to determine the ranking (higher rating first, then lower difficulty, then the tags)
3. Present information in conversational, flowing paragraphs rather than lists
4. Synthesize the GPA data, term information, and RateMyProfessor feedback (ratings, difficulty, tags) into cohesive descriptions
5. Recommend the professor who offers the best balance of high GPA and positive RateMyProfessor feedback"""

STYLE_RULES = """If the user is comparing multiple courses, provide information about all requested courses.
Make your response Aggie themed and in a readable format with emojis.
DO NOT just spit out the data you receive, synthesize and understand the data so that you can form descriptive recommendations for professors/classes.
Unless asked, DO NOT give any links and keep the answer concise."""


def format_history(history: Sequence[ConversationTurn]) -> str:
    return "\n\n".join(
        f"{'User' if turn.is_user else 'AI'}: {turn.content}" for turn in history
    )


def format_context(context: SessionContext) -> str:
    courses = context.active_courses
    if not courses:
        return ""
    if len(courses) == 1:
        return f"The current course in this conversation is: {courses[0]}"
    return f"The active courses in this conversation are: {', '.join(courses)}"


def _review_json(entry: Optional[ReviewEntry]) -> Optional[dict]:
    return entry.model_dump() if entry is not None else None


def format_suggested_ranking(
    course_stats: Mapping[str, CourseStatistics],
    reviews: Mapping[str, ReviewsByInstructor],
) -> str:
    """One numbered list per course, easiest first."""
    sections = []
    for course, stats in course_stats.items():
        ranking = rank_instructors(stats, reviews.get(course, {}))
        if not ranking:
            continue
        lines = [f"{course}:"]
        for position, entry in enumerate(ranking, start=1):
            gpa = f"{entry.avg_gpa:.2f}" if entry.avg_gpa is not None else "N/A"
            rating = f"{entry.rating:g}" if entry.rating is not None else "N/A"
            difficulty = f"{entry.difficulty:g}" if entry.difficulty is not None else "N/A"
            lines.append(
                f"{position}. {entry.instructor} (avg GPA {gpa}, rating {rating}, difficulty {difficulty})"
            )
        sections.append("\n".join(lines))
    return "\n\n".join(sections)


def build_prompt(
    query: str,
    history: Sequence[ConversationTurn],
    course_stats: Mapping[str, CourseStatistics],
    reviews: Mapping[str, ReviewsByInstructor],
    context: SessionContext,
) -> str:
    """
    Build the single prompt sent to the language model for one turn.

    Args:
        query: The user's question
        history: Prior turns, already truncated to the history window
        course_stats: Course code -> GPA statistics
        reviews: Course code -> instructor -> RMP review (or error marker)
        context: Courses in scope for this turn
    """
    course_json = json.dumps(
        {course: stats.model_dump() for course, stats in course_stats.items()}
    )
    review_json = json.dumps(
        {
            course: {name: _review_json(entry) for name, entry in by_instructor.items()}
            for course, by_instructor in reviews.items()
        }
    )

    parts: List[str] = [
        "You are a helpful Texas A&M course advisor.",
        f"Previous conversation:\n{format_history(history)}",
    ]
    context_line = format_context(context)
    if context_line:
        parts.append(context_line)
    parts.append(f'Current user question: "{query}"')
    parts.append(
        f"USE THE GPA DATA FROM Course information: {course_json}, and the "
        f"RateMyProfessor information: {review_json}, to tailor detailed responses."
    )
    parts.append(RANKING_CRITERIA)

    suggested = format_suggested_ranking(course_stats, reviews)
    if suggested:
        parts.append(
            "Suggested easiest-first order computed from the data with the rules above:\n"
            + suggested
        )

    parts.append(STYLE_RULES)
    return "\n\n".join(parts)

