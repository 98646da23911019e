import json

from garnett.advisor.prompt import build_prompt, format_context, format_history
from garnett.advisor.ranking import overall_gpa_by_instructor, parse_number, rank_instructors
from garnett.models.schema import (
    ConversationTurn,
    CourseStatistics,
    ProfessorReview,
    ReviewFetchError,
    SessionContext,
    TermGpa,
)


def stats_for(*rows) -> CourseStatistics:
    """rows: (instructor, term, sections, avg_gpa), highest GPA first"""
    return CourseStatistics.from_rows(
        [
            TermGpa(instructor=i, term=t, num_sections_in_term=n, avg_gpa_in_term=g)
            for i, t, n, g in rows
        ]
    )


def review(name: str, rating: str, difficulty: str) -> ProfessorReview:
    return ProfessorReview(
        id=name,
        name=name,
        url=f"https://www.ratemyprofessors.com/professor/{name}",
        rating=rating,
        difficulty=difficulty,
        top_tags=["Caring"],
    )


def test_parse_number():
    assert parse_number("4.5") == 4.5
    assert parse_number("78%") == 78.0
    assert parse_number("N/A") is None
    assert parse_number(None) is None


def test_gpa_is_weighted_by_sections():
    stats = stats_for(("X", "SPRING 2024", 1, 3.9), ("X", "FALL 2023", 2, 3.0))

    assert overall_gpa_by_instructor(stats) == {"X": (3.3, 3)}


def test_gpa_gap_above_threshold_wins_over_reviews():
    stats = stats_for(("PROF A", "FALL 2023", 1, 3.6), ("PROF B", "FALL 2023", 1, 3.3))
    reviews = {"PROF A": review("A", "2.0", "4.5"), "PROF B": review("B", "5.0", "1.0")}

    ranking = rank_instructors(stats, reviews)

    assert [entry.instructor for entry in ranking] == ["PROF A", "PROF B"]


def test_reviews_break_ties_within_threshold():
    stats = stats_for(("PROF A", "FALL 2023", 1, 3.5), ("PROF B", "FALL 2023", 1, 3.3))
    reviews = {"PROF A": review("A", "3.0", "3.0"), "PROF B": review("B", "4.6", "2.5")}

    ranking = rank_instructors(stats, reviews)

    assert [entry.instructor for entry in ranking] == ["PROF B", "PROF A"]


def test_difficulty_breaks_equal_ratings():
    stats = stats_for(("PROF A", "FALL 2023", 1, 3.5), ("PROF B", "FALL 2023", 1, 3.45))
    reviews = {"PROF A": review("A", "4.0", "3.5"), "PROF B": review("B", "4.0", "2.0")}

    ranking = rank_instructors(stats, reviews)

    assert [entry.instructor for entry in ranking] == ["PROF B", "PROF A"]


def test_missing_reviews_do_not_win_ties():
    stats = stats_for(("PROF A", "FALL 2023", 1, 3.5), ("PROF B", "FALL 2023", 1, 3.4))
    reviews = {"PROF A": ReviewFetchError(error="timeout"), "PROF B": None}

    ranking = rank_instructors(stats, reviews)

    assert [entry.instructor for entry in ranking] == ["PROF A", "PROF B"]
    assert ranking[0].rating is None


def test_format_history_and_context():
    history = [
        ConversationTurn(content="Is CSCE 221 hard?", is_user=True),
        ConversationTurn(content="It's a lot of work! 📚", is_user=False),
    ]

    assert format_history(history) == "User: Is CSCE 221 hard?\n\nAI: It's a lot of work! 📚"
    assert format_context(SessionContext()) == ""
    assert (
        format_context(SessionContext.for_courses(["CSCE 221"]))
        == "The current course in this conversation is: CSCE 221"
    )
    assert (
        format_context(SessionContext.for_courses(["CSCE 221", "MATH 151"]))
        == "The active courses in this conversation are: CSCE 221, MATH 151"
    )


def test_build_prompt():
    stats = stats_for(("PROF A", "FALL 2023", 1, 3.6), ("PROF B", "FALL 2023", 1, 3.3))
    reviews = {"PROF A": review("A", "2.0", "4.5"), "PROF B": review("B", "5.0", "1.0")}
    history = [ConversationTurn(content="Howdy", is_user=True)]

    prompt = build_prompt(
        "Who is the easiest professor for CSCE 221?",
        history,
        {"CSCE 221": stats},
        {"CSCE 221": reviews},
        SessionContext.for_courses(["CSCE 221"]),
    )

    assert prompt.startswith("You are a helpful Texas A&M course advisor.")
    assert "User: Howdy" in prompt
    assert "The current course in this conversation is: CSCE 221" in prompt
    assert 'Current user question: "Who is the easiest professor for CSCE 221?"' in prompt
    assert json.dumps({"CSCE 221": stats.model_dump()}) in prompt
    assert '"rating": "5.0"' in prompt

    # Ranking rules and tone
    assert "First compare by average GPA" in prompt
    assert "within 0.2 points" in prompt
    assert "Aggie themed" in prompt
    assert "emojis" in prompt
    assert "DO NOT give any links" in prompt

    # A's GPA lead is over the threshold, so A is suggested first despite B's reviews
    first = "1. PROF A (avg GPA 3.60, rating 2, difficulty 4.5)"
    second = "2. PROF B (avg GPA 3.30, rating 5, difficulty 1)"
    assert first in prompt and second in prompt
    assert prompt.index(first) < prompt.index(second)


def test_build_prompt_tie_suggests_better_reviewed_professor():
    stats = stats_for(("PROF A", "FALL 2023", 1, 3.5), ("PROF B", "FALL 2023", 1, 3.4))
    reviews = {"PROF A": review("A", "2.0", "4.5"), "PROF B": review("B", "5.0", "1.0")}

    prompt = build_prompt(
        "easiest?", [], {"CSCE 221": stats}, {"CSCE 221": reviews}, SessionContext()
    )

    assert "1. PROF B" in prompt
    assert "2. PROF A" in prompt
    assert "current course in this conversation" not in prompt


def test_build_prompt_is_deterministic():
    stats = stats_for(("PROF A", "FALL 2023", 1, 3.5))
    args = ("q", [], {"CSCE 221": stats}, {"CSCE 221": {}}, SessionContext())

    assert build_prompt(*args) == build_prompt(*args)
