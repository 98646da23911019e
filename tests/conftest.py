import asyncio
import os
import sys
import tempfile
import time
from pathlib import Path
from typing import Dict, Generator, List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient

# Ensure src is in python path
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Throwaway SQLite database, set before the settings object is created
_db_dir = tempfile.mkdtemp(prefix="garnett-test-")
os.environ["DATABASE_URL"] = f"sqlite:///{_db_dir}/garnett.db"

from garnett.advisor.advisor import CourseAdvisor  # noqa: E402
from garnett.api.main import app  # noqa: E402
from garnett.collectors.review_fetcher import ReviewFetcher  # noqa: E402
from garnett.core import cache as endpoint_cache  # noqa: E402
from garnett.core.review_cache import ReviewCache  # noqa: E402
from garnett.database.base import (  # noqa: E402
    GRADE_COLUMNS,
    ProfessorDB,
    course_table,
    create_db_engine,
    get_session,
)
from garnett.database.course_data import CourseDataRepository  # noqa: E402

RMP_URL = "https://www.ratemyprofessors.com/professor/{}"

PROFESSORS = [
    # instructor, rmp id, department
    ("SMITH J", "1001", "CSCE"),
    ("JONES A", "1002", "CSCE"),
    ("LEE K", None, "CSCE"),
    ("GARCIA M", "2001", "MATH"),
]

# term, section, instructor, average_gpa
GRADE_ROWS = {
    "CSCE 221": [
        ("FALL 2023", "501", "SMITH J", 3.15),
        ("FALL 2023", "502", "SMITH J", 3.25),
        ("SPRING 2024", "501", "JONES A", 3.6),
        ("SPRING 2024", "502", "LEE K", 2.8),
    ],
    "MATH 151": [
        ("FALL 2023", "200", "GARCIA M", 3.0),
    ],
}


def professor_html(
    name: str = "Jane Smith",
    rating: str = "4.5",
    num_ratings: str = "42 ratings",
    would_take_again: str = "85%",
    difficulty: str = "2.1",
    tags: Optional[List[str]] = None,
    attendance: Optional[List[str]] = None,
    textbook: Optional[List[str]] = None,
) -> str:
    """Minimal RMP professor page with the generated class names RMP uses."""
    tags = tags if tags is not None else ["Caring", "Clear grading criteria"]
    attendance = attendance or []
    textbook = textbook or []
    meta = "".join(
        f'<div class="MetaItem__StyledMetaItem-y0ixml-0">Attendance: <span>{value}</span></div>'
        for value in attendance
    ) + "".join(
        f'<div class="MetaItem__StyledMetaItem-y0ixml-0">Textbook: <span>{value}</span></div>'
        for value in textbook
    )
    tag_html = "".join(f'<span class="Tag-bs9vf4-0 ffuTVG">{tag}</span>' for tag in tags)
    return f"""
    <html><body>
      <div class="NameTitle__Name-dowf0z-0 cfjPUG">{name}</div>
      <div class="RatingValue__Numerator-qw8sqy-2 liyUjw">{rating}</div>
      <div class="RatingValue__NumRatings-qw8sqy-0 jMkisx">
        <div>Overall Quality Based on <a href="#ratingsList">{num_ratings}</a></div>
      </div>
      <div class="FeedbackItem__FeedbackNumber-uof32n-1 kkESWs">{would_take_again}</div>
      <div class="FeedbackItem__FeedbackNumber-uof32n-1 kkESWs">{difficulty}</div>
      <div class="TeacherTags__TagsContainer-sc-16vmh1y-0">{tag_html}</div>
      <div class="Rating__RatingBody-sc-1rhvpxz-0">{meta}</div>
    </body></html>
    """


class StubReviewFetcher(ReviewFetcher):
    """ReviewFetcher serving canned pages instead of hitting RateMyProfessor"""

    def __init__(self, pages: Optional[Dict[str, str]] = None, failing=(), delay=0.0, **kwargs):
        kwargs.setdefault("batch_delay", 0.0)
        super().__init__(ReviewCache(max_size=100, ttl=3600), **kwargs)
        self.pages = pages or {}
        self.failing = set(failing)
        self.delay = delay
        self.requested: List[str] = []
        # url -> (started, finished) on the monotonic clock
        self.timings: Dict[str, Tuple[float, float]] = {}
        self.in_flight = 0
        self.max_in_flight = 0

    async def fetch_page(self, session, url: str) -> str:
        self.requested.append(url)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        started = time.monotonic()
        try:
            await asyncio.sleep(self.delay)
            if url in self.failing:
                raise RuntimeError(f"503 Service Unavailable for {url}")
            return self.pages.get(url, professor_html(name=f"Professor at {url}"))
        finally:
            self.in_flight -= 1
            self.timings[url] = (started, time.monotonic())


class FakeChatModel:
    """Language model stand-in with the OpenAIChatModel interface"""

    def __init__(self, chunks=("Howdy! ", "JONES A ", "is your best bet. 👍"), fail=False):
        self.chunks = list(chunks)
        self.fail = fail
        self.prompts: List[str] = []
        self.stream_closed = False

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.fail:
            raise RuntimeError("model unavailable")
        return "".join(self.chunks)

    async def stream(self, prompt: str):
        self.prompts.append(prompt)
        if self.fail:
            raise RuntimeError("model unavailable")
        try:
            for chunk in self.chunks:
                await asyncio.sleep(0)
                yield chunk
        finally:
            self.stream_closed = True

    async def close(self):
        pass


class SpyRepository(CourseDataRepository):
    """Real repository that records which courses had statistics fetched"""

    def __init__(self):
        super().__init__()
        self.statistics_requested: List[str] = []

    def get_course_statistics(self, course):
        self.statistics_requested.append(course)
        return super().get_course_statistics(course)


@pytest.fixture(scope="session", autouse=True)
def seed_data() -> None:
    """Seed the database with two course grade tables and the professor table."""
    engine = create_db_engine()
    # DDL goes first; SQLite locks the file once the session starts writing
    for course in GRADE_ROWS:
        course_table(course).create(engine, checkfirst=True)

    session = get_session()
    try:
        for course, rows in GRADE_ROWS.items():
            table = course_table(course)
            session.execute(table.delete())
            session.execute(
                table.insert(),
                [
                    {
                        "term": term,
                        "section": section,
                        "instructor": instructor,
                        "total": 100,
                        **{grade: 10 for grade in GRADE_COLUMNS},
                        "average_gpa": gpa,
                    }
                    for term, section, instructor, gpa in rows
                ],
            )

        session.query(ProfessorDB).delete()
        session.add_all(
            ProfessorDB(
                instructor=instructor,
                rmp_link=RMP_URL.format(rmp_id) if rmp_id else None,
                department=department,
            )
            for instructor, rmp_id, department in PROFESSORS
        )
        session.commit()
    finally:
        session.close()


@pytest.fixture(autouse=True)
def no_redis(monkeypatch) -> None:
    """Run endpoints uncached; tests never talk to Redis."""

    async def _no_redis():
        return None

    monkeypatch.setattr(endpoint_cache, "get_redis", _no_redis)


@pytest.fixture
def repository() -> SpyRepository:
    return SpyRepository()


@pytest.fixture
def fetcher() -> StubReviewFetcher:
    return StubReviewFetcher(
        pages={
            RMP_URL.format("1001"): professor_html(name="John Smith", rating="3.1", difficulty="3.9"),
            RMP_URL.format("1002"): professor_html(name="Amy Jones", rating="4.8", difficulty="2.0"),
            RMP_URL.format("2001"): professor_html(name="Maria Garcia", rating="4.0"),
        }
    )


@pytest.fixture
def model() -> FakeChatModel:
    return FakeChatModel()


@pytest.fixture
def advisor(repository, fetcher, model) -> CourseAdvisor:
    return CourseAdvisor(repository=repository, review_fetcher=fetcher, model=model)


@pytest.fixture
def client(advisor) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        # Replace the production wiring built by the lifespan
        app.state.advisor = advisor
        yield c
