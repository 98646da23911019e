"""
The conversational course advisor.

One turn runs through these stages:

    no course found          -> clarification, done
    validating               -> batched existence check
      all invalid            -> "no data" message, done
      partially invalid      -> note the dropped courses, done (no model call)
    fetching                 -> GPA statistics, then RMP reviews, per course
    generating               -> prompt assembled, model invoked
    streaming | complete     -> chunks, or the whole answer at once
    done                     -> final session context

run() is an async generator of typed events. Every turn ends with exactly one
CompleteEvent or ErrorEvent, unless the consumer closes the generator first,
in which case nothing else is emitted and the caller keeps its old context.
"""

import asyncio
import functools
import logging
import time
from typing import AsyncIterator, Dict, List, Optional, Sequence, Tuple

from ..collectors.review_fetcher import ReviewFetcher
from ..collectors.rmp_page_parser import professor_id_from_url
from ..core.config import settings
from ..database.course_data import CourseDataRepository
from ..models.schema import (
    AdvisorAnswer,
    AdvisorEvent,
    ChunkEvent,
    CompleteEvent,
    ConversationTurn,
    CourseStatistics,
    ErrorEvent,
    ReviewEntry,
    SessionContext,
    StatusEvent,
)
from .course_codes import InvalidCourseCode, extract_course_codes, normalize_course_code
from .llm import OpenAIChatModel
from .prompt import build_prompt

logger = logging.getLogger(__name__)

NO_COURSE_MESSAGE = (
    "Howdy! Please include a course name in your prompt (ex: CSCE 221) so I can help you better."
)
ALL_INVALID_MESSAGE = (
    "Howdy! I don't have any data for {courses}. This might not be a valid Texas A&M "
    "course code, or we haven't loaded this course's data yet. Please check the course "
    "code and try again, or ask about a different course."
)
PARTIALLY_INVALID_MESSAGE = (
    "Howdy! I don't have any data for {courses}. "
    "I'll answer based on the other course(s) you mentioned."
)
APOLOGY_MESSAGE = (
    "Whoop! We're having trouble processing your request. Please try again in a few moments."
)


def _context_courses(context: SessionContext) -> List[str]:
    courses = []
    for course in context.active_courses:
        try:
            courses.append(normalize_course_code(course))
        except InvalidCourseCode:
            # Left as is; the existence check reports it as unavailable
            courses.append(course)
    return list(dict.fromkeys(courses))


class CourseAdvisor:
    """Answers course and professor questions from GPA data and RMP reviews"""

    def __init__(
        self,
        repository: CourseDataRepository,
        review_fetcher: ReviewFetcher,
        model: OpenAIChatModel,
        stream_chunk_delay: float = settings.stream_chunk_delay,
    ):
        self.repository = repository
        self.review_fetcher = review_fetcher
        self.model = model
        self.stream_chunk_delay = stream_chunk_delay

    async def _db(self, func, *args):
        # Repository calls are blocking SQLAlchemy calls
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(func, *args))

    def _metadata(self, started: float, with_cache_stats: bool = False) -> dict:
        metadata = {"responseTime": int((time.time() - started) * 1000)}
        if with_cache_stats:
            metadata["cacheStats"] = self.review_fetcher.cache.stats()
        return metadata

    async def _fetch_statistics(self, courses: List[str]) -> Dict[str, CourseStatistics]:
        results = await asyncio.gather(
            *(self._db(self.repository.get_course_statistics, course) for course in courses)
        )
        return dict(zip(courses, results))

    async def _fetch_course_reviews(
        self, course: str, stats: CourseStatistics
    ) -> Dict[str, Optional[ReviewEntry]]:
        started = time.time()
        links = await self._db(self.repository.get_review_links, stats.overall)
        entries = await self.review_fetcher.fetch_reviews(list(links.values()))
        logger.info(
            f"Professor info for {course} fetched in {(time.time() - started) * 1000:.0f}ms "
            f"({len(stats.overall)} professors, {len(links)} with RMP links)"
        )
        return {
            instructor: entries.get(professor_id_from_url(url))
            for instructor, url in links.items()
        }

    async def _fetch_reviews(
        self, course_stats: Dict[str, CourseStatistics]
    ) -> Dict[str, Dict[str, Optional[ReviewEntry]]]:
        courses = list(course_stats)
        results = await asyncio.gather(
            *(self._fetch_course_reviews(course, course_stats[course]) for course in courses)
        )
        return dict(zip(courses, results))

    async def run(
        self,
        query: str,
        history: Sequence[ConversationTurn] = (),
        context: Optional[SessionContext] = None,
        stream: bool = True,
    ) -> AsyncIterator[AdvisorEvent]:
        """Run one conversational turn, yielding status, chunk and final events."""
        started = time.time()
        context = context or SessionContext()

        courses = extract_course_codes(query) or _context_courses(context)
        if not courses:
            yield CompleteEvent(
                answer=NO_COURSE_MESSAGE,
                session_context=SessionContext(),
                metadata=self._metadata(started),
            )
            return

        yield StatusEvent(
            message=f"Found courses: {', '.join(courses)}. Checking availability...",
            progress=10,
        )

        try:
            check_started = time.time()
            existence = await self._db(self.repository.courses_exist, courses)
            logger.info(
                f"Course existence check completed in {(time.time() - check_started) * 1000:.0f}ms"
            )
        except Exception as e:
            logger.error(f"Course existence check failed: {e}")
            yield self._failure(stream, SessionContext.for_courses(courses), started)
            return

        valid = [course for course in courses if existence.get(course)]
        invalid = [course for course in courses if not existence.get(course)]

        if not valid:
            yield CompleteEvent(
                answer=ALL_INVALID_MESSAGE.format(courses=", ".join(invalid)),
                session_context=SessionContext(),
                metadata=self._metadata(started),
            )
            return

        if invalid:
            yield CompleteEvent(
                answer=PARTIALLY_INVALID_MESSAGE.format(courses=", ".join(invalid)),
                session_context=SessionContext.for_courses(valid),
                metadata=self._metadata(started),
            )
            return

        turn_context = SessionContext.for_courses(courses)
        yield StatusEvent(message="Collecting course and professor data...", progress=20)

        try:
            fetch_started = time.time()
            course_stats = await self._fetch_statistics(courses)
            stats_time = time.time() - fetch_started
            logger.info(f"All course info fetched in {stats_time * 1000:.0f}ms")
        except Exception as e:
            logger.error(f"Error fetching course statistics: {e}")
            yield self._failure(stream, turn_context, started)
            return

        yield StatusEvent(
            message="Course data collected. Gathering professor reviews...", progress=40
        )

        try:
            reviews = await self._fetch_reviews(course_stats)
            logger.info(
                f"Total data fetching completed in {(time.time() - fetch_started) * 1000:.0f}ms"
            )
        except Exception as e:
            logger.error(f"Error fetching professor reviews: {e}")
            yield self._failure(stream, turn_context, started)
            return

        yield StatusEvent(message="Generating personalized recommendation...", progress=70)
        prompt = build_prompt(query, history, course_stats, reviews, turn_context)

        if not stream:
            try:
                model_started = time.time()
                answer = await self.model.complete(prompt)
                logger.info(f"OpenAI API call completed in {(time.time() - model_started) * 1000:.0f}ms")
            except Exception as e:
                logger.error(f"Error generating answer: {e}")
                yield self._failure(stream, turn_context, started)
                return

            yield CompleteEvent(
                answer=answer,
                session_context=turn_context,
                metadata=self._metadata(started, with_cache_stats=True),
            )
            return

        yield StatusEvent(message="AI is writing your response...", progress=80)

        pieces: List[str] = []
        model_started = time.time()
        chunks = self.model.stream(prompt)
        try:
            async for content in chunks:
                pieces.append(content)
                yield ChunkEvent(content=content)
                if self.stream_chunk_delay > 0:
                    await asyncio.sleep(self.stream_chunk_delay)
        except Exception as e:
            logger.error(f"Error streaming answer: {e}")
            yield self._failure(stream, turn_context, started)
            return
        finally:
            await chunks.aclose()

        logger.info(f"OpenAI streaming completed in {(time.time() - model_started) * 1000:.0f}ms")
        yield CompleteEvent(
            answer="".join(pieces),
            session_context=turn_context,
            metadata=self._metadata(started, with_cache_stats=True),
        )

    def _failure(self, stream: bool, context: SessionContext, started: float) -> AdvisorEvent:
        if stream:
            return ErrorEvent(error=APOLOGY_MESSAGE)
        return CompleteEvent(
            answer=APOLOGY_MESSAGE,
            session_context=context,
            metadata=self._metadata(started),
        )

    async def answer(
        self,
        query: str,
        history: Sequence[ConversationTurn] = (),
        context: Optional[SessionContext] = None,
    ) -> AdvisorAnswer:
        """Run a turn without streaming and return the whole answer."""
        final: Optional[CompleteEvent] = None
        async for event in self.run(query, history, context, stream=False):
            if isinstance(event, CompleteEvent):
                final = event
        if final is None:
            raise RuntimeError("advisor turn ended without a complete event")
        return AdvisorAnswer(
            answer=final.answer,
            session_context=final.session_context,
            metadata=final.metadata,
        )


def recent_history(
    history: Sequence[ConversationTurn], window: int = settings.history_window
) -> Tuple[ConversationTurn, ...]:
    """Keep the last `window` turns of a conversation."""
    if window <= 0:
        return ()
    return tuple(history[-window:])
