#!/usr/bin/env python3
"""
Command line entry point: ask the advisor one question and print the answer
as it streams.

    python -m garnett.main "who is the easiest professor for CSCE 221?"
    python -m garnett.main --course "CSCE 221" "what about the textbook?"
"""

import argparse
import asyncio
import logging
import sys

from .advisor.advisor import CourseAdvisor
from .advisor.llm import OpenAIChatModel
from .collectors.review_fetcher import ReviewFetcher
from .core.config import settings
from .core.review_cache import ReviewCache
from .database.course_data import CourseDataRepository
from .models.schema import ChunkEvent, CompleteEvent, ErrorEvent, SessionContext, StatusEvent


async def ask(question: str, courses: list, stream: bool = True) -> int:
    model = OpenAIChatModel()
    advisor = CourseAdvisor(
        repository=CourseDataRepository(),
        review_fetcher=ReviewFetcher(
            ReviewCache(settings.review_cache_max_size, settings.review_cache_ttl)
        ),
        model=model,
    )
    context = SessionContext.for_courses(courses)

    streamed = False
    try:
        async for event in advisor.run(question, context=context, stream=stream):
            if isinstance(event, StatusEvent):
                print(f"⏳ [{event.progress:>3}%] {event.message}", file=sys.stderr)
            elif isinstance(event, ChunkEvent):
                streamed = True
                print(event.content, end="", flush=True)
            elif isinstance(event, CompleteEvent):
                # Streamed chunks are already on screen
                print("" if streamed else event.answer)
                print(
                    f"✅ Done in {event.metadata.get('responseTime', 0)}ms "
                    f"(active courses: {', '.join(event.session_context.active_courses) or 'none'})",
                    file=sys.stderr,
                )
            elif isinstance(event, ErrorEvent):
                print(f"❌ {event.error}", file=sys.stderr)
                return 1
    finally:
        await model.close()
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Ask the Texas A&M course advisor a question")
    parser.add_argument("question", help='e.g. "easiest professor for CSCE 221?"')
    parser.add_argument(
        "--course",
        action="append",
        default=[],
        help="course already under discussion (repeatable), used when the question names none",
    )
    parser.add_argument("--no-stream", action="store_true", help="print the whole answer at once")
    args = parser.parse_args()

    logging.basicConfig(level=logging.WARNING)
    sys.exit(asyncio.run(ask(args.question, args.course, stream=not args.no_stream)))


if __name__ == "__main__":
    main()
