import logging
import time
from typing import AsyncIterator

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse

from ...advisor.advisor import CourseAdvisor, recent_history
from ...core.config import settings
from ...models.schema import AnswerRequest, ErrorEvent, StatusEvent

logger = logging.getLogger(__name__)

router: APIRouter = APIRouter(tags=["Advisor"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def get_advisor(request: Request) -> CourseAdvisor:
    """Dependency returning the advisor built at startup"""
    return request.app.state.advisor


async def _event_stream(advisor: CourseAdvisor, body: AnswerRequest) -> AsyncIterator[str]:
    yield StatusEvent(message="Starting data collection...", progress=0).to_sse()

    events = advisor.run(
        body.query,
        recent_history(body.conversation_history, settings.history_window),
        body.session_context,
        stream=True,
    )
    try:
        async for event in events:
            yield event.to_sse()
    except Exception as e:
        logger.error(f"[Streaming Error]: {e}")
        yield ErrorEvent(error=str(e) or "Internal Server Error").to_sse()
    finally:
        # Client disconnects cancel this generator; stop the model stream too
        await events.aclose()


@router.post(
    "/answer_with_rag",
    summary="/answer_with_rag",
    description="Answers a course or professor question. Streams server-sent events unless useStreaming is false.",
)
async def answer_with_rag(
    body: AnswerRequest, advisor: CourseAdvisor = Depends(get_advisor)
):
    """
    Conversational course advisor

    Streaming responses are `data: {json}` lines typed status, chunk, complete
    or error. The stream ends with exactly one complete or error event.
    """
    request_start = time.time()
    logger.info(f'Query: "{body.query}" (Streaming: {body.use_streaming})')

    if not body.query:
        raise HTTPException(status_code=400, detail="Missing query")

    if body.use_streaming:
        return StreamingResponse(
            _event_stream(advisor, body),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    result = await advisor.answer(
        body.query,
        recent_history(body.conversation_history, settings.history_window),
        body.session_context,
    )
    result.metadata["responseTime"] = int((time.time() - request_start) * 1000)
    result.metadata["cacheStats"] = advisor.review_fetcher.cache.stats()
    logger.info(f"Request completed in {result.metadata['responseTime']}ms")
    return result.model_dump(by_alias=True)
