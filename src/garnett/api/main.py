"""
FastAPI application for the Garnett course advisor
Provides the conversational advisor endpoint plus the grade-data endpoints it is built on
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from ..advisor.advisor import CourseAdvisor
from ..advisor.llm import OpenAIChatModel
from ..collectors.review_fetcher import ReviewFetcher
from ..core.cache import clear_all_cache, close_redis, get_cache_stats
from ..core.config import settings
from ..core.review_cache import ReviewCache
from ..database.base import check_database_health
from ..database.course_data import CourseDataRepository
from .routers import advisor, courses

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def build_advisor() -> CourseAdvisor:
    """Wire the advisor pipeline. The review cache lives as long as the process."""
    review_cache = ReviewCache(
        max_size=settings.review_cache_max_size, ttl=settings.review_cache_ttl
    )
    return CourseAdvisor(
        repository=CourseDataRepository(),
        review_fetcher=ReviewFetcher(review_cache),
        model=OpenAIChatModel(),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.advisor = build_advisor()
    logger.info(f"{settings.app_name} API started (model: {settings.openai_model})")
    yield
    await app.state.advisor.model.close()
    await close_redis()


app = FastAPI(
    title="Garnett API",
    description="**Texas A&M Course Advisor API**<br>Ask about Texas A&M courses and professors in plain language. Answers combine official grade distributions with RateMyProfessor reviews.<br><br>**Features:**<br>- **Advisor**: Conversational course recommendations, streamed as server-sent events<br>- **Courses**: Course list, grade rows and GPA by term<br>- **Professors**: Professor directory<br>",
    version=settings.version,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(advisor.router)
app.include_router(courses.router)


@app.get(
    "/",
    summary="/",
    description="API root endpoint. Returns welcome message.",
    tags=["General"],
)
async def root():
    """
    Root endpoint - API welcome message
    """
    return {"message": "Howdy! Welcome to the Garnett API"}


@app.get(
    "/health",
    summary="/health",
    description="Returns system health status including database connectivity and connection pool metrics.",
    tags=["System Health"],
)
async def health_check():
    """
    Health check endpoint with database status
    """
    try:
        db_health = check_database_health()
        return {"status": "healthy", "database": db_health, "api_version": settings.version}
    except Exception as e:
        logger.error(f"Health check failed: {str(e)}")
        return {"status": "unhealthy", "error": str(e), "api_version": settings.version}


@app.get(
    "/cache/stats",
    summary="/cache/stats",
    description="Review cache usage (size, expired entries, utilization) and Redis endpoint cache status.",
    tags=["System Health"],
)
async def cache_stats(request: Request):
    review_cache = request.app.state.advisor.review_fetcher.cache
    return {"review_cache": review_cache.stats(), "endpoint_cache": await get_cache_stats()}


@app.delete(
    "/cache",
    summary="/cache",
    description="Clears the review cache and every cached endpoint response.",
    tags=["System Health"],
)
async def clear_cache(request: Request):
    try:
        review_cache = request.app.state.advisor.review_fetcher.cache
        cleared_reviews = len(review_cache)
        review_cache.clear()
        cleared_endpoints = await clear_all_cache()
        logger.info(
            f"Cache cleared: {cleared_reviews} reviews, {cleared_endpoints} endpoint responses"
        )
        return {"review_cache_cleared": cleared_reviews, "endpoint_cache_cleared": cleared_endpoints}
    except Exception as e:
        logger.error(f"Error clearing cache: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Cache clear failed: {str(e)}")
