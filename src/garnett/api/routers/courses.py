import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from ...advisor.course_codes import InvalidCourseCode, normalize_course_code
from ...core.cache import TTL_LONG, cached
from ...database.course_data import CourseDataRepository
from .advisor import get_advisor

logger = logging.getLogger(__name__)

router: APIRouter = APIRouter(tags=["Courses"])


def get_repository(request: Request) -> CourseDataRepository:
    return get_advisor(request).repository


def _require_course(repository: CourseDataRepository, course_id: str) -> str:
    """Normalize a path course id and make sure its grade table exists."""
    try:
        course = normalize_course_code(course_id)
    except InvalidCourseCode:
        raise HTTPException(
            status_code=400, detail=f"Invalid course id: {course_id}. Expected e.g. CSCE221"
        )
    if not repository.courses_exist([course]).get(course):
        raise HTTPException(status_code=404, detail=f"No data for course {course}")
    return course


@router.get(
    "/courses",
    summary="/courses",
    description="Returns every course code that has grade data, e.g. CSCE221.",
)
@cached(TTL_LONG)
async def get_courses(
    request: Request, repository: CourseDataRepository = Depends(get_repository)
):
    try:
        return repository.list_courses()
    except Exception as e:
        logger.error(f"Error fetching courses: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Database error: {str(e)}")


@router.get(
    "/professors",
    summary="/professors",
    description="Returns every professor with their department, ordered by name.",
)
@cached(TTL_LONG)
async def get_professors(
    request: Request, repository: CourseDataRepository = Depends(get_repository)
):
    try:
        return [professor.model_dump() for professor in repository.list_professors()]
    except Exception as e:
        logger.error(f"Error fetching professors: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Database error: {str(e)}")


@router.get(
    "/course/{course_id}/data",
    summary="/course/{course_id}/data",
    description="Returns the grade distribution rows of a course with each instructor's RateMyProfessor link.",
)
@cached(TTL_LONG)
async def get_course_data(
    request: Request,
    course_id: str,
    repository: CourseDataRepository = Depends(get_repository),
):
    """
    Grade rows for a course

    One row per section: term, section, instructor, letter-grade counts,
    average GPA and rmp_link (null when the instructor has no RMP page).
    """
    try:
        course = _require_course(repository, course_id)
        return repository.get_course_data(course)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching data for {course_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Database error: {str(e)}")


@router.get(
    "/course/{course_id}/gpa-by-term",
    summary="/course/{course_id}/gpa-by-term",
    description="Returns the average GPA of each instructor in each term, ordered by instructor and term.",
)
@cached(TTL_LONG)
async def get_gpa_by_term(
    request: Request,
    course_id: str,
    repository: CourseDataRepository = Depends(get_repository),
):
    try:
        course = _require_course(repository, course_id)
        return [row.model_dump() for row in repository.get_gpa_by_term(course)]
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching GPA by term for {course_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Database error: {str(e)}")
