"""
Queries over the per-course grade tables and the professor table.

Course grade tables are named after the course ("csce221"), so "does this
course exist" is a question about the table catalog. The catalog query is
dialect specific; everything else goes through SQLAlchemy Core so table names
are always quoted by the dialect.
"""

import logging
import re
from typing import Any, Dict, List, Optional

from sqlalchemy import bindparam, func, select, text
from sqlalchemy.exc import SQLAlchemyError

from ..advisor.course_codes import InvalidCourseCode, course_table_name
from ..models.schema import CourseStatistics, GpaByTerm, ProfessorInfo, TermGpa
from .base import ProfessorDB, course_table, get_session_factory, monitor_db_performance

logger = logging.getLogger(__name__)

LISTED_COURSE_PATTERN = re.compile(r"^[A-Za-z]{4}[0-9]{3}$")

_CATALOG_QUERIES = {
    "postgresql": """
        SELECT table_name
        FROM information_schema.tables
        WHERE table_schema = 'public'
          AND table_type = 'BASE TABLE'
    """,
    "sqlite": """
        SELECT name AS table_name
        FROM sqlite_master
        WHERE type = 'table'
    """,
}


def _catalog_query(dialect: str, only: bool = False):
    try:
        sql = _CATALOG_QUERIES[dialect]
    except KeyError:
        raise NotImplementedError(f"No table catalog query for dialect {dialect}")

    if not only:
        return text(sql)
    column = "table_name" if dialect == "postgresql" else "name"
    return text(f"{sql} AND {column} IN :tables").bindparams(
        bindparam("tables", expanding=True)
    )


class CourseDataRepository:
    """Grade-data queries. Methods are synchronous; async callers should run
    them in an executor."""

    def __init__(self, session_factory=None):
        self._session_factory = session_factory

    @property
    def session_factory(self):
        if self._session_factory is None:
            self._session_factory = get_session_factory()
        return self._session_factory

    @monitor_db_performance
    def courses_exist(self, courses: List[str]) -> Dict[str, bool]:
        """Batch check which courses have a grade table, in one round trip."""
        if not courses:
            return {}

        tables: Dict[str, Optional[str]] = {}
        for course in courses:
            try:
                tables[course] = course_table_name(course)
            except InvalidCourseCode:
                # Cannot be a table name, so cannot exist
                tables[course] = None

        names = sorted({table for table in tables.values() if table})
        existing_tables = set()
        if names:
            with self.session_factory() as session:
                dialect = session.get_bind().dialect.name
                rows = session.execute(_catalog_query(dialect, only=True), {"tables": names})
                existing_tables = {row.table_name for row in rows}

        return {course: table in existing_tables for course, table in tables.items()}

    @monitor_db_performance
    def list_courses(self) -> List[str]:
        """All course codes with a grade table, uppercased ("CSCE221")."""
        with self.session_factory() as session:
            dialect = session.get_bind().dialect.name
            rows = session.execute(_catalog_query(dialect))
            names = [row.table_name for row in rows]
        return sorted(name.upper() for name in names if LISTED_COURSE_PATTERN.match(name))

    @monitor_db_performance
    def get_course_statistics(self, course: str) -> CourseStatistics:
        """
        Per-instructor, per-term GPA averages for a course.

        Rows are ordered by average GPA, highest first. A course without rows,
        or a failing query, yields empty statistics.
        """
        table = course_table(course)
        avg_gpa = func.avg(table.c.average_gpa).label("avg_gpa_in_term")
        query = (
            select(
                table.c.instructor,
                table.c.term,
                func.count().label("num_sections_in_term"),
                avg_gpa,
            )
            .group_by(table.c.instructor, table.c.term)
            .order_by(avg_gpa.desc().nulls_last())
        )

        try:
            with self.session_factory() as session:
                result = session.execute(query).all()
        except SQLAlchemyError as e:
            logger.error(f"Error fetching course info for {course}: {e}")
            return CourseStatistics()

        rows = [
            TermGpa(
                instructor=row.instructor,
                term=row.term,
                num_sections_in_term=row.num_sections_in_term,
                avg_gpa_in_term=_round(row.avg_gpa_in_term, 2),
            )
            for row in result
        ]
        return CourseStatistics.from_rows(rows)

    @monitor_db_performance
    def get_review_links(self, instructors: List[str]) -> Dict[str, str]:
        """Map instructor name -> RateMyProfessor URL for known instructors."""
        if not instructors:
            return {}

        query = select(ProfessorDB.instructor, ProfessorDB.rmp_link).where(
            ProfessorDB.instructor.in_(instructors)
        )
        try:
            with self.session_factory() as session:
                rows = session.execute(query).all()
        except SQLAlchemyError as e:
            logger.error(f"Error fetching professor info: {e}")
            return {}

        return {row.instructor: row.rmp_link for row in rows if row.rmp_link}

    @monitor_db_performance
    def list_professors(self) -> List[ProfessorInfo]:
        query = select(ProfessorDB.instructor, ProfessorDB.department).order_by(
            ProfessorDB.instructor
        )
        with self.session_factory() as session:
            rows = session.execute(query).all()
        return [ProfessorInfo(name=row.instructor, department=row.department) for row in rows]

    @monitor_db_performance
    def get_course_data(self, course: str) -> List[Dict[str, Any]]:
        """Grade rows of a course joined with each instructor's review link."""
        table = course_table(course)
        query = select(table, ProfessorDB.rmp_link).join_from(
            table, ProfessorDB, table.c.instructor == ProfessorDB.instructor, isouter=True
        )
        with self.session_factory() as session:
            rows = session.execute(query).all()
        return [dict(row._mapping) for row in rows]

    @monitor_db_performance
    def get_gpa_by_term(self, course: str) -> List[GpaByTerm]:
        table = course_table(course)
        query = (
            select(
                table.c.instructor,
                table.c.term,
                func.avg(table.c.average_gpa).label("avg_gpa"),
            )
            .group_by(table.c.instructor, table.c.term)
            .order_by(table.c.instructor, table.c.term)
        )
        with self.session_factory() as session:
            rows = session.execute(query).all()
        return [
            GpaByTerm(
                instructor=row.instructor,
                term=row.term,
                avg_gpa=_round(row.avg_gpa, 3),
            )
            for row in rows
        ]


def _round(value: Optional[float], digits: int) -> Optional[float]:
    return round(float(value), digits) if value is not None else None
