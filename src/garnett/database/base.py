import functools
import logging
import threading
import time
from typing import Optional

from sqlalchemy import (
    Column,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    create_engine,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from ..advisor.course_codes import course_table_name
from ..core.config import settings

logger = logging.getLogger(__name__)

Base = declarative_base()


class ProfessorDB(Base):
    __tablename__ = "professor"

    instructor = Column(String, primary_key=True)
    rmp_link = Column(String, nullable=True)
    department = Column(String, nullable=True)

    def __repr__(self):
        return f"<Professor(instructor='{self.instructor}', department='{self.department}')>"


# Grade tables are one per course ("csce221"), so they are not declarative
# models. Letter columns hold the number of students who received that grade.
GRADE_COLUMNS = ["a", "b", "c", "d", "f", "i", "s", "u", "q", "x"]

_course_metadata = MetaData()
# Repository calls run in executor threads and share this metadata
_course_metadata_lock = threading.Lock()


def course_table(code: str) -> Table:
    """SQLAlchemy Table for a course's grade distribution table."""
    name = course_table_name(code)
    with _course_metadata_lock:
        if name in _course_metadata.tables:
            return _course_metadata.tables[name]
        return Table(
            name,
            _course_metadata,
            Column("term", String, nullable=False),
            Column("section", String, nullable=True),
            Column("instructor", String, nullable=False),
            Column("total", Integer, nullable=True),
            *[Column(grade, Integer, nullable=True) for grade in GRADE_COLUMNS],
            Column("average_gpa", Float, nullable=True),
        )


# Global engine instance for connection pooling
_engine: Optional[Engine] = None
_session_factory = None


def get_database_config(url: str) -> dict:
    """Get engine pool configuration with environment-specific optimizations"""
    if url.startswith("sqlite"):
        # Repository calls run in executor threads
        config = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            # Single shared connection so the in-memory database survives across sessions
            config["poolclass"] = StaticPool
        return config

    is_local = any(host in url for host in ["@localhost", "@127.0.0.1", "@[::1]"])
    if is_local:
        pool = {
            "pool_size": 5,
            "max_overflow": 10,
            "pool_timeout": 10,
            "pool_recycle": 7200,
        }
    else:
        pool = {
            "pool_size": 10,
            "max_overflow": 20,
            "pool_timeout": 30,
            "pool_recycle": 3600,
        }
    pool.update(
        pool_pre_ping=True,
        connect_args={"application_name": "garnett_api", "connect_timeout": 10},
    )
    return pool


def create_db_engine(url: Optional[str] = None) -> Engine:
    """Create database engine with connection pooling"""
    global _engine

    if _engine is not None:
        return _engine

    url = url or settings.database_url
    logger.info("Creating database engine with connection pooling")

    config = get_database_config(url)
    _engine = create_engine(url, echo=False, **config)

    # Create the professor table if it doesn't exist
    Base.metadata.create_all(_engine)

    logger.info(f"Database engine created ({_engine.dialect.name})")
    return _engine


def get_session_factory():
    """Get session factory with connection pooling"""
    global _session_factory

    if _session_factory is not None:
        return _session_factory

    engine = create_db_engine()
    _session_factory = sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )

    return _session_factory


def get_session():
    """Get database session from connection pool"""
    SessionFactory = get_session_factory()
    return SessionFactory()


def monitor_db_performance(func):
    """Decorator to monitor database query performance"""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        start_time = time.time()
        try:
            result = func(*args, **kwargs)
            execution_time = time.time() - start_time
            if execution_time > 1.0:  # Log slow queries (>1 second)
                logger.warning(f"Slow query in {func.__name__}: {execution_time:.2f}s")
            else:
                logger.debug(f"Query {func.__name__}: {execution_time:.3f}s")
            return result
        except Exception as e:
            execution_time = time.time() - start_time
            logger.error(
                f"Query error in {func.__name__} after {execution_time:.3f}s: {str(e)}"
            )
            raise

    return wrapper


def check_database_health():
    """Check database connection health and pool status"""
    try:
        engine = create_db_engine()

        with engine.connect() as conn:
            conn.execute(text("SELECT 1")).fetchone()

        pool = engine.pool
        try:
            pool_status = {
                "pool_size": pool.size(),
                "checked_in": pool.checkedin(),
                "checked_out": pool.checkedout(),
                "overflow": pool.overflow(),
                "pool_type": str(type(pool).__name__),
            }
        except AttributeError:
            # StaticPool and friends don't expose counters
            pool_status = {"pool_type": str(type(pool).__name__), "status": "active"}

        logger.info(f"Database health check passed. Pool status: {pool_status}")
        return {"status": "healthy", "pool_status": pool_status}

    except Exception as e:
        logger.error(f"Database health check failed: {str(e)}")
        return {"status": "unhealthy", "error": str(e)}
