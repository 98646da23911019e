from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TermGpa(BaseModel):
    """Average GPA of one instructor's sections in one term"""

    instructor: str
    term: str
    num_sections_in_term: int
    avg_gpa_in_term: Optional[float] = None


class CourseStatistics(BaseModel):
    """Per-term GPA aggregates for a course, highest average GPA first"""

    per_term: List[TermGpa] = Field(default_factory=list)
    overall: List[str] = Field(default_factory=list)

    @classmethod
    def from_rows(cls, rows: List[TermGpa]) -> "CourseStatistics":
        # Distinct instructors, first-seen order
        instructors = list(dict.fromkeys(row.instructor for row in rows))
        return cls(per_term=rows, overall=instructors)


class ProfessorReview(BaseModel):
    """Professor data scraped from a RateMyProfessor page.

    Values are kept as the page displays them ("4.5", "78%", "N/A") since the
    upstream format is not stable enough to type strictly.
    """

    id: str
    name: str
    url: str
    rating: str = "N/A"
    total_ratings: str = "N/A"
    would_take_again: str = "N/A"
    difficulty: str = "N/A"
    top_tags: List[str] = Field(default_factory=list)
    attendance_stats: Dict[str, int] = Field(default_factory=dict)
    textbook_stats: Dict[str, int] = Field(default_factory=dict)

    @field_validator("top_tags")
    @classmethod
    def dedupe_tags(cls, v: List[str]) -> List[str]:
        return list(dict.fromkeys(tag for tag in v if tag))


class ReviewFetchError(BaseModel):
    """Error marker cached in place of a professor whose page failed"""

    error: str


ReviewEntry = Union[ProfessorReview, ReviewFetchError]


class ConversationTurn(BaseModel):
    content: str
    is_user: bool = Field(alias="isUser")

    model_config = ConfigDict(populate_by_name=True)


class SessionContext(BaseModel):
    """Courses in scope for a conversation, owned by the caller between turns"""

    current_course: Optional[str] = Field(None, alias="currentCourse")
    active_courses: List[str] = Field(default_factory=list, alias="activeCourses")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def for_courses(cls, courses: List[str]) -> "SessionContext":
        return cls(
            current_course=courses[0] if courses else None,
            active_courses=list(courses),
        )


class AnswerRequest(BaseModel):
    """Request body for POST /answer_with_rag"""

    query: Optional[str] = None
    conversation_history: List[ConversationTurn] = Field(
        default_factory=list, alias="conversationHistory"
    )
    session_context: SessionContext = Field(
        default_factory=SessionContext, alias="sessionContext"
    )
    use_streaming: bool = Field(True, alias="useStreaming")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("conversation_history", "session_context", mode="before")
    @classmethod
    def null_as_default(cls, v: Any, info) -> Any:
        if v is None:
            return [] if info.field_name == "conversation_history" else {}
        return v


class AdvisorAnswer(BaseModel):
    """Whole answer for non-streaming callers"""

    answer: str
    session_context: SessionContext = Field(alias="sessionContext")
    metadata: Dict[str, Any] = Field(default_factory=dict, alias="_metadata")

    model_config = ConfigDict(populate_by_name=True)


# Streaming events. Every stream ends with exactly one complete or error event.


class _AdvisorEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_sse(self) -> str:
        return f"data: {self.model_dump_json(by_alias=True)}\n\n"


class StatusEvent(_AdvisorEvent):
    type: Literal["status"] = "status"
    message: str
    progress: int


class ChunkEvent(_AdvisorEvent):
    type: Literal["chunk"] = "chunk"
    content: str


class CompleteEvent(_AdvisorEvent):
    type: Literal["complete"] = "complete"
    answer: str
    session_context: SessionContext = Field(alias="sessionContext")
    metadata: Dict[str, Any] = Field(default_factory=dict, alias="_metadata")


class ErrorEvent(_AdvisorEvent):
    type: Literal["error"] = "error"
    error: str


AdvisorEvent = Union[StatusEvent, ChunkEvent, CompleteEvent, ErrorEvent]


class ProfessorInfo(BaseModel):
    name: str
    department: Optional[str] = None


class GpaByTerm(BaseModel):
    instructor: str
    term: str
    avg_gpa: Optional[float] = None
