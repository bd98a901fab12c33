"""
Tracker data models.
Pydantic v2 models for profiles, progress, test history, study plans
and the read-only question catalog.
"""

from datetime import datetime
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def now_iso() -> str:
    return datetime.now().isoformat()


# ---------------------------------------------------------------------------
# Persisted records
# ---------------------------------------------------------------------------

class Profile(BaseModel):
    student_id: str
    name: str
    avatar: str = ""
    join_date: str = Field(default_factory=now_iso)
    total_tests: int = Field(default=0, ge=0)
    total_questions: int = Field(default=0, ge=0)
    correct_answers: int = Field(default=0, ge=0)


class AttemptRecord(BaseModel):
    question_id: str
    result: Literal["correct", "incorrect"]
    timestamp: str = Field(default_factory=now_iso)
    time_taken_ms: float = Field(default=0.0, ge=0)


class SubtopicStat(BaseModel):
    attempted: int = 0
    correct: int = 0
    history: list[AttemptRecord] = Field(default_factory=list)
    average_time_ms: float = 0.0
    last_attempt: Optional[str] = None


class ProgressRecord(BaseModel):
    student_id: str = ""
    # subject_id -> subtopic_id -> stats, in insertion order
    subjects: dict[str, dict[str, SubtopicStat]] = Field(default_factory=dict)
    last_activity: Optional[str] = None


class QuestionResult(BaseModel):
    question_id: str
    question: str = ""
    type: str = "multiple-choice"
    user_answer: Optional[Union[int, str]] = None
    correct_answer: Optional[Union[int, str]] = None
    is_correct: bool
    time_taken_ms: float = Field(default=0.0, ge=0)
    explanation: Optional[str] = None


class SessionSummary(BaseModel):
    """A completed practice session before the history log stamps it."""

    subject: str
    subtopic: str
    questions_count: int = Field(ge=1)
    correct_count: int = Field(ge=0)
    score_percent: int = Field(ge=0, le=100)
    total_time_ms: float = Field(default=0.0, ge=0)
    results: list[QuestionResult] = Field(default_factory=list)

    @model_validator(mode="after")
    def _correct_within_count(self):
        if self.correct_count > self.questions_count:
            raise ValueError("correct_count cannot exceed questions_count")
        return self


class TestSession(SessionSummary):
    __test__ = False  # keep pytest from collecting this model

    id: str
    date: str = Field(default_factory=now_iso)


class TestHistory(BaseModel):
    __test__ = False

    student_id: str = ""
    tests: list[TestSession] = Field(default_factory=list)  # newest first


class AreaStat(BaseModel):
    subject_id: str
    subtopic_id: str
    accuracy: float
    attempted: int


class Recommendation(BaseModel):
    type: str = "improvement"
    subject_id: str
    subtopic_id: str
    message: str
    priority: str = "high"


class StudyPlan(BaseModel):
    student_id: str = ""
    weak_areas: list[AreaStat] = Field(default_factory=list)
    strengths: list[AreaStat] = Field(default_factory=list)
    recommendations: list[Recommendation] = Field(default_factory=list)
    next_goals: list[str] = Field(default_factory=list)
    last_updated: Optional[str] = None


# ---------------------------------------------------------------------------
# Question catalog (read-only, camelCase on disk)
# ---------------------------------------------------------------------------

class Question(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    type: Literal["multiple-choice", "written"] = "multiple-choice"
    question: str = ""
    options: list[str] = Field(default_factory=list)
    correct_answer: Optional[int] = Field(default=None, alias="correctAnswer")
    answer_guide: str = Field(default="", alias="answerGuide")
    explanation: Optional[str] = None

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value):
        if value == "mcq":
            return "multiple-choice"
        return value


class Subtopic(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    subtopic_id: str = Field(alias="subtopicId")
    title: str = ""
    difficulty: str = "medium"
    questions: list[Question] = Field(default_factory=list)


class Subject(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    subject_id: str = Field(alias="subjectId")
    title: str = ""
    icon: str = ""
    color: str = "#8884d8"
    subtopics: list[Subtopic] = Field(default_factory=list)
