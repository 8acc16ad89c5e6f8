"""
Pydantic schemas for the mock interview backend.
Covers candidate profiles, questions, answers, session snapshots,
scoring results and API request bodies.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from utils.cleaning import FieldCleaner


class Difficulty(str, Enum):
    """Question difficulty as reported by the question generator."""
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"

    @classmethod
    def parse(cls, value: Any) -> "Difficulty":
        """Parse a raw difficulty, defaulting to medium for unknown values."""
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.MEDIUM


class ControllerState(str, Enum):
    """States of the interview session controller."""
    NOT_STARTED = "not_started"
    GENERATING = "generating_questions"
    AWAITING_ANSWER = "awaiting_answer"
    SCORING = "scoring"
    COMPLETE = "complete"


class SubmissionKind(str, Enum):
    """How an answer was submitted."""
    MANUAL = "manual"
    TIMEOUT = "timeout"


# ========================================
# Candidate Profile
# ========================================

class Education(BaseModel):
    institution: str


class Experience(BaseModel):
    key: str = ""
    start: Optional[str] = None
    end: Optional[str] = None
    description: List[str] = Field(default_factory=list)

    @field_validator("start", "end", mode="before")
    @classmethod
    def _absent_dates(cls, value: Any) -> Optional[str]:
        return FieldCleaner.absent_if_sentinel(value)

    @field_validator("description", mode="before")
    @classmethod
    def _clean_lines(cls, value: Any) -> List[str]:
        return FieldCleaner.clean_list(value)


class Project(BaseModel):
    title: str
    description: List[str] = Field(default_factory=list)

    @field_validator("description", mode="before")
    @classmethod
    def _clean_lines(cls, value: Any) -> List[str]:
        return FieldCleaner.clean_list(value)


class CandidateProfile(BaseModel):
    """Structured resume fields for a candidate."""
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    linkedin: Optional[str] = None
    github: Optional[str] = None
    website: Optional[str] = None
    education: List[Education] = Field(default_factory=list)
    experience: List[Experience] = Field(default_factory=list)
    projects: List[Project] = Field(default_factory=list)
    skills: List[str] = Field(default_factory=list)

    @field_validator("name", "email", "phone", "linkedin", "github", "website", mode="before")
    @classmethod
    def _absent_personal(cls, value: Any) -> Optional[str]:
        return FieldCleaner.absent_if_sentinel(value)

    @field_validator("skills", mode="before")
    @classmethod
    def _clean_skills(cls, value: Any) -> List[str]:
        return FieldCleaner.clean_list(value)

    @field_validator("education", "experience", "projects", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return value or []

    @property
    def is_complete(self) -> bool:
        """A profile is complete once name, email and phone are known."""
        return bool(self.name and self.email and self.phone)

    def to_parsed_resume(self) -> Dict[str, Any]:
        """Encode the profile in the shape the question generator accepts."""
        return {
            "personal_info": {
                "name": FieldCleaner.to_wire(self.name),
                "email": FieldCleaner.to_wire(self.email),
                "phone": FieldCleaner.to_wire(self.phone),
                "linkedin": FieldCleaner.to_wire(self.linkedin),
                "github": FieldCleaner.to_wire(self.github),
                "website": FieldCleaner.to_wire(self.website),
            },
            "other_info": {
                "education": [e.model_dump() for e in self.education],
                "experience": [e.model_dump() for e in self.experience],
                "projects": [p.model_dump() for p in self.projects],
                "extra_info": {"skills": list(self.skills)},
            },
        }


# ========================================
# Questions and Answers
# ========================================

class Question(BaseModel):
    """A generated interview question. Immutable once issued."""
    model_config = ConfigDict(frozen=True)

    id: int
    text: str
    difficulty: Difficulty
    category: str = "general"
    expected_topics: Tuple[str, ...] = ()
    time_limit_seconds: int


class Answer(BaseModel):
    """The recorded answer for one question index."""
    question_id: int
    question_text: str
    answer_text: str
    difficulty: Difficulty
    category: str
    submitted_at: datetime
    time_taken_seconds: int
    kind: SubmissionKind = SubmissionKind.MANUAL
    revised: bool = False


class TranscriptEntry(BaseModel):
    """One (question, answer, timing) tuple sent to the scoring service."""
    question_id: int
    question: str
    difficulty: Difficulty
    category: str
    expected_topics: List[str]
    answer: str
    time_taken: int
    max_time_allowed: int


# ========================================
# Scoring
# ========================================

class QuestionScore(BaseModel):
    question_id: Optional[int] = None
    score: float = 0
    feedback: str = ""
    strengths: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)
    key_points_covered: List[str] = Field(default_factory=list)
    key_points_missed: List[str] = Field(default_factory=list)


class ScoringResult(BaseModel):
    """Validated scoring outcome, either from the service or the local fallback."""
    overall_score: int
    summary: str
    per_question: List[QuestionScore] = Field(default_factory=list)
    recommendation: Optional[str] = None
    strengths_summary: List[str] = Field(default_factory=list)
    areas_for_improvement: List[str] = Field(default_factory=list)
    is_fallback: bool = False


# ========================================
# Session
# ========================================

class InterviewSession(BaseModel):
    """Snapshot of one candidate's run through the question sequence."""
    session_id: str
    candidate_id: str
    candidate_name: Optional[str] = None
    questions: List[Question]
    current_index: int = 0
    answers: List[Answer] = Field(default_factory=list)
    started_at: datetime
    question_started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    final_score: Optional[int] = None
    scoring_summary: Optional[str] = None
    scoring: Optional[ScoringResult] = None

    @property
    def is_complete(self) -> bool:
        return self.current_index == len(self.questions)


class ArchivedSession(BaseModel):
    """A session as stored in the durable archive."""
    id: str
    status: str
    saved_at: datetime
    session: InterviewSession


# ========================================
# API Requests
# ========================================

class StartInterviewRequest(BaseModel):
    profile: CandidateProfile
    candidate_id: Optional[str] = None
    archive_current: bool = False


class DraftRequest(BaseModel):
    text: str = ""


class SubmitAnswerRequest(BaseModel):
    question_index: int = Field(..., ge=0)
    answer_text: Optional[str] = None


class ReviseAnswerRequest(BaseModel):
    answer_text: str
