"""
Shared fixtures for the interview backend tests.
"""
import os

# Keep the default store in memory for anything that builds one from config
os.environ.setdefault("DATABASE_URL", "sqlite://")

from typing import List, Optional, Sequence

import pytest

from models.schemas import CandidateProfile, Difficulty, Question
from interview.controller import InterviewController
from interview.policy import FallbackScoringPolicy, TimingPolicy
from interview.scoring import SessionScorer
from speech.transcriber import TranscriptionCapture
from storage.archive import SessionArchive
from storage.db import make_engine


SENTINEL = "No answer provided (time expired)"
TIME_LIMITS = {"easy": 20, "medium": 60, "hard": 120}
SIX_DIFFICULTIES = ("easy", "easy", "medium", "medium", "hard", "hard")

SCORING_RESPONSE = {
    "candidate_name": "Ada Lovelace",
    "technology": "React.js",
    "total_questions": 6,
    "questions_attempted": 6,
    "question_scores": [
        {
            "question_id": i + 1,
            "total_score": 70 + i,
            "feedback": f"Feedback {i + 1}",
            "strengths": ["clear"],
            "weaknesses": [],
            "key_points_covered": ["hooks"],
            "key_points_missed": [],
        }
        for i in range(6)
    ],
    "final_score": {"content_score": 71.2, "overall_score": 72.6},
    "overall_feedback": "Solid fundamentals with room to go deeper.",
    "recommendation": "hire",
    "strengths_summary": ["Communicates clearly"],
    "areas_for_improvement": ["Performance tuning"],
}


class FakeClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeQuestionSource:
    def __init__(self, questions: Sequence[Question] = (), error: Optional[Exception] = None):
        self.questions = list(questions)
        self.error = error
        self.calls: List[CandidateProfile] = []

    def generate_questions(self, profile: CandidateProfile) -> List[Question]:
        self.calls.append(profile)
        if self.error is not None:
            raise self.error
        return list(self.questions)


class FakeScoringService:
    def __init__(self, response=None, error: Optional[Exception] = None):
        self.response = response if response is not None else SCORING_RESPONSE
        self.error = error
        self.payloads = []

    def score_answers(self, payload):
        self.payloads.append(payload)
        if self.error is not None:
            raise self.error
        return self.response


class FakeTranscriber:
    """Transcribes audio bytes by decoding them as text."""

    def __init__(self):
        self.calls = 0
        self.error: Optional[Exception] = None

    def transcribe(self, audio: bytes) -> str:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return audio.decode("utf-8")

    def open_capture(self) -> TranscriptionCapture:
        return TranscriptionCapture(self.transcribe)


def make_timing(resume_policy: str = "fresh") -> TimingPolicy:
    return TimingPolicy(
        time_limits=dict(TIME_LIMITS),
        default_time_limit=60,
        timeout_sentinel=SENTINEL,
        resume_policy=resume_policy,
    )


def make_questions(difficulties: Sequence[str] = SIX_DIFFICULTIES) -> List[Question]:
    timing = make_timing()
    return [
        Question(
            id=i + 1,
            text=f"Question {i + 1} ({difficulty})?",
            difficulty=Difficulty(difficulty),
            category="react" if i % 2 else "javascript",
            expected_topics=(f"topic-{i + 1}",),
            time_limit_seconds=timing.time_limit_for(difficulty),
        )
        for i, difficulty in enumerate(difficulties)
    ]


def expire_current(controller: InterviewController):
    """Tick the countdown of the current question down to zero."""
    for _ in range(controller.timer.remaining):
        controller.tick()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def questions():
    return make_questions()


@pytest.fixture
def profile():
    return CandidateProfile(
        name="Ada Lovelace",
        email="ada@example.com",
        phone="555-0100",
        github="not found",
        skills=["React", "TypeScript", "react"],
    )


@pytest.fixture
def question_source(questions):
    return FakeQuestionSource(questions)


@pytest.fixture
def scoring_service():
    return FakeScoringService()


@pytest.fixture
def transcriber():
    return FakeTranscriber()


@pytest.fixture
def archive():
    return SessionArchive(make_engine("sqlite://"))


@pytest.fixture
def fallback():
    return FallbackScoringPolicy(chars_per_unit=50, slope=60, base=20, timeout_sentinel=SENTINEL)


@pytest.fixture
def controller(question_source, scoring_service, archive, transcriber, clock, fallback):
    return InterviewController(
        question_source=question_source,
        scorer=SessionScorer(scoring_service, fallback, technology="React.js"),
        archive=archive,
        transcriber=transcriber,
        timing=make_timing(),
        clock=clock,
    )


@pytest.fixture
def started(controller, profile):
    controller.start(profile, candidate_id="CAND-1")
    return controller
