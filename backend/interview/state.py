"""
Interview session aggregate.
Tracks the fixed question sequence, the recorded answers and the final score.
"""
import uuid
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple

from models.schemas import (
    Answer,
    ControllerState,
    InterviewSession,
    Question,
    ScoringResult,
    SubmissionKind,
    TranscriptEntry,
)
from interview.exceptions import InvalidStateError
from interview.policy import RESUME_PRESERVE, TimingPolicy


class InterviewStateMachine:
    """
    Owns the state of one interview session.

    Invariants:
    - len(answers) == current_index
    - the session is complete exactly when current_index == len(questions)
    - questions never change after creation
    - once complete, only the score may be attached (once)
    """

    def __init__(
        self,
        candidate_id: str,
        questions: Sequence[Question],
        candidate_name: Optional[str] = None,
        session_id: Optional[str] = None,
        started_at: Optional[datetime] = None,
    ):
        """
        Initialize a new interview session.

        Args:
            candidate_id: The candidate being interviewed
            questions: Ordered, non-empty question list
            candidate_name: Display name forwarded to the scoring service
            session_id: Optional existing session ID for resuming
            started_at: Optional original start time for resuming
        """
        if not questions:
            raise InvalidStateError("A session needs at least one question")

        self.session_id = session_id or f"session-{uuid.uuid4().hex[:12]}"
        self.candidate_id = candidate_id
        self.candidate_name = candidate_name

        self.questions: Tuple[Question, ...] = tuple(questions)
        self.current_index = 0
        self.answers: List[Answer] = []

        # Timing
        self.start_time = started_at or datetime.now(timezone.utc)
        self.question_start_time: Optional[datetime] = self.start_time
        self.end_time: Optional[datetime] = None

        # Scoring
        self.final_score: Optional[int] = None
        self.scoring: Optional[ScoringResult] = None

    # ========================================
    # Progress
    # ========================================

    @property
    def total_questions(self) -> int:
        return len(self.questions)

    @property
    def is_complete(self) -> bool:
        return self.current_index == len(self.questions)

    @property
    def is_scored(self) -> bool:
        return self.final_score is not None

    @property
    def current_question(self) -> Optional[Question]:
        """The question awaiting an answer, or None once complete."""
        if self.is_complete:
            return None
        return self.questions[self.current_index]

    # ========================================
    # Answer Management
    # ========================================

    def record_answer(
        self,
        question_index: int,
        answer_text: str,
        time_taken_seconds: float,
        kind: SubmissionKind = SubmissionKind.MANUAL,
    ) -> Answer:
        """
        Record the answer for the current question and advance.

        Args:
            question_index: Must equal the current index
            answer_text: Final answer text (already sentinel-substituted)
            time_taken_seconds: Measured time, clamped to the question limit
            kind: Manual submit or timeout

        Returns:
            The created answer record
        """
        if self.is_complete:
            raise InvalidStateError("Session is already complete")
        if question_index != self.current_index:
            raise InvalidStateError(
                f"Cannot answer question {question_index}; current question is {self.current_index}"
            )

        question = self.questions[question_index]
        now = datetime.now(timezone.utc)
        record = Answer(
            question_id=question.id,
            question_text=question.text,
            answer_text=answer_text,
            difficulty=question.difficulty,
            category=question.category,
            submitted_at=now,
            time_taken_seconds=TimingPolicy.clamp_time_taken(
                time_taken_seconds, question.time_limit_seconds
            ),
            kind=kind,
        )
        self.answers.append(record)
        self.current_index += 1

        if self.is_complete:
            self.question_start_time = None
            self.end_time = now
        else:
            self.question_start_time = now

        return record

    def revise_answer(self, question_index: int, answer_text: str) -> Answer:
        """
        Apply the single allowed edit to the most recent answer.

        Only the latest answer can be edited, only once, and only while
        the session is still in progress.
        """
        if self.is_complete:
            raise InvalidStateError("Answers are frozen once the session is complete")
        if not self.answers or question_index != len(self.answers) - 1:
            raise InvalidStateError(f"Only the latest answer can be revised, not {question_index}")

        answer = self.answers[question_index]
        if answer.revised:
            raise InvalidStateError(f"Answer {question_index} has already been revised")

        revised = answer.model_copy(update={
            "answer_text": answer_text,
            "revised": True,
            "submitted_at": datetime.now(timezone.utc),
        })
        self.answers[question_index] = revised
        return revised

    def attach_score(self, result: ScoringResult):
        """Attach the final score. Allowed once, after the last answer."""
        if not self.is_complete:
            raise InvalidStateError("Cannot score an unfinished session")
        if self.is_scored:
            raise InvalidStateError("Session already has a final score")

        self.final_score = result.overall_score
        self.scoring = result

    def build_transcript(self) -> List[TranscriptEntry]:
        """
        Build the full (question, answer, timing) transcript in question order.
        """
        if not self.is_complete:
            raise InvalidStateError("Transcript requested before every question was answered")

        return [
            TranscriptEntry(
                question_id=question.id,
                question=question.text,
                difficulty=question.difficulty,
                category=question.category,
                expected_topics=list(question.expected_topics),
                answer=answer.answer_text,
                time_taken=answer.time_taken_seconds,
                max_time_allowed=question.time_limit_seconds,
            )
            for question, answer in zip(self.questions, self.answers)
        ]

    # ========================================
    # Serialization
    # ========================================

    def to_session(self) -> InterviewSession:
        """Convert state machine to an InterviewSession snapshot."""
        return InterviewSession(
            session_id=self.session_id,
            candidate_id=self.candidate_id,
            candidate_name=self.candidate_name,
            questions=list(self.questions),
            current_index=self.current_index,
            answers=[answer.model_copy() for answer in self.answers],
            started_at=self.start_time,
            question_started_at=self.question_start_time,
            completed_at=self.end_time,
            final_score=self.final_score,
            scoring_summary=self.scoring.summary if self.scoring else None,
            scoring=self.scoring.model_copy(deep=True) if self.scoring else None,
        )

    @classmethod
    def from_session(cls, session: InterviewSession) -> "InterviewStateMachine":
        """Rebuild a state machine from a stored snapshot."""
        _check_snapshot(session)

        machine = cls(
            candidate_id=session.candidate_id,
            questions=session.questions,
            candidate_name=session.candidate_name,
            session_id=session.session_id,
            started_at=session.started_at,
        )
        machine.answers = [answer.model_copy() for answer in session.answers]
        machine.current_index = session.current_index
        machine.question_start_time = session.question_started_at
        machine.end_time = session.completed_at
        machine.final_score = session.final_score
        machine.scoring = session.scoring
        return machine


def _check_snapshot(session: InterviewSession):
    if not session.questions:
        raise InvalidStateError("Stored session has no questions")
    if not 0 <= session.current_index <= len(session.questions):
        raise InvalidStateError(f"Stored session index {session.current_index} is out of range")
    if len(session.answers) != session.current_index:
        raise InvalidStateError("Stored session answers do not match its index")


def resume(
    session: InterviewSession,
    policy: TimingPolicy,
    now: Optional[datetime] = None,
) -> Tuple[ControllerState, Optional[int]]:
    """
    Work out where an interrupted session picks up.

    Args:
        session: Stored snapshot
        policy: Timing policy (decides fresh vs preserved time)
        now: Current time, for the preserve policy

    Returns:
        Tuple of (controller state, remaining seconds for the current question)
    """
    _check_snapshot(session)

    if session.is_complete:
        if session.final_score is None:
            return ControllerState.SCORING, None
        return ControllerState.COMPLETE, None

    limit = session.questions[session.current_index].time_limit_seconds
    if policy.resume_policy == RESUME_PRESERVE and session.question_started_at is not None:
        used = ((now or datetime.now(timezone.utc)) - session.question_started_at).total_seconds()
        return ControllerState.AWAITING_ANSWER, limit - TimingPolicy.clamp_time_taken(used, limit)

    return ControllerState.AWAITING_ANSWER, limit
