"""
Interview session controller.

Drives one candidate through a fixed sequence of timed questions:
question generation at start, one answer per question (typed, spoken,
or the timeout sentinel), and a single scoring handoff at the end.

All mutations go through a single-threaded event queue. The timer only
enqueues expiry events; they are applied on the next drain() so the
tick handler never records an answer itself.
"""
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Deque, Dict, List, Optional, Protocol, Tuple

from models.schemas import (
    Answer,
    CandidateProfile,
    ControllerState,
    InterviewSession,
    Question,
    ScoringResult,
    SubmissionKind,
    TranscriptEntry,
)
from interview.exceptions import ArchiveError, InvalidStateError, QuestionSourceError
from interview.policy import TimingPolicy, format_clock, get_score_interpretation
from interview.scoring import SessionScorer
from interview.state import InterviewStateMachine, resume
from interview.timer import QuestionTimer
from utils.cleaning import FieldCleaner

if TYPE_CHECKING:
    from speech.transcriber import TranscriptionCapture

logger = logging.getLogger(__name__)


class QuestionSource(Protocol):
    def generate_questions(self, profile: CandidateProfile) -> List[Question]:
        ...


@dataclass(frozen=True)
class SubmitEvent:
    """A queued request to record the answer for one question index."""
    question_index: int
    kind: SubmissionKind
    text: Optional[str] = None


@dataclass(frozen=True)
class ScoringJob:
    """A finished transcript claimed for the scoring handoff."""
    session_id: str
    transcript: List[TranscriptEntry]
    answers: List[Answer]
    candidate_name: Optional[str] = None


class InterviewController:
    """
    Owns the session state machine, the countdown and the answer capture.

    States: not_started -> generating_questions -> awaiting_answer
    (repeated per question) -> scoring -> complete.
    """

    def __init__(
        self,
        question_source: QuestionSource,
        scorer: SessionScorer,
        archive: Any = None,
        transcriber: Any = None,
        timing: Optional[TimingPolicy] = None,
        clock: Callable[[], float] = time.monotonic,
        defer_scoring: bool = False,
    ):
        """
        Initialize the controller.

        Args:
            question_source: Generates the ordered question list
            scorer: Scoring handoff (absorbs scoring failures)
            archive: Optional durable store for progress and finished sessions
            transcriber: Optional speech provider with open_capture()
            timing: Time limit / sentinel / resume policy
            clock: Monotonic clock used for elapsed time
            defer_scoring: Leave a finished session in scoring for the caller
                to hand off with begin_scoring() instead of scoring inline
        """
        self.question_source = question_source
        self.scorer = scorer
        self.archive = archive
        self.transcriber = transcriber
        self.timing = timing or TimingPolicy()
        self.timer = QuestionTimer(clock)
        self.defer_scoring = defer_scoring

        self.state = ControllerState.NOT_STARTED
        self.machine: Optional[InterviewStateMachine] = None
        self.staged_text = ""
        self.capture = None
        self.last_error: Optional[str] = None

        self._events: Deque[SubmitEvent] = deque()
        self._in_flight: Optional[SubmissionKind] = None
        self._draining = False
        self._scoring_claimed = False

    # ========================================
    # Session Lifecycle
    # ========================================

    def start(
        self,
        profile: CandidateProfile,
        candidate_id: Optional[str] = None,
        archive_current: bool = False,
    ) -> InterviewSession:
        """
        Generate questions and begin the first countdown.

        Any session already loaded is torn down first (and archived if
        archive_current is set).

        Args:
            profile: Candidate profile sent to the question source
            candidate_id: Optional existing candidate ID
            archive_current: Archive the session being replaced

        Returns:
            Snapshot of the new session

        Raises:
            QuestionSourceError: generation failed; the controller stays not_started
        """
        candidate_id = self.begin_start(candidate_id, archive_current)
        try:
            questions = self.question_source.generate_questions(profile)
        except Exception as e:
            self.fail_start(e)
            raise
        return self.commit_start(profile, candidate_id, questions)

    def begin_start(self, candidate_id: Optional[str] = None, archive_current: bool = False) -> str:
        """
        Tear down any loaded session and enter generating_questions.

        Returns:
            The candidate ID the new session will use
        """
        self._require_idle("start a new interview")
        if self.machine is not None:
            self.abandon(archive=archive_current)

        self.state = ControllerState.GENERATING
        self.last_error = None
        return candidate_id or f"CAND-{int(time.time() * 1000)}"

    def fail_start(self, error: Exception):
        """Leave generating_questions after a failed generation; start can be retried."""
        self.state = ControllerState.NOT_STARTED
        self.last_error = str(error)
        logger.warning(f"Question generation failed: {error}")

    def commit_start(
        self,
        profile: CandidateProfile,
        candidate_id: str,
        questions: List[Question],
    ) -> InterviewSession:
        """Create the session from generated questions and arm the first countdown."""
        if self.state != ControllerState.GENERATING:
            raise InvalidStateError(f"Cannot begin an interview while {self.state.value}")
        if not questions:
            error = QuestionSourceError("Question source returned no questions")
            self.fail_start(error)
            raise error

        self.machine = InterviewStateMachine(
            candidate_id=candidate_id,
            questions=questions,
            candidate_name=profile.name,
        )
        self._begin_question()
        self.state = ControllerState.AWAITING_ANSWER
        self._save_progress()

        logger.info(f"Interview {self.machine.session_id} started with {len(questions)} questions")
        return self.machine.to_session()

    def abandon(self, archive: bool = False) -> Optional[InterviewSession]:
        """
        Tear down the current session and return to not_started.

        Args:
            archive: Keep the unfinished session in the archive

        Returns:
            Snapshot of the discarded session, if there was one
        """
        self._require_idle("reset the interview")
        self._teardown()

        machine = self.machine
        self.machine = None
        self.state = ControllerState.NOT_STARTED
        if machine is None:
            return None

        snapshot = machine.to_session()
        if self.archive is not None and not machine.is_scored:
            try:
                if archive and machine.answers:
                    self.archive.save_abandoned_session(snapshot)
                self.archive.clear_progress(machine.candidate_id)
            except ArchiveError as e:
                logger.error(f"Could not archive abandoned session {machine.session_id}: {e}")

        logger.info(f"Interview {machine.session_id} abandoned at question {machine.current_index}")
        return snapshot

    def resume_session(self, session: InterviewSession) -> InterviewSession:
        """
        Resume a stored session at the question it was left on.

        Under the default "fresh" policy the current question gets a full
        new countdown. A session interrupted while scoring is scored now.
        """
        self._require_idle("resume an interview")
        state, remaining = resume(session, self.timing)

        self._teardown()
        self.machine = InterviewStateMachine.from_session(session)
        self.last_error = None

        if state == ControllerState.AWAITING_ANSWER:
            self._begin_question(remaining)
            self.state = ControllerState.AWAITING_ANSWER
            logger.info(
                f"Resumed {session.session_id} at question {session.current_index} "
                f"with {remaining}s on the clock"
            )
        elif state == ControllerState.SCORING:
            self.state = ControllerState.SCORING
            if not self.defer_scoring:
                self._finalize()
        else:
            self.state = ControllerState.COMPLETE

        return self.machine.to_session()

    def resume_from_store(self, candidate_id: Optional[str] = None) -> InterviewSession:
        """Resume the unfinished session held by the archive."""
        if self.archive is None:
            raise InvalidStateError("No durable store configured")
        session = self.archive.load_progress(candidate_id)
        if session is None:
            raise InvalidStateError("There is no unfinished interview to resume")
        return self.resume_session(session)

    def has_unfinished_session(self, candidate_id: Optional[str] = None) -> bool:
        if self.archive is None:
            return False
        return self.archive.has_unfinished_session(candidate_id)

    # ========================================
    # Answer Capture
    # ========================================

    def stage_text(self, text: str):
        """Stage the in-progress typed answer for the current question."""
        self._require_state(ControllerState.AWAITING_ANSWER, "edit the answer")
        self.staged_text = text or ""

    def begin_voice_capture(self):
        """Open a speech capture bound to the current question."""
        self._require_state(ControllerState.AWAITING_ANSWER, "record audio")
        if self.transcriber is None:
            raise InvalidStateError("Voice input is not available")
        if self.capture is None:
            self.capture = self.transcriber.open_capture()
            logger.info(f"Voice capture opened for question {self.machine.current_index}")
        return self.capture

    def feed_audio(self, chunk: bytes) -> Tuple[str, Optional[str]]:
        """
        Feed audio to the open capture and transcribe it.

        Returns:
            Tuple of (transcript so far, last transcription error or None)
        """
        return self.transcribe_pending(self.queue_audio(chunk))

    def queue_audio(self, chunk: bytes) -> "TranscriptionCapture":
        """Buffer an audio chunk on the open capture without transcribing it."""
        self._require_state(ControllerState.AWAITING_ANSWER, "record audio")
        if self.capture is None:
            raise InvalidStateError("No voice capture is open")
        self.capture.append(chunk)
        return self.capture

    @staticmethod
    def transcribe_pending(capture: "TranscriptionCapture") -> Tuple[str, Optional[str]]:
        """Blocking transcription of buffered audio. Touches no controller state."""
        text = capture.refresh()
        return text, capture.error

    def end_voice_capture(self) -> str:
        """
        Finalize the open capture and stage its transcript.

        Returns:
            The final transcript (empty if nothing was recognized)
        """
        self._require_state(ControllerState.AWAITING_ANSWER, "record audio")
        if self.capture is None:
            raise InvalidStateError("No voice capture is open")
        text = self.capture.finalize()
        self.capture = None
        if text:
            self.staged_text = text
        return text

    # ========================================
    # Submission
    # ========================================

    def submit(self, question_index: int, text: Optional[str] = None) -> bool:
        """
        Manually submit the answer for a question.

        Args:
            question_index: Index the caller believes it is answering
            text: Answer text; the staged text (or live transcript) if None

        Returns:
            True if this call recorded an answer, False if it was a
            duplicate of a submission already made or queued

        Raises:
            InvalidStateError: no question is awaiting an answer, or the
                index is not the current one
        """
        machine = self.machine
        if machine is not None and 0 <= question_index < machine.current_index:
            logger.debug(f"Ignoring duplicate submit for answered question {question_index}")
            return False

        self._require_state(ControllerState.AWAITING_ANSWER, "submit an answer")
        if question_index != machine.current_index:
            raise InvalidStateError(
                f"Question {question_index} is out of range; current question is {machine.current_index}"
            )

        if self._in_flight is not None or self._is_queued(question_index):
            logger.debug(f"Ignoring submit for question {question_index}; a submission is in flight")
            return False

        answered_before = machine.current_index
        self._events.append(SubmitEvent(question_index, SubmissionKind.MANUAL, text))
        self.drain()
        return machine.current_index > answered_before

    def revise_answer(self, question_index: int, text: str) -> InterviewSession:
        """Apply the single allowed edit to the latest answer."""
        self._require_state(ControllerState.AWAITING_ANSWER, "revise an answer")
        self.machine.revise_answer(question_index, FieldCleaner.clean_answer_text(text))
        self._save_progress()
        return self.machine.to_session()

    # ========================================
    # Timer Events
    # ========================================

    def tick(self) -> bool:
        """
        Advance the countdown by one second.

        Expiry only queues the auto-submit; call drain() afterwards.

        Returns:
            True if the countdown expired on this tick
        """
        if self.state != ControllerState.AWAITING_ANSWER:
            return False
        if self.timer.tick():
            self._schedule_expiry(self.timer.question_index)
            return True
        return False

    def check_expiry(self) -> bool:
        """Safety net: queue the auto-submit if the countdown sits at zero unhandled."""
        if self.state != ControllerState.AWAITING_ANSWER:
            return False
        if self.timer.check_expired():
            self._schedule_expiry(self.timer.question_index)
            return True
        return False

    def _schedule_expiry(self, question_index: int):
        # Timeouts jump the queue; a pending manual submit for the same
        # question becomes stale once the timeout is recorded.
        logger.info(f"Time expired on question {question_index}, queueing auto-submit")
        self._events.appendleft(SubmitEvent(question_index, SubmissionKind.TIMEOUT))

    @property
    def has_pending_events(self) -> bool:
        return bool(self._events)

    def _is_queued(self, question_index: int) -> bool:
        return any(event.question_index == question_index for event in self._events)

    def drain(self):
        """Apply queued submissions in order. Re-entrant calls are no-ops."""
        if self._draining:
            return
        self._draining = True
        try:
            while self._events:
                self._process(self._events.popleft())
        finally:
            self._draining = False

    def _process(self, event: SubmitEvent):
        machine = self.machine
        if (
            machine is None
            or self.state != ControllerState.AWAITING_ANSWER
            or event.question_index != machine.current_index
        ):
            logger.debug(f"Dropping stale {event.kind.value} submit for question {event.question_index}")
            return

        question = machine.current_question
        self._in_flight = event.kind
        try:
            self.timer.stop()
            if event.kind == SubmissionKind.TIMEOUT:
                answer_text = self._best_effort_text() or self.timing.timeout_sentinel
                time_taken = question.time_limit_seconds
            else:
                answer_text = self._manual_text(event.text)
                time_taken = self.timer.elapsed_seconds()
            record = machine.record_answer(event.question_index, answer_text, time_taken, event.kind)
        finally:
            self._in_flight = None

        logger.info(
            f"Recorded {event.kind.value} answer for question {event.question_index + 1}/"
            f"{machine.total_questions} ({record.time_taken_seconds}s)"
        )

        self._close_capture()
        self.staged_text = ""

        if machine.is_complete:
            self.timer.reset()
            self.state = ControllerState.SCORING
            self._save_progress()
            if not self.defer_scoring:
                self._finalize()
        else:
            self._begin_question()
            self._save_progress()

    def _best_effort_text(self) -> str:
        # Never wait on the speech provider once time is up
        if self.capture is not None:
            spoken = FieldCleaner.clean_answer_text(self.capture.finalize_now())
            if spoken:
                return spoken
        return FieldCleaner.clean_answer_text(self.staged_text)

    def _manual_text(self, text: Optional[str]) -> str:
        if text is not None:
            return FieldCleaner.clean_answer_text(text)
        if self.capture is not None:
            spoken = FieldCleaner.clean_answer_text(self.capture.finalize())
            if spoken:
                return spoken
        return FieldCleaner.clean_answer_text(self.staged_text)

    # ========================================
    # Scoring Handoff
    # ========================================

    @property
    def scoring_pending(self) -> bool:
        """True while a finished session waits for a scoring handoff nobody has claimed."""
        return self.state == ControllerState.SCORING and not self._scoring_claimed

    def begin_scoring(self) -> Optional[ScoringJob]:
        """
        Claim the pending scoring handoff.

        Returns:
            The transcript to score, or None if nothing awaits scoring
        """
        if not self.scoring_pending:
            return None
        machine = self.machine
        self._scoring_claimed = True
        logger.info(f"Scoring interview {machine.session_id}")
        return ScoringJob(
            session_id=machine.session_id,
            transcript=machine.build_transcript(),
            answers=[answer.model_copy() for answer in machine.answers],
            candidate_name=machine.candidate_name,
        )

    def run_scoring(self, job: ScoringJob) -> ScoringResult:
        """Blocking scoring call. Touches no controller state."""
        try:
            return self.scorer.score(job.transcript, job.answers, candidate_name=job.candidate_name)
        except Exception as e:
            # A session in scoring must always reach complete
            logger.error(f"Scoring handoff failed unexpectedly for {job.session_id}: {e}")
            return self.scorer.fallback_result(job.answers)

    def complete_scoring(self, job: ScoringJob, result: ScoringResult):
        """Attach the score, enter complete and archive the session."""
        machine = self.machine
        self._scoring_claimed = False
        if self.state != ControllerState.SCORING or machine is None or machine.session_id != job.session_id:
            logger.warning(f"Discarding score for {job.session_id}; the session is no longer scoring")
            return

        machine.attach_score(result)
        self.state = ControllerState.COMPLETE
        logger.info(
            f"Interview {machine.session_id} complete with score {result.overall_score}"
            f"{' (fallback)' if result.is_fallback else ''}"
        )

        if self.archive is None:
            return
        try:
            self.archive.save_completed_session(machine.to_session())
            self.archive.clear_progress(machine.candidate_id)
        except ArchiveError as e:
            self.last_error = str(e)
            logger.error(f"Could not archive interview {machine.session_id}: {e}")

    def _finalize(self):
        job = self.begin_scoring()
        if job is not None:
            self.complete_scoring(job, self.run_scoring(job))

    # ========================================
    # Helpers
    # ========================================

    def _begin_question(self, remaining: Optional[int] = None):
        question = self.machine.current_question
        self._close_capture()
        self.staged_text = ""
        self.timer.arm(self.machine.current_index, question.time_limit_seconds, remaining)

    def _teardown(self):
        self.timer.reset()
        self._events.clear()
        self._scoring_claimed = False
        self._close_capture()
        self.staged_text = ""

    def _close_capture(self):
        if self.capture is not None:
            self.capture.finalize_now()
            self.capture = None

    def _save_progress(self):
        if self.archive is None or self.machine is None:
            return
        try:
            self.archive.save_progress(self.machine.to_session())
        except ArchiveError as e:
            logger.warning(f"Could not save progress for {self.machine.session_id}: {e}")

    def _require_state(self, state: ControllerState, action: str):
        if self.state != state or self.machine is None:
            raise InvalidStateError(f"Cannot {action} while {self.state.value}")

    def _require_idle(self, action: str):
        if self.state in (ControllerState.GENERATING, ControllerState.SCORING):
            raise InvalidStateError(f"Cannot {action} while {self.state.value}")

    # ========================================
    # Views
    # ========================================

    def snapshot(self) -> Optional[InterviewSession]:
        """Read-only copy of the current session for views."""
        return self.machine.to_session() if self.machine else None

    def get_status(self) -> Dict[str, Any]:
        """Get current interview status."""
        machine = self.machine
        if machine is None:
            return {
                "state": self.state.value,
                "has_session": False,
                "last_error": self.last_error,
            }

        question = machine.current_question
        remaining = self.timer.remaining if question else 0
        limit = question.time_limit_seconds if question else 0
        scoring = machine.scoring

        return {
            "state": self.state.value,
            "has_session": True,
            "session_id": machine.session_id,
            "candidate_id": machine.candidate_id,
            "candidate_name": machine.candidate_name,
            "question_index": machine.current_index,
            "question_number": machine.current_index + 1 if question else None,
            "total_questions": machine.total_questions,
            "answers_submitted": len(machine.answers),
            "current_question": question.model_dump(mode="json") if question else None,
            "time_remaining": remaining,
            "time_display": format_clock(remaining),
            "time_progress": round((limit - remaining) / limit * 100, 1) if limit else None,
            "progress": round(len(machine.answers) / machine.total_questions * 100, 1),
            "staged_text": self.staged_text,
            "voice_capture_active": self.capture is not None,
            "is_complete": machine.is_complete,
            "final_score": machine.final_score,
            "summary": scoring.summary if scoring else None,
            "interpretation": get_score_interpretation(machine.final_score),
            "is_fallback_score": scoring.is_fallback if scoring else None,
            "last_error": self.last_error,
        }
