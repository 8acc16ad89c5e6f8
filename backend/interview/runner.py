"""
Asyncio driver for the interview controller.

Runs the 1-second countdown and serializes every controller call behind
a single lock, so the controller only ever sees one operation at a time.
Question generation, scoring and transcription run in a worker thread
with the lock released, so the countdown keeps ticking and the
generating/scoring states stay visible to status requests.
"""
import asyncio
import contextlib
import logging
from typing import Any, Callable, Optional, Tuple

from models.schemas import CandidateProfile, InterviewSession
from interview.controller import InterviewController
from interview.exceptions import InterviewError
from utils.config import config

logger = logging.getLogger(__name__)


class SessionRunner:
    """
    Owns the tick loop for one InterviewController.
    """

    def __init__(self, controller: InterviewController, tick_interval: Optional[float] = None):
        self.controller = controller
        # Scoring is handed off here, outside the lock
        self.controller.defer_scoring = True
        self.tick_interval = tick_interval or config.interview.tick_interval_seconds
        self._lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def call(self, fn: Callable[..., Any], *args, **kwargs) -> Any:
        """
        Run a controller operation, serialized with the tick loop.

        If the operation finished the session, the scoring handoff runs
        before this returns.

        Args:
            fn: Bound controller method
            *args, **kwargs: Passed through to fn

        Returns:
            Whatever fn returns
        """
        async with self._lock:
            result = await asyncio.to_thread(fn, *args, **kwargs)
        await self.score_pending()
        return result

    async def start_interview(
        self,
        profile: CandidateProfile,
        candidate_id: Optional[str] = None,
        archive_current: bool = False,
    ) -> InterviewSession:
        """Start an interview without holding the lock during question generation."""
        controller = self.controller
        async with self._lock:
            candidate_id = await asyncio.to_thread(controller.begin_start, candidate_id, archive_current)

        try:
            questions = await asyncio.to_thread(controller.question_source.generate_questions, profile)
        except Exception as e:
            async with self._lock:
                controller.fail_start(e)
            raise

        async with self._lock:
            return await asyncio.to_thread(controller.commit_start, profile, candidate_id, questions)

    async def feed_audio(self, chunk: bytes) -> Tuple[str, Optional[str]]:
        """
        Buffer audio under the lock, transcribe it outside.

        Returns:
            Tuple of (transcript so far, last transcription error or None)
        """
        async with self._lock:
            capture = self.controller.queue_audio(chunk)
        return await asyncio.to_thread(self.controller.transcribe_pending, capture)

    async def score_pending(self):
        """Run the scoring handoff if a finished session is waiting for one."""
        async with self._lock:
            job = self.controller.begin_scoring()
        if job is None:
            return

        result = await asyncio.to_thread(self.controller.run_scoring, job)

        async with self._lock:
            await asyncio.to_thread(self.controller.complete_scoring, job, result)

    async def tick_once(self) -> bool:
        """
        One countdown step: tick, then apply any expiry on the next turn.

        Returns:
            True if the countdown expired on this tick
        """
        async with self._lock:
            expired = self.controller.tick()

        # The auto-submit is deferred so it never runs inside the tick itself
        await asyncio.sleep(0)

        async with self._lock:
            self.controller.check_expiry()
            if self.controller.has_pending_events:
                await asyncio.to_thread(self.controller.drain)

        await self.score_pending()
        return expired

    async def _tick_loop(self):
        while True:
            await asyncio.sleep(self.tick_interval)
            try:
                await self.tick_once()
            except InterviewError as e:
                logger.error(f"Tick failed: {e}")

    def start(self):
        """Start the tick loop on the running event loop."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._tick_loop())
        logger.info(f"Session runner started (tick every {self.tick_interval}s)")

    async def stop(self):
        """Cancel the tick loop."""
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Session runner stopped")
