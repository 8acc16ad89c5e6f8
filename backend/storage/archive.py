"""
Durable store for interview sessions.

Completed (and explicitly archived abandoned) sessions are append-only
records. A separate progress table keeps the latest snapshot of a session
that is still running so it can be resumed after the app is closed.
"""
import logging
from typing import List, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select

from models.schemas import ArchivedSession, InterviewSession
from interview.exceptions import ArchiveError
from storage.db import get_session, init_db, make_engine
from storage.records import ProgressRecord, SessionRecord, utc_now

logger = logging.getLogger(__name__)

STATUS_COMPLETED = "completed"
STATUS_ABANDONED = "abandoned"


class SessionArchive:
    """
    SQL-backed archive of interview sessions.
    """

    def __init__(self, engine: Optional[Engine] = None):
        self.engine = engine or make_engine()
        init_db(self.engine)

    # ========================================
    # Archived Sessions
    # ========================================

    def save_completed_session(self, session: InterviewSession) -> str:
        """
        Archive a completed, scored session.

        Returns:
            The archived session ID
        """
        if not session.is_complete or session.final_score is None:
            raise ArchiveError(f"Session {session.session_id} is not complete")
        return self._append(session, STATUS_COMPLETED)

    def save_abandoned_session(self, session: InterviewSession) -> str:
        """Archive a session the candidate walked away from."""
        return self._append(session, STATUS_ABANDONED)

    def _append(self, session: InterviewSession, status: str) -> str:
        record = SessionRecord(
            id=session.session_id,
            candidate_id=session.candidate_id,
            candidate_name=session.candidate_name,
            status=status,
            final_score=session.final_score,
            payload=session.model_dump_json(),
            completed_at=session.completed_at,
        )
        try:
            with get_session(self.engine) as db:
                if db.get(SessionRecord, session.session_id) is not None:
                    raise ArchiveError(f"Session {session.session_id} is already archived")
                db.add(record)
                db.commit()
        except SQLAlchemyError as e:
            raise ArchiveError(f"Failed to archive session {session.session_id}: {e}") from e

        logger.info(f"Archived session {session.session_id} ({status})")
        return session.session_id

    def list_completed_sessions(self, include_abandoned: bool = False) -> List[ArchivedSession]:
        """List archived sessions, newest first."""
        statement = select(SessionRecord)
        if not include_abandoned:
            statement = statement.where(SessionRecord.status == STATUS_COMPLETED)
        statement = statement.order_by(SessionRecord.saved_at.desc())

        try:
            with get_session(self.engine) as db:
                records = db.exec(statement).all()
        except SQLAlchemyError as e:
            raise ArchiveError(f"Failed to list sessions: {e}") from e

        return [self._to_archived(record) for record in records]

    def get_completed_session(self, session_id: str) -> Optional[ArchivedSession]:
        try:
            with get_session(self.engine) as db:
                record = db.get(SessionRecord, session_id)
        except SQLAlchemyError as e:
            raise ArchiveError(f"Failed to load session {session_id}: {e}") from e
        return self._to_archived(record) if record else None

    def delete_completed_session(self, session_id: str) -> bool:
        """
        Delete an archived session.

        Returns:
            True if a record was removed
        """
        try:
            with get_session(self.engine) as db:
                record = db.get(SessionRecord, session_id)
                if record is None:
                    return False
                db.delete(record)
                db.commit()
        except SQLAlchemyError as e:
            raise ArchiveError(f"Failed to delete session {session_id}: {e}") from e

        logger.info(f"Deleted archived session {session_id}")
        return True

    def clear_completed_sessions(self) -> int:
        """Delete every archived session. Returns the number removed."""
        try:
            with get_session(self.engine) as db:
                records = db.exec(select(SessionRecord)).all()
                for record in records:
                    db.delete(record)
                db.commit()
        except SQLAlchemyError as e:
            raise ArchiveError(f"Failed to clear sessions: {e}") from e
        return len(records)

    @staticmethod
    def _to_archived(record: SessionRecord) -> ArchivedSession:
        return ArchivedSession(
            id=record.id,
            status=record.status,
            saved_at=record.saved_at,
            session=InterviewSession.model_validate_json(record.payload),
        )

    # ========================================
    # In-Progress Snapshots
    # ========================================

    def save_progress(self, session: InterviewSession):
        """Store the latest snapshot of a running session (one per candidate)."""
        try:
            with get_session(self.engine) as db:
                record = db.get(ProgressRecord, session.candidate_id)
                if record is None:
                    record = ProgressRecord(
                        candidate_id=session.candidate_id,
                        session_id=session.session_id,
                        payload=session.model_dump_json(),
                    )
                else:
                    record.session_id = session.session_id
                    record.payload = session.model_dump_json()
                    record.updated_at = utc_now()
                db.add(record)
                db.commit()
        except SQLAlchemyError as e:
            raise ArchiveError(f"Failed to save progress for {session.candidate_id}: {e}") from e

    def load_progress(self, candidate_id: Optional[str] = None) -> Optional[InterviewSession]:
        """Load the stored snapshot for a candidate, or the most recent one."""
        try:
            with get_session(self.engine) as db:
                if candidate_id is not None:
                    record = db.get(ProgressRecord, candidate_id)
                else:
                    statement = select(ProgressRecord).order_by(ProgressRecord.updated_at.desc())
                    record = db.exec(statement).first()
        except SQLAlchemyError as e:
            raise ArchiveError(f"Failed to load progress: {e}") from e

        if record is None:
            return None
        return InterviewSession.model_validate_json(record.payload)

    def has_unfinished_session(self, candidate_id: Optional[str] = None) -> bool:
        return self.load_progress(candidate_id) is not None

    def clear_progress(self, candidate_id: Optional[str] = None):
        """Remove the stored snapshot for a candidate, or all snapshots."""
        statement = select(ProgressRecord)
        if candidate_id is not None:
            statement = statement.where(ProgressRecord.candidate_id == candidate_id)
        try:
            with get_session(self.engine) as db:
                for record in db.exec(statement).all():
                    db.delete(record)
                db.commit()
        except SQLAlchemyError as e:
            raise ArchiveError(f"Failed to clear progress: {e}") from e
