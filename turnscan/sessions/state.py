"""Session status transitions.

    INITIALIZING --first image--> INITIALIZED --second image--> IN_PROGRESS
    IN_PROGRESS --every pass completed--> COMPLETED --export--> PROCESSED

A session whose passes are all completed while it holds a single image may
go straight from INITIALIZED to COMPLETED. Status never moves backwards.
"""

from typing import Dict, FrozenSet, Optional

from turnscan.errors import InvalidTransition, PassNotFound
from turnscan.sessions.models import Session, SessionStatus
from turnscan.utils import get_logger, now_ms

logger = get_logger("sessions.state")

TRANSITIONS: Dict[SessionStatus, FrozenSet[SessionStatus]] = {
    SessionStatus.INITIALIZING: frozenset({SessionStatus.INITIALIZED}),
    SessionStatus.INITIALIZED: frozenset({SessionStatus.IN_PROGRESS, SessionStatus.COMPLETED}),
    SessionStatus.IN_PROGRESS: frozenset({SessionStatus.COMPLETED}),
    SessionStatus.COMPLETED: frozenset({SessionStatus.PROCESSED}),
    SessionStatus.PROCESSED: frozenset(),
}


class SessionStateMachine:
    """Applies status changes to a session in place."""

    def can_transition(self, current: SessionStatus, target: SessionStatus) -> bool:
        return target in TRANSITIONS[current]

    def advance(self, session: Session, target: SessionStatus) -> Session:
        """
        Move a session to ``target``.

        Staying in the current status is a no-op.

        Raises:
            InvalidTransition: Target is behind the current status or skips a state
        """
        target = SessionStatus(target)
        if target == session.status:
            return session
        if not self.can_transition(session.status, target):
            raise InvalidTransition(session.status.value, target.value)

        logger.info(f"Session {session.id}: {session.status.value} -> {target.value}")
        session.status = target
        return session

    def on_image_added(self, session: Session) -> Session:
        """Advance after an image has been appended."""
        count = len(session.images)
        if session.status == SessionStatus.INITIALIZING and count >= 1:
            self.advance(session, SessionStatus.INITIALIZED)
        if session.status == SessionStatus.INITIALIZED and count >= 2:
            self.advance(session, SessionStatus.IN_PROGRESS)
        return session

    def complete_pass(self, session: Session, pass_id: str) -> bool:
        """
        Mark a pass completed; completing it again changes nothing.

        Returns:
            True if the pass was newly completed

        Raises:
            PassNotFound: Session has no such pass
        """
        target = session.get_pass(pass_id)
        if target is None:
            raise PassNotFound(session.id, pass_id)
        if target.completed:
            return False

        target.completed = True
        if session.all_passes_completed and session.status in (
            SessionStatus.INITIALIZED,
            SessionStatus.IN_PROGRESS,
        ):
            self.advance(session, SessionStatus.COMPLETED)
        return True

    def mark_processed(self, session: Session, processed_at: Optional[int] = None) -> Session:
        """
        Record that the export pipeline finished.

        Raises:
            InvalidTransition: Session is not completed
        """
        self.advance(session, SessionStatus.PROCESSED)
        session.processed = True
        session.processing_date = processed_at if processed_at is not None else now_ms()
        return session

    def apply_status(self, session: Session, target: SessionStatus, processed_at: Optional[int] = None) -> Session:
        """
        Walk a session forward to ``target`` through the same steps that
        captures, pass completion and export would take.

        Raises:
            InvalidTransition: Target is behind the current status, or the
                session's images and passes do not justify it
        """
        target = SessionStatus(target)
        start = session.status
        if target.rank < start.rank:
            raise InvalidTransition(start.value, target.value)

        count = len(session.images)
        if target.rank >= SessionStatus.INITIALIZED.rank and count >= 1:
            if session.status == SessionStatus.INITIALIZING:
                self.advance(session, SessionStatus.INITIALIZED)
        if target.rank >= SessionStatus.IN_PROGRESS.rank and count >= 2:
            if session.status == SessionStatus.INITIALIZED:
                self.advance(session, SessionStatus.IN_PROGRESS)
        if (
            target.rank >= SessionStatus.COMPLETED.rank
            and session.status in (SessionStatus.INITIALIZED, SessionStatus.IN_PROGRESS)
            and session.all_passes_completed
        ):
            self.advance(session, SessionStatus.COMPLETED)
        if target == SessionStatus.PROCESSED and session.status == SessionStatus.COMPLETED:
            self.mark_processed(session, processed_at)

        if session.status != target:
            raise InvalidTransition(start.value, target.value)
        return session
