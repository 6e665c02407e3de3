"""Session store: the in-memory session database and its persistence.

Every mutation works on a copy of the document, writes it, then swaps it
in. A failed write still swaps the copy in and then raises, so the work
of the current run is not lost; the next successful write persists it.
One process owns the file; concurrent writers are not coordinated.
"""

import copy
import json
from typing import Callable, List, Optional, Union

from turnscan.capture.models import CapturedImage
from turnscan.errors import (
    DuplicateImage,
    ImageNotFound,
    PassNotFound,
    PersistenceWriteFailed,
    SessionNotFound,
)
from turnscan.notifications import Notifier, RecordingNotifier
from turnscan.sessions.models import Pass, Session, SessionDatabase, SessionImage
from turnscan.sessions.persistence import PersistenceAdapter
from turnscan.sessions.state import SessionStateMachine
from turnscan.utils import get_logger, now_ms

logger = get_logger("sessions.store")

ImageLike = Union[CapturedImage, SessionImage]


def _as_session_image(image: ImageLike) -> SessionImage:
    if isinstance(image, SessionImage):
        return image
    return SessionImage.from_captured(image)


class SessionStore:
    """
    Owns the session database.

    Construct once with an adapter, call ``load()``, and pass the instance
    to whatever needs sessions.
    """

    def __init__(
        self,
        adapter: PersistenceAdapter,
        notifier: Optional[Notifier] = None,
        state_machine: Optional[SessionStateMachine] = None,
    ):
        self.adapter = adapter
        self.notifier = notifier or RecordingNotifier()
        self.state = state_machine or SessionStateMachine()
        self._db = SessionDatabase()

    # Loading and saving

    def load(self) -> SessionDatabase:
        """
        Load the document, starting fresh if it is missing or unreadable.

        Never raises. A corrupt document is replaced by an empty one and
        the user is warned.
        """
        try:
            if not self.adapter.exists():
                logger.info("Session database not found, creating a new one")
                self._reset()
                return self.database

            raw = self.adapter.read()
            data = json.loads(raw.decode("utf-8"))
            self._db = SessionDatabase.from_dict(data)
            logger.info(f"Loaded {len(self._db.sessions)} session(s)")

        except Exception as e:
            logger.error(f"Session database unreadable, starting fresh: {e}")
            self.notifier.warn(
                "Session Database Reset",
                "Session database file is corrupted. Creating new database.",
            )
            self._reset()

        return self.database

    def _reset(self) -> None:
        self._db = SessionDatabase()
        try:
            self.adapter.write(self._encode(self._db))
        except Exception as e:
            logger.error(f"Could not write fresh session database: {e}")

    @staticmethod
    def _encode(db: SessionDatabase) -> bytes:
        return json.dumps(db.to_dict(), indent=2).encode("utf-8")

    def _commit(self, db: SessionDatabase) -> None:
        db.last_updated = max(now_ms(), self._db.last_updated)
        try:
            self.adapter.write(self._encode(db))
        except PersistenceWriteFailed:
            self._db = db
            logger.error("Session database write failed; changes kept in memory")
            raise
        except Exception as e:
            self._db = db
            logger.error(f"Session database write failed; changes kept in memory: {e}")
            raise PersistenceWriteFailed(str(e)) from e
        self._db = db

    def _mutate(self, session_id: str, change: Callable[[Session], None]) -> Session:
        db = copy.deepcopy(self._db)
        session = db.get_session(session_id)
        if session is None:
            raise SessionNotFound(session_id)

        change(session)
        session.updated_at = max(now_ms(), session.updated_at)
        self._commit(db)
        return copy.deepcopy(session)

    # Queries

    @property
    def database(self) -> SessionDatabase:
        """Snapshot of the whole document."""
        return copy.deepcopy(self._db)

    def get_session(self, session_id: str) -> Session:
        """
        Raises:
            SessionNotFound: Unknown id
        """
        session = self._db.get_session(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return copy.deepcopy(session)

    def list_sessions(self) -> List[Session]:
        """All sessions, most recently updated first."""
        return sorted(
            (copy.deepcopy(s) for s in self._db.sessions),
            key=lambda s: s.updated_at,
            reverse=True,
        )

    # Session lifecycle

    def create_session(self, name: str = "New Session") -> Session:
        """Create a session with one empty pass named "Pass 1"."""
        session = Session.new(name)
        db = copy.deepcopy(self._db)
        db.sessions.append(session)
        self._commit(db)
        logger.info(f"Created session {session.id} ({name})")
        return copy.deepcopy(session)

    def add_session(self, session: Session) -> Session:
        """
        Insert a session, replacing any session with the same id.

        Raises:
            ValueError: Session bookkeeping is inconsistent
        """
        self._check_invariants(session)
        session = copy.deepcopy(session)
        db = copy.deepcopy(self._db)
        db.sessions = [s for s in db.sessions if s.id != session.id]
        db.sessions.append(session)
        self._commit(db)
        return copy.deepcopy(session)

    def update_session(self, session: Session) -> Session:
        """
        Replace a stored session.

        Passes may gain images and become completed, never the reverse;
        images leave a pass only through ``delete_image``. A status change
        is replayed through the state machine, so it has to be earned by
        the session's images and passes.

        Raises:
            SessionNotFound: Unknown id
            InvalidTransition: Status is behind the stored status or not
                justified by the session's contents
            ValueError: Session bookkeeping is inconsistent, or a pass was
                dropped, un-completed or had its images rewritten
        """
        self._check_invariants(session)
        replacement = copy.deepcopy(session)

        def apply(stored: Session) -> None:
            passes = {p.id: p for p in replacement.passes}
            for old in stored.passes:
                new = passes.get(old.id)
                if new is None:
                    raise ValueError(f"Pass {old.id} cannot be removed from session {stored.id}")
                if old.completed and not new.completed:
                    raise ValueError(f"Pass {old.id} is completed and cannot be reopened")
                if new.images[:len(old.images)] != old.images:
                    raise ValueError(f"Pass {old.id} images can only be appended to")

            target = replacement.status
            processed_at = replacement.processing_date
            replacement.status = stored.status
            replacement.processed = stored.processed
            replacement.processing_date = stored.processing_date
            stored.__dict__.update(replacement.__dict__)
            self.state.apply_status(stored, target, processed_at)

        return self._mutate(session.id, apply)

    def delete_session(self, session_id: str) -> None:
        """
        Raises:
            SessionNotFound: Unknown id
        """
        if self._db.get_session(session_id) is None:
            raise SessionNotFound(session_id)
        db = copy.deepcopy(self._db)
        db.sessions = [s for s in db.sessions if s.id != session_id]
        if db.last_opened == session_id:
            db.last_opened = None
        self._commit(db)
        logger.info(f"Deleted session {session_id}")

    def set_last_opened(self, session_id: Optional[str]) -> SessionDatabase:
        """Remember which session the operator last worked on."""
        if session_id is not None and self._db.get_session(session_id) is None:
            raise SessionNotFound(session_id)
        db = copy.deepcopy(self._db)
        db.last_opened = session_id
        self._commit(db)
        return self.database

    # Passes

    def add_pass(self, session_id: str, name: Optional[str] = None) -> Session:
        """Append a new pass, named "Pass N" by default."""
        def apply(session: Session) -> None:
            session.passes.append(Pass.new(name or f"Pass {len(session.passes) + 1}"))

        return self._mutate(session_id, apply)

    def complete_pass(self, session_id: str, pass_id: str) -> Session:
        """Mark a pass completed; completing it twice is a no-op."""
        def apply(session: Session) -> None:
            if not self.state.complete_pass(session, pass_id):
                logger.debug(f"Pass {pass_id} already completed")

        return self._mutate(session_id, apply)

    def rename_pass(self, session_id: str, pass_id: str, name: str) -> Session:
        def apply(session: Session) -> None:
            target = session.get_pass(pass_id)
            if target is None:
                raise PassNotFound(session_id, pass_id)
            target.name = name

        return self._mutate(session_id, apply)

    # Images

    def _append_image(self, session: Session, target: Pass, image: SessionImage) -> None:
        if session.get_image(image.id) is not None:
            raise DuplicateImage(session.id, image.id)
        target.images.append(image.id)
        session.images.append(copy.deepcopy(image))
        session.recompute_quality()
        self.state.on_image_added(session)

    def add_image_to_pass(self, session_id: str, pass_id: str, image: ImageLike) -> Session:
        """
        Append an image to a specific pass.

        Raises:
            SessionNotFound: Unknown session
            PassNotFound: Unknown pass
            DuplicateImage: Image id already recorded
        """
        record = _as_session_image(image)

        def apply(session: Session) -> None:
            target = session.get_pass(pass_id)
            if target is None:
                raise PassNotFound(session_id, pass_id)
            self._append_image(session, target, record)

        return self._mutate(session_id, apply)

    def add_image_to_session(self, session_id: str, image: ImageLike) -> Session:
        """
        Append an image to the first pass that is not completed.

        Raises:
            PassNotFound: Every pass is completed
        """
        record = _as_session_image(image)

        def apply(session: Session) -> None:
            target = session.active_pass
            if target is None:
                raise PassNotFound(session_id, "active")
            self._append_image(session, target, record)

        return self._mutate(session_id, apply)

    def delete_image(self, session_id: str, image_id: str) -> Session:
        """
        Remove an image from the session and its pass.

        Raises:
            ImageNotFound: Session has no such image
        """
        def apply(session: Session) -> None:
            if session.get_image(image_id) is None:
                raise ImageNotFound(session_id, image_id)
            session.images = [i for i in session.images if i.id != image_id]
            for p in session.passes:
                if image_id in p.images:
                    p.images.remove(image_id)
            session.recompute_quality()

        return self._mutate(session_id, apply)

    # Metadata and status

    def rename_session(self, session_id: str, name: str) -> Session:
        def apply(session: Session) -> None:
            session.name = name

        return self._mutate(session_id, apply)

    def update_session_metadata(
        self,
        session_id: str,
        name: Optional[str] = None,
        subject_matter: Optional[str] = None,
        description: Optional[str] = None,
        tags: Optional[List[str]] = None,
    ) -> Session:
        """Update the fields that are given; others are left alone."""
        def apply(session: Session) -> None:
            if name:
                session.name = name
            if subject_matter is not None:
                session.subject_matter = subject_matter
            if description is not None:
                session.description = description
            if tags is not None:
                session.tags = list(tags)

        return self._mutate(session_id, apply)

    def mark_processed(self, session_id: str) -> Session:
        """
        Record a finished export.

        Raises:
            InvalidTransition: Session is not completed
        """
        return self._mutate(session_id, self.state.mark_processed)

    @staticmethod
    def _check_invariants(session: Session) -> None:
        errors = session.invariant_errors()
        if errors:
            raise ValueError(f"Session {session.id} is inconsistent: {'; '.join(errors)}")
