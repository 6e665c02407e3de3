"""Session, pass and image records as stored in the session database.

Field names on disk are camelCase; timestamps are epoch milliseconds.
Older documents stored some timestamps as ISO-8601 strings and used
``dateCreated``/``dateModified``/``dateCaptured``; both are accepted on load.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
from uuid import uuid4

from turnscan.capture.models import CapturedImage
from turnscan.errors import PersistenceCorrupt
from turnscan.utils import now_ms

DATABASE_VERSION = "1.0.0"


class SessionStatus(str, Enum):
    """Lifecycle status of a session."""
    INITIALIZING = "initializing"  # Created, no images yet
    INITIALIZED = "initialized"  # First image recorded
    IN_PROGRESS = "in_progress"  # Capturing
    COMPLETED = "completed"  # Every pass completed
    PROCESSED = "processed"  # Export finished

    @property
    def rank(self) -> int:
        """Position in the lifecycle, for ordering."""
        return _STATUS_ORDER.index(self)


_STATUS_ORDER = [
    SessionStatus.INITIALIZING,
    SessionStatus.INITIALIZED,
    SessionStatus.IN_PROGRESS,
    SessionStatus.COMPLETED,
    SessionStatus.PROCESSED,
]


def coerce_timestamp(value: Any) -> Optional[int]:
    """
    Normalize a stored timestamp to epoch milliseconds.

    Accepts epoch numbers, numeric strings and ISO-8601 strings (a trailing
    ``Z`` is read as UTC; naive strings are taken as UTC).

    Raises:
        PersistenceCorrupt: Value cannot be read as a timestamp
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise PersistenceCorrupt(f"Invalid timestamp: {value!r}")
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if text.lstrip("-").isdigit():
            return int(text)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as e:
            raise PersistenceCorrupt(f"Invalid timestamp: {value!r}") from e
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return int(parsed.timestamp() * 1000)
    raise PersistenceCorrupt(f"Invalid timestamp: {value!r}")


def _required_timestamp(data: Dict[str, Any], *keys: str) -> int:
    for key in keys:
        if data.get(key) is not None:
            return coerce_timestamp(data[key])
    return now_ms()


def _optional_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise PersistenceCorrupt(f"Invalid number: {value!r}") from e


def mean_quality(scores: List[Optional[float]]) -> int:
    """Rounded mean of the scores that are set; 0 when none are."""
    present = [s for s in scores if s is not None]
    if not present:
        return 0
    return round(sum(present) / len(present))


@dataclass
class SessionImage:
    """An image as recorded in a session."""
    id: str
    filename: str
    file_path: str
    camera: str
    captured_at: int
    angle: Optional[float] = None
    quality_score: Optional[float] = None
    has_mask: bool = False

    @classmethod
    def from_captured(cls, image: CapturedImage) -> "SessionImage":
        return cls(
            id=image.id,
            filename=image.filename,
            file_path=image.raw_file_path,
            camera=image.camera_id,
            captured_at=image.captured_at,
            angle=image.turntable_angle,
            quality_score=image.sharpness,
            has_mask=image.has_mask,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "filename": self.filename,
            "filePath": self.file_path,
            "camera": self.camera,
            "angle": self.angle,
            "capturedAt": self.captured_at,
            "qualityScore": self.quality_score,
            "hasMask": self.has_mask,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionImage":
        if not isinstance(data, dict) or "id" not in data:
            raise PersistenceCorrupt("Image record must be an object with an id")
        file_path = data.get("filePath") or data.get("path") or ""
        return cls(
            id=str(data["id"]),
            filename=data.get("filename") or Path(file_path).name,
            file_path=file_path,
            camera=str(data.get("camera", "")),
            captured_at=_required_timestamp(data, "capturedAt", "dateCaptured", "timestamp"),
            angle=_optional_float(data.get("angle")),
            quality_score=_optional_float(data.get("qualityScore")),
            has_mask=bool(data.get("hasMask", False)),
        )


@dataclass
class Pass:
    """An ordered run of captures inside a session, usually one rotation."""
    id: str
    name: str
    created_at: int
    images: List[str] = field(default_factory=list)
    completed: bool = False
    image_quality: int = 0

    @classmethod
    def new(cls, name: str) -> "Pass":
        return cls(id=f"pass-{uuid4().hex[:12]}", name=name, created_at=now_ms())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "createdAt": self.created_at,
            "images": list(self.images),
            "completed": self.completed,
            "imageQuality": self.image_quality,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Pass":
        if not isinstance(data, dict) or "id" not in data:
            raise PersistenceCorrupt("Pass record must be an object with an id")
        images = data.get("images", [])
        if not isinstance(images, list):
            raise PersistenceCorrupt(f"Pass {data['id']} images must be a list")
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            created_at=_required_timestamp(data, "createdAt", "dateCreated", "timestamp"),
            images=[str(i) for i in images],
            completed=bool(data.get("completed", False)),
            image_quality=int(data.get("imageQuality") or 0),
        )


@dataclass
class Session:
    """Top-level unit of work: passes and the images they hold."""
    id: str
    name: str
    created_at: int
    updated_at: int
    passes: List[Pass] = field(default_factory=list)
    images: List[SessionImage] = field(default_factory=list)
    status: SessionStatus = SessionStatus.INITIALIZING
    subject_matter: Optional[str] = None
    description: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    processed: bool = False
    processing_date: Optional[int] = None
    image_quality: int = 0

    def __post_init__(self):
        if isinstance(self.status, str):
            self.status = SessionStatus(self.status)

    @classmethod
    def new(cls, name: str = "New Session") -> "Session":
        """A fresh session with one empty pass."""
        timestamp = now_ms()
        return cls(
            id=f"session-{timestamp}-{uuid4().hex[:6]}",
            name=name,
            created_at=timestamp,
            updated_at=timestamp,
            passes=[Pass.new("Pass 1")],
        )

    def get_pass(self, pass_id: str) -> Optional[Pass]:
        for p in self.passes:
            if p.id == pass_id:
                return p
        return None

    def get_image(self, image_id: str) -> Optional[SessionImage]:
        for image in self.images:
            if image.id == image_id:
                return image
        return None

    @property
    def active_pass(self) -> Optional[Pass]:
        """First pass that is not completed."""
        for p in self.passes:
            if not p.completed:
                return p
        return None

    @property
    def all_passes_completed(self) -> bool:
        return bool(self.passes) and all(p.completed for p in self.passes)

    def recompute_quality(self) -> None:
        """Refresh pass and session quality from image scores."""
        scores = {image.id: image.quality_score for image in self.images}
        for p in self.passes:
            p.image_quality = mean_quality([scores.get(i) for i in p.images])
        self.image_quality = mean_quality(list(scores.values()))

    def invariant_errors(self) -> List[str]:
        """Describe every way the pass/image bookkeeping is inconsistent."""
        errors = []
        if not self.passes:
            errors.append("session has no passes")

        image_ids = [image.id for image in self.images]
        if len(set(image_ids)) != len(image_ids):
            errors.append("duplicate image ids")

        pass_ids = [i for p in self.passes for i in p.images]
        if len(pass_ids) != len(image_ids):
            errors.append(f"{len(image_ids)} images but passes reference {len(pass_ids)}")
        if sorted(pass_ids) != sorted(image_ids):
            errors.append("pass image ids do not match session images")
        return errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "passes": [p.to_dict() for p in self.passes],
            "images": [image.to_dict() for image in self.images],
            "status": self.status.value,
            "subjectMatter": self.subject_matter,
            "description": self.description,
            "tags": list(self.tags),
            "processed": self.processed,
            "processingDate": self.processing_date,
            "imageQuality": self.image_quality,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        if not isinstance(data, dict) or "id" not in data:
            raise PersistenceCorrupt("Session record must be an object with an id")

        for key in ("passes", "images", "tags"):
            if data.get(key) is not None and not isinstance(data[key], list):
                raise PersistenceCorrupt(f"Session {data['id']} {key} must be a list")

        images = [SessionImage.from_dict(i) for i in data.get("images") or []]
        passes = [Pass.from_dict(p) for p in data.get("passes") or []]
        created_at = _required_timestamp(data, "createdAt", "dateCreated", "timestamp")
        if not passes:
            # Documents from before passes existed keep every image in one pass
            passes = [Pass(id=f"pass-{uuid4().hex[:12]}", name="Pass 1", created_at=created_at,
                           images=[image.id for image in images])]

        try:
            status = SessionStatus(data.get("status") or SessionStatus.INITIALIZING.value)
        except ValueError as e:
            raise PersistenceCorrupt(f"Session {data['id']} has unknown status {data.get('status')!r}") from e

        session = cls(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            created_at=created_at,
            updated_at=_required_timestamp(data, "updatedAt", "dateModified", "createdAt"),
            passes=passes,
            images=images,
            status=status,
            subject_matter=data.get("subjectMatter"),
            description=data.get("description"),
            tags=[str(t) for t in data.get("tags") or []],
            processed=bool(data.get("processed", False)),
            processing_date=coerce_timestamp(data.get("processingDate")),
            image_quality=int(data.get("imageQuality") or 0),
        )

        errors = session.invariant_errors()
        if errors:
            raise PersistenceCorrupt(f"Session {session.id}: {'; '.join(errors)}")
        return session


@dataclass
class SessionDatabase:
    """The persisted document: every session plus bookkeeping."""
    sessions: List[Session] = field(default_factory=list)
    last_opened: Optional[str] = None
    last_updated: int = field(default_factory=now_ms)
    version: str = DATABASE_VERSION

    def get_session(self, session_id: str) -> Optional[Session]:
        for session in self.sessions:
            if session.id == session_id:
                return session
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sessions": [s.to_dict() for s in self.sessions],
            "lastOpened": self.last_opened,
            "lastUpdated": self.last_updated,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Union[Dict[str, Any], Any]) -> "SessionDatabase":
        """
        Build from a decoded document.

        Raises:
            PersistenceCorrupt: Structure is not a valid session database
        """
        if not isinstance(data, dict):
            raise PersistenceCorrupt("Session database must be a JSON object")
        if not isinstance(data.get("sessions"), list):
            raise PersistenceCorrupt("Session database has no sessions list")

        sessions = [Session.from_dict(s) for s in data["sessions"]]
        ids = [s.id for s in sessions]
        if len(set(ids)) != len(ids):
            raise PersistenceCorrupt("Duplicate session ids")

        last_opened = data.get("lastOpened")
        return cls(
            sessions=sessions,
            last_opened=str(last_opened) if last_opened is not None else None,
            last_updated=_required_timestamp(data, "lastUpdated"),
            version=str(data.get("version") or DATABASE_VERSION),
        )
