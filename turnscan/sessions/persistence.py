"""Storage for the session database document.

Adapters move bytes; encoding and validation live in the store.
"""

import os
from pathlib import Path
from typing import List, Optional, Protocol, Union
from uuid import uuid4

from turnscan.errors import PersistenceWriteFailed
from turnscan.utils import get_logger

logger = get_logger("sessions.persistence")


class PersistenceAdapter(Protocol):
    """Reads and writes the whole document."""

    def exists(self) -> bool:
        ...

    def read(self) -> bytes:
        ...

    def write(self, data: bytes) -> None:
        ...


class JsonFileAdapter:
    """
    Stores the document in one file.

    Writes go to a temporary sibling, are flushed to disk, then renamed over
    the target, so a reader sees either the old document or the new one.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.is_file()

    def read(self) -> bytes:
        return self.path.read_bytes()

    def write(self, data: bytes) -> None:
        """
        Atomically replace the file.

        Raises:
            PersistenceWriteFailed: Any step of the write failed
        """
        tmp_path = self.path.with_name(f".{self.path.name}.{uuid4().hex[:8]}.tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except OSError as e:
            try:
                tmp_path.unlink()
            except FileNotFoundError:
                pass
            except OSError as cleanup_error:
                logger.debug(f"Could not remove {tmp_path}: {cleanup_error}")
            raise PersistenceWriteFailed(f"Could not write {self.path}: {e}") from e

        logger.debug(f"Wrote {len(data)} bytes to {self.path}")


class MemoryAdapter:
    """Keeps the document in memory (tests, dry runs)."""

    def __init__(self, data: Optional[bytes] = None):
        self.data = data
        self.fail_writes = False
        self.writes: List[bytes] = []

    def exists(self) -> bool:
        return self.data is not None

    def read(self) -> bytes:
        if self.data is None:
            raise FileNotFoundError("No document stored")
        return self.data

    def write(self, data: bytes) -> None:
        if self.fail_writes:
            raise PersistenceWriteFailed("Write rejected by memory adapter")
        self.data = data
        self.writes.append(data)
