"""
Durable JSON Documents with Concurrency Control

File-backed storage standing in for the storefront's browser-local
persistence. Each document is a single JSON file guarded by a sibling
``.lock`` file; writes go to a temporary file first and are swapped in
with ``os.replace`` so a crash never leaves a half-written document.

Used by:
    - OrderStore (orders collection)
    - ReservationStore / MessageStore (collaborator collections)
    - RateLimiter (attempt counter document)
"""

import json
import logging
import os
from contextlib import contextmanager
from copy import deepcopy
from pathlib import Path
from typing import Any, Callable, Iterator, Optional

from filelock import FileLock, Timeout

from kitchen_checkout.core.exceptions import StorageError

logger = logging.getLogger(__name__)


class JsonDocument:
    """A single JSON value persisted to disk under a file lock."""

    def __init__(
        self,
        path: Path,
        default: Callable[[], Any] = dict,
        lock_timeout: float = 30,
    ):
        """
        Args:
            path: JSON file location (parent directories are created lazily)
            default: Factory for the value of a document that does not exist yet
            lock_timeout: Seconds to wait for the file lock
        """
        self.path = Path(path)
        self.lock_path = self.path.with_name(self.path.name + ".lock")
        self.lock_timeout = lock_timeout
        self._default = default

    def _ensure_data_dir(self) -> None:
        if not self.path.parent.exists():
            self.path.parent.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created data directory: {self.path.parent}")

    def _load(self) -> Any:
        if not self.path.exists():
            return self._default()
        try:
            with self.path.open("r", encoding="utf-8") as fh:
                return json.load(fh)
        except json.JSONDecodeError as e:
            logger.error(f"Corrupt document {self.path}: {e}")
            raise StorageError(f"Corrupt document {self.path.name}") from e

    def _dump(self, data: Any) -> None:
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=2)
        os.replace(tmp_path, self.path)

    @contextmanager
    def _locked(self) -> Iterator[None]:
        self._ensure_data_dir()
        lock = FileLock(str(self.lock_path), timeout=self.lock_timeout)
        try:
            with lock:
                logger.debug(f"Lock acquired for {self.path.name}")
                yield
            logger.debug(f"Lock released for {self.path.name}")
        except Timeout as e:
            logger.error(f"Lock timeout ({self.lock_timeout}s) for {self.path.name}")
            raise StorageError(f"Store busy: {self.path.name}") from e

    def read(self) -> Any:
        """Return a snapshot of the document."""
        with self._locked():
            return self._load()

    @contextmanager
    def transaction(self) -> Iterator[Any]:
        """
        Load the document, let the caller mutate it, write it back.

        The lock is held for the whole block. Nothing is written when the
        block raises.
        """
        with self._locked():
            data = self._load()
            yield data
            self._dump(data)

    def write(self, data: Any) -> None:
        with self._locked():
            self._dump(data)

    def clear(self) -> None:
        """Delete the document and its lock file."""
        for f in (self.path, self.lock_path):
            if f.exists():
                f.unlink()
        logger.info(f"Cleared {self.path.name}")


class JsonCollection(JsonDocument):
    """List of JSON records keyed by ``id``."""

    def __init__(self, path: Path, lock_timeout: float = 30):
        super().__init__(path, default=list, lock_timeout=lock_timeout)

    def all(self) -> list[dict[str, Any]]:
        return self.read()

    def find(self, record_id: str) -> Optional[dict[str, Any]]:
        for record in self.read():
            if str(record.get("id")) == str(record_id):
                return record
        return None

    def update(
        self,
        record_id: str,
        mutate: Callable[[dict[str, Any]], dict[str, Any]],
    ) -> Optional[dict[str, Any]]:
        """
        Replace the record with ``mutate(record)``.

        Returns:
            The updated record, or None when no record has that id
        """
        with self.transaction() as records:
            for index, record in enumerate(records):
                if str(record.get("id")) == str(record_id):
                    records[index] = mutate(deepcopy(record))
                    return records[index]
        return None
