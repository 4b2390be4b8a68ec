from __future__ import annotations

import fcntl
import logging
import os
from pathlib import Path
from typing import IO, Optional

logger = logging.getLogger(__name__)


class StatusFileLock:
    """Advisory lock on a sidecar file next to the status document.

    Held only around the revision check and rename in ``StatusStore.save``.
    The lock file itself is left in place; unlinking it would let two
    writers lock different inodes.
    """

    def __init__(self, document_path: Path) -> None:
        self.lock_path = document_path.with_name(document_path.name + ".lock")
        self._handle: Optional[IO[str]] = None

    def acquire(self) -> None:
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        handle = open(self.lock_path, "a+", encoding="utf-8")
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
        except OSError:
            handle.close()
            raise
        self._handle = handle
        logger.debug("[lock] acquired path=%s pid=%s", self.lock_path, os.getpid())

    def release(self) -> None:
        if self._handle is None:
            return
        try:
            fcntl.flock(self._handle.fileno(), fcntl.LOCK_UN)
        finally:
            self._handle.close()
            self._handle = None
        logger.debug("[lock] released path=%s", self.lock_path)

    def __enter__(self) -> "StatusFileLock":
        self.acquire()
        return self

    def __exit__(self, *_: object) -> None:
        self.release()
