import os
import fcntl
import logging
import threading
from contextlib import contextmanager
from pathlib import Path

from .errors import FilesystemError

logger = logging.getLogger(__name__)


class CertificateLock:
    """Advisory lock serialising certificate changes between Squire processes.

    Re-entrant inside one process: the domain migration holds it while it calls
    secure()/unsecure(), which take it again.
    """

    def __init__(self, lock_file: Path):
        self.lock_file = Path(lock_file)
        self._depth = 0
        self._fh = None
        self._guard = threading.RLock()

    @contextmanager
    def hold(self):
        with self._guard:
            if self._depth == 0:
                self._acquire()
            self._depth += 1
            try:
                yield self
            finally:
                self._depth -= 1
                if self._depth == 0:
                    self._release()

    def _acquire(self):
        try:
            self.lock_file.parent.mkdir(parents=True, exist_ok=True)
            self._fh = self.lock_file.open("w")
        except OSError as e:
            raise FilesystemError(f"Could not open lock file {self.lock_file}: {e}", self.lock_file) from e
        try:
            fcntl.flock(self._fh.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            logger.info(f"Waiting for another Squire process holding {self.lock_file}...")
            fcntl.flock(self._fh.fileno(), fcntl.LOCK_EX)
        self._fh.write(f"{os.getpid()}\n")
        self._fh.flush()
        logger.debug(f"Acquired certificate lock {self.lock_file}")

    def _release(self):
        if self._fh is None:
            return
        try:
            fcntl.flock(self._fh.fileno(), fcntl.LOCK_UN)
        finally:
            self._fh.close()
            self._fh = None
            logger.debug(f"Released certificate lock {self.lock_file}")
