import os
import tempfile
import logging
from pathlib import Path
from typing import List, Optional, Tuple, Union

from .errors import FilesystemError
from .system_utils import invoking_user_ids

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class Filesystem:
    """Thin wrapper around the file operations the managers need.

    Anything created "as user" is handed back to the regular user when Squire
    runs under sudo, so the home directory never ends up owned by root.
    """

    def __init__(self, owner: Optional[Tuple[int, int]] = None):
        self._owner = owner

    @property
    def owner(self) -> Optional[Tuple[int, int]]:
        return self._owner if self._owner is not None else invoking_user_ids()

    # --- Queries ---
    def exists(self, path: PathLike) -> bool:
        return Path(path).exists()

    def is_link(self, path: PathLike) -> bool:
        return Path(path).is_symlink()

    def is_dir(self, path: PathLike) -> bool:
        return Path(path).is_dir()

    def scandir(self, path: PathLike) -> List[str]:
        """Entry names in a directory, sorted. Missing directories list as empty."""
        path = Path(path)
        if not path.is_dir():
            return []
        try:
            return sorted(entry.name for entry in path.iterdir())
        except OSError as e:
            logger.error(f"FILESYSTEM: Could not list {path}: {e}", exc_info=True)
            raise FilesystemError(f"Could not list directory {path}: {e}", path) from e

    def read_link(self, path: PathLike) -> Path:
        try:
            return Path(os.readlink(path))
        except OSError as e:
            raise FilesystemError(f"Could not read link {path}: {e}", path) from e

    def realpath(self, path: PathLike) -> Path:
        return Path(os.path.realpath(path))

    def get(self, path: PathLike) -> str:
        try:
            return Path(path).read_text(encoding='utf-8')
        except OSError as e:
            logger.error(f"FILESYSTEM: Could not read {path}: {e}")
            raise FilesystemError(f"Could not read {path}: {e}", path) from e

    # --- Mutations ---
    def ensure_dir_exists(self, path: PathLike, as_user: bool = True) -> Path:
        path = Path(path)
        if path.is_dir():
            return path
        try:
            path.mkdir(parents=True, exist_ok=True)
            logger.debug(f"FILESYSTEM: Created directory {path}")
        except OSError as e:
            logger.error(f"FILESYSTEM: Error creating directory {path}: {e}", exc_info=True)
            raise FilesystemError(f"Could not create directory {path}: {e}", path) from e
        if as_user:
            self.chown(path)
        return path

    def put(self, path: PathLike, contents: str, mode: Optional[int] = None) -> Path:
        """Writes a file atomically (temp file in the same directory, then replace)."""
        path = Path(path)
        temp_path = None
        try:
            with tempfile.NamedTemporaryFile('w', dir=path.parent, delete=False, encoding='utf-8',
                                             prefix=f".{path.name}.tmp.") as temp_f:
                temp_path = Path(temp_f.name)
                temp_f.write(contents)
                temp_f.flush()
                os.fsync(temp_f.fileno())
            os.chmod(temp_path, 0o644 if mode is None else mode)
            os.replace(temp_path, path)
            temp_path = None
        except OSError as e:
            logger.error(f"FILESYSTEM: Error writing {path}: {e}", exc_info=True)
            raise FilesystemError(f"Could not write {path}: {e}", path) from e
        finally:
            if temp_path is not None:
                temp_path.unlink(missing_ok=True)
        return path

    def put_as_user(self, path: PathLike, contents: str, mode: Optional[int] = None) -> Path:
        path = self.put(path, contents, mode)
        self.chown(path)
        return path

    def symlink_as_user(self, target: PathLike, link: PathLike) -> Path:
        """Points ``link`` at ``target``, replacing whatever was at ``link``."""
        link = Path(link)
        try:
            if link.is_symlink() or link.is_file():
                link.unlink()
            elif link.exists():
                raise FilesystemError(f"Refusing to replace directory {link} with a link", link)
            link.symlink_to(target)
            logger.info(f"FILESYSTEM: Symlink created: {link} -> {target}")
        except OSError as e:
            logger.error(f"FILESYSTEM: Could not link {link} -> {target}: {e}")
            raise FilesystemError(f"Could not link {link} to {target}: {e}", link) from e
        self.chown(link, follow_symlinks=False)
        return link

    def unlink(self, path: PathLike) -> bool:
        """Removes a file or link. Returns False when there was nothing to remove."""
        path = Path(path)
        if not path.exists() and not path.is_symlink():
            return False
        try:
            path.unlink()
        except OSError as e:
            logger.error(f"FILESYSTEM: Error removing {path}: {e}")
            raise FilesystemError(f"Could not remove {path}: {e}", path) from e
        logger.debug(f"FILESYSTEM: Removed {path}")
        return True

    def remove_broken_links_at(self, path: PathLike) -> List[str]:
        """Deletes every symlink in ``path`` whose target is gone. Returns their names."""
        removed = []
        for name in self.scandir(path):
            link = Path(path) / name
            if link.is_symlink() and not link.exists():
                self.unlink(link)
                logger.info(f"FILESYSTEM: Pruned broken link {link}")
                removed.append(name)
        return removed

    def chown(self, path: PathLike, follow_symlinks: bool = True):
        owner = self.owner
        if owner is None:
            return
        try:
            os.chown(path, owner[0], owner[1], follow_symlinks=follow_symlinks)
        except OSError as e:
            logger.warning(f"FILESYSTEM: Could not change owner of {path}: {e}")

    def chmod(self, path: PathLike, mode: int):
        try:
            os.chmod(path, mode)
        except OSError as e:
            logger.warning(f"FILESYSTEM: Could not set permissions on {path}: {e}")
