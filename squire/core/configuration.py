import json
import logging
from pathlib import Path
from typing import Any, Dict

from .config import Settings
from .errors import ConfigurationError, FilesystemError
from .filesystem import Filesystem

logger = logging.getLogger(__name__)


class Configuration:
    """Reads and writes ``config.json``: the TLD and the watched paths."""

    def __init__(self, settings: Settings, files: Filesystem):
        self.settings = settings
        self.files = files

    @property
    def path(self) -> Path:
        return self.settings.config_file

    def _defaults(self) -> Dict[str, Any]:
        return {'domain': self.settings.default_tld, 'paths': []}

    def install(self):
        """Creates the home directory layout and a default config file."""
        for directory in (self.settings.home_path, self.settings.sites_path,
                          self.settings.certificates_path, self.settings.nginx_path,
                          self.settings.log_path):
            self.files.ensure_dir_exists(directory)
        if not self.path.is_file():
            logger.info(f"Creating default configuration at {self.path}")
            self.write(self._defaults())
        else:
            # Fill in any keys added since the file was written
            self.write(self.read())

    def read(self) -> Dict[str, Any]:
        """Loads config.json, falling back to defaults for missing keys."""
        data = self._defaults()
        if not self.path.is_file():
            return data
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                loaded = json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON in {self.path}: {e}")
            raise ConfigurationError(f"Configuration file {self.path} is not valid JSON: {e}") from e
        except OSError as e:
            raise FilesystemError(f"Could not read {self.path}: {e}", self.path) from e
        if not isinstance(loaded, dict):
            raise ConfigurationError(f"Configuration file {self.path} must contain a JSON object.")
        data.update(loaded)
        if not isinstance(data.get('paths'), list):
            logger.warning(f"'paths' in {self.path} is not a list. Resetting it.")
            data['paths'] = []
        return data

    def write(self, data: Dict[str, Any]):
        self.files.ensure_dir_exists(self.path.parent)
        self.files.put_as_user(self.path, json.dumps(data, indent=4) + "\n")
        logger.debug(f"Saved configuration to {self.path}")

    def update_key(self, key: str, value: Any) -> Dict[str, Any]:
        data = self.read()
        data[key] = value
        self.write(data)
        logger.info(f"Configuration key '{key}' set to {value!r}")
        return data

    def domain(self) -> str:
        return self.read()['domain']

    def paths(self) -> list:
        return list(self.read()['paths'])

    def add_path(self, path, prepend: bool = False) -> bool:
        """Registers a watched directory. Returns False if it was already there."""
        path = str(path)
        data = self.read()
        if path in data['paths']:
            return False
        if prepend:
            data['paths'].insert(0, path)
        else:
            data['paths'].append(path)
        self.write(data)
        logger.info(f"Added '{path}' to watched paths.")
        return True

    def prepend_path(self, path) -> bool:
        return self.add_path(path, prepend=True)

    def remove_path(self, path) -> bool:
        path = str(path)
        data = self.read()
        if path not in data['paths']:
            return False
        data['paths'] = [p for p in data['paths'] if p != path]
        self.write(data)
        logger.info(f"Removed '{path}' from watched paths.")
        return True

    def prune(self) -> list:
        """Drops watched paths whose directories no longer exist."""
        if not self.path.is_file():
            return []
        data = self.read()
        missing = [p for p in data['paths'] if not Path(p).is_dir()]
        if missing:
            data['paths'] = [p for p in data['paths'] if p not in missing]
            self.write(data)
            logger.info(f"Pruned missing paths from configuration: {missing}")
        return missing
