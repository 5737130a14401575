import re
import logging
from pathlib import Path
from typing import FrozenSet, Optional

from ..core.config import Settings
from ..core.errors import ConfigurationError
from ..core.filesystem import Filesystem

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(r'SQUIRE_[A-Z][A-Z_]*')

SECURE_SERVER_PLACEHOLDERS = frozenset({
    'SQUIRE_HOME_PATH',
    'SQUIRE_SERVER_PATH',
    'SQUIRE_STATIC_PREFIX',
    'SQUIRE_SITE',
    'SQUIRE_CERT',
    'SQUIRE_KEY',
})

OPENSSL_PLACEHOLDERS = frozenset({'SQUIRE_DOMAIN'})


class Template:
    """A config stub with a fixed set of named placeholders.

    The stub is checked when the template is built: every placeholder must be
    known and every known placeholder must appear. Rendering is a single pass,
    so substituted values are never scanned for placeholders again.
    """

    def __init__(self, text: str, placeholders: FrozenSet[str], name: str = "template"):
        self.text = text
        self.placeholders = frozenset(placeholders)
        self.name = name
        found = set(PLACEHOLDER_PATTERN.findall(text))
        unknown = found - self.placeholders
        missing = self.placeholders - found
        if unknown:
            raise ConfigurationError(f"{name} uses unknown placeholder(s): {', '.join(sorted(unknown))}")
        if missing:
            raise ConfigurationError(f"{name} is missing placeholder(s): {', '.join(sorted(missing))}")

    @classmethod
    def from_file(cls, path: Path, placeholders: FrozenSet[str], files: Optional[Filesystem] = None):
        text = files.get(path) if files is not None else Path(path).read_text(encoding='utf-8')
        return cls(text, placeholders, name=Path(path).name)

    def render(self, **values) -> str:
        keys = set(values)
        if keys != self.placeholders:
            missing = self.placeholders - keys
            extra = keys - self.placeholders
            raise ConfigurationError(
                f"Cannot render {self.name}: missing {sorted(missing)}, unexpected {sorted(extra)}"
            )
        return PLACEHOLDER_PATTERN.sub(lambda match: str(values[match.group(0)]), self.text)


class NginxManager:
    """Renders and installs the per-host TLS server blocks and OpenSSL configs."""

    def __init__(self, settings: Settings, files: Filesystem):
        self.settings = settings
        self.files = files
        self._secure_template = None
        self._openssl_template = None

    @property
    def secure_server_template(self) -> Template:
        if self._secure_template is None:
            self._secure_template = Template.from_file(
                self.settings.secure_server_stub, SECURE_SERVER_PLACEHOLDERS, self.files
            )
        return self._secure_template

    @property
    def openssl_template(self) -> Template:
        if self._openssl_template is None:
            template = Template.from_file(self.settings.openssl_stub, OPENSSL_PLACEHOLDERS, self.files)
            if not re.search(r'^\[\s*v3_req\s*\]', template.text, re.MULTILINE):
                raise ConfigurationError(f"{template.name} has no [ v3_req ] extensions section")
            self._openssl_template = template
        return self._openssl_template

    def site_config_path(self, host: str) -> Path:
        return self.settings.nginx_path / host

    def build_secure_server(self, host: str, cert_path: Path, key_path: Path) -> str:
        return self.secure_server_template.render(
            SQUIRE_HOME_PATH=self.settings.home_path,
            SQUIRE_SERVER_PATH=self.settings.server_path,
            SQUIRE_STATIC_PREFIX=self.settings.static_prefix,
            SQUIRE_SITE=host,
            SQUIRE_CERT=cert_path,
            SQUIRE_KEY=key_path,
        )

    def build_certificate_conf(self, host: str) -> str:
        return self.openssl_template.render(SQUIRE_DOMAIN=host)

    def install_secure_server(self, host: str, cert_path: Path, key_path: Path) -> Path:
        """Writes the TLS server block for ``host`` into the Nginx directory."""
        content = self.build_secure_server(host, cert_path, key_path)
        self.files.ensure_dir_exists(self.settings.nginx_path)
        path = self.files.put_as_user(self.site_config_path(host), content)
        logger.info(f"Nginx TLS configuration for '{host}' written to {path}")
        return path

    def remove_secure_server(self, host: str) -> bool:
        removed = self.files.unlink(self.site_config_path(host))
        if removed:
            logger.info(f"Removed Nginx TLS configuration for '{host}'.")
        return removed
