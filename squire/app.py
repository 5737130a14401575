import logging
from typing import Optional

from .core.config import Settings
from .core.configuration import Configuration
from .core.filesystem import Filesystem
from .core.locking import CertificateLock
from .core.services import ServiceController
from .core.system_utils import CommandLine
from .managers.domain_manager import DomainManager
from .managers.nginx_manager import NginxManager
from .managers.site_manager import SiteManager
from .managers.ssl_manager import CertificateManager
from .managers.trust_manager import TrustStore, trust_store_for_platform

logger = logging.getLogger(__name__)


class Squire:
    """Builds every manager from one Settings object and wires them together."""

    def __init__(self, settings: Optional[Settings] = None, cli: Optional[CommandLine] = None,
                 files: Optional[Filesystem] = None, trust_store: Optional[TrustStore] = None,
                 services: Optional[ServiceController] = None):
        self.settings = settings or Settings.from_environment()
        self.cli = cli or CommandLine(self.settings)
        self.files = files or Filesystem()
        self.configuration = Configuration(self.settings, self.files)
        self.nginx = NginxManager(self.settings, self.files)
        self.trust_store = trust_store or trust_store_for_platform(self.settings, self.cli)
        self.lock = CertificateLock(self.settings.lock_file)
        self.certificates = CertificateManager(
            self.settings, self.cli, self.files, self.nginx, self.trust_store, self.lock
        )
        self.sites = SiteManager(self.settings, self.configuration, self.files, self.certificates)
        self.services = services or ServiceController(self.settings, self.cli)
        self.domains = DomainManager(self.configuration, self.certificates, self.services)

    def is_installed(self) -> bool:
        return self.settings.home_path.is_dir()

    def install(self):
        self.configuration.install()
        logger.info(f"Squire home prepared at {self.settings.home_path}")

    def prune(self):
        """Maintenance run before every command: drop missing paths and broken links."""
        self.configuration.prune()
        self.sites.prune_links()

    def url_for(self, name: Optional[str], cwd) -> str:
        """Full hostname for ``name`` or, without one, for the site at ``cwd``."""
        tld = self.configuration.domain()
        name = name or self.sites.host(cwd)
        suffix = f".{tld}"
        return name if name.endswith(suffix) else f"{name}{suffix}"
