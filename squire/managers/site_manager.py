import os
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from ..core.config import Settings
from ..core.configuration import Configuration
from ..core.filesystem import Filesystem
from .ssl_manager import CertificateManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Link:
    name: str
    target_path: Path

    @property
    def is_broken(self) -> bool:
        return not self.target_path.exists()


@dataclass(frozen=True)
class LinkEntry:
    """One row of the ``links`` listing."""
    name: str
    secured: bool
    url: str
    path: str


def strip_tld(name: str, tld: str) -> str:
    """Drops a trailing ``.<tld>`` so linking with the full hostname is idempotent."""
    suffix = f".{tld}"
    if tld and name.endswith(suffix) and len(name) > len(suffix):
        return name[:-len(suffix)]
    return name


class SiteManager:
    """Registry of site links: one symlink per site in the Sites directory."""

    def __init__(self, settings: Settings, configuration: Configuration,
                 files: Filesystem, certificates: CertificateManager):
        self.settings = settings
        self.configuration = configuration
        self.files = files
        self.certificates = certificates

    @property
    def sites_path(self) -> Path:
        return self.settings.sites_path

    def tld(self) -> str:
        return self.configuration.domain()

    def host(self, path) -> str:
        """Name of the link pointing at ``path``, or the directory's basename."""
        wanted = self.files.realpath(path)
        for name in self.files.scandir(self.sites_path):
            if self.files.realpath(self.sites_path / name) == wanted:
                return name
        return Path(os.path.normpath(str(path))).name

    def link(self, target, name: str) -> str:
        """Links ``target`` as ``name`` and returns the full hostname."""
        tld = self.tld()
        name = strip_tld(name, tld)
        link_path = self.files.ensure_dir_exists(self.sites_path)
        self.configuration.prepend_path(link_path)
        self.files.symlink_as_user(Path(target), link_path / name)
        logger.info(f"Linked '{name}' -> {target}")
        return f"{name}.{tld}"

    def unlink(self, name: str) -> bool:
        """Removes the link called ``name``. Missing links are not an error."""
        name = strip_tld(name, self.tld())
        path = self.sites_path / name
        if not self.files.is_link(path) and not self.files.exists(path):
            logger.debug(f"No link named '{name}'. Nothing to unlink.")
            return False
        self.files.unlink(path)
        logger.info(f"The [{name}] symbolic link has been removed.")
        return True

    def prune_links(self) -> List[str]:
        self.files.ensure_dir_exists(self.sites_path)
        return self.files.remove_broken_links_at(self.sites_path)

    def all_links(self) -> List[Link]:
        """Every link in the Sites directory, sorted by name, broken ones included."""
        links = []
        for name in self.files.scandir(self.sites_path):
            path = self.sites_path / name
            if not self.files.is_link(path):
                continue
            target = self.files.read_link(path)
            if not target.is_absolute():
                target = self.sites_path / target
            links.append(Link(name=name, target_path=target))
        return links

    def site_path(self, name: str) -> Optional[Path]:
        path = self.sites_path / strip_tld(name, self.tld())
        if not self.files.is_link(path) or not self.files.exists(path):
            return None
        return self.files.realpath(path)

    def links(self, filter_name: Optional[str] = None) -> List[LinkEntry]:
        """Lists live links with their TLS state and URL.

        With ``filter_name`` only subdomains of that site are kept
        (``<sub>.<filter_name>``) and they are displayed as ``<sub>``.
        """
        self.files.ensure_dir_exists(self.certificates.certificates_path)
        tld = self.tld()
        entries = []
        for link in self.all_links():
            if link.is_broken:
                continue
            hostname = f"{link.name}.{tld}"
            secured = self.certificates.is_secured(hostname)
            url = f"{'https' if secured else 'http'}://{hostname}"
            if filter_name:
                suffix = f".{filter_name}"
                if not link.name.endswith(suffix) or link.name == suffix:
                    continue
                display = link.name[:-len(suffix)]
            else:
                display = hostname
            entries.append(LinkEntry(name=display, secured=secured, url=url, path=str(link.target_path)))
        return entries
