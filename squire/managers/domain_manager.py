import re
import logging
from typing import Dict, List, Optional

from ..core.configuration import Configuration
from ..core.errors import ConfigurationError, DomainMigrationError, SquireError
from ..core.services import ServiceController
from .ssl_manager import CertificateManager

logger = logging.getLogger(__name__)

DOMAIN_PATTERN = re.compile(r'^[a-z0-9]([a-z0-9-]*[a-z0-9])?(\.[a-z0-9]([a-z0-9-]*[a-z0-9])?)*$')


def rename_host(host: str, old_domain: str, new_domain: str) -> str:
    """Swaps the trailing ``.<old_domain>`` of ``host`` for ``.<new_domain>``."""
    suffix = f".{old_domain}"
    if host.endswith(suffix):
        return host[:-len(suffix)] + f".{new_domain}"
    return host


def normalize_domain(domain: str) -> str:
    domain = (domain or "").strip().strip('.').lower()
    if not domain or not DOMAIN_PATTERN.match(domain):
        raise ConfigurationError(f"'{domain}' is not a valid domain. Use letters, digits, hyphens and dots.")
    return domain


class DomainManager:
    """Changes the TLD and moves every secured site over to it."""

    def __init__(self, configuration: Configuration, certificates: CertificateManager,
                 services: Optional[ServiceController] = None):
        self.configuration = configuration
        self.certificates = certificates
        self.services = services

    def resecure_for_new_domain(self, old_domain: str, new_domain: str) -> List[str]:
        """Re-issues every certificate under ``new_domain``.

        All hosts are unsecured first so no certificate for the old domain
        survives, then each is secured under its new name. Hosts with only
        partial files (no crt) are cleaned up and not carried over. A failure on one
        host does not stop the others; when any fail, DomainMigrationError
        lists them once every host has been attempted.

        Returns:
            The new hostnames that were secured.
        """
        if not self.certificates.files.exists(self.certificates.certificates_path):
            logger.info("No certificates directory. Nothing to resecure.")
            return []

        with self.certificates.lock.hold():
            secured = []
            failures: Dict[str, Exception] = {}
            for host in self.certificates.secured():
                if self.certificates.is_secured(host):
                    secured.append(host)
                    continue
                # Leftovers of an earlier failed secure(); not carried over
                try:
                    self.certificates.discard_partial(host)
                except SquireError as e:
                    logger.error(f"Could not remove partial certificate files for '{host}': {e}")
                    failures[host] = e
            logger.info(f"Resecuring {len(secured)} site(s) for '.{old_domain}' -> '.{new_domain}': {secured}")

            for host in secured:
                try:
                    self.certificates.unsecure(host)
                except SquireError as e:
                    logger.error(f"Could not unsecure '{host}' before moving it: {e}")
                    failures[host] = e

            resecured = []
            for host in secured:
                new_host = rename_host(host, old_domain, new_domain)
                try:
                    self.certificates.secure(new_host)
                    resecured.append(new_host)
                except SquireError as e:
                    logger.error(f"Failed to secure '{new_host}' under the new domain: {e}")
                    failures[new_host] = e

        if failures:
            raise DomainMigrationError(old_domain, new_domain, failures, resecured)
        logger.info(f"Resecured {len(resecured)} site(s) under '.{new_domain}'.")
        return resecured

    def update_domain(self, domain: str, restart: bool = True) -> str:
        """Sets the TLD, moves certificates over and restarts the web services."""
        new_domain = normalize_domain(domain)
        old_domain = self.configuration.domain()
        if new_domain == old_domain:
            logger.info(f"Domain is already '{new_domain}'. Nothing to change.")
            return new_domain

        self.configuration.update_key('domain', new_domain)
        try:
            self.resecure_for_new_domain(old_domain, new_domain)
        finally:
            if restart and self.services is not None:
                self.services.restart()
        logger.info(f"Domain updated from '{old_domain}' to '{new_domain}'.")
        return new_domain
