"""System trust store integration.

Two stores are supported: the macOS System keychain and the Debian-style
``ca-certificates`` bundle used on Linux. Both need root, so every command goes
through ``CommandLine.run_privileged`` rather than the user-impersonating
runner the OpenSSL steps use.
"""
import logging
from abc import ABC, abstractmethod
from pathlib import Path

from ..core.config import Settings
from ..core.errors import CommandError, ConfigurationError, TrustStoreError
from ..core.system_utils import CommandLine

logger = logging.getLogger(__name__)


class TrustStore(ABC):
    """Adds and removes self-signed certificates as trusted roots."""

    name = "trust store"

    def __init__(self, settings: Settings, cli: CommandLine):
        self.settings = settings
        self.cli = cli

    @abstractmethod
    def trust(self, cert_path: Path, common_name: str):
        """Trust ``cert_path`` as a root. Raises TrustStoreError on failure."""

    @abstractmethod
    def untrust(self, common_name: str):
        """Remove the trusted certificate for ``common_name``. Raises TrustStoreError."""

    def _run(self, command, host: str, action: str):
        try:
            self.cli.run_privileged(command)
        except CommandError as e:
            logger.error(f"TRUST_MANAGER: {self.name}: failed to {action} certificate for '{host}': {e}")
            raise TrustStoreError(host, action, str(e)) from e


class KeychainTrustStore(TrustStore):
    name = "macOS System keychain"

    def trust(self, cert_path: Path, common_name: str):
        logger.info(f"Adding certificate for '{common_name}' to the {self.name} (may prompt for a password)...")
        self._run([
            self.settings.security_binary, "add-trusted-cert", "-d", "-r", "trustRoot",
            "-k", str(self.settings.keychain_path), str(cert_path),
        ], common_name, "trust")

    def untrust(self, common_name: str):
        logger.info(f"Removing certificate for '{common_name}' from the {self.name}...")
        self._run([self.settings.security_binary, "delete-certificate", "-c", common_name, "-t"],
                  common_name, "untrust")


class CaCertificatesTrustStore(TrustStore):
    name = "system CA bundle"

    def anchor_path(self, common_name: str) -> Path:
        return self.settings.ca_certificates_dir / f"{common_name}.crt"

    def trust(self, cert_path: Path, common_name: str):
        anchor = self.anchor_path(common_name)
        logger.info(f"Adding certificate for '{common_name}' to the {self.name} at {anchor}...")
        self._run(["mkdir", "-p", str(anchor.parent)], common_name, "trust")
        self._run(["cp", str(cert_path), str(anchor)], common_name, "trust")
        self._run([self.settings.update_ca_certificates_binary], common_name, "trust")

    def untrust(self, common_name: str):
        anchor = self.anchor_path(common_name)
        logger.info(f"Removing certificate for '{common_name}' from the {self.name}...")
        self._run(["rm", "-f", str(anchor)], common_name, "untrust")
        self._run([self.settings.update_ca_certificates_binary, "--fresh"], common_name, "untrust")


TRUST_STORES = {
    "keychain": KeychainTrustStore,
    "ca-certificates": CaCertificatesTrustStore,
}


def trust_store_for_platform(settings: Settings, cli: CommandLine) -> TrustStore:
    kind = settings.platform_trust_store()
    try:
        store_class = TRUST_STORES[kind]
    except KeyError:
        raise ConfigurationError(
            f"Unknown trust store '{kind}'. Choose one of: {', '.join(sorted(TRUST_STORES))}"
        ) from None
    logger.debug(f"Using trust store '{kind}'")
    return store_class(settings, cli)
