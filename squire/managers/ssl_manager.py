import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from ..core.config import CERTIFICATE_DAYS, CERTIFICATE_EXTENSIONS, KEY_BITS, Settings
from ..core.errors import CertificateIssuanceError, CommandError, SquireError
from ..core.filesystem import Filesystem
from ..core.locking import CertificateLock
from ..core.system_utils import CommandLine
from .nginx_manager import NginxManager
from .trust_manager import TrustStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Certificate:
    """Paths of the four files that make up the TLS material for one host."""
    common_name: str
    key_path: Path
    csr_path: Path
    crt_path: Path
    conf_path: Path

    @classmethod
    def for_host(cls, host: str, certificates_path: Path) -> "Certificate":
        return cls(
            common_name=host,
            key_path=certificates_path / f"{host}.key",
            csr_path=certificates_path / f"{host}.csr",
            crt_path=certificates_path / f"{host}.crt",
            conf_path=certificates_path / f"{host}.conf",
        )

    @property
    def files(self) -> List[Path]:
        # Removal order: config first, certificate last
        return [self.conf_path, self.key_path, self.csr_path, self.crt_path]

    @property
    def exists(self) -> bool:
        return self.crt_path.is_file()

    @property
    def created_at(self) -> Optional[datetime]:
        try:
            return datetime.fromtimestamp(self.crt_path.stat().st_mtime)
        except OSError:
            return None


def strip_certificate_extension(filename: str) -> Optional[str]:
    for extension in CERTIFICATE_EXTENSIONS:
        if filename.endswith(extension) and len(filename) > len(extension):
            return filename[:-len(extension)]
    return None


class CertificateManager:
    """Issues and revokes the self-signed certificate of each secured host."""

    def __init__(self, settings: Settings, cli: CommandLine, files: Filesystem,
                 nginx: NginxManager, trust_store: TrustStore, lock: CertificateLock):
        self.settings = settings
        self.cli = cli
        self.files = files
        self.nginx = nginx
        self.trust_store = trust_store
        self.lock = lock

    @property
    def certificates_path(self) -> Path:
        return self.settings.certificates_path

    def certificate(self, host: str) -> Certificate:
        return Certificate.for_host(host, self.certificates_path)

    def is_secured(self, host: str) -> bool:
        return self.certificate(host).exists

    def secured(self) -> List[str]:
        """All hosts with at least one certificate file on disk, sorted."""
        hosts = set()
        for filename in self.files.scandir(self.certificates_path):
            host = strip_certificate_extension(filename)
            if host:
                hosts.add(host)
        return sorted(hosts)

    def secure(self, host: str) -> Certificate:
        """Secures ``host`` with a fresh certificate, replacing any existing one.

        Raises:
            CertificateIssuanceError: an OpenSSL step failed.
            TrustStoreError: the certificate exists but the OS would not trust it.
            FilesystemError: the certificate or Nginx directory could not be written.
        """
        logger.info(f"Securing '{host}' with a fresh TLS certificate...")
        with self.lock.hold():
            self.unsecure(host)
            self.files.ensure_dir_exists(self.certificates_path)
            certificate = self.create_certificate(host)
            self.nginx.install_secure_server(host, certificate.crt_path, certificate.key_path)
        logger.info(f"Site '{host}' secured.")
        return certificate

    def unsecure(self, host: str) -> bool:
        """Removes the certificate, its Nginx block and its trust entry.

        Returns False (and does nothing) when ``host`` has no certificate.
        """
        with self.lock.hold():
            certificate = self.certificate(host)
            if not certificate.exists:
                logger.debug(f"No certificate for '{host}'. Nothing to unsecure.")
                return False
            logger.info(f"Unsecuring '{host}'...")
            self.nginx.remove_secure_server(host)
            for path in certificate.files:
                self.files.unlink(path)
            self.trust_store.untrust(host)
        logger.info(f"Site '{host}' will now serve traffic over HTTP.")
        return True

    def discard_partial(self, host: str) -> List[Path]:
        """Deletes leftover files of a host that never got a certificate.

        Nothing is untrusted: without a crt the host was never trusted.
        """
        with self.lock.hold():
            certificate = self.certificate(host)
            if certificate.exists:
                return []
            removed = [path for path in certificate.files if self.files.unlink(path)]
        if removed:
            logger.info(f"Removed partial certificate files for '{host}': {[p.name for p in removed]}")
        return removed

    # --- Certificate pipeline ---
    def create_certificate(self, host: str) -> Certificate:
        """Builds key, signing request and self-signed certificate, then trusts it."""
        certificate = self.certificate(host)
        self.build_certificate_conf(certificate)
        self.create_private_key(certificate)
        self.create_signing_request(certificate)
        self._openssl(host, "sign the certificate", [
            self.settings.openssl_binary, "x509", "-req", "-days", str(CERTIFICATE_DAYS),
            "-in", certificate.csr_path, "-signkey", certificate.key_path,
            "-out", certificate.crt_path, "-extensions", "v3_req", "-extfile", certificate.conf_path,
        ])
        self.trust_store.trust(certificate.crt_path, host)
        return certificate

    def build_certificate_conf(self, certificate: Certificate):
        try:
            content = self.nginx.build_certificate_conf(certificate.common_name)
            self.files.put_as_user(certificate.conf_path, content)
        except SquireError as e:
            logger.error(f"SSL_MANAGER: Could not write OpenSSL config for '{certificate.common_name}': {e}")
            raise CertificateIssuanceError(certificate.common_name, "write the OpenSSL config", str(e)) from e

    def create_private_key(self, certificate: Certificate):
        self._openssl(certificate.common_name, "generate the private key", [
            self.settings.openssl_binary, "genrsa", "-out", certificate.key_path, str(KEY_BITS),
        ])
        self.files.chmod(certificate.key_path, 0o600)

    def create_signing_request(self, certificate: Certificate):
        subject = (
            f"/C=/ST=/O=/localityName=/commonName=*.{certificate.common_name}"
            f"/organizationalUnitName=/emailAddress=/"
        )
        self._openssl(certificate.common_name, "create the signing request", [
            self.settings.openssl_binary, "req", "-new", "-key", certificate.key_path,
            "-out", certificate.csr_path, "-subj", subject,
            "-config", certificate.conf_path, "-passin", "pass:",
        ])

    def _openssl(self, host: str, step: str, command):
        try:
            self.cli.run_as_user(command)
        except CommandError as e:
            logger.error(f"SSL_MANAGER: Failed to {step} for '{host}': {e}")
            raise CertificateIssuanceError(host, step, str(e), e.returncode) from e
