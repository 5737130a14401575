import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

APP_NAME = "Squire"

# --- Base Directories ---
CONFIG_DIR = Path(os.environ.get('XDG_CONFIG_HOME', Path.home() / '.config')) / 'squire'
SQUIRE_HOME = Path(os.environ['SQUIRE_HOME']) if os.environ.get('SQUIRE_HOME') else CONFIG_DIR
PACKAGE_DIR = Path(__file__).resolve().parent.parent
STUBS_DIR = PACKAGE_DIR / 'stubs'

# Names of the subdirectories inside the home path
SITES_DIR_NAME = 'Sites'
CERTIFICATES_DIR_NAME = 'Certificates'
NGINX_DIR_NAME = 'Nginx'
LOG_DIR_NAME = 'Log'
CONFIG_FILE_NAME = 'config.json'
LOCK_FILE_NAME = '.certificates.lock'

# --- Defaults ---
DEFAULT_TLD = "test"
# Path of the server script nginx hands every request to
SERVER_PATH = PACKAGE_DIR / 'server.php'
STATIC_PREFIX = '41c270e4-5535-4daa-b23e-c269744c2f45'

# --- Templates ---
OPENSSL_STUB = STUBS_DIR / 'openssl.conf'
SECURE_SERVER_STUB = STUBS_DIR / 'secure.squire.conf'

# --- Certificates ---
CERTIFICATE_EXTENSIONS = ('.key', '.csr', '.crt', '.conf')
CERTIFICATE_DAYS = 365
KEY_BITS = 2048

# --- Binaries ---
OPENSSL_BINARY = "openssl"
SECURITY_BINARY = "/usr/bin/security"
UPDATE_CA_CERTIFICATES_BINARY = "update-ca-certificates"
SYSTEMCTL_PATH = "/usr/bin/systemctl"
# Prefix used for commands that need root. pkexec works too when polkit is set up.
ELEVATE_COMMAND = "sudo"

# --- Trust Stores ---
MACOS_SYSTEM_KEYCHAIN = Path("/Library/Keychains/System.keychain")
LINUX_CA_CERTIFICATES_DIR = Path("/usr/local/share/ca-certificates/squire")

# --- Services restarted after certificates or the domain change ---
WEB_SERVICES = ["nginx", "php-fpm"]

# --- Timeouts (seconds) ---
COMMAND_TIMEOUT = 60
PRIVILEGED_COMMAND_TIMEOUT = 300


@dataclass
class Settings:
    """Explicit configuration handed to every component at construction."""
    home_path: Path = SQUIRE_HOME
    server_path: Path = SERVER_PATH
    static_prefix: str = STATIC_PREFIX
    default_tld: str = DEFAULT_TLD
    openssl_stub: Path = OPENSSL_STUB
    secure_server_stub: Path = SECURE_SERVER_STUB
    openssl_binary: str = OPENSSL_BINARY
    security_binary: str = SECURITY_BINARY
    update_ca_certificates_binary: str = UPDATE_CA_CERTIFICATES_BINARY
    systemctl_path: str = SYSTEMCTL_PATH
    elevate_command: str = ELEVATE_COMMAND
    keychain_path: Path = MACOS_SYSTEM_KEYCHAIN
    ca_certificates_dir: Path = LINUX_CA_CERTIFICATES_DIR
    # "keychain", "ca-certificates" or None to pick from the platform
    trust_store: Optional[str] = None
    web_services: list = field(default_factory=lambda: list(WEB_SERVICES))
    command_timeout: float = COMMAND_TIMEOUT
    privileged_command_timeout: float = PRIVILEGED_COMMAND_TIMEOUT

    @classmethod
    def from_environment(cls, environ=None):
        environ = os.environ if environ is None else environ
        settings = cls()
        if environ.get('SQUIRE_HOME'):
            settings.home_path = Path(environ['SQUIRE_HOME']).expanduser()
        if environ.get('SQUIRE_TRUST_STORE'):
            settings.trust_store = environ['SQUIRE_TRUST_STORE']
        if environ.get('SQUIRE_ELEVATE_COMMAND'):
            settings.elevate_command = environ['SQUIRE_ELEVATE_COMMAND']
        return settings

    @property
    def sites_path(self) -> Path:
        return self.home_path / SITES_DIR_NAME

    @property
    def certificates_path(self) -> Path:
        return self.home_path / CERTIFICATES_DIR_NAME

    @property
    def nginx_path(self) -> Path:
        return self.home_path / NGINX_DIR_NAME

    @property
    def log_path(self) -> Path:
        return self.home_path / LOG_DIR_NAME

    @property
    def config_file(self) -> Path:
        return self.home_path / CONFIG_FILE_NAME

    @property
    def lock_file(self) -> Path:
        return self.home_path / LOCK_FILE_NAME

    def platform_trust_store(self) -> str:
        if self.trust_store:
            return self.trust_store
        return "keychain" if sys.platform == "darwin" else "ca-certificates"

