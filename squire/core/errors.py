"""Exception types raised by Squire's core and managers.

The CLI catches ``SquireError`` at its boundary and turns it into a message and
a non-zero exit status. Everything below it raises with enough context (host,
step, command output) for that message to be useful on its own.
"""
from typing import Dict, List, Optional, Sequence


class SquireError(Exception):
    """Base class for every failure Squire reports to the user."""


class CommandError(SquireError):
    """An external command exited non-zero, timed out or could not be started."""

    def __init__(self, command: Sequence[str], returncode: int, output: str = ""):
        self.command = list(command)
        self.returncode = returncode
        self.output = output
        joined = " ".join(self.command)
        message = f"Command '{joined}' failed (Exit Code: {returncode})"
        if output:
            message += f": {output}"
        super().__init__(message)


class FilesystemError(SquireError):
    """Creating, reading, writing or removing a file, directory or link failed."""

    def __init__(self, message: str, path=None):
        self.path = path
        super().__init__(message)


class CertificateIssuanceError(SquireError):
    """One of the OpenSSL steps that build a certificate failed."""

    def __init__(self, host: str, step: str, message: str, returncode: Optional[int] = None):
        self.host = host
        self.step = step
        self.returncode = returncode
        super().__init__(f"Could not {step} for '{host}': {message}")


class TrustStoreError(SquireError):
    """The system trust store refused to add or remove a certificate."""

    def __init__(self, host: str, action: str, message: str):
        self.host = host
        self.action = action
        super().__init__(f"Could not {action} the certificate for '{host}' in the system trust store: {message}")


class ConfigurationError(SquireError):
    """Requested domain or configuration state is invalid or unreachable."""


class DomainMigrationError(ConfigurationError):
    """Some hosts could not be moved to the new domain."""

    def __init__(self, old_domain: str, new_domain: str,
                 failures: Dict[str, Exception], resecured: Optional[List[str]] = None):
        self.old_domain = old_domain
        self.new_domain = new_domain
        self.failures = dict(failures)
        self.resecured = list(resecured or [])
        hosts = ", ".join(sorted(self.failures))
        super().__init__(
            f"Moving from '.{old_domain}' to '.{new_domain}' failed for {len(self.failures)} "
            f"site(s): {hosts}"
        )
