import os
import shlex
import subprocess
import logging
from typing import List, NamedTuple, Optional, Sequence, Tuple

from .config import Settings
from .errors import CommandError

logger = logging.getLogger(__name__)


class CommandResult(NamedTuple):
    returncode: int
    stdout: str
    stderr: str

    @property
    def output(self) -> str:
        """Best text to show for a failed command: stderr when there is any."""
        return self.stderr or self.stdout


def invoking_user() -> Optional[str]:
    """Name of the regular user behind a sudo session, or None when not elevated."""
    if os.geteuid() == 0 and os.environ.get('SUDO_USER'):
        return os.environ['SUDO_USER']
    return None


def invoking_user_ids() -> Optional[Tuple[int, int]]:
    """(uid, gid) that files should be owned by when running under sudo."""
    if os.geteuid() != 0:
        return None
    try:
        return int(os.environ['SUDO_UID']), int(os.environ['SUDO_GID'])
    except (KeyError, ValueError):
        return None


class CommandLine:
    """Runs external commands for the managers.

    Three flavours exist: ``run`` executes the command as-is, ``run_as_user``
    drops back to the regular user when Squire itself runs under sudo, and
    ``run_privileged`` escalates with the configured elevation command unless
    we already are root. Non-zero exits raise ``CommandError`` when ``check``
    is set (the default).
    """

    def __init__(self, settings: Settings):
        self.settings = settings

    def run(self, command_list: Sequence[str], check: bool = True,
            timeout: Optional[float] = None) -> CommandResult:
        """Runs a system command and captures output/return code."""
        command_list = [str(part) for part in command_list]
        joined_command = shlex.join(command_list)
        timeout = self.settings.command_timeout if timeout is None else timeout
        logger.debug(f"SYSTEM_UTILS: Running command: {joined_command}")
        try:
            completed = subprocess.run(
                command_list,
                capture_output=True,
                text=True,
                check=False,
                encoding='utf-8',
                errors='replace',
                timeout=timeout,
            )
        except FileNotFoundError:
            msg = f"Command not found: {command_list[0]}"
            logger.error(f"SYSTEM_UTILS: {msg}")
            if check:
                raise CommandError(command_list, -1, msg)
            return CommandResult(-1, "", msg)
        except subprocess.TimeoutExpired:
            msg = f"Timed out after {timeout} seconds"
            logger.error(f"SYSTEM_UTILS: Command '{joined_command}' {msg.lower()}")
            if check:
                raise CommandError(command_list, -2, msg)
            return CommandResult(-2, "", msg)

        result = CommandResult(completed.returncode, completed.stdout.strip(), completed.stderr.strip())
        if result.returncode != 0:
            logger.warning(
                f"SYSTEM_UTILS: Command failed (Code: {result.returncode}): {joined_command}\n"
                f"  Stdout: {result.stdout}\n"
                f"  Stderr: {result.stderr}"
            )
            if check:
                raise CommandError(command_list, result.returncode, result.output)
        return result

    def run_as_user(self, command_list: Sequence[str], check: bool = True,
                    timeout: Optional[float] = None) -> CommandResult:
        """Runs the command as the regular user, even when Squire runs under sudo."""
        user = invoking_user()
        if user:
            command_list = ["sudo", "-u", user, "--"] + list(command_list)
        return self.run(command_list, check=check, timeout=timeout)

    def run_privileged(self, command_list: Sequence[str], check: bool = True,
                       timeout: Optional[float] = None) -> CommandResult:
        """Runs the command as root, prefixing the elevation command if needed."""
        command: List[str] = list(command_list)
        if os.geteuid() != 0:
            command = shlex.split(self.settings.elevate_command) + command
        timeout = self.settings.privileged_command_timeout if timeout is None else timeout
        result = self.run(command, check=False, timeout=timeout)
        # pkexec reports refusals with dedicated exit codes
        if result.returncode == 126:
            logger.warning(f"SYSTEM_UTILS: Authorization denied for '{shlex.join(command)}'.")
        elif result.returncode == 127 and command[0].endswith("pkexec"):
            logger.warning(f"SYSTEM_UTILS: Authentication cancelled by user for '{shlex.join(command)}'.")
        if check and result.returncode != 0:
            raise CommandError(command, result.returncode, result.output)
        return result
