import logging
from typing import Iterable, List, Tuple

from .config import Settings
from .system_utils import CommandLine

logger = logging.getLogger(__name__)


class ServiceController:
    """Restarts the web server and PHP runtime after sites change.

    Service lifecycle is owned by the system service manager; Squire only asks
    it to restart units and reports what happened.
    """

    def __init__(self, settings: Settings, cli: CommandLine):
        self.settings = settings
        self.cli = cli

    def restart(self, services: Iterable[str] = None) -> Tuple[bool, List[str]]:
        """Restarts each service. Returns (all_ok, messages); failures are warnings."""
        services = list(self.settings.web_services if services is None else services)
        all_ok = True
        messages = []
        for service in services:
            result = self.cli.run_privileged([self.settings.systemctl_path, "restart", service], check=False)
            if result.returncode == 0:
                msg = f"Service '{service}' restarted."
                logger.info(msg)
            else:
                all_ok = False
                msg = f"Service '{service}' could not be restarted (Exit Code: {result.returncode}): {result.output}"
                logger.warning(msg)
            messages.append(msg)
        return all_ok, messages
