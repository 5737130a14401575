import os
import sys
import json
import argparse
import webbrowser
import logging
import logging.handlers
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.text import Text

from .app import Squire
from .core.config import APP_NAME, Settings
from .core.errors import DomainMigrationError, SquireError

logger = logging.getLogger(__name__)

console = Console()
err_console = Console(stderr=True)


# --- Custom Log Formatter for Colors ---
class ColorLogFormatter(logging.Formatter):
    """Adds ANSI color codes to log messages based on level for console output."""

    GREY = "\x1b[38;20m"
    YELLOW = "\x1b[33;20m"
    RED = "\x1b[31;20m"
    BOLD_RED = "\x1b[31;1m"
    RESET = "\x1b[0m"

    BASE_FORMAT = '%(asctime)s [%(levelname)-7s] %(name)s: %(message)s'
    DATE_FORMAT = '%H:%M:%S'

    FORMATS = {
        logging.DEBUG: GREY + BASE_FORMAT + RESET,
        logging.INFO: BASE_FORMAT,
        logging.WARNING: YELLOW + BASE_FORMAT + RESET,
        logging.ERROR: RED + BASE_FORMAT + RESET,
        logging.CRITICAL: BOLD_RED + BASE_FORMAT + RESET
    }

    def format(self, record):
        log_fmt = self.FORMATS.get(record.levelno, self.BASE_FORMAT)
        formatter = logging.Formatter(log_fmt, datefmt=self.DATE_FORMAT)
        return formatter.format(record)


def setup_logging(settings: Settings, verbose: bool = False):
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    root_logger.setLevel(logging.DEBUG)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    console_handler.setFormatter(ColorLogFormatter())
    root_logger.addHandler(console_handler)

    # File log only once Squire is installed, so `--help` never creates the home dir
    if settings.log_path.is_dir():
        try:
            file_handler = logging.handlers.RotatingFileHandler(
                settings.log_path / 'squire.log', maxBytes=1024 * 1024, backupCount=3, encoding='utf-8'
            )
        except OSError as e:
            logger.warning(f"Could not open log file in {settings.log_path}: {e}")
        else:
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(logging.Formatter(ColorLogFormatter.BASE_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
            root_logger.addHandler(file_handler)


def info(message: str):
    console.print(f"[green]{escape(message)}[/green]", highlight=False)


def warning(message: str):
    err_console.print(f"[yellow]{escape(message)}[/yellow]", highlight=False)


def links_table(entries) -> Table:
    table = Table(show_header=True, header_style="bold")
    for column in ("Site", "SSL", "URL", "Path"):
        table.add_column(column)
    for entry in entries:
        table.add_row(Text(entry.name), "X" if entry.secured else "", Text(entry.url), Text(entry.path))
    return table


def restart_services(app: Squire, args):
    if args.no_restart:
        return
    ok, messages = app.services.restart()
    if not ok:
        for message in messages:
            warning(message)


# --- Commands ---
def cmd_install(app: Squire, args):
    app.install()
    info(f"{APP_NAME} installed successfully!")


def cmd_domain(app: Squire, args):
    if args.domain is None:
        console.print(app.configuration.domain(), highlight=False)
        return
    domain = app.domains.update_domain(args.domain, restart=not args.no_restart)
    info(f"Your {APP_NAME} domain has been updated to [{domain}].")


def cmd_park(app: Squire, args):
    path = str(Path(args.path or os.getcwd()).resolve())
    app.configuration.add_path(path)
    label = "This" if args.path is None else f"The [{path}]"
    info(f"{label} directory has been added to {APP_NAME}'s paths.")


def cmd_forget(app: Squire, args):
    path = str(Path(args.path or os.getcwd()).resolve())
    app.configuration.remove_path(path)
    label = "This" if args.path is None else f"The [{path}]"
    info(f"{label} directory has been removed from {APP_NAME}'s paths.")


def cmd_paths(app: Squire, args):
    paths = app.configuration.paths()
    if paths:
        console.print_json(json.dumps(paths))
    else:
        info("No paths have been registered.")


def _secure_and_report(app: Squire, args, url: str):
    app.certificates.secure(url)
    restart_services(app, args)
    info(f"The [{url}] site has been secured with a fresh TLS certificate.")


def cmd_link(app: Squire, args):
    cwd = Path(os.getcwd())
    domain = app.sites.link(cwd, args.name or cwd.name)
    info(f"Current working directory linked to {domain}")
    if args.secure:
        _secure_and_report(app, args, domain)


def cmd_subdomain(app: Squire, args):
    cwd = Path(os.getcwd())
    if args.action == "list":
        console.print(links_table(app.sites.links(cwd.name)))
        return
    if not args.name:
        raise SquireError("A subdomain name is required: squire subdomain add <name>")
    domain = app.sites.link(cwd, f"{args.name}.{cwd.name}")
    info(f"Current working directory linked to {domain}")
    if args.secure:
        _secure_and_report(app, args, domain)


def cmd_links(app: Squire, args):
    console.print(links_table(app.sites.links()))


def cmd_unlink(app: Squire, args):
    name = args.name or Path(os.getcwd()).name
    app.sites.unlink(name)
    info(f"The [{name}] symbolic link has been removed.")


def cmd_secure(app: Squire, args):
    _secure_and_report(app, args, app.url_for(args.domain, os.getcwd()))


def cmd_unsecure(app: Squire, args):
    url = app.url_for(args.domain, os.getcwd())
    app.certificates.unsecure(url)
    restart_services(app, args)
    info(f"The [{url}] site will now serve traffic over HTTP.")


def cmd_secured(app: Squire, args):
    hosts = app.certificates.secured()
    if not hosts:
        info("No sites are secured.")
    for host in hosts:
        console.print(host, highlight=False)


def cmd_which_host(app: Squire, args):
    console.print(app.sites.host(Path(args.path or os.getcwd()).resolve()), highlight=False)


def cmd_which(app: Squire, args):
    name = args.name or app.sites.host(os.getcwd())
    path = app.sites.site_path(name)
    if path is None:
        raise SquireError(f"No site is linked as [{name}].")
    console.print(str(path), highlight=False)


def cmd_open(app: Squire, args):
    host = app.url_for(args.domain, os.getcwd())
    scheme = "https" if app.certificates.is_secured(host) else "http"
    url = f"{scheme}://{host}"
    logger.info(f"Opening {url} in the browser")
    webbrowser.open(url)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="squire", description=f"{APP_NAME}: local sites with trusted TLS.")
    parser.add_argument('-v', '--verbose', action='store_true', help='Show debug logging on the console.')
    parser.add_argument('--no-restart', action='store_true', help='Do not restart Nginx/PHP after changes.')
    sub = parser.add_subparsers(dest='command', metavar='COMMAND')

    p = sub.add_parser('install', help=f'Prepare the {APP_NAME} home directory')
    p.set_defaults(func=cmd_install, needs_install=False)

    p = sub.add_parser('domain', help='Get or set the domain used for sites')
    p.add_argument('domain', nargs='?')
    p.set_defaults(func=cmd_domain)

    p = sub.add_parser('park', help='Register the current (or given) directory as a path')
    p.add_argument('path', nargs='?')
    p.set_defaults(func=cmd_park)

    p = sub.add_parser('forget', help='Remove the current (or given) directory from the paths')
    p.add_argument('path', nargs='?')
    p.set_defaults(func=cmd_forget)

    p = sub.add_parser('paths', help='List the registered paths')
    p.set_defaults(func=cmd_paths)

    p = sub.add_parser('link', help='Link the current working directory')
    p.add_argument('name', nargs='?')
    p.add_argument('--secure', action='store_true')
    p.set_defaults(func=cmd_link)

    p = sub.add_parser('subdomain', help='Manage subdomains of the current site')
    p.add_argument('action', choices=['list', 'add'])
    p.add_argument('name', nargs='?')
    p.add_argument('--secure', action='store_true')
    p.set_defaults(func=cmd_subdomain)

    p = sub.add_parser('links', help='Display all registered links')
    p.set_defaults(func=cmd_links)

    p = sub.add_parser('unlink', help='Remove a link')
    p.add_argument('name', nargs='?')
    p.set_defaults(func=cmd_unlink)

    p = sub.add_parser('secure', help='Secure a site with a trusted TLS certificate')
    p.add_argument('domain', nargs='?')
    p.set_defaults(func=cmd_secure)

    p = sub.add_parser('unsecure', help='Serve a site over HTTP again')
    p.add_argument('domain', nargs='?')
    p.set_defaults(func=cmd_unsecure)

    p = sub.add_parser('secured', help='List secured hosts')
    p.set_defaults(func=cmd_secured)

    p = sub.add_parser('which-host', help='Print the site name for the current (or given) path')
    p.add_argument('path', nargs='?')
    p.set_defaults(func=cmd_which_host)

    p = sub.add_parser('which', help='Print the directory a linked site points to')
    p.add_argument('name', nargs='?')
    p.set_defaults(func=cmd_which)

    p = sub.add_parser('open', help='Open the current (or given) site in the browser')
    p.add_argument('domain', nargs='?')
    p.set_defaults(func=cmd_open)
    return parser


def main(argv: Optional[List[str]] = None, app: Optional[Squire] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, 'func', None):
        parser.print_help()
        return 0

    settings = app.settings if app is not None else Settings.from_environment()
    setup_logging(settings, args.verbose)

    try:
        app = app or Squire(settings)
        if getattr(args, 'needs_install', True):
            if not app.is_installed():
                warning(f"{APP_NAME} is not installed. Run 'squire install' first.")
                return 1
            app.prune()
        args.func(app, args)
        return 0
    except DomainMigrationError as e:
        err_console.print(f"[red]{escape(str(e))}[/red]", highlight=False)
        for host, error in sorted(e.failures.items()):
            err_console.print(f"  [red]{escape(host)}[/red]: {escape(str(error))}", highlight=False)
        return 1
    except SquireError as e:
        logger.debug("Command failed", exc_info=True)
        err_console.print(f"[red]{escape(str(e))}[/red]", highlight=False)
        return 1


if __name__ == "__main__":
    sys.exit(main())
