#!/usr/bin/env python3
"""CLI entry point for task cache."""

import argparse
import logging
import os
import sys
from datetime import date, datetime
from pathlib import Path

import yaml
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.prompt import Confirm, Prompt
from rich.table import Table

from .core.errors import ConfigurationError, TaskCacheError
from .core.formatter import format_log
from .core.storage import LogStore, parse_date
from .core.sync import SyncController, SyncResult
from .models.config import CONFIG_FILENAME, SETTINGS_FILENAME, TEMPLATE, AppSettings, SyncConfig

console = Console()
err_console = Console(stderr=True)

logger = logging.getLogger(__name__)

EXAMPLES = """\
examples:
  tcache                           create today's task cache
  tcache view 2025-05-20           view the cache from May 20th
  tcache search "memory leak"      find all mentions of memory leak
  tcache github setup              set up GitHub backup
"""


def get_log_dir(value: str | None = None) -> Path:
    """Resolve the log directory: --dir, then TASK_CACHE_DIR, then ~/.task-cache."""
    load_dotenv()
    if value:
        return Path(value).expanduser()
    env_dir = os.getenv("TASK_CACHE_DIR")
    if env_dir:
        return Path(env_dir).expanduser()
    return Path.home() / ".task-cache"


def setup_logging(verbose: bool) -> None:
    """Route log records to stderr through Rich."""
    handler = RichHandler(console=err_console, show_path=False, markup=False)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[handler],
        force=True,
    )


def build_controller(args: argparse.Namespace) -> SyncController:
    """Load the sync configuration for the log directory."""
    log_dir: Path = args.log_dir
    settings: AppSettings = args.settings
    config_path = log_dir / CONFIG_FILENAME

    config = SyncConfig.load(config_path)
    if not config_path.exists():
        config.branch = settings.default_branch

    return SyncController(
        config,
        log_dir,
        config_path=config_path,
        api_base_url=settings.api_base_url,
        git_timeout=settings.git_timeout,
    )


def _report_result(result: SyncResult) -> None:
    """Print a sync result, including remediation for conflicts."""
    if result.conflict is not None:
        console.print(f"[red]{result.message}")
        console.print(f"[dim]{escape(result.conflict.detail)}[/dim]", highlight=False)
        console.print("[yellow]Run the following commands to resolve:")
        for line in result.conflict.remediation:
            console.print(f"  {line}", style="bright_black", markup=False, highlight=False)
    elif not result.success:
        console.print(f"[red]{result.message}")
    elif result.skipped:
        console.print(f"[green]{result.message}")
    else:
        console.print(f"[green]✅ {result.message}")


def sync_on_start(controller: SyncController) -> None:
    """Pull before running a command when sync_on_start is enabled."""
    if not (controller.is_enabled() and controller.config.sync_on_start):
        return
    try:
        _report_result(controller.pull())
    except TaskCacheError as e:
        console.print(f"[red]Error pulling task cache from GitHub: {escape(str(e))}")


# -----------------------------------------------------------------------------
# Log commands
# -----------------------------------------------------------------------------


def cmd_new(args: argparse.Namespace, controller: SyncController) -> int:
    """Interactively create today's log."""
    store = LogStore(args.log_dir)
    now = datetime.now()
    today = now.date()

    console.print("\n[bold blue]Task Cache - Quick Daily Task Log[/bold blue]")
    console.print("[dim]Press Ctrl+C at any time to cancel[/dim]")
    console.print("[dim]Tip: Use double spaces to create bullet points on new lines[/dim]\n")

    if store.exists(today):
        overwrite = Confirm.ask(
            "[yellow]You already have a task cache for today. Overwrite?", default=False
        )
        if not overwrite:
            console.print("[blue]Exiting without changes.")
            return 0

    answers = []
    for item in TEMPLATE:
        answers.append(Prompt.ask(f"[cyan]{item.prompt}[/cyan]\n>", default="", show_default=False))
        console.print()

    path = store.write(today, format_log(answers, now=now))
    console.print(f"\n[green]✅ Task cache saved to {escape(str(path))}")

    if controller.is_enabled() and controller.config.auto_sync:
        return cmd_github_push(args, controller)
    return 0


def cmd_view(args: argparse.Namespace, controller: SyncController) -> int:
    """Show the log for today or a given date."""
    store = LogStore(args.log_dir)
    if args.date:
        try:
            day = parse_date(args.date)
        except ValueError:
            console.print("[red]Invalid date format. Please use YYYY-MM-DD.")
            return 0
    else:
        day = date.today()

    content = store.read(day)
    if content is None:
        console.print(f"[yellow]No cache found for {day.isoformat()}")
        return 0

    console.print()
    console.print(content, markup=False, highlight=False)
    return 0


def cmd_list(args: argparse.Namespace, controller: SyncController) -> int:
    """List all logs, newest first."""
    dates = LogStore(args.log_dir).list_dates()
    if not dates:
        console.print("[yellow]No cached tasks found.")
        return 0

    console.print("\n[blue]Cached task logs:")
    for day in dates:
        console.print(f"[green] - {day.isoformat()}")
    return 0


def cmd_search(args: argparse.Namespace, controller: SyncController) -> int:
    """Search all logs for a term."""
    term = args.term.strip()
    if not term:
        console.print("[red]Please provide a search term.")
        return 0

    hits = LogStore(args.log_dir).search(term)
    console.print(f'\n[blue]Searching task cache for "{escape(term)}":', highlight=False)
    if not hits:
        console.print(f'[yellow]No cached tasks containing "{escape(term)}" found.', highlight=False)
        return 0

    for hit in hits:
        console.print(f"\n[green]Found in {hit.day.isoformat()}:")
        for section in hit.sections:
            console.print(f"In section: {section.section}", style="blue", markup=False)
            for line, is_match in section.lines:
                style = "yellow" if is_match else None
                console.print(line, style=style, markup=False, highlight=False)
    return 0


# -----------------------------------------------------------------------------
# GitHub commands
# -----------------------------------------------------------------------------


def cmd_github_status(args: argparse.Namespace, controller: SyncController) -> int:
    """Show GitHub sync status."""
    status = controller.status()
    console.print("\n[bold]GitHub Sync Status:[/bold]")

    if not status["enabled"]:
        console.print(f"  [yellow]{status['message']}")
        console.print("  [yellow]Run 'tcache github setup' to configure GitHub sync.")
        return 0

    table = Table(show_header=False, box=None)
    table.add_column("Setting", style="blue")
    table.add_column("Value")
    table.add_row("Enabled", "[green]Yes")
    table.add_row("Repository", escape(status["repository"]))
    table.add_row("Branch", status["branch"])
    table.add_row("Auto Sync", "Yes" if status["auto_sync"] else "No")
    table.add_row("Sync on Start", "Yes" if status["sync_on_start"] else "No")
    table.add_row("Last Sync", status["last_sync"])
    console.print(table)
    return 0


def cmd_github_setup(args: argparse.Namespace, controller: SyncController) -> int:
    """Configure GitHub sync interactively."""
    config = controller.config
    console.print("\n[bold blue]Task Cache - GitHub Sync Setup[/bold blue]")

    repository_id = Prompt.ask(
        "[cyan]GitHub repository (format: username/repo)",
        default=config.repository_id,
        show_default=bool(config.repository_id),
    )
    branch = Prompt.ask("[cyan]Branch to use", default=config.branch)

    if not config.token:
        console.print("\n[yellow]A GitHub Personal Access Token is required for authentication.")
        console.print("[yellow]Create one at https://github.com/settings/tokens")
        console.print('[yellow]Make sure it has "repo" scope for private repositories.\n')
    token_label = "[cyan]GitHub Personal Access Token"
    if config.token:
        token_label += " [dim](already set, leave blank to keep)[/dim]"
    token = Prompt.ask(token_label, password=True, default="", show_default=False)
    token = token or config.token or os.getenv("GITHUB_TOKEN", "")

    auto_sync = Confirm.ask(
        "[cyan]Automatically sync after creating a task cache?", default=config.auto_sync
    )
    on_start = Confirm.ask("[cyan]Sync task cache when starting tcache?", default=config.sync_on_start)

    try:
        controller.setup(repository_id, token, branch, auto_sync=auto_sync, sync_on_start=on_start)
    except ConfigurationError as e:
        console.print(f"\n[yellow]Warning: {escape(str(e))}")
        return 0
    except TaskCacheError as e:
        console.print(f"\n[red]Error configuring GitHub repository: {escape(str(e))}")
        return 0

    console.print("\n[green]✅ GitHub repository configured successfully.")
    return 0


def cmd_github_push(args: argparse.Namespace, controller: SyncController) -> int:
    """Push logs to GitHub."""
    console.print("[blue]Pushing task cache to GitHub...")
    try:
        result = controller.push()
    except ConfigurationError as e:
        console.print(f"[yellow]{escape(str(e))}")
        return 0
    except TaskCacheError as e:
        console.print(f"[red]Error pushing task cache to GitHub: {escape(str(e))}")
        return 0
    _report_result(result)
    return 0


def cmd_github_pull(args: argparse.Namespace, controller: SyncController) -> int:
    """Pull logs from GitHub."""
    console.print("[blue]Pulling task cache from GitHub...")
    try:
        result = controller.pull()
    except ConfigurationError as e:
        console.print(f"[yellow]{escape(str(e))}")
        return 0
    except TaskCacheError as e:
        console.print(f"[red]Error pulling task cache from GitHub: {escape(str(e))}")
        return 0
    _report_result(result)
    return 0


def cmd_github_create_repo(args: argparse.Namespace, controller: SyncController) -> int:
    """Create the GitHub repository if it does not exist."""
    try:
        created = controller.create_repo()
    except ConfigurationError as e:
        console.print(f"[yellow]{escape(str(e))}")
        return 0
    except TaskCacheError as e:
        console.print(f"[red]Error creating repository: {escape(str(e))}")
        return 0

    if created:
        console.print("[green]✅ Repository created successfully.")
    else:
        console.print("[green]Repository already exists.")
    return 0


def cmd_github_debug(args: argparse.Namespace, controller: SyncController) -> int:
    """Show configuration and git details for troubleshooting."""
    info = controller.debug_info()
    labels = {
        "directory": "Directory",
        "config_file": "Config file",
        "config_exists": "Config exists",
        "enabled": "Enabled",
        "repository": "Repository",
        "branch": "Branch",
        "token": "Token length",
        "auto_sync": "Auto sync",
        "git_initialized": "Git initialized",
        "remote_url": "Remote URL",
        "uncommitted_changes": "Uncommitted files",
        "current_branch": "Current branch",
        "merge_in_progress": "Merge in progress",
        "git_error": "Git error",
    }

    table = Table(title="GitHub Sync Debug Information", show_header=False)
    table.add_column("Key", style="yellow")
    table.add_column("Value")
    for key, label in labels.items():
        if key not in info:
            continue
        value = info[key]
        if isinstance(value, bool):
            value = "Yes" if value else "No"
        table.add_row(label, escape(str(value)))
    console.print(table)
    return 0


GITHUB_COMMANDS = {
    "status": cmd_github_status,
    "setup": cmd_github_setup,
    "push": cmd_github_push,
    "pull": cmd_github_pull,
    "create-repo": cmd_github_create_repo,
    "debug": cmd_github_debug,
}


def cmd_github(args: argparse.Namespace, controller: SyncController) -> int:
    """Dispatch 'github' subcommands (status when none is given)."""
    handler = GITHUB_COMMANDS[args.github_command or "status"]
    return handler(args, controller)


COMMANDS = {
    "new": cmd_new,
    "view": cmd_view,
    "list": cmd_list,
    "search": cmd_search,
    "github": cmd_github,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tcache",
        description="Task Cache - Quick Daily Task Logging for Developers",
        epilog=EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--dir", dest="dir", help="Log directory (default: $TASK_CACHE_DIR or ~/.task-cache)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Command to run (default: new)")

    subparsers.add_parser("new", help="Create a new task cache for today")

    view_parser = subparsers.add_parser("view", help="View the cache for today or a date")
    view_parser.add_argument("date", nargs="?", help="Date as YYYY-MM-DD")

    subparsers.add_parser("list", help="List all available cached task logs")

    search_parser = subparsers.add_parser("search", help="Search all cached tasks for a term")
    search_parser.add_argument("term", help="Text to search for (case-insensitive)")

    github_parser = subparsers.add_parser("github", help="GitHub sync commands")
    github_subparsers = github_parser.add_subparsers(dest="github_command")
    github_subparsers.add_parser("status", help="Show GitHub sync status")
    github_subparsers.add_parser("setup", help="Configure GitHub sync")
    github_subparsers.add_parser("push", help="Push task cache to GitHub")
    github_subparsers.add_parser("pull", help="Pull task cache from GitHub")
    github_subparsers.add_parser("create-repo", help="Create GitHub repository if it doesn't exist")
    github_subparsers.add_parser("debug", help="Show GitHub sync debug information")

    subparsers.add_parser("help", help="Show this help message")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Commands report their own failures and exit 0; only fatal errors such
    as an unreadable settings file or an unhandled TaskCacheError exit 1.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "help":
        parser.print_help()
        return 0

    args.log_dir = get_log_dir(args.dir)
    try:
        args.settings = AppSettings.load(args.log_dir / SETTINGS_FILENAME)
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Could not read {SETTINGS_FILENAME}: {escape(str(e))}")
        return 1
    setup_logging(args.verbose or args.settings.verbose)

    try:
        LogStore(args.log_dir).ensure_root()
        logger.debug("Task cache directory: %s", args.log_dir)

        controller = build_controller(args)
        if args.command != "github":
            sync_on_start(controller)

        handler = COMMANDS[args.command or "new"]
        return handler(args, controller)
    except KeyboardInterrupt:
        console.print("\n[blue]Cancelled.")
        return 130
    except TaskCacheError as e:
        console.print(f"[red]Error: {escape(str(e))}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
