import argparse
import logging
import shlex
import shutil
import sys
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.prompt import Prompt
from rich.table import Table

from . import logfile, ops
from .config import Config, RunSettings
from .constants import (
    APP_NAME,
    ENV_DEFAULT_BRANCH,
    ENV_REMOTE,
    ENV_REPO_DIR,
)
from .errors import FetchFilterError, RepoEnvironmentError, UserInputError
from .git_wrapper import GitRepo
from .schedule import (
    CUSTOM_CHOICE,
    FREQUENCY_CHOICES,
    MIN_INTERVAL_MINUTES,
    ScheduleEntry,
    ScheduleTable,
    schedule_for_choice,
)

logger = logging.getLogger(APP_NAME)
console = Console()
err_console = Console(stderr=True)

DESCRIPTION = """\
In large repos with thousands of remote branches, 'git fetch' tracks everything,
bloating local storage and slowing operations. It also makes Git GUIs difficult
to use, since your branches get buried under a sea of remote refs you don't need.

This tool only fetches remote refs for branches you have checked out locally
(plus the default branch), since those are the only ones you need to be
up-to-date on.

If this is your first time using it, run with -r to clean up your existing
remote-tracking refs before switching to filtered fetches."""

EPILOG = f"""\
Environment variables:
  {ENV_REPO_DIR}         Path to the git repo (default: current directory)
  {ENV_REMOTE}           Remote name (default: origin)
  {ENV_DEFAULT_BRANCH}   Branch to always track (default: auto-detected from remote HEAD)

Examples:
  {APP_NAME}                       # Fetch refs for local branches only
  {APP_NAME} -r                    # Refresh all tracking refs, then fetch relevant ones
  {APP_NAME} -c                    # Set up a cron job (interactive)
  {APP_NAME} -t                    # View recent log output
  {ENV_REPO_DIR}=~/git/myrepo {APP_NAME}   # Run against a specific repo"""


class FetchFilterArgumentParser(argparse.ArgumentParser):
    """Argument parser that reports usage errors with exit status 1."""

    def error(self, message: str) -> None:  # type: ignore[override]
        self.print_help(sys.stderr)
        self.exit(1, f"\n{self.prog}: error: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    """Creates the command-line parser."""
    parser = FetchFilterArgumentParser(
        prog=APP_NAME,
        usage="%(prog)s [-r] [-l logfile] [-t] [-c] [-h]",
        description=DESCRIPTION,
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        add_help=False,
    )
    parser.add_argument(
        "-h", "--help", action="help", help="Display this message."
    )
    parser.add_argument(
        "-c",
        dest="cron",
        action="store_true",
        help="Install (or update) a cron job for this tool. Prompts for frequency.",
    )
    parser.add_argument(
        "-l",
        dest="log_file",
        metavar="logfile",
        type=Path,
        help="Append output to a log file (useful for cron).",
    )
    parser.add_argument(
        "-t",
        dest="tail",
        action="store_true",
        help="Show the last lines of the log file configured in the cron job.",
    )
    parser.add_argument(
        "-r",
        dest="refresh",
        action="store_true",
        help=(
            "Refresh all remote-tracking refs for the configured remote before "
            "fetching only relevant ones. Only local tracking refs (e.g. "
            "origin/*) are affected, never local or remote branches."
        ),
    )
    return parser


def get_executable() -> str:
    """Locates the installed console script, for use in cron entries.

    Returns:
        str: The absolute path to the 'git-fetch-filter' executable.

    Raises:
        RepoEnvironmentError: If the executable is not found in the PATH.
    """
    exe = shutil.which(APP_NAME)
    if not exe:
        raise RepoEnvironmentError(
            f"Could not find '{APP_NAME}'. Ensure the package is installed."
        )
    return str(Path(exe).resolve())


def _choose_entry(entries: list[ScheduleEntry]) -> int:
    """Asks the user to pick one of several schedule entries.

    Returns:
        int: The zero-based index of the chosen entry.
    """
    table = Table(title="Multiple cron jobs found", show_header=True)
    table.add_column("#", justify="right", style="cyan")
    table.add_column("Repository")
    table.add_column("Log", style="dim")
    for i, entry in enumerate(entries, start=1):
        table.add_row(str(i), entry.repo_tag, entry.log_path)
    console.print(table)

    pick = Prompt.ask(f"Choose [1-{len(entries)}]").strip()
    if not pick.isdigit():
        raise UserInputError("Invalid choice.")
    return int(pick) - 1


def tail_log(config: Config, table: ScheduleTable | None = None) -> None:
    """Prints the end of the log file configured in the schedule.

    Args:
        config (Config): Loaded configuration (for the line count).
        table (ScheduleTable | None): The schedule table. Defaults to the crontab.

    Raises:
        RepoEnvironmentError: If the configured log file does not exist yet.
    """
    table = table if table is not None else ScheduleTable()
    entry = table.resolve_single("", choose=_choose_entry)

    log_path = Path(entry.log_path).expanduser()
    if not entry.log_path or not log_path.is_file():
        raise RepoEnvironmentError(
            f"Log file not found: {log_path}\nThe cron job may not have run yet."
        )

    for line in logfile.tail_lines(log_path, config.limits.tail_lines):
        console.out(line, highlight=False)


def setup_schedule(
    config: Config, table: ScheduleTable | None = None
) -> ScheduleEntry:
    """Interactively installs or updates the cron job for one repository.

    Args:
        config (Config): Loaded configuration (for prompt defaults).
        table (ScheduleTable | None): The schedule table. Defaults to the crontab.

    Returns:
        ScheduleEntry: The installed entry.
    """
    table = table if table is not None else ScheduleTable()
    executable = get_executable()

    repo_dir = Path(Prompt.ask("Path to git repo", default=".")).expanduser()
    if not repo_dir.is_dir():
        raise RepoEnvironmentError(f"Directory not found: {repo_dir}")
    repo_dir = repo_dir.resolve()

    remote = Prompt.ask("Remote name", default=config.core.remote_name)

    detected = None
    try:
        detected = GitRepo(repo_dir).detect_default_branch(remote)
    except ValueError as e:
        logger.debug(f"Default branch detection skipped: {e}")
    default_branch = ops.check_branch_name(
        Prompt.ask(
            "Default branch to always track",
            default=detected or config.core.fallback_branch,
        )
    )

    repo_name = repo_dir.name

    console.print("\n[bold]How often should this run?[/bold]")
    for key, (label, _) in FREQUENCY_CHOICES.items():
        console.print(f"  {key}) {label}")
    choice = Prompt.ask(f"Choose [1-{len(FREQUENCY_CHOICES)}]")
    minutes = None
    if choice.strip() == CUSTOM_CHOICE:
        minutes = Prompt.ask(
            f"Enter interval in minutes (minimum {MIN_INTERVAL_MINUTES})"
        )
    cron_expression = schedule_for_choice(choice, minutes)

    console.print(
        "\nWhere should logs be written? The file will be created if it doesn't exist."
    )
    log_path = Path(
        Prompt.ask("Log file path", default=str(logfile.default_log_path(repo_name)))
    ).expanduser()

    entry = ScheduleEntry(
        repo_tag=repo_name,
        cron_expression=cron_expression,
        env_vars={
            ENV_REPO_DIR: str(repo_dir),
            ENV_REMOTE: remote,
            ENV_DEFAULT_BRANCH: default_branch,
        },
        command=shlex.quote(executable),
        log_path=str(log_path),
    )
    table.upsert(entry)

    console.print("\n[bold green]SUCCESS:[/bold green] Cron job installed:")
    console.print(f"  {escape(entry.to_line())}", highlight=False)
    console.print(f"\nLog output: [cyan]{escape(str(log_path))}[/cyan]")
    return entry


def run_fetch(args: argparse.Namespace, config: Config) -> int:
    """Runs one filtered fetch, optionally logging to a file.

    Args:
        args (argparse.Namespace): Parsed flags (`log_file`, `refresh`).
        config (Config): Loaded configuration.

    Returns:
        int: The process exit status.
    """
    log_file = args.log_file.expanduser() if args.log_file else None
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logfile.rotate_log(log_file, config.limits.max_log_lines)
        with open(log_file, "a") as f:
            logfile.write_divider(f)
    elif not sys.stdout.isatty():
        logfile.write_divider(sys.stdout)

    logfile.setup_logging(log_file)

    try:
        settings = RunSettings.from_env(config)
        if not settings.repo_dir.is_dir():
            raise RepoEnvironmentError(f"{settings.repo_dir} not found")
        try:
            repo = GitRepo(settings.repo_dir)
        except ValueError as e:
            raise RepoEnvironmentError(
                f"{settings.repo_dir} is not a git repository"
            ) from e

        default_branch = ops.resolve_default_branch(repo, settings, config)
        ops.run_filtered_fetch(
            repo, settings.remote, default_branch, refresh=args.refresh
        )
    except (FetchFilterError, RuntimeError) as e:
        logger.error(str(e))
        return 1

    return 0


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the git-fetch-filter CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)
    config = Config.load()

    try:
        if args.tail:
            tail_log(config)
        elif args.cron:
            setup_schedule(config)
        elif run_fetch(args, config) != 0:
            sys.exit(1)
    except (FetchFilterError, OSError) as e:
        err_console.print(f"[bold red]ERROR:[/bold red] {escape(str(e))}")
        sys.exit(1)


if __name__ == "__main__":
    main()
