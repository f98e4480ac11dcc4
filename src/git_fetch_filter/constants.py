"""Global constants and path definitions for git-fetch-filter.

This module defines the application identifiers, the crontab tag format, and
the log file conventions shared by the CLI and the schedule manager.
"""

from pathlib import Path

# --- Identity ---
APP_NAME = "git-fetch-filter"
"""str: The application name, also the console script name."""

CRON_TAG_PREFIX = f"# {APP_NAME}:"
"""str: The comment marker that tags crontab lines owned by this tool."""

# --- Paths ---
CONFIG_DIR: Path = Path.home() / ".config/git-fetch-filter"
"""Path: The directory for user configuration files."""

CONFIG_FILE: Path = CONFIG_DIR / "config.toml"
"""Path: The main configuration file path."""

DEFAULT_LOG_DIR: Path = Path.home() / "logs"
"""Path: The directory suggested for per-repository log files."""

# --- Environment ---
ENV_REPO_DIR = "GIT_REPO_DIR"
ENV_REMOTE = "GIT_REMOTE"
ENV_DEFAULT_BRANCH = "GIT_DEFAULT_BRANCH"

# --- Logs ---
LOG_DIVIDER = "---"
"""str: The line written at the start of every logged run."""

MAX_LOG_LINES = 10000
"""int: Line count above which a log file is truncated to its tail."""

TAIL_LINES = 100
"""int: Number of lines shown by the tail command."""

FALLBACK_BRANCH = "dev"
"""str: Default branch used when the remote HEAD cannot be detected."""
