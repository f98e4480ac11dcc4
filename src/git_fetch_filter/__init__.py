"""git-fetch-filter: fetch only the remote branches you actually use.

This package provides the command-line interface, the branch reconciliation
that narrows `git fetch` to local branches plus the default branch, and the
crontab management that runs it on a schedule.
"""

from . import (
    cli,
    config,
    constants,
    errors,
    git_wrapper,
    logfile,
    ops,
    reconcile,
    schedule,
)

__all__ = [
    "cli",
    "config",
    "constants",
    "errors",
    "git_wrapper",
    "logfile",
    "ops",
    "reconcile",
    "schedule",
]
