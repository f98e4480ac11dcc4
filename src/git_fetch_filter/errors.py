"""Exception hierarchy for git-fetch-filter.

Every failure is terminal for the invocation: the CLI catches
`FetchFilterError`, prints the message and exits with status 1.
"""


class FetchFilterError(Exception):
    """Base class for all expected, user-facing failures."""


class UserInputError(FetchFilterError):
    """An interactive answer or flag value was invalid."""


class RepoEnvironmentError(FetchFilterError):
    """The environment is unusable (missing directory, not a repo, no log)."""


class ScheduleIOError(FetchFilterError, OSError):
    """The schedule table could not be read or written."""


class ScheduleNotFoundError(FetchFilterError):
    """No schedule entry matched the requested tag."""
