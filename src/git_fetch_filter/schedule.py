"""Schedule management: one tagged crontab line per repository.

Each line owned by this tool ends in a comment of the form
`# git-fetch-filter:<repo_tag>`. Every other line in the table is left
untouched.
"""

import logging
import re
import shlex
import subprocess
from collections.abc import Callable
from dataclasses import dataclass, field

from .constants import APP_NAME, CRON_TAG_PREFIX
from .errors import ScheduleIOError, ScheduleNotFoundError, UserInputError

logger = logging.getLogger(APP_NAME)

_ENV_ASSIGNMENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*=")

FREQUENCY_CHOICES: dict[str, tuple[str, str | None]] = {
    "1": ("Every 30 minutes", "*/30 * * * *"),
    "2": ("Every hour", "0 * * * *"),
    "3": ("Every 2 hours", "0 */2 * * *"),
    "4": ("Every 4 hours", "0 */4 * * *"),
    "5": ("Custom (enter minutes, minimum 30)", None),
}
"""dict: Menu choice -> (label, cron expression). Choice 5 asks for minutes."""

CUSTOM_CHOICE = "5"
MIN_INTERVAL_MINUTES = 30


def _cron_escape(text: str) -> str:
    return text.replace("%", "\\%")


def _cron_unescape(text: str) -> str:
    return text.replace("\\%", "%")


def schedule_for_choice(choice: str, minutes: str | None = None) -> str:
    """Maps a frequency menu answer to a cron expression.

    Args:
        choice (str): The menu key, '1' through '5'.
        minutes (str | None): The custom interval, required for choice '5'.

    Returns:
        str: A five-field cron expression.

    Raises:
        UserInputError: If the choice is unknown or the interval is not an
                        integer of at least 30.
    """
    choice = choice.strip()
    if choice not in FREQUENCY_CHOICES:
        raise UserInputError("Invalid choice.")

    _, expression = FREQUENCY_CHOICES[choice]
    if expression is not None:
        return expression

    value = (minutes or "").strip()
    if not value.isdigit() or int(value) < MIN_INTERVAL_MINUTES:
        raise UserInputError(
            f"Must be a number, {MIN_INTERVAL_MINUTES} or greater."
        )
    interval = int(value)
    if interval < 60:
        return f"*/{interval} * * * *"
    return f"0 */{interval // 60} * * *"


@dataclass
class ScheduleEntry:
    """A scheduled fetch for one repository.

    Attributes:
        repo_tag (str): Unique key, the repository's directory name.
        cron_expression (str): The five cron time fields.
        env_vars (dict[str, str]): Variables set on the command line.
        command (str): The shell command to run (already quoted).
        log_path (str): File passed to the command with `-l`.
    """

    repo_tag: str
    cron_expression: str
    env_vars: dict[str, str] = field(default_factory=dict)
    command: str = APP_NAME
    log_path: str = ""

    def to_line(self) -> str:
        """Serializes the entry as a single crontab line.

        Cron turns a bare `%` in the command into a newline, so every `%`
        after the time fields is written as `\\%`.
        """
        parts = [f"{k}={shlex.quote(v)}" for k, v in self.env_vars.items()]
        parts.append(self.command)
        if self.log_path:
            parts.extend(["-l", shlex.quote(self.log_path)])
        parts.append(f"{CRON_TAG_PREFIX}{self.repo_tag}")
        return f"{self.cron_expression} {_cron_escape(' '.join(parts))}"


def tag_of(line: str) -> str | None:
    """Returns the repo tag of a line owned by this tool, or None."""
    _, sep, tag = line.partition(CRON_TAG_PREFIX)
    if not sep:
        return None
    return _cron_unescape(tag.strip()) or None


def parse_line(line: str) -> ScheduleEntry | None:
    """Parses a tagged crontab line back into a ScheduleEntry.

    Args:
        line (str): One line of the crontab.

    Returns:
        ScheduleEntry | None:   The entry, or None for lines that are not
                                owned by this tool or cannot be parsed.
    """
    tag = tag_of(line)
    if tag is None:
        return None

    body = _cron_unescape(line.partition(CRON_TAG_PREFIX)[0])
    try:
        tokens = shlex.split(body)
    except ValueError as e:
        logger.debug(f"Unparseable schedule line for '{tag}': {e}")
        return None

    if len(tokens) < 6:
        logger.debug(f"Schedule line for '{tag}' is missing fields.")
        return None

    # Cron macros such as @hourly are not produced by setup.
    cron_expression = " ".join(tokens[:5])
    rest = tokens[5:]

    env_vars: dict[str, str] = {}
    while rest and _ENV_ASSIGNMENT_RE.match(rest[0]):
        key, _, value = rest.pop(0).partition("=")
        env_vars[key] = value

    log_path = ""
    if "-l" in rest:
        idx = len(rest) - 1 - rest[::-1].index("-l")
        if idx + 1 < len(rest):
            log_path = rest[idx + 1]
        rest = rest[:idx] + rest[idx + 2 :]

    if not rest:
        logger.debug(f"Schedule line for '{tag}' has no command.")
        return None

    return ScheduleEntry(
        repo_tag=tag,
        cron_expression=cron_expression,
        env_vars=env_vars,
        command=shlex.join(rest),
        log_path=log_path,
    )


class ScheduleStore:
    """Base class for the backing storage of a schedule table."""

    def read(self) -> list[str]:
        """Returns every line of the table."""
        raise NotImplementedError

    def write(self, lines: list[str]) -> None:
        """Replaces the whole table with `lines` in a single operation."""
        raise NotImplementedError


class MemoryStore(ScheduleStore):
    """An in-memory schedule table."""

    def __init__(self, lines: list[str] | None = None):
        self.lines = list(lines or [])

    def read(self) -> list[str]:
        return list(self.lines)

    def write(self, lines: list[str]) -> None:
        self.lines = list(lines)


class CrontabStore(ScheduleStore):
    """The current user's crontab, via the `crontab` command."""

    def read(self) -> list[str]:
        """Reads the crontab, treating 'no crontab for user' as empty.

        Raises:
            ScheduleIOError: If the crontab cannot be listed.
        """
        try:
            res = subprocess.run(["crontab", "-l"], capture_output=True, text=True)
        except OSError as e:
            raise ScheduleIOError(f"Could not run crontab: {e}") from e

        if res.returncode != 0:
            if "no crontab" in res.stderr.lower():
                return []
            raise ScheduleIOError(f"Could not read crontab: {res.stderr.strip()}")
        return res.stdout.splitlines()

    def write(self, lines: list[str]) -> None:
        """Installs `lines` as the new crontab.

        Raises:
            ScheduleIOError: If crontab rejects the table.
        """
        content = "\n".join(lines) + "\n" if lines else ""
        try:
            subprocess.run(
                ["crontab", "-"],
                input=content,
                capture_output=True,
                text=True,
                check=True,
            )
        except subprocess.CalledProcessError as e:
            raise ScheduleIOError(f"Could not write crontab: {e.stderr or e}") from e
        except OSError as e:
            raise ScheduleIOError(f"Could not run crontab: {e}") from e


class ScheduleTable:
    """Upsert, list and remove tagged entries in a schedule store.

    Every mutation reads the whole table, edits it in memory and writes it
    back once, so a failed read never leads to a partial write.

    Attributes:
        store (ScheduleStore): The backing table.
    """

    def __init__(self, store: ScheduleStore | None = None):
        self.store = store if store is not None else CrontabStore()

    def list_entries(self, tag_prefix: str = "") -> list[ScheduleEntry]:
        """Returns all parseable entries whose tag starts with `tag_prefix`."""
        entries = []
        for line in self.store.read():
            entry = parse_line(line)
            if entry and entry.repo_tag.startswith(tag_prefix):
                entries.append(entry)
        return entries

    def upsert(self, entry: ScheduleEntry) -> None:
        """Replaces any entry with the same tag, or adds a new one.

        Args:
            entry (ScheduleEntry): The entry to install.
        """
        lines = [line for line in self.store.read() if tag_of(line) != entry.repo_tag]
        # Drop trailing blank lines so repeated upserts do not accumulate them.
        while lines and not lines[-1].strip():
            lines.pop()
        lines.append(entry.to_line())
        self.store.write(lines)
        logger.debug(f"Schedule entry for '{entry.repo_tag}' installed.")

    def remove(self, repo_tag: str) -> bool:
        """Deletes the entry tagged `repo_tag`.

        Returns:
            bool: True if an entry was removed.
        """
        lines = self.store.read()
        kept = [line for line in lines if tag_of(line) != repo_tag]
        if len(kept) == len(lines):
            return False
        self.store.write(kept)
        return True

    def resolve_single(
        self,
        tag_prefix: str = "",
        choose: Callable[[list[ScheduleEntry]], int] | None = None,
    ) -> ScheduleEntry:
        """Finds exactly one entry, asking `choose` to disambiguate.

        Args:
            tag_prefix (str): Tag prefix filter.
            choose (Callable | None): Called with the candidates when several
                                      match; returns a zero-based index.

        Returns:
            ScheduleEntry: The selected entry.

        Raises:
            ScheduleNotFoundError: If no entry matches.
            UserInputError: If several match and no valid index is given.
        """
        entries = self.list_entries(tag_prefix)
        if not entries:
            raise ScheduleNotFoundError(
                "No cron jobs found. Run with -c to set one up."
            )
        if len(entries) == 1:
            return entries[0]
        if choose is None:
            raise UserInputError(
                f"Multiple cron jobs match '{tag_prefix}'; choose one."
            )

        index = choose(entries)
        if not 0 <= index < len(entries):
            raise UserInputError("Invalid choice.")
        return entries[index]
