import logging
import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from .constants import (
    APP_NAME,
    CONFIG_FILE,
    ENV_DEFAULT_BRANCH,
    ENV_REMOTE,
    ENV_REPO_DIR,
    FALLBACK_BRANCH,
    MAX_LOG_LINES,
    TAIL_LINES,
)

logger = logging.getLogger(APP_NAME)


def parse_positive_int(value: int | str) -> int:
    """Converts an integer-like value, rejecting zero and negatives."""
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid integer '{value}'") from None
    if number <= 0:
        raise ValueError(f"Expected a positive integer, got '{value}'")
    return number


@dataclass
class CoreConfig:
    """Core application settings.

    Attributes:
        remote_name (str): The remote used when GIT_REMOTE is unset.
        fallback_branch (str): Default branch when the remote HEAD is unknown.
    """

    remote_name: str = "origin"
    fallback_branch: str = FALLBACK_BRANCH


@dataclass
class LimitsConfig:
    """Log size settings.

    Attributes:
        max_log_lines (int): Line count above which a log file is rotated.
        tail_lines (int): Number of lines shown by `-t`.
    """

    max_log_lines: int = MAX_LOG_LINES
    tail_lines: int = TAIL_LINES


@dataclass
class Config:
    """Global configuration aggregator.

    Attributes:
        core (CoreConfig): Core settings.
        limits (LimitsConfig): Log limits.
    """

    core: CoreConfig = field(default_factory=CoreConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """Loads configuration from disk, applying defaults where necessary.

        Args:
            path (Path | None): Config file to read. Defaults to CONFIG_FILE.

        Returns:
            Config: The populated configuration object.
        """
        instance = cls()
        config_path = path if path is not None else CONFIG_FILE
        if config_path.exists():
            instance._merge_from_file(config_path)
        return instance

    def _merge_from_file(self, path: Path) -> None:
        """Parses a TOML file and merges it into the current instance."""
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)

            if "core" in data:
                self.core = self._update_dataclass("core", self.core, data["core"])
            if "limits" in data:
                self.limits = self._update_dataclass(
                    "limits", self.limits, data["limits"]
                )

        except tomllib.TOMLDecodeError as e:
            logger.error(f"Config syntax error in {path}: {e}")
        except OSError as e:
            logger.warning(f"Failed to load config from {path}: {e}")

    @staticmethod
    def _update_dataclass(section_name: str, instance: Any, updates: dict) -> Any:
        """Updates a dataclass, warning on invalid keys and values."""
        valid_keys = instance.__dataclass_fields__.keys()
        filtered_updates = {}

        invalid_keys = set(updates.keys()) - set(valid_keys)
        if invalid_keys:
            logger.warning(
                f"Unknown config keys in [{section_name}]: "
                f"{', '.join(sorted(invalid_keys))}. Ignoring."
            )

        for k, v in updates.items():
            if k not in valid_keys:
                continue

            try:
                if k in ["max_log_lines", "tail_lines"]:
                    filtered_updates[k] = parse_positive_int(v)
                elif not isinstance(v, str) or not v.strip():
                    raise ValueError(f"Expected a non-empty string, got '{v}'")
                else:
                    filtered_updates[k] = v.strip()
            except ValueError as e:
                logger.warning(
                    f"Config error in [{section_name}].{k}: {e}. Falling back to default."
                )

        return replace(instance, **filtered_updates)


@dataclass
class RunSettings:
    """Per-invocation settings taken from the environment.

    Attributes:
        repo_dir (Path): The repository to operate on.
        remote (str): The remote to fetch from.
        default_branch (str | None): Explicit default branch, or None to detect it.
    """

    repo_dir: Path
    remote: str
    default_branch: str | None = None

    @classmethod
    def from_env(
        cls, config: Config, environ: Mapping[str, str] | None = None
    ) -> "RunSettings":
        """Resolves GIT_REPO_DIR, GIT_REMOTE and GIT_DEFAULT_BRANCH.

        Empty values count as unset.
        """
        env = os.environ if environ is None else environ
        return cls(
            repo_dir=Path(env.get(ENV_REPO_DIR) or ".").expanduser(),
            remote=env.get(ENV_REMOTE) or config.core.remote_name,
            default_branch=env.get(ENV_DEFAULT_BRANCH) or None,
        )
