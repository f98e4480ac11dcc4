import logging
import re
import subprocess
from pathlib import Path

from .constants import APP_NAME

logger = logging.getLogger(APP_NAME)

_HEAD_BRANCH_RE = re.compile(r"HEAD branch:\s*(\S+)")


def parse_ls_remote_heads(output: str) -> list[str]:
    """Extracts branch names from `git ls-remote --heads` output.

    Args:
        output (str): Lines of the form '<sha>\\trefs/heads/<branch>'.

    Returns:
        list[str]: The branch names, in listing order.
    """
    branches = []
    for line in output.splitlines():
        parts = line.split()
        if len(parts) < 2 or not parts[1].startswith("refs/heads/"):
            continue
        branches.append(parts[1][len("refs/heads/") :])
    return branches


def parse_remote_tracking(output: str, remote: str) -> list[str]:
    """Extracts branch names for one remote from `git branch -r` output.

    Symbolic entries such as 'origin/HEAD -> origin/main' are skipped.

    Args:
        output (str): The raw `git branch -r` output.
        remote (str): The remote whose tracking refs are wanted.

    Returns:
        list[str]: Branch names with the '<remote>/' prefix removed.
    """
    prefix = f"{remote}/"
    branches = []
    for line in output.splitlines():
        name = line.strip()
        if not name or "->" in name or not name.startswith(prefix):
            continue
        branches.append(name[len(prefix) :])
    return branches


class GitRepo:
    """A wrapper around the Git command-line interface for a specific repository.

    This class runs the handful of git commands needed to list branches on
    both sides of a remote and fetch a narrowed set of refspecs.

    Attributes:
        path (Path): The file system path to the repository.
    """

    def __init__(self, path: Path):
        """Initializes the GitRepo instance.

        Args:
            path (Path): A directory inside the repository work tree.

        Raises:
            ValueError: If the path is not inside a git repository.
        """
        self.path = path
        try:
            self._run(["rev-parse", "--git-dir"])
        except (RuntimeError, OSError) as e:
            raise ValueError(f"Not a git repository: {self.path}") from e

    def _run(
        self, args: list[str], capture: bool = True, merge_stderr: bool = False
    ) -> str:
        """Executes a Git command within the repository context.

        Args:
            args (list[str]): A list of arguments to pass to the git command.
            capture (bool, optional):   Whether to capture and return stdout.
                                        Defaults to True.
            merge_stderr (bool, optional):  Whether to fold stderr into the
                                            returned output. Git reports fetch
                                            progress on stderr. Defaults to False.

        Returns:
            str:    The stripped output of the command if capture is True,
                    otherwise an empty string.

        Raises:
            RuntimeError: If the git command returns a non-zero exit code.
        """
        kwargs: dict = {"cwd": self.path, "text": True, "check": True}
        if capture and merge_stderr:
            kwargs["stdout"] = subprocess.PIPE
            kwargs["stderr"] = subprocess.STDOUT
        else:
            kwargs["capture_output"] = capture
        try:
            res = subprocess.run(["git", *args], **kwargs)
            return res.stdout.strip() if capture else ""
        except subprocess.CalledProcessError as e:
            raise RuntimeError(f"Git error: {e.stderr or e.stdout or e}") from e

    def local_branches(self) -> list[str]:
        """Lists the short names of all local branches.

        Reads `refs/heads` directly, so a detached HEAD adds no entry.

        Returns:
            list[str]: Local branch names.
        """
        output = self._run(
            ["for-each-ref", "--format=%(refname:short)", "refs/heads"]
        )
        return [line.strip() for line in output.splitlines() if line.strip()]

    def remote_heads(self, remote: str) -> list[str]:
        """Queries the remote for the branches it currently advertises.

        Args:
            remote (str): The remote name (e.g., 'origin').

        Returns:
            list[str]: Branch names present on the remote.
        """
        return parse_ls_remote_heads(self._run(["ls-remote", "--heads", remote]))

    def remote_tracking_branches(self, remote: str) -> list[str]:
        """Lists the local remote-tracking branches recorded for a remote."""
        return parse_remote_tracking(self._run(["branch", "-r"]), remote)

    def delete_remote_tracking(self, remote: str, branch: str) -> None:
        """Deletes the local remote-tracking ref '<remote>/<branch>'.

        Only the local pointer is removed, never the branch on the remote.
        """
        self._run(["branch", "-rd", f"{remote}/{branch}"])

    def detect_default_branch(self, remote: str) -> str | None:
        """Reads the branch the remote's HEAD points to.

        Args:
            remote (str): The remote name.

        Returns:
            Optional[str]:  The advertised HEAD branch,
                            or None if it could not be determined.
        """
        try:
            output = self._run(["remote", "show", remote])
        except Exception as e:
            logger.debug(f"remote show failed for '{remote}': {e}")
            return None
        match = _HEAD_BRANCH_RE.search(output)
        if not match or match.group(1) == "(unknown)":
            return None
        return match.group(1)

    def fetch(self, remote: str, refspecs: list[str]) -> str:
        """Fetches exactly the given refspecs from a remote in one command.

        Args:
            remote (str): The remote name.
            refspecs (list[str]): Fetch refspecs (e.g., '+refs/heads/x:refs/remotes/origin/x').

        Returns:
            str: The combined git output, for logging.
        """
        if not refspecs:
            return ""
        return self._run(["fetch", remote, *refspecs], merge_stderr=True)
