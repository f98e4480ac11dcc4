"""Branch reconciliation: which remote branches are worth fetching.

The fetch set is the local branches plus the default branch, restricted to
the branches the remote actually has. Nothing here touches git; the caller
fetches the resulting refspecs.
"""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass


class BranchSet:
    """An ordered, deduplicated, case-sensitive set of branch names.

    Blank names are dropped. Names containing whitespace are rejected since
    git forbids them and they would corrupt a refspec.
    """

    def __init__(self, names: Iterable[str] = ()):
        self._names: dict[str, None] = {}
        for name in names:
            self.add(name)

    def add(self, name: str) -> None:
        name = name.strip()
        if not name:
            return
        if any(ch.isspace() for ch in name):
            raise ValueError(f"Invalid branch name '{name}'")
        self._names[name] = None

    def __contains__(self, name: object) -> bool:
        return name in self._names

    def __iter__(self) -> Iterator[str]:
        return iter(self._names)

    def __len__(self) -> int:
        return len(self._names)

    def __repr__(self) -> str:
        return f"BranchSet({list(self._names)!r})"


@dataclass(frozen=True)
class RemoteRef:
    """One fetchable branch on a remote.

    Attributes:
        branch (str): The branch name on the remote.
        remote (str): The remote name (e.g., 'origin').
    """

    branch: str
    remote: str

    @property
    def refspec(self) -> str:
        """The forced-update refspec mapping the branch to its tracking ref."""
        return f"+refs/heads/{self.branch}:refs/remotes/{self.remote}/{self.branch}"


def reconcile(
    local: Iterable[str],
    remote: Iterable[str],
    default_branch: str,
    remote_name: str = "origin",
) -> list[RemoteRef]:
    """Computes the refs to fetch: (local ∪ {default}) ∩ remote.

    A default branch missing from the remote is silently excluded.

    Args:
        local (Iterable[str]): Local branch names.
        remote (Iterable[str]): Branch names advertised by the remote.
        default_branch (str): The branch that is always tracked.
        remote_name (str, optional): Remote the refs belong to. Defaults to 'origin'.

    Returns:
        list[RemoteRef]: One ref per surviving name, in first-seen order.
    """
    candidates = BranchSet(local)
    candidates.add(default_branch)
    available = BranchSet(remote)
    return [RemoteRef(name, remote_name) for name in candidates if name in available]


def refspecs(refs: Iterable[RemoteRef]) -> list[str]:
    """Renders refs as `git fetch` arguments."""
    return [ref.refspec for ref in refs]
