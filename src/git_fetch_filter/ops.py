import logging

from .config import Config, RunSettings
from .constants import APP_NAME, ENV_DEFAULT_BRANCH
from .errors import UserInputError
from .git_wrapper import GitRepo
from .reconcile import RemoteRef, reconcile, refspecs

logger = logging.getLogger(APP_NAME)


def check_branch_name(name: str) -> str:
    """Rejects branch names git would never accept in a refspec.

    Args:
        name (str): The candidate branch name.

    Returns:
        str: The name, stripped of surrounding whitespace.

    Raises:
        UserInputError: If the name is empty or contains whitespace.
    """
    name = name.strip()
    if not name or any(ch.isspace() for ch in name):
        raise UserInputError(
            f"Invalid branch name '{name}': branch names cannot be empty "
            "or contain whitespace."
        )
    return name


def resolve_default_branch(
    repo: GitRepo, settings: RunSettings, config: Config
) -> str:
    """Determines the branch that is always tracked.

    Resolution order: GIT_DEFAULT_BRANCH, the remote's advertised HEAD, then
    the configured fallback (with a warning).

    Args:
        repo (GitRepo): The repository.
        settings (RunSettings): The environment settings for this run.
        config (Config): Loaded configuration.

    Returns:
        str: The default branch name.

    Raises:
        UserInputError: If the chosen name is not a valid branch name.
    """
    if settings.default_branch:
        try:
            return check_branch_name(settings.default_branch)
        except UserInputError as e:
            raise UserInputError(f"{ENV_DEFAULT_BRANCH}: {e}") from e

    if detected := repo.detect_default_branch(settings.remote):
        return detected

    fallback = config.core.fallback_branch
    logger.warning(
        f"Could not detect default branch from {settings.remote}, "
        f"falling back to '{fallback}'"
    )
    return check_branch_name(fallback)


def refresh_tracking_refs(repo: GitRepo, remote: str) -> int:
    """Deletes every local remote-tracking ref for `remote`.

    Remote branches and local branches are never touched. Refs that fail to
    delete are skipped.

    Returns:
        int: The number of refs deleted.
    """
    logger.info(
        f"Refreshing all local remote-tracking refs for {remote}. "
        "This may take a while..."
    )
    deleted = 0
    for branch in repo.remote_tracking_branches(remote):
        try:
            repo.delete_remote_tracking(remote, branch)
            deleted += 1
        except RuntimeError as e:
            logger.debug(f"Could not delete {remote}/{branch}: {e}")
    return deleted


def run_filtered_fetch(
    repo: GitRepo, remote: str, default_branch: str, refresh: bool = False
) -> list[RemoteRef]:
    """Fetches only the remote refs for local branches plus the default branch.

    Args:
        repo (GitRepo): The repository.
        remote (str): The remote to fetch from.
        default_branch (str): Branch always included when it exists remotely.
        refresh (bool, optional):   Drop all tracking refs for the remote first.
                                    Defaults to False.

    Returns:
        list[RemoteRef]: The refs that were fetched.
    """
    if refresh:
        refresh_tracking_refs(repo, remote)

    local = repo.local_branches()

    logger.info(f"Retrieving list of local branches with remote refs on {remote}...")
    remote_branches = repo.remote_heads(remote)

    refs = reconcile(local, remote_branches, default_branch, remote)
    for ref in refs:
        logger.info(f"Found remote ref for '{ref.branch}'")

    if refs:
        logger.info(f"Fetching relevant refs from {remote}...")
        output = repo.fetch(remote, refspecs(refs))
        for line in output.splitlines():
            logger.info(line)
    else:
        logger.info("No branches to fetch.")

    logger.info("Done.")
    return refs
