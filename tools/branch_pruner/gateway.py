"""Version-control gateway used by the branch pruner."""

import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Union

import git

from shared.logger import get_logger

from .errors import AncestryUndetermined, DeletionFailed, GatewayError
from .models import Branch, CommitRef

logger = get_logger(__name__)

PathLike = Union[str, Path]

CHECKOUT_PATTERN = re.compile(r"^checkout: moving from (?P<source>\S+) to (?P<target>\S+)$")


class VcsGateway(ABC):
    """Version-control operations needed to prune local branches."""

    @abstractmethod
    def list_branches(self, repo_path: PathLike) -> List[Branch]:
        """List local branches in ref order."""

    @abstractmethod
    def is_ancestor(self, repo_path: PathLike, ancestor: CommitRef, descendant: CommitRef) -> bool:
        """
        Check whether ``ancestor`` is reachable from ``descendant``.

        Raises:
            AncestryUndetermined: If the relationship cannot be computed
        """

    @abstractmethod
    def delete_local_branch(
        self, repo_path: PathLike, name: str, expected_tip: Optional[CommitRef] = None
    ) -> None:
        """
        Delete a local branch.

        Raises:
            DeletionFailed: If the branch could not be deleted
        """

    @abstractmethod
    def get_current_branch(self, repo_path: PathLike) -> Optional[Branch]:
        """Return the checked out branch, or None on a detached HEAD."""

    def resolve_default_branch(self, repo_path: PathLike, remote: str = "origin") -> Optional[str]:
        """Return the branch ``<remote>/HEAD`` points to, if known."""
        return None

    def recent_checkouts(self, repo_path: PathLike, since: datetime) -> List[str]:
        """Return branch names checked out at or after ``since``."""
        return []


class GitGateway(VcsGateway):
    """
    GitPython implementation of ``VcsGateway``.

    Attributes:
        force_delete: Delete with ``-D``. Ancestry against the default branch
            is checked before deletion, while ``git branch -d`` only checks
            against HEAD.
    """

    def __init__(self, force_delete: bool = True):
        self.force_delete = force_delete
        self._repos: Dict[str, git.Repo] = {}

    def _load_repo(self, repo_path: PathLike) -> git.Repo:
        """
        Load (and cache) a git repository.

        Raises:
            GatewayError: If path is not a git repository
        """
        key = str(Path(repo_path).resolve())
        repo = self._repos.get(key)
        if repo is None:
            try:
                repo = git.Repo(repo_path)
            except (git.exc.InvalidGitRepositoryError, git.exc.NoSuchPathError) as e:
                raise GatewayError(f"Not a git repository: {repo_path}") from e
            logger.debug(f"Loaded git repository from {repo_path}")
            self._repos[key] = repo
        return repo

    @staticmethod
    def _active_branch_name(repo: git.Repo) -> Optional[str]:
        try:
            return repo.active_branch.name
        except TypeError:
            # Detached HEAD
            return None

    @staticmethod
    def _to_branch(head: git.Head, current: Optional[str]) -> Branch:
        commit = head.commit
        tracking = head.tracking_branch()
        return Branch(
            name=head.name,
            tip=CommitRef(commit.hexsha),
            last_commit_time=datetime.fromtimestamp(commit.committed_date, tz=timezone.utc),
            is_current=head.name == current,
            upstream=tracking.name if tracking is not None else None,
        )

    def list_branches(self, repo_path: PathLike) -> List[Branch]:
        repo = self._load_repo(repo_path)
        current = self._active_branch_name(repo)
        try:
            return [self._to_branch(head, current) for head in repo.heads]
        except (git.exc.GitCommandError, ValueError) as e:
            raise GatewayError(f"Failed to list branches in {repo_path}: {e}") from e

    def get_current_branch(self, repo_path: PathLike) -> Optional[Branch]:
        repo = self._load_repo(repo_path)
        current = self._active_branch_name(repo)
        if current is None:
            return None
        try:
            head = repo.heads[current]
        except IndexError:
            # Unborn branch in a repository without commits
            return None
        try:
            return self._to_branch(head, current)
        except ValueError as e:
            raise GatewayError(f"Failed to read current branch in {repo_path}: {e}") from e

    def is_ancestor(self, repo_path: PathLike, ancestor: CommitRef, descendant: CommitRef) -> bool:
        repo = self._load_repo(repo_path)
        try:
            return repo.is_ancestor(ancestor.sha, descendant.sha)
        except git.exc.GitCommandError as e:
            raise AncestryUndetermined(descendant.sha, str(e).strip()) from e

    def delete_local_branch(
        self, repo_path: PathLike, name: str, expected_tip: Optional[CommitRef] = None
    ) -> None:
        repo = self._load_repo(repo_path)

        if name == self._active_branch_name(repo):
            raise DeletionFailed(name, "branch is checked out")

        if expected_tip is not None:
            try:
                actual = repo.heads[name].commit.hexsha
            except IndexError as e:
                raise DeletionFailed(name, "branch no longer exists") from e
            except ValueError as e:
                raise DeletionFailed(name, str(e)) from e
            if actual != expected_tip.sha:
                raise DeletionFailed(name, f"branch moved to {actual[:8]}")

        try:
            repo.delete_head(name, force=self.force_delete)
        except git.exc.GitCommandError as e:
            raise DeletionFailed(name, str(e).strip()) from e

        logger.info(f"Deleted branch: {name}")

    def resolve_default_branch(self, repo_path: PathLike, remote: str = "origin") -> Optional[str]:
        repo = self._load_repo(repo_path)
        try:
            target = repo.git.symbolic_ref(f"refs/remotes/{remote}/HEAD", short=True)
        except git.exc.GitCommandError:
            logger.debug(f"No {remote}/HEAD in {repo_path}")
            return None

        prefix = f"{remote}/"
        return target[len(prefix):] if target.startswith(prefix) else target

    def recent_checkouts(self, repo_path: PathLike, since: datetime) -> List[str]:
        repo = self._load_repo(repo_path)
        try:
            entries = repo.head.log()
        except (OSError, ValueError) as e:
            raise GatewayError(f"Failed to read HEAD reflog in {repo_path}: {e}") from e

        cutoff = since.timestamp()
        names: List[str] = []
        for entry in entries:
            if entry.time[0] < cutoff:
                continue
            match = CHECKOUT_PATTERN.match(entry.message)
            if match and match.group("target") not in names:
                names.append(match.group("target"))
        return names
