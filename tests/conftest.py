"""Shared fixtures and in-memory collaborators for branch pruner tests."""

import shutil
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Set

import git
import pytest

from tools.branch_pruner.catalog import GitBranchCatalog
from tools.branch_pruner.errors import AncestryUndetermined, DeletionFailed, RegistryWriteFailed
from tools.branch_pruner.gateway import VcsGateway
from tools.branch_pruner.models import Branch, CommitRef, PruneState, RepositoryHandle, is_ancestor_by_parents
from tools.branch_pruner.registry import RepositoryRegistry

NOW = datetime(2019, 1, 15, 16, 0, tzinfo=timezone.utc)


class FakeGateway(VcsGateway):
    """Gateway over an in-memory set of branches."""

    def __init__(self, branches: List[Branch], current: Optional[str] = None):
        self.branches: Dict[str, Branch] = {b.name: b for b in branches}
        self.current = current
        self.failing_deletes: Set[str] = set()
        self.delete_errors: Dict[str, Exception] = {}
        self.undetermined: Set[str] = set()
        self.recent: List[str] = []
        self.calls: List[str] = []

    def list_branches(self, repo_path):
        self.calls.append("list_branches")
        return [
            Branch(b.name, b.tip, b.last_commit_time, is_current=b.name == self.current)
            for b in self.branches.values()
        ]

    def get_current_branch(self, repo_path):
        self.calls.append("get_current_branch")
        if self.current is None:
            return None
        branch = self.branches[self.current]
        return Branch(branch.name, branch.tip, branch.last_commit_time, is_current=True)

    def is_ancestor(self, repo_path, ancestor, descendant):
        self.calls.append("is_ancestor")
        if ancestor.sha in self.undetermined:
            raise AncestryUndetermined(ancestor.sha, "bad object")
        return is_ancestor_by_parents(ancestor, descendant)

    def delete_local_branch(self, repo_path, name, expected_tip=None):
        self.calls.append("delete_local_branch")
        if name in self.delete_errors:
            raise self.delete_errors[name]
        if name in self.failing_deletes or name not in self.branches:
            raise DeletionFailed(name, "error: branch not found")
        del self.branches[name]

    def recent_checkouts(self, repo_path, since):
        self.calls.append("recent_checkouts")
        return list(self.recent)


class InMemoryRegistry(RepositoryRegistry):
    """Registry keeping prune state in a dict."""

    def __init__(self):
        self.timestamps: Dict[str, datetime] = {}
        self.writes: List[datetime] = []
        self.fail_writes = False

    def get_prune_state(self, repository_id):
        return PruneState(repository_id, self.timestamps.get(repository_id))

    def set_last_prune_timestamp(self, repository_id, timestamp):
        if self.fail_writes:
            raise RegistryWriteFailed("disk full")
        self.writes.append(timestamp)
        self.timestamps[repository_id] = timestamp


class CallbackSpy:
    """Records ``on_prune_completed`` invocations."""

    def __init__(self):
        self.calls = []

    def __call__(self, repository, pruned):
        self.calls.append((repository, list(pruned)))


def make_branch(name: str, tip: CommitRef, age_days: int = 30) -> Branch:
    return Branch(name=name, tip=tip, last_commit_time=NOW - timedelta(days=age_days))


@pytest.fixture
def commits():
    """A small history: master has c0 <- c1, feature work forks off c0."""
    c0 = CommitRef("c0")
    c1 = CommitRef("c1", parents=(c0,))
    n1 = CommitRef("n1", parents=(c0,))
    return {"c0": c0, "c1": c1, "n1": n1}


@pytest.fixture
def prune_cases(commits):
    """Branches of the prune-cases repository, master checked out."""
    return [
        make_branch("master", commits["c1"], age_days=1),
        make_branch("not-merged-branch-1", commits["n1"]),
        make_branch("merged-branch-2", commits["c0"]),
    ]


@pytest.fixture
def gateway(prune_cases):
    return FakeGateway(prune_cases, current="master")


@pytest.fixture
def registry():
    return InMemoryRegistry()


@pytest.fixture
def catalog(gateway):
    return GitBranchCatalog(gateway, clock=lambda: NOW)


@pytest.fixture
def on_prune_completed():
    return CallbackSpy()


@pytest.fixture
def hosted_repository(tmp_path):
    return RepositoryHandle(path=tmp_path, hosting_default_branch="master", repository_id="branch-prune-test")


requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git executable not available")


@pytest.fixture
def git_repo(tmp_path):
    """
    Real repository with master, a merged branch and an unmerged branch.

    Branches are created without checking them out so the HEAD reflog has
    no checkout entries for them.
    """
    actor = git.Actor("Test User", "test@example.com")
    path = tmp_path / "branch-prune-cases"
    repo = git.Repo.init(path)

    readme = path / "README.md"
    readme.write_text("first\n")
    repo.index.add(["README.md"])
    first = repo.index.commit("first", author=actor, committer=actor)
    if repo.active_branch.name != "master":
        repo.active_branch.rename("master")

    readme.write_text("second\n")
    repo.index.add(["README.md"])
    repo.index.commit("second", author=actor, committer=actor)

    repo.create_head("merged-branch-2", first)

    readme.write_text("unmerged\n")
    repo.index.add(["README.md"])
    unmerged = repo.index.commit(
        "unmerged", parent_commits=[first], head=False, author=actor, committer=actor
    )
    repo.create_head("not-merged-branch-1", unmerged)
    repo.index.reset(commit=repo.head.commit, working_tree=True)

    yield repo
    repo.close()
