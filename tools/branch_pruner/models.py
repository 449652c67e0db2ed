"""Value types shared by the branch pruner."""

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class CommitRef:
    """
    Opaque commit identifier.

    ``parents`` is only populated by in-memory catalogs and is ignored for
    equality and hashing.
    """

    sha: str
    parents: Tuple["CommitRef", ...] = field(default=(), compare=False, repr=False)


@dataclass(frozen=True)
class Branch:
    """Snapshot of a local branch."""

    name: str
    tip: CommitRef
    last_commit_time: datetime
    is_current: bool = False
    upstream: Optional[str] = None


@dataclass(frozen=True)
class RepositoryHandle:
    """
    A working copy, optionally associated with a hosting provider.

    Attributes:
        path: Path to the working copy
        hosting_default_branch: Default branch reported by the hosting
            provider, or None for repositories that are not hosted
        repository_id: Registry key (defaults to the resolved path)
    """

    path: Path
    hosting_default_branch: Optional[str] = None
    repository_id: Optional[str] = None

    @property
    def id(self) -> str:
        return self.repository_id or str(Path(self.path).resolve())

    @property
    def is_hosted(self) -> bool:
        return bool(self.hosting_default_branch)


@dataclass(frozen=True)
class PruneState:
    """Persisted pruning metadata for one repository."""

    repository_id: str
    last_prune_timestamp: Optional[datetime] = None


class ExclusionReason(Enum):
    """Why a branch was kept."""

    IS_DEFAULT = "default"
    IS_CURRENT = "current"
    PROTECTED = "protected"
    RECENTLY_CHECKED_OUT = "recently-checked-out"
    NOT_MERGED = "not-merged"
    ANCESTRY_UNDETERMINED = "ancestry-undetermined"
    NO_DEFAULT_BRANCH = "no-default-branch"


@dataclass
class PruneDecision:
    """Outcome of an eligibility evaluation. Never persisted."""

    to_delete: List[Branch] = field(default_factory=list)
    retained: List[Branch] = field(default_factory=list)
    reasons: Dict[Branch, ExclusionReason] = field(default_factory=dict)

    def retain(self, branch: Branch, reason: ExclusionReason) -> None:
        self.retained.append(branch)
        self.reasons[branch] = reason


class PruneStage(Enum):
    """Stages of a single pruning run."""

    IDLE = "idle"
    CHECKING_COOLDOWN = "checking-cooldown"
    SKIPPED_NOT_HOSTED = "skipped-not-hosted"
    SKIPPED_COOLDOWN = "skipped-cooldown"
    EVALUATING = "evaluating"
    NO_OP = "no-op"
    DELETING = "deleting"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class PruneResult:
    """Result of ``BranchPruner.start``."""

    repository: RepositoryHandle
    stage: PruneStage
    decision: Optional[PruneDecision] = None
    pruned: List[Branch] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)
    finished_at: Optional[datetime] = None

    @property
    def skipped(self) -> bool:
        return self.stage in (PruneStage.SKIPPED_NOT_HOSTED, PruneStage.SKIPPED_COOLDOWN)


def is_ancestor_by_parents(ancestor: CommitRef, descendant: CommitRef) -> bool:
    """
    Walk ``descendant``'s parent links looking for ``ancestor``.

    A commit counts as its own ancestor.
    """
    seen = set()
    queue = deque([descendant])
    while queue:
        commit = queue.popleft()
        if commit.sha == ancestor.sha:
            return True
        if commit.sha in seen:
            continue
        seen.add(commit.sha)
        queue.extend(commit.parents)
    return False
