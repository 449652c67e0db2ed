"""Decide which local branches are safe to delete."""

from datetime import datetime
from fnmatch import fnmatchcase
from typing import Callable, Iterable, List, Optional

from shared.logger import get_logger

from .errors import GatewayError
from .models import Branch, CommitRef, ExclusionReason, PruneDecision, is_ancestor_by_parents

logger = get_logger(__name__)

AncestryCheck = Callable[[CommitRef, CommitRef], bool]


class PruneEligibilityEngine:
    """
    Pure eligibility rules for branch pruning.

    A branch is eligible when it is not the default branch, not checked out,
    not protected, not recently checked out, and its tip is an ancestor of (or
    equal to) the default branch tip. Anything the ancestry check cannot
    answer is kept.

    Attributes:
        is_ancestor: Callable answering ``is_ancestor(ancestor, descendant)``
        protected_patterns: fnmatch patterns of branch names never deleted
        recent_branches: Names of branches checked out recently
    """

    def __init__(
        self,
        is_ancestor: AncestryCheck = is_ancestor_by_parents,
        protected_patterns: Optional[Iterable[str]] = None,
        recent_branches: Optional[Iterable[str]] = None,
    ):
        self.is_ancestor = is_ancestor
        self.protected_patterns: List[str] = list(protected_patterns or [])
        self.recent_branches = frozenset(recent_branches or ())

    def is_protected(self, name: str) -> bool:
        return any(fnmatchcase(name, pattern) for pattern in self.protected_patterns)

    def _exclusion(
        self, branch: Branch, current_branch: Optional[Branch], default_branch_name: str
    ) -> Optional[ExclusionReason]:
        if branch.name == default_branch_name:
            return ExclusionReason.IS_DEFAULT
        if branch.is_current or (current_branch is not None and branch.name == current_branch.name):
            return ExclusionReason.IS_CURRENT
        if self.is_protected(branch.name):
            return ExclusionReason.PROTECTED
        if branch.name in self.recent_branches:
            return ExclusionReason.RECENTLY_CHECKED_OUT
        return None

    def compute_eligible(
        self,
        branches: List[Branch],
        current_branch: Optional[Branch],
        default_branch_name: str,
        now: datetime,
    ) -> PruneDecision:
        """
        Split ``branches`` into branches to delete and branches to keep.

        Args:
            branches: Snapshot of local branches, in catalog order
            current_branch: Checked out branch (None on a detached HEAD)
            default_branch_name: Merge target for the ancestry check
            now: Evaluation time

        Returns:
            PruneDecision whose ``to_delete`` keeps catalog order
        """
        decision = PruneDecision()

        default = next((b for b in branches if b.name == default_branch_name), None)
        if default is None:
            logger.info(f"Default branch {default_branch_name!r} not found, nothing to prune")
            for branch in branches:
                decision.retain(branch, ExclusionReason.NO_DEFAULT_BRANCH)
            return decision

        for branch in branches:
            reason = self._exclusion(branch, current_branch, default_branch_name)

            if reason is None:
                try:
                    merged = self.is_ancestor(branch.tip, default.tip)
                except GatewayError as e:
                    logger.warning(f"Keeping {branch.name}: {e}")
                    reason = ExclusionReason.ANCESTRY_UNDETERMINED
                else:
                    if not merged:
                        reason = ExclusionReason.NOT_MERGED

            if reason is None:
                decision.to_delete.append(branch)
            else:
                logger.debug(f"Keeping {branch.name} ({reason.value})")
                decision.retain(branch, reason)

        logger.debug(
            f"Evaluated {len(branches)} branches at {now.isoformat()}: "
            f"{len(decision.to_delete)} eligible"
        )
        return decision
