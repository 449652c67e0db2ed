"""Run one pruning cycle for one repository."""

import threading
from datetime import datetime, timezone
from functools import partial
from typing import Callable, Dict, List, Optional

from shared.logger import get_logger

from .catalog import BranchCatalog
from .config import PrunerConfig
from .engine import PruneEligibilityEngine
from .errors import GatewayError, PruneDeadlineExceeded
from .gateway import VcsGateway
from .models import Branch, PruneResult, PruneStage, RepositoryHandle
from .registry import RepositoryRegistry

logger = get_logger(__name__)

Clock = Callable[[], datetime]
PruneCallback = Callable[[RepositoryHandle, List[Branch]], None]

_locks: Dict[str, threading.Lock] = {}
_locks_guard = threading.Lock()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def repository_lock(repository_id: str) -> threading.Lock:
    """Return the lock serializing runs against one repository."""
    with _locks_guard:
        return _locks.setdefault(repository_id, threading.Lock())


class BranchPruner:
    """
    Delete local branches already merged into the default branch.

    Runs are throttled by a cooldown stored in the repository registry and
    serialized per repository.

    Attributes:
        repository: Repository to prune
        catalog: Source of branch snapshots
        registry: Store of the last prune timestamp
        gateway: Version-control operations
        on_prune_completed: Called once per completed run with the branches
            actually deleted
        clock: Returns the current (timezone-aware) time
        config: Pruning configuration
        stage: Stage of the current or last run
    """

    def __init__(
        self,
        repository: RepositoryHandle,
        catalog: BranchCatalog,
        registry: RepositoryRegistry,
        gateway: VcsGateway,
        on_prune_completed: PruneCallback,
        clock: Clock = utc_now,
        config: Optional[PrunerConfig] = None,
    ):
        self.repository = repository
        self.catalog = catalog
        self.registry = registry
        self.gateway = gateway
        self.on_prune_completed = on_prune_completed
        self.clock = clock
        self.config = config or PrunerConfig()
        self.stage = PruneStage.IDLE

    def _check_deadline(self, deadline: Optional[datetime]) -> None:
        if deadline is not None and self.clock() >= deadline:
            raise PruneDeadlineExceeded(
                f"Pruning {self.repository.path} exceeded deadline {deadline.isoformat()}"
            )

    def start(self, deadline: Optional[datetime] = None) -> PruneResult:
        """
        Run one pruning cycle.

        Args:
            deadline: Absolute time after which the run is abandoned without
                recording a prune timestamp

        Returns:
            PruneResult describing what happened

        Raises:
            CatalogUnavailable: If branches could not be read
            RegistryReadFailed: If the prune state could not be read
            RegistryWriteFailed: If the prune timestamp could not be saved
            PruneDeadlineExceeded: If ``deadline`` passed before completion
        """
        self.stage = PruneStage.IDLE

        if not self.repository.is_hosted:
            logger.info(f"Skipping {self.repository.path}: no hosting default branch")
            self.stage = PruneStage.SKIPPED_NOT_HOSTED
            return PruneResult(self.repository, self.stage)

        with repository_lock(self.repository.id):
            try:
                return self._run(deadline)
            except Exception:
                self.stage = PruneStage.FAILED
                raise

    def _run(self, deadline: Optional[datetime]) -> PruneResult:
        repository = self.repository

        self.stage = PruneStage.CHECKING_COOLDOWN
        now = self.clock()
        state = self.registry.get_prune_state(repository.id)
        last = state.last_prune_timestamp
        if last is not None and now - last < self.config.cooldown:
            logger.info(f"Skipping {repository.path}: last pruned at {last.isoformat()}")
            self.stage = PruneStage.SKIPPED_COOLDOWN
            return PruneResult(repository, self.stage)

        self._check_deadline(deadline)
        self.stage = PruneStage.EVALUATING
        snapshot = self.catalog.snapshot(repository)
        engine = PruneEligibilityEngine(
            is_ancestor=partial(self.gateway.is_ancestor, repository.path),
            protected_patterns=self.config.protected_patterns,
            recent_branches=snapshot.recent_branches,
        )
        decision = engine.compute_eligible(
            snapshot.branches,
            snapshot.current_branch,
            repository.hosting_default_branch,
            now,
        )

        pruned: List[Branch] = []
        failures: Dict[str, str] = {}
        if decision.to_delete:
            self.stage = PruneStage.DELETING
            for branch in decision.to_delete:
                self._check_deadline(deadline)
                try:
                    self.gateway.delete_local_branch(repository.path, branch.name, expected_tip=branch.tip)
                except GatewayError as e:
                    logger.error(str(e))
                    failures[branch.name] = str(e)
                else:
                    pruned.append(branch)

        self._check_deadline(deadline)
        self.registry.set_last_prune_timestamp(repository.id, now)

        self.stage = PruneStage.COMPLETED if decision.to_delete else PruneStage.NO_OP
        logger.info(
            f"Pruned {len(pruned)} of {len(decision.to_delete)} eligible branches in {repository.path}"
            + (f" ({len(failures)} failed)" if failures else "")
        )
        self.on_prune_completed(repository, pruned)

        return PruneResult(
            repository=repository,
            stage=self.stage,
            decision=decision,
            pruned=pruned,
            failures=failures,
            finished_at=now,
        )
