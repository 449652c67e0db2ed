"""Periodic pruning across several repositories."""

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, List, Optional, Union

from shared.logger import get_logger

from .config import PrunerConfig
from .models import PruneResult, RepositoryHandle
from .pruner import BranchPruner, Clock, utc_now

logger = get_logger(__name__)

PrunerFactory = Callable[[RepositoryHandle], BranchPruner]
RunOutcome = Union[PruneResult, Exception]


class PruneScheduler:
    """
    Invoke a pruner for every repository, now or on an interval.

    A failing repository never stops the others; its exception is returned
    in place of a result.
    """

    def __init__(
        self,
        pruner_factory: PrunerFactory,
        repositories: List[RepositoryHandle],
        config: Optional[PrunerConfig] = None,
        clock: Clock = utc_now,
    ):
        self.pruner_factory = pruner_factory
        self.repositories = list(repositories)
        self.config = config or PrunerConfig()
        self.clock = clock

    def _prune(self, repository: RepositoryHandle) -> RunOutcome:
        deadline = self.clock() + self.config.interval
        try:
            return self.pruner_factory(repository).start(deadline=deadline)
        except Exception as e:
            logger.error(f"Pruning {repository.path} failed: {e}")
            return e

    def run_once(self) -> Dict[str, RunOutcome]:
        """Prune every repository once, concurrently."""
        if not self.repositories:
            return {}

        workers = min(self.config.max_workers, len(self.repositories))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            outcomes = list(executor.map(self._prune, self.repositories))

        return {repo.id: outcome for repo, outcome in zip(self.repositories, outcomes)}

    def run_forever(self, stop_event: threading.Event) -> None:
        """Prune every ``config.interval`` until ``stop_event`` is set."""
        interval = self.config.interval.total_seconds()
        logger.info(f"Pruning {len(self.repositories)} repositories every {self.config.interval}")
        while not stop_event.is_set():
            self.run_once()
            stop_event.wait(interval)
