"""Branch snapshots fed into the pruner."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from shared.logger import get_logger

from .errors import CatalogUnavailable, GatewayError
from .gateway import VcsGateway
from .models import Branch, RepositoryHandle

logger = get_logger(__name__)


@dataclass(frozen=True)
class BranchSnapshot:
    """Branches of a repository at one point in time."""

    branches: List[Branch]
    current_branch: Optional[Branch] = None
    recent_branches: List[str] = field(default_factory=list)


class BranchCatalog(ABC):
    """Source of branch snapshots."""

    @abstractmethod
    def snapshot(self, repository: RepositoryHandle) -> BranchSnapshot:
        """
        Return the current branches of ``repository``.

        Raises:
            CatalogUnavailable: If the branches cannot be read
        """


class GitBranchCatalog(BranchCatalog):
    """Catalog reading branches and recent checkouts through a gateway."""

    def __init__(
        self,
        gateway: VcsGateway,
        recent_checkout_window: timedelta = timedelta(days=14),
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.gateway = gateway
        self.recent_checkout_window = recent_checkout_window
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def snapshot(self, repository: RepositoryHandle) -> BranchSnapshot:
        since = self.clock() - self.recent_checkout_window
        try:
            branches = self.gateway.list_branches(repository.path)
            current = self.gateway.get_current_branch(repository.path)
            recent = self.gateway.recent_checkouts(repository.path, since)
        except GatewayError as e:
            raise CatalogUnavailable(f"Cannot read branches of {repository.path}: {e}") from e

        logger.debug(f"Read {len(branches)} branches from {repository.path}")
        return BranchSnapshot(branches=branches, current_branch=current, recent_branches=recent)
