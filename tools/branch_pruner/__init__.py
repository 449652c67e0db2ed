"""Branch Pruner - Periodic deletion of local branches merged into the default branch."""

from .catalog import BranchCatalog, BranchSnapshot, GitBranchCatalog
from .config import PrunerConfig, load_config
from .engine import PruneEligibilityEngine
from .gateway import GitGateway, VcsGateway
from .models import Branch, CommitRef, ExclusionReason, PruneDecision, PruneResult, PruneStage, RepositoryHandle
from .pruner import BranchPruner
from .registry import JsonRepositoryRegistry, RepositoryRegistry
from .scheduler import PruneScheduler

__all__ = [
    "Branch",
    "BranchCatalog",
    "BranchPruner",
    "BranchSnapshot",
    "CommitRef",
    "ExclusionReason",
    "GitBranchCatalog",
    "GitGateway",
    "JsonRepositoryRegistry",
    "PruneDecision",
    "PruneEligibilityEngine",
    "PruneResult",
    "PruneScheduler",
    "PruneStage",
    "PrunerConfig",
    "RepositoryHandle",
    "RepositoryRegistry",
    "VcsGateway",
    "load_config",
]
