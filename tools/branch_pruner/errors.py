"""Exceptions raised by the branch pruner."""

from typing import Optional


class PruneError(Exception):
    """Base class for pruning errors."""


class NoDefaultBranch(PruneError):
    """The repository has no resolvable default branch."""


class GatewayError(PruneError):
    """A version-control command failed."""


class AncestryUndetermined(GatewayError):
    """Ancestry of a branch could not be computed."""

    def __init__(self, branch: str, reason: Optional[str] = None):
        self.branch = branch
        self.reason = reason
        super().__init__(f"Cannot determine ancestry of {branch}: {reason or 'unknown error'}")


class DeletionFailed(GatewayError):
    """The version-control system refused to delete a branch."""

    def __init__(self, branch: str, reason: Optional[str] = None):
        self.branch = branch
        self.reason = reason
        super().__init__(f"Failed to delete branch {branch}: {reason or 'unknown error'}")


class CatalogUnavailable(PruneError):
    """The branch catalog could not produce a snapshot."""


class RegistryReadFailed(PruneError):
    """Prune state could not be read."""


class RegistryWriteFailed(PruneError):
    """Prune state could not be written."""


class PruneDeadlineExceeded(PruneError):
    """The run did not finish before its deadline."""
