"""CLI interface for the Branch Pruner."""

import sys
from datetime import datetime, timezone
from functools import partial
from pathlib import Path
from typing import List, Optional

import click

from shared.cli import create_table, error, handle_errors, info, print_table, success, warning
from shared.logger import setup_logger

from .catalog import GitBranchCatalog
from .config import PrunerConfig, load_config
from .engine import PruneEligibilityEngine
from .errors import PruneError
from .gateway import GitGateway
from .models import Branch, PruneDecision, RepositoryHandle
from .pruner import BranchPruner
from .registry import JsonRepositoryRegistry


def format_time_ago(dt: datetime, now: Optional[datetime] = None) -> str:
    """
    Format datetime as relative time ago.

    Args:
        dt: Timezone-aware datetime to format
        now: Reference time (defaults to the current UTC time)

    Returns:
        Human-readable time ago string
    """
    now = now or datetime.now(timezone.utc)
    diff = now - dt

    if diff.days > 365:
        years = diff.days // 365
        return f"{years} year{'s' if years != 1 else ''} ago"
    elif diff.days > 30:
        months = diff.days // 30
        return f"{months} month{'s' if months != 1 else ''} ago"
    elif diff.days > 0:
        return f"{diff.days} day{'s' if diff.days != 1 else ''} ago"
    elif diff.seconds > 3600:
        hours = diff.seconds // 3600
        return f"{hours} hour{'s' if hours != 1 else ''} ago"
    elif diff.seconds > 60:
        minutes = diff.seconds // 60
        return f"{minutes} minute{'s' if minutes != 1 else ''} ago"
    else:
        return "just now"


def display_decision(
    decision: PruneDecision, pruned: Optional[List[Branch]] = None, title: str = "Branches"
) -> None:
    """
    Display a prune decision in a table.

    Args:
        decision: Decision to display
        pruned: Branches actually deleted (None for a dry run)
        title: Table title
    """
    if not decision.to_delete and not decision.retained:
        info("No branches found")
        return

    table = create_table(title=title)
    table.add_column("Branch", style="cyan")
    table.add_column("Last Commit", style="yellow")
    table.add_column("Action", style="magenta")
    table.add_column("Reason", style="dim")

    deleted = {b.name for b in pruned} if pruned is not None else None
    for branch in decision.to_delete:
        if deleted is None:
            action = "would delete"
        else:
            action = "deleted" if branch.name in deleted else "failed"
        table.add_row(branch.name, format_time_ago(branch.last_commit_time), action, "merged")

    for branch in decision.retained:
        table.add_row(
            branch.name,
            format_time_ago(branch.last_commit_time),
            "keep",
            decision.reasons[branch].value,
        )

    print_table(table)


@click.command()
@click.option(
    "--path",
    "-p",
    type=click.Path(exists=True, file_okay=False, dir_okay=True, path_type=Path),
    default=Path.cwd,
    help="Path to git repository (defaults to current directory)",
)
@click.option(
    "--default-branch",
    "-b",
    help="Default branch of the hosted repository (defaults to <remote>/HEAD)",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="JSON configuration file",
)
@click.option(
    "--registry",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Registry file holding last prune timestamps",
)
@click.option(
    "--protected",
    multiple=True,
    help="Additional branch patterns to protect from deletion (can be specified multiple times)",
)
@click.option(
    "--dry-run",
    is_flag=True,
    help="Show what would be deleted without deleting or recording anything",
)
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@handle_errors
def main(
    path: Path,
    default_branch: Optional[str],
    config_path: Optional[Path],
    registry: Optional[Path],
    protected: tuple,
    dry_run: bool,
    verbose: bool,
):
    """
    Branch Pruner - Delete local branches already merged into the default branch.

    Pruning runs at most once per cooldown period (24 hours by default) per
    repository. The default branch, the current branch, protected branches
    and recently checked out branches are never deleted.

    Examples:

        \b
        # Prune the repository in the current directory
        branch-pruner

        \b
        # See what would be deleted
        branch-pruner --dry-run

        \b
        # Use an explicit default branch
        branch-pruner --path ~/src/app --default-branch main
    """
    log_level = "DEBUG" if verbose else "INFO"
    setup_logger(__name__, level=log_level)

    config = load_config(config_path, registry_path=registry)
    if protected:
        config.protected_patterns.extend(protected)

    gateway = GitGateway(force_delete=config.force_delete)
    try:
        default_branch = default_branch or gateway.resolve_default_branch(path, config.remote)
    except PruneError as e:
        error(str(e))
        sys.exit(1)

    repository = RepositoryHandle(path=path, hosting_default_branch=default_branch)
    info(f"Repository: {path}")

    if not repository.is_hosted:
        warning(f"No default branch known ({config.remote}/HEAD missing), nothing to prune")
        sys.exit(0)

    info(f"Default branch: {default_branch}")
    catalog = GitBranchCatalog(gateway, recent_checkout_window=config.recent_checkout_window)

    if dry_run:
        _dry_run(repository, catalog, gateway, config)
        sys.exit(0)

    pruner = BranchPruner(
        repository,
        catalog=catalog,
        registry=JsonRepositoryRegistry(config.registry_path),
        gateway=gateway,
        on_prune_completed=lambda repo, branches: None,
        config=config,
    )

    try:
        result = pruner.start()
    except PruneError as e:
        error(f"Pruning failed: {e}")
        sys.exit(1)

    if result.skipped:
        info(f"Skipped ({result.stage.value})")
        sys.exit(0)

    display_decision(result.decision, pruned=result.pruned, title="Pruned Branches")

    info("\nSummary:")
    info(f"  Deleted: {len(result.pruned)}")
    if result.failures:
        warning(f"  Failed: {len(result.failures)}")
        for name, reason in result.failures.items():
            warning(f"    {name}: {reason}")
        success("Branch pruning completed with failures")
        return

    success("Branch pruning completed!")


def _dry_run(
    repository: RepositoryHandle,
    catalog: GitBranchCatalog,
    gateway: GitGateway,
    config: PrunerConfig,
) -> None:
    snapshot = catalog.snapshot(repository)
    engine = PruneEligibilityEngine(
        is_ancestor=partial(gateway.is_ancestor, repository.path),
        protected_patterns=config.protected_patterns,
        recent_branches=snapshot.recent_branches,
    )
    decision = engine.compute_eligible(
        snapshot.branches,
        snapshot.current_branch,
        repository.hosting_default_branch,
        datetime.now(timezone.utc),
    )
    display_decision(decision, title="Branches (Dry Run)")
    info(f"Dry run complete. {len(decision.to_delete)} branch(es) would be deleted")


if __name__ == "__main__":
    main()
