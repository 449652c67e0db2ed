"""Tests for the prune eligibility engine."""

from conftest import NOW, make_branch

from tools.branch_pruner.engine import PruneEligibilityEngine
from tools.branch_pruner.errors import AncestryUndetermined
from tools.branch_pruner.models import Branch, CommitRef, ExclusionReason


def names(branches):
    return [b.name for b in branches]


class TestEligibility:
    """Test which branches are selected for deletion."""

    def test_merged_branch_is_eligible(self, prune_cases):
        """Test that a branch whose tip is in master's history is deleted."""
        engine = PruneEligibilityEngine()
        decision = engine.compute_eligible(prune_cases, prune_cases[0], "master", NOW)

        assert names(decision.to_delete) == ["merged-branch-2"]
        assert names(decision.retained) == ["master", "not-merged-branch-1"]
        assert decision.reasons[prune_cases[0]] == ExclusionReason.IS_DEFAULT
        assert decision.reasons[prune_cases[1]] == ExclusionReason.NOT_MERGED

    def test_branch_at_default_tip_is_eligible(self, commits):
        """Test that a branch pointing at the default tip counts as merged."""
        master = make_branch("master", commits["c1"])
        same = make_branch("feature/done", commits["c1"])

        decision = PruneEligibilityEngine().compute_eligible([master, same], master, "master", NOW)

        assert decision.to_delete == [same]

    def test_current_branch_never_deleted(self, commits):
        """Test that the checked out branch is kept even when merged."""
        master = make_branch("master", commits["c1"])
        current = Branch("feature/current", commits["c0"], NOW, is_current=True)

        decision = PruneEligibilityEngine().compute_eligible([master, current], current, "master", NOW)

        assert decision.to_delete == []
        assert decision.reasons[current] == ExclusionReason.IS_CURRENT

    def test_current_branch_matched_by_name(self, commits):
        """Test that current_branch excludes a branch even without is_current set."""
        master = make_branch("master", commits["c1"])
        other = make_branch("feature/other", commits["c0"])

        decision = PruneEligibilityEngine().compute_eligible([master, other], other, "master", NOW)

        assert decision.reasons[other] == ExclusionReason.IS_CURRENT

    def test_default_checked_before_current(self, prune_cases):
        """Test that the default branch reports IS_DEFAULT even when checked out."""
        master = Branch("master", prune_cases[0].tip, NOW, is_current=True)

        decision = PruneEligibilityEngine().compute_eligible([master], master, "master", NOW)

        assert decision.reasons[master] == ExclusionReason.IS_DEFAULT

    def test_protected_patterns(self, commits):
        """Test that protected glob patterns keep merged branches."""
        master = make_branch("master", commits["c1"])
        release = make_branch("release/1.0", commits["c0"])
        hotfix = make_branch("hotfix", commits["c0"])
        feature = make_branch("feature/x", commits["c0"])

        engine = PruneEligibilityEngine(protected_patterns=["release/*", "hotfix"])
        decision = engine.compute_eligible([master, release, hotfix, feature], master, "master", NOW)

        assert decision.to_delete == [feature]
        assert decision.reasons[release] == ExclusionReason.PROTECTED
        assert decision.reasons[hotfix] == ExclusionReason.PROTECTED

    def test_recently_checked_out_branch_kept(self, prune_cases):
        """Test that recently checked out branches are kept."""
        engine = PruneEligibilityEngine(recent_branches=["merged-branch-2"])
        decision = engine.compute_eligible(prune_cases, prune_cases[0], "master", NOW)

        assert decision.to_delete == []
        assert decision.reasons[prune_cases[2]] == ExclusionReason.RECENTLY_CHECKED_OUT

    def test_detached_head(self, prune_cases):
        """Test that a detached HEAD (no current branch) still allows pruning."""
        decision = PruneEligibilityEngine().compute_eligible(prune_cases, None, "master", NOW)

        assert names(decision.to_delete) == ["merged-branch-2"]

    def test_deletion_order_follows_catalog(self, commits):
        """Test that eligible branches keep catalog order."""
        master = make_branch("master", commits["c1"])
        branches = [master] + [make_branch(f"b{i}", commits["c0"]) for i in (3, 1, 2)]

        decision = PruneEligibilityEngine().compute_eligible(branches, master, "master", NOW)

        assert names(decision.to_delete) == ["b3", "b1", "b2"]


class TestMissingDefault:
    """Test behaviour when the default branch is absent."""

    def test_no_default_branch_deletes_nothing(self, prune_cases):
        """Test that nothing is eligible without the default branch."""
        decision = PruneEligibilityEngine().compute_eligible(prune_cases, prune_cases[0], "main", NOW)

        assert decision.to_delete == []
        assert len(decision.retained) == 3
        assert set(decision.reasons.values()) == {ExclusionReason.NO_DEFAULT_BRANCH}

    def test_no_default_branch_skips_ancestry(self, prune_cases):
        """Test that no ancestry query is made without a default branch."""
        queried = []

        def is_ancestor(ancestor, descendant):
            queried.append(ancestor)
            return True

        PruneEligibilityEngine(is_ancestor=is_ancestor).compute_eligible(prune_cases, None, "main", NOW)

        assert queried == []


class TestAncestryFailures:
    """Test fail-safe handling of ancestry errors."""

    def test_undetermined_ancestry_keeps_branch(self, prune_cases):
        """Test that an ancestry error keeps the branch and continues."""

        def is_ancestor(ancestor, descendant):
            if ancestor.sha == "c0":
                raise AncestryUndetermined("merged-branch-2", "fatal: bad object")
            return False

        engine = PruneEligibilityEngine(is_ancestor=is_ancestor)
        decision = engine.compute_eligible(prune_cases, prune_cases[0], "master", NOW)

        assert decision.to_delete == []
        assert decision.reasons[prune_cases[2]] == ExclusionReason.ANCESTRY_UNDETERMINED
        assert decision.reasons[prune_cases[1]] == ExclusionReason.NOT_MERGED

    def test_excluded_branches_skip_ancestry(self, prune_cases):
        """Test that exclusion rules short-circuit before ancestry checks."""
        queried = []

        def is_ancestor(ancestor, descendant):
            queried.append(ancestor.sha)
            return True

        engine = PruneEligibilityEngine(is_ancestor=is_ancestor, protected_patterns=["not-merged-*"])
        engine.compute_eligible(prune_cases, prune_cases[0], "master", NOW)

        assert queried == ["c0"]


class TestDecisionProperties:
    """Test invariants of the decision."""

    def test_idempotent(self, prune_cases):
        """Test that evaluating the same snapshot twice gives equal decisions."""
        engine = PruneEligibilityEngine(protected_patterns=["develop"])

        first = engine.compute_eligible(prune_cases, prune_cases[0], "master", NOW)
        second = engine.compute_eligible(prune_cases, prune_cases[0], "master", NOW)

        assert first == second

    def test_every_branch_accounted_for(self, prune_cases):
        """Test that each branch is either deleted or retained with a reason."""
        decision = PruneEligibilityEngine().compute_eligible(prune_cases, prune_cases[0], "master", NOW)

        assert len(decision.to_delete) + len(decision.retained) == len(prune_cases)
        assert set(decision.reasons) == set(decision.retained)

    def test_to_delete_iff_merged_and_not_excluded(self, commits):
        """Test the eligibility rule across a mixed set of branches."""
        c0, c1, n1 = commits["c0"], commits["c1"], commits["n1"]
        c2 = CommitRef("c2", parents=(c1,))
        master = make_branch("master", c2)
        branches = [
            master,
            make_branch("a", c0),
            make_branch("b", c1),
            make_branch("c", n1),
            Branch("d", c1, NOW, is_current=True),
            make_branch("develop", c0),
            make_branch("e", CommitRef("c3", parents=(c2,))),
        ]
        current = branches[4]
        protected = ["develop"]

        decision = PruneEligibilityEngine(protected_patterns=protected).compute_eligible(
            branches, current, "master", NOW
        )

        assert names(decision.to_delete) == ["a", "b"]
        for branch in decision.to_delete:
            assert branch.name != "master"
            assert not branch.is_current
            assert branch.name not in protected
