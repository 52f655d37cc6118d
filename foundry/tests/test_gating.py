"""Status gate tests: problem acceptance and roadmap commit rules per item type."""
from __future__ import annotations

import pytest

from foundry import services
from foundry.gating import (
    GatingFailure,
    check_problem_transition,
    check_roadmap_item_transition,
    commit_failure_message,
)
from foundry.store import EntityStore
from foundry.strategy import ItemRecord, StrategyIndex, has_justification, missing_commit_requirements


def _problem(store: EntityStore, status: str = "accepted", title: str = "Slow exports"):
    prob = services.create_problem(store, {"title": title, "statement": f"{title} hurt admins"})
    if status != "draft":
        # Bypass the acceptance gate to arrange fixtures directly
        store.update("problem", prob.id, {"status": status})
    return prob


def _item(store: EntityStore, type: str, parent_id: int | None = None, status: str = "proposed", title: str = ""):
    item = services.create_roadmap_item(store, {"title": title or type.title(), "type": type, "parent_id": parent_id})
    if status != "proposed":
        store.update("roadmap_item", item.id, {"status": status})
    return item


def _objective(store: EntityStore):
    return services.create_entity(store, "objective", {"name": "Reduce churn", "weight": 2.0})


def _commit(store: EntityStore, item_id: int, **extra):
    return services.update_roadmap_item(store, item_id, {"status": "committed", **extra})


# ---------------------------------------------------------------------------
# Pure gate functions
# ---------------------------------------------------------------------------


class TestPureGate:
    def test_problem_accept_without_links(self):
        failure = check_problem_transition("accepted", 0)
        assert failure == GatingFailure(
            missing=["roadmapItem"], message="Must link to at least one Initiative or Feature before accepting.",
        )

    def test_problem_accept_with_link(self):
        assert check_problem_transition("accepted", 1) is None

    @pytest.mark.parametrize("status", ["draft", "shaped", "proposed", "rejected", None])
    def test_other_problem_statuses_not_gated(self, status):
        assert check_problem_transition(status, 0) is None

    def test_only_committed_is_gated(self):
        bare = ItemRecord(id=1, type="initiative", status="proposed")
        index = StrategyIndex(items={1: bare})
        for target in ("proposed", "in-progress", "done", None):
            assert check_roadmap_item_transition(bare, target, index) is None

    def test_recommit_not_rechecked(self):
        bare = ItemRecord(id=1, type="initiative", status="committed")
        assert check_roadmap_item_transition(bare, "committed", StrategyIndex(items={1: bare})) is None

    def test_failure_message_joins_requirements(self):
        assert commit_failure_message(["objective", "acceptedProblem"]) == (
            "Before committing: Link to at least 1 Objective; Link to at least 1 Accepted Problem."
        )

    def test_as_dict(self):
        failure = GatingFailure(missing=["parentEpic"], message="m")
        assert failure.as_dict() == {"error": "gating", "missing": ["parentEpic"], "message": "m"}


class TestRequirements:
    def test_initiative_reports_in_order(self):
        rec = ItemRecord(id=1, type="initiative", status="proposed")
        assert missing_commit_requirements(rec, StrategyIndex(items={1: rec})) == ["objective", "acceptedProblem"]

    def test_epic_reports_in_order(self):
        rec = ItemRecord(id=1, type="epic", status="proposed")
        assert missing_commit_requirements(rec, StrategyIndex(items={1: rec})) == [
            "parentInitiative", "acceptedProblem",
        ]

    def test_unknown_type_held_to_feature_rules(self):
        rec = ItemRecord(id=1, type="task", status="proposed")
        assert missing_commit_requirements(rec, StrategyIndex(items={1: rec})) == ["parentEpic", "acceptedProblem"]

    def test_parent_type_not_checked(self):
        # Any existing parent satisfies the parent requirement
        parent = ItemRecord(id=1, type="feature", status="proposed", accepted_problem_links=1)
        epic = ItemRecord(id=2, type="epic", status="proposed", parent_id=1)
        assert missing_commit_requirements(epic, StrategyIndex(items={1: parent, 2: epic})) == []

    def test_epic_does_not_reach_grandparent(self):
        top = ItemRecord(id=1, type="initiative", status="proposed", accepted_problem_links=1)
        mid = ItemRecord(id=2, type="epic", status="proposed", parent_id=1)
        epic = ItemRecord(id=3, type="epic", status="proposed", parent_id=2)
        index = StrategyIndex(items={1: top, 2: mid, 3: epic})
        assert has_justification(mid, index)
        assert not has_justification(epic, index)

    def test_self_parent_terminates(self):
        rec = ItemRecord(id=1, type="feature", status="proposed", parent_id=1)
        assert has_justification(rec, StrategyIndex(items={1: rec})) is False

    def test_cycle_terminates(self):
        a = ItemRecord(id=1, type="feature", status="proposed", parent_id=2)
        b = ItemRecord(id=2, type="epic", status="proposed", parent_id=1)
        assert has_justification(a, StrategyIndex(items={1: a, 2: b})) is False


# ---------------------------------------------------------------------------
# Roadmap commits through the service
# ---------------------------------------------------------------------------


class TestInitiativeCommit:
    def test_bare_initiative_blocked(self, store):
        init = _item(store, "initiative")
        failure = _commit(store, init.id)
        assert isinstance(failure, GatingFailure)
        assert failure.missing == ["objective", "acceptedProblem"]
        assert store.get("roadmap_item", init.id).status == "proposed"

    def test_objective_only_blocked(self, store):
        init = _item(store, "initiative")
        services.link_item_objective(store, init.id, _objective(store).id)
        assert _commit(store, init.id).missing == ["acceptedProblem"]

    def test_draft_problem_does_not_count(self, store):
        init = _item(store, "initiative")
        services.link_item_objective(store, init.id, _objective(store).id)
        services.link_item_problem(store, init.id, _problem(store, status="draft").id)
        assert _commit(store, init.id).missing == ["acceptedProblem"]

    def test_fully_linked_initiative_commits(self, store):
        init = _item(store, "initiative")
        services.link_item_objective(store, init.id, _objective(store).id)
        services.link_item_problem(store, init.id, _problem(store).id)
        result = _commit(store, init.id)
        assert not isinstance(result, GatingFailure)
        assert result.status == "committed"

    def test_gate_sees_problem_accepted_in_same_session(self, store):
        init = _item(store, "initiative")
        services.link_item_objective(store, init.id, _objective(store).id)
        prob = _problem(store, status="draft")
        services.link_item_problem(store, init.id, prob.id)
        assert isinstance(_commit(store, init.id), GatingFailure)
        services.update_problem(store, prob.id, {"status": "accepted"})
        assert _commit(store, init.id).status == "committed"


class TestEpicCommit:
    def test_epic_without_parent(self, store):
        epic = _item(store, "epic")
        services.link_item_problem(store, epic.id, _problem(store).id)
        assert _commit(store, epic.id).missing == ["parentInitiative"]

    def test_epic_inherits_from_initiative(self, store):
        init = _item(store, "initiative")
        services.link_item_problem(store, init.id, _problem(store).id)
        epic = _item(store, "epic", parent_id=init.id)
        assert _commit(store, epic.id).status == "committed"

    def test_epic_under_unjustified_initiative(self, store):
        init = _item(store, "initiative")
        epic = _item(store, "epic", parent_id=init.id)
        assert _commit(store, epic.id).missing == ["acceptedProblem"]

    def test_dangling_parent_counts_as_set(self, store):
        epic = _item(store, "epic", parent_id=9999)
        failure = _commit(store, epic.id)
        assert failure.missing == ["acceptedProblem"]

    def test_dangling_parent_with_own_problem_commits(self, store):
        epic = _item(store, "epic", parent_id=9999)
        services.link_item_problem(store, epic.id, _problem(store).id)
        assert _commit(store, epic.id).status == "committed"


class TestFeatureCommit:
    def test_feature_without_parent_or_problem(self, store):
        feat = _item(store, "feature")
        failure = _commit(store, feat.id)
        assert failure.missing == ["parentEpic", "acceptedProblem"]
        assert failure.message == (
            "Before committing: Set a parent Epic; Link to at least 1 Accepted Problem."
        )

    def test_feature_inherits_from_epic(self, store):
        epic = _item(store, "epic")
        services.link_item_problem(store, epic.id, _problem(store).id)
        feat = _item(store, "feature", parent_id=epic.id)
        assert _commit(store, feat.id).status == "committed"

    def test_feature_inherits_from_initiative_two_levels_up(self, store):
        init = _item(store, "initiative")
        services.link_item_problem(store, init.id, _problem(store).id)
        epic = _item(store, "epic", parent_id=init.id)
        feat = _item(store, "feature", parent_id=epic.id)
        assert _commit(store, feat.id).status == "committed"

    def test_feature_does_not_look_three_levels_up(self, store):
        top = _item(store, "initiative")
        services.link_item_problem(store, top.id, _problem(store).id)
        init = _item(store, "initiative", parent_id=top.id)
        epic = _item(store, "epic", parent_id=init.id)
        feat = _item(store, "feature", parent_id=epic.id)
        assert _commit(store, feat.id).missing == ["acceptedProblem"]

    def test_legacy_parent_initiative_allowed(self, store):
        init = _item(store, "initiative")
        services.link_item_problem(store, init.id, _problem(store).id)
        feat = _item(store, "feature", parent_id=init.id)
        assert _commit(store, feat.id).status == "committed"

    def test_cyclic_parents_terminate(self, store):
        a = _item(store, "feature")
        b = _item(store, "epic", parent_id=a.id)
        store.update("roadmap_item", a.id, {"parent_id": b.id})
        assert _commit(store, a.id).missing == ["acceptedProblem"]

    def test_self_parent_terminates(self, store):
        feat = _item(store, "feature")
        store.update("roadmap_item", feat.id, {"parent_id": feat.id})
        assert _commit(store, feat.id).missing == ["acceptedProblem"]


class TestTransitionRules:
    def test_in_progress_and_done_not_gated(self, store):
        feat = _item(store, "feature")
        assert services.update_roadmap_item(store, feat.id, {"status": "in-progress"}).status == "in-progress"
        assert services.update_roadmap_item(store, feat.id, {"status": "done"}).status == "done"

    def test_recommit_not_rechecked(self, store):
        feat = _item(store, "feature", status="committed")
        result = _commit(store, feat.id, title="Renamed")
        assert not isinstance(result, GatingFailure)
        assert result.title == "Renamed"

    def test_back_to_committed_from_done_is_gated(self, store):
        feat = _item(store, "feature", status="done")
        assert isinstance(_commit(store, feat.id), GatingFailure)

    def test_pending_type_change_is_evaluated(self, store):
        # As a feature it needs a parent epic; as an initiative it needs an objective
        item = _item(store, "feature")
        services.link_item_problem(store, item.id, _problem(store).id)
        assert _commit(store, item.id).missing == ["parentEpic"]
        assert _commit(store, item.id, type="initiative").missing == ["objective"]
        services.link_item_objective(store, item.id, _objective(store).id)
        result = _commit(store, item.id, type="initiative")
        assert result.type == "initiative"
        assert result.status == "committed"

    def test_pending_parent_is_evaluated(self, store):
        epic = _item(store, "epic")
        services.link_item_problem(store, epic.id, _problem(store).id)
        feat = _item(store, "feature")
        assert _commit(store, feat.id, parent_id=epic.id).status == "committed"

    def test_pending_parent_cleared(self, store):
        epic = _item(store, "epic")
        services.link_item_problem(store, epic.id, _problem(store).id)
        feat = _item(store, "feature", parent_id=epic.id)
        assert _commit(store, feat.id, parent_id=None).missing == ["parentEpic", "acceptedProblem"]
        assert store.get("roadmap_item", feat.id).parent_id == epic.id

    def test_blocked_update_writes_nothing(self, store):
        feat = _item(store, "feature")
        _commit(store, feat.id, title="New title", reach=5)
        item = store.get("roadmap_item", feat.id)
        assert item.title == "Feature"
        assert item.reach is None

    def test_gate_is_idempotent(self, store):
        feat = _item(store, "feature")
        first = _commit(store, feat.id)
        second = _commit(store, feat.id)
        assert first == second

    def test_missing_item(self, store):
        assert services.update_roadmap_item(store, 424242, {"status": "committed"}) is None


class TestCreateCommitted:
    def test_create_committed_is_gated(self, store):
        result = services.create_roadmap_item(store, {"title": "Rush", "type": "feature", "status": "committed"})
        assert isinstance(result, GatingFailure)
        assert result.missing == ["parentEpic", "acceptedProblem"]
        assert store.find("roadmap_item") == []

    def test_create_committed_initiative_never_has_links(self, store):
        result = services.create_roadmap_item(store, {"title": "Big bet", "type": "initiative", "status": "committed"})
        assert result.missing == ["objective", "acceptedProblem"]

    def test_create_committed_under_justified_parent(self, store):
        epic = _item(store, "epic")
        services.link_item_problem(store, epic.id, _problem(store).id)
        result = services.create_roadmap_item(store, {
            "title": "Child", "type": "feature", "status": "committed", "parent_id": epic.id,
        })
        assert result.status == "committed"

    def test_create_proposed_not_gated(self, store):
        result = services.create_roadmap_item(store, {"title": "Idea"})
        assert result.type == "feature"
        assert result.status == "proposed"


# ---------------------------------------------------------------------------
# Problem acceptance through the service
# ---------------------------------------------------------------------------


class TestProblemAcceptance:
    def test_accept_without_roadmap_link_blocked(self, store):
        prob = _problem(store, status="draft")
        failure = services.update_problem(store, prob.id, {"status": "accepted"})
        assert isinstance(failure, GatingFailure)
        assert failure.missing == ["roadmapItem"]
        assert store.get("problem", prob.id).status == "draft"

    def test_accept_with_any_roadmap_link(self, store):
        prob = _problem(store, status="draft")
        services.link_item_problem(store, _item(store, "feature").id, prob.id)
        assert services.update_problem(store, prob.id, {"status": "accepted"}).status == "accepted"

    def test_reaccepting_still_gated(self, store):
        prob = _problem(store, status="accepted")
        assert isinstance(services.update_problem(store, prob.id, {"status": "accepted"}), GatingFailure)

    def test_other_transitions_pass(self, store):
        prob = _problem(store, status="draft")
        assert services.update_problem(store, prob.id, {"status": "shaped"}).status == "shaped"
        assert services.update_problem(store, prob.id, {"status": "rejected"}).status == "rejected"

    def test_non_status_patch_not_gated(self, store):
        prob = _problem(store, status="draft")
        assert services.update_problem(store, prob.id, {"title": "Exports fail"}).title == "Exports fail"

    def test_missing_problem(self, store):
        assert services.update_problem(store, 5150, {"status": "accepted"}) is None
