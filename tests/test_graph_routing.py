"""Tests for graph routing: _route_after_review, _increment_cycle, _set_exhausted."""

from specpipe.graph import _increment_cycle, _route_after_review, _set_exhausted


def _state(status, cycle=1, max_cycles=3):
    return {
        "artifact_type": "contract",
        "cycle": cycle,
        "max_cycles": max_cycles,
        "candidate": "ir::contract {}",
        "status": status,
        "clarifications_asked": 0,
    }


# --- _route_after_review ---

class TestRouteAfterReview:
    def test_accepted_ends(self):
        assert _route_after_review(_state("accepted")) == "end"

    def test_accepted_on_last_cycle_ends(self):
        assert _route_after_review(_state("accepted", cycle=3)) == "end"

    def test_revising_with_cycles_left_increments(self):
        assert _route_after_review(_state("revising", cycle=1)) == "increment"
        assert _route_after_review(_state("revising", cycle=2)) == "increment"

    def test_revising_on_last_cycle_exhausts(self):
        assert _route_after_review(_state("revising", cycle=3)) == "exhausted"

    def test_single_cycle_budget(self):
        assert _route_after_review(_state("revising", cycle=1, max_cycles=1)) == "exhausted"


# --- _increment_cycle ---

class TestIncrementCycle:
    def test_increments_cycle(self):
        result = _increment_cycle(_state("revising", cycle=2))
        assert result["cycle"] == 3

    def test_resets_status_to_generating(self):
        result = _increment_cycle(_state("revising"))
        assert result["status"] == "generating"


# --- _set_exhausted ---

class TestSetExhausted:
    def test_sets_status(self):
        assert _set_exhausted(_state("revising", cycle=3)) == {"status": "exhausted"}

    def test_keeps_candidate(self):
        assert "candidate" not in _set_exhausted(_state("revising", cycle=3))
