import pytest

from biostate.engine.interactions import InteractionEvaluator, split_interactions
from biostate.engine.status import calculate_status, escalate_status
from biostate.engine.types import InteractionWarning, RatioWarning, SupplementInfo


def _warning(severity, type="inhibition"):
    return InteractionWarning(
        id=f"{type}-{severity}",
        type=type,
        severity=severity,
        source=SupplementInfo("a", "A"),
        target=SupplementInfo("b", "B"),
    )


def _ratio(severity):
    return RatioWarning(
        id=f"ratio-{severity}",
        severity=severity,
        current_ratio=20.0,
        warning_message="",
        source=SupplementInfo("a", "A"),
        target=SupplementInfo("b", "B"),
    )


# ============================================================
# EVALUATOR
# ============================================================

@pytest.mark.asyncio
async def test_rule_needs_both_endpoints(rule_store):
    # zinc-copper and d3-k2 each touch the set on one side only
    found = await InteractionEvaluator(rule_store).evaluate(["zinc", "vitamin_d3"])
    assert found == []


@pytest.mark.asyncio
async def test_matches_regardless_of_direction(rule_store):
    found = await InteractionEvaluator(rule_store).evaluate(["copper", "zinc"])

    assert len(found) == 1
    warning = found[0]
    assert warning.id == "zinc-copper"
    assert warning.source.id == "zinc"
    assert warning.target.id == "copper"
    assert warning.mechanism == "Zinc induces metallothionein"
    assert warning.suggestion == "Keep an 8-15:1 ratio"


@pytest.mark.asyncio
async def test_returns_every_matching_pair(rule_store):
    found = await InteractionEvaluator(rule_store).evaluate(
        ["zinc", "copper", "vitamin_d3", "vitamin_k2", "calcium"]
    )
    assert sorted(w.id for w in found) == ["d3-k2", "zinc-copper"]

    warnings, synergies = split_interactions(found)
    assert [w.id for w in warnings] == ["zinc-copper"]
    assert [w.id for w in synergies] == ["d3-k2"]


@pytest.mark.asyncio
@pytest.mark.parametrize("ids", [[], ["zinc"], ["zinc", "zinc"]])
async def test_fewer_than_two_supplements_do_not_query(rule_store, ids):
    found = await InteractionEvaluator(rule_store).evaluate(ids)
    assert found == []
    assert rule_store.query_count == 0


# ============================================================
# STATUS
# ============================================================

def test_status_green_when_nothing_found():
    assert calculate_status([]) == "green"


def test_status_red_on_critical():
    assert calculate_status([_warning("medium"), _warning("critical")]) == "red"


def test_status_yellow_on_medium():
    assert calculate_status([_warning("low"), _warning("medium")]) == "yellow"


def test_synergies_never_raise_status():
    assert calculate_status([_warning("critical", type="synergy")]) == "green"


def test_ratio_warnings_only_escalate():
    assert escalate_status("green", [_ratio("medium")]) == "yellow"
    assert escalate_status("yellow", [_ratio("critical")]) == "red"
    assert escalate_status("red", [_ratio("low")]) == "red"
