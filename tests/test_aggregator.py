import math

import pytest

from conftest import NOW, hours_ago, make_log
from biostate.engine.aggregator import WarningAggregator, build_safety_action_buckets
from biostate.engine.errors import EvaluationError, RepositoryError
from biostate.engine.strategies import LocalStrategy
from biostate.engine.types import (
    EvaluationContext,
    InteractionWarning,
    RatioEvaluationGap,
    RatioWarning,
    SupplementInfo,
    TimingWarning,
)
from biostate.repositories import InMemoryLogRepository


CONTEXT = EvaluationContext(user_id="user-1")


@pytest.fixture
def aggregator(rule_store, log_repository):
    return WarningAggregator(LocalStrategy(rule_store, log_repository), log_repository)


class FailingLogRepository(InMemoryLogRepository):

    async def find_logs(self, user_id, supplement_ids=None, start=None, end=None):
        raise RepositoryError("intake history unavailable", stage="logs")


# ============================================================
# LOG EVENT WARNINGS
# ============================================================

@pytest.mark.asyncio
async def test_interactions_narrowed_to_new_supplement(aggregator, log_repository):
    log_repository.add(make_log("vitamin_d3", hours_ago(6), dosage=25, unit="mcg"))
    log_repository.add(make_log("vitamin_k2", hours_ago(6), dosage=100, unit="mcg"))
    log_repository.add(make_log("zinc", hours_ago(5), dosage=30))

    # Not yet visible to the repository read; still part of the snapshot
    entry = make_log("copper", NOW, dosage=3)
    result = await aggregator.collect(CONTEXT, entry)

    assert [i.id for i in result.interactions] == ["zinc-copper"]
    assert result.ratio_warnings == []
    assert result.timing_warnings == []
    assert result.status == "yellow"
    assert result.provenance == "local"


@pytest.mark.asyncio
async def test_committed_entry_is_not_counted_twice(aggregator, log_repository):
    log_repository.add(make_log("zinc", hours_ago(5), dosage=30))
    entry = make_log("copper", NOW, dosage=3)
    log_repository.add(entry)

    result = await aggregator.collect(CONTEXT, entry)

    # A duplicated copper dose would push zinc:copper down to 5:1
    assert result.ratio_warnings == []


@pytest.mark.asyncio
async def test_zinc_without_copper_is_red(aggregator, log_repository):
    log_repository.add(make_log("vitamin_d3", hours_ago(6), dosage=25, unit="mcg"))
    # Yesterday's copper does not count toward today
    log_repository.add(make_log("copper", hours_ago(20), dosage=2))

    result = await aggregator.collect(CONTEXT, make_log("zinc", NOW, dosage=30))

    assert result.interactions == []
    assert len(result.ratio_warnings) == 1
    warning = result.ratio_warnings[0]
    assert warning.missing_target
    assert math.isinf(warning.current_ratio)
    assert warning.severity == "critical"
    assert result.status == "red"


@pytest.mark.asyncio
async def test_zinc_as_only_log_of_the_day_is_red(aggregator, log_repository):
    entry = make_log("zinc", NOW, dosage=30)
    log_repository.add(entry)

    result = await aggregator.collect(CONTEXT, entry)

    assert [w.id for w in result.ratio_warnings] == ["zinc-copper-ratio"]
    assert result.ratio_warnings[0].missing_target
    assert result.status == "red"


@pytest.mark.asyncio
async def test_timing_conflicts_included(aggregator, log_repository):
    log_repository.add(make_log("tyrosine", hours_ago(1)))

    result = await aggregator.collect(CONTEXT, make_log("5_htp", NOW))

    assert len(result.timing_warnings) == 1
    assert result.timing_warnings[0].actual_hours_apart == 1.0
    assert result.status == "green"


@pytest.mark.asyncio
async def test_log_read_failure_propagates(rule_store):
    logs = FailingLogRepository()
    aggregator = WarningAggregator(LocalStrategy(rule_store, logs), logs)

    with pytest.raises(EvaluationError) as exc_info:
        await aggregator.collect(CONTEXT, make_log("zinc", NOW))
    assert exc_info.value.stage == "logs"


# ============================================================
# SAFETY ACTIONS
# ============================================================

ZINC = SupplementInfo("zinc", "Zinc")
COPPER = SupplementInfo("copper", "Copper")
D3 = SupplementInfo("vitamin_d3", "Vitamin D3")
K2 = SupplementInfo("vitamin_k2", "Vitamin K2")


def test_interactions_sorted_into_buckets():
    buckets = build_safety_action_buckets(
        [
            InteractionWarning("d3-k2", "synergy", "low", D3, K2),
            InteractionWarning("zinc-copper", "competition", "medium", ZINC, COPPER),
            InteractionWarning("zinc-copper-2", "competition", "critical", ZINC, COPPER),
        ],
        [],
        [],
    )

    assert buckets.do_now == ["Consider pairing Vitamin D3 + Vitamin K2 together today."]
    assert buckets.avoid_now == ["Avoid combining Zinc + Copper right now due to a critical interaction."]
    assert buckets.optimize_later == ["Separate Zinc + Copper to reduce competition effects."]


def test_ratio_and_timing_actions():
    buckets = build_safety_action_buckets(
        [],
        [
            RatioWarning("r1", "critical", math.inf, "", ZINC, COPPER),
            RatioWarning("r2", "medium", 20.0, "", ZINC, COPPER),
        ],
        [
            TimingWarning("t1", "critical", "", 6, 1.0, SupplementInfo("caffeine", "Caffeine"),
                          SupplementInfo("melatonin", "Melatonin")),
            TimingWarning("t2", "medium", "", 4, 1.0, SupplementInfo("tyrosine", "L-Tyrosine"),
                          SupplementInfo("5_htp", "5-HTP")),
        ],
    )

    assert buckets.avoid_now == [
        "Avoid current Zinc:Copper ratio until corrected.",
        "Avoid taking them together: Separate Caffeine and Melatonin by 6h.",
    ]
    assert buckets.optimize_later == [
        "Adjust Zinc:Copper ratio (currently 20:1).",
        "Separate L-Tyrosine and 5-HTP by 4h.",
    ]
    assert buckets.do_now == []


def test_duplicate_actions_collapse():
    gap = RatioEvaluationGap("zinc-copper-ratio", "zinc", "copper", "missing_dosage")
    interaction = InteractionWarning("zinc-copper", "competition", "medium", ZINC, COPPER)

    buckets = build_safety_action_buckets([interaction, interaction], [], [], [gap, gap])

    assert buckets.optimize_later == [
        "Separate Zinc + Copper to reduce competition effects.",
        "Add missing ratio inputs (missing dosage).",
    ]
