"""
Shared fixtures: a small in-memory supplement catalog and rule set.
"""

import os

# Keep the default settings away from any developer .env engine
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["ENGINE_URL"] = ""

from datetime import datetime, timedelta
import itertools

import pytest

from biostate.config import Settings
from biostate.engine.kinetics import load_kinetics_table
from biostate.engine.types import (
    InteractionRule,
    LogEntry,
    RatioRule,
    Supplement,
    TimingRule,
)
from biostate.repositories import InMemoryLogRepository, InMemoryRuleStore


NOW = datetime(2026, 3, 10, 14, 0)
USER_ID = "user-1"


# ============================================================
# CATALOG
# ============================================================

SUPPLEMENTS = [
    Supplement("zinc", "Zinc", form="picolinate", category="mineral"),
    Supplement("copper", "Copper", category="mineral"),
    Supplement("iron", "Iron", category="mineral", safety_category="iron"),
    Supplement("calcium", "Calcium", category="mineral"),
    Supplement("magnesium", "Magnesium", category="mineral"),
    Supplement("vitamin_d3", "Vitamin D3", category="vitamin"),
    Supplement("vitamin_k2", "Vitamin K2", category="vitamin"),
    Supplement("caffeine", "Caffeine", category="stimulant"),
    Supplement("melatonin", "Melatonin", category="hormone"),
    Supplement("tyrosine", "L-Tyrosine", category="amino_acid"),
    Supplement("5_htp", "5-HTP", category="amino_acid"),
]

INTERACTION_RULES = [
    InteractionRule(
        "zinc-copper", "zinc", "copper", "competition", "medium",
        mechanism="Zinc induces metallothionein", suggestion="Keep an 8-15:1 ratio",
        source_name="Zinc", target_name="Copper",
    ),
    InteractionRule(
        "d3-k2", "vitamin_d3", "vitamin_k2", "synergy", "low",
        suggestion="Take D3 and K2 together", source_name="Vitamin D3", target_name="Vitamin K2",
    ),
    InteractionRule(
        "caffeine-melatonin", "caffeine", "melatonin", "inhibition", "critical",
        source_name="Caffeine", target_name="Melatonin",
    ),
    InteractionRule(
        "calcium-iron", "calcium", "iron", "inhibition", "medium",
        source_name="Calcium", target_name="Iron",
    ),
]

RATIO_RULES = [
    RatioRule(
        "zinc-copper-ratio", "zinc", "copper", "medium",
        "Zinc:Copper should stay between 8:1 and 15:1.",
        min_ratio=8, max_ratio=15, optimal_ratio=10,
        warn_when_target_missing=True, source_name="Zinc", target_name="Copper",
    ),
    RatioRule(
        "calcium-magnesium-ratio", "calcium", "magnesium", "low",
        "Calcium:Magnesium above 2.5:1 impairs magnesium status.",
        min_ratio=1, max_ratio=2.5, source_name="Calcium", target_name="Magnesium",
    ),
]

TIMING_RULES = [
    TimingRule(
        "tyrosine-5htp", "tyrosine", "5_htp", 4, "medium",
        "Tyrosine and 5-HTP compete for the same transporter.",
        source_name="L-Tyrosine", target_name="5-HTP",
    ),
    TimingRule(
        "caffeine-melatonin-spacing", "caffeine", "melatonin", 6, "critical",
        "Caffeine counteracts melatonin.",
        source_name="Caffeine", target_name="Melatonin",
    ),
]

_NAMES = {s.id: s for s in SUPPLEMENTS}
_ids = itertools.count(1)


def make_log(supplement_id, logged_at, dosage=100.0, unit="mg", user_id=USER_ID, log_id=None):
    supplement = _NAMES.get(supplement_id)
    return LogEntry(
        id=log_id or f"log-{next(_ids)}",
        user_id=user_id,
        supplement_id=supplement_id,
        dosage=dosage,
        unit=unit,
        logged_at=logged_at,
        supplement_name=supplement.name if supplement else "",
        category=supplement.category if supplement else None,
    )


def hours_ago(hours, now=NOW):
    return now - timedelta(hours=hours)


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def rule_store():
    return InMemoryRuleStore(
        interaction_rules=INTERACTION_RULES,
        ratio_rules=RATIO_RULES,
        timing_rules=TIMING_RULES,
        supplements=SUPPLEMENTS,
    )


@pytest.fixture
def log_repository():
    return InMemoryLogRepository()


@pytest.fixture
def kinetics():
    return load_kinetics_table()


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite://",
        engine_url="",
        engine_internal_key="secret",
        engine_timeout_seconds=0.2,
    )


@pytest.fixture
def engine_settings():
    return Settings(
        database_url="sqlite://",
        engine_url="http://engine.test",
        engine_internal_key="secret",
        engine_timeout_seconds=0.2,
    )
