"""Load the bundled supplement and rule catalog into the database."""

from pathlib import Path
from typing import Dict, Optional
import json
import logging

from sqlalchemy.orm import Session

from biostate.models import (
    Supplement,
    InteractionRuleRecord,
    RatioRuleRecord,
    TimingRuleRecord,
)

logger = logging.getLogger(__name__)

BUNDLED_CATALOG = Path(__file__).resolve().parent / "data" / "rule_catalog.json"


def seed_catalog(db: Session, path: Optional[Path] = None) -> Dict[str, int]:
    """
    Upsert every catalog row by primary key. Safe to run repeatedly.

    Returns the number of rows written per table.
    """
    with open(path or BUNDLED_CATALOG) as f:
        catalog = json.load(f)

    for s in catalog.get("supplements", []):
        db.merge(Supplement(
            id=s["id"],
            name=s["name"],
            form=s.get("form"),
            category=s.get("category"),
            safety_category=s.get("safety_category"),
        ))
    # Rules reference supplements by foreign key
    db.flush()

    for r in catalog.get("interactions", []):
        db.merge(InteractionRuleRecord(
            id=r["id"],
            source_supplement_id=r["source"],
            target_supplement_id=r["target"],
            type=r["type"],
            severity=r["severity"],
            mechanism=r.get("mechanism"),
            research_url=r.get("research_url"),
            suggestion=r.get("suggestion"),
        ))

    for r in catalog.get("ratio_rules", []):
        db.merge(RatioRuleRecord(
            id=r["id"],
            source_supplement_id=r["source"],
            target_supplement_id=r["target"],
            min_ratio=r.get("min_ratio"),
            max_ratio=r.get("max_ratio"),
            optimal_ratio=r.get("optimal_ratio"),
            severity=r["severity"],
            warning_message=r["warning_message"],
            research_url=r.get("research_url"),
            warn_when_target_missing=r.get("warn_when_target_missing", False),
        ))

    for r in catalog.get("timing_rules", []):
        db.merge(TimingRuleRecord(
            id=r["id"],
            source_supplement_id=r["source"],
            target_supplement_id=r["target"],
            min_hours_apart=r["min_hours_apart"],
            severity=r["severity"],
            reason=r["reason"],
            research_url=r.get("research_url"),
        ))

    db.commit()

    counts = {
        "supplements": len(catalog.get("supplements", [])),
        "interactions": len(catalog.get("interactions", [])),
        "ratio_rules": len(catalog.get("ratio_rules", [])),
        "timing_rules": len(catalog.get("timing_rules", [])),
    }
    logger.info(f"Seeded catalog: {counts}")
    return counts
