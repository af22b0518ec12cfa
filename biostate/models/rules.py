from sqlalchemy import Column, String, Float, Boolean, ForeignKey, Text
from sqlalchemy.orm import relationship
import uuid

from biostate.db.database import Base


class InteractionRuleRecord(Base):
    """Pairwise interaction between two supplements (undirected in effect)."""
    __tablename__ = "interaction_rules"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    source_supplement_id = Column(String, ForeignKey("supplements.id"), nullable=False)
    target_supplement_id = Column(String, ForeignKey("supplements.id"), nullable=False)
    type = Column(String, nullable=False)  # inhibition, synergy, competition
    severity = Column(String, nullable=False)  # low, medium, critical
    mechanism = Column(Text, nullable=True)
    research_url = Column(String, nullable=True)
    suggestion = Column(Text, nullable=True)

    source = relationship("Supplement", foreign_keys=[source_supplement_id])
    target = relationship("Supplement", foreign_keys=[target_supplement_id])


class RatioRuleRecord(Base):
    """Acceptable dosage ratio band, source:target, compared as raw magnitudes."""
    __tablename__ = "ratio_rules"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    source_supplement_id = Column(String, ForeignKey("supplements.id"), nullable=False)
    target_supplement_id = Column(String, ForeignKey("supplements.id"), nullable=False)
    min_ratio = Column(Float, nullable=True)
    max_ratio = Column(Float, nullable=True)
    optimal_ratio = Column(Float, nullable=True)
    severity = Column(String, nullable=False)
    warning_message = Column(Text, nullable=False)
    research_url = Column(String, nullable=True)
    # Flag rules where taking the source alone is itself a problem (zinc without copper)
    warn_when_target_missing = Column(Boolean, default=False)

    source = relationship("Supplement", foreign_keys=[source_supplement_id])
    target = relationship("Supplement", foreign_keys=[target_supplement_id])


class TimingRuleRecord(Base):
    """Minimum separation in hours between two supplements (symmetric)."""
    __tablename__ = "timing_rules"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    source_supplement_id = Column(String, ForeignKey("supplements.id"), nullable=False)
    target_supplement_id = Column(String, ForeignKey("supplements.id"), nullable=False)
    min_hours_apart = Column(Float, nullable=False)
    severity = Column(String, nullable=False)
    reason = Column(Text, nullable=False)
    research_url = Column(String, nullable=True)

    source = relationship("Supplement", foreign_keys=[source_supplement_id])
    target = relationship("Supplement", foreign_keys=[target_supplement_id])
