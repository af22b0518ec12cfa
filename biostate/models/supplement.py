from sqlalchemy import Column, String, DateTime
from datetime import datetime

from biostate.db.database import Base


class Supplement(Base):
    """Immutable reference data for a single supplement."""
    __tablename__ = "supplements"

    id = Column(String, primary_key=True)  # e.g., "zinc", "vitamin_d3"
    name = Column(String, nullable=False)
    form = Column(String, nullable=True)  # e.g., "picolinate", "bisglycinate"
    category = Column(String, nullable=True)  # mineral, vitamin, amino_acid, stimulant
    safety_category = Column(String, nullable=True)  # iron, vitamin-a, selenium (hard limits)
    created_at = Column(DateTime, default=datetime.utcnow)
