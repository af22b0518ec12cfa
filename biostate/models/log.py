from sqlalchemy import Column, String, DateTime, Float, ForeignKey, Index
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid

from biostate.db.database import Base


class SupplementLog(Base):
    """
    A single logged intake. Written by the logging flow and never mutated
    in place; deleting a row is the only correction.
    """
    __tablename__ = "supplement_logs"
    __table_args__ = (
        Index("supplement_logs_user_time_idx", "user_id", "logged_at"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, nullable=False)
    supplement_id = Column(String, ForeignKey("supplements.id"), nullable=False)
    dosage = Column(Float, nullable=False)
    unit = Column(String, nullable=False)  # mg, mcg, g, IU, ml
    logged_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    # Relationships
    supplement = relationship("Supplement")
