from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from pharmastock.db.base import Base


class Medicine(Base):
    """
    Catalog entry for one named medicine.

    NOTE:
    - Names are matched case-insensitively; uniqueness is a convention checked
      by the repository on create, not a database constraint.
    - Batches are owned by the medicine (cascade delete only ever happens for
      disabled medicines without sold history).
    """
    __tablename__ = "medicines"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=True)
    manufacturer = Column(String(255), nullable=True)
    enabled = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    batches = relationship(
        "Batch",
        back_populates="medicine",
        cascade="all, delete-orphan",
        order_by="Batch.expiration_date",
    )
