from sqlalchemy import Column, Integer, ForeignKey, Numeric, Date, DateTime, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from pharmastock.db.base import Base


class Batch(Base):
    """
    One purchase of a medicine (a "stock history" entry).

    INVARIANTS:
    - purchased_quantity > 0 and never changes after creation
    - 0 <= available_quantity <= purchased_quantity
    - available_quantity only decreases, through sale submission
    """
    __tablename__ = "batches"
    __table_args__ = (
        CheckConstraint("purchased_quantity > 0", name="ck_batch_purchased_positive"),
        CheckConstraint("available_quantity >= 0", name="ck_batch_available_non_negative"),
        CheckConstraint("available_quantity <= purchased_quantity", name="ck_batch_available_ceiling"),
        CheckConstraint("unit_price >= 0", name="ck_batch_price_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    medicine_id = Column(Integer, ForeignKey("medicines.id", ondelete="CASCADE"), nullable=False, index=True)
    expiration_date = Column(Date, nullable=False)
    purchased_quantity = Column(Integer, nullable=False)
    available_quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    medicine = relationship("Medicine", back_populates="batches")
