"""FastAPI dependencies: DB session, the inventory repository, day ranges."""
from datetime import date
from typing import Generator, Optional, Tuple

from fastapi import Depends, Query
from sqlalchemy.orm import Session

from pharmastock.core.exceptions import BusinessError
from pharmastock.db.session import SessionLocal
from pharmastock.services.repository import InventoryRepository


def get_db() -> Generator[Session, None, None]:
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_repository(db: Session = Depends(get_db)) -> InventoryRepository:
    return InventoryRepository(db)


def get_date_range(
    from_date: Optional[date] = Query(None, description="First day included (yyyy-mm-dd)"),
    to_date: Optional[date] = Query(None, description="Last day included (yyyy-mm-dd)"),
) -> Tuple[Optional[date], Optional[date]]:
    """Inclusive day range shared by the history and report endpoints."""
    if from_date and to_date and from_date > to_date:
        raise BusinessError.bad_request("from_date must not be after to_date")
    return from_date, to_date
