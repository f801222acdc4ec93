"""
INVENTORY REPOSITORY (persistence collaborator)

The only place that reads or writes stock rows. The engine modules
(batch_selector, allocation, sale_composer, bulk_import) call these
operations and nothing else; they are the suspension points where I/O can
block or fail.

HARD RULES:
- Batch creation is additive: a new batch starts with
  available_quantity == purchased_quantity, no read-modify-write.
- submit_sale() is the authoritative stock check. Batch rows are re-read
  with SELECT ... FOR UPDATE (where the backend supports it), then decremented
  with a guarded UPDATE (available_quantity >= requested) inside one
  transaction; if any guard fails the whole sale is rolled back and
  InsufficientStock is raised.
- Driver and connection failures surface as CollaboratorUnavailable,
  out-of-range numbers as InvalidQuantity. Nothing is retried here.
"""
import logging
from collections import defaultdict
from contextlib import contextmanager
from datetime import date, datetime, time, timedelta
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import InterfaceError, OperationalError, StatementError
from sqlalchemy.orm import Session, selectinload

from pharmastock.core.audit import AuditLog
from pharmastock.core.exceptions import (
    CollaboratorUnavailable,
    DuplicateName,
    EmptySale,
    InsufficientStock,
    InvalidQuantity,
    InventoryError,
    MalformedRow,
    NotFound,
    ProtectedHistory,
)
from pharmastock.models.batch import Batch
from pharmastock.models.medicine import Medicine
from pharmastock.models.sale import Sale, SaleItem
from pharmastock.services.allocation import validate
from pharmastock.services.batch_selector import select_batches
from pharmastock.services.sale_composer import PaymentMode, PendingSaleLine, line_total, to_currency
from pharmastock.services.stock_ledger import has_cent_precision, new_batch_fields, sold_quantity

logger = logging.getLogger(__name__)

MATCH_MODES = ("contains", "startsWith")


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _day_bounds(from_date: Optional[date], to_date: Optional[date]):
    """Inclusive calendar-day range as [start, end) datetimes. Either side may be open."""
    if from_date and to_date and from_date > to_date:
        raise ValueError("from_date must not be after to_date")
    start = datetime.combine(from_date, time.min) if from_date else None
    end = datetime.combine(to_date + timedelta(days=1), time.min) if to_date else None
    return start, end


def _clean(value) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


class InventoryRepository:
    """SQLAlchemy-backed store for medicines, batches and sales."""

    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def _storage(self):
        """Roll back on any failure; translate driver errors into engine errors."""
        try:
            yield
        except (OperationalError, InterfaceError) as exc:
            self.db.rollback()
            logger.error(f"Storage failure: {type(exc).__name__}: {exc}")
            raise CollaboratorUnavailable("Inventory storage is unavailable") from exc
        except StatementError as exc:
            # IntegrityError, DataError and other driver-level rejections
            self.db.rollback()
            logger.error(f"Storage rejected statement: {type(exc).__name__}: {exc}")
            raise CollaboratorUnavailable("Inventory storage rejected the operation") from exc
        except OverflowError as exc:
            self.db.rollback()
            logger.warning(f"Value out of storage range: {exc}")
            raise InvalidQuantity("Numeric value is out of range") from exc
        except Exception:
            self.db.rollback()
            raise

    # ============================================================
    # READS
    # ============================================================

    def get_medicine(self, medicine_id: int) -> Medicine:
        with self._storage():
            medicine = self.db.get(Medicine, medicine_id)
        if medicine is None:
            raise NotFound("Medicine", medicine_id)
        return medicine

    def fetch_medicines(self, include_disabled: bool = True) -> List[Medicine]:
        with self._storage():
            q = self.db.query(Medicine)
            if not include_disabled:
                q = q.filter(Medicine.enabled.is_(True))
            return q.order_by(Medicine.name, Medicine.id).all()

    def search_medicines_by_name(self, term: str, match_mode: str = "contains") -> List[Medicine]:
        """Case-insensitive name search. match_mode: "startsWith" or "contains"."""
        if match_mode not in MATCH_MODES:
            raise ValueError(f"match_mode must be one of {MATCH_MODES}")
        term = (term or "").strip()
        if not term:
            return []

        escaped = _escape_like(term)
        pattern = f"{escaped}%" if match_mode == "startsWith" else f"%{escaped}%"
        with self._storage():
            return (
                self.db.query(Medicine)
                .filter(Medicine.name.ilike(pattern, escape="\\"))
                .order_by(Medicine.name, Medicine.id)
                .all()
            )

    def fetch_batch(self, batch_id: int) -> Batch:
        with self._storage():
            # populate_existing: always read the live available_quantity
            batch = self.db.get(Batch, batch_id, populate_existing=True)
        if batch is None:
            raise NotFound("Batch", batch_id)
        return batch

    def fetch_batches(self, medicine_id: int, include_exhausted: bool = False) -> List[Batch]:
        """Batches of one medicine in FEFO order."""
        self.get_medicine(medicine_id)
        with self._storage():
            q = self.db.query(Batch).filter(Batch.medicine_id == medicine_id).populate_existing()
            if not include_exhausted:
                q = q.filter(Batch.available_quantity > 0)
            return select_batches(q.all(), include_exhausted=include_exhausted)

    def fetch_stock(self, include_exhausted: bool = False) -> List[Tuple[Medicine, List[Batch]]]:
        """Every medicine with its batches (FEFO order), sorted by name."""
        with self._storage():
            medicines = (
                self.db.query(Medicine)
                .options(selectinload(Medicine.batches))
                .order_by(Medicine.name, Medicine.id)
                .all()
            )
        return [(m, select_batches(m.batches, include_exhausted=include_exhausted)) for m in medicines]

    def list_sales(
        self,
        limit: Optional[int] = 100,
        offset: int = 0,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
    ) -> List[Sale]:
        """Sales newest first, optionally limited to the days from_date..to_date (inclusive)."""
        start, end = _day_bounds(from_date, to_date)
        with self._storage():
            q = self.db.query(Sale).options(selectinload(Sale.items).selectinload(SaleItem.medicine))
            if start is not None:
                q = q.filter(Sale.created_at >= start)
            if end is not None:
                q = q.filter(Sale.created_at < end)
            return (
                q.order_by(Sale.created_at.desc(), Sale.id.desc())
                .offset(offset)
                .limit(limit)
                .all()
            )

    def list_purchases(
        self,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
    ) -> List[Batch]:
        """Purchase history: batches received in the day range, newest first."""
        start, end = _day_bounds(from_date, to_date)
        with self._storage():
            q = self.db.query(Batch).options(selectinload(Batch.medicine))
            if start is not None:
                q = q.filter(Batch.created_at >= start)
            if end is not None:
                q = q.filter(Batch.created_at < end)
            return q.order_by(Batch.created_at.desc(), Batch.id.desc()).all()

    def get_sale(self, sale_id: int) -> Sale:
        with self._storage():
            sale = self.db.get(Sale, sale_id)
        if sale is None:
            raise NotFound("Sale", sale_id)
        return sale

    # ============================================================
    # CATALOG WRITES
    # ============================================================

    def _medicine_from_fields(self, fields: dict) -> Medicine:
        name = _clean(fields.get("name"))
        if not name:
            raise MalformedRow("Medicine name cannot be empty")

        existing = (
            self.db.query(Medicine.id)
            .filter(func.lower(Medicine.name) == name.lower())
            .first()
        )
        if existing:
            raise DuplicateName(name)

        enabled = fields.get("enabled")
        return Medicine(
            name=name,
            description=_clean(fields.get("description")),
            manufacturer=_clean(fields.get("manufacturer")),
            enabled=True if enabled is None else bool(enabled),
        )

    @staticmethod
    def _batch_from_fields(fields: dict) -> Batch:
        price = fields.get("unit_price", fields.get("price"))
        return Batch(**new_batch_fields(fields.get("expiration_date"), fields.get("quantity"), price))

    def create_medicine(self, fields: dict) -> Medicine:
        """Raises DuplicateName if a medicine with the same name (any case) exists."""
        with self._storage():
            medicine = self._medicine_from_fields(fields)
            self.db.add(medicine)
            self.db.commit()
            self.db.refresh(medicine)

        AuditLog.log_action("create", "medicine", medicine.id, changes={"name": medicine.name})
        return medicine

    def create_medicine_with_batch(self, medicine_fields: dict, batch_fields: dict) -> Tuple[Medicine, Batch]:
        """Medicine and its first batch in one transaction. Same duplicate rule as create_medicine."""
        with self._storage():
            medicine = self._medicine_from_fields(medicine_fields)
            batch = self._batch_from_fields(batch_fields)
            medicine.batches.append(batch)
            self.db.add(medicine)
            self.db.commit()
            self.db.refresh(medicine)
            self.db.refresh(batch)

        AuditLog.log_action("create", "medicine", medicine.id, changes={"name": medicine.name})
        AuditLog.log_action(
            "create", "batch", batch.id,
            changes={"medicine_id": medicine.id, "quantity": batch.purchased_quantity},
        )
        return medicine, batch

    def create_batch(self, medicine_id: int, batch_fields: dict) -> Batch:
        medicine = self.get_medicine(medicine_id)
        with self._storage():
            batch = self._batch_from_fields(batch_fields)
            batch.medicine_id = medicine.id
            self.db.add(batch)
            self.db.commit()
            self.db.refresh(batch)

        AuditLog.log_action(
            "create", "batch", batch.id,
            changes={"medicine_id": medicine.id, "quantity": batch.purchased_quantity},
        )
        return batch

    def set_enabled(self, medicine_id: int, enabled: bool) -> Medicine:
        medicine = self.get_medicine(medicine_id)
        with self._storage():
            medicine.enabled = bool(enabled)
            self.db.commit()
            self.db.refresh(medicine)

        AuditLog.log_action("enable" if enabled else "disable", "medicine", medicine.id)
        return medicine

    def _has_sales(self, **criteria) -> bool:
        return self.db.query(SaleItem.id).filter_by(**criteria).first() is not None

    def delete_medicine(self, medicine_id: int) -> None:
        """Only disabled medicines with no sold history can be removed."""
        medicine = self.get_medicine(medicine_id)
        if medicine.enabled:
            raise ProtectedHistory(f"Medicine '{medicine.name}' must be disabled before deletion")

        with self._storage():
            if any(sold_quantity(b) > 0 for b in medicine.batches) or self._has_sales(medicine_id=medicine.id):
                raise ProtectedHistory(f"Medicine '{medicine.name}' has sales history and cannot be deleted")
            name = medicine.name
            self.db.delete(medicine)
            self.db.commit()

        AuditLog.log_action("delete", "medicine", medicine_id, changes={"name": name})

    def delete_batch(self, batch_id: int) -> None:
        """Only batches nothing has been sold from can be removed."""
        batch = self.fetch_batch(batch_id)
        with self._storage():
            if sold_quantity(batch) > 0 or self._has_sales(batch_id=batch.id):
                raise ProtectedHistory(f"Batch {batch.id} has sales history and cannot be deleted")
            medicine_id = batch.medicine_id
            self.db.delete(batch)
            self.db.commit()

        AuditLog.log_action("delete", "batch", batch_id, changes={"medicine_id": medicine_id})

    # ============================================================
    # SALES
    # ============================================================

    def _decrement(self, batch_id: int, quantity: int) -> bool:
        updated = (
            self.db.query(Batch)
            .filter(Batch.id == batch_id, Batch.available_quantity >= quantity)
            .update(
                {Batch.available_quantity: Batch.available_quantity - quantity},
                synchronize_session=False,
            )
        )
        return updated == 1

    def submit_sale(self, payload: dict) -> Sale:
        """
        Persist a sale built by sale_composer.to_submission_payload().

        Raises:
            EmptySale: no items
            NotFound: unknown batch, or batch not belonging to the item's medicine
            InvalidQuantity / InsufficientStock: server-side quantities disagree
        """
        items = payload.get("items") or []
        if not items:
            raise EmptySale()

        mode = PaymentMode(payload.get("payment_mode") or PaymentMode.CASH)
        requested = defaultdict(int)

        with self._storage():
            try:
                batch_ids = sorted({item["batch_id"] for item in items})
                batches = {
                    b.id: b
                    for b in (
                        self.db.query(Batch)
                        .filter(Batch.id.in_(batch_ids))
                        .populate_existing()
                        .with_for_update()
                        .all()
                    )
                }

                sale = Sale(
                    customer=_clean(payload.get("customer")),
                    payment_mode=mode.value,
                    payment_reference=_clean(payload.get("payment_reference")) if mode == PaymentMode.UPI else None,
                )
                total = 0
                for item in items:
                    batch = batches.get(item["batch_id"])
                    if batch is None or batch.medicine_id != item["medicine_id"]:
                        raise NotFound("Batch", item["batch_id"])

                    quantity = item["quantity"]
                    validate(batch, quantity, requested[batch.id])
                    requested[batch.id] += quantity

                    line = PendingSaleLine(
                        medicine_id=batch.medicine_id,
                        batch_id=batch.id,
                        quantity=quantity,
                        unit_price=item["price"],
                        expiration_date=item.get("expiration_date") or batch.expiration_date,
                        discount_percent=item.get("discount") or 0,
                    )
                    if not has_cent_precision(line.unit_price):
                        raise InvalidQuantity(f"Price for batch {batch.id} cannot have more than 2 decimal places")
                    amount = line_total(line)
                    total += amount
                    sale.items.append(
                        SaleItem(
                            medicine_id=line.medicine_id,
                            batch_id=line.batch_id,
                            quantity=line.quantity,
                            unit_price=line.unit_price,
                            expiration_date=line.expiration_date,
                            discount_percent=line.discount_percent,
                            line_total=to_currency(amount),
                        )
                    )

                for batch_id, quantity in requested.items():
                    if not self._decrement(batch_id, quantity):
                        live = self.db.query(Batch.available_quantity).filter(Batch.id == batch_id).scalar()
                        raise InsufficientStock(requested_total=quantity, available=int(live or 0), batch_id=batch_id)

                sale.total_amount = to_currency(total)
                self.db.add(sale)
                self.db.commit()
                self.db.refresh(sale)
            except InventoryError as exc:
                AuditLog.log_sale_rejected(exc.code, details=exc.to_dict())
                raise

        AuditLog.log_sale(sale.id, sale.payment_mode, sale.total_amount, item_count=len(sale.items))
        return sale
