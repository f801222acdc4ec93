"""
BULK RECONCILIATION IMPORTER

Turns an uploaded CSV into medicines and batches. Each data row walks the
same state machine and ends as Success(outcome) or Failed(reason):

    PARSE      split into ordered fields; catalog rows need name,
               description and manufacturer
    CLASSIFY   all stock fields present -> medicine + batch
               none present             -> medicine only
               some present             -> Failed
    NORMALIZE  dd-mm-yyyy -> date, quantity -> positive int,
               price -> positive Decimal with at most 2 decimal places,
               expiry must not be in the past
    UPSERT     medicine only  -> create_medicine
               medicine+batch -> create_medicine_with_batch, and on
               DuplicateName exactly one alternate action: find the
               existing medicine by exact (case-insensitive) name and
               create_batch against it

Rows share no mutable state. A bad row never aborts the run, whatever the
repository raises; the report always covers every row. An undecodable file
is reported as a single failed "file" row.

Accepted headers:
    Name,Description,Manufacture,ExpirationDate,Quantity,Price   (catalog)
    Medicine Name,Expiration Date,Quantity,Price                  (stock only)
"""
import csv
import io
import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import List, Optional, Tuple, Union

from pharmastock.core.audit import AuditLog
from pharmastock.core.config import settings
from pharmastock.core.exceptions import DuplicateName, InventoryError, MalformedRow
from pharmastock.services.stock_ledger import MAX_QUANTITY, MAX_UNIT_PRICE, has_cent_precision

logger = logging.getLogger(__name__)

CATALOG_HEADER = ("Name", "Description", "Manufacture", "ExpirationDate", "Quantity", "Price")
STOCK_HEADER = ("Medicine Name", "Expiration Date", "Quantity", "Price")

NO_VALID_DATA = "no valid data"
NOT_UTF8 = "file is not valid UTF-8"
MISSING_REQUIRED = "missing required fields"
EXPIRED = "expiration date in the past"


class ImportFormat(str, Enum):
    CATALOG = "catalog"
    STOCK = "stock"


class RowOutcome(str, Enum):
    CREATED_WITH_BATCH = "created_with_batch"
    CREATED_WITHOUT_BATCH = "created_without_batch"
    BATCH_APPENDED = "batch_appended"
    FAILED = "failed"


@dataclass(frozen=True)
class ImportRow:
    """One parsed, not-yet-committed CSV data row."""
    row_number: int
    name: Optional[str]
    description: Optional[str] = None
    manufacturer: Optional[str] = None
    raw_expiration: Optional[str] = None
    raw_quantity: Optional[str] = None
    raw_price: Optional[str] = None
    # filled in by normalize_row()
    expiration_date: Optional[date] = None
    quantity: Optional[int] = None
    price: Optional[Decimal] = None

    @property
    def identifier(self) -> str:
        return self.name or f"row {self.row_number}"

    @property
    def stock_fields(self) -> Tuple[Optional[str], ...]:
        return (self.raw_expiration, self.raw_quantity, self.raw_price)

    @property
    def has_stock(self) -> bool:
        return all(self.stock_fields)

    def medicine_fields(self) -> dict:
        return {"name": self.name, "description": self.description, "manufacturer": self.manufacturer}

    def batch_fields(self) -> dict:
        return {"expiration_date": self.expiration_date, "quantity": self.quantity, "unit_price": self.price}


@dataclass(frozen=True)
class RowResult:
    row_number: int
    identifier: str
    outcome: RowOutcome
    reason: Optional[str] = None
    medicine_id: Optional[int] = None
    batch_id: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome != RowOutcome.FAILED

    def to_dict(self) -> dict:
        return {
            "row": self.row_number,
            "name": self.identifier,
            "outcome": self.outcome.value,
            "reason": self.reason,
            "medicine_id": self.medicine_id,
            "batch_id": self.batch_id,
        }


@dataclass
class ImportReport:
    format: ImportFormat
    results: List[RowResult] = field(default_factory=list)

    def _count(self, outcome: RowOutcome) -> int:
        return sum(1 for r in self.results if r.outcome == outcome)

    @property
    def created_with_batch(self) -> int:
        return self._count(RowOutcome.CREATED_WITH_BATCH)

    @property
    def created_without_batch(self) -> int:
        return self._count(RowOutcome.CREATED_WITHOUT_BATCH)

    @property
    def batch_appended(self) -> int:
        return self._count(RowOutcome.BATCH_APPENDED)

    @property
    def failures(self) -> List[Tuple[str, str]]:
        return [(r.identifier, r.reason) for r in self.results if not r.succeeded]

    @property
    def total_success(self) -> int:
        return sum(1 for r in self.results if r.succeeded)

    def summary(self) -> dict:
        return {
            "format": self.format.value,
            "created_with_batch": self.created_with_batch,
            "created_without_batch": self.created_without_batch,
            "batch_appended": self.batch_appended,
            "failed": len(self.failures),
        }

    def to_dict(self) -> dict:
        data = self.summary()
        data["total_success"] = self.total_success
        data["failures"] = [{"name": name, "reason": reason} for name, reason in self.failures]
        data["rows"] = [r.to_dict() for r in self.results]
        return data


def _failed(row: ImportRow, reason: str) -> RowResult:
    return RowResult(row.row_number, row.identifier, RowOutcome.FAILED, reason=reason)


def _file_failure(fmt: ImportFormat, reason: str) -> ImportReport:
    """Report for a file that yields no rows at all."""
    return ImportReport(fmt, [RowResult(0, "file", RowOutcome.FAILED, reason=reason)])


def _cell(values: List[str], index: int) -> Optional[str]:
    if index >= len(values):
        return None
    value = values[index].strip()
    return value or None


def _is_header(values: List[str], header: Tuple[str, ...]) -> bool:
    cells = [v.strip().lower() for v in values[:len(header)]]
    return cells == [h.lower() for h in header]


# ============================================================
# PARSE
# ============================================================

def parse_csv(content: Union[str, bytes]) -> Tuple[ImportFormat, List[ImportRow]]:
    """
    Split CSV content into rows. The first non-blank line is the header
    and selects the format; blank lines are skipped.
    """
    if isinstance(content, bytes):
        try:
            content = content.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise MalformedRow(NOT_UTF8) from exc

    # (line number, cells); row numbers in the report are physical lines
    reader = csv.reader(io.StringIO(content))
    try:
        records = [(reader.line_num, r) for r in reader if any(cell.strip() for cell in r)]
    except csv.Error as exc:
        raise MalformedRow(f"unreadable CSV at line {reader.line_num}: {exc}") from exc
    if not records:
        return ImportFormat.CATALOG, []

    header, data = records[0][1], records[1:]
    fmt = ImportFormat.STOCK if _is_header(header, STOCK_HEADER) else ImportFormat.CATALOG
    if fmt == ImportFormat.CATALOG and not _is_header(header, CATALOG_HEADER):
        logger.warning(f"Unrecognised import header {header!r}; reading rows as catalog format")

    rows = []
    for offset, values in data:
        if fmt == ImportFormat.STOCK:
            rows.append(ImportRow(
                row_number=offset,
                name=_cell(values, 0),
                raw_expiration=_cell(values, 1),
                raw_quantity=_cell(values, 2),
                raw_price=_cell(values, 3),
            ))
        else:
            rows.append(ImportRow(
                row_number=offset,
                name=_cell(values, 0),
                description=_cell(values, 1),
                manufacturer=_cell(values, 2),
                raw_expiration=_cell(values, 3),
                raw_quantity=_cell(values, 4),
                raw_price=_cell(values, 5),
            ))
    return fmt, rows


# ============================================================
# CLASSIFY + NORMALIZE
# ============================================================

def classify_row(row: ImportRow, fmt: ImportFormat) -> None:
    """Raise MalformedRow unless the row has its identity and a coherent set of stock fields."""
    if fmt == ImportFormat.STOCK:
        if not row.name:
            raise MalformedRow(MISSING_REQUIRED)
        if not row.has_stock:
            raise MalformedRow(f"Stock details are required for {row.identifier}")
        return

    if not (row.name and row.description and row.manufacturer):
        raise MalformedRow(MISSING_REQUIRED)

    present = [bool(v) for v in row.stock_fields]
    if any(present) and not all(present):
        raise MalformedRow(
            f"Incomplete stock details for {row.name}: expiration date, quantity and price are all required"
        )


def parse_expiration(value: str) -> date:
    return datetime.strptime(value.strip(), settings.IMPORT_DATE_FORMAT).date()


def normalize_row(row: ImportRow, today: date) -> ImportRow:
    """Return a copy with canonical date, quantity and price. Only for stock rows."""
    if not row.has_stock:
        return row

    try:
        expiration = parse_expiration(row.raw_expiration)
    except ValueError:
        raise MalformedRow(f"Invalid expiration date for {row.name}: expected dd-mm-yyyy")

    quantity_text = row.raw_quantity.strip()
    if not (quantity_text.isascii() and quantity_text.isdigit()):
        raise MalformedRow(f"Invalid quantity for {row.name}: must be a positive whole number")
    quantity = int(quantity_text)
    if not 0 < quantity <= MAX_QUANTITY:
        raise MalformedRow(f"Invalid quantity for {row.name}: must be between 1 and {MAX_QUANTITY}")

    try:
        price = Decimal(row.raw_price.strip())
    except InvalidOperation:
        raise MalformedRow(f"Invalid price for {row.name}: must be a positive number")
    if not price.is_finite() or price <= 0:
        raise MalformedRow(f"Invalid price for {row.name}: must be a positive number")
    if price > MAX_UNIT_PRICE or not has_cent_precision(price):
        raise MalformedRow(f"Invalid price for {row.name}: at most {MAX_UNIT_PRICE} with 2 decimal places")

    if expiration < today:
        raise MalformedRow(EXPIRED)

    return replace(row, expiration_date=expiration, quantity=quantity, price=price)


# ============================================================
# UPSERT
# ============================================================

def _find_exact(repository, name: str):
    wanted = name.strip().lower()
    for medicine in repository.search_medicines_by_name(name, "startsWith"):
        if medicine.name.strip().lower() == wanted:
            return medicine
    return None


def upsert_row(row: ImportRow, repository) -> RowResult:
    if not row.has_stock:
        try:
            medicine = repository.create_medicine(row.medicine_fields())
        except InventoryError as exc:
            return _failed(row, exc.message)
        return RowResult(row.row_number, row.identifier, RowOutcome.CREATED_WITHOUT_BATCH, medicine_id=medicine.id)

    try:
        medicine, batch = repository.create_medicine_with_batch(row.medicine_fields(), row.batch_fields())
        return RowResult(
            row.row_number, row.identifier, RowOutcome.CREATED_WITH_BATCH,
            medicine_id=medicine.id, batch_id=batch.id,
        )
    except DuplicateName as exc:
        duplicate = exc
    except InventoryError as exc:
        return _failed(row, exc.message)

    # Alternate action: append a batch to the medicine that already exists
    try:
        existing = _find_exact(repository, row.name)
        if existing is None:
            return _failed(row, duplicate.message)
        batch = repository.create_batch(existing.id, row.batch_fields())
    except InventoryError as exc:
        return _failed(row, exc.message)

    return RowResult(
        row.row_number, row.identifier, RowOutcome.BATCH_APPENDED,
        medicine_id=existing.id, batch_id=batch.id,
    )


def process_row(row: ImportRow, fmt: ImportFormat, repository, today: date) -> RowResult:
    try:
        classify_row(row, fmt)
        row = normalize_row(row, today)
    except MalformedRow as exc:
        return _failed(row, exc.message)

    try:
        return upsert_row(row, repository)
    except Exception as exc:
        # Not a typed engine error: report it against this row and keep going
        logger.exception(f"Import row {row.row_number} ({row.identifier}) failed unexpectedly")
        return _failed(row, f"unexpected error: {type(exc).__name__}")


def import_csv(content: Union[str, bytes], repository, today: Optional[date] = None) -> ImportReport:
    """Reconcile an uploaded CSV against the catalog. Always returns a full report."""
    today = today or date.today()
    try:
        fmt, rows = parse_csv(content)
    except MalformedRow as exc:
        report = _file_failure(ImportFormat.CATALOG, exc.message)
    else:
        if rows:
            report = ImportReport(fmt, [process_row(row, fmt, repository, today) for row in rows])
        else:
            report = _file_failure(fmt, NO_VALID_DATA)

    logger.info(f"Import finished: {report.summary()}")
    AuditLog.log_import(report.summary())
    return report
