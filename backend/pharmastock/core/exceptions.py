"""
Inventory error taxonomy and its HTTP mapping.

Every failure in the allocation/reconciliation engine is a typed
InventoryError the caller can act on. Nothing here is fatal to the process.

The HTTP layer converts domain errors with BusinessError.from_domain().
Quantity errors carry exact numbers so clients can render precise messages.
"""
from fastapi import HTTPException, status
import logging

logger = logging.getLogger(__name__)


# ============================================================
# DOMAIN ERRORS
# ============================================================

class InventoryError(Exception):
    """Base class for all engine errors."""

    code = "inventory_error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class InvalidQuantity(InventoryError):
    code = "invalid_quantity"


class InsufficientStock(InventoryError):
    """
    Requested total exceeds the available ceiling of a batch.

    requested_total includes quantities already allocated to the same batch
    in the pending sale.
    """

    code = "insufficient_stock"

    def __init__(self, requested_total: int, available: int, batch_id=None, message: str = ""):
        self.requested_total = requested_total
        self.available = available
        self.batch_id = batch_id
        super().__init__(
            message
            or f"Insufficient stock in batch {batch_id}. "
               f"Requested: {requested_total}, Available: {available}"
        )

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update(
            batch_id=self.batch_id,
            requested_total=self.requested_total,
            available=self.available,
        )
        return data


class AllocationRejected(InventoryError):
    """A multi-line add was rejected as a whole. One error per offending batch."""

    code = "allocation_rejected"

    def __init__(self, errors: dict):
        self.errors = errors
        batches = ", ".join(str(b) for b in errors)
        super().__init__(f"Allocation rejected for batch(es): {batches}")

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["errors"] = [err.to_dict() for err in self.errors.values()]
        return data


class DuplicateName(InventoryError):
    code = "duplicate_name"

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Medicine '{name}' already exists")


class MalformedRow(InventoryError):
    code = "malformed_row"


class EmptySale(InventoryError):
    code = "empty_sale"

    def __init__(self, message: str = "Please add at least one item to the sale"):
        super().__init__(message)


class NotFound(InventoryError):
    code = "not_found"

    def __init__(self, resource: str, identifier=None):
        self.resource = resource
        self.identifier = identifier
        suffix = f" {identifier}" if identifier is not None else ""
        super().__init__(f"{resource}{suffix} not found")


class ProtectedHistory(InventoryError):
    """Deletion refused because sold quantities reference the record."""

    code = "protected_history"


class CollaboratorUnavailable(InventoryError):
    """Transport/storage level failure. Opaque to the engine, never retried here."""

    code = "collaborator_unavailable"


# ============================================================
# HTTP MAPPING
# ============================================================

class BusinessError:
    """HTTP exceptions with safe (non-leaky) messages."""

    @staticmethod
    def not_found(resource: str = "Resource", reason: str = "") -> HTTPException:
        if reason:
            logger.warning(f"Not found: {resource} - {reason}")
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{resource} not found",
        )

    @staticmethod
    def bad_request(detail) -> HTTPException:
        """
        400 for input validation / business logic errors.

        OK to include specific details here since the caller caused the issue.
        """
        logger.info(f"Bad request: {detail}")
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
        )

    @staticmethod
    def conflict(detail) -> HTTPException:
        """409 for resource conflicts (duplicate names, depleted batches)."""
        logger.info(f"Conflict: {detail}")
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
        )

    @staticmethod
    def unavailable(original_error: Exception = None) -> HTTPException:
        """
        503 - storage backend unreachable.

        Logs the actual error internally, hides it from the caller.
        """
        if original_error:
            logger.error(
                f"Storage unavailable: {type(original_error).__name__}: {str(original_error)}",
                exc_info=True
            )
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Inventory storage is unavailable. Please try again later.",
        )

    @staticmethod
    def from_domain(error: InventoryError) -> HTTPException:
        """Map an engine error onto the matching HTTP status."""
        if isinstance(error, NotFound):
            return BusinessError.not_found(error.resource, reason=error.message)
        if isinstance(error, CollaboratorUnavailable):
            return BusinessError.unavailable(error)
        if isinstance(error, (InsufficientStock, AllocationRejected, DuplicateName, ProtectedHistory)):
            return BusinessError.conflict(error.to_dict())
        return BusinessError.bad_request(error.to_dict())
