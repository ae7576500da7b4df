"""
Error taxonomy shared by the stores, the order service and the API layer.

Business failures are raised as ``ShopError`` subclasses. Each one carries an
``ErrorKind``; the HTTP layer turns a kind into a status code through
``STATUS_BY_KIND`` and never inspects message text.
"""
import enum
from typing import Any, Dict

class ErrorKind(str, enum.Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    INSUFFICIENT_STOCK = "insufficient_stock"
    CONFLICT = "conflict"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    TIMEOUT = "timeout"
    TRANSIENT = "transient"

STATUS_BY_KIND: Dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INSUFFICIENT_STOCK: 400,
    ErrorKind.CONFLICT: 409,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.TIMEOUT: 503,
    ErrorKind.TRANSIENT: 503,
}

TITLE_BY_KIND: Dict[ErrorKind, str] = {
    ErrorKind.VALIDATION: "Validation error",
    ErrorKind.NOT_FOUND: "Not found",
    ErrorKind.INSUFFICIENT_STOCK: "Insufficient stock",
    ErrorKind.CONFLICT: "Conflict",
    ErrorKind.UNAUTHORIZED: "Access denied",
    ErrorKind.FORBIDDEN: "Access denied",
    ErrorKind.TIMEOUT: "Timeout",
    ErrorKind.TRANSIENT: "Service unavailable",
}

class ShopError(Exception):
    kind: ErrorKind = ErrorKind.VALIDATION
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def status_code(self) -> int:
        return STATUS_BY_KIND[self.kind]

    def to_dict(self) -> Dict[str, Any]:
        return {"error": TITLE_BY_KIND[self.kind], "message": self.message}

class ValidationError(ShopError):
    kind = ErrorKind.VALIDATION

class NotFound(ShopError):
    kind = ErrorKind.NOT_FOUND

    def __init__(self, entity: str, entity_id: Any, message: str | None = None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(
            message
            or f"{entity.capitalize()} with ID {entity_id} does not exist or you do not have access to it"
        )

class InsufficientStock(ShopError):
    kind = ErrorKind.INSUFFICIENT_STOCK

    def __init__(self, product_id: int, product_name: str, available: int, requested: int):
        self.product_id = product_id
        self.product_name = product_name
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient stock for product {product_name}. "
            f"Available: {available}, Requested: {requested}"
        )

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body.update(
            product_id=self.product_id,
            available=self.available,
            requested=self.requested,
        )
        return body

class Conflict(ShopError):
    kind = ErrorKind.CONFLICT

class Unauthorized(ShopError):
    kind = ErrorKind.UNAUTHORIZED

class Forbidden(ShopError):
    kind = ErrorKind.FORBIDDEN

class StoreTimeout(ShopError):
    kind = ErrorKind.TIMEOUT
    retryable = True

class TransientStoreError(ShopError):
    kind = ErrorKind.TRANSIENT
    retryable = True
