"""
Typed errors raised by the stockroom business rules.

Every error carries a class-level ``code`` so the HTTP layer can render a
machine-readable payload without parsing messages.

    StockroomError
    +-- ValidationError
    +-- StockError
    |   +-- InsufficientStockError
    |   +-- ConflictError
    +-- NotFoundError
    +-- PermissionDeniedError
    +-- ExternalServiceError
    |   +-- StorageError
    |   +-- AuthAdminError
    +-- LoggingError
"""


class StockroomError(Exception):
    """Base exception for all stockroom errors."""

    code: str = "STOCKROOM_ERROR"
    status_code: int = 400


class ValidationError(StockroomError):
    """A required field is missing or a value is not acceptable."""

    code: str = "VALIDATION_ERROR"
    status_code: int = 400


class StockError(StockroomError):
    """Base exception for inventory quantity errors."""

    code: str = "STOCK_ERROR"
    status_code: int = 400


class InsufficientStockError(StockError):
    """Requested quantity exceeds what is on hand."""

    code: str = "INSUFFICIENT_STOCK"
    status_code: int = 400

    def __init__(self, item_id, requested: int, available: int):
        self.item_id = item_id
        self.requested = requested
        self.available = available
        super().__init__(f"Only {available} items available in stock")


class ConflictError(StockError):
    """Stock changed between the availability check and the deduction."""

    code: str = "STOCK_CONFLICT"
    status_code: int = 409

    def __init__(self, item_id, requested: int):
        self.item_id = item_id
        self.requested = requested
        super().__init__(
            f"Inventory item {item_id} was modified concurrently; "
            f"{requested} items could not be reserved"
        )


class NotFoundError(StockroomError):
    """A referenced row does not exist."""

    code: str = "NOT_FOUND"
    status_code: int = 404

    def __init__(self, entity: str, entity_id):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class PermissionDeniedError(StockroomError):
    """The caller's role does not allow the operation."""

    code: str = "PERMISSION_DENIED"
    status_code: int = 403


class ExternalServiceError(StockroomError):
    """Base exception for failures of external collaborators."""

    code: str = "EXTERNAL_SERVICE_ERROR"
    status_code: int = 502


class StorageError(ExternalServiceError):
    """Object storage upload, download or delete failed."""

    code: str = "STORAGE_ERROR"


class AuthAdminError(ExternalServiceError):
    """The authentication admin API rejected or failed a request."""

    code: str = "AUTH_ADMIN_ERROR"


class LoggingError(StockroomError):
    """Activity log write failed. Never shown to users."""

    code: str = "LOGGING_ERROR"
