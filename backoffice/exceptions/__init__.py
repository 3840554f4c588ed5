"""Custom exceptions for the back-office inventory application."""


class BackofficeError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        return rv


class ValidationError(BackofficeError):
    """Raised for malformed input; no mutation is attempted."""
    def __init__(self, message, payload=None):
        super().__init__(message, 400, payload)


class NotFoundError(BackofficeError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class ConflictError(BackofficeError):
    """Raised when a ledger row already exists for the requested key."""
    def __init__(self, message, payload=None):
        super().__init__(message, 409, payload)


class InsufficientStockError(BackofficeError):
    """Raised when an operation fails due to lack of stock."""
    def __init__(self, item_label, requested, available):
        self.requested = requested
        self.available = available
        message = f"Insufficient stock for {item_label}. Available: {available}, requested: {requested}"
        super().__init__(message, 409, {'available': available, 'requested': requested})


class NoInventoryRowError(BackofficeError):
    """Raised when negative stock is allowed but no ledger row exists to carry the deficit."""
    def __init__(self, item_label):
        message = (
            f"No inventory rows found to record negative stock for {item_label}. "
            "Create at least one inventory entry for this item to allow negative stock."
        )
        super().__init__(message, 409)


class InternalError(BackofficeError):
    """Unexpected failure (database connectivity, etc.) wrapped for the HTTP layer."""
    def __init__(self, message="Internal server error"):
        super().__init__(message, 500)


class McgApiError(BackofficeError):
    """Raised when the MCG remote API rejects or fails a call."""
    def __init__(self, message, upstream_status=None, status_code=502):
        self.upstream_status = upstream_status
        super().__init__(message, status_code, {'upstream_status': upstream_status})


class RemoteSyncItemError(BackofficeError):
    """Per-item failure inside an MCG sync run. Counted, never propagated out of the run."""
    def __init__(self, message, item=None):
        self.item = item
        super().__init__(message, 422)
