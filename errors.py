from typing import Dict, Optional


class FarmOpsError(Exception):
    """Base error. ``message`` is safe to show to the user as-is."""

    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidIdentifier(FarmOpsError, ValueError):
    def __init__(self, value, field: Optional[str] = None):
        label = field or "ID"
        super().__init__(f"Invalid {label}: must be a positive number (got {value!r})")
        self.value = value
        self.field = field


class ValidationError(FarmOpsError):
    def __init__(self, field_errors: Dict[str, str], message: Optional[str] = None):
        self.field_errors = dict(field_errors)
        if message is None:
            message = "; ".join(f"{k}: {v}" for k, v in self.field_errors.items()) or "Invalid data"
        super().__init__(message)


class NotFound(FarmOpsError):
    def __init__(self, kind: str, record_id):
        super().__init__(f"{kind} with ID {record_id} not found")
        self.kind = kind
        self.record_id = record_id


class OutOfRangeError(FarmOpsError):
    def __init__(self, value, maximum):
        super().__init__(f"Stock amount must be between 0 and {maximum} (got {value})")
        self.value = value
        self.maximum = maximum


class StoreError(FarmOpsError):
    retryable = True
