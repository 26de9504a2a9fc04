"""
Exception hierarchy for the scoring service.

    DirectRentError (base)
    ├── ValidationError      -> HTTP 400, raised before any engine runs
    ├── ModelError
    │   ├── ModelNotFoundError
    │   └── PredictionError
    └── StoreError           -> backing store read/write failures
"""


class DirectRentError(Exception):
    """Base exception for all service errors."""

    def __init__(self, message: str, *args):
        self.message = message
        super().__init__(message, *args)


class ValidationError(DirectRentError):
    """Raised when required request input is missing or malformed."""

    def __init__(self, message: str, missing_fields: list[str] | None = None):
        self.missing_fields = missing_fields or []
        super().__init__(message)

    @classmethod
    def missing(cls, fields: list[str]) -> "ValidationError":
        return cls(f"Missing required fields: {', '.join(fields)}", missing_fields=fields)


class ModelError(DirectRentError):
    """Base exception for model artifact problems."""


class ModelNotFoundError(ModelError):
    """Raised when a trained model artifact is not present."""

    def __init__(self, model_path: str | None = None):
        self.model_path = model_path
        message = f"Model not found at: {model_path}" if model_path else "Model not found"
        super().__init__(message)


class PredictionError(ModelError):
    """Raised when a loaded model fails to produce a prediction."""


class StoreError(DirectRentError):
    """Raised when the backing store cannot be read or written."""

    def __init__(self, message: str, table: str | None = None, status_code: int | None = None):
        self.table = table
        self.status_code = status_code
        super().__init__(message)
