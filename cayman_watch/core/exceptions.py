"""Custom exception hierarchy."""

class AppError(Exception):
    """Base exception for application errors."""
    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.original_error = original_error


class APIClientError(AppError):
    """Raised when an oracle or other external API call fails."""
    pass


class APITimeoutError(APIClientError):
    """Raised when an oracle call exceeds its call-level timeout."""
    pass


class OracleContractError(AppError):
    """Raised when an oracle response breaks the request/response contract.

    Covers unparseable payloads and result counts that do not match the
    number of submitted items.
    """
    pass


class DatabaseError(AppError):
    """Raised when the storage layer is unreachable or a write fails."""
    pass


class ValidationError(AppError):
    """Raised when input validation fails."""
    pass


class ConfigurationError(AppError):
    """Raised when configuration is invalid or missing."""
    pass


class PipelineError(AppError):
    """Base exception for pipeline errors."""
    pass


class RunAlreadyFinalizedError(PipelineError):
    """Raised when an ingestion run is finalized a second time."""
    pass


class APIRequestRejectedError(APIClientError):
    """Raised when an API rejects a request outright (4xx other than 429).

    Resending the same request cannot succeed, so retry loops give up on it.
    """
    pass
