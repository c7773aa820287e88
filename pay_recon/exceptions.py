"""Custom exception hierarchy for pay-recon."""


class PayReconError(Exception):
    """Base exception for all pay-recon errors."""


class DuplicateKeyError(PayReconError):
    """Raised when a correlation id is registered twice for the same provider."""


class TransactionNotFoundError(PayReconError):
    """Raised when a referenced transaction does not exist."""


class InvalidTransitionError(PayReconError):
    """Raised when a status change violates the transaction state machine."""


class InconsistentCallbackError(PayReconError):
    """A terminal callback disagrees with the terminal status already recorded."""


class MalformedCallbackError(PayReconError):
    """Raised when a callback payload carries no usable identifier."""


class ProviderError(PayReconError):
    """Base class for failures of an outbound provider call."""


class ProviderRejectedError(ProviderError):
    """Raised when a provider refuses a request."""

    def __init__(self, message: str, details: dict | None = None) -> None:
        super().__init__(message)
        self.details = details or {}


class ProviderUnavailableError(ProviderError):
    """Raised when a provider cannot be reached or answers with a server error."""


class ConfigurationError(PayReconError):
    """Raised when configuration is invalid or missing."""
