"""Service error hierarchy for generation, provider and storage operations.

This module defines the exception hierarchy for service-level errors:
- ServiceError: Base for all service errors
- TransientError: Retryable errors (network, rate limits, timeouts)
- PermanentError: Non-retryable errors (authentication, validation)
"""


class ServiceError(Exception):
    """Base exception for all service errors."""

    pass


class TransientError(ServiceError):
    """Transient error that may succeed on retry.

    Examples:
    - Network timeouts
    - Rate limit exceeded (429)
    - Service unavailable (502, 503, 504)
    """

    pass


class PermanentError(ServiceError):
    """Permanent error that will not succeed on retry.

    Examples:
    - Authentication failures (401, 403)
    - Invalid request parameters (400)
    - Configuration errors
    """

    pass


# Generation lifecycle errors
class GenerationNotFoundError(PermanentError):
    """Generation id does not exist."""

    pass


class UnknownModelError(PermanentError):
    """Model id is not present in the model registry."""

    pass


# Provider errors
class ProviderAPIError(ServiceError):
    """Upstream provider returned an error response.

    Carries the HTTP status so error classification can use it in addition
    to the message text.
    """

    def __init__(self, message: str, status: int | None = None, details: list | None = None):
        super().__init__(message)
        self.status = status
        self.details = details or []


# Storage errors
class StorageUploadError(ServiceError):
    """Base exception for durable storage errors."""

    pass


class StorageDownloadError(StorageUploadError):
    """Provider artifact could not be downloaded."""

    pass


class StorageAuthError(StorageUploadError, PermanentError):
    """Authentication failure against the storage service (401, 403)."""

    pass


class StorageNetworkError(StorageUploadError, TransientError):
    """Network timeout or storage service unavailable."""

    pass
