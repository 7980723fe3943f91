"""Xenofy-Engine exception hierarchy."""


class XenofyError(Exception):
    """Base exception for all Xenofy errors."""

    status_code = 500

    def __init__(self, message: str = "", code: str = "XENOFY_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class ValidationError(XenofyError):
    """Raised when caller input is malformed or rejected."""

    status_code = 400

    def __init__(self, message: str = "Invalid request"):
        super().__init__(message, code="VALIDATION_ERROR")


class AuthenticationError(XenofyError):
    """Raised when credentials or a session token cannot be verified."""

    status_code = 401

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, code="UNAUTHENTICATED")


class NotFoundError(XenofyError):
    """Raised when a tenant, user or run cannot be found."""

    status_code = 404

    def __init__(self, message: str = "Not found"):
        super().__init__(message, code="NOT_FOUND")


class ConflictError(XenofyError):
    """Raised when a unique value is already registered."""

    status_code = 409

    def __init__(self, message: str = "Already exists", code: str = "CONFLICT"):
        super().__init__(message, code=code)


class IngestionInProgressError(ConflictError):
    """Raised when another ingestion run holds the tenant's lease."""

    def __init__(self, message: str = "Ingestion already in progress for this tenant"):
        super().__init__(message, code="INGESTION_IN_PROGRESS")


class UpstreamError(XenofyError):
    """Raised when the Shopify Admin API fails or rejects a request."""

    status_code = 502

    def __init__(self, message: str = "Upstream request failed", http_status: int | None = None):
        self.http_status = http_status
        super().__init__(message, code="UPSTREAM_ERROR")


class UnsupportedResourceError(UpstreamError):
    """Raised when the store does not expose a resource (403/404)."""

    def __init__(self, message: str = "Resource not available", http_status: int | None = None):
        super().__init__(message, http_status=http_status)
        self.code = "UNSUPPORTED_RESOURCE"
