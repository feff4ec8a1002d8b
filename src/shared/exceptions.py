"""Custom exceptions for the JapanShopper payments backend."""


class JapanShopperException(Exception):
    """Base exception for all JapanShopper errors."""

    error_code = "INTERNAL_ERROR"

    def __init__(self, message: str, status_code: int = 500):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class ValidationError(JapanShopperException):
    """Raised when input validation fails."""

    error_code = "VALIDATION_ERROR"

    def __init__(self, message: str):
        super().__init__(message, status_code=400)


class AuthorizationError(JapanShopperException):
    """Raised when the caller does not own the resource."""

    error_code = "FORBIDDEN"

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message, status_code=403)


class NotFoundError(JapanShopperException):
    """Raised when a resource is not found."""

    error_code = "NOT_FOUND"

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, status_code=404)


class ConflictError(JapanShopperException):
    """Raised when a write loses a race or the resource is in the wrong state."""

    error_code = "CONFLICT"

    def __init__(self, message: str = "Resource conflict"):
        super().__init__(message, status_code=409)


class ExternalServiceError(JapanShopperException):
    """Raised when the payment processor rejects a call."""

    error_code = "EXTERNAL_SERVICE_ERROR"

    def __init__(self, message: str = "External service call failed", provider_message: str = None):
        self.provider_message = provider_message
        if provider_message:
            message = f"{message}: {provider_message}"
        super().__init__(message, status_code=500)


class PersistenceError(JapanShopperException):
    """Raised when database operations fail."""

    error_code = "PERSISTENCE_ERROR"

    def __init__(self, message: str = "Database operation failed"):
        super().__init__(message, status_code=500)


class WebhookSignatureError(JapanShopperException):
    """Raised when a webhook payload fails signature verification."""

    error_code = "INVALID_SIGNATURE"

    def __init__(self, message: str = "Webhook signature verification failed"):
        super().__init__(message, status_code=400)


class ConfigurationError(JapanShopperException):
    """Raised when a required setting is missing."""

    error_code = "CONFIGURATION_ERROR"

    def __init__(self, message: str = "Service is not configured"):
        super().__init__(message, status_code=500)
