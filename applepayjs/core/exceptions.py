"""
Custom exception hierarchy for the Apple Pay merchant validation backend.

All application-level exceptions inherit from AppException so they can be
caught by a single global handler.
"""


class AppException(Exception):
    """Base for all app exceptions."""

    def __init__(
        self,
        status_code: int,
        error_code: str,
        message: str,
        details: dict | None = None,
    ):
        self.status_code = status_code
        self.error_code = error_code
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ConfigurationError(AppException):
    """Raised when the merchant certificate cannot be obtained from configuration."""

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        error_code: str = "CONFIGURATION_ERROR",
    ):
        super().__init__(
            status_code=500,
            error_code=error_code,
            message=message,
            details=details,
        )


class CertificateNotFound(ConfigurationError):
    """Raised when no certificate in a store matches the configured thumbprint."""

    def __init__(self, thumbprint: str, store_name: str, store_location: str):
        super().__init__(
            message=(
                f"Could not find Apple Pay merchant certificate with thumbprint "
                f"'{thumbprint}' from store '{store_name}' in location '{store_location}'."
            ),
            details={
                "thumbprint": thumbprint,
                "store_name": store_name,
                "store_location": store_location,
            },
            error_code="CERTIFICATE_NOT_FOUND",
        )


class CertificateLoadError(ConfigurationError):
    """Raised when a certificate file cannot be read or parsed."""

    def __init__(self, path: str):
        super().__init__(
            message=f"Failed to load Apple Pay merchant certificate file from '{path}'.",
            details={"path": path},
            error_code="CERTIFICATE_LOAD_ERROR",
        )


class UnsupportedFormat(ConfigurationError):
    """Raised when an encoded certificate is not PKCS#12."""

    def __init__(self, content_type: str):
        super().__init__(
            message="The format of the encoded Apple Pay merchant certificate is not supported.",
            details={"content_type": content_type},
            error_code="UNSUPPORTED_FORMAT",
        )


class ValidationInputError(AppException):
    """Raised when the browser supplies a missing, malformed or disallowed validation URL."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(
            status_code=400,
            error_code="VALIDATION_INPUT_ERROR",
            message=message,
            details=details,
        )


class GatewayError(AppException):
    """Raised when the Apple Pay gateway call fails or returns a non-success status."""

    def __init__(
        self,
        message: str,
        upstream_status: int | None = None,
        details: dict | None = None,
    ):
        self.upstream_status = upstream_status
        super().__init__(
            status_code=500,
            error_code="GATEWAY_ERROR",
            message=message,
            details=details,
        )
