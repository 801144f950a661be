# errors.py (error types shared by the publisher, builder, verifier and HTTP layer)
#
# public_message is what a production client sees; str(error) may name
# endpoints or upstream details and is only rendered in development mode.


class TokenForgeError(Exception):
    error_type = "TokenForgeError"
    status_code = 500

    def __init__(self, message, *, public_message=None):
        super().__init__(message)
        self.message = message
        self._public_message = public_message

    @property
    def public_message(self):
        return self._public_message or self.message


class ValidationError(TokenForgeError):
    error_type = "ValidationError"
    status_code = 400


class InvalidAddressError(ValidationError):
    error_type = "InvalidAddressError"

    def __init__(self, field, value):
        shown = value if isinstance(value, str) and len(value) <= 64 else repr(value)[:64]
        super().__init__(f"{field} is not a valid Solana address: {shown}")
        self.field = field


class RateLimitExceeded(TokenForgeError):
    error_type = "RateLimitExceeded"
    status_code = 429

    def __init__(self, message="Rate limit exceeded. Please try again later."):
        super().__init__(message)


class ConfigurationError(TokenForgeError):
    error_type = "ConfigurationError"
    status_code = 500

    def __init__(self, message):
        super().__init__(message, public_message="Server configuration error.")


class UploadError(TokenForgeError):
    error_type = "UploadError"
    status_code = 502

    def __init__(self, message, *, cause=None, public_message=None):
        super().__init__(message, public_message=public_message or "Upload failed")
        self.cause = cause


class NetworkError(TokenForgeError):
    """Raised when every configured ledger endpoint failed an operation."""

    error_type = "NetworkError"
    status_code = 503

    def __init__(self, operation, failures):
        self.operation = operation
        self.failures = list(failures)
        details = "; ".join(f"{endpoint}: {reason}" for endpoint, reason in self.failures)
        super().__init__(
            f"{operation} failed on all {len(self.failures)} RPC endpoints. Errors: {details}",
            public_message="No working Solana RPC endpoint is available. Please try again later.",
        )


class OnChainFailureError(TokenForgeError):
    error_type = "OnChainFailureError"
    status_code = 422


class PaymentMismatchError(TokenForgeError):
    error_type = "PaymentMismatchError"
    status_code = 400


class VerificationTimeout(TokenForgeError):
    error_type = "VerificationTimeout"
    status_code = 504
