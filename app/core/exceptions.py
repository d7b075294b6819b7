class AppError(Exception):
    kind = "gateway_error"

    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class ValidationError(AppError):
    """Rejected before any upstream call: unknown model, bad body, unsupported streaming."""

    kind = "validation_error"

    def __init__(self, message: str):
        super().__init__(message, status_code=400)


class UpstreamError(AppError):
    """The provider answered with a non-2xx status."""

    kind = "upstream_error"

    def __init__(self, message: str, upstream_status: int | None = None):
        # 4xx from the provider is the caller's problem; anything else is a bad gateway.
        if upstream_status is not None and 400 <= upstream_status < 500:
            status_code = upstream_status
        else:
            status_code = 502
        super().__init__(message, status_code=status_code)
        self.upstream_status = upstream_status


class ParseError(UpstreamError):
    """The provider answered 2xx but the payload did not have the expected shape."""

    kind = "parse_error"

    def __init__(self, message: str):
        super().__init__(message)


class UpstreamTimeoutError(AppError):
    kind = "timeout"

    def __init__(self, message: str = "Upstream request timed out"):
        super().__init__(message, status_code=504)


class UpstreamConnectionError(AppError):
    kind = "connection_error"

    def __init__(self, message: str = "Could not reach upstream provider"):
        super().__init__(message, status_code=503)


class ProviderUnavailableError(AppError):
    """The catalog names a provider the gateway has no credentials or endpoint for."""

    kind = "gateway_error"

    def __init__(self, message: str):
        super().__init__(message, status_code=503)


class EstimationError(Exception):
    """Tokenizer failure. Always absorbed by the estimator, never reaches a caller."""

    def __init__(self, field: str, cause: Exception):
        self.field = field
        self.cause = cause
        super().__init__(f"Failed to encode {field}: {cause}")
