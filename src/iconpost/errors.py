"""
Typed failures for the iconpost pipeline.

Every failure is terminal for its request. The HTTP layer renders these as
``{"error": message, "code": code, "details": details}`` with ``status_code``;
the underlying cause only ever travels in ``details``.
"""


class PipelineError(Exception):
    """Base class for all pipeline failures."""

    status_code = 500
    code = "pipeline_error"
    default_message = "Image processing failed"

    def __init__(self, message=None, details=None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self):
        """JSON body for an error response."""
        body = {"error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class InvalidInput(PipelineError):
    """Missing or malformed request input (bad URL, unknown format)."""

    status_code = 400
    code = "invalid_input"
    default_message = "Invalid input"


class BlockedHost(PipelineError):
    """Disallowed protocol, or a host that is (or resolves to) a private address."""

    status_code = 400
    code = "blocked_host"
    default_message = "Blocked host"


class TooLarge(PipelineError):
    """Source body exceeds the fetch byte ceiling."""

    status_code = 413
    code = "too_large"
    default_message = "Image too large"


class FetchTimeout(PipelineError):
    """The upstream fetch did not complete within its time budget."""

    status_code = 504
    code = "timeout"
    default_message = "Upstream timed out"


class UpstreamError(PipelineError):
    """The origin answered with an error status or could not be reached."""

    code = "upstream_error"
    default_message = "Upstream error"

    def __init__(self, status, message=None, details=None):
        self.status_code = status
        super().__init__(message or f"Upstream HTTP {status}", details)


class DecodeError(PipelineError):
    """Source bytes are not a decodable raster image."""

    code = "decode_error"
    default_message = "Background removal failed"


class VectorizeError(PipelineError):
    """Bitmap could not be prepared or traced."""

    code = "vectorize_error"
    default_message = "Vectorization failed"
