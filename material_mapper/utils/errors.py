"""Custom exception hierarchy for Material Mapper.

All application exceptions inherit from :class:`MaterialMapperError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "mapper-http") caused the failure.

The hierarchy follows the error taxonomy of the analysis stream:

    MaterialMapperError  (base -- catch-all for any material_mapper error)
    +-- TransportError        (request rejected, network failure, bad status)
    +-- ProtocolError         (a frame that cannot be decoded or validated)
    +-- AnalysisFailedError   (the backend reported an ``error`` event)
    +-- ConfigurationError    (startup / missing config)

Transport and semantic failures end a run; protocol failures are logged and
skipped by the stream consumer and never reach the user.
"""


class MaterialMapperError(Exception):
    """Base exception for all Material Mapper errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  The ``__str__`` method prefixes the provider name in brackets
    for structured log output, e.g. ``[mapper-http] Request failed: 502``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Stream consumption errors
# ---------------------------------------------------------------------------

class TransportError(MaterialMapperError):
    """Raised when the analysis request is rejected or the body is unreadable.

    Covers connection failures, non-success HTTP status codes and a body
    that breaks off mid-read.  The run ends in the ``error`` stage; no retry
    is attempted.
    """

    def __init__(
        self,
        message: str = "Analysis request failed",
        provider_name: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self.status_code = status_code


class ProtocolError(MaterialMapperError):
    """Raised when a stream frame cannot be parsed or fails its schema."""

    def __init__(
        self,
        message: str = "Malformed stream frame",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class AnalysisFailedError(MaterialMapperError):
    """Raised when the backend reports an ``error`` event for the run."""

    def __init__(
        self,
        message: str = "Analysis failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Configuration errors
# ---------------------------------------------------------------------------

class ConfigurationError(MaterialMapperError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
