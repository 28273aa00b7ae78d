"""Exception hierarchy for dslgen."""


class DSLGenError(Exception):
    """Base class for all dslgen errors."""


class GenerationError(DSLGenError):
    """
    Raised when generation failed and no usable output exists.

    Carries the request_id so callers can correlate with trace records.
    """

    def __init__(self, message: str, request_id: str | None = None):
        super().__init__(message)
        self.request_id = request_id


class ProviderError(DSLGenError):
    """Transport or protocol failure inside an LLM provider adapter."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class SpecCompilerError(DSLGenError):
    """Failure talking to the prompt-spec compiler service."""


class VerifierError(DSLGenError):
    """Failure talking to the external compiler/verifier."""
