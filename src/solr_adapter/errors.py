"""Exceptions raised by the search engine adapter."""


class EngineError(Exception):
    """Base class for search engine errors."""

    pass


class EngineConnectionError(EngineError):
    """Raised when an engine call fails at the transport or protocol level."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class EngineNotConfiguredError(EngineError):
    """Raised when the engine hostname or index name is missing."""

    pass


class StructuralDataError(EngineError):
    """Raised when engine data does not match the expected schema.

    These indicate a schema mismatch that an operator has to fix, so they
    are never swallowed by the query pipeline.
    """

    pass


class MultiValuedFieldError(StructuralDataError):
    """Raised when a single-valued field comes back with several values."""

    def __init__(self, field: str):
        super().__init__(f"Field '{field}' is multi-valued, which is not supported")
        self.field = field


class UnexpectedFieldError(StructuralDataError):
    """Raised when an engine record carries fields outside the known schema."""

    def __init__(self, fields: list[str]):
        super().__init__(f"Unexpected fields in engine record: {', '.join(fields)}")
        self.fields = fields
