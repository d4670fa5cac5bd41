"""Error types raised by the pipeline.

Only configuration errors and broker disruption end a process; validation and
persistence errors stay local to the row or message they concern.
"""


class PipelineError(RuntimeError):
    """Base error for the producer and consumer."""


class BrokerConnectionError(PipelineError):
    """Raised when every connection attempt to the broker has failed."""

    def __init__(self, endpoint: str, attempts: int, cause: BaseException | None):
        self.endpoint = endpoint
        self.attempts = attempts
        self.cause = cause
        super().__init__(
            f"could not connect to RabbitMQ at {endpoint} after {attempts} attempts: "
            f"{type(cause).__name__ if cause else 'unknown'}: {cause}"
        )


class SourceFileError(PipelineError):
    """Raised when the source file is missing or cannot be parsed."""

    def __init__(self, path: str, reason: str):
        self.path = path
        super().__init__(f"source file {path}: {reason}")


class RecordValidationError(PipelineError):
    """Raised when a single row cannot be turned into a record."""
