class TarsierError(Exception):
    """Base class for errors raised by tarsier."""


class TransportError(TarsierError):
    """The backend could not be reached or answered with a failure.

    Args:
        message: Human-readable description, surfaced to the consumer.
        status_code: HTTP status of the failed response, if any.
        body: Response body of the failed response, if any.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class PersistenceError(TarsierError):
    """A transcript store statement failed."""
