class BlobClientError(Exception):
    """Base class for every failure surfaced by a blob client."""

    # Set by empty_store on the error that stopped it.
    partial_result = None

    def __init__(
        self, message: str, key: str | None = None, cause: Exception | None = None
    ):
        self.key = key
        self.cause = cause
        super().__init__(message)


class BlobNotFoundError(BlobClientError):
    """Raised when a requested blob does not exist."""

    pass


class InvalidInputError(BlobClientError, ValueError):
    """Raised when the caller violates an operation's preconditions."""

    pass


class BlobIOError(BlobClientError, OSError):
    """Raised when the remote store or disk fails for a reason other than not-found."""

    def __init__(
        self,
        message: str,
        key: str | None = None,
        cause: Exception | None = None,
        status_code: int | None = None,
    ):
        self.status_code = status_code
        super().__init__(message, key=key, cause=cause)


class OperationCancelledError(BlobClientError):
    """Raised when an operation is aborted through its cancellation token."""

    pass
