import threading

from .errors import OperationCancelledError


class CancellationToken:
    """
    Cooperative cancellation signal passed to every client operation.
    Clients check it before each native I/O call and between stream chunks.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason: str | None = None

    def cancel(self, reason: str | None = None) -> None:
        self._reason = reason
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, key: str | None = None) -> None:
        if self._event.is_set():
            raise OperationCancelledError(
                self._reason or "Operation was cancelled", key=key
            )


def check_cancelled(token: CancellationToken | None, key: str | None = None) -> None:
    if token is not None:
        token.raise_if_cancelled(key)
