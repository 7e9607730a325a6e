import logging
from typing import Callable

LogSink = Callable[[str], None]


def emit(log: logging.Logger, sink: LogSink | None, header: str, msg: str) -> None:
    """Send a diagnostic message to the module logger and the caller's sink, if any."""
    if not msg:
        return
    log.debug("%s%s", header, msg)
    if sink is not None:
        sink(header + msg)
