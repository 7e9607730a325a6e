import io
import mimetypes
from typing import BinaryIO, Iterator

from .cancellation import CancellationToken, check_cancelled
from .errors import InvalidInputError
from .models import DEFAULT_CONTENT_TYPE

Payload = bytes | bytearray | memoryview | str | BinaryIO

_CHUNK_SIZE = 1024 * 1024


def require_key(key: str) -> str:
    if not isinstance(key, str) or not key:
        raise InvalidInputError("Blob key must be a non-empty string", key=key or None)
    return key


def coerce_payload(
    key: str, data: Payload | None, content_length: int | None = None
) -> tuple[BinaryIO, int]:
    """
    Turn a write payload into a stream positioned at its start plus its length.
    Strings are UTF-8 encoded. Streams must come with a content length.
    """
    if data is None:
        raise InvalidInputError(f"No payload supplied for blob '{key}'", key=key)

    if isinstance(data, str):
        data = data.encode("utf-8")
    if isinstance(data, (bytes, bytearray, memoryview)):
        raw = bytes(data)
        return io.BytesIO(raw), len(raw)

    if not hasattr(data, "read"):
        raise InvalidInputError(
            f"Unsupported payload type {type(data).__name__} for blob '{key}'", key=key
        )
    if content_length is None:
        raise InvalidInputError(
            f"content_length is required when writing a stream to blob '{key}'",
            key=key,
        )
    if content_length < 0:
        raise InvalidInputError(
            f"content_length must be non-negative, got {content_length}", key=key
        )
    if content_length == 0:
        return io.BytesIO(b""), 0
    return data, content_length


def iter_chunks(
    key: str,
    stream: BinaryIO,
    content_length: int,
    token: CancellationToken | None = None,
) -> Iterator[bytes]:
    """Yield exactly ``content_length`` bytes, checking for cancellation per chunk."""
    remaining = content_length
    while remaining > 0:
        check_cancelled(token, key)
        chunk = stream.read(min(_CHUNK_SIZE, remaining))
        if not chunk:
            raise InvalidInputError(
                f"Stream for blob '{key}' ended {remaining} bytes short of content_length",
                key=key,
            )
        remaining -= len(chunk)
        yield chunk


def read_stream(
    key: str,
    stream: BinaryIO,
    content_length: int,
    token: CancellationToken | None = None,
) -> bytes:
    return b"".join(iter_chunks(key, stream, content_length, token))


def resolve_content_type(key: str, content_type: str | None) -> str:
    """Guess the content type from the key when the caller gives none."""
    if content_type:
        return content_type
    guessed, _ = mimetypes.guess_type(key)
    return guessed or DEFAULT_CONTENT_TYPE
