from typing import Protocol

from .cancellation import CancellationToken
from .diagnostics import LogSink
from .models import BlobData, BlobMetadata, EmptyResult, EnumerationResult, WriteRequest
from .payload import Payload


class AsyncBlobClient(Protocol):
    """
    Capability set every storage backend exposes with identical semantics.

    Every coroutine accepts an optional CancellationToken, checked before each
    native I/O call. Failures are reported as BlobNotFoundError,
    InvalidInputError, BlobIOError or OperationCancelledError.
    """

    logger: LogSink | None

    async def get(self, key: str, token: CancellationToken | None = None) -> bytes:
        """Download a blob's full contents. Zero-length blobs return b""."""
        ...

    async def get_stream(
        self, key: str, token: CancellationToken | None = None
    ) -> BlobData:
        """Download a blob into a stream rewound to its start."""
        ...

    async def get_metadata(
        self, key: str, token: CancellationToken | None = None
    ) -> BlobMetadata:
        """Return a blob's metadata or raise BlobNotFoundError."""
        ...

    async def write(
        self,
        key: str,
        content_type: str,
        data: Payload,
        content_length: int | None = None,
        token: CancellationToken | None = None,
    ) -> None:
        """Write bytes, a UTF-8 string, or a stream of ``content_length`` bytes."""
        ...

    async def write_many(
        self, requests: list[WriteRequest], token: CancellationToken | None = None
    ) -> None:
        """Write each request in order, stopping at the first failure."""
        ...

    async def delete(self, key: str, token: CancellationToken | None = None) -> None:
        """Delete a blob. Deleting a missing blob is not an error."""
        ...

    async def exists(self, key: str, token: CancellationToken | None = None) -> bool:
        """Return True if the blob exists."""
        ...

    def generate_url(self, key: str) -> str:
        """Build the blob's URL without any I/O."""
        ...

    async def enumerate(
        self,
        prefix: str | None = None,
        continuation_token: str | None = None,
        token: CancellationToken | None = None,
    ) -> EnumerationResult:
        """Return one page of blobs, with a token when more pages remain."""
        ...

    async def empty(self, token: CancellationToken | None = None) -> EmptyResult:
        """Delete every blob, returning the metadata of each one deleted."""
        ...

    async def close(self) -> None:
        """Release the native client handle."""
        ...

    async def __aenter__(self) -> "AsyncBlobClient": ...

    async def __aexit__(self, exc_type, exc, tb) -> None: ...
