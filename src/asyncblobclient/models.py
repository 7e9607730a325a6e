import io
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import BinaryIO

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def normalize_etag(etag: str | None) -> str | None:
    """Strip every double-quote character some stores wrap around ETags."""
    if not etag:
        return etag
    return etag.replace('"', "")


def as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class BlobMetadata:
    """Metadata for a single blob, as returned by metadata fetches and enumeration."""

    key: str
    content_length: int = 0
    content_type: str = DEFAULT_CONTENT_TYPE
    etag: str | None = None
    created_utc: datetime | None = None
    last_modified_utc: datetime | None = None

    def __post_init__(self) -> None:
        # frozen: normalize through object.__setattr__
        object.__setattr__(self, "etag", normalize_etag(self.etag))
        object.__setattr__(self, "last_modified_utc", as_utc(self.last_modified_utc))
        created = as_utc(self.created_utc)
        if created is None:
            created = self.last_modified_utc
        object.__setattr__(self, "created_utc", created)
        if not self.content_type:
            object.__setattr__(self, "content_type", DEFAULT_CONTENT_TYPE)
        if self.content_length < 0:
            raise ValueError(f"content_length must be non-negative, got {self.content_length}")


class BlobData:
    """
    A blob's payload as a readable stream positioned at its start.
    The stream belongs to this object until the caller exhausts or closes it.
    """

    def __init__(self, content_length: int = 0, data: BinaryIO | None = None):
        self.content_length = content_length
        self.data: BinaryIO = data if data is not None else io.BytesIO(b"")
        if self.data.seekable():
            self.data.seek(0)

    @classmethod
    def from_bytes(cls, payload: bytes) -> "BlobData":
        return cls(len(payload), io.BytesIO(payload))

    def read(self, size: int = -1) -> bytes:
        return self.data.read(size)

    def close(self) -> None:
        self.data.close()

    def __enter__(self) -> "BlobData":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"BlobData(content_length={self.content_length})"


@dataclass
class EnumerationResult:
    """One page of an enumeration."""

    blobs: list[BlobMetadata] = field(default_factory=list)
    next_continuation_token: str | None = None

    @property
    def has_more(self) -> bool:
        return bool(self.next_continuation_token)


@dataclass
class WriteRequest:
    """
    One entry of a bulk write. Populate either ``data`` or
    ``data_stream`` + ``content_length``; ``data`` wins if both are set.
    """

    key: str
    content_type: str = DEFAULT_CONTENT_TYPE
    data: bytes | None = None
    data_stream: BinaryIO | None = None
    content_length: int = 0


@dataclass
class EmptyResult:
    """Blobs actually deleted while emptying a store, in deletion order."""

    blobs: list[BlobMetadata] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.blobs)
