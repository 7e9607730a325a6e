import hashlib
import logging
import mimetypes
import os
import re
import uuid
from datetime import datetime, timezone
from pathlib import Path

from .cancellation import CancellationToken, check_cancelled
from .diagnostics import LogSink, emit
from .enumeration import (
    NativePage,
    empty_store,
    enumerate_page,
    fill_url_template,
    write_many,
)
from .errors import BlobIOError, BlobNotFoundError, InvalidInputError
from .models import (
    DEFAULT_CONTENT_TYPE,
    BlobData,
    BlobMetadata,
    EmptyResult,
    EnumerationResult,
    WriteRequest,
)
from .payload import Payload, coerce_payload, iter_chunks, require_key
from .settings import DiskSettings
from .storage_protocols import AsyncBlobClient

log = logging.getLogger(__name__)

_PARTIAL_SUFFIX = ".partial"
# .<name>.<uuid4 hex>.partial, as created by write()
_PARTIAL_NAME = re.compile(r"^\..+\.[0-9a-f]{32}\.partial$")


def _ensure_within(base: Path, target: Path) -> Path:
    """
    Resolve target path and ensure it is inside base path.
    Symlinks are followed, so a link pointing outside base is rejected too.
    """
    target_resolved = target.resolve()
    if target_resolved == base or not target_resolved.is_relative_to(base):
        raise ValueError(f"Path {target_resolved} escapes base directory {base}")
    return target_resolved


def _is_partial(path: Path) -> bool:
    return _PARTIAL_NAME.match(path.name) is not None


def _md5_of(path: Path) -> str:
    digest = hashlib.md5()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()


def _timestamp(seconds: float) -> datetime:
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


class LocalFileBlobClient(AsyncBlobClient):
    """Local filesystem adapter. Keys are paths relative to the base directory."""

    _header = "[LocalFileBlobClient] "

    def __init__(self, settings: DiskSettings, logger: LogSink | None = None):
        self._settings = settings
        self.logger = logger
        self._base_path = Path(settings.directory).resolve()
        self._base_path.mkdir(parents=True, exist_ok=True)

    @property
    def settings(self) -> DiskSettings:
        return self._settings

    def _path_for(self, key: str) -> Path:
        require_key(key)
        try:
            path = _ensure_within(self._base_path, self._base_path / key)
        except ValueError as e:
            raise InvalidInputError(str(e), key=key, cause=e) from e
        relative = Path(key)
        # the key must be the exact relative path enumeration reports back
        if relative.as_posix() != key or ".." in relative.parts:
            raise InvalidInputError(
                f"Blob key '{key}' is not a normalized relative path", key=key
            )
        if _is_partial(relative):
            raise InvalidInputError(
                f"Blob key '{key}' collides with temporary upload names", key=key
            )
        return path

    def _key_for(self, path: Path) -> str:
        return path.relative_to(self._base_path).as_posix()

    async def __aenter__(self) -> "LocalFileBlobClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        self._log("disposing")

    async def get(self, key: str, token: CancellationToken | None = None) -> bytes:
        path = self._path_for(key)
        check_cancelled(token, key)
        if not path.is_file():
            raise BlobNotFoundError(f"Blob '{key}' not found", key=key)
        try:
            return path.read_bytes()
        except FileNotFoundError as e:
            raise BlobNotFoundError(f"Blob '{key}' not found", key=key, cause=e) from e
        except OSError as e:
            raise BlobIOError(f"Unable to read blob '{key}'", key=key, cause=e) from e

    async def get_stream(
        self, key: str, token: CancellationToken | None = None
    ) -> BlobData:
        path = self._path_for(key)
        check_cancelled(token, key)
        if not path.is_file():
            raise BlobNotFoundError(f"Blob '{key}' not found", key=key)
        try:
            f = path.open("rb")
        except OSError as e:
            raise BlobIOError(f"Unable to open blob '{key}'", key=key, cause=e) from e
        try:
            return BlobData(os.fstat(f.fileno()).st_size, f)
        except OSError as e:
            f.close()
            raise BlobIOError(f"Unable to open blob '{key}'", key=key, cause=e) from e

    async def get_metadata(
        self, key: str, token: CancellationToken | None = None
    ) -> BlobMetadata:
        path = self._path_for(key)
        check_cancelled(token, key)
        if not path.is_file():
            raise BlobNotFoundError(f"Blob '{key}' not found", key=key)
        return self._to_metadata(path, key)

    async def write(
        self,
        key: str,
        content_type: str,
        data: Payload,
        content_length: int | None = None,
        token: CancellationToken | None = None,
    ) -> None:
        path = self._path_for(key)
        stream, length = coerce_payload(key, data, content_length)
        check_cancelled(token, key)
        if path.is_dir():
            raise InvalidInputError(f"Blob key '{key}' names a directory", key=key)

        partial = path.with_name(f".{path.name}.{uuid.uuid4().hex}{_PARTIAL_SUFFIX}")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with partial.open("wb") as f:
                for chunk in iter_chunks(key, stream, length, token):
                    f.write(chunk)
            os.replace(partial, path)
        except OSError as e:
            raise BlobIOError(f"Unable to write blob '{key}'", key=key, cause=e) from e
        finally:
            partial.unlink(missing_ok=True)
        self._log(f"wrote {key} ({length} bytes)")

    async def write_many(
        self, requests: list[WriteRequest], token: CancellationToken | None = None
    ) -> None:
        await write_many(self, requests, token)

    async def delete(self, key: str, token: CancellationToken | None = None) -> None:
        path = self._path_for(key)
        check_cancelled(token, key)
        if path.is_dir():
            raise InvalidInputError(f"Blob key '{key}' names a directory", key=key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise BlobIOError(f"Unable to delete blob '{key}'", key=key, cause=e) from e
        self._prune_empty_parents(path.parent)
        self._log(f"deleted {key}")

    async def exists(self, key: str, token: CancellationToken | None = None) -> bool:
        path = self._path_for(key)
        check_cancelled(token, key)
        return path.is_file()

    def generate_url(self, key: str) -> str:
        if self._settings.base_url:
            return fill_url_template(
                self._settings.base_url, key, container=self._base_path.name
            )
        return (self._base_path / key).as_uri()

    async def enumerate(
        self,
        prefix: str | None = None,
        continuation_token: str | None = None,
        token: CancellationToken | None = None,
    ) -> EnumerationResult:
        self._log(f"enumerating using prefix {prefix}")

        async def list_page(prefix: str | None, cursor: str | None) -> NativePage:
            keys = sorted(
                key
                for key in self._walk_keys()
                if (not prefix or key.startswith(prefix)) and (not cursor or key > cursor)
            )
            page = keys[: self._settings.page_size]
            blobs = []
            for key in page:
                check_cancelled(token, key)
                blobs.append(self._to_metadata(self._base_path / key, key))
            next_cursor = page[-1] if len(keys) > len(page) else None
            return blobs, next_cursor

        result = await enumerate_page(list_page, prefix, continuation_token, token)
        self._log(f"enumeration complete with {len(result.blobs)} BLOBs")
        return result

    async def empty(self, token: CancellationToken | None = None) -> EmptyResult:
        return await empty_store(self, token)

    def _walk_keys(self) -> list[str]:
        keys: list[str] = []
        for path in self._base_path.rglob("*"):
            if not path.is_file() or _is_partial(path):
                continue
            try:
                _ensure_within(self._base_path, path)
            except ValueError:
                self._log(f"skipping {path}, it resolves outside the base directory")
                continue
            keys.append(self._key_for(path))
        return keys

    def _to_metadata(self, path: Path, key: str) -> BlobMetadata:
        try:
            stat = path.stat()
            etag = _md5_of(path)
        except FileNotFoundError as e:
            raise BlobNotFoundError(f"Blob '{key}' not found", key=key, cause=e) from e
        except OSError as e:
            raise BlobIOError(f"Unable to stat blob '{key}'", key=key, cause=e) from e
        birth = getattr(stat, "st_birthtime", None)
        guessed, _ = mimetypes.guess_type(key)
        return BlobMetadata(
            key=key,
            content_length=stat.st_size,
            content_type=guessed or DEFAULT_CONTENT_TYPE,
            etag=etag,
            created_utc=_timestamp(birth) if birth is not None else None,
            last_modified_utc=_timestamp(stat.st_mtime),
        )

    def _prune_empty_parents(self, directory: Path) -> None:
        while directory != self._base_path and directory.is_relative_to(self._base_path):
            try:
                directory.rmdir()
            except OSError:
                # not empty, or removed concurrently
                return
            directory = directory.parent

    def _log(self, msg: str) -> None:
        emit(log, self.logger, self._header, msg)
