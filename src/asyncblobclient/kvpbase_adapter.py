"""
Kvpbase REST object store adapter.

Objects live at ``{endpoint}/{user_guid}/{container}/{key}``:

- ``GET`` returns the payload, ``GET ?metadata=true`` its JSON metadata
- ``PUT`` writes (create or replace), ``DELETE`` removes
- ``GET`` on the container with ``prefix`` / ``max-keys`` /
  ``continuation-token`` returns ``{"Blobs": [...], "NextContinuationToken": ...}``

Error bodies are not parsed; only the status code decides the error kind.
"""

import asyncio
import logging
import re
import urllib.parse
from datetime import datetime
from typing import Any

import httpx

from .cancellation import CancellationToken, check_cancelled
from .diagnostics import LogSink, emit
from .enumeration import (
    NativePage,
    empty_store,
    enumerate_page,
    exists_via_metadata,
    fill_url_template,
    write_many,
)
from .errors import BlobClientError, BlobIOError, BlobNotFoundError, InvalidInputError
from .models import (
    BlobData,
    BlobMetadata,
    EmptyResult,
    EnumerationResult,
    WriteRequest,
)
from .payload import (
    Payload,
    coerce_payload,
    read_stream,
    require_key,
    resolve_content_type,
)
from .settings import KvpbaseSettings
from .storage_protocols import AsyncBlobClient

log = logging.getLogger(__name__)

API_KEY_HEADER = "x-api-key"

# fromisoformat before 3.11 takes exactly 3 or 6 fractional digits
_FRACTION = re.compile(r"\.(\d+)")


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    value = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), value, count=1)
    return datetime.fromisoformat(value)


def error_for_status(
    status_code: int, key: str | None, cause: Exception | None = None
) -> BlobClientError:
    """Map a non-2xx status code to the client error taxonomy."""
    if status_code == 404:
        return BlobNotFoundError(f"Blob '{key}' not found", key=key, cause=cause)
    if status_code in (400, 422):
        return InvalidInputError(
            f"Request for blob '{key}' rejected with status {status_code}",
            key=key,
            cause=cause,
        )
    return BlobIOError(
        f"Request for blob '{key}' failed with status {status_code}",
        key=key,
        cause=cause,
        status_code=status_code,
    )


class KvpbaseBlobClient(AsyncBlobClient):
    """Adapter for a Kvpbase container, speaking its REST API through httpx."""

    _header = "[KvpbaseBlobClient] "

    def __init__(
        self,
        settings: KvpbaseSettings,
        logger: LogSink | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        """
        Args:
            settings: Endpoint, credentials and container.
            logger: Optional sink for diagnostic messages.
            http_client: Optional httpx.AsyncClient for dependency injection (testing).
        """
        self._settings = settings
        self.logger = logger
        self._headers = {API_KEY_HEADER: settings.api_key}
        self._client = http_client or httpx.AsyncClient(timeout=settings.timeout)

    @property
    def settings(self) -> KvpbaseSettings:
        return self._settings

    @property
    def _container_url(self) -> str:
        s = self._settings
        return f"{s.endpoint.rstrip('/')}/{s.user_guid}/{s.container}"

    def _object_url(self, key: str) -> str:
        return f"{self._container_url}/{urllib.parse.quote(key, safe='/')}"

    async def __aenter__(self) -> "KvpbaseBlobClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        self._log("disposing")
        await self._client.aclose()

    async def get(self, key: str, token: CancellationToken | None = None) -> bytes:
        require_key(key)
        response = await self._request("GET", self._object_url(key), key, token)
        return response.content

    async def get_stream(
        self, key: str, token: CancellationToken | None = None
    ) -> BlobData:
        return BlobData.from_bytes(await self.get(key, token=token))

    async def get_metadata(
        self, key: str, token: CancellationToken | None = None
    ) -> BlobMetadata:
        require_key(key)
        response = await self._request(
            "GET", self._object_url(key), key, token, params={"metadata": "true"}
        )
        try:
            body = response.json()
        except ValueError as e:
            raise BlobIOError(
                f"Malformed metadata response for blob '{key}'", key=key, cause=e
            ) from e
        return self._to_metadata(body, key)

    async def write(
        self,
        key: str,
        content_type: str,
        data: Payload,
        content_length: int | None = None,
        token: CancellationToken | None = None,
    ) -> None:
        require_key(key)
        stream, length = coerce_payload(key, data, content_length)
        body = await asyncio.to_thread(read_stream, key, stream, length, token)
        await self._request(
            "PUT",
            self._object_url(key),
            key,
            token,
            content=body,
            headers={"Content-Type": resolve_content_type(key, content_type)},
        )
        self._log(f"wrote {key} ({length} bytes)")

    async def write_many(
        self, requests: list[WriteRequest], token: CancellationToken | None = None
    ) -> None:
        await write_many(self, requests, token)

    async def delete(self, key: str, token: CancellationToken | None = None) -> None:
        require_key(key)
        try:
            await self._request("DELETE", self._object_url(key), key, token)
        except BlobNotFoundError:
            pass
        self._log(f"deleted {key}")

    async def exists(self, key: str, token: CancellationToken | None = None) -> bool:
        return await exists_via_metadata(self, key, token)

    def generate_url(self, key: str) -> str:
        s = self._settings
        if s.base_url:
            return fill_url_template(
                s.base_url, key, bucket=s.container, container=s.container
            )
        return f"{s.endpoint.rstrip('/')}/{s.user_guid}/{s.container}/{key}"

    async def enumerate(
        self,
        prefix: str | None = None,
        continuation_token: str | None = None,
        token: CancellationToken | None = None,
    ) -> EnumerationResult:
        self._log(f"enumerating using prefix {prefix}")

        async def list_page(prefix: str | None, cursor: str | None) -> NativePage:
            params: dict[str, Any] = {"max-keys": self._settings.page_size}
            if prefix:
                params["prefix"] = prefix
            if cursor:
                params["continuation-token"] = cursor
            response = await self._request(
                "GET", self._container_url, None, token, params=params
            )
            try:
                body = response.json()
            except ValueError as e:
                raise BlobIOError("Malformed enumeration response", cause=e) from e
            try:
                entries = body.get("Blobs") or []
                next_cursor = body.get("NextContinuationToken")
                blobs = [self._to_metadata(entry) for entry in entries]
            except (AttributeError, TypeError) as e:
                raise BlobIOError("Malformed enumeration response", cause=e) from e
            if next_cursor is not None and not isinstance(next_cursor, str):
                raise BlobIOError(
                    f"Malformed continuation token in enumeration response: {next_cursor!r}"
                )
            return blobs, next_cursor

        result = await enumerate_page(list_page, prefix, continuation_token, token)
        self._log(f"enumeration complete with {len(result.blobs)} BLOBs")
        return result

    async def empty(self, token: CancellationToken | None = None) -> EmptyResult:
        return await empty_store(self, token)

    async def _request(
        self,
        method: str,
        url: str,
        key: str | None,
        token: CancellationToken | None,
        **kwargs: Any,
    ) -> httpx.Response:
        check_cancelled(token, key)
        headers = {**self._headers, **kwargs.pop("headers", {})}
        try:
            response = await self._client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise BlobIOError(
                f"{method} {url} failed: {e}", key=key, cause=e
            ) from e
        if not response.is_success:
            raise error_for_status(response.status_code, key)
        return response

    @staticmethod
    def _to_metadata(entry: dict[str, Any], key: str | None = None) -> BlobMetadata:
        try:
            return BlobMetadata(
                key=key or entry["Key"],
                content_length=int(entry.get("ContentLength") or 0),
                content_type=entry.get("ContentType"),
                etag=entry.get("ETag") or entry.get("Md5"),
                created_utc=_parse_timestamp(entry.get("CreatedUtc")),
                last_modified_utc=_parse_timestamp(entry.get("LastUpdateUtc")),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise BlobIOError(
                f"Malformed metadata for blob '{key}': {entry!r}", key=key, cause=e
            ) from e

    def _log(self, msg: str) -> None:
        emit(log, self.logger, self._header, msg)
