import asyncio
import logging
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

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
from .errors import BlobClientError, BlobIOError, BlobNotFoundError
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
from .settings import AwsSettings
from .storage_protocols import AsyncBlobClient

log = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


class S3BlobClient(AsyncBlobClient):
    """
    Amazon S3 (and S3-compatible) adapter.
    boto3 is synchronous, so every native call runs in a worker thread.
    """

    _header = "[S3BlobClient] "

    def __init__(
        self,
        settings: AwsSettings,
        logger: LogSink | None = None,
        s3_client: Any = None,
    ):
        """
        Create a client from settings. Pass ``s3_client`` to reuse an
        existing boto3 client with custom configuration.
        """
        self._settings = settings
        self.logger = logger
        self._client = s3_client if s3_client is not None else self._build_client(settings)

    @staticmethod
    def _build_client(settings: AwsSettings):
        config_kwargs: dict[str, Any] = {
            "region_name": settings.region,
            "signature_version": "s3v4",
        }
        kwargs: dict[str, Any] = {"use_ssl": settings.ssl}
        if settings.access_key and settings.secret_key:
            kwargs["aws_access_key_id"] = settings.access_key
            kwargs["aws_secret_access_key"] = settings.secret_key
        if settings.endpoint:
            config_kwargs["s3"] = {"addressing_style": "path"}
            kwargs["endpoint_url"] = settings.endpoint
        return boto3.client("s3", config=Config(**config_kwargs), **kwargs)

    @property
    def settings(self) -> AwsSettings:
        return self._settings

    async def __aenter__(self) -> "S3BlobClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        self._log("disposing")
        self._client.close()

    async def list_buckets(self, token: CancellationToken | None = None) -> list[str]:
        """List bucket names visible to the configured credentials."""
        response = await self._call("list_buckets", None, token)
        return [bucket["Name"] for bucket in response.get("Buckets") or []]

    async def get(self, key: str, token: CancellationToken | None = None) -> bytes:
        require_key(key)
        response = await self._call(
            "get_object", key, token, Bucket=self._settings.bucket, Key=key
        )
        body = response["Body"]
        expected = response.get("ContentLength")
        try:
            check_cancelled(token, key)
            data = await asyncio.to_thread(body.read)
        except (BotoCoreError, OSError) as e:
            raise BlobIOError(f"Unable to read object '{key}'", key=key, cause=e) from e
        finally:
            body.close()
        if expected is not None and len(data) != expected:
            raise BlobIOError(
                f"Unable to read object '{key}': expected {expected} bytes, got {len(data)}",
                key=key,
            )
        return data

    async def get_stream(
        self, key: str, token: CancellationToken | None = None
    ) -> BlobData:
        return BlobData.from_bytes(await self.get(key, token=token))

    async def get_metadata(
        self, key: str, token: CancellationToken | None = None
    ) -> BlobMetadata:
        require_key(key)
        response = await self._call(
            "head_object", key, token, Bucket=self._settings.bucket, Key=key
        )
        return BlobMetadata(
            key=key,
            content_length=response.get("ContentLength", 0) or 0,
            content_type=response.get("ContentType"),
            etag=response.get("ETag"),
            last_modified_utc=response.get("LastModified"),
        )

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
        await self._call(
            "put_object",
            key,
            token,
            Bucket=self._settings.bucket,
            Key=key,
            Body=body,
            ContentLength=length,
            ContentType=resolve_content_type(key, content_type),
        )
        self._log(f"wrote {key} ({length} bytes)")

    async def write_many(
        self, requests: list[WriteRequest], token: CancellationToken | None = None
    ) -> None:
        await write_many(self, requests, token)

    async def delete(self, key: str, token: CancellationToken | None = None) -> None:
        require_key(key)
        try:
            await self._call(
                "delete_object", key, token, Bucket=self._settings.bucket, Key=key
            )
        except BlobNotFoundError:
            pass
        self._log(f"deleted {key}")

    async def exists(self, key: str, token: CancellationToken | None = None) -> bool:
        return await exists_via_metadata(self, key, token)

    def generate_url(self, key: str) -> str:
        s = self._settings
        if s.base_url:
            return fill_url_template(s.base_url, key, bucket=s.bucket)
        if s.endpoint:
            return f"{s.endpoint.rstrip('/')}/{s.bucket}/{key}"
        scheme = "https" if s.ssl else "http"
        return f"{scheme}://{s.bucket}.s3.{s.region}.amazonaws.com/{key}"

    async def enumerate(
        self,
        prefix: str | None = None,
        continuation_token: str | None = None,
        token: CancellationToken | None = None,
    ) -> EnumerationResult:
        self._log(f"enumerating using prefix {prefix}")

        async def list_page(prefix: str | None, cursor: str | None) -> NativePage:
            params: dict[str, Any] = {
                "Bucket": self._settings.bucket,
                "MaxKeys": self._settings.page_size,
            }
            if prefix:
                params["Prefix"] = prefix
            if cursor:
                params["ContinuationToken"] = cursor
            response = await self._call("list_objects_v2", None, token, **params)
            blobs = [
                BlobMetadata(
                    key=obj["Key"],
                    content_length=obj.get("Size", 0),
                    etag=obj.get("ETag"),
                    last_modified_utc=obj.get("LastModified"),
                )
                for obj in response.get("Contents") or []
            ]
            next_cursor = None
            if response.get("IsTruncated"):
                next_cursor = response.get("NextContinuationToken")
            return blobs, next_cursor

        result = await enumerate_page(list_page, prefix, continuation_token, token)
        self._log(f"enumeration complete with {len(result.blobs)} BLOBs")
        return result

    async def empty(self, token: CancellationToken | None = None) -> EmptyResult:
        return await empty_store(self, token)

    async def _call(
        self,
        operation: str,
        key: str | None,
        token: CancellationToken | None,
        **params: Any,
    ) -> dict:
        check_cancelled(token, key)
        method = getattr(self._client, operation)
        try:
            return await asyncio.to_thread(method, **params)
        except ClientError as e:
            raise self._translate_error(e, key) from e
        except BotoCoreError as e:
            raise BlobIOError(
                f"S3 {operation} failed: {e}", key=key, cause=e
            ) from e

    @staticmethod
    def _translate_error(error: ClientError, key: str | None) -> BlobClientError:
        code = str(error.response.get("Error", {}).get("Code", ""))
        status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        if code in _NOT_FOUND_CODES:
            return BlobNotFoundError(f"Blob '{key}' not found", key=key, cause=error)
        return BlobIOError(str(error), key=key, cause=error, status_code=status)

    def _log(self, msg: str) -> None:
        emit(log, self.logger, self._header, msg)
