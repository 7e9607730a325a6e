import asyncio
import logging

from azure.core.exceptions import (
    AzureError,
    HttpResponseError,
    ResourceNotFoundError,
)
from azure.storage.blob import BlobProperties, ContentSettings
from azure.storage.blob.aio import BlobServiceClient

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
from .settings import AzureSettings
from .storage_protocols import AsyncBlobClient

log = logging.getLogger(__name__)


class AzureBlobClient(AsyncBlobClient):
    """Azure Blob Storage adapter over the async azure-storage-blob SDK."""

    _header = "[AzureBlobClient] "

    def __init__(
        self,
        settings: AzureSettings,
        logger: LogSink | None = None,
        blob_service_client: BlobServiceClient | None = None,
    ):
        """
        Create an adapter from settings, or from an existing BlobServiceClient.
        The latter allows custom authentication and configuration.
        """
        self._settings = settings
        self.logger = logger
        if blob_service_client is None:
            blob_service_client = self._build_client(settings)
        self._client = blob_service_client
        self._container_client = blob_service_client.get_container_client(
            settings.container
        )

    @classmethod
    def from_connection_string(
        cls, connection_string: str, container: str, logger: LogSink | None = None
    ) -> "AzureBlobClient":
        """
        Convenience builder: create adapter from a connection string.
        """
        settings = AzureSettings(container=container, connection_string=connection_string)
        return cls(settings, logger=logger)

    @staticmethod
    def _build_client(settings: AzureSettings) -> BlobServiceClient:
        if settings.connection_string:
            return BlobServiceClient.from_connection_string(settings.connection_string)
        return BlobServiceClient(
            account_url=settings.account_url,
            credential={
                "account_name": settings.account_name,
                "account_key": settings.access_key,
            },
        )

    @property
    def settings(self) -> AzureSettings:
        return self._settings

    async def __aenter__(self) -> "AzureBlobClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        self._log("disposing")
        await self._client.close()

    async def get(self, key: str, token: CancellationToken | None = None) -> bytes:
        require_key(key)
        check_cancelled(token, key)
        blob_client = self._container_client.get_blob_client(key)
        try:
            stream = await blob_client.download_blob()
            check_cancelled(token, key)
            return await stream.readall()
        except AzureError as e:
            raise self._translate_error(e, key) from e

    async def get_stream(
        self, key: str, token: CancellationToken | None = None
    ) -> BlobData:
        return BlobData.from_bytes(await self.get(key, token=token))

    async def get_metadata(
        self, key: str, token: CancellationToken | None = None
    ) -> BlobMetadata:
        require_key(key)
        check_cancelled(token, key)
        blob_client = self._container_client.get_blob_client(key)
        try:
            props = await blob_client.get_blob_properties()
        except AzureError as e:
            raise self._translate_error(e, key) from e
        return self._to_metadata(props, key)

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
        check_cancelled(token, key)
        blob_client = self._container_client.get_blob_client(key)
        try:
            await blob_client.upload_blob(
                body,
                length=length,
                overwrite=True,
                content_settings=ContentSettings(
                    content_type=resolve_content_type(key, content_type)
                ),
            )
        except AzureError as e:
            raise self._translate_error(e, key) from e
        self._log(f"wrote {key} ({length} bytes)")

    async def write_many(
        self, requests: list[WriteRequest], token: CancellationToken | None = None
    ) -> None:
        await write_many(self, requests, token)

    async def delete(self, key: str, token: CancellationToken | None = None) -> None:
        require_key(key)
        check_cancelled(token, key)
        blob_client = self._container_client.get_blob_client(key)
        try:
            await blob_client.delete_blob()
        except ResourceNotFoundError:
            pass
        except AzureError as e:
            raise self._translate_error(e, key) from e
        self._log(f"deleted {key}")

    async def exists(self, key: str, token: CancellationToken | None = None) -> bool:
        return await exists_via_metadata(self, key, token)

    def generate_url(self, key: str) -> str:
        s = self._settings
        if s.base_url:
            return fill_url_template(s.base_url, key, container=s.container)
        if s.account_name or s.endpoint:
            account_url = s.account_url
        else:
            account_url = self._client.url.split("?", 1)[0].rstrip("/")
        return f"{account_url}/{s.container}/{key}"

    async def enumerate(
        self,
        prefix: str | None = None,
        continuation_token: str | None = None,
        token: CancellationToken | None = None,
    ) -> EnumerationResult:
        self._log(f"enumerating using prefix {prefix}")

        async def list_page(prefix: str | None, cursor: str | None) -> NativePage:
            pages = self._container_client.list_blobs(
                name_starts_with=prefix,
                results_per_page=self._settings.page_size,
            ).by_page(continuation_token=cursor)
            blobs: list[BlobMetadata] = []
            try:
                async for page in pages:
                    async for props in page:
                        blobs.append(self._to_metadata(props))
                    break
            except AzureError as e:
                raise self._translate_error(e, None) from e
            return blobs, pages.continuation_token

        result = await enumerate_page(list_page, prefix, continuation_token, token)
        self._log(f"enumeration complete with {len(result.blobs)} BLOBs")
        return result

    async def empty(self, token: CancellationToken | None = None) -> EmptyResult:
        return await empty_store(self, token)

    @staticmethod
    def _to_metadata(props: BlobProperties, key: str | None = None) -> BlobMetadata:
        content_settings = getattr(props, "content_settings", None)
        return BlobMetadata(
            key=key or props.name,
            content_length=props.size or 0,
            content_type=getattr(content_settings, "content_type", None),
            etag=props.etag,
            created_utc=getattr(props, "creation_time", None),
            last_modified_utc=props.last_modified,
        )

    @staticmethod
    def _translate_error(error: AzureError, key: str | None) -> BlobClientError:
        if isinstance(error, ResourceNotFoundError):
            return BlobNotFoundError(f"Blob '{key}' not found", key=key, cause=error)
        status = error.status_code if isinstance(error, HttpResponseError) else None
        return BlobIOError(str(error), key=key, cause=error, status_code=status)

    def _log(self, msg: str) -> None:
        emit(log, self.logger, self._header, msg)
