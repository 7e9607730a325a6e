"""
asyncblobclient
===============

One async client contract for object storage, backed by Amazon S3, Azure Blob
Storage, Kvpbase, or the local filesystem.

Main entry points:
- AsyncBlobClient: the capability protocol every backend implements
- S3BlobClient, AzureBlobClient, KvpbaseBlobClient, LocalFileBlobClient: backends
- create_blob_client: build the backend matching a settings object
- BlobMetadata, BlobData, EnumerationResult, WriteRequest, EmptyResult: data model
- CancellationToken: cooperative cancellation for any operation
- BlobNotFoundError, InvalidInputError, BlobIOError, OperationCancelledError: errors

Example:
    from asyncblobclient import DiskSettings, create_blob_client

    async with create_blob_client(DiskSettings("./data")) as client:
        await client.write("logs/today.txt", "text/plain", "hello")
        page = await client.enumerate("logs/")
"""

from .cancellation import CancellationToken
from .errors import (
    BlobClientError,
    BlobIOError,
    BlobNotFoundError,
    InvalidInputError,
    OperationCancelledError,
)
from .models import (
    BlobData,
    BlobMetadata,
    EmptyResult,
    EnumerationResult,
    WriteRequest,
    normalize_etag,
)
from .settings import AwsSettings, AzureSettings, DiskSettings, KvpbaseSettings
from .storage_protocols import AsyncBlobClient
from .enumeration import iterate_blobs
from .factory import create_blob_client, create_blob_client_from_env
from .local_file_adapter import LocalFileBlobClient
from .kvpbase_adapter import KvpbaseBlobClient
from .aws_s3_adapter import S3BlobClient
from .azure_blob_adapter import AzureBlobClient

import importlib.metadata

try:
    __version__ = importlib.metadata.version(__name__)
except importlib.metadata.PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = [
    "AsyncBlobClient",
    "S3BlobClient",
    "AzureBlobClient",
    "KvpbaseBlobClient",
    "LocalFileBlobClient",
    "create_blob_client",
    "create_blob_client_from_env",
    "iterate_blobs",
    "AwsSettings",
    "AzureSettings",
    "KvpbaseSettings",
    "DiskSettings",
    "BlobMetadata",
    "BlobData",
    "EnumerationResult",
    "WriteRequest",
    "EmptyResult",
    "normalize_etag",
    "CancellationToken",
    "BlobClientError",
    "BlobNotFoundError",
    "InvalidInputError",
    "BlobIOError",
    "OperationCancelledError",
]
