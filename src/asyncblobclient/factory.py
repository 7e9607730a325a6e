"""Factory for creating blob clients from settings objects."""

import os

from .diagnostics import LogSink
from .settings import AwsSettings, AzureSettings, DiskSettings, KvpbaseSettings
from .storage_protocols import AsyncBlobClient

Settings = AwsSettings | AzureSettings | KvpbaseSettings | DiskSettings


def create_blob_client(
    settings: Settings, logger: LogSink | None = None
) -> AsyncBlobClient:
    """
    Create the adapter matching the settings type.

    Raises:
        TypeError: If the settings type is not recognised.
    """
    if isinstance(settings, AwsSettings):
        from .aws_s3_adapter import S3BlobClient

        return S3BlobClient(settings, logger=logger)
    if isinstance(settings, AzureSettings):
        from .azure_blob_adapter import AzureBlobClient

        return AzureBlobClient(settings, logger=logger)
    if isinstance(settings, KvpbaseSettings):
        from .kvpbase_adapter import KvpbaseBlobClient

        return KvpbaseBlobClient(settings, logger=logger)
    if isinstance(settings, DiskSettings):
        from .local_file_adapter import LocalFileBlobClient

        return LocalFileBlobClient(settings, logger=logger)
    raise TypeError(f"Unsupported settings type: {type(settings).__name__}")


def create_blob_client_from_env(
    storage_type: str | None = None, logger: LogSink | None = None
) -> AsyncBlobClient:
    """
    Build settings from environment variables and create the matching client.

    Args:
        storage_type: Override backend type. Reads OBJECT_STORAGE_TYPE if None. Defaults to "s3".

    Raises:
        ValueError: If required configuration is missing or storage_type is unsupported.
    """
    backend = (storage_type or os.getenv("OBJECT_STORAGE_TYPE", "s3")).lower()

    if backend == "s3":
        return create_blob_client(AwsSettings.from_env(), logger=logger)
    if backend == "azure":
        return create_blob_client(AzureSettings.from_env(), logger=logger)
    if backend == "kvpbase":
        return create_blob_client(KvpbaseSettings.from_env(), logger=logger)
    if backend in ("disk", "fs"):
        return create_blob_client(DiskSettings.from_env(), logger=logger)

    raise ValueError(
        f"Unsupported storage type: {backend!r}. Supported: s3, azure, kvpbase, disk"
    )
