import os
from dataclasses import dataclass

DEFAULT_PAGE_SIZE = 1000


def _require_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise ValueError(f"Environment variable {name} is required")
    return value


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


def _check_page_size(page_size: int) -> None:
    if page_size < 1:
        raise ValueError(f"page_size must be positive, got {page_size}")


@dataclass(frozen=True)
class AwsSettings:
    """Settings for S3 and S3-compatible stores."""

    access_key: str | None
    secret_key: str | None
    bucket: str
    region: str = "us-west-1"
    endpoint: str | None = None
    ssl: bool = True
    base_url: str | None = None
    page_size: int = DEFAULT_PAGE_SIZE

    def __post_init__(self) -> None:
        if not self.bucket:
            raise ValueError("bucket is required for S3 storage")
        _check_page_size(self.page_size)

    @classmethod
    def from_env(cls) -> "AwsSettings":
        bucket = os.getenv("OBJECT_STORAGE_BUCKET_NAME") or os.getenv("S3_BUCKET_NAME")
        if not bucket:
            raise ValueError(
                "Bucket name required: set OBJECT_STORAGE_BUCKET_NAME or S3_BUCKET_NAME"
            )
        return cls(
            access_key=os.getenv("AWS_ACCESS_KEY_ID"),
            secret_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
            bucket=bucket,
            region=os.getenv("S3_REGION", "us-west-1"),
            endpoint=os.getenv("S3_ENDPOINT_URL"),
            ssl=_env_flag("S3_SSL", True),
            base_url=os.getenv("S3_BASE_URL"),
            page_size=_env_int("S3_PAGE_SIZE", DEFAULT_PAGE_SIZE),
        )


@dataclass(frozen=True)
class AzureSettings:
    """Settings for Azure Blob Storage."""

    container: str
    account_name: str | None = None
    access_key: str | None = None
    connection_string: str | None = None
    endpoint: str | None = None
    ssl: bool = True
    base_url: str | None = None
    page_size: int = DEFAULT_PAGE_SIZE

    def __post_init__(self) -> None:
        if not self.container:
            raise ValueError("container is required for Azure blob storage")
        if not self.connection_string and not (self.account_name and self.access_key):
            raise ValueError(
                "Azure blob storage requires either connection_string or "
                "account_name + access_key"
            )
        _check_page_size(self.page_size)

    @property
    def account_url(self) -> str:
        if self.endpoint:
            return self.endpoint.rstrip("/")
        scheme = "https" if self.ssl else "http"
        return f"{scheme}://{self.account_name}.blob.core.windows.net"

    @classmethod
    def from_env(cls) -> "AzureSettings":
        container = os.getenv("OBJECT_STORAGE_BUCKET_NAME") or os.getenv(
            "AZURE_CONTAINER_NAME"
        )
        if not container:
            raise ValueError(
                "Container name required: set OBJECT_STORAGE_BUCKET_NAME or "
                "AZURE_CONTAINER_NAME"
            )
        return cls(
            container=container,
            account_name=os.getenv("AZURE_STORAGE_ACCOUNT_NAME"),
            access_key=os.getenv("AZURE_STORAGE_ACCOUNT_KEY"),
            connection_string=os.getenv("AZURE_STORAGE_CONNECTION_STRING"),
            endpoint=os.getenv("AZURE_STORAGE_ENDPOINT"),
            ssl=_env_flag("AZURE_STORAGE_SSL", True),
            base_url=os.getenv("AZURE_BASE_URL"),
            page_size=_env_int("AZURE_PAGE_SIZE", DEFAULT_PAGE_SIZE),
        )


@dataclass(frozen=True)
class KvpbaseSettings:
    """Settings for a Kvpbase REST object store."""

    endpoint: str
    user_guid: str
    container: str
    api_key: str
    base_url: str | None = None
    page_size: int = DEFAULT_PAGE_SIZE
    timeout: float = 30.0

    def __post_init__(self) -> None:
        for name in ("endpoint", "user_guid", "container", "api_key"):
            if not getattr(self, name):
                raise ValueError(f"{name} is required for Kvpbase storage")
        _check_page_size(self.page_size)

    @classmethod
    def from_env(cls) -> "KvpbaseSettings":
        return cls(
            endpoint=_require_env("KVPBASE_ENDPOINT"),
            user_guid=_require_env("KVPBASE_USER_GUID"),
            container=_require_env("KVPBASE_CONTAINER"),
            api_key=_require_env("KVPBASE_API_KEY"),
            base_url=os.getenv("KVPBASE_BASE_URL"),
            page_size=_env_int("KVPBASE_PAGE_SIZE", DEFAULT_PAGE_SIZE),
        )


@dataclass(frozen=True)
class DiskSettings:
    """Settings for a local directory used as a blob store."""

    directory: str
    base_url: str | None = None
    page_size: int = DEFAULT_PAGE_SIZE

    def __post_init__(self) -> None:
        if not self.directory:
            raise ValueError("directory is required for filesystem storage")
        _check_page_size(self.page_size)

    @classmethod
    def from_env(cls) -> "DiskSettings":
        return cls(
            directory=_require_env("BLOB_DISK_DIRECTORY"),
            base_url=os.getenv("BLOB_DISK_BASE_URL"),
            page_size=_env_int("BLOB_DISK_PAGE_SIZE", DEFAULT_PAGE_SIZE),
        )
