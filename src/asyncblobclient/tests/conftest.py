import hashlib
import io
import json
import urllib.parse
from datetime import datetime, timezone
from types import SimpleNamespace

import httpx
import pytest
from azure.core.exceptions import ResourceNotFoundError
from botocore.exceptions import ClientError

from asyncblobclient import (
    AwsSettings,
    AzureBlobClient,
    AzureSettings,
    DiskSettings,
    KvpbaseBlobClient,
    KvpbaseSettings,
    LocalFileBlobClient,
    S3BlobClient,
)

BUCKET = "test-bucket"
CONTAINER = "test-container"
KVPBASE_ENDPOINT = "http://kvpbase.local:8001"
KVPBASE_USER = "user-1"
KVPBASE_API_KEY = "kvp-secret"


def quoted_md5(data: bytes) -> str:
    return '"' + hashlib.md5(data).hexdigest() + '"'


def _page_after(keys: list[str], prefix: str | None, after: str | None, size: int):
    matching = sorted(k for k in keys if not prefix or k.startswith(prefix))
    if after:
        matching = [k for k in matching if k > after]
    page = matching[:size]
    next_cursor = page[-1] if len(matching) > len(page) else None
    return page, next_cursor


# ---------------------------
# S3: stands in for a boto3 client
# ---------------------------
def client_error(code: str, status: int, operation: str = "TestOp") -> ClientError:
    return ClientError(
        {
            "Error": {"Code": code, "Message": code},
            "ResponseMetadata": {"HTTPStatusCode": status},
        },
        operation,
    )


class FakeS3Client:
    def __init__(self, bucket: str = BUCKET):
        self.bucket = bucket
        self.objects: dict[str, dict] = {}
        self.closed = False
        self.list_calls: list[dict] = []

    def _check_bucket(self, bucket: str) -> None:
        if bucket != self.bucket:
            raise client_error("NoSuchBucket", 404)

    def put_object(self, Bucket, Key, Body, ContentLength, ContentType):
        self._check_bucket(Bucket)
        assert len(Body) == ContentLength
        self.objects[Key] = {
            "Body": bytes(Body),
            "ContentType": ContentType,
            "ETag": quoted_md5(Body),
            "LastModified": datetime.now(timezone.utc),
        }
        return {"ETag": self.objects[Key]["ETag"]}

    def get_object(self, Bucket, Key):
        self._check_bucket(Bucket)
        if Key not in self.objects:
            raise client_error("NoSuchKey", 404, "GetObject")
        obj = self.objects[Key]
        return {
            "Body": io.BytesIO(obj["Body"]),
            "ContentLength": len(obj["Body"]),
            "ContentType": obj["ContentType"],
            "ETag": obj["ETag"],
        }

    def head_object(self, Bucket, Key):
        self._check_bucket(Bucket)
        if Key not in self.objects:
            raise client_error("404", 404, "HeadObject")
        obj = self.objects[Key]
        return {
            "ContentLength": len(obj["Body"]),
            "ContentType": obj["ContentType"],
            "ETag": obj["ETag"],
            "LastModified": obj["LastModified"],
        }

    def delete_object(self, Bucket, Key):
        self._check_bucket(Bucket)
        self.objects.pop(Key, None)
        return {}

    def list_objects_v2(self, Bucket, MaxKeys, Prefix=None, ContinuationToken=None):
        self._check_bucket(Bucket)
        self.list_calls.append(
            {"MaxKeys": MaxKeys, "Prefix": Prefix, "ContinuationToken": ContinuationToken}
        )
        after = ContinuationToken.removeprefix("s3cursor:") if ContinuationToken else None
        page, next_cursor = _page_after(list(self.objects), Prefix, after, MaxKeys)
        response = {
            "IsTruncated": next_cursor is not None,
            "KeyCount": len(page),
        }
        if page:
            response["Contents"] = [
                {
                    "Key": key,
                    "Size": len(self.objects[key]["Body"]),
                    "ETag": self.objects[key]["ETag"],
                    "LastModified": self.objects[key]["LastModified"],
                }
                for key in page
            ]
        if next_cursor:
            response["NextContinuationToken"] = "s3cursor:" + next_cursor
        return response

    def list_buckets(self):
        return {"Buckets": [{"Name": self.bucket}, {"Name": "other-bucket"}]}

    def close(self):
        self.closed = True


# ---------------------------
# Azure: stands in for azure.storage.blob.aio clients
# ---------------------------
class FakeAzureStore:
    def __init__(self):
        self.blobs: dict[str, SimpleNamespace] = {}


class _FakeDownloader:
    def __init__(self, data: bytes):
        self._data = data

    async def readall(self) -> bytes:
        return self._data


class FakeAzureBlobClient:
    def __init__(self, store: FakeAzureStore, name: str):
        self._store = store
        self.blob_name = name

    def _props(self) -> SimpleNamespace:
        if self.blob_name not in self._store.blobs:
            raise ResourceNotFoundError(message="The specified blob does not exist.")
        return self._store.blobs[self.blob_name]

    async def download_blob(self):
        return _FakeDownloader(self._props().data)

    async def get_blob_properties(self):
        return self._props()

    async def upload_blob(self, data, length=None, overwrite=False, content_settings=None):
        now = datetime.now(timezone.utc)
        existing = self._store.blobs.get(self.blob_name)
        self._store.blobs[self.blob_name] = SimpleNamespace(
            name=self.blob_name,
            data=bytes(data),
            size=len(data),
            etag=quoted_md5(data),
            content_settings=content_settings,
            creation_time=existing.creation_time if existing else now,
            last_modified=now,
        )

    async def delete_blob(self):
        self._props()
        del self._store.blobs[self.blob_name]


class _FakePage:
    def __init__(self, items):
        self._items = list(items)

    def __aiter__(self):
        return self._gen()

    async def _gen(self):
        for item in self._items:
            yield item


class FakeAzurePageIterator:
    def __init__(self, store, prefix, page_size, continuation_token):
        self._store = store
        self._prefix = prefix
        self._page_size = page_size
        self.continuation_token = continuation_token
        self._finished = False

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self._finished:
            raise StopAsyncIteration
        page, next_cursor = _page_after(
            list(self._store.blobs),
            self._prefix,
            self.continuation_token,
            self._page_size,
        )
        self.continuation_token = next_cursor
        self._finished = next_cursor is None
        return _FakePage(self._store.blobs[name] for name in page)


class FakeAzureContainerClient:
    def __init__(self, store: FakeAzureStore):
        self._store = store

    def get_blob_client(self, name: str) -> FakeAzureBlobClient:
        return FakeAzureBlobClient(self._store, name)

    def list_blobs(self, name_starts_with=None, results_per_page=None):
        store = self._store
        return SimpleNamespace(
            by_page=lambda continuation_token=None: FakeAzurePageIterator(
                store, name_starts_with, results_per_page, continuation_token
            )
        )


class FakeBlobServiceClient:
    url = "https://fakeaccount.blob.core.windows.net/"

    def __init__(self, store: FakeAzureStore | None = None):
        self.store = store or FakeAzureStore()
        self.closed = False

    def get_container_client(self, name: str) -> FakeAzureContainerClient:
        return FakeAzureContainerClient(self.store)

    async def close(self) -> None:
        self.closed = True


# ---------------------------
# Kvpbase: an in-memory REST server behind httpx.MockTransport
# ---------------------------
class FakeKvpbaseServer:
    def __init__(self, api_key: str = KVPBASE_API_KEY):
        self.api_key = api_key
        self.objects: dict[str, dict] = {}
        self.container_path = f"/{KVPBASE_USER}/{CONTAINER}"
        self.fail_with: int | None = None

    def _metadata(self, key: str) -> dict:
        obj = self.objects[key]
        return {
            "Key": key,
            "ContentLength": len(obj["data"]),
            "ContentType": obj["content_type"],
            "ETag": quoted_md5(obj["data"]),
            "CreatedUtc": "2024-05-01T12:00:00Z",
            "LastUpdateUtc": obj["updated"],
        }

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.headers.get("x-api-key") != self.api_key:
            return httpx.Response(401)
        if self.fail_with is not None:
            return httpx.Response(self.fail_with, text="error")

        path = urllib.parse.unquote(request.url.path)
        if path.rstrip("/") == self.container_path and request.method == "GET":
            params = request.url.params
            page, next_cursor = _page_after(
                list(self.objects),
                params.get("prefix"),
                params.get("continuation-token"),
                int(params.get("max-keys", "1000")),
            )
            body = {
                "Blobs": [self._metadata(k) for k in page],
                "NextContinuationToken": next_cursor,
            }
            return httpx.Response(200, content=json.dumps(body))

        if not path.startswith(self.container_path + "/"):
            return httpx.Response(400)
        key = path[len(self.container_path) + 1 :]

        if request.method == "PUT":
            self.objects[key] = {
                "data": request.content,
                "content_type": request.headers.get("content-type"),
                "updated": datetime.now(timezone.utc).isoformat(),
            }
            return httpx.Response(201)
        if key not in self.objects:
            return httpx.Response(404)
        if request.method == "DELETE":
            del self.objects[key]
            return httpx.Response(204)
        if request.method == "GET" and request.url.params.get("metadata") == "true":
            return httpx.Response(200, json=self._metadata(key))
        if request.method == "GET":
            return httpx.Response(200, content=self.objects[key]["data"])
        return httpx.Response(405)


# ---------------------------
# Builders
# ---------------------------
def make_s3_client(page_size: int = 1000, **settings_kwargs):
    fake = FakeS3Client()
    settings = AwsSettings(
        access_key="AKIA",
        secret_key="secret",
        bucket=BUCKET,
        region="us-west-1",
        page_size=page_size,
        **settings_kwargs,
    )
    return S3BlobClient(settings, s3_client=fake), fake


def make_azure_client(page_size: int = 1000, **settings_kwargs):
    fake = FakeBlobServiceClient()
    settings = AzureSettings(
        container=CONTAINER,
        account_name="fakeaccount",
        access_key="a2V5",
        page_size=page_size,
        **settings_kwargs,
    )
    return AzureBlobClient(settings, blob_service_client=fake), fake


def make_kvpbase_client(page_size: int = 1000, **settings_kwargs):
    server = FakeKvpbaseServer()
    settings = KvpbaseSettings(
        endpoint=KVPBASE_ENDPOINT,
        user_guid=KVPBASE_USER,
        container=CONTAINER,
        api_key=KVPBASE_API_KEY,
        page_size=page_size,
        **settings_kwargs,
    )
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(server.handler))
    return KvpbaseBlobClient(settings, http_client=http_client), server


def make_local_client(directory, page_size: int = 1000, **settings_kwargs):
    settings = DiskSettings(directory=str(directory), page_size=page_size, **settings_kwargs)
    return LocalFileBlobClient(settings), directory


@pytest.fixture
def s3_client():
    client, _ = make_s3_client()
    return client


@pytest.fixture
def fake_s3():
    return make_s3_client()


@pytest.fixture
def fake_azure():
    return make_azure_client()


@pytest.fixture
def fake_kvpbase():
    return make_kvpbase_client()


@pytest.fixture
def local_client(tmp_path):
    client, _ = make_local_client(tmp_path / "store")
    return client
