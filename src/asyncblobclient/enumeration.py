"""
Backend-independent enumeration and the bulk operations built on the client contract.

Each adapter supplies a native "list one page" primitive; ``enumerate_page``
wraps its cursor into an opaque continuation token so callers see the same
paging contract on every backend.
"""

import base64
import binascii
from typing import AsyncIterator, Awaitable, Callable

from .cancellation import CancellationToken, check_cancelled
from .errors import BlobClientError, BlobNotFoundError, InvalidInputError
from .models import BlobMetadata, EmptyResult, EnumerationResult, WriteRequest
from .storage_protocols import AsyncBlobClient

NativePage = tuple[list[BlobMetadata], str | None]
ListPage = Callable[[str | None, str | None], Awaitable[NativePage]]


def encode_continuation_token(cursor: str | None) -> str | None:
    if not cursor:
        return None
    return base64.urlsafe_b64encode(cursor.encode("utf-8")).decode("ascii")


def decode_continuation_token(continuation_token: str | None) -> str | None:
    if not continuation_token:
        return None
    try:
        raw = base64.b64decode(continuation_token, altchars=b"-_", validate=True)
        return raw.decode("utf-8")
    except (binascii.Error, UnicodeError, ValueError) as e:
        raise InvalidInputError(
            f"Malformed continuation token '{continuation_token}'", cause=e
        ) from e


async def enumerate_page(
    list_page: ListPage,
    prefix: str | None = None,
    continuation_token: str | None = None,
    token: CancellationToken | None = None,
) -> EnumerationResult:
    """Fetch one native page and wrap its cursor as the next continuation token."""
    check_cancelled(token)
    cursor = decode_continuation_token(continuation_token)
    blobs, next_cursor = await list_page(prefix or None, cursor)
    return EnumerationResult(
        blobs=list(blobs),
        next_continuation_token=encode_continuation_token(next_cursor),
    )


async def iterate_blobs(
    client: AsyncBlobClient,
    prefix: str | None = None,
    token: CancellationToken | None = None,
) -> AsyncIterator[BlobMetadata]:
    """Walk every page of an enumeration, yielding each blob once."""
    continuation_token = None
    while True:
        page = await client.enumerate(prefix, continuation_token, token=token)
        for md in page.blobs:
            yield md
        if not page.next_continuation_token:
            return
        continuation_token = page.next_continuation_token


async def empty_store(
    client: AsyncBlobClient, token: CancellationToken | None = None
) -> EmptyResult:
    """
    Enumerate and delete until a page comes back with no blobs.

    A failed deletion stops the loop. The error is re-raised with the
    blobs deleted so far attached as ``partial_result``.
    """
    result = EmptyResult()
    continuation_token = None
    while True:
        page = await client.enumerate(None, continuation_token, token=token)
        continuation_token = page.next_continuation_token
        if not page.blobs:
            break
        for md in page.blobs:
            try:
                await client.delete(md.key, token=token)
            except BlobClientError as e:
                e.partial_result = result
                raise
            result.blobs.append(md)
    return result


async def write_many(
    client: AsyncBlobClient,
    requests: list[WriteRequest],
    token: CancellationToken | None = None,
) -> None:
    for request in requests:
        check_cancelled(token, request.key)
        if request.data is not None:
            await client.write(
                request.key, request.content_type, request.data, token=token
            )
        else:
            await client.write(
                request.key,
                request.content_type,
                request.data_stream,
                content_length=request.content_length,
                token=token,
            )


async def exists_via_metadata(
    client: AsyncBlobClient, key: str, token: CancellationToken | None = None
) -> bool:
    try:
        await client.get_metadata(key, token=token)
        return True
    except BlobNotFoundError:
        return False


def fill_url_template(template: str, key: str, **names: str) -> str:
    url = template
    for placeholder, value in names.items():
        url = url.replace("{" + placeholder + "}", value)
    return url.replace("{key}", key)
