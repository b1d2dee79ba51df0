# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
"""Canonical request construction for Signature Version 4.

Every function here is deterministic over its inputs. The only side effect in the
module is the body buffering done by :func:`request_payload` and
:func:`async_request_payload`, which always leave the request body re-readable.
"""

from collections.abc import AsyncIterable, Iterable
from hashlib import sha256
from inspect import iscoroutinefunction
from io import BytesIO
from typing import TypeAlias
from urllib.parse import quote_from_bytes, unquote_to_bytes

from ._io import AsyncBytesReader
from .exceptions import BodyReadFailureException
from .interfaces.http import FieldPosition, Request
from .interfaces.io import (
    AsyncReadableBody,
    AsyncRewindableBody,
    ReadableBody,
    RewindableBody,
)

AUTHORIZATION_HEADER: str = "authorization"
HOST_HEADER: str = "host"
EMPTY_SHA256_HASH: str = (
    "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
)

SignedHeaderSet: TypeAlias = frozenset[str]
"""Lower-cased header names to sign. The empty set means every header present."""


def normalize_signed_headers(
    signed_headers: Iterable[str] | str | None,
) -> SignedHeaderSet:
    """Lower-case a caller supplied selection of header names.

    A ``;`` delimited string, as found in an ``Authorization`` header, is accepted
    as well as any iterable of names. ``None`` selects every header.
    """
    if signed_headers is None:
        return frozenset()
    if isinstance(signed_headers, str):
        signed_headers = signed_headers.split(";")
    return frozenset(name.lower() for name in signed_headers if name)


def hex_sha256(data: bytes) -> str:
    return sha256(data).hexdigest()


def canonical_uri(request: Request) -> str:
    """Normalize and encode the request path.

    The path is decoded to raw bytes, dot segments are resolved without climbing
    above the root, empty segments are dropped and each remaining segment is
    encoded on its own. Bytes that are not valid UTF-8 round trip unchanged.
    """
    path = request.destination.path or ""
    segments: list[str] = []
    for segment in unquote_to_bytes(path).split(b"/"):
        match segment:
            case b"" | b".":
                continue
            case b"..":
                if segments:
                    segments.pop()
            case _:
                segments.append(_uri_encode(segment))
    return "/" + "/".join(segments)


def canonical_query_string(request: Request) -> str:
    """Encode every query parameter and sort the encoded ``key=value`` entries.

    Parameters with an empty value are emitted as the bare key. Repeated keys
    produce one entry per value.
    """
    query = request.destination.query
    if not query:
        return ""

    entries: list[str] = []
    for key, value in _parse_query(query):
        encoded_key = _uri_encode(key)
        if value:
            entries.append(f"{encoded_key}={_uri_encode(value)}")
        else:
            entries.append(encoded_key)
    # Sorted on the whole encoded entry, not just the key.
    return "&".join(sorted(entries))


def canonical_headers(
    request: Request, signed_headers: Iterable[str] | None = None
) -> str:
    """Build the newline terminated ``name:values`` block of signed headers."""
    fields = _select_signing_fields(request, normalize_signed_headers(signed_headers))
    lines = (
        f"{name}:{','.join(sorted(_trim_field_value(value) for value in values))}"
        for name, values in fields.items()
    )
    return "\n".join(sorted(lines)) + "\n"


def signed_header_list(
    request: Request, signed_headers: Iterable[str] | None = None
) -> str:
    """List the names used by :func:`canonical_headers`, sorted and ``;`` joined."""
    fields = _select_signing_fields(request, normalize_signed_headers(signed_headers))
    return ";".join(sorted(fields))


def canonical_request(
    request: Request,
    signed_headers: Iterable[str] | None = None,
    *,
    payload: bytes | None = None,
) -> str:
    """The canonical request is a standardized string laying out the components used
    in the SigV4 signing algorithm. This is useful to quickly compare inputs to find
    signature mismatches and unintended variances.

    The SigV4 specification defines the canonical request to be:
        <HTTPMethod>\n
        <CanonicalURI>\n
        <CanonicalQueryString>\n
        <CanonicalHeaders>\n
        <SignedHeaders>\n
        <HashedPayload>

    :param request: The request to canonicalize.
    :param signed_headers: Header names to include. ``None`` or an empty collection
        includes every header on the request.
    :param payload: The already materialized request body. When omitted the body is
        read through :func:`request_payload`, which leaves it re-readable.
    """
    if payload is None:
        payload = request_payload(request)
    selection = normalize_signed_headers(signed_headers)
    return (
        f"{request.method}\n"
        f"{canonical_uri(request)}\n"
        f"{canonical_query_string(request)}\n"
        f"{canonical_headers(request, selection)}\n"
        f"{signed_header_list(request, selection)}\n"
        f"{hex_sha256(payload)}"
    )


def request_payload(request: Request) -> bytes:
    """Read the full request body while keeping it available to later readers.

    Seekable bodies are rewound to where they started. Any other stream is buffered
    and replaced on the request with an equivalent :class:`io.BytesIO`.

    :raises BodyReadFailureException: If the body could not be read.
    """
    body = request.body
    if body is None:
        return b""
    if isinstance(body, bytes | bytearray):
        return bytes(body)
    if not (isinstance(body, Iterable) or _is_sync_stream(body)):
        raise TypeError(
            "An async body was attached to a synchronous signer. Please use "
            "AsyncSigV4Signer for async requests or ensure your body is "
            "of type Iterable[bytes]."
        )

    if isinstance(body, RewindableBody):
        position = body.tell()
        try:
            payload = _read_sync(body)
        except OSError as e:
            body.seek(position)
            raise BodyReadFailureException(f"Failed to read request body: {e}") from e
        body.seek(position)
        return payload

    try:
        payload = _read_sync(body)
    except OSError as e:
        raise BodyReadFailureException(f"Failed to read request body: {e}") from e
    request.body = BytesIO(payload)
    return payload


async def async_request_payload(request: Request) -> bytes:
    """Async counterpart of :func:`request_payload`.

    Non-seekable bodies are replaced with an :class:`AsyncBytesReader`.
    """
    body = request.body
    if body is None:
        return b""
    if isinstance(body, bytes | bytearray):
        return bytes(body)
    if not (isinstance(body, AsyncIterable) or _is_async_stream(body)):
        raise TypeError(
            "A sync body was attached to an asynchronous signer. Please use "
            "SigV4Signer for sync requests or ensure your body is "
            "of type AsyncIterable[bytes]."
        )

    if isinstance(body, AsyncRewindableBody) and iscoroutinefunction(body.seek):
        position = body.tell()
        try:
            payload = await _read_async(body)
        except OSError as e:
            await body.seek(position)
            raise BodyReadFailureException(f"Failed to read request body: {e}") from e
        await body.seek(position)
        return payload

    try:
        payload = await _read_async(body)
    except OSError as e:
        raise BodyReadFailureException(f"Failed to read request body: {e}") from e
    request.body = AsyncBytesReader(payload)
    return payload


def _is_sync_stream(body: object) -> bool:
    # runtime_checkable can't tell sync and async read methods apart.
    return isinstance(body, ReadableBody) and not iscoroutinefunction(body.read)


def _is_async_stream(body: object) -> bool:
    return isinstance(body, AsyncReadableBody) and iscoroutinefunction(body.read)


def _read_sync(body: Iterable[bytes] | ReadableBody) -> bytes:
    if _is_sync_stream(body):
        return body.read()  # type: ignore - narrowed above
    return b"".join(body)  # type: ignore - narrowed above


async def _read_async(body: AsyncIterable[bytes] | AsyncReadableBody) -> bytes:
    if _is_async_stream(body):
        return await body.read()  # type: ignore - narrowed above
    buffer = BytesIO()
    async for chunk in body:  # type: ignore - narrowed above
        buffer.write(chunk)
    return buffer.getvalue()


def _select_signing_fields(
    request: Request, selection: SignedHeaderSet
) -> dict[str, list[str]]:
    fields: dict[str, list[str]] = {}
    for field in request.fields.get_by_type(FieldPosition.HEADER):
        name = field.name.lower()
        if name == AUTHORIZATION_HEADER:
            continue
        if selection and name not in selection:
            continue
        fields[name] = field.values
    # host is always signed, sourced from the destination when not sent explicitly.
    if HOST_HEADER not in fields:
        fields[HOST_HEADER] = [request.destination.authority]
    return fields


def _parse_query(query: str) -> list[tuple[bytes, bytes]]:
    # Form decoding: "+" is a space, blank values are kept, empty pairs skipped.
    pairs: list[tuple[bytes, bytes]] = []
    for pair in query.split("&"):
        if not pair:
            continue
        key, _, value = pair.partition("=")
        pairs.append(
            (
                unquote_to_bytes(key.replace("+", " ")),
                unquote_to_bytes(value.replace("+", " ")),
            )
        )
    return pairs


def _uri_encode(value: bytes) -> str:
    # Everything but unreserved characters is escaped, spaces as %20.
    return quote_from_bytes(value, safe="")


def _trim_field_value(value: str) -> str:
    """Trim outer whitespace and collapse runs of spaces outside double quotes."""
    trimmed: list[str] = []
    in_quote = False
    last_char = ""
    for char in value.strip():
        if char == '"':
            in_quote = not in_quote
        if char == " " and last_char == " " and not in_quote:
            continue
        trimmed.append(char)
        last_char = char
    return "".join(trimmed)
