# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import copy
import re
import typing
from collections.abc import AsyncIterator, Iterator
from datetime import UTC, datetime, timedelta, timezone
from io import BytesIO

import pytest
from freezegun import freeze_time
from http_sigv4 import (
    URI,
    AsyncBytesReader,
    AsyncSigV4Signer,
    BodyReadFailureException,
    Field,
    Fields,
    HashFailureException,
    HTTPRequest,
    InvalidTimestampException,
    SigV4Credential,
    SigV4Signer,
)
from http_sigv4.canonical import canonical_request
from http_sigv4.signers import (
    SIGV4_TIMESTAMP_FORMAT,
    compute_signature,
    credential_scope,
    derive_signing_key,
    format_authorization,
    resolve_timestamp,
    string_to_sign,
)

SECRET_KEY: str = "wJalrXUtnFEMI/K7MDENG+bPxRfiCYEXAMPLEKEY"
ACCESS_KEY: str = "AKIDEXAMPLE"
SERVICE: str = "host"
REGION: str = "us-east-1"

DATE: datetime = datetime(
    year=2011, month=9, day=9, hour=23, minute=36, second=0, tzinfo=UTC
)
DATE_STR: str = DATE.strftime(SIGV4_TIMESTAMP_FORMAT)
HTTP_DATE: str = "Mon, 09 Sep 2011 23:36:00 GMT"

GET_AUTHORIZATION: str = (
    "AWS4-HMAC-SHA256 Credential=AKIDEXAMPLE/20110909/us-east-1/host/aws4_request, "
    "SignedHeaders=date;host, "
    "Signature=f309cfbd10197a230c42dd17dbf5cca8a0722564cb40a872d25623cfa758e374"
)
POST_AUTHORIZATION: str = (
    "AWS4-HMAC-SHA256 Credential=AKIDEXAMPLE/20110909/us-east-1/host/aws4_request, "
    "SignedHeaders=content-type;date;host, "
    "Signature=b105eb10c6d318d2294de9d49dd8b031b55e3c3fe139f2e637da70511e9e7b71"
)

SIGV4_RE = re.compile(
    r"AWS4-HMAC-SHA256 "
    r"Credential=(?P<access_key>\w+)/(?P<date>\d{8})/"
    r"(?P<region>[a-z0-9-]+)/(?P<service>\w+)/aws4_request, "
    r"SignedHeaders=(?P<signed_headers>[a-z0-9;-]+), "
    r"Signature=(?P<signature>[0-9a-f]{64})$"
)


@pytest.fixture(scope="module")
def credential() -> SigV4Credential:
    return SigV4Credential(
        access_key_id=ACCESS_KEY,
        secret_access_key=SECRET_KEY,
        region=REGION,
        service=SERVICE,
    )


def get_request() -> HTTPRequest:
    return HTTPRequest(
        destination=URI.from_string("http://host.foo.com/%20/foo"),
        method="GET",
        fields=Fields([Field(name="date", values=[HTTP_DATE])]),
    )


def post_request(body: typing.Any) -> HTTPRequest:
    return HTTPRequest(
        destination=URI.from_string("http://host.foo.com/"),
        method="POST",
        fields=Fields(
            [
                Field(name="date", values=[HTTP_DATE]),
                Field(
                    name="content-type",
                    values=["application/x-www-form-urlencoded; charset=utf8"],
                ),
            ]
        ),
        body=body,
    )


def authorization(request: HTTPRequest) -> str:
    return request.fields["Authorization"].as_string()


def test_derive_signing_key() -> None:
    key = derive_signing_key(SECRET_KEY, REGION, SERVICE, DATE)
    assert key.hex() == (
        "e220a8ee99f059729066fd06efe5c0f949d6aa8973360d189dd0e0eddd7a9596"
    )


def test_derive_signing_key_uses_utc_date() -> None:
    # 23:36 UTC is already the next day in UTC+2.
    local = DATE.astimezone(timezone(timedelta(hours=2)))
    assert derive_signing_key(SECRET_KEY, REGION, SERVICE, local) == (
        derive_signing_key(SECRET_KEY, REGION, SERVICE, DATE)
    )


def test_credential_scope() -> None:
    assert credential_scope(DATE, REGION, SERVICE) == (
        "20110909/us-east-1/host/aws4_request"
    )


def test_string_to_sign() -> None:
    creq = canonical_request(get_request())
    scope = credential_scope(DATE, REGION, SERVICE)
    lines = string_to_sign(creq, scope, DATE).split("\n")
    assert lines[:3] == [
        "AWS4-HMAC-SHA256",
        "20110909T233600Z",
        "20110909/us-east-1/host/aws4_request",
    ]
    assert re.fullmatch(r"[0-9a-f]{64}", lines[3])


def test_compute_signature_is_lower_hex() -> None:
    signature = compute_signature("payload", b"key")
    assert re.fullmatch(r"[0-9a-f]{64}", signature)


def test_format_authorization() -> None:
    assert format_authorization(
        "abc123", ACCESS_KEY, "20110909/us-east-1/host/aws4_request", "date;host"
    ) == (
        "AWS4-HMAC-SHA256 Credential=AKIDEXAMPLE/20110909/us-east-1/host/aws4_request, "
        "SignedHeaders=date;host, Signature=abc123"
    )


class TestResolveTimestamp:
    def test_prefers_amz_date(self) -> None:
        fields = Fields(
            [
                Field(name="X-Amz-Date", values=["20200101T000000Z"]),
                Field(name="Date", values=[HTTP_DATE]),
            ]
        )
        assert resolve_timestamp(fields) == datetime(2020, 1, 1, tzinfo=UTC)

    def test_falls_back_to_http_date(self) -> None:
        fields = Fields([Field(name="date", values=[HTTP_DATE])])
        assert resolve_timestamp(fields) == DATE

    def test_no_date_fields(self) -> None:
        assert resolve_timestamp(Fields()) is None
        assert resolve_timestamp(Fields([Field(name="Date", values=[""])])) is None

    @pytest.mark.parametrize(
        "name,value",
        [
            ("X-Amz-Date", "2011-09-09T23:36:00Z"),
            ("X-Amz-Date", "not-a-date"),
            ("X-Amz-Date", "2011919T23360Z"),
            ("X-Amz-Date", "20110909T233600"),
            ("X-Amz-Date", " 20110909T233600Z"),
            ("Date", "garbage"),
        ],
    )
    def test_unparsable(self, name: str, value: str) -> None:
        with pytest.raises(InvalidTimestampException):
            resolve_timestamp(Fields([Field(name=name, values=[value])]))


class TestSigV4Signer:
    SIGV4_SYNC_SIGNER = SigV4Signer()

    def test_sign_get_known_vector(self, credential: SigV4Credential) -> None:
        request = get_request()
        signed = self.SIGV4_SYNC_SIGNER.sign(request=request, credential=credential)
        assert signed is request
        assert authorization(request) == GET_AUTHORIZATION
        assert "X-Amz-Date" not in request.fields

    def test_sign_post_known_vector(self, credential: SigV4Credential) -> None:
        request = post_request(iter([b"foo=", b"bar"]))
        self.SIGV4_SYNC_SIGNER.sign(request=request, credential=credential)
        assert authorization(request) == POST_AUTHORIZATION
        assert request.body is not None
        assert request.body.read() == b"foo=bar"  # type: ignore

    def test_sign_post_with_seekable_body(self, credential: SigV4Credential) -> None:
        body = BytesIO(b"foo=bar")
        request = post_request(body)
        self.SIGV4_SYNC_SIGNER.sign(request=request, credential=credential)
        assert authorization(request) == POST_AUTHORIZATION
        assert request.body is body
        assert body.read() == b"foo=bar"

    def test_sign_is_idempotent(self, credential: SigV4Credential) -> None:
        request = post_request(b"foo=bar")
        self.SIGV4_SYNC_SIGNER.sign(request=request, credential=credential)
        first = authorization(request)
        self.SIGV4_SYNC_SIGNER.sign(request=request, credential=credential)
        assert authorization(request) == first == POST_AUTHORIZATION

    def test_sign_with_explicit_signed_headers(
        self, credential: SigV4Credential
    ) -> None:
        request = get_request()
        request.fields.set_field(Field(name="X-Data", values=["unsigned"]))
        self.SIGV4_SYNC_SIGNER.sign(
            request=request, credential=credential, signed_headers=["Date", "host"]
        )
        assert authorization(request) == GET_AUTHORIZATION

    def test_sign_sets_amz_date_from_clock(self, credential: SigV4Credential) -> None:
        signer = SigV4Signer(clock=lambda: DATE)
        request = HTTPRequest(
            destination=URI.from_string("https://example.amazonaws.com/"),
            method="GET",
            fields=Fields([Field(name="Date", values=[""])]),
        )
        signer.sign(request=request, credential=credential)
        assert "Date" not in request.fields
        assert request.fields["X-Amz-Date"].values == [DATE_STR]
        match = SIGV4_RE.match(authorization(request))
        assert match is not None
        assert match.group("date") == "20110909"
        assert match.group("signed_headers") == "host;x-amz-date"

    @freeze_time("2011-09-09 23:36:00")
    def test_sign_defaults_to_system_clock(self, credential: SigV4Credential) -> None:
        request = HTTPRequest(
            destination=URI.from_string("https://example.amazonaws.com/"),
            method="GET",
        )
        self.SIGV4_SYNC_SIGNER.sign(request=request, credential=credential)
        assert request.fields["X-Amz-Date"].values == [DATE_STR]

    def test_sign_prefers_amz_date(self, credential: SigV4Credential) -> None:
        request = get_request()
        request.fields.set_field(Field(name="X-Amz-Date", values=["20150830T123600Z"]))
        self.SIGV4_SYNC_SIGNER.sign(request=request, credential=credential)
        match = SIGV4_RE.match(authorization(request))
        assert match is not None
        assert match.group("date") == "20150830"
        assert match.group("signed_headers") == "date;host;x-amz-date"

    def test_invalid_date_leaves_request_untouched(
        self, credential: SigV4Credential
    ) -> None:
        request = get_request()
        request.fields.set_field(Field(name="X-Amz-Date", values=["yesterday"]))
        original_fields = copy.deepcopy(request.fields)
        with pytest.raises(InvalidTimestampException):
            self.SIGV4_SYNC_SIGNER.sign(request=request, credential=credential)
        assert request.fields == original_fields
        assert "Authorization" not in request.fields

    def test_unreadable_clock(self, credential: SigV4Credential) -> None:
        def broken_clock() -> datetime:
            raise OSError("clock unavailable")

        signer = SigV4Signer(clock=broken_clock)
        request = HTTPRequest(
            destination=URI.from_string("https://example.amazonaws.com/"),
            method="GET",
        )
        with pytest.raises(InvalidTimestampException):
            signer.sign(request=request, credential=credential)
        assert len(request.fields) == 0

    def test_hash_failure_rolls_back_fields(self) -> None:
        credential = SigV4Credential(
            access_key_id=ACCESS_KEY,
            secret_access_key="\ud800",
            region=REGION,
            service=SERVICE,
        )
        signer = SigV4Signer(clock=lambda: DATE)
        request = HTTPRequest(
            destination=URI.from_string("https://example.amazonaws.com/"),
            method="GET",
            fields=Fields([Field(name="Authorization", values=["previous"])]),
        )
        original_fields = copy.deepcopy(request.fields)
        with pytest.raises(HashFailureException):
            signer.sign(request=request, credential=credential)
        assert request.fields == original_fields
        assert authorization(request) == "previous"

    def test_unencodable_header_value(self, credential: SigV4Credential) -> None:
        # A transport decoding with surrogateescape can hand over lone surrogates.
        signer = SigV4Signer(clock=lambda: DATE)
        request = HTTPRequest(
            destination=URI.from_string("https://example.amazonaws.com/"),
            method="GET",
            fields=Fields([Field(name="X-B", values=["\udcff"])]),
        )
        original_fields = copy.deepcopy(request.fields)
        with pytest.raises(HashFailureException):
            signer.sign(request=request, credential=credential)
        assert request.fields == original_fields

    def test_rollback_keeps_fields_identity(self, credential: SigV4Credential) -> None:
        def broken_clock() -> datetime:
            raise OSError("clock unavailable")

        request = HTTPRequest(
            destination=URI.from_string("https://example.amazonaws.com/"),
            method="GET",
            fields=Fields(
                [
                    Field(name="Date", values=[""]),
                    Field(name="X-B", values=["\udcff"]),
                ]
            ),
        )
        fields = request.fields
        with pytest.raises(HashFailureException):
            SigV4Signer(clock=lambda: DATE).sign(
                request=request, credential=credential
            )
        assert request.fields is fields
        assert "X-Amz-Date" not in fields
        assert fields["Date"].values == [""]

        with pytest.raises(InvalidTimestampException):
            SigV4Signer(clock=broken_clock).sign(
                request=request, credential=credential
            )
        assert request.fields is fields

    def test_body_read_failure(self, credential: SigV4Credential) -> None:
        def broken() -> Iterator[bytes]:
            yield b"foo"
            raise OSError("connection reset")

        request = post_request(broken())
        with pytest.raises(BodyReadFailureException):
            self.SIGV4_SYNC_SIGNER.sign(request=request, credential=credential)
        assert "Authorization" not in request.fields

    @typing.no_type_check
    def test_sign_with_invalid_credential(self) -> None:
        """Ignore typing as we're testing an invalid input state."""
        credential = object()
        with pytest.raises(ValueError):
            self.SIGV4_SYNC_SIGNER.sign(request=get_request(), credential=credential)

    def test_credential_can_be_shared(self, credential: SigV4Credential) -> None:
        requests = [get_request() for _ in range(3)]
        for request in requests:
            self.SIGV4_SYNC_SIGNER.sign(request=request, credential=credential)
        assert {authorization(r) for r in requests} == {GET_AUTHORIZATION}


class TestStringToSignForRequest:
    SIGNER = SigV4Signer()

    def test_requires_amz_date(self, credential: SigV4Credential) -> None:
        with pytest.raises(InvalidTimestampException):
            self.SIGNER.string_to_sign_for_request(
                request=get_request(), credential=credential
            )

    def test_matches_signing_flow(self, credential: SigV4Credential) -> None:
        request = get_request()
        request.fields.set_field(Field(name="X-Amz-Date", values=[DATE_STR]))
        original_fields = copy.deepcopy(request.fields)
        sts = self.SIGNER.string_to_sign_for_request(
            request=request, credential=credential
        )
        expected = string_to_sign(
            canonical_request(request),
            credential_scope(DATE, REGION, SERVICE),
            DATE,
        )
        assert sts == expected
        assert request.fields == original_fields


class UnreadableAsyncStream:
    def __aiter__(self) -> typing.Self:
        return self

    async def __anext__(self) -> bytes:
        raise OSError("Read failed!")


class TestAsyncSigV4Signer:
    SIGV4_ASYNC_SIGNER = AsyncSigV4Signer()

    async def test_sign_get_known_vector(self, credential: SigV4Credential) -> None:
        request = get_request()
        await self.SIGV4_ASYNC_SIGNER.sign(request=request, credential=credential)
        assert authorization(request) == GET_AUTHORIZATION

    async def test_sign_post_known_vector(self, credential: SigV4Credential) -> None:
        async def body() -> AsyncIterator[bytes]:
            yield b"foo="
            yield b"bar"

        request = post_request(body())
        await self.SIGV4_ASYNC_SIGNER.sign(request=request, credential=credential)
        assert authorization(request) == POST_AUTHORIZATION
        assert isinstance(request.body, AsyncBytesReader)
        assert await request.body.read() == b"foo=bar"

    async def test_sign_post_with_seekable_body(
        self, credential: SigV4Credential
    ) -> None:
        body = AsyncBytesReader(b"foo=bar")
        request = post_request(body)
        await self.SIGV4_ASYNC_SIGNER.sign(request=request, credential=credential)
        assert authorization(request) == POST_AUTHORIZATION
        assert request.body is body
        assert body.tell() == 0

    async def test_sync_body_rejected(self, credential: SigV4Credential) -> None:
        request = post_request(BytesIO(b"foo=bar"))
        with pytest.raises(TypeError):
            await self.SIGV4_ASYNC_SIGNER.sign(request=request, credential=credential)
        assert "Authorization" not in request.fields

    async def test_body_read_failure(self, credential: SigV4Credential) -> None:
        request = post_request(UnreadableAsyncStream())
        with pytest.raises(BodyReadFailureException):
            await self.SIGV4_ASYNC_SIGNER.sign(request=request, credential=credential)

    async def test_string_to_sign_for_request(
        self, credential: SigV4Credential
    ) -> None:
        request = post_request(AsyncBytesReader(b"foo=bar"))
        request.fields.set_field(Field(name="X-Amz-Date", values=[DATE_STR]))
        sts = await self.SIGV4_ASYNC_SIGNER.string_to_sign_for_request(
            request=request, credential=credential
        )
        assert sts.startswith("AWS4-HMAC-SHA256\n20110909T233600Z\n")
