# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
import datetime
import hmac
import logging
import re
from collections.abc import Callable, Iterable
from copy import deepcopy
from email.utils import parsedate_to_datetime
from hashlib import sha256
from typing import TypeAlias, TypeVar

from ._http import Field
from .canonical import (
    SignedHeaderSet,
    async_request_payload,
    canonical_request,
    hex_sha256,
    normalize_signed_headers,
    request_payload,
    signed_header_list,
)
from .exceptions import HashFailureException, InvalidTimestampException
from .interfaces.http import Fields, Request
from .interfaces.identity import SigningCredential

logger = logging.getLogger(__name__)

SIGV4_ALGORITHM: str = "AWS4-HMAC-SHA256"
SIGV4_TIMESTAMP_FORMAT: str = "%Y%m%dT%H%M%SZ"
SIGV4_DATE_FORMAT: str = "%Y%m%d"
SCOPE_TERMINATOR: str = "aws4_request"
SIGNING_KEY_PREFIX: str = "AWS4"

AUTHORIZATION_HEADER: str = "Authorization"
AMZ_DATE_HEADER: str = "X-Amz-Date"
DATE_HEADER: str = "Date"

_AMZ_DATE_RE = re.compile(r"\d{8}T\d{6}Z", re.ASCII)

R = TypeVar("R", bound=Request)

Clock: TypeAlias = Callable[[], datetime.datetime]
"""A zero-argument callable returning the current time."""


def credential_scope(
    timestamp: datetime.datetime, region: str, service: str
) -> str:
    """Scope format: <YYYYMMDD>/<region>/<service>/aws4_request"""
    date = _ensure_utc(timestamp).strftime(SIGV4_DATE_FORMAT)
    return f"{date}/{region}/{service}/{SCOPE_TERMINATOR}"


def string_to_sign(
    canonical_request: str, credential_scope: str, timestamp: datetime.datetime
) -> str:
    """The string to sign concatenates the formal identifier of the signing
    algorithm, the signing DateTime, the scope of the credentials, and a hash of the
    canonical request.

    The SigV4 specification defines the string to sign as:
        Algorithm \n
        RequestDateTime \n
        CredentialScope  \n
        HashedCanonicalRequest
    """
    return (
        f"{SIGV4_ALGORITHM}\n"
        f"{_ensure_utc(timestamp).strftime(SIGV4_TIMESTAMP_FORMAT)}\n"
        f"{credential_scope}\n"
        f"{hex_sha256(_encode(canonical_request))}"
    )


def derive_signing_key(
    secret_key: str, region: str, service: str, timestamp: datetime.datetime
) -> bytes:
    """Derive the signing key scoped to a date, region and service.

    The date, region, service and terminator are individually hashed, each stage
    keyed by the output of the previous one.

    :raises HashFailureException: If the keyed hash could not be computed.
    """
    # Components of Signing Key Calculation
    #
    # DateKey              = HMAC-SHA256("AWS4"+"<SecretAccessKey>", "<YYYYMMDD>")
    # DateRegionKey        = HMAC-SHA256(<DateKey>, "<aws-region>")
    # DateRegionServiceKey = HMAC-SHA256(<DateRegionKey>, "<aws-service>")
    # SigningKey           = HMAC-SHA256(<DateRegionServiceKey>, "aws4_request")
    key = _encode(f"{SIGNING_KEY_PREFIX}{secret_key}")
    date = _ensure_utc(timestamp).strftime(SIGV4_DATE_FORMAT)
    for component in (date, region, service, SCOPE_TERMINATOR):
        key = _hmac_sha256(key=key, value=component)
    return key


def compute_signature(string_to_sign: str, signing_key: bytes) -> str:
    """Sign the string to sign, returning lower case hex."""
    return _hmac_sha256(key=signing_key, value=string_to_sign).hex()


def format_authorization(
    signature: str,
    access_key_id: str,
    credential_scope: str,
    signed_headers: str,
) -> str:
    """Generate the `Authorization` field value.

    :param signature: Final hash of the SigV4 signing algorithm.
    :param access_key_id: The access key the signature was produced for.
    :param credential_scope: Defined as <date>/<region>/<service>/aws4_request
    :param signed_headers: ``;`` joined names of the headers used in signing.
    """
    return (
        f"{SIGV4_ALGORITHM} Credential={access_key_id}/{credential_scope}, "
        f"SignedHeaders={signed_headers}, Signature={signature}"
    )


def resolve_timestamp(fields: Fields) -> datetime.datetime | None:
    """Determine the signing time from the request's date fields.

    ``X-Amz-Date`` takes precedence over ``Date``. Returns ``None`` if neither field
    carries a value.

    :raises InvalidTimestampException: If the chosen field can't be parsed.
    """
    if amz_date := _first_value(fields, AMZ_DATE_HEADER):
        return _parse_amz_date(amz_date)

    if http_date := _first_value(fields, DATE_HEADER):
        try:
            parsed = parsedate_to_datetime(http_date)
        except (TypeError, ValueError) as e:
            raise InvalidTimestampException(
                f"Unable to parse {DATE_HEADER} field value: {http_date!r}"
            ) from e
        return _ensure_utc(parsed)

    return None


def _utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


class _BaseSigV4Signer:
    def __init__(self, *, clock: Clock | None = None):
        """Initialize the signer.

        :param clock: Source of the current time, used only when a request has no
            date field. Defaults to the system clock in UTC.
        """
        self._clock: Clock = clock if clock is not None else _utc_now

    def _validate_credential(self, *, credential: SigningCredential) -> None:
        if not isinstance(credential, SigningCredential):  # pyright: ignore
            raise ValueError(
                "Received unexpected value for credential parameter. Expected "
                f"SigningCredential but received {type(credential)}."
            )

    def _apply_date_fields(self, *, request: Request) -> datetime.datetime:
        timestamp = resolve_timestamp(request.fields)
        if timestamp is not None:
            logger.debug("Using signing time %s from request fields.", timestamp)
            return timestamp

        try:
            timestamp = _ensure_utc(self._clock())
        except Exception as e:
            raise InvalidTimestampException(
                "No date field was present and the clock could not be read."
            ) from e
        logger.debug("No date field present, signing at current time %s.", timestamp)
        # Apply required X-Amz-Date, replacing any empty Date.
        if DATE_HEADER in request.fields:
            del request.fields[DATE_HEADER]
        request.fields.set_field(
            Field(
                name=AMZ_DATE_HEADER,
                values=[timestamp.strftime(SIGV4_TIMESTAMP_FORMAT)],
            )
        )
        return timestamp

    def _amz_date(self, *, request: Request) -> datetime.datetime:
        amz_date = _first_value(request.fields, AMZ_DATE_HEADER)
        if not amz_date:
            raise InvalidTimestampException(
                f"Cannot generate a string to sign without an {AMZ_DATE_HEADER} field."
            )
        return _parse_amz_date(amz_date)

    def _string_to_sign(
        self,
        *,
        request: Request,
        credential: SigningCredential,
        selection: SignedHeaderSet,
        timestamp: datetime.datetime,
        payload: bytes,
    ) -> str:
        creq = canonical_request(request, selection, payload=payload)
        logger.debug("Canonical request:\n%s", creq)
        scope = credential_scope(timestamp, credential.region, credential.service)
        sts = string_to_sign(creq, scope, timestamp)
        logger.debug("String to sign:\n%s", sts)
        return sts

    def _authorization(
        self,
        *,
        request: Request,
        credential: SigningCredential,
        selection: SignedHeaderSet,
        timestamp: datetime.datetime,
        payload: bytes,
    ) -> Field:
        sts = self._string_to_sign(
            request=request,
            credential=credential,
            selection=selection,
            timestamp=timestamp,
            payload=payload,
        )
        signing_key = derive_signing_key(
            credential.secret_access_key,
            credential.region,
            credential.service,
            timestamp,
        )
        auth_str = format_authorization(
            compute_signature(sts, signing_key),
            credential.access_key_id,
            credential_scope(timestamp, credential.region, credential.service),
            signed_header_list(request, selection),
        )
        return Field(name=AUTHORIZATION_HEADER, values=[auth_str])


class SigV4Signer(_BaseSigV4Signer):
    """Request signer for applying the AWS Signature Version 4 algorithm."""

    def sign(
        self,
        *,
        request: R,
        credential: SigningCredential,
        signed_headers: Iterable[str] | None = None,
    ) -> R:
        """Generate and apply a SigV4 signature to the supplied request in place.

        The signing time comes from the ``X-Amz-Date`` field, then the ``Date``
        field, then the clock. In the last case an ``X-Amz-Date`` field is added. If
        any step fails the request's fields are left exactly as they were.

        :param request: The request to sign. Its body is left re-readable.
        :param credential: The credential and scope to sign with.
        :param signed_headers: Header names to sign. ``None`` or an empty collection
            signs every header present. ``host`` is always signed.
        :returns: The same request, for convenience.
        """
        self._validate_credential(credential=credential)
        selection = normalize_signed_headers(signed_headers)
        original_entries = deepcopy(request.fields.entries)
        try:
            timestamp = self._apply_date_fields(request=request)
            payload = request_payload(request)
            authorization = self._authorization(
                request=request,
                credential=credential,
                selection=selection,
                timestamp=timestamp,
                payload=payload,
            )
        except Exception:
            request.fields.entries = original_entries
            raise
        request.fields.set_field(authorization)
        return request

    def string_to_sign_for_request(
        self,
        *,
        request: Request,
        credential: SigningCredential,
        signed_headers: Iterable[str] | None = None,
    ) -> str:
        """Build the string to sign for a request already carrying ``X-Amz-Date``.

        Neither the clock nor the request's fields are touched.

        :raises InvalidTimestampException: If ``X-Amz-Date`` is missing or invalid.
        """
        self._validate_credential(credential=credential)
        timestamp = self._amz_date(request=request)
        return self._string_to_sign(
            request=request,
            credential=credential,
            selection=normalize_signed_headers(signed_headers),
            timestamp=timestamp,
            payload=request_payload(request),
        )


class AsyncSigV4Signer(_BaseSigV4Signer):
    """Request signer for applying the AWS Signature Version 4 algorithm to requests
    with async bodies."""

    async def sign(
        self,
        *,
        request: R,
        credential: SigningCredential,
        signed_headers: Iterable[str] | None = None,
    ) -> R:
        """Generate and apply a SigV4 signature to the supplied request in place.

        See :meth:`SigV4Signer.sign`. Non-seekable bodies are replaced with an
        :class:`AsyncBytesReader` holding the same bytes.
        """
        self._validate_credential(credential=credential)
        selection = normalize_signed_headers(signed_headers)
        original_entries = deepcopy(request.fields.entries)
        try:
            timestamp = self._apply_date_fields(request=request)
            payload = await async_request_payload(request)
            authorization = self._authorization(
                request=request,
                credential=credential,
                selection=selection,
                timestamp=timestamp,
                payload=payload,
            )
        except Exception:
            request.fields.entries = original_entries
            raise
        request.fields.set_field(authorization)
        return request

    async def string_to_sign_for_request(
        self,
        *,
        request: Request,
        credential: SigningCredential,
        signed_headers: Iterable[str] | None = None,
    ) -> str:
        """See :meth:`SigV4Signer.string_to_sign_for_request`."""
        self._validate_credential(credential=credential)
        timestamp = self._amz_date(request=request)
        return self._string_to_sign(
            request=request,
            credential=credential,
            selection=normalize_signed_headers(signed_headers),
            timestamp=timestamp,
            payload=await async_request_payload(request),
        )


def _first_value(fields: Fields, name: str) -> str:
    if name not in fields:
        return ""
    values = fields[name].values
    return values[0] if values else ""


def _parse_amz_date(value: str) -> datetime.datetime:
    # strptime tolerates unpadded fields, the wire format does not.
    if _AMZ_DATE_RE.fullmatch(value) is None:
        raise InvalidTimestampException(
            f"Unable to parse {AMZ_DATE_HEADER} field value: {value!r}"
        )
    try:
        parsed = datetime.datetime.strptime(value, SIGV4_TIMESTAMP_FORMAT)
    except ValueError as e:
        raise InvalidTimestampException(
            f"Unable to parse {AMZ_DATE_HEADER} field value: {value!r}"
        ) from e
    return parsed.replace(tzinfo=datetime.UTC)


def _ensure_utc(value: datetime.datetime) -> datetime.datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.UTC)
    return value.astimezone(datetime.UTC)


def _encode(value: str) -> bytes:
    try:
        return value.encode("utf-8")
    except UnicodeEncodeError as e:
        raise HashFailureException(f"Unable to encode value for hashing: {e}") from e


def _hmac_sha256(*, key: bytes, value: str) -> bytes:
    try:
        return hmac.new(key=key, msg=_encode(value), digestmod=sha256).digest()
    except (TypeError, ValueError) as e:
        raise HashFailureException(f"HMAC-SHA256 failed: {e}") from e
