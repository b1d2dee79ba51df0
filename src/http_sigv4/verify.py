# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
"""Parsing of SigV4 ``Authorization`` headers on the receiving side.

Parsing only checks structure. To verify a request, rebuild the credential with
:meth:`ParsedAuthorization.to_credential`, re-sign a copy of the request with the
parsed :attr:`ParsedAuthorization.signed_headers`, and compare the two signatures
with :func:`hmac.compare_digest`.
"""

import logging
from dataclasses import dataclass
from typing import NoReturn

from ._identity import SigV4Credential
from .exceptions import AuthorizationParseStage, MalformedHeaderException
from .interfaces.http import Request
from .signers import AUTHORIZATION_HEADER, SCOPE_TERMINATOR, SIGV4_ALGORITHM

logger = logging.getLogger(__name__)

_CREDENTIAL_PREFIX = "Credential="
_SIGNED_HEADERS_PREFIX = "SignedHeaders="
_SIGNATURE_PREFIX = "Signature"
_AUTHORIZATION_TOKEN_COUNT = 4
_CREDENTIAL_PART_COUNT = 5


@dataclass(kw_only=True, frozen=True)
class ParsedAuthorization:
    """The structured contents of a SigV4 ``Authorization`` header."""

    access_key_id: str
    region: str
    service: str

    signed_headers: frozenset[str]
    """Header names exactly as they appeared in the header, case preserved."""

    signature: str
    """The signature as sent. It is not validated beyond its prefix."""

    raw_header_value: str
    """The complete header value that was parsed."""

    def to_credential(self, secret_access_key: str) -> SigV4Credential:
        """Pair the parsed scope with the caller's copy of the secret key."""
        return SigV4Credential(
            access_key_id=self.access_key_id,
            secret_access_key=secret_access_key,
            region=self.region,
            service=self.service,
        )


def parse_authorization(header_value: str) -> ParsedAuthorization:
    """Parse an ``Authorization`` header value.

    Both the canonical layout and the compact comma-only layout are accepted::

        AWS4-HMAC-SHA256 Credential=AKID/20110909/us-east-1/host/aws4_request, SignedHeaders=date;host, Signature=...
        AWS4-HMAC-SHA256 Credential=AKID/20180312/hz/dnsapi/aws4_request,SignedHeaders=host;x-amz-date,Signature=...

    :raises MalformedHeaderException: If any structural check fails. The exception's
        ``stage`` names the check.
    """
    if len(header_value) < len(SIGV4_ALGORITHM) or not header_value.startswith(
        SIGV4_ALGORITHM
    ):
        _fail(
            "Authorization header does not use the "
            f"{SIGV4_ALGORITHM} algorithm",
            AuthorizationParseStage.ALGORITHM,
        )

    tokens = _tokenize(header_value)
    if len(tokens) != _AUTHORIZATION_TOKEN_COUNT:
        _fail(
            f"Expected {_AUTHORIZATION_TOKEN_COUNT} authorization components, "
            f"found {len(tokens)}",
            AuthorizationParseStage.TOKENS,
        )

    _, credential, signed_headers, signature = tokens
    access_key_id, region, service = _parse_credential(credential)
    return ParsedAuthorization(
        access_key_id=access_key_id,
        region=region,
        service=service,
        signed_headers=_parse_signed_headers(signed_headers),
        signature=_parse_signature(signature),
        raw_header_value=header_value,
    )


def get_authorization(request: Request) -> ParsedAuthorization:
    """Parse the ``Authorization`` field of a request.

    :raises MalformedHeaderException: If the field is absent or malformed.
    """
    field = request.fields.get(AUTHORIZATION_HEADER)
    header_value = field.values[0] if field is not None and field.values else ""
    return parse_authorization(header_value)


def _tokenize(header_value: str) -> list[str]:
    tokens: list[str] = []
    for item in header_value.split(" "):
        for token in item.split(","):
            if token := token.strip(" "):
                tokens.append(token)
    return tokens


def _parse_credential(token: str) -> tuple[str, str, str]:
    if not token.startswith(_CREDENTIAL_PREFIX):
        _fail(
            f"Credential component must start with {_CREDENTIAL_PREFIX!r}",
            AuthorizationParseStage.CREDENTIAL,
        )
    parts = token.removeprefix(_CREDENTIAL_PREFIX).split("/")
    if len(parts) != _CREDENTIAL_PART_COUNT:
        _fail(
            f"Credential must have {_CREDENTIAL_PART_COUNT} '/' separated parts, "
            f"found {len(parts)}",
            AuthorizationParseStage.CREDENTIAL,
        )
    # <access key>/<date>/<region>/<service>/aws4_request
    access_key_id, _, region, service, terminator = parts
    if terminator != SCOPE_TERMINATOR:
        _fail(
            f"Credential scope must end with {SCOPE_TERMINATOR!r}",
            AuthorizationParseStage.CREDENTIAL,
        )
    return access_key_id, region, service


def _parse_signed_headers(token: str) -> frozenset[str]:
    if not token.startswith(_SIGNED_HEADERS_PREFIX):
        _fail(
            f"SignedHeaders component must start with {_SIGNED_HEADERS_PREFIX!r}",
            AuthorizationParseStage.SIGNED_HEADERS,
        )
    return frozenset(token.removeprefix(_SIGNED_HEADERS_PREFIX).split(";"))


def _parse_signature(token: str) -> str:
    if not token.startswith(_SIGNATURE_PREFIX):
        _fail(
            f"Signature component must start with {_SIGNATURE_PREFIX!r}",
            AuthorizationParseStage.SIGNATURE,
        )
    return token.removeprefix(_SIGNATURE_PREFIX).removeprefix("=")


def _fail(message: str, stage: AuthorizationParseStage) -> NoReturn:
    logger.debug("Rejected Authorization header: %s.", message)
    raise MalformedHeaderException(message, stage=stage)
