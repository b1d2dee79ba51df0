# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
"""HTTP SigV4 provides stand-alone AWS Signature Version 4 request signing and
Authorization header parsing for use with any HTTP client or server."""

from __future__ import annotations

from ._http import URI, Field, Fields, HTTPRequest
from ._identity import SigV4Credential
from ._io import AsyncBytesReader
from .credentials import EnvironmentCredentialResolver
from .exceptions import (
    AuthorizationParseStage,
    BaseSigV4Exception,
    BodyReadFailureException,
    HashFailureException,
    InvalidTimestampException,
    MalformedHeaderException,
    MissingCredentialsException,
)
from .signers import AsyncSigV4Signer, SigV4Signer
from .verify import ParsedAuthorization, get_authorization, parse_authorization

__license__ = "Apache-2.0"
__version__ = "0.1.0"

__all__ = (
    "URI",
    "AsyncBytesReader",
    "AsyncSigV4Signer",
    "AuthorizationParseStage",
    "BaseSigV4Exception",
    "BodyReadFailureException",
    "EnvironmentCredentialResolver",
    "Field",
    "Fields",
    "HTTPRequest",
    "HashFailureException",
    "InvalidTimestampException",
    "MalformedHeaderException",
    "MissingCredentialsException",
    "ParsedAuthorization",
    "SigV4Credential",
    "SigV4Signer",
    "get_authorization",
    "parse_authorization",
)
