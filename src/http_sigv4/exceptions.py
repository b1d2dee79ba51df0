# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

from enum import StrEnum


class AuthorizationParseStage(StrEnum):
    """The step of Authorization header parsing that rejected a value."""

    ALGORITHM = "algorithm"
    TOKENS = "tokens"
    CREDENTIAL = "credential"
    SIGNED_HEADERS = "signed_headers"
    SIGNATURE = "signature"


class BaseSigV4Exception(Exception):
    """Top-level exception to capture signing and verification errors."""


class MalformedHeaderException(BaseSigV4Exception, ValueError):
    """An Authorization header failed a structural check."""

    def __init__(self, message: str, *, stage: AuthorizationParseStage):
        super().__init__(f"{message} (stage: {stage})")
        self.stage = stage


class InvalidTimestampException(BaseSigV4Exception, ValueError):
    """No usable signing time could be determined for a request."""


class HashFailureException(BaseSigV4Exception):
    """The underlying digest or keyed-hash primitive failed."""


class BodyReadFailureException(BaseSigV4Exception, OSError):
    """The request body could not be buffered for hashing."""


class MissingCredentialsException(BaseSigV4Exception):
    """Credentials could not be resolved from the configured source."""
