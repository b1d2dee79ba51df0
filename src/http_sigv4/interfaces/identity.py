# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class SigningCredential(Protocol):
    """The secret material and scope needed to produce a SigV4 signature.

    Implementations must be treated as immutable once constructed. A single
    credential may be shared by any number of concurrent signing calls.
    """

    access_key_id: str
    """A unique identifier for the signing principal."""

    secret_access_key: str
    """The shared secret the signing key is derived from.

    This value must never be logged.
    """

    region: str
    """The region component of the credential scope, for example ``us-east-1``."""

    service: str
    """The service component of the credential scope, for example ``s3``."""
