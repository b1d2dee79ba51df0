# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

from dataclasses import dataclass, field

from .interfaces.identity import SigningCredential


@dataclass(kw_only=True, frozen=True)
class SigV4Credential(SigningCredential):
    access_key_id: str
    secret_access_key: str = field(repr=False)
    region: str
    service: str
