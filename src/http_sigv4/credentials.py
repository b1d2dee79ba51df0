# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
import logging
import os
from collections.abc import Mapping

from ._identity import SigV4Credential
from .exceptions import MissingCredentialsException

logger = logging.getLogger(__name__)


class EnvironmentCredentialResolver:
    """Resolves a SigV4 credential from environment variables.

    ``AWS_ACCESS_KEY_ID`` and ``AWS_SECRET_ACCESS_KEY`` are required. The region is
    read from ``AWS_REGION``, falling back to ``AWS_DEFAULT_REGION``. The service
    name is not part of the environment and is given to the resolver directly.
    """

    def __init__(self, *, service: str, environ: Mapping[str, str] | None = None):
        self._service = service
        self._environ = environ if environ is not None else os.environ
        self._credential: SigV4Credential | None = None

    def get_credential(self) -> SigV4Credential:
        if self._credential is not None:
            return self._credential

        access_key_id = self._environ.get("AWS_ACCESS_KEY_ID")
        secret_access_key = self._environ.get("AWS_SECRET_ACCESS_KEY")
        region = self._environ.get("AWS_REGION") or self._environ.get(
            "AWS_DEFAULT_REGION"
        )

        if not access_key_id or not secret_access_key:
            raise MissingCredentialsException(
                "AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY are required"
            )
        if not region:
            raise MissingCredentialsException(
                "AWS_REGION or AWS_DEFAULT_REGION is required"
            )

        logger.debug(
            "Resolved credential for access key %s in %s from the environment.",
            access_key_id,
            region,
        )
        self._credential = SigV4Credential(
            access_key_id=access_key_id,
            secret_access_key=secret_access_key,
            region=region,
            service=self._service,
        )
        return self._credential
