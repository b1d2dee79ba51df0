# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
"""Shapes of request bodies the payload hashing adapter knows how to handle.

Runtime checks against these protocols only test for the presence of the
methods. Whether ``read`` and ``seek`` are coroutines is checked separately.
"""

from typing import Protocol, runtime_checkable


@runtime_checkable
class ReadableBody(Protocol):
    """A body that can be drained in a single ``read()`` call."""

    def read(self, size: int = -1, /) -> bytes: ...


@runtime_checkable
class AsyncReadableBody(Protocol):
    """A body drained by awaiting a single ``read()`` call."""

    async def read(self, size: int = -1, /) -> bytes: ...


@runtime_checkable
class RewindableBody(Protocol):
    """A body whose position can be recorded and restored after hashing."""

    def seek(self, offset: int, whence: int = 0, /) -> int: ...

    def tell(self) -> int: ...


@runtime_checkable
class AsyncRewindableBody(Protocol):
    """An async body whose position can be recorded and restored after hashing."""

    async def seek(self, offset: int, whence: int = 0, /) -> int: ...

    def tell(self) -> int: ...
