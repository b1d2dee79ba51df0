# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
from collections.abc import AsyncIterator
from io import BytesIO

# The default chunk size for iterating streams.
_DEFAULT_CHUNK_SIZE = 1024


class AsyncBytesReader:
    """A seekable file-like object with async read and seek methods.

    Used to hand a buffered request body back to async transports after it has been
    consumed for payload hashing.
    """

    def __init__(self, data: bytes | bytearray | BytesIO):
        """Initializes self.

        :param data: The source data to read from. It is held in memory.
        """
        if isinstance(data, BytesIO):
            self._buffer = data
        else:
            self._buffer = BytesIO(data)
        self._closed = False

    async def read(self, size: int = -1) -> bytes:
        """Read a number of bytes from the stream.

        :param size: The maximum number of bytes to read. If less than 0, all bytes will
            be read.
        """
        if self._closed:
            raise ValueError("I/O operation on closed file.")
        return self._buffer.read(size)

    async def seek(self, offset: int, whence: int = 0) -> int:
        """Moves the cursor to a position relative to ``whence``."""
        if self._closed:
            raise ValueError("I/O operation on closed file.")
        return self._buffer.seek(offset, whence)

    def tell(self) -> int:
        """Returns the position of the cursor."""
        return self._buffer.tell()

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self.iter_chunks()

    async def iter_chunks(
        self, chunk_size: int = _DEFAULT_CHUNK_SIZE
    ) -> AsyncIterator[bytes]:
        """Iterate over the reader in chunks of a given size.

        :param chunk_size: The maximum size of each chunk.
        """
        while chunk := await self.read(chunk_size):
            yield chunk

    def readable(self) -> bool:
        """Returns whether the stream is readable."""
        return True

    def writeable(self) -> bool:
        """Returns whether the stream is writeable."""
        return False

    def seekable(self) -> bool:
        """Returns whether the stream is seekable."""
        return True

    @property
    def closed(self) -> bool:
        """Returns whether the stream is closed."""
        return self._closed

    async def close(self) -> None:
        """Closes the stream."""
        self._closed = True
        self._buffer.close()
