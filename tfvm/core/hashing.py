"""Pass-through SHA-256 stage for streamed downloads."""

from __future__ import annotations

import hashlib
from collections.abc import AsyncIterable, AsyncIterator


class Sha256Stream:
    """Hash bytes while forwarding them unchanged.

    The stage never buffers: every chunk is folded into the running digest
    and handed on as-is, in arrival order.
    """

    def __init__(self) -> None:
        self._hash = hashlib.sha256()
        self.bytes_seen = 0

    def update(self, chunk: bytes) -> bytes:
        """Fold a chunk into the digest and return it unmodified."""
        self._hash.update(chunk)
        self.bytes_seen += len(chunk)
        return chunk

    async def pipe(self, source: AsyncIterable[bytes]) -> AsyncIterator[bytes]:
        """Forward every chunk of ``source`` after hashing it.

        Args:
            source: Upstream byte chunks

        Yields:
            The same chunks, unmodified
        """
        async for chunk in source:
            yield self.update(chunk)

    def digest(self, encoding: str | None = None) -> bytes | str:
        """Return the digest of everything seen so far.

        Args:
            encoding: None for raw bytes, "hex" for a lowercase hex string

        Returns:
            Raw digest bytes or hex string

        Raises:
            ValueError: If encoding is not supported
        """
        if encoding is None:
            return self._hash.digest()
        if encoding == "hex":
            return self._hash.hexdigest()
        raise ValueError(f"Unsupported digest encoding: {encoding}")
