"""Streaming extraction of the executable from a release ZIP archive.

Release archives arrive over HTTP and are extracted while they download, so
the parser works on local file headers only and never seeks. The central
directory at the end of the archive is read and discarded; it still has to
flow through so that an upstream hashing stage sees every archive byte.

Local file header layout (little endian, 30 bytes):

    signature        4  PK\\x03\\x04
    version needed   2
    flags            2  bit 0 encrypted, bit 3 data descriptor, bit 11 UTF-8
    method           2  0 stored, 8 deflate
    mod time/date    4
    crc32            4
    compressed size  4
    file size        4
    name length      2
    extra length     2
"""

from __future__ import annotations

import struct
import zlib
from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass

import structlog

from tfvm.core.errors import ArchiveFormatError

logger = structlog.get_logger()

LOCAL_FILE_HEADER = b"PK\x03\x04"
CENTRAL_DIRECTORY = b"PK\x01\x02"
END_OF_CENTRAL_DIRECTORY = b"PK\x05\x06"
ZIP64_END_OF_CENTRAL_DIRECTORY = b"PK\x06\x06"
DATA_DESCRIPTOR = b"PK\x07\x08"

TRAILER_SIGNATURES = (
    CENTRAL_DIRECTORY,
    END_OF_CENTRAL_DIRECTORY,
    ZIP64_END_OF_CENTRAL_DIRECTORY,
)

METHOD_STORED = 0
METHOD_DEFLATED = 8

FLAG_ENCRYPTED = 0x0001
FLAG_DATA_DESCRIPTOR = 0x0008
FLAG_UTF8 = 0x0800

ZIP64_EXTRA_ID = 0x0001
ZIP64_MARKER = 0xFFFFFFFF

_LOCAL_HEADER = struct.Struct("<HHHHHIIIHH")
_EXTRA_HEADER = struct.Struct("<HH")


@dataclass
class LocalEntry:
    """Metadata from one local file header."""

    name: str
    flags: int
    method: int
    crc32: int
    compressed_size: int
    file_size: int
    zip64: bool = False

    @property
    def is_dir(self) -> bool:
        return self.name.endswith("/")

    @property
    def has_descriptor(self) -> bool:
        return bool(self.flags & FLAG_DATA_DESCRIPTOR)


class _StreamReader:
    """Pull-style reader over an async chunk source with push-back."""

    def __init__(self, source: AsyncIterable[bytes]):
        self._source = source.__aiter__()
        self._buffer = bytearray()
        self._eof = False

    async def _fill(self) -> bool:
        if self._eof:
            return False
        try:
            chunk = await self._source.__anext__()
        except StopAsyncIteration:
            self._eof = True
            return False
        self._buffer += chunk
        return True

    async def read_exact(self, size: int) -> bytes:
        while len(self._buffer) < size:
            if not await self._fill():
                raise ArchiveFormatError("Unexpected end of archive")
        data = bytes(self._buffer[:size])
        del self._buffer[:size]
        return data

    async def read_some(self, limit: int | None = None) -> bytes:
        """Return buffered bytes (at most ``limit``), or b"" at end of input."""
        while not self._buffer:
            if not await self._fill():
                return b""
        size = len(self._buffer) if limit is None else min(limit, len(self._buffer))
        data = bytes(self._buffer[:size])
        del self._buffer[:size]
        return data

    def unread(self, data: bytes) -> None:
        self._buffer[:0] = data

    async def drain(self) -> int:
        drained = len(self._buffer)
        self._buffer.clear()
        while await self._fill():
            drained += len(self._buffer)
            self._buffer.clear()
        return drained


class ZipEntryExtractor:
    """Extract a single entry from a streamed ZIP archive.

    With ``member=None`` the archive must hold exactly one file entry; with a
    member name exactly one entry of that name must exist and every other
    entry is skipped. Directory entries are ignored in both modes.

    Args:
        member: Entry name to extract, or None for the sole file entry
    """

    def __init__(self, member: str | None = None):
        self.member = member

    async def extract(self, source: AsyncIterable[bytes]) -> AsyncIterator[bytes]:
        """Yield the decompressed bytes of the selected entry.

        The whole source is consumed, including the central directory.

        Args:
            source: Archive byte chunks

        Yields:
            Decompressed entry data

        Raises:
            ArchiveFormatError: If the archive is malformed, truncated or does
                not contain exactly one matching entry
        """
        reader = _StreamReader(source)
        extracted: str | None = None

        while True:
            signature = await reader.read_exact(4)

            if signature in TRAILER_SIGNATURES:
                trailer_size = await reader.drain()
                logger.debug("archive_trailer_consumed", size=trailer_size + 4)
                break

            if signature != LOCAL_FILE_HEADER:
                raise ArchiveFormatError(
                    f"Unexpected record signature: {signature.hex()}"
                )

            entry = await self._read_local_header(reader)

            if entry.is_dir or not self._selects(entry):
                # Skipped entries are decoded and CRC-checked like the selected
                # one; an entry that cannot be read fails the whole archive.
                logger.debug("archive_entry_skipped", name=entry.name)
                async for _ in self._entry_data(reader, entry):
                    pass
                continue

            if extracted is not None:
                if self.member is None:
                    raise ArchiveFormatError(
                        f"Archive contains more than one file: {extracted}, {entry.name}"
                    )
                raise ArchiveFormatError(f"Archive contains {entry.name} more than once")

            extracted = entry.name
            logger.debug(
                "archive_entry_extracting",
                name=entry.name,
                method=entry.method,
                descriptor=entry.has_descriptor,
            )
            async for data in self._entry_data(reader, entry):
                yield data

        if extracted is None:
            if self.member is None:
                raise ArchiveFormatError("Archive contains no files")
            raise ArchiveFormatError(f"Archive does not contain {self.member}")

    def _selects(self, entry: LocalEntry) -> bool:
        return self.member is None or entry.name == self.member

    async def _read_local_header(self, reader: _StreamReader) -> LocalEntry:
        (
            _version,
            flags,
            method,
            _mod_time,
            _mod_date,
            crc32,
            compressed_size,
            file_size,
            name_length,
            extra_length,
        ) = _LOCAL_HEADER.unpack(await reader.read_exact(_LOCAL_HEADER.size))

        raw_name = await reader.read_exact(name_length)
        extra = await reader.read_exact(extra_length)
        name = raw_name.decode("utf-8" if flags & FLAG_UTF8 else "cp437")

        entry = LocalEntry(
            name=name,
            flags=flags,
            method=method,
            crc32=crc32,
            compressed_size=compressed_size,
            file_size=file_size,
        )
        self._apply_zip64_extra(entry, extra)
        return entry

    @staticmethod
    def _apply_zip64_extra(entry: LocalEntry, extra: bytes) -> None:
        offset = 0
        while offset + _EXTRA_HEADER.size <= len(extra):
            header_id, size = _EXTRA_HEADER.unpack_from(extra, offset)
            offset += _EXTRA_HEADER.size
            body = extra[offset:offset + size]
            offset += size
            if header_id != ZIP64_EXTRA_ID:
                continue

            entry.zip64 = True
            values = [
                struct.unpack_from("<Q", body, i)[0]
                for i in range(0, len(body) - 7, 8)
            ]
            # Only the fields saturated in the fixed header are present.
            if entry.file_size == ZIP64_MARKER and values:
                entry.file_size = values.pop(0)
            if entry.compressed_size == ZIP64_MARKER and values:
                entry.compressed_size = values.pop(0)

    async def _entry_data(
        self, reader: _StreamReader, entry: LocalEntry
    ) -> AsyncIterator[bytes]:
        if entry.flags & FLAG_ENCRYPTED:
            raise ArchiveFormatError(f"Entry {entry.name} is encrypted")

        crc = 0
        written = 0

        if entry.method == METHOD_STORED:
            if entry.has_descriptor:
                raise ArchiveFormatError(
                    f"Stored entry {entry.name} has no size in its header"
                )
            consumed = 0
            remaining = entry.compressed_size
            while remaining:
                chunk = await reader.read_some(remaining)
                if not chunk:
                    raise ArchiveFormatError(f"Entry {entry.name} is truncated")
                remaining -= len(chunk)
                consumed += len(chunk)
                crc = zlib.crc32(chunk, crc)
                written += len(chunk)
                yield chunk

        elif entry.method == METHOD_DEFLATED:
            decompressor = zlib.decompressobj(-zlib.MAX_WBITS)
            remaining = None if entry.has_descriptor else entry.compressed_size
            consumed = 0
            # Some writers store empty entries with no deflate stream at all.
            empty = remaining == 0
            while not empty and not decompressor.eof:
                if remaining == 0:
                    break
                chunk = await reader.read_some(remaining)
                if not chunk:
                    break
                consumed += len(chunk)
                if remaining is not None:
                    remaining -= len(chunk)
                try:
                    data = decompressor.decompress(chunk)
                except zlib.error as e:
                    raise ArchiveFormatError(
                        f"Entry {entry.name} is corrupt: {e}"
                    ) from e
                if data:
                    crc = zlib.crc32(data, crc)
                    written += len(data)
                    yield data

            if not empty and not decompressor.eof:
                raise ArchiveFormatError(f"Entry {entry.name} is truncated")

            tail = decompressor.flush()
            if tail:
                crc = zlib.crc32(tail, crc)
                written += len(tail)
                yield tail

            unused = decompressor.unused_data
            if unused:
                consumed -= len(unused)
                reader.unread(unused)

        else:
            raise ArchiveFormatError(
                f"Entry {entry.name} uses unsupported compression method {entry.method}"
            )

        expected_crc, compressed_size, file_size = entry.crc32, entry.compressed_size, entry.file_size
        if entry.has_descriptor:
            expected_crc, compressed_size, file_size = await self._read_descriptor(
                reader, entry
            )

        if consumed != compressed_size:
            raise ArchiveFormatError(
                f"Entry {entry.name} compressed size mismatch: "
                f"expected {compressed_size}, got {consumed}"
            )
        if written != file_size:
            raise ArchiveFormatError(
                f"Entry {entry.name} size mismatch: expected {file_size}, got {written}"
            )
        if crc != expected_crc:
            raise ArchiveFormatError(
                f"Entry {entry.name} CRC mismatch: expected {expected_crc:08x}, got {crc:08x}"
            )

    @staticmethod
    async def _read_descriptor(
        reader: _StreamReader, entry: LocalEntry
    ) -> tuple[int, int, int]:
        head = await reader.read_exact(4)
        if head == DATA_DESCRIPTOR:
            head = await reader.read_exact(4)
        (crc32,) = struct.unpack("<I", head)

        if entry.zip64:
            compressed_size, file_size = struct.unpack("<QQ", await reader.read_exact(16))
        else:
            compressed_size, file_size = struct.unpack("<II", await reader.read_exact(8))
        return crc32, compressed_size, file_size
