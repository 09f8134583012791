"""Streaming tar decoder.

Decodes a tar archive as it is read from an InputStream, without buffering
the archive or its members. Headers are parsed by the standard library tarfile
module; GNU long names and pax extended headers are applied to the member that
follows them.
"""
from tarfile import (
    BLOCKSIZE,
    ENCODING,
    GNUTYPE_LONGLINK,
    GNUTYPE_LONGNAME,
    REGULAR_TYPES,
    SOLARIS_XHDTYPE,
    SUPPORTED_TYPES,
    XGLTYPE,
    XHDTYPE,
    EmptyHeaderError,
    EOFHeaderError,
    ReadError,
    TarInfo,
)
from typing import AsyncIterator

from wpzip.stream import DEFAULT_CHUNK_SIZE, InputStream

_EXTENSION_TYPES = (
    GNUTYPE_LONGNAME,
    GNUTYPE_LONGLINK,
    XHDTYPE,
    XGLTYPE,
    SOLARIS_XHDTYPE,
)


class _MemberStream(InputStream):
    def __init__(self, archive: InputStream, size: int) -> None:
        self._archive = archive
        self._remaining = size

    async def read(self, n: int = -1) -> bytes:
        if self._remaining == 0:
            return b""

        size = self._remaining if n == -1 else min(n, self._remaining)
        data = await _read_exactly(self._archive, size)
        self._remaining -= len(data)
        return data

    async def skip(self) -> None:
        while self._remaining:
            await self.read(DEFAULT_CHUNK_SIZE)


async def read_tar(archive: InputStream) -> AsyncIterator[tuple[TarInfo, InputStream]]:
    """Iterate over the members of a tar archive.

    Each member is yielded with a stream of its content, which is only valid
    until the next member is requested. Content left unread by the caller is
    skipped.

    Args:
        archive: Stream to read the archive from.

    Raises:
        tarfile.TarError: If the archive is truncated or a header is invalid.
    """
    long_name: str | None = None
    pax_headers: dict[str, str] = {}

    while True:
        header = await archive.read(BLOCKSIZE)
        if not header:
            return
        if len(header) < BLOCKSIZE:
            raise ReadError("unexpected end of data")

        try:
            info = TarInfo.frombuf(header, ENCODING, "surrogateescape")
        except (EmptyHeaderError, EOFHeaderError):
            return

        if info.type in _EXTENSION_TYPES:
            data = (await _read_exactly(archive, _block(info.size)))[: info.size]
            if info.type == GNUTYPE_LONGNAME:
                long_name = data.rstrip(b"\0").decode(ENCODING, "surrogateescape")
            elif info.type in (XHDTYPE, SOLARIS_XHDTYPE):
                pax_headers.update(_parse_pax(data))
            continue

        if "path" in pax_headers:
            info.name = pax_headers["path"]
        elif long_name is not None:
            info.name = long_name
        if "size" in pax_headers:
            info.size = int(pax_headers["size"])
        long_name = None
        pax_headers = {}

        has_data = info.type in REGULAR_TYPES or info.type not in SUPPORTED_TYPES
        size = info.size if has_data else 0
        member = _MemberStream(archive, size)
        yield info, member

        await member.skip()
        await _read_exactly(archive, _block(size) - size)


def _block(size: int) -> int:
    blocks, remainder = divmod(size, BLOCKSIZE)
    if remainder:
        blocks += 1
    return blocks * BLOCKSIZE


async def _read_exactly(archive: InputStream, size: int) -> bytes:
    if size == 0:
        return b""
    data = await archive.read(size)
    if len(data) < size:
        raise ReadError("unexpected end of data")
    return data


def _parse_pax(data: bytes) -> dict[str, str]:
    # Records are "<length> <key>=<value>\n", length counting the whole record.
    records: dict[str, str] = {}
    position = 0
    while position < len(data) and data[position] != 0:
        space = data.find(b" ", position)
        if space == -1:
            raise ReadError("invalid pax header")
        length = int(data[position:space])
        if length <= space - position:
            raise ReadError("invalid pax header")
        record = data[space + 1 : position + length - 1]
        key, _, value = record.partition(b"=")
        records[key.decode("utf-8")] = value.decode("utf-8", "surrogateescape")
        position += length
    return records
