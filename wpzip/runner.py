"""Archive writing.

The runner owns the zip archive : operations run one after the other, each
file they send is compressed into the archive as it is read, and the archive
is closed whatever happens.
"""
from logging import getLogger
from typing import IO, Sequence
from zipfile import ZIP_DEFLATED, ZipFile

from wpzip.emitter import RemoteFile
from wpzip.errors import NoOperationsError, RunError
from wpzip.operations import Operation
from wpzip.stream import DEFAULT_CHUNK_SIZE

_LOGGER = getLogger(__name__)


async def run(operations: Sequence[Operation], writer: IO[bytes]) -> None:
    """Run operations, writing the files they send in a zip archive.

    Args:
        operations: Operations to run, in order.
        writer: Binary file the archive is written to. It doesn't need to be
                seekable.

    Raises:
        NoOperationsError: If no operation is given. Nothing is written then.
        RunError: If an operation fails. The following operations aren't run,
                  and the archive is closed with the files written so far.
    """
    if not operations:
        raise NoOperationsError()

    with ZipFile(writer, "w", ZIP_DEFLATED) as archive:

        async def _send(file: RemoteFile) -> None:
            _LOGGER.debug("Writing %s", file.path)
            with archive.open(file.path, "w", force_zip64=True) as entry:
                while chunk := await file.content.read(DEFAULT_CHUNK_SIZE):
                    entry.write(chunk)

        for operation in operations:
            _LOGGER.info("Running %s", operation.name)
            try:
                await operation.send_files(_send)
            except Exception as ex:
                raise RunError(f"{operation.name} failed: {ex}") from ex
