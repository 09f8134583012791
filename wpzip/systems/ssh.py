"""SSH connection to the remote host.

A single SSH connection carries everything : commands run in session
channels, and files are read and written through an SFTP client opened on
the same connection.
"""
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from logging import Logger
from posixpath import join
from stat import S_ISDIR, S_ISLNK, S_ISREG
from typing import Any, AsyncIterator

from asyncssh import (
    DEVNULL,
    ChannelOpenError,
    Error,
    SFTPAttrs,
    SFTPClient,
    SFTPClientFile,
    SFTPError,
    SFTPNoSuchFile,
    SSHClientConnection,
    SSHClientConnectionOptions,
    SSHClientProcess,
    SSHWriter,
    connect,
)
from asyncssh.logging import SSHLogger

from wpzip.errors import RemoteConnectionError
from wpzip.filesystem import EntryKind, FileSystem, RemoteEntry
from wpzip.shell import Process, ProcessLaunchError, Shell, Stderr, Stdout
from wpzip.stream import DEFAULT_CHUNK_SIZE, InputStream, Stream


@dataclass(frozen=True)
class SshSystem:
    """Shell and file system of a host reached through SSH."""

    shell: Shell
    filesystem: FileSystem


@asynccontextmanager
async def ssh_system(
    host: str, port: int = 22, logger: Logger | None = None, **kwargs: Any
) -> AsyncIterator[SshSystem]:
    """Connect to a host.

    Args:
        host: Host name or address.
        port: SSH port.
        logger: Logger receiving executed commands and their output.
        **kwargs: asyncssh.SSHClientConnectionOptions arguments.

    Raises:
        RemoteConnectionError: If the connection or the SFTP session can't be
                               established.
    """
    async with AsyncExitStack() as stack:
        try:
            connection = await stack.enter_async_context(
                connect(host, port=port, options=SSHClientConnectionOptions(**kwargs))
            )
            sftp = await stack.enter_async_context(connection.start_sftp_client())
        except (OSError, Error) as ex:
            raise RemoteConnectionError(
                f"cannot connect to {host}:{port}: {ex}"
            ) from ex

        yield SshSystem(_SshShell(connection, logger=logger), _SftpFileSystem(sftp))


class _SshStream(Stream):
    def __init__(self, writer: SSHWriter[bytes]):
        self._writer = writer

    async def write(self, data: bytes) -> None:
        self._writer.write(data)
        await self._writer.drain()

    async def close(self) -> None:
        self._writer.write_eof()
        await self._writer.drain()


class _SshShell(Shell):
    def __init__(
        self, connection: SSHClientConnection, logger: Logger | None = None
    ) -> None:
        super().__init__(logger=logger)
        self._connection = connection
        if logger:
            ssh_logger = logger.getChild("ssh")
            self._connection._logger = SSHLogger(parent=ssh_logger)

    async def _start_process(self, out: Stdout, err: Stderr, command: str) -> Process:
        try:
            process: SSHClientProcess[Any] = await self._connection.create_process(
                command,
                stdout=out if out is not None else DEVNULL,
                stderr=err if err is not None else DEVNULL,
                encoding=None,
            )
        except ChannelOpenError as ex:
            raise ProcessLaunchError(
                f"cannot start {command.split()[0]} : {ex.reason}"
            ) from ex

        async def _wait() -> int:
            await process.wait_closed()
            return_code = process.returncode
            if return_code is None:
                # Killed by a signal.
                return -1
            return return_code

        return _SshStream(process.stdin), err, _wait()


def _os_error(ex: SFTPError, path: str) -> OSError:
    if isinstance(ex, SFTPNoSuchFile):
        return FileNotFoundError(path)
    return OSError(f"{path}: {ex.reason}")


def _entry_kind(attrs: SFTPAttrs) -> EntryKind:
    if attrs.permissions is None:
        return EntryKind.OTHER
    if S_ISDIR(attrs.permissions):
        return EntryKind.DIRECTORY
    if S_ISREG(attrs.permissions):
        return EntryKind.FILE
    return EntryKind.OTHER


class _SftpInputStream(InputStream):
    def __init__(self, file: SFTPClientFile, path: str) -> None:
        self._file = file
        self._path = path

    async def read(self, n: int = -1) -> bytes:
        try:
            data = await self._file.read(n)
            assert isinstance(data, bytes)
            if n == -1:
                return data

            buffer = bytearray(data)
            while data and len(buffer) < n:
                data = await self._file.read(n - len(buffer))
                assert isinstance(data, bytes)
                buffer.extend(data)
            return bytes(buffer)
        except SFTPError as ex:
            raise _os_error(ex, self._path) from ex


class _SftpFileSystem(FileSystem):
    def __init__(self, sftp: SFTPClient) -> None:
        self._sftp = sftp

    async def list_dir(self, path: str) -> list[RemoteEntry]:
        try:
            names = await self._sftp.readdir(path)
            entries = []
            for name in names:
                filename = str(name.filename)
                if filename in (".", ".."):
                    continue
                attrs = name.attrs
                if attrs.permissions is not None and S_ISLNK(attrs.permissions):
                    # Symbolic links are followed, like find -L does.
                    attrs = await self._sftp.stat(join(path, filename))
                entries.append(RemoteEntry(filename, _entry_kind(attrs)))
        except SFTPError as ex:
            raise _os_error(ex, path) from ex

        return sorted(entries, key=lambda it: it.name)

    @asynccontextmanager
    async def open(self, path: str) -> AsyncIterator[InputStream]:
        async with AsyncExitStack() as stack:
            try:
                file = await stack.enter_async_context(self._sftp.open(path, "rb"))
            except SFTPError as ex:
                raise _os_error(ex, path) from ex
            yield _SftpInputStream(file, path)

    async def upload(self, content: InputStream, path: str) -> None:
        try:
            async with self._sftp.open(path, "wb") as file:
                while chunk := await content.read(DEFAULT_CHUNK_SIZE):
                    await file.write(chunk)
        except SFTPError as ex:
            raise _os_error(ex, path) from ex

    async def mkdir(self, path: str) -> None:
        try:
            await self._sftp.mkdir(path)
        except SFTPError as ex:
            raise _os_error(ex, path) from ex

    async def delete(self, path: str) -> None:
        try:
            if await self._sftp.isdir(path):
                await self._sftp.rmdir(path)
            else:
                await self._sftp.remove(path)
        except SFTPError as ex:
            raise _os_error(ex, path) from ex
