"""Remote directory emitters.

An emitter is basically a file downloader that doesn't write anything to the
local file system : it yields the path and the content stream of each remote
file, and it's up to the caller to do something with them. Files are emitted
one at a time, the content of a file must be consumed before requesting the
next one.

Two strategies are available :

 * TarFileEmitter runs tar on the remote host, and decodes its output as it
   arrives. This streams a whole directory through a single command and is
   the preferred strategy.
 * SftpFileEmitter lists directories and opens each file over sftp. Much
   slower, it is used when tar can't run on the remote host.
"""
from abc import ABC, abstractmethod
from contextlib import aclosing, asynccontextmanager
from dataclasses import dataclass
from logging import getLogger
from posixpath import basename, split
from shlex import quote
from typing import AsyncContextManager, AsyncIterator

from wpzip.filesystem import EntryKind, FileSystem
from wpzip.probe import CapabilityProbe
from wpzip.shell import ProcessFailedError, ProcessLaunchError, Shell
from wpzip.stream import InputStream
from wpzip.tar import read_tar

_LOGGER = getLogger(__name__)

TAR_VERSION_COMMAND = "tar --version"


@dataclass(frozen=True)
class RemoteFile:
    """A remote file being transferred.

    The content stream is only valid until the next file is emitted.
    """

    path: str
    content: InputStream


class FileEmitter(ABC):
    @abstractmethod
    async def byte_size(self, path: str) -> int | None:
        """Estimate the total size of a remote directory.

        Returns:
            The size in bytes, or None if it can't be estimated.
        """

    @abstractmethod
    def emit_all(self, path: str) -> AsyncIterator[RemoteFile]:
        """Emit every regular file under a remote directory.

        Paths of emitted files are relative to the given directory. Failure to
        read any file aborts the whole iteration. Each call streams the
        directory from scratch.
        """

    @abstractmethod
    def open_single(self, path: str) -> AsyncContextManager[RemoteFile]:
        """Open a single remote file.

        The emitted file path is the file base name.

        Raises:
            FileNotFoundError: if the file doesn't exist.
        """


def _as_directory(path: str) -> str:
    return path if path.endswith("/") else f"{path}/"


class TarFileEmitter(FileEmitter):
    """Emitter streaming files out of a remote tar command."""

    def __init__(self, shell: Shell) -> None:
        self._shell = shell

    async def byte_size(self, path: str) -> int | None:
        command = f"du -sb {quote(path)} | awk '{{print $1}}'"
        try:
            output = await self._shell(command).read_stdout("utf-8")
            return int(output.strip())
        except (ProcessFailedError, ProcessLaunchError, ValueError) as ex:
            _LOGGER.warning("Cannot estimate the size of %s : %s", path, ex)
            return None

    async def emit_all(self, path: str) -> AsyncIterator[RemoteFile]:
        async with aclosing(self._emit(_as_directory(path), ".")) as files:
            async for file in files:
                yield file

    @asynccontextmanager
    async def open_single(self, path: str) -> AsyncIterator[RemoteFile]:
        parent, name = split(path)
        found = False
        try:
            async with aclosing(self._emit(parent or ".", name)) as files:
                async for file in files:
                    found = True
                    yield file
                    return
        except ProcessFailedError as ex:
            if found:
                raise
            raise FileNotFoundError(path) from ex

        raise FileNotFoundError(path)

    async def _emit(self, parent: str, target: str) -> AsyncIterator[RemoteFile]:
        # Archiving relatively to the parent directory gives relative names,
        # "./wp-config.php" when target is "." or "wp-config.php" otherwise.
        command = f"tar -C {quote(parent)} -cf - {quote(target)}"
        try:
            async with (
                self._shell(command).open_stdout() as stdout,
                aclosing(read_tar(stdout)) as members,
            ):
                async for info, content in members:
                    segments = [it for it in info.name.rstrip("/").split("/") if it]
                    if target == "." and segments[:1] == ["."]:
                        segments = segments[1:]

                    if not segments or not info.isreg():
                        continue

                    yield RemoteFile("/".join(segments), content)

        except ProcessFailedError as ex:
            # GNU tar exits with 1 when a file changed while being archived.
            if ex.return_code != 1:
                raise
            _LOGGER.warning(
                "Some files changed while being downloaded :\n%s", ex.stderr_tail
            )


class SftpFileEmitter(FileEmitter):
    """Emitter opening remote files one by one.

    Directories are walked depth-first, and a single remote file is open at a
    time.
    """

    def __init__(self, filesystem: FileSystem) -> None:
        self._filesystem = filesystem

    async def byte_size(self, path: str) -> int | None:
        # Walking the whole tree to sum sizes would take as long as the
        # download itself.
        return None

    async def emit_all(self, path: str) -> AsyncIterator[RemoteFile]:
        async with aclosing(self._walk(_as_directory(path), "")) as files:
            async for file in files:
                yield file

    @asynccontextmanager
    async def open_single(self, path: str) -> AsyncIterator[RemoteFile]:
        async with self._filesystem.open(path) as content:
            yield RemoteFile(basename(path), content)

    async def _walk(
        self, root: str, relative_directory: str
    ) -> AsyncIterator[RemoteFile]:
        for entry in await self._filesystem.list_dir(root + relative_directory):
            relative_path = relative_directory + entry.name
            if entry.kind == EntryKind.DIRECTORY:
                async with aclosing(self._walk(root, f"{relative_path}/")) as files:
                    async for file in files:
                        yield file
            elif entry.kind == EntryKind.FILE:
                async with self._filesystem.open(root + relative_path) as content:
                    yield RemoteFile(relative_path, content)


async def create_file_emitter(
    probe: CapabilityProbe, shell: Shell, filesystem: FileSystem
) -> FileEmitter:
    """Create the best file emitter the remote host supports."""
    if await probe.can_run(TAR_VERSION_COMMAND):
        _LOGGER.info("Downloading files through tar")
        return TarFileEmitter(shell)

    _LOGGER.info("tar is not available, downloading files one by one")
    return SftpFileEmitter(filesystem)
