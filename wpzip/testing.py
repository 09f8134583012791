"""Test doubles for the remote host and the web server.

MockShell is driven by an async generator yielding the processes it expects
to run, in order :

```python
async def _processes() -> AsyncIterator[MockProcess]:
    yield check_process("tar --version")
    yield check_process("mysqldump --version", return_code=127)

async with MockShell(_processes()) as sh:
    ...
```
"""
from asyncio import Event, Queue, Task, create_task, gather
from contextlib import asynccontextmanager
from io import BytesIO
from posixpath import dirname, normpath
from re import Pattern
from tarfile import DIRTYPE, GNU_FORMAT, TarFile, TarInfo
from types import TracebackType
from typing import Any, AsyncIterator, Callable, Coroutine, Iterable, Mapping

from wpzip.filesystem import EntryKind, FileSystem, RemoteEntry
from wpzip.http import HttpGetError, HttpGetter
from wpzip.shell import Process, Shell, Stderr, Stdout
from wpzip.stream import InputStream, MemoryInputStream, Stream, read_all


class MockStdin(Stream):
    def __init__(self) -> None:
        self._buffer = bytearray()
        self._closed = Event()

    async def write(self, data: bytes) -> None:
        self._buffer.extend(data)

    async def read(self) -> bytes:
        await self._closed.wait()
        return bytes(self._buffer)

    async def close(self) -> None:
        self._closed.set()


MockProcess = Callable[[str, Stdout, Stderr, MockStdin], Coroutine[Any, None, int]]


async def _write_stream(content: bytes, stream: Stream) -> None:
    await stream.write(content)
    await stream.close()


def check_process(
    expected_command: str | Pattern[str] = ".*",
    stdout: str | bytes = "",
    stderr: str | bytes = "",
    return_code: int = 0,
    error: Exception | None = None,
) -> MockProcess:
    """Expect a process to be run.

    Args:
        expected_command: The exact command, or a pattern it must match.
        stdout: Data the process writes on its standard output.
        stderr: Data the process writes on its standard error.
        return_code: Exit code of the process.
        error: If set, raised in place of running the process.
    """

    def _encode(value: str | bytes) -> bytes:
        if isinstance(value, str):
            return value.encode("utf-8")
        return value

    encoded_stdout = _encode(stdout)
    encoded_stderr = _encode(stderr)

    async def _run(
        command: str,
        out: Stdout,
        err: Stderr,
        stdin: MockStdin,
    ) -> int:
        if isinstance(expected_command, str):
            assert (
                command == expected_command
            ), f"Unexpected command : {command}, expected {expected_command}"
        else:
            assert expected_command.match(
                command
            ), f"Unexpected command : {command}, expected {expected_command}"

        if error is not None:
            raise error

        def _tasks() -> Iterable[Coroutine[Any, Any, None]]:
            if encoded_stdout and out:
                yield _write_stream(encoded_stdout, out)
            if encoded_stderr and err:
                yield _write_stream(encoded_stderr, err)

        await gather(*_tasks())

        return return_code

    return _run


class MockShell(Shell):
    """Shell checking the commands it runs against expected processes."""

    def __init__(self, system_mock: AsyncIterator[MockProcess]) -> None:
        super().__init__()
        self._processes: Queue[MockProcess] = Queue()
        self.commands: list[str] = []

        async def _run() -> None:
            async for process in system_mock:
                self._processes.put_nowait(process)

        self._system_mock = create_task(_run())

    async def __aenter__(self) -> "MockShell":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_type is None:
            await self._system_mock
            assert self._processes.empty(), "Some expected processes were not run"

    async def _start_process(self, out: Stdout, err: Stderr, command: str) -> Process:
        if self._system_mock.done():
            exception = self._system_mock.exception()
            if exception:
                raise exception

        assert not (
            self._system_mock.done() and self._processes.empty()
        ), f"Unexpected command : {command}"
        process = await self._processes.get()
        self.commands.append(command)
        stdin = MockStdin()

        async def _run() -> int:
            process_task: Task[int] = create_task(process(command, out, err, stdin))
            return await process_task

        return stdin, err, create_task(_run())


class MemoryFileSystem(FileSystem):
    """File system keeping files in a dictionary.

    Every modification is recorded in the operations list as a (name, path)
    tuple, name being "upload", "mkdir" or "delete".
    """

    def __init__(
        self,
        files: Mapping[str, bytes | str] | None = None,
        fail_upload: Iterable[str] = (),
        fail_delete: Iterable[str] = (),
    ) -> None:
        self.files: dict[str, bytes] = {}
        self.directories: set[str] = set()
        self.operations: list[tuple[str, str]] = []
        self._fail_upload = {normpath(it) for it in fail_upload}
        self._fail_delete = {normpath(it) for it in fail_delete}

        for path, content in (files or {}).items():
            if isinstance(content, str):
                content = content.encode("utf-8")
            self._add_file(normpath(path), content)

    async def list_dir(self, path: str) -> list[RemoteEntry]:
        path = normpath(path)
        if path not in self.directories:
            raise FileNotFoundError(path)

        entries = [
            RemoteEntry(_name(it), EntryKind.FILE)
            for it in self.files
            if _parent(it) == path
        ]
        entries += [
            RemoteEntry(_name(it), EntryKind.DIRECTORY)
            for it in self.directories
            if it != path and _parent(it) == path
        ]
        return sorted(entries, key=lambda it: it.name)

    @asynccontextmanager
    async def open(self, path: str) -> AsyncIterator[InputStream]:
        path = normpath(path)
        if path not in self.files:
            raise FileNotFoundError(path)
        yield MemoryInputStream(self.files[path])

    async def upload(self, content: InputStream, path: str) -> None:
        path = normpath(path)
        self.operations.append(("upload", path))
        if path in self._fail_upload:
            raise PermissionError(path)
        if _parent(path) not in self.directories:
            raise FileNotFoundError(_parent(path))
        self.files[path] = await read_all(content)

    async def mkdir(self, path: str) -> None:
        path = normpath(path)
        self.operations.append(("mkdir", path))
        if path in self.directories or path in self.files:
            raise FileExistsError(path)
        self.directories.add(path)

    async def delete(self, path: str) -> None:
        path = normpath(path)
        self.operations.append(("delete", path))
        if path in self._fail_delete:
            raise PermissionError(path)
        if path in self.files:
            del self.files[path]
        elif path in self.directories:
            children = [*self.files, *self.directories]
            if any(_parent(it) == path for it in children if it != path):
                raise OSError(f"{path} is not empty")
            self.directories.remove(path)
        else:
            raise FileNotFoundError(path)

    def _add_file(self, path: str, content: bytes) -> None:
        self.files[path] = content
        directory = _parent(path)
        while directory not in self.directories:
            self.directories.add(directory)
            directory = _parent(directory)


def _parent(path: str) -> str:
    return dirname(path) or "."


def _name(path: str) -> str:
    return path.rsplit("/", 1)[-1]


class MockHttpGetter(HttpGetter):
    """HTTP getter answering from a dictionary of url / response body.

    A response can be an exception, raised when the url is requested. Urls
    missing from the dictionary fail with an HttpGetError.
    """

    def __init__(
        self, responses: dict[str, bytes | str | Exception] | None = None
    ) -> None:
        self.responses = responses or {}
        self.requests: list[str] = []

    @asynccontextmanager
    async def get(self, url: str) -> AsyncIterator[InputStream]:
        self.requests.append(url)
        response = self.responses.get(url)
        if response is None:
            raise HttpGetError(url, "404 Not Found")
        if isinstance(response, Exception):
            raise response
        yield MemoryInputStream(response)


def make_tar(
    files: Mapping[str, bytes | str | None], tar_format: int = GNU_FORMAT
) -> bytes:
    """Build a tar archive, as output by tar -cf -.

    Args:
        files: Member names and contents, None contents being directories.
        tar_format: One of the tarfile module formats.
    """
    buffer = BytesIO()
    with TarFile(fileobj=buffer, mode="w", format=tar_format) as archive:
        for name, content in files.items():
            info = TarInfo(name)
            if content is None:
                info.type = DIRTYPE
                archive.addfile(info)
            else:
                data = content.encode("utf-8") if isinstance(content, str) else content
                info.size = len(data)
                archive.addfile(info, BytesIO(data))
    return buffer.getvalue()
