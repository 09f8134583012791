"""
Remote command execution.

This module declares the base class providing a common interface to run
processes on the remote host. A shell is called with a command string and
returns a Command, that can be awaited to get the exit code, or read to get
the process standard output, either at once or as a stream :

```python
 await sh("mysqldump --version")
 version = await sh("php --version").read_stdout("utf-8")
 async with sh("tar -C /srv -cf - www").open_stdout() as stdout:
     ...
```
"""
from abc import ABC, abstractmethod
from asyncio import create_task
from collections import deque
from contextlib import asynccontextmanager
from logging import INFO, Logger, addLevelName
from typing import AsyncIterator, Awaitable, Callable, Generator, Iterable, overload

from wpzip.stream import (
    InputStream,
    LineStream,
    LogStream,
    MemoryStream,
    Stream,
    Streamable,
    multiplex,
    pipe,
    stream_to,
)

Stdin = Stream | None
Stdout = Stream | None
Stderr = Stream | None
Process = tuple[Stdin, Stderr, Awaitable[int]]
StartProcess = Callable[[Stdout, Stderr], Awaitable[Process]]


class LogLevel:
    STDERR = INFO + 1
    STDOUT = INFO - 1


addLevelName(LogLevel.STDERR, "STDERR")
addLevelName(LogLevel.STDOUT, "STDOUT")


class ProcessFailedError(Exception):
    """A remote command exited with a non-zero code.

    Only raised by commands of a shell with raise_on_error set, or created
    with raise_on_error=True. Passwords never appear in the message : it is
    built from the command display text.
    """

    def __init__(self, command: str, return_code: int, stderr_tail: str) -> None:
        super().__init__(
            f"{command} returned code {return_code}.\n"
            f"Last stderr output:\n{stderr_tail}"
        )
        self._command = command
        self._return_code = return_code
        self._stderr_tail = stderr_tail

    @property
    def command(self) -> str:
        """The command that failed, as displayed in logs."""
        return self._command

    @property
    def return_code(self) -> int:
        """Return code of the process that failed."""
        return self._return_code

    @property
    def stderr_tail(self) -> str:
        """Last 10 lines that were output on stderr by the process."""
        return self._stderr_tail


class ProcessLaunchError(OSError):
    """Exception raised when a shell can't start a process at all."""


class _TailStream(LineStream):
    def __init__(self) -> None:
        super().__init__()
        self._tail: deque[str] = deque(maxlen=10)

    @property
    def tail(self) -> Iterable[str]:
        return self._tail

    def write_line(self, line: str) -> None:
        self._tail.append(line)


class Command:
    """A command line, bound to the shell that will run it.

    Commands are built by calling a wpzip.shell.Shell.

    Each time a command is awaited or read, it starts a new process.
    Supports redirection to a wpzip.stream.Stream through >> operator, which
    will copy the standard output of the command to the given stream.
    """

    def __init__(
        self, start: StartProcess, logger: Logger | None = None, out: Stdout = None
    ) -> None:
        self._start_process = start
        self._logger = logger
        self._out = out

    def __await__(self) -> Generator[None, None, int]:
        async def _run() -> int:
            _, wait = await self._start()
            return await wait

        return _run().__await__()

    def __rshift__(self, target: Streamable) -> "Command":
        out = multiplex(self._out, stream_to(target))
        return Command(self._start_process, self._logger, out)

    @overload
    async def read_stdout(self, encoding: None = None) -> bytes:
        ...

    @overload
    async def read_stdout(self, encoding: str) -> str:
        ...

    async def read_stdout(self, encoding: str | None = None) -> str | bytes:
        """Run the command and return everything it wrote on stdout."""
        out = MemoryStream()
        _, wait = await self._start(out)
        await wait

        if encoding is None:
            return bytes(out.buffer)
        return out.buffer.decode(encoding)

    @asynccontextmanager
    async def open_stdout(self) -> AsyncIterator[InputStream]:
        """Run the command, streaming its standard output.

        The process output flows through a bounded pipe, so the process is
        paused until the caller reads it. When the context exits, output not
        consumed by the caller is discarded and the process is waited for :
        a failure of the process is raised at that point.
        """
        writer, reader = pipe()
        stdin, wait = await self._start(writer)

        async def _run() -> int:
            try:
                return await wait
            finally:
                await writer.close()

        process = create_task(_run())

        try:
            yield reader
        except BaseException:
            await reader.close()
            try:
                await process
            except Exception as ex:  # the caller's exception takes precedence
                if self._logger is not None:
                    self._logger.debug("Process failed after its reader did : %s", ex)
            raise

        await reader.close()
        await process

    async def _start(self, out: Stdout = None) -> tuple[Stdin, Awaitable[int]]:
        stdin, _, wait = await self._start_process(multiplex(out, self._out), None)

        async def _run() -> int:
            if stdin is not None:
                await stdin.close()
            return await wait

        return stdin, _run()


def _raise_on_error(start: StartProcess, display: str) -> StartProcess:
    async def _start(out: Stdout, err: Stderr) -> Process:
        stderr_tail = _TailStream()
        stdin, err, run = await start(out, multiplex(err, stderr_tail))

        async def _run_watch() -> int:
            result = await run

            await stderr_tail.close()

            if result != 0:
                raise ProcessFailedError(display, result, "\n".join(stderr_tail.tail))

            return result

        return stdin, err, _run_watch()

    return _start


class Shell(ABC):
    """Runs commands on a host.

    The SSH connection to the exported site implements it, as well as the
    mock shell of wpzip.testing. Calling a shell with a command line gives a
    Command, nothing runs until the command is awaited or read.
    """

    def __init__(
        self, logger: Logger | None = None, raise_on_error: bool = True
    ) -> None:
        """Initialize the shell.

        Args:
            logger:
                Receives the executed commands at DEBUG level, their stdout at
                LogLevel.STDOUT and their stderr at LogLevel.STDERR.

            raise_on_error:
                Make failing commands raise a ProcessFailedError. Each call
                of the shell can override it.
        """
        self._logger = logger
        self._raise_on_error = raise_on_error

    def __call__(
        self,
        command: str,
        raise_on_error: bool | None = None,
        display: str | None = None,
    ) -> Command:
        """Prepare a command.

        Args:
            command: Command line, run by the remote user login shell.

            raise_on_error:
                Replaces the shell raise_on_error setting for this command.

            display:
                Text used in place of the command in logs and errors. Commands
                embedding secrets must set it.

        Returns:
            A wpzip.shell.Command instance ready to be executed by awaiting
            it, or read with read_stdout or open_stdout.
        """
        display = display if display is not None else command
        logger = self._logger

        async def _start(out: Stdout, err: Stderr) -> Process:
            if logger is not None:
                logger.debug("Executing %s", display)
                if out is None:
                    out = LogStream(logger, level=LogLevel.STDOUT)
                err = multiplex(err, LogStream(logger, level=LogLevel.STDERR))

            return await self._start_process(out, err, command)

        if raise_on_error is None:
            raise_on_error = self._raise_on_error

        if raise_on_error:
            return Command(_raise_on_error(_start, display), logger)
        return Command(_start, logger)

    @abstractmethod
    async def _start_process(self, out: Stdout, err: Stderr, command: str) -> Process:
        ...
