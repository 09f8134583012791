"""Byte streams.

Stream is written to and closed by a producer, InputStream is read and closed
by a consumer. Every byte flowing through wp-zip goes through them : remote
processes output, remote files content, HTTP response bodies and archive
entries.
"""
from abc import ABC, abstractmethod
from asyncio import Event
from collections.abc import AsyncIterator, Callable
from logging import DEBUG, Logger
from types import TracebackType
from typing import Self, overload

DEFAULT_CHUNK_SIZE = 64 * 1024


class Stream(ABC):
    """Destination of bytes, closed by the producer once it is done.

    Usable as an async context manager closing the stream on exit.
    """

    @abstractmethod
    async def write(self, data: bytes) -> None:
        """Write bytes, waiting if the destination is busy."""

    @abstractmethod
    async def close(self) -> None:
        """Close the stream."""

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()


class InputStream(ABC):
    """Source of bytes, read until a short read."""

    @abstractmethod
    async def read(self, n: int = -1) -> bytes:
        """Read up to n bytes, or everything left when n is -1.

        A read only returns less than n bytes at the end of the stream.
        """

    async def close(self) -> None:
        """Signal that the reader won't consume the remaining data."""


class NullStream(Stream):
    """Stream discarding everything written to it."""

    async def write(self, _: bytes) -> None:
        ...

    async def close(self) -> None:
        ...


class MemoryStream(Stream):
    """Stream appending to a bytearray, a new one unless given."""

    def __init__(self, buffer: bytearray | None = None) -> None:
        self._buffer = buffer if buffer is not None else bytearray()

    @property
    def buffer(self) -> bytearray:
        return self._buffer

    async def write(self, data: bytes) -> None:
        self._buffer.extend(data)

    async def close(self) -> None:
        ...


class LineStream(Stream):
    """Stream splitting written bytes into utf-8 lines."""

    def __init__(self) -> None:
        self._pending_line = ""

    async def write(self, data: bytes) -> None:
        if not data:
            return

        string_content = self._pending_line + data.decode("utf-8", errors="ignore")
        self._pending_line = ""
        lines = string_content.split("\n")

        if not string_content.endswith("\n"):
            self._pending_line = lines.pop()
        elif lines[-1] == "":
            lines.pop()

        for line in lines:
            self.write_line(line)

    @abstractmethod
    def write_line(self, line: str) -> None:
        """Handle a complete line, without its line feed."""

    async def close(self) -> None:
        if self._pending_line:
            self.write_line(self._pending_line)
            self._pending_line = ""


class LogStream(LineStream):
    """Stream logging each line it receives, at a fixed level."""

    def __init__(self, logger: Logger, level: int = DEBUG) -> None:
        super().__init__()
        self._logger = logger
        self._level = level

    def write_line(self, line: str) -> None:
        self._logger.log(self._level, line)


class _MultiplexStream(Stream):
    def __init__(self, *children: Stream) -> None:
        self._children = list(children)

    async def write(self, data: bytes) -> None:
        for child in self._children:
            await child.write(data)

    async def close(self) -> None:
        for child in self._children:
            await child.close()


def multiplex(*streams: Stream | None) -> Stream | None:
    """Combine streams into one writing to all of them.

    Writes and closes are forwarded to children sequentially, in the order
    they were given, so a slow pipe applies back-pressure to the writer.

    None elements are skipped. None is returned when nothing is left, and the
    stream itself when a single one is left.
    """
    children: list[Stream] = []
    for stream in streams:
        if stream is None:
            continue
        nested = stream._children if isinstance(stream, _MultiplexStream) else [stream]
        children.extend(it for it in nested if it not in children)

    if not children:
        return None
    if len(children) == 1:
        return children[0]

    return _MultiplexStream(*children)


class _PipeState:
    def __init__(self, max_size: int) -> None:
        self.buffer = bytearray()
        self.max_size = max_size
        self.data_available = Event()
        self.drained = Event()
        self.drained.set()
        self.closed = False
        self.discard = False

    def update(self) -> None:
        if self.buffer or self.closed:
            self.data_available.set()
        else:
            self.data_available.clear()

        if len(self.buffer) < self.max_size or self.discard:
            self.drained.set()
        else:
            self.drained.clear()


class _PipeStream(Stream):
    def __init__(self, state: _PipeState) -> None:
        self._state = state

    async def write(self, data: bytes) -> None:
        state = self._state
        await state.drained.wait()
        if state.discard:
            return
        if state.closed:
            raise BrokenPipeError("write to a closed pipe")
        state.buffer.extend(data)
        state.update()

    async def close(self) -> None:
        self._state.closed = True
        self._state.update()


class _PipeInputStream(InputStream):
    def __init__(self, state: _PipeState) -> None:
        self._state = state

    async def read(self, n: int = -1) -> bytes:
        state = self._state
        while not state.closed and (n == -1 or len(state.buffer) < n):
            await state.data_available.wait()
            if n != -1 and len(state.buffer) >= n:
                break
            if not state.closed:
                state.data_available.clear()
                state.drained.set()

        read_size = len(state.buffer) if n == -1 else min(n, len(state.buffer))
        data = bytes(state.buffer[:read_size])
        del state.buffer[:read_size]
        state.update()
        return data

    async def close(self) -> None:
        self._state.discard = True
        self._state.buffer.clear()
        self._state.update()


def pipe(max_size: int = 4 * DEFAULT_CHUNK_SIZE) -> tuple[Stream, InputStream]:
    """Create an in-process pipe.

    Writes block while more than max_size bytes are waiting to be read, so
    memory stays bounded whatever the amount of data flowing through the
    pipe. Closing the read end makes the pipe discard any further write.

    Args:
        max_size: Number of buffered bytes above which writers wait.

    Return:
        A tuple (in, out), such as data written to "in" is readable from "out".
    """
    state = _PipeState(max_size)
    return _PipeStream(state), _PipeInputStream(state)


class MemoryInputStream(InputStream):
    """Input stream reading from an in-memory bytes object."""

    def __init__(self, content: bytes | str, encoding: str = "utf-8") -> None:
        if isinstance(content, str):
            content = content.encode(encoding)
        self._content = bytes(content)
        self._position = 0

    async def read(self, n: int = -1) -> bytes:
        end = len(self._content) if n == -1 else self._position + n
        data = self._content[self._position : end]
        self._position += len(data)
        return data


class IteratorInputStream(InputStream):
    """Input stream reading chunks from an async iterator of bytes."""

    def __init__(self, chunks: AsyncIterator[bytes]) -> None:
        self._chunks = chunks
        self._buffer = bytearray()
        self._exhausted = False

    async def read(self, n: int = -1) -> bytes:
        while not self._exhausted and (n == -1 or len(self._buffer) < n):
            try:
                self._buffer.extend(await anext(self._chunks))
            except StopAsyncIteration:
                self._exhausted = True

        read_size = len(self._buffer) if n == -1 else min(n, len(self._buffer))
        data = bytes(self._buffer[:read_size])
        del self._buffer[:read_size]
        return data


class ObservedInputStream(InputStream):
    """Input stream calling a function with each chunk read from another."""

    def __init__(self, inner: InputStream, observer: Callable[[bytes], None]) -> None:
        self._inner = inner
        self._observer = observer

    async def read(self, n: int = -1) -> bytes:
        data = await self._inner.read(n)
        if data:
            self._observer(data)
        return data

    async def close(self) -> None:
        await self._inner.close()


Streamable = bytearray | Stream | None


def stream_to(streamable: Streamable) -> Stream:
    """Destination of a command redirection.

    None discards the output, a bytearray receives it, a Stream is used as is.
    """
    if streamable is None:
        return NullStream()
    if isinstance(streamable, Stream):
        return streamable
    if isinstance(streamable, bytearray):
        return MemoryStream(streamable)

    raise NotImplementedError()


async def copy_stream(
    in_: InputStream, out: Stream, buffer_size: int = DEFAULT_CHUNK_SIZE
) -> int:
    """Copy an input stream to its end, returning the number of bytes copied.

    The output stream isn't closed.
    """
    total = 0
    while True:
        buffer = await in_.read(buffer_size)
        if buffer:
            await out.write(buffer)
            total += len(buffer)
        if len(buffer) < buffer_size:
            return total


@overload
async def read_all(in_: InputStream, encoding: None = None) -> bytes:
    ...


@overload
async def read_all(in_: InputStream, encoding: str) -> str:
    ...


async def read_all(in_: InputStream, encoding: str | None = None) -> str | bytes:
    """Read an input stream to its end.

    Args:
        in_: Stream to read.
        encoding: If given, decode the content, replacing invalid characters.
    """
    content = MemoryStream()
    await copy_stream(in_, content)
    if encoding is None:
        return bytes(content.buffer)
    return content.buffer.decode(encoding, errors="replace")
