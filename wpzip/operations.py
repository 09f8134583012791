"""Operations producing the archive entries.

An operation pushes the files it produces through an async callback, one at
a time : the callback consumes the content of a file before returning. The
operations don't know about the archive nor about each other.
"""
from abc import ABC, abstractmethod
from contextlib import aclosing
from json import loads
from logging import getLogger
from secrets import choice
from string import ascii_letters
from typing import Awaitable, Callable

from wpzip.credentials import ServerAddress
from wpzip.database import DatabaseExporter
from wpzip.emitter import FileEmitter, RemoteFile
from wpzip.errors import InvalidResponseError, UnexpectedResponseError
from wpzip.filesystem import FileSystem
from wpzip.http import HttpGetError, HttpGetter, get_first
from wpzip.progress import NullProgress, TransferProgress
from wpzip.scratch import ScratchFiles
from wpzip.site import SiteInfo
from wpzip.stream import MemoryInputStream, ObservedInputStream, read_all
from wpzip.template import render_script

_LOGGER = getLogger(__name__)

FILES_DIRECTORY = "files"
DATABASE_FILE = "database.sql"
METADATA_FILE = "wpmigrate-export.json"

SendFile = Callable[[RemoteFile], Awaitable[None]]


def random_script_name() -> str:
    """Name of a script uploaded to the public directory, hard to guess."""
    suffix = "".join(choice(ascii_letters) for _ in range(10))
    return f"wp-zip-{suffix}.php"


class Operation(ABC):
    @property
    @abstractmethod
    def name(self) -> str:
        """Name of the operation, used in error messages."""

    @abstractmethod
    async def send_files(self, send: SendFile) -> None:
        """Produce files, sending each one to the given callback."""


class DownloadFilesOperation(Operation):
    """Downloads every file of the public directory under files/."""

    def __init__(
        self,
        emitter: FileEmitter,
        public_path: str,
        progress: TransferProgress | None = None,
    ) -> None:
        self._emitter = emitter
        self._public_path = public_path
        self._progress = progress if progress is not None else NullProgress()

    @property
    def name(self) -> str:
        return "download files"

    async def send_files(self, send: SendFile) -> None:
        total = await self._emitter.byte_size(self._public_path)
        self._progress.start("Downloading files", total)

        def _advance(data: bytes) -> None:
            self._progress.advance(len(data))

        try:
            async with aclosing(self._emitter.emit_all(self._public_path)) as files:
                async for file in files:
                    content = ObservedInputStream(file.content, _advance)
                    await send(RemoteFile(f"{FILES_DIRECTORY}/{file.path}", content))
        finally:
            self._progress.finish()


class ExportDatabaseOperation(Operation):
    """Sends the database dump as database.sql."""

    def __init__(self, exporter: DatabaseExporter) -> None:
        self._exporter = exporter

    @property
    def name(self) -> str:
        return "export database"

    async def send_files(self, send: SendFile) -> None:
        async with self._exporter.export() as dump:
            await send(RemoteFile(DATABASE_FILE, dump))


class GenerateJsonOperation(Operation):
    """Generates the site metadata file, wpmigrate-export.json.

    The metadata is collected by a PHP script uploaded under a random name to
    the public directory, then requested through the web server. The script
    is deleted whatever the outcome of the request.
    """

    def __init__(
        self,
        filesystem: FileSystem,
        http: HttpGetter,
        site_info: SiteInfo,
        script_namer: Callable[[], str] = random_script_name,
    ) -> None:
        self._filesystem = filesystem
        self._http = http
        self._site_info = site_info
        self._script_namer = script_namer

    @property
    def name(self) -> str:
        return "generate json"

    async def send_files(self, send: SendFile) -> None:
        script_name = self._script_namer()
        script = await self._render_script()

        async with ScratchFiles(self._filesystem) as scratch:
            script_path = self._site_info.public_path.join(script_name)
            await scratch.upload(MemoryInputStream(script), script_path)
            urls = self._site_info.site_url.candidates(script_name)
            try:
                async with get_first(self._http, urls) as body:
                    contents = await read_all(body)
            except HttpGetError as ex:
                raise InvalidResponseError(
                    f"invalid response from server: {ex}"
                ) from ex

        _check_metadata(contents)
        await send(RemoteFile(METADATA_FILE, MemoryInputStream(contents)))

    async def _render_script(self) -> bytes:
        site_info = self._site_info
        credentials = site_info.credentials
        address = ServerAddress.parse(credentials.host)
        return await render_script(
            "metadata.php.j2",
            host=address.host,
            port=address.port,
            socket=address.socket,
            user=credentials.user,
            password=credentials.password,
            database=credentials.name,
            name=site_info.site_url.domain,
            domain=site_info.site_url.domain,
            path=str(site_info.public_path),
        )


def _check_metadata(contents: bytes) -> None:
    try:
        metadata = loads(contents)
    except ValueError as ex:
        _LOGGER.debug("Metadata script answered %r", contents[:200])
        raise UnexpectedResponseError(f"unexpected response from server: {ex}") from ex

    if not isinstance(metadata, dict) or "name" not in metadata:
        raise UnexpectedResponseError(
            "unexpected response from server: no name in metadata"
        )
