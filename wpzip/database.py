"""Database exporters.

The database dump is produced by one of two strategies, selected once by
create_database_exporter :

 * MysqldumpExporter runs mysqldump on the remote host, streaming its output.
 * PhpScriptExporter uploads a PHP dumper to the public directory of the site
   and requests it through the web server, when mysqldump isn't available.
   The uploaded scripts contain the database credentials, and are deleted
   whatever the outcome of the export.
"""
from abc import ABC, abstractmethod
from contextlib import AsyncExitStack, asynccontextmanager
from logging import getLogger
from secrets import choice
from string import ascii_letters
from typing import AsyncContextManager, AsyncIterator, Callable

from wpzip.credentials import DatabaseCredentials, mysql_cli_credentials, pdo_dsn
from wpzip.errors import (
    InvalidCredentialsError,
    InvalidResponseError,
    UtilityNotFoundError,
)
from wpzip.filesystem import FileSystem
from wpzip.http import HttpGetError, HttpGetter, get_first
from wpzip.probe import CapabilityProbe
from wpzip.scratch import ScratchFiles
from wpzip.shell import Shell
from wpzip.site import SiteInfo
from wpzip.stream import InputStream, MemoryInputStream
from wpzip.template import dumper_script, render_script

__all__ = [
    "DatabaseCredentials",
    "DatabaseExporter",
    "MysqldumpExporter",
    "PhpScriptExporter",
    "create_database_exporter",
    "mysql_cli_credentials",
    "random_directory_name",
]

_LOGGER = getLogger(__name__)

MYSQLDUMP_VERSION_COMMAND = "mysqldump --version"
SCRATCH_DIRECTORY = "wp-zip-database-export"


def random_directory_name() -> str:
    """Name of the scratch directory, hard to guess as the dump is written there."""
    suffix = "".join(choice(ascii_letters) for _ in range(10))
    return f"{SCRATCH_DIRECTORY}-{suffix}"


class DatabaseExporter(ABC):
    @abstractmethod
    def export(self) -> AsyncContextManager[InputStream]:
        """Dump the whole database.

        The dump is streamed as plain SQL text while the context is open.
        Resources used by the export are released when the context exits.
        """


class MysqldumpExporter(DatabaseExporter):
    """Exports the database by running mysqldump on the remote host."""

    def __init__(
        self, probe: CapabilityProbe, shell: Shell, credentials: DatabaseCredentials
    ) -> None:
        self._probe = probe
        self._shell = shell
        self._credentials = credentials

    @asynccontextmanager
    async def export(self) -> AsyncIterator[InputStream]:
        if not await self._probe.can_run(MYSQLDUMP_VERSION_COMMAND):
            raise UtilityNotFoundError("mysqldump command not found")

        arguments = mysql_cli_credentials(self._credentials)
        masked = mysql_cli_credentials(self._credentials, mask_password=True)

        if not await self._probe.can_run(
            f'mysql {arguments} -e"quit"', display=f'mysql {masked} -e"quit"'
        ):
            raise InvalidCredentialsError("MySQL credentials are incorrect")

        command = self._shell(
            f"mysqldump --no-tablespaces {arguments}",
            display=f"mysqldump --no-tablespaces {masked}",
        )
        async with command.open_stdout() as stdout:
            yield stdout


class PhpScriptExporter(DatabaseExporter):
    """Exports the database through a PHP script run by the site's web server.

    The bundled dumper and a script calling it with the site credentials are
    uploaded in a scratch directory of the public directory. The dumper
    writes the dump next to itself before the calling script outputs it, so
    the scratch directory is removed with the dump file and both scripts.
    """

    def __init__(
        self,
        filesystem: FileSystem,
        http: HttpGetter,
        site_info: SiteInfo,
        directory_namer: Callable[[], str] = random_directory_name,
    ) -> None:
        self._filesystem = filesystem
        self._http = http
        self._site_info = site_info
        self._directory_namer = directory_namer

    @asynccontextmanager
    async def export(self) -> AsyncIterator[InputStream]:
        name = self._directory_namer()
        directory = self._site_info.public_path.join(name)
        credentials = self._site_info.credentials

        async with ScratchFiles(self._filesystem) as scratch, AsyncExitStack() as stack:
            await scratch.mkdir(directory)
            await scratch.upload(
                MemoryInputStream(dumper_script()), f"{directory}/Mysqldump.php"
            )
            script = await render_script(
                "dump.php.j2",
                dsn=pdo_dsn(credentials),
                user=credentials.user,
                password=credentials.password,
            )
            await scratch.upload(MemoryInputStream(script), f"{directory}/dump.php")
            scratch.track(f"{directory}/dump.sql")

            urls = self._site_info.site_url.candidates(f"{name}/dump.php")
            try:
                body = await stack.enter_async_context(get_first(self._http, urls))
            except HttpGetError as ex:
                raise InvalidResponseError(
                    f"invalid response from server: {ex}"
                ) from ex

            yield body


async def create_database_exporter(
    probe: CapabilityProbe,
    shell: Shell,
    filesystem: FileSystem,
    http: HttpGetter,
    site_info: SiteInfo,
) -> DatabaseExporter:
    """Create the best database exporter the remote host supports."""
    if await probe.can_run(MYSQLDUMP_VERSION_COMMAND):
        _LOGGER.info("Exporting the database with mysqldump")
        return MysqldumpExporter(probe, shell, site_info.credentials)

    _LOGGER.info("mysqldump is not available, exporting the database through PHP")
    return PhpScriptExporter(filesystem, http, site_info)
