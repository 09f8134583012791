"""Site export orchestration.

Connects to the remote host, resolves the site information, and writes the
archive. The archive is written next to the output path, with a .part
suffix, and renamed once complete.
"""
from dataclasses import dataclass, field
from logging import Logger, getLogger
from pathlib import Path

from httpx import AsyncClient, Timeout

from wpzip.builder import Builder
from wpzip.emitter import create_file_emitter
from wpzip.errors import InvalidSiteUrlError, SiteInfoError, WpZipError
from wpzip.http import HttpxGetter
from wpzip.operations import Operation
from wpzip.probe import CapabilityProbe
from wpzip.progress import TransferProgress
from wpzip.prompt import Prompter
from wpzip.runner import run
from wpzip.siteinfo import determine_site_info
from wpzip.systems.ssh import ssh_system
from wpzip.wpconfig import WpConfigReader

_LOGGER = getLogger(__name__)


@dataclass(frozen=True)
class ExportSettings:
    host: str
    username: str
    password: str = field(repr=False)
    port: int = 22
    site_url: str | None = None
    public_path: str | None = None
    connect_timeout: float = 30
    http_timeout: float = 300
    verify_tls: bool = True
    keep_partial: bool = False


async def package_site(
    settings: ExportSettings,
    output: Path,
    prompter: Prompter,
    progress: TransferProgress | None = None,
    logger: Logger | None = None,
) -> None:
    """Export a site to a zip archive.

    Args:
        settings: Connection and site settings.
        output: Path of the archive to write.
        prompter: Asks the operator for what can't be detected.
        progress: Receives the progress of the files download.
        logger: Logger receiving remote commands and their output.

    Raises:
        WpZipError: If any stage of the export fails.
    """
    async with ssh_system(
        settings.host,
        settings.port,
        logger=logger,
        username=settings.username,
        password=settings.password,
        known_hosts=None,
        connect_timeout=settings.connect_timeout,
    ) as system, AsyncClient(
        timeout=Timeout(settings.http_timeout),
        verify=settings.verify_tls,
        follow_redirects=True,
    ) as client:
        probe = CapabilityProbe(system.shell)
        emitter = await create_file_emitter(probe, system.shell, system.filesystem)

        try:
            site_info = await determine_site_info(
                settings.site_url,
                settings.public_path,
                WpConfigReader(emitter),
                system.shell,
                prompter,
            )
        except (SiteInfoError, InvalidSiteUrlError) as ex:
            raise SiteInfoError(f"cannot determine site info: {ex}") from ex

        _LOGGER.info("Exporting %s from %s", site_info.site_url, site_info.public_path)
        http = HttpxGetter(client)
        builder = Builder(
            emitter, system.shell, system.filesystem, probe, http, progress
        )
        operations = await builder.build(site_info)
        await write_archive(operations, output, settings.keep_partial)


async def write_archive(
    operations: list[Operation], output: Path, keep_partial: bool = False
) -> None:
    """Run operations into an archive file.

    The archive is only moved to the output path once complete. When the run
    fails, the partial archive is deleted, unless keep_partial is set.
    """
    partial = output.with_name(f"{output.name}.part")
    try:
        writer = partial.open("wb")
    except OSError as ex:
        raise WpZipError(f"cannot create zip file: {ex}") from ex

    try:
        with writer:
            await run(operations, writer)
    except BaseException:
        if keep_partial:
            _LOGGER.warning("Partial archive kept in %s", partial)
        else:
            partial.unlink(missing_ok=True)
        raise

    partial.replace(output)
