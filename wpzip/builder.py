"""Operations making up a site export."""
from typing import Callable

from wpzip.database import create_database_exporter
from wpzip.emitter import FileEmitter
from wpzip.filesystem import FileSystem
from wpzip.http import HttpGetter
from wpzip.operations import (
    DownloadFilesOperation,
    ExportDatabaseOperation,
    GenerateJsonOperation,
    Operation,
    random_script_name,
)
from wpzip.probe import CapabilityProbe
from wpzip.progress import TransferProgress
from wpzip.shell import Shell
from wpzip.site import SiteInfo


class Builder:
    """Builds the operations exporting a site.

    Strategies depending on the remote host capabilities are chosen here,
    once, through the capability probe.
    """

    def __init__(
        self,
        emitter: FileEmitter,
        shell: Shell,
        filesystem: FileSystem,
        probe: CapabilityProbe,
        http: HttpGetter,
        progress: TransferProgress | None = None,
        script_namer: Callable[[], str] = random_script_name,
    ) -> None:
        self._emitter = emitter
        self._shell = shell
        self._filesystem = filesystem
        self._probe = probe
        self._http = http
        self._progress = progress
        self._script_namer = script_namer

    async def build(self, site_info: SiteInfo) -> list[Operation]:
        """Build the operations, in the order their files appear in the archive :
        site files, database dump, then metadata.
        """
        exporter = await create_database_exporter(
            self._probe, self._shell, self._filesystem, self._http, site_info
        )
        public_path = str(site_info.public_path)
        return [
            DownloadFilesOperation(self._emitter, public_path, self._progress),
            ExportDatabaseOperation(exporter),
            GenerateJsonOperation(
                self._filesystem, self._http, site_info, self._script_namer
            ),
        ]
