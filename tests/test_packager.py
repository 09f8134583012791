from contextlib import asynccontextmanager
from io import BytesIO
from pathlib import Path
from typing import Any, AsyncIterator
from unittest.mock import Mock, patch
from zipfile import ZipFile

from httpx import AsyncClient, MockTransport, Request, Response
from pytest import raises

from wpzip.emitter import RemoteFile
from wpzip.errors import RemoteConnectionError, RunError, SiteInfoError, WpZipError
from wpzip.operations import Operation, SendFile
from wpzip.packager import ExportSettings, package_site, write_archive
from wpzip.stream import MemoryInputStream
from wpzip.systems import SshSystem
from wpzip.testing import MemoryFileSystem, MockProcess, MockShell, check_process

WP_CONFIG = """<?php
define( 'DB_NAME', 'db' );
define( 'DB_USER', 'user' );
define( 'DB_PASSWORD', 'pass' );
$table_prefix = 'wp_';
"""
ARGUMENTS = "--user='user' --password='pass' --host=localhost db"
METADATA = b'{"name": "example.com"}'
DUMP = {"database.sql": b"CREATE"}
SETTINGS = ExportSettings(
    host="ssh.example.com",
    username="deploy",
    password="secret",
    site_url="https://example.com",
    public_path="/srv/www",
)


class _Files(Operation):
    def __init__(
        self, files: dict[str, bytes], error: Exception | None = None
    ) -> None:
        self._files = files
        self._error = error

    @property
    def name(self) -> str:
        return "files"

    async def send_files(self, send: SendFile) -> None:
        for path, content in self._files.items():
            await send(RemoteFile(path, MemoryInputStream(content)))
        if self._error is not None:
            raise self._error


def _read_zip(path: Path) -> dict[str, bytes]:
    with ZipFile(BytesIO(path.read_bytes())) as archive:
        return {it: archive.read(it) for it in archive.namelist()}


async def test_write_archive(tmp_path: Path) -> None:
    output = tmp_path / "site.zip"

    await write_archive([_Files(DUMP)], output)

    assert _read_zip(output) == DUMP
    assert list(tmp_path.iterdir()) == [output]


async def test_write_archive_failure(tmp_path: Path) -> None:
    output = tmp_path / "site.zip"

    with raises(RunError):
        await write_archive([_Files(DUMP, OSError("lost"))], output)

    assert list(tmp_path.iterdir()) == []


async def test_write_archive_keep_partial(tmp_path: Path) -> None:
    output = tmp_path / "site.zip"

    with raises(RunError):
        operations = [_Files(DUMP, OSError("lost"))]
        await write_archive(operations, output, keep_partial=True)

    assert list(tmp_path.iterdir()) == [tmp_path / "site.zip.part"]
    assert _read_zip(tmp_path / "site.zip.part") == DUMP


async def test_write_archive_cannot_create(tmp_path: Path) -> None:
    with raises(WpZipError, match="cannot create zip file"):
        await write_archive([_Files({})], tmp_path / "missing" / "site.zip")


def _patch_system(
    shell: MockShell, filesystem: MemoryFileSystem, calls: list[dict[str, Any]]
) -> Any:
    @asynccontextmanager
    async def _ssh_system(
        host: str, port: int = 22, **kwargs: Any
    ) -> AsyncIterator[SshSystem]:
        calls.append({"host": host, "port": port, **kwargs})
        yield SshSystem(shell, filesystem)

    return patch("wpzip.packager.ssh_system", _ssh_system)


def _patch_http(requests: list[str]) -> Any:
    def _handler(request: Request) -> Response:
        requests.append(str(request.url))
        if request.url.scheme == "https" and request.url.path.startswith("/wp-zip-"):
            return Response(200, content=METADATA)
        return Response(404)

    def _client(**_: Any) -> AsyncClient:
        return AsyncClient(transport=MockTransport(_handler))

    return patch("wpzip.packager.AsyncClient", _client)


async def test_package_site(tmp_path: Path) -> None:
    async def _processes() -> AsyncIterator[MockProcess]:
        yield check_process("tar --version", return_code=127)
        yield check_process("mysqldump --version")
        yield check_process(f'mysql {ARGUMENTS} -e"quit"')
        yield check_process(
            f"mysqldump --no-tablespaces {ARGUMENTS}", stdout="CREATE TABLE wp_posts;"
        )

    filesystem = MemoryFileSystem(
        {"/srv/www/index.php": "<?php", "/srv/www/wp-config.php": WP_CONFIG}
    )
    calls: list[dict[str, Any]] = []
    requests: list[str] = []
    output = tmp_path / "site.zip"

    async with MockShell(_processes()) as sh:
        with _patch_system(sh, filesystem, calls), _patch_http(requests):
            await package_site(SETTINGS, output, Mock())

    assert _read_zip(output) == {
        "files/index.php": b"<?php",
        "files/wp-config.php": WP_CONFIG.encode("utf-8"),
        "database.sql": b"CREATE TABLE wp_posts;",
        "wpmigrate-export.json": METADATA,
    }
    assert calls[0]["host"] == "ssh.example.com"
    assert calls[0]["port"] == 22
    assert calls[0]["username"] == "deploy"
    assert calls[0]["password"] == "secret"
    assert len(requests) == 1
    # Only site files are left on the remote host.
    assert set(filesystem.files) == {"/srv/www/index.php", "/srv/www/wp-config.php"}


async def test_package_site_info_error(tmp_path: Path) -> None:
    async def _processes() -> AsyncIterator[MockProcess]:
        yield check_process("tar --version", return_code=127)

    filesystem = MemoryFileSystem({"/srv/www/index.php": "<?php"})
    output = tmp_path / "site.zip"

    async with MockShell(_processes()) as sh:
        with _patch_system(sh, filesystem, []), _patch_http([]):
            message = (
                "cannot determine site info: cannot parse wp-config.php: could not read"
            )
            with raises(SiteInfoError, match=message):
                await package_site(SETTINGS, output, Mock())

    assert list(tmp_path.iterdir()) == []


async def test_package_site_connection_error(tmp_path: Path) -> None:
    @asynccontextmanager
    async def _ssh_system(
        host: str, port: int = 22, **kwargs: Any
    ) -> AsyncIterator[SshSystem]:
        raise RemoteConnectionError(f"cannot connect to {host}:{port}: refused")
        yield

    with patch("wpzip.packager.ssh_system", _ssh_system):
        message = "cannot connect to ssh.example.com:22"
        with raises(RemoteConnectionError, match=message):
            await package_site(SETTINGS, tmp_path / "site.zip", Mock())
