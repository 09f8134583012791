from contextlib import asynccontextmanager
from re import fullmatch
from typing import AsyncIterator
from unittest.mock import Mock

from pytest import raises

from wpzip.credentials import DatabaseCredentials
from wpzip.database import DatabaseExporter
from wpzip.emitter import RemoteFile, SftpFileEmitter
from wpzip.errors import (
    CleanupError,
    InvalidResponseError,
    UnexpectedResponseError,
    UploadError,
)
from wpzip.http import HttpGetError, HttpGetter
from wpzip.operations import (
    DownloadFilesOperation,
    ExportDatabaseOperation,
    GenerateJsonOperation,
    random_script_name,
)
from wpzip.site import PublicPath, SiteInfo, SiteUrl
from wpzip.stream import InputStream, MemoryInputStream, read_all
from wpzip.testing import MemoryFileSystem, MockHttpGetter

SITE_INFO = SiteInfo(
    SiteUrl.parse("https://example.com"),
    PublicPath("/srv/www"),
    DatabaseCredentials("user", "pass", "db", "db.example.com:3307"),
)
SCRIPT = "wp-zip-abcdefghij.php"
SCRIPT_PATH = f"/srv/www/{SCRIPT}"
SCRIPT_URL = f"https://example.com/{SCRIPT}"
INSECURE_SCRIPT_URL = f"http://example.com/{SCRIPT}"
METADATA = b'{"name": "example.com", "domain": "example.com", "path": "/srv/www/"}'


class _Collector:
    def __init__(self) -> None:
        self.files: dict[str, bytes] = {}

    async def __call__(self, file: RemoteFile) -> None:
        self.files[file.path] = await read_all(file.content)


class _Exporter(DatabaseExporter):
    def __init__(self, dump: bytes) -> None:
        self._dump = dump
        self.closed = False

    @asynccontextmanager
    async def export(self) -> AsyncIterator[InputStream]:
        try:
            yield MemoryInputStream(self._dump)
        finally:
            self.closed = True


def _site_filesystem(**kwargs: list[str]) -> MemoryFileSystem:
    return MemoryFileSystem({"/srv/www/index.php": "<?php"}, **kwargs)


def _generate_json(
    filesystem: MemoryFileSystem, http: HttpGetter
) -> GenerateJsonOperation:
    return GenerateJsonOperation(filesystem, http, SITE_INFO, lambda: SCRIPT)


def test_random_script_name() -> None:
    names = {random_script_name() for _ in range(10)}
    assert len(names) == 10
    for name in names:
        assert fullmatch(r"wp-zip-[A-Za-z]{10}\.php", name)


async def test_download_files() -> None:
    filesystem = MemoryFileSystem(
        {
            "/srv/www/index.php": "<?php",
            "/srv/www/wp-content/themes/style.css": "body {}",
        }
    )
    progress = Mock()
    collector = _Collector()

    emitter = SftpFileEmitter(filesystem)
    operation = DownloadFilesOperation(emitter, "/srv/www/", progress)
    assert operation.name == "download files"
    await operation.send_files(collector)

    assert collector.files == {
        "files/index.php": b"<?php",
        "files/wp-content/themes/style.css": b"body {}",
    }
    progress.start.assert_called_once_with("Downloading files", None)
    advanced = sum(it.args[0] for it in progress.advance.call_args_list)
    assert advanced == len("<?php") + len("body {}")
    progress.finish.assert_called_once_with()


async def test_download_files_failure() -> None:
    progress = Mock()
    emitter = SftpFileEmitter(MemoryFileSystem())
    operation = DownloadFilesOperation(emitter, "/srv/www/", progress)

    with raises(FileNotFoundError):
        await operation.send_files(_Collector())

    progress.finish.assert_called_once_with()


async def test_export_database() -> None:
    exporter = _Exporter(b"CREATE TABLE wp_posts;")
    collector = _Collector()

    operation = ExportDatabaseOperation(exporter)
    assert operation.name == "export database"
    await operation.send_files(collector)

    assert collector.files == {"database.sql": b"CREATE TABLE wp_posts;"}
    assert exporter.closed


async def test_generate_json() -> None:
    filesystem = _site_filesystem()
    http = MockHttpGetter({SCRIPT_URL: METADATA})
    collector = _Collector()

    operation = _generate_json(filesystem, http)
    assert operation.name == "generate json"
    await operation.send_files(collector)

    assert collector.files == {"wpmigrate-export.json": METADATA}
    assert http.requests == [SCRIPT_URL]
    assert filesystem.operations == [("upload", SCRIPT_PATH), ("delete", SCRIPT_PATH)]
    assert SCRIPT_PATH not in filesystem.files


async def test_generate_json_script() -> None:
    filesystem = _site_filesystem()
    uploaded: list[str] = []

    class _CapturingGetter(HttpGetter):
        @asynccontextmanager
        async def get(self, url: str) -> AsyncIterator[InputStream]:
            uploaded.append(filesystem.files[SCRIPT_PATH].decode("utf-8"))
            yield MemoryInputStream(METADATA)

    await _generate_json(filesystem, _CapturingGetter()).send_files(_Collector())

    connect = "mysqli_connect('db.example.com', 'user', 'pass', 'db', 3307);"
    assert connect in uploaded[0]
    assert "'name' => 'example.com'" in uploaded[0]
    assert "'path' => '/srv/www/'" in uploaded[0]


async def test_generate_json_insecure_fallback() -> None:
    filesystem = _site_filesystem()
    http = MockHttpGetter({INSECURE_SCRIPT_URL: METADATA})
    collector = _Collector()

    await _generate_json(filesystem, http).send_files(collector)

    assert http.requests == [SCRIPT_URL, INSECURE_SCRIPT_URL]
    assert collector.files == {"wpmigrate-export.json": METADATA}


async def test_generate_json_request_failure() -> None:
    filesystem = _site_filesystem()
    error = HttpGetError(SCRIPT_URL, "500 Internal Server Error")
    http = MockHttpGetter({SCRIPT_URL: error})
    send = Mock()

    with raises(InvalidResponseError, match="invalid response from server"):
        await _generate_json(filesystem, http).send_files(send)

    send.assert_not_called()
    assert filesystem.operations.count(("delete", SCRIPT_PATH)) == 1
    assert SCRIPT_PATH not in filesystem.files


async def test_generate_json_unexpected_response() -> None:
    responses = [b"<html>Not found</html>", b'{"domain": "example.com"}', b"[1, 2]"]
    for response in responses:
        filesystem = _site_filesystem()
        http = MockHttpGetter({SCRIPT_URL: response})
        send = Mock()

        with raises(UnexpectedResponseError, match="unexpected response from server"):
            await _generate_json(filesystem, http).send_files(send)

        send.assert_not_called()
        assert SCRIPT_PATH not in filesystem.files


async def test_generate_json_upload_failure() -> None:
    filesystem = _site_filesystem(fail_upload=[SCRIPT_PATH])
    http = MockHttpGetter({SCRIPT_URL: METADATA})

    with raises(UploadError, match="could not upload file"):
        await _generate_json(filesystem, http).send_files(Mock())

    assert http.requests == []


async def test_generate_json_cleanup_failure() -> None:
    filesystem = _site_filesystem(fail_delete=[SCRIPT_PATH])
    http = MockHttpGetter({SCRIPT_URL: METADATA})
    send = Mock()

    with raises(CleanupError) as error:
        await _generate_json(filesystem, http).send_files(send)

    assert error.value.paths == [SCRIPT_PATH]
    send.assert_not_called()
    assert filesystem.operations == [("upload", SCRIPT_PATH), ("delete", SCRIPT_PATH)]
