from tarfile import PAX_FORMAT, ReadError

from pytest import raises

from wpzip.stream import MemoryInputStream, read_all
from wpzip.tar import read_tar
from wpzip.testing import make_tar


async def _members(archive: bytes) -> list[tuple[str, bool, bytes]]:
    members = []
    async for info, content in read_tar(MemoryInputStream(archive)):
        members.append((info.name, info.isreg(), await read_all(content)))
    return members


async def test_read_tar() -> None:
    archive = make_tar(
        {
            "./": None,
            "./index.php": "<?php // Wubba lubba",
            "./wp-content/": None,
            "./wp-content/empty.txt": b"",
            "./wp-content/uploads.bin": bytes(range(256)) * 10,
        }
    )

    assert await _members(archive) == [
        (".", False, b""),
        ("./index.php", True, b"<?php // Wubba lubba"),
        ("./wp-content", False, b""),
        ("./wp-content/empty.txt", True, b""),
        ("./wp-content/uploads.bin", True, bytes(range(256)) * 10),
    ]


async def test_unread_content_is_skipped() -> None:
    archive = make_tar({"first.txt": "Wubba" * 200, "second.txt": "lubba"})

    names = []
    async for info, content in read_tar(MemoryInputStream(archive)):
        names.append(info.name)
        if info.name == "first.txt":
            assert await content.read(5) == b"Wubba"
        else:
            assert await read_all(content) == b"lubba"

    assert names == ["first.txt", "second.txt"]


async def test_long_names() -> None:
    long_name = "./" + "/".join(["wubba-lubba-dub-dub"] * 10) + "/index.php"
    archive = make_tar({long_name: "Dub dub"})
    assert await _members(archive) == [(long_name, True, b"Dub dub")]


async def test_pax_headers() -> None:
    archive = make_tar(
        {"./pickle-rick-é.txt": "I'm pickle Rick", "./morty.txt": "Aw jeez"},
        PAX_FORMAT,
    )
    assert await _members(archive) == [
        ("./pickle-rick-é.txt", True, b"I'm pickle Rick"),
        ("./morty.txt", True, b"Aw jeez"),
    ]


async def test_empty_archive() -> None:
    assert await _members(b"") == []
    assert await _members(make_tar({})) == []


async def test_truncated_archive() -> None:
    archive = make_tar({"index.php": "Wubba lubba" * 100})

    with raises(ReadError):
        await _members(archive[:700])

    with raises(ReadError):
        await _members(archive[:100])


async def test_end_of_archive_blocks() -> None:
    archive = make_tar({"./index.php": "<?php // Wubba lubba"})
    # Two zero blocks end the member list, tarfile pads the rest of the record.
    assert archive[1024:].strip(b"\0") == b""
    assert len(archive) > 3 * 512

    assert await _members(archive) == [("./index.php", True, b"<?php // Wubba lubba")]
    trailing = archive + b"Trailing garbage"
    assert await _members(trailing) == [("./index.php", True, b"<?php // Wubba lubba")]
