from typing import AsyncIterator

from pytest import mark, raises

from wpzip.credentials import DatabaseCredentials
from wpzip.emitter import SftpFileEmitter, TarFileEmitter
from wpzip.site import PublicPath
from wpzip.testing import (
    MemoryFileSystem,
    MockProcess,
    MockShell,
    check_process,
    make_tar,
)
from wpzip.wpconfig import (
    MissingCredentialsError,
    MissingTablePrefixError,
    WpConfigReader,
    WpConfigReadError,
    parse_wp_config,
)

WP_CONFIG = """<?php
/**
 * The base configuration for WordPress
 */

// ** Database settings - You can get this info from your web host ** //
/** The name of the database for WordPress */
define( 'DB_NAME', 'db' );

/** Database username */
define( 'DB_USER', 'user' );

/** Database password */
define( 'DB_PASSWORD', 'pass' );

/** Database hostname */
define( 'DB_HOST', 'localhost' );

$table_prefix = 'wp_';

require_once ABSPATH . 'wp-settings.php';
"""


@mark.parametrize(
    "config",
    [
        "define('DB_USER','user'); define('DB_PASSWORD','pass'); "
        "define('DB_NAME','db'); define('DB_HOST','localhost');",
        'define("DB_USER", "user");\ndefine("DB_PASSWORD", "pass");\n'
        'define("DB_NAME", "db");\ndefine("DB_HOST", "localhost");',
        "define(  'DB_USER'  ,  \"user\"  )  ;\n\tdefine(\n'DB_PASSWORD',\n'pass'\n);"
        "define('DB_NAME' , 'db');\n"
        "define( \"DB_HOST\", 'localhost' );",
    ],
)
def test_parse_credentials(config: str) -> None:
    result = parse_wp_config(config + "\n$table_prefix = 'wp_';")
    assert result.credentials == DatabaseCredentials("user", "pass", "db", "localhost")
    assert result.table_prefix == "wp_"


def test_parse_wordpress_sample() -> None:
    result = parse_wp_config(WP_CONFIG)
    assert result.credentials == DatabaseCredentials("user", "pass", "db", "localhost")
    assert result.table_prefix == "wp_"


def test_parse_escaped_values() -> None:
    result = parse_wp_config(
        "define('DB_NAME', 'db'); define('DB_USER', 'user');"
        "define('DB_PASSWORD', 'it\\'s \"a\" \\\\secret');"
        '$table_prefix  =  "xx_";'
    )
    assert result.credentials.password == "it's \"a\" \\secret"
    assert result.credentials.host == "localhost"
    assert result.table_prefix == "xx_"


@mark.parametrize("missing", ["DB_NAME", "DB_USER", "DB_PASSWORD"])
def test_missing_credentials(missing: str) -> None:
    config = WP_CONFIG.replace(f"'{missing}'", "'SOMETHING_ELSE'")
    with raises(MissingCredentialsError, match=missing):
        parse_wp_config(config)


def test_missing_table_prefix() -> None:
    with raises(MissingTablePrefixError):
        parse_wp_config(WP_CONFIG.replace("$table_prefix", "$prefix"))


async def test_read_through_tar() -> None:
    async def _processes() -> AsyncIterator[MockProcess]:
        yield check_process(
            "tar -C /srv/www -cf - wp-config.php",
            stdout=make_tar({"wp-config.php": WP_CONFIG}),
        )

    async with MockShell(_processes()) as sh:
        result = await WpConfigReader(TarFileEmitter(sh)).read(PublicPath("/srv/www"))

    assert result.credentials == DatabaseCredentials("user", "pass", "db", "localhost")


async def test_read_errors() -> None:
    filesystem = MemoryFileSystem(
        {"/srv/www/wp-config.php": "", "/srv/empty/index.php": "<?php"}
    )
    reader = WpConfigReader(SftpFileEmitter(filesystem))

    with raises(WpConfigReadError, match="empty contents"):
        await reader.read(PublicPath("/srv/www/"))

    with raises(WpConfigReadError, match="could not read /srv/empty/wp-config.php"):
        await reader.read(PublicPath("/srv/empty"))
