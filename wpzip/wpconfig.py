"""wp-config.php parsing.

Database credentials and the table name prefix are read from the constants and
variables declared in the site's wp-config.php :

```php
define( 'DB_NAME', 'wordpress' );
define( 'DB_USER', 'wordpress' );
define( 'DB_PASSWORD', 'secret' );
define( 'DB_HOST', 'localhost' );
$table_prefix = 'wp_';
```
"""
from dataclasses import dataclass
from logging import getLogger
from re import compile as compile_regex, escape
from tarfile import TarError

from wpzip.credentials import DatabaseCredentials
from wpzip.emitter import FileEmitter
from wpzip.errors import SiteInfoError
from wpzip.shell import ProcessFailedError
from wpzip.site import PublicPath
from wpzip.stream import read_all

_LOGGER = getLogger(__name__)

WP_CONFIG = "wp-config.php"

# A PHP string literal in single or double quotes, with backslash escapes.
_STRING = r"""(?P<quote>['"])(?P<value>(?:\\.|(?!(?P=quote)).)*)(?P=quote)"""
_PREFIX = compile_regex(r"\$table_prefix\s*=\s*" + _STRING + r"\s*;")


class WpConfigError(SiteInfoError):
    """wp-config.php can't be parsed."""


class WpConfigReadError(WpConfigError):
    """wp-config.php can't be read, or is empty."""


class MissingCredentialsError(WpConfigError):
    """A database setting isn't defined in wp-config.php."""


class MissingTablePrefixError(WpConfigError):
    """The table prefix isn't defined in wp-config.php."""


@dataclass(frozen=True)
class WpConfig:
    credentials: DatabaseCredentials
    table_prefix: str


def parse_wp_config(contents: str) -> WpConfig:
    """Extract database credentials and the table prefix from wp-config.php.

    DB_HOST defaults to localhost when it isn't defined.

    Raises:
        MissingCredentialsError: If DB_NAME, DB_USER or DB_PASSWORD is missing.
        MissingTablePrefixError: If $table_prefix is missing.
    """
    fields: dict[str, str] = {}
    for constant in ("DB_NAME", "DB_USER", "DB_PASSWORD", "DB_HOST"):
        value = _parse_constant(contents, constant)
        if value is not None:
            fields[constant] = value
        elif constant != "DB_HOST":
            raise MissingCredentialsError(f"could not find {constant} in {WP_CONFIG}")

    match = _PREFIX.search(contents)
    if match is None:
        raise MissingTablePrefixError(f"could not find $table_prefix in {WP_CONFIG}")

    return WpConfig(
        DatabaseCredentials(
            user=fields["DB_USER"],
            password=fields["DB_PASSWORD"],
            name=fields["DB_NAME"],
            host=fields.get("DB_HOST", "localhost"),
        ),
        _unescape(match.group("value")),
    )


def _parse_constant(contents: str, constant: str) -> str | None:
    pattern = compile_regex(
        r"define\(\s*(['\"])"
        + escape(constant)
        + r"\1\s*,\s*"
        + _STRING
        + r"\s*\)\s*;"
    )
    match = pattern.search(contents)
    if match is None:
        return None
    return _unescape(match.group("value"))


def _unescape(value: str) -> str:
    result = []
    iterator = iter(value)
    for char in iterator:
        if char == "\\":
            escaped = next(iterator, "")
            if escaped in ("'", '"', "\\"):
                result.append(escaped)
            else:
                result.append(char + escaped)
        else:
            result.append(char)
    return "".join(result)


class WpConfigReader:
    """Reads and parses the remote wp-config.php file."""

    def __init__(self, emitter: FileEmitter) -> None:
        self._emitter = emitter

    async def read(self, public_path: PublicPath) -> WpConfig:
        path = public_path.join(WP_CONFIG)
        _LOGGER.debug("Reading %s", path)
        try:
            async with self._emitter.open_single(path) as file:
                contents = await read_all(file.content, "utf-8")
        except (OSError, TarError, ProcessFailedError) as ex:
            raise WpConfigReadError(f"could not read {path}: {ex}") from ex

        if not contents.strip():
            raise WpConfigReadError(f"could not read {path}: empty contents")

        return parse_wp_config(contents)
