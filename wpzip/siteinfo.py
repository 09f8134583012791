"""Site information resolution.

Database credentials always come from the site's wp-config.php. The public
path and the site url can be given by the operator, otherwise they are
detected on the remote host : the public path by searching wp-config.php in
the remote home directory, the site url by querying the WordPress options
table. When detection fails, the operator is asked.
"""
from logging import getLogger
from re import fullmatch

from wpzip.credentials import mysql_cli_credentials
from wpzip.errors import SiteInfoError
from wpzip.prompt import Prompter
from wpzip.shell import ProcessFailedError, ProcessLaunchError, Shell
from wpzip.site import PublicPath, SiteInfo, SiteUrl
from wpzip.wpconfig import WP_CONFIG, WpConfig, WpConfigError, WpConfigReader

_LOGGER = getLogger(__name__)

FIND_WP_CONFIG_COMMAND = f"find -L . -type f -name '{WP_CONFIG}'"
SELECT_SITE_URL_STATEMENT = (
    "SELECT option_value FROM {table} WHERE option_name = 'siteurl';"
)

SITE_URL_QUESTION = "What is the site url?"
PUBLIC_PATH_QUESTION = "What is the public path?"


async def determine_site_info(
    site_url: str | None,
    public_path: str | None,
    reader: WpConfigReader,
    shell: Shell,
    prompter: Prompter,
) -> SiteInfo:
    """Gather everything needed to export a site.

    Args:
        site_url: Site url given by the operator, or None to detect it.
        public_path: Public path given by the operator, or None to detect it.
        reader: Reader for the site's wp-config.php.
        shell: Shell of the remote host, used to detect missing values.
        prompter: Used to ask the operator for values that can't be detected.

    Raises:
        SiteInfoError: If wp-config.php can't be parsed, or a value can't be
                       determined.
        InvalidSiteUrlError: If the site url isn't valid.
    """
    if public_path:
        path = PublicPath(public_path)
    else:
        path = await _determine_public_path(shell, prompter)

    try:
        config = await reader.read(path)
    except WpConfigError as ex:
        raise SiteInfoError(f"cannot parse {WP_CONFIG}: {ex}") from ex

    if site_url:
        url = SiteUrl.parse(site_url)
    else:
        url = await _determine_site_url(config, shell, prompter)

    return SiteInfo(url, path, config.credentials)


async def _determine_public_path(shell: Shell, prompter: Prompter) -> PublicPath:
    matches = await _run(shell, FIND_WP_CONFIG_COMMAND)
    if matches is not None:
        lines = [it.strip() for it in matches.splitlines() if it.strip()]
        # More than one wp-config.php is ambiguous, don't pick one.
        if len(lines) == 1:
            directory = lines[0].removesuffix(WP_CONFIG).rstrip("/") or "/"
            _LOGGER.info("Found public path %s", directory)
            return PublicPath(directory)
        _LOGGER.info(
            "Found %d %s files, can't determine public path", len(lines), WP_CONFIG
        )

    answer = prompter.prompt(PUBLIC_PATH_QUESTION)
    if not answer:
        raise SiteInfoError("public path cannot be empty")
    return PublicPath(answer)


async def _determine_site_url(
    config: WpConfig, shell: Shell, prompter: Prompter
) -> SiteUrl:
    # WordPress refuses any other character in the prefix.
    if fullmatch(r"[A-Za-z0-9_]*", config.table_prefix) is not None:
        table = f"{config.table_prefix}options"
        statement = SELECT_SITE_URL_STATEMENT.format(table=table)
        arguments = mysql_cli_credentials(config.credentials)
        masked = mysql_cli_credentials(config.credentials, mask_password=True)
        output = await _run(
            shell,
            f'mysql {arguments} --skip-column-names --silent -e "{statement}"',
            display=f'mysql {masked} --skip-column-names --silent -e "{statement}"',
        )
        if output is not None and output.strip():
            try:
                url = SiteUrl.parse(output)
                _LOGGER.info("Found site url %s", url)
                return url
            except ValueError as ex:
                _LOGGER.info("Site url stored in the database is invalid : %s", ex)

    return SiteUrl.parse(prompter.prompt(SITE_URL_QUESTION))


async def _run(shell: Shell, command: str, display: str | None = None) -> str | None:
    try:
        return await shell(command, display=display).read_stdout("utf-8")
    except (ProcessFailedError, ProcessLaunchError) as ex:
        _LOGGER.debug("%s", ex)
        return None
