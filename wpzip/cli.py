"""wp-zip command line interface."""
from asyncio import run
from logging import DEBUG, WARNING, basicConfig, getLogger
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
    TransferSpeedColumn,
)

from wpzip.errors import WpZipError
from wpzip.packager import ExportSettings, package_site
from wpzip.progress import RichProgress
from wpzip.prompt import ClickPrompter, Prompter

_LOGGER = getLogger(__name__)

PASSWORD_QUESTION = "Enter SSH password:"

console = Console(stderr=True)


def setup_logging(verbose: bool) -> None:
    basicConfig(
        level=DEBUG if verbose else WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, console=console, show_path=False)],
    )


def _progress() -> Progress:
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        DownloadColumn(),
        TransferSpeedColumn(),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    )


def _ask_password(prompter: Prompter) -> str:
    password = ""
    while not password:
        password = prompter.prompt_password(PASSWORD_QUESTION)
    return password


@click.command(
    context_settings={"help_option_names": ["--help"]},
    epilog="Generate a complete archive of a WordPress site's files and database, "
    "which can be used to migrate the site to another host or to create a local "
    "development environment.",
)
@click.option("-h", "--host", envvar="WPZIP_HOST", required=True, help="SSH host.")
@click.option(
    "-u", "--username", envvar="WPZIP_USERNAME", required=True, help="SSH username."
)
@click.option(
    "-p",
    "--password",
    envvar="WPZIP_PASSWORD",
    help="SSH password, prompted if not given.",
)
@click.option(
    "-P",
    "--port",
    envvar="WPZIP_PORT",
    type=click.IntRange(1, 65535),
    default=22,
    show_default=True,
)
@click.option(
    "-d",
    "--site-url",
    envvar="WPZIP_SITE_URL",
    help="Url of the live site, detected if not given.",
)
@click.option(
    "-w",
    "--public-path",
    envvar="WPZIP_PUBLIC_PATH",
    help="Path to the public directory of the live site, detected if not given.",
)
@click.option(
    "--connect-timeout",
    envvar="WPZIP_CONNECT_TIMEOUT",
    type=click.FloatRange(min=0, min_open=True),
    default=30,
    show_default=True,
    help="SSH connection timeout, in seconds.",
)
@click.option(
    "--http-timeout",
    envvar="WPZIP_HTTP_TIMEOUT",
    type=click.FloatRange(min=0, min_open=True),
    default=300,
    show_default=True,
    help="Timeout of requests to the site, in seconds.",
)
@click.option(
    "--verify-tls/--no-verify-tls", default=True, help="Verify the site certificate."
)
@click.option(
    "--keep-partial", is_flag=True, help="Keep the partial archive if the export fails."
)
@click.option(
    "-v", "--verbose", is_flag=True, help="Log remote commands and their output."
)
@click.version_option(package_name="wp-zip")
@click.argument(
    "output", type=click.Path(dir_okay=False, writable=True, path_type=Path)
)
def main(
    host: str,
    username: str,
    password: str | None,
    port: int,
    site_url: str | None,
    public_path: str | None,
    connect_timeout: float,
    http_timeout: float,
    verify_tls: bool,
    keep_partial: bool,
    verbose: bool,
    output: Path,
) -> None:
    """Export an existing WordPress site to a zip file."""
    setup_logging(verbose)
    prompter = ClickPrompter()

    settings = ExportSettings(
        host=host,
        username=username,
        password=password or _ask_password(prompter),
        port=port,
        site_url=site_url or None,
        public_path=public_path or None,
        connect_timeout=connect_timeout,
        http_timeout=http_timeout,
        verify_tls=verify_tls,
        keep_partial=keep_partial,
    )

    try:
        run(
            package_site(
                settings,
                output,
                prompter,
                progress=RichProgress(_progress()),
                logger=getLogger("wpzip.remote"),
            )
        )
    except WpZipError as ex:
        raise click.ClickException(str(ex)) from ex
    except Exception as ex:
        _LOGGER.debug("Export failed", exc_info=True)
        raise click.ClickException(f"unexpected error: {ex}") from ex

    console.print(f"Site exported to {output}")
