from .stream import (
    InputStream,
    LineStream,
    LogStream,
    MemoryInputStream,
    MemoryStream,
    NullStream,
    Stream,
    copy_stream,
    multiplex,
    pipe,
    read_all,
    stream_to,
)

from .shell import (
    LogLevel,
    Process,
    ProcessFailedError,
    ProcessLaunchError,
    Shell,
    Stderr,
    Stdout,
)

from .credentials import DatabaseCredentials
from .errors import WpZipError
from .site import PublicPath, SiteInfo, SiteUrl

__all__ = [
    "DatabaseCredentials",
    "InputStream",
    "LineStream",
    "LogLevel",
    "LogStream",
    "MemoryInputStream",
    "MemoryStream",
    "NullStream",
    "Process",
    "ProcessFailedError",
    "ProcessLaunchError",
    "PublicPath",
    "Shell",
    "SiteInfo",
    "SiteUrl",
    "Stderr",
    "Stdout",
    "Stream",
    "WpZipError",
    "copy_stream",
    "multiplex",
    "pipe",
    "read_all",
    "stream_to",
]
