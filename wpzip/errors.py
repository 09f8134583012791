"""Exceptions raised by wp-zip.

Every stage of an export wraps the error of the stage below it, so the message
of the exception reaching the command line names the stage that failed.
"""


class WpZipError(Exception):
    """Base class of all wp-zip errors."""


class RemoteConnectionError(WpZipError):
    """The remote session can't be established."""


class SiteInfoError(WpZipError):
    """The site url, public path or configuration can't be determined."""


class InvalidSiteUrlError(WpZipError, ValueError):
    """A site url isn't an absolute url with a scheme and a host."""


class DatabaseExportError(WpZipError):
    """The database can't be exported with the selected strategy."""


class UtilityNotFoundError(DatabaseExportError):
    """A remote utility needed by the export isn't available."""


class InvalidCredentialsError(DatabaseExportError):
    """The database server rejected the credentials."""


class OperationError(WpZipError):
    """An operation failed while producing its files."""


class UploadError(OperationError):
    """A scratch file can't be uploaded to the remote host."""


class InvalidResponseError(OperationError):
    """No url of an uploaded script answered."""


class UnexpectedResponseError(OperationError):
    """An uploaded script answered with unexpected content."""


class CleanupError(WpZipError):
    """A scratch file uploaded to the remote host can't be deleted.

    Raised even when the operation that uploaded it succeeded : the file may
    contain database credentials and must not be left behind silently.
    """

    def __init__(self, paths: list[str], errors: list[Exception]) -> None:
        details = "; ".join(f"{path}: {error}" for path, error in zip(paths, errors))
        super().__init__(
            f"cannot delete scratch files from the remote host ({details})"
        )
        self.paths = paths
        self.errors = errors


class NoOperationsError(WpZipError):
    """The runner was given no operation to run."""

    def __init__(self) -> None:
        super().__init__("no operations to run")


class RunError(WpZipError):
    """An operation failed while the archive was being written."""
