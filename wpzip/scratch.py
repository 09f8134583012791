"""Scratch files uploaded to the remote host.

Scripts run through the site's web server are uploaded to the public
directory, where anyone can request them : they must be removed whatever
happens once they have been used. ScratchFiles is an async context manager
removing everything uploaded through it when it exits :

```python
async with ScratchFiles(filesystem) as scratch:
    await scratch.mkdir("/srv/www/tmp")
    await scratch.upload(MemoryInputStream(script), "/srv/www/tmp/script.php")
    ...
```
"""
from logging import getLogger
from types import TracebackType
from typing import Self

from wpzip.errors import CleanupError, UploadError
from wpzip.filesystem import FileSystem
from wpzip.stream import InputStream

_LOGGER = getLogger(__name__)


class ScratchFiles:
    """Tracks remote files and directories to delete.

    Files are deleted before directories, in the reverse order of their
    creation. A file that is already gone isn't an error, any other failure
    to delete is raised as a CleanupError once every deletion was attempted.
    """

    def __init__(self, filesystem: FileSystem) -> None:
        self._filesystem = filesystem
        self._files: list[str] = []
        self._directories: list[str] = []

    async def mkdir(self, path: str) -> None:
        try:
            await self._filesystem.mkdir(path)
        except OSError as ex:
            raise UploadError(f"could not create directory {path}: {ex}") from ex
        _LOGGER.debug("Created scratch directory %s", path)
        self._directories.append(path)

    async def upload(self, content: InputStream, path: str) -> None:
        # Registered first, a failed upload can leave a partial file.
        self.track(path)
        try:
            await self._filesystem.upload(content, path)
        except OSError as ex:
            raise UploadError(f"could not upload file {path}: {ex}") from ex
        _LOGGER.debug("Uploaded scratch file %s", path)

    def track(self, path: str) -> None:
        """Delete a file created remotely by other means."""
        if path not in self._files:
            self._files.append(path)

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        failed: list[str] = []
        errors: list[Exception] = []
        for path in [*reversed(self._files), *reversed(self._directories)]:
            try:
                await self._filesystem.delete(path)
                _LOGGER.debug("Deleted scratch file %s", path)
            except FileNotFoundError:
                _LOGGER.debug("Scratch file %s was already deleted", path)
            except OSError as ex:
                _LOGGER.error("Cannot delete %s from the remote host : %s", path, ex)
                failed.append(path)
                errors.append(ex)

        self._files.clear()
        self._directories.clear()

        if errors:
            raise CleanupError(failed, errors)
