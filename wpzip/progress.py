"""Transfer progress reporting."""
from abc import ABC, abstractmethod

from rich.progress import Progress, TaskID


class TransferProgress(ABC):
    """Receives the progress of a transfer."""

    @abstractmethod
    def start(self, description: str, total: int | None) -> None:
        """Start a transfer of total bytes, or of an unknown size if None."""

    @abstractmethod
    def advance(self, size: int) -> None:
        ...

    @abstractmethod
    def finish(self) -> None:
        ...


class NullProgress(TransferProgress):
    def start(self, description: str, total: int | None) -> None:
        ...

    def advance(self, size: int) -> None:
        ...

    def finish(self) -> None:
        ...


class RichProgress(TransferProgress):
    """Draws transfers with a rich progress display.

    The display is only live during a transfer, so it doesn't get in the way
    of questions asked to the operator. Transfers of unknown size are drawn as
    a pulsing bar.
    """

    def __init__(self, progress: Progress) -> None:
        self._progress = progress
        self._task: TaskID | None = None

    def start(self, description: str, total: int | None) -> None:
        self._progress.start()
        self._task = self._progress.add_task(description, total=total)

    def advance(self, size: int) -> None:
        if self._task is not None:
            self._progress.advance(self._task, size)

    def finish(self) -> None:
        if self._task is not None:
            self._progress.remove_task(self._task)
            self._task = None
        self._progress.stop()
