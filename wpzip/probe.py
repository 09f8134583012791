"""Remote capability detection.

Strategies are chosen by checking whether a command runs successfully on the
remote host, rather than by configuration : tar decides how files are
downloaded, mysqldump how the database is exported.
"""
from logging import getLogger

from wpzip.shell import ProcessLaunchError, Shell

_LOGGER = getLogger(__name__)


class CapabilityProbe:
    """Tells whether commands can run on a shell.

    A probe runs each distinct command once : the result is cached for the
    lifetime of the probe, which is a single export.
    """

    def __init__(self, shell: Shell) -> None:
        self._shell = shell
        self._results: dict[str, bool] = {}

    async def can_run(self, command: str, display: str | None = None) -> bool:
        """Run a command, and tell if it exited successfully.

        Args:
            command: Command to run on the shell.
            display: Text used in place of the command in logs, for commands
                     containing secrets.

        Returns:
            False if the process couldn't be started or returned a non-zero
            exit code, True otherwise.
        """
        if command in self._results:
            return self._results[command]

        try:
            shell_command = self._shell(command, raise_on_error=False, display=display)
            return_code = await (shell_command >> None)
        except ProcessLaunchError as ex:
            _LOGGER.debug("Cannot start %s : %s", display or command, ex)
            return_code = -1

        result = return_code == 0
        _LOGGER.debug(
            "Probed %s : %s",
            display or command,
            "available" if result else "unavailable",
        )
        self._results[command] = result
        return result
