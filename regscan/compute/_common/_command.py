"""
Command execution for registry tooling and the container engine.
"""

from __future__ import annotations

__all__ = ["CommandExecutor", "CommandResult"]

import logging
import os
import shlex
import subprocess

from regscan.core import DataModel

logger = logging.getLogger(__name__)

COMMAND_NOT_FOUND = 127
COMMAND_TIMED_OUT = -1


class CommandResult(DataModel):
    """Outcome of a command.

    Attributes:
        exit_code: Process exit code.
        output: Standard output lines, or the error text when
            the command could not be run.
    """

    exit_code: int
    output: list[str] = []

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0


class CommandExecutor:
    timeout: float | None

    _shell: bool

    def __init__(self, timeout: float | None = None):
        """Initialize.

        Args:
            timeout:
                Seconds to wait for each command. None waits forever.
        """
        self.timeout = timeout
        self._shell = os.name == "nt"

    def execute(self, command: str) -> CommandResult:
        args: str | list[str] = (
            command if self._shell else shlex.split(command)
        )
        try:
            completed = subprocess.run(
                args,
                shell=self._shell,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            logger.warning("Command timed out after %ss", e.timeout)
            return CommandResult(
                exit_code=COMMAND_TIMED_OUT,
                output=[f"timed out after {e.timeout}s"],
            )
        except OSError as e:
            logger.debug("Command could not be started: %s", e)
            return CommandResult(exit_code=COMMAND_NOT_FOUND, output=[str(e)])

        if completed.returncode != 0 and completed.stderr:
            logger.debug("Command stderr: %s", completed.stderr.strip())
        return CommandResult(
            exit_code=completed.returncode,
            output=completed.stdout.splitlines(),
        )
