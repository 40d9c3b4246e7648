# bootfix/utils/executor.py

import os
import subprocess
import shlex
from typing import Dict, List, Optional, Sequence, Tuple, Union

from .. import core
from bootfix.utils.logger import initialize_app_logger, RichAppLogger
from bootfix.utils.exceptions import (
    ShellCommandError, CommandNotFoundError, QueryTimeout,
    InvalidCommandError, PermissionDeniedError,
)

__all__ = [
    "Executor",
    "ShellCommandError",
    "CommandNotFoundError",
    "QueryTimeout",
    "InvalidCommandError",
    "PermissionDeniedError",
]

SUDO_PREFIX = ["sudo", "--non-interactive"]

# util-linux translates headers and messages; parsing relies on the C locale
QUERY_ENVIRONMENT = {"LC_ALL": "C"}


def _fallback_logger() -> RichAppLogger:
    """Use the process logger when the CLI has set one, otherwise a console-only logger."""
    if core.app_logger is not None:
        return core.app_logger
    return initialize_app_logger(app_name="ExecutorFallback", log_directory=None)


def _text(stream: Union[bytes, str, None]) -> str:
    if isinstance(stream, bytes):
        return stream.decode(errors="replace")
    return stream or ""


class Executor:
    """
    Runs the block-device lookups (findmnt, lsblk, blkid) as subprocesses with a
    bounded timeout, optional sudo elevation and centralized error classification.

    Every lookup is read-only, so there is no dry-run mode here: a dry run of
    bootfix still queries the real devices and only skips the final write.
    """

    def __init__(self,
                 logger_instance: Optional[RichAppLogger] = None,
                 default_timeout: Optional[float] = 30.0,
                 use_sudo: bool = False):
        self.logger = logger_instance if logger_instance is not None else _fallback_logger()

        if default_timeout is not None and default_timeout <= 0:
            self.logger.error("Default timeout must be a positive number or None.")
            raise ValueError("Default timeout must be a positive number or None.")

        self._default_timeout = default_timeout
        self._use_sudo = use_sudo
        self.logger.debug(f"Executor ready (timeout={self._default_timeout}s, sudo={self._use_sudo})")

    def _prepare_command(self, command: Union[str, Sequence[str]], privileged: bool) -> List[str]:
        """
        Normalizes ``command`` into an argv list and prepends sudo when the
        command is privileged and the executor elevates.
        """
        if not command:
            raise InvalidCommandError(str(command), "Command cannot be empty.")

        if isinstance(command, str):
            try:
                argv = shlex.split(command)
            except ValueError as e:
                raise InvalidCommandError(command, f"Failed to parse command string: {e}")
        elif isinstance(command, (list, tuple)):
            if not all(isinstance(arg, str) for arg in command):
                raise InvalidCommandError(str(command), "All elements in command list must be strings.")
            argv = list(command)
        else:
            raise InvalidCommandError(str(command), "Command must be a string or a list of strings.")

        if privileged and self._use_sudo:
            return SUDO_PREFIX + argv
        return argv

    @staticmethod
    def _environment() -> Dict[str, str]:
        env = dict(os.environ)
        env.update(QUERY_ENVIRONMENT)
        return env

    def _classify_failure(self, command: str, exit_code: int, stdout: str, stderr: str) -> ShellCommandError:
        """Maps a non-zero exit status onto the QueryError hierarchy."""
        reason = stderr.lower()
        if exit_code == 127 or "command not found" in reason:
            return CommandNotFoundError(command=command, stdout=stdout, stderr=stderr)
        if exit_code == 126 or "permission denied" in reason:
            return PermissionDeniedError(command=command, stdout=stdout, stderr=stderr)
        return ShellCommandError(
            command=command,
            exit_code=exit_code,
            stdout=stdout,
            stderr=stderr,
            message=f"Command failed with exit code {exit_code}",
        )

    def execute_command(self,
                        command: Union[str, Sequence[str]],
                        timeout: Optional[float] = None,
                        check: bool = True,
                        ) -> Tuple[int, str, str]:
        """
        Runs ``command`` once and returns (exit_code, stdout, stderr).

        With ``check=True`` a non-zero exit raises the matching ShellCommandError;
        with ``check=False`` the caller interprets the exit code itself (blkid
        and findmnt use non-zero codes for "nothing found").
        """
        argv = self._prepare_command(command, privileged=False)
        actual_timeout = timeout if timeout is not None else self._default_timeout
        cmd_string = shlex.join(argv)

        self.logger.debug(f"Running '{cmd_string}' (timeout={actual_timeout}s, check={check})")

        try:
            process = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                timeout=actual_timeout,
                check=False,
                env=self._environment(),
            )
        except FileNotFoundError:
            self.logger.error(f"'{argv[0]}' not found. Is util-linux installed and on PATH?")
            raise CommandNotFoundError(command=cmd_string, stderr="Command not found. Check PATH.")
        except subprocess.TimeoutExpired as e:
            self.logger.warning(f"'{cmd_string}' did not answer within {actual_timeout} seconds.")
            raise QueryTimeout(command=cmd_string, timeout=actual_timeout, stdout=_text(e.stdout), stderr=_text(e.stderr))
        except PermissionError:
            self.logger.error(f"Permission denied while starting '{cmd_string}'.")
            raise PermissionDeniedError(command=cmd_string)

        stdout = process.stdout or ""
        stderr = process.stderr or ""
        exit_code = process.returncode

        if check and exit_code != 0:
            self.logger.error(f"Command: '{cmd_string}', Exit Code: {exit_code}, Stderr: {stderr.strip()}")
            raise self._classify_failure(cmd_string, exit_code, stdout, stderr)

        self.logger.debug(f"'{cmd_string}' exited with {exit_code}")
        return exit_code, stdout, stderr

    def run(self,
            description: str,
            command: Union[str, Sequence[str]],
            privileged: bool = False,
            timeout: Optional[float] = None,
            check: bool = True,
            ) -> Tuple[int, str, str]:
        """
        Runs a query inside the logger's execution_step so the console shows a
        spinner followed by the final status line.
        """
        prepared = self._prepare_command(command, privileged=privileged)

        with self.logger.execution_step(description):
            exit_code, stdout, stderr = self.execute_command(command=prepared, timeout=timeout, check=check)

            if stdout:
                self.logger.debug(f"  Stdout:\n{stdout.strip()}")
            if stderr:
                self.logger.debug(f"  Stderr:\n{stderr.strip()}")

            return exit_code, stdout, stderr
