# bootfix/executors/identifier.py
from abc import ABC, abstractmethod

from bootfix.utils.executor import Executor
from bootfix.models import is_valid_partuuid
from bootfix.utils.exceptions import IdentifierNotFound, InvalidIdentifier, ShellCommandError

# blkid exit status when the requested tag does not exist on the device
BLKID_NOTHING_FOUND = 2


class PartitionIdentifierReader(ABC):
    """Reads the stable partition identifier (PARTUUID) of a physical device."""

    def read(self, device_path: str) -> str:
        """
        Returns the PARTUUID of ``device_path``.

        Raises:
            IdentifierNotFound: the lookup produced nothing. There is no fallback.
            InvalidIdentifier: the value has characters outside [A-Za-z0-9-]; the
                systemd-boot rewrite could not match it again on the next run.
        """
        identifier = (self._query(device_path) or "").strip()
        if not identifier:
            raise IdentifierNotFound(device_path)
        if not is_valid_partuuid(identifier):
            raise InvalidIdentifier(device_path, identifier)
        return identifier

    @abstractmethod
    def _query(self, device_path: str) -> str:
        """Raw identifier lookup; an empty string means 'not found'."""


class BlkidPartitionIdentifierReader(PartitionIdentifierReader):
    """PartitionIdentifierReader backed by ``blkid``."""

    def __init__(self, executor: Executor):
        self.executor = executor

    def _query(self, device_path: str) -> str:
        command = ["blkid", "--match-tag", "PARTUUID", "--output", "value", device_path]
        exit_code, stdout, stderr = self.executor.run(
            description=f"Reading PARTUUID of {device_path}",
            command=command,
            privileged=True,
            check=False,
        )
        if exit_code == BLKID_NOTHING_FOUND:
            return ""
        if exit_code != 0:
            raise ShellCommandError(
                command=" ".join(command),
                exit_code=exit_code,
                stdout=stdout,
                stderr=stderr,
                message="blkid failed",
            )
        return stdout.splitlines()[0] if stdout.strip() else ""
