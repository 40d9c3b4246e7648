import pytest
from typing import Dict, List, Optional
from unittest.mock import MagicMock

from bootfix import core
from bootfix.executors.blockdev import BlockDeviceQuery
from bootfix.executors.identifier import PartitionIdentifierReader
from bootfix.models import BlockDevice
from bootfix.utils.exceptions import QueryError
from bootfix.utils.logger import RichAppLogger


# --- Fakes for the external-query boundary ---

class FakeBlockDeviceQuery(BlockDeviceQuery):
    """In-memory mount table and topology."""

    def __init__(self, mounts: Dict[str, str], rows: Optional[List[BlockDevice]] = None):
        self.mounts = mounts
        self.rows = rows or []
        self.topology_calls = 0

    def mount_source(self, mount_point: str) -> str:
        if mount_point not in self.mounts:
            raise QueryError(f"Nothing is mounted at '{mount_point}'.")
        return self.mounts[mount_point]

    def topology(self) -> List[BlockDevice]:
        self.topology_calls += 1
        return list(self.rows)


class FakeIdentifierReader(PartitionIdentifierReader):
    """Returns identifiers from a dict; unknown devices yield empty output."""

    def __init__(self, identifiers: Dict[str, str]):
        self.identifiers = identifiers
        self.queried: List[str] = []

    def _query(self, device_path: str) -> str:
        self.queried.append(device_path)
        return self.identifiers.get(device_path, "")


def mapper_row(name: str, dm_index: int, parent: Optional[str]) -> BlockDevice:
    return BlockDevice(name=name, kernel_name=f"dm-{dm_index}", parent_kernel_name=parent)


def partition_row(kernel_name: str, parent: Optional[str]) -> BlockDevice:
    return BlockDevice(name=kernel_name, kernel_name=kernel_name, parent_kernel_name=parent)


# --- Fixtures ---

@pytest.fixture
def mock_rich_logger():
    """Provides a fully-mocked RichAppLogger instance for dependency injection."""
    mock_logger = MagicMock(spec=RichAppLogger)

    mock_context_manager = MagicMock()
    mock_context_manager.__enter__.return_value = None
    # __exit__ must not suppress exceptions
    mock_context_manager.__exit__.return_value = None
    mock_logger.execution_step.return_value = mock_context_manager

    return mock_logger


@pytest.fixture(autouse=True)
def reset_app_logger():
    """Keeps the process-wide logger slot from leaking between tests."""
    core.app_logger = None
    yield
    core.app_logger = None
