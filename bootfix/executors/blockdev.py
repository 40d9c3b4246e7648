# bootfix/executors/blockdev.py
import re
from abc import ABC, abstractmethod
from typing import List, Optional

from bootfix.models import BlockDevice
from bootfix.utils.executor import Executor
from bootfix.utils.exceptions import QueryError

# lsblk --raw escapes unsafe characters as \xNN
_RAW_ESCAPE = re.compile(r"\\x([0-9a-fA-F]{2})")

# findmnt reports btrfs subvolumes as /dev/mapper/root[/@]
_SUBVOLUME_SUFFIX = re.compile(r"\[.*\]$")


def _unescape_raw(value: str) -> str:
    return _RAW_ESCAPE.sub(lambda m: chr(int(m.group(1), 16)), value)


def parse_lsblk_raw(output: str) -> List[BlockDevice]:
    """
    Parses ``lsblk --raw --noheadings --output NAME,KNAME,PKNAME``.

    A device with several parents (e.g. RAID members) appears once per parent;
    rows keep lsblk's order.
    """
    devices: List[BlockDevice] = []
    for line in output.splitlines():
        if not line.strip():
            continue
        fields = line.split(" ")
        fields += [""] * (3 - len(fields))
        name, kernel_name, parent = (_unescape_raw(f) for f in fields[:3])
        devices.append(BlockDevice(
            name=name,
            kernel_name=kernel_name or name,
            parent_kernel_name=parent or None,
        ))
    return devices


def _parent_in(rows: List[BlockDevice], name: str) -> Optional[str]:
    for device in rows:
        if name in (device.name, device.kernel_name):
            return device.parent_kernel_name
    return None


class BlockDeviceQuery(ABC):
    """Read-only view of the mount table and the kernel block-device topology."""

    @abstractmethod
    def mount_source(self, mount_point: str) -> str:
        """Returns the device path backing ``mount_point``; raises QueryError if it is not mounted."""

    @abstractmethod
    def topology(self) -> List[BlockDevice]:
        """Returns every row of the kernel block-device topology table."""

    def parent_of(self, name: str) -> Optional[str]:
        """
        Returns the parent kernel name of the first row whose child column
        matches ``name``, or None when the device has no parent row.
        """
        return _parent_in(self.topology(), name)

    def parent_device(self, name: str) -> Optional[BlockDevice]:
        """
        Like parent_of, but returns the parent's own topology row so callers
        can tell whether it is a mapper too. A parent without a row of its own
        is returned as a plain kernel device.
        """
        rows = self.topology()
        parent = _parent_in(rows, name)
        if not parent:
            return None
        for device in rows:
            if device.kernel_name == parent:
                return device
        return BlockDevice(name=parent, kernel_name=parent)


class SystemBlockDeviceQuery(BlockDeviceQuery):
    """
    BlockDeviceQuery backed by util-linux (findmnt, lsblk).
    All calls go through the injected Executor and inherit its timeout.
    """

    def __init__(self, executor: Executor):
        self.executor = executor

    def mount_source(self, mount_point: str) -> str:
        exit_code, stdout, _ = self.executor.run(
            description=f"Looking up the device mounted at {mount_point}",
            command=["findmnt", "--noheadings", "--output", "SOURCE", "--mountpoint", mount_point],
            privileged=True,
            check=False,
        )
        # findmnt exits 1 when nothing is mounted there. Over-mounts are listed
        # bottom to top; the last line is the filesystem that is visible.
        source = stdout.strip().splitlines()[-1].strip() if stdout.strip() else ""
        if exit_code != 0 or not source:
            raise QueryError(f"Nothing is mounted at '{mount_point}'.")

        return _SUBVOLUME_SUFFIX.sub("", source)

    def topology(self) -> List[BlockDevice]:
        _, stdout, _ = self.executor.run(
            description="Reading block-device topology",
            command=["lsblk", "--raw", "--noheadings", "--output", "NAME,KNAME,PKNAME"],
            privileged=True,
        )
        devices = parse_lsblk_raw(stdout)
        self.executor.logger.debug(f"Topology contains {len(devices)} rows.")
        return devices
