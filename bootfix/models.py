# bootfix/models.py

import re
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, computed_field

# Kernel names of device-mapper nodes (dm-0, dm-1, ...)
_MAPPER_KERNEL_NAME = re.compile(r"^dm-\d+$")

# Characters a PARTUUID may contain; the systemd-boot rewrite matches the same class
PARTUUID_CHARSET = r"[A-Za-z0-9-]+"
_PARTUUID = re.compile(PARTUUID_CHARSET)


class BlockDevice(BaseModel):
    """
    One row of the kernel block-device topology.

    ``name`` is the child column as lsblk prints it (the mapper name for
    device-mapper nodes), ``kernel_name`` the sysfs name.
    """
    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    kernel_name: str = Field(min_length=1)
    parent_kernel_name: Optional[str] = None

    @computed_field
    @property
    def path(self) -> str:
        if self.is_mapper:
            return f"/dev/mapper/{self.name}"
        return f"/dev/{self.kernel_name}"

    @property
    def is_mapper(self) -> bool:
        return is_mapper_kernel_name(self.kernel_name)


def is_mapper_kernel_name(kernel_name: str) -> bool:
    return bool(_MAPPER_KERNEL_NAME.match(kernel_name))


class ResolvedRoot(BaseModel):
    """The device mounted at the root and the physical partition behind it."""
    model_config = ConfigDict(frozen=True)

    mounted_device_path: str
    physical_device_path: str
    was_indirected: bool


class BootloaderKind(str, Enum):
    LIMINE = "limine"
    SYSTEMD_BOOT = "systemd-boot"
    UNKNOWN = "unknown"


class BootloaderProfile(BaseModel):
    """Detected bootloader and the configuration files that must carry the PARTUUID."""
    model_config = ConfigDict(frozen=True)

    kind: BootloaderKind
    config_targets: Tuple[Path, ...] = ()


class PatchMode(str, Enum):
    TEMPLATE = "template"    # copy a template and replace a literal token
    IN_PLACE = "in-place"    # rewrite a regex match inside an existing file


class PatchOperation(BaseModel):
    """A single substitution of the resolved PARTUUID into a bootloader file."""
    model_config = ConfigDict(frozen=True)

    source: Path
    destination: Path
    placeholder_pattern: str = Field(min_length=1)
    replacement_value: str = Field(min_length=1)
    mode: PatchMode


def is_valid_partuuid(value: str) -> bool:
    return bool(_PARTUUID.fullmatch(value))
