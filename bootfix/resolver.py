# bootfix/resolver.py
import os

from bootfix.executors.blockdev import BlockDeviceQuery
from bootfix.models import ResolvedRoot
from bootfix.utils.exceptions import UnresolvedPhysicalDevice
from bootfix.utils.logger import RichAppLogger

MAPPER_PREFIXES = ("/dev/mapper/", "/dev/dm-")


def is_mapper_path(device_path: str) -> bool:
    return device_path.startswith(MAPPER_PREFIXES)


class PhysicalDeviceResolver:
    """
    Turns a mount point into the physical partition that backs it, walking
    through at most one level of device-mapper indirection (LUKS).

    Deeper stacks such as LVM on LUKS are rejected with UnresolvedPhysicalDevice
    instead of being partially resolved.
    """

    def __init__(self, query: BlockDeviceQuery, logger: RichAppLogger):
        self.query = query
        self.logger = logger

    def resolve(self, mount_point: str = "/", require_mapper: bool = False) -> ResolvedRoot:
        mounted = self.query.mount_source(mount_point)
        self.logger.info(f"{mount_point} is mounted from {mounted}")

        if not is_mapper_path(mounted):
            if require_mapper:
                raise UnresolvedPhysicalDevice(mounted, "root is not on a device-mapper (LUKS) volume")
            self.logger.info(f"{mounted} is already a physical device.")
            return ResolvedRoot(
                mounted_device_path=mounted,
                physical_device_path=mounted,
                was_indirected=False,
            )

        instance = os.path.basename(mounted.rstrip("/"))
        parent = self.query.parent_device(instance)

        if parent is None:
            raise UnresolvedPhysicalDevice(mounted, f"no parent device for mapper '{instance}'")
        if parent.is_mapper:
            raise UnresolvedPhysicalDevice(
                mounted, f"parent '{parent.kernel_name}' is itself a mapped device; stacked mappings are not supported"
            )

        physical = parent.path
        self.logger.info(f"Mapper '{instance}' sits on {physical}")
        return ResolvedRoot(
            mounted_device_path=mounted,
            physical_device_path=physical,
            was_indirected=True,
        )
