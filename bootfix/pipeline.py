# bootfix/pipeline.py
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from bootfix.bootloader import BootloaderDetector
from bootfix.config.models import BootfixConfig
from bootfix.executors.blockdev import BlockDeviceQuery, SystemBlockDeviceQuery
from bootfix.executors.identifier import BlkidPartitionIdentifierReader, PartitionIdentifierReader
from bootfix.models import BootloaderProfile, ResolvedRoot
from bootfix.patcher import ConfigPatcher
from bootfix.resolver import PhysicalDeviceResolver
from bootfix.utils.exceptions import (
    IdentifierNotFound, MissingTemplate, NoMatchingBootEntry, PatchError,
    QueryError, UnknownBootloader, UnresolvedPhysicalDevice,
)
from bootfix.utils.executor import Executor
from bootfix.utils.logger import RichAppLogger


class PipelineState(str, Enum):
    START = "start"
    ROOT_RESOLVED = "root-resolved"
    IDENTIFIER_KNOWN = "identifier-known"
    BOOTLOADER_KNOWN = "bootloader-known"
    PATCHED = "patched"
    SKIPPED_UNKNOWN_BOOTLOADER = "skipped-unknown-bootloader"
    SKIPPED_NO_ENTRY = "skipped-no-entry"
    SKIPPED_NO_TEMPLATE = "skipped-no-template"
    ABORTED = "aborted"


class Stage(str, Enum):
    RESOLVE = "resolve root device"
    IDENTIFY = "read PARTUUID"
    DETECT = "detect bootloader"
    PATCH = "patch bootloader config"


# Failures that end the run before anything is written
FATAL_ERRORS = (QueryError, UnresolvedPhysicalDevice, IdentifierNotFound, PatchError)


SKIPPED_STATES = (
    PipelineState.SKIPPED_UNKNOWN_BOOTLOADER,
    PipelineState.SKIPPED_NO_ENTRY,
    PipelineState.SKIPPED_NO_TEMPLATE,
)


class PipelineResult(BaseModel):
    state: PipelineState
    root: Optional[ResolvedRoot] = None
    identifier: Optional[str] = None
    profile: Optional[BootloaderProfile] = None
    changed: bool = False
    failed_stage: Optional[Stage] = None
    message: str = ""

    @property
    def skipped(self) -> bool:
        return self.state in SKIPPED_STATES

    @property
    def exit_code(self) -> int:
        return 1 if self.state is PipelineState.ABORTED else 0


class BootRepairPipeline:
    """
    Resolve root → read PARTUUID → detect bootloader → patch.

    Every stage consumes the previous stage's output. A fatal error moves the
    run straight to ABORTED and nothing after it executes, so no config file is
    touched once a prerequisite failed. Unknown bootloaders and unmatched
    systemd-boot entries and a missing Limine template end the run successfully with the patch skipped.
    """

    def __init__(self,
                 logger: RichAppLogger,
                 resolver: PhysicalDeviceResolver,
                 reader: PartitionIdentifierReader,
                 detector: BootloaderDetector,
                 patcher: ConfigPatcher):
        self.logger = logger
        self.resolver = resolver
        self.reader = reader
        self.detector = detector
        self.patcher = patcher

    def run(self, mount_point: str = "/", require_mapper: bool = False, dry_run: bool = False, apply: bool = True) -> PipelineResult:
        """
        Runs the pipeline. With ``apply=False`` it stops after detection and
        reports what would be patched (used by ``bootfix check``).
        """
        result = PipelineResult(state=PipelineState.START)
        stage = Stage.RESOLVE

        try:
            self.logger.section("Resolving root device")
            result.root = self.resolver.resolve(mount_point, require_mapper=require_mapper)
            result.state = PipelineState.ROOT_RESOLVED

            stage = Stage.IDENTIFY
            result.identifier = self.reader.read(result.root.physical_device_path)
            result.state = PipelineState.IDENTIFIER_KNOWN
            self.logger.info(f"Root PARTUUID: {result.identifier}")

            stage = Stage.DETECT
            self.logger.section("Detecting bootloader")
            result.profile = self.detector.detect()
            result.state = PipelineState.BOOTLOADER_KNOWN

            if not apply:
                return result

            stage = Stage.PATCH
            self.logger.section("Patching bootloader configuration")
            for operation in self.patcher.plan(result.profile, result.identifier):
                result.changed = self.patcher.apply(operation, dry_run=dry_run) or result.changed
            result.state = PipelineState.PATCHED

        except UnknownBootloader as e:
            self.logger.warning(str(e))
            result.state = PipelineState.SKIPPED_UNKNOWN_BOOTLOADER
            result.message = str(e)
        except NoMatchingBootEntry as e:
            self.logger.warning(str(e))
            result.state = PipelineState.SKIPPED_NO_ENTRY
            result.message = str(e)
        except MissingTemplate as e:
            self.logger.warning(str(e))
            result.state = PipelineState.SKIPPED_NO_TEMPLATE
            result.message = str(e)
        except FATAL_ERRORS as e:
            self.logger.error(f"Aborted while trying to {stage.value}: {e}")
            result.state = PipelineState.ABORTED
            result.failed_stage = stage
            result.message = str(e)

        return result


def build_pipeline(config: BootfixConfig, logger: RichAppLogger,
                   query: Optional[BlockDeviceQuery] = None,
                   reader: Optional[PartitionIdentifierReader] = None) -> BootRepairPipeline:
    """Wires the system implementations; ``query``/``reader`` may be substituted."""
    if query is None or reader is None:
        executor = Executor(logger_instance=logger, default_timeout=config.query_timeout, use_sudo=config.use_sudo)
        query = query or SystemBlockDeviceQuery(executor)
        reader = reader or BlkidPartitionIdentifierReader(executor)

    return BootRepairPipeline(
        logger=logger,
        resolver=PhysicalDeviceResolver(query, logger),
        reader=reader,
        detector=BootloaderDetector(logger, boot_directory=config.boot_directory, entry_match=config.entry_match),
        patcher=ConfigPatcher(logger, limine_template=config.limine_template, placeholder=config.placeholder),
    )


__all__ = ["BootRepairPipeline", "PipelineResult", "PipelineState", "Stage", "build_pipeline"]
