# bootfix/patcher.py
import os
import re
import stat
import tempfile
from pathlib import Path
from typing import List, Union

from bootfix.models import (
    PARTUUID_CHARSET, BootloaderKind, BootloaderProfile, PatchMode, PatchOperation, is_valid_partuuid,
)
from bootfix.utils.exceptions import MissingTemplate, PatchError
from bootfix.utils.logger import RichAppLogger

DEFAULT_PLACEHOLDER = "{{ROOT_PARTUUID}}"
ROOT_PARTUUID_PATTERN = r"root=PARTUUID=" + PARTUUID_CHARSET
DEFAULT_FILE_MODE = 0o644


def atomic_write(destination: Path, content: str) -> None:
    """
    Writes ``content`` to a temporary file next to ``destination``, syncs it and
    renames it over the destination. A crash leaves either the old or the new
    file, never a truncated one.
    """
    try:
        mode = stat.S_IMODE(destination.stat().st_mode)
    except FileNotFoundError:
        mode = DEFAULT_FILE_MODE

    tmp_fd, tmp_path = tempfile.mkstemp(prefix=f".{destination.name}.", suffix=".tmp", dir=str(destination.parent))
    try:
        with os.fdopen(tmp_fd, "w", encoding="utf-8", newline="") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, destination)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except FileNotFoundError:
            pass
        raise


class ConfigPatcher:
    """
    Writes the resolved PARTUUID into bootloader configuration.

    Limine configs are rendered from a template by replacing a literal token;
    systemd-boot entries are rewritten in place by replacing the value of the
    existing ``root=PARTUUID=`` assignment. Both go through atomic_write and
    skip the write entirely when the content would not change.
    """

    def __init__(self, logger: RichAppLogger, limine_template: Union[str, Path], placeholder: str = DEFAULT_PLACEHOLDER):
        self.logger = logger
        self.limine_template = Path(limine_template)
        self.placeholder = placeholder

    def plan(self, profile: BootloaderProfile, identifier: str) -> List[PatchOperation]:
        """
        Builds one PatchOperation per configuration target of ``profile``.

        Raises:
            MissingTemplate: Limine was detected but ``limine_template`` does not exist.
        """
        if profile.kind is BootloaderKind.LIMINE:
            if not self.limine_template.is_file():
                raise MissingTemplate(str(self.limine_template))
            return [
                PatchOperation(
                    source=self.limine_template,
                    destination=target,
                    placeholder_pattern=self.placeholder,
                    replacement_value=identifier,
                    mode=PatchMode.TEMPLATE,
                )
                for target in profile.config_targets
            ]
        if profile.kind is BootloaderKind.SYSTEMD_BOOT:
            return [
                PatchOperation(
                    source=target,
                    destination=target,
                    placeholder_pattern=ROOT_PARTUUID_PATTERN,
                    replacement_value=identifier,
                    mode=PatchMode.IN_PLACE,
                )
                for target in profile.config_targets
            ]
        return []

    def render(self, operation: PatchOperation) -> str:
        """Returns the patched content of ``operation`` without writing anything."""
        source_text = self._read(operation.source)

        if operation.mode is PatchMode.TEMPLATE:
            if operation.placeholder_pattern not in source_text:
                self.logger.warning(f"Template {operation.source} has no '{operation.placeholder_pattern}' token.")
            return source_text.replace(operation.placeholder_pattern, operation.replacement_value)

        if not is_valid_partuuid(operation.replacement_value):
            raise PatchError(str(operation.destination), f"Refusing to write PARTUUID '{operation.replacement_value}'")
        replacement = f"root=PARTUUID={operation.replacement_value}"
        patched, count = re.subn(operation.placeholder_pattern, lambda _: replacement, source_text)
        if count == 0:
            self.logger.warning(f"{operation.source} has no root=PARTUUID= assignment; leaving it untouched.")
        return patched

    def apply(self, operation: PatchOperation, dry_run: bool = False) -> bool:
        """
        Applies ``operation``. Returns True when the destination changed (or
        would change, in dry-run mode).
        """
        patched = self.render(operation)

        current = None
        if operation.destination.exists():
            current = self._read(operation.destination)

        if current == patched:
            self.logger.info(f"{operation.destination} already carries PARTUUID {operation.replacement_value}.")
            return False

        if dry_run:
            self.logger.info(f"DRY RUN: would write {len(patched)} bytes to {operation.destination}")
            self.logger.debug(f"DRY RUN CONTENT:\n{patched}")
            return True

        try:
            operation.destination.parent.mkdir(parents=True, exist_ok=True)
            atomic_write(operation.destination, patched)
        except OSError as e:
            raise PatchError(str(operation.destination), f"Failed to write patched configuration: {e}")

        self.logger.info(f"Patched {operation.destination}")
        return True

    def _read(self, path: Path) -> str:
        try:
            with open(path, "r", encoding="utf-8", newline="") as f:
                return f.read()
        except FileNotFoundError:
            raise PatchError(str(path), "Configuration source not found")
        except (OSError, UnicodeDecodeError) as e:
            raise PatchError(str(path), f"Cannot read configuration: {e}")
