# bootfix/bootloader.py
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union

from bootfix.models import BootloaderKind, BootloaderProfile
from bootfix.utils.exceptions import NoMatchingBootEntry, UnknownBootloader
from bootfix.utils.logger import RichAppLogger

LIMINE_DIRECTORY = "limine"
LIMINE_TOP_LEVEL_CONFIG = "limine.conf"
LIMINE_CONFIG = "limine/limine.conf"
SYSTEMD_BOOT_ENTRIES = "loader/entries"


class BootloaderDetector:
    """
    Classifies the installed bootloader by looking for installation markers
    under the boot directory. Never modifies anything.

    Checks run in a fixed order and the first match wins: Limine, then
    systemd-boot, otherwise UNKNOWN.
    """

    def __init__(self, logger: RichAppLogger, boot_directory: Union[str, Path] = "/boot", entry_match: str = "arch"):
        self.logger = logger
        self.boot_directory = Path(boot_directory)
        self.entry_match = entry_match.lower()

    def _checks(self) -> List[Tuple[BootloaderKind, Callable[[], bool], Callable[[], BootloaderProfile]]]:
        return [
            (BootloaderKind.LIMINE, self._has_limine, self._limine_profile),
            (BootloaderKind.SYSTEMD_BOOT, self._has_systemd_boot, self._systemd_boot_profile),
        ]

    def detect(self) -> BootloaderProfile:
        """
        Returns the profile of the first bootloader found.

        Raises:
            NoMatchingBootEntry: systemd-boot found, but no entry matches ``entry_match``.
            UnknownBootloader: no supported bootloader found.
        """
        for kind, is_present, build_profile in self._checks():
            if is_present():
                self.logger.info(f"Detected {kind.value} bootloader.")
                return build_profile()

        raise UnknownBootloader(str(self.boot_directory))

    # --- Limine ---

    def _has_limine(self) -> bool:
        return (self.boot_directory / LIMINE_DIRECTORY).is_dir() or \
            (self.boot_directory / LIMINE_TOP_LEVEL_CONFIG).is_file()

    def _limine_profile(self) -> BootloaderProfile:
        return BootloaderProfile(
            kind=BootloaderKind.LIMINE,
            config_targets=(self.boot_directory / LIMINE_CONFIG,),
        )

    # --- systemd-boot ---

    def _has_systemd_boot(self) -> bool:
        return (self.boot_directory / SYSTEMD_BOOT_ENTRIES).is_dir()

    def _systemd_boot_profile(self) -> BootloaderProfile:
        entries_directory = self.boot_directory / SYSTEMD_BOOT_ENTRIES
        entry = self.select_entry(entries_directory)
        if entry is None:
            raise NoMatchingBootEntry(str(entries_directory), self.entry_match)

        self.logger.info(f"Selected boot entry {entry.name}")
        return BootloaderProfile(kind=BootloaderKind.SYSTEMD_BOOT, config_targets=(entry,))

    def select_entry(self, entries_directory: Path) -> Optional[Path]:
        """First ``*.conf`` entry (by name) whose file name contains ``entry_match``."""
        entries = sorted(p for p in entries_directory.glob("*.conf") if p.is_file())
        matches = [p for p in entries if self.entry_match in p.name.lower()]

        if len(matches) > 1:
            self.logger.warning(
                f"{len(matches)} entries match '{self.entry_match}': "
                f"{', '.join(p.name for p in matches)}. Using {matches[0].name}."
            )
        return matches[0] if matches else None
