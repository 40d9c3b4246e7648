# bootfix/utils/exceptions.py
from typing import Optional


class BootfixError(Exception):
    """Base exception for every failure raised by bootfix."""


# --- Query failures (always fatal) ---

class QueryError(BootfixError):
    """An external lookup (mount table, topology, identifier) failed."""


class ShellCommandError(QueryError):
    """Base class for errors related to shell command execution."""

    def __init__(self, command: str, exit_code: int = -1, stdout: str = "", stderr: str = "", message: str = "Command execution failed."):
        self.command = command
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        self.message = message
        super().__init__(f"{message} (Command: '{command}', Exit Code: {exit_code})")


class CommandNotFoundError(ShellCommandError):
    """Raised when the executable specified in the command cannot be found."""

    def __init__(self, command: str, stdout: str = "", stderr: str = ""):
        super().__init__(command, exit_code=127, stdout=stdout, stderr=stderr, message="Command not found.")


class QueryTimeout(ShellCommandError):
    """Raised when the command exceeds the execution timeout."""

    def __init__(self, command: str, timeout: float, stdout: str = "", stderr: str = ""):
        self.timeout = timeout
        super().__init__(command, exit_code=124, stdout=stdout, stderr=stderr, message=f"Command timed out after {timeout} seconds.")


class InvalidCommandError(ShellCommandError):
    """Raised when the command string/list is invalid, empty, or improperly formatted."""

    def __init__(self, command: str, message: str):
        super().__init__(command, exit_code=-2, message=message)


class PermissionDeniedError(ShellCommandError):
    """Raised when command execution fails due to permissions."""

    def __init__(self, command: str, stdout: str = "", stderr: str = ""):
        super().__init__(command, exit_code=126, stdout=stdout, stderr=stderr, message="Permission denied.")


# --- Resolution failures (always fatal) ---

class UnresolvedPhysicalDevice(BootfixError):
    """A mapper device has no single, physical parent in the block topology."""

    def __init__(self, device: str, reason: str):
        self.device = device
        self.reason = reason
        super().__init__(f"Cannot resolve physical device behind '{device}': {reason}")


class IdentifierNotFound(BootfixError):
    """The physical device reported no PARTUUID."""

    def __init__(self, device: str, message: Optional[str] = None):
        self.device = device
        super().__init__(message or f"No PARTUUID reported for '{device}'. Refusing to guess one.")


class InvalidIdentifier(IdentifierNotFound):
    """The reported PARTUUID contains characters a boot entry cannot carry."""

    def __init__(self, device: str, value: str):
        self.value = value
        super().__init__(device, f"PARTUUID '{value}' reported for '{device}' is not made of [A-Za-z0-9-]. Refusing to write it.")


class PatchError(BootfixError):
    """A bootloader configuration file could not be read or written."""

    def __init__(self, path: str, message: str):
        self.path = path
        super().__init__(f"{message} ({path})")


# --- Bootloader warnings (recoverable, the patch step is skipped) ---

class BootloaderWarning(BootfixError):
    """Base class for non-fatal bootloader detection outcomes."""


class UnknownBootloader(BootloaderWarning):
    """Neither Limine nor systemd-boot was found."""

    def __init__(self, boot_directory: str):
        self.boot_directory = boot_directory
        super().__init__(f"No supported bootloader found under '{boot_directory}'. Configure boot parameters manually.")


class NoMatchingBootEntry(BootloaderWarning):
    """systemd-boot is present but no entry file matches the distribution."""

    def __init__(self, entries_directory: str, match: str):
        self.entries_directory = entries_directory
        self.match = match
        super().__init__(f"No entry matching '{match}' in '{entries_directory}'. Patch the boot entry manually.")


class MissingTemplate(BootloaderWarning):
    """Limine is installed but the template carrying the placeholder does not exist."""

    def __init__(self, template: str):
        self.template = template
        super().__init__(f"{template} not found, skipping the Limine patch. Write the PARTUUID into limine.conf manually.")
