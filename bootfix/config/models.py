# bootfix/config/models.py

import tomlkit
import typer
from pydantic import BaseModel, Field, field_validator
from typing import Any, Dict, Optional
from pathlib import Path


class BootfixConfig(BaseModel):
    """Settings for one boot-repair run. Every field can come from config.toml or the CLI."""

    # Root filesystem and boot partition
    root_mount_point: str = Field("/", min_length=1)
    boot_directory: Path = Field(Path("/boot"))
    require_luks: bool = Field(False, description="Refuse to patch when / is not on a mapper device.")

    # Bootloader templates
    limine_template: Path = Field(Path("system/limine.conf"))
    placeholder: str = Field("{{ROOT_PARTUUID}}", min_length=1)
    entry_match: str = Field("arch", min_length=1, description="Substring identifying the systemd-boot entry to patch.")

    # External queries
    query_timeout: float = Field(30.0, gt=0)
    use_sudo: bool = False

    # Behaviour
    dry_run: bool = False

    # Logging
    log_directory: Optional[str] = Field("logs")
    log_file_name: str = Field("bootfix.log", min_length=1)

    @field_validator("log_directory", mode="before")
    @classmethod
    def _empty_log_directory_disables_file(cls, value):
        # log_directory = "" in TOML or --no-log-file on the CLI
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @classmethod
    def load_config_from_file(cls, path: Path, overrides: Optional[Dict[str, Any]] = None) -> 'BootfixConfig':
        """Loads a TOML file, applies non-None overrides and validates the result."""
        try:
            content = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ValueError(f"Error reading configuration file: {e}")

        try:
            data = tomlkit.parse(content).unwrap()
        except Exception as e:
            raise ValueError(f"Invalid TOML format in file: {e}")

        # Accept both a flat file and one with a [bootfix] table
        data = data.get("bootfix", data)
        return cls.with_overrides(data, overrides)

    @classmethod
    def with_overrides(cls, data: Optional[Dict[str, Any]] = None, overrides: Optional[Dict[str, Any]] = None) -> 'BootfixConfig':
        merged = dict(data or {})
        merged.update({k: v for k, v in (overrides or {}).items() if v is not None})
        return cls(**merged)

    def display_summary(self) -> str:
        """Generates a short summary of the run settings."""
        s = typer.style("\nBOOT REPAIR CONFIGURATION", fg=typer.colors.BLUE, bold=True) + "\n"
        s += "----------------------------------------\n"
        s += f"  Root mount point:   {self.root_mount_point}\n"
        s += f"  Boot directory:     {self.boot_directory}\n"
        s += f"  Limine template:    {self.limine_template} (token {self.placeholder})\n"
        s += f"  Entry match:        {self.entry_match}\n"
        s += f"  Query timeout:      {self.query_timeout}s{' via sudo' if self.use_sudo else ''}\n"
        s += f"  Require LUKS:       {'yes' if self.require_luks else 'no'}\n"
        if self.dry_run:
            s += "  Mode:               " + typer.style("DRY RUN", fg=typer.colors.YELLOW) + "\n"
        return s
