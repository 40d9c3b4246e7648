# bootfix/cli.py
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import typer
from pydantic import ValidationError

from bootfix import core
from bootfix.config.models import BootfixConfig
from bootfix.pipeline import PipelineResult, PipelineState, build_pipeline
from bootfix.utils.logger import initialize_app_logger

app = typer.Typer(
    name="bootfix",
    help="Inject the PARTUUID of an encrypted root into the installed bootloader's config.",
    no_args_is_help=True,
)

CONFIG_OPTION = typer.Option(None, "--config", "-c", exists=True, dir_okay=False, help="TOML configuration file.")
NO_LOG_FILE_OPTION = typer.Option(False, "--no-log-file", help="Log to the console only (read-only working directory).")


def _load_config(config_path: Optional[Path], overrides: Dict[str, Any]) -> BootfixConfig:
    try:
        if config_path is not None:
            return BootfixConfig.load_config_from_file(config_path, overrides)
        return BootfixConfig.with_overrides(overrides=overrides)
    except (ValueError, ValidationError) as e:
        typer.secho(f"Invalid configuration: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=2)


def _init_logger(config: BootfixConfig, verbose: bool):
    if core.app_logger is None:
        settings = dict(
            app_name="bootfix",
            log_file_name=config.log_file_name,
            console_log_level=logging.DEBUG if verbose else logging.INFO,
        )
        try:
            core.app_logger = initialize_app_logger(log_directory=config.log_directory, **settings)
        except OSError as e:
            typer.secho(f"Cannot write log file ({e}); logging to the console only.", fg=typer.colors.YELLOW, err=True)
            core.app_logger = initialize_app_logger(log_directory=None, **settings)
    return core.app_logger


def _log_directory(no_log_file: bool) -> Optional[str]:
    return "" if no_log_file else None


def _report(result: PipelineResult) -> None:
    if result.root is not None:
        typer.echo(f"Mounted device:   {result.root.mounted_device_path}")
        typer.echo(f"Physical device:  {result.root.physical_device_path}"
                   f"{' (via device mapper)' if result.root.was_indirected else ''}")
    if result.identifier:
        typer.echo(f"Root PARTUUID:    {result.identifier}")
    if result.profile is not None:
        targets = ", ".join(str(t) for t in result.profile.config_targets) or "-"
        typer.echo(f"Bootloader:       {result.profile.kind.value} ({targets})")

    if result.state is PipelineState.ABORTED:
        typer.secho(f"Aborted at stage '{result.failed_stage.value}': {result.message}", fg=typer.colors.RED, err=True)
    elif result.skipped:
        typer.secho(f"Manual action required: {result.message}", fg=typer.colors.YELLOW, err=True)


def _run(config: BootfixConfig, logger, **kwargs) -> PipelineResult:
    try:
        return build_pipeline(config, logger).run(
            mount_point=config.root_mount_point,
            require_mapper=config.require_luks,
            **kwargs,
        )
    except Exception as e:
        logger.exception(f"An unexpected error occurred: {e}")
        raise typer.Exit(code=1)


@app.command()
def patch(
    config_path: Optional[Path] = CONFIG_OPTION,
    dry_run: Optional[bool] = typer.Option(None, "--dry-run/--no-dry-run", help="Compute the patch without writing."),
    require_luks: Optional[bool] = typer.Option(None, "--require-luks/--allow-plain", help="Abort when / is not on a mapper device."),
    boot_directory: Optional[Path] = typer.Option(None, "--boot-dir", help="Mounted boot partition."),
    limine_template: Optional[Path] = typer.Option(None, "--template", help="Limine template containing the placeholder."),
    entry_match: Optional[str] = typer.Option(None, "--entry-match", help="Substring of the systemd-boot entry to patch."),
    query_timeout: Optional[float] = typer.Option(None, "--timeout", help="Timeout in seconds for each device query."),
    use_sudo: Optional[bool] = typer.Option(None, "--sudo/--no-sudo", help="Run device queries through sudo."),
    no_log_file: bool = NO_LOG_FILE_OPTION,
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Resolve the root PARTUUID and patch the detected bootloader."""
    config = _load_config(config_path, {
        "dry_run": dry_run,
        "require_luks": require_luks,
        "boot_directory": boot_directory,
        "limine_template": limine_template,
        "entry_match": entry_match,
        "query_timeout": query_timeout,
        "use_sudo": use_sudo,
        "log_directory": _log_directory(no_log_file),
    })
    logger = _init_logger(config, verbose)
    logger.info(config.display_summary())

    result = _run(config, logger, dry_run=config.dry_run)
    _report(result)

    if result.state is PipelineState.PATCHED:
        if result.changed:
            typer.secho("Bootloader configuration updated." if not config.dry_run else "Dry run: changes not written.",
                        fg=typer.colors.GREEN)
        else:
            typer.secho("Bootloader configuration already up to date.", fg=typer.colors.GREEN)

    raise typer.Exit(code=result.exit_code)


@app.command()
def check(
    config_path: Optional[Path] = CONFIG_OPTION,
    require_luks: Optional[bool] = typer.Option(None, "--require-luks/--allow-plain", help="Fail when / is not on a mapper device."),
    boot_directory: Optional[Path] = typer.Option(None, "--boot-dir", help="Mounted boot partition."),
    use_sudo: Optional[bool] = typer.Option(None, "--sudo/--no-sudo", help="Run device queries through sudo."),
    no_log_file: bool = NO_LOG_FILE_OPTION,
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Report the resolved root device, PARTUUID and bootloader without writing anything."""
    config = _load_config(config_path, {
        "require_luks": require_luks,
        "boot_directory": boot_directory,
        "use_sudo": use_sudo,
        "log_directory": _log_directory(no_log_file),
    })
    logger = _init_logger(config, verbose)

    result = _run(config, logger, apply=False)
    _report(result)

    if result.exit_code == 0:
        typer.secho("System check complete.", fg=typer.colors.GREEN)
    raise typer.Exit(code=result.exit_code)
