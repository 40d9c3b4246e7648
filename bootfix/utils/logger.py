import logging
import sys
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Optional, Union

from rich.console import Console
from rich.logging import RichHandler
from rich.text import Text
from rich.theme import Theme

from bootfix.utils.exceptions import BootfixError

# --- Custom levels ---
# SECTION marks a pipeline phase, EXECUTE an external query. Both sit between
# INFO (20) and WARNING (30) and must exist before AppLogger is installed.
SECTION_LEVEL_NUM = 25
EXECUTE_LEVEL_NUM = 26
logging.addLevelName(SECTION_LEVEL_NUM, 'SECTION')
logging.addLevelName(EXECUTE_LEVEL_NUM, 'EXECUTE')

LOGGER_THEME = Theme({
    "section": "bold yellow",
    "step.ok": "green",
    "step.fail": "bold red",
    "elapsed": "dim",
})

FILE_LOG_FORMAT = '%(asctime)s - %(levelname_fixed)s - %(module_fixed)s:%(lineno_fixed)s - %(message)s'


class AppLogger(logging.Logger):
    """logging.Logger with section() and execute() shortcuts."""

    def section(self, msg, *args, **kwargs):
        if self.isEnabledFor(SECTION_LEVEL_NUM):
            self._log(SECTION_LEVEL_NUM, msg, args, **kwargs)

    def execute(self, msg, *args, **kwargs):
        if self.isEnabledFor(EXECUTE_LEVEL_NUM):
            self._log(EXECUTE_LEVEL_NUM, msg, args, **kwargs)


logging.setLoggerClass(AppLogger)


class FileFormatter(logging.Formatter):
    """Pads level, module and line number so the log file reads as columns."""

    def __init__(self):
        super().__init__(FILE_LOG_FORMAT)

    def format(self, record):
        record.levelname_fixed = f"{record.levelname:<9}"
        record.module_fixed = f"{record.module:<12}"
        record.lineno_fixed = f"{record.lineno:<4}"
        return super().format(record)


class ExecuteFilter(logging.Filter):
    """Keeps EXECUTE records off the console; execution_step prints its own lines."""

    def filter(self, record):
        return record.levelno != EXECUTE_LEVEL_NUM


class RichAppLogger:
    """
    Pairs an AppLogger (file + console records) with the rich Console used for
    phase headers, query spinners and tracebacks.

    Every pipeline phase opens with section(), which numbers the phases of a
    run. Every external query runs inside execution_step(), which records the
    query's duration and outcome in the log file.
    """

    def __init__(self, console: Console, logger: AppLogger):
        self.console = console
        self.logger: AppLogger = logger
        self.sections = 0

    def section(self, title: str):
        """Prints a numbered phase header and writes a SECTION record."""
        self.sections += 1
        header = f"[{self.sections}] {title}"
        self.console.print(Text(header, style="section"))
        self.logger.section(header)

    @contextmanager
    def execution_step(self, message: str):
        """
        Shows a spinner while the block runs, then a permanent result line.

        BootfixError failures are expected outcomes (a device without parent,
        a missing PARTUUID) and are reported as [CRITICAL] with their reason
        only. Anything else is [FAILED] and gets a full rich traceback.
        """
        started = time.monotonic()
        self.logger.execute(f"[RUNNING] {message}")

        with self.console.status(f"[bold green]...[/] {message}", spinner="dots") as status:
            try:
                yield status
            except Exception as e:
                elapsed = time.monotonic() - started
                if isinstance(e, BootfixError):
                    self.console.print(f"[step.fail]✘ [CRITICAL][/step.fail] {message}: {e}")
                    self.logger.execute(f"[CRITICAL] {message} ({elapsed:.2f}s): {e}")
                else:
                    self.console.print(f"[step.fail]✘ [FAILED][/step.fail] {message}")
                    self.logger.execute(f"[FAILED] {message} ({elapsed:.2f}s)")
                    self.logger.debug(f"Unexpected error in step '{message}'", exc_info=True)
                    self.console.print_exception(show_locals=True)
                raise

        elapsed = time.monotonic() - started
        self.console.print(f"[step.ok]✔[/step.ok] {message} [elapsed]({elapsed:.2f}s)[/elapsed]")
        self.logger.execute(f"[COMPLETED] {message} ({elapsed:.2f}s)")

    def info(self, message, *args, **kwargs):
        self.logger.info(message, *args, **kwargs)

    def warning(self, message, *args, **kwargs):
        self.logger.warning(message, *args, **kwargs)

    def error(self, message, *args, **kwargs):
        self.logger.error(message, *args, **kwargs)

    def debug(self, message, *args, **kwargs):
        self.logger.debug(message, *args, **kwargs)

    def exception(self, message, *args, **kwargs):
        """ERROR record with traceback in the file, rich traceback on the console."""
        self.logger.error(message, *args, exc_info=True, **kwargs)
        self.console.print_exception(show_locals=False)


def initialize_app_logger(
    app_name: str,
    log_directory: Optional[Union[str, Path]] = "logs",
    log_file_name: str = "bootfix.log",
    file_log_level: int = logging.DEBUG,
    console_log_level: int = logging.INFO,
) -> RichAppLogger:
    """
    Builds the RichAppLogger for one run.

    Console records go to stderr so report output on stdout stays clean.
    ``log_directory=None`` disables the file handler, for rescue shells where
    the working directory is read-only.
    """
    logger: AppLogger = logging.getLogger(app_name)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    if log_directory is not None:
        log_path = Path(log_directory)
        log_path.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path / log_file_name, encoding='utf-8')
        file_handler.setLevel(file_log_level)
        file_handler.setFormatter(FileFormatter())
        logger.addHandler(file_handler)

    console = Console(file=sys.stderr, soft_wrap=True, theme=LOGGER_THEME)

    stream_handler = RichHandler(
        console=console,
        show_time=False,
        show_level=True,
        show_path=False,
        markup=False,
        level=console_log_level,
    )
    stream_handler.addFilter(ExecuteFilter())
    logger.addHandler(stream_handler)

    return RichAppLogger(console, logger)
