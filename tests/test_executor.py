import pytest
import subprocess
from unittest.mock import patch

# ======= Execute with: pytest tests/test_executor.py ========

from bootfix import core
from bootfix.utils.executor import (
    Executor, ShellCommandError, QueryTimeout,
    CommandNotFoundError, PermissionDeniedError, InvalidCommandError
)
from bootfix.utils.exceptions import QueryError

# --- Test Helper Classes/Mocks ---

class MockCompletedProcess:
    """A mock object to simulate the return value of subprocess.run."""
    def __init__(self, returncode=0, stdout="", stderr=""):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.args = []

# --- Fixtures ---

@pytest.fixture
def executor(mock_rich_logger):
    """Provides an Executor instance with the mocked logger injected."""
    return Executor(logger_instance=mock_rich_logger, default_timeout=5.0)

# ----------------------------------------------------------------------
# --- Tests for Initialization and Setup ---
# ----------------------------------------------------------------------

def test_executor_initialization(mock_rich_logger):
    """Tests if the Executor initializes correctly and stores the logger."""
    exec_instance = Executor(logger_instance=mock_rich_logger, default_timeout=10.0, use_sudo=True)
    assert exec_instance._default_timeout == 10.0
    assert exec_instance._use_sudo is True
    assert exec_instance.logger == mock_rich_logger
    mock_rich_logger.debug.assert_called()

def test_executor_initialization_invalid_timeout(mock_rich_logger):
    """Tests if initialization raises ValueError for invalid timeout."""
    with pytest.raises(ValueError, match="positive number"):
        Executor(logger_instance=mock_rich_logger, default_timeout=-1)

def test_executor_uses_process_logger_when_none_injected(mock_rich_logger):
    """Falls back to core.app_logger when no logger is passed."""
    core.app_logger = mock_rich_logger
    assert Executor().logger is mock_rich_logger

# ----------------------------------------------------------------------
# --- Tests for _prepare_command ---
# ----------------------------------------------------------------------

def test_prepare_command_privileged_with_sudo(mock_rich_logger):
    """Privileged commands get the sudo prefix when the executor elevates."""
    executor = Executor(logger_instance=mock_rich_logger, use_sudo=True)
    prepared = executor._prepare_command("blkid /dev/sda2", privileged=True)
    assert prepared == ["sudo", "--non-interactive", "blkid", "/dev/sda2"]

def test_prepare_command_privileged_without_sudo(executor):
    """Without use_sudo the command is left as-is."""
    assert executor._prepare_command(["lsblk", "--raw"], privileged=True) == ["lsblk", "--raw"]

def test_prepare_command_invalid_input(executor):
    """Tests that InvalidCommandError is raised for invalid input."""
    with pytest.raises(InvalidCommandError):
        executor._prepare_command("", privileged=False)
    with pytest.raises(InvalidCommandError):
        executor._prepare_command(None, privileged=False)
    with pytest.raises(InvalidCommandError):
        executor._prepare_command(["ls", 123], privileged=False)
    with pytest.raises(InvalidCommandError):
        executor._prepare_command("findmnt 'unterminated", privileged=False)

# ----------------------------------------------------------------------
# --- Tests for execute_command (Low-level) ---
# ----------------------------------------------------------------------

@patch('subprocess.run')
def test_execute_command_success(mock_run, executor):
    """Tests successful command execution (exit code 0)."""
    mock_run.return_value = MockCompletedProcess(returncode=0, stdout="/dev/mapper/root\n")

    exit_code, stdout, stderr = executor.execute_command(["findmnt", "-no", "SOURCE", "/"])

    mock_run.assert_called_once()
    assert mock_run.call_args[1]['timeout'] == 5.0
    assert exit_code == 0
    assert stdout == "/dev/mapper/root\n"
    assert stderr == ""

@patch('subprocess.run')
def test_execute_command_error_no_check(mock_run, executor):
    """Tests command failure when 'check' is False (no exception raised)."""
    mock_run.return_value = MockCompletedProcess(returncode=2, stderr="")

    exit_code, stdout, stderr = executor.execute_command(["blkid", "/dev/sdz1"], check=False)

    assert exit_code == 2
    executor.logger.error.assert_not_called()

@patch('subprocess.run')
def test_execute_command_error_shellcommanderror(mock_run, executor):
    """A non-zero exit with check=True raises ShellCommandError, which is a QueryError."""
    mock_run.return_value = MockCompletedProcess(returncode=5, stdout="Some output", stderr="Unknown failure")

    with pytest.raises(ShellCommandError) as excinfo:
        executor.execute_command(["lsblk", "--raw"], check=True)

    assert excinfo.value.exit_code == 5
    assert isinstance(excinfo.value, QueryError)
    executor.logger.error.assert_called_once()

@patch('subprocess.run')
def test_execute_command_command_not_found_error(mock_run, executor):
    """Tests CommandNotFoundError detection via returncode 127 and stderr string."""
    mock_run.return_value = MockCompletedProcess(returncode=127, stderr="bash: lsblk: command not found")

    with pytest.raises(CommandNotFoundError) as excinfo:
        executor.execute_command("lsblk --raw", check=True)

    assert excinfo.value.exit_code == 127
    executor.logger.error.assert_called_once()

@patch('subprocess.run')
def test_execute_command_permission_denied(mock_run, executor):
    """Exit code 126 is classified as PermissionDeniedError."""
    mock_run.return_value = MockCompletedProcess(returncode=126, stderr="")

    with pytest.raises(PermissionDeniedError):
        executor.execute_command(["blkid", "/dev/sda2"])

@patch('subprocess.run', side_effect=FileNotFoundError())
def test_execute_command_missing_binary(mock_run, executor):
    """A missing executable surfaces as CommandNotFoundError."""
    with pytest.raises(CommandNotFoundError):
        executor.execute_command(["findmnt"])

@patch('subprocess.run', side_effect=subprocess.TimeoutExpired(cmd=["test"], timeout=5.0, output=b'', stderr=b''))
def test_execute_command_timeout_error(mock_run, executor):
    """Tests QueryTimeout when subprocess.TimeoutExpired is raised."""
    with pytest.raises(QueryTimeout) as excinfo:
        executor.execute_command(["blkid", "/dev/sda2"], timeout=5.0)

    assert "timed out" in str(excinfo.value)
    assert excinfo.value.timeout == 5.0
    executor.logger.warning.assert_called_once()

# ----------------------------------------------------------------------
# --- Tests for run() (High-level) ---
# ----------------------------------------------------------------------

@patch.object(Executor, 'execute_command')
def test_run_success(mock_execute_command, executor, mock_rich_logger):
    """Tests the high-level run() method on successful command execution."""
    mock_execute_command.return_value = (0, "Success!", "")

    description = "Test success"
    exit_code, stdout, stderr = executor.run(description, "findmnt /")

    assert exit_code == 0
    assert stdout == "Success!"
    mock_rich_logger.execution_step.assert_called_once_with(description)
    executor.logger.debug.assert_called()

@patch.object(Executor, 'execute_command')
def test_run_failure(mock_execute_command, executor, mock_rich_logger):
    """Tests the high-level run() method on command execution failure."""
    mock_execute_command.side_effect = ShellCommandError(command="lsblk", exit_code=1, stderr="boom")

    with pytest.raises(ShellCommandError):
        executor.run("Test failure", "lsblk")

    mock_rich_logger.execution_step.assert_called_once_with("Test failure")

@patch.object(Executor, 'execute_command')
def test_run_privileged_with_sudo(mock_execute_command, mock_rich_logger):
    """The prepared sudo command is what reaches execute_command."""
    mock_execute_command.return_value = (0, "", "")
    executor = Executor(logger_instance=mock_rich_logger, use_sudo=True)

    executor.run("Read PARTUUID", ["blkid", "/dev/sda2"], privileged=True, check=False)

    actual_command = mock_execute_command.call_args[1]['command']
    assert actual_command == ["sudo", "--non-interactive", "blkid", "/dev/sda2"]
    assert mock_execute_command.call_args[1]['check'] is False

@patch('subprocess.run')
def test_execute_command_forces_c_locale(mock_run, executor):
    """Queries run with LC_ALL=C so their output is never translated."""
    mock_run.return_value = MockCompletedProcess(returncode=0)

    executor.execute_command(["lsblk", "--raw"])

    assert mock_run.call_args[1]['env']['LC_ALL'] == "C"
    assert mock_run.call_args[1]['capture_output'] is True
