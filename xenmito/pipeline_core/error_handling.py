"""
Error taxonomy and retry helpers for the xenmito pipeline.

This module provides:
- The exception hierarchy used by the controller, runner and stages
- A retry decorator for transient external tool failures
- File validation helpers raising configuration errors
"""

import logging
import time
from functools import wraps
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Dict, Optional, Sequence, Union

if TYPE_CHECKING:
    from .runner import StageResult

logger = logging.getLogger(__name__)


class PipelineError(Exception):
    """Base exception for all pipeline errors."""

    def __init__(self, message: str, stage: Optional[str] = None, details: Optional[Dict] = None):
        """Initialize pipeline error.

        Parameters
        ----------
        message : str
            Error message
        stage : str, optional
            Stage where error occurred
        details : dict, optional
            Additional error details
        """
        super().__init__(message)
        self.stage = stage
        self.details = details or {}


class ConfigurationError(PipelineError):
    """Raised for invalid configuration, missing references or missing inputs.

    Always fatal and always raised before any stage runs.
    """


class ToolNotFoundError(ConfigurationError):
    """Raised when a required external tool is not found."""

    def __init__(self, tool: str, executable: Optional[str] = None):
        """Initialize tool not found error."""
        executable = executable or tool
        message = f"Required tool '{tool}' ({executable}) not found in PATH"
        super().__init__(message, details={"tool": tool, "executable": executable})


class CheckpointWriteFailure(PipelineError):
    """Raised when a completion marker cannot be appended to the checkpoint log."""

    def __init__(self, path: Union[str, Path], stage: str, original_error: Exception):
        """Initialize checkpoint write failure."""
        message = f"Cannot record completion of stage '{stage}' in {path}: {original_error}"
        super().__init__(message, stage, {"path": str(path), "original_error": str(original_error)})
        self.original_error = original_error


class StageUnitFailure(PipelineError):
    """Raised when the work for one sample within a stage fails."""

    def __init__(self, stage: Optional[str], sample: Optional[str], message: str):
        """Initialize stage unit failure.

        Parameters
        ----------
        stage : str or None
            Stage identifier (filled in by the runner when unknown)
        sample : str or None
            Sample name the failing unit belongs to
        message : str
            Description of the failure
        """
        super().__init__(message, stage, {"sample": sample})
        self.sample = sample


class ExternalToolFailure(StageUnitFailure):
    """Raised when an external collaborator exits abnormally.

    ``exit_code`` is ``None`` when the process was killed after a timeout,
    and 127 when the executable could not be started.
    """

    def __init__(
        self,
        command: Sequence[str],
        exit_code: Optional[int],
        stderr: str = "",
        timed_out: bool = False,
        stage: Optional[str] = None,
        sample: Optional[str] = None,
    ):
        """Initialize external tool failure."""
        self.command = list(command)
        self.exit_code = exit_code
        self.stderr = stderr or ""
        self.timed_out = timed_out
        tool = self.command[0] if self.command else "<unknown>"
        if timed_out:
            status = "timed out"
        else:
            status = f"exited with status {exit_code}"
        message = f"{tool} {status}"
        tail = self.stderr.strip().splitlines()[-1:] if self.stderr.strip() else []
        if tail:
            message += f": {tail[0]}"
        super().__init__(stage, sample, message)
        self.details.update({"command": self.command, "exit_code": exit_code})


class StageExecutionError(PipelineError):
    """Raised by the controller when a stage halts the pipeline."""

    def __init__(self, stage_name: str, result: Optional["StageResult"] = None, reason: str = ""):
        """Initialize stage execution error."""
        if not reason and result is not None:
            reason = result.describe_failures()
        message = f"Stage '{stage_name}' failed: {reason}"
        super().__init__(message, stage_name, {"reason": reason})
        self.result = result
        self.reason = reason


def retry_on_failure(
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    exceptions: tuple = (Exception,),
    logger: Optional[logging.Logger] = None,
) -> Callable:
    """Decorator to retry function on failure with exponential backoff.

    Parameters
    ----------
    max_attempts : int
        Maximum number of attempts
    delay : float
        Initial delay between attempts in seconds
    backoff : float
        Backoff multiplier for delay
    exceptions : tuple
        Tuple of exceptions to catch
    logger : logging.Logger, optional
        Logger for retry messages

    Returns
    -------
    Callable
        Decorated function
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            _logger = logger or logging.getLogger(func.__module__)
            current_delay = delay

            for attempt in range(max_attempts):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_attempts - 1:
                        _logger.error(f"Failed after {max_attempts} attempts: {e}")
                        raise

                    _logger.warning(
                        f"Attempt {attempt + 1} failed: {e}. "
                        f"Retrying in {current_delay:.1f} seconds..."
                    )
                    time.sleep(current_delay)
                    current_delay *= backoff

        return wrapper

    return decorator


def validate_file_exists(file_path: Union[str, Path], description: str) -> Path:
    """Validate that a required file exists and is readable.

    Parameters
    ----------
    file_path : str or Path
        Path to validate
    description : str
        Human-readable role of the file, used in the error message

    Returns
    -------
    Path
        Validated absolute path

    Raises
    ------
    ConfigurationError
        If the file is missing, not a regular file, or unreadable
    """
    path = Path(file_path).expanduser().resolve()

    if not path.exists():
        raise ConfigurationError(f"{description} not found: {path}")

    if not path.is_file():
        raise ConfigurationError(f"{description} is not a regular file: {path}")

    try:
        with open(path, "rb"):
            pass
    except PermissionError:
        raise ConfigurationError(f"Cannot read {description}: {path}")

    return path


def validate_input_directory(directory: Union[str, Path], description: str) -> Path:
    """Validate that a directory exists.

    Raises
    ------
    ConfigurationError
        If the path does not exist or is not a directory
    """
    path = Path(directory).expanduser().resolve()

    if not path.exists():
        raise ConfigurationError(f"{description} not found: {path}")
    if not path.is_dir():
        raise ConfigurationError(f"{description} is not a directory: {path}")

    return path
