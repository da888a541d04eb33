"""
Stage - Abstract base class for all pipeline stages.

This module provides the Stage abstraction every step of the workflow
inherits from. A stage does its work one sample at a time through
``process_sample``; the StageRunner fans those calls out and joins them,
and the PipelineController decides whether the stage runs at all.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Sequence, Union

from .context import PipelineContext
from .invoker import ToolResult

logger = logging.getLogger(__name__)


class Stage(ABC):
    """Abstract base class for all pipeline stages.

    A stage declares a unique ``name`` (its checkpoint identifier), the
    legacy step ``ordinal`` of the shell workflow, and whether it is
    ``gated`` by the checkpoint log. Gated stages are skipped once their
    completion is recorded; ungated stages form the tail of the pipeline and
    run on every invocation.

    Per-sample work must only read artifacts of earlier stages and write
    artifacts named after its own sample, so that samples never contend for
    files and a re-run overwrites in place.
    """

    def __init__(self):
        """Initialize the stage with subtask tracking."""
        self._subtask_times: Dict[str, float] = {}
        self._subtask_lock = threading.Lock()

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for the stage.

        Returns
        -------
        str
            The stage name recorded in the checkpoint log
        """

    @property
    def ordinal(self) -> str:
        """Step number of the stage in the shell workflow (e.g. ``"2.6"``)."""
        return ""

    @property
    def description(self) -> str:
        """Human-readable description for logging.

        Returns
        -------
        str
            Description of what this stage does
        """
        return f"Stage: {self.name}"

    @property
    def gated(self) -> bool:
        """Whether completion is recorded in and honoured from the checkpoint log."""
        return True

    @property
    def label(self) -> str:
        """Short label used in progress messages."""
        if self.ordinal:
            return f"Stage {self.ordinal} [{self.name}]"
        return f"Stage [{self.name}]"

    @abstractmethod
    def process_sample(self, context: PipelineContext, sample) -> Any:
        """Do this stage's work for one sample.

        Parameters
        ----------
        context : PipelineContext
            The pipeline context (read-only apart from ``record_result``)
        sample : SampleUnit
            The sample to process

        Returns
        -------
        Any
            Optional value, stored by the runner under the sample name

        Raises
        ------
        StageUnitFailure
            If the unit of work failed
        """

    def aggregate(self, context: PipelineContext) -> None:
        """Combine per-sample outputs after every sample succeeded.

        Runs before the completion is committed, so a failure here leaves
        the stage uncommitted. Override in subclasses that produce an
        all-sample file.
        """

    def cleanup(self, context: PipelineContext) -> None:
        """Execute hook called after the completion has been committed.

        Override in subclasses that remove intermediate files.
        """

    def run_tool(
        self,
        context: PipelineContext,
        sample,
        command: str,
        args: Sequence[Any] = (),
        **kwargs,
    ) -> ToolResult:
        """Run an external tool for ``sample`` and raise on failure.

        Parameters
        ----------
        context : PipelineContext
            The pipeline context providing the invoker and timeout
        sample : SampleUnit or None
            Sample the invocation belongs to, used in failure reports
        command : str
            Logical tool name
        args : sequence
            Command-line arguments
        **kwargs
            Passed through to ``ExternalToolInvoker.run``

        Returns
        -------
        ToolResult
            The successful result

        Raises
        ------
        ExternalToolFailure
            If the tool exits non-zero, is missing, or times out
        """
        kwargs.setdefault("timeout", context.config.tool_timeout)
        return context.invoker.run_checked(
            command,
            args,
            stage=self.name,
            sample=sample.name if sample is not None else None,
            **kwargs,
        )

    def get_output_files(self, context: PipelineContext, sample) -> List[Path]:
        """Return the artifacts this stage writes for ``sample``.

        Override in subclasses to list expected outputs.
        """
        return []

    @staticmethod
    def remove_quietly(path: Union[str, Path]) -> bool:
        """Remove ``path`` if it exists; return whether a file was removed."""
        path = Path(path)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        logger.debug(f"Removed intermediate file: {path}")
        return True

    def __repr__(self) -> str:
        """Return string representation of the stage."""
        return f"{self.__class__.__name__}(name='{self.name}', ordinal='{self.ordinal}')"

    def _start_subtask(self, subtask_name: str) -> float:
        """Start timing a subtask.

        Parameters
        ----------
        subtask_name : str
            Name of the subtask

        Returns
        -------
        float
            Start time for the subtask
        """
        start_time = time.time()
        logger.debug(f"Stage '{self.name}': Starting subtask '{subtask_name}'")
        return start_time

    def _end_subtask(self, subtask_name: str, start_time: float) -> None:
        """End timing a subtask and add its duration.

        Durations of the same subtask across samples are summed.

        Parameters
        ----------
        subtask_name : str
            Name of the subtask
        start_time : float
            Start time from _start_subtask
        """
        elapsed = time.time() - start_time
        with self._subtask_lock:
            self._subtask_times[subtask_name] = self._subtask_times.get(subtask_name, 0.0) + elapsed
        logger.debug(f"Stage '{self.name}': Completed subtask '{subtask_name}' in {elapsed:.1f}s")

    @property
    def subtask_times(self) -> Dict[str, float]:
        """Get recorded subtask durations.

        Returns
        -------
        Dict[str, float]
            Dictionary of subtask names to durations in seconds
        """
        with self._subtask_lock:
            return self._subtask_times.copy()

    def reset_subtask_times(self) -> None:
        """Forget recorded subtask durations."""
        with self._subtask_lock:
            self._subtask_times.clear()

