"""
PipelineController - Drives the fixed stage sequence with checkpoint gating.

This module provides the PipelineController class that walks the ordered
stage list, consults the checkpoint log, hands stages to the StageRunner,
and commits each completion only after every sample succeeded and the
stage's aggregation step has run.
"""

import logging
import time
from enum import Enum
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence, Tuple

from .context import PipelineContext
from .error_handling import (
    CheckpointWriteFailure,
    ConfigurationError,
    PipelineError,
    StageExecutionError,
)
from .runner import StageResult, StageRunner
from .stage import Stage

if TYPE_CHECKING:
    from ..checkpoint import CheckpointEntry, CheckpointLog

logger = logging.getLogger(__name__)


class PipelineStatus(Enum):
    """Lifecycle of one controller invocation."""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class StageAction:
    """Decisions reported by ``PipelineController.plan``."""

    SKIP = "skip"
    RUN = "run"
    RERUN = "rerun"
    ALWAYS_RUN = "always-run"


class PipelineController:
    """Runs the stages of a project in their fixed order.

    Gated stages whose completion is recorded in the checkpoint log are
    skipped. Once a gated stage executes in an invocation, every later gated
    stage executes as well, since their inputs were just regenerated. Ungated
    stages run after the gated ones on every invocation.

    Attributes
    ----------
    status : PipelineStatus
        Current state of the invocation
    current_index : int or None
        Index of the stage being (or last) processed
    failed_stage : str or None
        Name of the stage that halted the pipeline
    failure_reason : str or None
        Description of the failure
    """

    def __init__(
        self,
        stages: Sequence[Stage],
        checkpoint_log: "CheckpointLog",
        stage_runner: Optional[StageRunner] = None,
    ):
        """Initialize the controller.

        Parameters
        ----------
        stages : sequence of Stage
            Stages in execution order; ungated stages must come last
        checkpoint_log : CheckpointLog
            The project's checkpoint log
        stage_runner : StageRunner, optional
            Runner used for per-sample fan-out (default: sequential)

        Raises
        ------
        ValueError
            If stage names are not unique or a gated stage follows an
            ungated one
        """
        names = [stage.name for stage in stages]
        if len(set(names)) != len(names):
            duplicates = sorted({n for n in names if names.count(n) > 1})
            raise ValueError(f"Duplicate stage names detected: {', '.join(duplicates)}")

        seen_tail = False
        for stage in stages:
            if not stage.gated:
                seen_tail = True
            elif seen_tail:
                raise ValueError(f"Gated stage '{stage.name}' cannot follow an ungated stage")

        self.stages = list(stages)
        self.checkpoint_log = checkpoint_log
        self.stage_runner = stage_runner or StageRunner()

        self.status = PipelineStatus.NOT_STARTED
        self.current_index: Optional[int] = None
        self.failed_stage: Optional[str] = None
        self.failure_reason: Optional[str] = None
        self.executed: List[str] = []
        self.skipped: List[str] = []
        self.results: Dict[str, StageResult] = {}
        self._fan_in_times: Dict[str, float] = {}

    def run(self, context: PipelineContext) -> PipelineStatus:
        """Run every pending stage for the project in ``context``.

        Parameters
        ----------
        context : PipelineContext
            Context carrying the configuration, samples and artifact store

        Returns
        -------
        PipelineStatus
            ``PipelineStatus.COMPLETED`` when every stage succeeded

        Raises
        ------
        ConfigurationError
            If there are no samples or the sample set differs from the one
            recorded in the checkpoint log
        StageExecutionError
            If any unit of a stage, or its aggregation, failed
        CheckpointWriteFailure
            If a completion could not be recorded
        """
        start_time = time.time()
        self.status = PipelineStatus.RUNNING
        logger.info(f"Starting pipeline for project '{context.workspace.project_name}'")

        try:
            context.workspace.prepare()
            if not context.samples:
                raise ConfigurationError(
                    f"No input files found for project '{context.workspace.project_name}'"
                )

            completed = self.checkpoint_log.load()
            self.check_sample_set(completed, context.sample_names)
            if completed:
                logger.info(
                    f"Resuming project: {len(completed)} stage(s) already recorded in "
                    f"{self.checkpoint_log.path}"
                )

            upstream_ran = False
            for index, stage in enumerate(self.stages):
                self.current_index = index
                if not stage.gated:
                    self._run_stage(stage, context, commit=False)
                    continue

                if stage.name in completed and not upstream_ran:
                    logger.info(f"{stage.label} already completed, skipping")
                    context.mark_complete(stage.name)
                    self.skipped.append(stage.name)
                    continue

                if stage.name in completed:
                    logger.info(f"{stage.label} re-runs because an earlier stage ran again")
                upstream_ran = True
                self._run_stage(stage, context, commit=True)

        except PipelineError as e:
            self.status = PipelineStatus.FAILED
            if self.failed_stage is None and self.current_index is not None:
                self.failed_stage = self.stages[self.current_index].name
            if self.failure_reason is None:
                self.failure_reason = str(e)
            raise

        if not context.config.keep_intermediates:
            try:
                context.workspace.cleanup_temp()
            except OSError as e:
                logger.warning(f"Could not empty the temp directory: {e}")

        self.status = PipelineStatus.COMPLETED
        total_time = time.time() - start_time
        logger.info(
            f"Pipeline completed in {total_time:.1f}s "
            f"({len(self.executed)} stage(s) run, {len(self.skipped)} skipped)"
        )
        self.stage_runner.log_execution_summary(self._fan_in_times)
        return self.status

    def _run_stage(self, stage: Stage, context: PipelineContext, commit: bool) -> None:
        logger.info(f"Executing {stage.description}")
        result = self.stage_runner.execute(stage, context)
        self.results[stage.name] = result
        if not result.ok:
            self._fail(stage, result.describe_failures())
            raise StageExecutionError(stage.name, result)

        fan_in_start = time.time()
        try:
            stage.aggregate(context)
        except (ConfigurationError, CheckpointWriteFailure):
            self._fail(stage, "aggregation failed")
            raise
        except Exception as e:
            reason = f"aggregation failed: {e}"
            self._fail(stage, reason)
            raise StageExecutionError(stage.name, result, reason) from e

        if commit:
            try:
                self.checkpoint_log.mark_completed(
                    stage.name, ordinal=stage.ordinal or None, samples=context.sample_names
                )
            except CheckpointWriteFailure as e:
                self._fail(stage, str(e))
                raise

        try:
            stage.cleanup(context)
        except OSError as e:
            logger.warning(f"Cleanup after stage '{stage.name}' failed: {e}")

        self._fan_in_times[stage.name] = time.time() - fan_in_start
        context.mark_complete(stage.name)
        self.executed.append(stage.name)

    def _fail(self, stage: Stage, reason: str) -> None:
        self.status = PipelineStatus.FAILED
        self.failed_stage = stage.name
        self.failure_reason = reason
        logger.error(f"{stage.label} failed, halting pipeline: {reason}")

    @staticmethod
    def check_sample_set(
        completed: Dict[str, "CheckpointEntry"], sample_names: Sequence[str]
    ) -> None:
        """Refuse to resume when the input samples changed since a commit.

        Entries from the shell workflow carry no sample list and are not
        checked.

        Raises
        ------
        ConfigurationError
            If a recorded completion covers a different set of samples
        """
        current = set(sample_names)
        for entry in completed.values():
            if entry.legacy or not entry.samples:
                continue
            recorded = set(entry.samples)
            if recorded == current:
                continue
            added = sorted(current - recorded)
            removed = sorted(recorded - current)
            changes = []
            if added:
                changes.append(f"added {', '.join(added)}")
            if removed:
                changes.append(f"removed {', '.join(removed)}")
            raise ConfigurationError(
                f"Input samples changed since stage '{entry.stage}' was completed "
                f"({'; '.join(changes)}). Restore the original inputs or use a new project name.",
                stage=entry.stage,
                details={"added": added, "removed": removed},
            )

    def plan(self, context: PipelineContext) -> List[Tuple[str, str]]:
        """Report what ``run`` would do without running anything.

        Returns
        -------
        List[Tuple[str, str]]
            ``(stage name, action)`` pairs in execution order, where action is
            one of the ``StageAction`` values
        """
        completed = self.checkpoint_log.load()
        actions = []
        upstream_ran = False
        for stage in self.stages:
            if not stage.gated:
                actions.append((stage.name, StageAction.ALWAYS_RUN))
            elif stage.name in completed and not upstream_ran:
                actions.append((stage.name, StageAction.SKIP))
            elif stage.name in completed:
                actions.append((stage.name, StageAction.RERUN))
            else:
                upstream_ran = True
                actions.append((stage.name, StageAction.RUN))
        return actions

    def __repr__(self) -> str:
        """Return string representation of the controller."""
        return f"PipelineController(stages={len(self.stages)}, status={self.status.value})"
