"""
StageRunner - Executes one stage across all samples with bounded parallelism.

This module provides the StageRunner class that fans a stage's per-sample
work out over a worker pool, waits for every unit to finish, and reports the
combined outcome as a StageResult. The runner never touches the checkpoint
log; committing a completion is the controller's job.
"""

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence, Set

from .context import PipelineContext
from .error_handling import ExternalToolFailure, StageUnitFailure, retry_on_failure
from .stage import Stage

if TYPE_CHECKING:
    from ..samples import SampleUnit

logger = logging.getLogger(__name__)


@dataclass
class StageResult:
    """Outcome of running one stage over the enumerated samples.

    Attributes
    ----------
    stage : str
        Stage identifier
    expected : List[str]
        Sample names the stage was run for
    succeeded : Set[str]
        Sample names whose unit of work completed
    failed : Dict[str, StageUnitFailure]
        Sample name -> failure
    elapsed : float
        Wall-clock seconds from first submission to the join
    """

    stage: str
    expected: List[str] = field(default_factory=list)
    succeeded: Set[str] = field(default_factory=set)
    failed: Dict[str, StageUnitFailure] = field(default_factory=dict)
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        """True iff no unit failed and every expected sample succeeded."""
        return not self.failed and self.succeeded == set(self.expected)

    def describe_failures(self) -> str:
        """One-line description of the failed samples."""
        if not self.failed:
            missing = sorted(set(self.expected) - self.succeeded)
            if missing:
                return f"no result for sample(s) {', '.join(missing)}"
            return "no failures"
        parts = [f"{name}: {err}" for name, err in sorted(self.failed.items())]
        return f"{len(self.failed)} of {len(self.expected)} sample(s) failed ({'; '.join(parts)})"


class StageRunner:
    """Runs a stage's per-sample units and joins them.

    With ``max_workers == 1`` the units run sequentially in sample order;
    otherwise a thread pool bounded by ``max_workers`` runs them
    concurrently, with exactly one submission per sample. A failing unit
    does not cancel the others, and the runner only returns once every unit
    has finished.

    Attributes
    ----------
    max_workers : int
        Maximum number of samples processed at the same time
    retries : int
        Extra attempts for a unit that failed with ExternalToolFailure
    retry_delay : float
        Initial delay in seconds between attempts
    """

    def __init__(self, max_workers: int = 1, retries: int = 0, retry_delay: float = 1.0):
        """Initialize the stage runner.

        Parameters
        ----------
        max_workers : int
            Maximum parallel workers (default: 1, sequential)
        retries : int
            Retries per unit for external tool failures (default: 0)
        retry_delay : float
            Initial backoff delay in seconds
        """
        if max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {max_workers}")
        if retries < 0:
            raise ValueError(f"retries must not be negative, got {retries}")
        self.max_workers = max_workers
        self.retries = retries
        self.retry_delay = retry_delay
        self._execution_times: Dict[str, float] = {}
        self._subtask_times: Dict[str, Dict[str, float]] = {}

    def execute(
        self,
        stage: Stage,
        context: PipelineContext,
        samples: Optional[Sequence["SampleUnit"]] = None,
    ) -> StageResult:
        """Run ``stage`` for every sample and wait for all of them.

        Parameters
        ----------
        stage : Stage
            Stage to execute
        context : PipelineContext
            Current pipeline context
        samples : sequence of SampleUnit, optional
            Samples to process (default: ``context.samples``)

        Returns
        -------
        StageResult
            Which samples succeeded and which failed
        """
        samples = list(context.samples if samples is None else samples)
        result = StageResult(stage=stage.name, expected=[s.name for s in samples])
        stage.reset_subtask_times()

        workers = min(self.max_workers, len(samples)) if samples else 1
        logger.info(
            f"{stage.label}: processing {len(samples)} sample(s)"
            + (f" with {workers} workers" if workers > 1 else "")
        )
        start_time = time.time()

        if workers == 1:
            for sample in samples:
                self._collect(result, sample, self._run_unit, stage, context, sample)
        else:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                future_to_sample: Dict[Future, "SampleUnit"] = {}
                for sample in samples:
                    future = executor.submit(self._run_unit, stage, context, sample)
                    future_to_sample[future] = sample

                for future in as_completed(future_to_sample):
                    sample = future_to_sample[future]
                    self._collect(result, sample, future.result)

        result.elapsed = time.time() - start_time
        self._execution_times[stage.name] = result.elapsed
        if stage.subtask_times:
            self._subtask_times[stage.name] = stage.subtask_times

        logger.info(
            f"{stage.label}: {len(result.succeeded)}/{len(samples)} succeeded "
            f"in {result.elapsed:.1f}s"
        )
        return result

    def _run_unit(self, stage: Stage, context: PipelineContext, sample: "SampleUnit"):
        unit = stage.process_sample
        if self.retries > 0:
            unit = retry_on_failure(
                max_attempts=self.retries + 1,
                delay=self.retry_delay,
                exceptions=(ExternalToolFailure,),
                logger=logger,
            )(unit)
        value = unit(context, sample)
        if value is not None:
            context.record_result(stage.name, sample.name, value)
        return value

    def _collect(self, result: StageResult, sample: "SampleUnit", call, *args) -> None:
        """Call ``call(*args)`` and file the outcome under ``sample``."""
        try:
            call(*args)
        except StageUnitFailure as e:
            if e.stage is None:
                e.stage = result.stage
            if e.sample is None:
                e.sample = sample.name
            self._record_failure(result, sample, e)
        except Exception as e:
            failure = StageUnitFailure(result.stage, sample.name, f"{type(e).__name__}: {e}")
            failure.__cause__ = e
            self._record_failure(result, sample, failure)
        else:
            result.succeeded.add(sample.name)
            logger.debug(f"Stage '{result.stage}': sample {sample.name} done")

    @staticmethod
    def _record_failure(result: StageResult, sample: "SampleUnit", failure: StageUnitFailure):
        result.failed[sample.name] = failure
        if isinstance(failure, ExternalToolFailure):
            status = "timed out" if failure.timed_out else f"exit status {failure.exit_code}"
            logger.error(
                f"Stage '{result.stage}' failed for sample {sample.name} ({status}): {failure}"
            )
        else:
            logger.error(f"Stage '{result.stage}' failed for sample {sample.name}: {failure}")

    @property
    def execution_times(self) -> Dict[str, float]:
        """Wall-clock seconds per executed stage."""
        return dict(self._execution_times)

    def log_execution_summary(self, extra_times: Optional[Dict[str, float]] = None) -> None:
        """Log summary of stage execution times.

        Parameters
        ----------
        extra_times : dict, optional
            Additional stage -> seconds entries (e.g. aggregation steps)
        """
        times = dict(self._execution_times)
        for name, elapsed in (extra_times or {}).items():
            times[name] = times.get(name, 0.0) + elapsed
        if not times:
            return

        logger.info("=" * 60)
        logger.info("Stage Execution Summary")
        logger.info("=" * 60)

        sorted_times = sorted(times.items(), key=lambda x: x[1], reverse=True)
        total_time = sum(times.values())

        for stage_name, elapsed in sorted_times:
            percentage = (elapsed / total_time) * 100 if total_time > 0 else 0
            logger.info(f"{stage_name:30s} {elapsed:6.1f}s ({percentage:4.1f}%)")

            subtasks = self._subtask_times.get(stage_name)
            if subtasks:
                sorted_subtasks = sorted(subtasks.items(), key=lambda x: x[1], reverse=True)
                for subtask_name, subtask_elapsed in sorted_subtasks:
                    logger.info(f"  └─ {subtask_name:32s} {subtask_elapsed:6.1f}s (sum)")

        logger.info("-" * 60)
        logger.info(f"{'Total stage time:':30s} {total_time:6.1f}s")
        logger.info("=" * 60)
