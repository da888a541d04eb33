"""Unit tests for StageRunner."""

import threading
import time
from unittest.mock import Mock

import pytest

from xenmito.pipeline_core import ArtifactStore, PipelineContext, Stage, StageResult, StageRunner
from xenmito.pipeline_core.error_handling import ExternalToolFailure, StageUnitFailure
from xenmito.samples import SampleUnit


class RecordingStage(Stage):
    """Stage that records which samples it processed."""

    def __init__(self, name="test_stage", fail_for=(), delay=0.0, value=None):
        super().__init__()
        self._name = name
        self.fail_for = set(fail_for)
        self.delay = delay
        self.value = value
        self.processed = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    @property
    def name(self):
        return self._name

    def process_sample(self, context, sample):
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                time.sleep(self.delay)
            if sample.name in self.fail_for:
                raise StageUnitFailure(None, None, f"cannot process {sample.name}")
            with self._lock:
                self.processed.append(sample.name)
            return self.value
        finally:
            with self._lock:
                self.active -= 1


class FlakyStage(Stage):
    """Stage whose tool fails a fixed number of times per sample."""

    def __init__(self, failures):
        super().__init__()
        self.failures = failures
        self.attempts = {}

    @property
    def name(self):
        return "flaky"

    def process_sample(self, context, sample):
        self.attempts[sample.name] = self.attempts.get(sample.name, 0) + 1
        if self.attempts[sample.name] <= self.failures:
            raise ExternalToolFailure(["samtools"], 1, "transient")
        return self.attempts[sample.name]


@pytest.fixture
def samples(tmp_path):
    """Create four samples."""
    return [SampleUnit(f"barcode0{i}", tmp_path / f"barcode0{i}.fastq") for i in range(1, 5)]


@pytest.fixture
def context(tmp_path, samples):
    """Create a minimal context."""
    return PipelineContext(
        config=Mock(tool_timeout=None),
        workspace=ArtifactStore(tmp_path, "proj"),
        references=Mock(),
        samples=samples,
        invoker=Mock(),
    )


class TestStageResult:
    """Test suite for StageResult."""

    def test_ok_requires_every_sample(self):
        """Test that a missing sample is not ok."""
        result = StageResult(stage="s", expected=["a", "b"], succeeded={"a"})
        assert not result.ok
        assert result.describe_failures() == "no result for sample(s) b"

    def test_ok(self):
        """Test the successful case."""
        result = StageResult(stage="s", expected=["a", "b"], succeeded={"a", "b"})
        assert result.ok
        assert result.describe_failures() == "no failures"

    def test_describe_failures(self):
        """Test the failure description."""
        result = StageResult(
            stage="s",
            expected=["a", "b"],
            succeeded={"a"},
            failed={"b": StageUnitFailure("s", "b", "boom")},
        )
        assert not result.ok
        assert result.describe_failures() == "1 of 2 sample(s) failed (b: boom)"


class TestStageRunner:
    """Test suite for StageRunner."""

    @pytest.mark.parametrize("kwargs", [{"max_workers": 0}, {"retries": -1}])
    def test_invalid_arguments(self, kwargs):
        """Test rejecting invalid settings."""
        with pytest.raises(ValueError):
            StageRunner(**kwargs)

    def test_sequential_runs_in_sample_order(self, context):
        """Test that a single worker processes samples in order."""
        stage = RecordingStage()

        result = StageRunner().execute(stage, context)

        assert result.ok
        assert stage.processed == ["barcode01", "barcode02", "barcode03", "barcode04"]
        assert stage.max_active == 1

    def test_parallel_processes_every_sample_once(self, context):
        """Test exactly one unit per sample with several workers."""
        stage = RecordingStage(delay=0.05)

        result = StageRunner(max_workers=4).execute(stage, context)

        assert result.ok
        assert sorted(stage.processed) == context.sample_names
        assert len(stage.processed) == 4
        assert stage.max_active > 1

    def test_parallelism_is_bounded(self, context):
        """Test that no more than max_workers units run at once."""
        stage = RecordingStage(delay=0.05)

        StageRunner(max_workers=2).execute(stage, context)

        assert stage.max_active <= 2

    def test_failure_does_not_cancel_siblings(self, context):
        """Test that every unit finishes even when one fails."""
        stage = RecordingStage(fail_for={"barcode02"}, delay=0.02)

        result = StageRunner(max_workers=4).execute(stage, context)

        assert not result.ok
        assert set(result.failed) == {"barcode02"}
        assert result.succeeded == {"barcode01", "barcode03", "barcode04"}
        failure = result.failed["barcode02"]
        assert failure.stage == "test_stage"
        assert failure.sample == "barcode02"

    def test_unexpected_exception_becomes_unit_failure(self, context):
        """Test wrapping arbitrary errors."""

        class BrokenStage(RecordingStage):
            def process_sample(self, context, sample):
                raise KeyError("missing column")

        result = StageRunner().execute(BrokenStage(), context)

        assert set(result.failed) == set(context.sample_names)
        failure = result.failed["barcode01"]
        assert isinstance(failure, StageUnitFailure)
        assert "KeyError" in str(failure)
        assert isinstance(failure.__cause__, KeyError)

    def test_values_are_recorded(self, context):
        """Test that returned values are stored in the context."""
        stage = RecordingStage(name="counts", value=7)

        StageRunner(max_workers=2).execute(stage, context)

        assert context.get_result("counts") == {name: 7 for name in context.sample_names}

    def test_none_values_are_not_recorded(self, context):
        """Test that stages returning nothing leave no results."""
        StageRunner().execute(RecordingStage(name="quiet"), context)
        assert context.get_result("quiet") is None

    def test_explicit_samples(self, context, samples):
        """Test running a subset of samples."""
        stage = RecordingStage()

        result = StageRunner().execute(stage, context, samples=samples[:2])

        assert result.expected == ["barcode01", "barcode02"]
        assert stage.processed == ["barcode01", "barcode02"]

    def test_retries_external_tool_failures(self, context):
        """Test that transient tool failures are retried."""
        stage = FlakyStage(failures=1)

        result = StageRunner(retries=1, retry_delay=0).execute(stage, context)

        assert result.ok
        assert all(attempts == 2 for attempts in stage.attempts.values())

    def test_retries_exhausted(self, context):
        """Test failing after the last attempt."""
        stage = FlakyStage(failures=3)

        result = StageRunner(retries=1, retry_delay=0).execute(stage, context)

        assert set(result.failed) == set(context.sample_names)
        assert isinstance(result.failed["barcode01"], ExternalToolFailure)
        assert stage.attempts["barcode01"] == 2

    def test_no_retries_by_default(self, context):
        """Test a single attempt without retries."""
        stage = FlakyStage(failures=1)

        result = StageRunner().execute(stage, context)

        assert not result.ok
        assert stage.attempts["barcode01"] == 1

    def test_execution_times(self, context):
        """Test timing bookkeeping."""
        runner = StageRunner()
        runner.execute(RecordingStage(name="timed"), context)

        assert "timed" in runner.execution_times
        runner.log_execution_summary({"timed": 0.5})

    def test_empty_sample_list(self, context):
        """Test a stage without samples."""
        result = StageRunner(max_workers=4).execute(RecordingStage(), context, samples=[])
        assert result.ok
        assert result.expected == []
