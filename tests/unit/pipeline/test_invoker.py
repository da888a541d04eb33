"""Unit tests for ExternalToolInvoker."""

import shutil
import sys

import pytest

from xenmito.pipeline_core import ExternalToolInvoker, ToolPaths, ToolResult
from xenmito.pipeline_core.error_handling import ConfigurationError, ExternalToolFailure

needs_posix = pytest.mark.skipif(
    sys.platform == "win32" or not shutil.which("sh"), reason="requires a POSIX shell"
)


class TestToolPaths:
    """Test suite for ToolPaths."""

    def test_defaults(self):
        """Test the default executables."""
        tools = ToolPaths()
        assert tools.resolve("samtools") == "samtools"
        assert tools.resolve("vcf_annotate") == "vcf-annotate"
        assert tools.resolve("vcf-annotate") == "vcf-annotate"

    def test_from_dict_overrides(self):
        """Test overriding executables from configuration."""
        tools = ToolPaths.from_dict({"samtools": "/opt/bin/samtools", "bgzip": ""})

        assert tools.samtools == "/opt/bin/samtools"
        assert tools.bgzip == "bgzip"

    def test_from_dict_rejects_unknown_tools(self):
        """Test that misspelled tools are configuration errors."""
        with pytest.raises(ConfigurationError, match="samtool"):
            ToolPaths.from_dict({"samtool": "x"})

    def test_resolve_unknown(self):
        """Test resolving a tool that is not configured."""
        with pytest.raises(KeyError):
            ToolPaths().resolve("blast")

    def test_as_dict(self):
        """Test conversion to a plain dictionary."""
        assert ToolPaths().as_dict()["minimap2"] == "minimap2"


class TestToolResult:
    """Test suite for ToolResult."""

    def test_ok(self):
        """Test success detection."""
        assert ToolResult(command=["x"], exit_code=0).ok
        assert not ToolResult(command=["x"], exit_code=1).ok
        assert not ToolResult(command=["x"], exit_code=None, timed_out=True).ok


class TestExternalToolInvoker:
    """Test suite for ExternalToolInvoker."""

    @pytest.fixture
    def invoker(self):
        """Create an invoker with default tool paths."""
        return ExternalToolInvoker()

    def test_build_command(self):
        """Test command resolution and argument stringification."""
        invoker = ExternalToolInvoker(ToolPaths(samtools="/opt/samtools"))

        assert invoker.build_command("samtools", ["view", "-c", 3]) == [
            "/opt/samtools",
            "view",
            "-c",
            "3",
        ]
        assert invoker.build_command("echo", ["x"]) == ["echo", "x"]

    @needs_posix
    def test_run_captures_stdout(self, invoker):
        """Test capturing output of a successful command."""
        result = invoker.run("sh", ["-c", "echo hello"])

        assert result.ok
        assert result.exit_code == 0
        assert result.stdout.strip() == "hello"
        assert invoker.history == [["sh", "-c", "echo hello"]]

    @needs_posix
    def test_run_reports_failure_as_value(self, invoker):
        """Test that a non-zero exit is returned, not raised."""
        result = invoker.run("sh", ["-c", "echo oops >&2; exit 3"])

        assert not result.ok
        assert result.exit_code == 3
        assert "oops" in result.stderr

    def test_missing_executable(self, invoker):
        """Test that a missing executable is reported with exit code 127."""
        result = invoker.run("definitely-not-a-real-tool-xyz", ["--help"])

        assert not result.ok
        assert result.exit_code == 127

    @needs_posix
    def test_stdout_path(self, invoker, tmp_path):
        """Test streaming stdout into a file."""
        output = tmp_path / "out.txt"

        result = invoker.run("sh", ["-c", "printf 'a\\nb\\n'"], stdout_path=output)

        assert result.ok
        assert result.stdout == ""
        assert output.read_text() == "a\nb\n"

    @needs_posix
    def test_unwritable_stdout_path(self, invoker, tmp_path):
        """Test that a missing output directory is not reported as a missing tool."""
        output = tmp_path / "absent" / "out.txt"

        with pytest.raises(FileNotFoundError):
            invoker.run("sh", ["-c", "true"], stdout_path=output)

        assert len(invoker.history) == 1

    @needs_posix
    def test_working_dir(self, invoker, tmp_path):
        """Test running in a given directory."""
        result = invoker.run("sh", ["-c", "pwd"], working_dir=tmp_path)
        assert result.stdout.strip() == str(tmp_path)

    @needs_posix
    def test_environment(self, tmp_path):
        """Test extra environment variables."""
        invoker = ExternalToolInvoker(env={"XENMITO_TEST_VALUE": "42"})
        result = invoker.run("sh", ["-c", "echo $XENMITO_TEST_VALUE"])
        assert result.stdout.strip() == "42"

    @needs_posix
    def test_timeout(self):
        """Test that a hung tool is killed and reported."""
        invoker = ExternalToolInvoker(default_timeout=0.2)

        result = invoker.run("sh", ["-c", "sleep 5"])

        assert result.timed_out
        assert result.exit_code is None
        assert not result.ok

    def test_check_raises_external_tool_failure(self):
        """Test converting a failed result into an exception."""
        result = ToolResult(command=["samtools", "view"], exit_code=2, stderr="line1\nbad file\n")

        with pytest.raises(ExternalToolFailure) as exc_info:
            ExternalToolInvoker.check(result, stage="compute-coverage", sample="barcode01")

        error = exc_info.value
        assert error.exit_code == 2
        assert error.stage == "compute-coverage"
        assert error.sample == "barcode01"
        assert str(error) == "samtools exited with status 2: bad file"

    def test_check_timed_out(self):
        """Test the message of a timed-out tool."""
        result = ToolResult(command=["medaka_variant"], exit_code=None, timed_out=True)

        with pytest.raises(ExternalToolFailure, match="timed out"):
            ExternalToolInvoker.check(result)

    def test_check_passes_success_through(self):
        """Test that a successful result is returned unchanged."""
        result = ToolResult(command=["x"], exit_code=0)
        assert ExternalToolInvoker.check(result) is result

    def test_run_checked(self, invoker):
        """Test that run_checked raises for a missing executable."""
        with pytest.raises(ExternalToolFailure) as exc_info:
            invoker.run_checked("definitely-not-a-real-tool-xyz", stage="s", sample="b")

        assert exc_info.value.exit_code == 127
        assert exc_info.value.sample == "b"
