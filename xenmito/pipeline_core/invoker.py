"""
ExternalToolInvoker - Uniform adapter for running external collaborators.

Every stage runs minimap2, samtools, bedtools and friends through this class.
It resolves logical tool names to executables from the immutable run
configuration, runs the process, captures its exit status and output, and
reports failures as values. Converting a failed result into an exception is
the caller's choice (``check`` / ``run_checked``).
"""

import logging
import os
import subprocess
import threading
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Sequence, Union

from .error_handling import ConfigurationError, ExternalToolFailure

if TYPE_CHECKING:
    from ..resources import ResourceHints

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolPaths:
    """Executable used for each logical collaborator name."""

    minimap2: str = "minimap2"
    samtools: str = "samtools"
    bedtools: str = "bedtools"
    bioawk: str = "bioawk"
    seqtk: str = "seqtk"
    htsbox: str = "htsbox"
    medaka_variant: str = "medaka_variant"
    vcf_annotate: str = "vcf-annotate"
    bgzip: str = "bgzip"
    tabix: str = "tabix"

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "ToolPaths":
        """Build tool paths from a configuration mapping, rejecting unknown tools."""
        data = dict(data or {})
        known = set(cls.__dataclass_fields__)
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown tool(s) in configuration: {', '.join(unknown)}")
        return cls(**{k: str(v) for k, v in data.items() if v})

    def resolve(self, tool: str) -> str:
        """Return the executable configured for ``tool``."""
        try:
            return getattr(self, tool.replace("-", "_"))
        except AttributeError:
            raise KeyError(f"No executable configured for tool '{tool}'") from None

    def as_dict(self) -> Dict[str, str]:
        """Return the tool mapping as a plain dictionary."""
        return asdict(self)


@dataclass(frozen=True)
class ToolResult:
    """Outcome of one external tool invocation."""

    command: List[str]
    exit_code: Optional[int]
    stdout: str = ""
    stderr: str = ""
    elapsed: float = 0.0
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        """Whether the process exited with status 0."""
        return self.exit_code == 0 and not self.timed_out


@dataclass
class _Invocation:
    command: List[str]
    working_dir: Optional[str]
    started: float
    result: Optional[ToolResult] = field(default=None)


class ExternalToolInvoker:
    """Runs external commands on behalf of pipeline stages.

    Resource hints are never interpreted here: stages translate them into each
    tool's own thread and memory flags. The invoker neither retries nor
    throttles concurrency across different commands.

    Parameters
    ----------
    tools : ToolPaths, optional
        Mapping from logical tool names to executables
    env : Mapping[str, str], optional
        Extra environment variables for every process
    default_timeout : float, optional
        Timeout in seconds applied when ``run`` is not given one
    """

    def __init__(
        self,
        tools: Optional[ToolPaths] = None,
        env: Optional[Mapping[str, str]] = None,
        default_timeout: Optional[float] = None,
    ):
        self.tools = tools or ToolPaths()
        self.env = dict(env) if env else None
        self.default_timeout = default_timeout
        self._history: List[_Invocation] = []
        self._lock = threading.Lock()

    def build_command(self, command: str, args: Sequence[Any] = ()) -> List[str]:
        """Resolve ``command`` and append stringified ``args``."""
        try:
            executable = self.tools.resolve(command)
        except KeyError:
            executable = command
        return [executable] + [str(a) for a in args]

    def run(
        self,
        command: str,
        args: Sequence[Any] = (),
        working_dir: Optional[Union[str, Path]] = None,
        resources: Optional["ResourceHints"] = None,
        stdout_path: Optional[Union[str, Path]] = None,
        timeout: Optional[float] = None,
    ) -> ToolResult:
        """Run one external command.

        Parameters
        ----------
        command : str
            Logical tool name (e.g. ``"samtools"``) or an executable
        args : sequence
            Command-line arguments
        working_dir : str or Path, optional
            Directory to run the process in
        resources : ResourceHints, optional
            Accepted for interface symmetry; already folded into ``args``
        stdout_path : str or Path, optional
            Stream stdout into this file instead of capturing it
        timeout : float, optional
            Seconds before the process is killed; falls back to
            ``default_timeout``

        Returns
        -------
        ToolResult
            Exit status and captured output; never raises for tool failures

        Raises
        ------
        OSError
            If ``stdout_path`` cannot be opened for writing
        """
        cmd = self.build_command(command, args)
        timeout = timeout if timeout is not None else self.default_timeout
        cwd = str(working_dir) if working_dir else None
        env = None
        if self.env:
            env = os.environ.copy()
            env.update(self.env)

        logger.debug("Running command: %s", " ".join(cmd))
        invocation = _Invocation(command=cmd, working_dir=cwd, started=time.time())
        with self._lock:
            self._history.append(invocation)

        start = time.time()
        # only a missing executable maps to exit 127
        out_f = open(stdout_path, "wb") if stdout_path else None
        try:
            proc = subprocess.run(
                cmd,
                stdout=out_f if out_f is not None else subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=cwd,
                env=env,
                timeout=timeout,
            )
            stdout = "" if out_f is not None else proc.stdout.decode("utf-8", errors="replace")
            result = ToolResult(
                command=cmd,
                exit_code=proc.returncode,
                stdout=stdout,
                stderr=proc.stderr.decode("utf-8", errors="replace"),
                elapsed=time.time() - start,
            )
        except FileNotFoundError as e:
            result = ToolResult(
                command=cmd, exit_code=127, stderr=str(e), elapsed=time.time() - start
            )
        except subprocess.TimeoutExpired as e:
            stderr = e.stderr.decode("utf-8", errors="replace") if e.stderr else ""
            result = ToolResult(
                command=cmd,
                exit_code=None,
                stderr=stderr or f"killed after {timeout}s",
                elapsed=time.time() - start,
                timed_out=True,
            )
        finally:
            if out_f is not None:
                out_f.close()

        invocation.result = result
        if result.ok:
            logger.debug(f"Command completed in {result.elapsed:.1f}s: {cmd[0]}")
        else:
            logger.debug(
                f"Command failed (exit={result.exit_code}, timed_out={result.timed_out}): "
                f"{' '.join(cmd)}"
            )
        return result

    @staticmethod
    def check(
        result: ToolResult, stage: Optional[str] = None, sample: Optional[str] = None
    ) -> ToolResult:
        """Raise ``ExternalToolFailure`` unless ``result`` succeeded."""
        if not result.ok:
            raise ExternalToolFailure(
                result.command,
                result.exit_code,
                result.stderr,
                timed_out=result.timed_out,
                stage=stage,
                sample=sample,
            )
        return result

    def run_checked(self, command: str, args: Sequence[Any] = (), **kwargs) -> ToolResult:
        """Run a command and raise ``ExternalToolFailure`` on failure."""
        stage = kwargs.pop("stage", None)
        sample = kwargs.pop("sample", None)
        return self.check(self.run(command, args, **kwargs), stage=stage, sample=sample)

    @property
    def history(self) -> List[List[str]]:
        """Commands run so far, in start order."""
        with self._lock:
            return [list(inv.command) for inv in self._history]

    def __repr__(self) -> str:
        """Return string representation of the invoker."""
        return f"ExternalToolInvoker(invocations={len(self._history)})"
