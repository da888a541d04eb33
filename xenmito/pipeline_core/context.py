"""
PipelineContext - Single source of truth for pipeline state and data.

This module provides the PipelineContext dataclass handed to every stage,
carrying the immutable run configuration, the reference set, the fixed list
of samples, the artifact store and the tool invoker.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Set

from .invoker import ExternalToolInvoker
from .workspace import ArtifactStore

if TYPE_CHECKING:
    from ..config import PipelineConfig
    from ..references import ReferenceSet
    from ..resources import ResourceHints
    from ..samples import SampleUnit

logger = logging.getLogger(__name__)


@dataclass
class PipelineContext:
    """Container for all pipeline state - the single source of truth.

    Attributes
    ----------
    config : PipelineConfig
        Immutable run configuration
    workspace : ArtifactStore
        Owns the project root and artifact naming
    references : ReferenceSet
        Validated reference files
    samples : List[SampleUnit]
        Input files enumerated at startup; fixed for the run
    invoker : ExternalToolInvoker
        Runs the external collaborators
    start_time : datetime
        Pipeline execution start time
    completed_stages : Set[str]
        Stages completed (run or skipped) in this invocation
    stage_results : Dict[str, Any]
        Per-stage values stages want to share (e.g. read counts)
    """

    # --- Immutable Configuration ---
    config: "PipelineConfig"
    workspace: ArtifactStore
    references: "ReferenceSet"
    samples: List["SampleUnit"]
    invoker: ExternalToolInvoker
    start_time: datetime = field(default_factory=datetime.now)

    # --- Mutable State ---
    completed_stages: Set[str] = field(default_factory=set)
    stage_results: Dict[str, Any] = field(default_factory=dict)

    # Thread safety lock for per-sample workers
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False, repr=False)

    @property
    def resources(self) -> "ResourceHints":
        """Resource hints from the configuration."""
        return self.config.resources

    @property
    def sample_names(self) -> List[str]:
        """Names of the samples of this run, in order."""
        return [s.name for s in self.samples]

    def mark_complete(self, stage_name: str) -> None:
        """Mark a stage as complete for this invocation."""
        with self._lock:
            self.completed_stages.add(stage_name)
            logger.debug(f"Stage '{stage_name}' marked as complete")

    def is_complete(self, stage_name: str) -> bool:
        """Check if a stage has been completed in this invocation."""
        with self._lock:
            return stage_name in self.completed_stages

    def record_result(self, stage_name: str, sample_name: str, value: Any) -> None:
        """Store a per-sample value produced by a stage.

        Safe to call from concurrent per-sample workers.
        """
        with self._lock:
            self.stage_results.setdefault(stage_name, {})[sample_name] = value

    def get_result(self, stage_name: str) -> Optional[Any]:
        """Get the stored results for a stage, or None if none were recorded."""
        with self._lock:
            return self.stage_results.get(stage_name)

    def get_execution_time(self) -> float:
        """Get the elapsed execution time in seconds."""
        return (datetime.now() - self.start_time).total_seconds()

    def __repr__(self) -> str:
        """Return string representation showing key state information."""
        return (
            f"PipelineContext("
            f"project='{self.workspace.project_name}', "
            f"samples={len(self.samples)}, "
            f"stages_completed={len(self.completed_stages)}, "
            f"execution_time={self.get_execution_time():.1f}s)"
        )
