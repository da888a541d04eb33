"""
Pipeline infrastructure for xenmito.

This package provides the core abstractions of the resumable pipeline:
- PipelineContext: Container for all pipeline state and data
- Stage: Abstract base class for all pipeline steps
- ArtifactStore: Centralized file path management
- ExternalToolInvoker: Runs the external collaborators
- StageRunner: Fans one stage out over the samples and joins them
- PipelineController: Walks the stage sequence with checkpoint gating
"""

from .context import PipelineContext
from .controller import PipelineController, PipelineStatus, StageAction
from .invoker import ExternalToolInvoker, ToolPaths, ToolResult
from .runner import StageResult, StageRunner
from .stage import Stage
from .workspace import ArtifactRole, ArtifactStore

__all__ = [
    "ArtifactRole",
    "ArtifactStore",
    "ExternalToolInvoker",
    "PipelineContext",
    "PipelineController",
    "PipelineStatus",
    "Stage",
    "StageAction",
    "StageResult",
    "StageRunner",
    "ToolPaths",
    "ToolResult",
]
