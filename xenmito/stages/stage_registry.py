"""
Stage Registry - The fixed stage sequence of the pipeline.

This module lists every stage in execution order, together with the step
numbers the shell workflow wrote to its progress log, so that a log started
by that workflow can be resumed.
"""

import logging
from typing import Dict, List, Tuple, Type

from ..pipeline_core.stage import Stage
from .mapping_stages import (
    ComputeCoverageStage,
    CountMitochondrialReadsStage,
    MapToNuclearGenomeStage,
)
from .output_stages import SummaryReportStage
from .read_stages import ClassifyLongReadsStage, ExtractReadStatisticsStage
from .variant_stages import CallVariantsStage, FinalizeVariantFilesStage

logger = logging.getLogger(__name__)

STAGE_CLASSES: Tuple[Type[Stage], ...] = (
    MapToNuclearGenomeStage,
    CountMitochondrialReadsStage,
    ComputeCoverageStage,
    ExtractReadStatisticsStage,
    ClassifyLongReadsStage,
    CallVariantsStage,
    FinalizeVariantFilesStage,
    SummaryReportStage,
)


def build_stages() -> List[Stage]:
    """Instantiate the pipeline stages in execution order."""
    stages = [stage_class() for stage_class in STAGE_CLASSES]
    logger.debug(f"Pipeline stages: {[stage.name for stage in stages]}")
    return stages


def legacy_ordinals(stages: List[Stage]) -> Dict[str, str]:
    """Map the step number of every gated stage to its name.

    Used to read ``StepN completed`` lines of the shell workflow.
    """
    return {stage.ordinal: stage.name for stage in stages if stage.gated and stage.ordinal}


def stage_order(stages: List[Stage]) -> List[Tuple[str, str]]:
    """Return ``(name, ordinal)`` pairs in execution order."""
    return [(stage.name, stage.ordinal) for stage in stages]


LEGACY_ORDINALS: Dict[str, str] = legacy_ordinals(build_stages())
