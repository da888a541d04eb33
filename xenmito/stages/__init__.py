"""
Pipeline stages for xenmito.

This package contains all stage implementations organized by category:
- mapping_stages: Nuclear genome mapping, organelle read counts and coverage
- read_stages: Read statistics and long organelle read classification
- variant_stages: Organelle variant calling and final VCF preparation
- output_stages: Run summary report
"""

from .mapping_stages import (
    ComputeCoverageStage,
    CountMitochondrialReadsStage,
    MapToNuclearGenomeStage,
)
from .output_stages import SummaryReportStage
from .read_stages import ClassifyLongReadsStage, ExtractReadStatisticsStage
from .stage_registry import LEGACY_ORDINALS, build_stages, stage_order
from .variant_stages import CallVariantsStage, FinalizeVariantFilesStage

__all__ = [
    "CallVariantsStage",
    "ClassifyLongReadsStage",
    "ComputeCoverageStage",
    "CountMitochondrialReadsStage",
    "ExtractReadStatisticsStage",
    "FinalizeVariantFilesStage",
    "LEGACY_ORDINALS",
    "MapToNuclearGenomeStage",
    "SummaryReportStage",
    "build_stages",
    "stage_order",
]
