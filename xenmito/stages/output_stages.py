"""
Output stages.

This module contains the stage that writes the run summary table and its
HTML rendering at the root of the project directory.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List

from ..pipeline_core import ArtifactRole, PipelineContext, Stage
from ..report import (
    SUMMARY_HTML,
    SUMMARY_TSV,
    build_summary_table,
    collect_sample_summary,
    generate_html_report,
    read_mapping_stats,
    write_summary_tsv,
)
from ..version import __version__
from .mapping_stages import MAPPING_STATS_FILE
from .variant_stages import sample_identifier

logger = logging.getLogger(__name__)


class SummaryReportStage(Stage):
    """Summarize read and variant counts of every sample."""

    @property
    def name(self) -> str:
        """Return the stage name."""
        return "summary-report"

    @property
    def description(self) -> str:
        """Return a description of what this stage does."""
        return "Write the run summary"

    @property
    def gated(self) -> bool:
        """Return False; the summary reflects the current artifacts on every run."""
        return False

    def process_sample(self, context: PipelineContext, sample) -> Dict[str, Any]:
        """Collect the counts of ``sample``."""
        sample_id = sample_identifier(context.config.sample_id_prefix, sample.name)
        return collect_sample_summary(context.workspace, sample.name, sample_id)

    def aggregate(self, context: PipelineContext) -> None:
        """Write ``summary.tsv`` and ``summary.html``."""
        workspace = context.workspace
        collected = context.get_result(self.name) or {}
        rows = [collected[name] for name in context.sample_names if name in collected]
        mapping_stats = read_mapping_stats(
            workspace.aggregate_path(ArtifactRole.RAW_MAPPING, MAPPING_STATS_FILE)
        )
        summary = build_summary_table(rows, mapping_stats)

        write_summary_tsv(summary, workspace.root / SUMMARY_TSV)
        references = context.references
        generate_html_report(
            summary,
            workspace.root / SUMMARY_HTML,
            workspace.project_name,
            metadata={
                "xenmito version": __version__,
                "Nuclear genome index": str(references.nuclear_genome_index),
                "Organelle reference": f"{references.organelle_accession} "
                f"({references.organelle_length} bp)",
                "Input directory": str(context.config.input_directory),
            },
        )

    def get_output_files(self, context: PipelineContext, sample) -> List[Path]:
        """Return the project-level summary files."""
        return [context.workspace.root / SUMMARY_TSV, context.workspace.root / SUMMARY_HTML]
