"""
Mapping stages.

This module contains the stages that map the raw reads against the nuclear
genome, count the reads falling into the organelle regions, and compute
per-base organelle coverage from sorted alignments.
"""

import logging
from pathlib import Path
from typing import Dict, List

import pandas as pd

from ..pipeline_core import ArtifactRole, PipelineContext, Stage
from ..utils import count_fastq_records, parse_count, write_unique_first_column

logger = logging.getLogger(__name__)

MAPPING_STATS_FILE = "mapping_stats.txt"
MAPPING_STATS_COLUMNS = ["name", "all_count", "nuc_count", "mito_count"]

# Drops exact duplicate records; a record bioawk cannot parse fails the sample
DEDUP_PROGRAM = '!x[$0]++ {print "@"$name"\\n"$seq"\\n+\\n"$qual}'

COVERAGE_MODES = (
    ("coverage_pos", ["-s"]),
    ("coverage_neg", ["-S"]),
    ("coverage", []),
)


def raw_sam_path(context: PipelineContext, sample_name: str) -> Path:
    """Alignment of a sample's reads against the nuclear genome."""
    return context.workspace.artifact_path(ArtifactRole.RAW_MAPPING, sample_name, "aln", "sam")


def sorted_bam_path(context: PipelineContext, sample_name: str) -> Path:
    """Sorted, indexed nuclear genome alignment of a sample."""
    return context.workspace.artifact_path(
        ArtifactRole.RAW_MAPPING, sample_name, "sorted", "bam"
    )


def organelle_ids_path(context: PipelineContext, sample_name: str) -> Path:
    """Identifiers of the reads mapped inside the organelle regions."""
    return context.workspace.artifact_path(
        ArtifactRole.RAW_MAPPING, sample_name, "matchmtDNA", "ids"
    )


def read_counts_path(context: PipelineContext, sample_name: str) -> Path:
    """One-line read count table of a sample."""
    return context.workspace.artifact_path(
        ArtifactRole.RAW_MAPPING, sample_name, "full", "count"
    )


class MapToNuclearGenomeStage(Stage):
    """Check input reads for redundancy and map them against the nuclear genome."""

    @property
    def name(self) -> str:
        """Return the stage name."""
        return "map-to-nuclear-genome"

    @property
    def ordinal(self) -> str:
        """Return the workflow step number."""
        return "1"

    @property
    def description(self) -> str:
        """Return a description of what this stage does."""
        return "Map reads against the nuclear reference genome"

    def process_sample(self, context: PipelineContext, sample) -> int:
        """Deduplicate the reads of ``sample`` and map them with minimap2.

        Returns
        -------
        int
            Number of unique reads that were mapped
        """
        workspace = context.workspace
        workspace.directory(ArtifactRole.RAW_MAPPING)
        workspace.directory(ArtifactRole.TEMP)
        unique_reads = workspace.temp_path(f"{sample.name}.unique.fastq")
        output = raw_sam_path(context, sample.name)

        try:
            start = self._start_subtask("deduplicate_reads")
            self.run_tool(
                context,
                sample,
                "bioawk",
                ["-c", "fastx", DEDUP_PROGRAM, sample.path],
                stdout_path=unique_reads,
            )
            n_start = count_fastq_records(sample.path)
            n_end = count_fastq_records(unique_reads)
            self._end_subtask("deduplicate_reads", start)
            if n_start != n_end:
                logger.warning(
                    f"Redundancy problem encountered with {sample.path}: "
                    f"{n_start} reads, {n_end} unique"
                )

            logger.info(
                f"Mapping {sample.path} against {context.references.nuclear_genome_index}..."
            )
            start = self._start_subtask("minimap2")
            self.run_tool(
                context,
                sample,
                "minimap2",
                [
                    "--secondary=no",
                    "-t",
                    context.resources.threads,
                    "-a",
                    context.references.nuclear_genome_index,
                    unique_reads,
                ],
                stdout_path=output,
            )
            self._end_subtask("minimap2", start)
        finally:
            self.remove_quietly(unique_reads)

        return n_end

    def get_output_files(self, context: PipelineContext, sample) -> List[Path]:
        """Return the alignment written for ``sample``."""
        return [raw_sam_path(context, sample.name)]


class CountMitochondrialReadsStage(Stage):
    """Count organelle and nuclear reads and record the organelle read identifiers."""

    @property
    def name(self) -> str:
        """Return the stage name."""
        return "count-mitochondrial-reads"

    @property
    def ordinal(self) -> str:
        """Return the workflow step number."""
        return "2.6"

    @property
    def description(self) -> str:
        """Return a description of what this stage does."""
        return "Count the matches to the organelle genome"

    def process_sample(self, context: PipelineContext, sample) -> Dict[str, int]:
        """Count reads of ``sample`` inside and outside the organelle regions."""
        workspace = context.workspace
        regions = context.references.organelle_regions
        sam = raw_sam_path(context, sample.name)
        logger.info(f"Counting the matches to the organelle genome for {sample.name}")

        result = self.run_tool(context, sample, "samtools", ["view", "-c", "-L", regions, sam])
        mito_count = parse_count(result.stdout)

        workspace.directory(ArtifactRole.TEMP)
        hits = workspace.temp_path(f"{sample.name}.organelle_hits.sam")
        try:
            self.run_tool(
                context, sample, "samtools", ["view", "-L", regions, sam], stdout_path=hits
            )
            unique_ids = write_unique_first_column(hits, organelle_ids_path(context, sample.name))
        finally:
            self.remove_quietly(hits)

        result = self.run_tool(context, sample, "samtools", ["view", "-c", sam])
        all_count = parse_count(result.stdout)
        nuc_count = all_count - mito_count

        with open(read_counts_path(context, sample.name), "w", encoding="utf-8") as f:
            f.write(f"{sample.name:<10s} {all_count:7d} {nuc_count:7d} {mito_count:7d}\n")

        logger.debug(
            f"{sample.name}: {all_count} alignments, {mito_count} organelle "
            f"({unique_ids} distinct reads), {nuc_count} nuclear"
        )
        return {"all_count": all_count, "nuc_count": nuc_count, "mito_count": mito_count}

    def aggregate(self, context: PipelineContext) -> None:
        """Collect the per-sample counts into ``mapping_stats.txt``."""
        frames = [
            pd.read_csv(
                read_counts_path(context, name),
                sep=r"\s+",
                header=None,
                names=MAPPING_STATS_COLUMNS,
                dtype={"name": str},
            )
            for name in context.sample_names
        ]
        stats = pd.concat(frames, ignore_index=True)
        output = context.workspace.aggregate_path(ArtifactRole.RAW_MAPPING, MAPPING_STATS_FILE)
        stats.to_csv(output, sep=" ", index=False)
        logger.info(f"Mapping statistics for {len(stats)} samples written to {output}")

    def get_output_files(self, context: PipelineContext, sample) -> List[Path]:
        """Return the id list and count table written for ``sample``."""
        return [organelle_ids_path(context, sample.name), read_counts_path(context, sample.name)]


class ComputeCoverageStage(Stage):
    """Sort and index the nuclear genome alignments and compute organelle coverage."""

    @property
    def name(self) -> str:
        """Return the stage name."""
        return "compute-coverage"

    @property
    def ordinal(self) -> str:
        """Return the workflow step number."""
        return "2.7"

    @property
    def description(self) -> str:
        """Return a description of what this stage does."""
        return "Sort alignments and compute stranded organelle coverage"

    def process_sample(self, context: PipelineContext, sample) -> None:
        """Write the sorted BAM and the three coverage tracks of ``sample``."""
        workspace = context.workspace
        resources = context.resources
        regions = context.references.organelle_regions
        sam = raw_sam_path(context, sample.name)
        bam = sorted_bam_path(context, sample.name)
        workspace.directory(ArtifactRole.TEMP)

        start = self._start_subtask("sort_and_index")
        self.run_tool(
            context,
            sample,
            "samtools",
            [
                "sort",
                "-m",
                resources.sort_memory,
                "-@",
                resources.sort_threads,
                "-T",
                workspace.temp_path(f"{sample.name}.sort"),
                "-o",
                bam,
                sam,
            ],
        )
        self.run_tool(
            context, sample, "samtools", ["index", "-b", "-@", resources.sort_threads, bam]
        )
        self._end_subtask("sort_and_index", start)

        start = self._start_subtask("coverage")
        for suffix, strand_args in COVERAGE_MODES:
            output = workspace.artifact_path(ArtifactRole.RAW_MAPPING, sample.name, suffix, "bed")
            self.run_tool(
                context,
                sample,
                "bedtools",
                ["coverage", "-a", regions, "-b", bam, "-bed", "-d"] + strand_args,
                stdout_path=output,
            )
        self._end_subtask("coverage", start)

    def cleanup(self, context: PipelineContext) -> None:
        """Remove the raw alignments once coverage has been committed."""
        if context.config.keep_intermediates:
            logger.info("Keeping raw SAM files (keep_intermediates is set)")
            return
        removed = sum(self.remove_quietly(raw_sam_path(context, name)) for name in context.sample_names)
        logger.info(f"Removed {removed} raw SAM file(s)")

    def get_output_files(self, context: PipelineContext, sample) -> List[Path]:
        """Return the BAM and coverage tracks written for ``sample``."""
        return [sorted_bam_path(context, sample.name)] + [
            context.workspace.artifact_path(ArtifactRole.RAW_MAPPING, sample.name, suffix, "bed")
            for suffix, _ in COVERAGE_MODES
        ]
