"""
Read stages.

This module contains the stages that compile per-read statistics (length,
mean quality, origin), extract the organelle reads, and single out the long
organelle reads spanning at least half of the organelle genome.
"""

import logging
from pathlib import Path
from typing import Dict, List, Union

from ..pipeline_core import ArtifactRole, PipelineContext, Stage
from ..utils import count_fasta_records, count_fastq_records
from .mapping_stages import organelle_ids_path, sorted_bam_path

logger = logging.getLogger(__name__)

READ_STATS_PROGRAM = (
    'BEGIN { OFS = "\\t"; while ((getline k < match_file) > 0) ids[k] = 1 } '
    '{ print $name, length($seq), meanqual($qual), (ids[$name] ? "mtDNA" : "nucDNA"), sample }'
)

SMALL_LONG_READS_PROGRAM = (
    "BEGIN { while ((getline k < match_file) > 0) ids[k] = 1 } "
    'ids[$name] && length($seq) <= match_length { print ">"$name" "length($seq); print $seq }'
)

VERY_LONG_READS_PROGRAM = (
    "BEGIN { while ((getline k < match_file) > 0) ids[k] = 1 } "
    'ids[$name] && length($seq) >= match_length { print ">"$name" "length($seq); print $seq }'
)


def organelle_reads_path(context: PipelineContext, sample_name: str) -> Path:
    """FASTQ holding the reads of a sample that mapped to the organelle regions."""
    return context.workspace.artifact_path(
        ArtifactRole.ORGANELLE_READS, sample_name, "mtDNA", "fastq"
    )


def long_reads_path(context: PipelineContext, sample_name: str, extension: str) -> Path:
    """Info (``"info"``) or identifier (``"ids"``) file of a sample's long organelle reads."""
    return context.workspace.artifact_path(
        ArtifactRole.LONG_ORGANELLE_READS, sample_name, "long_mtDNA_reads", extension
    )


def long_reads_fasta_path(context: PipelineContext, sample_name: str, size_class: str) -> Path:
    """FASTA of a sample's long organelle reads of ``size_class`` ``"small"`` or ``"very"``."""
    return context.workspace.artifact_path(
        ArtifactRole.LONG_ORGANELLE_READS,
        sample_name,
        f"{size_class}.long_mtDNA_reads",
        "fasta",
    )


def select_long_reads(
    paf_path: Union[str, Path],
    info_path: Union[str, Path],
    ids_path: Union[str, Path],
    accession: str,
    cutoff: int,
) -> int:
    """
    Select alignments to the organelle with more than ``cutoff`` matching bases.

    Parameters
    ----------
    paf_path : str or Path
        PAF records (``htsbox samview -p``)
    info_path : str or Path
        Receives ``name read_length matches identity`` per selected alignment
    ids_path : str or Path
        Receives each selected read name once
    accession : str
        Organelle sequence name the target column must equal
    cutoff : int
        Matching bases an alignment must exceed

    Returns
    -------
    int
        Number of selected alignments
    """
    selected = 0
    seen = set()
    with open(paf_path, "r", encoding="utf-8") as paf, open(
        info_path, "w", encoding="utf-8"
    ) as info, open(ids_path, "w", encoding="utf-8") as ids:
        for line in paf:
            fields = line.rstrip("\n").split("\t")
            if len(fields) < 11 or fields[5] != accession:
                continue
            matches, block_length = int(fields[9]), int(fields[10])
            if matches <= cutoff:
                continue
            identity = matches / block_length if block_length else 0.0
            info.write(f"{fields[0]} {fields[1]} {matches} {identity:.6g}\n")
            selected += 1
            if fields[0] not in seen:
                seen.add(fields[0])
                ids.write(f"{fields[0]}\n")
    return selected


class ExtractReadStatisticsStage(Stage):
    """Compile read size, quality and origin, and extract the organelle reads."""

    @property
    def name(self) -> str:
        """Return the stage name."""
        return "extract-read-statistics"

    @property
    def ordinal(self) -> str:
        """Return the workflow step number."""
        return "3.3"

    @property
    def description(self) -> str:
        """Return a description of what this stage does."""
        return "Compile read sizes, qualities and origin"

    def process_sample(self, context: PipelineContext, sample) -> int:
        """Write the read statistics and organelle reads of ``sample``.

        Returns
        -------
        int
            Number of organelle reads extracted
        """
        workspace = context.workspace
        workspace.directory(ArtifactRole.STATISTICS)
        workspace.directory(ArtifactRole.ORGANELLE_READS)
        ids = organelle_ids_path(context, sample.name)
        stats = workspace.artifact_path(ArtifactRole.STATISTICS, sample.name, "seqlenqual", "txt")
        organelle_reads = organelle_reads_path(context, sample.name)

        start = self._start_subtask("read_statistics")
        self.run_tool(
            context,
            sample,
            "bioawk",
            [
                "-v",
                f"match_file={ids}",
                "-v",
                f"sample={sample.name}",
                "-c",
                "fastx",
                READ_STATS_PROGRAM,
                sample.path,
            ],
            stdout_path=stats,
        )
        self._end_subtask("read_statistics", start)

        start = self._start_subtask("extract_organelle_reads")
        self.run_tool(
            context, sample, "seqtk", ["subseq", sample.path, ids], stdout_path=organelle_reads
        )
        self._end_subtask("extract_organelle_reads", start)

        extracted = count_fastq_records(organelle_reads)
        logger.info(f"{sample.name}: {extracted} organelle reads extracted")
        return extracted

    def get_output_files(self, context: PipelineContext, sample) -> List[Path]:
        """Return the statistics table and organelle FASTQ written for ``sample``."""
        return [
            context.workspace.artifact_path(
                ArtifactRole.STATISTICS, sample.name, "seqlenqual", "txt"
            ),
            organelle_reads_path(context, sample.name),
        ]


class ClassifyLongReadsStage(Stage):
    """Identify long organelle reads and split them by size relative to the organelle."""

    @property
    def name(self) -> str:
        """Return the stage name."""
        return "classify-long-reads"

    @property
    def ordinal(self) -> str:
        """Return the workflow step number."""
        return "4"

    @property
    def description(self) -> str:
        """Return a description of what this stage does."""
        return "Identify long organelle reads"

    def process_sample(self, context: PipelineContext, sample) -> Dict[str, int]:
        """Select and split the long organelle reads of ``sample``."""
        workspace = context.workspace
        references = context.references
        workspace.directory(ArtifactRole.LONG_ORGANELLE_READS)
        workspace.directory(ArtifactRole.TEMP)
        paf = workspace.temp_path(f"{sample.name}.paf")
        info = long_reads_path(context, sample.name, "info")
        ids = long_reads_path(context, sample.name, "ids")

        try:
            start = self._start_subtask("select_long_reads")
            self.run_tool(
                context,
                sample,
                "htsbox",
                ["samview", "-p", sorted_bam_path(context, sample.name)],
                stdout_path=paf,
            )
            long_reads = select_long_reads(
                paf, info, ids, references.organelle_accession, references.long_read_cutoff
            )
            self._end_subtask("select_long_reads", start)
        finally:
            self.remove_quietly(paf)
        logger.info(f"Found {long_reads} long mtDNA reads in {sample.name}")

        counts = {"long_reads": long_reads}
        start = self._start_subtask("split_by_size")
        for size_class, program in (
            ("small", SMALL_LONG_READS_PROGRAM),
            ("very", VERY_LONG_READS_PROGRAM),
        ):
            output = long_reads_fasta_path(context, sample.name, size_class)
            self.run_tool(
                context,
                sample,
                "bioawk",
                [
                    "-v",
                    f"match_file={ids}",
                    "-v",
                    f"match_length={references.organelle_length}",
                    "-c",
                    "fastx",
                    program,
                    sample.path,
                ],
                stdout_path=output,
            )
            counts[f"{size_class}_long_reads"] = count_fasta_records(output)
        self._end_subtask("split_by_size", start)

        logger.debug(
            f"{sample.name}: {counts['small_long_reads']} long reads up to the organelle length, "
            f"{counts['very_long_reads']} at least as long"
        )
        return counts

    def get_output_files(self, context: PipelineContext, sample) -> List[Path]:
        """Return the long read tables and FASTA files written for ``sample``."""
        return [
            long_reads_path(context, sample.name, "info"),
            long_reads_path(context, sample.name, "ids"),
            long_reads_fasta_path(context, sample.name, "small"),
            long_reads_fasta_path(context, sample.name, "very"),
        ]
