"""
Variant stages.

This module contains the stage that maps the organelle reads to the
organelle reference and calls phased variants with medaka, and the tail
stage that renames, filters, compresses and indexes the resulting VCFs.
"""

import logging
import shutil
from pathlib import Path
from typing import List, Union

from ..pipeline_core import ArtifactRole, PipelineContext, Stage
from ..pipeline_core.error_handling import StageUnitFailure
from .read_stages import organelle_reads_path

logger = logging.getLogger(__name__)

ALL_QUAL_STATS_FILE = "all_qual_stats.txt"


def variant_output_dir(context: PipelineContext, sample_name: str) -> Path:
    """Output directory of the variant caller for a sample."""
    return context.workspace.role_path(ArtifactRole.VARIANT_OUTPUT) / f"{sample_name}.medaka_variant"


def final_vcf_path(context: PipelineContext, sample_name: str) -> Path:
    """Filtered, renamed VCF of a sample (bgzip-compressed after finalization)."""
    return context.workspace.artifact_path(
        ArtifactRole.FINAL_VARIANTS, sample_name, "medaka_variant", "vcf"
    )


def qual_stats_path(context: PipelineContext, sample_name: str) -> Path:
    """Position/quality table of a sample's organelle variants."""
    return context.workspace.artifact_path(
        ArtifactRole.FINAL_VARIANTS, sample_name, "medaka_variant.qual_stats", "txt"
    )


def sample_identifier(prefix: str, sample_name: str) -> str:
    """Identifier written into the sample column of a sample's VCF."""
    return f"{prefix}{sample_name.upper()}"


def rename_sample_column(
    source: Union[str, Path], destination: Union[str, Path], sample_id: str
) -> bool:
    """
    Copy a VCF, renaming its ``SAMPLE`` genotype column to ``sample_id``.

    Returns
    -------
    bool
        Whether a ``SAMPLE`` column was found in the header
    """
    renamed = False
    with open(source, "r", encoding="utf-8") as src, open(
        destination, "w", encoding="utf-8"
    ) as dst:
        for line in src:
            if not renamed and line.startswith("#CHROM"):
                fields = line.rstrip("\n").split("\t")
                if "SAMPLE" in fields[9:]:
                    fields[fields.index("SAMPLE", 9)] = sample_id
                    line = "\t".join(fields) + "\n"
                    renamed = True
            dst.write(line)
    return renamed


def write_qual_stats(
    vcf_path: Union[str, Path], output_path: Union[str, Path], accession: str, sample_id: str
) -> int:
    """
    Write ``POS QUAL sample_id`` for every record on the organelle sequence.

    Returns
    -------
    int
        Number of records written
    """
    written = 0
    with open(vcf_path, "r", encoding="utf-8") as vcf, open(
        output_path, "w", encoding="utf-8"
    ) as out:
        for line in vcf:
            if line.startswith("#"):
                continue
            fields = line.rstrip("\n").split("\t")
            if len(fields) < 6 or not fields[0].startswith(accession):
                continue
            out.write(f"{fields[1]} {fields[5]} {sample_id}\n")
            written += 1
    return written


class CallVariantsStage(Stage):
    """Map organelle reads to the organelle reference and call phased variants."""

    @property
    def name(self) -> str:
        """Return the stage name."""
        return "call-variants"

    @property
    def ordinal(self) -> str:
        """Return the workflow step number."""
        return "5.5"

    @property
    def description(self) -> str:
        """Return a description of what this stage does."""
        return "Map to the organelle reference and call variants"

    def process_sample(self, context: PipelineContext, sample) -> None:
        """Align, sort, index and run medaka for ``sample``."""
        workspace = context.workspace
        references = context.references
        resources = context.resources
        workspace.directory(ArtifactRole.REFERENCE_MAPPING)
        workspace.directory(ArtifactRole.VARIANT_OUTPUT)
        workspace.directory(ArtifactRole.TEMP)

        sam = workspace.artifact_path(
            ArtifactRole.REFERENCE_MAPPING, sample.name, "mtDNA.aln", "sam"
        )
        bam = workspace.artifact_path(
            ArtifactRole.REFERENCE_MAPPING, sample.name, "mtDNA.sorted", "bam"
        )
        output_dir = variant_output_dir(context, sample.name)
        logger.info(f"Mapping to the organelle reference alone: {sample.name}")

        start = self._start_subtask("map_to_organelle")
        self.run_tool(
            context,
            sample,
            "minimap2",
            [
                "--secondary=no",
                "-t",
                resources.threads,
                "-ax",
                "map-ont",
                references.organelle_fasta,
                organelle_reads_path(context, sample.name),
            ],
            stdout_path=sam,
        )
        self.run_tool(
            context,
            sample,
            "samtools",
            ["sort", sam, "-o", bam, "-T", workspace.temp_path(f"{sample.name}.reads.tmp")],
        )
        self.run_tool(context, sample, "samtools", ["index", bam])
        self.remove_quietly(sam)
        self._end_subtask("map_to_organelle", start)

        # medaka starts from an empty output directory
        if output_dir.exists():
            shutil.rmtree(output_dir)

        start = self._start_subtask("medaka_variant")
        self.run_tool(
            context,
            sample,
            "medaka_variant",
            [
                "-f",
                references.organelle_fasta,
                "-i",
                bam,
                "-o",
                output_dir,
                "-d",
                "-t",
                resources.variant_threads,
            ],
            working_dir=context.config.input_directory,
        )
        self._end_subtask("medaka_variant", start)

        vcf = output_dir / context.config.variant_vcf_name
        if not vcf.is_file():
            raise StageUnitFailure(self.name, sample.name, f"variant caller wrote no {vcf}")

    def get_output_files(self, context: PipelineContext, sample) -> List[Path]:
        """Return the phased VCF expected for ``sample``."""
        return [variant_output_dir(context, sample.name) / context.config.variant_vcf_name]


class FinalizeVariantFilesStage(Stage):
    """Rename the sample column, filter, compress and index each sample's VCF.

    Runs on every invocation and overwrites its outputs in place.
    """

    @property
    def name(self) -> str:
        """Return the stage name."""
        return "finalize-variant-files"

    @property
    def ordinal(self) -> str:
        """Return the workflow step number."""
        return "5.6"

    @property
    def description(self) -> str:
        """Return a description of what this stage does."""
        return "Rename, filter, compress and index the variant files"

    @property
    def gated(self) -> bool:
        """Return False; this stage runs on every invocation."""
        return False

    def process_sample(self, context: PipelineContext, sample) -> int:
        """Produce the final VCF and quality table of ``sample``.

        Returns
        -------
        int
            Number of organelle variant records
        """
        workspace = context.workspace
        workspace.directory(ArtifactRole.FINAL_VARIANTS)
        workspace.directory(ArtifactRole.TEMP)
        sample_id = sample_identifier(context.config.sample_id_prefix, sample.name)
        source = variant_output_dir(context, sample.name) / context.config.variant_vcf_name
        if not source.is_file():
            raise StageUnitFailure(self.name, sample.name, f"variant file not found: {source}")

        renamed = workspace.temp_path(f"{sample.name}.renamed.vcf")
        final_vcf = final_vcf_path(context, sample.name)
        try:
            if not rename_sample_column(source, renamed, sample_id):
                logger.warning(f"No SAMPLE column to rename in {source}")
            self.run_tool(
                context,
                sample,
                "vcf_annotate",
                ["-f", "+", "-H", renamed],
                stdout_path=final_vcf,
            )
        finally:
            self.remove_quietly(renamed)

        records = write_qual_stats(
            final_vcf,
            qual_stats_path(context, sample.name),
            context.references.organelle_accession,
            sample_id,
        )

        start = self._start_subtask("compress_and_index")
        self.run_tool(context, sample, "bgzip", ["-f", final_vcf])
        self.run_tool(context, sample, "tabix", ["-f", "-p", "vcf", f"{final_vcf}.gz"])
        self._end_subtask("compress_and_index", start)

        logger.info(f"{sample_id}: {records} organelle variant records")
        return records

    def aggregate(self, context: PipelineContext) -> None:
        """Concatenate the per-sample quality tables into ``all_qual_stats.txt``."""
        output = context.workspace.aggregate_path(ArtifactRole.FINAL_VARIANTS, ALL_QUAL_STATS_FILE)
        with open(output, "w", encoding="utf-8") as out:
            for name in context.sample_names:
                with open(qual_stats_path(context, name), "r", encoding="utf-8") as f:
                    shutil.copyfileobj(f, out)
        logger.info(f"Variant qualities of {len(context.sample_names)} samples written to {output}")

    def get_output_files(self, context: PipelineContext, sample) -> List[Path]:
        """Return the compressed VCF, its index and the quality table of ``sample``."""
        vcf = final_vcf_path(context, sample.name)
        return [
            Path(f"{vcf}.gz"),
            Path(f"{vcf}.gz.tbi"),
            qual_stats_path(context, sample.name),
        ]
