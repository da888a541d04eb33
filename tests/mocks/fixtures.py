"""Test fixtures and factory functions."""

from pathlib import Path
from typing import Dict, List

from .external_tools import ORGANELLE_CONTIG, ORGANELLE_LENGTH

SAMPLE_NAMES = ["barcode01", "barcode02", "barcode03"]

# name -> read length; "mt" reads align to the organelle in the fake tools
READS = {
    "mt_read1": 80,
    "mt_read2": 120,
    "mt_short": 30,
    "nuc_read1": 60,
}


def write_fastq(path: Path, reads: Dict[str, int]) -> Path:
    """Write a FASTQ file holding one record per ``name -> length``."""
    with open(path, "w", encoding="utf-8") as f:
        for name, length in reads.items():
            f.write(f"@{name}\n{'A' * length}\n+\n{'I' * length}\n")
    return path


def create_test_sample(input_dir: Path, name: str, extension: str = "fastq") -> Path:
    """Add the standard reads as input file ``<name>.<extension>``."""
    return write_fastq(Path(input_dir) / f"{name}.{extension}", READS)


def create_test_references(directory: Path) -> Path:
    """Write a dummy genome index and a small organelle reference into ``directory``."""
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    (directory / "genome.mmi").write_bytes(b"MMI\x02")
    (directory / "mito.fasta").write_text(
        f">{ORGANELLE_CONTIG} test organelle\n{'ACGT' * (ORGANELLE_LENGTH // 4)}\n"
    )
    (directory / "mito.bed").write_text(f"{ORGANELLE_CONTIG}\t0\t{ORGANELLE_LENGTH}\n")
    return directory


def read_log_lines(path: Path) -> List[str]:
    """Return the non-empty lines of a checkpoint log."""
    path = Path(path)
    if not path.exists():
        return []
    return [line for line in path.read_text().splitlines() if line.strip()]


def run_stage(stage, context):
    """Run ``stage`` for every sample in order, then aggregate; return the per-sample values."""
    values = {}
    for sample in context.samples:
        values[sample.name] = stage.process_sample(context, sample)
        if values[sample.name] is not None:
            context.record_result(stage.name, sample.name, values[sample.name])
    stage.aggregate(context)
    return values


def run_stages(context, stage_classes):
    """Run each stage class in turn, the way a sequential pipeline run would."""
    return {cls().name: run_stage(cls(), context) for cls in stage_classes}
