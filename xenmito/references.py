"""
Reference set resolution.

The nuclear genome index, organelle reference FASTA and organelle region BED
file are resolved once at startup, validated to exist, and never change for
the rest of the run.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Tuple, Union

from .pipeline_core.error_handling import ConfigurationError, validate_file_exists
from .utils import smart_open

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReferenceSet:
    """Immutable set of reference files used by every stage.

    Attributes
    ----------
    nuclear_genome_index : Path
        minimap2 index of the nuclear reference genome
    organelle_fasta : Path
        Organelle (mitochondrial) reference sequence
    organelle_regions : Path
        BED file describing the organelle regions
    organelle_accession : str
        First header token of the organelle FASTA
    organelle_length : int
        Length of the organelle sequence in bases
    """

    nuclear_genome_index: Path
    organelle_fasta: Path
    organelle_regions: Path
    organelle_accession: str
    organelle_length: int

    @property
    def long_read_cutoff(self) -> int:
        """Minimum matching bases for a read to count as a long organelle read."""
        return self.organelle_length // 2


def read_fasta_summary(fasta_path: Union[str, Path]) -> Tuple[str, int]:
    """Return the accession and sequence length of the first FASTA record.

    Raises
    ------
    ConfigurationError
        If the file holds no FASTA header or an empty sequence
    """
    accession = None
    length = 0
    with smart_open(str(fasta_path), "r") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            if line.startswith(">"):
                if accession is not None:
                    break
                header = line[1:].split()
                if not header:
                    raise ConfigurationError(f"Empty FASTA header in {fasta_path}")
                accession = header[0]
                continue
            if accession is None:
                raise ConfigurationError(f"{fasta_path} does not start with a FASTA header")
            length += len(line)

    if accession is None:
        raise ConfigurationError(f"No FASTA record found in {fasta_path}")
    if length == 0:
        raise ConfigurationError(f"Organelle sequence {accession} in {fasta_path} is empty")
    return accession, length


def resolve_reference_set(
    reference_root: Union[str, Path],
    nuclear_genome_index: Union[str, Path],
    organelle_fasta: Union[str, Path],
    organelle_regions: Union[str, Path],
) -> ReferenceSet:
    """Resolve and validate the reference files.

    Relative paths are taken relative to ``reference_root``; absolute paths
    are used as given.

    Raises
    ------
    ConfigurationError
        If any reference file is missing or unreadable
    """
    root = Path(reference_root).expanduser()

    def _resolve(path: Union[str, Path], description: str) -> Path:
        candidate = Path(path).expanduser()
        if not candidate.is_absolute():
            candidate = root / candidate
        resolved = validate_file_exists(candidate, description)
        logger.info(f"I found the {description} at {resolved}")
        return resolved

    index = _resolve(nuclear_genome_index, "minimap2 index for the nuclear reference genome")
    fasta = _resolve(organelle_fasta, "organelle reference FASTA")
    regions = _resolve(organelle_regions, "organelle regions BED file")

    accession, length = read_fasta_summary(fasta)
    logger.info(f"Organelle reference {accession} is {length} bp long")

    return ReferenceSet(
        nuclear_genome_index=index,
        organelle_fasta=fasta,
        organelle_regions=regions,
        organelle_accession=accession,
        organelle_length=length,
    )
