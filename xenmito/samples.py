"""
Input sample discovery.

A SampleUnit is one input read file and everything derived from it. The set
of SampleUnits is enumerated once at startup and stays fixed for the run.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Union

from .pipeline_core.error_handling import ConfigurationError, validate_input_directory

logger = logging.getLogger(__name__)


@dataclass(frozen=True, order=True)
class SampleUnit:
    """One input sequence file, identified by its extension-stripped base name."""

    name: str
    path: Path

    def __str__(self) -> str:
        return self.name


def normalize_extension(extension: str) -> str:
    """Strip surrounding whitespace and leading dots from a file extension."""
    extension = (extension or "").strip().lstrip(".")
    if not extension:
        raise ConfigurationError("Input file extension must not be empty")
    return extension


def sample_name_for(path: Union[str, Path], extension: str) -> str:
    """Return the base name of ``path`` with ``.<extension>`` removed."""
    suffix = "." + normalize_extension(extension)
    name = Path(path).name
    if not name.endswith(suffix) or len(name) == len(suffix):
        raise ValueError(f"{name} does not carry the extension {suffix}")
    return name[: -len(suffix)]


def discover_samples(directory: Union[str, Path], extension: str) -> List[SampleUnit]:
    """Enumerate the input files of a run.

    Parameters
    ----------
    directory : str or Path
        Directory scanned (non-recursively) for input files
    extension : str
        File extension, with or without the leading dot (e.g. ``"fastq"``)

    Returns
    -------
    List[SampleUnit]
        One unit per regular file ending in ``.<extension>``, sorted by name,
        so the result does not depend on directory listing order

    Raises
    ------
    ConfigurationError
        If the directory does not exist
    """
    directory = validate_input_directory(directory, "Input directory")

    suffix = "." + normalize_extension(extension)
    units = {}
    for path in directory.iterdir():
        if not path.is_file() or not path.name.endswith(suffix) or path.name == suffix:
            continue
        name = sample_name_for(path, extension)
        units[name] = SampleUnit(name=name, path=path.resolve())

    samples = [units[name] for name in sorted(units)]
    logger.debug(f"Discovered {len(samples)} input files in {directory}: {list(units)}")
    return samples
