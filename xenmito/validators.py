# File: xenmito/validators.py
# Location: xenmito/xenmito/validators.py

"""
Validation module for xenmito.

This module provides functions to validate:
- The project name (used as a directory name)
- Mandatory configuration parameters
- The organelle regions BED file (existence, non-empty, column layout)
- The enumerated input files (at least one, non-empty)

These validations ensure that all critical inputs and parameters are
provided correctly before any stage runs. Every failure is raised as a
ConfigurationError.
"""

import logging
import os
import re
from typing import Any, Iterable, List, Mapping

from .pipeline_core.error_handling import ConfigurationError

logger = logging.getLogger("xenmito")

MANDATORY_PARAMETERS = (
    "input_directory",
    "nuclear_genome_index",
    "organelle_fasta",
    "organelle_regions",
)

_PROJECT_NAME = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def validate_project_name(project_name: str) -> str:
    """
    Validate that the project name can be used as a directory name.

    Parameters
    ----------
    project_name : str
        Name given with ``-p/--project``.

    Returns
    -------
    str
        The stripped project name.

    Raises
    ------
    ConfigurationError
        If the name is empty or contains characters other than letters,
        digits, dots, dashes and underscores.
    """
    name = (project_name or "").strip()
    if not name or not _PROJECT_NAME.match(name):
        raise ConfigurationError(
            f"Invalid project name {project_name!r}: use letters, digits, '.', '-' or '_'"
        )
    return name


def validate_mandatory_parameters(cfg: Mapping[str, Any]) -> None:
    """
    Validate that mandatory parameters are present in the configuration.

    Raises
    ------
    ConfigurationError
        Naming every missing parameter.
    """
    missing = [key for key in MANDATORY_PARAMETERS if not cfg.get(key)]
    if missing:
        logger.error("Missing mandatory configuration parameter(s): %s", ", ".join(missing))
        raise ConfigurationError(
            f"Missing mandatory configuration parameter(s): {', '.join(missing)}"
        )


def validate_regions_file(bed_path: str) -> int:
    """
    Validate the organelle regions BED file.

    Parameters
    ----------
    bed_path : str
        Path to the BED file.

    Returns
    -------
    int
        Number of region lines.

    Raises
    ------
    ConfigurationError
        If the file is empty or a region line has fewer than three columns
        or non-integer coordinates.
    """
    if os.path.getsize(bed_path) == 0:
        raise ConfigurationError(f"Organelle regions BED file {bed_path} is empty.")

    regions = 0
    with open(bed_path, "r", encoding="utf-8") as f:
        for lineno, line in enumerate(f, start=1):
            if not line.strip() or line.startswith(("#", "track", "browser")):
                continue
            fields = line.rstrip("\n").split("\t")
            if len(fields) < 3:
                raise ConfigurationError(
                    f"{bed_path} line {lineno}: expected at least 3 tab-separated columns"
                )
            try:
                start, end = int(fields[1]), int(fields[2])
            except ValueError:
                raise ConfigurationError(f"{bed_path} line {lineno}: coordinates must be integers")
            if start < 0 or end < start:
                raise ConfigurationError(f"{bed_path} line {lineno}: invalid interval {start}-{end}")
            regions += 1

    if regions == 0:
        raise ConfigurationError(f"Organelle regions BED file {bed_path} holds no regions.")
    logger.debug("Organelle regions BED file %s holds %d region(s)", bed_path, regions)
    return regions


def validate_input_files(samples: Iterable[Any], directory: str, extension: str) -> List[Any]:
    """
    Validate the enumerated input files.

    Empty input files are reported as warnings; the tools decide what to do
    with them.

    Raises
    ------
    ConfigurationError
        If no input file was found.
    """
    samples = list(samples)
    if not samples:
        raise ConfigurationError(f"I can not find *.{extension} files in {directory}")
    for sample in samples:
        if os.path.getsize(sample.path) == 0:
            logger.warning("Input file %s is empty.", sample.path)
    logger.info("Number of input files = %d", len(samples))
    return samples
