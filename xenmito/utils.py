# File: xenmito/utils.py
# Location: xenmito/xenmito/utils.py

"""
Utility functions module.

Provides helper functions for checking tool availability, retrieving tool
versions, opening (optionally gzipped) text files and reading the simple
line-oriented files the external tools produce.
"""

import gzip
import logging
import shutil
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, List, Union

if TYPE_CHECKING:
    from .pipeline_core.invoker import ExternalToolInvoker, ToolPaths

logger = logging.getLogger("xenmito")


def check_external_tools(tools: "ToolPaths", required: Iterable[str]) -> List[str]:
    """
    Check which required tools are missing from PATH.

    Parameters
    ----------
    tools : ToolPaths
        Configured executables
    required : Iterable[str]
        Logical tool names the pipeline needs

    Returns
    -------
    List[str]
        Logical names of tools whose executable could not be found
    """
    missing = []
    for tool in required:
        executable = tools.resolve(tool)
        if not shutil.which(executable):
            logger.error(f"Required tool not found in PATH: {tool} ({executable})")
            missing.append(tool)
        else:
            logger.debug(f"Found tool in PATH: {tool} ({executable})")
    return missing


def smart_open(filename: str, mode: str = "r", encoding: str = "utf-8"):
    """
    Open a file with automatic gzip support based on file extension.

    Parameters
    ----------
    filename : str
        Path to the file
    mode : str
        File opening mode ('r', 'w', 'rt', 'wt', etc.)
    encoding : str
        Text encoding (for text modes)

    Returns
    -------
    file object
        Opened file handle
    """
    if filename.endswith(".gz"):
        # Ensure text mode for gzip
        if "t" not in mode and "b" not in mode:
            mode = mode + "t"
        return gzip.open(filename, mode, encoding=encoding)
    else:
        # For regular files, only add encoding for text mode
        if "b" not in mode:
            return open(filename, mode, encoding=encoding)
        else:
            return open(filename, mode)


def get_tool_version(tool_name: str, invoker: "ExternalToolInvoker") -> str:
    """
    Retrieve the version of a given tool.

    Supported tools:

    - minimap2
    - samtools
    - bedtools
    - seqtk
    - medaka_variant

    Parameters
    ----------
    tool_name : str
        Logical name of the tool to retrieve version for.
    invoker : ExternalToolInvoker
        Invoker used to run the version command.

    Returns
    -------
    str
        Version string or 'N/A' if not found or cannot be retrieved.
    """

    def first_line(stdout, stderr):
        for line in stdout.splitlines():
            if line.strip():
                return line.strip()
        return "N/A"

    def seqtk_version(stdout, stderr):
        for line in stderr.splitlines():
            if line.lower().startswith("version"):
                return line.split(":", 1)[-1].strip()
        return "N/A"

    tool_map = {
        "minimap2": {"args": ["--version"], "parse_func": first_line},
        "samtools": {"args": ["--version"], "parse_func": first_line},
        "bedtools": {"args": ["--version"], "parse_func": first_line},
        "seqtk": {"args": [], "parse_func": seqtk_version},
        "medaka_variant": {"args": ["--version"], "parse_func": first_line},
    }

    if tool_name not in tool_map:
        logger.debug("No version retrieval logic for %s. Returning 'N/A'.", tool_name)
        return "N/A"

    result = invoker.run(tool_name, tool_map[tool_name]["args"], timeout=30)
    version = tool_map[tool_name]["parse_func"](result.stdout, result.stderr)
    if version == "N/A":
        logger.warning("Could not parse version for %s. Returning 'N/A'.", tool_name)
    return version


def count_fastq_records(path: Union[str, Path]) -> int:
    """
    Count records in a four-line FASTQ file.

    Parameters
    ----------
    path : str or Path
        FASTQ file, optionally gzipped.

    Returns
    -------
    int
        Number of records (non-empty lines divided by four).
    """
    with smart_open(str(path), "r") as f:
        lines = sum(1 for line in f if line.strip())
    return lines // 4


def count_fasta_records(path: Union[str, Path]) -> int:
    """Count header lines in a FASTA file."""
    with smart_open(str(path), "r") as f:
        return sum(1 for line in f if line.startswith(">"))


def write_unique_first_column(source: Union[str, Path], destination: Union[str, Path]) -> int:
    """
    Write the sorted unique first whitespace-separated column of ``source``.

    Parameters
    ----------
    source : str or Path
        Text file, e.g. SAM records or a read info table.
    destination : str or Path
        File receiving one identifier per line.

    Returns
    -------
    int
        Number of unique identifiers written.
    """
    ids = set()
    with smart_open(str(source), "r") as f:
        for line in f:
            fields = line.split(None, 1)
            if fields and not line.startswith("@"):
                ids.add(fields[0])
    with open(destination, "w", encoding="utf-8") as out:
        for read_id in sorted(ids):
            out.write(f"{read_id}\n")
    return len(ids)


def parse_count(stdout: str) -> int:
    """
    Parse the integer printed by a counting command such as ``samtools view -c``.

    Raises
    ------
    ValueError
        If the output is not a single integer.
    """
    text = stdout.strip()
    if not text:
        raise ValueError("empty count output")
    return int(text.splitlines()[-1].strip())
