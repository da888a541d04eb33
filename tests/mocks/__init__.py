"""Test mocks and fixtures for xenmito tests."""

from .external_tools import ORGANELLE_CONTIG, ORGANELLE_LENGTH, FakeToolInvoker, read_fastq
from .fixtures import (
    READS,
    SAMPLE_NAMES,
    create_test_references,
    create_test_sample,
    read_log_lines,
    run_stage,
    run_stages,
    write_fastq,
)

__all__ = [
    "FakeToolInvoker",
    "ORGANELLE_CONTIG",
    "ORGANELLE_LENGTH",
    "READS",
    "SAMPLE_NAMES",
    "create_test_references",
    "create_test_sample",
    "read_fastq",
    "read_log_lines",
    "run_stage",
    "run_stages",
    "write_fastq",
]
