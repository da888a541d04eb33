"""Shared pytest fixtures for all test modules."""

import json
from pathlib import Path
from typing import Any, Dict

import pytest

from tests.mocks import FakeToolInvoker, SAMPLE_NAMES, create_test_references, create_test_sample
from xenmito.checkpoint import CheckpointLog
from xenmito.config import PipelineConfig
from xenmito.pipeline import build_pipeline_context
from xenmito.stages import LEGACY_ORDINALS


@pytest.fixture
def reference_dir(tmp_path) -> Path:
    """Directory holding a dummy genome index and a small organelle reference."""
    return create_test_references(tmp_path / "db")


@pytest.fixture
def input_dir(tmp_path) -> Path:
    """Input directory with three samples."""
    directory = tmp_path / "reads"
    directory.mkdir()
    for name in SAMPLE_NAMES:
        create_test_sample(directory, name)
    return directory


@pytest.fixture
def config_dict(tmp_path, input_dir, reference_dir) -> Dict[str, Any]:
    """Configuration dictionary for a run in ``tmp_path``."""
    return {
        "input_directory": str(input_dir),
        "input_extension": "fastq",
        "reference_root": str(reference_dir),
        "nuclear_genome_index": "genome.mmi",
        "organelle_fasta": "mito.fasta",
        "organelle_regions": "mito.bed",
        "output_root": str(tmp_path / "out"),
        "check_tools": False,
        "retry_delay": 0.0,
        "sample_id_prefix": "XENMITO_",
        "resources": {"threads": 2, "sort_memory": "1G"},
    }


@pytest.fixture
def config_file(tmp_path, config_dict) -> Path:
    """The configuration dictionary written as a JSON file."""
    path = tmp_path / "config.json"
    path.write_text(json.dumps(config_dict))
    return path


@pytest.fixture
def pipeline_config(config_dict) -> PipelineConfig:
    """Immutable configuration for project ``proj``."""
    return PipelineConfig.from_dict(config_dict, "proj")


@pytest.fixture
def fake_invoker() -> FakeToolInvoker:
    """Tool invoker imitating every external tool."""
    return FakeToolInvoker()


@pytest.fixture
def context(pipeline_config, fake_invoker):
    """Pipeline context wired to the fake tools, with the workspace prepared."""
    ctx = build_pipeline_context(pipeline_config, fake_invoker)
    ctx.workspace.prepare()
    return ctx


@pytest.fixture
def checkpoint_log(context) -> CheckpointLog:
    """Checkpoint log of the project in ``context``."""
    return CheckpointLog(context.workspace.checkpoint_path, LEGACY_ORDINALS)
