# File: xenmito/pipeline.py
# Location: xenmito/xenmito/pipeline.py

"""
Pipeline entry point.

Builds the PipelineContext from a PipelineConfig (references, samples,
artifact store, tool invoker), wires the stage sequence to the checkpoint
log and runs it through the PipelineController.
"""

import logging
from typing import List, Optional, Sequence, Tuple

from .checkpoint import CheckpointLog
from .config import PipelineConfig
from .pipeline_core import (
    ArtifactStore,
    ExternalToolInvoker,
    PipelineContext,
    PipelineController,
    PipelineStatus,
    Stage,
    StageRunner,
)
from .pipeline_core.error_handling import ToolNotFoundError
from .references import resolve_reference_set
from .resources import log_resources
from .samples import discover_samples
from .stages.stage_registry import build_stages, legacy_ordinals, stage_order
from .utils import check_external_tools, get_tool_version
from .validators import validate_input_files, validate_regions_file

logger = logging.getLogger(__name__)

REQUIRED_TOOLS = (
    "minimap2",
    "samtools",
    "bedtools",
    "bioawk",
    "seqtk",
    "htsbox",
    "medaka_variant",
    "vcf_annotate",
    "bgzip",
    "tabix",
)


def ensure_tools(config: PipelineConfig) -> None:
    """
    Verify that every external tool is available.

    Raises
    ------
    ToolNotFoundError
        For the first missing tool (all missing tools are logged).
    """
    missing = check_external_tools(config.tools, REQUIRED_TOOLS)
    if missing:
        raise ToolNotFoundError(missing[0], config.tools.resolve(missing[0]))


def log_tool_versions(invoker: ExternalToolInvoker) -> None:
    """Log the version of each tool that reports one."""
    for tool in ("minimap2", "samtools", "bedtools", "seqtk", "medaka_variant"):
        logger.debug(f"{tool} version: {get_tool_version(tool, invoker)}")


def build_pipeline_context(
    config: PipelineConfig, invoker: Optional[ExternalToolInvoker] = None
) -> PipelineContext:
    """
    Resolve references and samples and assemble the pipeline context.

    Parameters
    ----------
    config : PipelineConfig
        Immutable run configuration
    invoker : ExternalToolInvoker, optional
        Invoker to use instead of one built from ``config.tools``

    Returns
    -------
    PipelineContext
        Context shared by every stage

    Raises
    ------
    ConfigurationError
        If a reference or the input directory is missing, or there are no
        input files
    """
    for key, value in config.describe().items():
        logger.info(f"{key:<21} = {value}")

    references = resolve_reference_set(
        config.reference_root,
        config.nuclear_genome_index,
        config.organelle_fasta,
        config.organelle_regions,
    )
    validate_regions_file(str(references.organelle_regions))

    samples = discover_samples(config.input_directory, config.input_extension)
    validate_input_files(samples, str(config.input_directory), config.input_extension)
    logger.info(f"Input files are in the directory at {config.input_directory}")

    if invoker is None:
        invoker = ExternalToolInvoker(config.tools, default_timeout=config.tool_timeout)

    return PipelineContext(
        config=config,
        workspace=ArtifactStore(config.output_root, config.project_name),
        references=references,
        samples=samples,
        invoker=invoker,
    )


def create_controller(
    config: PipelineConfig, stages: Optional[Sequence[Stage]] = None
) -> PipelineController:
    """Create the controller for the project of ``config``."""
    stages = list(stages) if stages is not None else build_stages()
    workspace = ArtifactStore(config.output_root, config.project_name)
    checkpoint_log = CheckpointLog(workspace.checkpoint_path, legacy_ordinals(stages))
    runner = StageRunner(
        max_workers=config.workers, retries=config.retries, retry_delay=config.retry_delay
    )
    return PipelineController(stages, checkpoint_log, runner)


def run_pipeline(
    config: PipelineConfig,
    invoker: Optional[ExternalToolInvoker] = None,
    stages: Optional[Sequence[Stage]] = None,
) -> PipelineController:
    """
    Run the pipeline for the project of ``config``.

    Parameters
    ----------
    config : PipelineConfig
        Immutable run configuration
    invoker : ExternalToolInvoker, optional
        Invoker to use instead of one built from ``config.tools``
    stages : sequence of Stage, optional
        Stage sequence (default: ``build_stages()``)

    Returns
    -------
    PipelineController
        The controller, with ``status`` COMPLETED

    Raises
    ------
    PipelineError
        Any configuration, stage or checkpoint failure
    """
    if config.check_tools and invoker is None:
        ensure_tools(config)

    context = build_pipeline_context(config, invoker)
    log_resources(config.resources)
    if logger.isEnabledFor(logging.DEBUG):
        log_tool_versions(context.invoker)

    controller = create_controller(config, stages)
    status = controller.run(context)
    logger.info(f"Pipeline finished with status {status.value} in {context.get_execution_time():.1f}s")
    return controller


def plan_pipeline(
    config: PipelineConfig, stages: Optional[Sequence[Stage]] = None
) -> List[Tuple[str, str]]:
    """Return what a run would do, as ``(stage name, action)`` pairs."""
    context = build_pipeline_context(config, ExternalToolInvoker(config.tools))
    controller = create_controller(config, stages)
    controller.check_sample_set(controller.checkpoint_log.load(), context.sample_names)
    return controller.plan(context)


def checkpoint_status(config: PipelineConfig, stages: Optional[Sequence[Stage]] = None) -> str:
    """Return the human-readable checkpoint summary of the project."""
    stages = list(stages) if stages is not None else build_stages()
    controller = create_controller(config, stages)
    return controller.checkpoint_log.summary(stage_order(stages))


__all__ = [
    "PipelineStatus",
    "build_pipeline_context",
    "checkpoint_status",
    "create_controller",
    "ensure_tools",
    "plan_pipeline",
    "run_pipeline",
]
