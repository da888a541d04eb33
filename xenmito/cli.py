# File: xenmito/cli.py
# Location: xenmito/xenmito/cli.py

"""
Command-line interface for xenmito.

Usage::

    xenmito -p project_name -i config_file [options]

Exit status is 0 when every stage completed and 1 on any configuration,
stage or checkpoint failure.
"""

import argparse
import datetime
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import PipelineConfig, load_config
from .pipeline import checkpoint_status, plan_pipeline, run_pipeline
from .pipeline_core.error_handling import PipelineError, StageExecutionError
from .version import __version__

logger = logging.getLogger("xenmito")

LOG_LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
}


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def _non_negative_int(value: str) -> int:
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"must not be negative, got {number}")
    return number


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="xenmito",
        description=(
            "xenmito: Classify nanopore reads as organelle or nuclear and "
            "call organelle variants, resuming from the project's progress log."
        ),
    )

    # General Options
    general_group = parser.add_argument_group("General Options")
    general_group.add_argument(
        "--version",
        action="version",
        version=f"xenmito {__version__}",
        help="Show the current version and exit",
    )
    general_group.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARN", "ERROR"],
        default="INFO",
        help="Set the logging level",
    )
    general_group.add_argument(
        "--log-file", help="Path to a file to write logs to (in addition to stderr)."
    )

    # Project Options
    project_group = parser.add_argument_group("Project Options")
    project_group.add_argument(
        "-p", "--project", required=True, help="Project name (directory below the output root)"
    )
    project_group.add_argument(
        "-i",
        "--config",
        required=True,
        help="Configuration file (JSON, or KEY=VALUE lines such as FASTQPATH=...)",
    )
    project_group.add_argument(
        "--output-root", help="Directory the project directory is created in (default: .)"
    )

    # Execution Options
    execution_group = parser.add_argument_group("Execution Options")
    execution_group.add_argument(
        "--workers",
        type=_positive_int,
        help="Number of samples processed concurrently within a stage",
    )
    execution_group.add_argument(
        "--threads", type=_positive_int, help="Threads handed to the aligner"
    )
    execution_group.add_argument(
        "--retries",
        type=_non_negative_int,
        help="Retries for a sample whose external tool failed",
    )
    execution_group.add_argument(
        "--tool-timeout",
        type=float,
        help="Seconds before an external tool invocation is killed",
    )
    execution_group.add_argument(
        "--keep-intermediates",
        action="store_true",
        help="Keep the raw SAM files after coverage has been computed",
    )
    execution_group.add_argument(
        "--no-tool-check",
        action="store_true",
        help="Skip checking that the external tools are on PATH",
    )

    # Information Options
    info_group = parser.add_argument_group("Information Options")
    info_group.add_argument(
        "--dry-run",
        action="store_true",
        help="Show which stages would run or be skipped, then exit",
    )
    info_group.add_argument(
        "--show-checkpoint-status",
        action="store_true",
        help="Show the project's checkpoint status, then exit",
    )
    return parser


def apply_cli_overrides(cfg: Dict[str, Any], args: argparse.Namespace) -> Dict[str, Any]:
    """Merge command-line options over the loaded configuration."""
    cfg = dict(cfg)
    if args.output_root:
        cfg["output_root"] = args.output_root
    if args.workers is not None:
        cfg["workers"] = args.workers
    if args.retries is not None:
        cfg["retries"] = args.retries
    if args.tool_timeout is not None:
        cfg["tool_timeout"] = args.tool_timeout
    if args.keep_intermediates:
        cfg["keep_intermediates"] = True
    if args.no_tool_check:
        cfg["check_tools"] = False
    if args.threads is not None:
        resources = dict(cfg.get("resources") or {})
        resources["threads"] = args.threads
        cfg["resources"] = resources
    return cfg


def _configure_logging(args: argparse.Namespace) -> None:
    logging.getLogger("xenmito").setLevel(LOG_LEVEL_MAP[args.log_level])

    if args.log_file:
        log_file_path = Path(args.log_file)
        log_file_path.parent.mkdir(parents=True, exist_ok=True)

        fh = logging.FileHandler(args.log_file)
        fh.setLevel(LOG_LEVEL_MAP[args.log_level])
        fh.setFormatter(
            logging.Formatter(
                "%(asctime)s [%(levelname)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S"
            )
        )
        logger.addHandler(fh)
        logger.debug(f"Logging to file enabled: {args.log_file}")


def main(argv: Optional[List[str]] = None) -> int:
    """Run main entry point for xenmito CLI.

    Steps:
        1. Parse arguments.
        2. Configure logging and load config.
        3. Apply command-line overrides and build the run configuration.
        4. Show status or plan, or run the pipeline.

    Returns
    -------
    int
        0 on success, 1 on any pipeline error
    """
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )

    parser = create_parser()
    args: argparse.Namespace = parser.parse_args(argv)
    _configure_logging(args)

    start_time: datetime.datetime = datetime.datetime.now()
    logger.info(f"Run started at {start_time.isoformat()}")
    logger.debug(f"CLI arguments: {args}")

    try:
        cfg = apply_cli_overrides(load_config(args.config), args)
        logger.debug(f"Configuration loaded: {cfg}")
        config = PipelineConfig.from_dict(cfg, args.project)

        if args.show_checkpoint_status:
            print(checkpoint_status(config))
            return 0

        if args.dry_run:
            for stage_name, action in plan_pipeline(config):
                print(f"{action:<11} {stage_name}")
            return 0

        run_pipeline(config)
    except StageExecutionError as e:
        logger.error(f"Pipeline halted: {e}")
        logger.error("Fix the problem and run the same command again to resume.")
        return 1
    except PipelineError as e:
        logger.error(str(e))
        return 1

    end_time = datetime.datetime.now()
    logger.info(f"Run ended at {end_time.isoformat()} (took {end_time - start_time})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
