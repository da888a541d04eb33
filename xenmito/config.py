# File: xenmito/config.py
# Location: xenmito/xenmito/config.py

"""
Configuration management module.

This module handles loading configuration from a JSON file. All default
values reside in config.json, which is included in the installed package
directory; a user configuration file is merged over those defaults.

Configuration files written for the shell workflow
(``FASTQPATH=...`` lines) are accepted as well and mapped onto the JSON keys.
"""

import json
import logging
import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from .pipeline_core.error_handling import ConfigurationError
from .pipeline_core.invoker import ToolPaths
from .resources import ResourceHints
from .validators import validate_mandatory_parameters, validate_project_name

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = os.path.join(os.path.dirname(__file__), "config.json")

# KEY=VALUE names of the shell workflow's configuration file
LEGACY_KEYS = {
    "FASTQPATH": "input_directory",
    "FQEXTENSION": "input_extension",
    "DBPATH": "reference_root",
    "NUC_GENOME": "nuclear_genome_index",
    "MITO_FASTA": "organelle_fasta",
    "MITO_BED": "organelle_regions",
}

LEGACY_TOOL_KEYS = {
    "MY_SAMTOOLS": "samtools",
    "MY_MINIMAP2": "minimap2",
    "MY_BEDTOOLS": "bedtools",
    "MY_BIOAWK": "bioawk",
    "MY_HTSBOX": "htsbox",
    "MY_MEDAKA": "medaka_variant",
    "MY_VCFTOOLS": "vcf_annotate",
}


def _read_json(config_file: str) -> Dict[str, Any]:
    with open(config_file, "r", encoding="utf-8") as f:
        try:
            config = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Error parsing JSON configuration {config_file}: {e}")
    if not isinstance(config, dict):
        raise ConfigurationError(f"Configuration {config_file} must hold a JSON object")
    return config


def parse_legacy_config(text: str) -> Dict[str, Any]:
    """
    Parse a ``KEY=VALUE`` configuration file of the shell workflow.

    Comment lines, blank lines and an ``export`` prefix are ignored; values
    may be quoted. Unknown keys are logged and skipped.

    Parameters
    ----------
    text : str
        Content of the configuration file.

    Returns
    -------
    dict
        Configuration using the JSON key names.

    Raises
    ------
    ConfigurationError
        If a non-comment line is not of the form ``KEY=VALUE``.
    """
    config: Dict[str, Any] = {}
    tools: Dict[str, str] = {}
    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].strip()
        key, sep, value = line.partition("=")
        key = key.strip()
        if not sep or not key:
            raise ConfigurationError(f"Line {lineno} of the configuration is not KEY=VALUE: {raw!r}")
        try:
            parts = shlex.split(value, comments=True)
        except ValueError as e:
            raise ConfigurationError(f"Line {lineno} of the configuration: {e}")
        value = parts[0] if parts else ""

        if key in LEGACY_KEYS:
            config[LEGACY_KEYS[key]] = value
        elif key in LEGACY_TOOL_KEYS:
            tools[LEGACY_TOOL_KEYS[key]] = value
        else:
            logger.warning(f"Ignoring unknown configuration key {key} on line {lineno}")
    if tools:
        config["tools"] = tools
    return config


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_file: Optional[str] = None) -> Dict[str, Any]:
    """
    Load configuration from a JSON or ``KEY=VALUE`` file.

    The package-installed 'config.json' provides the defaults; the values
    of ``config_file`` are merged over them (nested ``tools`` and
    ``resources`` mappings key by key).

    Parameters
    ----------
    config_file : str, optional
        Path to a configuration file. If None, only the defaults are
        returned.

    Returns
    -------
    dict
        Configuration dictionary.

    Raises
    ------
    ConfigurationError
        If the specified configuration file does not exist or cannot be
        parsed.
    """
    config = _read_json(DEFAULT_CONFIG_FILE)
    if not config_file:
        return config

    if not os.path.exists(config_file):
        raise ConfigurationError(f"I can not find the config file '{config_file}'")

    with open(config_file, "r", encoding="utf-8") as f:
        text = f.read()

    if config_file.endswith(".json") or text.lstrip().startswith("{"):
        user_config = _read_json(config_file)
    else:
        logger.debug(f"Reading {config_file} as a KEY=VALUE configuration")
        user_config = parse_legacy_config(text)

    return _merge(config, user_config)


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


@dataclass(frozen=True)
class PipelineConfig:
    """Immutable configuration of one pipeline invocation.

    Attributes
    ----------
    project_name : str
        Name of the project directory below ``output_root``
    input_directory : Path
        Directory holding the input read files
    input_extension : str
        Extension of the input files, without leading dot
    reference_root : Path
        Directory relative reference paths are resolved against
    nuclear_genome_index, organelle_fasta, organelle_regions : str
        Reference files, absolute or relative to ``reference_root``
    output_root : Path
        Directory the project directory is created in
    tools : ToolPaths
        Executable for each external tool
    resources : ResourceHints
        Thread and memory hints for the tools
    workers : int
        Samples processed concurrently within a stage
    retries : int
        Extra attempts for a sample whose tool failed
    retry_delay : float
        Initial delay between attempts in seconds
    tool_timeout : float or None
        Seconds before a tool invocation is killed
    keep_intermediates : bool
        Keep the raw SAM files after coverage was computed
    check_tools : bool
        Verify at startup that every tool is on PATH
    sample_id_prefix : str
        Prefix of the sample identifier written into the final VCFs
    variant_vcf_name : str
        Name of the phased VCF inside the variant caller output directory
    """

    project_name: str
    input_directory: Path
    nuclear_genome_index: str
    organelle_fasta: str
    organelle_regions: str
    input_extension: str = "fastq"
    reference_root: Path = field(default_factory=Path.cwd)
    output_root: Path = field(default_factory=Path.cwd)
    tools: ToolPaths = field(default_factory=ToolPaths)
    resources: ResourceHints = field(default_factory=ResourceHints)
    workers: int = 1
    retries: int = 0
    retry_delay: float = 1.0
    tool_timeout: Optional[float] = None
    keep_intermediates: bool = False
    check_tools: bool = True
    sample_id_prefix: str = "XENMITO_"
    variant_vcf_name: str = "round_2_final_phased.vcf"

    @classmethod
    def from_dict(cls, cfg: Dict[str, Any], project_name: str) -> "PipelineConfig":
        """
        Build the immutable configuration from a loaded configuration dict.

        Relative directories are resolved against the current working
        directory.

        Raises
        ------
        ConfigurationError
            If a mandatory parameter is missing or a value is invalid.
        """
        project_name = validate_project_name(project_name)
        validate_mandatory_parameters(cfg)

        try:
            resources = ResourceHints.from_dict(cfg.get("resources"))
            workers = int(cfg["workers"]) if cfg.get("workers") is not None else 1
            retries = int(cfg["retries"]) if cfg.get("retries") is not None else 0
            retry_delay = float(cfg.get("retry_delay", 1.0))
            timeout = cfg.get("tool_timeout")
            tool_timeout = float(timeout) if timeout not in (None, "", 0) else None
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid configuration value: {e}")

        if workers < 1:
            raise ConfigurationError(f"workers must be at least 1, got {workers}")
        if retries < 0:
            raise ConfigurationError(f"retries must not be negative, got {retries}")
        if tool_timeout is not None and tool_timeout <= 0:
            raise ConfigurationError(f"tool_timeout must be positive, got {tool_timeout}")

        extension = str(cfg.get("input_extension") or "fastq").strip().lstrip(".")
        if not extension:
            raise ConfigurationError("input_extension must not be empty")

        return cls(
            project_name=project_name,
            input_directory=Path(cfg["input_directory"]).expanduser().resolve(),
            input_extension=extension,
            reference_root=Path(cfg.get("reference_root") or ".").expanduser().resolve(),
            nuclear_genome_index=str(cfg["nuclear_genome_index"]),
            organelle_fasta=str(cfg["organelle_fasta"]),
            organelle_regions=str(cfg["organelle_regions"]),
            output_root=Path(cfg.get("output_root") or ".").expanduser().resolve(),
            tools=ToolPaths.from_dict(cfg.get("tools")),
            resources=resources,
            workers=workers,
            retries=retries,
            retry_delay=retry_delay,
            tool_timeout=tool_timeout,
            keep_intermediates=_as_bool(cfg.get("keep_intermediates", False)),
            check_tools=_as_bool(cfg.get("check_tools", True)),
            sample_id_prefix=str(cfg.get("sample_id_prefix") or ""),
            variant_vcf_name=str(cfg.get("variant_vcf_name") or "round_2_final_phased.vcf"),
        )

    def describe(self) -> Dict[str, Any]:
        """Return the settings as printable strings, for startup logging."""
        return {
            "PROJECT NAME": self.project_name,
            "INPUT PATH": str(self.input_directory),
            "INPUT EXTENSION": self.input_extension,
            "REFERENCE ROOT": str(self.reference_root),
            "OUTPUT ROOT": str(self.output_root),
            "WORKERS": str(self.workers),
        }
