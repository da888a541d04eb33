"""
Resource hints handed to external tools.

The orchestrator never throttles the heavy tools itself; it tells them how
many threads and how much sort memory to use through their own flags. Thread
counts left unset in the configuration are derived from the detected CPU
count.
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

import psutil

logger = logging.getLogger(__name__)


def detect_cpus() -> int:
    """
    Detect CPU core count.

    Returns:
        Number of physical CPU cores (fallback to 4 if detection fails)
    """
    try:
        cores = psutil.cpu_count(logical=False)
        if cores:
            return cores
    except Exception as e:
        logger.debug(f"psutil.cpu_count(logical=False) failed: {e}")

    cores = os.cpu_count()
    if cores:
        return cores

    logger.warning("Could not detect CPU count, using conservative 4 cores")
    return 4


def available_memory_gb() -> float:
    """Return available system memory in GB (8GB when detection fails)."""
    try:
        return psutil.virtual_memory().available / (1024**3)
    except Exception as e:
        logger.warning(f"Could not detect memory: {e}. Using conservative 8GB")
        return 8.0


@dataclass(frozen=True)
class ResourceHints:
    """Thread and memory hints passed to external tools.

    Attributes
    ----------
    threads : int
        Aligner threads (``minimap2 -t``)
    sort_threads : int
        samtools sort/index threads (``-@``)
    sort_memory : str
        samtools per-thread sort memory (``-m``), e.g. ``"4G"``
    variant_threads : int
        Variant caller threads (``medaka_variant -t``)
    """

    threads: int = 4
    sort_threads: int = 2
    sort_memory: str = "4G"
    variant_threads: int = 2

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]], cpus: Optional[int] = None) -> "ResourceHints":
        """Build hints from configuration, filling unset thread counts from the CPU count."""
        data = dict(data or {})
        cpus = cpus or detect_cpus()
        threads = int(data.get("threads") or cpus)
        hints = cls(
            threads=threads,
            sort_threads=int(data.get("sort_threads") or max(1, threads // 2)),
            sort_memory=str(data.get("sort_memory") or cls.sort_memory),
            variant_threads=int(data.get("variant_threads") or max(1, min(threads, 12))),
        )
        hints.validate()
        return hints

    def validate(self) -> None:
        """Raise ``ValueError`` for non-positive thread counts."""
        for name in ("threads", "sort_threads", "variant_threads"):
            if getattr(self, name) < 1:
                raise ValueError(f"Resource hint '{name}' must be at least 1")


def log_resources(hints: ResourceHints) -> None:
    """Log detected host resources next to the configured hints."""
    logger.info(
        f"Resources: {detect_cpus()} CPUs, {available_memory_gb():.1f}GB available; "
        f"tools use threads={hints.threads}, sort_threads={hints.sort_threads}, "
        f"sort_memory={hints.sort_memory}, variant_threads={hints.variant_threads}"
    )
