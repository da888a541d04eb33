# File: xenmito/report.py
# Location: xenmito/xenmito/report.py

"""
Run summary report.

Collects the per-sample read counts, long organelle read counts and variant
counts that the stages left on disk into one table, writes it as
``summary.tsv`` and renders a static ``summary.html`` next to it.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import pandas as pd
from jinja2 import Environment, FileSystemLoader, select_autoescape

from .pipeline_core.workspace import ArtifactRole, ArtifactStore
from .utils import count_fasta_records, count_fastq_records

logger = logging.getLogger(__name__)

SUMMARY_TSV = "summary.tsv"
SUMMARY_HTML = "summary.html"

SUMMARY_COLUMNS = [
    "sample",
    "sample_id",
    "all_count",
    "nuc_count",
    "mito_count",
    "mito_fraction",
    "organelle_reads",
    "long_reads",
    "small_long_reads",
    "very_long_reads",
    "variants",
]


def _count_lines(path: Path) -> Optional[int]:
    if not path.is_file():
        return None
    with open(path, "r", encoding="utf-8") as f:
        return sum(1 for line in f if line.strip())


def _count_if_exists(counter, path: Path) -> Optional[int]:
    return counter(path) if path.is_file() else None


def read_mapping_stats(path: Union[str, Path]) -> pd.DataFrame:
    """
    Read ``mapping_stats.txt``.

    Returns
    -------
    pd.DataFrame
        Columns ``name all_count nuc_count mito_count``; empty when the file
        does not exist yet
    """
    path = Path(path)
    if not path.is_file():
        logger.warning(f"Mapping statistics not found at {path}")
        return pd.DataFrame(columns=["name", "all_count", "nuc_count", "mito_count"])
    return pd.read_csv(path, sep=r"\s+", dtype={"name": str})


def collect_sample_summary(
    workspace: ArtifactStore, sample_name: str, sample_id: str
) -> Dict[str, Any]:
    """
    Gather the counts of one sample from the artifacts of earlier stages.

    Counts whose artifact is missing are reported as None.
    """
    long_role = ArtifactRole.LONG_ORGANELLE_READS
    return {
        "sample": sample_name,
        "sample_id": sample_id,
        "organelle_reads": _count_if_exists(
            count_fastq_records,
            workspace.artifact_path(ArtifactRole.ORGANELLE_READS, sample_name, "mtDNA", "fastq"),
        ),
        "long_reads": _count_lines(
            workspace.artifact_path(long_role, sample_name, "long_mtDNA_reads", "info")
        ),
        "small_long_reads": _count_if_exists(
            count_fasta_records,
            workspace.artifact_path(long_role, sample_name, "small.long_mtDNA_reads", "fasta"),
        ),
        "very_long_reads": _count_if_exists(
            count_fasta_records,
            workspace.artifact_path(long_role, sample_name, "very.long_mtDNA_reads", "fasta"),
        ),
        "variants": _count_lines(
            workspace.artifact_path(
                ArtifactRole.FINAL_VARIANTS, sample_name, "medaka_variant.qual_stats", "txt"
            )
        ),
    }


def build_summary_table(rows: List[Dict[str, Any]], mapping_stats: pd.DataFrame) -> pd.DataFrame:
    """
    Join per-sample rows with the mapping statistics.

    Parameters
    ----------
    rows : list of dict
        Output of ``collect_sample_summary``, in sample order
    mapping_stats : pd.DataFrame
        Output of ``read_mapping_stats``

    Returns
    -------
    pd.DataFrame
        One row per sample with the columns in ``SUMMARY_COLUMNS``
    """
    summary = pd.DataFrame(rows)
    if summary.empty:
        return pd.DataFrame(columns=SUMMARY_COLUMNS)

    stats = mapping_stats.rename(columns={"name": "sample"})
    summary = summary.merge(stats, on="sample", how="left")
    all_count = pd.to_numeric(summary["all_count"], errors="coerce")
    mito_count = pd.to_numeric(summary["mito_count"], errors="coerce")
    summary["mito_fraction"] = (mito_count / all_count.where(all_count > 0)).round(4)
    return summary.reindex(columns=SUMMARY_COLUMNS)


def write_summary_tsv(summary: pd.DataFrame, output_path: Union[str, Path]) -> None:
    """Write the summary table as tab-separated values."""
    summary.to_csv(output_path, sep="\t", index=False, na_rep="NA")
    logger.info(f"Summary table written to {output_path}")


def generate_html_report(
    summary: pd.DataFrame,
    output_path: Union[str, Path],
    project_name: str,
    metadata: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Render the summary table to a static HTML page.

    Parameters
    ----------
    summary : pd.DataFrame
        Output of ``build_summary_table``
    output_path : str or Path
        File to write
    project_name : str
        Project shown in the page title
    metadata : dict, optional
        Extra key/value pairs listed above the table (references, version)
    """
    templates_dir = Path(__file__).parent / "templates"
    if not templates_dir.exists():
        raise FileNotFoundError(f"Templates directory not found at: {templates_dir}")

    env = Environment(
        loader=FileSystemLoader(str(templates_dir)),
        autoescape=select_autoescape(["html"]),
    )
    template = env.get_template(SUMMARY_HTML)

    records = summary.astype(object).where(summary.notna(), None).to_dict(orient="records")
    totals = {
        column: int(pd.to_numeric(summary[column], errors="coerce").sum())
        for column in ("all_count", "nuc_count", "mito_count", "long_reads", "variants")
        if column in summary
    }
    html_content = template.render(
        project_name=project_name,
        generated_at=datetime.now().isoformat(timespec="seconds"),
        columns=list(summary.columns),
        rows=records,
        totals=totals,
        metadata=metadata or {},
    )

    with open(output_path, "w", encoding="utf-8") as out_f:
        out_f.write(html_content)
    logger.info(f"HTML summary written to {output_path}")
