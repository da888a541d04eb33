"""Tests for the run summary report."""

import pandas as pd
import pytest

from tests.mocks import write_fastq
from xenmito.pipeline_core.workspace import ArtifactRole, ArtifactStore
from xenmito.report import (
    SUMMARY_COLUMNS,
    build_summary_table,
    collect_sample_summary,
    generate_html_report,
    read_mapping_stats,
    write_summary_tsv,
)


@pytest.fixture
def store(tmp_path):
    """Artifact store for project ``proj``."""
    store = ArtifactStore(tmp_path, "proj")
    store.prepare()
    return store


@pytest.fixture
def mapping_stats(tmp_path):
    """Mapping statistics of two samples."""
    path = tmp_path / "mapping_stats.txt"
    path.write_text(
        "name all_count nuc_count mito_count\n"
        "barcode01        4       1       3\n"
        "barcode02        0       0       0\n"
    )
    return read_mapping_stats(path)


class TestReadMappingStats:
    """Tests for read_mapping_stats."""

    def test_reads_table(self, mapping_stats):
        """Test parsing the whitespace-separated table."""
        assert list(mapping_stats.columns) == ["name", "all_count", "nuc_count", "mito_count"]
        assert mapping_stats.loc[0, "all_count"] == 4

    def test_missing_file(self, tmp_path):
        """Test that a missing file yields an empty table."""
        stats = read_mapping_stats(tmp_path / "absent.txt")
        assert stats.empty
        assert "mito_count" in stats.columns


class TestCollectSampleSummary:
    """Tests for collect_sample_summary."""

    def test_missing_artifacts(self, store):
        """Test that counts without an artifact are None."""
        row = collect_sample_summary(store, "barcode01", "X_BARCODE01")

        assert row["sample"] == "barcode01"
        assert row["sample_id"] == "X_BARCODE01"
        for key in ("organelle_reads", "long_reads", "small_long_reads", "very_long_reads", "variants"):
            assert row[key] is None

    def test_counts_artifacts(self, store):
        """Test counting records of the stage outputs."""
        write_fastq(
            store.directory(ArtifactRole.ORGANELLE_READS) / "barcode01.mtDNA.fastq",
            {"a": 10, "b": 20},
        )
        long_dir = store.directory(ArtifactRole.LONG_ORGANELLE_READS)
        (long_dir / "barcode01.long_mtDNA_reads.info").write_text("a 10 10 1\nb 20 20 1\n\n")
        (long_dir / "barcode01.small.long_mtDNA_reads.fasta").write_text(">a 10\nAAAA\n")
        (long_dir / "barcode01.very.long_mtDNA_reads.fasta").write_text("")
        (store.directory(ArtifactRole.FINAL_VARIANTS) / "barcode01.medaka_variant.qual_stats.txt").write_text(
            "10 35.2 X\n"
        )

        row = collect_sample_summary(store, "barcode01", "X")

        assert row["organelle_reads"] == 2
        assert row["long_reads"] == 2
        assert row["small_long_reads"] == 1
        assert row["very_long_reads"] == 0
        assert row["variants"] == 1


class TestBuildSummaryTable:
    """Tests for build_summary_table."""

    def test_joins_mapping_stats(self, mapping_stats):
        """Test merging counts and computing the organelle fraction."""
        rows = [
            {"sample": "barcode01", "sample_id": "X_BARCODE01", "variants": 2},
            {"sample": "barcode02", "sample_id": "X_BARCODE02", "variants": None},
        ]

        summary = build_summary_table(rows, mapping_stats)

        assert list(summary.columns) == SUMMARY_COLUMNS
        assert summary.loc[0, "mito_fraction"] == 0.75
        # zero reads gives no fraction rather than a division error
        assert pd.isna(summary.loc[1, "mito_fraction"])
        assert summary.loc[0, "variants"] == 2

    def test_sample_without_stats(self, mapping_stats):
        """Test a sample missing from the mapping statistics."""
        summary = build_summary_table([{"sample": "barcode09", "sample_id": "X"}], mapping_stats)

        assert pd.isna(summary.loc[0, "all_count"])
        assert pd.isna(summary.loc[0, "mito_fraction"])

    def test_no_rows(self, mapping_stats):
        """Test an empty run."""
        summary = build_summary_table([], mapping_stats)
        assert summary.empty
        assert list(summary.columns) == SUMMARY_COLUMNS


class TestWriters:
    """Tests for the TSV and HTML writers."""

    @pytest.fixture
    def summary(self, mapping_stats):
        """Summary with one complete and one incomplete sample."""
        return build_summary_table(
            [
                {"sample": "barcode01", "sample_id": "X_BARCODE01", "variants": 2},
                {"sample": "barcode02", "sample_id": "<b>X</b>", "variants": None},
            ],
            mapping_stats,
        )

    def test_write_summary_tsv(self, summary, tmp_path):
        """Test missing values written as NA."""
        output = tmp_path / "summary.tsv"

        write_summary_tsv(summary, output)

        lines = output.read_text().splitlines()
        assert lines[0].split("\t") == SUMMARY_COLUMNS
        assert len(lines) == 3
        assert lines[2].split("\t")[-1] == "NA"

    def test_generate_html_report(self, summary, tmp_path):
        """Test rendering, escaping and placeholders."""
        output = tmp_path / "summary.html"

        generate_html_report(summary, output, "proj", metadata={"Organelle reference": "MT"})

        html = output.read_text()
        assert "Project proj" in html
        assert "Organelle reference" in html
        assert "X_BARCODE01" in html
        assert "&lt;b&gt;X&lt;/b&gt;" in html
        assert "<b>X</b>" not in html
        assert "n/a" in html
        assert "mito fraction" in html

    def test_html_without_samples(self, mapping_stats, tmp_path):
        """Test rendering an empty summary."""
        output = tmp_path / "summary.html"

        generate_html_report(build_summary_table([], mapping_stats), output, "proj")

        assert "No samples." in output.read_text()
