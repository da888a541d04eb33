"""Tests for configuration loading."""

import json
from pathlib import Path

import pytest

from xenmito.config import PipelineConfig, load_config, parse_legacy_config
from xenmito.pipeline_core.error_handling import ConfigurationError


class TestLoadConfig:
    """Tests for load_config."""

    def test_defaults_only(self):
        """Test the packaged defaults."""
        config = load_config()

        assert config["input_extension"] == "fastq"
        assert config["workers"] == 1
        assert config["tools"]["vcf_annotate"] == "vcf-annotate"
        assert config["resources"]["sort_memory"] == "4G"

    def test_json_overrides_defaults(self, tmp_path):
        """Test merging a JSON file over the defaults."""
        path = tmp_path / "cfg.json"
        path.write_text(
            json.dumps(
                {
                    "input_directory": "reads",
                    "workers": 4,
                    "tools": {"samtools": "/opt/samtools"},
                    "resources": {"threads": 16},
                }
            )
        )

        config = load_config(str(path))

        assert config["input_directory"] == "reads"
        assert config["workers"] == 4
        assert config["tools"]["samtools"] == "/opt/samtools"
        assert config["tools"]["minimap2"] == "minimap2"
        assert config["resources"]["threads"] == 16
        assert config["resources"]["sort_memory"] == "4G"

    def test_json_without_extension(self, tmp_path):
        """Test detecting JSON content by its first character."""
        path = tmp_path / "settings"
        path.write_text('  {"workers": 2}')

        assert load_config(str(path))["workers"] == 2

    def test_legacy_file(self, tmp_path):
        """Test reading a KEY=VALUE configuration."""
        path = tmp_path / "config.sh"
        path.write_text(
            "# paths\n"
            "FASTQPATH=starting_raw_seq_dir\n"
            "FQEXTENSION=fastq\n"
            'export DBPATH="/data/db"\n'
            "NUC_GENOME=xenmel/genome.mmi\n"
            "MITO_FASTA=XENMEL_mito.fasta  # organelle\n"
            "MITO_BED='XENMEL_mito_pc.bed'\n"
        )

        config = load_config(str(path))

        assert config["input_directory"] == "starting_raw_seq_dir"
        assert config["reference_root"] == "/data/db"
        assert config["nuclear_genome_index"] == "xenmel/genome.mmi"
        assert config["organelle_fasta"] == "XENMEL_mito.fasta"
        assert config["organelle_regions"] == "XENMEL_mito_pc.bed"
        assert config["workers"] == 1

    def test_missing_file(self, tmp_path):
        """Test a missing configuration file."""
        with pytest.raises(ConfigurationError, match="I can not find the config file"):
            load_config(str(tmp_path / "nope.json"))

    def test_invalid_json(self, tmp_path):
        """Test a malformed JSON file."""
        path = tmp_path / "bad.json"
        path.write_text("{not json")

        with pytest.raises(ConfigurationError, match="Error parsing JSON"):
            load_config(str(path))

    def test_json_must_be_object(self, tmp_path):
        """Test a JSON file that is not an object."""
        path = tmp_path / "list.json"
        path.write_text("[1, 2]")

        with pytest.raises(ConfigurationError, match="must hold a JSON object"):
            load_config(str(path))


class TestParseLegacyConfig:
    """Tests for parse_legacy_config."""

    def test_tool_keys(self):
        """Test tool overrides of the shell workflow."""
        config = parse_legacy_config("MY_SAMTOOLS=/opt/samtools\nMY_VCFTOOLS=/opt/vcf-annotate\n")
        assert config["tools"] == {"samtools": "/opt/samtools", "vcf_annotate": "/opt/vcf-annotate"}

    def test_unknown_keys_are_skipped(self, caplog):
        """Test that unknown keys are warned about."""
        config = parse_legacy_config("FASTQPATH=reads\nCOLOR=blue\n")

        assert config == {"input_directory": "reads"}
        assert "Ignoring unknown configuration key COLOR" in caplog.text

    def test_malformed_line(self):
        """Test a line without '='."""
        with pytest.raises(ConfigurationError, match="Line 2"):
            parse_legacy_config("FASTQPATH=reads\nthis is not an assignment\n")

    def test_unbalanced_quotes(self):
        """Test a value with an unterminated quote."""
        with pytest.raises(ConfigurationError, match="Line 1"):
            parse_legacy_config('FASTQPATH="reads\n')

    def test_empty_value(self):
        """Test an assignment without value."""
        assert parse_legacy_config("FQEXTENSION=\n") == {"input_extension": ""}


class TestPipelineConfig:
    """Tests for PipelineConfig.from_dict."""

    def test_from_dict(self, config_dict, reference_dir, input_dir):
        """Test building the immutable configuration."""
        config = PipelineConfig.from_dict(config_dict, "proj")

        assert config.project_name == "proj"
        assert config.input_directory == input_dir.resolve()
        assert config.reference_root == reference_dir.resolve()
        assert config.nuclear_genome_index == "genome.mmi"
        assert config.resources.threads == 2
        assert config.resources.sort_threads == 1
        assert config.resources.sort_memory == "1G"
        assert config.workers == 1
        assert config.tool_timeout is None
        assert config.check_tools is False
        assert config.sample_id_prefix == "XENMITO_"

    def test_defaults_from_packaged_config(self, config_dict):
        """Test building from defaults merged with user values."""
        config_dict.pop("sample_id_prefix")
        merged = dict(load_config())
        merged.update(config_dict)

        config = PipelineConfig.from_dict(merged, "proj")

        assert config.sample_id_prefix == "XENMITO_"
        assert config.variant_vcf_name == "round_2_final_phased.vcf"
        assert config.tools.vcf_annotate == "vcf-annotate"

    def test_relative_paths_resolve_against_cwd(self, config_dict, tmp_path, monkeypatch):
        """Test relative directories."""
        monkeypatch.chdir(tmp_path)
        config_dict["input_directory"] = "reads"
        config_dict["output_root"] = "."

        config = PipelineConfig.from_dict(config_dict, "proj")

        assert config.input_directory == tmp_path.resolve() / "reads"
        assert config.output_root == tmp_path.resolve()

    def test_missing_mandatory(self, config_dict):
        """Test a missing mandatory parameter."""
        del config_dict["organelle_regions"]
        config_dict["nuclear_genome_index"] = ""

        with pytest.raises(ConfigurationError) as exc_info:
            PipelineConfig.from_dict(config_dict, "proj")

        assert "nuclear_genome_index" in str(exc_info.value)
        assert "organelle_regions" in str(exc_info.value)

    @pytest.mark.parametrize(
        "key,value,message",
        [
            ("workers", 0, "workers must be at least 1"),
            ("retries", -1, "retries must not be negative"),
            ("tool_timeout", -5, "tool_timeout must be positive"),
            ("workers", "many", "Invalid configuration value"),
            ("input_extension", ".", "input_extension must not be empty"),
        ],
    )
    def test_invalid_values(self, config_dict, key, value, message):
        """Test rejecting invalid settings."""
        config_dict[key] = value
        with pytest.raises(ConfigurationError, match=message):
            PipelineConfig.from_dict(config_dict, "proj")

    def test_invalid_thread_hint(self, config_dict):
        """Test a non-positive thread hint."""
        config_dict["resources"] = {"threads": 2, "sort_threads": -1}
        with pytest.raises(ConfigurationError, match="sort_threads"):
            PipelineConfig.from_dict(config_dict, "proj")

    def test_invalid_project_name(self, config_dict):
        """Test an unusable project name."""
        with pytest.raises(ConfigurationError, match="Invalid project name"):
            PipelineConfig.from_dict(config_dict, "../escape")

    def test_boolean_strings(self, config_dict):
        """Test booleans given as strings."""
        config_dict["keep_intermediates"] = "yes"
        config_dict["check_tools"] = "false"

        config = PipelineConfig.from_dict(config_dict, "proj")

        assert config.keep_intermediates is True
        assert config.check_tools is False

    def test_frozen(self, pipeline_config):
        """Test that the configuration is immutable."""
        with pytest.raises(AttributeError):
            pipeline_config.workers = 8

    def test_describe(self, pipeline_config):
        """Test the startup description."""
        described = pipeline_config.describe()
        assert described["PROJECT NAME"] == "proj"
        assert Path(described["INPUT PATH"]).name == "reads"
