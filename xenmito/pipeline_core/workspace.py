"""
ArtifactStore - Centralized file path management for a project.

This module provides the ArtifactStore class that owns the project root,
the role directories below it and the naming of every derived file.
"""

import logging
import shutil
from pathlib import Path
from typing import Dict, Union

logger = logging.getLogger(__name__)


class ArtifactRole:
    """Well-known subdirectory roles of a project.

    The directory names match the layout used by the shell workflow
    so that projects it started can be resumed.
    """

    RAW_MAPPING = "raw-mapping"
    REFERENCE_MAPPING = "reference-mapping"
    STATISTICS = "statistics"
    ORGANELLE_READS = "organelle-reads"
    LONG_ORGANELLE_READS = "long-organelle-reads"
    VARIANT_OUTPUT = "variant-output"
    FINAL_VARIANTS = "final-variants"
    TEMP = "temp"

    DIRECTORIES: Dict[str, str] = {
        RAW_MAPPING: "starting_raw_seq_mapping_dir",
        REFERENCE_MAPPING: "starting_raw_seq_mapping_ref_dir",
        STATISTICS: "starting_raw_seq_stats_dir",
        ORGANELLE_READS: "starting_raw_seq_mtDNA_dir",
        LONG_ORGANELLE_READS: "starting_raw_seq_long_mtDNA_reads_dir",
        VARIANT_OUTPUT: "starting_raw_seq_mapping_ref_dir/medaka_dir",
        FINAL_VARIANTS: "starting_raw_seq_mapping_ref_dir/medaka_dir/final_vcf_dir",
        TEMP: "tmp",
    }


class ArtifactStore:
    """Manages all file paths for a project.

    The ArtifactStore provides centralized management of file paths, ensuring
    consistent naming and organization of derived files. It handles:
    - Project root and role directory creation
    - Deterministic per-sample artifact naming
    - Aggregate (all-sample) file paths
    - Temporary file management

    Artifact names follow ``<sample>.<suffix>.<extension>``, so a later stage
    can locate an earlier stage's output without a manifest, and outputs of
    different stages never collide for the same sample.

    Attributes
    ----------
    root : Path
        Project root directory
    project_name : str
        Name of the project
    """

    CHECKPOINT_FILE_NAME = "progress.log"

    def __init__(self, output_root: Union[str, Path], project_name: str):
        """Initialize the store for ``<output_root>/<project_name>``.

        Nothing is created on disk until ``prepare`` or ``directory`` is called.

        Parameters
        ----------
        output_root : str or Path
            Directory the project directory lives in
        project_name : str
            Name of the project
        """
        if not project_name or "/" in project_name or project_name in (".", ".."):
            raise ValueError(f"Invalid project name: {project_name!r}")
        self.project_name = project_name
        self.root = Path(output_root).expanduser().resolve() / project_name
        self._created: Dict[str, Path] = {}

    @property
    def checkpoint_path(self) -> Path:
        """Path of the project's checkpoint log."""
        return self.root / self.CHECKPOINT_FILE_NAME

    def role_path(self, role: str) -> Path:
        """Return the directory path for ``role`` without creating it."""
        try:
            return self.root / ArtifactRole.DIRECTORIES[role]
        except KeyError:
            raise ValueError(f"Unknown artifact role: {role!r}") from None

    def directory(self, role: str) -> Path:
        """Return the directory for ``role``, creating it on first use.

        Parameters
        ----------
        role : str
            One of the ``ArtifactRole`` constants

        Returns
        -------
        Path
            The role directory; repeated calls return the same path
        """
        path = self._created.get(role)
        if path is not None:
            return path
        path = self.role_path(role)
        path.mkdir(parents=True, exist_ok=True)
        self._created[role] = path
        logger.debug(f"Artifact directory ready for role '{role}': {path}")
        return path

    def prepare(self) -> Path:
        """Create the project root and every role directory."""
        self.root.mkdir(parents=True, exist_ok=True)
        for role in ArtifactRole.DIRECTORIES:
            self.directory(role)
        logger.info(f"Output will be in the project directory at {self.root}")
        return self.root

    def artifact_path(self, role: str, sample_name: str, suffix: str, extension: str) -> Path:
        """Generate the path of a per-sample artifact.

        A pure function of the project root, role, sample, suffix and
        extension; it touches nothing on disk.

        Parameters
        ----------
        role : str
            Role directory the artifact lives in
        sample_name : str
            SampleUnit base name (e.g. ``"barcode01"``)
        suffix : str
            Stage-specific suffix (e.g. ``"sorted"``)
        extension : str
            File extension without leading dot (e.g. ``"bam"``)

        Returns
        -------
        Path
            ``<role dir>/<sample>.<suffix>.<extension>``
        """
        extension = extension.lstrip(".")
        name = f"{sample_name}.{suffix}.{extension}" if suffix else f"{sample_name}.{extension}"
        return self.role_path(role) / name

    def aggregate_path(self, role: str, file_name: str) -> Path:
        """Generate the path of a file aggregating all samples."""
        return self.role_path(role) / file_name

    def temp_path(self, name: str) -> Path:
        """Generate a path in the project temp directory."""
        return self.role_path(ArtifactRole.TEMP) / name

    def cleanup_temp(self) -> None:
        """Remove the contents of the temp directory."""
        temp_dir = self.role_path(ArtifactRole.TEMP)
        if not temp_dir.exists():
            return
        for child in temp_dir.iterdir():
            if child.is_dir():
                shutil.rmtree(child)
            else:
                child.unlink()
        logger.debug(f"Cleaned up temporary directory: {temp_dir}")

    def __repr__(self) -> str:
        """Return string representation of the store."""
        return f"ArtifactStore(root='{self.root}')"
