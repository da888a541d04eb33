"""Append-only checkpoint log for xenmito projects.

Each completed stage is recorded as one JSON line in ``progress.log`` under
the project root. The log is only ever appended to; it is never truncated or
rewritten, so an interrupted run leaves every earlier entry intact and
re-running the pipeline is a plain resume.

Lines written by the shell workflow (``Step2.6 completed``) are
understood as well and mapped to stage identifiers through their ordinals.
"""

import json
import logging
import os
import re
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

from .pipeline_core.error_handling import CheckpointWriteFailure

logger = logging.getLogger(__name__)

LEGACY_LINE = re.compile(r"^Step(\S+) completed$")


@dataclass(frozen=True)
class CheckpointEntry:
    """Record that a stage fully completed for every sample of the project."""

    stage: str
    ordinal: Optional[str] = None
    completed_at: Optional[str] = None
    samples: Tuple[str, ...] = field(default_factory=tuple)
    legacy: bool = False

    def to_json(self) -> str:
        """Serialize to a single JSON line (without newline)."""
        data = asdict(self)
        data["samples"] = list(self.samples)
        data.pop("legacy")
        return json.dumps(data, sort_keys=True)

    @classmethod
    def from_json(cls, line: str) -> "CheckpointEntry":
        """Parse a JSON line written by ``to_json``."""
        data = json.loads(line)
        if not isinstance(data, dict) or not data.get("stage"):
            raise ValueError("checkpoint record without a stage")
        return cls(
            stage=str(data["stage"]),
            ordinal=data.get("ordinal"),
            completed_at=data.get("completed_at"),
            samples=tuple(data.get("samples") or ()),
        )


class CheckpointLog:
    """Durable, human-readable log of completed stages.

    Parameters
    ----------
    path : str or Path
        Location of the log file (``<project_root>/progress.log``)
    legacy_ordinals : Mapping[str, str], optional
        Ordinal -> stage id table used to interpret ``StepN completed`` lines
    """

    def __init__(
        self, path: Union[str, Path], legacy_ordinals: Optional[Mapping[str, str]] = None
    ):
        self.path = Path(path)
        self.legacy_ordinals = dict(legacy_ordinals or {})

    def entries(self) -> List[CheckpointEntry]:
        """Parse every entry of the log in file order.

        A missing log means a first run and yields no entries.
        """
        if not self.path.exists():
            return []

        entries = []
        with open(self.path, "r", encoding="utf-8") as f:
            for lineno, raw in enumerate(f, start=1):
                line = raw.strip()
                if not line:
                    continue
                entry = self._parse_line(line)
                if entry is None:
                    logger.warning(f"Ignoring unrecognised line {lineno} in {self.path}: {line!r}")
                    continue
                entries.append(entry)
        return entries

    def _parse_line(self, line: str) -> Optional[CheckpointEntry]:
        if line.startswith("{"):
            try:
                return CheckpointEntry.from_json(line)
            except ValueError:
                # json.JSONDecodeError is a ValueError
                return None

        match = LEGACY_LINE.match(line)
        if match:
            ordinal = match.group(1)
            stage = self.legacy_ordinals.get(ordinal)
            if stage is None:
                return None
            return CheckpointEntry(stage=stage, ordinal=ordinal, legacy=True)
        return None

    def load(self) -> Dict[str, CheckpointEntry]:
        """Return the completed stage ids mapped to their latest entry."""
        completed: Dict[str, CheckpointEntry] = {}
        for entry in self.entries():
            completed[entry.stage] = entry
        return completed

    def has_completed(self, stage_id: str) -> bool:
        """Whether the log records ``stage_id`` as completed (exact match)."""
        return stage_id in self.load()

    def mark_completed(
        self, stage_id: str, ordinal: Optional[str] = None, samples: Iterable[str] = ()
    ) -> CheckpointEntry:
        """Append a completion entry for ``stage_id``.

        The line is flushed and fsync'ed before returning.

        Raises
        ------
        CheckpointWriteFailure
            If the entry cannot be written; the pipeline must stop
        """
        entry = CheckpointEntry(
            stage=stage_id,
            ordinal=ordinal,
            completed_at=datetime.now().isoformat(timespec="seconds"),
            samples=tuple(sorted(samples)),
        )
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            separator = self._unterminated()
            with open(self.path, "a", encoding="utf-8") as f:
                if separator:
                    f.write("\n")
                f.write(entry.to_json() + "\n")
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            raise CheckpointWriteFailure(self.path, stage_id, e) from e

        logger.info(f"Checkpoint committed: {stage_id} completed")
        return entry

    def _unterminated(self) -> bool:
        """Whether the log ends in a partial line left by an interrupted write."""
        if not self.path.exists() or self.path.stat().st_size == 0:
            return False
        with open(self.path, "rb") as f:
            f.seek(-1, os.SEEK_END)
            if f.read(1) == b"\n":
                return False
        logger.warning(f"Checkpoint log {self.path} ends in a partial line; starting a new line")
        return True

    def summary(self, stage_order: Optional[List[Tuple[str, str]]] = None) -> str:
        """Get a human-readable summary of the checkpoint log.

        Parameters
        ----------
        stage_order : list of (stage_id, ordinal), optional
            Known stages in pipeline order; when given, pending stages are listed too
        """
        completed = self.load()
        lines = ["Pipeline Checkpoint Summary:", f"  Checkpoint log: {self.path}"]
        if not self.path.exists():
            lines.append("  No checkpoint log yet (pipeline never completed a stage)")

        lines.append("\nStages:")
        names = [s for s, _ in stage_order] if stage_order else list(completed)
        for stage_id in names:
            entry = completed.get(stage_id)
            if entry is None:
                lines.append(f"  · {stage_id}")
                continue
            when = entry.completed_at or "legacy log entry"
            lines.append(f"  ✓ {stage_id} ({when})")
        return "\n".join(lines)

    def __repr__(self) -> str:
        """Return string representation of the log."""
        return f"CheckpointLog(path='{self.path}')"
