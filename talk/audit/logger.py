"""Run log: what was heard, how it was classified, and how it ended.

The `talk log` command reads it back for debugging classification.
"""

import logging
from datetime import UTC, datetime
from pathlib import Path

from talk.schemas.context import AppContext
from talk.schemas.intent import Intent
from talk.schemas.pipeline import ClassificationSource, RunLogEntry
from talk.schemas.results import ActionFailure, ActionSuccess

logger = logging.getLogger(__name__)


class RunLog:
    """One JSON line per pipeline run, appended and never rewritten."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        return self._path

    def log(self, entry: RunLogEntry) -> None:
        """Append ``entry`` as one line."""
        with self._path.open("a") as f:
            f.write(entry.model_dump_json() + "\n")
        logger.debug(
            "Run log: action=%s success=%s source=%s",
            entry.action,
            entry.success,
            entry.source,
        )

    def log_run(
        self,
        transcription: str,
        context: AppContext,
        intent: Intent,
        source: ClassificationSource,
        result: ActionSuccess | ActionFailure,
        *,
        workflow_steps: int = 0,
    ) -> RunLogEntry:
        entry = RunLogEntry(
            timestamp=datetime.now(UTC),
            transcription=transcription,
            bundle_identifier=context.bundle_identifier,
            action=intent.action,
            confidence=intent.confidence,
            source=source,
            success=result.is_success,
            message=result.message,
            workflow_steps=workflow_steps,
        )
        self.log(entry)
        return entry

    def read_entries(
        self,
        *,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> list[RunLogEntry]:
        """Runs in file order (oldest first).

        ``since`` keeps only runs strictly after that instant; ``limit`` then
        keeps the newest N of what is left.
        """
        if not self._path.exists():
            return []

        with self._path.open() as f:
            runs = [RunLogEntry.model_validate_json(line) for line in f if line.strip()]

        if since is not None:
            runs = [run for run in runs if run.timestamp > since]
        return runs if limit is None else runs[max(len(runs) - limit, 0):]
