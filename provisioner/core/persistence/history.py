"""
Run history — append-only ledger of provisioning runs.

Every non-dry run appends one RunReport as a JSON line to
``<cache_dir>/history.ndjson``. Entries are never modified or deleted.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from provisioner.core.models.report import RunReport

logger = logging.getLogger(__name__)


class HistoryWriter:
    """Append-only run ledger."""

    def __init__(self, path: Path):
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def write(self, report: RunReport) -> None:
        """Append a report to the ledger.

        A ledger that cannot be written is logged, not raised: the run
        itself already happened.
        """
        line = json.dumps(report.model_dump(mode="json"), ensure_ascii=False) + "\n"
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line)
            logger.debug("History entry written: %s", report.run_id)
        except OSError as e:
            logger.error("Failed to write run history: %s", e)

    def read_all(self) -> list[RunReport]:
        """Read every report, oldest first. Corrupt lines are skipped."""
        if not self._path.is_file():
            return []

        reports = []
        try:
            with self._path.open("r", encoding="utf-8") as f:
                for line_num, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        reports.append(RunReport.model_validate(json.loads(line)))
                    except (json.JSONDecodeError, ValidationError) as e:
                        logger.warning("Skipping corrupt history entry at line %d: %s", line_num, e)
        except OSError as e:
            logger.error("Failed to read run history: %s", e)

        return reports

    def read_recent(self, n: int = 10) -> list[RunReport]:
        """Read the most recent N reports."""
        if n <= 0:
            return []
        return self.read_all()[-n:]
