"""Read, download and clear the JSON-lines log file written by setup_logging"""

import json
import logging
import math
import shutil
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, List

from clover_checkout.config import settings

LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _record_date(record: Dict[str, Any]) -> date | None:
    try:
        return datetime.fromisoformat(str(record.get("timestamp", ""))).date()
    except ValueError:
        return None


class LogStore:
    """Log file access for the admin log surface"""

    def __init__(self, log_file: str | None = None, logger: logging.Logger | None = None):
        self.path = Path(log_file or settings.log_file)
        self.logger = logger or logging.getLogger(__name__)

    def _read_records(self) -> List[Dict[str, Any]]:
        if not self.path.exists():
            return []
        records = []
        with self.path.open(encoding="utf-8") as handle:
            for line in handle:
                line = line.strip()
                if not line:
                    continue
                try:
                    record = json.loads(line)
                except ValueError:
                    # Lines written before JSON logging was enabled
                    record = {"level": "INFO", "message": line}
                if isinstance(record, dict):
                    records.append(record)
        return records

    def get_logs(
        self,
        level: str | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
        page: int = 1,
        per_page: int = 50,
    ) -> Dict[str, Any]:
        """
        Return one page of log records, newest first.

        Args:
            level: Only records at this level (case-insensitive)
            date_from: Only records on or after this day
            date_to: Only records on or before this day
            page: 1-based page number
            per_page: Records per page
        """
        if level and level.upper() not in LEVELS:
            raise ValueError(f"Unknown log level: {level}")
        page = max(page, 1)
        per_page = max(per_page, 1)

        records = []
        for record in self._read_records():
            if level and str(record.get("level", "")).upper() != level.upper():
                continue
            if date_from or date_to:
                day = _record_date(record)
                if day is None:
                    continue
                if date_from and day < date_from:
                    continue
                if date_to and day > date_to:
                    continue
            records.append(record)

        records.reverse()
        total = len(records)
        start = (page - 1) * per_page
        return {
            "logs": records[start : start + per_page],
            "pagination": {
                "current_page": page,
                "total_pages": math.ceil(total / per_page) if total else 0,
                "total_logs": total,
                "per_page": per_page,
            },
        }

    def download(self) -> str:
        """Whole log file as text"""
        if not self.path.exists():
            return ""
        return self.path.read_text(encoding="utf-8")

    def clear(self) -> Path | None:
        """
        Empty the log file after copying it to a timestamped backup.

        Returns the backup path, or None when there was nothing to clear.
        """
        if not self.path.exists() or self.path.stat().st_size == 0:
            return None
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        backup = self.path.with_name(f"{self.path.name}.{stamp}.bak")
        shutil.copyfile(self.path, backup)
        # Truncate in place so the open RotatingFileHandler keeps writing to the same file
        with self.path.open("w", encoding="utf-8"):
            pass
        self.logger.info("Log file cleared", extra={"backup": str(backup)})
        return backup
