"""
Submitted-idea persistence.

Append-only CSV file, one row per submitted idea.
"""

import csv
import logging
import os
import threading
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from intake.core.field_mapper import CSV_COLUMNS

logger = logging.getLogger(__name__)


class IdeaStore:
    """
    Appends idea records to a CSV file.

    Layout:
        data/ideas.csv
            header row (CSV_COLUMNS)
            one quoted row per submission

    Design:
    - Append-only (never rewrite existing rows)
    - Header written only when the file is new or empty
    - Every value quoted, so multi-line answers and commas survive
    - Header check and write happen under one lock (threaded servers)
    """

    def __init__(self, csv_path: str = "data/ideas.csv", columns: Optional[Sequence[str]] = None):
        """
        Initialize store.

        Args:
            csv_path: Target CSV file (parent directory is created)
            columns: Column order (defaults to the 39-column schema)
        """
        self.csv_path = Path(csv_path)
        self.columns = list(columns or CSV_COLUMNS)
        self._lock = threading.Lock()
        self.csv_path.parent.mkdir(parents=True, exist_ok=True)
        logger.info(f"IdeaStore initialized: {self.csv_path}")

    def _needs_header(self) -> bool:
        return not self.csv_path.exists() or self.csv_path.stat().st_size == 0

    def append(self, row: Dict[str, str]) -> str:
        """
        Append one record.

        Args:
            row: Column -> value (must contain every column)

        Returns:
            str: Absolute path of the CSV file

        Raises:
            ValueError: If the row is missing columns or has unknown ones
        """
        missing = [column for column in self.columns if column not in row]
        if missing:
            raise ValueError(f"Row missing columns: {missing}")

        unexpected = [key for key in row if key not in self.columns]
        if unexpected:
            raise ValueError(f"Row has unknown columns: {unexpected}")

        with self._lock:
            write_header = self._needs_header()
            with open(self.csv_path, 'a', newline='', encoding='utf-8') as f:
                writer = csv.DictWriter(f, fieldnames=self.columns, quoting=csv.QUOTE_ALL)
                if write_header:
                    writer.writeheader()
                writer.writerow(row)

        logger.info(f"Appended {row.get('opportunity_id', '?')} to {self.csv_path.name}")
        return str(self.csv_path.absolute())

    def read_all(self) -> List[Dict[str, str]]:
        """
        Read every stored record.

        Returns:
            list: Rows as dicts ([] if the file doesn't exist)
        """
        if not self.csv_path.exists():
            return []

        with open(self.csv_path, 'r', newline='', encoding='utf-8') as f:
            return list(csv.DictReader(f))

    def count(self) -> int:
        return len(self.read_all())

    def is_writable(self) -> bool:
        """True if the file (or its directory when new) can be written"""
        target = self.csv_path if self.csv_path.exists() else self.csv_path.parent
        return target.exists() and os.access(target, os.W_OK)
