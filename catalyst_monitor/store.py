from __future__ import annotations

import csv
import logging
import os
import tempfile
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import TypeVar

from pydantic import ValidationError

from catalyst_monitor.errors import PersistenceError
from catalyst_monitor.schemas import TableRow

log = logging.getLogger(__name__)

R = TypeVar("R", bound=TableRow)


class TabularStore:
    """Named tables persisted as ``<data_dir>/<name>.csv``.

    Writes replace the whole file atomically (temp file + rename), so a
    table is either fully rewritten or left untouched.
    """

    def __init__(self, data_dir: str | Path):
        self.data_dir = Path(data_dir)

    def path(self, name: str) -> Path:
        return self.data_dir / f"{name}.csv"

    def write_table(self, name: str, header: Sequence[str], rows: Iterable[Sequence[object]]) -> Path:
        target = self.path(name)
        tmp_path: Path | None = None
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(prefix=f".{name}.", suffix=".csv", dir=self.data_dir)
            tmp_path = Path(tmp)
            count = 0
            with os.fdopen(fd, "w", newline="", encoding="utf-8") as f:
                w = csv.writer(f)
                w.writerow(list(header))
                for row in rows:
                    w.writerow(["" if cell is None else cell for cell in row])
                    count += 1
            os.replace(tmp_path, target)
        except OSError as exc:
            if tmp_path is not None:
                tmp_path.unlink(missing_ok=True)
            raise PersistenceError(f"Failed to write table {name}: {exc}", table=name) from exc
        log.info("Wrote %d rows to %s", count, target)
        return target

    def read_table(self, name: str) -> tuple[list[str], list[list[str]]]:
        """Return ``(header, rows)``; a missing file yields ``([], [])``."""
        target = self.path(name)
        if not target.exists():
            return [], []
        try:
            with target.open("r", newline="", encoding="utf-8") as f:
                records = list(csv.reader(f))
        except (OSError, csv.Error) as exc:
            raise PersistenceError(f"Failed to read table {name}: {exc}", table=name) from exc
        if not records:
            return [], []
        return records[0], records[1:]

    def write_rows(self, row_type: type[R], rows: Sequence[R]) -> Path:
        return self.write_table(row_type.TABLE, row_type.headers(), (r.cells() for r in rows))

    def load_rows(self, row_type: type[R]) -> list[R]:
        header, rows = self.read_table(row_type.TABLE)
        if not header:
            return []
        index = row_type.field_index(header)
        missing = [h for h, field in row_type.COLUMNS if field not in index]
        if missing:
            log.warning("Table %s is missing columns %s; using defaults", row_type.TABLE, missing)
        try:
            return [row_type.from_cells(index, row) for row in rows if any(cell != "" for cell in row)]
        except ValidationError as exc:
            raise PersistenceError(f"Malformed row in table {row_type.TABLE}: {exc}", table=row_type.TABLE) from exc
