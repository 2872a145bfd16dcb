"""Spreadsheet-backed table storage.

Each table lives in one worksheet of one .xlsx workbook. Row 1 holds the
column headers and every following non-empty row is a record. Writes
rewrite the whole worksheet; there is no row-level patching.
"""

import logging
import os
import uuid
import zipfile
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from openpyxl import Workbook, load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from app.exceptions import (
    MalformedTableError,
    NotFoundError,
    SheetMissingError,
    StorageIOError,
    WriteFailedError,
)
from app.tables import TABLES, TableSpec, get_table_spec
from app.utils import is_blank, normalize_cell, to_text

logger = logging.getLogger(__name__)

Row = Dict[str, Any]


@dataclass
class Table:
    """An ordered snapshot of one table."""
    key: str
    columns: List[str]
    rows: List[Row] = field(default_factory=list)

    def copy(self) -> "Table":
        """Copy the snapshot so callers can mutate rows without touching the original."""
        return Table(key=self.key, columns=list(self.columns), rows=[dict(row) for row in self.rows])

    def all_columns(self) -> List[str]:
        """Header columns followed by any keys that only appear in rows."""
        columns = list(self.columns)
        seen = set(columns)
        for row in self.rows:
            for name in row:
                if name not in seen:
                    seen.add(name)
                    columns.append(name)
        return columns


class TableStore(ABC):
    """Base class for table storage backends."""

    @abstractmethod
    def load(self, table_key: str) -> Table:
        """Load every row of a table in source order."""
        pass

    @abstractmethod
    def save(self, table: Table) -> None:
        """Persist the full row sequence of a table, replacing what was there."""
        pass

    @abstractmethod
    def ensure_column(self, table_key: str, column: str) -> bool:
        """Add a header column if it is missing. Returns True if it was added."""
        pass


class ExcelTableStore(TableStore):
    """Table storage on .xlsx workbooks via openpyxl."""

    def __init__(
        self,
        base_path: str,
        path_overrides: Optional[Dict[str, str]] = None,
        tables: Optional[Dict[str, TableSpec]] = None,
    ):
        """
        Initialize the store.

        Args:
            base_path: Directory holding the workbooks
            path_overrides: Explicit workbook path per table key
            tables: Table registry (defaults to the built-in TABLES)
        """
        self.base_path = Path(base_path)
        self.path_overrides = dict(path_overrides or {})
        self.tables = TABLES if tables is None else tables

    def get_spec(self, table_key: str) -> TableSpec:
        return get_table_spec(table_key, self.tables)

    def resolve_path(self, table_key: str) -> Path:
        """Get the workbook path for a table (explicit override wins over base path)."""
        spec = self.get_spec(table_key)
        override = self.path_overrides.get(table_key) or spec.path
        if override:
            return Path(override)
        return self.base_path / spec.file_name

    def exists(self, table_key: str) -> bool:
        return self.resolve_path(table_key).exists()

    def load(self, table_key: str) -> Table:
        """
        Load a table from its workbook.

        Raises:
            NotFoundError: If the workbook does not exist
            SheetMissingError: If the sheet does not exist in the workbook
            MalformedTableError: If the file is not a workbook or headers repeat
            StorageIOError: If the file cannot be read
        """
        spec = self.get_spec(table_key)
        path = self.resolve_path(table_key)

        if not path.exists():
            raise NotFoundError(f"File not found: {path}")

        workbook = self._open(path, read_only=True)
        try:
            if spec.sheet_name not in workbook.sheetnames:
                raise SheetMissingError(f'Sheet "{spec.sheet_name}" not found in {spec.file_name}')
            table = self._parse_sheet(table_key, workbook[spec.sheet_name])
        finally:
            workbook.close()

        logger.debug(f"Loaded {len(table.rows)} rows from {path} [{spec.sheet_name}]")
        return table

    def save(self, table: Table) -> None:
        """
        Rewrite a table's sheet with the given rows.

        Other sheets in the workbook are kept. The workbook is written to a
        temporary file next to the original and renamed over it.

        Raises:
            WriteFailedError: If the workbook could not be written or is empty afterwards
        """
        spec = self.get_spec(table.key)
        path = self.resolve_path(table.key)
        columns = table.all_columns()

        if path.exists():
            workbook = self._open(path, read_only=False)
        else:
            workbook = Workbook()
            workbook.remove(workbook.active)

        if spec.sheet_name in workbook.sheetnames:
            sheet = workbook[spec.sheet_name]
            if sheet.max_row:
                sheet.delete_rows(1, sheet.max_row)
        else:
            sheet = workbook.create_sheet(spec.sheet_name)

        for col_idx, name in enumerate(columns, start=1):
            sheet.cell(row=1, column=col_idx, value=name)
        for row_idx, row in enumerate(table.rows, start=2):
            for col_idx, name in enumerate(columns, start=1):
                self._write_cell(sheet, row_idx, col_idx, row.get(name))

        size_before = path.stat().st_size if path.exists() else 0
        self._write_workbook(workbook, path)
        logger.info(
            f"Saved {len(table.rows)} rows to {path} [{spec.sheet_name}] "
            f"(before: {size_before} bytes, after: {path.stat().st_size} bytes)"
        )

    def ensure_column(self, table_key: str, column: str) -> bool:
        """Add a header column to the table's sheet if it is missing."""
        spec = self.get_spec(table_key)
        path = self.resolve_path(table_key)

        if not path.exists():
            raise NotFoundError(f"File not found: {path}")

        workbook = self._open(path, read_only=False)
        if spec.sheet_name not in workbook.sheetnames:
            raise SheetMissingError(f'Sheet "{spec.sheet_name}" not found in {spec.file_name}')
        sheet = workbook[spec.sheet_name]

        headers = [cell.value for cell in sheet[1]] if sheet.max_row >= 1 else []
        if column in [to_text(h) for h in headers if not is_blank(h)]:
            return False

        last_col = max((idx for idx, h in enumerate(headers, start=1) if not is_blank(h)), default=0)
        sheet.cell(row=1, column=last_col + 1, value=column)
        self._write_workbook(workbook, path)
        logger.info(f'Added column "{column}" to {spec.file_name}')
        return True

    def _open(self, path: Path, read_only: bool):
        try:
            # Cached values for reads; formulas on other sheets survive a rewrite
            return load_workbook(path, read_only=read_only, data_only=read_only)
        except (InvalidFileException, zipfile.BadZipFile, KeyError) as e:
            raise MalformedTableError(f"Not a readable workbook: {path} ({e})") from e
        except OSError as e:
            raise StorageIOError(f"Failed to read {path}: {e}") from e

    def _parse_sheet(self, table_key: str, sheet) -> Table:
        rows_iter = sheet.iter_rows(values_only=True)
        header = next(rows_iter, None)
        if header is None:
            return Table(key=table_key, columns=[], rows=[])

        columns: List[str] = []
        positions: List[int] = []
        for idx, raw_name in enumerate(header):
            if is_blank(raw_name):
                continue
            name = to_text(raw_name)
            if name in columns:
                raise MalformedTableError(f'Duplicate column "{name}" in table {table_key}')
            columns.append(name)
            positions.append(idx)

        rows: List[Row] = []
        for values in rows_iter:
            row: Row = {}
            for name, idx in zip(columns, positions):
                if idx >= len(values):
                    continue
                value = normalize_cell(values[idx])
                if value is not None:
                    row[name] = value
            if row:
                rows.append(row)

        return Table(key=table_key, columns=columns, rows=rows)

    @staticmethod
    def _write_cell(sheet, row_idx: int, col_idx: int, value: Any) -> None:
        cell = sheet.cell(row=row_idx, column=col_idx, value=normalize_cell(value))
        # openpyxl treats a leading "=" as a formula
        if isinstance(value, str) and value.startswith("="):
            cell.data_type = "s"

    @staticmethod
    def _write_workbook(workbook, path: Path) -> None:
        tmp_path = path.with_name(f".{path.stem}.{uuid.uuid4().hex}.tmp.xlsx")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            workbook.save(tmp_path)
            if tmp_path.stat().st_size == 0:
                raise WriteFailedError(f"Write verification failed: {path} is empty after write")
            os.replace(tmp_path, path)
        except WriteFailedError:
            raise
        except OSError as e:
            raise WriteFailedError(f"Failed to write {path}: {e}") from e
        finally:
            if tmp_path.exists():
                try:
                    tmp_path.unlink()
                except OSError:
                    logger.warning(f"Could not remove temporary file {tmp_path}")
