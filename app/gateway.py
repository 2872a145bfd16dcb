"""Identifier-based mutations against spreadsheet tables.

Every mutation runs load -> match -> mutate -> save -> invalidate, in that
order, and always loads straight from the store so it works on the latest
file contents. Rows are addressed by their natural key; a key that matches
no row or several rows is an error, never a guess.

Writes are serialized per table inside this process only. Two processes
writing the same workbook still overwrite each other (last write wins),
because each save rewrites the whole sheet.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from app.cache import TableCache
from app.filters import is_active
from app.exceptions import (
    AmbiguousMatchError,
    MalformedTableError,
    RecordNotFoundError,
    ValidationError,
    WriteFailedError,
)
from app.store import Row, Table, TableStore
from app.tables import TableSpec, get_table_spec
from app.utils import SCALAR_TYPES, is_blank, normalize_cell, to_flag, values_match

logger = logging.getLogger(__name__)


@dataclass
class MutationResult:
    """Outcome of a successful mutation."""
    success: bool
    table: str
    value: Any = None
    row_index: Optional[int] = None
    changed: bool = True


class MutationGateway:
    """Applies cell updates, row inserts and soft deletes to tables."""

    def __init__(self, store: TableStore, cache: TableCache, tables: Optional[Dict[str, TableSpec]] = None):
        self.store = store
        self.cache = cache
        self.tables = tables
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def update_cell(self, table_key: str, identifier: Dict[str, Any], column: str, value: Any) -> MutationResult:
        """
        Set one cell on the row identified by its natural key.

        Args:
            table_key: Table to update
            identifier: Natural-key column values (may include extra columns to narrow the match)
            column: Column to set
            value: New scalar value (None clears the cell)

        Returns:
            MutationResult echoing the stored value

        Raises:
            ValidationError: Bad identifier, unknown column or non-scalar value
            RecordNotFoundError: No row matches
            AmbiguousMatchError: More than one row matches; nothing is written
            WriteFailedError: The save failed or the value did not read back
        """
        spec = self._spec(table_key)
        self._check_identifier(spec, identifier)
        if not column:
            raise ValidationError("Missing column")
        value = self._check_value(column, value)

        with self._lock(table_key):
            table = self.store.load(table_key)
            if column not in table.columns:
                raise ValidationError(f'Column "{column}" not found in sheet')

            index = self._find_unique(table, identifier, spec.flag_column)
            row = table.rows[index]
            old_value = row.get(column)
            self._set(row, column, value)
            logger.info(f'Updating {table_key} row {index} column "{column}": "{old_value}" -> "{value}"')

            self._commit(table)
            self._verify(table_key, index, {column: value})

        return MutationResult(success=True, table=table_key, value=value, row_index=index)

    def update_row(self, table_key: str, identifier: Dict[str, Any], updates: Dict[str, Any]) -> MutationResult:
        """Set several cells on one row. Columns missing from the sheet are skipped."""
        spec = self._spec(table_key)
        self._check_identifier(spec, identifier)
        if not isinstance(updates, dict) or not updates:
            raise ValidationError("Missing updates")
        updates = {column: self._check_value(column, value) for column, value in updates.items()}

        with self._lock(table_key):
            table = self.store.load(table_key)
            applied = {}
            for column, value in updates.items():
                if column not in table.columns:
                    logger.warning(f'Column "{column}" not found in {table_key}, skipping')
                    continue
                applied[column] = value
            if not applied:
                raise ValidationError("None of the updated columns exist in the sheet")

            index = self._find_unique(table, identifier, spec.flag_column)
            for column, value in applied.items():
                self._set(table.rows[index], column, value)
            logger.info(f"Updating {table_key} row {index}: {sorted(applied)}")

            self._commit(table)
            self._verify(table_key, index, applied)

        return MutationResult(success=True, table=table_key, value=applied, row_index=index)

    def add_row(self, table_key: str, row_data: Dict[str, Any], client: Optional[str] = None) -> MutationResult:
        """
        Append a new row at the end of the table.

        Client is filled in for client-scoped tables and Active defaults to 1
        on tables using an Active flag. Duplicate natural keys are not
        rejected here; they surface as AmbiguousMatchError on the next
        keyed mutation.

        Raises:
            ValidationError: Payload is empty, has non-scalar values, lacks a
                natural-key value or names a different client
            MalformedTableError: The sheet has no column for a natural-key field
        """
        spec = self._spec(table_key)
        if not isinstance(row_data, dict) or not row_data:
            raise ValidationError("Missing row data")
        row = {column: self._check_value(column, value) for column, value in row_data.items()}

        if spec.client_scoped and client:
            if is_blank(row.get("Client")):
                row["Client"] = client
            elif row["Client"] != client:
                raise ValidationError(f'Row Client "{row["Client"]}" does not match client "{client}"')
        if spec.uses_active_flag and is_blank(row.get(spec.flag_column)):
            row[spec.flag_column] = 1

        missing = [column for column in spec.natural_key if is_blank(row.get(column))]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        with self._lock(table_key):
            table = self.store.load(table_key)
            absent_keys = [column for column in spec.natural_key if column not in table.columns]
            if absent_keys:
                raise MalformedTableError(f"Table {table_key} has no column(s): {', '.join(absent_keys)}")

            new_row: Row = {}
            for column, value in row.items():
                if column not in table.columns:
                    logger.warning(f'Column "{column}" not found in {table_key}, skipping')
                    continue
                if value is not None:
                    new_row[column] = value

            duplicates = self._matching_indexes(table, {k: new_row.get(k) for k in spec.natural_key})
            if duplicates:
                logger.warning(f"Adding duplicate natural key to {table_key} (matches rows {duplicates})")

            table.rows.append(new_row)
            index = len(table.rows) - 1
            logger.info(f"Adding row {index} to {table_key}")
            self._commit(table)

        return MutationResult(success=True, table=table_key, value=new_row, row_index=index)

    def set_inactive(self, table_key: str, identifier: Dict[str, Any], inactive: bool = True) -> MutationResult:
        """
        Soft-delete (or restore) a row through the table's flag column.

        Active-style tables get Active=0 when deactivated, Inactive-style
        tables get Inactive=1. The flag column is added to the sheet if
        missing. Repeating the call leaves the row unchanged and succeeds.
        """
        spec = self._spec(table_key)
        self._check_identifier(spec, identifier)
        flag_column = spec.flag_column
        if spec.uses_active_flag:
            flag_value = 0 if inactive else 1
        else:
            flag_value = 1 if inactive else 0

        with self._lock(table_key):
            table = self.store.load(table_key)
            index = self._find_unique(table, identifier, spec.flag_column)
            row = table.rows[index]

            if flag_column in table.columns and to_flag(row.get(flag_column)) == flag_value:
                logger.debug(f"{table_key} row {index} already has {flag_column}={flag_value}")
                return MutationResult(success=True, table=table_key, value=flag_value, row_index=index, changed=False)

            if flag_column not in table.columns:
                table.columns.append(flag_column)
            row[flag_column] = flag_value
            logger.info(f"Setting {table_key} row {index} {flag_column}={flag_value}")

            self._commit(table)
            self._verify(table_key, index, {flag_column: flag_value})

        return MutationResult(success=True, table=table_key, value=flag_value, row_index=index)

    def ensure_column(self, table_key: str, column: str) -> MutationResult:
        """Add a header column if missing."""
        self._spec(table_key)
        if not column or not isinstance(column, str):
            raise ValidationError("Missing column")

        with self._lock(table_key):
            added = self.store.ensure_column(table_key, column)
            if added:
                self.cache.invalidate(table_key)

        return MutationResult(success=True, table=table_key, value=column, changed=added)

    def _spec(self, table_key: str) -> TableSpec:
        return get_table_spec(table_key, self.tables)

    def _lock(self, table_key: str) -> threading.Lock:
        with self._locks_guard:
            if table_key not in self._locks:
                self._locks[table_key] = threading.Lock()
            return self._locks[table_key]

    @staticmethod
    def _check_identifier(spec: TableSpec, identifier: Dict[str, Any]) -> None:
        if not isinstance(identifier, dict) or not identifier:
            raise ValidationError("Missing row identifier")
        missing = [column for column in spec.natural_key if column not in identifier]
        if missing:
            raise ValidationError(f"Identifier for {spec.key} is missing: {', '.join(missing)}")
        for column, value in identifier.items():
            if not isinstance(value, SCALAR_TYPES):
                raise ValidationError(f'Identifier value for "{column}" must be a scalar')

    @staticmethod
    def _check_value(column: str, value: Any) -> Any:
        if not isinstance(value, SCALAR_TYPES):
            raise ValidationError(f'Value for "{column}" must be a string, number or boolean')
        return normalize_cell(value)

    @staticmethod
    def _set(row: Row, column: str, value: Any) -> None:
        if value is None:
            row.pop(column, None)
        else:
            row[column] = value

    @staticmethod
    def _matching_indexes(table: Table, identifier: Dict[str, Any]) -> List[int]:
        return [
            index
            for index, row in enumerate(table.rows)
            if all(values_match(row.get(column), value) for column, value in identifier.items())
        ]

    def _find_unique(self, table: Table, identifier: Dict[str, Any], flag_column: str) -> int:
        """
        Locate the single row matching identifier.

        Natural keys are unique among active rows, so archived rows only
        count when no active row matches (which is how a row is restored).
        """
        matches = self._matching_indexes(table, identifier)
        active = [index for index in matches if is_active(table.rows[index], flag_column)]
        if active:
            matches = active
        if not matches:
            raise RecordNotFoundError(f"Row not found matching identifiers: {identifier}")
        if len(matches) > 1:
            raise AmbiguousMatchError(
                f"{len(matches)} rows match identifiers {identifier} in {table.key}",
                match_count=len(matches),
            )
        return matches[0]

    def _commit(self, table: Table) -> None:
        self.store.save(table)
        self.cache.invalidate(table.key)

    def _verify(self, table_key: str, index: int, expected: Dict[str, Any]) -> None:
        """Read the table back from disk and check the written values."""
        table = self.store.load(table_key)
        if index >= len(table.rows):
            logger.error(f"WRITE VERIFICATION FAILED for {table_key}: row {index} missing after save")
            raise WriteFailedError("Write verification failed: row missing after save")
        row = table.rows[index]
        for column, value in expected.items():
            if not values_match(row.get(column), value):
                logger.error(
                    f'WRITE VERIFICATION FAILED for {table_key}: expected "{value}" '
                    f'in "{column}" but got "{row.get(column)}"'
                )
                raise WriteFailedError("Write verification failed: value was not persisted")
        logger.debug(f"Update verified for {table_key} row {index}")
