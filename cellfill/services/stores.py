"""
In-memory stores backing the orchestrator.

The grid itself, per-cell enrichment metadata, per-column configuration
and attachments. Persistence is somebody else's problem; these classes
only need to stay consistent when columns are inserted, deleted or renamed.
"""

import csv
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Tuple

from ..models.enrichment import Attachment, ColumnEnrichmentConfig, EnrichmentResult


CellKey = Tuple[int, int]


def _shift_index(index: int, at: int, delta: int) -> int:
    return index + delta if index >= at else index


class SheetStore:
    """Headers plus a list of rows of string cells."""

    def __init__(self, headers: List[str], rows: Optional[List[List[str]]] = None):
        self.headers = list(headers)
        self.rows = [self._pad(list(row)) for row in (rows or [])]

    def _pad(self, row: List[str]) -> List[str]:
        if len(row) < len(self.headers):
            row.extend([""] * (len(self.headers) - len(row)))
        return row

    @classmethod
    def from_csv(cls, path: Path) -> "SheetStore":
        """Load a sheet from a CSV file with a header row."""
        with open(path, newline="", encoding="utf-8") as f:
            reader = csv.reader(f)
            headers = next(reader, [])
            rows = [row for row in reader]
        return cls(headers, rows)

    def to_csv(self, path: Path):
        """Write the sheet back out as CSV."""
        with open(path, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(self.headers)
            writer.writerows(self.rows)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @property
    def column_count(self) -> int:
        return len(self.headers)

    def column_index(self, name: str) -> int:
        """Index of a column by header (case-insensitive)."""
        lowered = name.strip().lower()
        for index, header in enumerate(self.headers):
            if header.strip().lower() == lowered:
                return index
        raise KeyError(f"No column named {name!r}. Columns: {self.headers}")

    def get_cell(self, row: int, column: int) -> str:
        return self.rows[row][column] or ""

    def set_cell(self, row: int, column: int, value: str):
        self.rows[row][column] = value

    def append_row(self, values: Optional[List[str]] = None) -> int:
        """Append a row (padded to the header width) and return its index."""
        self.rows.append(self._pad(list(values or [])))
        return len(self.rows) - 1

    def row_data(
        self,
        row: int,
        columns: Optional[Iterable[int]] = None,
        exclude: Optional[int] = None,
    ) -> Dict[str, str]:
        """
        Header -> value mapping for one row, in column order.

        Args:
            row: Row index
            columns: Restrict to these column indices (all non-empty columns if None)
            exclude: Column index to leave out (the target column)
        """
        wanted: Optional[Set[int]] = set(columns) if columns is not None else None
        data: Dict[str, str] = {}
        for index, header in enumerate(self.headers):
            if index == exclude:
                continue
            if wanted is not None and index not in wanted:
                continue
            value = self.rows[row][index]
            if wanted is None and not (value and value.strip()):
                continue
            data[header] = value or ""
        return data

    def insert_column(self, index: int, name: str):
        self.headers.insert(index, name)
        for row in self.rows:
            row.insert(index, "")

    def delete_column(self, index: int):
        del self.headers[index]
        for row in self.rows:
            del row[index]

    def rename_column(self, index: int, name: str):
        self.headers[index] = name


class MetadataStore:
    """EnrichmentResult per cell, keyed by (row, column)."""

    def __init__(self):
        self._results: Dict[CellKey, EnrichmentResult] = {}

    def get(self, row: int, column: int) -> Optional[EnrichmentResult]:
        return self._results.get((row, column))

    def set(self, row: int, column: int, result: EnrichmentResult):
        self._results[(row, column)] = result

    def clear(self, row: int, column: int):
        self._results.pop((row, column), None)

    def for_column(self, column: int) -> Dict[int, EnrichmentResult]:
        return {row: result for (row, col), result in self._results.items() if col == column}

    def shift_columns(self, at: int, delta: int):
        """Re-key after a column insert (delta=+1) or delete (delta=-1 at the deleted index)."""
        shifted: Dict[CellKey, EnrichmentResult] = {}
        for (row, col), result in self._results.items():
            if delta < 0 and col == at:
                continue
            shifted[(row, _shift_index(col, at + (1 if delta < 0 else 0), delta))] = result
        self._results = shifted

    def __len__(self) -> int:
        return len(self._results)


class ConfigStore:
    """ColumnEnrichmentConfig per column index."""

    def __init__(self):
        self._configs: Dict[int, ColumnEnrichmentConfig] = {}

    def get(self, column: int) -> Optional[ColumnEnrichmentConfig]:
        return self._configs.get(column)

    def set(self, config: ColumnEnrichmentConfig):
        self._configs[config.column_index] = config

    def all(self) -> List[ColumnEnrichmentConfig]:
        return [self._configs[k] for k in sorted(self._configs)]

    def _rebuild(self, at: int, delta: int):
        shifted: Dict[int, ColumnEnrichmentConfig] = {}
        for column, config in self._configs.items():
            if delta < 0 and column == at:
                continue
            threshold = at + 1 if delta < 0 else at
            new_index = _shift_index(column, threshold, delta)
            context_columns = config.context_columns
            if context_columns is not None:
                context_columns = {
                    _shift_index(c, threshold, delta) for c in context_columns if not (delta < 0 and c == at)
                }
            shifted[new_index] = config.model_copy(
                update={"column_index": new_index, "context_columns": context_columns}
            )
        self._configs = shifted

    def shift_for_insert(self, index: int):
        """A column was inserted at index: configs at or after it move right."""
        self._rebuild(index, +1)

    def shift_for_delete(self, index: int):
        """The column at index was deleted: its config goes, later ones move left."""
        self._rebuild(index, -1)

    def rename(self, index: int, name: str):
        config = self._configs.get(index)
        if config:
            self._configs[index] = config.model_copy(update={"column_name": name})


class AttachmentStore:
    """
    Column-level and cell-level attachments.

    Cell attachments always win over column attachments. Column attachments
    are only used as context when the column's flag allows it (default on).
    """

    def __init__(self):
        self._column: Dict[int, List[Attachment]] = {}
        self._cell: Dict[CellKey, List[Attachment]] = {}
        self._use_as_context: Dict[int, bool] = {}

    def add_column_attachment(self, column: int, attachment: Attachment):
        self._column.setdefault(column, []).append(attachment)

    def add_cell_attachment(self, row: int, column: int, attachment: Attachment):
        self._cell.setdefault((row, column), []).append(attachment)

    def remove_attachment(self, attachment_id: str):
        for attachments in list(self._column.values()) + list(self._cell.values()):
            attachments[:] = [a for a in attachments if a.id != attachment_id]

    def column_attachments(self, column: int) -> List[Attachment]:
        return list(self._column.get(column, []))

    def cell_attachments(self, row: int, column: int) -> List[Attachment]:
        return list(self._cell.get((row, column), []))

    def set_use_as_context(self, column: int, enabled: bool):
        self._use_as_context[column] = enabled

    def should_use_attachments(self, column: int) -> bool:
        return self._use_as_context.get(column, True)

    def resolve(self, row: int, column: int) -> List[Attachment]:
        """Attachments that apply to one cell: cell-level, else column-level if enabled."""
        cell = self.cell_attachments(row, column)
        if cell:
            return cell
        if self.should_use_attachments(column):
            return self.column_attachments(column)
        return []

    def shift_columns(self, at: int, delta: int):
        threshold = at + 1 if delta < 0 else at
        self._column = {
            _shift_index(c, threshold, delta): v for c, v in self._column.items() if not (delta < 0 and c == at)
        }
        self._use_as_context = {
            _shift_index(c, threshold, delta): v
            for c, v in self._use_as_context.items()
            if not (delta < 0 and c == at)
        }
        self._cell = {
            (r, _shift_index(c, threshold, delta)): v
            for (r, c), v in self._cell.items()
            if not (delta < 0 and c == at)
        }
