"""
Enrichment orchestrator: runs a provider over the cells of a column.

Each column is a small state machine, Idle -> Enriching(current_row) -> Idle.
Rows inside one run are processed strictly in order with a fixed delay
between them; several columns may run concurrently on the same event loop.

A row that fails keeps its previous value, is reported as a
RowEnrichmentFailed event, and the run moves on to the next row.
"""

import asyncio
import logging
from typing import Callable, Dict, Iterable, List, Optional, Set

from ..constants import ROW_DELAY_SECONDS
from ..errors import EnrichmentError
from ..models.enrichment import (
    ColumnEnrichmentConfig,
    CustomFormat,
    DataType,
    EnrichmentRequest,
    EnrichmentResult,
    EnrichmentRunSummary,
    EnrichmentStatus,
    FormatMode,
    RowEnrichmentFailed,
    ScopeType,
)
from ..providers.base import AIProvider
from ..utils.logger import EnrichmentLogger, EnrichmentRunContext, get_logger
from ..utils.prompt_utils import substitute_placeholders
from .context_budget import prepare_attachment_context
from .item_search import FoundItems, SearchOutcome, find_unique_items
from .stores import AttachmentStore, ConfigStore, MetadataStore, SheetStore

logger = logging.getLogger(__name__)

FailureListener = Callable[[RowEnrichmentFailed], None]


class EnrichmentOrchestrator:
    """
    Coordinates column runs over the in-memory stores.

    Usage:
        orchestrator = EnrichmentOrchestrator(provider, SheetStore.from_csv(path))
        orchestrator.configure_column(2, "Who is the CEO of {Company}?")
        summary = await orchestrator.enrich_column(2)
    """

    def __init__(
        self,
        provider: AIProvider,
        sheet: SheetStore,
        configs: Optional[ConfigStore] = None,
        attachments: Optional[AttachmentStore] = None,
        metadata: Optional[MetadataStore] = None,
        row_delay: float = ROW_DELAY_SECONDS,
        logger: Optional[EnrichmentLogger] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            provider: Backend used for every cell
            sheet: The grid being enriched
            configs: Per-column configuration (empty store if None)
            attachments: Column and cell attachments (empty store if None)
            metadata: Per-cell EnrichmentResult store (empty store if None)
            row_delay: Seconds to wait between rows of one run
            logger: EnrichmentLogger for run-level reporting
        """
        self.provider = provider
        self.sheet = sheet
        self.configs = configs if configs is not None else ConfigStore()
        self.attachments = attachments if attachments is not None else AttachmentStore()
        self.metadata = metadata if metadata is not None else MetadataStore()
        self.row_delay = row_delay
        self.logger = logger or get_logger()

        self._status: Dict[int, EnrichmentStatus] = {}
        self._listeners: List[FailureListener] = []

    # ------------------------------------------------------------------
    # Configuration and status
    # ------------------------------------------------------------------

    def configure_column(
        self,
        column: int,
        prompt: str,
        data_type: Optional[DataType] = None,
        custom_format: Optional[CustomFormat] = None,
        format_mode: FormatMode = FormatMode.STRICT,
        context_columns: Optional[Iterable[int]] = None,
        use_attachments_as_context: bool = True,
    ) -> ColumnEnrichmentConfig:
        """Store the enrichment settings for a column and return them."""
        if custom_format is not None and format_mode == FormatMode.STRICT:
            format_mode = FormatMode.CUSTOM
        config = ColumnEnrichmentConfig(
            column_index=column,
            column_name=self.sheet.headers[column],
            prompt=prompt,
            format_mode=format_mode,
            data_type=data_type,
            custom_format=custom_format,
            attachments=self.attachments.column_attachments(column),
            use_attachments_as_context=use_attachments_as_context,
            context_columns=set(context_columns) if context_columns is not None else None,
        )
        self.configs.set(config)
        self.attachments.set_use_as_context(column, use_attachments_as_context)
        return config

    def get_column_config(self, column: int) -> Optional[ColumnEnrichmentConfig]:
        """Stored config with its attachment fields read from the attachment store."""
        config = self.configs.get(column)
        if config is None:
            return None
        config.attachments = self.attachments.column_attachments(column)
        config.use_attachments_as_context = self.attachments.should_use_attachments(column)
        return config

    def get_status(self, column: int) -> EnrichmentStatus:
        return self._status.get(column) or EnrichmentStatus()

    def is_column_enriching(self, column: int) -> bool:
        return self.get_status(column).enriching

    def is_cell_enriching(self, row: int, column: int) -> bool:
        status = self.get_status(column)
        return status.enriching and status.current_row == row

    def is_any_column_enriching(self) -> bool:
        return any(status.enriching for status in self._status.values())

    def add_failure_listener(self, listener: FailureListener):
        """Register a callback invoked with every RowEnrichmentFailed event."""
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Structural edits
    # ------------------------------------------------------------------

    def _refuse_while_enriching(self, action: str):
        if self.is_any_column_enriching():
            raise EnrichmentError(f"Cannot {action} while a column is enriching")

    def insert_column(self, index: int, name: str):
        """Insert a column; configs, attachments and metadata to the right shift with it."""
        self._refuse_while_enriching("insert a column")
        self.sheet.insert_column(index, name)
        self.configs.shift_for_insert(index)
        self.attachments.shift_columns(index, +1)
        self.metadata.shift_columns(index, +1)

    def delete_column(self, index: int):
        """Delete a column together with its config, attachments and metadata."""
        self._refuse_while_enriching("delete a column")
        self.sheet.delete_column(index)
        self.configs.shift_for_delete(index)
        self.attachments.shift_columns(index, -1)
        self.metadata.shift_columns(index, -1)

    def rename_column(self, index: int, name: str):
        self.sheet.rename_column(index, name)
        self.configs.rename(index, name)

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    async def enrich_column(
        self,
        column: int,
        prompt: Optional[str] = None,
        context_columns: Optional[Iterable[int]] = None,
    ) -> EnrichmentRunSummary:
        """Enrich every row of a column."""
        return await self._run(column, range(self.sheet.row_count), prompt, context_columns)

    async def enrich_single_cell(
        self,
        row: int,
        column: int,
        prompt: Optional[str] = None,
        context_columns: Optional[Iterable[int]] = None,
    ) -> EnrichmentRunSummary:
        """Enrich one cell."""
        return await self._run(column, [row], prompt, context_columns)

    async def enrich_selected_cells(
        self,
        column: int,
        rows: Iterable[int],
        prompt: Optional[str] = None,
        context_columns: Optional[Iterable[int]] = None,
    ) -> EnrichmentRunSummary:
        """Enrich the given rows of a column, in ascending order."""
        return await self._run(column, sorted(set(rows)), prompt, context_columns)

    async def enrich_existing_column(
        self,
        column: int,
        scope: ScopeType = ScopeType.ALL,
        selected_rows: Optional[Iterable[int]] = None,
        row_index: Optional[int] = None,
    ) -> EnrichmentRunSummary:
        """
        Re-run a configured column over a scope of rows.

        Args:
            column: Column index (must already be configured)
            scope: cell (row_index), selected (selected_rows) or all
            selected_rows: Rows for ScopeType.SELECTED
            row_index: Row for ScopeType.CELL

        Raises:
            ValueError: Column not configured, or the scope is missing its rows
        """
        config = self.get_column_config(column)
        if config is None or not config.is_configured:
            raise ValueError(f"Column {column} has no enrichment configuration")

        scope = ScopeType(scope)
        if scope == ScopeType.CELL:
            if row_index is None:
                raise ValueError("row_index is required for scope 'cell'")
            return await self.enrich_single_cell(row_index, column)
        if scope == ScopeType.SELECTED:
            if not selected_rows:
                raise ValueError("selected_rows is required for scope 'selected'")
            return await self.enrich_selected_cells(column, selected_rows)
        return await self.enrich_column(column)

    async def _run(
        self,
        column: int,
        rows: Iterable[int],
        prompt: Optional[str],
        context_columns: Optional[Iterable[int]],
    ) -> EnrichmentRunSummary:
        summary = EnrichmentRunSummary(column=column)

        if self.is_column_enriching(column):
            self.logger.warning("Column is already enriching, request ignored", column=column)
            summary.started = False
            return summary

        config = self.get_column_config(column)
        prompt = prompt or (config.prompt if config else None)
        if not prompt:
            raise ValueError(f"No prompt given and column {column} is not configured")

        if context_columns is not None:
            context_set: Optional[Set[int]] = set(context_columns)
        else:
            context_set = config.context_columns if config else None

        rows = [r for r in rows if 0 <= r < self.sheet.row_count]
        self._status[column] = EnrichmentStatus(enriching=True, current_row=None, prompt=prompt)

        try:
            with EnrichmentRunContext(self.logger, column, len(rows), prompt) as ctx:
                for position, row in enumerate(rows):
                    self._status[column] = EnrichmentStatus(enriching=True, current_row=row, prompt=prompt)
                    summary.rows_attempted += 1
                    try:
                        with self.logger.time_row(row, column):
                            result = await self._enrich_row(row, column, prompt, context_set, config)
                    except Exception as e:
                        # Row stays as it was; the run carries on
                        failure = RowEnrichmentFailed(row=row, column=column, cause=e)
                        summary.failures.append(failure)
                        ctx.increment_failure()
                        self._emit(failure)
                    else:
                        if result is None:
                            summary.rows_skipped += 1
                        else:
                            cost = result.metadata.estimated_cost or 0.0
                            summary.rows_succeeded += 1
                            summary.total_cost += cost
                            ctx.increment_success(cost)

                    if self.row_delay > 0 and position < len(rows) - 1:
                        await asyncio.sleep(self.row_delay)
        finally:
            self._status[column] = EnrichmentStatus()

        return summary

    def _build_request(
        self,
        row: int,
        column: int,
        prompt: str,
        context_columns: Optional[Set[int]],
        config: Optional[ColumnEnrichmentConfig],
    ) -> EnrichmentRequest:
        value = self.sheet.get_cell(row, column)
        full_row = self.sheet.row_data(row, columns=range(self.sheet.column_count))
        row_context = self.sheet.row_data(row, columns=context_columns, exclude=column)
        attachment_context = prepare_attachment_context(self.attachments.resolve(row, column))

        return EnrichmentRequest(
            value=value,
            prompt=substitute_placeholders(prompt, full_row, value=value),
            row_context=row_context,
            attachment_context=attachment_context or None,
            custom_format=config.custom_format if config else None,
            data_type=config.data_type if config else None,
        )

    async def _enrich_row(
        self,
        row: int,
        column: int,
        prompt: str,
        context_columns: Optional[Set[int]],
        config: Optional[ColumnEnrichmentConfig],
    ) -> Optional[EnrichmentResult]:
        """Enrich one cell. Returns None when the row was skipped."""
        request = self._build_request(row, column, prompt, context_columns, config)
        if not request.prompt.strip():
            self.logger.debug("Prompt empty after substitution, row skipped", row=row, column=column)
            return None

        context = request.to_context()
        context["column_name"] = self.sheet.headers[column]
        result = await self.provider.enrich_value(request.value, request.prompt, context)

        self.logger.log_provider_call(
            result.metadata.provider, result.metadata.model, row, column, result.metadata.estimated_cost
        )

        if result.value:
            self.sheet.set_cell(row, column, result.value)
        self.metadata.set(row, column, result)
        return result

    def _emit(self, failure: RowEnrichmentFailed):
        for listener in self._listeners:
            try:
                listener(failure)
            except Exception as e:
                self.logger.error("Failure listener raised", exception=e, row=failure.row, column=failure.column)

    # ------------------------------------------------------------------
    # Search mode
    # ------------------------------------------------------------------

    async def find_unique_items(
        self,
        search_type: str,
        count: int,
        column: Optional[int] = None,
        start_row: int = 0,
        seed: Iterable[str] = (),
    ) -> SearchOutcome:
        """
        Find count distinct items and optionally write their names into a column.

        Each call starts from an empty found set; names in seed (for example
        ones already in the column) are excluded from this search only.
        Rows are appended when the sheet runs out.
        """
        if column is not None and self.is_column_enriching(column):
            self.logger.warning("Column is already enriching, search ignored", column=column)
            return SearchOutcome(search_type=search_type, requested=count)

        if column is not None:
            self._status[column] = EnrichmentStatus(enriching=True, current_row=start_row, prompt=search_type)
        found = FoundItems()
        for name in seed:
            found.add(name)
        try:
            outcome = await find_unique_items(self.provider, search_type, count, found=found)
        finally:
            if column is not None:
                self._status[column] = EnrichmentStatus()

        if column is not None:
            for offset, item in enumerate(outcome.items):
                row = start_row + offset
                while row >= self.sheet.row_count:
                    self.sheet.append_row()
                self.sheet.set_cell(row, column, item.name)

        self.logger.info(
            f"Search found {len(outcome.items)}/{count} items",
            search_type=search_type,
            attempts=outcome.attempts,
        )
        return outcome
