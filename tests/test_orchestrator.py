"""Tests for column runs, scopes, structural edits and search mode."""

import asyncio
from types import SimpleNamespace

import pytest
from conftest import RecordingProvider, make_result

from cellfill.errors import EnrichmentError
from cellfill.models.enrichment import (
    Attachment,
    CustomFormat,
    DataType,
    FormatMode,
    ResultStatus,
    ScopeType,
    SearchResult,
)
from cellfill.services.orchestrator import EnrichmentOrchestrator
from cellfill.utils.logger import EnrichmentLogger

CEO = 3
CEO_PROMPT = "Who is the CEO of {Company}?"


@pytest.fixture
def quiet_logger():
    return EnrichmentLogger(name="cellfill-tests", log_level="WARNING")


@pytest.fixture
def make_orchestrator(sample_sheet, quiet_logger):
    """Factory: orchestrator over the sample sheet with no row delay."""

    def _make(provider=None, **kwargs):
        kwargs.setdefault("row_delay", 0)
        return EnrichmentOrchestrator(provider or RecordingProvider(), sample_sheet, logger=quiet_logger, **kwargs)

    return _make


def _ceo_for(value, prompt, context):
    company = context["row_data"].get("Company", "Unknown")
    return make_result(f"CEO of {company}")


# ─── Column runs ──────────────────────────────────────────────────────────────


class TestEnrichColumn:
    """Whole-column runs."""

    @pytest.mark.asyncio
    async def test_fills_every_row(self, make_orchestrator, sample_sheet):
        """Every row gets a value and a metadata entry."""
        provider = RecordingProvider(_ceo_for)
        orchestrator = make_orchestrator(provider)
        orchestrator.configure_column(CEO, CEO_PROMPT)

        summary = await orchestrator.enrich_column(CEO)

        assert summary.started
        assert summary.rows_attempted == 10
        assert summary.rows_succeeded == 10
        assert summary.rows_failed == 0
        assert summary.total_cost == pytest.approx(0.01)
        assert sample_sheet.get_cell(0, CEO) == "CEO of Acme Corp"
        assert sample_sheet.get_cell(9, CEO) == "CEO of Soylent"
        assert len(orchestrator.metadata.for_column(CEO)) == 10
        assert not orchestrator.is_column_enriching(CEO)

    @pytest.mark.asyncio
    async def test_failed_row_does_not_stop_run(self, make_orchestrator, sample_sheet):
        """Row 3 raises → failure event for row 3, the other nine succeed."""

        def respond(value, prompt, context):
            if "Umbrella" in prompt:
                raise RuntimeError("backend exploded")
            return make_result("Jane Doe")

        events = []
        orchestrator = make_orchestrator(RecordingProvider(respond))
        orchestrator.add_failure_listener(events.append)
        orchestrator.configure_column(CEO, CEO_PROMPT)

        summary = await orchestrator.enrich_column(CEO)

        assert summary.rows_succeeded == 9
        assert [f.row for f in summary.failures] == [3]
        assert [e.row for e in events] == [3]
        assert events[0].column == CEO
        assert "backend exploded" in events[0].message
        assert sample_sheet.get_cell(3, CEO) == ""
        assert orchestrator.metadata.get(3, CEO) is None
        assert sample_sheet.get_cell(4, CEO) == "Jane Doe"

    @pytest.mark.asyncio
    async def test_listener_errors_contained(self, make_orchestrator):
        """A listener that raises does not break the run."""

        def respond(value, prompt, context):
            raise RuntimeError("nope")

        def bad_listener(event):
            raise ValueError("listener bug")

        orchestrator = make_orchestrator(RecordingProvider(respond))
        orchestrator.add_failure_listener(bad_listener)
        summary = await orchestrator.enrich_column(CEO, prompt=CEO_PROMPT)

        assert summary.rows_failed == 10

    @pytest.mark.asyncio
    async def test_no_overlapping_runs(self, make_orchestrator):
        """Second run on a busy column is ignored; status tracks the current row."""
        gate = asyncio.Event()

        async def slow(value, prompt, context):
            await gate.wait()
            return make_result("Jane Doe")

        orchestrator = make_orchestrator(RecordingProvider(slow))
        orchestrator.configure_column(CEO, CEO_PROMPT)

        first = asyncio.create_task(orchestrator.enrich_column(CEO))
        while not orchestrator.is_column_enriching(CEO):
            await asyncio.sleep(0)

        status = orchestrator.get_status(CEO)
        assert status.current_row == 0
        assert status.prompt == CEO_PROMPT
        assert orchestrator.is_cell_enriching(0, CEO)
        assert not orchestrator.is_cell_enriching(1, CEO)

        second = await orchestrator.enrich_column(CEO)
        assert not second.started
        assert second.rows_attempted == 0

        with pytest.raises(EnrichmentError):
            orchestrator.insert_column(0, "New")

        gate.set()
        summary = await first

        assert summary.rows_succeeded == 10
        assert not orchestrator.is_any_column_enriching()

    @pytest.mark.asyncio
    async def test_columns_run_concurrently(self, make_orchestrator, sample_sheet):
        """Two different columns can enrich at the same time."""
        sample_sheet.insert_column(4, "Website")
        orchestrator = make_orchestrator(RecordingProvider())

        ceo_summary, web_summary = await asyncio.gather(
            orchestrator.enrich_column(CEO, prompt=CEO_PROMPT),
            orchestrator.enrich_column(4, prompt="Website of {Company}"),
        )

        assert ceo_summary.rows_succeeded == 10
        assert web_summary.rows_succeeded == 10
        assert sample_sheet.get_cell(0, 4) == "answer for Website of Acme Corp"

    @pytest.mark.asyncio
    async def test_row_delay_between_rows(self, make_orchestrator, monkeypatch, sample_sheet):
        """Fixed delay between rows, none after the last."""
        slept = []

        async def fake_sleep(seconds):
            slept.append(seconds)

        monkeypatch.setattr("cellfill.services.orchestrator.asyncio", SimpleNamespace(sleep=fake_sleep))
        orchestrator = make_orchestrator(RecordingProvider(), row_delay=0.25)

        await orchestrator.enrich_selected_cells(CEO, [0, 1, 2], prompt=CEO_PROMPT)

        assert slept == [0.25, 0.25]

    @pytest.mark.asyncio
    async def test_missing_prompt(self, make_orchestrator):
        """Unconfigured column and no prompt → ValueError, status untouched."""
        orchestrator = make_orchestrator()
        with pytest.raises(ValueError):
            await orchestrator.enrich_column(CEO)
        assert not orchestrator.is_column_enriching(CEO)


# ─── Request building ─────────────────────────────────────────────────────────


class TestRequestBuilding:
    """Placeholders, row context and attachments reaching the provider."""

    @pytest.mark.asyncio
    async def test_placeholders_substituted(self, make_orchestrator):
        """{Company} and {location} come from the row, case-insensitively."""
        provider = RecordingProvider()
        orchestrator = make_orchestrator(provider)
        await orchestrator.enrich_single_cell(0, CEO, prompt="Who is the CEO of {Company} in {location}?")

        assert provider.calls[0]["prompt"] == "Who is the CEO of Acme Corp in San Francisco, CA?"

    @pytest.mark.asyncio
    async def test_current_value_and_default_context(self, make_orchestrator, sample_sheet):
        """Current value passed in; target column left out of the row context."""
        sample_sheet.set_cell(0, CEO, "Old CEO")
        provider = RecordingProvider()
        orchestrator = make_orchestrator(provider)
        await orchestrator.enrich_single_cell(0, CEO, prompt="Is {value} still CEO of {Company}?")

        call = provider.calls[0]
        assert call["value"] == "Old CEO"
        assert call["prompt"] == "Is Old CEO still CEO of Acme Corp?"
        assert call["context"]["row_data"] == {
            "Company": "Acme Corp",
            "Location": "San Francisco, CA",
            "Industry": "Manufacturing",
        }
        assert call["context"]["column_name"] == "CEO"

    @pytest.mark.asyncio
    async def test_context_columns_restrict_row_data(self, make_orchestrator):
        """Configured context columns limit what the provider sees."""
        provider = RecordingProvider()
        orchestrator = make_orchestrator(provider)
        orchestrator.configure_column(CEO, "Who is the CEO of {Company} in {Location}?", context_columns=[0])
        await orchestrator.enrich_single_cell(0, CEO)

        call = provider.calls[0]
        assert call["context"]["row_data"] == {"Company": "Acme Corp"}
        assert "San Francisco" in call["prompt"]

    @pytest.mark.asyncio
    async def test_type_and_format_forwarded(self, make_orchestrator):
        """Data type and custom format from the config reach the provider."""
        provider = RecordingProvider()
        orchestrator = make_orchestrator(provider)
        sku = CustomFormat(pattern=r"^[A-Z]{3}-\d{4}$")
        config = orchestrator.configure_column(CEO, CEO_PROMPT, data_type=DataType.CEO, custom_format=sku)
        await orchestrator.enrich_single_cell(0, CEO)

        assert config.format_mode == FormatMode.CUSTOM
        context = provider.calls[0]["context"]
        assert context["data_type"] == DataType.CEO
        assert context["custom_format"] == sku

    @pytest.mark.asyncio
    async def test_attachment_priority(self, make_orchestrator):
        """Cell attachment beats the column attachment for its cell only."""
        provider = RecordingProvider()
        orchestrator = make_orchestrator(provider)
        orchestrator.attachments.add_column_attachment(
            CEO, Attachment(id="c", filename="column.txt", parsed_content="column doc")
        )
        orchestrator.attachments.add_cell_attachment(
            1, CEO, Attachment(id="x", filename="cell.txt", parsed_content="cell doc")
        )
        await orchestrator.enrich_selected_cells(CEO, [0, 1], prompt=CEO_PROMPT)

        assert provider.calls[0]["context"]["attachments"] == "[column.txt]:\ncolumn doc"
        assert provider.calls[1]["context"]["attachments"] == "[cell.txt]:\ncell doc"

    @pytest.mark.asyncio
    async def test_column_attachments_can_be_disabled(self, make_orchestrator):
        """use_attachments_as_context=False hides column attachments."""
        provider = RecordingProvider()
        orchestrator = make_orchestrator(provider)
        orchestrator.attachments.add_column_attachment(
            CEO, Attachment(id="c", filename="column.txt", parsed_content="column doc")
        )
        orchestrator.configure_column(CEO, CEO_PROMPT, use_attachments_as_context=False)
        await orchestrator.enrich_single_cell(0, CEO)

        assert "attachments" not in provider.calls[0]["context"]

    def test_config_reflects_later_attachments(self, make_orchestrator):
        """Attachments added or removed after configuring show up in the config."""
        orchestrator = make_orchestrator(RecordingProvider())
        orchestrator.configure_column(CEO, CEO_PROMPT)
        orchestrator.attachments.add_column_attachment(
            CEO, Attachment(id="late", filename="late.txt", parsed_content="late doc")
        )

        config = orchestrator.get_column_config(CEO)
        assert [a.id for a in config.attachments] == ["late"]
        assert config.use_attachments_as_context

        orchestrator.attachments.remove_attachment("late")
        orchestrator.attachments.set_use_as_context(CEO, False)
        config = orchestrator.get_column_config(CEO)
        assert config.attachments == []
        assert not config.use_attachments_as_context
        assert orchestrator.get_column_config(99) is None

    @pytest.mark.asyncio
    async def test_empty_prompt_skips_row(self, make_orchestrator, sample_sheet):
        """Prompt that substitutes to nothing → row skipped, provider not called."""
        sample_sheet.set_cell(0, 2, "")
        provider = RecordingProvider()
        orchestrator = make_orchestrator(provider)
        summary = await orchestrator.enrich_selected_cells(CEO, [0, 1], prompt="{Industry}")

        assert summary.rows_skipped == 1
        assert summary.rows_succeeded == 1
        assert [c["prompt"] for c in provider.calls] == ["Energy"]

    @pytest.mark.asyncio
    async def test_empty_value_keeps_cell(self, make_orchestrator, sample_sheet):
        """Empty result value → cell untouched, metadata still recorded."""
        sample_sheet.set_cell(0, CEO, "Old CEO")
        provider = RecordingProvider(lambda v, p, c: make_result("", status=ResultStatus.NOT_FOUND))
        orchestrator = make_orchestrator(provider)
        await orchestrator.enrich_single_cell(0, CEO, prompt=CEO_PROMPT)

        assert sample_sheet.get_cell(0, CEO) == "Old CEO"
        assert orchestrator.metadata.get(0, CEO).metadata.status == ResultStatus.NOT_FOUND


# ─── Scopes ───────────────────────────────────────────────────────────────────


class TestEnrichExistingColumn:
    """Re-running a configured column."""

    @pytest.mark.asyncio
    async def test_unconfigured(self, make_orchestrator):
        """No config → ValueError."""
        with pytest.raises(ValueError):
            await make_orchestrator().enrich_existing_column(CEO)

    @pytest.mark.asyncio
    async def test_cell_scope_requires_row(self, make_orchestrator):
        """Scope cell without row_index → ValueError."""
        orchestrator = make_orchestrator()
        orchestrator.configure_column(CEO, CEO_PROMPT)
        with pytest.raises(ValueError):
            await orchestrator.enrich_existing_column(CEO, ScopeType.CELL)

    @pytest.mark.asyncio
    async def test_cell_scope(self, make_orchestrator):
        """Scope cell → exactly that row."""
        provider = RecordingProvider()
        orchestrator = make_orchestrator(provider)
        orchestrator.configure_column(CEO, CEO_PROMPT)
        summary = await orchestrator.enrich_existing_column(CEO, "cell", row_index=4)

        assert summary.rows_attempted == 1
        assert provider.calls[0]["prompt"] == "Who is the CEO of Hooli?"

    @pytest.mark.asyncio
    async def test_selected_scope_sorted_unique(self, make_orchestrator):
        """Selected rows run once each, ascending; out-of-range rows dropped."""
        provider = RecordingProvider()
        orchestrator = make_orchestrator(provider)
        orchestrator.configure_column(CEO, CEO_PROMPT)
        summary = await orchestrator.enrich_existing_column(CEO, ScopeType.SELECTED, selected_rows=[5, 2, 2, 99])

        assert summary.rows_attempted == 2
        assert [c["prompt"] for c in provider.calls] == [
            "Who is the CEO of Initech?",
            "Who is the CEO of Stark Industries?",
        ]

    @pytest.mark.asyncio
    async def test_all_scope(self, make_orchestrator):
        """Scope all → every row."""
        provider = RecordingProvider()
        orchestrator = make_orchestrator(provider)
        orchestrator.configure_column(CEO, CEO_PROMPT)
        summary = await orchestrator.enrich_existing_column(CEO)

        assert summary.rows_attempted == 10


# ─── Structural edits ─────────────────────────────────────────────────────────


class TestStructuralEdits:
    """Config and metadata follow column moves."""

    @pytest.mark.asyncio
    async def test_insert_moves_config_and_metadata(self, make_orchestrator, sample_sheet):
        """Insert before the configured column shifts everything right."""
        orchestrator = make_orchestrator()
        orchestrator.configure_column(CEO, CEO_PROMPT)
        await orchestrator.enrich_single_cell(0, CEO)

        orchestrator.insert_column(1, "Website")

        assert sample_sheet.headers[CEO + 1] == "CEO"
        assert orchestrator.configs.get(CEO) is None
        assert orchestrator.configs.get(CEO + 1).prompt == CEO_PROMPT
        assert orchestrator.metadata.get(0, CEO + 1) is not None
        assert orchestrator.metadata.get(0, CEO) is None

    def test_delete_configured_column(self, make_orchestrator, sample_sheet):
        """Deleting the configured column drops its config."""
        orchestrator = make_orchestrator()
        orchestrator.configure_column(CEO, CEO_PROMPT)
        orchestrator.delete_column(CEO)

        assert "CEO" not in sample_sheet.headers
        assert orchestrator.configs.all() == []

    def test_rename_keeps_config(self, make_orchestrator, sample_sheet):
        """Rename updates the header and the config name."""
        orchestrator = make_orchestrator()
        orchestrator.configure_column(CEO, CEO_PROMPT)
        orchestrator.rename_column(CEO, "Chief Executive")

        assert sample_sheet.headers[CEO] == "Chief Executive"
        assert orchestrator.configs.get(CEO).column_name == "Chief Executive"


# ─── Search mode ──────────────────────────────────────────────────────────────


class TestFindUniqueItems:
    """Orchestrator-level search writes names into a column."""

    @pytest.mark.asyncio
    async def test_writes_names_and_appends_rows(self, quiet_logger):
        """Names land in the column; rows are appended as needed."""
        from cellfill.services.stores import SheetStore

        sheet = SheetStore(["Company"], [["Seed Co"]])
        provider = RecordingProvider()
        provider.search_replies = [
            SearchResult(name="Acme Robotics"),
            SearchResult(name="Globex AI"),
            SearchResult(name="Initech Labs"),
        ]
        orchestrator = EnrichmentOrchestrator(provider, sheet, row_delay=0, logger=quiet_logger)

        outcome = await orchestrator.find_unique_items("AI startups", 3, column=0, start_row=0)

        assert outcome.complete
        assert sheet.row_count == 3
        assert [sheet.get_cell(r, 0) for r in range(3)] == ["Acme Robotics", "Globex AI", "Initech Labs"]
        assert not orchestrator.is_column_enriching(0)

    @pytest.mark.asyncio
    async def test_each_search_starts_fresh(self, make_orchestrator):
        """A name found by one search can be found again by the next one."""
        provider = RecordingProvider()
        provider.search_replies = [SearchResult(name="Acme Robotics")]
        orchestrator = make_orchestrator(provider)
        first = await orchestrator.find_unique_items("AI startups", 1)

        provider.search_replies = [SearchResult(name="Acme Robotics")]
        second = await orchestrator.find_unique_items("AI startups", 1)

        assert [item.name for item in first.items] == ["Acme Robotics"]
        assert [item.name for item in second.items] == ["Acme Robotics"]
        assert provider.calls[1]["found_items"] == []
        assert second.duplicates == 0

    @pytest.mark.asyncio
    async def test_seed_names_excluded(self, make_orchestrator):
        """Seeded names are sent as exclusions and their variants skipped."""
        provider = RecordingProvider()
        provider.search_replies = [SearchResult(name="ACME Robotics Inc."), SearchResult(name="Globex AI")]
        orchestrator = make_orchestrator(provider)

        outcome = await orchestrator.find_unique_items("AI startups", 1, seed=["Acme Robotics"])

        assert provider.calls[0]["found_items"] == ["Acme Robotics"]
        assert [item.name for item in outcome.items] == ["Globex AI"]
        assert outcome.duplicates == 1
