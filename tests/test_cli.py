"""Tests for the command-line front end."""

import argparse
import json

import pytest
from conftest import RecordingProvider, make_result

from cellfill import cli
from cellfill.config import EnrichmentSettings
from cellfill.models.enrichment import SearchResult
from cellfill.services.stores import SheetStore

CSV = "Company,Location,CEO\nAcme Corp,\"San Francisco, CA\",\nGlobex,\"Springfield, IL\",\n"


def _args(tmp_path, **overrides) -> argparse.Namespace:
    values = {
        "input": tmp_path / "leads.csv",
        "config": None,
        "column": "CEO",
        "prompt": "Who is the CEO of {Company}?",
        "data_type": None,
        "context_columns": None,
        "attachment": None,
        "provider": "auto",
        "rows": None,
        "output": None,
        "report": None,
        "log_file": None,
        "find": None,
        "count": 10,
    }
    values.update(overrides)
    return argparse.Namespace(**values)


@pytest.fixture
def leads_csv(tmp_path):
    path = tmp_path / "leads.csv"
    path.write_text(CSV)
    return path


@pytest.fixture
def recording(monkeypatch):
    """Route every column to one RecordingProvider."""
    provider = RecordingProvider(lambda v, p, c: make_result(f"CEO of {c['row_data']['Company']}"))
    monkeypatch.setattr(cli, "choose_provider", lambda *args, **kwargs: provider)
    return provider


# ─── Helpers ──────────────────────────────────────────────────────────────────


class TestParseRows:
    """--rows parsing."""

    def test_list_and_ranges(self):
        """'0,3,7-9' → [0, 3, 7, 8, 9]."""
        assert cli.parse_rows("0,3,7-9") == [0, 3, 7, 8, 9]

    def test_empty(self):
        """No value → None (all rows)."""
        assert cli.parse_rows(None) is None
        assert cli.parse_rows("") is None

    def test_garbage(self):
        """Non-numeric → ValueError."""
        with pytest.raises(ValueError):
            cli.parse_rows("first")


class TestLoadColumnSpecs:
    """YAML config loading."""

    def test_columns_list(self, tmp_path):
        """'columns' list returned as-is."""
        path = tmp_path / "columns.yaml"
        path.write_text(
            "columns:\n"
            "  - column: CEO\n"
            "    prompt: Who is the CEO of {Company}?\n"
            "    data_type: ceo\n"
            "  - column: Ticker\n"
            "    prompt: Stock ticker of {Company}\n"
            "    custom_format:\n"
            "      pattern: '^[A-Z]{1,5}$'\n"
        )
        specs = cli.load_column_specs(path)
        assert [s["column"] for s in specs] == ["CEO", "Ticker"]
        assert specs[1]["custom_format"] == {"pattern": "^[A-Z]{1,5}$"}

    def test_missing_prompt(self, tmp_path):
        """Column without a prompt → ValueError."""
        path = tmp_path / "columns.yaml"
        path.write_text("columns:\n  - column: CEO\n")
        with pytest.raises(ValueError, match="'column' and 'prompt'"):
            cli.load_column_specs(path)

    def test_empty_file(self, tmp_path):
        """Empty file → ValueError."""
        path = tmp_path / "columns.yaml"
        path.write_text("")
        with pytest.raises(ValueError):
            cli.load_column_specs(path)


class TestEnsureColumn:
    """Target column lookup."""

    def test_existing_and_new(self):
        """Existing header → its index; unknown → appended."""
        sheet = SheetStore(["Company", "CEO"], [["Acme", ""]])
        assert cli.ensure_column(sheet, "ceo") == 1
        assert cli.ensure_column(sheet, "Website") == 2
        assert sheet.headers == ["Company", "CEO", "Website"]


# ─── Runs ─────────────────────────────────────────────────────────────────────


class TestRun:
    """End-to-end CSV enrichment with a recording provider."""

    @pytest.mark.asyncio
    async def test_fills_column_and_writes_outputs(self, tmp_path, leads_csv, recording):
        """Every row filled, enriched CSV and JSON report written."""
        report = tmp_path / "out" / "report.json"
        settings = EnrichmentSettings(row_delay=0, log_level="WARNING")

        exit_code = await cli.run(_args(tmp_path, report=report), settings)

        assert exit_code == 0
        enriched = SheetStore.from_csv(tmp_path / "leads.enriched.csv")
        assert [enriched.get_cell(r, 2) for r in range(2)] == ["CEO of Acme Corp", "CEO of Globex"]

        entries = json.loads(report.read_text())
        assert [e["row"] for e in entries] == [0, 1]
        assert entries[0]["column"] == "CEO"
        assert entries[0]["enrichedValue"] == "CEO of Acme Corp"

    @pytest.mark.asyncio
    async def test_selected_rows_and_new_column(self, tmp_path, leads_csv, recording):
        """--rows limits the run; a missing column is created."""
        output = tmp_path / "partial.csv"
        settings = EnrichmentSettings(row_delay=0, log_level="WARNING")

        await cli.run(_args(tmp_path, column="Founder", rows="1", output=output), settings)

        sheet = SheetStore.from_csv(output)
        assert sheet.headers == ["Company", "Location", "CEO", "Founder"]
        assert sheet.get_cell(0, 3) == ""
        assert sheet.get_cell(1, 3) == "CEO of Globex"
        assert len(recording.calls) == 1

    @pytest.mark.asyncio
    async def test_failures_set_exit_code(self, tmp_path, leads_csv, monkeypatch):
        """Any failed row → exit code 1, the sheet is still saved."""

        def respond(value, prompt, context):
            raise RuntimeError("backend down")

        monkeypatch.setattr(cli, "choose_provider", lambda *args, **kwargs: RecordingProvider(respond))
        settings = EnrichmentSettings(row_delay=0, log_level="WARNING")

        exit_code = await cli.run(_args(tmp_path), settings)

        assert exit_code == 1
        assert (tmp_path / "leads.enriched.csv").exists()

    @pytest.mark.asyncio
    async def test_search_mode_appends_after_existing(self, tmp_path, leads_csv, monkeypatch):
        """Existing names are excluded and new ones land below them."""
        provider = RecordingProvider()
        provider.search_replies = [SearchResult(name="Acme Corporation"), SearchResult(name="Initech")]
        monkeypatch.setattr(cli, "choose_provider", lambda *args, **kwargs: provider)
        output = tmp_path / "found.csv"
        settings = EnrichmentSettings(row_delay=0, log_level="WARNING")

        exit_code = await cli.run_search(
            _args(tmp_path, column="Company", find="manufacturers", count=1, output=output), settings
        )

        assert exit_code == 0
        sheet = SheetStore.from_csv(output)
        assert sheet.row_count == 3
        assert sheet.get_cell(2, 0) == "Initech"
        assert provider.calls[0]["found_items"] == ["Acme Corp", "Globex"]
