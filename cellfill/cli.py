#!/usr/bin/env python3
"""cellfill - Enrich spreadsheet columns with AI.

Fills one or more columns of a CSV file, one cell at a time, using a web
search capable model. Each row's other columns are passed along as
context so the answer is about the right entity.

Usage:
    cellfill --input leads.csv --column CEO --prompt "Who is the CEO of {Company}?"
    cellfill --input leads.csv --column Industry --prompt "Classify {Company} into an industry" --provider openai
    cellfill --input leads.csv --config columns.yaml --output leads.enriched.csv
    cellfill --input leads.csv --column CEO --prompt "CEO of {Company}" --rows 0,3,7
    cellfill --input leads.csv --column Summary --prompt "Summarize the filing" --attachment filing.txt
    cellfill --input companies.csv --column Company --find "fintech startups in London" --count 20

Config file format (YAML):
    columns:
      - column: CEO
        prompt: "Who is the CEO of {Company}?"
        data_type: ceo
        context_columns: [Company, Location]
      - column: Ticker
        prompt: "Stock ticker of {Company}"
        custom_format:
          pattern: "^[A-Z]{1,5}$"
          example: "AAPL"
"""

import argparse
import asyncio
import json
import sys
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import EnrichmentSettings
from .errors import ProviderUnavailableError
from .models.enrichment import Attachment, CustomFormat, DataType, EnrichmentRunSummary
from .providers.router import ProviderName, ProviderRouter, RouterMode, create_provider
from .services.context_budget import prepare_attachment_context
from .services.orchestrator import EnrichmentOrchestrator
from .services.stores import AttachmentStore, ConfigStore, MetadataStore, SheetStore
from .utils.logger import EnrichmentLogger, configure_global_logging
from .utils.rate_limiter import provider_rate_limiter

console = Console()


def parse_rows(raw: Optional[str]) -> Optional[List[int]]:
    """Parse "0,3,7" or "2-5" (or a mix) into row indices."""
    if not raw:
        return None
    rows: List[int] = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        if "-" in part:
            start, end = part.split("-", 1)
            rows.extend(range(int(start), int(end) + 1))
        else:
            rows.append(int(part))
    return rows


def load_column_specs(path: Path) -> List[Dict[str, Any]]:
    """Load column definitions from a YAML config file."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    columns = data.get("columns") if isinstance(data, dict) else data
    if not isinstance(columns, list) or not columns:
        raise ValueError(f"{path}: expected a 'columns' list")
    for spec in columns:
        if not spec.get("column") or not spec.get("prompt"):
            raise ValueError(f"{path}: every column needs 'column' and 'prompt' ({spec})")
    return columns


def load_attachment(path: Path) -> Attachment:
    """Read a plain-text attachment from disk."""
    return Attachment(id=uuid.uuid4().hex, filename=path.name, parsed_content=path.read_text(encoding="utf-8"))


def ensure_column(sheet: SheetStore, name: str) -> int:
    """Index of the named column, appending it to the sheet if missing."""
    try:
        return sheet.column_index(name)
    except KeyError:
        index = sheet.column_count
        sheet.insert_column(index, name)
        console.print(f"[dim]Added column '{name}'[/dim]")
        return index


def resolve_context_columns(sheet: SheetStore, names: Optional[List[str]]) -> Optional[List[int]]:
    if not names:
        return None
    return [sheet.column_index(n) for n in names]


def choose_provider(
    requested: str,
    router: ProviderRouter,
    settings: EnrichmentSettings,
    prompt: str,
    row_data: Optional[Dict[str, str]] = None,
    attachment_context: Optional[str] = None,
):
    """Build the provider for one column, routing when requested is 'auto'."""
    if requested != "auto":
        return create_provider(requested, settings)
    decision = router.route(prompt, row_data, attachment_context)
    console.print(f"[dim]Router: {decision.provider.value}/{decision.model} - {decision.reason}[/dim]")
    return create_provider(decision.provider, settings, model=decision.model)


def display_summaries(summaries: List[EnrichmentRunSummary], sheet: SheetStore, metadata: MetadataStore) -> None:
    """Print a summary table of every column run."""
    table = Table(title="Enrichment Results")
    table.add_column("Column", style="cyan")
    table.add_column("Attempted", justify="right")
    table.add_column("Succeeded", justify="right")
    table.add_column("Needs review", justify="right")
    table.add_column("Skipped", justify="right")
    table.add_column("Failed", justify="right")
    table.add_column("Cost", justify="right")

    for summary in summaries:
        name = sheet.headers[summary.column] if summary.column < sheet.column_count else str(summary.column)
        if not summary.started:
            table.add_row(name, "-", "-", "-", "-", "-", "[yellow]already running[/yellow]")
            continue
        review = sum(1 for r in metadata.for_column(summary.column).values() if r.needs_review)
        failed = f"[red]{summary.rows_failed}[/red]" if summary.rows_failed else "0"
        table.add_row(
            name,
            str(summary.rows_attempted),
            str(summary.rows_succeeded),
            str(review),
            str(summary.rows_skipped),
            failed,
            f"${summary.total_cost:.4f}",
        )

    console.print(table)

    for summary in summaries:
        for failure in summary.failures:
            console.print(f"  [red]row {failure.row}[/red]: {failure.message}")


def write_report(path: Path, sheet: SheetStore, metadata: MetadataStore, columns: List[int]) -> None:
    """Write per-cell provenance (value, citations, confidence, status) as JSON."""
    report = []
    for column in columns:
        for row, result in sorted(metadata.for_column(column).items()):
            entry = result.to_response(query=result.metadata.entity or "")
            entry.update({"row": row, "column": sheet.headers[column]})
            report.append(entry)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(report, indent=2, default=str))
    console.print(f"Report saved to: {path}")


async def run(args: argparse.Namespace, settings: EnrichmentSettings) -> int:
    sheet = SheetStore.from_csv(args.input)
    configs = ConfigStore()
    attachments = AttachmentStore()
    metadata = MetadataStore()
    run_logger = EnrichmentLogger(log_level=settings.log_level, log_file=args.log_file)
    router = ProviderRouter(mode=RouterMode(settings.router_mode), settings=settings)

    console.print(f"Loaded {sheet.row_count} rows x {sheet.column_count} columns from {args.input}")

    if args.config:
        specs = load_column_specs(args.config)
    else:
        specs = [
            {
                "column": args.column,
                "prompt": args.prompt,
                "data_type": args.data_type,
                "context_columns": args.context_columns,
                "attachments": args.attachment or [],
            }
        ]

    summaries: List[EnrichmentRunSummary] = []
    enriched_columns: List[int] = []

    for spec in specs:
        column = ensure_column(sheet, spec["column"])

        for attachment_path in spec.get("attachments") or []:
            attachments.add_column_attachment(column, load_attachment(Path(attachment_path)))

        sample_row = sheet.row_data(0, exclude=column) if sheet.row_count else None
        provider = choose_provider(
            args.provider,
            router,
            settings,
            spec["prompt"],
            sample_row,
            prepare_attachment_context(attachments.column_attachments(column)),
        )
        orchestrator = EnrichmentOrchestrator(
            provider,
            sheet,
            configs=configs,
            attachments=attachments,
            metadata=metadata,
            row_delay=settings.row_delay,
            logger=run_logger,
        )

        custom_format = spec.get("custom_format")
        orchestrator.configure_column(
            column,
            spec["prompt"],
            data_type=DataType(spec["data_type"]) if spec.get("data_type") else None,
            custom_format=CustomFormat(**custom_format) if custom_format else None,
            context_columns=resolve_context_columns(sheet, spec.get("context_columns")),
        )

        rows = parse_rows(args.rows)
        if rows is None:
            summary = await orchestrator.enrich_column(column)
        else:
            summary = await orchestrator.enrich_selected_cells(column, rows)
        summaries.append(summary)
        enriched_columns.append(column)

    display_summaries(summaries, sheet, metadata)

    stats = run_logger.generate_summary()
    console.print(
        f"[dim]{stats['calls']} provider calls, ${stats['total_cost_usd']:.4f}, "
        f"{stats['errors']['total']} errors[/dim]"
    )

    output = args.output or args.input.with_name(f"{args.input.stem}.enriched.csv")
    sheet.to_csv(output)
    console.print(f"\nSheet saved to: {output}")

    if args.report:
        write_report(args.report, sheet, metadata, enriched_columns)

    return 1 if any(s.rows_failed for s in summaries) else 0


async def run_search(args: argparse.Namespace, settings: EnrichmentSettings) -> int:
    sheet = SheetStore.from_csv(args.input) if args.input.exists() else SheetStore([args.column])
    router = ProviderRouter(mode=RouterMode(settings.router_mode), settings=settings)
    provider = choose_provider(args.provider, router, settings, f"find {args.find}")
    column = ensure_column(sheet, args.column)
    orchestrator = EnrichmentOrchestrator(provider, sheet, row_delay=settings.row_delay)

    existing = []
    while len(existing) < sheet.row_count and sheet.get_cell(len(existing), column).strip():
        existing.append(sheet.get_cell(len(existing), column))
    start_row = len(existing)

    outcome = await orchestrator.find_unique_items(
        args.find, args.count, column=column, start_row=start_row, seed=existing
    )

    table = Table(title=f"Found {len(outcome.items)}/{outcome.requested}: {args.find}")
    table.add_column("#", justify="right")
    table.add_column("Name", style="cyan")
    table.add_column("Source")
    for i, item in enumerate(outcome.items, start_row + 1):
        table.add_row(str(i), item.name, item.source)
    console.print(table)

    output = args.output or args.input
    sheet.to_csv(output)
    console.print(f"\nSheet saved to: {output}")
    return 0 if outcome.complete else 1


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Enrich spreadsheet columns with AI")
    parser.add_argument("--input", "-i", type=Path, required=True, help="CSV file with a header row")
    parser.add_argument("--column", "-c", type=str, help="Column to fill (created if missing)")
    parser.add_argument("--prompt", "-p", type=str, help="Prompt; {ColumnName} placeholders are filled per row")
    parser.add_argument("--config", type=Path, help="YAML file defining several columns to enrich")
    parser.add_argument(
        "--provider",
        choices=["auto"] + [name.value for name in ProviderName],
        default="auto",
        help="Backend to use (default: auto, routed by prompt and cost)",
    )
    parser.add_argument(
        "--data-type",
        choices=[t.value for t in DataType],
        help="Expected value type (detected from prompt and column name if omitted)",
    )
    parser.add_argument("--rows", type=str, help="Only these rows, e.g. '0,3,7' or '10-20' (0-based)")
    parser.add_argument(
        "--context-columns",
        type=lambda s: [c.strip() for c in s.split(",") if c.strip()],
        help="Comma-separated columns to pass as context (default: all non-empty)",
    )
    parser.add_argument(
        "--attachment",
        type=Path,
        action="append",
        help="Plain-text document used as context for every row (repeatable)",
    )
    parser.add_argument("--find", type=str, help="Search mode: find unique items of this kind into --column")
    parser.add_argument("--count", type=int, default=10, help="Number of unique items for --find (default: 10)")
    parser.add_argument("--output", "-o", type=Path, help="Output CSV (default: <input>.enriched.csv)")
    parser.add_argument("--report", type=Path, help="Save per-cell sources and confidence to JSON")
    parser.add_argument("--log-file", type=str, help="Also log to logs/<name>")

    args = parser.parse_args()

    load_dotenv()
    try:
        settings = EnrichmentSettings.from_env()
    except ValueError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        sys.exit(2)

    configure_global_logging(settings.log_level)
    provider_rate_limiter.configure(
        min_interval=settings.provider_min_interval,
        max_concurrency=settings.provider_concurrency,
    )

    if args.find:
        if not args.column:
            parser.error("--find requires --column")
    elif not args.config and not (args.column and args.prompt):
        parser.error("give --column and --prompt, or --config")

    if not args.find and not args.input.exists():
        parser.error(f"input file not found: {args.input}")

    console.print(Panel("[bold]cellfill[/bold]", subtitle=f"router mode: {settings.router_mode}", border_style="blue"))

    try:
        if args.find:
            exit_code = asyncio.run(run_search(args, settings))
        else:
            exit_code = asyncio.run(run(args, settings))
    except ProviderUnavailableError as e:
        console.print(f"[red]Provider unavailable:[/red] {e}")
        sys.exit(2)
    except (KeyError, ValueError) as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(2)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
