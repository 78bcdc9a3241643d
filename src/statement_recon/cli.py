"""
Command-line interface for the bank statement import tool.
"""

from pathlib import Path
from typing import Optional
import logging
import sys

import click
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from .config import load_config, generate_default_config, StatementReconConfig
from .models.transaction import ImportSummary, MatchType, ParsedTransaction
from .parsers.column_mapping import BANK_PRESETS, ColumnMapping, resolve_preset
from .parsers.csv_parser import CsvStatementParser
from .parsers.registry import default_registry
from .reconciliation.coordinator import ReconciliationCoordinator, summarize
from .reconciliation.ledger import InMemoryLedger
from .reports.excel_generator import ExcelReportGenerator
from .utils.exceptions import StatementReconError
from .utils.logging_config import setup_logging

console = Console()

MATCH_STYLES = {
    MatchType.NEW: "green",
    MatchType.LIKELY: "yellow",
    MatchType.EXACT: "red",
}


def mapping_options(func):
    """Column mapping options shared by the parse and reconcile commands."""
    options = [
        click.option("-p", "--preset", help="Bank preset name (built-in or from config)"),
        click.option("--date-column", help="Header of the date column"),
        click.option("--description-column", help="Header of the description column"),
        click.option("--amount-column", help="Header of a single signed amount column"),
        click.option("--income-column", help="Header of the money-in column"),
        click.option("--expense-column", help="Header of the money-out column"),
        click.option("--category-column", help="Header of an optional category column"),
        click.option("--date-format", help="Date pattern, e.g. dd/MM/yyyy"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@click.group()
@click.version_option(version="0.1.0")
def main():
    """Bank Statement Import and Ledger Reconciliation Tool."""
    pass


@main.command()
@click.argument("statement_file", type=click.Path(exists=True, path_type=Path))
@click.option(
    "-c",
    "--config",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file (YAML)",
)
@click.option("-p", "--preset", help="Bank preset name; detected from headers if omitted")
@click.option("-n", "--max-rows", type=int, default=None, help="Number of rows to show")
def preview(
    statement_file: Path,
    config: Optional[Path],
    preset: Optional[str],
    max_rows: Optional[int],
):
    """
    Show the first transactions of a statement.

    STATEMENT_FILE: Path to the bank statement CSV export
    """
    recon_config = load_config(config)
    parser = CsvStatementParser(recon_config)

    try:
        mapping = resolve_preset(preset, recon_config.presets) if preset else None
    except StatementReconError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    transactions = parser.preview(statement_file, max_rows=max_rows, mapping=mapping)
    if not transactions:
        try:
            headers = parser.read_headers(statement_file)
        except (OSError, UnicodeDecodeError, ValueError):
            headers = []
        console.print(
            "[yellow]No preview available. Choose a preset or map the columns: "
            f"{', '.join(headers) or 'no header row found'}[/yellow]"
        )
        return

    console.print(_transactions_table(transactions, f"Preview: {statement_file.name}"))


@main.command()
@click.argument("statement_file", type=click.Path(exists=True, path_type=Path))
@click.option("-c", "--config", type=click.Path(exists=True, path_type=Path))
@mapping_options
def parse(statement_file: Path, config: Optional[Path], **mapping_args):
    """
    Parse a statement and display its transactions and dropped rows.

    STATEMENT_FILE: Path to the bank statement CSV export
    """
    recon_config = load_config(config)
    parser = CsvStatementParser(recon_config)

    try:
        mapping = _build_mapping(recon_config, **mapping_args)
        result = parser.parse_file(statement_file, mapping)
    except StatementReconError as e:
        console.print(f"[red]Error parsing file: {e}[/red]")
        sys.exit(1)

    if result.fatal:
        console.print(f"[red]Error parsing file: {'; '.join(result.errors)}[/red]")
        sys.exit(1)

    transactions = result.transactions
    console.print(_transactions_table(transactions[:20], f"Transactions: {statement_file.name}"))

    if len(transactions) > 20:
        console.print(f"\n... and {len(transactions) - 20} more transactions")

    console.print(f"\nTotal transactions: {len(transactions)}")
    _display_row_errors(result.errors)


@main.command()
@click.argument("statement_file", type=click.Path(exists=True, path_type=Path))
@click.option(
    "-l",
    "--ledger",
    "ledger_path",
    type=click.Path(path_type=Path),
    help="Ledger CSV (id,date,description,amount,category); defaults to ledger.path in config",
)
@click.option(
    "-c",
    "--config",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file (YAML)",
)
@mapping_options
@click.option("--apply", "apply_actions", is_flag=True, help="Apply default actions to the ledger")
@click.option(
    "-o",
    "--report",
    type=click.Path(path_type=Path),
    help="Output Excel report path, or a directory to name the report from config",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.option(
    "--dry-run", is_flag=True, help="Classify and show summary without writing anything"
)
def reconcile(
    statement_file: Path,
    ledger_path: Optional[Path],
    config: Optional[Path],
    apply_actions: bool,
    report: Optional[Path],
    verbose: bool,
    dry_run: bool,
    **mapping_args,
):
    """
    Classify a bank statement against an existing ledger.

    STATEMENT_FILE: Path to the bank statement CSV export
    """
    # Setup logging
    log_level = logging.DEBUG if verbose else logging.INFO

    try:
        # Load configuration
        recon_config = load_config(config)
        log_file = Path(recon_config.logging.file) if recon_config.logging.file else None
        setup_logging(log_level, log_file=log_file, log_format=recon_config.logging.format)

        if ledger_path is None and recon_config.ledger.path:
            ledger_path = Path(recon_config.ledger.path)
        if ledger_path is None:
            raise click.UsageError("No ledger given; pass --ledger or set ledger.path")

        mapping = _build_mapping(recon_config, **mapping_args)
        date_format = recon_config.ledger.date_format

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            task = progress.add_task("Loading ledger...", total=None)
            ledger = InMemoryLedger.load_csv(ledger_path, date_format)
            progress.update(task, completed=True)

            task = progress.add_task("Parsing and classifying statement...", total=None)
            coordinator = ReconciliationCoordinator(
                default_registry(config=recon_config), ledger, config=recon_config
            )
            session = coordinator.run_import(statement_file, mapping)
            progress.update(task, completed=True)

        summary = summarize(session.candidates)
        _display_summary(summary, len(session.row_errors))
        _display_row_errors(session.row_errors)

        if dry_run:
            console.print("\n[yellow]Dry run - ledger and report left untouched[/yellow]")
            return

        apply_report = None
        if apply_actions:
            apply_report = coordinator.apply_resolved(session.candidates)
            ledger.save_csv(ledger_path, date_format)
            console.print(
                f"\n[green]Ledger updated: {apply_report.created_count} created, "
                f"{apply_report.updated_count} updated, "
                f"{apply_report.skipped_count} skipped[/green]"
            )
            for outcome in apply_report.failures:
                txn = outcome.candidate.transaction
                console.print(f"[red]Failed: {txn.date} {txn.description}: {outcome.error}[/red]")

        if report is not None:
            report_generator = ExcelReportGenerator(recon_config)
            report_path = report_generator.generate_report(
                session=session, output_path=report, apply_report=apply_report
            )
            console.print(f"\n[green]Report generated: {report_path}[/green]")

    except click.UsageError:
        raise
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        if verbose:
            console.print_exception()
        sys.exit(1)


@main.command()
@click.option("-c", "--config", type=click.Path(exists=True, path_type=Path))
def presets(config: Optional[Path]):
    """List bank presets and registered parsers."""
    recon_config = load_config(config)

    table = Table(title="Bank Presets")
    table.add_column("Preset", style="cyan")
    table.add_column("Source")
    table.add_column("Date")
    table.add_column("Description")
    table.add_column("Amount")
    table.add_column("Date Format")

    rows = [(bank.format_id, "built-in", ColumnMapping.for_bank(bank)) for bank in BANK_PRESETS]
    for name in recon_config.presets:
        try:
            rows.append((name, "config", resolve_preset(name, recon_config.presets)))
        except StatementReconError as e:
            console.print(f"[yellow]Skipping preset '{name}': {e}[/yellow]")

    for name, source, mapping in rows:
        amount = (
            f"+{mapping.income_column} / -{mapping.expense_column}"
            if mapping.separate_columns
            else mapping.amount_column
        )
        table.add_row(
            name,
            source,
            mapping.date_column,
            mapping.description_column,
            amount,
            mapping.date_format,
        )

    console.print(table)

    parser_table = Table(title="Registered Parsers")
    parser_table.add_column("Format")
    parser_table.add_column("Importer")
    parser_table.add_column("Priority", justify="right")
    parser_table.add_column("File Types")
    for info in default_registry(config=recon_config).describe():
        parser_table.add_row(
            info["format_id"],
            f"{info['importer_name']} ({info['importer_id']})",
            str(info["priority"]),
            ", ".join(info["file_types"]),
        )
    console.print(parser_table)


@main.command("init-config")
@click.option(
    "-o", "--output", type=click.Path(path_type=Path), default=Path("config.yaml")
)
def init_config(output: Path):
    """Generate a sample configuration file."""
    generate_default_config(output)
    console.print(f"[green]Configuration file generated: {output}[/green]")


def _build_mapping(
    config: StatementReconConfig,
    preset: Optional[str] = None,
    **columns: Optional[str],
) -> ColumnMapping:
    """
    Build a column mapping from a preset and/or explicit column options.

    Explicit options override the preset's values.

    Raises:
        MappingError: If the preset is unknown or the result is incomplete
    """
    data: dict[str, Optional[str]] = {}
    if preset:
        data = resolve_preset(preset, config.presets).model_dump(exclude_none=True)

    overrides = {k: v for k, v in columns.items() if v}
    if overrides.get("amount_column"):
        data.pop("income_column", None)
        data.pop("expense_column", None)
    if overrides.get("income_column") or overrides.get("expense_column"):
        data.pop("amount_column", None)
    data.update(overrides)

    return ColumnMapping.from_dict(data)


def _transactions_table(transactions: list[ParsedTransaction], title: str) -> Table:
    table = Table(title=title)
    table.add_column("Date")
    table.add_column("Description")
    table.add_column("Amount", justify="right")
    table.add_column("Category")

    for txn in transactions:
        style = "green" if txn.is_income else "red"
        table.add_row(
            str(txn.date),
            (
                txn.description[:40] + "..."
                if len(txn.description) > 40
                else txn.description
            ),
            f"[{style}]£{txn.amount:,.2f}[/{style}]",
            txn.category or "-",
        )
    return table


def _display_summary(summary: ImportSummary, dropped_rows: int) -> None:
    """Display import classification summary in console."""
    table = Table(title="Import Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Total Candidates", str(summary.total_count))
    table.add_row(
        f"[{MATCH_STYLES[MatchType.NEW]}]New[/]", str(summary.new_count)
    )
    table.add_row(
        f"[{MATCH_STYLES[MatchType.LIKELY]}]Likely Duplicates[/]", str(summary.likely_count)
    )
    table.add_row(
        f"[{MATCH_STYLES[MatchType.EXACT]}]Exact Duplicates[/]", str(summary.exact_count)
    )
    table.add_row("Rows Dropped", str(dropped_rows))
    table.add_row("To Import", str(summary.import_count))
    table.add_row("Income To Import", f"£{summary.total_income_to_import:,.2f}")
    table.add_row("Expenses To Import", f"£{summary.total_expenses_to_import:,.2f}")

    console.print(table)


def _display_row_errors(errors: list[str]) -> None:
    if not errors:
        return
    console.print(f"\n[yellow]{len(errors)} rows dropped:[/yellow]")
    for error in errors:
        console.print(f"  [yellow]{error}[/yellow]")


if __name__ == "__main__":
    main()
