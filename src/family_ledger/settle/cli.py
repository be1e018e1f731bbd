"""CLI commands for settling up shared expenses."""

import calendar
import logging
import sys
from datetime import date
from decimal import Decimal

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..config import Settings, load_settings
from ..db import Database
from ..exceptions import NotFoundError, OverSettlementError
from ..models import (
    Period,
    SettlementHeader,
    SettlementSummary,
    SettlePairRequest,
    SettleSplitRequest,
)
from .drafts import DraftWorkflow
from .service import SettlementService

app = typer.Typer(
    name="settle",
    help="Work out who owes whom and record settlements",
)

console = Console()

MONTH_HELP = "Month to settle, YYYY-MM (default: current month)"
FROM_HELP = "Period start, YYYY-MM-DD (overrides --month)"
TO_HELP = "Period end, YYYY-MM-DD (overrides --month)"


def setup_logging(verbose: bool = False):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


def resolve_period(
    month: str | None = None,
    from_date: str | None = None,
    to_date: str | None = None,
) -> Period:
    """
    Build a period from CLI options.

    ``--from``/``--to`` win when given; a missing end falls back to the
    month's boundary. The month defaults to the current one.
    """
    if month:
        year_str, _, month_str = month.partition("-")
        try:
            year, month_no = int(year_str), int(month_str)
            last_day = calendar.monthrange(year, month_no)[1]
        except (ValueError, calendar.IllegalMonthError) as e:
            raise typer.BadParameter(
                f"Invalid month {month!r}, expected YYYY-MM"
            ) from e
        start, end = date(year, month_no, 1), date(year, month_no, last_day)
    else:
        today = date.today()
        start = today.replace(day=1)
        end = today.replace(day=calendar.monthrange(today.year, today.month)[1])

    return Period(
        from_date=from_date or start,
        to_date=to_date or end,
    )


def format_money(amount: Decimal, use_color: bool = True) -> str:
    """
    Format money in accounting style with alignment.

    Negative amounts use parentheses: ($85.02)
    Positive amounts have spaces:      $85.02
    """
    abs_amount = abs(amount)
    if amount < 0:
        if use_color:
            return f"($[red]{abs_amount:,.2f}[/red])"
        return f"(${abs_amount:,.2f})"
    if use_color:
        return f" [green]${abs_amount:,.2f}[/green] "
    return f" ${abs_amount:,.2f} "


def _open(settings: Settings | None = None) -> tuple[Database, SettlementService]:
    settings = settings or load_settings()
    db = Database(settings.database_path)
    return db, SettlementService(settings, db)


def exit_with_error(e: Exception, verbose: bool):
    """Print an error and exit non-zero."""
    if isinstance(e, OverSettlementError):
        console.print(f"\n[bold yellow]⚠️  {e}[/bold yellow]\n")
    elif isinstance(e, NotFoundError):
        console.print(f"\n[yellow]{e}[/yellow]\n")
    else:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
    if verbose:
        raise e
    sys.exit(1)


def display_summary(summary: SettlementSummary):
    """Display net balances, suggestions and open splits for a period."""
    console.print(f"\n[bold]Settlement summary {summary.period}[/bold]\n")

    if not summary.splits:
        console.print("[yellow]No shared expenses in this period.[/yellow]")
        return

    net_table = Table(
        title="Net Balances", show_header=True, header_style="bold magenta"
    )
    net_table.add_column("Person", style="cyan")
    net_table.add_column("Net", justify="right", width=14)
    for balance in summary.net:
        net_table.add_row(balance.person_id, format_money(balance.amount))
    console.print(net_table)

    if summary.suggestions:
        console.print("\n[bold]Suggested transfers:[/bold]")
        for transfer in summary.suggestions:
            console.print(
                f"  {transfer.debtor_id} pays {transfer.creditor_id} "
                f"{format_money(transfer.amount)}"
            )
    else:
        console.print("\n[green]✓ Everyone is settled up[/green]")

    split_table = Table(title="Splits", show_header=True, header_style="bold magenta")
    split_table.add_column("Split", style="dim", width=6)
    split_table.add_column("Date", width=10)
    split_table.add_column("Debtor", style="cyan")
    split_table.add_column("Creditor", style="cyan")
    split_table.add_column("Amount", justify="right", width=12)
    split_table.add_column("Settled", justify="right", width=12)
    split_table.add_column("Remaining", justify="right", width=12)
    for line in summary.splits:
        split_table.add_row(
            str(line.split_id),
            line.entry_date.isoformat(),
            line.debtor_id,
            line.creditor_id,
            format_money(line.split_amount, use_color=False),
            format_money(line.settled_amount, use_color=False),
            format_money(line.remaining_amount),
        )
    console.print()
    console.print(split_table)

    if summary.settled_items:
        item_table = Table(
            title="Settled Items", show_header=True, header_style="bold magenta"
        )
        item_table.add_column("Item", style="dim", width=6)
        item_table.add_column("Settlement", style="dim", width=10)
        item_table.add_column("Split", style="dim", width=6)
        item_table.add_column("Amount", justify="right", width=12)
        item_table.add_column("Note", style="yellow")
        for item in summary.settled_items:
            item_table.add_row(
                str(item.id),
                str(item.settlement_id),
                str(item.split_id),
                format_money(item.amount),
                escape(item.note),
            )
        console.print()
        console.print(item_table)


def display_headers(title: str, headers: list[SettlementHeader]):
    """Display settlement headers in a table."""
    if not headers:
        console.print("[yellow]No settlements found.[/yellow]")
        return

    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim", width=6)
    table.add_column("Settled", width=10)
    table.add_column("Period", width=22)
    table.add_column("Debtor", style="cyan")
    table.add_column("Creditor", style="cyan")
    table.add_column("Amount", justify="right", width=12)
    table.add_column("Note", style="yellow", no_wrap=False)
    for header in headers:
        table.add_row(
            str(header.id),
            header.settled_date.isoformat(),
            f"{header.from_date}..{header.to_date}",
            header.debtor_id,
            header.creditor_id,
            format_money(header.amount),
            escape(header.note),
        )
    console.print(table)


@app.command()
def summary(
    month: str | None = typer.Option(None, "--month", "-m", help=MONTH_HELP),
    from_date: str | None = typer.Option(None, "--from", help=FROM_HELP),
    to_date: str | None = typer.Option(None, "--to", help=TO_HELP),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Show net balances, suggested transfers and open splits."""
    setup_logging(verbose)

    try:
        period = resolve_period(month, from_date, to_date)
        db, service = _open()
        result = service.get_summary(period)
        display_summary(result)
        if result.recent_settlements:
            console.print()
            display_headers("Recent Settlements", result.recent_settlements)
    except Exception as e:
        exit_with_error(e, verbose)
    finally:
        if "db" in locals():
            db.close()


@app.command("pay-split")
def pay_split(
    split_id: int = typer.Argument(..., help="Split to settle"),
    amount: str = typer.Argument(..., help="Amount paid, e.g. 12.50"),
    note: str | None = typer.Option(None, "--note", "-n", help="Settlement note"),
    month: str | None = typer.Option(None, "--month", "-m", help=MONTH_HELP),
    from_date: str | None = typer.Option(None, "--from", help=FROM_HELP),
    to_date: str | None = typer.Option(None, "--to", help=TO_HELP),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Settle part or all of one split."""
    setup_logging(verbose)

    try:
        request = SettleSplitRequest(
            period=resolve_period(month, from_date, to_date),
            split_id=split_id,
            amount=amount,
            note=note,
        )
        db, service = _open()
        result = service.settle_split(request)
        console.print(
            f"\n[bold green]✓ Settlement {result.settlement_id} recorded:[/bold green] "
            f"{format_money(result.amount)} against split {split_id}\n"
        )
    except Exception as e:
        exit_with_error(e, verbose)
    finally:
        if "db" in locals():
            db.close()


@app.command()
def pay(
    debtor: str = typer.Argument(..., help="Who is paying"),
    creditor: str = typer.Argument(..., help="Who is being paid"),
    amount: str = typer.Argument(..., help="Amount paid, e.g. 40"),
    note: str | None = typer.Option(None, "--note", "-n", help="Settlement note"),
    month: str | None = typer.Option(None, "--month", "-m", help=MONTH_HELP),
    from_date: str | None = typer.Option(None, "--from", help=FROM_HELP),
    to_date: str | None = typer.Option(None, "--to", help=TO_HELP),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Record a payment from DEBTOR to CREDITOR.

    The amount is applied to the oldest outstanding splits first.
    """
    setup_logging(verbose)

    try:
        request = SettlePairRequest(
            period=resolve_period(month, from_date, to_date),
            debtor_id=debtor,
            creditor_id=creditor,
            amount=amount,
            note=note,
        )
        db, service = _open()
        result = service.settle_pair(request)
        console.print(
            f"\n[bold green]✓ Settlement {result.settlement_id} recorded:[/bold green] "
            f"{debtor} paid {creditor} {format_money(result.amount)} "
            f"across {result.item_count} splits\n"
        )
    except Exception as e:
        exit_with_error(e, verbose)
    finally:
        if "db" in locals():
            db.close()


@app.command("undo-item")
def undo_item(
    item_id: int = typer.Argument(..., help="Settlement item to remove"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Remove one settled item (its settlement shrinks or disappears)."""
    setup_logging(verbose)

    try:
        db, service = _open()
        result = service.undo_item(item_id)
        message = (
            f"\n[green]✓ Removed item {item_id} of settlement {result.settlement_id}"
        )
        if result.header_deleted:
            message += " (settlement removed)"
        console.print(message + "[/green]\n")
    except Exception as e:
        exit_with_error(e, verbose)
    finally:
        if "db" in locals():
            db.close()


@app.command()
def undo(
    settlement_id: int = typer.Argument(..., help="Settlement to remove"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Remove a whole settlement and all of its items."""
    setup_logging(verbose)

    try:
        db, service = _open()
        result = service.undo_settlement(settlement_id)
        console.print(
            f"\n[green]✓ Removed settlement {settlement_id} "
            f"({result.items_deleted} items)[/green]\n"
        )
    except Exception as e:
        exit_with_error(e, verbose)
    finally:
        if "db" in locals():
            db.close()


def _run_draft_action(
    action: str,
    month: str | None,
    from_date: str | None,
    to_date: str | None,
    replace: bool,
    verbose: bool,
):
    setup_logging(verbose)

    try:
        period = resolve_period(month, from_date, to_date)
        settings = load_settings()
        db, service = _open(settings)
        workflow = DraftWorkflow(service, settings.draft_note_prefix)
        result = workflow.run(action, period, replace=replace)

        verb = {"draft": "Drafted", "confirm": "Confirmed", "clear": "Cleared"}[action]
        console.print(
            f"\n[bold green]✓ {verb} {result.count} settlements for {period}[/bold green]"
        )
        if action == "draft" and result.count:
            display_headers(
                "Draft Settlements",
                service.list_drafts(period, workflow.note_prefix),
            )
            console.print(
                "\n[bold]To make these permanent, run:[/bold]\n"
                f"  [cyan]family-ledger settle confirm --from {period.from_date} "
                f"--to {period.to_date}[/cyan]\n"
            )
    except Exception as e:
        exit_with_error(e, verbose)
    finally:
        if "db" in locals():
            db.close()


@app.command()
def draft(
    month: str | None = typer.Option(None, "--month", "-m", help=MONTH_HELP),
    from_date: str | None = typer.Option(None, "--from", help=FROM_HELP),
    to_date: str | None = typer.Option(None, "--to", help=TO_HELP),
    replace: bool = typer.Option(
        False, "--replace", "-r", help="Clear this period's drafts first"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Propose one settlement per debtor/creditor pair still owing.

    Drafts count as settled until they are cleared. Use `confirm` to keep
    them or `clear` to throw them away.
    """
    _run_draft_action("draft", month, from_date, to_date, replace, verbose)


@app.command()
def confirm(
    month: str | None = typer.Option(None, "--month", "-m", help=MONTH_HELP),
    from_date: str | None = typer.Option(None, "--from", help=FROM_HELP),
    to_date: str | None = typer.Option(None, "--to", help=TO_HELP),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Make this period's draft settlements permanent."""
    _run_draft_action("confirm", month, from_date, to_date, False, verbose)


@app.command()
def clear(
    month: str | None = typer.Option(None, "--month", "-m", help=MONTH_HELP),
    from_date: str | None = typer.Option(None, "--from", help=FROM_HELP),
    to_date: str | None = typer.Option(None, "--to", help=TO_HELP),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Delete this period's draft settlements."""
    _run_draft_action("clear", month, from_date, to_date, False, verbose)


@app.command()
def history(
    from_date: str | None = typer.Option(
        None, "--from", help="Earliest settled date, YYYY-MM-DD"
    ),
    to_date: str | None = typer.Option(
        None, "--to", help="Latest settled date, YYYY-MM-DD"
    ),
    limit: int | None = typer.Option(None, "--limit", "-l", help="Maximum rows"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """List recorded settlements, newest first."""
    setup_logging(verbose)

    try:
        start = date.fromisoformat(from_date) if from_date else None
        end = date.fromisoformat(to_date) if to_date else None
        db, service = _open()
        display_headers("Settlement History", service.get_history(start, end, limit))
    except Exception as e:
        exit_with_error(e, verbose)
    finally:
        if "db" in locals():
            db.close()
