"""CLI for Family Ledger."""

import typer

from .config import load_settings
from .db import Database
from .ledger import ExpenseLedger
from .mcp_server import run_server
from .models import ExpenseRequest, SplitShare
from .settle.cli import console, exit_with_error, format_money, setup_logging
from .settle.cli import app as settle_app

app = typer.Typer(
    name="family-ledger",
    help="Shared family expenses and who owes whom",
)

app.add_typer(settle_app, name="settle", help="Settle up shared expenses")


def parse_split(value: str) -> SplitShare:
    """Parse a ``PERSON:AMOUNT`` option value."""
    debtor_id, sep, amount = value.rpartition(":")
    if not sep or not debtor_id:
        raise typer.BadParameter(f"Invalid split {value!r}, expected PERSON:AMOUNT")
    return SplitShare(debtor_id=debtor_id.strip(), amount=amount.strip())


@app.command("add-expense")
def add_expense(
    entry_date: str = typer.Argument(..., help="Date of the expense, YYYY-MM-DD"),
    amount: str = typer.Argument(..., help="Total amount, e.g. 84.20"),
    payer: str | None = typer.Option(None, "--payer", "-p", help="Who paid"),
    split: list[str] = typer.Option(
        [], "--split", "-s", help="PERSON:AMOUNT owed to the payer (repeatable)"
    ),
    merchant: str | None = typer.Option(None, "--merchant", help="Where it was spent"),
    note: str | None = typer.Option(None, "--note", "-n", help="Free-form note"),
    income: bool = typer.Option(False, "--income", help="Record income instead"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Record an expense and who owes the payer what."""
    setup_logging(verbose)

    try:
        request = ExpenseRequest(
            entry_date=entry_date,
            type="income" if income else "expense",
            amount=amount,
            payer_id=payer,
            merchant=merchant,
            note=note,
            splits=[parse_split(value) for value in split],
        )
        settings = load_settings()
        db = Database(settings.database_path)
        entry = ExpenseLedger(settings, db).record_expense(request)

        console.print(
            f"\n[bold green]✓ Recorded {entry.type} {entry.id}:[/bold green] "
            f"{format_money(entry.amount)}"
        )
        for share in entry.splits:
            console.print(
                f"  split {share.split_id}: {share.debtor_id} owes "
                f"{share.creditor_id} {format_money(share.split_amount)}"
            )
    except Exception as e:
        exit_with_error(e, verbose)
    finally:
        if "db" in locals():
            db.close()


@app.command("delete-expense")
def delete_expense(
    entry_id: int = typer.Argument(..., help="Entry to delete"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Delete an expense and its splits."""
    setup_logging(verbose)

    try:
        settings = load_settings()
        db = Database(settings.database_path)
        ExpenseLedger(settings, db).delete_expense(entry_id)
        console.print(f"\n[green]✓ Deleted entry {entry_id}[/green]\n")
    except Exception as e:
        exit_with_error(e, verbose)
    finally:
        if "db" in locals():
            db.close()


@app.command()
def mcp():
    """Start the MCP server for assistant integration."""
    run_server()


if __name__ == "__main__":
    app()
