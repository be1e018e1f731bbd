"""MCP server for Family Ledger: exposes the settle-up workflow as tools."""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from mcp.server.fastmcp import FastMCP
from pydantic import ValidationError

from .config import load_settings
from .db import Database
from .exceptions import FamilyLedgerError
from .models import (
    Period,
    SettlementHeader,
    SettlePairRequest,
    SettleSplitRequest,
)
from .settle.drafts import DraftWorkflow
from .settle.service import SettlementService

logger = logging.getLogger(__name__)

mcp_app = FastMCP("family-ledger")

WORKFLOW_INSTRUCTIONS = """\
You are helping a family settle up shared expenses. Periods are inclusive \
date ranges written as from_date and to_date (YYYY-MM-DD), usually one \
calendar month. Settlements only count against the exact period they were \
recorded for, so always reuse the same from_date and to_date.

1. REVIEW: Call settlement_summary for the period. Show the net balances and \
the suggested transfers.

2. SETTLE: When someone says they paid, call settle_pair with the debtor, the \
creditor and the amount; it is applied to the oldest splits first. To settle \
one specific split use settle_split with its split id.

3. BATCH: To settle the whole period at once, call draft_settlements, show \
the drafts to the user, and ask whether to keep them. Call confirm_drafts to \
keep them or clear_drafts to throw them away.

4. FIX MISTAKES: undo_item removes one settled item, undo_settlement removes \
a whole settlement. settlement_history lists what was recorded recently.

Never settle more than is outstanding; the tools will refuse and report the \
maximum allowed amount.\
"""


@dataclass
class SessionState:
    """Holds state between MCP tool calls within a single conversation."""

    service: SettlementService | None = None
    db: Database | None = None


_state = SessionState()


def _ensure_service() -> SettlementService:
    """Lazily initialize the SettlementService (loads .env config)."""
    if _state.service is None:
        settings = load_settings()
        _state.db = Database(settings.database_path)
        _state.service = SettlementService(settings, _state.db)
        logger.info(f"Serving workspace {settings.workspace_id!r}")
    return _state.service


def _workflow() -> DraftWorkflow:
    service = _ensure_service()
    return DraftWorkflow(service, service.settings.draft_note_prefix)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _format_amount(amount: Decimal) -> str:
    """Format an amount as an accounting-style dollar string."""
    if amount < 0:
        return f"(${abs(amount):,.2f})"
    return f"${amount:,.2f}"


def _format_header(header: SettlementHeader) -> str:
    return (
        f"  [{header.id}] {header.settled_date} | {header.debtor_id} -> "
        f"{header.creditor_id} | {_format_amount(header.amount)} | "
        f"{header.from_date}..{header.to_date} | {header.note}"
    )


# ---------------------------------------------------------------------------
# MCP Tools
# ---------------------------------------------------------------------------


@mcp_app.tool()
def settlement_summary(from_date: str, to_date: str) -> str:
    """Show net balances, suggested transfers and open splits for a period.

    Args:
        from_date: Period start (YYYY-MM-DD).
        to_date: Period end (YYYY-MM-DD), inclusive.
    """
    try:
        service = _ensure_service()
        summary = service.get_summary(Period(from_date=from_date, to_date=to_date))

        if not summary.splits:
            return f"No shared expenses between {from_date} and {to_date}."

        lines = [f"Settlement summary {summary.period}:", "", "Net balances:"]
        for balance in summary.net:
            lines.append(f"  {balance.person_id}: {_format_amount(balance.amount)}")

        lines.append("")
        if summary.suggestions:
            lines.append("Suggested transfers:")
            for transfer in summary.suggestions:
                lines.append(
                    f"  {transfer.debtor_id} pays {transfer.creditor_id} "
                    f"{_format_amount(transfer.amount)}"
                )
        else:
            lines.append("Everyone is settled up.")

        lines.append("")
        lines.append("Splits:")
        for line in summary.splits:
            lines.append(
                f"  [split {line.split_id}] {line.entry_date} | {line.debtor_id} "
                f"owes {line.creditor_id} | {_format_amount(line.split_amount)} | "
                f"remaining {_format_amount(line.remaining_amount)}"
            )

        if summary.settled_items:
            lines.append("")
            lines.append("Settled items:")
            for item in summary.settled_items:
                lines.append(
                    f"  [item {item.id}] settlement {item.settlement_id} | "
                    f"split {item.split_id} | {_format_amount(item.amount)} | "
                    f"{item.note}"
                )

        return "\n".join(lines)
    except (FamilyLedgerError, ValidationError) as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to build summary: {e}"


@mcp_app.tool()
def settle_split(
    from_date: str, to_date: str, split_id: int, amount: str, note: str = ""
) -> str:
    """Settle part or all of one split.

    Args:
        from_date: Period start (YYYY-MM-DD).
        to_date: Period end (YYYY-MM-DD), inclusive.
        split_id: Split to settle (from settlement_summary).
        amount: Amount paid, e.g. "12.50".
        note: Optional note for the settlement.
    """
    try:
        service = _ensure_service()
        result = service.settle_split(
            SettleSplitRequest(
                period=Period(from_date=from_date, to_date=to_date),
                split_id=split_id,
                amount=amount,
                note=note or None,
            )
        )
        return (
            f"Settlement {result.settlement_id} recorded: "
            f"{_format_amount(result.amount)} against split {split_id}."
        )
    except (FamilyLedgerError, ValidationError) as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to settle split: {e}"


@mcp_app.tool()
def settle_pair(
    from_date: str,
    to_date: str,
    debtor_id: str,
    creditor_id: str,
    amount: str,
    note: str = "",
) -> str:
    """Record a payment from a debtor to a creditor, oldest splits first.

    Args:
        from_date: Period start (YYYY-MM-DD).
        to_date: Period end (YYYY-MM-DD), inclusive.
        debtor_id: Who paid.
        creditor_id: Who was paid.
        amount: Amount paid, e.g. "40.00".
        note: Optional note for the settlement.
    """
    try:
        service = _ensure_service()
        result = service.settle_pair(
            SettlePairRequest(
                period=Period(from_date=from_date, to_date=to_date),
                debtor_id=debtor_id,
                creditor_id=creditor_id,
                amount=amount,
                note=note or None,
            )
        )
        return (
            f"Settlement {result.settlement_id} recorded: {debtor_id} paid "
            f"{creditor_id} {_format_amount(result.amount)} across "
            f"{result.item_count} splits."
        )
    except (FamilyLedgerError, ValidationError) as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to settle pair: {e}"


@mcp_app.tool()
def undo_item(item_id: int) -> str:
    """Remove one settled item. Its settlement shrinks, or goes away if empty.

    Args:
        item_id: Settlement item id (from settlement_summary).
    """
    try:
        result = _ensure_service().undo_item(item_id)
        message = f"Removed item {item_id} of settlement {result.settlement_id}."
        if result.header_deleted:
            message += " The settlement had no items left and was removed."
        return message
    except FamilyLedgerError as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to undo item: {e}"


@mcp_app.tool()
def undo_settlement(settlement_id: int) -> str:
    """Remove a whole settlement and all of its items.

    Args:
        settlement_id: Settlement id (from settlement_history or a settle tool).
    """
    try:
        result = _ensure_service().undo_settlement(settlement_id)
        return (
            f"Removed settlement {settlement_id} "
            f"and {result.items_deleted} items."
        )
    except FamilyLedgerError as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to undo settlement: {e}"


@mcp_app.tool()
def draft_settlements(from_date: str, to_date: str, replace: bool = False) -> str:
    """Propose one settlement per debtor/creditor pair still owing.

    Args:
        from_date: Period start (YYYY-MM-DD).
        to_date: Period end (YYYY-MM-DD), inclusive.
        replace: Clear this period's existing drafts first.
    """
    try:
        workflow = _workflow()
        period = Period(from_date=from_date, to_date=to_date)
        result = workflow.draft(period, replace=replace)

        if not result.count:
            return f"Nothing left to draft for {period}."

        lines = [f"Drafted {result.count} settlements for {period}:"]
        for header in workflow.service.list_drafts(period, workflow.note_prefix):
            lines.append(_format_header(header))
        lines.append("")
        lines.append("Call confirm_drafts to keep them or clear_drafts to discard.")
        return "\n".join(lines)
    except (FamilyLedgerError, ValidationError) as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to draft settlements: {e}"


@mcp_app.tool()
def confirm_drafts(from_date: str, to_date: str) -> str:
    """Make this period's draft settlements permanent.

    Args:
        from_date: Period start (YYYY-MM-DD).
        to_date: Period end (YYYY-MM-DD), inclusive.
    """
    try:
        result = _workflow().confirm(Period(from_date=from_date, to_date=to_date))
        return f"Confirmed {result.count} draft settlements for {result.period}."
    except (FamilyLedgerError, ValidationError) as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to confirm drafts: {e}"


@mcp_app.tool()
def clear_drafts(from_date: str, to_date: str) -> str:
    """Delete this period's draft settlements and their items.

    Args:
        from_date: Period start (YYYY-MM-DD).
        to_date: Period end (YYYY-MM-DD), inclusive.
    """
    try:
        result = _workflow().clear(Period(from_date=from_date, to_date=to_date))
        return f"Cleared {result.count} draft settlements for {result.period}."
    except (FamilyLedgerError, ValidationError) as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to clear drafts: {e}"


@mcp_app.tool()
def settlement_history(
    from_date: str = "", to_date: str = "", limit: int | None = None
) -> str:
    """List recorded settlements by the day they were recorded, newest first.

    Args:
        from_date: Earliest settled date (YYYY-MM-DD). Defaults to 90 days
            before to_date.
        to_date: Latest settled date (YYYY-MM-DD). Defaults to today.
        limit: Maximum rows (1-200, default 50).
    """
    try:
        service = _ensure_service()
        headers = service.get_history(
            date.fromisoformat(from_date) if from_date else None,
            date.fromisoformat(to_date) if to_date else None,
            limit,
        )

        if not headers:
            return "No settlements recorded in that range."

        lines = [f"Settlement history ({len(headers)} shown):"]
        lines.extend(_format_header(header) for header in headers)
        return "\n".join(lines)
    except FamilyLedgerError as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to list history: {e}"


# ---------------------------------------------------------------------------
# MCP Prompt
# ---------------------------------------------------------------------------


@mcp_app.prompt()
def settle_up_workflow() -> str:
    """Orchestration instructions for settling up a period."""
    return WORKFLOW_INSTRUCTIONS


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def run_server():
    """Start the MCP server (stdio transport)."""
    mcp_app.run(transport="stdio")
