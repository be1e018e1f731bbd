"""Reconstruct the debt edges of a period from expense splits and settlements."""

import logging
from collections.abc import Iterable
from decimal import Decimal

from ..db import Database
from ..models import ExpenseSplit, Period, SettlementItem, SplitLine
from .money import remaining_amount, round2

logger = logging.getLogger(__name__)


def settled_totals(items: Iterable[SettlementItem]) -> dict[int, Decimal]:
    """Sum settled amounts per split id (non-positive items are ignored)."""
    totals: dict[int, Decimal] = {}
    for item in items:
        amount = round2(item.amount)
        if amount <= 0:
            continue
        totals[item.split_id] = round2(totals.get(item.split_id, Decimal(0)) + amount)
    return totals


def is_usable_split(split: ExpenseSplit) -> bool:
    """Whether a stored split is a well-formed debt edge of an expense."""
    if split.entry_type != "expense":
        return False
    if not split.creditor_id or not split.debtor_id:
        return False
    if split.creditor_id == split.debtor_id:
        return False
    return round2(split.split_amount) > 0


def build_split_line(split: ExpenseSplit, settled: Decimal) -> SplitLine:
    """Combine a split with what was already settled against it."""
    split_amount = round2(split.split_amount)
    settled = round2(settled)
    return SplitLine(
        split_id=split.split_id,
        entry_id=split.entry_id,
        entry_date=split.entry_date,
        creditor_id=split.creditor_id or "",
        debtor_id=split.debtor_id or "",
        split_amount=split_amount,
        settled_amount=settled,
        remaining_amount=remaining_amount(split_amount, settled),
    )


def load_split_lines(db: Database, workspace_id: str, period: Period) -> list[SplitLine]:
    """
    Load every debt edge of a period with its remaining balance.

    Steps:
    1. Fetch splits of expense entries dated inside the period
    2. Drop malformed edges (missing people, self-debt, non-positive amount)
    3. Fetch settlement items whose header covers exactly this period
    4. Sum settled amounts per split
    5. remaining = max(0, split_amount - settled)
    6. Sort by entry date (stable, so ties keep fetch order)

    Settlements are matched by exact period: an item recorded for January
    does not count against a query for January plus one day.

    Args:
        db: Database to read from
        workspace_id: Tenant key
        period: Inclusive period

    Returns:
        Split lines, oldest entry first. Database errors propagate.
    """
    splits = db.get_expense_splits(workspace_id, period.from_date, period.to_date)
    usable = [split for split in splits if is_usable_split(split)]
    if len(usable) != len(splits):
        logger.debug(
            f"Skipped {len(splits) - len(usable)} malformed splits in {period}"
        )

    settled = settled_totals(
        db.get_settlement_items_for_period(workspace_id, period.from_date, period.to_date)
    )

    lines = [
        build_split_line(split, settled.get(split.split_id, Decimal(0)))
        for split in usable
    ]
    lines.sort(key=lambda line: line.entry_date)

    logger.debug(f"Loaded {len(lines)} split lines for {period}")
    return lines
