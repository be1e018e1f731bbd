"""Service layer for recording and reversing settlements.

All writes go through ``Database.transaction()``: the remaining balance is
re-read after the write lock is taken, and a header is never left behind
without its items.
"""

import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Any

from ..config import Settings
from ..db import Database
from ..exceptions import InvalidRequestError, NotFoundError, OverSettlementError
from ..models import (
    Period,
    SettlementHeader,
    SettlementItem,
    SettlementResult,
    SettlementSummary,
    SettlePairRequest,
    SettleSplitRequest,
    SplitLine,
    UndoResult,
)
from .calc import (
    allocate_oldest_first,
    calc_net,
    group_by_pair,
    group_total,
    outstanding_edges,
    suggest_transfers,
)
from .loader import build_split_line, is_usable_split, load_split_lines, settled_totals
from .money import sum_amounts

logger = logging.getLogger(__name__)

MAX_HISTORY_LIMIT = 200


class SettlementService:
    """Service for settling shared expenses within a workspace."""

    def __init__(self, settings: Settings, database: Database):
        """Initialize the settlement service."""
        self.settings = settings
        self.db = database
        self.workspace_id = settings.workspace_id

    # ========================================================================
    # Queries
    # ========================================================================

    def load_split_lines(self, period: Period) -> list[SplitLine]:
        """Split lines of the period with their remaining balances."""
        return load_split_lines(self.db, self.workspace_id, period)

    def get_summary(self, period: Period) -> SettlementSummary:
        """
        Build the settlement overview for a period.

        Returns:
            Net balances and suggested transfers over what is still owed,
            every split line, the items settled in this exact period and the
            most recent settlement headers of the workspace
        """
        lines = self.load_split_lines(period)
        net = calc_net(outstanding_edges(lines))
        suggestions = suggest_transfers(net)

        summary = SettlementSummary(
            period=period,
            net=net,
            suggestions=suggestions,
            splits=lines,
            settled_items=self.db.get_settled_items(
                self.workspace_id, period.from_date, period.to_date
            ),
            recent_settlements=self.db.list_recent_settlement_headers(
                self.workspace_id, limit=self.settings.recent_settlements_limit
            ),
        )

        logger.info(
            f"Summary for {period}: {len(lines)} split lines, "
            f"{len(suggestions)} suggested transfers"
        )
        return summary

    def get_history(
        self,
        from_date: date | None = None,
        to_date: date | None = None,
        limit: Any = None,
    ) -> list[SettlementHeader]:
        """
        List settlement headers by the day they were recorded, newest first.

        A missing ``to_date`` defaults to today; a missing ``from_date`` to
        ``history_days`` days before ``to_date``.
        The limit falls back to ``history_limit`` and is clamped to 1..200.
        """
        to_date = to_date or date.today()
        from_date = from_date or to_date - timedelta(days=self.settings.history_days)
        if from_date > to_date:
            raise InvalidRequestError(f"from {from_date} is after to {to_date}")

        limit = clamp_limit(limit, self.settings.history_limit, 1, MAX_HISTORY_LIMIT)
        return self.db.list_settlement_history(
            self.workspace_id, from_date, to_date, limit
        )

    # ========================================================================
    # Settling
    # ========================================================================

    def settle_split(self, request: SettleSplitRequest) -> SettlementResult:
        """
        Settle part or all of one split.

        The remaining balance is recomputed from the database, never taken
        from the caller.

        Raises:
            NotFoundError: Split does not exist in this workspace
            InvalidRequestError: Split is not an expense share of this period
            OverSettlementError: Amount exceeds what is still owed
        """
        period = request.period

        with self.db.transaction():
            split = self.db.get_split(self.workspace_id, request.split_id)
            if split is None:
                raise NotFoundError("Split", request.split_id)
            if split.entry_type != "expense":
                raise InvalidRequestError(
                    f"Split {split.split_id} does not belong to an expense"
                )
            if not period.contains(split.entry_date):
                raise InvalidRequestError(
                    f"Split {split.split_id} is dated {split.entry_date}, "
                    f"outside {period}"
                )
            if not is_usable_split(split):
                raise InvalidRequestError(f"Split {split.split_id} is incomplete")

            items = self.db.get_settlement_items_for_period(
                self.workspace_id,
                period.from_date,
                period.to_date,
                split_id=split.split_id,
            )
            line = build_split_line(
                split, settled_totals(items).get(split.split_id, Decimal(0))
            )

            if line.remaining_amount <= 0:
                logger.warning(f"Split {split.split_id} is already fully settled")
                raise OverSettlementError(
                    request.amount,
                    line.remaining_amount,
                    message=f"Split {split.split_id} is already fully settled",
                )
            if request.amount > line.remaining_amount:
                logger.warning(
                    f"Rejected {request.amount} against split {split.split_id} "
                    f"(remaining {line.remaining_amount})"
                )
                raise OverSettlementError(request.amount, line.remaining_amount)

            settlement_id = self.db.insert_settlement_header(
                self.workspace_id,
                SettlementHeader(
                    debtor_id=line.debtor_id,
                    creditor_id=line.creditor_id,
                    amount=request.amount,
                    from_date=period.from_date,
                    to_date=period.to_date,
                    note=request.note or f"{period.label} split settlement",
                ),
            )
            self.db.insert_settlement_items(
                self.workspace_id,
                [
                    SettlementItem(
                        settlement_id=settlement_id,
                        split_id=line.split_id,
                        amount=request.amount,
                    )
                ],
            )

        logger.info(
            f"Settled {request.amount} of split {line.split_id} "
            f"({line.debtor_id} -> {line.creditor_id}) as settlement {settlement_id}"
        )
        return SettlementResult(
            settlement_id=settlement_id, amount=request.amount, item_count=1
        )

    def settle_pair(self, request: SettlePairRequest) -> SettlementResult:
        """
        Settle an amount paid by a debtor to a creditor.

        The payment is allocated to the pair's outstanding splits oldest
        first; one header is created with one item per split it touches.

        Raises:
            OverSettlementError: Amount exceeds the pair's total outstanding
        """
        period = request.period

        with self.db.transaction():
            candidates = [
                line
                for line in self.load_split_lines(period)
                if line.debtor_id == request.debtor_id
                and line.creditor_id == request.creditor_id
                and line.remaining_amount > 0
            ]
            candidates.sort(key=lambda line: line.entry_date)

            outstanding = sum_amounts(line.remaining_amount for line in candidates)
            if request.amount > outstanding:
                logger.warning(
                    f"Rejected {request.amount} from {request.debtor_id} to "
                    f"{request.creditor_id} (outstanding {outstanding})"
                )
                raise OverSettlementError(request.amount, outstanding)

            allocations = allocate_oldest_first(request.amount, candidates)
            allocated = sum_amounts(amount for _, amount in allocations)
            if allocated != request.amount:
                raise InvalidRequestError(
                    f"Could only allocate {allocated} of {request.amount}"
                )

            settlement_id = self.db.insert_settlement_header(
                self.workspace_id,
                SettlementHeader(
                    debtor_id=request.debtor_id,
                    creditor_id=request.creditor_id,
                    amount=request.amount,
                    from_date=period.from_date,
                    to_date=period.to_date,
                    note=request.note or f"{period.label} pair settlement",
                ),
            )
            self.db.insert_settlement_items(
                self.workspace_id,
                [
                    SettlementItem(
                        settlement_id=settlement_id,
                        split_id=line.split_id,
                        amount=amount,
                    )
                    for line, amount in allocations
                ],
            )

        logger.info(
            f"Settled {request.amount} from {request.debtor_id} to "
            f"{request.creditor_id} across {len(allocations)} splits "
            f"as settlement {settlement_id}"
        )
        return SettlementResult(
            settlement_id=settlement_id,
            amount=request.amount,
            item_count=len(allocations),
        )

    # ========================================================================
    # Undo
    # ========================================================================

    def undo_item(self, item_id: int) -> UndoResult:
        """
        Remove one settlement item.

        The header's amount shrinks to the sum of its remaining items; a
        header left without items is deleted.

        Raises:
            NotFoundError: Item does not exist in this workspace
        """
        with self.db.transaction():
            item = self.db.get_settlement_item(self.workspace_id, item_id)
            if item is None:
                raise NotFoundError("Settlement item", item_id)

            settlement_id = item.settlement_id
            self.db.delete_settlement_item(self.workspace_id, item_id)

            left = self.db.get_settlement_items(self.workspace_id, settlement_id)
            header_deleted = not left
            if header_deleted:
                self.db.delete_settlement_headers(self.workspace_id, [settlement_id])
            else:
                self.db.update_settlement_header_amount(
                    self.workspace_id,
                    settlement_id,
                    sum_amounts(i.amount for i in left),
                )

        logger.info(
            f"Undid settlement item {item_id} of settlement {settlement_id}"
            + (" (header removed)" if header_deleted else "")
        )
        return UndoResult(
            settlement_id=settlement_id, items_deleted=1, header_deleted=header_deleted
        )

    def undo_settlement(self, settlement_id: int) -> UndoResult:
        """
        Remove a whole settlement: its items first, then the header.

        Raises:
            NotFoundError: Settlement does not exist in this workspace
        """
        with self.db.transaction():
            header = self.db.get_settlement_header(self.workspace_id, settlement_id)
            if header is None:
                raise NotFoundError("Settlement", settlement_id)

            items_deleted = self.db.delete_settlement_items(
                self.workspace_id, [settlement_id]
            )
            self.db.delete_settlement_headers(self.workspace_id, [settlement_id])

        logger.info(f"Undid settlement {settlement_id} ({items_deleted} items)")
        return UndoResult(
            settlement_id=settlement_id,
            items_deleted=items_deleted,
            header_deleted=True,
        )

    # ========================================================================
    # Draft batches
    # ========================================================================

    def generate_drafts(
        self, period: Period, note_prefix: str, replace: bool = False
    ) -> list[int]:
        """
        Create one draft settlement per (debtor, creditor) pair still owing.

        Each draft header totals the pair's outstanding splits and gets one
        item per split. Drafts count as settled until they are cleared.

        Args:
            period: Period to settle
            note_prefix: Marker put in front of each draft's note
            replace: Clear this period's existing drafts first

        Returns:
            Ids of the created draft headers
        """
        created: list[int] = []

        with self.db.transaction():
            if replace:
                self._delete_drafts(period, note_prefix)

            outstanding = [
                line
                for line in self.load_split_lines(period)
                if line.remaining_amount > 0
            ]

            for (debtor_id, creditor_id), lines in group_by_pair(outstanding).items():
                settlement_id = self.db.insert_settlement_header(
                    self.workspace_id,
                    SettlementHeader(
                        debtor_id=debtor_id,
                        creditor_id=creditor_id,
                        amount=group_total(lines),
                        from_date=period.from_date,
                        to_date=period.to_date,
                        note=(
                            f"{note_prefix}{period.label} suggested settlement "
                            f"({len(lines)} splits)"
                        ),
                    ),
                )
                self.db.insert_settlement_items(
                    self.workspace_id,
                    [
                        SettlementItem(
                            settlement_id=settlement_id,
                            split_id=line.split_id,
                            amount=line.remaining_amount,
                        )
                        for line in lines
                    ],
                )
                created.append(settlement_id)

        logger.info(f"Generated {len(created)} draft settlements for {period}")
        return created

    def confirm_drafts(self, period: Period, note_prefix: str) -> list[int]:
        """Strip the draft marker from every draft header of the period."""
        confirmed: list[int] = []

        with self.db.transaction():
            for header in self.list_drafts(period, note_prefix):
                if header.id is None:
                    continue
                self.db.update_settlement_header_note(
                    self.workspace_id, header.id, header.note[len(note_prefix) :]
                )
                confirmed.append(header.id)

        logger.info(f"Confirmed {len(confirmed)} draft settlements for {period}")
        return confirmed

    def clear_drafts(self, period: Period, note_prefix: str) -> list[int]:
        """Delete every draft of the period, items first."""
        with self.db.transaction():
            deleted = self._delete_drafts(period, note_prefix)

        logger.info(f"Cleared {len(deleted)} draft settlements for {period}")
        return deleted

    def list_drafts(self, period: Period, note_prefix: str) -> list[SettlementHeader]:
        """Draft headers of the exact period."""
        return self.db.list_settlement_headers(
            self.workspace_id, period.from_date, period.to_date, note_prefix
        )

    def _delete_drafts(self, period: Period, note_prefix: str) -> list[int]:
        ids = [h.id for h in self.list_drafts(period, note_prefix) if h.id is not None]
        if ids:
            self.db.delete_settlement_items(self.workspace_id, ids)
            self.db.delete_settlement_headers(self.workspace_id, ids)
        return ids


def clamp_limit(value: Any, default: int, minimum: int, maximum: int) -> int:
    """Coerce a user-supplied limit to an int within [minimum, maximum]."""
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return max(minimum, min(maximum, number))
