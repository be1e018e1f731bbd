"""Recording expenses and their splits, the source of every debt edge."""

import logging

from .config import Settings
from .db import Database
from .exceptions import InvalidRequestError, NotFoundError
from .models import ExpenseRequest, LedgerEntry
from .settle.validation import validate_split

logger = logging.getLogger(__name__)


class ExpenseLedger:
    """Service for writing ledger entries within a workspace."""

    def __init__(self, settings: Settings, database: Database):
        """Initialize the expense ledger."""
        self.settings = settings
        self.db = database
        self.workspace_id = settings.workspace_id

    def _check(self, request: ExpenseRequest) -> None:
        result = validate_split(
            request.type, request.amount, request.payer_id, request.splits
        )
        if not result.ok:
            logger.warning(f"Rejected split: {result.reason}")
            raise InvalidRequestError(result.reason or "Invalid split")

    @staticmethod
    def _entry(request: ExpenseRequest) -> LedgerEntry:
        return LedgerEntry(
            entry_date=request.entry_date,
            type=request.type,
            amount=request.amount,
            payer_id=request.payer_id,
            merchant=request.merchant,
            note=request.note,
        )

    @staticmethod
    def _shares(request: ExpenseRequest) -> list[tuple[str, object]]:
        return [(line.debtor_id or "", line.amount) for line in request.splits]

    def record_expense(self, request: ExpenseRequest) -> LedgerEntry:
        """
        Record an entry and its splits in one transaction.

        Raises:
            InvalidRequestError: The split breaks a business rule
        """
        self._check(request)

        with self.db.transaction():
            entry_id = self.db.insert_ledger_entry(
                self.workspace_id, self._entry(request)
            )
            if request.splits:
                self.db.insert_splits(
                    self.workspace_id, entry_id, self._shares(request)
                )

        logger.info(
            f"Recorded {request.type} {entry_id} of {request.amount} "
            f"with {len(request.splits)} splits"
        )
        return self.get_expense(entry_id)

    def replace_expense(self, entry_id: int, request: ExpenseRequest) -> LedgerEntry:
        """
        Overwrite an entry and replace all of its splits.

        Items already settled against the old splits stay attached to their
        settlement headers; undo those settlements to release them.

        Raises:
            NotFoundError: Entry does not exist (or was deleted)
            InvalidRequestError: The new split breaks a business rule
        """
        self._check(request)

        with self.db.transaction():
            if not self.db.update_ledger_entry(
                self.workspace_id, entry_id, self._entry(request)
            ):
                raise NotFoundError("Ledger entry", entry_id)

            removed = self.db.delete_splits_for_entry(self.workspace_id, entry_id)
            if request.splits:
                self.db.insert_splits(
                    self.workspace_id, entry_id, self._shares(request)
                )

        logger.info(
            f"Replaced entry {entry_id}: {removed} old splits, "
            f"{len(request.splits)} new"
        )
        return self.get_expense(entry_id)

    def delete_expense(self, entry_id: int) -> None:
        """
        Soft-delete an entry and drop its splits.

        Raises:
            NotFoundError: Entry does not exist (or was already deleted)
        """
        with self.db.transaction():
            if not self.db.soft_delete_ledger_entry(self.workspace_id, entry_id):
                raise NotFoundError("Ledger entry", entry_id)
            self.db.delete_splits_for_entry(self.workspace_id, entry_id)

        logger.info(f"Deleted entry {entry_id}")

    def get_expense(self, entry_id: int) -> LedgerEntry:
        """
        Get a live entry with its splits.

        Raises:
            NotFoundError: Entry does not exist (or was deleted)
        """
        entry = self.db.get_ledger_entry(self.workspace_id, entry_id)
        if entry is None:
            raise NotFoundError("Ledger entry", entry_id)
        return entry
