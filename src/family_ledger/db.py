"""SQLite database operations for Family Ledger."""

import logging
import sqlite3
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path

from .exceptions import PersistenceError
from .models import (
    ExpenseSplit,
    LedgerEntry,
    SettledItem,
    SettlementHeader,
    SettlementItem,
)
from .settle.money import round2, to_number

logger = logging.getLogger(__name__)

_SPLIT_COLUMNS = """
    s.id AS split_id, s.entry_id, s.debtor_id, s.amount,
    e.entry_date, e.type AS entry_type, e.payer_id AS creditor_id
"""

_HEADER_COLUMNS = """
    id, debtor_id, creditor_id, amount, from_date, to_date, note,
    settled_date, created_at
"""


class Database:
    """SQLite database manager.

    Every row carries a ``workspace_id``; every query filters on it, so ids
    from another workspace behave as if they did not exist.

    The connection runs in autocommit mode. Multi-statement writes go
    through ``transaction()``, which takes the write lock up front
    (``BEGIN IMMEDIATE``) so read-check-write sequences are serialized.
    """

    def __init__(self, db_path: Path):
        """Initialize database connection."""
        self.db_path = db_path
        self.conn = sqlite3.connect(str(db_path), isolation_level=None)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        self._in_transaction = False
        self._init_schema()

    def _init_schema(self):
        """Initialize database schema."""
        cursor = self.conn.cursor()

        # Ledger entries (expense / income); soft-deleted via deleted_at
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS ledger_entries (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                workspace_id TEXT NOT NULL,
                entry_date DATE NOT NULL,
                type TEXT NOT NULL,
                amount TEXT NOT NULL,
                payer_id TEXT,
                merchant TEXT,
                note TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                deleted_at TIMESTAMP
            )
        """
        )

        # Splits: debtor_id owes the entry's payer_id this amount
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS ledger_splits (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                workspace_id TEXT NOT NULL,
                entry_id INTEGER NOT NULL REFERENCES ledger_entries(id),
                debtor_id TEXT,
                amount TEXT NOT NULL,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """
        )

        # Settlement headers
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS settlements (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                workspace_id TEXT NOT NULL,
                debtor_id TEXT NOT NULL,
                creditor_id TEXT NOT NULL,
                amount TEXT NOT NULL,
                from_date DATE NOT NULL,
                to_date DATE NOT NULL,
                note TEXT NOT NULL DEFAULT '',
                settled_date DATE NOT NULL,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """
        )

        # Settlement items (split_id is not a foreign key: expenses can be
        # re-split while old items stay attached to their header)
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS settlement_items (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                workspace_id TEXT NOT NULL,
                settlement_id INTEGER NOT NULL REFERENCES settlements(id),
                split_id INTEGER NOT NULL,
                amount TEXT NOT NULL,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """
        )

        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_entries_ws_date "
            "ON ledger_entries (workspace_id, entry_date)"
        )
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_splits_entry ON ledger_splits (entry_id)"
        )
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_settlements_ws_period "
            "ON settlements (workspace_id, from_date, to_date)"
        )
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_items_settlement "
            "ON settlement_items (settlement_id)"
        )
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_items_split ON settlement_items (split_id)"
        )

    def close(self):
        """Close database connection."""
        self.conn.close()

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """
        Run a block of writes as one unit.

        Commits when the block finishes, rolls back on any exception. SQLite
        errors, including a failed COMMIT, are re-raised as PersistenceError;
        anything else (validation failures raised mid-block) propagates
        unchanged after the rollback. Nested calls join the outer transaction.
        """
        if self._in_transaction:
            yield
            return

        try:
            self.conn.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as e:
            raise PersistenceError(f"Could not start a write transaction: {e}") from e

        self._in_transaction = True
        try:
            yield
            self.conn.commit()
        except sqlite3.Error as e:
            self._rollback()
            logger.error(f"Rolled back transaction after database error: {e}")
            raise PersistenceError(
                f"Database write failed and was rolled back; nothing was written: {e}"
            ) from e
        except BaseException:
            self._rollback()
            raise
        finally:
            self._in_transaction = False

    def _rollback(self):
        # A failed COMMIT leaves the transaction open; close it so the next
        # BEGIN IMMEDIATE on this connection can start.
        if self.conn.in_transaction:
            self.conn.rollback()

    # ========================================================================
    # Ledger entry operations
    # ========================================================================

    def insert_ledger_entry(self, workspace_id: str, entry: LedgerEntry) -> int:
        """Insert a ledger entry (without its splits)."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            INSERT INTO ledger_entries (
                workspace_id, entry_date, type, amount, payer_id,
                merchant, note, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                workspace_id,
                entry.entry_date.isoformat(),
                entry.type,
                str(round2(entry.amount)),
                entry.payer_id,
                entry.merchant,
                entry.note,
                entry.created_at.isoformat(),
            ),
        )
        row_id = cursor.lastrowid
        if row_id is None:
            raise PersistenceError("Failed to insert ledger entry")
        return row_id

    def update_ledger_entry(
        self, workspace_id: str, entry_id: int, entry: LedgerEntry
    ) -> bool:
        """Overwrite the editable fields of a live ledger entry."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            UPDATE ledger_entries
            SET entry_date = ?, type = ?, amount = ?, payer_id = ?,
                merchant = ?, note = ?
            WHERE workspace_id = ? AND id = ? AND deleted_at IS NULL
            """,
            (
                entry.entry_date.isoformat(),
                entry.type,
                str(round2(entry.amount)),
                entry.payer_id,
                entry.merchant,
                entry.note,
                workspace_id,
                entry_id,
            ),
        )
        return cursor.rowcount > 0

    def soft_delete_ledger_entry(self, workspace_id: str, entry_id: int) -> bool:
        """Mark a ledger entry as deleted."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            UPDATE ledger_entries SET deleted_at = ?
            WHERE workspace_id = ? AND id = ? AND deleted_at IS NULL
            """,
            (datetime.now().isoformat(), workspace_id, entry_id),
        )
        return cursor.rowcount > 0

    def get_ledger_entry(self, workspace_id: str, entry_id: int) -> LedgerEntry | None:
        """Get a live ledger entry with its splits."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            SELECT id, entry_date, type, amount, payer_id, merchant, note,
                   created_at, deleted_at
            FROM ledger_entries
            WHERE workspace_id = ? AND id = ? AND deleted_at IS NULL
            """,
            (workspace_id, entry_id),
        )
        row = cursor.fetchone()
        if not row:
            return None

        return LedgerEntry(
            id=row["id"],
            entry_date=date.fromisoformat(row["entry_date"]),
            type=row["type"],
            amount=to_number(row["amount"]),
            payer_id=row["payer_id"],
            merchant=row["merchant"],
            note=row["note"],
            created_at=datetime.fromisoformat(row["created_at"]),
            splits=self.get_splits_for_entry(workspace_id, row["id"]),
        )

    # ========================================================================
    # Split operations
    # ========================================================================

    def insert_splits(
        self,
        workspace_id: str,
        entry_id: int,
        shares: Sequence[tuple[str, object]],
    ) -> list[int]:
        """Insert (debtor_id, amount) shares for an entry."""
        cursor = self.conn.cursor()
        now = datetime.now().isoformat()
        ids = []
        for debtor_id, amount in shares:
            cursor.execute(
                """
                INSERT INTO ledger_splits (
                    workspace_id, entry_id, debtor_id, amount, created_at
                ) VALUES (?, ?, ?, ?, ?)
                """,
                (workspace_id, entry_id, debtor_id, str(round2(amount)), now),
            )
            if cursor.lastrowid is None:
                raise PersistenceError("Failed to insert split")
            ids.append(cursor.lastrowid)
        return ids

    def delete_splits_for_entry(self, workspace_id: str, entry_id: int) -> int:
        """Delete every split of an entry."""
        cursor = self.conn.cursor()
        cursor.execute(
            "DELETE FROM ledger_splits WHERE workspace_id = ? AND entry_id = ?",
            (workspace_id, entry_id),
        )
        return cursor.rowcount

    def get_splits_for_entry(
        self, workspace_id: str, entry_id: int
    ) -> list[ExpenseSplit]:
        """Get the splits of one entry, in insertion order."""
        cursor = self.conn.cursor()
        cursor.execute(
            f"""
            SELECT {_SPLIT_COLUMNS}
            FROM ledger_splits s
            JOIN ledger_entries e ON e.id = s.entry_id
            WHERE s.workspace_id = ? AND e.workspace_id = ? AND s.entry_id = ?
            ORDER BY s.id
            """,
            (workspace_id, workspace_id, entry_id),
        )
        return [_split_from_row(row) for row in cursor.fetchall()]

    def get_expense_splits(
        self, workspace_id: str, from_date: date, to_date: date
    ) -> list[ExpenseSplit]:
        """
        Get splits of live expense entries dated inside [from_date, to_date].

        Rows come back in fetch order (split id); callers sort by date.
        """
        cursor = self.conn.cursor()
        cursor.execute(
            f"""
            SELECT {_SPLIT_COLUMNS}
            FROM ledger_splits s
            JOIN ledger_entries e ON e.id = s.entry_id
            WHERE s.workspace_id = ?
              AND e.workspace_id = ?
              AND e.deleted_at IS NULL
              AND e.type = 'expense'
              AND e.entry_date >= ?
              AND e.entry_date <= ?
            ORDER BY s.id
            """,
            (workspace_id, workspace_id, from_date.isoformat(), to_date.isoformat()),
        )
        return [_split_from_row(row) for row in cursor.fetchall()]

    def get_split(self, workspace_id: str, split_id: int) -> ExpenseSplit | None:
        """Get one split joined with its (live) parent entry."""
        cursor = self.conn.cursor()
        cursor.execute(
            f"""
            SELECT {_SPLIT_COLUMNS}
            FROM ledger_splits s
            JOIN ledger_entries e ON e.id = s.entry_id
            WHERE s.workspace_id = ?
              AND e.workspace_id = ?
              AND e.deleted_at IS NULL
              AND s.id = ?
            """,
            (workspace_id, workspace_id, split_id),
        )
        row = cursor.fetchone()
        return _split_from_row(row) if row else None

    # ========================================================================
    # Settlement item operations
    # ========================================================================

    def get_settlement_items_for_period(
        self,
        workspace_id: str,
        from_date: date,
        to_date: date,
        split_id: int | None = None,
    ) -> list[SettlementItem]:
        """
        Get items whose header covers exactly [from_date, to_date].

        Matching is on the exact range, not on overlap.
        """
        query = """
            SELECT i.id, i.settlement_id, i.split_id, i.amount, i.created_at
            FROM settlement_items i
            JOIN settlements h ON h.id = i.settlement_id
            WHERE i.workspace_id = ?
              AND h.workspace_id = ?
              AND h.from_date = ?
              AND h.to_date = ?
        """
        params: list[object] = [
            workspace_id,
            workspace_id,
            from_date.isoformat(),
            to_date.isoformat(),
        ]
        if split_id is not None:
            query += " AND i.split_id = ?"
            params.append(split_id)
        query += " ORDER BY i.id"

        cursor = self.conn.cursor()
        cursor.execute(query, params)
        return [_item_from_row(row) for row in cursor.fetchall()]

    def get_settled_items(
        self, workspace_id: str, from_date: date, to_date: date
    ) -> list[SettledItem]:
        """Get items of the exact period joined with their header, newest first."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            SELECT i.id, i.settlement_id, i.split_id, i.amount, i.created_at,
                   h.debtor_id, h.creditor_id, h.amount AS settlement_amount,
                   h.note
            FROM settlement_items i
            JOIN settlements h ON h.id = i.settlement_id
            WHERE i.workspace_id = ?
              AND h.workspace_id = ?
              AND h.from_date = ?
              AND h.to_date = ?
            ORDER BY i.created_at DESC, i.id DESC
            """,
            (workspace_id, workspace_id, from_date.isoformat(), to_date.isoformat()),
        )
        return [
            SettledItem(
                id=row["id"],
                settlement_id=row["settlement_id"],
                split_id=row["split_id"],
                amount=to_number(row["amount"]),
                created_at=datetime.fromisoformat(row["created_at"]),
                debtor_id=row["debtor_id"],
                creditor_id=row["creditor_id"],
                settlement_amount=to_number(row["settlement_amount"]),
                note=row["note"],
            )
            for row in cursor.fetchall()
        ]

    def insert_settlement_items(
        self, workspace_id: str, items: Sequence[SettlementItem]
    ) -> list[int]:
        """Insert settlement items."""
        cursor = self.conn.cursor()
        ids = []
        for item in items:
            cursor.execute(
                """
                INSERT INTO settlement_items (
                    workspace_id, settlement_id, split_id, amount, created_at
                ) VALUES (?, ?, ?, ?, ?)
                """,
                (
                    workspace_id,
                    item.settlement_id,
                    item.split_id,
                    str(round2(item.amount)),
                    item.created_at.isoformat(),
                ),
            )
            if cursor.lastrowid is None:
                raise PersistenceError("Failed to insert settlement item")
            ids.append(cursor.lastrowid)
        return ids

    def get_settlement_item(
        self, workspace_id: str, item_id: int
    ) -> SettlementItem | None:
        """Get a settlement item by id."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            SELECT id, settlement_id, split_id, amount, created_at
            FROM settlement_items
            WHERE workspace_id = ? AND id = ?
            """,
            (workspace_id, item_id),
        )
        row = cursor.fetchone()
        return _item_from_row(row) if row else None

    def delete_settlement_item(self, workspace_id: str, item_id: int) -> bool:
        """Delete one settlement item."""
        cursor = self.conn.cursor()
        cursor.execute(
            "DELETE FROM settlement_items WHERE workspace_id = ? AND id = ?",
            (workspace_id, item_id),
        )
        return cursor.rowcount > 0

    def delete_settlement_items(
        self, workspace_id: str, settlement_ids: Sequence[int]
    ) -> int:
        """Delete every item under the given headers."""
        if not settlement_ids:
            return 0
        placeholders = ",".join("?" for _ in settlement_ids)
        cursor = self.conn.cursor()
        cursor.execute(
            f"""
            DELETE FROM settlement_items
            WHERE workspace_id = ? AND settlement_id IN ({placeholders})
            """,
            (workspace_id, *settlement_ids),
        )
        return cursor.rowcount

    def get_settlement_items(
        self, workspace_id: str, settlement_id: int
    ) -> list[SettlementItem]:
        """Get the items still attached to a header."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            SELECT id, settlement_id, split_id, amount, created_at
            FROM settlement_items
            WHERE workspace_id = ? AND settlement_id = ?
            ORDER BY id
            """,
            (workspace_id, settlement_id),
        )
        return [_item_from_row(row) for row in cursor.fetchall()]

    # ========================================================================
    # Settlement header operations
    # ========================================================================

    def insert_settlement_header(
        self, workspace_id: str, header: SettlementHeader
    ) -> int:
        """Insert a settlement header."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            INSERT INTO settlements (
                workspace_id, debtor_id, creditor_id, amount, from_date,
                to_date, note, settled_date, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                workspace_id,
                header.debtor_id,
                header.creditor_id,
                str(round2(header.amount)),
                header.from_date.isoformat(),
                header.to_date.isoformat(),
                header.note,
                header.settled_date.isoformat(),
                header.created_at.isoformat(),
            ),
        )
        row_id = cursor.lastrowid
        if row_id is None:
            raise PersistenceError("Failed to insert settlement header")
        return row_id

    def get_settlement_header(
        self, workspace_id: str, settlement_id: int
    ) -> SettlementHeader | None:
        """Get a settlement header by id."""
        cursor = self.conn.cursor()
        cursor.execute(
            f"SELECT {_HEADER_COLUMNS} FROM settlements WHERE workspace_id = ? AND id = ?",
            (workspace_id, settlement_id),
        )
        row = cursor.fetchone()
        return _header_from_row(row) if row else None

    def delete_settlement_headers(
        self, workspace_id: str, settlement_ids: Sequence[int]
    ) -> int:
        """Delete headers (their items must already be gone)."""
        if not settlement_ids:
            return 0
        placeholders = ",".join("?" for _ in settlement_ids)
        cursor = self.conn.cursor()
        cursor.execute(
            f"""
            DELETE FROM settlements
            WHERE workspace_id = ? AND id IN ({placeholders})
            """,
            (workspace_id, *settlement_ids),
        )
        return cursor.rowcount

    def update_settlement_header_note(
        self, workspace_id: str, settlement_id: int, note: str
    ) -> bool:
        """Replace a header's note."""
        cursor = self.conn.cursor()
        cursor.execute(
            "UPDATE settlements SET note = ? WHERE workspace_id = ? AND id = ?",
            (note, workspace_id, settlement_id),
        )
        return cursor.rowcount > 0

    def update_settlement_header_amount(
        self, workspace_id: str, settlement_id: int, amount: object
    ) -> bool:
        """Replace a header's amount."""
        cursor = self.conn.cursor()
        cursor.execute(
            "UPDATE settlements SET amount = ? WHERE workspace_id = ? AND id = ?",
            (str(round2(amount)), workspace_id, settlement_id),
        )
        return cursor.rowcount > 0

    def list_settlement_headers(
        self,
        workspace_id: str,
        from_date: date,
        to_date: date,
        note_prefix: str | None = None,
    ) -> list[SettlementHeader]:
        """List headers of the exact period, optionally only notes with a prefix."""
        query = f"""
            SELECT {_HEADER_COLUMNS} FROM settlements
            WHERE workspace_id = ? AND from_date = ? AND to_date = ?
        """
        params: list[object] = [workspace_id, from_date.isoformat(), to_date.isoformat()]
        if note_prefix is not None:
            # substr comparison: LIKE would treat % and _ in the prefix as wildcards
            query += " AND substr(note, 1, ?) = ?"
            params.extend([len(note_prefix), note_prefix])
        query += " ORDER BY id"

        cursor = self.conn.cursor()
        cursor.execute(query, params)
        return [_header_from_row(row) for row in cursor.fetchall()]

    def list_recent_settlement_headers(
        self, workspace_id: str, limit: int = 10
    ) -> list[SettlementHeader]:
        """List the most recently created headers across all periods."""
        cursor = self.conn.cursor()
        cursor.execute(
            f"""
            SELECT {_HEADER_COLUMNS} FROM settlements
            WHERE workspace_id = ?
            ORDER BY created_at DESC, id DESC
            LIMIT ?
            """,
            (workspace_id, limit),
        )
        return [_header_from_row(row) for row in cursor.fetchall()]

    def list_settlement_history(
        self, workspace_id: str, from_date: date, to_date: date, limit: int
    ) -> list[SettlementHeader]:
        """List headers settled inside [from_date, to_date], newest first."""
        cursor = self.conn.cursor()
        cursor.execute(
            f"""
            SELECT {_HEADER_COLUMNS} FROM settlements
            WHERE workspace_id = ? AND settled_date >= ? AND settled_date <= ?
            ORDER BY settled_date DESC, created_at DESC, id DESC
            LIMIT ?
            """,
            (workspace_id, from_date.isoformat(), to_date.isoformat(), limit),
        )
        return [_header_from_row(row) for row in cursor.fetchall()]


# ============================================================================
# Row mappers
# ============================================================================


def _split_from_row(row: sqlite3.Row) -> ExpenseSplit:
    return ExpenseSplit(
        split_id=row["split_id"],
        entry_id=row["entry_id"],
        entry_date=date.fromisoformat(row["entry_date"]),
        entry_type=row["entry_type"],
        creditor_id=row["creditor_id"],
        debtor_id=row["debtor_id"],
        split_amount=to_number(row["amount"]),
    )


def _item_from_row(row: sqlite3.Row) -> SettlementItem:
    return SettlementItem(
        id=row["id"],
        settlement_id=row["settlement_id"],
        split_id=row["split_id"],
        amount=to_number(row["amount"]),
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def _header_from_row(row: sqlite3.Row) -> SettlementHeader:
    return SettlementHeader(
        id=row["id"],
        debtor_id=row["debtor_id"],
        creditor_id=row["creditor_id"],
        amount=to_number(row["amount"]),
        from_date=date.fromisoformat(row["from_date"]),
        to_date=date.fromisoformat(row["to_date"]),
        note=row["note"],
        settled_date=date.fromisoformat(row["settled_date"]),
        created_at=datetime.fromisoformat(row["created_at"]),
    )
