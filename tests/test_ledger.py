"""Tests for recording, replacing and deleting expenses."""

from datetime import date
from decimal import Decimal

import pytest
from pydantic import ValidationError

from family_ledger.exceptions import InvalidRequestError, NotFoundError
from family_ledger.models import ExpenseRequest, SplitShare


def groceries(**shares: str) -> ExpenseRequest:
    return ExpenseRequest(
        entry_date=date(2024, 1, 5),
        amount="100",
        payer_id="A",
        merchant="Grocer",
        splits=[SplitShare(debtor_id=d, amount=a) for d, a in shares.items()],
    )


class TestRecordExpense:
    """Tests for record_expense."""

    def test_records_entry_and_splits(self, ledger):
        entry = ledger.record_expense(groceries(B="50", C="30"))

        assert entry.id is not None
        assert entry.amount == Decimal("100.00")
        assert [(s.debtor_id, s.creditor_id, s.split_amount) for s in entry.splits] == [
            ("B", "A", Decimal("50.00")),
            ("C", "A", Decimal("30.00")),
        ]

    def test_unsplit_income(self, ledger):
        entry = ledger.record_expense(
            ExpenseRequest(entry_date=date(2024, 1, 2), type="income", amount="2500")
        )

        assert entry.type == "income"
        assert entry.splits == []

    def test_rejected_split_writes_nothing(self, ledger, service, january):
        with pytest.raises(InvalidRequestError, match="cannot owe"):
            ledger.record_expense(groceries(A="50"))

        assert service.load_split_lines(january) == []

    def test_amount_must_be_positive(self):
        with pytest.raises(ValidationError):
            ExpenseRequest(entry_date=date(2024, 1, 5), amount="0")

        with pytest.raises(ValidationError):
            ExpenseRequest(entry_date=date(2024, 1, 5), amount="0.004")


class TestReplaceExpense:
    """Tests for replace_expense."""

    def test_replaces_all_splits(self, ledger):
        entry = ledger.record_expense(groceries(B="50", C="30"))
        old_ids = {s.split_id for s in entry.splits}

        updated = ledger.replace_expense(entry.id, groceries(D="25"))

        assert [(s.debtor_id, s.split_amount) for s in updated.splits] == [
            ("D", Decimal("25.00"))
        ]
        assert not old_ids & {s.split_id for s in updated.splits}

    def test_unknown_entry(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.replace_expense(999, groceries(B="10"))

    def test_invalid_split_keeps_old_version(self, ledger):
        entry = ledger.record_expense(groceries(B="50"))

        with pytest.raises(InvalidRequestError):
            ledger.replace_expense(entry.id, groceries(B="80", C="80"))

        assert [s.debtor_id for s in ledger.get_expense(entry.id).splits] == ["B"]


class TestDeleteExpense:
    """Tests for delete_expense."""

    def test_soft_deleted_entry_disappears(self, ledger, service, january):
        entry = ledger.record_expense(groceries(B="50"))

        ledger.delete_expense(entry.id)

        with pytest.raises(NotFoundError):
            ledger.get_expense(entry.id)
        assert service.load_split_lines(january) == []

    def test_delete_twice(self, ledger):
        entry = ledger.record_expense(groceries(B="50"))
        ledger.delete_expense(entry.id)

        with pytest.raises(NotFoundError):
            ledger.delete_expense(entry.id)

    def test_row_is_kept_with_deleted_at(self, ledger, db):
        entry = ledger.record_expense(groceries(B="50"))
        ledger.delete_expense(entry.id)

        row = db.conn.execute(
            "SELECT deleted_at FROM ledger_entries WHERE id = ?", (entry.id,)
        ).fetchone()
        assert row["deleted_at"] is not None
