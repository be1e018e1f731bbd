"""Tests for loading split lines net of settlements."""

from datetime import date
from decimal import Decimal

from family_ledger.models import LedgerEntry, Period, SettleSplitRequest
from family_ledger.settle.loader import load_split_lines


class TestLoadSplitLines:
    """Tests for load_split_lines."""

    def test_lines_are_sorted_by_entry_date(self, db, add_expense, january):
        add_expense(date(2024, 1, 20), "A", "40", B="20")
        add_expense(date(2024, 1, 3), "A", "30", B="10")
        add_expense(date(2024, 1, 8), "C", "50", B="25")

        lines = load_split_lines(db, "family", january)

        assert [line.entry_date.day for line in lines] == [3, 8, 20]
        assert lines[1].creditor_id == "C"

    def test_only_entries_inside_the_period(self, db, add_expense, january):
        add_expense(date(2023, 12, 31), "A", "10", B="5")
        add_expense(date(2024, 1, 1), "A", "10", B="6")
        add_expense(date(2024, 1, 31), "A", "10", B="7")
        add_expense(date(2024, 2, 1), "A", "10", B="8")

        lines = load_split_lines(db, "family", january)

        assert [line.split_amount for line in lines] == [
            Decimal("6.00"),
            Decimal("7.00"),
        ]

    def test_remaining_is_net_of_settlements(self, db, service, add_expense, january):
        [split_id] = add_expense(date(2024, 1, 5), "A", "100", B="50")
        service.settle_split(
            SettleSplitRequest(period=january, split_id=split_id, amount="20")
        )

        [line] = load_split_lines(db, "family", january)

        assert line.split_amount == Decimal("50.00")
        assert line.settled_amount == Decimal("20.00")
        assert line.remaining_amount == Decimal("30.00")

    def test_settlements_only_count_for_their_exact_period(
        self, db, service, add_expense, january
    ):
        """An item recorded for January is invisible to a wider query."""
        [split_id] = add_expense(date(2024, 1, 5), "A", "100", B="50")
        service.settle_split(
            SettleSplitRequest(period=january, split_id=split_id, amount="50")
        )
        wider = Period(from_date=date(2024, 1, 1), to_date=date(2024, 2, 1))

        [exact] = load_split_lines(db, "family", january)
        [overlapping] = load_split_lines(db, "family", wider)

        assert exact.remaining_amount == Decimal("0.00")
        assert overlapping.settled_amount == Decimal("0.00")
        assert overlapping.remaining_amount == Decimal("50.00")

    def test_skips_malformed_and_non_expense_splits(self, db, add_expense, january):
        add_expense(date(2024, 1, 5), "A", "100", B="50")

        # Rows written around the validator
        self_debt = db.insert_ledger_entry(
            "family",
            LedgerEntry(
                entry_date=date(2024, 1, 6), type="expense", amount=10, payer_id="A"
            ),
        )
        db.insert_splits("family", self_debt, [("A", "10")])
        no_payer = db.insert_ledger_entry(
            "family",
            LedgerEntry(entry_date=date(2024, 1, 7), type="expense", amount=10),
        )
        db.insert_splits("family", no_payer, [("B", "10")])
        income = db.insert_ledger_entry(
            "family",
            LedgerEntry(
                entry_date=date(2024, 1, 8), type="income", amount=10, payer_id="A"
            ),
        )
        db.insert_splits("family", income, [("B", "10")])
        zero = db.insert_ledger_entry(
            "family",
            LedgerEntry(
                entry_date=date(2024, 1, 9), type="expense", amount=10, payer_id="A"
            ),
        )
        db.insert_splits("family", zero, [("B", "0")])

        lines = load_split_lines(db, "family", january)

        assert [(line.debtor_id, line.creditor_id) for line in lines] == [("B", "A")]

    def test_other_workspaces_are_invisible(self, db, add_expense, january):
        add_expense(date(2024, 1, 5), "A", "100", B="50")

        assert load_split_lines(db, "someone-else", january) == []
