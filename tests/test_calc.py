"""Tests for net balances, transfer suggestions and payment allocation."""

from datetime import date
from decimal import Decimal

from family_ledger.models import DebtEdge, NetBalance, SplitLine
from family_ledger.settle.calc import (
    allocate_oldest_first,
    calc_net,
    group_by_pair,
    group_total,
    outstanding_edges,
    suggest_transfers,
)


def edge(debtor: str, creditor: str, amount: str) -> DebtEdge:
    return DebtEdge(debtor_id=debtor, creditor_id=creditor, amount=Decimal(amount))


def balance(person: str, amount: str) -> NetBalance:
    return NetBalance(person_id=person, amount=Decimal(amount))


def line(
    split_id: int,
    debtor: str,
    creditor: str,
    remaining: str,
    day: int = 1,
) -> SplitLine:
    return SplitLine(
        split_id=split_id,
        entry_id=split_id,
        entry_date=date(2024, 1, day),
        creditor_id=creditor,
        debtor_id=debtor,
        split_amount=Decimal(remaining),
        settled_amount=Decimal("0.00"),
        remaining_amount=Decimal(remaining),
    )


class TestCalcNet:
    """Tests for calc_net."""

    def test_creditors_gain_debtors_lose(self):
        net = calc_net([edge("B", "A", "30"), edge("C", "A", "20")])

        assert [(b.person_id, b.amount) for b in net] == [
            ("A", Decimal("50.00")),
            ("C", Decimal("-20.00")),
            ("B", Decimal("-30.00")),
        ]

    def test_balances_sum_to_zero(self):
        net = calc_net(
            [
                edge("B", "A", "33.33"),
                edge("C", "A", "33.33"),
                edge("A", "B", "12.01"),
                edge("C", "B", "0.07"),
                edge("A", "C", "5.55"),
            ]
        )

        assert sum(b.amount for b in net) == 0

    def test_skips_non_positive_edges(self):
        net = calc_net(
            [edge("B", "A", "0"), edge("C", "A", "-5"), edge("B", "A", "0.004")]
        )

        assert net == []

    def test_debts_that_cancel_leave_zero_balances(self):
        net = calc_net([edge("B", "A", "10"), edge("A", "B", "10")])

        assert {b.person_id: b.amount for b in net} == {
            "A": Decimal("0.00"),
            "B": Decimal("0.00"),
        }


class TestSuggestTransfers:
    """Tests for suggest_transfers."""

    def test_single_creditor(self):
        transfers = suggest_transfers(
            [balance("A", "50"), balance("C", "-20"), balance("B", "-30")]
        )

        assert [(t.debtor_id, t.creditor_id, t.amount) for t in transfers] == [
            ("B", "A", Decimal("30.00")),
            ("C", "A", Decimal("20.00")),
        ]

    def test_largest_debtor_pays_largest_creditor_first(self):
        transfers = suggest_transfers(
            [
                balance("A", "40"),
                balance("D", "10"),
                balance("B", "-25"),
                balance("C", "-25"),
            ]
        )

        assert [(t.debtor_id, t.creditor_id, t.amount) for t in transfers] == [
            ("B", "A", Decimal("25.00")),
            ("C", "A", Decimal("15.00")),
            ("C", "D", Decimal("10.00")),
        ]

    def test_transfers_clear_every_balance(self):
        balances = calc_net(
            [
                edge("B", "A", "47.10"),
                edge("C", "A", "12.35"),
                edge("D", "B", "8.80"),
                edge("A", "D", "3.33"),
                edge("C", "D", "19.99"),
            ]
        )

        left = {b.person_id: b.amount for b in balances}
        for transfer in suggest_transfers(balances):
            left[transfer.debtor_id] += transfer.amount
            left[transfer.creditor_id] -= transfer.amount

        assert all(amount == 0 for amount in left.values())

    def test_nothing_to_do(self):
        assert suggest_transfers([]) == []
        assert suggest_transfers([balance("A", "0"), balance("B", "0")]) == []


class TestAllocation:
    """Tests for splitting a payment across split lines."""

    def test_oldest_lines_are_paid_first(self):
        lines = [line(1, "B", "A", "10", day=3), line(2, "B", "A", "25", day=8)]

        allocations = allocate_oldest_first(Decimal("30"), lines)

        assert [(chosen.split_id, amount) for chosen, amount in allocations] == [
            (1, Decimal("10.00")),
            (2, Decimal("20.00")),
        ]

    def test_skips_settled_lines(self):
        lines = [line(1, "B", "A", "0"), line(2, "B", "A", "5")]

        allocations = allocate_oldest_first(Decimal("5"), lines)

        assert [(chosen.split_id, amount) for chosen, amount in allocations] == [
            (2, Decimal("5.00"))
        ]

    def test_stops_when_lines_run_out(self):
        allocations = allocate_oldest_first(Decimal("50"), [line(1, "B", "A", "10")])

        assert sum(amount for _, amount in allocations) == Decimal("10.00")


class TestGrouping:
    """Tests for edge and pair helpers."""

    def test_outstanding_edges_drop_settled_lines(self):
        edges = outstanding_edges([line(1, "B", "A", "0"), line(2, "C", "A", "7.5")])

        assert edges == [edge("C", "A", "7.50")]

    def test_group_by_pair_keeps_first_seen_order(self):
        groups = group_by_pair(
            [
                line(1, "B", "A", "10"),
                line(2, "C", "A", "5"),
                line(3, "B", "A", "2.5"),
            ]
        )

        assert list(groups) == [("B", "A"), ("C", "A")]
        assert [grouped.split_id for grouped in groups[("B", "A")]] == [1, 3]
        assert group_total(groups[("B", "A")]) == Decimal("12.50")
