"""Net balances and settle-up suggestions computed from debt edges."""

from collections.abc import Iterable
from decimal import Decimal

from ..models import DebtEdge, NetBalance, SplitLine, Transfer
from .money import round2, sum_amounts


def calc_net(edges: Iterable[DebtEdge]) -> list[NetBalance]:
    """
    Aggregate debt edges into one signed balance per person.

    Creditors gain the edge amount, debtors lose it, so the balances always
    sum to zero. Edges with a non-positive amount are ignored.

    Args:
        edges: Outstanding debt edges (debtor owes creditor amount)

    Returns:
        Net balances sorted descending (receivables first). People whose
        debts cancel out may appear with a zero balance.
    """
    net: dict[str, Decimal] = {}

    for edge in edges:
        amount = round2(edge.amount)
        if amount <= 0:
            continue

        net[edge.creditor_id] = round2(net.get(edge.creditor_id, Decimal(0)) + amount)
        net[edge.debtor_id] = round2(net.get(edge.debtor_id, Decimal(0)) - amount)

    balances = [
        NetBalance(person_id=person_id, amount=round2(amount))
        for person_id, amount in net.items()
    ]
    balances.sort(key=lambda b: b.amount, reverse=True)
    return balances


def suggest_transfers(balances: Iterable[NetBalance]) -> list[Transfer]:
    """
    Propose payments that bring every balance to zero.

    Greedy matching: the largest debtor pays the largest creditor as much as
    either can absorb, then whichever side reaches zero moves on. This is the
    usual simplified min-cash-flow heuristic: it yields at most
    max(creditors, debtors) transfers and is minimal for a handful of people,
    but is not guaranteed to find the fewest transfers in every case.
    Output is deterministic for a given input order.

    Args:
        balances: Net balances (positive = is owed, negative = owes)

    Returns:
        Transfers from debtor to creditor
    """
    rows = list(balances)
    creditors = [[b.person_id, round2(b.amount)] for b in rows if round2(b.amount) > 0]
    debtors = [[b.person_id, round2(-b.amount)] for b in rows if round2(b.amount) < 0]
    creditors.sort(key=lambda c: c[1], reverse=True)
    debtors.sort(key=lambda d: d[1], reverse=True)

    transfers: list[Transfer] = []
    i = 0
    j = 0

    while i < len(debtors) and j < len(creditors):
        debtor = debtors[i]
        creditor = creditors[j]

        amount = round2(min(debtor[1], creditor[1]))
        if amount > 0:
            transfers.append(
                Transfer(debtor_id=debtor[0], creditor_id=creditor[0], amount=amount)
            )

        debtor[1] = round2(debtor[1] - amount)
        creditor[1] = round2(creditor[1] - amount)

        # Sub-cent leftovers are zero after round2
        if debtor[1] <= 0:
            i += 1
        if creditor[1] <= 0:
            j += 1

    return transfers


def outstanding_edges(lines: Iterable[SplitLine]) -> list[DebtEdge]:
    """Turn split lines into debt edges, keeping only those still owed."""
    return [
        DebtEdge(
            debtor_id=line.debtor_id,
            creditor_id=line.creditor_id,
            amount=round2(line.remaining_amount),
        )
        for line in lines
        if line.remaining_amount > 0
    ]


def group_by_pair(
    lines: Iterable[SplitLine],
) -> dict[tuple[str, str], list[SplitLine]]:
    """Group split lines by (debtor_id, creditor_id), keeping first-seen order."""
    groups: dict[tuple[str, str], list[SplitLine]] = {}
    for line in lines:
        groups.setdefault((line.debtor_id, line.creditor_id), []).append(line)
    return groups


def group_total(lines: Iterable[SplitLine]) -> Decimal:
    """Total remaining amount of a group of split lines."""
    return sum_amounts(line.remaining_amount for line in lines)


def allocate_oldest_first(
    amount: Decimal, lines: Iterable[SplitLine]
) -> list[tuple[SplitLine, Decimal]]:
    """
    Spread a payment over split lines in the order given (oldest first).

    Each line takes as much of the remaining payment as it still has
    outstanding. Lines with nothing outstanding are skipped.

    Args:
        amount: Payment to allocate
        lines: Candidate split lines, already sorted by entry date

    Returns:
        (line, allocated amount) pairs; the amounts sum to ``amount`` when the
        lines have enough outstanding, otherwise to their total
    """
    allocations: list[tuple[SplitLine, Decimal]] = []
    left = round2(amount)

    for line in lines:
        if left <= 0:
            break
        take = round2(min(left, line.remaining_amount))
        if take <= 0:
            continue
        allocations.append((line, take))
        left = round2(left - take)

    return allocations
