"""Validation of proposed expense splits before they are persisted."""

from collections.abc import Sequence
from decimal import Decimal

from ..models import SplitShare, SplitValidation
from .money import round2, to_number


def _fail(reason: str) -> SplitValidation:
    return SplitValidation(ok=False, reason=reason)


def validate_split(
    entry_type: str,
    total_amount: Decimal | float | int | str,
    payer_id: str | None,
    split_lines: Sequence[SplitShare],
) -> SplitValidation:
    """
    Check a proposed split of an expense against the business rules.

    Rules:
    1. No split lines at all is fine (an unsplit entry)
    2. Only expenses can be split
    3. The expense needs a payer
    4. Every line needs a debtor, and nobody can owe themselves
    5. Every share must be a positive amount
    6. Shares cannot add up to more than the expense

    Args:
        entry_type: "expense" or "income"
        total_amount: Amount of the whole entry
        payer_id: Who paid the entry (the creditor of every share)
        split_lines: Proposed shares

    Returns:
        SplitValidation with ok=False and a reason on the first broken rule
    """
    if not split_lines:
        return SplitValidation(ok=True)

    if entry_type != "expense":
        return _fail("Only expenses can be split")
    if not payer_id:
        return _fail("A split expense needs a payer")

    total_shares = Decimal(0)
    for line in split_lines:
        if not line.debtor_id:
            return _fail("Every split line needs a debtor")
        if line.debtor_id == payer_id:
            return _fail(f"{payer_id} paid this expense and cannot owe a share of it")

        amount = round2(line.amount)
        if amount <= 0:
            return _fail(f"Share of {line.debtor_id} must be greater than 0")
        total_shares += amount

    if round2(total_shares) > round2(to_number(total_amount)):
        return _fail(
            f"Shares add up to {round2(total_shares)}, "
            f"more than the expense amount {round2(total_amount)}"
        )

    return SplitValidation(ok=True)
