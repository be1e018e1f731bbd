"""Pydantic domain models for Family Ledger."""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Literal

from pydantic import AfterValidator, BaseModel, Field, model_validator

from .settle.money import round2

EntryType = Literal["expense", "income"]


def _positive_cents(value: Decimal) -> Decimal:
    """Round an already-positive amount to cents and make sure it stays positive."""
    rounded = round2(value)
    if rounded <= 0:
        raise ValueError("amount must be at least 0.01")
    return rounded


# Parsed as a Decimal, positive, then rounded to cents
PositiveAmount = Annotated[Decimal, Field(gt=0), AfterValidator(_positive_cents)]


# ============================================================================
# Periods
# ============================================================================


class Period(BaseModel):
    """An inclusive date range that settlements are recorded against."""

    from_date: date
    to_date: date

    @model_validator(mode="after")
    def _ordered(self) -> "Period":
        if self.from_date > self.to_date:
            raise ValueError(
                f"from_date {self.from_date} is after to_date {self.to_date}"
            )
        return self

    def contains(self, day: date) -> bool:
        """Whether ``day`` falls inside the period (both ends inclusive)."""
        return self.from_date <= day <= self.to_date

    @property
    def label(self) -> str:
        """Month of the period start, e.g. ``2024-01``."""
        return self.from_date.strftime("%Y-%m")

    def __str__(self) -> str:
        return f"{self.from_date.isoformat()}..{self.to_date.isoformat()}"


# ============================================================================
# Ledger Models
# ============================================================================


class SplitShare(BaseModel):
    """A proposed share of an expense, as typed in by the user.

    Deliberately loose: ``validate_split`` is what decides whether a share is
    acceptable, and reports why when it is not.
    """

    debtor_id: str | None = None
    amount: Decimal | float | int | str | None = None


class ExpenseSplit(BaseModel):
    """One person's share of one expense entry (a debt edge source).

    Rows are loaded as stored; the loader filters out inconsistent ones.
    """

    split_id: int
    entry_id: int
    entry_date: date
    entry_type: str
    creditor_id: str | None = None  # payer of the parent entry
    debtor_id: str | None = None  # person owing this share
    split_amount: Decimal


class LedgerEntry(BaseModel):
    """An expense or income entry in the family ledger."""

    id: int | None = None
    entry_date: date
    type: EntryType
    amount: Decimal
    payer_id: str | None = None
    merchant: str | None = None
    note: str | None = None
    created_at: datetime = Field(default_factory=datetime.now)
    deleted_at: datetime | None = None
    splits: list[ExpenseSplit] = Field(default_factory=list)


class ExpenseRequest(BaseModel):
    """Input for recording (or replacing) a ledger entry with its splits."""

    entry_date: date
    type: EntryType = "expense"
    amount: PositiveAmount
    payer_id: str | None = None
    merchant: str | None = None
    note: str | None = None
    splits: list[SplitShare] = Field(default_factory=list)


# ============================================================================
# Settlement Models
# ============================================================================


class SplitLine(BaseModel):
    """A debt edge for a period, net of what was already settled in it."""

    split_id: int
    entry_id: int
    entry_date: date
    creditor_id: str
    debtor_id: str
    split_amount: Decimal
    settled_amount: Decimal
    remaining_amount: Decimal


class DebtEdge(BaseModel):
    """Debtor owes creditor ``amount``."""

    debtor_id: str
    creditor_id: str
    amount: Decimal


class NetBalance(BaseModel):
    """Net position of one person: positive = is owed, negative = owes."""

    person_id: str
    amount: Decimal


class Transfer(BaseModel):
    """A suggested payment from debtor to creditor."""

    debtor_id: str
    creditor_id: str
    amount: Decimal


class SettlementHeader(BaseModel):
    """One settlement between two people for one period."""

    id: int | None = None
    debtor_id: str
    creditor_id: str
    amount: Decimal
    from_date: date
    to_date: date
    note: str = ""
    settled_date: date = Field(default_factory=date.today)
    created_at: datetime = Field(default_factory=datetime.now)

    def is_draft(self, note_prefix: str) -> bool:
        """Whether the note carries the draft marker."""
        return self.note.startswith(note_prefix)


class SettlementItem(BaseModel):
    """Allocation of part of a settlement header against one split."""

    id: int | None = None
    settlement_id: int
    split_id: int
    amount: Decimal
    created_at: datetime = Field(default_factory=datetime.now)


class SettledItem(BaseModel):
    """A settlement item joined with its header, for display."""

    id: int
    settlement_id: int
    split_id: int
    amount: Decimal
    created_at: datetime
    debtor_id: str
    creditor_id: str
    settlement_amount: Decimal
    note: str


class SettlementSummary(BaseModel):
    """Everything needed to render the settlement screen for a period."""

    period: Period
    net: list[NetBalance]
    suggestions: list[Transfer]
    splits: list[SplitLine]
    settled_items: list[SettledItem]
    recent_settlements: list[SettlementHeader]


class SettlementResult(BaseModel):
    """Outcome of a settle operation."""

    settlement_id: int
    amount: Decimal
    item_count: int


class UndoResult(BaseModel):
    """Outcome of an undo operation."""

    settlement_id: int
    items_deleted: int
    header_deleted: bool


class DraftResult(BaseModel):
    """Outcome of a draft workflow action."""

    action: Literal["draft", "confirm", "clear"]
    period: Period
    count: int
    settlement_ids: list[int] = Field(default_factory=list)


# ============================================================================
# Request Models
# ============================================================================


class SettleSplitRequest(BaseModel):
    """Settle part or all of one split."""

    period: Period
    split_id: int
    amount: PositiveAmount
    note: str | None = None


class SettlePairRequest(BaseModel):
    """Settle an amount between a debtor and a creditor, oldest debt first."""

    period: Period
    debtor_id: str = Field(min_length=1)
    creditor_id: str = Field(min_length=1)
    amount: PositiveAmount
    note: str | None = None

    @model_validator(mode="after")
    def _distinct_people(self) -> "SettlePairRequest":
        if self.debtor_id == self.creditor_id:
            raise ValueError("debtor_id and creditor_id must differ")
        return self


# ============================================================================
# Validation Models
# ============================================================================


class SplitValidation(BaseModel):
    """Result of validating a proposed expense split."""

    ok: bool
    reason: str | None = None
