"""Family Ledger - shared family expenses and who owes whom."""

__version__ = "0.1.0"

from .config import Settings, load_settings
from .db import Database
from .ledger import ExpenseLedger
from .models import (
    ExpenseRequest,
    Period,
    SettlePairRequest,
    SettleSplitRequest,
    SplitLine,
    SplitShare,
)
from .settle.calc import calc_net, suggest_transfers
from .settle.drafts import DraftWorkflow
from .settle.money import round2, to_number
from .settle.service import SettlementService
from .settle.validation import validate_split

__all__ = [
    "Settings",
    "load_settings",
    "Database",
    "ExpenseLedger",
    "ExpenseRequest",
    "Period",
    "SettlePairRequest",
    "SettleSplitRequest",
    "SplitLine",
    "SplitShare",
    "calc_net",
    "suggest_transfers",
    "DraftWorkflow",
    "round2",
    "to_number",
    "SettlementService",
    "validate_split",
]
