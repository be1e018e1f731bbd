"""Shared fixtures: a throwaway SQLite database and services over it."""

from datetime import date
from decimal import Decimal

import pytest

from family_ledger.config import Settings
from family_ledger.db import Database
from family_ledger.ledger import ExpenseLedger
from family_ledger.models import ExpenseRequest, Period, SplitShare
from family_ledger.settle.drafts import DraftWorkflow
from family_ledger.settle.service import SettlementService

DRAFT_PREFIX = "[DRAFT] "


@pytest.fixture
def settings(tmp_path):
    """Settings pointing at a temporary database."""
    return Settings(database_path=tmp_path / "test.db", workspace_id="family")


@pytest.fixture
def db(settings):
    """Create a temporary database."""
    db = Database(settings.database_path)
    yield db
    db.close()


@pytest.fixture
def service(settings, db):
    """Create a SettlementService instance."""
    return SettlementService(settings, db)


@pytest.fixture
def ledger(settings, db):
    """Create an ExpenseLedger instance."""
    return ExpenseLedger(settings, db)


@pytest.fixture
def workflow(service):
    """Create a DraftWorkflow with the default draft marker."""
    return DraftWorkflow(service, DRAFT_PREFIX)


@pytest.fixture
def january():
    """The period most tests settle against."""
    return Period(from_date=date(2024, 1, 1), to_date=date(2024, 1, 31))


@pytest.fixture
def add_expense(ledger):
    """
    Record an expense and return the ids of its splits.

    Usage: ``add_expense(date(2024, 1, 5), "A", "100", B="50", C="30")``
    """

    def _add(day: date, payer: str, amount: str, **shares: str) -> list[int]:
        entry = ledger.record_expense(
            ExpenseRequest(
                entry_date=day,
                amount=Decimal(amount),
                payer_id=payer,
                merchant="Test merchant",
                splits=[
                    SplitShare(debtor_id=debtor, amount=share)
                    for debtor, share in shares.items()
                ],
            )
        )
        return [split.split_id for split in entry.splits]

    return _add
