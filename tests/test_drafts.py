"""Tests for the draft settle-up workflow."""

from datetime import date
from decimal import Decimal

import pytest

from family_ledger.exceptions import InvalidRequestError
from family_ledger.models import Period, SettlePairRequest
from family_ledger.settle.drafts import DraftWorkflow

DRAFT_PREFIX = "[DRAFT] "


@pytest.fixture
def family_month(add_expense):
    """B and C owe A; A owes B."""
    add_expense(date(2024, 1, 5), "A", "100", B="50", C="30")
    add_expense(date(2024, 1, 12), "A", "40", B="15")
    add_expense(date(2024, 1, 10), "B", "40", A="20")


class TestDraft:
    """Tests for generating drafts."""

    def test_one_draft_per_pair(self, workflow, service, family_month, january):
        result = workflow.draft(january)

        assert result.action == "draft"
        assert result.count == 3

        drafts = service.list_drafts(january, DRAFT_PREFIX)
        assert [(h.debtor_id, h.creditor_id, h.amount) for h in drafts] == [
            ("B", "A", Decimal("65.00")),
            ("C", "A", Decimal("30.00")),
            ("A", "B", Decimal("20.00")),
        ]
        assert drafts[0].note == "[DRAFT] 2024-01 suggested settlement (2 splits)"
        assert all(h.is_draft(DRAFT_PREFIX) for h in drafts)

    def test_drafts_count_as_settled(self, workflow, service, family_month, january):
        workflow.draft(january)

        summary = service.get_summary(january)

        assert all(line.remaining_amount == 0 for line in summary.splits)
        assert summary.suggestions == []

    def test_drafting_twice_adds_nothing(self, workflow, family_month, january):
        workflow.draft(january)

        assert workflow.draft(january).count == 0

    def test_replace_rebuilds_drafts(self, workflow, service, family_month, january):
        first = workflow.draft(january)

        second = workflow.draft(january, replace=True)

        assert second.count == 3
        assert not set(first.settlement_ids) & set(second.settlement_ids)
        assert len(service.list_drafts(january, DRAFT_PREFIX)) == 3

    def test_only_outstanding_amounts_are_drafted(
        self, workflow, service, db, family_month, january
    ):
        service.settle_pair(
            SettlePairRequest(
                period=january, debtor_id="B", creditor_id="A", amount="60"
            )
        )

        workflow.draft(january)

        drafts = {
            (h.debtor_id, h.creditor_id): h.amount
            for h in service.list_drafts(january, DRAFT_PREFIX)
        }
        assert drafts[("B", "A")] == Decimal("5.00")
        [b_to_a] = [
            h for h in service.list_drafts(january, DRAFT_PREFIX) if h.debtor_id == "B"
        ]
        assert len(db.get_settlement_items("family", b_to_a.id)) == 1


class TestConfirmAndClear:
    """Tests for confirming and clearing drafts."""

    def test_confirm_strips_the_marker(
        self, workflow, service, db, family_month, january
    ):
        drafted = workflow.draft(january)

        result = workflow.confirm(january)

        assert sorted(result.settlement_ids) == sorted(drafted.settlement_ids)
        assert service.list_drafts(january, DRAFT_PREFIX) == []
        header = db.get_settlement_header("family", drafted.settlement_ids[0])
        assert header.note == "2024-01 suggested settlement (2 splits)"
        lines = service.load_split_lines(january)
        assert all(line.remaining_amount == 0 for line in lines)

    def test_clear_restores_balances(
        self, workflow, service, db, family_month, january
    ):
        before = service.get_summary(january)
        workflow.draft(january)

        result = workflow.clear(january)

        assert result.count == 3
        assert (
            db.list_settlement_headers("family", january.from_date, january.to_date)
            == []
        )
        after = service.get_summary(january)
        assert after.net == before.net
        assert after.splits == before.splits

    def test_clear_leaves_regular_settlements(
        self, workflow, service, db, family_month, january
    ):
        kept = service.settle_pair(
            SettlePairRequest(
                period=january, debtor_id="C", creditor_id="A", amount="30"
            )
        )
        workflow.draft(january)

        workflow.clear(january)

        headers = db.list_settlement_headers(
            "family", january.from_date, january.to_date
        )
        assert [h.id for h in headers] == [kept.settlement_id]

    def test_other_periods_are_untouched(
        self, workflow, service, family_month, january
    ):
        workflow.draft(january)
        wider = Period(from_date=date(2024, 1, 1), to_date=date(2024, 2, 29))

        assert workflow.confirm(wider).count == 0
        assert workflow.clear(wider).count == 0
        assert len(service.list_drafts(january, DRAFT_PREFIX)) == 3

    def test_prefix_is_matched_literally(self, service, family_month, january):
        """Percent and underscore in the marker are not wildcards."""
        underscored = DraftWorkflow(service, "_%DRAFT ")
        underscored.draft(january)

        assert DraftWorkflow(service, "x%DRAFT ").confirm(january).count == 0
        assert underscored.confirm(january).count == 3


class TestRun:
    """Tests for dispatching by action name."""

    def test_run_dispatches(self, workflow, family_month, january):
        assert workflow.run("draft", january).action == "draft"
        assert workflow.run("confirm", january).count == 3
        assert workflow.run("clear", january).count == 0

    def test_unknown_action(self, workflow, january):
        with pytest.raises(InvalidRequestError, match="Unknown draft action"):
            workflow.run("publish", january)

    def test_empty_prefix_rejected(self, service):
        with pytest.raises(InvalidRequestError):
            DraftWorkflow(service, "")
