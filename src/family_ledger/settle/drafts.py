"""Draft settle-up workflow: propose, then confirm or discard, per period."""

import logging

from ..exceptions import InvalidRequestError
from ..models import DraftResult, Period
from .service import SettlementService

logger = logging.getLogger(__name__)


class DraftWorkflow:
    """
    Batch settle-up for a period in two steps.

    ``draft`` writes one tagged settlement per debtor/creditor pair still
    owing. Drafts already count as settled, so the summary shows the period
    as cleared while the family looks them over. ``confirm`` makes them
    permanent by removing the tag; ``clear`` throws them away.

    The only state is the note prefix that marks a header as a draft.
    """

    def __init__(self, service: SettlementService, note_prefix: str):
        if not note_prefix:
            raise InvalidRequestError("Draft note prefix must not be empty")
        self.service = service
        self.note_prefix = note_prefix

    def draft(self, period: Period, replace: bool = False) -> DraftResult:
        """Generate drafts for every pair with an outstanding balance."""
        ids = self.service.generate_drafts(period, self.note_prefix, replace=replace)
        return DraftResult(
            action="draft", period=period, count=len(ids), settlement_ids=ids
        )

    def confirm(self, period: Period) -> DraftResult:
        """Turn this period's drafts into regular settlements."""
        ids = self.service.confirm_drafts(period, self.note_prefix)
        return DraftResult(
            action="confirm", period=period, count=len(ids), settlement_ids=ids
        )

    def clear(self, period: Period) -> DraftResult:
        """Delete this period's drafts and their items."""
        ids = self.service.clear_drafts(period, self.note_prefix)
        return DraftResult(
            action="clear", period=period, count=len(ids), settlement_ids=ids
        )

    def run(self, action: str, period: Period, replace: bool = False) -> DraftResult:
        """Dispatch a named action."""
        if action == "draft":
            return self.draft(period, replace=replace)
        if action == "confirm":
            return self.confirm(period)
        if action == "clear":
            return self.clear(period)

        logger.warning(f"Unknown draft action: {action!r}")
        raise InvalidRequestError(
            f"Unknown draft action {action!r} (expected draft, confirm or clear)"
        )
