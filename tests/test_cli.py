"""Tests for the family-ledger command line."""

from datetime import date
from decimal import Decimal

import pytest
from typer.testing import CliRunner

from family_ledger.cli import app, parse_split
from family_ledger.settle.cli import format_money, resolve_period

runner = CliRunner()


@pytest.fixture
def env(tmp_path):
    """Environment pointing the CLI at a temporary database."""
    return {"DATABASE_PATH": str(tmp_path / "cli.db"), "WORKSPACE_ID": "family"}


def invoke(env, *args):
    return runner.invoke(app, list(args), env=env)


class TestHelpers:
    """Tests for option parsing and formatting helpers."""

    def test_resolve_period_from_month(self):
        period = resolve_period(month="2024-02")

        assert (period.from_date, period.to_date) == (
            date(2024, 2, 1),
            date(2024, 2, 29),
        )

    def test_explicit_dates_win(self):
        period = resolve_period(month="2024-02", from_date="2024-02-10")

        assert (period.from_date, period.to_date) == (
            date(2024, 2, 10),
            date(2024, 2, 29),
        )

    def test_default_is_current_month(self):
        period = resolve_period()

        assert period.contains(date.today())
        assert period.from_date.day == 1

    def test_parse_split(self):
        share = parse_split("Grandma:12.50")

        assert share.debtor_id == "Grandma"
        assert share.amount == "12.50"

    def test_format_money(self):
        assert format_money(Decimal("-85.02"), use_color=False) == "($85.02)"
        assert format_money(Decimal("1234.5"), use_color=False) == " $1,234.50 "


class TestCommands:
    """End-to-end runs against a temporary database."""

    def test_expense_summary_and_pay(self, env):
        result = invoke(
            env, "add-expense", "2024-01-05", "100", "--payer", "A", "--split", "B:50"
        )
        assert result.exit_code == 0, result.output
        assert "Recorded expense 1" in result.output

        result = invoke(env, "settle", "summary", "--month", "2024-01")
        assert result.exit_code == 0, result.output
        assert "B pays A" in result.output

        result = invoke(env, "settle", "pay", "B", "A", "20", "--month", "2024-01")
        assert result.exit_code == 0, result.output
        assert "Settlement 1 recorded" in result.output

        result = invoke(env, "settle", "pay", "B", "A", "100", "--month", "2024-01")
        assert result.exit_code == 1
        assert "exceeds" in result.output

    def test_pay_split_and_undo(self, env):
        invoke(
            env,
            "add-expense",
            "2024-01-05",
            "60",
            "-p",
            "A",
            "-s",
            "B:30",
            "-s",
            "C:30",
        )

        result = invoke(env, "settle", "pay-split", "2", "30", "--month", "2024-01")
        assert result.exit_code == 0, result.output

        result = invoke(env, "settle", "undo", "1")
        assert result.exit_code == 0, result.output
        assert "Removed settlement 1" in result.output

        result = invoke(env, "settle", "undo", "1")
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_draft_confirm_history(self, env):
        invoke(env, "add-expense", "2024-01-05", "100", "-p", "A", "-s", "B:50")

        result = invoke(env, "settle", "draft", "--month", "2024-01")
        assert result.exit_code == 0, result.output
        assert "Drafted 1 settlements" in result.output

        result = invoke(env, "settle", "confirm", "--month", "2024-01")
        assert result.exit_code == 0, result.output
        assert "Confirmed 1 settlements" in result.output

        result = invoke(env, "settle", "history")
        assert result.exit_code == 0, result.output
        assert "Settlement History" in result.output

    def test_invalid_split_is_rejected(self, env):
        result = invoke(
            env, "add-expense", "2024-01-05", "100", "-p", "A", "-s", "A:50"
        )

        assert result.exit_code == 1
        assert "cannot owe" in result.output

    def test_invalid_month(self, env):
        result = invoke(env, "settle", "summary", "--month", "2024-13")

        assert result.exit_code == 1
        assert "Invalid month" in result.output

    def test_delete_expense(self, env):
        invoke(env, "add-expense", "2024-01-05", "100", "-p", "A", "-s", "B:50")

        assert invoke(env, "delete-expense", "1").exit_code == 0
        assert invoke(env, "delete-expense", "1").exit_code == 1
