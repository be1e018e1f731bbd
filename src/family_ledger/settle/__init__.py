"""Debt settlement: split lines, net balances, transfers and settlement records."""
