"""Shared group expenses: member balances and settlement plans."""

from splitpay.models import EPSILON, Expense, Ledger, Member, Settlement, Transfer
from splitpay.services.balances import calculate_balances
from splitpay.services.settlement import minimize_settlements, summarize_group

__all__ = [
    "EPSILON",
    "Expense",
    "Ledger",
    "Member",
    "Settlement",
    "Transfer",
    "calculate_balances",
    "minimize_settlements",
    "summarize_group",
]
