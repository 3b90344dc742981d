from __future__ import annotations

from decimal import Decimal
from typing import AbstractSet

from splitpay.models import CENT, Expense, Settlement


class LedgerValidationError(ValueError):
    pass


def _check_amount(amount: Decimal, what: str) -> None:
    if amount <= 0:
        raise LedgerValidationError(f"{what} amount must be positive")
    if amount != amount.quantize(CENT):
        raise LedgerValidationError(f"{what} amount has more than two decimals")


def validate_expense(expense: Expense, member_ids: AbstractSet[str]) -> None:
    _check_amount(expense.amount, "Expense")
    if not expense.participant_ids:
        raise LedgerValidationError("Expense needs at least one participant")
    if len(set(expense.participant_ids)) != len(expense.participant_ids):
        raise LedgerValidationError("Expense participants must be unique")

    unknown = sorted({expense.payer_id, *expense.participant_ids} - set(member_ids))
    if unknown:
        raise LedgerValidationError(f"Unknown members: {', '.join(unknown)}")


def validate_settlement(settlement: Settlement, member_ids: AbstractSet[str]) -> None:
    _check_amount(settlement.amount, "Settlement")
    if settlement.from_id == settlement.to_id:
        raise LedgerValidationError("Settlement must be between two different members")

    unknown = sorted({settlement.from_id, settlement.to_id} - set(member_ids))
    if unknown:
        raise LedgerValidationError(f"Unknown members: {', '.join(unknown)}")
