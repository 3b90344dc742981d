from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Iterable, Mapping, Sequence

from splitpay.logging import get_logger
from splitpay.models import CENT, EPSILON, Expense, Member, Settlement

log = get_logger(__name__)


class BalanceStatus(str, Enum):
    OWED = "owed"
    OWES = "owes"
    SETTLED = "settled"


def round_cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def balance_status(balance: Decimal) -> BalanceStatus:
    if balance > EPSILON:
        return BalanceStatus.OWED
    if balance < -EPSILON:
        return BalanceStatus.OWES
    return BalanceStatus.SETTLED


def balance_drift(balances: Mapping[str, Decimal]) -> Decimal:
    return sum(balances.values(), Decimal(0))


def _apply_expense(balances: dict[str, Decimal], expense: Expense) -> None:
    if expense.amount <= 0 or not expense.participant_ids:
        log.warning(
            "ledger.expense.invalid",
            expense_id=expense.id,
            amount=str(expense.amount),
            participants=len(expense.participant_ids),
        )
        return

    referenced = (expense.payer_id, *expense.participant_ids)
    unknown = [member_id for member_id in dict.fromkeys(referenced) if member_id not in balances]
    if unknown:
        # Members leave groups; their old entries are expected to linger.
        log.debug("ledger.expense.unknown_member", expense_id=expense.id, unknown=unknown)
        return

    share = expense.amount / Decimal(len(expense.participant_ids))
    balances[expense.payer_id] += expense.amount
    for participant_id in expense.participant_ids:
        balances[participant_id] -= share


def _apply_settlement(balances: dict[str, Decimal], settlement: Settlement) -> None:
    if settlement.amount <= 0:
        log.warning(
            "ledger.settlement.invalid",
            settlement_id=settlement.id,
            amount=str(settlement.amount),
        )
        return

    if settlement.from_id not in balances or settlement.to_id not in balances:
        log.debug(
            "ledger.settlement.unknown_member",
            settlement_id=settlement.id,
            from_id=settlement.from_id,
            to_id=settlement.to_id,
        )
        return

    balances[settlement.from_id] += settlement.amount
    balances[settlement.to_id] -= settlement.amount


def calculate_balances(
    members: Sequence[Member],
    expenses: Iterable[Expense],
    settlements: Iterable[Settlement],
) -> dict[str, Decimal]:
    """Reduce the expense and settlement history to a net balance per member.

    Positive balances are owed money, negative ones owe it. The payer of an
    expense is credited the full amount and, when listed as a participant,
    also debited their own share. Entries that are malformed or reference
    members missing from the roster are skipped instead of failing the whole
    computation.
    """
    balances: dict[str, Decimal] = {member.id: Decimal(0) for member in members}

    for expense in expenses:
        _apply_expense(balances, expense)

    for settlement in settlements:
        _apply_settlement(balances, settlement)

    drift = balance_drift(balances)
    if abs(drift) > EPSILON:
        log.warning("balances.invariant_violation", drift=str(drift), members=len(balances))

    return balances
