from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Mapping, Optional, Sequence

from splitpay.logging import get_logger
from splitpay.models import EPSILON, Ledger, Member, Settlement, Transfer
from splitpay.services.balances import calculate_balances, round_cents

log = get_logger(__name__)


@dataclass(slots=True)
class _Outstanding:
    member: Member
    remaining: Decimal


@dataclass(frozen=True, slots=True)
class GroupSummary:
    balances: dict[str, Decimal]
    transfers: list[Transfer]


def minimize_settlements(members: Sequence[Member], balances: Mapping[str, Decimal]) -> List[Transfer]:
    """Greedy plan of transfers that brings every balance to within a cent of zero.

    The largest debtor is matched against the largest creditor until one side
    is exhausted. Members with equal amounts keep roster order, so the plan is
    reproducible for the same input.
    """
    creditors: list[_Outstanding] = []
    debtors: list[_Outstanding] = []

    for member in members:
        balance = balances.get(member.id, Decimal(0))
        if balance > EPSILON:
            creditors.append(_Outstanding(member, balance))
        elif balance < -EPSILON:
            debtors.append(_Outstanding(member, -balance))

    # list.sort is stable, including with reverse=True
    creditors.sort(key=lambda x: x.remaining, reverse=True)
    debtors.sort(key=lambda x: x.remaining, reverse=True)

    transfers: list[Transfer] = []
    i, j = 0, 0

    while i < len(debtors) and j < len(creditors):
        debtor = debtors[i]
        creditor = creditors[j]

        amount = min(debtor.remaining, creditor.remaining)
        if amount > EPSILON:
            transfers.append(
                Transfer(from_member=debtor.member, to_member=creditor.member, amount=round_cents(amount))
            )

        debtor.remaining -= amount
        creditor.remaining -= amount

        if debtor.remaining < EPSILON:
            i += 1
        if creditor.remaining < EPSILON:
            j += 1

    unmatched_debt = sum((d.remaining for d in debtors[i:]), Decimal(0))
    unmatched_credit = sum((c.remaining for c in creditors[j:]), Decimal(0))
    if unmatched_debt >= EPSILON or unmatched_credit >= EPSILON:
        log.warning(
            "settlement.residual",
            unmatched_debt=str(unmatched_debt),
            unmatched_credit=str(unmatched_credit),
            transfers=len(transfers),
        )

    return transfers


def summarize_group(ledger: Ledger) -> GroupSummary:
    balances = calculate_balances(ledger.members, ledger.expenses, ledger.settlements)
    return GroupSummary(balances=balances, transfers=minimize_settlements(ledger.members, balances))


def settlement_from_transfer(
    transfer: Transfer,
    group_id: str,
    settlement_id: Optional[str] = None,
    created_at: Optional[datetime] = None,
) -> Settlement:
    return Settlement(
        id=settlement_id or f"settlement_{uuid.uuid4().hex}",
        group_id=group_id,
        from_id=transfer.from_member.id,
        to_id=transfer.to_member.id,
        amount=transfer.amount,
        created_at=created_at or datetime.now(timezone.utc),
    )
