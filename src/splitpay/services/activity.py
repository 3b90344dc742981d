from __future__ import annotations

from typing import Iterable, Optional

from splitpay.models import ActivityEntry, ActivityKind, Ledger, Member

SETTLEMENT_DESCRIPTION = "Settled debt"
UNKNOWN_MEMBER = "Unknown"


def build_activity(ledger: Ledger, limit: Optional[int] = None) -> list[ActivityEntry]:
    """Recent transactions feed, newest first."""
    entries: list[ActivityEntry] = []
    for expense in ledger.expenses:
        entries.append(
            ActivityEntry(
                kind=ActivityKind.EXPENSE,
                entry_id=expense.id,
                amount=expense.amount,
                created_at=expense.created_at,
                from_id=expense.payer_id,
                description=expense.description,
                participant_ids=expense.participant_ids,
            )
        )
    for settlement in ledger.settlements:
        entries.append(
            ActivityEntry(
                kind=ActivityKind.SETTLEMENT,
                entry_id=settlement.id,
                amount=settlement.amount,
                created_at=settlement.created_at,
                from_id=settlement.from_id,
                to_id=settlement.to_id,
                description=SETTLEMENT_DESCRIPTION,
            )
        )

    entries.sort(key=lambda entry: entry.created_at, reverse=True)
    if limit is not None:
        return entries[:limit]
    return entries


def _name(members: dict[str, Member], member_id: Optional[str]) -> str:
    member = members.get(member_id) if member_id else None
    return member.name if member else UNKNOWN_MEMBER


def describe_activity(entry: ActivityEntry, members: Iterable[Member]) -> str:
    by_id = {member.id: member for member in members}
    amount = f"{entry.amount:.2f}"
    if entry.kind == ActivityKind.SETTLEMENT:
        return f"{_name(by_id, entry.from_id)} paid {amount} to {_name(by_id, entry.to_id)}"
    text = f"{_name(by_id, entry.from_id)} paid {amount}"
    if entry.description:
        text += f" for {entry.description}"
    if entry.participant_ids:
        text += f", split among {len(entry.participant_ids)}"
    return text
