from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Sequence

# Zero-comparison tolerance for money: one cent.
EPSILON = Decimal("0.01")
CENT = Decimal("0.01")


class ActivityKind(str, Enum):
    EXPENSE = "expense"
    SETTLEMENT = "settlement"


@dataclass(frozen=True, slots=True)
class Member:
    id: str
    name: str


@dataclass(frozen=True, slots=True)
class Expense:
    id: str
    group_id: str
    amount: Decimal
    payer_id: str
    participant_ids: tuple[str, ...]
    created_at: datetime
    description: str = ""
    created_by: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Settlement:
    id: str
    group_id: str
    from_id: str
    to_id: str
    amount: Decimal
    created_at: datetime


@dataclass(frozen=True, slots=True)
class Transfer:
    from_member: Member
    to_member: Member
    amount: Decimal


@dataclass(frozen=True, slots=True)
class Ledger:
    """Immutable snapshot of a group's roster and history.

    Callers build one snapshot per read and pass it to the balance and
    settlement functions, so a concurrent write never shows up half-applied.
    """

    members: tuple[Member, ...] = ()
    expenses: tuple[Expense, ...] = ()
    settlements: tuple[Settlement, ...] = ()
    group_id: Optional[str] = None

    @classmethod
    def build(
        cls,
        members: Sequence[Member],
        expenses: Sequence[Expense] = (),
        settlements: Sequence[Settlement] = (),
        group_id: Optional[str] = None,
    ) -> "Ledger":
        return cls(
            members=tuple(members),
            expenses=tuple(expenses),
            settlements=tuple(settlements),
            group_id=group_id,
        )

    def for_group(self, group_id: str) -> "Ledger":
        return Ledger(
            members=self.members,
            expenses=tuple(e for e in self.expenses if e.group_id == group_id),
            settlements=tuple(s for s in self.settlements if s.group_id == group_id),
            group_id=group_id,
        )

    def member(self, member_id: str) -> Optional[Member]:
        for member in self.members:
            if member.id == member_id:
                return member
        return None

    @property
    def member_ids(self) -> frozenset[str]:
        return frozenset(member.id for member in self.members)


@dataclass(frozen=True, slots=True)
class ActivityEntry:
    kind: ActivityKind
    entry_id: str
    amount: Decimal
    created_at: datetime
    from_id: str
    to_id: Optional[str] = None
    description: str = ""
    participant_ids: tuple[str, ...] = field(default_factory=tuple)
