from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AbstractSet, Any, AsyncIterator, Iterable

import asyncpg

from splitpay.config import get_settings
from splitpay.logging import get_logger, sql_logger
from splitpay.models import Expense, Ledger, Member, Settlement
from splitpay.services.validation import validate_expense, validate_settlement


class Connection:
    def __init__(self, conn: asyncpg.Connection) -> None:
        self._conn = conn

    async def fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        sql_logger.info("sql.fetch", query=query, args=args)
        return await self._conn.fetch(query, *args)

    async def execute(self, query: str, *args: Any) -> str:
        sql_logger.info("sql.execute", query=query, args=args)
        return await self._conn.execute(query, *args)

    async def executemany(self, command: str, args: Iterable[Iterable[Any]]) -> None:
        sql_logger.info("sql.executemany", query=command)
        await self._conn.executemany(command, args)


class Database:
    def __init__(self, dsn: str) -> None:
        self._dsn = dsn
        self._pool: asyncpg.Pool | None = None
        self._log = get_logger(__name__)

    async def connect(self) -> None:
        if self._pool is None:
            # asyncpg expects a plain postgresql:// scheme, without "+asyncpg"
            dsn = self._dsn.replace("+asyncpg", "")
            self._pool = await asyncpg.create_pool(dsn)
            self._log.info("db.pool.created")

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            self._log.info("db.pool.closed")

    @asynccontextmanager
    async def transaction(self, *, readonly: bool = False, isolation: str = "read_committed") -> AsyncIterator[Connection]:
        await self._ensure_pool()
        assert self._pool
        async with self._pool.acquire() as conn:
            async with conn.transaction(isolation=isolation, readonly=readonly):
                yield Connection(conn)

    async def _ensure_pool(self) -> None:
        if self._pool is None:
            await self.connect()


def _member(row: Any) -> Member:
    return Member(id=row["id"], name=row["name"])


def _expense(row: Any) -> Expense:
    return Expense(
        id=row["id"],
        group_id=row["group_id"],
        amount=row["amount"],
        payer_id=row["payer_id"],
        participant_ids=tuple(row["participant_ids"] or ()),
        created_at=row["created_at"],
        description=row["description"] or "",
        created_by=row["created_by"],
    )


def _settlement(row: Any) -> Settlement:
    return Settlement(
        id=row["id"],
        group_id=row["group_id"],
        from_id=row["from_id"],
        to_id=row["to_id"],
        amount=row["amount"],
        created_at=row["created_at"],
    )


class LedgerRepository:
    def __init__(self, db: Database) -> None:
        self.db = db
        self._log = get_logger(__name__)

    async def load_ledger(self, group_id: str) -> Ledger:
        """Read a group's roster and full history as one consistent snapshot.

        All three reads share a read-only repeatable-read transaction, so an
        expense committed mid-read is either fully visible or not at all.
        """
        async with self.db.transaction(readonly=True, isolation="repeatable_read") as conn:
            members = await conn.fetch(
                "SELECT id, name FROM members WHERE group_id = $1 ORDER BY position, id",
                group_id,
            )
            expenses = await conn.fetch(
                """
                SELECT e.*,
                       array_agg(ep.member_id ORDER BY ep.position)
                           FILTER (WHERE ep.member_id IS NOT NULL) AS participant_ids
                FROM expenses e
                LEFT JOIN expense_participants ep ON ep.expense_id = e.id
                WHERE e.group_id = $1
                GROUP BY e.id
                ORDER BY e.created_at, e.id
                """,
                group_id,
            )
            settlements = await conn.fetch(
                "SELECT * FROM settlements WHERE group_id = $1 ORDER BY created_at, id",
                group_id,
            )

        ledger = Ledger.build(
            members=[_member(row) for row in members],
            expenses=[_expense(row) for row in expenses],
            settlements=[_settlement(row) for row in settlements],
            group_id=group_id,
        )
        self._log.info(
            "ledger.loaded",
            group_id=group_id,
            members=len(ledger.members),
            expenses=len(ledger.expenses),
            settlements=len(ledger.settlements),
        )
        return ledger

    async def add_expense(self, expense: Expense, member_ids: AbstractSet[str]) -> None:
        validate_expense(expense, member_ids)
        async with self.db.transaction() as conn:
            await conn.execute(
                """
                INSERT INTO expenses (id, group_id, amount, payer_id, description, created_by, created_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7)
                """,
                expense.id,
                expense.group_id,
                expense.amount,
                expense.payer_id,
                expense.description,
                expense.created_by,
                expense.created_at,
            )
            await conn.executemany(
                """
                INSERT INTO expense_participants (expense_id, member_id, position)
                VALUES ($1, $2, $3)
                """,
                ((expense.id, member_id, position) for position, member_id in enumerate(expense.participant_ids)),
            )
        self._log.info("ledger.expense.added", expense_id=expense.id, group_id=expense.group_id)

    async def add_settlement(self, settlement: Settlement, member_ids: AbstractSet[str]) -> None:
        validate_settlement(settlement, member_ids)
        async with self.db.transaction() as conn:
            await conn.execute(
                """
                INSERT INTO settlements (id, group_id, from_id, to_id, amount, created_at)
                VALUES ($1, $2, $3, $4, $5, $6)
                """,
                settlement.id,
                settlement.group_id,
                settlement.from_id,
                settlement.to_id,
                settlement.amount,
                settlement.created_at,
            )
        self._log.info("ledger.settlement.added", settlement_id=settlement.id, group_id=settlement.group_id)


async def open_repository(dsn: str | None = None) -> LedgerRepository:
    db = Database(dsn or get_settings().require_database_url())
    await db.connect()
    return LedgerRepository(db)
