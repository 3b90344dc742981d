import random
from datetime import datetime, timezone
from decimal import Decimal

from structlog.testing import capture_logs

from splitpay.models import Expense, Member, Settlement
from splitpay.services.balances import (
    BalanceStatus,
    balance_drift,
    balance_status,
    calculate_balances,
    round_cents,
)

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)

A = Member(id="a", name="Anna")
B = Member(id="b", name="Bruno")
C = Member(id="c", name="Carla")
MEMBERS = [A, B, C]


def make_expense(amount: str, payer: str, participants: list[str], expense_id: str = "e1") -> Expense:
    return Expense(
        id=expense_id,
        group_id="g1",
        amount=Decimal(amount),
        payer_id=payer,
        participant_ids=tuple(participants),
        created_at=NOW,
    )


def make_settlement(amount: str, from_id: str, to_id: str, settlement_id: str = "s1") -> Settlement:
    return Settlement(
        id=settlement_id,
        group_id="g1",
        from_id=from_id,
        to_id=to_id,
        amount=Decimal(amount),
        created_at=NOW,
    )


def test_payer_included_in_split():
    balances = calculate_balances(MEMBERS, [make_expense("30", "a", ["a", "b", "c"])], [])

    assert balances == {"a": Decimal("20"), "b": Decimal("-10"), "c": Decimal("-10")}


def test_payer_not_in_split():
    balances = calculate_balances(MEMBERS, [make_expense("30", "a", ["b", "c"])], [])

    assert balances["a"] == Decimal("30")
    assert balances["b"] == Decimal("-15")
    assert balances["c"] == Decimal("-15")


def test_uneven_share_is_divided_once():
    balances = calculate_balances(MEMBERS, [make_expense("10", "a", ["a", "b", "c"])], [])

    share = Decimal("10") / Decimal(3)
    assert balances["a"] == Decimal("10") - share
    assert balances["b"] == -share
    assert balances["c"] == -share
    assert abs(balance_drift(balances)) < Decimal("0.000001")


def test_settlement_moves_balance_between_two_members():
    before = calculate_balances(MEMBERS, [make_expense("50", "a", ["a", "b"])], [])
    after = calculate_balances(
        MEMBERS,
        [make_expense("50", "a", ["a", "b"])],
        [make_settlement("12.50", "b", "a")],
    )

    assert after["b"] - before["b"] == Decimal("12.50")
    assert after["a"] - before["a"] == Decimal("-12.50")
    assert after["c"] == before["c"]


def test_settlement_without_expenses():
    balances = calculate_balances(MEMBERS, [], [make_settlement("7", "c", "b")])

    assert balances == {"a": Decimal(0), "b": Decimal("-7"), "c": Decimal("7")}


def test_full_settlement_zeroes_balances():
    balances = calculate_balances(
        [A, B],
        [make_expense("50", "a", ["a", "b"])],
        [make_settlement("25", "b", "a")],
    )

    assert balances == {"a": Decimal(0), "b": Decimal(0)}


def test_unknown_member_entries_are_skipped():
    expenses = [
        make_expense("40", "ghost", ["a", "b"], expense_id="e1"),
        make_expense("40", "a", ["a", "ghost"], expense_id="e2"),
        make_expense("9", "b", ["a", "b", "c"], expense_id="e3"),
    ]
    settlements = [make_settlement("5", "ghost", "a")]

    with capture_logs() as logs:
        balances = calculate_balances(MEMBERS, expenses, settlements)

    assert set(balances) == {"a", "b", "c"}
    assert balances == {"a": Decimal("-3"), "b": Decimal("6"), "c": Decimal("-3")}
    assert not [entry for entry in logs if entry["log_level"] == "warning"]


def test_invalid_entries_are_skipped_with_warning():
    expenses = [
        make_expense("0", "a", ["a", "b"], expense_id="zero"),
        make_expense("10", "a", [], expense_id="nobody"),
        make_expense("10", "a", ["b"], expense_id="ok"),
    ]
    settlements = [make_settlement("-3", "b", "a")]

    with capture_logs() as logs:
        balances = calculate_balances(MEMBERS, expenses, settlements)

    assert balances == {"a": Decimal("10"), "b": Decimal("-10"), "c": Decimal(0)}
    events = [entry["event"] for entry in logs if entry["log_level"] == "warning"]
    assert events.count("ledger.expense.invalid") == 2
    assert events.count("ledger.settlement.invalid") == 1


def test_balances_sum_to_zero_for_random_ledger():
    rng = random.Random(7)
    members = [Member(id=f"m{i}", name=f"Member {i}") for i in range(6)]
    ids = [m.id for m in members]

    expenses = []
    for n in range(40):
        amount = Decimal(rng.randint(1, 50000)) / 100
        participants = rng.sample(ids, rng.randint(1, len(ids)))
        expenses.append(make_expense(str(amount), rng.choice(ids), participants, expense_id=f"e{n}"))
    settlements = [
        make_settlement(str(Decimal(rng.randint(1, 9999)) / 100), *rng.sample(ids, 2), settlement_id=f"s{n}")
        for n in range(10)
    ]

    balances = calculate_balances(members, expenses, settlements)

    assert abs(balance_drift(balances)) <= Decimal("0.01") * (len(expenses) + len(settlements))


def test_calculation_is_idempotent():
    expenses = [make_expense("10", "a", ["a", "b", "c"]), make_expense("3.50", "c", ["b"], expense_id="e2")]
    settlements = [make_settlement("1", "b", "a")]

    assert calculate_balances(MEMBERS, expenses, settlements) == calculate_balances(MEMBERS, expenses, settlements)


def test_empty_roster_gives_empty_mapping():
    assert calculate_balances([], [make_expense("10", "a", ["a"])], []) == {}


def test_balance_status_uses_cent_threshold():
    assert balance_status(Decimal("0.02")) == BalanceStatus.OWED
    assert balance_status(Decimal("-0.02")) == BalanceStatus.OWES
    assert balance_status(Decimal("0.01")) == BalanceStatus.SETTLED
    assert balance_status(Decimal("-0.004")) == BalanceStatus.SETTLED


def test_round_cents():
    assert round_cents(Decimal("3.335")) == Decimal("3.34")
    assert round_cents(Decimal("-3.3333")) == Decimal("-3.33")


def test_unknown_payer_reported_once():
    with capture_logs() as logs:
        calculate_balances(MEMBERS, [make_expense("12", "ghost", ["ghost", "a"])], [])

    skipped = [entry for entry in logs if entry["event"] == "ledger.expense.unknown_member"]
    assert len(skipped) == 1
    assert skipped[0]["unknown"] == ["ghost"]


def test_precision_loss_flags_invariant_violation():
    expense = Expense(
        id="huge",
        group_id="g1",
        amount=Decimal("1E+27"),
        payer_id="a",
        participant_ids=("a", "b", "c"),
        created_at=NOW,
    )

    with capture_logs() as logs:
        balances = calculate_balances(MEMBERS, [expense], [])

    warnings = [entry for entry in logs if entry["event"] == "balances.invariant_violation"]
    assert len(warnings) == 1
    assert warnings[0]["log_level"] == "warning"
    assert set(balances) == {"a", "b", "c"}
    assert balances["a"] > 0 > balances["b"]
    assert abs(balance_drift(balances)) > Decimal("0.01")
