"""
Tests for the in-memory ledger store.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from app.domain.models.ledger_entry import LedgerEntry
from app.domain.models.position import Position, PositionStatus, ExitReason
from app.shared.exceptions import AccountAlreadyExistsError, AccountNotFoundError, InsufficientFundsError
from app.shared.models import utc_now


def pending_position(account_id: str, margin: str = "100") -> Position:
    return Position(
        account_id=account_id,
        symbol="BTC/USDT",
        side="long",
        size=Decimal("1000"),
        leverage=Decimal("10"),
        margin=Decimal(margin),
        entry_price=Decimal("50000"),
        liquidation_price=Decimal("45000"),
    )


def settlement_entry(position: Position, amount: str = "150") -> LedgerEntry:
    return LedgerEntry(
        position_id=position.id,
        account_id=position.account_id,
        amount=Decimal(amount),
        pnl=Decimal(amount) - position.margin,
        reason=ExitReason.MANUAL_CLOSE,
    )


async def test_create_account_with_explicit_id(store):
    account = await store.create_account(balance=Decimal("5"), account_id="acc-1")
    assert account.id == "acc-1"
    assert (await store.get_account("acc-1")).balance == Decimal("5")
    assert await store.get_account("other") is None


async def test_create_account_rejects_duplicate_id(store):
    await store.create_account(balance=Decimal("5"), account_id="acc-1")

    with pytest.raises(AccountAlreadyExistsError):
        await store.create_account(balance=Decimal("999"), account_id="acc-1")

    assert (await store.get_account("acc-1")).balance == Decimal("5")


async def test_returned_records_are_copies(store):
    account = await store.create_account(balance=Decimal("5"))
    fetched = await store.get_account(account.id)
    fetched.balance = Decimal("1000")
    assert (await store.get_account(account.id)).balance == Decimal("5")


async def test_open_position_debits_and_marks_open(store):
    account = await store.create_account(balance=Decimal("250"))
    opened = await store.open_position(pending_position(account.id))

    assert opened.status == PositionStatus.OPEN
    assert opened.opened_at is not None
    assert (await store.get_account(account.id)).balance == Decimal("150")


async def test_open_position_insufficient_funds(store):
    account = await store.create_account(balance=Decimal("99.99999999"))
    with pytest.raises(InsufficientFundsError):
        await store.open_position(pending_position(account.id))
    assert await store.find_positions() == []


async def test_open_position_unknown_account(store):
    with pytest.raises(AccountNotFoundError):
        await store.open_position(pending_position("missing"))


async def test_claim_is_compare_and_set(store):
    account = await store.create_account(balance=Decimal("1000"))
    opened = await store.open_position(pending_position(account.id))
    now = utc_now()

    claimed = await store.claim_for_close(opened.id, Decimal("51000"), ExitReason.TAKE_PROFIT, now)
    again = await store.claim_for_close(opened.id, Decimal("52000"), ExitReason.MANUAL_CLOSE, now)

    assert claimed.status == PositionStatus.CLOSING
    assert claimed.pending_exit_price == Decimal("51000")
    assert again is None
    assert await store.claim_for_close("missing", Decimal("1"), ExitReason.MANUAL_CLOSE, now) is None


async def test_commit_settlement_is_idempotent(store):
    account = await store.create_account(balance=Decimal("1000"))
    opened = await store.open_position(pending_position(account.id))
    claimed = await store.claim_for_close(opened.id, Decimal("52500"), ExitReason.MANUAL_CLOSE, utc_now())
    entry = settlement_entry(claimed)

    first = await store.commit_settlement(claimed, entry, Decimal("52500"), entry.pnl, utc_now())
    second = await store.commit_settlement(claimed, entry, Decimal("52500"), entry.pnl, utc_now())

    assert first is True
    assert second is False
    assert (await store.get_account(account.id)).balance == Decimal("1050")
    assert (await store.get_position(opened.id)).status == PositionStatus.CLOSED
    assert (await store.get_ledger_entry(opened.id)).amount == Decimal("150")


async def test_commit_settlement_requires_claim(store):
    account = await store.create_account(balance=Decimal("1000"))
    opened = await store.open_position(pending_position(account.id))

    with pytest.raises(ValueError):
        await store.commit_settlement(opened, settlement_entry(opened), Decimal("1"), Decimal("0"), utc_now())
    assert (await store.get_account(account.id)).balance == Decimal("900")


async def test_find_stuck_closing_by_age(store):
    account = await store.create_account(balance=Decimal("1000"))
    opened = await store.open_position(pending_position(account.id))
    claimed_at = utc_now() - timedelta(minutes=5)
    await store.claim_for_close(opened.id, Decimal("50000"), ExitReason.STOP_LOSS, claimed_at)

    assert [p.id for p in await store.find_stuck_closing(utc_now() - timedelta(minutes=1))] == [opened.id]
    assert await store.find_stuck_closing(utc_now() - timedelta(minutes=10)) == []


async def test_find_positions_filters(store):
    account = await store.create_account(balance=Decimal("1000"))
    other = await store.create_account(balance=Decimal("1000"))
    mine = await store.open_position(pending_position(account.id))
    await store.open_position(pending_position(other.id))

    assert [p.id for p in await store.find_positions(account_id=account.id)] == [mine.id]
    assert len(await store.find_positions(status=PositionStatus.OPEN)) == 2
    assert await store.find_positions(status=PositionStatus.CLOSED) == []
    assert await store.find_positions(symbol="ETH/USDT") == []
