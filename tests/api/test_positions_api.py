"""
Tests for the position and account HTTP endpoints.
"""

from decimal import Decimal


def headers(account_id: str) -> dict:
    return {"X-Account-Id": account_id}


OPEN_LONG = {"symbol": "BTC/USDT", "side": "long", "size": "1000", "leverage": "10"}


async def test_open_position(client, account):
    response = await client.post("/api/v1/positions", json=OPEN_LONG, headers=headers(account.id))

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "open"
    assert Decimal(data["margin"]) == Decimal("100")
    assert Decimal(data["entry_price"]) == Decimal("50000")
    assert Decimal(data["liquidation_price"]) == Decimal("45000")


async def test_open_short_at_leverage_one_reports_infinite_liquidation(client, account):
    payload = {**OPEN_LONG, "side": "short", "leverage": "1"}
    response = await client.post("/api/v1/positions", json=payload, headers=headers(account.id))

    assert response.status_code == 201
    assert Decimal(response.json()["liquidation_price"]) == Decimal("Infinity")


async def test_open_requires_identity(client):
    response = await client.post("/api/v1/positions", json=OPEN_LONG)
    assert response.status_code == 401


async def test_open_insufficient_funds(client, store):
    poor = await store.create_account(balance=Decimal("1"))

    response = await client.post("/api/v1/positions", json=OPEN_LONG, headers=headers(poor.id))

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INSUFFICIENT_FUNDS"


async def test_open_invalid_leverage(client, account):
    payload = {**OPEN_LONG, "leverage": "0.5"}
    response = await client.post("/api/v1/positions", json=payload, headers=headers(account.id))

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "INVALID_PARAMETERS"


async def test_open_unknown_account(client):
    response = await client.post("/api/v1/positions", json=OPEN_LONG, headers=headers("missing"))
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "ACCOUNT_NOT_FOUND"


async def test_open_price_unavailable(client, account, oracle):
    oracle.remove_price("BTC/USDT")

    response = await client.post("/api/v1/positions", json=OPEN_LONG, headers=headers(account.id))

    assert response.status_code == 503
    assert response.json()["error"]["code"] == "PRICE_UNAVAILABLE"


async def test_close_position(client, account, oracle):
    opened = (await client.post("/api/v1/positions", json=OPEN_LONG, headers=headers(account.id))).json()
    oracle.set_price("BTC/USDT", Decimal("55000"))

    response = await client.post(f"/api/v1/positions/{opened['id']}/close", headers=headers(account.id))

    assert response.status_code == 200
    data = response.json()
    assert data["outcome"] == "settled"
    assert data["reason"] == "manual_close"
    assert Decimal(data["position"]["pnl"]) == Decimal("100")
    assert Decimal(data["ledger_entry"]["amount"]) == Decimal("200")

    again = await client.post(f"/api/v1/positions/{opened['id']}/close", headers=headers(account.id))
    assert again.status_code == 200
    assert again.json()["outcome"] == "already_closed"


async def test_close_other_accounts_position(client, store, account):
    opened = (await client.post("/api/v1/positions", json=OPEN_LONG, headers=headers(account.id))).json()
    other = await store.create_account()

    response = await client.post(f"/api/v1/positions/{opened['id']}/close", headers=headers(other.id))

    assert response.status_code == 403
    assert response.json()["error"]["code"] == "UNAUTHORIZED"


async def test_close_unknown_position(client, account):
    response = await client.post("/api/v1/positions/missing/close", headers=headers(account.id))
    assert response.status_code == 404


async def test_list_open_with_unrealized_pnl(client, account, oracle):
    await client.post("/api/v1/positions", json=OPEN_LONG, headers=headers(account.id))
    oracle.set_price("BTC/USDT", Decimal("51000"))

    response = await client.get("/api/v1/positions/open", headers=headers(account.id))

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 1
    assert Decimal(data["items"][0]["mark_price"]) == Decimal("51000")
    assert Decimal(data["items"][0]["unrealized_pnl"]) == Decimal("20")


async def test_list_open_without_price(client, account, oracle):
    await client.post("/api/v1/positions", json=OPEN_LONG, headers=headers(account.id))
    oracle.remove_price("BTC/USDT")

    response = await client.get("/api/v1/positions/open", headers=headers(account.id))

    assert response.status_code == 200
    assert response.json()["items"][0]["unrealized_pnl"] is None


async def test_history_and_get(client, account):
    opened = (await client.post("/api/v1/positions", json=OPEN_LONG, headers=headers(account.id))).json()
    await client.post(f"/api/v1/positions/{opened['id']}/close", headers=headers(account.id))

    history = await client.get("/api/v1/positions/history", headers=headers(account.id))
    single = await client.get(f"/api/v1/positions/{opened['id']}", headers=headers(account.id))

    assert [p["id"] for p in history.json()["items"]] == [opened["id"]]
    assert single.json()["status"] == "closed"
    assert single.json()["close_reason"] == "manual_close"


async def test_account_and_ledger(client, account, oracle):
    opened = (await client.post("/api/v1/positions", json=OPEN_LONG, headers=headers(account.id))).json()
    oracle.set_price("BTC/USDT", Decimal("47500"))
    await client.post(f"/api/v1/positions/{opened['id']}/close", headers=headers(account.id))

    me = await client.get("/api/v1/accounts/me", headers=headers(account.id))
    ledger = await client.get("/api/v1/accounts/me/ledger", headers=headers(account.id))

    assert Decimal(me.json()["balance"]) == Decimal("9950")
    entries = ledger.json()["items"]
    assert len(entries) == 1
    assert Decimal(entries[0]["pnl"]) == Decimal("-50")
    assert entries[0]["position_id"] == opened["id"]


async def test_account_not_found(client):
    response = await client.get("/api/v1/accounts/me", headers=headers("missing"))
    assert response.status_code == 404


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["scanner_running"] is False
