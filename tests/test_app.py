import pytest
from fastapi.testclient import TestClient

from app import app, get_rpc, get_sol_prices, get_token_meta
from chains.solana_rpc import RpcError
from conftest import MINT_X, SOL, WALLET, make_tx, token
from enrich.sol_price import PriceLookupError


class FakeRpc:
    def __init__(self, txs=None, error=None):
        self.txs = txs or []
        self.error = error
        self.calls = []

    def fetch_wallet_history(self, address, start=None, end=None):
        self.calls.append((address, start, end))
        if self.error:
            raise self.error
        return self.txs


class FakeTokenMeta:
    def symbols(self, mints):
        return {m: "TKN" for m in mints if m == MINT_X}


class FakePrices:
    def price_on(self, date):
        if date == "2024-01-01":
            return 101.5
        if not date:
            raise PriceLookupError("Query param 'date' required as YYYY-MM-DD", 400)
        raise PriceLookupError("No price data for this date", 404)


@pytest.fixture
def rpc():
    return FakeRpc(
        txs=[
            make_tx(sig="dep", block_time=1_704_067_200, pre=(0, 5 * SOL, 0), post=(5 * SOL, 0, 0)),
            make_tx(
                sig="buy",
                block_time=1_704_067_300,
                pre=(5 * SOL, 0, 0),
                post=(4 * SOL, 0, 0),
                pre_tokens=[token(3, MINT_X, 0)],
                post_tokens=[token(3, MINT_X, 42_000_000)],
            ),
        ]
    )


@pytest.fixture
def client(rpc):
    app.dependency_overrides[get_rpc] = lambda: rpc
    app.dependency_overrides[get_token_meta] = FakeTokenMeta
    app.dependency_overrides[get_sol_prices] = FakePrices
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_health(client):
    assert client.get("/health").json() == {"ok": True}


def test_analyze_returns_ledger(client, rpc):
    r = client.post("/analyze", json={"address": f"  {WALLET} ", "start_date": "2024-01-01", "end_date": "2024-01-31"})
    assert r.status_code == 200
    data = r.json()

    assert data["address"] == WALLET
    assert data["total_transactions"] == 2
    assert data["total_deposited"] == 5.0
    assert data["total_pnl"] == -1.0
    assert data["net_balance_change"] == 4.0
    assert data["cost_basis_method"] == "FIFO"
    assert data["profile_url"].endswith(WALLET)

    [pos] = data["positions"]
    assert pos["asset_id"] == MINT_X
    assert pos["total_acquired"] == 42.0
    assert pos["legs"][0]["direction"] == "BUY"
    assert pos["first_acquisition_date"] == "2024-01-01 00:01:40"

    [dep] = data["transfers"]
    assert dep["direction"] == "DEPOSIT"
    assert dep["explorer_url"] == "https://solscan.io/tx/dep"
    assert data["trades"][0]["tx_id"] == "buy"

    address, start, end = rpc.calls[0]
    assert address == WALLET
    assert start == 1_704_067_200
    assert end == 1_706_745_599


def test_analyze_labels_cost_basis_method(client):
    r = client.post("/analyze", json={"address": WALLET, "cost_basis_method": "lifo"})
    assert r.status_code == 200
    assert r.json()["cost_basis_method"] == "LIFO"


@pytest.mark.parametrize(
    "body",
    [
        {},
        {"address": ""},
        {"address": "not-a-solana-address"},
        {"address": WALLET, "start_date": "01/02/2024"},
        {"address": WALLET, "cost_basis_method": "AVG"},
    ],
)
def test_analyze_rejects_bad_input(client, body):
    assert client.post("/analyze", json=body).status_code == 400


def test_analyze_upstream_failure_is_502(client, rpc):
    rpc.error = RpcError("getSignaturesForAddress", {"code": -32005, "message": "node is behind"})
    r = client.post("/analyze", json={"address": WALLET})
    assert r.status_code == 502


def test_token_meta(client):
    r = client.get("/token-meta", params={"mints": f"{MINT_X}, unknown"})
    assert r.json() == {"mintToSymbol": {MINT_X: "TKN"}}
    assert client.get("/token-meta").json() == {"mintToSymbol": {}}


def test_sol_price_history(client):
    assert client.get("/sol-price-history", params={"date": "2024-01-01"}).json() == {
        "date": "2024-01-01",
        "priceUsd": 101.5,
    }
    assert client.get("/sol-price-history").status_code == 400
    assert client.get("/sol-price-history", params={"date": "1999-01-01"}).status_code == 404
