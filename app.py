# app.py
import dataclasses
import os
import re
from datetime import datetime, time, timezone
from functools import lru_cache
from typing import Any, Dict, Optional

import requests
import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Query
from pydantic import BaseModel

from chains.solana_rpc import RpcError, SolanaRpcClient
from enrich.sol_price import PriceLookupError, SolPriceClient
from enrich.token_meta import TokenMetaClient
from ledger.config import ConfigError, EngineConfig
from ledger.engine import LedgerEngine
from ledger.labels import LabelResolver
from ledger.models import ClassifiedEvent, WalletAnalysis
from links import explorer_tx_link
from logging_config import configure_logging, get_logger

# ============================================================
# ENV / CONFIG
# ============================================================

configure_logging()
log = get_logger("app")

# Raises ConfigError at import on bad env
ENGINE_CONFIG = EngineConfig.from_env()
LABELS = LabelResolver.from_env()

PORT = int(os.getenv("PORT", "8000").strip() or "8000")

BASE58_RE = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")

# ============================================================
# COLLABORATORS
# ============================================================


@lru_cache(maxsize=1)
def get_rpc() -> SolanaRpcClient:
    return SolanaRpcClient.from_env()


@lru_cache(maxsize=1)
def get_token_meta() -> TokenMetaClient:
    return TokenMetaClient()


@lru_cache(maxsize=1)
def get_sol_prices() -> SolPriceClient:
    return SolPriceClient()


# ============================================================
# HELPERS
# ============================================================


class AnalyzeRequest(BaseModel):
    address: Optional[str] = None
    start_date: Optional[str] = None   # YYYY-MM-DD
    end_date: Optional[str] = None     # YYYY-MM-DD, inclusive
    cost_basis_method: Optional[str] = None


def _day_bound(value: Optional[str], end_of_day: bool) -> Optional[int]:
    if not value:
        return None
    try:
        day = datetime.strptime(value.strip(), "%Y-%m-%d").date()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid date {value!r}, expected YYYY-MM-DD") from e
    t = time(23, 59, 59) if end_of_day else time(0, 0, 0)
    return int(datetime.combine(day, t, tzinfo=timezone.utc).timestamp())


def _iso(ts: int) -> str:
    if not ts:
        return ""
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def _trade_json(ev: ClassifiedEvent) -> Dict[str, Any]:
    d = dataclasses.asdict(ev)
    d["date"] = _iso(ev.timestamp)
    d["explorer_url"] = explorer_tx_link("solana", ev.tx_id)
    return d


def analysis_json(result: WalletAnalysis) -> Dict[str, Any]:
    ledger = result.ledger
    positions = []
    for p in ledger.positions:
        d = dataclasses.asdict(p)
        d["first_acquisition_date"] = _iso(p.first_acquisition_time)
        d["last_activity_date"] = _iso(p.last_activity_time)
        positions.append(d)

    transfers = []
    for t in ledger.transfers:
        d = dataclasses.asdict(t)
        d["date"] = _iso(t.timestamp)
        d["explorer_url"] = explorer_tx_link("solana", t.tx_id)
        transfers.append(d)

    return {
        "address": result.address,
        "trades": [_trade_json(ev) for ev in result.trades],
        "positions": positions,
        "transfers": transfers,
        "total_count": result.trade_count,
        "total_transactions": result.total_transactions,
        "total_pnl": ledger.total_realized_pnl,
        "total_deposited": ledger.total_deposited,
        "total_withdrawn": ledger.total_withdrawn,
        "total_rewards": ledger.total_rewards,
        "net_balance_change": ledger.final_balance,
        "cost_basis_method": result.cost_basis_method,
        "profile_url": result.profile_url,
    }


# ============================================================
# FASTAPI APP
# ============================================================

app = FastAPI()


@app.get("/health")
def health():
    return {"ok": True}


@app.post("/analyze")
def analyze(body: AnalyzeRequest, rpc: SolanaRpcClient = Depends(get_rpc)):
    wallet = (body.address or "").strip()
    if not wallet:
        raise HTTPException(status_code=400, detail="Missing or invalid address")
    if not BASE58_RE.match(wallet):
        raise HTTPException(status_code=400, detail="Invalid Solana address")

    config = ENGINE_CONFIG
    if body.cost_basis_method:
        try:
            config = dataclasses.replace(config, cost_basis_method=body.cost_basis_method.strip().upper())
        except ConfigError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e

    start = _day_bound(body.start_date, end_of_day=False)
    end = _day_bound(body.end_date, end_of_day=True)
    log.info("analyze_request", wallet=wallet, start=body.start_date, end=body.end_date)

    try:
        txs = rpc.fetch_wallet_history(wallet, start=start, end=end)
    except (RpcError, requests.RequestException) as e:
        log.error("analyze_fetch_failed", wallet=wallet, error=str(e))
        raise HTTPException(status_code=502, detail=f"Failed to fetch wallet history: {e}") from e

    result = LedgerEngine(config, LABELS).run(wallet, txs, start=start, end=end)
    return analysis_json(result)


@app.get("/token-meta")
def token_meta(mints: str = Query(default=""), meta: TokenMetaClient = Depends(get_token_meta)):
    wanted = [m for m in mints.split(",") if m.strip()]
    if not wanted:
        return {"mintToSymbol": {}}
    return {"mintToSymbol": meta.symbols(wanted)}


@app.get("/sol-price-history")
def sol_price_history(date: str = Query(default=""), prices: SolPriceClient = Depends(get_sol_prices)):
    try:
        price = prices.price_on(date.strip())
    except PriceLookupError as e:
        raise HTTPException(status_code=e.status, detail=str(e)) from e
    return {"date": date.strip(), "priceUsd": price}


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=PORT)
