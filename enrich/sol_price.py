from __future__ import annotations

import re
import time
from typing import Dict, Optional

import requests


DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class PriceLookupError(RuntimeError):
    """Carries the HTTP status the service should answer with."""

    def __init__(self, message: str, status: int):
        super().__init__(message)
        self.status = status


class SolPriceClient:
    """
    Historical SOL/USD at 00:00 UTC for a calendar date (CoinGecko free API).
      - GET https://api.coingecko.com/api/v3/coins/solana/history?date=dd-mm-yyyy
    Past dates never change, so results are cached for the process lifetime.
    """
    HISTORY_URL = "https://api.coingecko.com/api/v3/coins/solana/history"

    def __init__(self):
        self.cache: Dict[str, tuple[float, float]] = {}
        self.session = requests.Session()

    def price_on(self, iso_date: str) -> float:
        if not iso_date or not DATE_RE.match(iso_date):
            raise PriceLookupError("Query param 'date' required as YYYY-MM-DD", 400)

        cached = self.cache.get(iso_date)
        if cached:
            return cached[1]

        y, m, d = iso_date.split("-")
        try:
            r = self.session.get(
                self.HISTORY_URL,
                params={"date": f"{d}-{m}-{y}", "localization": "false"},
                headers={"Accept": "application/json"},
                timeout=20,
            )
        except requests.RequestException as e:
            raise PriceLookupError("Failed to fetch historical price", 502) from e

        if r.status_code == 429:
            raise PriceLookupError("CoinGecko rate limit; try again later", 429)
        if not r.ok:
            raise PriceLookupError("Failed to fetch historical price", 502)

        try:
            data = r.json()
        except ValueError as e:
            raise PriceLookupError("Failed to fetch historical price", 502) from e

        price = _usd_price(data)
        if price is None:
            raise PriceLookupError("No price data for this date", 404)

        self.cache[iso_date] = (time.time(), price)
        return price


def _usd_price(data) -> Optional[float]:
    usd = (((data or {}).get("market_data") or {}).get("current_price") or {}).get("usd")
    if isinstance(usd, bool) or not isinstance(usd, (int, float)):
        return None
    return float(usd)
