from __future__ import annotations

import time
from typing import Any, Dict, Iterable, Optional

import requests

from ledger.models import NATIVE_ASSET, WSOL_MINT
from logging_config import get_logger


log = get_logger(__name__)

MAX_MINTS = 50


class TokenMetaClient:
    """
    Mint -> symbol lookups.

    Sources, in order:
      - Solana token list (one download, refreshed every `list_ttl_seconds`)
      - Jupiter lite search: GET https://lite-api.jup.ag/tokens/v2/search?query={mint}
        (covers pump.fun and other fresh mints)
    Lookup failures fail soft: the mint is just left out of the result.
    """
    TOKEN_LIST_URL = "https://raw.githubusercontent.com/solana-labs/token-list/main/src/tokens/solana.tokenlist.json"
    JUPITER_SEARCH_URL = "https://lite-api.jup.ag/tokens/v2/search"

    def __init__(self, ttl_seconds: int = 3600, list_ttl_seconds: int = 3600, jupiter_delay: float = 0.12):
        self.ttl = ttl_seconds
        self.list_ttl = list_ttl_seconds
        self.jupiter_delay = jupiter_delay
        self.cache: Dict[str, tuple[float, Optional[str]]] = {}
        self._token_list: Optional[Dict[str, str]] = None
        self._token_list_ts = 0.0
        self.session = requests.Session()

    def _cache_get(self, key: str) -> tuple[bool, Optional[str]]:
        item = self.cache.get(key)
        if not item:
            return False, None
        ts, val = item
        if (time.time() - ts) > self.ttl:
            self.cache.pop(key, None)
            return False, None
        return True, val

    def _cache_set(self, key: str, val: Optional[str]) -> None:
        self.cache[key] = (time.time(), val)

    def token_list(self) -> Dict[str, str]:
        if self._token_list is not None and (time.time() - self._token_list_ts) <= self.list_ttl:
            return self._token_list
        try:
            r = self.session.get(self.TOKEN_LIST_URL, headers={"Accept": "application/json"}, timeout=20)
            r.raise_for_status()
            tokens = (r.json() or {}).get("tokens")
        except (requests.RequestException, ValueError) as e:
            log.warning("token_list_fetch_failed", error=str(e))
            return self._token_list or {}

        mapping: Dict[str, str] = {}
        if isinstance(tokens, list):
            for t in tokens:
                if isinstance(t, dict) and t.get("address") and t.get("symbol"):
                    mapping[t["address"]] = t["symbol"]
        self._token_list = mapping
        self._token_list_ts = time.time()
        return mapping

    def jupiter_symbol(self, mint: str) -> Optional[str]:
        try:
            r = self.session.get(
                self.JUPITER_SEARCH_URL,
                params={"query": mint},
                headers={"Accept": "application/json"},
                timeout=6,
            )
            if r.status_code == 429:
                # Rate limited: fail soft
                return None
            r.raise_for_status()
            data = r.json()
        except (requests.RequestException, ValueError) as e:
            log.debug("jupiter_lookup_failed", mint=mint, error=str(e))
            return None

        token = _first_token(data)
        if token and token.get("symbol") and token.get("id") == mint:
            return str(token["symbol"]).strip()
        return None

    def symbol_for(self, mint: str) -> Optional[str]:
        mint = (mint or "").strip()
        if not mint:
            return None
        if mint in (NATIVE_ASSET, WSOL_MINT):
            return "SOL"

        hit, cached = self._cache_get(mint)
        if hit:
            return cached

        symbol = self.token_list().get(mint)
        if not symbol:
            symbol = self.jupiter_symbol(mint)
            time.sleep(self.jupiter_delay)
        self._cache_set(mint, symbol)
        return symbol

    def symbols(self, mints: Iterable[str]) -> Dict[str, str]:
        out: Dict[str, str] = {}
        unique = list(dict.fromkeys(m.strip() for m in mints if m and m.strip()))
        for mint in unique[:MAX_MINTS]:
            symbol = self.symbol_for(mint)
            if symbol:
                out[mint] = symbol
        return out


def _first_token(data: Any) -> Optional[Dict[str, Any]]:
    if isinstance(data, list):
        return data[0] if data and isinstance(data[0], dict) else None
    if isinstance(data, dict):
        items = data.get("data")
        if isinstance(items, list) and items and isinstance(items[0], dict):
            return items[0]
    return None
