from __future__ import annotations

import itertools
import os
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Tuple

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ledger.models import RawTransaction, TokenBalance
from logging_config import get_logger


log = get_logger(__name__)

DEFAULT_RPC_URL = "https://api.mainnet-beta.solana.com"
SIGNATURES_PER_REQUEST = 1000   # max allowed by the RPC
CONCURRENCY = 5
BATCH_DELAY = 0.2               # seconds between getParsedTransaction batches
PAGE_DELAY = 0.1
REQUEST_TIMEOUT = 45


class RpcError(RuntimeError):
    def __init__(self, method: str, error: Any):
        self.method = method
        self.error = error
        code = error.get("code") if isinstance(error, dict) else None
        self.code = code
        msg = error.get("message") if isinstance(error, dict) else str(error)
        super().__init__(f"{method} failed ({code}): {msg}")

    @property
    def is_rate_limit(self) -> bool:
        return self.code == 429 or "rate" in str(self).lower() or "429" in str(self)


class SolanaRpcClient:
    """
    Minimal JSON-RPC client for wallet history.

    Transport-level 429/5xx responses are retried by the session adapter.
    JSON-RPC errors that report rate limiting inside a 200 body get an
    additional exponential backoff in _call.
    """

    def __init__(
        self,
        url: str = "",
        concurrency: int = CONCURRENCY,
        batch_delay: float = BATCH_DELAY,
        max_retries: int = 3,
        base_delay: float = 1.0,
        session: Optional[requests.Session] = None,
    ):
        self.url = (url or os.getenv("SOLANA_RPC_URL", "") or DEFAULT_RPC_URL).strip()
        self.concurrency = max(1, int(concurrency))
        self.batch_delay = float(batch_delay)
        self.max_retries = int(max_retries)
        self.base_delay = float(base_delay)
        self.session = session or _retrying_session()
        self._ids = itertools.count(1)

    @classmethod
    def from_env(cls) -> "SolanaRpcClient":
        return cls(
            url=os.getenv("SOLANA_RPC_URL", DEFAULT_RPC_URL),
            concurrency=int(os.getenv("RPC_CONCURRENCY", str(CONCURRENCY)).strip() or CONCURRENCY),
            batch_delay=float(os.getenv("RPC_BATCH_DELAY", str(BATCH_DELAY)).strip() or BATCH_DELAY),
        )

    def _call(self, method: str, params: List[Any]) -> Any:
        for attempt in range(self.max_retries + 1):
            r = self.session.post(
                self.url,
                json={"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params},
                timeout=REQUEST_TIMEOUT,
            )
            r.raise_for_status()
            data = r.json()
            if not data.get("error"):
                return data.get("result")

            err = RpcError(method, data["error"])
            if attempt == self.max_retries or not err.is_rate_limit:
                raise err

            wait = self.base_delay * (2 ** attempt)
            log.warning("rpc_rate_limited", method=method, wait_s=wait, attempt=attempt + 1)
            time.sleep(wait)

    def get_signatures(
        self,
        address: str,
        start: Optional[int] = None,
        end: Optional[int] = None,
    ) -> List[Tuple[str, Optional[int]]]:
        """
        (signature, block_time) pairs, newest first.

        With `start`, paging stops once a batch reaches back past it. Entries
        with an unknown block time are always kept.
        """
        out: List[Tuple[str, Optional[int]]] = []
        before: Optional[str] = None

        while True:
            opts: Dict[str, Any] = {"limit": SIGNATURES_PER_REQUEST}
            if before:
                opts["before"] = before
            batch = self._call("getSignaturesForAddress", [address, opts]) or []
            if not batch:
                break

            for s in batch:
                out.append((s.get("signature") or "", s.get("blockTime")))
            before = batch[-1].get("signature")
            log.info("signatures_fetched", address=address, total=len(out))

            oldest = batch[-1].get("blockTime")
            if start is not None and oldest is not None and oldest < start:
                log.info("signatures_past_range", oldest=oldest, start=start)
                break
            if len(batch) < SIGNATURES_PER_REQUEST:
                break
            time.sleep(PAGE_DELAY)

        return [
            (sig, bt) for sig, bt in out
            if sig and (bt is None or ((start is None or bt >= start) and (end is None or bt <= end)))
        ]

    def get_parsed_transaction(self, signature: str) -> Optional[Dict[str, Any]]:
        return self._call(
            "getParsedTransaction",
            [signature, {"encoding": "jsonParsed", "maxSupportedTransactionVersion": 0, "commitment": "confirmed"}],
        )

    def fetch_transactions(self, signatures: List[str]) -> List[RawTransaction]:
        """Parsed transactions in the same order as `signatures`; missing ones are dropped."""
        txs: List[RawTransaction] = []
        with ThreadPoolExecutor(max_workers=self.concurrency) as pool:
            for i in range(0, len(signatures), self.concurrency):
                batch = signatures[i:i + self.concurrency]
                payloads = list(pool.map(self.get_parsed_transaction, batch))
                for sig, payload in zip(batch, payloads):
                    tx = parse_transaction(sig, payload)
                    if tx is not None:
                        txs.append(tx)

                done = i + len(batch)
                if done % 50 == 0 or done == len(signatures):
                    log.info("transactions_fetched", done=done, total=len(signatures))
                if done < len(signatures):
                    time.sleep(self.batch_delay)
        return txs

    def fetch_wallet_history(
        self,
        address: str,
        start: Optional[int] = None,
        end: Optional[int] = None,
    ) -> List[RawTransaction]:
        sigs = self.get_signatures(address, start=start, end=end)
        return self.fetch_transactions([s for s, _ in sigs])


def _retrying_session() -> requests.Session:
    session = requests.Session()
    retries = Retry(
        total=5,
        connect=5,
        read=5,
        backoff_factor=1.0,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=["POST"],
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retries)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


def parse_transaction(signature: str, payload: Any) -> Optional[RawTransaction]:
    """
    Build a RawTransaction from a getParsedTransaction result.
    Returns None when there is no transaction or no meta record.
    """
    if not isinstance(payload, dict):
        return None
    meta = payload.get("meta")
    if not isinstance(meta, dict):
        return None

    message = (payload.get("transaction") or {}).get("message") or {}
    keys = tuple(_pubkey(k) for k in (message.get("accountKeys") or []))

    return RawTransaction(
        signature=signature,
        block_time=payload.get("blockTime"),
        account_keys=keys,
        pre_balances=tuple(int(b or 0) for b in (meta.get("preBalances") or [])),
        post_balances=tuple(int(b or 0) for b in (meta.get("postBalances") or [])),
        pre_token_balances=_token_balances(meta.get("preTokenBalances")),
        post_token_balances=_token_balances(meta.get("postTokenBalances")),
        failed=meta.get("err") is not None,
    )


def _pubkey(key: Any) -> str:
    # jsonParsed gives {"pubkey": ..., "signer": ..}; legacy encodings give plain strings
    if isinstance(key, dict):
        return str(key.get("pubkey") or "")
    return str(key or "")


def _token_balances(entries: Any) -> Tuple[TokenBalance, ...]:
    out = []
    for t in entries or []:
        if not isinstance(t, dict):
            continue
        ui = t.get("uiTokenAmount") or {}
        out.append(
            TokenBalance(
                account_index=int(t.get("accountIndex", -1)),
                mint=(t.get("mint") or "").strip(),
                owner=(t.get("owner") or None),
                amount_raw=str(ui.get("amount") or "0"),
                decimals=int(ui.get("decimals") or 0),
            )
        )
    return tuple(out)
