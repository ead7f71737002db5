from __future__ import annotations

from typing import Iterable, List, Optional

from ledger.aggregate import TradeAggregator
from ledger.config import EngineConfig
from ledger.extract import extract_events
from ledger.filters import filter_events
from ledger.labels import LabelResolver
from ledger.models import ClassifiedEvent, RawTransaction, WalletAnalysis, event_sort_key
from ledger.stitch import stitch_transfers
from links import explorer_account_link
from logging_config import get_logger


log = get_logger(__name__)


def in_date_range(block_time: Optional[int], start: Optional[int], end: Optional[int]) -> bool:
    # Unknown block time is never excluded
    if block_time is None:
        return True
    if start is not None and block_time < start:
        return False
    if end is not None and block_time > end:
        return False
    return True


class LedgerEngine:
    """
    raw tx -> extract -> filter -> stitch -> aggregate.

    Configuration is validated when EngineConfig is built, so a bad threshold
    fails before any transaction is looked at.
    """

    def __init__(self, config: Optional[EngineConfig] = None, labels: Optional[LabelResolver] = None):
        self.config = config or EngineConfig()
        self.aggregator = TradeAggregator(labels)

    def classify(self, tx: RawTransaction, wallet: str) -> List[ClassifiedEvent]:
        events = extract_events(tx, wallet, self.config.min_native_change)
        return filter_events(events, self.config.min_event_value)

    def run(
        self,
        wallet: str,
        transactions: Iterable[RawTransaction],
        start: Optional[int] = None,
        end: Optional[int] = None,
    ) -> WalletAnalysis:
        wallet = wallet.strip()
        events: List[ClassifiedEvent] = []
        seen = 0

        for tx in transactions:
            if tx is None or not in_date_range(tx.block_time, start, end):
                continue
            seen += 1
            events.extend(self.classify(tx, wallet))

        events.sort(key=event_sort_key)
        trades = stitch_transfers(events, self.config.stitch_window_seconds)
        ledger = self.aggregator.aggregate(trades)

        log.info(
            "ledger_built",
            wallet=wallet,
            transactions=seen,
            events=len(events),
            trades=len(trades),
            tokens=len(ledger.positions),
            transfers=len(ledger.transfers),
            total_pnl=round(ledger.total_realized_pnl, 4),
            deposited=round(ledger.total_deposited, 4),
            withdrawn=round(ledger.total_withdrawn, 4),
            rewards=round(ledger.total_rewards, 4),
        )

        return WalletAnalysis(
            address=wallet,
            trades=tuple(trades),
            ledger=ledger,
            total_transactions=seen,
            cost_basis_method=self.config.cost_basis_method,
            profile_url=explorer_account_link("solana", wallet),
        )
