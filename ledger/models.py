from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple


NATIVE_ASSET = "native"  # internal marker for SOL (native or wrapped)
WSOL_MINT = "So11111111111111111111111111111111111111112"
NATIVE_DECIMALS = 9
LAMPORTS_PER_SOL = 1_000_000_000

# ClassifiedEvent.kind
SWAP = "SWAP"
TRANSFER_IN = "TRANSFER_IN"
TRANSFER_OUT = "TRANSFER_OUT"

# TradeLeg.direction
BUY = "BUY"
SELL = "SELL"

# NativeTransfer.direction
DEPOSIT = "DEPOSIT"
WITHDRAWAL = "WITHDRAWAL"
REWARD = "REWARD"


@dataclass(frozen=True)
class AssetAmount:
    """An unsigned amount of one asset."""
    asset_id: str               # mint, or NATIVE_ASSET
    quantity: float             # UI units (raw / 10**decimals)
    raw_quantity: str           # integer base units, as a string
    decimals: int

    @classmethod
    def from_raw(cls, asset_id: str, raw: int, decimals: int) -> "AssetAmount":
        raw = abs(int(raw))
        return cls(
            asset_id=asset_id,
            quantity=raw / (10 ** decimals),
            raw_quantity=str(raw),
            decimals=decimals,
        )

    @property
    def is_native(self) -> bool:
        return self.asset_id == NATIVE_ASSET


@dataclass(frozen=True)
class TokenBalance:
    account_index: int
    mint: str
    owner: Optional[str]        # some programs leave this unset
    amount_raw: str
    decimals: int


@dataclass(frozen=True)
class RawTransaction:
    """One parsed transaction, as handed over by the retrieval layer."""
    signature: str
    block_time: Optional[int]
    account_keys: Tuple[str, ...]
    pre_balances: Tuple[int, ...]
    post_balances: Tuple[int, ...]
    pre_token_balances: Tuple[TokenBalance, ...] = ()
    post_token_balances: Tuple[TokenBalance, ...] = ()
    failed: bool = False


@dataclass(frozen=True)
class ClassifiedEvent:
    tx_id: str
    timestamp: int              # unix seconds, 0 when the block time is unknown
    kind: str                   # SWAP | TRANSFER_IN | TRANSFER_OUT
    spent: Optional[AssetAmount] = None
    received: Optional[AssetAmount] = None
    counterparties: Tuple[str, ...] = ()
    paired_tx_id: Optional[str] = None  # inbound leg of a stitched swap

    @property
    def native_amount(self) -> Optional[float]:
        if self.spent is not None and self.spent.is_native:
            return self.spent.quantity
        if self.received is not None and self.received.is_native:
            return self.received.quantity
        return None


@dataclass(frozen=True)
class TradeLeg:
    tx_id: str
    timestamp: int
    direction: str              # BUY | SELL
    native_amount: float
    asset_amount: float
    running_balance_after: float


@dataclass(frozen=True)
class NativeTransfer:
    tx_id: str
    timestamp: int
    direction: str              # DEPOSIT | WITHDRAWAL | REWARD
    amount: float
    running_balance_after: float
    label: Optional[str] = None
    counterparty: Optional[str] = None


@dataclass(frozen=True)
class TokenPosition:
    asset_id: str
    total_spent: float
    total_received: float
    total_acquired: float
    total_disposed: float
    remaining_quantity: float
    realized_pnl: float
    pnl_percent: float
    is_fully_closed: bool
    legs: Tuple[TradeLeg, ...]
    first_acquisition_time: int
    last_activity_time: int


@dataclass(frozen=True)
class Ledger:
    positions: Tuple[TokenPosition, ...] = ()
    transfers: Tuple[NativeTransfer, ...] = ()
    total_deposited: float = 0.0
    total_withdrawn: float = 0.0
    total_rewards: float = 0.0
    final_balance: float = 0.0

    @property
    def total_realized_pnl(self) -> float:
        return sum(p.realized_pnl for p in self.positions)


@dataclass(frozen=True)
class WalletAnalysis:
    address: str
    trades: Tuple[ClassifiedEvent, ...]
    ledger: Ledger
    total_transactions: int
    cost_basis_method: str
    profile_url: str = ""

    @property
    def trade_count(self) -> int:
        return len(self.trades)


def event_sort_key(ev: ClassifiedEvent) -> int:
    return ev.timestamp
