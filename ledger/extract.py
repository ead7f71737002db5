from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Tuple

from ledger.models import (
    LAMPORTS_PER_SOL,
    NATIVE_ASSET,
    NATIVE_DECIMALS,
    SWAP,
    TRANSFER_IN,
    TRANSFER_OUT,
    WSOL_MINT,
    AssetAmount,
    ClassifiedEvent,
    RawTransaction,
    TokenBalance,
)
from logging_config import get_logger


log = get_logger(__name__)

# mint -> (raw delta, decimals)
MintDeltas = Dict[str, Tuple[int, int]]


def extract_events(tx: Optional[RawTransaction], wallet: str, min_native_change: float) -> List[ClassifiedEvent]:
    """
    Classify one transaction from the point of view of `wallet`.

    Returns zero or more events, all sharing tx.signature. A wallet that is
    not among the account keys simply gets nothing back.
    """
    if tx is None or tx.failed:
        return []

    try:
        wallet_index = tx.account_keys.index(wallet)
    except ValueError:
        return []

    lamport_delta = _balance_at(tx.post_balances, wallet_index) - _balance_at(tx.pre_balances, wallet_index)
    mint_deltas = reconcile_token_deltas(tx.pre_token_balances, tx.post_token_balances, wallet, wallet_index)

    outs, ins = _split_flows(lamport_delta, mint_deltas, min_native_change)
    if not outs and not ins:
        return []

    log.debug(
        "tx_deltas",
        tx=tx.signature[:8],
        sol=lamport_delta / LAMPORTS_PER_SOL,
        outs=len(outs),
        ins=len(ins),
    )

    counterparties = tuple(k for k in tx.account_keys if k != wallet)
    ts = tx.block_time or 0

    def event(kind: str, spent: Optional[AssetAmount], received: Optional[AssetAmount]) -> ClassifiedEvent:
        return ClassifiedEvent(
            tx_id=tx.signature,
            timestamp=ts,
            kind=kind,
            spent=spent,
            received=received,
            counterparties=counterparties,
        )

    if outs and ins:
        # Multi-hop swaps are only approximated: pair by position and repeat
        # the last entry of the shorter side.
        n = max(len(outs), len(ins))
        return [event(SWAP, outs[min(i, len(outs) - 1)], ins[min(i, len(ins) - 1)]) for i in range(n)]

    if outs:
        return [event(TRANSFER_OUT, a, None) for a in outs]

    return [event(TRANSFER_IN, None, a) for a in ins]


def reconcile_token_deltas(
    pre: Iterable[TokenBalance],
    post: Iterable[TokenBalance],
    wallet: str,
    wallet_index: int,
) -> MintDeltas:
    """
    Net token change per mint for the wallet.

    Pass 1 takes token accounts whose owner is the wallet. Pass 2 takes
    entries with no owner recorded, matched by the wallet's account index.
    Both passes feed the same per-mint totals.
    """
    pre = list(pre)
    post = list(post)
    deltas: MintDeltas = {}

    _accumulate(
        deltas,
        [t for t in pre if t.owner == wallet],
        [t for t in post if t.owner == wallet],
    )
    _accumulate(
        deltas,
        [t for t in pre if not t.owner and t.account_index == wallet_index],
        [t for t in post if not t.owner and t.account_index == wallet_index],
    )
    return deltas


def _accumulate(deltas: MintDeltas, pre: List[TokenBalance], post: List[TokenBalance]) -> None:
    pre_by_index = {}
    post_by_index = {}
    for t in pre:
        pre_by_index.setdefault(t.account_index, t)
    for t in post:
        post_by_index.setdefault(t.account_index, t)

    # Keep first-seen order so event ordering is stable
    indices = list(dict.fromkeys([t.account_index for t in pre] + [t.account_index for t in post]))

    for idx in indices:
        before = pre_by_index.get(idx)
        after = post_by_index.get(idx)
        ref = after or before
        if not ref.mint:
            continue

        decimals = after.decimals if after is not None else before.decimals
        delta = _raw(after) - _raw(before)
        if delta == 0:
            continue

        if ref.mint in deltas:
            amount, dec = deltas[ref.mint]
            deltas[ref.mint] = (amount + delta, dec)
        else:
            deltas[ref.mint] = (delta, decimals)


def _split_flows(
    lamport_delta: int,
    mint_deltas: MintDeltas,
    min_native_change: float,
) -> Tuple[List[AssetAmount], List[AssetAmount]]:
    outs: List[AssetAmount] = []
    ins: List[AssetAmount] = []

    def add(asset_id: str, raw: int, decimals: int) -> None:
        if raw < 0:
            outs.append(AssetAmount.from_raw(asset_id, raw, decimals))
        elif raw > 0:
            ins.append(AssetAmount.from_raw(asset_id, raw, decimals))

    # Native leg first: wrapped SOL wins when significant, else plain lamports.
    # Dust below the threshold on either side is treated as fees.
    mint_deltas = dict(mint_deltas)
    wsol = mint_deltas.pop(WSOL_MINT, None)
    if wsol is not None and abs(wsol[0]) / (10 ** wsol[1]) > min_native_change:
        add(NATIVE_ASSET, wsol[0], wsol[1])
    elif abs(lamport_delta) / LAMPORTS_PER_SOL > min_native_change:
        add(NATIVE_ASSET, lamport_delta, NATIVE_DECIMALS)

    for mint, (raw, decimals) in mint_deltas.items():
        add(mint, raw, decimals)

    return outs, ins


def _balance_at(balances, index: int) -> int:
    if index < len(balances) and balances[index] is not None:
        return int(balances[index])
    return 0


def _raw(entry: Optional[TokenBalance]) -> int:
    if entry is None or not entry.amount_raw:
        return 0
    return int(entry.amount_raw)
