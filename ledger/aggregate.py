from __future__ import annotations

from collections import defaultdict
from typing import Dict, List, Optional, Sequence

from ledger.labels import LabelResolver
from ledger.models import (
    BUY,
    DEPOSIT,
    REWARD,
    SELL,
    SWAP,
    TRANSFER_IN,
    TRANSFER_OUT,
    WITHDRAWAL,
    ClassifiedEvent,
    Ledger,
    NativeTransfer,
    TokenPosition,
    TradeLeg,
    event_sort_key,
)


class TradeAggregator:
    """
    Turns stitched events into per-token positions and SOL transfers.

    One forward pass in time keeps a single running SOL balance for the whole
    wallet, starting at 0. Every leg and transfer records the balance right
    after its own movement, so the last entry's balance is the net of all SOL
    flows seen. Token-for-token swaps and plain token transfers carry no SOL
    and are left out.
    """

    def __init__(self, labels: Optional[LabelResolver] = None):
        self.labels = labels or LabelResolver()

    def aggregate(self, events: Sequence[ClassifiedEvent]) -> Ledger:
        legs_by_asset: Dict[str, List[TradeLeg]] = defaultdict(list)
        transfers: List[NativeTransfer] = []
        balance = 0.0

        for ev in sorted(events, key=event_sort_key):
            if ev.kind == SWAP:
                spent, received = ev.spent, ev.received
                if spent is None or received is None:
                    continue
                if spent.is_native and not received.is_native:
                    balance -= spent.quantity
                    legs_by_asset[received.asset_id].append(
                        TradeLeg(
                            tx_id=ev.tx_id,
                            timestamp=ev.timestamp,
                            direction=BUY,
                            native_amount=spent.quantity,
                            asset_amount=received.quantity,
                            running_balance_after=balance,
                        )
                    )
                elif received.is_native and not spent.is_native:
                    balance += received.quantity
                    legs_by_asset[spent.asset_id].append(
                        TradeLeg(
                            tx_id=ev.tx_id,
                            timestamp=ev.timestamp,
                            direction=SELL,
                            native_amount=received.quantity,
                            asset_amount=spent.quantity,
                            running_balance_after=balance,
                        )
                    )
                # token <-> token swaps are not priced

            elif ev.kind == TRANSFER_IN and ev.received is not None and ev.received.is_native:
                balance += ev.received.quantity
                transfers.append(self._inbound(ev, balance))

            elif ev.kind == TRANSFER_OUT and ev.spent is not None and ev.spent.is_native:
                balance -= ev.spent.quantity
                transfers.append(self._outbound(ev, balance))

        positions = [_position(asset_id, legs) for asset_id, legs in legs_by_asset.items()]
        positions.sort(key=lambda p: p.last_activity_time, reverse=True)
        transfers.sort(key=lambda t: t.timestamp, reverse=True)

        return Ledger(
            positions=tuple(positions),
            transfers=tuple(transfers),
            total_deposited=sum(t.amount for t in transfers if t.direction == DEPOSIT),
            total_withdrawn=sum(t.amount for t in transfers if t.direction == WITHDRAWAL),
            total_rewards=sum(t.amount for t in transfers if t.direction == REWARD),
            final_balance=balance,
        )

    def _inbound(self, ev: ClassifiedEvent, balance: float) -> NativeTransfer:
        direction = DEPOSIT
        label = None
        counterparty = None

        hit = self.labels.resolve(ev.counterparties)
        if hit:
            counterparty, tag = hit
            if self.labels.is_reward(tag):
                direction = REWARD
            else:
                label = tag

        return NativeTransfer(
            tx_id=ev.tx_id,
            timestamp=ev.timestamp,
            direction=direction,
            amount=ev.received.quantity,
            running_balance_after=balance,
            label=label,
            counterparty=counterparty,
        )

    def _outbound(self, ev: ClassifiedEvent, balance: float) -> NativeTransfer:
        # Labels on withdrawals are informational only
        label = None
        counterparty = None
        hit = self.labels.resolve(ev.counterparties)
        if hit:
            counterparty, label = hit

        return NativeTransfer(
            tx_id=ev.tx_id,
            timestamp=ev.timestamp,
            direction=WITHDRAWAL,
            amount=ev.spent.quantity,
            running_balance_after=balance,
            label=label,
            counterparty=counterparty,
        )


def _position(asset_id: str, legs: List[TradeLeg]) -> TokenPosition:
    total_spent = 0.0
    total_received = 0.0
    total_acquired = 0.0
    total_disposed = 0.0

    for leg in legs:
        if leg.direction == BUY:
            total_spent += leg.native_amount
            total_acquired += leg.asset_amount
        else:
            total_received += leg.native_amount
            total_disposed += leg.asset_amount

    remaining = max(0.0, total_acquired - total_disposed)
    pnl = total_received - total_spent
    pnl_percent = (pnl / total_spent) * 100 if total_spent > 0 else 0.0
    first_buy = next((leg for leg in legs if leg.direction == BUY), legs[0])

    return TokenPosition(
        asset_id=asset_id,
        total_spent=total_spent,
        total_received=total_received,
        total_acquired=total_acquired,
        total_disposed=total_disposed,
        remaining_quantity=remaining,
        realized_pnl=pnl,
        pnl_percent=pnl_percent,
        is_fully_closed=remaining <= 0,
        legs=tuple(legs),
        first_acquisition_time=first_buy.timestamp,
        last_activity_time=legs[-1].timestamp,
    )
