"""
Swap stitching.

Some venues settle one economic swap as two transactions: SOL (or a token)
leaves the wallet, and the bought asset lands a few seconds later. Without
merging, those show up as an unrelated withdrawal and deposit.

Matching is greedy and single pass: a TRANSFER_OUT takes the nearest
following TRANSFER_IN, and a consumed leg is never reconsidered. Three or
more transfers inside one window can pair up the wrong way.

A SOL withdrawal followed by a SOL deposit inside the window also merges,
into a SOL -> SOL swap that the aggregator skips, so neither movement counts
toward deposited or withdrawn totals.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

from ledger.models import SWAP, TRANSFER_IN, TRANSFER_OUT, ClassifiedEvent, event_sort_key
from logging_config import get_logger


log = get_logger(__name__)


def stitch_transfers(events: Sequence[ClassifiedEvent], window_seconds: int) -> List[ClassifiedEvent]:
    """Returns the stitched list, newest first."""
    ordered = sorted(events, key=event_sort_key)
    used = [False] * len(ordered)
    out: List[ClassifiedEvent] = []
    merged = 0

    for i, ev in enumerate(ordered):
        if used[i]:
            continue
        used[i] = True

        if ev.kind == TRANSFER_OUT:
            j = _find_match(ordered, used, i, window_seconds, TRANSFER_IN, step=1)
            if j is not None:
                used[j] = True
                out.append(_merge(ev, ordered[j]))
                merged += 1
                continue
        elif ev.kind == TRANSFER_IN:
            j = _find_match(ordered, used, i, window_seconds, TRANSFER_OUT, step=-1)
            if j is not None:
                used[j] = True
                out.append(_merge(ordered[j], ev))
                merged += 1
                continue

        out.append(ev)

    if merged:
        log.info("stitched_swaps", merged=merged, events_in=len(ordered), events_out=len(out))

    return sorted(out, key=event_sort_key, reverse=True)


def _find_match(
    ordered: Sequence[ClassifiedEvent],
    used: List[bool],
    i: int,
    window_seconds: int,
    kind: str,
    step: int,
) -> Optional[int]:
    origin = ordered[i].timestamp
    j = i + step
    while 0 <= j < len(ordered):
        other = ordered[j]
        if abs(other.timestamp - origin) > window_seconds:
            break
        if not used[j] and other.kind == kind:
            return j
        j += step
    return None


def _merge(out_leg: ClassifiedEvent, in_leg: ClassifiedEvent) -> ClassifiedEvent:
    counterparties = tuple(dict.fromkeys(out_leg.counterparties + in_leg.counterparties))
    return ClassifiedEvent(
        tx_id=out_leg.tx_id,
        timestamp=out_leg.timestamp,
        kind=SWAP,
        spent=out_leg.spent,
        received=in_leg.received,
        counterparties=counterparties,
        paired_tx_id=in_leg.tx_id,
    )
