from __future__ import annotations

from typing import Iterable, List

from ledger.models import ClassifiedEvent


def meets_min_value(ev: ClassifiedEvent, min_value: float) -> bool:
    """
    Keep an event when its SOL leg is worth at least `min_value`.
    Events without a SOL leg can't be valued cheaply, so they are kept.
    """
    native = ev.native_amount
    if native is None:
        return True
    return native >= min_value


def filter_events(events: Iterable[ClassifiedEvent], min_value: float) -> List[ClassifiedEvent]:
    return [ev for ev in events if meets_min_value(ev, min_value)]
