from __future__ import annotations

import json
import os
from types import MappingProxyType
from typing import Iterable, Mapping, Optional, Tuple

from ledger.config import ConfigError


REWARD_TAG = "CASHBACK"

# Known addresses with labels
KNOWN_ADDRESSES: Mapping[str, str] = MappingProxyType({
    "AxiomRXZAq1Jgjj9pHmNqVP7Lhu67wLXZJZbaK87TTSk": REWARD_TAG,
})


class LabelResolver:
    """Read-only address -> tag lookup consulted by the aggregator."""

    def __init__(self, known: Optional[Mapping[str, str]] = None):
        self._known = MappingProxyType(dict(KNOWN_ADDRESSES if known is None else known))

    @classmethod
    def from_env(cls) -> "LabelResolver":
        """Defaults plus LEDGER_KNOWN_ADDRESSES (JSON object of address -> tag)."""
        known = dict(KNOWN_ADDRESSES)
        raw = os.getenv("LEDGER_KNOWN_ADDRESSES", "").strip()
        if raw:
            try:
                extra = json.loads(raw)
            except ValueError as e:
                raise ConfigError("LEDGER_KNOWN_ADDRESSES is not valid JSON") from e
            if not isinstance(extra, dict):
                raise ConfigError("LEDGER_KNOWN_ADDRESSES must be a JSON object")
            known.update({str(k).strip(): str(v).strip() for k, v in extra.items() if k and v})
        return cls(known)

    def tag_for(self, address: str) -> Optional[str]:
        return self._known.get(address)

    def resolve(self, addresses: Iterable[str]) -> Optional[Tuple[str, str]]:
        """First (address, tag) hit in the given order, or None."""
        for addr in addresses:
            tag = self._known.get(addr)
            if tag:
                return addr, tag
        return None

    def is_reward(self, tag: Optional[str]) -> bool:
        return tag == REWARD_TAG
