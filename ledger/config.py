from __future__ import annotations

import math
import os
from dataclasses import dataclass


# Defaults
MIN_EVENT_VALUE = 0.01          # SOL; filters fee-only noise
MIN_NATIVE_CHANGE = 0.001       # SOL; typical fee is ~0.000005
STITCH_WINDOW_SECONDS = 10
COST_BASIS_METHODS = ("FIFO", "LIFO", "HIFO")


class ConfigError(ValueError):
    """Raised before any processing when a threshold makes no sense."""


@dataclass(frozen=True)
class EngineConfig:
    min_event_value: float = MIN_EVENT_VALUE
    min_native_change: float = MIN_NATIVE_CHANGE
    stitch_window_seconds: int = STITCH_WINDOW_SECONDS
    # Presentation only: the aggregator does not do lot matching.
    cost_basis_method: str = "FIFO"

    def __post_init__(self):
        for name in ("min_event_value", "min_native_change"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigError(f"{name} must be a number, got {value!r}")
            if not math.isfinite(value) or value < 0:
                raise ConfigError(f"{name} must be a finite value >= 0, got {value!r}")

        window = self.stitch_window_seconds
        if isinstance(window, bool) or not isinstance(window, int) or window < 0:
            raise ConfigError(f"stitch_window_seconds must be an int >= 0, got {window!r}")

        if self.cost_basis_method not in COST_BASIS_METHODS:
            raise ConfigError(
                f"cost_basis_method must be one of {', '.join(COST_BASIS_METHODS)}, "
                f"got {self.cost_basis_method!r}"
            )

    @classmethod
    def from_env(cls) -> "EngineConfig":
        def _float(key: str, default: float) -> float:
            raw = os.getenv(key, "").strip()
            if not raw:
                return default
            try:
                return float(raw)
            except ValueError as e:
                raise ConfigError(f"{key} must be a number, got {raw!r}") from e

        window_raw = os.getenv("LEDGER_STITCH_WINDOW_SECONDS", "").strip()
        try:
            window = int(window_raw) if window_raw else STITCH_WINDOW_SECONDS
        except ValueError as e:
            raise ConfigError(f"LEDGER_STITCH_WINDOW_SECONDS must be an integer, got {window_raw!r}") from e

        return cls(
            min_event_value=_float("LEDGER_MIN_EVENT_VALUE", MIN_EVENT_VALUE),
            min_native_change=_float("LEDGER_MIN_NATIVE_CHANGE", MIN_NATIVE_CHANGE),
            stitch_window_seconds=window,
            cost_basis_method=(os.getenv("LEDGER_COST_BASIS_METHOD", "FIFO").strip() or "FIFO").upper(),
        )
