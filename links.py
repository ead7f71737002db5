from __future__ import annotations


def explorer_tx_link(chain: str, tx_hash: str) -> str:
    if chain == "solana":
        return f"https://solscan.io/tx/{tx_hash}"
    return ""


def explorer_account_link(chain: str, address: str) -> str:
    if chain == "solana":
        return f"https://solscan.io/account/{address}"
    return ""
