"""
Shared builders for raw transactions and classified events.
"""

import pytest

from ledger.models import (
    NATIVE_ASSET,
    SWAP,
    TRANSFER_IN,
    TRANSFER_OUT,
    AssetAmount,
    ClassifiedEvent,
    RawTransaction,
    TokenBalance,
)

WALLET = "4EtAJ1p8RjqccEVhEhaYnEgQ6kA4JHR8oYqyLFwARUj6"
POOL = "8zFZHuSRuDpuAR7J6FzwyF3vKNx4CVW3DFHJerQhc7Zd"
PROGRAM = "JUP6LkbZbjS1jKKwapdHNy74zcZ3tLUZoi5QNyVTaV4"
MINT_X = "EdCNh8EzETJLFphW8yvdY7rDd8zBiyweiz8DU5gUUUka"
MINT_Y = "5CP6zv8a17mz91v6rMruVH6ziC5qAL8GFaJzwrX9Fvup"

SOL = 1_000_000_000


def make_tx(
    sig="sig1",
    block_time=1_700_000_000,
    keys=(WALLET, POOL, PROGRAM),
    pre=(10 * SOL, 0, 0),
    post=(10 * SOL, 0, 0),
    pre_tokens=(),
    post_tokens=(),
    failed=False,
):
    return RawTransaction(
        signature=sig,
        block_time=block_time,
        account_keys=tuple(keys),
        pre_balances=tuple(pre),
        post_balances=tuple(post),
        pre_token_balances=tuple(pre_tokens),
        post_token_balances=tuple(post_tokens),
        failed=failed,
    )


def token(index, mint, amount, owner=WALLET, decimals=6):
    return TokenBalance(account_index=index, mint=mint, owner=owner, amount_raw=str(amount), decimals=decimals)


def sol(quantity):
    return AssetAmount.from_raw(NATIVE_ASSET, round(quantity * SOL), 9)


def tok(mint, quantity, decimals=6):
    return AssetAmount.from_raw(mint, round(quantity * 10 ** decimals), decimals)


def buy(tx_id, ts, sol_amount, mint, qty, counterparties=(POOL,)):
    return ClassifiedEvent(tx_id=tx_id, timestamp=ts, kind=SWAP, spent=sol(sol_amount),
                           received=tok(mint, qty), counterparties=tuple(counterparties))


def sell(tx_id, ts, mint, qty, sol_amount, counterparties=(POOL,)):
    return ClassifiedEvent(tx_id=tx_id, timestamp=ts, kind=SWAP, spent=tok(mint, qty),
                           received=sol(sol_amount), counterparties=tuple(counterparties))


def deposit(tx_id, ts, amount, counterparties=(POOL,)):
    return ClassifiedEvent(tx_id=tx_id, timestamp=ts, kind=TRANSFER_IN, received=sol(amount),
                           counterparties=tuple(counterparties))


def withdrawal(tx_id, ts, amount, counterparties=(POOL,)):
    return ClassifiedEvent(tx_id=tx_id, timestamp=ts, kind=TRANSFER_OUT, spent=sol(amount),
                           counterparties=tuple(counterparties))
