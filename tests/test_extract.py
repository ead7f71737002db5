import pytest

from conftest import MINT_X, MINT_Y, POOL, PROGRAM, SOL, WALLET, make_tx, token
from ledger.extract import extract_events, reconcile_token_deltas
from ledger.models import NATIVE_ASSET, SWAP, TRANSFER_IN, TRANSFER_OUT, WSOL_MINT

MIN_CHANGE = 0.001


def test_no_deltas_yields_no_events():
    tx = make_tx(pre=(10 * SOL, 5, 0), post=(10 * SOL, 5, 0))
    assert extract_events(tx, WALLET, MIN_CHANGE) == []


def test_wallet_not_in_account_keys_yields_nothing():
    tx = make_tx(keys=(POOL, PROGRAM, MINT_X), pre=(SOL, 0, 0), post=(0, SOL, 0))
    assert extract_events(tx, WALLET, MIN_CHANGE) == []


def test_failed_and_missing_transactions_are_skipped():
    tx = make_tx(pre=(10 * SOL, 0, 0), post=(8 * SOL, 0, 0), failed=True)
    assert extract_events(tx, WALLET, MIN_CHANGE) == []
    assert extract_events(None, WALLET, MIN_CHANGE) == []


def test_sol_for_token_is_a_swap():
    tx = make_tx(
        pre=(10 * SOL, 0, 0),
        post=(8 * SOL, 0, 0),
        pre_tokens=[token(3, MINT_X, 0)],
        post_tokens=[token(3, MINT_X, 1_000_000_000)],
    )
    events = extract_events(tx, WALLET, MIN_CHANGE)

    assert len(events) == 1
    ev = events[0]
    assert ev.kind == SWAP
    assert ev.spent.asset_id == NATIVE_ASSET
    assert ev.spent.quantity == 2.0
    assert ev.spent.raw_quantity == str(2 * SOL)
    assert ev.received.asset_id == MINT_X
    assert ev.received.quantity == 1000.0
    assert ev.received.decimals == 6
    assert ev.tx_id == "sig1"
    assert ev.timestamp == 1_700_000_000
    assert WALLET not in ev.counterparties
    assert set(ev.counterparties) == {POOL, PROGRAM}


def test_token_for_sol_is_a_swap_with_token_spent():
    tx = make_tx(
        pre=(SOL, 0, 0),
        post=(4 * SOL, 0, 0),
        pre_tokens=[token(3, MINT_X, 500_000)],
        post_tokens=[],
    )
    [ev] = extract_events(tx, WALLET, MIN_CHANGE)
    assert ev.kind == SWAP
    assert ev.spent.asset_id == MINT_X
    assert ev.spent.quantity == 0.5
    assert ev.received.asset_id == NATIVE_ASSET
    assert ev.received.quantity == 3.0


def test_only_outflow_is_transfer_out():
    tx = make_tx(pre=(10 * SOL, 0, 0), post=(7 * SOL, 3 * SOL, 0))
    [ev] = extract_events(tx, WALLET, MIN_CHANGE)
    assert ev.kind == TRANSFER_OUT
    assert ev.spent.quantity == 3.0
    assert ev.received is None


def test_only_inflow_is_transfer_in():
    tx = make_tx(pre=(0, 5 * SOL, 0), post=(5 * SOL, 0, 0))
    [ev] = extract_events(tx, WALLET, MIN_CHANGE)
    assert ev.kind == TRANSFER_IN
    assert ev.spent is None
    assert ev.received.quantity == 5.0


def test_fee_only_change_is_noise():
    tx = make_tx(pre=(10 * SOL, 0, 0), post=(10 * SOL - 5000, 0, 0))
    assert extract_events(tx, WALLET, MIN_CHANGE) == []


def test_multiple_inflows_share_the_transaction_id():
    tx = make_tx(
        pre_tokens=[token(3, MINT_X, 0), token(4, MINT_Y, 0)],
        post_tokens=[token(3, MINT_X, 10_000_000), token(4, MINT_Y, 20_000_000)],
    )
    events = extract_events(tx, WALLET, MIN_CHANGE)
    assert [ev.kind for ev in events] == [TRANSFER_IN, TRANSFER_IN]
    assert {ev.tx_id for ev in events} == {"sig1"}
    assert [ev.received.asset_id for ev in events] == [MINT_X, MINT_Y]


def test_swap_pairing_repeats_last_of_shorter_side():
    tx = make_tx(
        pre=(10 * SOL, 0, 0),
        post=(9 * SOL, 0, 0),
        pre_tokens=[token(3, MINT_X, 0), token(4, MINT_Y, 0)],
        post_tokens=[token(3, MINT_X, 10_000_000), token(4, MINT_Y, 20_000_000)],
    )
    events = extract_events(tx, WALLET, MIN_CHANGE)
    assert len(events) == 2
    assert all(ev.kind == SWAP for ev in events)
    assert [ev.spent.asset_id for ev in events] == [NATIVE_ASSET, NATIVE_ASSET]
    assert [ev.received.asset_id for ev in events] == [MINT_X, MINT_Y]


def test_wrapped_sol_counts_as_native():
    # SOL wrapped beforehand: the lamport balance barely moves, wSOL pays for the token
    tx = make_tx(
        pre=(SOL, 0, 0),
        post=(SOL - 5000, 0, 0),
        pre_tokens=[token(3, WSOL_MINT, 2 * SOL, decimals=9), token(4, MINT_X, 0)],
        post_tokens=[token(3, WSOL_MINT, 0, decimals=9), token(4, MINT_X, 7_000_000)],
    )
    [ev] = extract_events(tx, WALLET, MIN_CHANGE)
    assert ev.kind == SWAP
    assert ev.spent.asset_id == NATIVE_ASSET
    assert ev.spent.quantity == 2.0
    assert ev.received.asset_id == MINT_X


def test_wrapped_sol_dust_falls_back_to_lamports():
    tx = make_tx(
        pre=(10 * SOL, 0, 0),
        post=(8 * SOL, 0, 0),
        pre_tokens=[token(3, WSOL_MINT, 1000, decimals=9), token(4, MINT_X, 0)],
        post_tokens=[token(3, WSOL_MINT, 0, decimals=9), token(4, MINT_X, 7_000_000)],
    )
    [ev] = extract_events(tx, WALLET, MIN_CHANGE)
    assert ev.spent.asset_id == NATIVE_ASSET
    assert ev.spent.quantity == 2.0
    # wSOL is never reported as a separate token
    assert ev.received.asset_id == MINT_X


def test_null_timestamp_becomes_zero():
    tx = make_tx(block_time=None, pre=(0, 5 * SOL, 0), post=(5 * SOL, 0, 0))
    [ev] = extract_events(tx, WALLET, MIN_CHANGE)
    assert ev.timestamp == 0


def test_reconcile_owner_match_first_then_account_position():
    pre = [
        token(3, MINT_X, 100, owner=WALLET),
        token(0, MINT_Y, 50, owner=None),
        token(5, MINT_Y, 999, owner=None),      # ownerless, but not the wallet's slot
        token(6, MINT_X, 1, owner=POOL),        # someone else's account
    ]
    post = [
        token(3, MINT_X, 300, owner=WALLET),
        token(0, MINT_Y, 20, owner=None),
        token(5, MINT_Y, 0, owner=None),
        token(6, MINT_X, 1_000, owner=POOL),
    ]
    deltas = reconcile_token_deltas(pre, post, WALLET, wallet_index=0)
    assert deltas == {MINT_X: (200, 6), MINT_Y: (-30, 6)}


def test_reconcile_sums_a_mint_across_token_accounts():
    pre = [token(3, MINT_X, 100), token(4, MINT_X, 0)]
    post = [token(3, MINT_X, 0), token(4, MINT_X, 250)]
    assert reconcile_token_deltas(pre, post, WALLET, wallet_index=0) == {MINT_X: (150, 6)}


def test_reconcile_handles_closed_and_opened_accounts():
    pre = [token(3, MINT_X, 40)]
    post = [token(4, MINT_Y, 60)]
    deltas = reconcile_token_deltas(pre, post, WALLET, wallet_index=0)
    assert deltas == {MINT_X: (-40, 6), MINT_Y: (60, 6)}


@pytest.mark.parametrize("threshold,expected", [(0.001, 1), (0.5, 0)])
def test_native_significance_threshold(threshold, expected):
    tx = make_tx(pre=(SOL, 0, 0), post=(SOL - SOL // 100, SOL // 100, 0))
    assert len(extract_events(tx, WALLET, threshold)) == expected
