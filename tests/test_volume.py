import struct
from unittest.mock import AsyncMock

import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from errors import NoLeaderError, ValidationError
from results import ErrorKind
from volume import MarketState, PoolKeys, make_swap, volume


def _pool_keys():
    return PoolKeys(**{name: Pubkey.new_unique() for name in PoolKeys.__dataclass_fields__})


def test_make_swap_accounts():
    pool = _pool_keys()
    owner, wsol, token = Pubkey.new_unique(), Pubkey.new_unique(), Pubkey.new_unique()

    ix = make_swap(pool, wsol, token, False, owner)

    assert ix.data == b"\x09" + bytes(16)
    assert len(ix.accounts) == 19
    assert [i for i, m in enumerate(ix.accounts) if m.is_signer] == [17]
    assert [i for i, m in enumerate(ix.accounts) if not m.is_writable] == [0, 2, 7, 14]
    assert ix.accounts[15].pubkey == wsol
    assert ix.accounts[16].pubkey == token
    assert ix.accounts[17].pubkey == owner


def test_make_swap_sell_reverses_direction():
    pool = _pool_keys()
    owner, wsol, token = Pubkey.new_unique(), Pubkey.new_unique(), Pubkey.new_unique()

    ix = make_swap(pool, wsol, token, True, owner)

    assert ix.accounts[15].pubkey == token
    assert ix.accounts[16].pubkey == wsol


def test_market_state_offsets():
    keys = [Pubkey.new_unique() for _ in range(7)]
    data = bytearray(388)
    struct.pack_into("<Q", data, 45, 3)
    for offset, key in zip((53, 85, 117, 165, 253, 285, 317), keys):
        data[offset:offset + 32] = bytes(key)

    market = MarketState.from_bytes(bytes(data))

    assert market.vault_signer_nonce == 3
    assert [market.base_mint, market.quote_mint, market.base_vault, market.quote_vault,
            market.event_queue, market.bids, market.asks] == keys


def test_market_state_too_short():
    with pytest.raises(ValidationError):
        MarketState.from_bytes(bytes(100))


def _provider():
    provider = AsyncMock()
    provider.get_pool_keys.return_value = _pool_keys()
    return provider


async def test_volume_runs_every_cycle(payer, keypairs, rpc, submitter):
    submitter.send_bundle.side_effect = ["b1", "b2"]
    provider = _provider()

    result = await volume(payer, keypairs, str(Pubkey.new_unique()), 2, 0, 0.01, rpc, submitter, provider)

    assert result.success
    assert result.bundle_ids == ["b1", "b2"]
    provider.get_pool_keys.assert_awaited_once()
    assert rpc.get_latest_blockhash.await_count == 2
    txns = submitter.send_bundle.call_args.args[0]
    assert len(txns) == len(keypairs)
    # each volume wallet pays for its own transaction, the last one also carries the tip
    assert [t.message.account_keys[0] for t in txns] == [k.pubkey() for k in keypairs]
    assert len(txns[-1].signatures) == 2


async def test_volume_stops_on_relay_failure(payer, keypairs, rpc, submitter):
    submitter.send_bundle.side_effect = ["b1", NoLeaderError()]

    result = await volume(payer, keypairs, str(Pubkey.new_unique()), 3, 0, 0.01, rpc, submitter, _provider())

    assert not result.success
    assert result.kind == ErrorKind.RELAY
    assert result.bundle_ids == ["b1"]
    assert submitter.send_bundle.await_count == 2


@pytest.mark.parametrize("market,cycles,delay,tip", [
    ("not-a-key", 1, 0, 0.01),
    ("", 1, 0, 0.01),
    (None, 0, 0, 0.01),
    (None, 1, -1, 0.01),
    (None, 1, 0, 0),
])
async def test_volume_invalid_parameters(payer, keypairs, rpc, submitter, market, cycles, delay, tip):
    market = str(Pubkey.new_unique()) if market is None else market

    result = await volume(payer, keypairs, market, cycles, delay, tip, rpc, submitter, _provider())

    assert result.kind == ErrorKind.VALIDATION
    submitter.send_bundle.assert_not_called()


async def test_volume_without_keypairs(payer, rpc, submitter):
    result = await volume(payer, [], str(Pubkey.new_unique()), 1, 0, 0.01, rpc, submitter, _provider())
    assert result.kind == ErrorKind.MISSING_RESOURCE


async def test_volume_rejects_more_wallets_than_a_bundle_holds(payer, rpc, submitter):
    provider = _provider()
    keypairs = [Keypair() for _ in range(6)]

    result = await volume(payer, keypairs, str(Pubkey.new_unique()), 1, 0, 0.01, rpc, submitter, provider)

    assert result.kind == ErrorKind.VALIDATION
    assert "at most 5" in result.message
    provider.get_pool_keys.assert_not_called()
    submitter.send_bundle.assert_not_called()
