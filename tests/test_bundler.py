import json

import httpx
import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer

from bundler import BundleSubmitter, append_tip, build_transaction, build_transactions, chunk
from errors import BundleSubmissionError, MissingSignerError, NoLeaderError, TransactionTooLargeError, ValidationError


def _transfers(payer, count):
    return [
        transfer(TransferParams(from_pubkey=payer.pubkey(), to_pubkey=Pubkey.new_unique(), lamports=1000))
        for _ in range(count)
    ]


@pytest.mark.parametrize("n,size", [(0, 3), (1, 3), (10, 10), (11, 10), (23, 6), (5, 1)])
def test_chunk_preserves_order_and_bounds(n, size):
    items = list(range(n))
    chunks = chunk(items, size)

    assert len(chunks) == -(-n // size)
    assert all(0 < len(c) <= size for c in chunks)
    assert [x for c in chunks for x in c] == items


def test_chunk_rejects_zero_size():
    with pytest.raises(ValueError):
        chunk([1, 2], 0)


def test_tip_is_last_instruction_of_last_chunk_only():
    payer = Keypair()
    tip_account = Pubkey.new_unique()
    chunks = chunk(_transfers(payer, 7), 3)

    tipped = append_tip(chunks, payer.pubkey(), 5000, tip_account)

    assert [len(c) for c in tipped] == [3, 3, 2]
    assert tipped[:2] == chunks[:2]
    tip = tipped[-1][-1]
    assert tip.accounts[1].pubkey == tip_account
    assert tip.accounts[0].pubkey == payer.pubkey()
    # input is left untouched
    assert len(chunks[-1]) == 1


def test_append_tip_on_empty_list():
    assert append_tip([], Pubkey.new_unique(), 5000, Pubkey.new_unique()) == []


def test_build_transaction_signs_and_fits():
    payer = Keypair()
    tx = build_transaction(_transfers(payer, 3), Hash.default(), payer)

    assert tx.message.account_keys[0] == payer.pubkey()
    assert len(tx.signatures) == 1
    assert len(bytes(tx)) <= 1232


def test_oversized_chunk_raises_with_index():
    payer = Keypair()
    chunks = [_transfers(payer, 2), _transfers(payer, 40)]

    with pytest.raises(TransactionTooLargeError) as exc_info:
        build_transactions(chunks, Hash.default(), payer)

    assert exc_info.value.index == 1
    assert exc_info.value.size > 1232
    assert "Tx 2 too big" in str(exc_info.value)


def test_missing_signer_raises():
    payer = Keypair()
    other = Keypair()
    ix = transfer(TransferParams(from_pubkey=other.pubkey(), to_pubkey=payer.pubkey(), lamports=1))

    with pytest.raises(MissingSignerError):
        build_transaction([ix], Hash.default(), payer)


def test_extra_signers_only_used_when_required():
    payer = Keypair()
    other = Keypair()
    ix = transfer(TransferParams(from_pubkey=other.pubkey(), to_pubkey=payer.pubkey(), lamports=1))

    tx = build_transaction([ix], Hash.default(), payer, [other, Keypair()])

    assert len(tx.signatures) == 2


def _submitter(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return BundleSubmitter("https://block-engine.test", http_client=client)


def _tx():
    payer = Keypair()
    return build_transaction(_transfers(payer, 1), Hash.default(), payer)


async def test_send_bundle_returns_bundle_id():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": "abc123"})

    bundle_id = await _submitter(handler).send_bundle([_tx(), _tx()])

    assert bundle_id == "abc123"
    assert seen["url"] == "https://block-engine.test/api/v1/bundles"
    assert seen["body"]["method"] == "sendBundle"
    assert seen["body"]["params"][1] == {"encoding": "base64"}
    assert len(seen["body"]["params"][0]) == 2


async def test_send_bundle_no_leader():
    def handler(request):
        return httpx.Response(200, json={"error": {"code": -32000, "message": "bundle contains no connected leader up soon"}})

    with pytest.raises(NoLeaderError) as exc_info:
        await _submitter(handler).send_bundle([_tx()])

    assert "no connected leader up soon" in str(exc_info.value)


async def test_send_bundle_relay_error():
    def handler(request):
        return httpx.Response(400, json={"error": {"code": -32602, "message": "bundle rejected"}})

    with pytest.raises(BundleSubmissionError, match="bundle rejected"):
        await _submitter(handler).send_bundle([_tx()])


async def test_send_bundle_non_json_response():
    def handler(request):
        return httpx.Response(502, text="bad gateway")

    with pytest.raises(BundleSubmissionError, match="HTTP 502"):
        await _submitter(handler).send_bundle([_tx()])


async def test_send_bundle_rejects_more_than_five():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={"result": "x"})

    with pytest.raises(ValidationError):
        await _submitter(handler).send_bundle([_tx() for _ in range(6)])
    assert calls == []


async def test_send_bundle_rejects_empty():
    with pytest.raises(ValidationError):
        await _submitter(lambda request: httpx.Response(200, json={"result": "x"})).send_bundle([])
