import json

from solders.keypair import Keypair

from keystore import (
    FileKeypairStore,
    FileWalletStore,
    KeyedStore,
    create_keypairs,
    create_wallet,
    keypair_from_json,
    keypair_to_json,
)
from results import ErrorKind


def test_keypair_json_round_trip():
    kp = Keypair()
    assert keypair_from_json(keypair_to_json(kp)) == kp
    assert len(json.loads(keypair_to_json(kp))) == 64


async def test_use_mode_without_keypairs_writes_nothing(tmp_path):
    store = FileKeypairStore(tmp_path)

    result = await create_keypairs(store, 42, "use")

    assert not result.success
    assert result.kind == ErrorKind.MISSING_RESOURCE
    assert list(tmp_path.iterdir()) == []


async def test_create_then_use(tmp_path):
    store = FileKeypairStore(tmp_path)

    created = await create_keypairs(store, 42, "create", 3)
    loaded = await create_keypairs(store, 42, "use")

    assert created.success and loaded.success
    assert [str(k.pubkey()) for k in loaded.wallets] == created.pubkeys
    info = json.loads((tmp_path / "42" / "keyInfo.json").read_text())
    assert info["numOfWallets"] == 3
    assert info["pubkey1"] == created.pubkeys[0]
    assert sorted(p.name for p in (tmp_path / "42").iterdir()) == [
        "keyInfo.json", "keypair1.json", "keypair2.json", "keypair3.json",
    ]


async def test_create_refuses_when_keypairs_exist(tmp_path):
    store = FileKeypairStore(tmp_path)
    await create_keypairs(store, 1, "create", 2)

    result = await create_keypairs(store, 1, "create", 2)

    assert not result.success
    assert len(await store.get(1)) == 2


async def test_create_count_limits(tmp_path):
    store = FileKeypairStore(tmp_path)

    for bad in (0, 21, -3):
        result = await create_keypairs(store, 1, "create", bad)
        assert result.kind == ErrorKind.VALIDATION
    assert await store.get(1) == []


async def test_invalid_mode(tmp_path):
    result = await create_keypairs(FileKeypairStore(tmp_path), 1, "delete")
    assert result.kind == ErrorKind.VALIDATION


async def test_keypairs_load_in_numeric_order(tmp_path):
    store = FileKeypairStore(tmp_path)
    keypairs = [Keypair() for _ in range(11)]
    await store.put(7, keypairs)

    assert await store.get(7) == keypairs
    assert await store.list(7) == [str(k.pubkey()) for k in keypairs]


async def test_wallet_store(tmp_path):
    store = FileWalletStore(tmp_path)
    assert await store.load(5) is None

    result = await create_wallet(store, 5)
    again = await create_wallet(store, 5)

    assert result.success
    assert (await store.load(5)) == result.wallets[0]
    assert (tmp_path / "5.json").exists()
    assert not again.success


class MemoryStore(KeyedStore):
    def __init__(self):
        self.data = {}

    async def get(self, user_id):
        return list(self.data.get(user_id, []))

    async def put(self, user_id, keypairs):
        self.data[user_id] = list(keypairs)


async def test_operations_work_with_any_store():
    store = MemoryStore()

    created = await create_keypairs(store, 3, "create", 2)
    loaded = await create_keypairs(store, 3, "use")

    assert created.success and loaded.success
    assert loaded.pubkeys == created.pubkeys
    assert await store.list(3) == created.pubkeys


async def test_use_mode_refreshes_file_summary(tmp_path):
    store = FileKeypairStore(tmp_path)
    await create_keypairs(store, 9, "create", 2)
    (tmp_path / "9" / "keyInfo.json").unlink()

    await create_keypairs(store, 9, "use")

    assert json.loads((tmp_path / "9" / "keyInfo.json").read_text())["numOfWallets"] == 2
