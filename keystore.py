import json
import logging
import os
import re
from pathlib import Path
from typing import List

import aiofiles
from solders.keypair import Keypair

from config import KEYPAIRS_DIR, MAX_KEYPAIRS, WALLETS_DIR
from results import ErrorKind, Result

logger = logging.getLogger(__name__)

KEYPAIR_FILE = re.compile(r"^keypair(\d+)\.json$")
KEY_INFO_FILE = "keyInfo.json"


def keypair_to_json(keypair: Keypair) -> str:
    return json.dumps(list(bytes(keypair)))


def keypair_from_json(text: str) -> Keypair:
    return Keypair.from_bytes(bytes(json.loads(text)))


class KeyedStore:
    """Keypairs stored per Telegram user id. Backends only implement these three calls."""

    async def get(self, user_id: int) -> List[Keypair]:
        raise NotImplementedError

    async def put(self, user_id: int, keypairs: List[Keypair]) -> None:
        raise NotImplementedError

    async def list(self, user_id: int) -> List[str]:
        return [str(kp.pubkey()) for kp in await self.get(user_id)]

    async def refresh(self, user_id: int, keypairs: List[Keypair]) -> None:
        """Called when existing keypairs are reused. Nothing to do by default."""


class FileKeypairStore(KeyedStore):
    """One directory per user holding keypair<N>.json files and a keyInfo.json summary."""

    def __init__(self, root: str = KEYPAIRS_DIR):
        self.root = Path(root)

    def user_dir(self, user_id: int) -> Path:
        return self.root / str(user_id)

    async def get(self, user_id: int) -> List[Keypair]:
        user_dir = self.user_dir(user_id)
        if not user_dir.is_dir():
            return []

        numbered = []
        for name in os.listdir(user_dir):
            match = KEYPAIR_FILE.match(name)
            if match:
                numbered.append((int(match.group(1)), name))

        keypairs = []
        for _, name in sorted(numbered):
            async with aiofiles.open(user_dir / name, "r") as f:
                keypairs.append(keypair_from_json(await f.read()))
        return keypairs

    async def put(self, user_id: int, keypairs: List[Keypair]) -> None:
        user_dir = self.user_dir(user_id)
        user_dir.mkdir(parents=True, exist_ok=True)
        for i, kp in enumerate(keypairs):
            async with aiofiles.open(user_dir / f"keypair{i + 1}.json", "w") as f:
                await f.write(keypair_to_json(kp))
        await self.write_summary(user_id, keypairs)
        logger.info("Stored %d keypairs for user %s", len(keypairs), user_id)

    async def refresh(self, user_id: int, keypairs: List[Keypair]) -> None:
        await self.write_summary(user_id, keypairs)

    async def write_summary(self, user_id: int, keypairs: List[Keypair]) -> None:
        info = {"numOfWallets": len(keypairs)}
        for i, kp in enumerate(keypairs):
            info[f"pubkey{i + 1}"] = str(kp.pubkey())
        async with aiofiles.open(self.user_dir(user_id) / KEY_INFO_FILE, "w") as f:
            await f.write(json.dumps(info, indent=2))


class FileWalletStore(KeyedStore):
    """The user's main funding wallet, one <user_id>.json file per user."""

    def __init__(self, root: str = WALLETS_DIR):
        self.root = Path(root)

    def path(self, user_id: int) -> Path:
        return self.root / f"{user_id}.json"

    async def get(self, user_id: int) -> List[Keypair]:
        path = self.path(user_id)
        if not path.exists():
            return []
        async with aiofiles.open(path, "r") as f:
            return [keypair_from_json(await f.read())]

    async def put(self, user_id: int, keypairs: List[Keypair]) -> None:
        if len(keypairs) != 1:
            raise ValueError("A user has exactly one main wallet")
        self.root.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(self.path(user_id), "w") as f:
            await f.write(keypair_to_json(keypairs[0]))
        logger.info("Stored main wallet %s for user %s", keypairs[0].pubkey(), user_id)

    async def load(self, user_id: int) -> Keypair | None:
        wallets = await self.get(user_id)
        return wallets[0] if wallets else None


# ---------------------- Operations ---------------------- #
async def create_keypairs(store: KeyedStore, user_id: int, mode: str, num_wallets: int = 5) -> Result:
    """Create a fresh set of volume keypairs or load the existing ones."""
    try:
        if mode == "create":
            if not isinstance(num_wallets, int) or isinstance(num_wallets, bool) or not 0 < num_wallets <= MAX_KEYPAIRS:
                return Result.fail(ErrorKind.VALIDATION, f"Use 1–{MAX_KEYPAIRS} wallets.")
            if await store.get(user_id):
                return Result.fail(ErrorKind.VALIDATION, 'You already have keypairs! Use "use" mode.')

            wallets = [Keypair() for _ in range(num_wallets)]
            await store.put(user_id, wallets)
            message = f"Created {len(wallets)} keypairs for you."

        elif mode == "use":
            wallets = await store.get(user_id)
            if not wallets:
                return Result.fail(ErrorKind.MISSING_RESOURCE, 'No keypairs found. Use "create" first.')
            await store.refresh(user_id, wallets)
            message = f"Loaded {len(wallets)} keypairs."

        else:
            return Result.fail(ErrorKind.VALIDATION, "Invalid mode.")

        return Result.ok(message, wallets=wallets, pubkeys=[str(w.pubkey()) for w in wallets])
    except OSError as e:
        logger.exception("Keypair store failure for user %s", user_id)
        return Result.fail(ErrorKind.INTERNAL, f"Error: {e}")


async def create_wallet(store: FileWalletStore, user_id: int) -> Result:
    if await store.load(user_id) is not None:
        return Result.fail(ErrorKind.VALIDATION, "You already have a wallet! Use /mywallet")
    keypair = Keypair()
    await store.put(user_id, [keypair])
    return Result.ok("Your Main Wallet Created!", wallets=[keypair], pubkeys=[str(keypair.pubkey())])
