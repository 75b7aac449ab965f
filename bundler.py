"""
Chunked-transaction batch builder.

Instructions are grouped into fixed-size chunks, each chunk becomes one signed
v0 transaction, the Jito tip rides in the last chunk and the whole ordered list
is sent to the block engine as one atomic bundle.
"""
import base64
import logging
from typing import Iterable, List, Optional, Sequence, TypeVar

import httpx
from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from solders.transaction import VersionedTransaction

from config import BLOCK_ENGINE_URL, HTTP_TIMEOUT, MAX_BUNDLE_TRANSACTIONS, MAX_TRANSACTION_SIZE
from errors import (
    BundleSubmissionError,
    MissingSignerError,
    NoLeaderError,
    TransactionTooLargeError,
    ValidationError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

NO_LEADER_MARKER = "no connected leader up soon"


# ---------------------- Chunker ---------------------- #
def chunk(items: Sequence[T], size: int) -> List[List[T]]:
    """Split items into ceil(len/size) ordered lists of at most `size` items."""
    if size < 1:
        raise ValueError("chunk size must be >= 1")
    items = list(items)
    return [items[i:i + size] for i in range(0, len(items), size)]


# ---------------------- Tip injector ---------------------- #
def tip_instruction(payer: Pubkey, tip_account: Pubkey, tip_lamports: int) -> Instruction:
    return transfer(TransferParams(from_pubkey=payer, to_pubkey=tip_account, lamports=int(tip_lamports)))


def append_tip(chunks: List[List[Instruction]], payer: Pubkey, tip_lamports: int, tip_account: Pubkey) -> List[List[Instruction]]:
    """Return a copy of `chunks` with a tip transfer as the final instruction of the last chunk."""
    if not chunks:
        return chunks
    tipped = [list(c) for c in chunks]
    tipped[-1].append(tip_instruction(payer, tip_account, tip_lamports))
    logger.info("Jito tip of %d lamports added to chunk %d/%d", tip_lamports, len(tipped), len(tipped))
    return tipped


# ---------------------- Transaction assembler ---------------------- #
def build_transaction(
    instructions: Sequence[Instruction],
    blockhash: Hash,
    payer: Keypair,
    extra_signers: Iterable[Keypair] = (),
    index: Optional[int] = None,
) -> VersionedTransaction:
    """Compile, sign and size-check one chunk.

    Only the extra signers whose keys the compiled message actually requires are
    used, so callers can pass a whole group of keypairs.
    """
    message = MessageV0.try_compile(payer.pubkey(), list(instructions), [], blockhash)

    available = {payer.pubkey(): payer}
    for kp in extra_signers:
        available.setdefault(kp.pubkey(), kp)

    required = message.account_keys[:message.header.num_required_signatures]
    signers = []
    for key in required:
        if key not in available:
            raise MissingSignerError(f"No keypair for required signer {key}")
        signers.append(available[key])

    tx = VersionedTransaction(message, signers)
    size = len(bytes(tx))
    logger.info("Txn size: %d", size)
    if size > MAX_TRANSACTION_SIZE:
        raise TransactionTooLargeError(size, index)
    return tx


def build_transactions(
    chunks: Sequence[Sequence[Instruction]],
    blockhash: Hash,
    payer: Keypair,
    extra_signers: Iterable[Keypair] = (),
) -> List[VersionedTransaction]:
    extra_signers = list(extra_signers)
    return [
        build_transaction(c, blockhash, payer, extra_signers, index=i)
        for i, c in enumerate(chunks)
    ]


# ---------------------- Bundle submitter ---------------------- #
class BundleSubmitter:
    """Sends signed transactions to a Jito block engine as one atomic bundle."""

    def __init__(self, block_engine_url: str = BLOCK_ENGINE_URL, http_client: Optional[httpx.AsyncClient] = None):
        self.url = f"{block_engine_url.rstrip('/')}/api/v1/bundles"
        self._http_client = http_client
        self._owns_client = http_client is None

    async def _client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=HTTP_TIMEOUT)
        return self._http_client

    async def close(self):
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def send_bundle(self, transactions: Sequence[VersionedTransaction]) -> str:
        if not transactions:
            raise ValidationError("Bundle must contain at least one transaction")
        if len(transactions) > MAX_BUNDLE_TRANSACTIONS:
            raise ValidationError(
                f"Bundle needs {len(transactions)} transactions but Jito accepts at most {MAX_BUNDLE_TRANSACTIONS}; use fewer wallets"
            )

        encoded = [base64.b64encode(bytes(tx)).decode("ascii") for tx in transactions]
        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "sendBundle",
            "params": [encoded, {"encoding": "base64"}],
        }

        client = await self._client()
        try:
            response = await client.post(self.url, json=payload)
            data = response.json()
        except httpx.HTTPError as e:
            raise BundleSubmissionError(f"Block engine unreachable: {e}") from e
        except ValueError as e:
            raise BundleSubmissionError(f"Block engine returned HTTP {response.status_code}") from e

        if "error" in data:
            error = data["error"]
            message = error.get("message", "Unknown relay error") if isinstance(error, dict) else str(error)
            if NO_LEADER_MARKER in message.lower():
                raise NoLeaderError(message)
            raise BundleSubmissionError(message)
        if response.status_code != 200 or "result" not in data:
            raise BundleSubmissionError(f"Block engine returned HTTP {response.status_code} without a bundle id")

        bundle_id = data["result"]
        logger.info("Bundle %s sent (%d txns)", bundle_id, len(transactions))
        return bundle_id
