import asyncio
import logging
import struct
from dataclasses import dataclass
from typing import List, Optional

from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from spl.token.constants import TOKEN_PROGRAM_ID, WRAPPED_SOL_MINT
from spl.token.instructions import create_idempotent_associated_token_account, get_associated_token_address

from bundler import BundleSubmitter, append_tip, build_transaction
from config import MAX_BUNDLE_TRANSACTIONS, RAYDIUM_AMM_V4_PROGRAM_ID, SWAP_PROGRAM_ID, TIP_ACCOUNT
from distribute import sol_to_lamports
from errors import RpcError, ValidationError, VolumeBotError
from results import ErrorKind, Result
from rpc import SolanaRpc

logger = logging.getLogger(__name__)

AMM_V4_PROGRAM = Pubkey.from_string(RAYDIUM_AMM_V4_PROGRAM_ID)

# Swap instruction account indices that are read-only: token program, amm authority,
# market program, market authority.
READ_ONLY_SWAP_ACCOUNTS = {0, 2, 7, 14}
OWNER_ACCOUNT_INDEX = 17
SWAP_DISCRIMINATOR = bytes([0x09])

MARKET_STATE_MIN_LEN = 349


@dataclass
class PoolKeys:
    id: Pubkey
    base_mint: Pubkey
    quote_mint: Pubkey
    authority: Pubkey
    open_orders: Pubkey
    target_orders: Pubkey
    base_vault: Pubkey
    quote_vault: Pubkey
    market_program_id: Pubkey
    market_id: Pubkey
    market_bids: Pubkey
    market_asks: Pubkey
    market_event_queue: Pubkey
    market_base_vault: Pubkey
    market_quote_vault: Pubkey
    market_authority: Pubkey


@dataclass
class MarketState:
    """The fields of an OpenBook/Serum v3 market account needed to derive pool keys."""
    vault_signer_nonce: int
    base_mint: Pubkey
    quote_mint: Pubkey
    base_vault: Pubkey
    quote_vault: Pubkey
    event_queue: Pubkey
    bids: Pubkey
    asks: Pubkey

    @classmethod
    def from_bytes(cls, data: bytes) -> "MarketState":
        if len(data) < MARKET_STATE_MIN_LEN:
            raise ValidationError(f"Account data too short for a market ({len(data)} bytes)")

        def key(offset: int) -> Pubkey:
            return Pubkey.from_bytes(data[offset:offset + 32])

        # 5 bytes "serum" padding, 8 account flags, 32 own address
        (nonce,) = struct.unpack_from("<Q", data, 45)
        return cls(
            vault_signer_nonce=nonce,
            base_mint=key(53),
            quote_mint=key(85),
            base_vault=key(117),
            quote_vault=key(165),
            event_queue=key(253),
            bids=key(285),
            asks=key(317),
        )


def _amm_pda(market_id: Pubkey, seed: bytes) -> Pubkey:
    return Pubkey.find_program_address([bytes(AMM_V4_PROGRAM), bytes(market_id), seed], AMM_V4_PROGRAM)[0]


def derive_pool_keys(market_id: Pubkey, market_program_id: Pubkey, market: MarketState) -> PoolKeys:
    """Derive the Raydium AMM v4 pool accounts associated with an OpenBook market."""
    authority = Pubkey.find_program_address([b"amm authority"], AMM_V4_PROGRAM)[0]
    market_authority = Pubkey.create_program_address(
        [bytes(market_id), struct.pack("<Q", market.vault_signer_nonce)],
        market_program_id,
    )
    return PoolKeys(
        id=_amm_pda(market_id, b"amm_associated_seed"),
        base_mint=market.base_mint,
        quote_mint=market.quote_mint,
        authority=authority,
        open_orders=_amm_pda(market_id, b"open_order_associated_seed"),
        target_orders=_amm_pda(market_id, b"target_associated_seed"),
        base_vault=_amm_pda(market_id, b"coin_vault_associated_seed"),
        quote_vault=_amm_pda(market_id, b"pc_vault_associated_seed"),
        market_program_id=market_program_id,
        market_id=market_id,
        market_bids=market.bids,
        market_asks=market.asks,
        market_event_queue=market.event_queue,
        market_base_vault=market.base_vault,
        market_quote_vault=market.quote_vault,
        market_authority=market_authority,
    )


class PoolKeysProvider:
    """Fetches the market account over RPC and derives the pool keys from it."""

    def __init__(self, rpc: SolanaRpc):
        self.rpc = rpc

    async def get_pool_keys(self, market_id: Pubkey) -> PoolKeys:
        account = await self.rpc.get_account_info(market_id)
        if account is None:
            raise RpcError(f"Market account {market_id} not found")
        return derive_pool_keys(market_id, account.owner, MarketState.from_bytes(account.data))


def make_swap(pool_keys: PoolKeys, wsol_ata: Pubkey, token_ata: Pubkey, sell: bool, owner: Pubkey,
              program_id: Pubkey = Pubkey.from_string(SWAP_PROGRAM_ID)) -> Instruction:
    """One buy (WSOL -> token) or sell (token -> WSOL) through the swap program."""
    accounts = [
        TOKEN_PROGRAM_ID,
        pool_keys.id,
        pool_keys.authority,
        pool_keys.open_orders,
        pool_keys.target_orders,
        pool_keys.base_vault,
        pool_keys.quote_vault,
        pool_keys.market_program_id,
        pool_keys.market_id,
        pool_keys.market_bids,
        pool_keys.market_asks,
        pool_keys.market_event_queue,
        pool_keys.market_base_vault,
        pool_keys.market_quote_vault,
        pool_keys.market_authority,
        token_ata if sell else wsol_ata,  # source
        wsol_ata if sell else token_ata,  # destination
        owner,
        AMM_V4_PROGRAM,
    ]
    metas = [
        AccountMeta(pubkey, is_signer=(i == OWNER_ACCOUNT_INDEX), is_writable=(i not in READ_ONLY_SWAP_ACCOUNTS))
        for i, pubkey in enumerate(accounts)
    ]
    return Instruction(program_id, SWAP_DISCRIMINATOR + bytes(16), metas)


async def execute_swap_cycle(
    payer: Keypair,
    keypairs: List[Keypair],
    pool_keys: PoolKeys,
    tip_lamports: int,
    rpc: SolanaRpc,
    submitter: BundleSubmitter,
    tip_account: Pubkey = Pubkey.from_string(TIP_ACCOUNT),
) -> str:
    """Build one buy+sell transaction per keypair and send them as one bundle."""
    blockhash = await rpc.get_latest_blockhash()

    txns = []
    for i, kp in enumerate(keypairs):
        owner = kp.pubkey()
        token_ata = get_associated_token_address(owner, pool_keys.base_mint)
        wsol_ata = get_associated_token_address(owner, WRAPPED_SOL_MINT)

        ixs = [
            create_idempotent_associated_token_account(owner, owner, pool_keys.base_mint),
            make_swap(pool_keys, wsol_ata, token_ata, False, owner),
            make_swap(pool_keys, wsol_ata, token_ata, True, owner),
        ]

        last = i == len(keypairs) - 1
        if last:
            ixs = append_tip([ixs], payer.pubkey(), tip_lamports, tip_account)[0]

        # The volume wallet pays its own fees; the main wallet only co-signs the tip.
        txns.append(build_transaction(ixs, blockhash, kp, [payer] if last else [], index=i))

    return await submitter.send_bundle(txns)


async def volume(
    payer: Keypair,
    keypairs: List[Keypair],
    market_id: str,
    cycles: int,
    delay_sec: float,
    tip_sol: float,
    rpc: SolanaRpc,
    submitter: BundleSubmitter,
    pool_keys_provider: Optional[PoolKeysProvider] = None,
) -> Result:
    if not market_id or cycles <= 0 or delay_sec < 0 or tip_sol <= 0:
        return Result.fail(ErrorKind.VALIDATION, "Invalid parameters")
    try:
        market = Pubkey.from_string(market_id)
    except ValueError:
        return Result.fail(ErrorKind.VALIDATION, f"Invalid market ID: {market_id}")

    if not keypairs:
        return Result.fail(ErrorKind.MISSING_RESOURCE, "No keypairs found. Create keypairs first.")
    if len(keypairs) > MAX_BUNDLE_TRANSACTIONS:
        return Result.fail(
            ErrorKind.VALIDATION,
            f"A volume cycle bundles one transaction per wallet, at most {MAX_BUNDLE_TRANSACTIONS}. You have {len(keypairs)}.",
        )

    tip_lamports = sol_to_lamports(tip_sol)
    provider = pool_keys_provider or PoolKeysProvider(rpc)
    bundle_ids: List[str] = []

    try:
        pool_keys = await provider.get_pool_keys(market)
        for c in range(cycles):
            logger.info("--- Cycle %d/%d ---", c + 1, cycles)
            bundle_ids.append(await execute_swap_cycle(payer, keypairs, pool_keys, tip_lamports, rpc, submitter))

            if c < cycles - 1:
                logger.info("Waiting %ss before next cycle", delay_sec)
                await asyncio.sleep(delay_sec)
    except Exception as e:
        if isinstance(e, VolumeBotError):
            logger.error("Volume error: %s", e)
        else:
            logger.exception("Volume error")
        return Result.from_exception(e, bundle_ids=bundle_ids)

    return Result.ok(
        f"Completed {cycles} cycle(s). {len(bundle_ids)} bundle(s) sent.",
        bundle_ids=bundle_ids,
    )
