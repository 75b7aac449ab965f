import logging
from typing import List, Optional

from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from spl.token.constants import TOKEN_PROGRAM_ID, WRAPPED_SOL_MINT
from spl.token.instructions import (
    CloseAccountParams,
    SyncNativeParams,
    close_account,
    create_idempotent_associated_token_account,
    get_associated_token_address,
    sync_native,
)
from spl.token.instructions import TransferParams as SplTransferParams
from spl.token.instructions import transfer as spl_transfer

from bundler import BundleSubmitter, append_tip, build_transaction, build_transactions, chunk
from config import (
    ATA_CHUNK_SIZE,
    DEFAULT_STEPS,
    DEFAULT_TIP_SOL,
    LAMPORTS_PER_SOL,
    RECLAIM_CHUNK_SIZE,
    RECLAIM_DUST_LAMPORTS,
    SOL_TRANSFER_CHUNK_SIZE,
    TIP_ACCOUNT,
    WSOL_CHUNK_SIZE,
)
from errors import VolumeBotError
from results import ErrorKind, Result
from rpc import SolanaRpc

logger = logging.getLogger(__name__)


def sol_to_lamports(amount: float) -> int:
    return int(round(amount * LAMPORTS_PER_SOL))


def wsol_ata(owner: Pubkey) -> Pubkey:
    return get_associated_token_address(owner, WRAPPED_SOL_MINT)


def _failure(label: str, exc: Exception) -> Result:
    if isinstance(exc, VolumeBotError):
        logger.error("%s failed: %s", label, exc)
    else:
        logger.exception("%s failed", label)
    return Result.from_exception(exc)


# ---------------------- 1. SOL + WSOL ATA ---------------------- #
async def distribute_sol_and_create_ata(
    payer: Keypair,
    keypairs: List[Keypair],
    sol_amount: float,
    tip_lamports: int,
    rpc: SolanaRpc,
    submitter: BundleSubmitter,
    steps: int = DEFAULT_STEPS,
    tip_account: Pubkey = Pubkey.from_string(TIP_ACCOUNT),
) -> Result:
    """Send fee SOL to each volume wallet and create its WSOL ATA, in one bundle."""
    if sol_amount <= 0 or tip_lamports <= 0 or steps <= 0:
        return Result.fail(ErrorKind.VALIDATION, "All numeric inputs must be > 0")

    targets = keypairs[:int(steps)]
    if not targets:
        return Result.fail(ErrorKind.MISSING_RESOURCE, "No keypairs loaded. Create keypairs first.")

    try:
        blockhash = await rpc.get_latest_blockhash()
        lamports = sol_to_lamports(sol_amount)

        sol_ixs = [
            transfer(TransferParams(from_pubkey=payer.pubkey(), to_pubkey=kp.pubkey(), lamports=lamports))
            for kp in targets
        ]
        ata_ixs = [
            create_idempotent_associated_token_account(payer.pubkey(), kp.pubkey(), WRAPPED_SOL_MINT)
            for kp in targets
        ]

        sol_chunks = chunk(sol_ixs, SOL_TRANSFER_CHUNK_SIZE)
        ata_chunks = append_tip(chunk(ata_ixs, ATA_CHUNK_SIZE), payer.pubkey(), tip_lamports, tip_account)

        txns = build_transactions(sol_chunks + ata_chunks, blockhash, payer)
        bundle_id = await submitter.send_bundle(txns)
    except Exception as e:
        return _failure("distribute_sol_and_create_ata", e)

    return Result.ok(
        f"Sent {sol_amount} SOL + created WSOL ATAs for {len(targets)} wallets",
        tx_count=len(txns),
        bundle_id=bundle_id,
    )


# ---------------------- 2. WSOL (actual volume) ---------------------- #
async def distribute_wsol(
    payer: Keypair,
    keypairs: List[Keypair],
    amount_per_wallet: float,
    tip_lamports: int,
    rpc: SolanaRpc,
    submitter: BundleSubmitter,
    steps: int = DEFAULT_STEPS,
    tip_account: Pubkey = Pubkey.from_string(TIP_ACCOUNT),
) -> Result:
    """Move WSOL from the payer's WSOL account into each volume wallet's WSOL ATA."""
    if amount_per_wallet <= 0 or tip_lamports <= 0 or steps <= 0:
        return Result.fail(ErrorKind.VALIDATION, "All numeric inputs must be > 0")

    targets = keypairs[:int(steps)]
    if not targets:
        return Result.fail(ErrorKind.MISSING_RESOURCE, "No keypairs loaded. Create keypairs first.")

    try:
        blockhash = await rpc.get_latest_blockhash()
        lamports = sol_to_lamports(amount_per_wallet)
        source = wsol_ata(payer.pubkey())

        ixs: List[Instruction] = []
        for kp in targets:
            dest = wsol_ata(kp.pubkey())
            ixs.append(sync_native(SyncNativeParams(program_id=TOKEN_PROGRAM_ID, account=dest)))
            ixs.append(
                spl_transfer(
                    SplTransferParams(
                        program_id=TOKEN_PROGRAM_ID,
                        source=source,
                        dest=dest,
                        owner=payer.pubkey(),
                        amount=lamports,
                    )
                )
            )

        chunks = append_tip(chunk(ixs, WSOL_CHUNK_SIZE), payer.pubkey(), tip_lamports, tip_account)
        txns = build_transactions(chunks, blockhash, payer)
        bundle_id = await submitter.send_bundle(txns)
    except Exception as e:
        return _failure("distribute_wsol", e)

    return Result.ok(
        f"Sent {amount_per_wallet} WSOL to {len(targets)} wallets",
        tx_count=len(txns),
        bundle_id=bundle_id,
    )


# ---------------------- 3. Reclaim ---------------------- #
async def create_returns(
    payer: Keypair,
    keypairs: List[Keypair],
    tip_lamports: int,
    rpc: SolanaRpc,
    submitter: BundleSubmitter,
    tip_account: Pubkey = Pubkey.from_string(TIP_ACCOUNT),
) -> Result:
    """Close every volume wallet's WSOL ATA and sweep its SOL back to the payer."""
    if not keypairs:
        return Result.fail(ErrorKind.MISSING_RESOURCE, "No keypairs found. Create keypairs first.")
    if tip_lamports <= 0:
        return Result.fail(ErrorKind.VALIDATION, "Jito tip must be > 0")

    try:
        blockhash = await rpc.get_latest_blockhash()
        groups = chunk(keypairs, RECLAIM_CHUNK_SIZE)

        txns = []
        for i, group in enumerate(groups):
            ixs: List[Instruction] = []
            for kp in group:
                ixs.append(
                    close_account(
                        CloseAccountParams(
                            program_id=TOKEN_PROGRAM_ID,
                            account=wsol_ata(kp.pubkey()),
                            dest=payer.pubkey(),
                            owner=kp.pubkey(),
                        )
                    )
                )
                balance = await rpc.get_balance(kp.pubkey())
                if balance > RECLAIM_DUST_LAMPORTS:
                    ixs.append(
                        transfer(
                            TransferParams(
                                from_pubkey=kp.pubkey(),
                                to_pubkey=payer.pubkey(),
                                lamports=balance - RECLAIM_DUST_LAMPORTS,
                            )
                        )
                    )

            if i == len(groups) - 1:
                ixs = append_tip([ixs], payer.pubkey(), tip_lamports, tip_account)[0]

            txns.append(build_transaction(ixs, blockhash, payer, group, index=i))

        bundle_id = await submitter.send_bundle(txns)
    except Exception as e:
        return _failure("create_returns", e)

    return Result.ok(
        f"Reclaimed {len(keypairs)} wallet(s)",
        tx_count=len(txns),
        bundle_id=bundle_id,
    )


# ---------------------- Entry point for the chat layer ---------------------- #
async def sender(
    payer: Keypair,
    keypairs: List[Keypair],
    mode: str,
    rpc: SolanaRpc,
    submitter: BundleSubmitter,
    sol_amount: Optional[float] = None,
    wsol_per_wallet: Optional[float] = None,
    tip_lamports: Optional[int] = None,
    steps: Optional[int] = None,
) -> Result:
    tip = tip_lamports if tip_lamports is not None else sol_to_lamports(DEFAULT_TIP_SOL)
    steps = steps if steps is not None else DEFAULT_STEPS

    if mode == "sol+ata":
        if not sol_amount:
            return Result.fail(ErrorKind.VALIDATION, "SOL amount required")
        return await distribute_sol_and_create_ata(payer, keypairs, sol_amount, tip, rpc, submitter, steps)
    if mode == "wsol":
        if not wsol_per_wallet:
            return Result.fail(ErrorKind.VALIDATION, "WSOL amount per wallet required")
        return await distribute_wsol(payer, keypairs, wsol_per_wallet, tip, rpc, submitter, steps)
    if mode == "reclaim":
        return await create_returns(payer, keypairs, tip, rpc, submitter)
    return Result.fail(ErrorKind.VALIDATION, "Invalid mode")
