import asyncio
import logging
from functools import wraps
from typing import List, Optional, Tuple

from solders.keypair import Keypair
from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update, constants
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

import distribute
import volume as volume_bot
from bundler import BundleSubmitter
from config import (
    ALLOWED_USERS,
    BLOCK_ENGINE_URL,
    DEFAULT_TIP_SOL,
    KEYPAIRS_DIR,
    LAMPORTS_PER_SOL,
    MAX_BUNDLE_TRANSACTIONS,
    MIN_FUNDED_BALANCE,
    RPC_ENDPOINT,
    TELEGRAM_BOT_TOKEN,
    WALLETS_DIR,
    WEBHOOK_PORT,
    WEBHOOK_URL,
)
from errors import RpcError, ValidationError
from keystore import FileKeypairStore, FileWalletStore, create_keypairs, create_wallet
from rpc import SolanaRpc
from simulate import calculate_volume_and_sol_loss
from telegram_utils import (
    edit_status,
    escape_markdown_v2,
    format_bundle_result,
    format_keypairs_result,
    render_markdown,
    short_address,
)

logger = logging.getLogger(__name__)

app = None  # Global Application instance

WAITING_FOR = "waiting_for"
DIST_SOL_ATA = "dist_sol_ata"
DIST_WSOL = "dist_wsol"
SIMULATE = "simulate"
VOLUME = "volume"

NO_WALLET_TEXT = "No wallet found. Use /createwallet"
NO_KEYPAIRS_TEXT = "No keypairs found. Use 1. Create Keypairs first."
TOO_MANY_WALLETS_TEXT = (
    "Volume runs send one bundle per cycle and a bundle holds at most {limit} wallets. "
    "You have {count} keypairs."
)


# ---------------------- Input parsing ---------------------- #
def _numbers(parts: List[str]) -> List[float]:
    try:
        return [float(p) for p in parts]
    except ValueError:
        raise ValidationError("Invalid input: expected numbers")


def _positive_int(value: float, name: str) -> int:
    if value <= 0 or value != int(value):
        raise ValidationError(f"{name} must be a positive whole number")
    return int(value)


def parse_distribute_input(text: str) -> Tuple[float, float, int]:
    """`AMOUNT JITO_TIP STEPS` -> (amount SOL, tip SOL, steps)."""
    parts = text.split()
    if len(parts) != 3:
        raise ValidationError("Need 3 values: AMOUNT JITO_TIP STEPS")
    amount, tip, steps = _numbers(parts)
    if amount <= 0 or tip <= 0:
        raise ValidationError("All numeric inputs must be > 0")
    return amount, tip, _positive_int(steps, "STEPS")


def parse_simulate_input(text: str) -> Tuple[float, float, int, List[float]]:
    """`SOL_PRICE JITO_TIP EXECUTIONS W1 W2 ...`"""
    parts = text.split()
    if len(parts) < 4:
        raise ValidationError("Need ≥4 numbers: SOL_PRICE JITO_TIP EXECUTIONS W1 W2 ...")
    price, tip, executions, *amounts = _numbers(parts)
    return price, tip, _positive_int(executions, "EXECUTIONS"), amounts


def parse_volume_input(text: str) -> Tuple[str, int, float, float]:
    """`MARKET_ID CYCLES DELAY_SEC JITO_TIP`"""
    parts = text.split()
    if len(parts) != 4:
        raise ValidationError("Need 4 values: MARKET_ID CYCLES DELAY_SEC JITO_TIP")
    market_id = parts[0]
    cycles, delay, tip = _numbers(parts[1:])
    if delay < 0:
        raise ValidationError("DELAY_SEC cannot be negative")
    if tip <= 0:
        raise ValidationError("JITO_TIP must be > 0")
    return market_id, _positive_int(cycles, "CYCLES"), delay, tip


# ---------------------- Services ---------------------- #
def build_application(
    token: str = TELEGRAM_BOT_TOKEN,
    rpc: Optional[SolanaRpc] = None,
    submitter: Optional[BundleSubmitter] = None,
    wallet_store: Optional[FileWalletStore] = None,
    keypair_store: Optional[FileKeypairStore] = None,
) -> Application:
    if not token:
        raise ValueError("TELEGRAM_TOKEN environment variable not set.")
    application = Application.builder().token(token).build()
    application.bot_data.update(
        rpc=rpc or SolanaRpc(RPC_ENDPOINT),
        submitter=submitter or BundleSubmitter(BLOCK_ENGINE_URL),
        wallet_store=wallet_store or FileWalletStore(WALLETS_DIR),
        keypair_store=keypair_store or FileKeypairStore(KEYPAIRS_DIR),
    )

    handlers = [
        CommandHandler("start", send_main_menu),
        CommandHandler("menu", send_main_menu),
        CommandHandler("createwallet", create_wallet_command),
        CommandHandler("mywallet", my_wallet),
        CallbackQueryHandler(keypairs_menu, pattern=r"^menu_1$"),
        CallbackQueryHandler(keypairs_action, pattern=r"^(create_\d+|use_existing)$"),
        CallbackQueryHandler(distribute_menu, pattern=r"^menu_2$"),
        CallbackQueryHandler(prompt_for_input, pattern=rf"^({DIST_SOL_ATA}|{DIST_WSOL}|{SIMULATE}|{VOLUME})$"),
        CallbackQueryHandler(reclaim, pattern=r"^reclaim$"),
        CallbackQueryHandler(my_wallet, pattern=r"^mywallet$"),
        CallbackQueryHandler(back_to_menu, pattern=r"^back_to_menu$"),
        MessageHandler(filters.TEXT & ~filters.COMMAND, handle_text),
    ]
    for handler in handlers:
        application.add_handler(handler)
    application.add_error_handler(on_error)
    return application


async def run_telegram_bot():
    """Runs the Telegram bot with long polling, or a webhook when WEBHOOK_URL is set."""
    global app
    app = build_application()

    logger.info("🚀 Telegram bot started.")
    try:
        async with app:
            await app.start()
            if WEBHOOK_URL:
                await app.updater.start_webhook(listen="0.0.0.0", port=WEBHOOK_PORT, webhook_url=WEBHOOK_URL)
            else:
                await app.updater.start_polling()
            try:
                await asyncio.Event().wait()
            finally:
                if app.updater.running:
                    await app.updater.stop()
                if app.running:
                    await app.stop()
    finally:
        await app.bot_data["rpc"].close()
        await app.bot_data["submitter"].close()


# ---------------------- Access Restriction ---------------------- #
def restricted(func):
    @wraps(func)
    async def wrapped(update: Update, context: ContextTypes.DEFAULT_TYPE, *args, **kwargs):
        user = update.effective_user
        if ALLOWED_USERS and (user is None or user.id not in ALLOWED_USERS):
            if update.callback_query:
                await update.callback_query.answer()
            await update.effective_message.reply_text(
                "🚫 Access Denied!\nYou are not authorized to use this bot."
            )
            return
        return await func(update, context, *args, **kwargs)
    return wrapped


# ---------------------- Helpers ---------------------- #
async def reply(update: Update, text: str, keyboard: Optional[InlineKeyboardMarkup] = None):
    return await update.effective_message.reply_text(
        render_markdown(text),
        parse_mode=constants.ParseMode.MARKDOWN_V2,
        reply_markup=keyboard,
    )


async def load_user_wallet(context: ContextTypes.DEFAULT_TYPE, user_id: int) -> Optional[Keypair]:
    return await context.bot_data["wallet_store"].load(user_id)


async def wallet_balance_sol(context: ContextTypes.DEFAULT_TYPE, wallet: Keypair) -> float:
    lamports = await context.bot_data["rpc"].get_balance(wallet.pubkey())
    return lamports / LAMPORTS_PER_SOL


def main_menu_keyboard(funded: bool) -> InlineKeyboardMarkup:
    buttons = [[InlineKeyboardButton("3. Simulate", callback_data=SIMULATE)]]
    if funded:
        buttons += [
            [InlineKeyboardButton("1. Create Keypairs", callback_data="menu_1")],
            [InlineKeyboardButton("2. Distribute", callback_data="menu_2")],
            [InlineKeyboardButton("4. Start Volume", callback_data=VOLUME)],
            [InlineKeyboardButton("5. Reclaim", callback_data="reclaim")],
        ]
    buttons.append([InlineKeyboardButton("6. My Wallet", callback_data="mywallet")])
    return InlineKeyboardMarkup(buttons)


# ---------------------- Command Handlers ---------------------- #
@restricted
async def send_main_menu(update: Update, context: ContextTypes.DEFAULT_TYPE):
    wallet = await load_user_wallet(context, update.effective_user.id)

    lines = ["*Solana Volume Bot*", ""]
    funded = False
    if wallet is None:
        lines.append("*Create your wallet to begin!* Use /createwallet")
    else:
        try:
            sol = await wallet_balance_sol(context, wallet)
        except RpcError as e:
            logger.error("Balance lookup failed: %s", e)
            sol = 0.0
        funded = sol >= MIN_FUNDED_BALANCE
        lines.append(f"*Wallet:* `{short_address(str(wallet.pubkey()))}`")
        lines.append(f"*Balance:* `{sol:.6f} SOL`")
        if not funded:
            lines += ["", f"*Fund ≥ {MIN_FUNDED_BALANCE} SOL to distribute/volume*"]

    await reply(update, "\n".join(lines), main_menu_keyboard(funded))


@restricted
async def create_wallet_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    result = await create_wallet(context.bot_data["wallet_store"], update.effective_user.id)
    if not result.success:
        await reply(update, escape_markdown_v2(result.message))
        return

    keypair = result.wallets[0]
    secret = str(list(bytes(keypair))).replace(" ", "")
    await reply(update, "\n".join([
        f"*{result.message}*",
        "",
        f"*Address:* `{keypair.pubkey()}`",
        f"*Private Key:* `{secret}`",
        "",
        "*BACKUP THIS KEY NOW, IT WILL NOT BE SHOWN AGAIN!*",
        "",
        "*Next Step:* Send SOL to this address.",
        "",
        "Use /mywallet to check balance",
    ]))


@restricted
async def my_wallet(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if update.callback_query:
        await update.callback_query.answer()

    wallet = await load_user_wallet(context, update.effective_user.id)
    if wallet is None:
        await reply(update, NO_WALLET_TEXT)
        return

    try:
        sol = await wallet_balance_sol(context, wallet)
    except RpcError as e:
        await reply(update, f"Error: {escape_markdown_v2(str(e))}")
        return

    status = "*Fund it to use the bot!*" if sol < MIN_FUNDED_BALANCE else "*Ready to distribute!*"
    await reply(
        update,
        "\n".join([
            "*Your Wallet*",
            "",
            f"*Address:* `{wallet.pubkey()}`",
            f"*Balance:* `{sol:.6f} SOL`",
            "",
            status,
            "",
            "Use /menu to continue",
        ]),
        InlineKeyboardMarkup([[InlineKeyboardButton("Back to Menu", callback_data="back_to_menu")]]),
    )


# ---------------------- Menu Actions ---------------------- #
@restricted
async def keypairs_menu(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await update.callback_query.answer()
    await reply(update, "*Create Keypairs*\n\nChoose:", InlineKeyboardMarkup([
        [
            InlineKeyboardButton("Create 5", callback_data="create_5"),
            InlineKeyboardButton("Create 10", callback_data="create_10"),
        ],
        [InlineKeyboardButton("Use Existing", callback_data="use_existing")],
        [InlineKeyboardButton("Back", callback_data="back_to_menu")],
    ]))


@restricted
async def keypairs_action(update: Update, context: ContextTypes.DEFAULT_TYPE):
    query = update.callback_query
    await query.answer()
    data = query.data
    mode = "create" if data.startswith("create_") else "use"
    num = int(data.split("_")[1]) if mode == "create" else 5

    status = await update.effective_message.reply_text(escape_markdown_v2(f"Processing: {mode} {num} wallet(s)..."),
                                                       parse_mode=constants.ParseMode.MARKDOWN_V2)
    result = await create_keypairs(context.bot_data["keypair_store"], update.effective_user.id, mode, num)
    await edit_status(context, status.chat_id, status.message_id, format_keypairs_result(result))


@restricted
async def distribute_menu(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await update.callback_query.answer()
    await reply(update, "*Distribute SOL / WSOL*\n\nChoose:", InlineKeyboardMarkup([
        [InlineKeyboardButton("1. Send SOL + ATA", callback_data=DIST_SOL_ATA)],
        [InlineKeyboardButton("2. Send WSOL", callback_data=DIST_WSOL)],
        [InlineKeyboardButton("Back", callback_data="back_to_menu")],
    ]))


PROMPTS = {
    DIST_SOL_ATA: "Enter: `SOL_AMOUNT JITO_TIP STEPS`\nEx: `0.005 0.01 5`",
    DIST_WSOL: "Enter: `WSOL_PER_WALLET JITO_TIP STEPS`\nEx: `0.1 0.01 5`",
    SIMULATE: (
        "*Simulate Volume*\n\nEnter one line:\n`SOL_PRICE  JITO_TIP  EXECUTIONS  W1 W2 W3...`\n"
        "Ex: `180 0.01 10 0.1 0.1 0.1 0.1 0.1`"
    ),
    VOLUME: (
        "*Start Volume Bot*\n\nEnter one line:\n`MARKET_ID  CYCLES  DELAY_SEC  JITO_TIP`\nEx: `9x...abc 10 3 0.01`\n\n"
        f"One bundle per cycle holds at most {MAX_BUNDLE_TRANSACTIONS} wallets."
    ),
}


@restricted
async def prompt_for_input(update: Update, context: ContextTypes.DEFAULT_TYPE):
    query = update.callback_query
    await query.answer()
    await reply(update, PROMPTS[query.data])
    context.user_data[WAITING_FOR] = query.data


@restricted
async def back_to_menu(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await update.callback_query.answer()
    await send_main_menu(update, context)


@restricted
async def reclaim(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await update.callback_query.answer()
    user_id = update.effective_user.id

    wallet = await load_user_wallet(context, user_id)
    if wallet is None:
        await reply(update, NO_WALLET_TEXT)
        return
    keypairs = await context.bot_data["keypair_store"].get(user_id)
    if not keypairs:
        await reply(update, NO_KEYPAIRS_TEXT)
        return

    status = await update.effective_message.reply_text(escape_markdown_v2("Reclaiming SOL/WSOL..."),
                                                       parse_mode=constants.ParseMode.MARKDOWN_V2)
    result = await distribute.create_returns(
        wallet,
        keypairs,
        distribute.sol_to_lamports(DEFAULT_TIP_SOL),
        context.bot_data["rpc"],
        context.bot_data["submitter"],
    )
    await edit_status(context, status.chat_id, status.message_id, format_bundle_result(result))


# ---------------------- Text Input Handler ---------------------- #
@restricted
async def handle_text(update: Update, context: ContextTypes.DEFAULT_TYPE):
    waiting_for = context.user_data.pop(WAITING_FOR, None)
    if not waiting_for or not update.message or not update.message.text:
        return

    text = update.message.text.strip()
    user_id = update.effective_user.id

    try:
        if waiting_for in (DIST_SOL_ATA, DIST_WSOL):
            args = parse_distribute_input(text)
        elif waiting_for == SIMULATE:
            args = parse_simulate_input(text)
        else:
            args = parse_volume_input(text)
    except ValidationError as e:
        await reply(update, f"Error: {escape_markdown_v2(str(e))}")
        return

    if waiting_for == SIMULATE:
        result = calculate_volume_and_sol_loss(*args)
        await reply(update, result.message if result.success else f"Failed: {escape_markdown_v2(result.message)}")
        return

    wallet = await load_user_wallet(context, user_id)
    if wallet is None:
        await reply(update, NO_WALLET_TEXT)
        return
    keypairs = await context.bot_data["keypair_store"].get(user_id)
    if not keypairs:
        await reply(update, NO_KEYPAIRS_TEXT)
        return
    if waiting_for == VOLUME and len(keypairs) > MAX_BUNDLE_TRANSACTIONS:
        await reply(update, TOO_MANY_WALLETS_TEXT.format(count=len(keypairs), limit=MAX_BUNDLE_TRANSACTIONS))
        return

    status = await update.message.reply_text(escape_markdown_v2("Processing…"),
                                             parse_mode=constants.ParseMode.MARKDOWN_V2)
    rpc = context.bot_data["rpc"]
    submitter = context.bot_data["submitter"]

    if waiting_for in (DIST_SOL_ATA, DIST_WSOL):
        amount, tip, steps = args
        result = await distribute.sender(
            wallet,
            keypairs,
            "sol+ata" if waiting_for == DIST_SOL_ATA else "wsol",
            rpc,
            submitter,
            sol_amount=amount if waiting_for == DIST_SOL_ATA else None,
            wsol_per_wallet=amount if waiting_for == DIST_WSOL else None,
            tip_lamports=distribute.sol_to_lamports(tip),
            steps=steps,
        )
        await edit_status(context, status.chat_id, status.message_id, format_bundle_result(result))
    else:
        market_id, cycles, delay, tip = args
        context.application.create_task(
            run_volume(context, status.chat_id, status.message_id, wallet, keypairs, market_id, cycles, delay, tip),
            update=update,
        )


async def run_volume(context, chat_id, message_id, wallet, keypairs, market_id, cycles, delay, tip):
    result = await volume_bot.volume(
        wallet,
        keypairs,
        market_id,
        cycles,
        delay,
        tip,
        context.bot_data["rpc"],
        context.bot_data["submitter"],
    )
    await edit_status(context, chat_id, message_id, format_bundle_result(result))


async def on_error(update: object, context: ContextTypes.DEFAULT_TYPE):
    logger.error("Unhandled error while processing update", exc_info=context.error)
    if isinstance(update, Update) and update.effective_message:
        await update.effective_message.reply_text(f"⚠️ Error: {context.error}")
