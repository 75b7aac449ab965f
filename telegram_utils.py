import logging
import re

from telegram import constants
from telegram.error import BadRequest, TelegramError

from results import Result

logger = logging.getLogger(__name__)

# An already-escaped character or a whole `code` span.
_TOKEN = re.compile(r"(\\.|`[^`]*`)", re.S)


def escape_markdown_v2(text):
    """Escapes every MarkdownV2 special character so the text renders literally."""
    if not isinstance(text, str):
        return text
    return re.sub(r"([_*\[\]()~`>#+\-=|{}.!\\])", r"\\\1", text)


def render_markdown(text):
    """Converts the bot's light markup (*bold*, `code`) into valid MarkdownV2.

    Bold markers, code spans and characters escaped with escape_markdown_v2 are
    kept, everything else is escaped. Dynamic values must be escaped first.
    """
    if not isinstance(text, str):
        return text
    parts = []
    for piece in _TOKEN.split(text):
        if piece.startswith("\\") and len(piece) == 2:
            parts.append(piece)
        elif piece.startswith("`") and piece.endswith("`") and len(piece) >= 2:
            inner = piece[1:-1].replace("\\", "\\\\")
            parts.append(f"`{inner}`")
        else:
            parts.append(re.sub(r"([_\[\]()~>#+\-=|{}.!\\])", r"\\\1", piece))
    return "".join(parts)


def plain_text(text: str) -> str:
    """Drops the escapes added by escape_markdown_v2."""
    return re.sub(r"\\(.)", r"\1", text, flags=re.S)


def short_address(address: str) -> str:
    return f"{address[:8]}...{address[-6:]}"


def format_bundle_result(result: Result) -> str:
    message = escape_markdown_v2(result.message)
    if not result.success:
        return f"Failed: {message}"
    if result.bundle_ids:
        lines = [message, "Bundles:"]
        lines += [f"{i + 1}. `{b}`" for i, b in enumerate(result.bundle_ids)]
        return "\n".join(lines)
    if result.bundle_id:
        return f"{message}\nBundle: `{result.bundle_id}`"
    return message


def format_keypairs_result(result: Result) -> str:
    message = escape_markdown_v2(result.message)
    if not result.success or not result.pubkeys:
        return message
    lines = [message, "", "*Public Keys:*"]
    lines += [f"{i + 1}. `{pk}`" for i, pk in enumerate(result.pubkeys)]
    return "\n".join(lines)


async def edit_status(context, chat_id: int, message_id: int, text: str, markdown: bool = True):
    """Replaces a "Processing..." status message with the final report.

    If Telegram rejects the MarkdownV2 the report is sent again as plain text.
    """
    if markdown:
        try:
            await context.bot.edit_message_text(
                chat_id=chat_id,
                message_id=message_id,
                text=render_markdown(text),
                parse_mode=constants.ParseMode.MARKDOWN_V2,
            )
            return
        except BadRequest as e:
            logger.warning("MarkdownV2 edit of message %s rejected (%s), retrying as plain text", message_id, e)
            logger.debug("Text that caused error:\n%s", text)
        text = plain_text(text)

    try:
        await context.bot.edit_message_text(chat_id=chat_id, message_id=message_id, text=text)
    except TelegramError as e:
        logger.error("Failed to edit message %s in chat %s: %s", message_id, chat_id, e)
