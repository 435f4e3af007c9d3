"""
Position management - /positions, /close_position <n>, /claim_fees <n>

Position numbers always refer to the last /positions listing. Each position
is sent as its own message with Close / Claim Fees buttons.
"""

import logging
from typing import Optional

from telegram import Update
from telegram.ext import ContextTypes

from handlers import get_reply_target
from lpbot.errors import (
    CollaboratorError,
    ExecutionError,
    LpBotError,
    OrdinalOutOfRangeError,
    PositionsNotListedError,
    StalePositionError,
    WalletNotProvisionedError,
    ZeroLiquidityError,
)
from utils.telegram_formatters import (
    build_keyboard,
    escape_markdown_v2,
    format_error_message,
    format_position,
    format_positions_header,
)

from ._shared import get_coordinator, get_workflow

logger = logging.getLogger(__name__)

ACTION_CLOSE = "lp:close:"
ACTION_HARVEST = "lp:harvest:"


def describe_lifecycle_error(error: LpBotError, ordinal: Optional[int] = None) -> str:
    """Plain-text explanation of a lifecycle failure for the user."""
    if isinstance(error, WalletNotProvisionedError):
        return "No wallet is linked to your account yet. Use /start to check your wallet."
    if isinstance(error, PositionsNotListedError):
        return "Please run /positions first so position numbers refer to a current list."
    if isinstance(error, OrdinalOutOfRangeError):
        if error.count == 0:
            return "You don't have any listed positions. Run /positions to refresh."
        return f"Invalid position number. You have {error.count} position(s)."
    if isinstance(error, StalePositionError):
        return f"Position {ordinal} no longer exists on-chain. Run /positions to refresh the list."
    if isinstance(error, ZeroLiquidityError):
        return f"Position {ordinal} has no liquidity, there is nothing to withdraw or claim."
    if isinstance(error, CollaboratorError):
        return f"{error} Please try again later."
    if isinstance(error, ExecutionError):
        return f"{error}: {error.detail}" if error.detail else str(error)
    return str(error)


def parse_ordinal(args) -> Optional[int]:
    """First command argument as a 1-based position number, or None."""
    if not args:
        return None
    try:
        ordinal = int(args[0])
    except ValueError:
        return None
    return ordinal if ordinal >= 1 else None


# ============================================
# LIST
# ============================================

async def handle_positions(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    msg = get_reply_target(update)
    user_id = str(update.effective_user.id)
    await msg.reply_chat_action("typing")

    try:
        listing = await get_coordinator(context).list_positions(user_id)
    except LpBotError as e:
        logger.error(f"Error fetching positions for user {user_id}: {e}", exc_info=True)
        await msg.reply_text(format_error_message(describe_lifecycle_error(e)), parse_mode="MarkdownV2")
        return

    await msg.reply_text(format_positions_header(len(listing)), parse_mode="MarkdownV2")

    for ordinal, position in enumerate(listing, start=1):
        keyboard = build_keyboard([
            (f"❌ Close Position {ordinal}", f"{ACTION_CLOSE}{ordinal}"),
            ("💰 Claim Fees", f"{ACTION_HARVEST}{ordinal}"),
        ])
        await msg.reply_text(format_position(ordinal, position), parse_mode="MarkdownV2", reply_markup=keyboard)


# ============================================
# CLOSE / HARVEST
# ============================================

async def handle_close_position(update: Update, context: ContextTypes.DEFAULT_TYPE, ordinal: Optional[int]) -> None:
    msg = get_reply_target(update)
    user_id = str(update.effective_user.id)

    if ordinal is None:
        await msg.reply_text(
            format_error_message("Please specify a valid position number. Example: /close_position 1"),
            parse_mode="MarkdownV2",
        )
        return

    status = await msg.reply_text(f"🔄 Closing position {ordinal}...")

    try:
        result = await get_coordinator(context).close_position(user_id, ordinal)
    except LpBotError as e:
        logger.error(f"Failed to close position {ordinal} for user {user_id}: {e}", exc_info=True)
        await status.edit_text(
            format_error_message(describe_lifecycle_error(e, ordinal)),
            parse_mode="MarkdownV2",
        )
        return

    explorer = get_workflow(context).explorer_tx_url
    text = (
        f"✅ *Position {ordinal} closed successfully\\!*\n\n"
        f"Transaction: {escape_markdown_v2(explorer + result.tx_id)}\n\n"
        f"{escape_markdown_v2('Use /positions to view your positions.')}"
    )
    await status.edit_text(text, parse_mode="MarkdownV2")


async def handle_claim_fees(update: Update, context: ContextTypes.DEFAULT_TYPE, ordinal: Optional[int]) -> None:
    msg = get_reply_target(update)
    user_id = str(update.effective_user.id)

    if ordinal is None:
        await msg.reply_text(
            format_error_message("Please specify a valid position number. Example: /claim_fees 1"),
            parse_mode="MarkdownV2",
        )
        return

    status = await msg.reply_text(f"🔄 Claiming fees for position {ordinal}...")

    try:
        result = await get_coordinator(context).harvest(user_id, ordinal)
    except LpBotError as e:
        logger.error(f"Failed to claim fees of position {ordinal} for user {user_id}: {e}", exc_info=True)
        await status.edit_text(
            format_error_message(describe_lifecycle_error(e, ordinal)),
            parse_mode="MarkdownV2",
        )
        return

    if result.nothing_to_claim:
        await status.edit_text(f"ℹ️ Position {ordinal} has no fees or rewards to claim right now.")
        return

    explorer = get_workflow(context).explorer_tx_url
    tx_lines = "\n".join(escape_markdown_v2(explorer + tx_id) for tx_id in result.tx_ids)
    text = (
        f"✅ *Fees claimed for position {ordinal}\\!*\n\n"
        f"Transactions:\n{tx_lines}"
    )
    await status.edit_text(text, parse_mode="MarkdownV2")
