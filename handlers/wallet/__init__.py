"""
Wallet module - the user's custodial Solana wallet

Supports:
- /wallet: address and SOL balance
- Export private key, refresh balance and close buttons
"""

import logging
from decimal import Decimal
from typing import Optional

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.error import BadRequest
from telegram.ext import CallbackQueryHandler, ContextTypes

from handlers import get_reply_target
from lpbot.errors import LpBotError
from utils.auth import restricted
from utils.telegram_formatters import escape_markdown_v2, format_error_message

logger = logging.getLogger(__name__)

WALLETS_KEY = "wallets"
SOLANA_RPC_KEY = "solana_rpc"
EXPLORER_ACCOUNT_URL_KEY = "explorer_account_url"

ACTION_PREFIX = "wallet"
ACTION_EXPORT = f"{ACTION_PREFIX}:export"
ACTION_REFRESH = f"{ACTION_PREFIX}:refresh"
ACTION_CLOSE = f"{ACTION_PREFIX}:close"


def get_wallet_keyboard(wallet_address: str, explorer_account_url: str) -> InlineKeyboardMarkup:
    keyboard = [
        [
            InlineKeyboardButton("📋 Export Private Key", callback_data=ACTION_EXPORT),
            InlineKeyboardButton("🔍 View on Solscan", url=f"{explorer_account_url}{wallet_address}"),
        ],
        [
            InlineKeyboardButton("🔄 Refresh", callback_data=ACTION_REFRESH),
            InlineKeyboardButton("❌ Close", callback_data=ACTION_CLOSE),
        ],
    ]
    return InlineKeyboardMarkup(keyboard)


def format_wallet(wallet_address: str, balance: Optional[Decimal], refreshed: bool = False) -> str:
    """Wallet card (MarkdownV2); balance None means it could not be fetched"""
    if balance is None:
        balance_text = escape_markdown_v2("unavailable, try 🔄 Refresh")
    else:
        balance_text = escape_markdown_v2(f"◎{balance:.4f} SOL")
    if refreshed:
        balance_text += " _\\(Refreshed\\)_"
    return (
        "*Your Wallet*\n\n"
        f"Address: `{escape_markdown_v2(wallet_address)}`\n"
        f"Balance: {balance_text}"
    )


async def _fetch_balance(context: ContextTypes.DEFAULT_TYPE, wallet_address: str) -> Optional[Decimal]:
    try:
        return await context.bot_data[SOLANA_RPC_KEY].get_sol_balance(wallet_address)
    except LpBotError as e:
        logger.warning(f"Balance lookup failed for {wallet_address}: {e}")
        return None


def _wallet_address(context: ContextTypes.DEFAULT_TYPE, user_id: str) -> Optional[str]:
    return context.bot_data[WALLETS_KEY].user_store.get_wallet_address(user_id)


# ============================================
# COMMANDS
# ============================================

@restricted
async def wallet_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Handle /wallet command - Show the custodial wallet and its SOL balance

    Usage:
        /wallet
    """
    msg = get_reply_target(update)
    wallet_address = _wallet_address(context, str(update.effective_user.id))

    if not wallet_address:
        await msg.reply_text("You haven't set up your wallet yet. Please use /start first.")
        return

    balance = await _fetch_balance(context, wallet_address)
    await msg.reply_text(
        format_wallet(wallet_address, balance),
        parse_mode="MarkdownV2",
        reply_markup=get_wallet_keyboard(wallet_address, context.bot_data[EXPLORER_ACCOUNT_URL_KEY]),
    )


# ============================================
# CALLBACK HANDLER
# ============================================

@restricted
async def wallet_callback_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle wallet inline buttons - export, refresh, close"""
    query = update.callback_query
    user_id = str(update.effective_user.id)
    data = query.data or ""

    try:
        if data == ACTION_EXPORT:
            await _export_private_key(update, context, user_id)
        elif data == ACTION_REFRESH:
            await _refresh(update, context, user_id)
        elif data == ACTION_CLOSE:
            await query.answer("Closed.")
            await query.edit_message_reply_markup(reply_markup=None)
        else:
            await query.answer()
            await query.message.reply_text(f"Unknown action: {data}")

    except BadRequest as e:
        # Ignore "message is not modified" errors - they're harmless
        if "not modified" in str(e).lower():
            logger.debug(f"Message not modified (ignored): {e}")
            return
        logger.error(f"Error in wallet callback handler: {e}", exc_info=True)
        await query.message.reply_text(format_error_message(f"Operation failed: {str(e)}"), parse_mode="MarkdownV2")


async def _export_private_key(update: Update, context: ContextTypes.DEFAULT_TYPE, user_id: str) -> None:
    query = update.callback_query
    try:
        private_key = context.bot_data[WALLETS_KEY].export_private_key(user_id)
    except LpBotError as e:
        logger.warning(f"Private key export failed for user {user_id}: {e}")
        await query.answer("Key not found.")
        await query.message.reply_text(format_error_message("No private key found for your account."), parse_mode="MarkdownV2")
        return

    await query.answer("Private key sent.")
    await query.message.reply_text(
        "⚠️ *Warning*: Never share your private key with anyone\\!\n\n"
        f"`{escape_markdown_v2(private_key)}`",
        parse_mode="MarkdownV2",
    )


async def _refresh(update: Update, context: ContextTypes.DEFAULT_TYPE, user_id: str) -> None:
    query = update.callback_query
    wallet_address = _wallet_address(context, user_id)
    if not wallet_address:
        await query.answer("Refresh failed.")
        await query.edit_message_text("Could not refresh balance. Please try /wallet again.")
        return

    balance = await _fetch_balance(context, wallet_address)
    await query.answer("Balance refreshed.")
    await query.edit_message_text(
        format_wallet(wallet_address, balance, refreshed=True),
        parse_mode="MarkdownV2",
        reply_markup=get_wallet_keyboard(wallet_address, context.bot_data[EXPLORER_ACCOUNT_URL_KEY]),
    )


# ============================================
# HANDLER FACTORIES
# ============================================

def get_wallet_callback_handler():
    """Get the callback query handler for wallet buttons"""
    return CallbackQueryHandler(
        wallet_callback_handler,
        pattern=f"^{ACTION_PREFIX}:"
    )


__all__ = [
    'wallet_command',
    'wallet_callback_handler',
    'get_wallet_callback_handler',
    'get_wallet_keyboard',
    'format_wallet',
]
