"""
LP module - single-sided CLMM liquidity via the AMM execution service

Supports:
- Pool browsing (listing, search by token, lookup) with entry into the
  single-sided LP setup
- Multi-step setup: input token, amount, upper price, confirmation
- Position listing, closing and fee claiming by position number

Structure:
- pools.py: /pools, /pool_by_token, /pool
- setup.py: setup workflow glue (buttons, /confirm, /cancel, text replies)
- positions.py: /positions, /close_position, /claim_fees
- _shared.py: service lookup and reply delivery
"""

import logging

from telegram import Update
from telegram.ext import CallbackQueryHandler, ContextTypes, MessageHandler, filters

from handlers import get_reply_target
from lpbot.workflow import (
    ACTION_BACK,
    ACTION_CANCEL,
    ACTION_CONFIRM,
    ACTION_PREFIX,
    ACTION_SINGLE,
    ACTION_TOKEN,
)
from utils.auth import restricted, wallet_required
from utils.telegram_formatters import format_error_message

from .pools import (
    ACTION_POOL,
    ACTION_POOLS_PAGE,
    handle_pool_by_token,
    handle_pool_info,
    handle_pools_list,
    handle_pools_page,
    send_pool_card,
)
from .positions import (
    ACTION_CLOSE,
    ACTION_HARVEST,
    handle_claim_fees,
    handle_close_position,
    handle_positions,
    parse_ordinal,
)
from .setup import (
    handle_back,
    handle_cancel,
    handle_confirm,
    handle_select_pool,
    handle_select_token,
    process_setup_input,
)

logger = logging.getLogger(__name__)


# ============================================
# COMMANDS
# ============================================

@restricted
async def pools_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Handle /pools command - Browse CLMM pools by 24h volume

    Usage:
        /pools
    """
    await handle_pools_list(update, context)


@restricted
async def pool_by_token_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Handle /pool_by_token command - Pools that trade a token

    Usage:
        /pool_by_token <token_mint>
    """
    await handle_pool_by_token(update, context)


@restricted
async def pool_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Handle /pool command - Pool details and single-sided LP entry

    Usage:
        /pool <pool_id>
    """
    await handle_pool_info(update, context)


@restricted
@wallet_required
async def positions_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Handle /positions command - List CLMM positions with numbers

    Usage:
        /positions (alias /my_positions)
    """
    await handle_positions(update, context)


@restricted
@wallet_required
async def close_position_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Handle /close_position command - Withdraw all liquidity and close a position

    Usage:
        /close_position <number>
    """
    await handle_close_position(update, context, parse_ordinal(context.args))


@restricted
@wallet_required
async def claim_fees_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Handle /claim_fees command - Collect rewards of a position

    Usage:
        /claim_fees <number> (alias /harvest <number>)
    """
    await handle_claim_fees(update, context, parse_ordinal(context.args))


@restricted
async def confirm_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /confirm - create the position from the pending setup"""
    try:
        await handle_confirm(update, context)
    except Exception as e:
        logger.error(f"Error confirming LP setup: {e}", exc_info=True)
        await _reply_error(update, f"Failed to create position: {str(e)}")


@restricted
async def cancel_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /cancel - discard the pending setup"""
    try:
        await handle_cancel(update, context)
    except Exception as e:
        logger.error(f"Error cancelling LP setup: {e}", exc_info=True)
        await _reply_error(update, f"Failed to cancel: {str(e)}")


async def _reply_error(update: Update, text: str) -> None:
    msg = get_reply_target(update)
    if msg:
        await msg.reply_text(format_error_message(text), parse_mode="MarkdownV2")


# ============================================
# CALLBACK HANDLER
# ============================================

@restricted
async def lp_callback_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle inline button callbacks - Routes to the setup or position handlers"""
    query = update.callback_query
    await query.answer()

    data = query.data or ""
    try:
        if data.startswith(ACTION_POOLS_PAGE):
            await handle_pools_page(update, context)
        elif data.startswith(ACTION_POOL):
            await send_pool_card(update, context, data[len(ACTION_POOL):])
        elif data.startswith(ACTION_SINGLE):
            await handle_select_pool(update, context, data[len(ACTION_SINGLE):])
        elif data.startswith(ACTION_TOKEN):
            await handle_select_token(update, context, data[len(ACTION_TOKEN):])
        elif data == ACTION_CONFIRM:
            await handle_confirm(update, context)
        elif data == ACTION_CANCEL:
            await handle_cancel(update, context)
        elif data == ACTION_BACK:
            await handle_back(update, context)
        elif data.startswith(ACTION_CLOSE):
            await wallet_required(_close_from_button)(update, context)
        elif data.startswith(ACTION_HARVEST):
            await wallet_required(_harvest_from_button)(update, context)
        else:
            await query.message.reply_text(f"Unknown action: {data}")

    except Exception as e:
        # Ignore "message is not modified" errors - they're harmless
        if "not modified" in str(e).lower():
            logger.debug(f"Message not modified (ignored): {e}")
            return

        logger.error(f"Error in LP callback handler: {e}", exc_info=True)
        error_message = format_error_message(f"Operation failed: {str(e)}")
        try:
            await query.message.reply_text(error_message, parse_mode="MarkdownV2")
        except Exception as reply_error:
            logger.warning(f"Failed to send error message: {reply_error}")


async def _close_from_button(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    ordinal = parse_ordinal([update.callback_query.data[len(ACTION_CLOSE):]])
    await handle_close_position(update, context, ordinal)


async def _harvest_from_button(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    ordinal = parse_ordinal([update.callback_query.data[len(ACTION_HARVEST):]])
    await handle_claim_fees(update, context, ordinal)


# ============================================
# MESSAGE HANDLER
# ============================================

@restricted
async def lp_message_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle user text input - Routes to the setup step awaiting input"""
    user_input = update.message.text.strip()

    try:
        handled = await process_setup_input(update, context, user_input)
        if handled:
            logger.info(f"LP setup input from user {update.effective_user.id}: {user_input}")

    except Exception as e:
        logger.error(f"Error processing LP input: {e}", exc_info=True)
        msg = get_reply_target(update)
        error_message = format_error_message(f"Failed to process input: {str(e)}")
        await msg.reply_text(error_message, parse_mode="MarkdownV2")


# ============================================
# HANDLER FACTORIES
# ============================================

def get_lp_callback_handler():
    """Get the callback query handler for LP actions"""
    return CallbackQueryHandler(
        lp_callback_handler,
        pattern=f"^{ACTION_PREFIX}:"
    )


def get_lp_message_handler():
    """Returns the message handler"""
    return MessageHandler(
        filters.TEXT & ~filters.COMMAND,
        lp_message_handler
    )


__all__ = [
    'pools_command',
    'pool_by_token_command',
    'pool_command',
    'positions_command',
    'close_position_command',
    'claim_fees_command',
    'confirm_command',
    'cancel_command',
    'lp_callback_handler',
    'lp_message_handler',
    'get_lp_callback_handler',
    'get_lp_message_handler',
]
