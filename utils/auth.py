import logging
from functools import wraps

from telegram import Update
from telegram.ext import ContextTypes

from utils.config import AUTHORIZED_USERS

logger = logging.getLogger(__name__)


def restricted(func):
    """Reject users outside AUTHORIZED_USERS. An empty allow-list admits everyone."""
    @wraps(func)
    async def wrapped(
        update: Update, context: ContextTypes.DEFAULT_TYPE, *args, **kwargs
    ):
        user_id = update.effective_user.id
        if AUTHORIZED_USERS and user_id not in AUTHORIZED_USERS:
            logger.warning(f"Unauthorized access denied for {user_id}.")
            msg = update.message or (update.callback_query.message if update.callback_query else None)
            if update.callback_query:
                await update.callback_query.answer()
            if msg:
                await msg.reply_text("You are not authorized to use this bot.")
            return
        return await func(update, context, *args, **kwargs)

    return wrapped


def wallet_required(func):
    """
    Decorator that checks the caller has a provisioned custodial wallet.
    If not, replies with a notice and prevents the handler from executing.

    Usage:
        @wallet_required
        async def positions_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
            ...
    """
    @wraps(func)
    async def wrapped(
        update: Update, context: ContextTypes.DEFAULT_TYPE, *args, **kwargs
    ):
        user_store = context.bot_data.get("user_store")
        user_id = str(update.effective_user.id)

        if user_store is None or not user_store.has_wallet(user_id):
            msg = update.message or (update.callback_query.message if update.callback_query else None)
            if msg:
                await msg.reply_text(
                    "⚠️ You don't have a wallet yet.\n\n"
                    "Use /start to create one."
                )
            return

        return await func(update, context, *args, **kwargs)

    return wrapped
