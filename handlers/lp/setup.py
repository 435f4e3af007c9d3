"""
Single-sided LP setup

Thin Telegram glue around LpWorkflow: every button press, command and text
reply becomes one workflow event.
"""

import logging

from telegram import Update
from telegram.ext import ContextTypes

from lpbot.workflow import Back, Cancel, Confirm, SelectPool, SelectToken, TextReply

from ._shared import run_workflow, strip_keyboard

logger = logging.getLogger(__name__)


async def handle_select_pool(update: Update, context: ContextTypes.DEFAULT_TYPE, pool_id: str) -> None:
    await update.callback_query.message.reply_chat_action("typing")
    await run_workflow(update, context, SelectPool(pool_id=pool_id))


async def handle_select_token(update: Update, context: ContextTypes.DEFAULT_TYPE, mint: str) -> None:
    await strip_keyboard(update)
    await run_workflow(update, context, SelectToken(mint=mint))


async def handle_back(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await strip_keyboard(update)
    await run_workflow(update, context, Back())


async def handle_confirm(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await strip_keyboard(update)
    await run_workflow(update, context, Confirm())


async def handle_cancel(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await run_workflow(update, context, Cancel())


async def process_setup_input(update: Update, context: ContextTypes.DEFAULT_TYPE, user_input: str) -> bool:
    """Offer free text to the workflow. Returns False if no setup step wanted it."""
    return await run_workflow(update, context, TextReply(text=user_input))
