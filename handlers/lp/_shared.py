"""
Shared utilities for LP handlers

Contains:
- Service lookup from application.bot_data
- ChatEvent construction from Telegram updates
- Reply delivery (send, edit, prompt tracking)
"""

import logging
from typing import List

from telegram import Update
from telegram.error import BadRequest
from telegram.ext import ContextTypes

from lpbot.lifecycle import LifecycleCoordinator
from lpbot.workflow import ChatEvent, LpWorkflow, Payload, Reply
from utils.telegram_formatters import build_keyboard, format_reply_text

logger = logging.getLogger(__name__)

WORKFLOW_KEY = "lp_workflow"
COORDINATOR_KEY = "lp_coordinator"
USER_STORE_KEY = "user_store"


# ============================================
# SERVICES
# ============================================

def get_workflow(context: ContextTypes.DEFAULT_TYPE) -> LpWorkflow:
    return context.bot_data[WORKFLOW_KEY]


def get_coordinator(context: ContextTypes.DEFAULT_TYPE) -> LifecycleCoordinator:
    return context.bot_data[COORDINATOR_KEY]


def chat_event(update: Update, payload: Payload) -> ChatEvent:
    return ChatEvent(
        user_id=str(update.effective_user.id),
        chat_id=update.effective_chat.id,
        payload=payload,
    )


# ============================================
# DELIVERY
# ============================================

async def _edit_reply(context: ContextTypes.DEFAULT_TYPE, chat_id: int, reply: Reply) -> bool:
    """Edit the referenced message in place. Returns False if it could not be edited."""
    try:
        await context.bot.edit_message_text(
            chat_id=chat_id,
            message_id=reply.edit_ref,
            text=format_reply_text(reply.title, reply.body),
            parse_mode="MarkdownV2",
            reply_markup=build_keyboard(reply.choices),
        )
    except BadRequest as e:
        if "not modified" in str(e).lower():
            logger.debug(f"Message not modified (ignored): {e}")
            return True
        logger.warning(f"Could not edit message {reply.edit_ref}: {e}")
        return False
    return True


async def send_replies(
    update: Update,
    context: ContextTypes.DEFAULT_TYPE,
    replies: List[Reply],
) -> None:
    """Deliver workflow replies in order and remember the prompts for edits and the echo guard."""
    workflow = get_workflow(context)
    chat_id = update.effective_chat.id
    user_id = str(update.effective_user.id)

    for reply in replies:
        if reply.edit_ref is not None and await _edit_reply(context, chat_id, reply):
            continue

        sent = await context.bot.send_message(
            chat_id=chat_id,
            text=format_reply_text(reply.title, reply.body),
            parse_mode="MarkdownV2",
            reply_markup=build_keyboard(reply.choices),
        )
        if reply.is_prompt:
            workflow.record_prompt(user_id, sent.message_id, reply)


async def run_workflow(update: Update, context: ContextTypes.DEFAULT_TYPE, payload: Payload) -> bool:
    """Feed one event to the LP workflow and deliver its replies.

    Returns False when the workflow did not claim the event.
    """
    workflow = get_workflow(context)

    async def progress(reply: Reply) -> None:
        await send_replies(update, context, [reply])

    result = await workflow.handle(chat_event(update, payload), progress=progress)
    if not result.handled:
        return False

    await send_replies(update, context, result.replies)
    return True


async def strip_keyboard(update: Update) -> None:
    """Remove the inline keyboard from the pressed message so stale buttons are not reused."""
    query = update.callback_query
    if query is None:
        return
    try:
        await query.edit_message_reply_markup(reply_markup=None)
    except BadRequest as e:
        logger.debug(f"Could not remove keyboard (ignored): {e}")
