"""
Command handlers for the LP Telegram bot
"""

from typing import Optional

from telegram import Message, Update


def get_reply_target(update: Update) -> Optional[Message]:
    """Message to reply to, whether the update is a command or a button press."""
    return update.message or (update.callback_query.message if update.callback_query else None)
