"""
Pool browsing - /pools, /pool_by_token <mint>, /pool <pool_id>

Every pool card carries the entry button into the single-sided LP setup.
"""

import asyncio
import logging
from typing import List, Optional

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.ext import ContextTypes

from handlers import get_reply_target
from lpbot.amm import AmmServiceError
from lpbot.models import PoolSummary
from lpbot.workflow import ACTION_SINGLE
from utils.telegram_formatters import (
    build_keyboard,
    escape_markdown_v2,
    format_error_message,
    format_pool_summary,
    format_pools_page,
    format_price,
)

from ._shared import get_workflow

logger = logging.getLogger(__name__)

ACTION_POOLS_PAGE = "lp:pools_page:"
ACTION_POOL = "lp:pool:"

POOLS_FETCH_COUNT = 25
POOLS_PER_PAGE = 5
# Seconds before the pools listing is reported as failed
POOLS_FETCH_TIMEOUT = 15

POOL_LIST_CACHE_KEY = "pool_list_cache"


def single_sided_keyboard(pool_id: str) -> InlineKeyboardMarkup:
    return build_keyboard([("💧 Single-Sided LP", f"{ACTION_SINGLE}{pool_id}")])


def total_pages(count: int) -> int:
    return max(1, -(-count // POOLS_PER_PAGE))


def build_pools_keyboard(pools: List[PoolSummary], page: int) -> InlineKeyboardMarkup:
    """Pool buttons for the page, then a Prev / n/total / Next row"""
    pages = total_pages(len(pools))
    start = (page - 1) * POOLS_PER_PAGE

    keyboard = [
        [InlineKeyboardButton(f"{start + i + 1}. {pool.label}", callback_data=f"{ACTION_POOL}{pool.pool_id}")]
        for i, pool in enumerate(pools[start:start + POOLS_PER_PAGE])
    ]

    nav = []
    if page > 1:
        nav.append(InlineKeyboardButton("◀️ Prev", callback_data=f"{ACTION_POOLS_PAGE}{page - 1}"))
    nav.append(InlineKeyboardButton(f"{page}/{pages}", callback_data=f"{ACTION_POOLS_PAGE}{page}"))
    if page < pages:
        nav.append(InlineKeyboardButton("Next ▶️", callback_data=f"{ACTION_POOLS_PAGE}{page + 1}"))
    keyboard.append(nav)

    return InlineKeyboardMarkup(keyboard)


def parse_page(data: str) -> Optional[int]:
    try:
        page = int(data[len(ACTION_POOLS_PAGE):])
    except ValueError:
        return None
    return page if page >= 1 else None


# ============================================
# /pools
# ============================================

async def handle_pools_list(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    msg = get_reply_target(update)
    loading = await msg.reply_text("⏳ *Loading pools data\\.\\.\\.*", parse_mode="MarkdownV2")

    amm = get_workflow(context).amm
    try:
        pools = await asyncio.wait_for(amm.list_pools(1, POOLS_FETCH_COUNT), timeout=POOLS_FETCH_TIMEOUT)
    except asyncio.TimeoutError:
        logger.warning(f"Pools listing timed out after {POOLS_FETCH_TIMEOUT}s")
        await loading.edit_text(
            format_error_message("Request timed out. The server is taking too long to respond. Please try again in a few moments."),
            parse_mode="MarkdownV2",
        )
        return
    except AmmServiceError as e:
        logger.warning(f"Pools listing failed: {e.detail}")
        await loading.edit_text(
            format_error_message(f"Error fetching pool data: {e.detail}\n\nPlease try again in a few moments."),
            parse_mode="MarkdownV2",
        )
        return

    if not pools:
        await loading.edit_text(
            format_error_message("No pools data available at the moment. Please try again in a few minutes."),
            parse_mode="MarkdownV2",
        )
        return

    pools = sorted(pools, key=lambda p: p.volume_24h, reverse=True)
    context.user_data[POOL_LIST_CACHE_KEY] = pools

    await loading.edit_text(
        format_pools_page(pools, 1, POOLS_PER_PAGE),
        parse_mode="MarkdownV2",
        reply_markup=build_pools_keyboard(pools, 1),
    )


async def handle_pools_page(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    pools = context.user_data.get(POOL_LIST_CACHE_KEY)
    if not pools:
        await query.message.reply_text(
            escape_markdown_v2("The pools listing has expired. Please use /pools again."),
            parse_mode="MarkdownV2",
        )
        return

    page = parse_page(query.data)
    if page is None or page > total_pages(len(pools)):
        await query.message.reply_text(format_error_message("Invalid page number."), parse_mode="MarkdownV2")
        return

    await query.edit_message_text(
        format_pools_page(pools, page, POOLS_PER_PAGE),
        parse_mode="MarkdownV2",
        reply_markup=build_pools_keyboard(pools, page),
    )


# ============================================
# /pool_by_token
# ============================================

async def handle_pool_by_token(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    msg = get_reply_target(update)
    args = context.args or []

    if not args:
        await msg.reply_text(
            escape_markdown_v2("❌ Please provide a token address.\nUsage: /pool_by_token <token_address>"),
            parse_mode="MarkdownV2",
        )
        return

    mint = args[0].strip()
    await msg.reply_chat_action("typing")

    try:
        pools = await get_workflow(context).amm.search_pools_by_mint(mint)
    except AmmServiceError as e:
        logger.warning(f"Pool search failed for {mint}: {e.detail}")
        await msg.reply_text(
            format_error_message("Error fetching pool data. Please try again later."),
            parse_mode="MarkdownV2",
        )
        return

    if not pools:
        await msg.reply_text(
            format_error_message("No pools found for this token. Please check the token address and try again."),
            parse_mode="MarkdownV2",
        )
        return

    for pool in pools:
        await msg.reply_text(
            format_pool_summary(pool),
            parse_mode="MarkdownV2",
            reply_markup=single_sided_keyboard(pool.pool_id),
        )


# ============================================
# /pool
# ============================================

async def handle_pool_info(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    msg = get_reply_target(update)
    args = context.args or []

    if not args:
        await msg.reply_text(
            escape_markdown_v2("❌ Please provide a pool ID.\nUsage: /pool <pool_id>"),
            parse_mode="MarkdownV2",
        )
        return

    await send_pool_card(update, context, args[0].strip())


async def send_pool_card(update: Update, context: ContextTypes.DEFAULT_TYPE, pool_id: str) -> None:
    """Show the pool's tokens and live price with the single-sided LP entry button."""
    msg = get_reply_target(update)
    await msg.reply_chat_action("typing")

    try:
        snapshot = await get_workflow(context).amm.fetch_pool_snapshot(pool_id)
    except AmmServiceError as e:
        logger.warning(f"Pool lookup failed for {pool_id}: {e.detail}")
        await msg.reply_text(
            format_error_message("Pool not found or unavailable. Please check the pool ID and try again."),
            parse_mode="MarkdownV2",
        )
        return

    token_a, token_b = snapshot.tokens
    text = (
        f"🔍 *{escape_markdown_v2(token_a.symbol)}/{escape_markdown_v2(token_b.symbol)} Pool Details*\n\n"
        f"Pool: `{escape_markdown_v2(snapshot.pool_id)}`\n"
        f"{escape_markdown_v2(token_a.symbol)}: `{escape_markdown_v2(token_a.address)}`\n"
        f"{escape_markdown_v2(token_b.symbol)}: `{escape_markdown_v2(token_b.address)}`\n"
        f"Current Price: {escape_markdown_v2(format_price(snapshot.current_price))}"
    )

    await msg.reply_text(text, parse_mode="MarkdownV2", reply_markup=single_sided_keyboard(snapshot.pool_id))
