"""
Telegram message formatters for LP bot data
"""

import re
from decimal import Decimal
from typing import List, Optional, Tuple

from telegram import InlineKeyboardButton, InlineKeyboardMarkup

from lpbot.models import PoolSummary, Position


def escape_markdown_v2(text: str) -> str:
    """
    Escape special characters for Telegram MarkdownV2

    Characters that need escaping: _ * [ ] ( ) ~ ` > # + - = | { } . !
    """
    special_chars = r'_*[]()~`>#+-=|{}.!'
    return re.sub(f'([{re.escape(special_chars)}])', r'\\\1', str(text))


def format_amount(value, decimals: int = 4) -> str:
    """
    Format token amounts with appropriate precision
    Uses scientific notation for very small numbers, otherwise uses fixed decimals
    """
    value = float(value)
    if value == 0:
        return "0"
    elif abs(value) < 0.0001:
        # Use scientific notation for very small numbers
        return f"{value:.2e}"
    elif abs(value) < 1:
        # Show more decimals for small amounts
        return f"{value:.6f}".rstrip('0').rstrip('.')
    else:
        formatted = f"{value:.{decimals}f}"
        return formatted.rstrip('0').rstrip('.') if '.' in formatted else formatted


def format_price(value: Decimal) -> str:
    """Plain decimal notation, no exponent"""
    return format(value, "f")


def format_error_message(error: str) -> str:
    """
    Format error message for Telegram

    Args:
        error: Error message

    Returns:
        Formatted error message (MarkdownV2)
    """
    return f"❌ *Error*\n\n{escape_markdown_v2(error)}"


def format_reply_text(title: str, body: str = "") -> str:
    """Bold title followed by an escaped body, for workflow replies"""
    text = f"*{escape_markdown_v2(title)}*"
    if body:
        text += f"\n\n{escape_markdown_v2(body)}"
    return text


def build_keyboard(choices: List[Tuple[str, str]], per_row: int = 2) -> Optional[InlineKeyboardMarkup]:
    """Lay (label, callback_data) pairs out in rows of per_row buttons"""
    if not choices:
        return None
    keyboard = []
    for i in range(0, len(choices), per_row):
        keyboard.append([
            InlineKeyboardButton(label, callback_data=data)
            for label, data in choices[i:i + per_row]
        ])
    return InlineKeyboardMarkup(keyboard)


def format_position(ordinal: int, position: Position) -> str:
    """
    Format one CLMM position for a positions listing

    Args:
        ordinal: 1-based number shown to the user
        position: Position record

    Returns:
        MarkdownV2 section for the position
    """
    token_a, token_b = position.token_names

    lines = [
        f"*Position {ordinal}* \\- {escape_markdown_v2(position.name or 'Unknown pool')}",
        f"Pool: `{escape_markdown_v2(position.pool_id)}`",
        f"NFT: `{escape_markdown_v2(position.position_handle)}`",
        escape_markdown_v2(
            f"Price Range: {format_price(position.price_lower)} - {format_price(position.price_upper)}"
        ),
        escape_markdown_v2(f"Liquidity: {position.liquidity}"),
        escape_markdown_v2(f"Pooled {token_a}: {format_amount(position.pooled_amount_a, 6)}"),
        escape_markdown_v2(f"Pooled {token_b}: {format_amount(position.pooled_amount_b, 6)}"),
    ]

    if not position.has_liquidity:
        lines.append("_Empty position \\(no liquidity\\)_")

    rewards = [r for r in position.rewards if r.amount > 0]
    if rewards:
        lines.append("Rewards:")
        for reward in rewards:
            lines.append(escape_markdown_v2(f"  • {format_amount(reward.amount, 6)} ({reward.mint[:6]}...)"))

    return "\n".join(lines)


def format_positions_header(count: int) -> str:
    """Header sent before the per-position messages (MarkdownV2)"""
    if count == 0:
        return "🏊 *Your CLMM Positions*\n\n_You don't have any CLMM positions yet\\._"

    return (
        f"🏊 *Your CLMM Positions* \\({count}\\)\n\n"
        + escape_markdown_v2(
            "Use /close_position <number> to close a position or /claim_fees <number> to collect rewards."
        )
    )


def format_compact_number(value) -> str:
    """1234567 -> 1.23M"""
    value = float(value)
    if abs(value) >= 1e9:
        return f"{value / 1e9:.2f}B"
    if abs(value) >= 1e6:
        return f"{value / 1e6:.2f}M"
    if abs(value) >= 1e3:
        return f"{value / 1e3:.2f}K"
    return f"{value:.2f}"


def format_pool_summary(pool: PoolSummary, number: Optional[int] = None) -> str:
    """
    Format a browsed pool (MarkdownV2)

    Args:
        pool: Pool summary from a listing or a mint search
        number: Position in the listing, omitted for standalone cards
    """
    title = escape_markdown_v2(pool.label)
    heading = f"{number}\\. *{title}*" if number is not None else f"🔍 *{title} Pool Details*"
    lines = [
        heading,
        escape_markdown_v2(f"TVL: ${format_compact_number(pool.tvl)}"),
        escape_markdown_v2(f"24h Volume: ${format_compact_number(pool.volume_24h)}"),
        escape_markdown_v2(f"24h Fees: ${format_compact_number(pool.fees_24h)}"),
        escape_markdown_v2(f"APR: {float(pool.apr_24h):.2f}%"),
    ]
    if number is None:
        lines.append(escape_markdown_v2(f"Fee Rate: {float(pool.fee_rate) * 100:.2f}%"))
        lines.append(escape_markdown_v2(f"Current Price: {format_amount(pool.price, 4)}"))
    return "\n".join(lines)


def format_pools_page(pools: List[PoolSummary], page: int, per_page: int) -> str:
    """One page of the pools listing (MarkdownV2); page is 1-based"""
    total_pages = max(1, -(-len(pools) // per_page))
    start = (page - 1) * per_page
    sections = [
        format_pool_summary(pool, number=start + i + 1)
        for i, pool in enumerate(pools[start:start + per_page])
    ]
    return (
        "📊 *CLMM Pools*\n\n"
        + "\n\n".join(sections)
        + f"\n\nPage {page}/{total_pages}"
    )
