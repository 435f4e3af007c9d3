import logging

from telegram import BotCommand, InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    PersistenceInput,
    PicklePersistence,
)

from amm_service.manager import AmmServiceManager
from handlers.lp import (
    cancel_command,
    claim_fees_command,
    close_position_command,
    confirm_command,
    get_lp_callback_handler,
    get_lp_message_handler,
    pool_by_token_command,
    pool_command,
    pools_command,
    positions_command,
)
from handlers.lp._shared import COORDINATOR_KEY, USER_STORE_KEY, WORKFLOW_KEY
from handlers.wallet import (
    EXPLORER_ACCOUNT_URL_KEY,
    SOLANA_RPC_KEY,
    WALLETS_KEY,
    get_wallet_callback_handler,
    get_wallet_keyboard,
    wallet_command,
)
from lpbot.lifecycle import LifecycleCoordinator
from lpbot.position_index import PositionIndex
from lpbot.sessions import SessionStore
from lpbot.workflow import LpWorkflow
from storage.key_vault import KeyVault
from storage.user_store import UserStore
from storage.wallets import WalletProvisioner
from utils.auth import restricted
from utils.config import AMM_CONFIG_PATH, DB_PATH, ENCRYPTION_KEY, LOG_LEVEL, TELEGRAM_TOKEN
from utils.telegram_formatters import escape_markdown_v2

# Enable logging
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", level=getattr(logging, LOG_LEVEL, logging.INFO)
)
# httpx logs every request at INFO
logging.getLogger("httpx").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


HELP_TEXT = r"""
❓ *Help \- Command Guide*

👛 `/wallet` \- Your wallet address and SOL balance
📊 `/pools` \- Browse CLMM pools by 24h volume
🔎 `/pool_by_token <mint>` \- Pools that trade a token
🔍 `/pool <pool_id>` \- Pool details and 💧 Single\-Sided LP
📋 `/positions` \- List your CLMM positions
❌ `/close_position <n>` \- Withdraw and close position n
💰 `/claim_fees <n>` \- Collect fees and rewards of position n
✅ `/confirm` \- Create the position you just set up
🚫 `/cancel` \- Discard the current LP setup

*Tips:*
• Position numbers refer to your last `/positions` listing
• Single\-sided positions range from the current price up to your upper price
"""


def _get_start_menu_keyboard(wallet_address: str, explorer_account_url: str) -> InlineKeyboardMarkup:
    """Build the start menu inline keyboard: wallet actions, then help."""
    keyboard = list(get_wallet_keyboard(wallet_address, explorer_account_url).inline_keyboard)
    keyboard.append([InlineKeyboardButton("❓ Help", callback_data="start:help")])
    return InlineKeyboardMarkup(keyboard)


@restricted
async def start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Welcome the user, creating their custodial wallet on first use."""
    user = update.effective_user
    name = user.first_name or "there"

    wallets: WalletProvisioner = context.bot_data[WALLETS_KEY]
    try:
        profile, created = wallets.ensure_wallet(str(user.id), user.id)
    except Exception as e:
        logger.error(f"Error setting up wallet for user {user.id}: {e}", exc_info=True)
        await update.message.reply_text(
            "❌ Sorry, something went wrong while setting up your account. Please try again later."
        )
        return

    intro = "A new Solana wallet was created for you:" if created else "Your Solana wallet:"
    reply_text = (
        f"Welcome {escape_markdown_v2(name)}\\! 👋\n\n"
        f"{escape_markdown_v2(intro)}\n"
        f"Address: `{escape_markdown_v2(profile.wallet_address)}`\n\n"
        f"{escape_markdown_v2('Use /wallet to manage your wallet and /pools to find a pool.')}"
    )
    await update.message.reply_text(
        reply_text,
        parse_mode="MarkdownV2",
        reply_markup=_get_start_menu_keyboard(profile.wallet_address, context.bot_data[EXPLORER_ACCOUNT_URL_KEY]),
    )


@restricted
async def start_callback_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle callbacks from the start menu."""
    query = update.callback_query
    await query.answer()

    if query.data == "start:help":
        await query.message.reply_text(HELP_TEXT, parse_mode="MarkdownV2")


@restricted
async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await update.message.reply_text(HELP_TEXT, parse_mode="MarkdownV2")


def build_services(application: Application) -> None:
    """Create the LP services once and share them through bot_data."""
    amm_manager = AmmServiceManager(AMM_CONFIG_PATH)
    settings = amm_manager.settings
    amm = amm_manager.get_client()

    user_store = UserStore(DB_PATH)
    key_vault = KeyVault(user_store, ENCRYPTION_KEY)
    coordinator = LifecycleCoordinator(
        amm=amm,
        key_vault=key_vault,
        user_store=user_store,
        position_index=PositionIndex(),
        open_slippage=settings.open_slippage,
    )
    workflow = LpWorkflow(
        sessions=SessionStore(),
        amm=amm,
        coordinator=coordinator,
        explorer_tx_url=settings.explorer_tx_url,
    )

    application.bot_data[USER_STORE_KEY] = user_store
    application.bot_data[WALLETS_KEY] = WalletProvisioner(user_store, key_vault)
    application.bot_data[SOLANA_RPC_KEY] = amm_manager.get_rpc_client()
    application.bot_data[EXPLORER_ACCOUNT_URL_KEY] = settings.explorer_account_url
    application.bot_data[COORDINATOR_KEY] = coordinator
    application.bot_data[WORKFLOW_KEY] = workflow
    logger.info(f"LP services ready (AMM service {settings.base_url}, db {DB_PATH})")


def register_handlers(application: Application) -> None:
    """Register all command handlers."""
    application.add_handler(CommandHandler("start", start))
    application.add_handler(CommandHandler("help", help_command))
    application.add_handler(CommandHandler("wallet", wallet_command))
    application.add_handler(CommandHandler(["pools", "pools_list"], pools_command))
    application.add_handler(CommandHandler("pool_by_token", pool_by_token_command))
    application.add_handler(CommandHandler("pool", pool_command))
    application.add_handler(CommandHandler(["positions", "my_positions"], positions_command))
    application.add_handler(CommandHandler("close_position", close_position_command))
    application.add_handler(CommandHandler(["claim_fees", "harvest"], claim_fees_command))
    application.add_handler(CommandHandler("confirm", confirm_command))
    application.add_handler(CommandHandler("cancel", cancel_command))

    # Add callback query handler for start menu navigation
    application.add_handler(CallbackQueryHandler(start_callback_handler, pattern="^start:"))

    # Add callback query handler for wallet buttons
    application.add_handler(get_wallet_callback_handler())

    # Add callback query handler for pool browsing, LP setup and position actions
    application.add_handler(get_lp_callback_handler())

    # Free text is only ever input to a pending LP setup step
    application.add_handler(get_lp_message_handler())

    logger.info("Handlers registered successfully")


async def post_init(application: Application) -> None:
    """Register bot commands after initialization."""
    commands = [
        BotCommand("start", "Welcome message and your wallet"),
        BotCommand("wallet", "Wallet address and balance"),
        BotCommand("pools", "Browse CLMM pools"),
        BotCommand("pool_by_token", "Find pools by token mint"),
        BotCommand("pool", "Pool details and single-sided LP"),
        BotCommand("positions", "List your CLMM positions"),
        BotCommand("close_position", "Close a position by number"),
        BotCommand("claim_fees", "Claim fees of a position by number"),
        BotCommand("confirm", "Confirm the pending LP setup"),
        BotCommand("cancel", "Cancel the pending LP setup"),
        BotCommand("help", "Command guide"),
    ]
    await application.bot.set_my_commands(commands)


def main() -> None:
    """Run the bot."""
    # Services live in bot_data and are rebuilt on start, so bot_data is not persisted
    persistence = PicklePersistence(
        filepath="lp_bot_data.pickle",
        store_data=PersistenceInput(bot_data=False, callback_data=False),
    )

    # Create the Application with persistence enabled
    application = (
        Application.builder()
        .token(TELEGRAM_TOKEN)
        .persistence(persistence)
        .post_init(post_init)
        .build()
    )

    build_services(application)
    register_handlers(application)

    # Run the bot
    application.run_polling(allowed_updates=Update.ALL_TYPES)


if __name__ == "__main__":
    main()
