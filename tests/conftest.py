from decimal import Decimal
from types import SimpleNamespace
from typing import Dict, List, Optional

import pytest

from lpbot.amm import AmmExecutionService, AmmRejectedError, AmmTransportError
from lpbot.lifecycle import LifecycleCoordinator
from lpbot.models import OpenResult, PoolSnapshot, PoolSummary, Position, Reward, TokenInfo
from lpbot.position_index import PositionIndex
from lpbot.sessions import SessionStore
from lpbot.workflow import ChatEvent, LpWorkflow
from storage.key_vault import KeyVault
from storage.user_store import UserStore
from storage.wallets import WalletProvisioner

USER_ID = "42"
CHAT_ID = 1000
WALLET = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"
SIGNING_KEY = "4wBqpZM9xaSheZzJSMawUHDgZ7miWfSsxmfVF5jJpYP"
ENCRYPTION_KEY = "test-encryption-key"

POOL_ID = "2QdhepnKRTLjjSqPL1PtKNwqrUkoLee5Gqs8bvZhRdMv"
SOL = TokenInfo(address="So11111111111111111111111111111111111111112", symbol="SOL", decimals=9)
USDC = TokenInfo(address="EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v", symbol="USDC", decimals=6)


def make_snapshot(price="150", pool_id=POOL_ID) -> PoolSnapshot:
    return PoolSnapshot(pool_id=pool_id, current_price=Decimal(price), token_a=SOL, token_b=USDC)


def make_position(handle: str, liquidity: int = 1_000_000, **kwargs) -> Position:
    fields = dict(
        pool_id=POOL_ID,
        position_handle=handle,
        name="SOL - USDC",
        liquidity=liquidity,
        price_lower=Decimal("150"),
        price_upper=Decimal("200"),
        pooled_amount_a=Decimal("10"),
        pooled_amount_b=Decimal("0"),
        rewards=[Reward(mint=USDC.address, amount=Decimal("1.25"))],
    )
    fields.update(kwargs)
    return Position(**fields)


def make_pool_summary(pool_id: str, volume: str = "1000", symbols=("SOL", "USDC")) -> PoolSummary:
    return PoolSummary(
        pool_id=pool_id,
        symbol_a=symbols[0],
        symbol_b=symbols[1],
        price=Decimal("150"),
        tvl=Decimal("2500000"),
        volume_24h=Decimal(volume),
        fees_24h=Decimal("12.5"),
        apr_24h=Decimal("18.4"),
        fee_rate=Decimal("0.0025"),
    )


def event(payload, user_id: str = USER_ID, chat_id: int = CHAT_ID) -> ChatEvent:
    return ChatEvent(user_id=user_id, chat_id=chat_id, payload=payload)


class FakeAmm(AmmExecutionService):
    """In-memory AMM execution service that records every call."""

    def __init__(self):
        self.pools: Dict[str, PoolSnapshot] = {POOL_ID: make_snapshot()}
        self.positions: Dict[str, List[Position]] = {}
        self.calls: List[tuple] = []
        self.snapshot_error: Optional[Exception] = None
        self.open_error: Optional[Exception] = None
        self.tick_sign = 1
        self.other_amount_max = 1_575_000_000
        self.harvest_tx_ids: List[str] = ["tx-harvest-1"]
        self.pool_summaries: List[PoolSummary] = []
        self.pools_error: Optional[Exception] = None

    def set_price(self, price: str, pool_id: str = POOL_ID):
        self.pools[pool_id] = make_snapshot(price, pool_id)

    def calls_named(self, name: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == name]

    async def fetch_pool_snapshot(self, pool_id):
        self.calls.append(("fetch_pool_snapshot", pool_id))
        if self.snapshot_error is not None:
            raise self.snapshot_error
        if pool_id not in self.pools:
            raise AmmRejectedError("AMM service returned 404", detail="Pool not found")
        return self.pools[pool_id]

    async def list_pools(self, page, page_size):
        self.calls.append(("list_pools", page, page_size))
        if self.pools_error is not None:
            raise self.pools_error
        return list(self.pool_summaries[:page_size])

    async def search_pools_by_mint(self, mint):
        self.calls.append(("search_pools_by_mint", mint))
        if self.pools_error is not None:
            raise self.pools_error
        return [p for p in self.pool_summaries if mint in (SOL.address, USDC.address)]

    async def price_to_tick(self, pool_id, price):
        self.calls.append(("price_to_tick", pool_id, price))
        return self.tick_sign * int(price * 100)

    async def quote_other_amount(self, pool_id, base, base_amount_raw, lower_tick, upper_tick, slippage):
        self.calls.append(("quote_other_amount", pool_id, base, base_amount_raw, lower_tick, upper_tick, slippage))
        return self.other_amount_max

    async def open_position(self, pool_id, base, base_amount_raw, lower_tick, upper_tick, other_amount_max, owner_key):
        self.calls.append(
            ("open_position", pool_id, base, base_amount_raw, lower_tick, upper_tick, other_amount_max, owner_key)
        )
        if self.open_error is not None:
            raise self.open_error
        return OpenResult(tx_id="tx-open", position_handle="nft-new")

    async def list_positions(self, owner_address):
        self.calls.append(("list_positions", owner_address))
        return list(self.positions.get(owner_address, []))

    async def close_position(self, position_handle, min_amount_a, min_amount_b, close, owner_key):
        self.calls.append(("close_position", position_handle, min_amount_a, min_amount_b, close, owner_key))
        return "tx-close"

    async def harvest_rewards(self, position_handle, owner_key):
        self.calls.append(("harvest_rewards", position_handle, owner_key))
        return list(self.harvest_tx_ids)


@pytest.fixture
def amm():
    return FakeAmm()


@pytest.fixture
def user_store(tmp_path):
    return UserStore(str(tmp_path / "users.db"))


@pytest.fixture
def key_vault(user_store):
    return KeyVault(user_store, ENCRYPTION_KEY)


@pytest.fixture
def wallet_user(user_store, key_vault):
    """USER_ID with a provisioned wallet whose key decrypts to SIGNING_KEY."""
    return user_store.save_wallet(USER_ID, int(USER_ID), WALLET, key_vault.encrypt(SIGNING_KEY))


@pytest.fixture
def position_index():
    return PositionIndex()


@pytest.fixture
def coordinator(amm, key_vault, user_store, position_index):
    return LifecycleCoordinator(amm, key_vault, user_store, position_index)


@pytest.fixture
def sessions():
    return SessionStore()


@pytest.fixture
def workflow(sessions, amm, coordinator):
    return LpWorkflow(sessions, amm, coordinator, explorer_tx_url="https://solscan.io/tx/")


@pytest.fixture
def unreachable():
    return AmmTransportError("AMM service unreachable", detail="connection refused")


@pytest.fixture
def wallets(user_store, key_vault):
    return WalletProvisioner(user_store, key_vault)


# ============================================
# TELEGRAM FAKES
# ============================================

class FakeMessage:
    """Records replies and edits; replies are FakeMessages so they can be edited too."""

    def __init__(self, text: str = "", reply_markup=None):
        self.text = text
        self.reply_markup = reply_markup
        self.replies: List["FakeMessage"] = []
        self.edits: List[tuple] = []

    async def reply_text(self, text, parse_mode=None, reply_markup=None):
        sent = FakeMessage(text, reply_markup)
        self.replies.append(sent)
        return sent

    async def edit_text(self, text, parse_mode=None, reply_markup=None):
        self.edits.append((text, reply_markup))

    async def reply_chat_action(self, action):
        pass


class FakeQuery:
    def __init__(self, data: str, message: Optional[FakeMessage] = None):
        self.data = data
        self.message = message or FakeMessage()
        self.answers: List[Optional[str]] = []
        self.edits: List[tuple] = []
        self.markup_removed = False

    async def answer(self, text=None, show_alert=False):
        self.answers.append(text)

    async def edit_message_text(self, text, parse_mode=None, reply_markup=None):
        self.edits.append((text, reply_markup))

    async def edit_message_reply_markup(self, reply_markup=None):
        self.markup_removed = reply_markup is None


def telegram_update(message: Optional[FakeMessage] = None, query: Optional[FakeQuery] = None, first_name="Ada"):
    return SimpleNamespace(
        effective_user=SimpleNamespace(id=int(USER_ID), first_name=first_name),
        effective_chat=SimpleNamespace(id=CHAT_ID),
        message=message,
        callback_query=query,
    )


def telegram_context(bot_data: dict, bot=None, args=None):
    return SimpleNamespace(bot=bot, bot_data=bot_data, args=args, user_data={})
