"""
Position Lifecycle Coordinator

Runs the terminal operations against the AMM execution service:

- open_position: single-sided open from a confirmed setup
- list_positions: fetches the owner's positions and re-indexes them
- close_position: withdraws all liquidity and closes one listed position
- harvest: collects rewards for one listed position

Close and harvest resolve a user-visible ordinal through the Position Index
and then check the handle against a fresh on-chain listing. A handle that no
longer resolves fails closed instead of being re-indexed.

Every operation checks for a provisioned wallet first. The signing key is
read from the key vault right before the one call that signs with it and is
not kept afterwards.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import List, Optional, Tuple

from .amm import AmmExecutionService, AmmServiceError
from .errors import (
    CollaboratorError,
    ExecutionError,
    LpBotError,
    StalePositionError,
    WalletNotProvisionedError,
    ZeroLiquidityError,
)
from .models import CloseResult, HarvestResult, OpenRequest, OpenResult, Position
from .position_index import IndexedPositionList, PositionIndex

logger = logging.getLogger(__name__)

# Upper bound on the opposite-side amount when opening, as a fraction.
DEFAULT_OPEN_SLIPPAGE = Decimal("0.05")

# Closing accepts any output amount, unlike the slippage-bounded open path.
CLOSE_MIN_AMOUNT_A = 0
CLOSE_MIN_AMOUNT_B = 0


def to_base_units(amount: Decimal, decimals: int) -> int:
    """Convert a human amount to the token's integer base units (half-up).

    The context is widened so no digit of the amount is lost.
    """
    _, digits, exponent = amount.as_tuple()
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, len(digits) + abs(exponent) + decimals + 2)
        return int(amount.scaleb(decimals).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def normalize_ticks(tick_a: int, tick_b: int) -> Tuple[int, int]:
    """Order two ticks as (lower, upper) whichever price produced which."""
    return min(tick_a, tick_b), max(tick_a, tick_b)


class LifecycleCoordinator:

    def __init__(
        self,
        amm: AmmExecutionService,
        key_vault,
        user_store,
        position_index: PositionIndex,
        open_slippage: Decimal = DEFAULT_OPEN_SLIPPAGE,
    ):
        self.amm = amm
        self.key_vault = key_vault
        self.user_store = user_store
        self.position_index = position_index
        self.open_slippage = open_slippage

    def _require_wallet(self, user_id: str) -> str:
        """Return the user's wallet address, or raise if none is provisioned."""
        address = self.user_store.get_wallet_address(user_id)
        if not address:
            raise WalletNotProvisionedError(user_id)
        return address

    # ============================================
    # OPEN
    # ============================================

    async def open_position(self, request: OpenRequest) -> OpenResult:
        self._require_wallet(request.user_id)
        try:
            return await self._open(request)
        except LpBotError:
            raise
        except Exception as e:
            logger.error(f"Unexpected error opening position on {request.pool_id}: {e}", exc_info=True)
            raise ExecutionError("Failed to create position", detail=str(e) or type(e).__name__) from e

    async def _open(self, request: OpenRequest) -> OpenResult:
        base_amount_raw = to_base_units(request.amount, request.token.decimals)

        try:
            tick_from_lower = await self.amm.price_to_tick(request.pool_id, request.lower_price)
            tick_from_upper = await self.amm.price_to_tick(request.pool_id, request.upper_price)
            lower_tick, upper_tick = normalize_ticks(tick_from_lower, tick_from_upper)

            other_amount_max = await self.amm.quote_other_amount(
                request.pool_id,
                request.base,
                base_amount_raw,
                lower_tick,
                upper_tick,
                self.open_slippage,
            )
        except AmmServiceError as e:
            raise ExecutionError("Failed to prepare position", detail=e.detail) from e

        logger.info(
            f"Opening position on {request.pool_id} for user {request.user_id}: "
            f"base={request.base} amount_raw={base_amount_raw} ticks=[{lower_tick}, {upper_tick}] "
            f"other_max={other_amount_max}"
        )

        owner_key = self.key_vault.get_signing_key(request.user_id)
        try:
            return await self.amm.open_position(
                request.pool_id,
                request.base,
                base_amount_raw,
                lower_tick,
                upper_tick,
                other_amount_max,
                owner_key=owner_key,
            )
        except AmmServiceError as e:
            raise ExecutionError("Transaction failed", detail=e.detail) from e

    # ============================================
    # LIST
    # ============================================

    async def _fetch_positions(self, owner_address: str) -> List[Position]:
        try:
            return await self.amm.list_positions(owner_address)
        except AmmServiceError as e:
            raise CollaboratorError(f"Could not fetch positions: {e.detail}") from e

    async def list_positions(self, user_id: str) -> IndexedPositionList:
        """Fetch the user's positions and make them the current ordinal listing."""
        owner_address = self._require_wallet(user_id)
        positions = await self._fetch_positions(owner_address)
        return self.position_index.populate(user_id, positions)

    # ============================================
    # CLOSE / HARVEST
    # ============================================

    async def _resolve_live(self, user_id: str, ordinal: int) -> Position:
        """Resolve an ordinal to its listed position and confirm it still exists with liquidity."""
        owner_address = self._require_wallet(user_id)
        listed = self.position_index.resolve(user_id, ordinal)
        if not listed.has_liquidity:
            raise ZeroLiquidityError(listed.position_handle)

        live: Optional[Position] = None
        for position in await self._fetch_positions(owner_address):
            if position.position_handle == listed.position_handle:
                live = position
                break

        if live is None:
            raise StalePositionError(listed.position_handle)
        if not live.has_liquidity:
            raise ZeroLiquidityError(live.position_handle)
        return live

    async def close_position(self, user_id: str, ordinal: int) -> CloseResult:
        position = await self._resolve_live(user_id, ordinal)

        logger.info(f"Closing position {position.position_handle} (#{ordinal}) for user {user_id}")
        owner_key = self.key_vault.get_signing_key(user_id)
        try:
            tx_id = await self.amm.close_position(
                position.position_handle,
                CLOSE_MIN_AMOUNT_A,
                CLOSE_MIN_AMOUNT_B,
                close=True,
                owner_key=owner_key,
            )
        except AmmServiceError as e:
            raise ExecutionError("Failed to close position", detail=e.detail) from e

        return CloseResult(ordinal=ordinal, position=position, tx_id=tx_id)

    async def harvest(self, user_id: str, ordinal: int) -> HarvestResult:
        position = await self._resolve_live(user_id, ordinal)

        logger.info(f"Harvesting rewards of {position.position_handle} (#{ordinal}) for user {user_id}")
        owner_key = self.key_vault.get_signing_key(user_id)
        try:
            tx_ids = await self.amm.harvest_rewards(position.position_handle, owner_key=owner_key)
        except AmmServiceError as e:
            raise ExecutionError("Failed to claim fees", detail=e.detail) from e

        return HarvestResult(ordinal=ordinal, position=position, tx_ids=list(tx_ids or []))
