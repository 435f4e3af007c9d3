"""
Boundary of the AMM execution service.

Pool math, transaction construction and submission live behind this
interface. The HTTP implementation is amm_service.client.AmmServiceClient;
tests use an in-memory fake.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import List

from .errors import LpBotError
from .models import OpenResult, PoolSnapshot, PoolSummary, Position


class AmmServiceError(LpBotError):
    """Any failure reported by, or while reaching, the AMM execution service."""

    def __init__(self, message: str, detail: str = ""):
        super().__init__(message)
        self.detail = detail or message


class AmmTransportError(AmmServiceError):
    """The service could not be reached or did not answer in time."""


class AmmRejectedError(AmmServiceError):
    """The service answered and refused the request (business rule, on-chain error)."""


class AmmExecutionService(ABC):

    @abstractmethod
    async def fetch_pool_snapshot(self, pool_id: str) -> PoolSnapshot:
        ...

    @abstractmethod
    async def list_pools(self, page: int, page_size: int) -> List[PoolSummary]:
        """One page of CLMM pools, busiest first."""

    @abstractmethod
    async def search_pools_by_mint(self, mint: str) -> List[PoolSummary]:
        """Pools that trade the given token mint."""

    @abstractmethod
    async def price_to_tick(self, pool_id: str, price: Decimal) -> int:
        ...

    @abstractmethod
    async def quote_other_amount(
        self,
        pool_id: str,
        base: str,
        base_amount_raw: int,
        lower_tick: int,
        upper_tick: int,
        slippage: Decimal,
    ) -> int:
        """Maximum amount of the opposite token, slippage included, in base units."""

    @abstractmethod
    async def open_position(
        self,
        pool_id: str,
        base: str,
        base_amount_raw: int,
        lower_tick: int,
        upper_tick: int,
        other_amount_max: int,
        owner_key: str,
    ) -> OpenResult:
        ...

    @abstractmethod
    async def list_positions(self, owner_address: str) -> List[Position]:
        ...

    @abstractmethod
    async def close_position(
        self,
        position_handle: str,
        min_amount_a: int,
        min_amount_b: int,
        close: bool,
        owner_key: str,
    ) -> str:
        """Withdraw all liquidity; returns the transaction id."""

    @abstractmethod
    async def harvest_rewards(self, position_handle: str, owner_key: str) -> List[str]:
        """Collect rewards for one position; returns zero or more transaction ids."""
