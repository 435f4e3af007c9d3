"""
Domain records exchanged between the LP core and its collaborators.
"""

from decimal import Decimal
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class TokenInfo(BaseModel):
    """One side of a pool."""

    model_config = ConfigDict(frozen=True)

    address: str
    symbol: str
    decimals: int = Field(ge=0)


class PoolSnapshot(BaseModel):
    """Authoritative pool state at the time of the fetch."""

    model_config = ConfigDict(frozen=True)

    pool_id: str
    current_price: Decimal
    token_a: TokenInfo
    token_b: TokenInfo

    @property
    def tokens(self) -> Tuple[TokenInfo, TokenInfo]:
        return (self.token_a, self.token_b)

    def find_token(self, mint: str) -> Optional[TokenInfo]:
        for token in self.tokens:
            if token.address == mint:
                return token
        return None

    def base_side(self, mint: str) -> str:
        """Return the AMM base selector ("MintA"/"MintB") for a token mint."""
        return "MintA" if mint == self.token_a.address else "MintB"


class Reward(BaseModel):
    model_config = ConfigDict(frozen=True)

    mint: str
    amount: Decimal


class Position(BaseModel):
    """An on-chain concentrated-liquidity position."""

    model_config = ConfigDict(frozen=True)

    pool_id: str
    position_handle: str
    name: str = ""
    liquidity: int = Field(ge=0)
    price_lower: Decimal
    price_upper: Decimal
    pooled_amount_a: Decimal = Decimal(0)
    pooled_amount_b: Decimal = Decimal(0)
    rewards: List[Reward] = Field(default_factory=list)

    @property
    def has_liquidity(self) -> bool:
        return self.liquidity > 0

    @property
    def token_names(self) -> Tuple[str, str]:
        parts = self.name.split(" - ")
        token_a = parts[0] if parts and parts[0] else "TokenA"
        token_b = parts[1] if len(parts) > 1 and parts[1] else "TokenB"
        return token_a, token_b


class OpenRequest(BaseModel):
    """Everything the coordinator needs to open a single-sided position."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    pool_id: str
    token: TokenInfo
    amount: Decimal
    upper_price: Decimal
    lower_price: Decimal
    base: str


class OpenResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    tx_id: str
    position_handle: str


class CloseResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    ordinal: int
    position: Position
    tx_id: str


class HarvestResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    ordinal: int
    position: Position
    tx_ids: List[str] = Field(default_factory=list)

    @property
    def nothing_to_claim(self) -> bool:
        return not self.tx_ids


class PoolSummary(BaseModel):
    """A pool as shown when browsing, with 24h activity figures."""

    model_config = ConfigDict(frozen=True)

    pool_id: str
    symbol_a: str
    symbol_b: str
    price: Decimal
    tvl: Decimal = Decimal(0)
    volume_24h: Decimal = Decimal(0)
    fees_24h: Decimal = Decimal(0)
    apr_24h: Decimal = Decimal(0)
    fee_rate: Decimal = Decimal(0)

    @property
    def label(self) -> str:
        return f"{self.symbol_a}/{self.symbol_b}"
