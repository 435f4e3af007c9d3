"""
HTTP client for the CLMM execution service.

The service wraps the AMM SDK: pool state, price/tick math, liquidity
quotes, and building, signing and submitting position transactions. Raw
token amounts travel as decimal strings so they never lose precision.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional
from urllib.parse import urljoin

import httpx
from pydantic import ValidationError

from lpbot.amm import AmmExecutionService, AmmRejectedError, AmmTransportError
from lpbot.models import OpenResult, PoolSnapshot, PoolSummary, Position, Reward, TokenInfo

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        return str(body.get("error") or body.get("message") or body)
    return str(body)


def _require(data: Any, key: str) -> Any:
    if not isinstance(data, dict) or data.get(key) is None:
        raise AmmRejectedError("Malformed AMM service response", detail=f"Missing '{key}' in response")
    return data[key]


def _require_int(data: Any, key: str) -> int:
    value = _require(data, key)
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise AmmRejectedError("Malformed AMM service response", detail=f"Invalid '{key}': {value!r}") from e


def _parse_token(data: dict) -> TokenInfo:
    return TokenInfo(
        address=data["address"],
        symbol=data.get("symbol") or data["address"][:6],
        decimals=int(data["decimals"]),
    )


def _parse_position(data: dict) -> Position:
    return Position(
        pool_id=data["poolId"],
        position_handle=data["nftMint"],
        name=data.get("name", ""),
        liquidity=int(data.get("liquidity", 0)),
        price_lower=Decimal(str(data["priceLower"])),
        price_upper=Decimal(str(data["priceUpper"])),
        pooled_amount_a=Decimal(str(data.get("pooledAmountA", 0))),
        pooled_amount_b=Decimal(str(data.get("pooledAmountB", 0))),
        rewards=[
            Reward(mint=r["mint"], amount=Decimal(str(r.get("amount", 0))))
            for r in data.get("rewardInfos", [])
        ],
    )


def _parse_pool_summary(data: dict) -> PoolSummary:
    day = data.get("day") or {}
    return PoolSummary(
        pool_id=data["id"],
        symbol_a=data["mintA"].get("symbol") or data["mintA"]["address"][:6],
        symbol_b=data["mintB"].get("symbol") or data["mintB"]["address"][:6],
        price=Decimal(str(data["price"])),
        tvl=Decimal(str(data.get("tvl", 0))),
        volume_24h=Decimal(str(day.get("volume", 0))),
        fees_24h=Decimal(str(day.get("volumeFee", 0))),
        apr_24h=Decimal(str(day.get("apr", 0))),
        fee_rate=Decimal(str(data.get("feeRate", 0))),
    )


class AmmServiceClient(AmmExecutionService):

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.timeout = timeout
        self._transport = transport

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        url = urljoin(self.base_url, path.lstrip("/"))
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise AmmTransportError("AMM service timed out", detail=f"Request to {path} timed out") from e
        except httpx.TransportError as e:
            raise AmmTransportError("AMM service unreachable", detail=str(e) or type(e).__name__) from e

        if response.is_error:
            detail = _error_detail(response)
            logger.warning(f"AMM service rejected {method} {path}: {response.status_code} {detail}")
            raise AmmRejectedError(f"AMM service returned {response.status_code}", detail=detail)

        try:
            return response.json()
        except ValueError as e:
            raise AmmRejectedError("Malformed AMM service response", detail=response.text[:200]) from e

    async def _get(self, path: str, params: Optional[dict] = None) -> Any:
        return await self._request("GET", path, params=params)

    async def _post(self, path: str, data: Optional[dict] = None) -> Any:
        return await self._request("POST", path, json=data)

    async def fetch_pool_snapshot(self, pool_id: str) -> PoolSnapshot:
        data = await self._get(f"/clmm/pools/{pool_id}")
        try:
            return PoolSnapshot(
                pool_id=data.get("id", pool_id),
                current_price=Decimal(str(data["price"])),
                token_a=_parse_token(data["mintA"]),
                token_b=_parse_token(data["mintB"]),
            )
        except (AttributeError, KeyError, TypeError, ValueError, InvalidOperation, ValidationError) as e:
            raise AmmRejectedError("Incomplete pool information", detail=f"Pool {pool_id}: {e}") from e

    async def _fetch_pool_summaries(self, params: dict) -> List[PoolSummary]:
        data = await self._get("/clmm/pools", params=params)
        try:
            return [_parse_pool_summary(p) for p in data.get("pools", [])]
        except (AttributeError, KeyError, TypeError, ValueError, InvalidOperation, ValidationError) as e:
            raise AmmRejectedError("Malformed pool data", detail=str(e)) from e

    async def list_pools(self, page: int, page_size: int) -> List[PoolSummary]:
        return await self._fetch_pool_summaries({"page": page, "pageSize": page_size, "sort": "volume24h"})

    async def search_pools_by_mint(self, mint: str) -> List[PoolSummary]:
        return await self._fetch_pool_summaries({"mint": mint})

    async def price_to_tick(self, pool_id: str, price: Decimal) -> int:
        data = await self._post("/clmm/tick", {"poolId": pool_id, "price": str(price), "baseIn": True})
        return _require_int(data, "tick")

    async def quote_other_amount(
        self,
        pool_id: str,
        base: str,
        base_amount_raw: int,
        lower_tick: int,
        upper_tick: int,
        slippage: Decimal,
    ) -> int:
        data = await self._post("/clmm/quote-liquidity", {
            "poolId": pool_id,
            "base": base,
            "baseAmount": str(base_amount_raw),
            "tickLower": lower_tick,
            "tickUpper": upper_tick,
            "slippage": str(slippage),
        })
        return _require_int(data, "otherAmountMax")

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
        data = await self._post("/clmm/positions/open", {
            "poolId": pool_id,
            "base": base,
            "baseAmount": str(base_amount_raw),
            "tickLower": lower_tick,
            "tickUpper": upper_tick,
            "otherAmountMax": str(other_amount_max),
            "ownerKey": owner_key,
        })
        return OpenResult(tx_id=_require(data, "txId"), position_handle=_require(data, "nftMint"))

    async def list_positions(self, owner_address: str) -> List[Position]:
        data = await self._get("/clmm/positions", params={"owner": owner_address})
        try:
            return [_parse_position(p) for p in data.get("positions", [])]
        except (AttributeError, KeyError, TypeError, ValueError, InvalidOperation, ValidationError) as e:
            raise AmmRejectedError("Malformed position data", detail=str(e)) from e

    async def close_position(
        self,
        position_handle: str,
        min_amount_a: int,
        min_amount_b: int,
        close: bool,
        owner_key: str,
    ) -> str:
        data = await self._post(f"/clmm/positions/{position_handle}/close", {
            "amountMinA": str(min_amount_a),
            "amountMinB": str(min_amount_b),
            "closePosition": close,
            "ownerKey": owner_key,
        })
        return _require(data, "txId")

    async def harvest_rewards(self, position_handle: str, owner_key: str) -> List[str]:
        data = await self._post(f"/clmm/positions/{position_handle}/harvest", {"ownerKey": owner_key})
        tx_ids = data.get("txIds") if isinstance(data, dict) else None
        return list(tx_ids or [])
