"""
Minimal Solana JSON-RPC client, used for wallet balances.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import httpx

from lpbot.errors import CollaboratorError

logger = logging.getLogger(__name__)

DEFAULT_RPC_URL = "https://api.mainnet-beta.solana.com"
LAMPORTS_PER_SOL = Decimal(10) ** 9


class SolanaRpcClient:

    def __init__(
        self,
        rpc_url: str = DEFAULT_RPC_URL,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.rpc_url = rpc_url
        self.timeout = timeout
        self._transport = transport

    async def _call(self, method: str, params: list) -> Any:
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.rpc_url, json=payload)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"RPC {method} failed: {e}")
            raise CollaboratorError(f"Solana RPC {method} failed") from e

        if not isinstance(data, dict) or "error" in data:
            error = data.get("error") if isinstance(data, dict) else data
            logger.warning(f"RPC {method} returned an error: {error}")
            raise CollaboratorError(f"Solana RPC {method} failed: {error}")
        return data.get("result")

    async def get_sol_balance(self, address: str) -> Decimal:
        """SOL balance of an address."""
        result = await self._call("getBalance", [address])
        try:
            lamports = Decimal(str(result["value"]))
        except (KeyError, TypeError, InvalidOperation) as e:
            raise CollaboratorError(f"Unexpected getBalance result: {result!r}") from e
        return lamports / LAMPORTS_PER_SOL
