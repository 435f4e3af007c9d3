"""
CLMM execution service access: HTTP client, Solana RPC for balances, and
YAML-configured settings.
"""

from .client import AmmServiceClient
from .manager import AmmServiceManager, AmmSettings
from .solana_rpc import SolanaRpcClient

__all__ = ["AmmServiceClient", "AmmServiceManager", "AmmSettings", "SolanaRpcClient"]
