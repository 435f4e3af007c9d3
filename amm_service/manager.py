"""
AMM service settings with YAML configuration.

Reads the execution service endpoint and the position policy from amm.yml:

    amm_service:
      base_url: http://localhost:8787
      timeout: 30
    positions:
      open_slippage: 0.05
    solana:
      rpc_url: https://api.mainnet-beta.solana.com
    explorer_tx_url: https://solscan.io/tx/
    explorer_account_url: https://solscan.io/account/
"""

import logging
from decimal import Decimal
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from lpbot.lifecycle import DEFAULT_OPEN_SLIPPAGE

from .client import DEFAULT_TIMEOUT, AmmServiceClient
from .solana_rpc import DEFAULT_RPC_URL, SolanaRpcClient

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:8787"
DEFAULT_EXPLORER_TX_URL = "https://solscan.io/tx/"
DEFAULT_EXPLORER_ACCOUNT_URL = "https://solscan.io/account/"


class AmmSettings(BaseModel):
    """Execution service endpoint and position policy."""

    base_url: str = Field(default=DEFAULT_BASE_URL, description="CLMM execution service URL")
    timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0, description="Request timeout in seconds")
    open_slippage: Decimal = Field(default=DEFAULT_OPEN_SLIPPAGE, ge=0, description="Slippage bound when opening")
    explorer_tx_url: str = Field(default=DEFAULT_EXPLORER_TX_URL, description="Prefix for transaction links")
    explorer_account_url: str = Field(default=DEFAULT_EXPLORER_ACCOUNT_URL, description="Prefix for wallet links")
    solana_rpc_url: str = Field(default=DEFAULT_RPC_URL, description="Solana JSON-RPC endpoint for balances")


class AmmServiceManager:
    """Loads AmmSettings from amm.yml and hands out the service client."""

    def __init__(self, config_path: str = "amm.yml"):
        self.config_path = Path(config_path)
        self.settings = AmmSettings()
        self._client: Optional[AmmServiceClient] = None
        self._rpc_client: Optional[SolanaRpcClient] = None
        self._load_config()

    def _load_config(self):
        """Load settings from YAML file, falling back to defaults"""
        if not self.config_path.exists():
            logger.warning(f"Config file not found: {self.config_path}, using defaults")
            self.settings = AmmSettings()
            return

        try:
            with open(self.config_path, 'r') as f:
                config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load config: {e}")
            self.settings = AmmSettings()
            return

        service = config.get('amm_service', {}) or {}
        positions = config.get('positions', {}) or {}
        solana = config.get('solana', {}) or {}
        slippage = positions.get('open_slippage')
        raw = {
            'base_url': service.get('base_url'),
            'timeout': service.get('timeout'),
            # YAML yields floats; go through str so 0.05 stays exactly 0.05
            'open_slippage': str(slippage) if slippage is not None else None,
            'explorer_tx_url': config.get('explorer_tx_url'),
            'explorer_account_url': config.get('explorer_account_url'),
            'solana_rpc_url': solana.get('rpc_url'),
        }
        try:
            self.settings = AmmSettings(**{k: v for k, v in raw.items() if v is not None})
        except ValidationError as e:
            logger.error(f"Invalid settings in {self.config_path}: {e}")
            raise

        logger.info(f"Loaded AMM service settings from {self.config_path} ({self.settings.base_url})")

    def get_client(self) -> AmmServiceClient:
        """Get or create the execution service client"""
        if self._client is None:
            self._client = AmmServiceClient(
                base_url=self.settings.base_url,
                timeout=self.settings.timeout,
            )
        return self._client

    def get_rpc_client(self) -> SolanaRpcClient:
        """Get or create the Solana RPC client used for balances"""
        if self._rpc_client is None:
            self._rpc_client = SolanaRpcClient(self.settings.solana_rpc_url)
        return self._rpc_client

    def reload_config(self):
        """Reload configuration from file and drop the cached client"""
        self._client = None
        self._rpc_client = None
        self._load_config()
        logger.info("Configuration reloaded from file")
