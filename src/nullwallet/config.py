"""Application configuration using pydantic-settings.

Chain RPC endpoints, explorer keys and the gas-sponsorship deployment are all
read from the environment so a deployment never needs a code change.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # Database
    # ======================
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/nullwallet.db",
        description="Database connection URL",
    )

    # ======================
    # API
    # ======================
    api_host: str = Field(default="0.0.0.0", description="API server host")
    api_port: int = Field(default=4444, description="API server port")

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=True, description="Enable debug mode")

    # ======================
    # Admin
    # ======================
    admin_token: str = Field(default="", description="Admin API token for protected endpoints")

    # ======================
    # Chain RPC Endpoints
    # ======================
    eth_rpc_url: str = Field(
        default="https://eth-mainnet.public.blastapi.io", description="Ethereum RPC URL"
    )
    sepolia_rpc_url: str = Field(
        default="https://ethereum-sepolia-rpc.publicnode.com", description="Sepolia RPC URL"
    )
    polygon_rpc_url: str = Field(default="https://polygon-rpc.com", description="Polygon RPC URL")
    mumbai_rpc_url: str = Field(
        default="https://polygon-mumbai-bor-rpc.publicnode.com", description="Mumbai RPC URL"
    )
    bsc_rpc_url: str = Field(
        default="https://bsc-dataseed.binance.org/", description="BSC RPC URL"
    )
    bsc_testnet_rpc_url: str = Field(
        default="https://data-seed-prebsc-1-s1.binance.org:8545/", description="BSC testnet RPC URL"
    )
    flow_testnet_rpc_url: str = Field(
        default="https://testnet.evm.nodes.onflow.org", description="Flow EVM testnet RPC URL"
    )

    rpc_timeout: float = Field(default=10.0, description="Client-side timeout for RPC calls (seconds)")
    balance_retry_attempts: int = Field(
        default=3, description="Native balance read attempts before explorer fallback"
    )
    balance_retry_backoff: float = Field(
        default=1.0, description="Delay between native balance read attempts (seconds)"
    )
    wait_for_confirmation: bool = Field(
        default=False, description="Wait for a receipt before reporting a transfer"
    )
    confirmation_timeout: float = Field(
        default=120.0, description="Maximum time to wait for a receipt (seconds)"
    )

    # ======================
    # Block Explorer API Keys
    # ======================
    etherscan_api_key: str = Field(default="", description="Etherscan API key")
    polygonscan_api_key: str = Field(default="", description="PolygonScan API key")
    bscscan_api_key: str = Field(default="", description="BscScan API key")
    flowscan_api_key: str = Field(default="", description="Flowscan API key")

    # ======================
    # Gas Sponsorship
    # ======================
    flow_gas_sponsor_address: str = Field(
        default="0xD85E0Bfd995278F9369d0e7a1385d4114B95a916",
        description="GasSponsor contract on Flow EVM testnet",
    )
    sepolia_gas_sponsor_address: str = Field(
        default=ZERO_ADDRESS, description="GasSponsor contract on Sepolia"
    )
    mumbai_gas_sponsor_address: str = Field(
        default=ZERO_ADDRESS, description="GasSponsor contract on Mumbai"
    )
    gas_sponsor_private_key: Optional[str] = Field(
        default=None, description="Signing key of the sponsor account"
    )
    sponsored_gas_limit: int = Field(
        default=100000, description="Gas limit requested for sponsored token transfers"
    )
    sponsorship_backend: str = Field(
        default="onchain", description="Sponsorship contract backend: onchain or simulated"
    )

    # Stablecoins on Flow EVM testnet have no canonical deployment yet
    flow_testnet_usdt_address: Optional[str] = Field(
        default=None, description="USDT contract on Flow EVM testnet"
    )
    flow_testnet_usdc_address: Optional[str] = Field(
        default=None, description="USDC contract on Flow EVM testnet"
    )

    # ======================
    # Internal ledger (NullNet)
    # ======================
    ledger_require_access_key: bool = Field(
        default=True, description="Require the wallet access key to debit a ledger account"
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def has_sponsor_key(self) -> bool:
        """Check if a sponsor signing key is configured."""
        return bool(self.gas_sponsor_private_key)

    def get_rpc_url(self, chain_id: str) -> Optional[str]:
        """Get the RPC URL override for a chain."""
        rpc_map = {
            "ethereum": self.eth_rpc_url,
            "sepolia": self.sepolia_rpc_url,
            "polygon": self.polygon_rpc_url,
            "mumbai": self.mumbai_rpc_url,
            "bsc": self.bsc_rpc_url,
            "bscTestnet": self.bsc_testnet_rpc_url,
            "flowTestnet": self.flow_testnet_rpc_url,
        }
        return rpc_map.get(chain_id)

    def get_explorer_api_key(self, chain_id: str) -> str:
        """Get block explorer API key for a chain."""
        key_map = {
            "ethereum": self.etherscan_api_key,
            "sepolia": self.etherscan_api_key,
            "polygon": self.polygonscan_api_key,
            "mumbai": self.polygonscan_api_key,
            "bsc": self.bscscan_api_key,
            "bscTestnet": self.bscscan_api_key,
            "flowTestnet": self.flowscan_api_key,
        }
        return key_map.get(chain_id, "")

    def get_gas_sponsor_address(self, chain_id: str) -> Optional[str]:
        """Get the deployed GasSponsor contract for a chain, if any."""
        address_map = {
            "flowTestnet": self.flow_gas_sponsor_address,
            "sepolia": self.sepolia_gas_sponsor_address,
            "mumbai": self.mumbai_gas_sponsor_address,
        }
        address = address_map.get(chain_id)
        if not address or address.lower() == ZERO_ADDRESS:
            return None
        return address

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "api_host": self.api_host,
            "api_port": self.api_port,
            "database_url": self._redact_url(self.database_url),
            "admin_token": "***" if self.admin_token else "(not set)",
            "rpc": {
                "timeout": self.rpc_timeout,
                "balance_retry_attempts": self.balance_retry_attempts,
                "wait_for_confirmation": self.wait_for_confirmation,
            },
            "explorers": {
                "etherscan": "***" if self.etherscan_api_key else "(not set)",
                "polygonscan": "***" if self.polygonscan_api_key else "(not set)",
                "bscscan": "***" if self.bscscan_api_key else "(not set)",
                "flowscan": "***" if self.flowscan_api_key else "(not set)",
            },
            "sponsorship": {
                "backend": self.sponsorship_backend,
                "contracts": {
                    chain: self.get_gas_sponsor_address(chain) or "(not deployed)"
                    for chain in ("flowTestnet", "sepolia", "mumbai")
                },
                "sponsor_key": "***" if self.has_sponsor_key else "(not set)",
                "gas_limit": self.sponsored_gas_limit,
            },
            "ledger": {
                "require_access_key": self.ledger_require_access_key,
            },
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact sensitive parts of database URL."""
        if "://" in url and "@" in url:
            proto, rest = url.split("://", 1)
            if "@" in rest:
                creds, host = rest.rsplit("@", 1)
                if ":" in creds:
                    user, _ = creds.split(":", 1)
                    return f"{proto}://{user}:***@{host}"
        return url


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
