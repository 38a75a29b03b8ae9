"""Chain and token registry.

Supports 7 EVM chains plus the internal NullNet ledger:
- ethereum, sepolia (ETH)
- polygon, mumbai (MATIC)
- bsc, bscTestnet (BNB)
- flowTestnet (FLOW, Flow EVM)
- nullnet (internal ledger, no RPC)

The registry is the single source of truth for chain and token lookups.
Every executor goes through it rather than re-deriving chain config inline.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional

from nullwallet.errors import UnsupportedChain, UnsupportedToken

LEDGER_CHAIN_ID = "nullnet"


class TokenClass(str, Enum):
    """How a token moves on its chain."""

    NATIVE = "native"
    ERC20 = "erc20"
    LEDGER_ASSET = "ledger-asset"


class TransferPath(str, Enum):
    """Execution path selected for a (chain, token) pair."""

    NATIVE = "native"
    ERC20 = "erc20"
    LEDGER = "ledger"


@dataclass(frozen=True)
class NativeCurrency:
    name: str
    symbol: str
    decimals: int = 18


@dataclass(frozen=True)
class Chain:
    """Configuration for a chain."""

    # Required fields (no defaults) - must come first
    id: str
    display_name: str
    network: str  # mainnet | testnet
    rpc_url: Optional[str]  # None only for the internal ledger
    numeric_chain_id: int
    native_currency: NativeCurrency

    # Optional fields (with defaults)
    explorer_url: Optional[str] = None
    explorer_api_url: Optional[str] = None
    supports_eip1559: bool = True
    enabled: bool = True
    token_symbols: tuple[str, ...] = ()

    @property
    def is_ledger(self) -> bool:
        return self.rpc_url is None


@dataclass(frozen=True)
class TokenOnChain:
    """Deployment of a token on one chain."""

    contract_address: Optional[str]  # None = chain's native asset / ledger asset
    decimals: int

    @property
    def is_native(self) -> bool:
        return self.contract_address is None


@dataclass(frozen=True)
class Token:
    symbol: str
    display_name: str
    global_decimals: int
    token_class: TokenClass
    per_chain: dict[str, TokenOnChain] = field(default_factory=dict)


# ======================
# Chain Configurations
# ======================

CHAINS: dict[str, Chain] = {
    "ethereum": Chain(
        id="ethereum",
        display_name="Ethereum",
        network="mainnet",
        rpc_url="https://eth-mainnet.public.blastapi.io",
        numeric_chain_id=1,
        native_currency=NativeCurrency("Ether", "ETH"),
        explorer_url="https://etherscan.io",
        explorer_api_url="https://api.etherscan.io/api",
        token_symbols=("ETH", "USDT", "USDC", "DAI"),
    ),
    "sepolia": Chain(
        id="sepolia",
        display_name="Sepolia",
        network="testnet",
        rpc_url="https://ethereum-sepolia-rpc.publicnode.com",
        numeric_chain_id=11155111,
        native_currency=NativeCurrency("Sepolia Ether", "ETH"),
        explorer_url="https://sepolia.etherscan.io",
        explorer_api_url="https://api-sepolia.etherscan.io/api",
        token_symbols=("ETH", "USDT", "USDC"),
    ),
    "polygon": Chain(
        id="polygon",
        display_name="Polygon",
        network="mainnet",
        rpc_url="https://polygon-rpc.com",
        numeric_chain_id=137,
        native_currency=NativeCurrency("Matic", "MATIC"),
        explorer_url="https://polygonscan.com",
        explorer_api_url="https://api.polygonscan.com/api",
        token_symbols=("MATIC", "USDT", "USDC", "DAI"),
    ),
    "mumbai": Chain(
        id="mumbai",
        display_name="Mumbai",
        network="testnet",
        rpc_url="https://polygon-mumbai-bor-rpc.publicnode.com",
        numeric_chain_id=80001,
        native_currency=NativeCurrency("Mumbai Matic", "MATIC"),
        explorer_url="https://mumbai.polygonscan.com",
        explorer_api_url="https://api-testnet.polygonscan.com/api",
        token_symbols=("MATIC", "USDT", "USDC"),
    ),
    "bsc": Chain(
        id="bsc",
        display_name="Binance Smart Chain",
        network="mainnet",
        rpc_url="https://bsc-dataseed.binance.org/",
        numeric_chain_id=56,
        native_currency=NativeCurrency("BNB", "BNB"),
        explorer_url="https://bscscan.com",
        explorer_api_url="https://api.bscscan.com/api",
        supports_eip1559=False,
        token_symbols=("BNB", "BUSD", "USDT", "CAKE"),
    ),
    "bscTestnet": Chain(
        id="bscTestnet",
        display_name="BSC Testnet",
        network="testnet",
        rpc_url="https://data-seed-prebsc-1-s1.binance.org:8545/",
        numeric_chain_id=97,
        native_currency=NativeCurrency("BNB", "BNB"),
        explorer_url="https://testnet.bscscan.com",
        explorer_api_url="https://api-testnet.bscscan.com/api",
        supports_eip1559=False,
        token_symbols=("BNB", "BUSD", "USDT"),
    ),
    "flowTestnet": Chain(
        id="flowTestnet",
        display_name="Flow EVM Testnet",
        network="testnet",
        rpc_url="https://testnet.evm.nodes.onflow.org",
        numeric_chain_id=545,
        native_currency=NativeCurrency("Flow", "FLOW"),
        explorer_url="https://evm-testnet.flowscan.io",
        explorer_api_url="https://evm-testnet.flowscan.io/api",
        supports_eip1559=False,
        token_symbols=("FLOW", "USDT", "USDC"),
    ),
    LEDGER_CHAIN_ID: Chain(
        id=LEDGER_CHAIN_ID,
        display_name="NullNet",
        network="mainnet",
        rpc_url=None,  # NullNet is the internal ledger
        numeric_chain_id=999999,
        native_currency=NativeCurrency("NullNet Token", "NULL"),
        token_symbols=("NULL", "GOLD", "SILVER", "PLATINUM", "DIAMOND"),
    ),
}


# ======================
# Token Configurations
# ======================
# A chain missing from per_chain means the token is not deployed there.

TOKENS: dict[str, Token] = {
    "ETH": Token(
        symbol="ETH",
        display_name="Ethereum",
        global_decimals=18,
        token_class=TokenClass.NATIVE,
        per_chain={
            "ethereum": TokenOnChain(None, 18),
            "sepolia": TokenOnChain(None, 18),
        },
    ),
    "MATIC": Token(
        symbol="MATIC",
        display_name="Polygon",
        global_decimals=18,
        token_class=TokenClass.NATIVE,
        per_chain={
            "polygon": TokenOnChain(None, 18),
            "mumbai": TokenOnChain(None, 18),
        },
    ),
    "BNB": Token(
        symbol="BNB",
        display_name="Binance Coin",
        global_decimals=18,
        token_class=TokenClass.NATIVE,
        per_chain={
            "bsc": TokenOnChain(None, 18),
            "bscTestnet": TokenOnChain(None, 18),
        },
    ),
    "FLOW": Token(
        symbol="FLOW",
        display_name="Flow",
        global_decimals=18,
        token_class=TokenClass.NATIVE,
        per_chain={"flowTestnet": TokenOnChain(None, 18)},
    ),
    "USDT": Token(
        symbol="USDT",
        display_name="Tether USD",
        global_decimals=6,
        token_class=TokenClass.ERC20,
        per_chain={
            "ethereum": TokenOnChain("0xdAC17F958D2ee523a2206206994597C13D831ec7", 6),
            "sepolia": TokenOnChain("0x6f14C02Fc1F78322cFd7d707aB90f18baD3B54f5", 6),
            "polygon": TokenOnChain("0xc2132D05D31c914a87C6611C10748AEb04B58e8F", 6),
            "mumbai": TokenOnChain("0xA02f6adc7926efeBBd59Fd43A84f4E0c0c91e832", 6),
            "bsc": TokenOnChain("0x55d398326f99059fF775485246999027B3197955", 18),
            "bscTestnet": TokenOnChain("0x337610d27c682E347C9cD60BD4b3b107C9d34dDd", 18),
        },
    ),
    "USDC": Token(
        symbol="USDC",
        display_name="USD Coin",
        global_decimals=6,
        token_class=TokenClass.ERC20,
        per_chain={
            "ethereum": TokenOnChain("0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48", 6),
            "sepolia": TokenOnChain("0x1c7D4B196Cb0C7B01d743Fbc6116a902379C7238", 6),
            "polygon": TokenOnChain("0x2791Bca1f2de4661ED88A30C99A7a9449Aa84174", 6),
            "mumbai": TokenOnChain("0xe6b8a5CF854791412c1f6EFC7CAf629f5Df1c747", 6),
        },
    ),
    "DAI": Token(
        symbol="DAI",
        display_name="Dai Stablecoin",
        global_decimals=18,
        token_class=TokenClass.ERC20,
        per_chain={
            "ethereum": TokenOnChain("0x6B175474E89094C44Da98b954EedeAC495271d0F", 18),
            "polygon": TokenOnChain("0x8f3Cf7ad23Cd3CaDbD9735AFf958023239c6A063", 18),
        },
    ),
    "BUSD": Token(
        symbol="BUSD",
        display_name="Binance USD",
        global_decimals=18,
        token_class=TokenClass.ERC20,
        per_chain={
            "bsc": TokenOnChain("0xe9e7CEA3DedcA5984780Bafc599bD69ADd087D56", 18),
            "bscTestnet": TokenOnChain("0x78867BbEeF44f2326bF8DDd1941a4439382EF2A7", 18),
        },
    ),
    "CAKE": Token(
        symbol="CAKE",
        display_name="PancakeSwap Token",
        global_decimals=18,
        token_class=TokenClass.ERC20,
        per_chain={"bsc": TokenOnChain("0x0E09FaBB73Bd3Ade0a17ECC321fD13a19e81cE82", 18)},
    ),
    # NullNet assets have no contract; they live in the ledger's balance map
    "NULL": Token(
        symbol="NULL",
        display_name="NullNet Token",
        global_decimals=18,
        token_class=TokenClass.LEDGER_ASSET,
        per_chain={LEDGER_CHAIN_ID: TokenOnChain(None, 18)},
    ),
    "GOLD": Token(
        symbol="GOLD",
        display_name="Gold Coin",
        global_decimals=18,
        token_class=TokenClass.LEDGER_ASSET,
        per_chain={LEDGER_CHAIN_ID: TokenOnChain(None, 18)},
    ),
    "SILVER": Token(
        symbol="SILVER",
        display_name="Silver Coin",
        global_decimals=18,
        token_class=TokenClass.LEDGER_ASSET,
        per_chain={LEDGER_CHAIN_ID: TokenOnChain(None, 18)},
    ),
    "PLATINUM": Token(
        symbol="PLATINUM",
        display_name="Platinum Coin",
        global_decimals=18,
        token_class=TokenClass.LEDGER_ASSET,
        per_chain={LEDGER_CHAIN_ID: TokenOnChain(None, 18)},
    ),
    "DIAMOND": Token(
        symbol="DIAMOND",
        display_name="Diamond Coin",
        global_decimals=18,
        token_class=TokenClass.LEDGER_ASSET,
        per_chain={LEDGER_CHAIN_ID: TokenOnChain(None, 18)},
    ),
}


class ChainRegistry:
    """Lookup over the static chain and token directory.

    Pure and synchronous: nothing here touches the network or the database.
    """

    def __init__(
        self,
        chains: Optional[dict[str, Chain]] = None,
        tokens: Optional[dict[str, Token]] = None,
    ):
        self._chains = dict(CHAINS if chains is None else chains)
        self._tokens = {
            symbol.upper(): token
            for symbol, token in (TOKENS if tokens is None else tokens).items()
        }
        self._check_invariants()

    @classmethod
    def from_settings(cls, settings) -> "ChainRegistry":
        """Build the default registry with RPC overrides and extra deployments applied."""
        chains = {}
        for chain_id, chain in CHAINS.items():
            rpc_url = settings.get_rpc_url(chain_id) if not chain.is_ledger else None
            chains[chain_id] = replace(chain, rpc_url=rpc_url) if rpc_url else chain

        tokens = dict(TOKENS)
        for symbol, address, decimals in (
            ("USDT", settings.flow_testnet_usdt_address, 6),
            ("USDC", settings.flow_testnet_usdc_address, 6),
        ):
            if address:
                per_chain = dict(tokens[symbol].per_chain)
                per_chain["flowTestnet"] = TokenOnChain(address, decimals)
                tokens[symbol] = replace(tokens[symbol], per_chain=per_chain)

        return cls(chains, tokens)

    def _check_invariants(self) -> None:
        for chain in self._chains.values():
            if chain.is_ledger != (chain.id == LEDGER_CHAIN_ID):
                raise ValueError(f"Chain {chain.id}: rpc_url must be None only for the ledger chain")

        for token in self._tokens.values():
            for chain_id, deployment in token.per_chain.items():
                chain = self._chains.get(chain_id)
                if chain is None or not deployment.is_native:
                    continue
                if chain.is_ledger:
                    if token.token_class != TokenClass.LEDGER_ASSET:
                        raise ValueError(f"{token.symbol} on {chain_id} must be a ledger asset")
                elif token.symbol != chain.native_currency.symbol:
                    raise ValueError(
                        f"{token.symbol} has no contract on {chain_id} but is not its native asset"
                    )

    # Chain lookups
    def get_chain(self, chain_id: str) -> Optional[Chain]:
        return self._chains.get(chain_id)

    def list_enabled_chains(self) -> list[Chain]:
        return [chain for chain in self._chains.values() if chain.enabled]

    def is_ledger_chain(self, chain_id: str) -> bool:
        chain = self.get_chain(chain_id)
        return chain is not None and chain.is_ledger

    # Token lookups
    def get_token(self, symbol: str) -> Optional[Token]:
        if not symbol:
            return None
        return self._tokens.get(symbol.upper())

    def get_token_on_chain(self, symbol: str, chain_id: str) -> Optional[TokenOnChain]:
        token = self.get_token(symbol)
        if token is None:
            return None
        return token.per_chain.get(chain_id)

    def get_chain_tokens(self, chain_id: str) -> list[dict]:
        """Get all tokens deployed on a chain, with chain-specific decimals."""
        chain = self.get_chain(chain_id)
        if chain is None:
            return []

        result = []
        for symbol in chain.token_symbols:
            token = self.get_token(symbol)
            if token is None or chain_id not in token.per_chain:
                continue
            deployment = token.per_chain[chain_id]
            result.append({
                "symbol": token.symbol,
                "name": token.display_name,
                "type": token.token_class.value,
                "decimals": deployment.decimals,
                "address": deployment.contract_address,
                "global_decimals": token.global_decimals,
            })
        return result

    def validate_chain_and_token(self, chain_id: str, symbol: str) -> tuple[Chain, TokenOnChain]:
        """Resolve a chain and the token's deployment on it.

        Raises:
            UnsupportedChain: chain unknown or disabled
            UnsupportedToken: token unknown or not deployed on the chain
        """
        chain = self.get_chain(chain_id)
        if chain is None or not chain.enabled:
            raise UnsupportedChain(f"Chain {chain_id} is not supported")

        token = self.get_token(symbol)
        if token is None:
            raise UnsupportedToken(f"Token {symbol} is not supported")

        deployment = token.per_chain.get(chain_id)
        if deployment is None:
            raise UnsupportedToken(f"Token {symbol} is not supported on {chain.display_name}")

        return chain, deployment

    def classify(self, chain_id: str, symbol: str) -> TransferPath:
        """Select the execution path for a (chain, token) pair."""
        chain, deployment = self.validate_chain_and_token(chain_id, symbol)
        if chain.is_ledger:
            return TransferPath.LEDGER
        if deployment.is_native:
            return TransferPath.NATIVE
        return TransferPath.ERC20


def get_default_registry() -> ChainRegistry:
    """Build the registry from the current settings."""
    from nullwallet.config import get_settings

    return ChainRegistry.from_settings(get_settings())
