"""Tests for the chain and token registry."""

from dataclasses import replace

import pytest

from nullwallet.chains import (
    CHAINS,
    LEDGER_CHAIN_ID,
    TOKENS,
    ChainRegistry,
    TokenClass,
    TokenOnChain,
    TransferPath,
)
from nullwallet.config import Settings
from nullwallet.errors import UnsupportedChain, UnsupportedToken


@pytest.fixture
def registry() -> ChainRegistry:
    return ChainRegistry()


class TestLookups:
    """Chain and token lookups."""

    def test_get_chain(self, registry):
        chain = registry.get_chain("sepolia")
        assert chain is not None
        assert chain.native_currency.symbol == "ETH"
        assert chain.numeric_chain_id == 11155111

    def test_unknown_chain_is_none(self, registry):
        assert registry.get_chain("solana") is None

    def test_ledger_chain(self, registry):
        chain = registry.get_chain(LEDGER_CHAIN_ID)
        assert chain.is_ledger
        assert chain.rpc_url is None
        assert chain.numeric_chain_id == 999999
        assert registry.is_ledger_chain(LEDGER_CHAIN_ID)
        assert not registry.is_ledger_chain("ethereum")

    def test_flow_testnet(self, registry):
        chain = registry.get_chain("flowTestnet")
        assert chain.numeric_chain_id == 545
        assert chain.native_currency.symbol == "FLOW"

    def test_token_lookup_is_case_insensitive(self, registry):
        assert registry.get_token("usdc") is registry.get_token("USDC")
        assert registry.get_token("") is None

    def test_get_token_on_chain(self, registry):
        deployment = registry.get_token_on_chain("USDC", "sepolia")
        assert deployment.contract_address is not None
        assert deployment.decimals == 6
        assert registry.get_token_on_chain("CAKE", "sepolia") is None

    def test_enabled_chains_include_ledger(self, registry):
        ids = {chain.id for chain in registry.list_enabled_chains()}
        assert {"ethereum", "sepolia", "polygon", "mumbai", "bsc", "bscTestnet", "flowTestnet"} <= ids
        assert LEDGER_CHAIN_ID in ids

    def test_chain_tokens(self, registry):
        tokens = {t["symbol"]: t for t in registry.get_chain_tokens("bsc")}
        assert tokens["BNB"]["type"] == "native"
        assert tokens["BNB"]["address"] is None
        assert tokens["USDT"]["decimals"] == 18
        assert tokens["CAKE"]["type"] == "erc20"

    def test_ledger_chain_tokens(self, registry):
        symbols = [t["symbol"] for t in registry.get_chain_tokens(LEDGER_CHAIN_ID)]
        assert symbols == ["NULL", "GOLD", "SILVER", "PLATINUM", "DIAMOND"]

    def test_unknown_chain_has_no_tokens(self, registry):
        assert registry.get_chain_tokens("solana") == []


class TestValidation:
    """validate_chain_and_token error cases."""

    def test_unsupported_chain(self, registry):
        with pytest.raises(UnsupportedChain):
            registry.validate_chain_and_token("solana", "SOL")

    def test_unsupported_token(self, registry):
        with pytest.raises(UnsupportedToken):
            registry.validate_chain_and_token("sepolia", "DOGE")

    def test_token_not_deployed_on_chain(self, registry):
        with pytest.raises(UnsupportedToken, match="not supported on"):
            registry.validate_chain_and_token("sepolia", "CAKE")

    def test_disabled_chain_is_unsupported(self):
        chains = dict(CHAINS)
        chains["mumbai"] = replace(chains["mumbai"], enabled=False)
        registry = ChainRegistry(chains=chains)

        with pytest.raises(UnsupportedChain):
            registry.validate_chain_and_token("mumbai", "MATIC")


class TestClassification:
    """Every (chain, token) pair routes to exactly one path."""

    def test_every_pair_has_one_path(self, registry):
        for chain in registry.list_enabled_chains():
            for token in registry.get_chain_tokens(chain.id):
                path = registry.classify(chain.id, token["symbol"])
                if chain.is_ledger:
                    assert path == TransferPath.LEDGER
                elif token["address"] is None:
                    assert path == TransferPath.NATIVE
                    assert token["symbol"] == chain.native_currency.symbol
                else:
                    assert path == TransferPath.ERC20

    def test_classification_is_deterministic(self, registry):
        assert registry.classify("polygon", "USDC") == registry.classify("polygon", "usdc")
        assert ChainRegistry().classify("polygon", "USDC") == TransferPath.ERC20

    def test_examples(self, registry):
        assert registry.classify("ethereum", "ETH") == TransferPath.NATIVE
        assert registry.classify("flowTestnet", "FLOW") == TransferPath.NATIVE
        assert registry.classify("bsc", "BUSD") == TransferPath.ERC20
        assert registry.classify(LEDGER_CHAIN_ID, "GOLD") == TransferPath.LEDGER


class TestInvariants:
    """A registry that breaks the chain/token rules refuses to build."""

    def test_rpc_url_missing_on_evm_chain(self):
        chains = dict(CHAINS)
        chains["sepolia"] = replace(chains["sepolia"], rpc_url=None)

        with pytest.raises(ValueError, match="rpc_url"):
            ChainRegistry(chains=chains)

    def test_contractless_token_must_be_native(self):
        tokens = dict(TOKENS)
        usdc = tokens["USDC"]
        tokens["USDC"] = replace(
            usdc, per_chain={**usdc.per_chain, "sepolia": TokenOnChain(None, 6)}
        )

        with pytest.raises(ValueError, match="not its native asset"):
            ChainRegistry(tokens=tokens)

    def test_ledger_token_must_be_ledger_asset(self):
        tokens = dict(TOKENS)
        tokens["GOLD"] = replace(tokens["GOLD"], token_class=TokenClass.ERC20)

        with pytest.raises(ValueError, match="ledger asset"):
            ChainRegistry(tokens=tokens)


class TestFromSettings:
    """Registry built from settings."""

    def test_rpc_override(self):
        settings = Settings(sepolia_rpc_url="http://localhost:8545")
        registry = ChainRegistry.from_settings(settings)

        assert registry.get_chain("sepolia").rpc_url == "http://localhost:8545"
        assert registry.get_chain(LEDGER_CHAIN_ID).rpc_url is None

    def test_flow_stablecoins_absent_by_default(self):
        registry = ChainRegistry.from_settings(Settings())

        with pytest.raises(UnsupportedToken):
            registry.validate_chain_and_token("flowTestnet", "USDT")

    def test_flow_stablecoin_deployment_from_settings(self):
        address = "0x" + "ab" * 20
        registry = ChainRegistry.from_settings(Settings(flow_testnet_usdc_address=address))

        chain, deployment = registry.validate_chain_and_token("flowTestnet", "USDC")
        assert deployment.contract_address == address
        assert registry.classify("flowTestnet", "USDC") == TransferPath.ERC20
