"""NullWallet - multi-chain custodial wallet backend."""

__version__ = "0.1.0"
