"""Transfer execution: dispatcher and per-path executors."""

from nullwallet.transfer.base import TransferResult, TransferStatus
from nullwallet.transfer.dispatcher import TransferDispatcher
from nullwallet.transfer.evm import NativeTransferExecutor, TokenTransferExecutor
from nullwallet.transfer.ledger import LedgerTransferExecutor
from nullwallet.transfer.rpc import EvmRpcClient

__all__ = [
    "TransferResult",
    "TransferStatus",
    "TransferDispatcher",
    "NativeTransferExecutor",
    "TokenTransferExecutor",
    "LedgerTransferExecutor",
    "EvmRpcClient",
]
