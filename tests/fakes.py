"""In-memory test doubles for chain access."""

import asyncio
from typing import Optional

import rlp
from eth_account import Account
from web3 import Web3

# Throwaway secp256k1 keys, never funded anywhere
SENDER_KEY = "0x" + "11" * 32
RECEIVER_KEY = "0x" + "22" * 32
OWNER_KEY = "0x" + "33" * 32
SPONSOR_KEY = "0x" + "44" * 32

SENDER = Account.from_key(SENDER_KEY).address
RECEIVER = Account.from_key(RECEIVER_KEY).address
OWNER = Account.from_key(OWNER_KEY).address
SPONSOR = Account.from_key(SPONSOR_KEY).address

# Sepolia USDC, lowercased so checksumming never depends on the literal's casing
SEPOLIA_USDC = "0x1c7d4b196cb0c7b01d743fbc6116a902379c7238"


def decode_raw_transaction(raw_hex: str) -> dict:
    """Pull the fields the tests care about out of a signed transaction."""
    raw = bytes.fromhex(raw_hex[2:] if raw_hex.startswith("0x") else raw_hex)
    if raw[0] == 2:
        fields = rlp.decode(raw[1:])
        nonce, to, value, data = fields[1], fields[5], fields[6], fields[7]
        tx_type = 2
    else:
        fields = rlp.decode(raw)
        nonce, to, value, data = fields[0], fields[3], fields[4], fields[5]
        tx_type = 0
    return {
        "type": tx_type,
        "from": Account.recover_transaction(raw),
        "to": Web3.to_checksum_address(to),
        "value": int.from_bytes(value, "big"),
        "nonce": int.from_bytes(nonce, "big"),
        "data": Web3.to_hex(data),
    }


class FakeRpc:
    """Stands in for EvmRpcClient.

    Native transfers move balances between addresses so a follow-up
    balance read sees the effect.
    """

    def __init__(
        self,
        gas_price: int = 2 * 10**9,
        base_fee: Optional[int] = None,
        priority_fee: int = 10**9,
        balances: Optional[dict[str, int]] = None,
        call_result: str = "0x",
        receipt_status: str = "0x1",
    ):
        self.gas_price = gas_price
        self.base_fee = base_fee
        self.priority_fee = priority_fee
        self.balances = {k.lower(): v for k, v in (balances or {}).items()}
        self.call_result = call_result
        self.receipt_status = receipt_status
        self.sent: list[dict] = []
        self.calls: list[tuple[str, str]] = []
        self.nonces_handed_out: list[int] = []
        self.balance_errors: list[Exception] = []
        self.send_error: Optional[Exception] = None
        self.balance_reads = 0
        self.receipt_logs: list[dict] = []
        self.estimate_error: Optional[Exception] = None
        self.estimates: list[dict] = []

    async def get_transaction_count(self, address: str, block: str = "pending") -> int:
        nonce = len([tx for tx in self.sent if tx["from"].lower() == address.lower()])
        # Give other tasks a chance to interleave between nonce read and broadcast
        await asyncio.sleep(0)
        self.nonces_handed_out.append(nonce)
        return nonce

    async def get_gas_price(self) -> int:
        return self.gas_price

    async def get_fee_data(self, eip1559: bool = True) -> dict:
        if eip1559 and self.base_fee is not None:
            return {
                "gas_price": self.gas_price,
                "max_fee_per_gas": self.base_fee * 2 + self.priority_fee,
                "max_priority_fee_per_gas": self.priority_fee,
            }
        return {"gas_price": self.gas_price, "max_fee_per_gas": None, "max_priority_fee_per_gas": None}

    async def send_raw_transaction(self, raw_tx_hex: str) -> str:
        if self.send_error is not None:
            raise self.send_error
        tx = decode_raw_transaction(raw_tx_hex)
        self.sent.append(tx)
        if tx["value"]:
            sender, receiver = tx["from"].lower(), tx["to"].lower()
            self.balances[sender] = self.balances.get(sender, 0) - tx["value"]
            self.balances[receiver] = self.balances.get(receiver, 0) + tx["value"]
        return Web3.to_hex(Web3.keccak(hexstr=raw_tx_hex))

    async def wait_for_receipt(self, tx_hash: str, timeout: float = 120.0, poll_interval: float = 2.0) -> dict:
        return {
            "transactionHash": tx_hash,
            "status": self.receipt_status,
            "blockNumber": "0x10",
            "gasUsed": "0x5208",
            "effectiveGasPrice": hex(self.gas_price),
            "logs": self.receipt_logs,
        }

    async def estimate_gas(self, tx: dict) -> int:
        self.estimates.append(tx)
        if self.estimate_error is not None:
            raise self.estimate_error
        return 80000

    async def get_balance(self, address: str, block: str = "latest") -> int:
        self.balance_reads += 1
        if self.balance_errors:
            raise self.balance_errors.pop(0)
        return self.balances.get(address.lower(), 0)

    async def call(self, to: str, data: str, block: str = "latest", sender: Optional[str] = None) -> str:
        self.calls.append((to, data))
        return self.call_result
