"""Error taxonomy for transfers, the internal ledger and gas sponsorship.

Every error carries a stable ``code`` that is returned to API callers and an
``http_status`` the API layer maps it to.
"""

from typing import Optional


class WalletError(Exception):
    """Base class for all wallet errors."""

    code = "WalletError"
    http_status = 500
    retryable = False

    def __init__(self, message: str = "", **context):
        self.message = message or self.code
        self.context = context
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Render as an API error body."""
        return {"success": False, "error": self.code, "details": self.message}


# ======================
# Validation
# ======================


class InvalidRequest(WalletError):
    """Malformed or missing request fields."""

    code = "InvalidRequest"
    http_status = 400


class UnsupportedChain(WalletError):
    code = "UnsupportedChain"
    http_status = 400


class UnsupportedToken(WalletError):
    code = "UnsupportedToken"
    http_status = 400


class InvalidAddressFormat(WalletError):
    code = "InvalidAddressFormat"
    http_status = 400


# ======================
# Balances
# ======================


class InsufficientBalance(WalletError):
    """Internal ledger balance is too low for a debit."""

    code = "InsufficientBalance"
    http_status = 400


class InsufficientFunds(WalletError):
    """The chain rejected a transaction for lack of native funds."""

    code = "InsufficientFunds"
    http_status = 400


class LedgerAuthorizationError(WalletError):
    """Sender did not prove control of a ledger account."""

    code = "LedgerAuthorizationError"
    http_status = 403


class UnknownWallet(WalletError):
    """No ledger wallet was opened at this address."""

    code = "UnknownWallet"
    http_status = 404


class LedgerConflict(WalletError):
    """A concurrent writer changed a ledger balance underneath us."""

    code = "LedgerConflict"
    http_status = 409


# ======================
# Chain
# ======================


class ChainError(WalletError):
    """The node returned an error we have no more specific class for."""

    code = "ChainError"
    http_status = 500


class RpcUnavailable(ChainError):
    """Transport failure or timeout talking to the RPC endpoint."""

    code = "RpcUnavailable"
    retryable = True


class ContractCallReverted(ChainError):
    """A contract call reverted; ``reason`` holds the chain's revert reason."""

    code = "ContractCallReverted"

    def __init__(self, message: str = "", reason: Optional[str] = None, **context):
        self.reason = reason
        super().__init__(message or f"Execution reverted: {reason or 'no reason given'}", **context)


# ======================
# Gas sponsorship
# ======================


class SponsorshipNotSupportedForNative(WalletError):
    code = "SponsorshipNotSupportedForNative"
    http_status = 400


class SponsorshipUnavailable(WalletError):
    """The sponsorship service failed to initialize."""

    code = "SponsorshipUnavailable"
    http_status = 503


class SponsorshipError(WalletError):
    """Base class for sponsorship protocol failures."""

    code = "SponsorshipError"
    http_status = 500


class NoSponsorDeployed(SponsorshipError):
    code = "NoSponsorDeployed"
    http_status = 400


class SponsorKeyMissing(SponsorshipError):
    code = "SponsorKeyMissing"
    http_status = 503


class NativeNotSponsorable(SponsorshipError):
    code = "NativeNotSponsorable"
    http_status = 400


class SelfSponsorshipForbidden(SponsorshipError):
    code = "SelfSponsorshipForbidden"
    http_status = 400


class GasPriceTooHigh(SponsorshipError):
    code = "GasPriceTooHigh"
    http_status = 400


class GasLimitTooHigh(SponsorshipError):
    code = "GasLimitTooHigh"
    http_status = 400


class InsufficientSponsorBalance(SponsorshipError):
    code = "InsufficientSponsorBalance"


class AlreadyExecuted(SponsorshipError):
    code = "AlreadyExecuted"
    http_status = 409


class NotInitiator(SponsorshipError):
    code = "NotInitiator"
    http_status = 403


class SponsorNotActive(SponsorshipError):
    code = "SponsorNotActive"


class SponsorAlreadyExists(SponsorshipError):
    code = "SponsorAlreadyExists"
    http_status = 409


class NotContractOwner(SponsorshipError):
    code = "NotContractOwner"
    http_status = 403


class UnknownSponsoredTransaction(SponsorshipError):
    code = "UnknownSponsoredTransaction"
    http_status = 404


# ======================
# Dispatcher boundary
# ======================


class TransferFailed(WalletError):
    """A downstream executor failed.

    Keeps the original error's code, status and message so the caller can
    still tell a revert from an RPC outage.
    """

    def __init__(self, cause: WalletError, chain_id: str, phase: str = "execute"):
        self.cause = cause
        self.chain_id = chain_id
        self.phase = phase
        self.code = cause.code
        self.http_status = cause.http_status
        self.retryable = cause.retryable
        super().__init__(f"[{chain_id}/{phase}] {cause.message}")
