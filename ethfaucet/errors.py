"""Error taxonomy for the faucet.

Every per-request failure is a ``FaucetError`` subclass carrying a message
that is safe to hand back to the caller. Only ``ConfigurationError`` is
fatal, and only during startup.
"""

from .utils import format_duration, round_minutes


class LedgerError(RuntimeError):
    """Raised by the ledger client when a node call fails or times out."""


class FaucetError(Exception):
    code = "faucet_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(FaucetError):
    code = "configuration_error"


class ValidationError(FaucetError):
    code = "validation_error"


class InvalidAddress(ValidationError):
    code = "invalid_address"

    def __init__(self, address: object) -> None:
        super().__init__("invalid Ethereum address")
        self.address = address


class EligibilityError(FaucetError):
    code = "eligibility_error"


class CooldownActive(EligibilityError):
    code = "cooldown_active"

    def __init__(self, address: str, remaining: float) -> None:
        super().__init__(
            f"address {address} can request again in {format_duration(remaining)}"
        )
        self.address = address
        self.remaining = remaining

    @property
    def remaining_minutes(self) -> int:
        return max(1, round_minutes(self.remaining))


class LedgerQueryError(FaucetError):
    code = "ledger_query_error"


class NonceFetchFailed(LedgerQueryError):
    code = "nonce_fetch_failed"


class GasPriceFetchFailed(LedgerQueryError):
    code = "gas_price_fetch_failed"


class GasEstimateFailed(LedgerQueryError):
    code = "gas_estimate_failed"


class BalanceQueryFailed(LedgerQueryError):
    code = "balance_query_failed"


class SigningError(FaucetError):
    code = "signing_error"


class SigningFailed(SigningError):
    code = "signing_failed"


class SubmissionError(FaucetError):
    code = "submission_error"


class SubmissionFailed(SubmissionError):
    code = "submission_failed"
