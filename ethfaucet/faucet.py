import logging
import threading
from typing import Callable, Dict, Optional

from . import crypto
from .config import FaucetConfig
from .cooldown import AddressLocks, CooldownTable
from .errors import (
    BalanceQueryFailed,
    ConfigurationError,
    CooldownActive,
    GasEstimateFailed,
    GasPriceFetchFailed,
    InvalidAddress,
    LedgerError,
    NonceFetchFailed,
    SubmissionFailed,
)
from .ledger import LedgerClient
from .tx import SignedTransfer, Transfer
from .utils import format_ether, now_ts
from .wallet import Wallet

logger = logging.getLogger(__name__)


class Faucet:
    """Hands out a fixed amount to each address, at most once per cooldown.

    Two locks keep the bookkeeping honest under concurrent requests:

    * a per-address lock spans eligibility check through cooldown record, so
      two simultaneous requests for one address result in one transfer;
    * a single pipeline lock spans nonce lookup through submission, so no two
      transfers from the faucet account are ever built on the same nonce.

    The cooldown table is updated only after the node accepted the
    transaction. It lives in memory and is lost on restart.
    """

    def __init__(
        self,
        ledger,
        wallet: Wallet,
        chain_id: int,
        amount: int,
        cooldown: float,
        clock: Callable[[], float] = now_ts,
        evict_factor: float = 0,
    ) -> None:
        if amount < 0:
            raise ValueError("amount must be >= 0")
        self.ledger = ledger
        self.wallet = wallet
        self.chain_id = chain_id
        self.amount = amount
        self.table = CooldownTable(cooldown, clock)
        self.evict_factor = evict_factor
        self._address_locks = AddressLocks()
        self._pipeline = threading.Lock()
        self._last_nonce: Optional[int] = None

    @property
    def address(self) -> str:
        return self.wallet.address

    @property
    def cooldown(self) -> float:
        return self.table.cooldown

    @classmethod
    def from_config(
        cls,
        config: FaucetConfig,
        ledger=None,
        clock: Callable[[], float] = now_ts,
    ) -> "Faucet":
        if ledger is None:
            ledger = LedgerClient.connect(config.rpc_url, timeout=config.rpc_timeout)
        try:
            wallet = Wallet.from_hex(config.private_key)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc
        try:
            chain_id = ledger.get_chain_id()
        except LedgerError as exc:
            raise ConfigurationError(f"failed to get chain ID: {exc}") from exc
        return cls(
            ledger,
            wallet,
            chain_id=chain_id,
            amount=config.amount,
            cooldown=config.cooldown_seconds,
            clock=clock,
            evict_factor=config.evict_factor,
        )

    # -----------------------------
    # Disbursement
    # -----------------------------

    def request_disbursement(self, address: str) -> str:
        """Send the configured amount to ``address`` and return the tx hash.

        Raises ``InvalidAddress`` before touching the ledger, ``CooldownActive``
        while the address is still cooling down, and a ``LedgerQueryError``,
        ``SigningFailed`` or ``SubmissionFailed`` if the transfer cannot be
        made. None of the failures update the cooldown table.
        """
        if not crypto.is_valid_address(address):
            raise InvalidAddress(address)
        to = crypto.checksum_address(address)

        with self._address_locks.hold(to):
            remaining = self.table.remaining(to)
            if remaining > 0:
                logger.info("Rejected %s: cooldown active for %.0fs", to, remaining)
                raise CooldownActive(to, remaining)

            with self._pipeline:
                signed = self._send(to)
            recorded_at = self.table.record(to)

        logger.info("Sent %d wei to %s nonce=%d tx=%s", self.amount, to, signed.nonce, signed.txid)
        if self.evict_factor:
            dropped = self.table.prune(self.evict_factor, now=recorded_at)
            if dropped:
                logger.debug("Evicted %d expired cooldown entries", dropped)
        return signed.txid

    def _next_nonce(self) -> int:
        try:
            pending = self.ledger.get_pending_nonce(self.address)
        except LedgerError as exc:
            logger.warning("Nonce lookup failed: %s", exc)
            raise NonceFetchFailed(f"failed to get nonce: {exc}") from exc
        # a node behind a load balancer may not see our last submission yet
        if self._last_nonce is not None and pending <= self._last_nonce:
            return self._last_nonce + 1
        return pending

    def build_transfer(self, to: str) -> Transfer:
        nonce = self._next_nonce()
        try:
            gas_price = self.ledger.suggest_gas_price()
        except LedgerError as exc:
            logger.warning("Gas price lookup failed: %s", exc)
            raise GasPriceFetchFailed(f"failed to get gas price: {exc}") from exc
        try:
            gas = self.ledger.estimate_gas(self.address, to, self.amount)
        except LedgerError as exc:
            logger.warning("Gas estimate for %s failed: %s", to, exc)
            raise GasEstimateFailed(f"failed to estimate gas: {exc}") from exc
        return Transfer(
            nonce=nonce,
            to=to,
            value=self.amount,
            gas=gas,
            gas_price=gas_price,
            chain_id=self.chain_id,
        )

    def _send(self, to: str) -> SignedTransfer:
        """Build, sign and submit one transfer. Caller holds the pipeline lock."""
        transfer = self.build_transfer(to)
        try:
            signed = self.wallet.sign_transfer(transfer)
        except Exception:
            logger.exception("Signing transfer to %s failed", to)
            raise
        try:
            node_hash = self.ledger.send_raw_transaction(signed.raw)
        except LedgerError as exc:
            logger.warning("Submission of nonce %d to %s failed: %s", transfer.nonce, to, exc)
            raise SubmissionFailed(f"failed to send transaction: {exc}") from exc
        if node_hash and str(node_hash).lower() != signed.txid.lower():
            logger.warning("Node reported tx hash %s, expected %s", node_hash, signed.txid)
        self._last_nonce = transfer.nonce
        return signed

    # -----------------------------
    # Inspection
    # -----------------------------

    def get_balance(self) -> int:
        try:
            return self.ledger.get_balance(self.address)
        except LedgerError as exc:
            raise BalanceQueryFailed(f"failed to get balance: {exc}") from exc

    def log_startup(self) -> Optional[int]:
        logger.info("Faucet address: %s", self.address)
        logger.info("Chain ID: %d", self.chain_id)
        try:
            balance = self.get_balance()
        except BalanceQueryFailed as exc:
            logger.warning("Warning: %s", exc.message)
            return None
        logger.info("Faucet balance: %s ETH", format_ether(balance))
        return balance

    def status(self) -> Dict[str, object]:
        return {
            "address": self.address,
            "chain_id": self.chain_id,
            "amount": str(self.amount),
            "cooldown_seconds": self.cooldown,
            "tracked_addresses": len(self.table),
        }
