from eth_account import Account

from . import crypto
from .errors import SigningFailed
from .tx import SignedTransfer, Transfer


class Wallet:
    """The faucet's signing identity.

    The private key is held in a mutable buffer so it can be zeroed with
    ``wipe()``; it is never part of ``repr()``.
    """

    def __init__(self, priv: bytes) -> None:
        self._key = bytearray(priv)
        self.address = crypto.address_from_private_key(priv)

    @staticmethod
    def create() -> "Wallet":
        return Wallet(crypto.generate_private_key())

    @staticmethod
    def from_hex(text: str) -> "Wallet":
        return Wallet(crypto.parse_private_key(text))

    @property
    def wiped(self) -> bool:
        return not any(self._key)

    def sign_transfer(self, transfer: Transfer) -> SignedTransfer:
        if self.wiped:
            raise SigningFailed("failed to sign transaction: signing key is not available")
        try:
            signed = Account.sign_transaction(transfer.to_dict(), bytes(self._key))
        except Exception as exc:
            raise SigningFailed(f"failed to sign transaction: {exc}") from exc
        return SignedTransfer(
            transfer=transfer,
            raw=bytes(signed.raw_transaction),
            hash="0x" + bytes(signed.hash).hex(),
        )

    def wipe(self) -> None:
        for i in range(len(self._key)):
            self._key[i] = 0

    def __repr__(self) -> str:
        return f"Wallet(address={self.address!r})"

    def __del__(self) -> None:
        self.wipe()
