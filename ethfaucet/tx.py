from dataclasses import dataclass
from typing import Dict


@dataclass
class Transfer:
    """An unsigned native-asset transfer bound to one chain."""

    nonce: int
    to: str
    value: int
    gas: int
    gas_price: int
    chain_id: int

    def to_dict(self) -> Dict[str, object]:
        return {
            "nonce": self.nonce,
            "to": self.to,
            "value": self.value,
            "gas": self.gas,
            "gasPrice": self.gas_price,
            "chainId": self.chain_id,
            "data": b"",
        }


@dataclass(frozen=True)
class SignedTransfer:
    transfer: Transfer
    raw: bytes
    hash: str

    @property
    def txid(self) -> str:
        return self.hash

    @property
    def nonce(self) -> int:
        return self.transfer.nonce
