import re

try:
    from cryptography.hazmat.primitives.asymmetric import ec
except Exception as exc:  # pragma: no cover - hard fail when dependency missing
    raise ImportError(
        "cryptography is required. Install with `python3 -m pip install cryptography`."
    ) from exc

from eth_utils import is_checksum_address, keccak, to_checksum_address

CURVE = ec.SECP256K1()
# secp256k1 order
N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

_KEY_RE = re.compile(r"[0-9a-fA-F]{64}")
_ADDRESS_RE = re.compile(r"0x[0-9a-fA-F]{40}")


# -----------------------------
# secp256k1 keys (cryptography)
# -----------------------------


def generate_private_key() -> bytes:
    key = ec.generate_private_key(CURVE)
    return key.private_numbers().private_value.to_bytes(32, "big")


def parse_private_key(text: str) -> bytes:
    """Decode a hex private key and check it is a usable secp256k1 scalar.

    A ``0x`` prefix is tolerated. Raises ``ValueError`` without echoing the
    key material.
    """
    if not isinstance(text, str):
        raise ValueError("invalid private key")
    text = text.strip()
    if text[:2] in ("0x", "0X"):
        text = text[2:]
    if not _KEY_RE.fullmatch(text):
        raise ValueError("invalid private key: expected 64 hex characters")
    d = int(text, 16)
    if d <= 0 or d >= N:
        raise ValueError("invalid private key: scalar out of range")
    return d.to_bytes(32, "big")


def public_key_bytes(priv: bytes) -> bytes:
    key = ec.derive_private_key(int.from_bytes(priv, "big"), CURVE)
    nums = key.public_key().public_numbers()
    return nums.x.to_bytes(32, "big") + nums.y.to_bytes(32, "big")


# -----------------------------
# Addresses
# -----------------------------


def address_from_pubkey(pub: bytes) -> str:
    if len(pub) != 64:
        raise ValueError("expected 64 byte uncompressed public key")
    return to_checksum_address(keccak(pub)[-20:])


def address_from_private_key(priv: bytes) -> str:
    return address_from_pubkey(public_key_bytes(priv))


def is_valid_address(address: object) -> bool:
    if not isinstance(address, str) or not _ADDRESS_RE.fullmatch(address):
        return False
    digits = address[2:]
    if digits.islower() or digits.isupper() or digits.isdigit():
        return True
    # mixed case means an EIP-55 checksum is present and must hold
    return is_checksum_address(address)


def checksum_address(address: str) -> str:
    return to_checksum_address(address)
