import itertools
import json
import logging
import time
from typing import Any, List, Optional
from urllib.error import HTTPError, URLError
from urllib.parse import urlparse
from urllib.request import Request, urlopen

from .errors import ConfigurationError, LedgerError
from .utils import parse_quantity, to_quantity

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0
READ_CHUNK = 65536


def _read_before(resp, method: str, deadline: float) -> bytes:
    """Read the whole response body, giving up once ``deadline`` has passed.

    The socket timeout only bounds each read, so a node trickling bytes
    could otherwise hold the call open indefinitely.
    """
    chunks = []
    while True:
        if time.monotonic() >= deadline:
            raise LedgerError(f"{method}: deadline exceeded")
        chunk = resp.read1(READ_CHUNK)
        if not chunk:
            return b"".join(chunks)
        chunks.append(chunk)


class LedgerClient:
    """JSON-RPC client for an Ethereum-compatible node.

    Each call carries its own wall-clock deadline, so one slow call only
    ever stalls the request that issued it.
    """

    def __init__(self, url: str, timeout: float = DEFAULT_TIMEOUT) -> None:
        self.url = url
        self.timeout = timeout
        self._ids = itertools.count(1)

    @classmethod
    def connect(cls, url: str, timeout: float = DEFAULT_TIMEOUT) -> "LedgerClient":
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigurationError(f"failed to connect to Ethereum network: unsupported RPC URL {url!r}")
        client = cls(url, timeout)
        try:
            version = client.client_version()
        except LedgerError as exc:
            raise ConfigurationError(f"failed to connect to Ethereum network: {exc}") from exc
        logger.info("Connected to %s (%s)", url, version)
        return client

    def call(self, method: str, params: Optional[List[Any]] = None, timeout: Optional[float] = None) -> Any:
        payload = json.dumps(
            {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params or []}
        ).encode()
        req = Request(self.url, data=payload, headers={"Content-Type": "application/json"})
        timeout = timeout or self.timeout
        deadline = time.monotonic() + timeout
        try:
            with urlopen(req, timeout=timeout) as resp:
                data = json.loads(_read_before(resp, method, deadline).decode())
        except HTTPError as exc:
            raise LedgerError(f"{method}: HTTP {exc.code} {exc.reason}") from exc
        except URLError as exc:
            raise LedgerError(f"{method}: {exc.reason}") from exc
        except (OSError, ValueError) as exc:
            # socket timeouts and undecodable bodies
            raise LedgerError(f"{method}: {str(exc) or type(exc).__name__}") from exc
        if not isinstance(data, dict):
            raise LedgerError(f"{method}: malformed response")
        error = data.get("error")
        if error:
            if isinstance(error, dict):
                raise LedgerError(str(error.get("message", "rpc error")))
            raise LedgerError(str(error))
        if "result" not in data:
            raise LedgerError(f"{method}: response has no result")
        return data["result"]

    def _quantity(self, method: str, params: List[Any], timeout: Optional[float]) -> int:
        result = self.call(method, params, timeout)
        try:
            return parse_quantity(result)
        except ValueError as exc:
            raise LedgerError(f"{method}: {exc}") from exc

    def client_version(self, timeout: Optional[float] = None) -> str:
        return str(self.call("web3_clientVersion", [], timeout))

    def get_chain_id(self, timeout: Optional[float] = None) -> int:
        return self._quantity("eth_chainId", [], timeout)

    def get_pending_nonce(self, address: str, timeout: Optional[float] = None) -> int:
        return self._quantity("eth_getTransactionCount", [address, "pending"], timeout)

    def suggest_gas_price(self, timeout: Optional[float] = None) -> int:
        return self._quantity("eth_gasPrice", [], timeout)

    def estimate_gas(self, from_address: str, to: str, value: int, timeout: Optional[float] = None) -> int:
        call = {"from": from_address, "to": to, "value": to_quantity(value)}
        return self._quantity("eth_estimateGas", [call], timeout)

    def get_balance(self, address: str, timeout: Optional[float] = None) -> int:
        return self._quantity("eth_getBalance", [address, "latest"], timeout)

    def send_raw_transaction(self, raw: bytes, timeout: Optional[float] = None) -> str:
        return str(self.call("eth_sendRawTransaction", ["0x" + raw.hex()], timeout))
