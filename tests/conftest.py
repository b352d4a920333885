import threading
import time

import pytest
import rlp
from eth_utils import big_endian_to_int

from ethfaucet.errors import LedgerError
from ethfaucet.faucet import Faucet
from ethfaucet.wallet import Wallet

TEST_KEY = "4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
CHAIN_ID = 1337
AMOUNT = 1000
HOUR = 3600.0


def decode_raw(raw: bytes) -> dict:
    nonce, gas_price, gas, to, value, data, v, r, s = rlp.decode(raw)
    return {
        "nonce": big_endian_to_int(nonce),
        "gas_price": big_endian_to_int(gas_price),
        "gas": big_endian_to_int(gas),
        "to": "0x" + to.hex(),
        "value": big_endian_to_int(value),
        "v": big_endian_to_int(v),
    }


class FakeClock:
    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeLedger:
    """In-memory node: one account, strict nonces, optional injected failures."""

    def __init__(self, chain_id: int = CHAIN_ID, delay: float = 0.0) -> None:
        self.chain_id = chain_id
        self.delay = delay
        self.nonce = 0
        self.gas_price = 20
        self.gas = 21000
        self.balance = 10 ** 21
        self.fail = {}
        self.calls = []
        self.sent = []
        self._lock = threading.Lock()

    def _enter(self, name, *args):
        with self._lock:
            self.calls.append((name,) + args)
        if self.delay:
            time.sleep(self.delay)
        exc = self.fail.get(name)
        if exc:
            raise exc

    def get_chain_id(self):
        self._enter("chain_id")
        return self.chain_id

    def get_pending_nonce(self, address):
        self._enter("nonce", address)
        with self._lock:
            return self.nonce

    def suggest_gas_price(self):
        self._enter("gas_price")
        return self.gas_price

    def estimate_gas(self, from_address, to, value):
        self._enter("estimate", from_address, to, value)
        return self.gas

    def get_balance(self, address):
        self._enter("balance", address)
        return self.balance

    def send_raw_transaction(self, raw):
        self._enter("send")
        tx = decode_raw(raw)
        with self._lock:
            if tx["nonce"] != self.nonce:
                raise LedgerError(f"nonce too low: have {tx['nonce']}, want {self.nonce}")
            self.nonce += 1
            self.sent.append(tx)
        return None

    def ledger_calls(self):
        return [c for c in self.calls if c[0] != "chain_id"]


@pytest.fixture
def clock():
    return FakeClock(1000.0)


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def wallet():
    return Wallet.from_hex(TEST_KEY)


@pytest.fixture
def make_faucet(clock, wallet):
    def _make(ledger, cooldown=HOUR, amount=AMOUNT, **kwargs):
        return Faucet(ledger, wallet, chain_id=CHAIN_ID, amount=amount, cooldown=cooldown, clock=clock, **kwargs)

    return _make


@pytest.fixture
def faucet(make_faucet, ledger):
    return make_faucet(ledger)


def fresh_address(i: int) -> str:
    return "0x" + f"{i + 1:040x}"
