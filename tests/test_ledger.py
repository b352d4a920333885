import json
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from ethfaucet.errors import ConfigurationError, LedgerError
from ethfaucet.ledger import LedgerClient

RESULTS = {
    "web3_clientVersion": "stub/v1",
    "eth_chainId": "0x539",
    "eth_getTransactionCount": "0x7",
    "eth_gasPrice": "0x3b9aca00",
    "eth_estimateGas": "0x5208",
    "eth_getBalance": "0xde0b6b3a7640000",
    "eth_sendRawTransaction": "0x" + "ab" * 32,
}


@pytest.fixture
def stub_node():
    requests = []
    state = {"error": None, "delay": 0.0, "raw": None, "drip": 0.0}

    class Handler(BaseHTTPRequestHandler):
        def do_POST(self):
            length = int(self.headers.get("Content-Length", "0"))
            req = json.loads(self.rfile.read(length).decode())
            requests.append(req)
            if state["delay"]:
                time.sleep(state["delay"])
            if state["raw"] is not None:
                data = state["raw"]
            elif state["error"]:
                data = json.dumps({"jsonrpc": "2.0", "id": req["id"], "error": state["error"]}).encode()
            else:
                data = json.dumps({"jsonrpc": "2.0", "id": req["id"], "result": RESULTS[req["method"]]}).encode()
            try:
                self.send_response(200)
                self.send_header("Content-Type", "application/json")
                self.send_header("Content-Length", str(len(data)))
                self.end_headers()
                if state["drip"]:
                    for i in range(len(data)):
                        self.wfile.write(data[i:i + 1])
                        self.wfile.flush()
                        time.sleep(state["drip"])
                else:
                    self.wfile.write(data)
            except OSError:
                pass

        def log_message(self, format, *args):
            return

    server = ThreadingHTTPServer(("127.0.0.1", 0), Handler)
    server.daemon_threads = True
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    url = f"http://127.0.0.1:{server.server_address[1]}"
    yield url, requests, state
    server.shutdown()
    server.server_close()


def test_queries(stub_node):
    url, requests, _ = stub_node
    client = LedgerClient(url, timeout=2)
    addr = "0x" + "1" * 40
    assert client.get_chain_id() == 1337
    assert client.get_pending_nonce(addr) == 7
    assert client.suggest_gas_price() == 10 ** 9
    assert client.estimate_gas(addr, "0x" + "2" * 40, 1000) == 21000
    assert client.get_balance(addr) == 10 ** 18
    assert client.send_raw_transaction(b"\x01\x02") == "0x" + "ab" * 32

    by_method = {r["method"]: r["params"] for r in requests}
    assert by_method["eth_getTransactionCount"] == [addr, "pending"]
    assert by_method["eth_estimateGas"] == [{"from": addr, "to": "0x" + "2" * 40, "value": "0x3e8"}]
    assert by_method["eth_getBalance"] == [addr, "latest"]
    assert by_method["eth_sendRawTransaction"] == ["0x0102"]
    assert all(r["jsonrpc"] == "2.0" for r in requests)
    assert len({r["id"] for r in requests}) == len(requests)


def test_rpc_error_object(stub_node):
    url, _, state = stub_node
    state["error"] = {"code": -32000, "message": "insufficient funds for gas * price + value"}
    with pytest.raises(LedgerError) as exc:
        LedgerClient(url).suggest_gas_price()
    assert "insufficient funds" in str(exc.value)


def test_malformed_response(stub_node):
    url, _, state = stub_node
    state["raw"] = b"not json"
    with pytest.raises(LedgerError):
        LedgerClient(url).get_chain_id()
    state["raw"] = json.dumps({"jsonrpc": "2.0", "id": 1, "result": "seven"}).encode()
    with pytest.raises(LedgerError):
        LedgerClient(url).get_chain_id()


def test_each_call_has_its_own_deadline(stub_node):
    url, _, state = stub_node
    state["delay"] = 1.0
    client = LedgerClient(url, timeout=0.2)
    start = time.monotonic()
    with pytest.raises(LedgerError):
        client.get_pending_nonce("0x" + "1" * 40)
    assert time.monotonic() - start < 0.9


def test_trickled_response_hits_the_deadline(stub_node):
    url, _, state = stub_node
    state["raw"] = json.dumps({"jsonrpc": "2.0", "id": 1, "result": "0x3b9aca00"}).encode()
    state["drip"] = 0.1
    client = LedgerClient(url, timeout=0.5)
    start = time.monotonic()
    with pytest.raises(LedgerError) as exc:
        client.suggest_gas_price()
    assert "deadline exceeded" in str(exc.value)
    assert time.monotonic() - start < 1.5


def test_connect_probes_node(stub_node):
    url, requests, _ = stub_node
    client = LedgerClient.connect(url)
    assert client.url == url
    assert requests[0]["method"] == "web3_clientVersion"


@pytest.mark.parametrize("url", ["ftp://node", "localhost:8545", ""])
def test_connect_rejects_bad_url(url):
    with pytest.raises(ConfigurationError):
        LedgerClient.connect(url)


def test_connect_unreachable():
    with pytest.raises(ConfigurationError) as exc:
        LedgerClient.connect("http://127.0.0.1:9", timeout=0.5)
    assert "failed to connect" in exc.value.message
