import json
import logging
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Dict, Optional, Tuple

from .errors import (
    EligibilityError,
    FaucetError,
    LedgerQueryError,
    SigningError,
    SubmissionError,
    ValidationError,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_BODY = 4096
SUCCESS_MESSAGE = "Tokens sent successfully!"
INVALID_REQUEST = "Invalid request format"


def status_for(exc: FaucetError) -> int:
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, EligibilityError):
        return 429
    if isinstance(exc, (LedgerQueryError, SubmissionError)):
        return 502
    if isinstance(exc, SigningError):
        return 500
    return 400


def handle_request(faucet, body: Any) -> Tuple[int, Dict[str, Any]]:
    """Map one decoded request body onto a (status, response) pair."""
    if not isinstance(body, dict) or not isinstance(body.get("address"), str) or not body["address"]:
        return 400, {"success": False, "message": INVALID_REQUEST}
    try:
        txid = faucet.request_disbursement(body["address"])
    except FaucetError as exc:
        return status_for(exc), {"success": False, "message": exc.message}
    return 200, {"success": True, "message": SUCCESS_MESSAGE, "tx_hash": txid}


class FaucetServer:
    def __init__(self, faucet, host: str, port: int, max_body: int = DEFAULT_MAX_BODY) -> None:
        self.faucet = faucet
        self.host = host
        self.port = port
        self.max_body = max_body
        self._thread: Optional[threading.Thread] = None
        self._server: Optional[ThreadingHTTPServer] = None

    @property
    def server_address(self) -> Tuple[str, int]:
        if not self._server:
            return self.host, self.port
        host, port = self._server.server_address[:2]
        return str(host), int(port)

    def _build(self) -> ThreadingHTTPServer:
        max_body = self.max_body

        class Handler(BaseHTTPRequestHandler):
            def _send(self, code: int, payload: Dict[str, Any]) -> None:
                data = json.dumps(payload).encode()
                self.send_response(code)
                self.send_header("Content-Type", "application/json")
                self.send_header("Content-Length", str(len(data)))
                self.end_headers()
                self.wfile.write(data)

            def do_GET(self) -> None:
                if self.path == "/health":
                    self._send(200, {"ok": True})
                    return
                if self.path == "/status":
                    self._send(200, self.server.faucet.status())
                    return
                self._send(404, {"success": False, "message": "not found"})

            def do_POST(self) -> None:
                if self.path != "/request":
                    self._send(404, {"success": False, "message": "not found"})
                    return
                try:
                    length = int(self.headers.get("Content-Length", "0"))
                except ValueError:
                    self._send(400, {"success": False, "message": INVALID_REQUEST})
                    return
                if length > max_body:
                    if length <= max_body * 64:
                        self.rfile.read(length)
                    self.close_connection = True
                    self._send(413, {"success": False, "message": "request body too large"})
                    return
                raw = self.rfile.read(length) if length > 0 else b""
                try:
                    body = json.loads(raw.decode())
                except ValueError:
                    self._send(400, {"success": False, "message": INVALID_REQUEST})
                    return
                try:
                    code, payload = handle_request(self.server.faucet, body)
                except Exception:
                    logger.exception("Unhandled error serving %s", self.path)
                    code, payload = 500, {"success": False, "message": "internal error"}
                self._send(code, payload)

            def log_message(self, format: str, *args: Any) -> None:
                logger.debug("%s - %s", self.client_address[0], format % args)

        server = ThreadingHTTPServer((self.host, self.port), Handler)
        server.daemon_threads = True
        server.faucet = self.faucet
        return server

    def start(self) -> None:
        if self._thread:
            return
        self._server = self._build()
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()
        logger.info("Starting faucet server on %s:%d", *self.server_address)

    def serve_forever(self) -> None:
        self._server = self._build()
        logger.info("Starting faucet server on %s:%d", *self.server_address)
        try:
            self._server.serve_forever()
        finally:
            self._server.server_close()

    def stop(self) -> None:
        if self._server:
            self._server.shutdown()
            self._server.server_close()
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None
