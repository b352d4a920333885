import argparse
import json
import logging
from typing import Optional
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from . import crypto
from .config import FaucetConfig
from .errors import BalanceQueryFailed, ConfigurationError
from .faucet import Faucet
from .server import FaucetServer
from .utils import format_ether

logger = logging.getLogger(__name__)

DEFAULT_FAUCET_URL = "http://127.0.0.1:8080"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load() -> Faucet:
    try:
        config = FaucetConfig.from_env()
        configure_logging(config.log_level)
        return Faucet.from_config(config)
    except ConfigurationError as exc:
        raise SystemExit(f"Failed to create faucet: {exc.message}") from exc


def cmd_serve(args: argparse.Namespace) -> None:
    try:
        config = FaucetConfig.from_env()
    except ConfigurationError as exc:
        raise SystemExit(f"Failed to create faucet: {exc.message}") from exc
    configure_logging(config.log_level)
    try:
        faucet = Faucet.from_config(config)
    except ConfigurationError as exc:
        logger.critical("Failed to create faucet: %s", exc.message)
        raise SystemExit(1) from exc
    faucet.log_startup()
    host = args.host or config.host
    port = args.port if args.port is not None else config.port
    server = FaucetServer(faucet, host, port, max_body=config.max_body)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Shutting down")
    finally:
        faucet.wallet.wipe()


def cmd_info(args: argparse.Namespace) -> None:
    faucet = _load()
    info = faucet.status()
    try:
        balance: Optional[int] = faucet.get_balance()
    except BalanceQueryFailed as exc:
        logger.warning("Warning: %s", exc.message)
        balance = None
    info["balance_wei"] = None if balance is None else str(balance)
    info["balance_eth"] = None if balance is None else format_ether(balance)
    print(json.dumps(info, indent=2))


def cmd_request(args: argparse.Namespace) -> None:
    url = args.url.rstrip("/") + "/request"
    payload = json.dumps({"address": args.address}).encode()
    req = Request(url, data=payload, headers={"Content-Type": "application/json"})
    try:
        with urlopen(req, timeout=args.timeout) as resp:
            data = json.loads(resp.read().decode())
    except HTTPError as exc:
        try:
            data = json.loads(exc.read().decode())
        except ValueError:
            raise SystemExit(f"Request failed: HTTP {exc.code}") from exc
    except URLError as exc:
        raise SystemExit(f"Request failed: {exc.reason}") from exc
    except ValueError as exc:
        raise SystemExit("Request failed: response is not JSON") from exc
    if not isinstance(data, dict):
        raise SystemExit(f"Request failed: unexpected response {data!r}")
    print(json.dumps(data, indent=2))
    if not data.get("success"):
        raise SystemExit(1)


def cmd_new_key(args: argparse.Namespace) -> None:
    priv = crypto.generate_private_key()
    print("Address:", crypto.address_from_private_key(priv))
    print("PRIVATE_KEY=" + priv.hex())


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="ethfaucet")
    sub = p.add_subparsers(dest="cmd", required=True)

    s = sub.add_parser("serve", help="run the faucet HTTP server")
    s.add_argument("--host")
    s.add_argument("--port", type=int)
    s.set_defaults(func=cmd_serve)

    s = sub.add_parser("info", help="print faucet address, chain and balance")
    s.set_defaults(func=cmd_info)

    s = sub.add_parser("request", help="ask a running faucet for funds")
    s.add_argument("address")
    s.add_argument("--url", default=DEFAULT_FAUCET_URL)
    s.add_argument("--timeout", type=float, default=60.0)
    s.set_defaults(func=cmd_request)

    s = sub.add_parser("new-key", help="generate a fresh faucet key")
    s.set_defaults(func=cmd_new_key)

    return p


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()
    args.func(args)


if __name__ == "__main__":
    main()
