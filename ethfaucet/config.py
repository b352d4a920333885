import logging
import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from dotenv import find_dotenv, load_dotenv

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_RPC_URL = "http://localhost:8545"
DEFAULT_AMOUNT = "1000000000000000000"  # 1 ETH in wei
DEFAULT_COOLDOWN_HOURS = "24"
DEFAULT_PORT = "8080"
DEFAULT_HOST = "0.0.0.0"
DEFAULT_RPC_TIMEOUT = "10"
DEFAULT_MAX_BODY = "4096"
DEFAULT_EVICT_FACTOR = "0"
DEFAULT_LOG_LEVEL = "INFO"


def load_env_file() -> bool:
    path = find_dotenv(usecwd=True)
    if not path:
        logger.warning("Warning: .env file not found")
        return False
    load_dotenv(path)
    return True


def _get(env: Mapping[str, str], name: str, default: str) -> str:
    value = env.get(name, "")
    value = value.strip() if value else ""
    return value or default


def _parse_int(name: str, value: str, minimum: Optional[int] = None) -> int:
    try:
        num = int(value, 10)
    except ValueError as exc:
        raise ConfigurationError(f"invalid {name}") from exc
    if minimum is not None and num < minimum:
        raise ConfigurationError(f"invalid {name}: must be >= {minimum}")
    return num


def _parse_float(name: str, value: str) -> float:
    try:
        num = float(value)
    except ValueError as exc:
        raise ConfigurationError(f"invalid {name}") from exc
    if num != num or num in (float("inf"), float("-inf")):
        raise ConfigurationError(f"invalid {name}")
    return num


@dataclass
class FaucetConfig:
    private_key: str = field(repr=False)
    rpc_url: str = DEFAULT_RPC_URL
    amount: int = int(DEFAULT_AMOUNT)
    cooldown_hours: int = int(DEFAULT_COOLDOWN_HOURS)
    host: str = DEFAULT_HOST
    port: int = int(DEFAULT_PORT)
    rpc_timeout: float = float(DEFAULT_RPC_TIMEOUT)
    max_body: int = int(DEFAULT_MAX_BODY)
    evict_factor: float = float(DEFAULT_EVICT_FACTOR)
    log_level: str = DEFAULT_LOG_LEVEL

    @property
    def cooldown_seconds(self) -> float:
        return float(self.cooldown_hours * 3600)

    @staticmethod
    def from_env(env: Optional[Mapping[str, str]] = None, dotenv: bool = True) -> "FaucetConfig":
        """Read configuration from the environment, optionally seeded from ``.env``.

        Raises ``ConfigurationError`` for a missing key or any malformed number.
        """
        if env is None:
            if dotenv:
                load_env_file()
            env = os.environ

        private_key = _get(env, "PRIVATE_KEY", "")
        if not private_key:
            raise ConfigurationError("PRIVATE_KEY environment variable is required")

        cooldown_hours = _parse_int("COOLDOWN_HOURS", _get(env, "COOLDOWN_HOURS", DEFAULT_COOLDOWN_HOURS))
        if cooldown_hours <= 0:
            raise ConfigurationError("invalid COOLDOWN_HOURS: must be > 0")

        rpc_timeout = _parse_float("FAUCET_RPC_TIMEOUT", _get(env, "FAUCET_RPC_TIMEOUT", DEFAULT_RPC_TIMEOUT))
        if rpc_timeout <= 0:
            raise ConfigurationError("invalid FAUCET_RPC_TIMEOUT: must be > 0")

        evict_factor = _parse_float("FAUCET_EVICT_FACTOR", _get(env, "FAUCET_EVICT_FACTOR", DEFAULT_EVICT_FACTOR))
        if evict_factor != 0 and evict_factor < 1:
            raise ConfigurationError("invalid FAUCET_EVICT_FACTOR: must be 0 or >= 1")

        port = _parse_int("PORT", _get(env, "PORT", DEFAULT_PORT), minimum=0)
        if port > 65535:
            raise ConfigurationError("invalid PORT")

        log_level = _get(env, "FAUCET_LOG_LEVEL", DEFAULT_LOG_LEVEL).upper()
        if not isinstance(logging.getLevelName(log_level), int):
            raise ConfigurationError(f"invalid FAUCET_LOG_LEVEL: {log_level}")

        return FaucetConfig(
            private_key=private_key,
            rpc_url=_get(env, "RPC_URL", DEFAULT_RPC_URL),
            amount=_parse_int("FAUCET_AMOUNT", _get(env, "FAUCET_AMOUNT", DEFAULT_AMOUNT), minimum=0),
            cooldown_hours=cooldown_hours,
            host=_get(env, "FAUCET_HOST", DEFAULT_HOST),
            port=port,
            rpc_timeout=rpc_timeout,
            max_body=_parse_int("FAUCET_MAX_BODY", _get(env, "FAUCET_MAX_BODY", DEFAULT_MAX_BODY), minimum=1),
            evict_factor=evict_factor,
            log_level=log_level,
        )
