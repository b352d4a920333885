__version__ = "0.1.0"

__all__ = [
    "config",
    "cooldown",
    "crypto",
    "errors",
    "faucet",
    "ledger",
    "server",
    "tx",
    "wallet",
]
