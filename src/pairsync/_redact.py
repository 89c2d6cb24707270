"""Redaction for debug logging.

Request headers carry the store token and broker credentials; bot
payloads carry the wallet address. Secrets are replaced outright, wallet
addresses are shortened to their first and last characters so log lines
stay correlatable.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

REDACTED = "<redacted>"

_SECRET_KEYS: frozenset[str] = frozenset(
    {
        "authorization",
        "token",
        "storetoken",
        "accesstoken",
        "apikey",
        "password",
        "mqttpassword",
        "secret",
        "privatekey",
        "cookie",
    }
)

_ADDRESS_KEYS: frozenset[str] = frozenset({"walletaddress", "wallet", "address"})

_MAX_DEPTH = 20


def _canonical(key: Any) -> str:
    # walletAddress, wallet_address and wallet-address compare equal
    return str(key).replace("_", "").replace("-", "").lower()


def mask_address(address: str, *, keep: int = 4) -> str:
    """Shorten *address* to ``0x12…abcd`` form."""
    head = keep + 2 if address.startswith("0x") else keep
    if len(address) <= head + keep:
        return REDACTED
    return f"{address[:head]}…{address[-keep:]}"


def redact_for_log(value: Any, *, max_string: int = 512, max_items: int = 20, _depth: int = 0) -> Any:
    """Return a copy of *value* that is safe to emit in DEBUG logs."""
    if _depth > _MAX_DEPTH:
        return "<max-depth>"
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        return value if len(value) <= max_string else f"{value[:max_string]}…<truncated>"
    if isinstance(value, (bytes, bytearray)):
        return f"<bytes:{len(value)}b>"
    if isinstance(value, Mapping):
        return {str(key): _redact_entry(key, item, max_string, max_items, _depth) for key, item in value.items()}
    if isinstance(value, Sequence):
        items = [
            redact_for_log(item, max_string=max_string, max_items=max_items, _depth=_depth + 1)
            for item in value[:max_items]
        ]
        if len(value) > max_items:
            items.append(f"<{len(value) - max_items} more>")
        return items
    return repr(value)


def _redact_entry(key: Any, value: Any, max_string: int, max_items: int, depth: int) -> Any:
    name = _canonical(key)
    if name in _SECRET_KEYS:
        return REDACTED
    if name in _ADDRESS_KEYS and isinstance(value, str):
        return mask_address(value)
    return redact_for_log(value, max_string=max_string, max_items=max_items, _depth=depth + 1)
