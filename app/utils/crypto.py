from __future__ import annotations

import hmac
import secrets


def random_hex(nbytes: int) -> str:
    """Hex token from the OS CSPRNG (2 chars per byte)."""
    return secrets.token_hex(nbytes)


def new_client_id() -> str:
    # 64 bits: ids are looked up by admins, not guessed by attackers
    return random_hex(8)


def new_api_key() -> str:
    # 192 bits
    return random_hex(24)


def secret_equals(supplied: str | None, expected: str) -> bool:
    """Exact match of a request-supplied secret against the configured one."""
    if supplied is None:
        return False
    return hmac.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8"))
