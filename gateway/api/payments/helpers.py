from __future__ import annotations

from datetime import datetime, timezone
import secrets

from gateway.core.config import Config


def utcnow() -> datetime:
    # stored columns are naive UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat(timespec="milliseconds") + "Z"


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 string into naive UTC; raises ValueError."""
    if not isinstance(value, str) or not value.strip():
        raise ValueError("timestamp must be a non-empty string")
    raw = value.strip()
    if raw.endswith(("Z", "z")):
        raw = f"{raw[:-1]}+00:00"
    parsed = datetime.fromisoformat(raw)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def generate_payment_id() -> str:
    return f"pay_{secrets.token_hex(12)}"


def generate_payment_address(network: str) -> str:
    # placeholder addresses in each chain's shape until real wallets are wired in
    if network == "TRC20":
        return f"T{secrets.token_hex(17)}"
    if network == "BITCOIN":
        return f"bc1q{secrets.token_hex(19)}"
    return f"0x{secrets.token_hex(20)}"


def build_payment_link(payment_id: str) -> str:
    return f"{Config.PAYMENT_LINK_BASE_URL.rstrip('/')}/{payment_id}"
