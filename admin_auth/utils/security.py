"""
Security utilities for admin key hashing, token generation and IP handling
"""

import re
import secrets
from datetime import datetime, timezone
from typing import Optional
from passlib.context import CryptContext

from admin_auth.core.config import settings


# Admin key hashing context using bcrypt
key_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.ADMIN_KEY_BCRYPT_COST
)

SESSION_TOKEN_BYTES = 32
ADMIN_KEY_BYTES = 64
TEMP_TOKEN_PREFIX = "mfa_"

_IPV4_RE = re.compile(r"^([0-9]{1,3})\.([0-9]{1,3})\.([0-9]{1,3})\.([0-9]{1,3})$")


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def hash_admin_key(secret: str) -> str:
    """
    Hash an administrator key using bcrypt

    Args:
        secret: Plain text key

    Returns:
        Hashed key
    """
    return key_context.hash(secret)


def verify_admin_key(secret: str, key_hash: str) -> bool:
    """
    Verify an administrator key against its hash

    Args:
        secret: Presented key
        key_hash: Stored bcrypt hash

    Returns:
        True if the key matches, False otherwise (including malformed hashes)
    """
    if not secret or not key_hash:
        return False
    try:
        return key_context.verify(secret, key_hash)
    except ValueError:
        return False


def generate_session_token() -> str:
    """256-bit random session token, 64 hex characters"""
    return secrets.token_hex(SESSION_TOKEN_BYTES)


def generate_temp_token() -> str:
    """MFA pending token, distinguishable from session tokens by its prefix"""
    return TEMP_TOKEN_PREFIX + secrets.token_hex(SESSION_TOKEN_BYTES)


def generate_admin_key() -> str:
    """512-bit administrator key, 128 hex characters"""
    return secrets.token_hex(ADMIN_KEY_BYTES)


def ip_to_int(ip: str) -> Optional[int]:
    """
    Convert a dotted-quad IPv4 address to a 32-bit integer

    Returns None for anything that is not a valid IPv4 address (IPv6 included).
    """
    match = _IPV4_RE.match(ip.strip()) if ip else None
    if not match:
        return None

    value = 0
    for octet in match.groups():
        number = int(octet)
        if number > 255:
            return None
        value = (value << 8) | number
    return value


def is_valid_ipv4(ip: str) -> bool:
    return ip_to_int(ip) is not None


def prefix_length(prefix: str) -> Optional[int]:
    """CIDR suffix as an int in 0-32, or None (ASCII digits only)"""
    if not prefix or len(prefix) > 2 or not prefix.isascii() or not prefix.isdigit():
        return None
    bits = int(prefix)
    return bits if bits <= 32 else None


def is_valid_ip_or_cidr(entry: str) -> bool:
    """
    Check an allow-list entry: '*', a dotted quad, or a dotted quad with a /0-/32 suffix
    """
    if entry == "*":
        return True
    if "/" not in entry:
        return is_valid_ipv4(entry)

    address, _, prefix = entry.partition("/")
    if prefix_length(prefix) is None:
        return False
    return is_valid_ipv4(address)


def ip_in_cidr(ip: str, cidr: str) -> bool:
    """
    Check whether an IPv4 address falls inside a CIDR block

    /0 matches every IPv4 address, /32 only the exact address. Malformed input
    and IPv6 addresses never match.
    """
    address, _, prefix = cidr.partition("/")
    bits = prefix_length(prefix)
    if bits is None:
        return False

    ip_value = ip_to_int(ip)
    subnet_value = ip_to_int(address)
    if ip_value is None or subnet_value is None:
        return False

    mask = (0xFFFFFFFF << (32 - bits)) & 0xFFFFFFFF
    return (ip_value & mask) == (subnet_value & mask)


def mask_ip(ip: Optional[str]) -> str:
    """Mask the host part of an IP address for logging"""
    if not ip:
        return "unknown"
    if is_valid_ipv4(ip):
        return ".".join(ip.split(".")[:3]) + ".x"
    return ip[:8] + "..."
