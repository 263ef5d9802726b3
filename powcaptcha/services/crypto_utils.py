import base64
import hashlib
import hmac
import re

from powcaptcha.exceptions import ConfigurationError, MalformedPayload

# Algorithm identifiers as they travel in challenges, mapped to hashlib names
HASH_ALGORITHMS = {
    "SHA-1": "sha1",
    "SHA-256": "sha256",
    "SHA-512": "sha512",
}

_BASE64_RE = re.compile(r"[A-Za-z0-9+/]*={0,2}")


def hashlib_name(algorithm: str) -> str:
    """Resolve a challenge algorithm identifier to a hashlib name."""
    try:
        return HASH_ALGORITHMS[algorithm.upper()]
    except (KeyError, AttributeError):
        raise ConfigurationError(f"Unsupported algorithm: {algorithm}")


def hash_bytes(algorithm: str, data: str | bytes) -> bytes:
    if isinstance(data, str):
        data = data.encode()
    return hashlib.new(hashlib_name(algorithm), data).digest()


def hash_hex(algorithm: str, data: str | bytes) -> str:
    return hash_bytes(algorithm, data).hex()


def hmac_hex(algorithm: str, data: str | bytes, key: str) -> str:
    """HMAC ``data`` under ``key`` with the same digest the challenge uses."""
    if isinstance(data, str):
        data = data.encode()
    return hmac.new(key.encode(), data, hashlib_name(algorithm)).hexdigest()


def constant_time_equals(a: str, b: str) -> bool:
    """Compare two hex strings without leaking the mismatch position."""
    if not isinstance(a, str) or not isinstance(b, str):
        return False
    return hmac.compare_digest(a.encode(), b.encode())


def strict_base64_decode(value: str) -> bytes:
    """
    Strictly validate and decode a base64 transport string.

    Rejects strings with invalid characters, incorrect padding, or whitespace.
    """
    if not isinstance(value, str) or not _BASE64_RE.fullmatch(value):
        raise MalformedPayload("Invalid base64 characters")
    if len(value) % 4 != 0:
        raise MalformedPayload("Invalid base64 length (must be multiple of 4)")
    try:
        return base64.b64decode(value, validate=True)
    except ValueError:
        raise MalformedPayload("Invalid base64 encoding")


def encode_base64_json(data: str) -> str:
    return base64.b64encode(data.encode()).decode()
