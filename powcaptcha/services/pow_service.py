import json
import secrets
from datetime import UTC, datetime
from urllib.parse import parse_qsl, urlencode

import structlog
from pydantic import ValidationError

from powcaptcha.exceptions import (
    ConfigurationError,
    Expired,
    HashMismatch,
    MalformedPayload,
    SignatureMismatch,
    VerificationError,
)
from powcaptcha.schemas.challenge import Challenge, Payload
from powcaptcha.services.crypto_utils import (
    constant_time_equals,
    hash_hex,
    hashlib_name,
    hmac_hex,
    strict_base64_decode,
)

logger = structlog.get_logger()

DEFAULT_ALGORITHM = "SHA-256"
DEFAULT_MAX_NUMBER = 1_000_000
DEFAULT_SALT_LENGTH = 12  # random bytes, hex-encoded into the salt


def extract_salt_params(salt: str) -> dict[str, str]:
    """Return the query-string parameters embedded after '?' in a salt."""
    _, sep, query = salt.partition("?")
    if not sep:
        return {}
    return dict(parse_qsl(query, keep_blank_values=True))


def create_challenge(
    hmac_key: str,
    max_number: int = DEFAULT_MAX_NUMBER,
    algorithm: str = DEFAULT_ALGORITHM,
    expires: datetime | None = None,
    params: dict[str, str] | None = None,
    salt: str | None = None,
    number: int | None = None,
    salt_length: int = DEFAULT_SALT_LENGTH,
) -> Challenge:
    """
    Generate a new proof-of-work challenge.

    The secret number is never stored: the only way to recover it is a linear
    search over [0, max_number], which is the work the client has to do.
    Passing ``salt`` or ``number`` makes the challenge deterministic.
    """
    if not hmac_key:
        raise ConfigurationError("HMAC key must not be empty")
    if max_number <= 0:
        raise ConfigurationError("max_number must be greater than 0")
    if salt_length <= 0:
        raise ConfigurationError("salt_length must be greater than 0")
    algorithm = algorithm.upper()
    hashlib_name(algorithm)

    if number is None:
        number = secrets.randbelow(max_number + 1)
    elif not 0 <= number <= max_number:
        raise ConfigurationError(f"number must be within [0, {max_number}]")

    if salt is None:
        salt = secrets.token_hex(salt_length)

    if params or expires is not None:
        salt_params = extract_salt_params(salt)
        salt_params.update(params or {})
        if expires is not None:
            if expires.tzinfo is None:
                expires = expires.replace(tzinfo=UTC)
            salt_params["expires"] = str(int(expires.timestamp()))
        salt = f"{salt.partition('?')[0]}?{urlencode(salt_params)}"

    challenge = hash_hex(algorithm, f"{salt}{number}")

    return Challenge(
        algorithm=algorithm,
        challenge=challenge,
        maxnumber=max_number,
        salt=salt,
        signature=hmac_hex(algorithm, challenge, hmac_key),
    )


def decode_payload(payload: str | dict | Payload) -> Payload:
    """Decode the transport form of a solution into a Payload."""
    if isinstance(payload, Payload):
        return payload
    try:
        if isinstance(payload, dict):
            return Payload.model_validate(payload)
        raw = strict_base64_decode(payload)
        return Payload.model_validate(json.loads(raw))
    except (ValidationError, ValueError, RecursionError) as e:
        # JSONDecodeError and UnicodeDecodeError are ValueErrors; deep nesting recurses
        if isinstance(e, MalformedPayload):
            raise
        raise MalformedPayload(f"Undecodable payload: {e.__class__.__name__}")


def check_solution(
    payload: str | dict | Payload, hmac_key: str, check_expires: bool = True
) -> Payload:
    """
    Verify a proof-of-work solution.

    Returns the decoded payload if valid, raises a VerificationError
    subclass naming the failed check otherwise.
    """
    solution = decode_payload(payload)

    try:
        expected_challenge = hash_hex(solution.algorithm, f"{solution.salt}{solution.number}")
        expected_signature = hmac_hex(solution.algorithm, solution.challenge, hmac_key)
    except ConfigurationError as e:
        raise MalformedPayload(str(e))

    # Both comparisons always run so timing doesn't reveal which one failed
    hash_ok = constant_time_equals(expected_challenge, solution.challenge)
    signature_ok = constant_time_equals(expected_signature, solution.signature)

    if not hash_ok:
        raise HashMismatch("Solution does not match challenge")
    if not signature_ok:
        raise SignatureMismatch("Challenge signature mismatch")

    if check_expires:
        expires = extract_salt_params(solution.salt).get("expires")
        if expires is not None:
            try:
                expires_at = int(expires)
            except ValueError:
                raise MalformedPayload("Invalid expires parameter")
            if datetime.now(UTC).timestamp() > expires_at:
                raise Expired("Challenge expired")

    return solution


def verify_solution(
    payload: str | dict | Payload, hmac_key: str, check_expires: bool = True
) -> bool:
    """Boolean form of check_solution; malformed input is simply not verified."""
    try:
        check_solution(payload, hmac_key, check_expires=check_expires)
    except VerificationError as e:
        logger.info("solution_rejected", reason=e.reason)
        return False
    return True
