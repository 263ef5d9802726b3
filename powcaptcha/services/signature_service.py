"""
Verification of spam-filter results signed with the server key.

The spam filter classifies a submission and returns a record such as
``classification=GOOD&fields=email,message&fieldsHash=...&time=...``
together with ``HMAC(key, hash(record))``. The signature covers the record
exactly as transported; it is parsed only after the signature matched.
"""

import json
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any
from urllib.parse import parse_qsl, urlencode

import structlog
from pydantic import ValidationError

from powcaptcha.exceptions import (
    ClassifiedAsSpam,
    ConfigurationError,
    Expired,
    FieldsMismatch,
    MalformedPayload,
    SignatureMismatch,
    VerificationError,
)
from powcaptcha.schemas.challenge import (
    ServerSignaturePayload,
    ServerSignatureVerification,
    VerificationData,
)
from powcaptcha.services.crypto_utils import (
    constant_time_equals,
    encode_base64_json,
    hash_bytes,
    hash_hex,
    hmac_hex,
    strict_base64_decode,
)

logger = structlog.get_logger()

DEFAULT_ALGORITHM = "SHA-256"

_INT_KEYS = {"expire", "time"}
_FLOAT_KEYS = {"score"}
_LIST_KEYS = {"fields", "reasons"}
_BOOL_KEYS = {"verified"}


def parse_verification_data(data: str) -> VerificationData:
    """Parse a signed query string into VerificationData."""
    values: dict[str, Any] = {}
    try:
        for key, value in parse_qsl(data, keep_blank_values=True, strict_parsing=bool(data)):
            if key in _INT_KEYS:
                values[key] = int(value)
            elif key in _FLOAT_KEYS:
                values[key] = float(value)
            elif key in _LIST_KEYS:
                values[key] = [item for item in value.split(",") if item]
            elif key in _BOOL_KEYS:
                values[key] = value == "true"
            else:
                values[key] = value
        return VerificationData.model_validate(values)
    except ValueError as e:
        raise MalformedPayload(f"Invalid verification data: {e.__class__.__name__}")


def serialize_verification_data(data: VerificationData | Mapping[str, Any]) -> str:
    """
    Encode VerificationData as the query string that gets signed.

    Keys keep their insertion order; lists are comma-joined and booleans
    lowercase, matching what parse_verification_data reads back.
    """
    if isinstance(data, VerificationData):
        data = data.model_dump(by_alias=True, exclude_none=True)

    pairs = []
    for key, value in data.items():
        if value is None:
            continue
        if isinstance(value, bool):
            value = "true" if value else "false"
        elif isinstance(value, list | tuple):
            value = ",".join(str(item) for item in value)
        pairs.append((key, str(value)))
    return urlencode(pairs)


def sign_verification_data(
    verification_data: str, hmac_key: str, algorithm: str = DEFAULT_ALGORITHM
) -> str:
    return hmac_hex(algorithm, hash_bytes(algorithm, verification_data), hmac_key)


def create_server_signature(
    data: VerificationData | Mapping[str, Any],
    hmac_key: str,
    algorithm: str = DEFAULT_ALGORITHM,
    verified: bool = True,
) -> str:
    """Build the base64 payload a spam filter sends back to the form."""
    if not hmac_key:
        raise ConfigurationError("HMAC key must not be empty")
    verification_data = serialize_verification_data(data)
    payload = ServerSignaturePayload(
        algorithm=algorithm,
        verification_data=verification_data,
        signature=sign_verification_data(verification_data, hmac_key, algorithm),
        verified=verified,
    )
    return encode_base64_json(payload.model_dump_json(by_alias=True, exclude_none=True))


def decode_server_payload(payload: str | dict | ServerSignaturePayload) -> ServerSignaturePayload:
    if isinstance(payload, ServerSignaturePayload):
        return payload
    try:
        if isinstance(payload, dict):
            return ServerSignaturePayload.model_validate(payload)
        return ServerSignaturePayload.model_validate(json.loads(strict_base64_decode(payload)))
    except MalformedPayload:
        raise
    except (ValidationError, ValueError, RecursionError) as e:
        raise MalformedPayload(f"Undecodable payload: {e.__class__.__name__}")


def check_server_signature(
    payload: str | dict | ServerSignaturePayload, hmac_key: str
) -> VerificationData:
    """
    Verify a signed spam-filter payload.

    Returns the trusted VerificationData, raises a VerificationError
    subclass otherwise.
    """
    signed = decode_server_payload(payload)

    try:
        expected_signature = sign_verification_data(
            signed.verification_data, hmac_key, signed.algorithm
        )
    except ConfigurationError as e:
        raise MalformedPayload(str(e))

    if not constant_time_equals(expected_signature, signed.signature):
        raise SignatureMismatch("Verification data signature mismatch")

    data = parse_verification_data(signed.verification_data)

    if signed.verified is False or data.verified is False:
        raise VerificationError("Payload not marked as verified")
    if data.expire is not None and datetime.now(UTC).timestamp() > data.expire:
        raise Expired("Verification data expired")

    return data


def verify_server_signature(
    payload: str | dict | ServerSignaturePayload, hmac_key: str
) -> ServerSignatureVerification:
    try:
        data = check_server_signature(payload, hmac_key)
    except VerificationError as e:
        logger.info("server_signature_rejected", reason=e.reason)
        return ServerSignatureVerification(verified=False)
    return ServerSignatureVerification(verified=True, verification_data=data)


def create_fields_hash(
    form_data: Mapping[str, Any], fields: list[str], algorithm: str = DEFAULT_ALGORITHM
) -> str:
    """
    Hash the named fields, in order, joined by newlines.

    Missing fields and non-text values such as uploads count as empty. For
    multi-valued forms the first value of a repeated key is used.
    """
    lines = []
    for field in fields:
        if hasattr(form_data, "getlist"):
            values = form_data.getlist(field)
            value = values[0] if values else None
        else:
            value = form_data.get(field)
        lines.append(value if isinstance(value, str) else "")
    return hash_hex(algorithm, "\n".join(lines))


def verify_fields_hash(
    form_data: Mapping[str, Any],
    fields: list[str],
    fields_hash: str,
    algorithm: str = DEFAULT_ALGORITHM,
) -> bool:
    """Check that the submitted fields are the ones the spam filter classified."""
    try:
        expected_hash = create_fields_hash(form_data, fields, algorithm)
    except ConfigurationError:
        logger.info("fields_hash_rejected", reason=MalformedPayload.reason)
        return False

    if not constant_time_equals(expected_hash, fields_hash):
        logger.info("fields_hash_rejected", reason=FieldsMismatch.reason)
        return False
    return True


def check_classification(form_data: Mapping[str, Any], data: VerificationData) -> None:
    """
    Decide whether a verified classification lets the submission through.

    Raises ClassifiedAsSpam for BAD results, FieldsMismatch when the form no
    longer matches the fields the filter hashed.
    """
    if data.classification == "BAD":
        raise ClassifiedAsSpam("Classified as spam")

    if data.fields and data.fields_hash:
        if not verify_fields_hash(form_data, data.fields, data.fields_hash):
            raise FieldsMismatch("Invalid fields hash")
