"""
Failure taxonomy for challenge and signature verification.

Verification errors never reach HTTP callers as faults: the boolean
verifiers catch them, log the ``reason`` and report "not verified".
``ConfigurationError`` is the only error meant to stop issuance.
"""


class ConfigurationError(ValueError):
    """Invalid issuance parameters (max number, algorithm, key)."""


class VerificationError(ValueError):
    reason = "verification_failed"


class MalformedPayload(VerificationError):
    reason = "malformed_payload"


class HashMismatch(VerificationError):
    reason = "hash_mismatch"


class SignatureMismatch(VerificationError):
    reason = "signature_mismatch"


class Expired(VerificationError):
    reason = "expired"


class ClassifiedAsSpam(VerificationError):
    reason = "classified_as_spam"


class FieldsMismatch(VerificationError):
    reason = "fields_mismatch"
