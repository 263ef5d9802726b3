from powcaptcha.schemas.challenge import (
    Challenge,
    Payload,
    ServerSignaturePayload,
    ServerSignatureVerification,
    SubmissionResponse,
    VerificationData,
)

__all__ = [
    "Challenge",
    "Payload",
    "ServerSignaturePayload",
    "ServerSignatureVerification",
    "SubmissionResponse",
    "VerificationData",
]
