from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Challenge(BaseModel):
    algorithm: str = "SHA-256"
    challenge: str = Field(..., description="Hex digest of salt + secret number")
    maxnumber: int = Field(..., gt=0, description="Upper bound of the search space")
    salt: str
    signature: str = Field(..., description="HMAC of the challenge under the server key")


class Payload(BaseModel):
    """Solution submitted by the client, base64-encoded JSON on the wire."""

    algorithm: str
    challenge: str
    number: int = Field(..., ge=0)
    salt: str
    signature: str
    took: int | None = None  # solve time reported by the widget, in ms


class ServerSignaturePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    algorithm: str
    verification_data: str = Field(..., alias="verificationData")
    signature: str
    verified: bool
    api_key: str | None = Field(None, alias="apiKey")
    id: str | None = None


class VerificationData(BaseModel):
    """Classification record signed by the spam filter."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    classification: str | None = None
    fields: list[str] | None = None
    fields_hash: str | None = Field(None, alias="fieldsHash")
    time: int | None = None
    expire: int | None = None
    score: float | None = None
    reasons: list[str] | None = None
    verified: bool | None = None
    email: str | None = None
    country: str | None = None
    detected_language: str | None = Field(None, alias="detectedLanguage")


class ServerSignatureVerification(BaseModel):
    verified: bool
    verification_data: VerificationData | None = None


class SubmissionResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    data: dict[str, Any]
    verification_data: VerificationData | None = Field(None, alias="verificationData")
