from datetime import UTC, datetime, timedelta

import structlog
from fastapi import APIRouter, HTTPException

from powcaptcha.config import settings
from powcaptcha.exceptions import ConfigurationError
from powcaptcha.schemas.challenge import Challenge
from powcaptcha.services.pow_service import create_challenge

router = APIRouter()
logger = structlog.get_logger()


@router.get("/altcha", response_model=Challenge)
async def get_challenge():
    """
    Fetch a new random challenge.

    Use this endpoint as the widget's challenge URL. Nothing is stored:
    the signature lets /submit check the challenge later on its own.
    """
    expires = None
    if settings.altcha_challenge_ttl_seconds:
        expires = datetime.now(UTC) + timedelta(seconds=settings.altcha_challenge_ttl_seconds)

    try:
        challenge = create_challenge(
            hmac_key=settings.altcha_hmac_key,
            max_number=settings.altcha_max_number,
            algorithm=settings.altcha_algorithm,
            expires=expires,
        )
    except ConfigurationError as e:
        logger.error("challenge_creation_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Failed to create challenge")

    logger.info(
        "challenge_created",
        algorithm=challenge.algorithm,
        max_number=challenge.maxnumber,
        expires=expires.isoformat() if expires else None,
    )

    return challenge
