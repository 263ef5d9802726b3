import structlog
from fastapi import APIRouter, HTTPException, Request
from starlette.datastructures import FormData

from powcaptcha.config import settings
from powcaptcha.exceptions import ClassifiedAsSpam, FieldsMismatch
from powcaptcha.schemas.challenge import SubmissionResponse
from powcaptcha.services.pow_service import verify_solution
from powcaptcha.services.signature_service import check_classification, verify_server_signature

router = APIRouter()
logger = structlog.get_logger()

PAYLOAD_FIELD = "altcha"


def form_to_dict(form: FormData) -> dict[str, str]:
    """Flatten form data for the response; uploads are reported by filename."""
    return {
        key: value if isinstance(value, str) else (value.filename or "")
        for key, value in form.items()
    }


def get_altcha_payload(form: FormData) -> str:
    payload = form.get(PAYLOAD_FIELD)
    if not payload or not isinstance(payload, str):
        logger.info("submission_rejected", reason="payload_missing")
        raise HTTPException(status_code=400, detail="Altcha payload missing")
    return payload


@router.post(
    "/submit",
    response_model=SubmissionResponse,
    response_model_exclude_none=True,
)
async def submit(request: Request):
    """
    Form action that only requires a solved proof-of-work challenge.
    """
    form = await request.form()
    payload = get_altcha_payload(form)

    if not verify_solution(payload, settings.altcha_hmac_key):
        logger.info("submission_rejected", reason="invalid_payload")
        raise HTTPException(status_code=400, detail="Invalid Altcha payload")

    # Process the form data here
    logger.info("submission_accepted", path="/submit")

    return SubmissionResponse(success=True, data=form_to_dict(form))


@router.post(
    "/submit_spam_filter",
    response_model=SubmissionResponse,
    response_model_exclude_none=True,
)
async def submit_spam_filter(request: Request):
    """
    Form action for submissions checked by the spam filter.

    The altcha field carries the filter's signed classification instead of
    a puzzle solution. Rejects spam and forms whose classified fields were
    changed after scoring.
    """
    form = await request.form()
    payload = get_altcha_payload(form)

    result = verify_server_signature(payload, settings.altcha_hmac_key)
    if not result.verified or result.verification_data is None:
        logger.info("submission_rejected", reason="invalid_payload")
        raise HTTPException(status_code=400, detail="Invalid Altcha payload")

    verification_data = result.verification_data

    try:
        check_classification(form, verification_data)
    except (ClassifiedAsSpam, FieldsMismatch) as e:
        logger.info("submission_rejected", reason=e.reason)
        raise HTTPException(status_code=400, detail=str(e))

    logger.info(
        "submission_accepted",
        path="/submit_spam_filter",
        classification=verification_data.classification,
    )

    return SubmissionResponse(
        success=True,
        data=form_to_dict(form),
        verification_data=verification_data,
    )
