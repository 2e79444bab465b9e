"""
Inbound webhook routes.

Receives payment provider callbacks. Server-to-server endpoints always
answer 200 with {"success": ...} so the provider stops retrying; the
card callback is a browser redirect and answers with a normal error.
"""
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from hookline.database import get_db
from hookline.exceptions import InboundAuthorizationFailure
from hookline.logging_config import get_logger
from hookline.sentry_config import capture_exception
from hookline.services.inbound_receiver import (
    BIT_IPN,
    CARD_CALLBACK,
    SUMIT_TRIGGER,
    InboundReceiver,
    extract_trigger_payload,
)


router = APIRouter(tags=["inbound"])

logger = get_logger(component="inbound_routes")


def get_inbound_receiver(db: AsyncSession = Depends(get_db)) -> InboundReceiver:
    """Receiver wired to the registered collaborators."""
    return InboundReceiver(db)


def _source_ip(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


async def _form_params(request: Request) -> dict:
    if request.method != "POST":
        return {}
    content_type = request.headers.get("content-type", "")
    if "form" not in content_type:
        return {}
    form = await request.form()
    return {key: value for key, value in form.items() if isinstance(value, str)}


@router.api_route("/webhooks/bit", methods=["GET", "POST"])
async def bit_ipn(
    request: Request,
    receiver: InboundReceiver = Depends(get_inbound_receiver)
):
    """
    Bit payment notification (IPN).

    Parameters may arrive in the query string or a form body. Any failure
    is reported in the body with HTTP 200.
    """
    try:
        # Body first: Starlette caches it, and form() then reads the cache
        raw_body = await request.body()
        params = dict(request.query_params)
        params.update(await _form_params(request))
        result = await receiver.receive(
            BIT_IPN,
            params,
            raw_body=raw_body,
            headers=dict(request.headers),
            source_ip=_source_ip(request),
        )
        return result.to_response()
    except Exception as e:
        logger.error("bit_ipn_failed", error=str(e), error_type=type(e).__name__)
        capture_exception()
        return {"success": False, "message": "Webhook processing failed"}


@router.post("/webhooks/sumit")
@router.post("/webhooks/sumit/{event_type}")
async def sumit_trigger(
    request: Request,
    event_type: str | None = None,
    receiver: InboundReceiver = Depends(get_inbound_receiver)
):
    """
    Provider trigger (card created/updated/deleted/archived, CRM changes).

    The path segment, when given, fixes the trigger type; otherwise it is
    detected from the payload. An unknown path type is recorded as invalid.
    """
    if event_type is not None:
        event_type = event_type.replace("-", "_")

    try:
        raw_body = await request.body()
        content_type = request.headers.get("content-type", "")
        json_body = None
        if "application/json" in content_type and raw_body:
            try:
                json_body = await request.json()
            except ValueError:
                json_body = None
        payload = extract_trigger_payload(content_type, json_body, await _form_params(request))

        result = await receiver.receive(
            SUMIT_TRIGGER,
            payload,
            raw_body=raw_body,
            headers=dict(request.headers),
            source_ip=_source_ip(request),
            event_type=event_type,
        )
        return result.to_response()
    except Exception as e:
        logger.error("sumit_trigger_failed", error=str(e), error_type=type(e).__name__)
        capture_exception()
        return {"success": False, "message": "Webhook processing failed"}


@router.get("/callback/card")
async def card_callback(
    request: Request,
    receiver: InboundReceiver = Depends(get_inbound_receiver)
):
    """
    Card payment redirect.

    The customer's browser lands here after the hosted payment page, so a
    missing or wrong order key is an ordinary HTTP error.
    """
    try:
        result = await receiver.receive(
            CARD_CALLBACK,
            dict(request.query_params),
            headers=dict(request.headers),
            source_ip=_source_ip(request),
        )
    except InboundAuthorizationFailure as e:
        logger.warning("card_callback_rejected", error=str(e), status_code=e.status_code)
        raise HTTPException(status_code=e.status_code, detail=str(e))

    return result.to_response()
