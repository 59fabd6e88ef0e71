"""
Apple Pay merchant validation route.

Endpoint:
  POST /applepay/validate — Create an Apple Pay merchant session

The browser posts the validationURL it received from ApplePaySession; the
merchant session JSON from Apple is returned untouched so the page can pass it
to ``completeMerchantValidation``.
"""

import asyncio
import logging
from typing import Any, Awaitable, Optional, Tuple

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from applepayjs.core.dependencies import get_merchant_validation_service
from applepayjs.schemas.applepay import ErrorResponse, ValidateMerchantSessionRequest
from applepayjs.services.merchant_validation_service import MerchantValidationService

logger = logging.getLogger(__name__)

router = APIRouter()

DISCONNECT_POLL_INTERVAL = 0.25

# nginx's "client closed request"
CLIENT_CLOSED_REQUEST = 499


async def run_until_disconnected(
    request: Request,
    operation: Awaitable[Any],
) -> Tuple[bool, Optional[Any]]:
    """
    Await ``operation`` unless the client goes away first.

    Returns ``(True, result)`` on completion, ``(False, None)`` when the
    client disconnected and the operation was cancelled.
    """
    task = asyncio.ensure_future(operation)
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=DISCONNECT_POLL_INTERVAL)
            if done:
                return True, task.result()
            if await request.is_disconnected():
                task.cancel()
                return False, None
    finally:
        if not task.done():
            task.cancel()


@router.post(
    "/applepay/validate",
    name="MerchantValidation",
    summary="Validate an Apple Pay merchant session",
    description=(
        "Forwards an Apple Pay validation URL to the Apple Pay gateway using the "
        "merchant certificate and returns the opaque merchant session."
    ),
    responses={
        200: {"description": "Merchant session JSON from Apple, unchanged"},
        400: {"description": "Missing, malformed or disallowed validationUrl", "model": ErrorResponse},
        500: {"description": "Gateway or configuration failure", "model": ErrorResponse},
    },
    tags=["applepay"],
)
async def validate_merchant_session(
    body: ValidateMerchantSessionRequest,
    request: Request,
    service: MerchantValidationService = Depends(get_merchant_validation_service),
):
    remote_ip = request.client.host if request.client else None

    completed, merchant_session = await run_until_disconnected(
        request,
        service.validate_merchant(
            validation_url=body.validation_url,
            initiative_context=request.url.hostname or "",
            remote_ip=remote_ip,
        ),
    )

    if not completed:
        logger.info(f"[applepay] client {remote_ip} disconnected during merchant validation")
        return Response(status_code=CLIENT_CLOSED_REQUEST)

    return JSONResponse(content=merchant_session)
