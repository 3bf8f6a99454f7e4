"""
Dial-by-Name Directory - Telephony HTTP Endpoints

The web responder webhook. The platform calls it once when the caller
enters the directory and again after every digit gather; each response is
the XML telling the platform what to do next.
"""

from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError

from dialbyname.config import Settings
from dialbyname.core.exceptions import DialByNameError, InvalidEventError
from dialbyname.core.logging import LogContext, mask_call_id
from .flow import CallFlowController
from .models import DirectoryEvent, DirectoryOptions
from .privacy import mask_phone_number
from .providers import CallControlRenderer, HangupDocument

logger = logging.getLogger(__name__)

router = APIRouter(tags=["telephony"])

MISSING_DOMAIN_PROMPT = "System configuration error. Domain is required."
ERROR_PROMPT = "An error occurred. Please try again later."


# =============================================================================
# Dependencies
# =============================================================================

def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_controller(request: Request) -> CallFlowController:
    return request.app.state.controller


def get_renderer(request: Request) -> CallControlRenderer:
    return request.app.state.renderer


async def parse_event(request: Request) -> DirectoryEvent:
    """
    Build a DirectoryEvent from the request.

    Supports:
    - JSON body
    - Form-encoded body
    - Query string parameters (override body fields)
    """
    body: dict = {}
    content_type = request.headers.get("content-type", "")

    try:
        if request.method == "POST":
            if "application/json" in content_type:
                payload = await request.json()
                if not isinstance(payload, dict):
                    raise InvalidEventError("JSON body must be an object")
                body = payload
            else:
                form = await request.form()
                body = dict(form)

        body.update(request.query_params)
        return DirectoryEvent.model_validate(body)

    except InvalidEventError:
        raise
    except (ValueError, ValidationError) as e:
        raise InvalidEventError("Invalid request body", details={"error": str(e)}) from e


# =============================================================================
# Webhook Endpoint
# =============================================================================

@router.api_route(
    "/directory",
    methods=["GET", "POST"],
    response_class=PlainTextResponse,
    summary="Dial-by-name webhook",
    description="Web responder endpoint driving the dial-by-name directory.",
)
async def directory_webhook(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    controller: CallFlowController = Depends(get_controller),
    renderer: CallControlRenderer = Depends(get_renderer),
) -> PlainTextResponse:
    """
    Handle one step of a dial-by-name call.

    Always answers with call-control XML, including on internal errors,
    so the caller hears a message instead of dead air. Only an unparseable
    request is rejected with HTTP 400.
    """
    try:
        event = await parse_event(request)
    except InvalidEventError as e:
        logger.warning("Invalid directory request: %s", e.details.get("error", e.message))
        raise HTTPException(status_code=e.status_code, detail=e.message)

    base_url = str(request.url.replace(query=""))
    options = DirectoryOptions.resolve(event, settings, base_url)

    with LogContext(
        correlation_id=uuid.uuid4().hex[:12],
        call_id=event.session_key,
        domain=options.domain or None,
    ):
        logger.info(
            "Directory request: call=%s, digits=%r, ani=%s, dnis=%s",
            mask_call_id(event.session_key),
            event.digits,
            mask_phone_number(event.ani),
            mask_phone_number(event.dnis),
        )

        if not options.domain:
            logger.error("Directory request without a domain")
            document = HangupDocument(prompts=(MISSING_DOMAIN_PROMPT,), voice=options.voice)
        else:
            try:
                document = await controller.handle(event, options)
            except DialByNameError as e:
                logger.error("Directory request failed: %s (%s)", e.message, e.code)
                document = HangupDocument(prompts=(ERROR_PROMPT,), voice=options.voice)
            except Exception:
                logger.exception("Unexpected error handling directory request")
                document = HangupDocument(prompts=(ERROR_PROMPT,), voice=options.voice)

        return PlainTextResponse(
            content=renderer.render(document),
            media_type=renderer.media_type,
        )

