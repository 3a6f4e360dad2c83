"""
FastAPI application serving the leave IVR.

Twilio Programmable Voice posts one webhook per turn of a call; every route
below answers with TwiML. Route paths match the Gather actions the dialogue
emits, so the provider only needs /voice configured as the number's voice
URL and /call-events as its status callback.
"""

import base64
import hashlib
import hmac
import logging
import os
import threading
from collections.abc import Callable
from contextlib import asynccontextmanager

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Request, Response, status
from pydantic import BaseModel

from leave_ivr.call_session import CallSessionStore
from leave_ivr.circuit_breaker import CircuitBreaker
from leave_ivr.config import settings
from leave_ivr.dialogue import MSG_UNAVAILABLE, CallbackInput, LeaveCallFlow, Prompt
from leave_ivr.leave_types import parse_seed_balances
from leave_ivr.ledger import LeaveLedger
from leave_ivr.ledger_store import JsonLedgerStore
from leave_ivr.notifier import EmailNotifier
from leave_ivr.twiml import render_twiml
from leave_ivr.utils.request_context import (
    CallContextFilter,
    clear_call_context,
    set_call_context,
)

VERSION = "1.0.0"

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - [%(call_sid)s] %(message)s",
)
for _handler in logging.getLogger().handlers:
    _handler.addFilter(CallContextFilter())
logger = logging.getLogger(__name__)

# Provider call statuses after which the call will send no more webhooks
FINAL_CALL_STATUSES = {"completed", "busy", "failed", "no-answer", "canceled"}


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    environment: str
    active_calls: int
    notifier: dict


def build_call_flow() -> LeaveCallFlow:
    """Wire the dialogue to the configured ledger, session store and mailer."""
    notifier = EmailNotifier(
        host=settings.smtp_host,
        port=settings.smtp_port,
        user=settings.smtp_user,
        password=settings.smtp_password,
        sender=settings.smtp_from,
        use_tls=settings.smtp_use_tls,
        organization_name=settings.organization_name,
        circuit_breaker=CircuitBreaker(
            failure_threshold=settings.circuit_breaker_failure_threshold,
            timeout=settings.circuit_breaker_timeout,
            name="SmtpCircuitBreaker",
        ),
    )
    ledger = LeaveLedger(
        JsonLedgerStore(settings.ledger_path),
        seed_balances=parse_seed_balances(settings.seed_balances),
    )
    sessions = CallSessionStore(
        max_sessions=settings.max_sessions, ttl_seconds=settings.session_ttl_seconds
    )
    return LeaveCallFlow(
        ledger=ledger,
        sessions=sessions,
        notifier=notifier,
        email_domain=settings.employee_email_domain,
        notify_overrides=settings.notify_address_overrides,
        organization_name=settings.organization_name,
        gather_timeout=settings.gather_timeout,
        timezone=settings.locale_timezone,
    )


# Global call flow instance
call_flow: LeaveCallFlow | None = None
_call_flow_lock = threading.Lock()


def get_call_flow() -> LeaveCallFlow:
    """Get or create the global call flow. There must only ever be one ledger."""
    global call_flow
    with _call_flow_lock:
        if call_flow is None:
            call_flow = build_call_flow()
        return call_flow


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup and shutdown events."""
    logger.info("Starting Leave IVR Assistant")
    logger.info(f"Environment: {settings.environment}, ledger: {settings.ledger_path}")
    flow = get_call_flow()
    if not settings.twilio_auth_token:
        logger.warning("TWILIO_AUTH_TOKEN not set - webhook signatures are not verified")

    yield

    logger.info("Shutting down Leave IVR Assistant")
    flow.notifier.shutdown(wait=False)


app = FastAPI(
    title="Leave IVR Assistant",
    description="Voice assistant for applying for leave and checking leave status",
    version=VERSION,
    lifespan=lifespan,
)


def compute_twilio_signature(auth_token: str, url: str, params: dict[str, str]) -> str:
    """HMAC-SHA1 of the full URL followed by the sorted POST params, base64 encoded."""
    data = url + "".join(key + params[key] for key in sorted(params))
    digest = hmac.new(auth_token.encode("utf-8"), data.encode("utf-8"), hashlib.sha1).digest()
    return base64.b64encode(digest).decode()


async def read_callback(request: Request) -> dict[str, str]:
    """
    Collect webhook parameters (query string and form body).

    When a Twilio auth token is configured the X-Twilio-Signature header must
    match, otherwise the request is rejected with 403.
    """
    form_params: dict[str, str] = {}
    if request.method == "POST":
        form = await request.form()
        form_params = {key: value for key, value in form.items() if isinstance(value, str)}

    if settings.twilio_auth_token:
        signature = request.headers.get("X-Twilio-Signature", "")
        expected = compute_twilio_signature(
            settings.twilio_auth_token, str(request.url), form_params
        )
        if not hmac.compare_digest(expected, signature):
            logger.warning(f"Invalid Twilio signature on {request.url.path}")
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid signature")

    return {**request.query_params, **form_params}


def _twiml_response(prompt: Prompt) -> Response:
    return Response(
        content=render_twiml(prompt, voice=settings.voice, language=settings.voice_language),
        media_type="text/xml; charset=utf-8",
    )


def _respond(step: str, params: dict[str, str], handler: Callable[[CallbackInput], Prompt]):
    """Run one dialogue step; any unexpected failure becomes a spoken apology."""
    inbound = CallbackInput.from_params(params)
    set_call_context(inbound.call_sid, step)
    try:
        logger.info(f"Callback step={step}")
        prompt = handler(inbound)
    except Exception as e:
        logger.error(f"Error in step {step}: {e}", exc_info=True)
        prompt = Prompt(say=[MSG_UNAVAILABLE])
    finally:
        clear_call_context()
    return _twiml_response(prompt)


# API Endpoints


@app.get("/", tags=["Root"])
async def root():
    """Liveness message."""
    return {"message": "Leave IVR Assistant - running", "version": VERSION}


@app.get("/health", response_model=HealthResponse, tags=["Health"])
def health_check():
    """Service status, live call sessions and mail server circuit state."""
    flow = get_call_flow()
    return HealthResponse(
        status="healthy",
        environment=settings.environment,
        active_calls=len(flow.sessions),
        notifier=flow.notifier.get_state(),
    )


@app.api_route("/voice", methods=["GET", "POST"], tags=["IVR"])
def voice(params: dict[str, str] = Depends(read_callback)):
    """Greeting: ask for the six digit employee ID."""
    return _respond("greeting", params, get_call_flow().greet)


@app.api_route("/id", methods=["GET", "POST"], tags=["IVR"])
def identifier(params: dict[str, str] = Depends(read_callback)):
    """Employee ID spoken or keyed."""
    return _respond("identifier", params, get_call_flow().receive_identifier)


@app.api_route("/menu", methods=["GET", "POST"], tags=["IVR"])
def menu(params: dict[str, str] = Depends(read_callback)):
    """Option 1 apply leave, option 2 leave status."""
    return _respond("menu", params, get_call_flow().receive_menu_choice)


@app.api_route("/apply/type", methods=["GET", "POST"], tags=["IVR"])
def apply_leave_type(params: dict[str, str] = Depends(read_callback)):
    """Leave type spoken or keyed."""
    return _respond("leave_type", params, get_call_flow().receive_leave_type)


@app.api_route("/apply/dates", methods=["GET", "POST"], tags=["IVR"])
def apply_dates(params: dict[str, str] = Depends(read_callback)):
    """Date range spoken; applies the leave."""
    return _respond("dates", params, get_call_flow().receive_dates)


@app.api_route("/status", methods=["GET", "POST"], tags=["IVR"])
def leave_status(params: dict[str, str] = Depends(read_callback)):
    """Latest request and current balances."""
    return _respond("status", params, get_call_flow().report_status)


@app.post("/call-events", tags=["IVR"])
def call_events(params: dict[str, str] = Depends(read_callback)):
    """Call status callback: forget the session once the call is over."""
    call_sid = params.get("CallSid", "")
    call_status = params.get("CallStatus", "")
    removed = False
    if call_sid and call_status in FINAL_CALL_STATUSES:
        removed = get_call_flow().end_call(call_sid)
    logger.info(f"Call {call_sid} status={call_status} session_removed={removed}")
    return {"call_sid": call_sid, "call_status": call_status, "session_removed": removed}


if __name__ == "__main__":
    uvicorn.run(
        "leave_ivr.main:app",
        host="0.0.0.0",
        port=int(os.environ.get("PORT", 8080)),
        reload=settings.environment == "development",
        log_level=settings.log_level.lower(),
    )
