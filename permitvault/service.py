"""
HTTP surface for a PermitVault custody vault.

Thin FastAPI layer: request parsing, error-to-status mapping and request
correlation. All decisions stay in CustodyVault / AuthorizationAuthority.

Run with:
    uvicorn permitvault.service:create_app_from_env --factory
"""

import base64
import binascii
import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .authority import AuthorizationAuthority
from .config import Settings, build_ledger
from .errors import ErrorCode, MalformedRequest, PermitVaultError
from .events import EventType, FanoutEventSink, InMemoryEventLog, LoggingEventSink
from .hashing import digest_hex
from .logging_config import audit_log, configure_logging, set_request_id
from .models import (
    AuthorizationStatus,
    BalanceResponse,
    DepositRequest,
    ErrorResponse,
    EventList,
    WithdrawRequest,
    WithdrawResponse,
)
from .request import Runtime, identity_hex, to_identity
from .signing import load_authority_identity
from .vault import CustodyVault

logger = logging.getLogger(__name__)

STATUS_BY_CODE = {
    ErrorCode.INVALID_AMOUNT: 400,
    ErrorCode.MALFORMED_REQUEST: 400,
    ErrorCode.INVALID_SIGNER: 403,
    ErrorCode.UNAUTHORIZED_CALLER: 403,
    ErrorCode.REPLAY_DETECTED: 409,
    ErrorCode.INSUFFICIENT_FUNDS: 409,
    ErrorCode.TRANSFER_FAILED: 502,
    ErrorCode.ALREADY_INITIALIZED: 409,
    ErrorCode.NOT_INITIALIZED: 503,
}


def _http_error(e: PermitVaultError) -> HTTPException:
    return HTTPException(STATUS_BY_CODE.get(e.code, 400), e.code.value)


def _decode_signature(signature_b64: str) -> bytes:
    try:
        return base64.b64decode(signature_b64.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError):
        # Undecodable signatures verify as nothing; the authority rejects them
        return b""


def create_app(
    vault: CustodyVault,
    authority: AuthorizationAuthority,
    events: Optional[InMemoryEventLog] = None,
    title: str = "PermitVault",
    docs_url: Optional[str] = "/docs"
) -> FastAPI:
    """
    Build the FastAPI application around an already wired vault.

    Args:
        vault: The custody vault to expose
        authority: The authority the vault delegates to (read side only)
        events: Event log served on /events (defaults to vault.events)
    """
    app = FastAPI(title=title, docs_url=docs_url)
    event_log = events if events is not None else vault.events

    @app.middleware("http")
    async def _request_id(request: Request, call_next):
        request_id = set_request_id(request.headers.get("X-Request-ID"))
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    @app.exception_handler(RequestValidationError)
    async def _malformed(request: Request, exc: RequestValidationError):
        logger.info("rejected malformed body on %s: %s", request.url.path, exc.errors())
        return JSONResponse(
            status_code=STATUS_BY_CODE[ErrorCode.MALFORMED_REQUEST],
            content={"detail": ErrorCode.MALFORMED_REQUEST.value},
        )

    @app.get("/health")
    def health():
        return {"status": "ok", "authority_initialized": authority.initialized}

    @app.get("/balance", response_model=BalanceResponse)
    def balance():
        return BalanceResponse(
            vault_identity=identity_hex(vault.identity),
            network_id=authority.runtime.network_id,
            balance=str(vault.balance),
        )

    @app.post("/deposit", response_model=BalanceResponse, responses={400: {"model": ErrorResponse}})
    def deposit(req: DepositRequest):
        try:
            new_balance = vault.deposit(req.amount, req.account)
        except PermitVaultError as e:
            raise _http_error(e)
        return BalanceResponse(
            vault_identity=identity_hex(vault.identity),
            network_id=authority.runtime.network_id,
            balance=str(new_balance),
        )

    @app.post(
        "/withdraw",
        response_model=WithdrawResponse,
        responses={code: {"model": ErrorResponse} for code in (400, 403, 409, 502, 503)},
    )
    def withdraw(req: WithdrawRequest):
        signature = _decode_signature(req.signature_b64)
        try:
            recipient = to_identity(req.recipient, "recipient")
            receipt = vault.withdraw(recipient, req.amount, req.nonce, signature)
        except PermitVaultError as e:
            if e.code == ErrorCode.INVALID_SIGNER:
                audit_log.security_event("invalid_signature_presented", recipient=req.recipient)
            raise _http_error(e)
        return WithdrawResponse(
            digest=digest_hex(receipt.digest),
            recipient=identity_hex(receipt.recipient),
            amount=str(receipt.amount),
            balance=str(receipt.balance),
        )

    @app.get("/authorizations/{digest}", response_model=AuthorizationStatus)
    def authorization_status(digest: str):
        try:
            record = authority.consumption_record(digest)
        except MalformedRequest as e:
            raise _http_error(e)
        return AuthorizationStatus(
            digest=digest if digest.startswith("0x") else "0x" + digest,
            consumed=record is not None,
            record=record.to_dict() if record else None,
        )

    @app.get("/events", response_model=EventList)
    def list_events(event_type: Optional[EventType] = None):
        if not isinstance(event_log, InMemoryEventLog):
            raise HTTPException(404, "EVENT_LOG_UNAVAILABLE")
        return EventList(events=[e.to_dict() for e in event_log.query(event_type)])

    return app


def create_app_from_settings(settings: Settings) -> FastAPI:
    """Wire runtime, ledger, authority and vault from settings."""
    configure_logging(settings.log_level, settings.log_json)

    runtime = Runtime(settings.network_id)
    events = InMemoryEventLog()
    sink = FanoutEventSink(events, LoggingEventSink())
    authority = AuthorizationAuthority(
        runtime,
        ledger=build_ledger(settings),
        events=sink,
        identity=load_authority_identity(settings.authority_key_path),
    )
    vault = CustodyVault(
        to_identity(settings.vault_identity, "vault_identity"),
        authority,
        runtime,
        events=sink,
    )
    logger.info(
        "vault %s serving on network %d (ledger=%s)",
        identity_hex(vault.identity), settings.network_id, settings.ledger_backend
    )
    docs_url = None if settings.env == "prod" else "/docs"
    return create_app(vault, authority, events=events, docs_url=docs_url)


def create_app_from_env() -> FastAPI:
    return create_app_from_settings(Settings.from_env())
