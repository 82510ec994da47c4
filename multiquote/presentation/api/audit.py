"""Request audit trail.

``AuditMiddleware`` wraps every HTTP request. Routes that should be audited
declare ``Depends(audited(AuditAction.X))``, which labels the per-request
``AuditRecorder``. The recorder persists exactly one row per labelled request:
either when the final response body chunk has been sent, or, if the
application finished without completing a response, from the middleware's
``finally`` block with a generic fallback body.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Optional, Tuple

from fastapi import Request
from starlette.datastructures import Headers, QueryParams, UploadFile
from starlette.exceptions import HTTPException
from starlette.formparsers import MultiPartException
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from ...application.services.audit_trail_service import AuditTrailService
from ...application.services.token_service import TokenService
from ...domain.errors import InvalidAccessToken
from ...domain.models import AuditAction, AuditLog, AuditLogEntry

logger = logging.getLogger(__name__)

AUDIT_SCOPE_KEY = "multiquote.audit"
REDACTED = "[REDACTED]"
FALLBACK_RESPONSE = {"message": "Unhandled error or non-2xx response"}

_REQUEST_SECRET_KEYS = frozenset({"password", "confirmPassword"})
_RESPONSE_SECRET_MARKERS = ("password", "token")


def sanitize_request_payload(value: Any) -> Any:
    """Redact values stored under ``password`` or ``confirmPassword`` at any depth."""
    if isinstance(value, dict):
        return {
            key: REDACTED if key in _REQUEST_SECRET_KEYS else sanitize_request_payload(item)
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [sanitize_request_payload(item) for item in value]
    return value


def sanitize_response_payload(value: Any) -> Any:
    """Redact every key containing ``password`` or ``token`` (case-insensitive)."""
    if isinstance(value, dict):
        sanitized = {}
        for key, item in value.items():
            lowered = str(key).lower()
            if any(marker in lowered for marker in _RESPONSE_SECRET_MARKERS):
                sanitized[key] = REDACTED
            else:
                sanitized[key] = sanitize_response_payload(item)
        return sanitized
    if isinstance(value, list):
        return [sanitize_response_payload(item) for item in value]
    return value


def compute_response_length(payload: Any, parsed: bool = True) -> int:
    if not parsed:
        return 0
    if isinstance(payload, dict) and isinstance(payload.get("data"), list):
        return len(payload["data"])
    return 1


def client_address(headers: Headers, client: Optional[Tuple[str, int]]) -> str:
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if client:
        return client[0]
    return "unknown"


def bearer_token(request: Request) -> Optional[str]:
    authorization = request.headers.get("authorization")
    if authorization:
        scheme, _, credentials = authorization.partition(" ")
        if scheme.lower() == "bearer" and credentials.strip():
            return credentials.strip()
    return request.cookies.get("token") or None


class AuditRecorder:
    """Collects one request's audit data and writes it at most once."""

    def __init__(self, trail: AuditTrailService, tokens: TokenService, scope: Scope) -> None:
        self._trail = trail
        self._tokens = tokens
        self._scope = scope
        self._request_body = bytearray()
        self._written = False
        self.action: Optional[str] = None
        self.login_history_id: Optional[str] = None

    @property
    def written(self) -> bool:
        return self._written

    def label(self, action: AuditAction) -> None:
        self.action = action.value

    def resolve_action(self) -> Optional[str]:
        """Return the action label, reading it off the matched route when no dependency set it.

        FastAPI parses the request body before it runs route dependencies, so a
        request whose body fails to parse never reaches ``audited()``.
        """
        if self.action is None:
            route = self._scope.get("route")
            dependant = getattr(route, "dependant", None)
            for dependency in getattr(dependant, "dependencies", ()):
                action = getattr(dependency.call, "audit_action", None)
                if action is not None:
                    self.label(action)
                    break
        return self.action

    def correlate(self, login_session_id: str) -> None:
        self.login_history_id = login_session_id

    def buffer_request_body(self, chunk: bytes) -> None:
        self._request_body.extend(chunk)

    async def emit(self, status_code: int, body: bytes) -> Optional[AuditLog]:
        try:
            payload, parsed = json.loads(body), True
        except ValueError:
            payload, parsed = body.decode("utf-8", errors="replace"), False
        return await self._write_once(status_code, payload, parsed)

    async def finish(self, status_code: Optional[int] = None) -> Optional[AuditLog]:
        return await self._write_once(status_code or 500, dict(FALLBACK_RESPONSE), True)

    async def _write_once(self, status_code: int, payload: Any, parsed: bool) -> Optional[AuditLog]:
        if self._written or self.resolve_action() is None:
            return None
        self._written = True
        try:
            entry = await self._build_entry(status_code, payload, parsed)
        except Exception:
            logger.exception("Failed to assemble audit entry for %s; recording a minimal one", self.action)
            entry = self._minimal_entry(status_code)
        return self._trail.record(entry)

    async def _build_entry(self, status_code: int, payload: Any, parsed: bool) -> AuditLogEntry:
        request = Request(self._scope)
        user_id, user_role, token_session_id = self._attribute(request)
        request_payload = sanitize_request_payload(
            {
                "params": dict(request.path_params),
                "query": dict(request.query_params),
                "body": await self._request_body_payload(request),
            }
        )
        response_payload = sanitize_response_payload(payload) if parsed else payload
        return AuditLogEntry(
            action=self.action or "",
            method=request.method,
            request_payload=json.dumps(request_payload, default=str),
            response_payload=json.dumps(response_payload, default=str) if parsed else str(payload),
            response_length=compute_response_length(response_payload, parsed),
            status_code=status_code,
            ip_address=client_address(request.headers, request.scope.get("client")),
            user_agent=request.headers.get("user-agent", "unknown"),
            user_id=user_id,
            user_role=user_role,
            login_history_id=self.login_history_id or token_session_id,
        )

    def _minimal_entry(self, status_code: int) -> AuditLogEntry:
        headers = Headers(scope=self._scope)
        return AuditLogEntry(
            action=self.action or "",
            method=self._scope.get("method", "UNKNOWN"),
            request_payload=json.dumps({"body": {"unparsed": f"{len(self._request_body)} bytes"}}),
            response_payload=json.dumps(FALLBACK_RESPONSE),
            response_length=1,
            status_code=status_code,
            ip_address=client_address(headers, self._scope.get("client")),
            user_agent=headers.get("user-agent", "unknown"),
            login_history_id=self.login_history_id,
        )

    def _attribute(self, request: Request) -> Tuple[Optional[str], str, Optional[str]]:
        token = bearer_token(request)
        if not token:
            return None, "unknown", None
        try:
            claims = self._tokens.verify_access_token(token)
        except InvalidAccessToken:
            return None, "unknown", None
        return claims.id, claims.role, claims.login_history_id

    async def _request_body_payload(self, request: Request) -> Any:
        body = bytes(self._request_body)
        if not body:
            return {}
        content_type = request.headers.get("content-type", "").lower()
        if content_type.startswith("application/json"):
            try:
                return json.loads(body)
            except ValueError:
                return body.decode("utf-8", errors="replace")
        if content_type.startswith("application/x-www-form-urlencoded"):
            return dict(QueryParams(body.decode("latin-1")))
        if content_type.startswith("multipart/form-data"):
            return await self._multipart_payload(body)
        return body.decode("utf-8", errors="replace")

    async def _multipart_payload(self, body: bytes) -> dict:
        async def replay() -> Message:
            return {"type": "http.request", "body": body, "more_body": False}

        try:
            form = await Request(dict(self._scope), replay).form()
        except (MultiPartException, HTTPException):
            return {"unparsed": f"{len(body)} bytes"}
        try:
            return {
                key: value.filename if isinstance(value, UploadFile) else value
                for key, value in form.multi_items()
            }
        finally:
            await form.close()


class AuditMiddleware:
    """Pure ASGI middleware that attaches an ``AuditRecorder`` to each request."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return
        container = getattr(scope["app"].state, "container", None) if "app" in scope else None
        if container is None:
            await self.app(scope, receive, send)
            return

        recorder = AuditRecorder(container.audit_trail_service, container.token_service, scope)
        scope[AUDIT_SCOPE_KEY] = recorder
        status_code: Optional[int] = None
        capture = False
        response_body = bytearray()

        async def receive_wrapper() -> Message:
            message = await receive()
            if message["type"] == "http.request" and recorder.resolve_action() is not None:
                recorder.buffer_request_body(message.get("body", b""))
            return message

        async def send_wrapper(message: Message) -> None:
            nonlocal status_code, capture
            if message["type"] == "http.response.start":
                status_code = message["status"]
                # Unaudited routes and static files stream through unbuffered.
                capture = recorder.resolve_action() is not None
            await send(message)
            if capture and message["type"] == "http.response.body":
                response_body.extend(message.get("body", b""))
                if not message.get("more_body", False):
                    await recorder.emit(status_code or 200, bytes(response_body))

        try:
            await self.app(scope, receive_wrapper, send_wrapper)
        finally:
            if not recorder.written:
                await recorder.finish(status_code)


def get_audit_recorder(request: Request) -> Optional[AuditRecorder]:
    return request.scope.get(AUDIT_SCOPE_KEY)


def audited(action: AuditAction) -> Callable[[Request], Optional[AuditRecorder]]:
    """Route dependency that labels the current request for the audit trail."""

    def _label(request: Request) -> Optional[AuditRecorder]:
        recorder = get_audit_recorder(request)
        if recorder is not None:
            recorder.label(action)
        return recorder

    _label.audit_action = action  # type: ignore[attr-defined]
    return _label
