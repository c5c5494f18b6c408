"""CORS, request-id, and audit-recording middleware."""

import json
import uuid
import time
import logging
from typing import Optional, Any

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.background import BackgroundTask
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware

from church_platform.core.audit_events import (
    SYSTEM_ERROR,
    classify_request,
    is_excluded_path,
    resolve_outcome,
)
from church_platform.core.config import settings
from church_platform.db.session import SessionLocal
from church_platform.services.audit_service import audit_service, client_ip

logger = logging.getLogger("church_platform")

# Response keys that may carry the affected resource, checked in order
RESOURCE_KEYS = ("data", "user", "role", "sermon", "blog", "event", "feedback", "log")
NAME_KEYS = ("title", "name", "full_name", "fullName")


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Add a unique request ID to every request/response."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
        request.state.request_id = request_id
        start_time = time.time()

        response: Response = await call_next(request)

        duration = round((time.time() - start_time) * 1000, 2)
        response.headers["X-Request-Id"] = request_id
        response.headers["X-Response-Time-Ms"] = str(duration)

        logger.info(
            "%s %s %s %sms",
            request.method,
            request.url.path,
            response.status_code,
            duration,
        )
        return response


def extract_resource(payload: Any) -> tuple[Optional[Any], Optional[str]]:
    """Best-effort (id, name) of the resource a JSON response describes."""
    if not isinstance(payload, dict):
        return None, None
    for key in RESOURCE_KEYS:
        item = payload.get(key)
        if isinstance(item, dict):
            resource_id = item.get("id", item.get("_id"))
            name = next((item[k] for k in NAME_KEYS if item.get(k)), None)
            return resource_id, name
    return None, None


def _path_resource_id(request: Request) -> Optional[str]:
    params = request.path_params
    if "id" in params:
        return params["id"]
    return next((v for k, v in params.items() if k.endswith("_id")), None)


def _parse_json(body: bytes) -> Any:
    try:
        return json.loads(body)
    except ValueError:
        return None


class AuditMiddleware(BaseHTTPMiddleware):
    """Writes one audit entry per classified request, after the response is sent.

    The entry is written by a background task with its own session taken
    from ``app.state.session_factory``. A failed write never changes the
    response. Handler crashes are recorded as ``system.error`` and re-raised.
    """

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if is_excluded_path(path):
            return await call_next(request)

        event = classify_request(request.method, path)
        start = time.perf_counter()

        try:
            response: Response = await call_next(request)
        except Exception as exc:
            await run_in_threadpool(
                audit_service.log_safely,
                self._session_factory(request),
                **self._entry(
                    request, SYSTEM_ERROR, "system", 500, start,
                    error={"message": str(exc), "code": type(exc).__name__},
                ),
            )
            raise

        override = getattr(request.state, "audit_override", None)
        if event is None and override is None:
            return response

        chunks: list[bytes] = []
        body_iterator = response.body_iterator

        async def capture():
            async for chunk in body_iterator:
                chunks.append(chunk)
                yield chunk

        def record():
            status_code = response.status_code
            success = 200 <= status_code < 400
            metadata = {}
            if override is not None:
                action, resource_type = override["action"], override["resource_type"]
                metadata["reason"] = override.get("reason")
            else:
                action = resolve_outcome(event.action, success)
                resource_type = event.resource_type

            resource_id = resource_name = None
            if "json" in response.headers.get("content-type", ""):
                resource_id, resource_name = extract_resource(_parse_json(b"".join(chunks)))
            if resource_id is None:
                resource_id = _path_resource_id(request)

            audit_service.log_safely(
                self._session_factory(request),
                **self._entry(
                    request, action, resource_type, status_code, start,
                    resource_id=resource_id,
                    resource_name=resource_name,
                    extra_metadata=metadata,
                ),
            )

        response.body_iterator = capture()
        response.background = BackgroundTask(record)
        return response

    @staticmethod
    def _session_factory(request: Request):
        return getattr(request.app.state, "session_factory", SessionLocal)

    @staticmethod
    def _entry(
        request: Request,
        action: str,
        resource_type: str,
        status_code: int,
        start: float,
        resource_id=None,
        resource_name=None,
        error=None,
        extra_metadata=None,
    ) -> dict:
        principal = getattr(request.state, "principal", None)
        metadata = {
            "query": dict(request.query_params),
            "params": dict(request.path_params),
            "request_id": getattr(request.state, "request_id", None),
        }
        metadata.update(extra_metadata or {})
        return {
            "action": action,
            "resource_type": resource_type,
            "method": request.method,
            "endpoint": request.url.path,
            "status_code": status_code,
            "actor_id": principal.user_id if principal else None,
            "actor_email": principal.email if principal else getattr(
                request.state, "audit_actor_email", None
            ),
            "actor_name": principal.full_name if principal else None,
            "actor_role": principal.role_name if principal else None,
            "resource_id": resource_id,
            "resource_name": resource_name,
            "ip_address": client_ip(request),
            "user_agent": request.headers.get("user-agent"),
            "metadata": metadata,
            "error": error,
            "duration_ms": int((time.perf_counter() - start) * 1000),
        }


def setup_middleware(app: FastAPI) -> None:
    """Configure all middleware for the application."""
    # Audit recorder, innermost so it sees routed path params
    app.add_middleware(AuditMiddleware)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Request ID + timing
    app.add_middleware(RequestIdMiddleware)
