"""Starlette HTTP application exposing the console operations."""

from __future__ import annotations

import functools
import json
import logging
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from console_core import __version__
from console_core.app import AppContext
from console_core.audit.models import AuditEntry, AuditFilters
from console_core.auth.context import Principal
from console_core.auth.identity import HeaderIdentityVerifier, IdentityMiddleware, IdentityVerifier
from console_core.auth.permissions import can_access_route, get_permissions
from console_core.errors import ConsoleError, Internal, InvalidArgument
from console_core.middleware.request_log import RequestLogMiddleware

from .schemas import (
    AttachmentDeleteRequest,
    AttachmentUpdateRequest,
    AttachmentUploadRequest,
    CreateLogRequest,
    EntityLogsRequest,
    FirstUserRequest,
    PurgeRequest,
    RecordCreateRequest,
    RecordDeleteRequest,
    RecordUpdateRequest,
    SearchLogsRequest,
    SelfUpdateRequest,
    UserDeleteRequest,
    UserLogsRequest,
    UserWriteRequest,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)
Handler = Callable[[Request], Awaitable[Response]]


def error_response(exc: ConsoleError) -> JSONResponse:
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


def _endpoint(handler: Handler) -> Handler:
    """Map ConsoleError to its status; anything else becomes a 500."""

    @functools.wraps(handler)
    async def wrapper(request: Request) -> Response:
        try:
            return await handler(request)
        except ConsoleError as exc:
            return error_response(exc)
        except Exception:
            logger.exception("Unhandled error in %s", request.url.path)
            return error_response(Internal("An unexpected error occurred."))

    return wrapper


async def parse_body(request: Request, model: type[M]) -> M:
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise InvalidArgument("Request body must be valid JSON.") from None
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        details = "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or 'body'}: {err['msg']}"
            for err in exc.errors()
        )
        raise InvalidArgument(f"Invalid request: {details}") from None


def _principal(request: Request) -> Principal | None:
    return getattr(request.state, "principal", None)


def _entries(entries: list[AuditEntry]) -> JSONResponse:
    return JSONResponse({"logs": [entry.to_dict() for entry in entries]})


def _build_routes(context: AppContext) -> list[Route]:
    audit = context.audit
    users = context.users
    records = context.records

    async def health(request: Request) -> Response:
        return JSONResponse({"status": "healthy", "version": __version__})

    @_endpoint
    async def entity_logs(request: Request) -> Response:
        body = await parse_body(request, EntityLogsRequest)
        entries = await audit.entity_logs(
            _principal(request), body.entity_type, body.entity_id, body.limit
        )
        return _entries(entries)

    @_endpoint
    async def user_logs(request: Request) -> Response:
        body = await parse_body(request, UserLogsRequest)
        return _entries(await audit.user_logs(_principal(request), body.actor_id, body.limit))

    @_endpoint
    async def search_logs(request: Request) -> Response:
        body = await parse_body(request, SearchLogsRequest)
        filters = AuditFilters(
            entity_type=body.entity_type,
            action=body.action,
            actor_id=body.actor_id,
            timestamp_from=body.timestamp_from,
            timestamp_to=body.timestamp_to,
            limit=body.limit,
            start_after=body.start_after,
        )
        return _entries(await audit.search(_principal(request), filters))

    @_endpoint
    async def create_log(request: Request) -> Response:
        body = await parse_body(request, CreateLogRequest)
        entry_id = await audit.create_entry(
            _principal(request),
            entity_type=body.entity_type,
            entity_id=body.entity_id,
            action=body.action,
            before=body.before_state,
            after=body.after_state,
            metadata=body.metadata,
            details=body.details,
        )
        return JSONResponse({"success": True, "id": entry_id}, status_code=201)

    @_endpoint
    async def purge_logs(request: Request) -> Response:
        body = await parse_body(request, PurgeRequest)
        deleted = await audit.purge(_principal(request), body.days_to_keep)
        return JSONResponse({"success": True, "deletedCount": deleted})

    @_endpoint
    async def list_users(request: Request) -> Response:
        return JSONResponse({"users": await users.list_users(_principal(request))})

    @_endpoint
    async def initialize_first_user(request: Request) -> Response:
        body = await parse_body(request, FirstUserRequest)
        profile = await users.initialize_first_user(_principal(request), body.data)
        return JSONResponse({"success": True, "user": profile}, status_code=201)

    @_endpoint
    async def provision_user(request: Request) -> Response:
        body = await parse_body(request, UserWriteRequest)
        profile = await users.provision_user(_principal(request), body.uid, body.data)
        return JSONResponse({"success": True, "user": profile}, status_code=201)

    @_endpoint
    async def update_user(request: Request) -> Response:
        body = await parse_body(request, UserWriteRequest)
        profile = await users.update_user(_principal(request), body.uid, body.data)
        return JSONResponse({"success": True, "user": profile})

    @_endpoint
    async def update_self(request: Request) -> Response:
        body = await parse_body(request, SelfUpdateRequest)
        profile = await users.update_self(_principal(request), body.data)
        return JSONResponse({"success": True, "user": profile})

    @_endpoint
    async def delete_user(request: Request) -> Response:
        body = await parse_body(request, UserDeleteRequest)
        await users.delete_user(_principal(request), body.uid)
        return JSONResponse({"success": True})

    @_endpoint
    async def create_record(request: Request) -> Response:
        body = await parse_body(request, RecordCreateRequest)
        record = await records.create(
            _principal(request), request.path_params["collection"], body.data, doc_id=body.id
        )
        return JSONResponse({"success": True, "record": record}, status_code=201)

    @_endpoint
    async def update_record(request: Request) -> Response:
        body = await parse_body(request, RecordUpdateRequest)
        record = await records.update(
            _principal(request), request.path_params["collection"], body.id, body.data
        )
        return JSONResponse({"success": True, "record": record})

    @_endpoint
    async def delete_record(request: Request) -> Response:
        body = await parse_body(request, RecordDeleteRequest)
        await records.delete(_principal(request), request.path_params["collection"], body.id)
        return JSONResponse({"success": True})

    @_endpoint
    async def upload_attachment(request: Request) -> Response:
        body = await parse_body(request, AttachmentUploadRequest)
        attachment = await context.attachments.create_attachment(
            _principal(request),
            entity_collection=body.entity_collection,
            entity_id=body.entity_id,
            file_name=body.file_name,
            content=body.content,
            content_type=body.content_type,
        )
        return JSONResponse({"success": True, "attachment": attachment}, status_code=201)

    @_endpoint
    async def update_attachment(request: Request) -> Response:
        body = await parse_body(request, AttachmentUpdateRequest)
        attachment = await context.attachments.update_attachment(
            _principal(request), body.id, body.data
        )
        return JSONResponse({"success": True, "attachment": attachment})

    @_endpoint
    async def delete_attachment(request: Request) -> Response:
        body = await parse_body(request, AttachmentDeleteRequest)
        result = await context.attachments.delete_attachment(
            _principal(request), body.id, body.storage_path
        )
        return JSONResponse({"success": True, **result.to_dict()})

    @_endpoint
    async def permissions(request: Request) -> Response:
        principal = context.gate.require_authenticated(_principal(request))
        roles = await context.gate.lookup_roles(principal.subject_id)
        payload: dict[str, Any] = {
            "roles": list(roles.tags) if roles is not None else [],
            "permissions": get_permissions(roles),
        }
        route = request.query_params.get("route")
        if route:
            payload["route"] = route
            payload["canAccess"] = can_access_route(roles, route)
        return JSONResponse(payload)

    return [
        Route("/health", endpoint=health, methods=["GET"]),
        Route("/api/permissions", endpoint=permissions, methods=["GET"]),
        Route("/api/audit/entity", endpoint=entity_logs, methods=["POST"]),
        Route("/api/audit/user", endpoint=user_logs, methods=["POST"]),
        Route("/api/audit/search", endpoint=search_logs, methods=["POST"]),
        Route("/api/audit/log", endpoint=create_log, methods=["POST"]),
        Route("/api/audit/purge", endpoint=purge_logs, methods=["POST"]),
        Route("/api/users/list", endpoint=list_users, methods=["POST"]),
        Route("/api/users/initialize", endpoint=initialize_first_user, methods=["POST"]),
        Route("/api/users/provision", endpoint=provision_user, methods=["POST"]),
        Route("/api/users/update", endpoint=update_user, methods=["POST"]),
        Route("/api/users/self", endpoint=update_self, methods=["POST"]),
        Route("/api/users/delete", endpoint=delete_user, methods=["POST"]),
        Route("/api/records/{collection}/create", endpoint=create_record, methods=["POST"]),
        Route("/api/records/{collection}/update", endpoint=update_record, methods=["POST"]),
        Route("/api/records/{collection}/delete", endpoint=delete_record, methods=["POST"]),
        Route("/api/attachments/upload", endpoint=upload_attachment, methods=["POST"]),
        Route("/api/attachments/update", endpoint=update_attachment, methods=["POST"]),
        Route("/api/attachments/delete", endpoint=delete_attachment, methods=["POST"]),
    ]


def create_http_app(
    context: AppContext,
    verifier: IdentityVerifier | None = None,
) -> Starlette:
    """Create the console HTTP application around an existing context."""
    settings = context.settings
    verifier = verifier or HeaderIdentityVerifier(
        settings.auth.subject_header, settings.auth.email_header
    )

    middleware = [
        Middleware(
            RequestLogMiddleware,
            enabled=settings.auth.request_log_enabled,
            trust_forwarded_headers=settings.auth.trust_forwarded_headers,
        ),
        Middleware(IdentityMiddleware, verifier=verifier),
    ]
    if settings.server.enable_cors and settings.server.allowed_origins:
        middleware.insert(
            0,
            Middleware(
                CORSMiddleware,
                allow_origins=list(settings.server.allowed_origins),
                allow_methods=["GET", "POST"],
                allow_headers=["*"],
            ),
        )

    @asynccontextmanager
    async def lifespan(app: Starlette):
        logger.info("Console core v%s started (store=%s)", __version__, settings.storage.backend)
        try:
            yield
        finally:
            context.close()
            logger.info("Console core stopped")

    return Starlette(routes=_build_routes(context), middleware=middleware, lifespan=lifespan)
