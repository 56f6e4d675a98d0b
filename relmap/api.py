"""
RELMAP - Persistence API
========================

HTTP access to the shared map, backed by any PersistenceService.

    GET   /map          -> {groups, nodes, links}
    POST  /nodes        -> 201 | 400 | 409
    POST  /links        -> 201 | 400 | 409
    PATCH /nodes/{id}   -> 200 | 404
    GET   /health       -> {ok, backend, groups, nodes, links}

Every request needs ``Authorization: Bearer <key>``; anything else gets 401
before a route runs. CORS preflights are answered without a credential.
Errors are returned as ``{"error": "<message>"}``.

The app is mounted under ``/api`` by app.py, or runs on its own:

    python -m uvicorn relmap.api:create_app_from_settings --factory --port 3000
"""

import logging
import secrets
from typing import Any, Optional, Sequence

from fastapi import Body, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from relmap.errors import RelmapError
from relmap.models import parse_node, parse_link, parse_note
from relmap.storage.protocol import PersistenceService

logger = logging.getLogger(__name__)

CORS_METHODS = ["GET", "POST", "PATCH", "OPTIONS"]
CORS_HEADERS = ["Content-Type", "Authorization"]


def bearer_token(header: Optional[str]) -> Optional[str]:
    """Extract the token from ``Bearer <token>``; None when absent or another scheme."""
    if not header:
        return None
    scheme, _, token = header.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def is_authorized(header: Optional[str], api_key: str) -> bool:
    token = bearer_token(header)
    if token is None:
        return False
    return secrets.compare_digest(token.encode("utf-8"), api_key.encode("utf-8"))


def error_response(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def create_api(
    backend: PersistenceService,
    api_key: str,
    cors_origins: Sequence[str] = ("*",),
) -> FastAPI:
    """
    Build the persistence API around ``backend``.

    Args:
        backend: Storage backend every route delegates to
        api_key: Shared bearer credential
        cors_origins: Allowed origins for browser clients

    Returns:
        FastAPI application
    """
    api = FastAPI(title="RELMAP API", docs_url=None, redoc_url=None, openapi_url=None)
    api.state.backend = backend

    @api.middleware("http")
    async def require_bearer(request: Request, call_next):
        if request.method == "OPTIONS":
            return Response(status_code=200)
        if not is_authorized(request.headers.get("authorization"), api_key):
            logger.debug(f"Rejected unauthenticated {request.method} {request.url.path}")
            return error_response("Unauthorized", 401)
        return await call_next(request)

    # Added last so it wraps the auth middleware: preflights never reach it
    api.add_middleware(
        CORSMiddleware,
        allow_origins=list(cors_origins),
        allow_methods=CORS_METHODS,
        allow_headers=CORS_HEADERS,
    )

    @api.exception_handler(RelmapError)
    async def relmap_error_handler(request: Request, exc: RelmapError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return error_response(exc.message or type(exc).__name__, exc.status_code)

    @api.exception_handler(RequestValidationError)
    async def invalid_body_handler(request: Request, exc: RequestValidationError):
        return error_response("Request body must be valid JSON", 400)

    # --- Routes ---

    @api.get("/map")
    def get_map():
        return backend.get_graph()

    @api.get("/health")
    def health():
        return backend.ping()

    @api.post("/nodes", status_code=201)
    def create_node(payload: Any = Body(None)):
        node = parse_node(payload)
        backend.insert_node(node)
        return {"ok": True, "id": node.id}

    @api.post("/links", status_code=201)
    def create_link(payload: Any = Body(None)):
        link = parse_link(payload)
        backend.insert_link(link)
        return {"ok": True, "id": link.id}

    @api.patch("/nodes/{node_id}")
    def update_node(node_id: str, payload: Any = Body(None)):
        description = parse_note(payload)
        backend.update_node_note(node_id, description)
        return {"ok": True}

    return api


def create_app_from_settings() -> FastAPI:
    """Standalone entry point: backend and key from env / config.json."""
    from relmap.config import get_settings
    from relmap.storage.factory import create_backend

    settings = get_settings()
    return create_api(create_backend(settings), settings.api_key)
