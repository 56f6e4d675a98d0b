"""
Sync Client for RELMAP.

Talks to the persistence API and keeps the GraphStore in step with it.

Features:
- Resolve which API base actually answers, from an ordered candidate list,
  and stick to the one that worked last
- Attach the shared bearer credential to every request
- Deduplicate map loads: a load in flight is shared, never repeated
- Poll for external changes without piling up requests
- Fall back to read-only demo content when nothing real has loaded yet

All session state (preferred base, "has loaded real data") lives on the
instance; create one client per session and ``close()`` it on shutdown.
"""

import asyncio
import logging
import re
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Callable, Dict, Any, List
from urllib.parse import quote

import httpx

from relmap.demo import DEMO_GRAPH
from relmap.errors import (
    RequestFailedError, ValidationError, ConflictError, NotFoundError,
    TransientNetworkError, FatalError, RelmapError,
)
from relmap.graph_store import GraphStore
from relmap.models import Node, Link

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_POLL_SECONDS = 8.0

_SCHEME_RE = re.compile(r'^[a-z][a-z0-9+.-]*://', re.IGNORECASE)
_LOCALHOST_RE = re.compile(r'^localhost(?::|/|\?|#|$)')
_IP_RE = re.compile(r'^\d+\.\d+\.\d+\.\d+(?::\d+)?(?:/|$)')
_PORT_RE = re.compile(r':\d+')
_API_SUFFIX_RE = re.compile(r'/api$', re.IGNORECASE)


# --- URL helpers ---

def sanitize_base(value: Any) -> str:
    """
    Normalize a configured API base.

    - absolute URLs lose trailing slashes
    - paths ("/api", "api") become "/api"
    - bare hosts get a scheme: http for localhost, IPs and explicit ports,
      https otherwise
    - anything empty becomes "" (relative to the current origin)
    """
    if not isinstance(value, str):
        return ""
    trimmed = value.strip()
    if not trimmed:
        return ""
    if _SCHEME_RE.match(trimmed) or trimmed.startswith("//"):
        return trimmed.rstrip("/")
    if trimmed.startswith("/"):
        return ("/" + trimmed.lstrip("/")).rstrip("/")

    lower = trimmed.lower()
    is_localhost = bool(_LOCALHOST_RE.match(lower))
    is_ip = bool(_IP_RE.match(trimmed))
    looks_like_host = "." in trimmed or ":" in trimmed or is_localhost or is_ip
    if not looks_like_host:
        return ("/" + trimmed.lstrip("/")).rstrip("/")

    scheme = "http" if (is_localhost or is_ip or _PORT_RE.search(trimmed)) else "https"
    return f"{scheme}://{trimmed}".rstrip("/")


def normalize_api_path(path: Any) -> str:
    if path is None:
        return ""
    trimmed = str(path).strip()
    if not trimmed:
        return ""
    stripped = trimmed.lstrip("/")
    return f"/{stripped}" if stripped else "/"


def build_url_for_base(base: str, path: str) -> str:
    normalized = normalize_api_path(path)
    if not base:
        return normalized or "/"
    if not normalized or normalized == "/":
        return f"{base}/"
    return f"{base}{normalized}"


def build_candidate_bases(api_url: Optional[str], origin: Optional[str] = None) -> List[str]:
    """
    Ordered, de-duplicated list of bases to try.

    The configured base first, then the same base under ``/api``, then the
    page origin, then the relative base as a last resort.
    """
    bases: List[str] = []

    def add(base: str) -> None:
        if base not in bases:
            bases.append(base)

    primary = sanitize_base(api_url)
    if primary:
        add(primary)
        if not _API_SUFFIX_RE.search(primary):
            add(sanitize_base(f"{primary}/api"))
    if origin:
        sanitized_origin = sanitize_base(origin)
        if sanitized_origin:
            add(sanitized_origin)
    add("")
    return bases


# --- State ---

class LoadOutcome(str, Enum):
    LOADED = "loaded"
    FALLBACK = "fallback"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class SyncState:
    """Tracks the sync state of the session."""
    is_connected: bool = False
    last_success_time: Optional[float] = None
    error_count: int = 0
    last_error: str = ""


class SyncClient:
    """
    Resolves the API base, sends requests and reconciles the GraphStore.

    Event types for ``on``:
    - 'loaded': a real snapshot was applied (data: {'first': bool, 'replaced_fallback': bool})
    - 'fallback': demo content was applied because the API is unreachable
    - 'error': a load failed (data: {'message': str})
    - 'connection_change': reachability flipped (data: {'connected': bool})
    """

    def __init__(
        self,
        store: GraphStore,
        api_url: Optional[str] = None,
        api_key: Optional[str] = None,
        origin: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        demo_data: Optional[Dict[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize SyncClient.

        Args:
            store: The GraphStore this client hydrates and reconciles
            api_url: Configured API base (may be empty)
            api_key: Shared bearer credential
            origin: Origin of the page, used as a candidate and to resolve
                    the relative base
            timeout: Per-request timeout in seconds
            demo_data: Fallback snapshot, defaults to the built-in demo
            transport: Optional httpx transport (tests use MockTransport)
        """
        self._store = store
        self._api_key = api_key or ""
        self._candidates = build_candidate_bases(api_url, origin)
        self._preferred = self._candidates[0] if self._candidates else ""
        self._demo = demo_data if demo_data is not None else DEMO_GRAPH

        client_kwargs: Dict[str, Any] = {"timeout": timeout}
        if origin:
            client_kwargs["base_url"] = sanitize_base(origin)
        if transport is not None:
            client_kwargs["transport"] = transport
        self._client = httpx.AsyncClient(**client_kwargs)

        self._state = SyncState()
        self._has_loaded_remote = False
        self._using_fallback = False
        self._inflight: Optional[asyncio.Task] = None
        self._closed = False

        self._callbacks: Dict[str, List[Callable]] = {
            'loaded': [],
            'fallback': [],
            'error': [],
            'connection_change': [],
        }

    # --- Introspection ---

    @property
    def candidate_bases(self) -> List[str]:
        return list(self._candidates)

    @property
    def preferred_base(self) -> str:
        return self._preferred

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def has_loaded_remote(self) -> bool:
        return self._has_loaded_remote

    @property
    def is_read_only(self) -> bool:
        """True while demo content is shown instead of live data."""
        return self._using_fallback

    @property
    def is_loading(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    # --- Events ---

    def on(self, event: str, callback: Callable) -> None:
        if event in self._callbacks:
            self._callbacks[event].append(callback)

    def off(self, event: str, callback: Callable) -> None:
        if event in self._callbacks and callback in self._callbacks[event]:
            self._callbacks[event].remove(callback)

    def _emit(self, event: str, data: Any = None) -> None:
        for callback in self._callbacks.get(event, []):
            try:
                result = callback(data)
                if asyncio.iscoroutine(result):
                    asyncio.ensure_future(result)
            except Exception as e:
                logger.error(f"Error in callback for {event}: {e}")

    def _set_connected(self, connected: bool) -> None:
        if self._state.is_connected != connected:
            self._state.is_connected = connected
            self._emit('connection_change', {'connected': connected})

    # --- Transport ---

    def attempt_order(self) -> List[str]:
        order = [self._preferred]
        for base in self._candidates:
            if base not in order:
                order.append(base)
        return order

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def request(self, method: str, path: str, json_body: Any = None) -> httpx.Response:
        """
        Send one logical request, trying each candidate base in order.

        The first 2xx answer wins and its base becomes the preferred one.
        Non-2xx answers and transport errors move on to the next base.
        Cancellation propagates immediately.

        Raises:
            RequestFailedError: every candidate failed
        """
        method = method.upper()
        attempts: List[tuple] = []
        for base in self.attempt_order():
            url = build_url_for_base(base, path)
            kwargs: Dict[str, Any] = {"headers": self._headers()}
            if json_body is not None and method not in ("GET", "HEAD"):
                kwargs["json"] = json_body
            try:
                response = await self._client.request(method, url, **kwargs)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.debug(f"{method} {url} failed: {e}")
                attempts.append((url, None, e))
                continue

            if not response.is_success:
                error = httpx.HTTPStatusError(
                    f"Request failed with status {response.status_code}",
                    request=response.request,
                    response=response,
                )
                attempts.append((url, response.status_code, error))
                continue

            if base != self._preferred:
                self._preferred = base
                logger.info(f"Using API base \"{base or '<relative origin>'}\"")
            return response

        raise RequestFailedError(path, attempts)

    # --- Map loading ---

    async def fetch_map(self) -> Dict[str, Any]:
        """GET /map without touching the store."""
        response = await self.request("GET", "/map")
        payload = response.json()
        if not isinstance(payload, dict):
            raise ValidationError("Map payload must be a JSON object")
        return payload

    async def load_map(self, allow_fallback: bool = False, supersede: bool = False) -> LoadOutcome:
        """
        Fetch ``/map`` and reconcile the store.

        A load already in flight is shared rather than duplicated, unless
        ``supersede`` is set: then it is cancelled and a fresh fetch replaces
        it. Refreshes after a mutation supersede, so a snapshot taken before
        the write never lands after it.
        """
        current = self._inflight
        if current is not None and not current.done():
            if not supersede:
                return await self._await_load(current)
            logger.debug("Superseding in-flight map load")
            current.cancel()

        task = asyncio.ensure_future(self._load(allow_fallback))
        self._inflight = task
        task.add_done_callback(self._clear_inflight)
        return await self._await_load(task)

    async def _await_load(self, task: asyncio.Task) -> LoadOutcome:
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            # Superseded or closed; the caller itself was not cancelled
            if task.cancelled():
                return LoadOutcome.SKIPPED
            raise

    def _clear_inflight(self, task: asyncio.Task) -> None:
        if self._inflight is task:
            self._inflight = None

    async def initial_load(self) -> LoadOutcome:
        return await self.load_map(allow_fallback=True)

    async def poll(self) -> LoadOutcome:
        """Timer tick. A no-op while a load is outstanding."""
        if self._closed or self.is_loading:
            return LoadOutcome.SKIPPED
        return await self.load_map(allow_fallback=False)

    async def _load(self, allow_fallback: bool) -> LoadOutcome:
        try:
            payload = await self.fetch_map()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Failed to load map: {e}")
            self._state.error_count += 1
            self._state.last_error = str(e)
            self._set_connected(False)
            self._emit('error', {'message': str(e)})
            if allow_fallback and not self._has_loaded_remote:
                self._using_fallback = True
                self._store.load(self._demo)
                logger.warning("Unable to reach the live API. Showing demo data only.")
                self._emit('fallback', {'message': str(e)})
                return LoadOutcome.FALLBACK
            return LoadOutcome.FAILED

        first = not self._has_loaded_remote
        replaced_fallback = self._using_fallback
        self._using_fallback = False
        if first:
            self._store.load(payload)
        else:
            self._store.reconcile(payload)
        self._has_loaded_remote = True
        self._state.last_success_time = time.time()
        self._state.last_error = ""
        self._set_connected(True)
        self._emit('loaded', {'first': first, 'replaced_fallback': replaced_fallback})
        return LoadOutcome.LOADED

    # --- Mutations ---

    async def create_node(self, node: Node) -> Dict[str, Any]:
        return await self._send("POST", "/nodes", node.to_dict(), "node", node.id)

    async def create_link(self, link: Link) -> Dict[str, Any]:
        return await self._send("POST", "/links", link.to_dict(), "link", link.id)

    async def update_note(self, node_id: str, description: str) -> Dict[str, Any]:
        path = f"/nodes/{quote(node_id, safe='')}"
        return await self._send("PATCH", path, {"description": description}, "node", node_id)

    async def _send(self, method: str, path: str, body: Dict[str, Any],
                    entity: str, entity_id: str) -> Dict[str, Any]:
        try:
            response = await self.request(method, path, json_body=body)
        except RequestFailedError as e:
            raise classify_failure(e, entity, entity_id) from e
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    # --- Lifecycle ---

    async def close(self) -> None:
        """Cancel the load in flight and release the HTTP client."""
        self._closed = True
        task = self._inflight
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self._client.aclose()

    async def __aenter__(self) -> "SyncClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()


def classify_failure(error: RequestFailedError, entity: str, entity_id: str) -> RelmapError:
    """Map an aggregated request failure onto the error taxonomy."""
    status = error.status
    if status is None:
        return TransientNetworkError(f"API unreachable: {error.last_error}", path=error.path)
    if status == 400:
        return ValidationError(f"Invalid {entity}: {entity_id}", path=error.path)
    if status == 404:
        return NotFoundError(entity, entity_id)
    if status == 409:
        return ConflictError(entity, entity_id)
    return FatalError(f"Request failed with status {status}", path=error.path, status=status)
