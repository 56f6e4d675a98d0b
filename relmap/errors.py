"""
Error taxonomy for RELMAP.

Every failure that crosses a component boundary (client store, sync client,
persistence backends, HTTP API) is expressed as one of these classes so that
callers can decide what to surface and what to retry:

- ValidationError: malformed or missing fields. Never retried.
- ConflictError: an entity with the same id already exists.
- NotFoundError: the target entity is absent.
- TransientNetworkError: timeouts, resets, unreachable hosts. Worth one retry.
- FatalError: anything else.
"""

from typing import Any, List, Optional


class RelmapError(Exception):
    """Base class for all RELMAP errors."""

    status_code = 500

    def __init__(self, message: str = "", **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context


class ValidationError(RelmapError):
    status_code = 400


class ConflictError(RelmapError):
    status_code = 409

    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity.capitalize()} already exists: {entity_id}", entity=entity, entity_id=entity_id)
        self.entity = entity
        self.entity_id = entity_id


class NotFoundError(RelmapError):
    status_code = 404

    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity.capitalize()} not found: {entity_id}", entity=entity, entity_id=entity_id)
        self.entity = entity
        self.entity_id = entity_id


class TransientNetworkError(RelmapError):
    status_code = 503


class FatalError(RelmapError):
    status_code = 500


class RequestFailedError(RelmapError):
    """
    Raised by SyncClient when every candidate API base failed.

    Carries one entry per attempt: ``(url, status_code or None, exception)``.
    ``last_error`` is the error observed on the final attempt.
    """

    def __init__(self, path: str, attempts: List[tuple]):
        self.path = path
        self.attempts = attempts
        self.last_error: Optional[BaseException] = attempts[-1][2] if attempts else None
        detail = str(self.last_error) if self.last_error else "no candidate bases"
        super().__init__(f"All API attempts failed for {path}: {detail}")

    @property
    def status(self) -> Optional[int]:
        """HTTP status of the highest-priority base that answered at all."""
        for _url, status, _exc in self.attempts:
            if status is not None:
                return status
        return None


# Exception type names raised by HTTP clients and storage drivers that mean
# "the connection is gone or slow", not "the request was wrong".
TRANSIENT_ERROR_NAMES = frozenset({
    'TimeoutError',
    'ConnectionError',
    'ConnectionResetError',
    'ConnectionAbortedError',
    'BrokenPipeError',
    'ConnectError',
    'ConnectTimeout',
    'ReadTimeout',
    'WriteTimeout',
    'PoolTimeout',
    'TimeoutException',
    'NetworkError',
    'ReadError',
    'WriteError',
    'RemoteProtocolError',
    'ServerSelectionTimeoutError',
    'NetworkTimeout',
    'AutoReconnect',
    'TransientNetworkError',
})

TRANSIENT_MESSAGE_FRAGMENTS = (
    'timed out',
    'timeout',
    'connection reset',
    'connection closed',
    'connection refused',
    'server selection',
    'topology was destroyed',
    'temporarily unavailable',
)


def is_transient_error(exc: Optional[BaseException]) -> bool:
    """
    Decide whether an error is a transient connectivity problem.

    Looks at the class names along the exception's MRO first, then falls back
    to well-known message fragments.
    """
    if exc is None:
        return False
    for cls in type(exc).__mro__:
        if cls.__name__ in TRANSIENT_ERROR_NAMES:
            return True
    msg = str(exc).lower()
    if not msg:
        return False
    return any(fragment in msg for fragment in TRANSIENT_MESSAGE_FRAGMENTS)
