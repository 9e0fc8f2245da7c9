"""
shared/clients/backend.py
HTTP client for the backend REST API that owns every record the console
manages (orders, slots, astrologers, pujas, admins, sidebar routes).

Every call returns an ApiResult instead of raising:
- transport errors and 5xx responses count against a circuit breaker
- non-2xx responses and {"success": false} envelopes become failures
- payloads are validated against the expected pydantic type before use

Routers call result.unwrap() which raises UpstreamError; main.py turns
that into a JSON error response.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Generic, Mapping, Optional, TypeVar

import httpx
from pybreaker import CircuitBreaker, CircuitBreakerError
from pydantic import TypeAdapter, ValidationError

from config.settings import settings

if TYPE_CHECKING:
    from shared.middleware.auth import UpstreamCredentials

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Query values meaning "no filter"
_EMPTY_FILTER_VALUES = (None, "", "all")


# ── Result Type ───────────────────────────────────────────────

class ErrorKind(str, Enum):
    TRANSPORT = "transport"        # connection refused, timeout, DNS
    UNAVAILABLE = "unavailable"    # circuit breaker open
    HTTP = "http"                  # non-2xx status
    REJECTED = "rejected"          # 2xx with success: false
    INVALID = "invalid"            # payload failed schema validation


class UpstreamError(Exception):
    """Raised when a failed ApiResult is unwrapped inside a route."""

    def __init__(self, message: str, status_code: int = 502, kind: Optional[ErrorKind] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.kind = kind


@dataclass
class ApiResult(Generic[T]):
    ok: bool
    data: Optional[T] = None
    error: Optional[str] = None
    kind: Optional[ErrorKind] = None
    status_code: int = 200

    @classmethod
    def success(cls, data: T, status_code: int = 200) -> "ApiResult[T]":
        return cls(ok=True, data=data, status_code=status_code)

    @classmethod
    def failure(cls, kind: ErrorKind, error: str, status_code: int) -> "ApiResult[T]":
        return cls(ok=False, error=error, kind=kind, status_code=status_code)

    def unwrap(self) -> T:
        if not self.ok:
            raise UpstreamError(self.error or "Backend request failed", self.status_code, self.kind)
        return self.data

    def unwrap_or(self, default: T) -> T:
        return self.data if self.ok else default


class _CountedFailure(Exception):
    """Carries a 5xx result through the breaker so it counts as a failure."""

    def __init__(self, result: ApiResult):
        super().__init__(result.error)
        self.result = result


# ── Helpers ───────────────────────────────────────────────────

def build_query(params: Mapping[str, Any]) -> dict[str, str]:
    """Drop unset filters (None, "" and the "all" sentinel) and stringify the rest."""
    query = {}
    for key, value in params.items():
        if value in _EMPTY_FILTER_VALUES:
            continue
        if isinstance(value, bool):
            query[key] = "true" if value else "false"
        else:
            query[key] = str(value)
    return query


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"Backend returned {response.status_code}"
    if isinstance(body, dict):
        return body.get("message") or body.get("error") or f"Backend returned {response.status_code}"
    return f"Backend returned {response.status_code}"


# ── Client ────────────────────────────────────────────────────

def build_breaker(
    fail_max: int = settings.BACKEND_BREAKER_FAIL_MAX,
    reset_timeout: int = settings.BACKEND_BREAKER_RESET_TIMEOUT,
    name: str = "backend",
) -> CircuitBreaker:
    """
    Breaker for backend calls. A cancelled call (superseded fetch, client
    disconnect) says nothing about backend health and is not counted.
    """
    return CircuitBreaker(
        fail_max=fail_max,
        reset_timeout=reset_timeout,
        exclude=[asyncio.CancelledError],
        name=name,
    )


class BackendClient:
    """Thin async wrapper around httpx with result tagging and a circuit breaker."""

    def __init__(
        self,
        base_url: str = settings.BACKEND_API_URL,
        timeout: float = settings.BACKEND_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        breaker: Optional[CircuitBreaker] = None,
    ):
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)
        self.breaker = breaker or build_breaker()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request(
        self,
        method: str,
        path: str,
        credentials: Optional["UpstreamCredentials"] = None,
        *,
        params: Optional[Mapping[str, Any]] = None,
        json: Any = None,
        files: Any = None,
        expect: Any = None,
        data_key: Optional[str] = None,
    ) -> ApiResult:
        """
        Issue one request. Never retries.

        expect:   pydantic type the JSON body is validated against.
        data_key: validate body[data_key] instead of the body when present
                  (the backend is inconsistent about wrapping in "data").
        """
        headers = credentials.as_headers() if credentials else {}
        query = build_query(params) if params else None

        try:
            with self.breaker.calling():
                response = await self._client.request(
                    method,
                    path,
                    params=query,
                    json=json,
                    files=files,
                    headers=headers,
                )
                if response.status_code >= 500:
                    raise _CountedFailure(ApiResult.failure(
                        ErrorKind.HTTP, _error_message(response), 502,
                    ))
        except CircuitBreakerError:
            logger.warning(f"Backend circuit open, skipped {method} {path}")
            return ApiResult.failure(
                ErrorKind.UNAVAILABLE, "Backend temporarily unavailable. Please try again later.", 503,
            )
        except _CountedFailure as exc:
            logger.warning(f"Backend {method} {path} failed: {exc.result.error}")
            return exc.result
        except httpx.HTTPError as exc:
            logger.warning(f"Backend {method} {path} unreachable: {exc!r}")
            return ApiResult.failure(ErrorKind.TRANSPORT, "Backend unreachable", 502)

        return self._interpret(method, path, response, expect, data_key)

    def _interpret(
        self,
        method: str,
        path: str,
        response: httpx.Response,
        expect: Any,
        data_key: Optional[str],
    ) -> ApiResult:
        if not response.is_success:
            message = _error_message(response)
            logger.warning(f"Backend {method} {path} returned {response.status_code}: {message}")
            return ApiResult.failure(ErrorKind.HTTP, message, response.status_code)

        try:
            body = response.json() if response.content else {}
        except ValueError:
            logger.warning(f"Backend {method} {path} returned a non-JSON body")
            return ApiResult.failure(ErrorKind.INVALID, "Unexpected response from backend", 502)

        if isinstance(body, dict) and body.get("success") is False:
            message = body.get("message") or body.get("error") or "Backend rejected the request"
            logger.info(f"Backend {method} {path} rejected: {message}")
            return ApiResult.failure(ErrorKind.REJECTED, message, 400)

        payload = body
        if data_key and isinstance(body, dict) and body.get(data_key):
            payload = body[data_key]

        if expect is None:
            return ApiResult.success(payload, response.status_code)

        try:
            parsed = TypeAdapter(expect).validate_python(payload)
        except ValidationError as exc:
            logger.warning(
                f"Backend {method} {path} payload failed validation: {exc.error_count()} error(s)"
            )
            return ApiResult.failure(ErrorKind.INVALID, "Unexpected response from backend", 502)
        return ApiResult.success(parsed, response.status_code)

    # ── Verb shortcuts ────────────────────────────────────────
    async def get(self, path: str, credentials=None, **kwargs) -> ApiResult:
        return await self.request("GET", path, credentials, **kwargs)

    async def post(self, path: str, credentials=None, **kwargs) -> ApiResult:
        return await self.request("POST", path, credentials, **kwargs)

    async def put(self, path: str, credentials=None, **kwargs) -> ApiResult:
        return await self.request("PUT", path, credentials, **kwargs)

    async def patch(self, path: str, credentials=None, **kwargs) -> ApiResult:
        return await self.request("PATCH", path, credentials, **kwargs)

    async def delete(self, path: str, credentials=None, **kwargs) -> ApiResult:
        return await self.request("DELETE", path, credentials, **kwargs)


# ── Lifecycle (initialized on startup) ────────────────────────
backend_client: Optional[BackendClient] = None


async def init_backend() -> None:
    global backend_client
    backend_client = BackendClient()


async def close_backend() -> None:
    global backend_client
    if backend_client:
        await backend_client.aclose()
        backend_client = None


def get_backend() -> BackendClient:
    """FastAPI dependency to get the backend client."""
    if not backend_client:
        raise RuntimeError("Backend client not initialized. Call init_backend() first.")
    return backend_client


def multipart_fields(fields: Mapping[str, Any]) -> list[tuple[str, tuple[None, str]]]:
    """
    Encode plain form fields as multipart parts (the backend parses these
    routes with a multipart parser). List values repeat the key.
    """
    parts = []
    for key, value in fields.items():
        values = value if isinstance(value, (list, tuple)) else [value]
        for item in values:
            if item is None:
                continue
            if isinstance(item, bool):
                item = "true" if item else "false"
            parts.append((key, (None, str(item))))
    return parts
