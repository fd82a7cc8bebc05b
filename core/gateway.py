"""
core/gateway.py — authenticated HTTP dispatch for the journal backend.

Every REST call goes through ``RequestGateway.call``:

  • injects ``Authorization: Bearer <token>`` (callers must not set it)
  • fails fast with ``Unauthenticated`` when no token exists (no round trip)
  • 401 → ``SessionStore.clear()`` then ``Unauthenticated``
  • other non-2xx → ``HttpError(status, message)`` using the JSON error body
  • transport failure → ``backend_reachable = False`` and ``NetworkError``
  • success → ``backend_reachable = True`` (latching ``backend_confirmed``) and the parsed JSON body

Each call is attempted exactly once under an 8 s timeout; retrying is the
caller's decision (multipart uploads are not assumed idempotent).

Usage:
    async with RequestGateway(context) as gateway:
        data = await gateway.get("/api/trade-logs", params={"page": 1})
"""
from __future__ import annotations

from typing import Any, Mapping

import httpx

from core.context import ClientContext
from core.errors import HttpError, NetworkError, Unauthenticated
from logging_config import get_sync_logger


LOGGER = get_sync_logger()


class RequestGateway:
    """Single entry point for REST calls.

    Args:
        context:   Shared client context (session store + reachability flag).
        base_url:  Backend origin; defaults to ``context.config.api_base_url``.
        timeout:   Per-call timeout in seconds; defaults to the configured 8 s.
        transport: Optional httpx transport (tests pass ``httpx.MockTransport``).
    """

    def __init__(
        self,
        context: ClientContext,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.context = context
        self.base_url = (base_url or context.config.api_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else context.config.request_timeout_seconds
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout),
            transport=transport,
        )

    async def __aenter__(self) -> "RequestGateway":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------ #
    # Dispatch                                                             #
    # ------------------------------------------------------------------ #

    async def call(
        self,
        endpoint: str,
        *,
        method: str = "GET",
        params: Mapping[str, Any] | None = None,
        json: Any = None,
        files: Any = None,
        content: bytes | None = None,
        headers: Mapping[str, str] | None = None,
        authenticated: bool = True,
    ) -> Any:
        """Perform one request and return the parsed JSON body.

        Raises:
            ValueError: if the caller pre-set an Authorization header.
            Unauthenticated: no token, or the backend answered 401.
            HttpError: any other non-2xx response.
            NetworkError: DNS/connect/timeout failures.
        """
        request_headers = dict(headers or {})
        if any(key.lower() == "authorization" for key in request_headers):
            raise ValueError("Authorization header is managed by the gateway")

        token = self.context.session.get_token()
        if authenticated:
            if not token:
                LOGGER.debug("Rejecting %s %s: no session token", method, endpoint)
                raise Unauthenticated("No session token, login required")
            request_headers["Authorization"] = f"Bearer {token}"

        if files is None and content is None:
            request_headers.setdefault("Content-Type", "application/json")
        request_headers.setdefault("Accept", "application/json")

        try:
            response = await self._client.request(
                method.upper(),
                endpoint,
                params=self._clean_params(params),
                json=json,
                files=files,
                content=content,
                headers=request_headers,
            )
        except httpx.TransportError as exc:
            self.context.mark_reachable(False)
            LOGGER.warning("%s %s failed: %s", method.upper(), endpoint, exc)
            raise NetworkError(f"Cannot connect to backend: {exc or type(exc).__name__}") from exc

        if response.status_code == 401:
            if not authenticated:
                raise HttpError(401, self._error_message(response))
            # A 401 for a superseded token must not log out a newer session.
            if self.context.session.get_token() == token:
                self.context.session.clear()
            raise Unauthenticated("Session expired, login required")

        if not response.is_success:
            message = self._error_message(response)
            LOGGER.info("%s %s returned %s: %s", method.upper(), endpoint, response.status_code, message)
            raise HttpError(response.status_code, message)

        self.context.mark_reachable(True)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise HttpError(response.status_code, "Malformed JSON response") from exc

    async def get(self, endpoint: str, **kwargs: Any) -> Any:
        return await self.call(endpoint, method="GET", **kwargs)

    async def post(self, endpoint: str, json: Any = None, **kwargs: Any) -> Any:
        return await self.call(endpoint, method="POST", json=json, **kwargs)

    async def put(self, endpoint: str, json: Any = None, **kwargs: Any) -> Any:
        return await self.call(endpoint, method="PUT", json=json, **kwargs)

    async def patch(self, endpoint: str, json: Any = None, **kwargs: Any) -> Any:
        return await self.call(endpoint, method="PATCH", json=json, **kwargs)

    async def delete(self, endpoint: str, **kwargs: Any) -> Any:
        return await self.call(endpoint, method="DELETE", **kwargs)

    # ------------------------------------------------------------------ #
    # Helpers                                                              #
    # ------------------------------------------------------------------ #

    @staticmethod
    def _clean_params(params: Mapping[str, Any] | None) -> dict[str, Any] | None:
        if not params:
            return None
        cleaned: dict[str, Any] = {}
        for key, value in params.items():
            if value is None or value == "":
                continue
            if isinstance(value, bool):
                value = "true" if value else "false"
            cleaned[key] = value
        return cleaned

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        fallback = f"HTTP {response.status_code}"
        try:
            body = response.json()
        except ValueError:
            return fallback
        if isinstance(body, dict):
            message = body.get("error") or body.get("message")
            if message:
                return str(message)
        return fallback
