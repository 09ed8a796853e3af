from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Literal

import httpx


HttpMethod = Literal["GET", "POST", "PUT", "PATCH", "DELETE"]


@dataclass(frozen=True)
class HttpResult:
    ok: bool
    status_code: int | None
    detail: dict[str, Any]

    error_code: str | None = None
    error_message: str | None = None
    retryable: bool = False

    elapsed_ms: int | None = None


def _is_json_response(resp: httpx.Response) -> bool:
    ct = (resp.headers.get("content-type") or "").lower()
    return "application/json" in ct or ct.endswith("+json")


def _cap_text(s: str, *, max_chars: int) -> str:
    if len(s) <= max_chars:
        return s
    return s[:max_chars] + f"...(truncated, {len(s)} chars)"


class TransportHttpClient:
    """
    HTTP client for the messaging transport.

    - One AsyncClient per instance (connection pooling).
    - No retries here; the outbox reschedules failed deliveries.
    - Returns a structured result with retryable classification.
    """

    def __init__(
        self,
        *,
        timeout_seconds: float = 10.0,
        max_response_body_chars: int = 5_000,
        default_headers: Mapping[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._max_body = max_response_body_chars
        self._default_headers = dict(default_headers or {})
        self._client = httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds), transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request_json(
        self,
        *,
        method: HttpMethod,
        url: str,
        headers: Mapping[str, str] | None = None,
        json_body: dict[str, Any] | None = None,
        request_id: str | None = None,
    ) -> HttpResult:
        h = dict(self._default_headers)
        if headers:
            h.update(dict(headers))
        if request_id and "X-Request-Id" not in h:
            h["X-Request-Id"] = request_id

        try:
            resp = await self._client.request(method=method, url=url, headers=h, json=json_body)
        except httpx.TimeoutException as e:
            return HttpResult(
                ok=False,
                status_code=None,
                detail={"error": "timeout"},
                error_code="TIMEOUT",
                error_message=str(e),
                retryable=True,
            )
        except httpx.RequestError as e:
            # DNS errors, connection refused, TLS, etc.
            return HttpResult(
                ok=False,
                status_code=None,
                detail={"error": "request_error"},
                error_code="REQUEST_ERROR",
                error_message=str(e),
                retryable=True,
            )

        detail: dict[str, Any]
        if _is_json_response(resp):
            try:
                parsed = resp.json()
                detail = parsed if isinstance(parsed, dict) else {"data": parsed}
            except ValueError:
                detail = {"raw": _cap_text(resp.text, max_chars=self._max_body)}
        else:
            detail = {"raw": _cap_text(resp.text, max_chars=self._max_body)}

        elapsed_ms = int(resp.elapsed.total_seconds() * 1000) if resp.elapsed else None

        if 200 <= resp.status_code < 300:
            return HttpResult(ok=True, status_code=resp.status_code, detail=detail, elapsed_ms=elapsed_ms)

        return HttpResult(
            ok=False,
            status_code=resp.status_code,
            detail=detail,
            error_code=f"HTTP_{resp.status_code}",
            error_message=f"HTTP {resp.status_code}",
            retryable=resp.status_code in (408, 425, 429, 500, 502, 503, 504),
            elapsed_ms=elapsed_ms,
        )

    async def post_json(self, *, url: str, json_body: dict[str, Any], request_id: str | None = None) -> HttpResult:
        return await self.request_json(method="POST", url=url, json_body=json_body, request_id=request_id)
