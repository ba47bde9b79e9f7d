"""
Fetch a page through a FlareSolverr-compatible provider.

Used when the caller passes ``flareSolverrUrl``: the provider retrieves the
target in a real browser (solving bot-detection challenges) and returns the
rendered HTML.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from app.proxy.models import ContentEncoding, FetchResult
from app.vars import FALLBACK_MAX_TIMEOUT_MS, FALLBACK_TIMEOUT_MARGIN

logger = logging.getLogger("uvicorn.error")

INVALID_RESPONSE_ERROR = "Invalid FlareSolverr response"

# The provider's rendered HTML is already decoded text
_DROPPED_SOLUTION_HEADERS = {"content-encoding", "content-length", "content-type"}


@dataclass
class FallbackResult:
    success: bool
    html: str = ""
    cookies: List[Dict[str, Any]] = field(default_factory=list)
    user_agent: Optional[str] = None
    status: int = 200
    headers: Dict[str, str] = field(default_factory=dict)
    url: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def failure(cls, error: str) -> "FallbackResult":
        return cls(success=False, error=error)

    def to_fetch_result(self) -> FetchResult:
        headers = {
            k.lower(): str(v)
            for k, v in self.headers.items()
            if k.lower() not in _DROPPED_SOLUTION_HEADERS
        }
        headers["content-type"] = "text/html; charset=utf-8"
        return FetchResult(
            status_code=self.status or 200,
            headers=headers,
            raw_body=self.html.encode("utf-8"),
            content_encoding=ContentEncoding.NONE,
            url=self.url,
        )


def provider_timeout(max_timeout_ms: int) -> float:
    return max_timeout_ms / 1000 + FALLBACK_TIMEOUT_MARGIN


def parse_solution(payload: Any) -> FallbackResult:
    if not isinstance(payload, dict):
        return FallbackResult.failure(INVALID_RESPONSE_ERROR)
    solution = payload.get("solution")
    if not isinstance(solution, dict):
        if payload.get("message"):
            logger.warning(f"[Fallback] Provider reported: {payload.get('message')}")
        return FallbackResult.failure(INVALID_RESPONSE_ERROR)

    headers = solution.get("headers")
    cookies = solution.get("cookies")
    try:
        status = int(solution.get("status") or 200)
    except (TypeError, ValueError):
        status = 200
    return FallbackResult(
        success=True,
        html=solution.get("response") or "",
        cookies=cookies if isinstance(cookies, list) else [],
        user_agent=solution.get("userAgent"),
        status=status,
        headers=headers if isinstance(headers, dict) else {},
        url=solution.get("url"),
    )


async def fetch_via_fallback(
    provider_url: str,
    target_url: str,
    max_timeout_ms: int = FALLBACK_MAX_TIMEOUT_MS,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FallbackResult:
    """
    Ask the provider to GET ``target_url``. Never raises: transport errors,
    non-2xx answers and malformed payloads all become a failed result.
    """
    timeout = provider_timeout(max_timeout_ms)
    logger.info(f"[Fallback] Requesting {target_url} via {provider_url} (timeout {timeout}s)")
    try:
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(timeout), transport=transport
        ) as client:
            response = await client.post(
                provider_url,
                json={
                    "cmd": "request.get",
                    "url": target_url,
                    "maxTimeout": max_timeout_ms,
                },
            )
            response.raise_for_status()
            payload = response.json()
    except httpx.HTTPError as e:
        logger.error(f"[Fallback] Provider request failed for {target_url}: {e}")
        return FallbackResult.failure(str(e) or type(e).__name__)
    except ValueError as e:
        logger.error(f"[Fallback] Provider returned non-JSON body for {target_url}: {e}")
        return FallbackResult.failure(INVALID_RESPONSE_ERROR)

    result = parse_solution(payload)
    if not result.success:
        logger.error(f"[Fallback] {result.error} for {target_url}")
    return result
