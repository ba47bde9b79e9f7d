import json
import logging
from typing import Any, Dict, Optional
from urllib.parse import parse_qsl

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import Response
from opentelemetry import trace

from app.logstore import RequestLog, get_request_log, record_event
from app.proxy.assembler import assemble_response
from app.proxy.decoding import ContentDecodingError
from app.proxy.fallback import fetch_via_fallback
from app.proxy.models import FetchResult, ProxyRequestSpec, RewriteContext
from app.proxy.options import (
    TARGET_PARAM,
    InvalidTargetError,
    MissingTargetError,
    build_request_spec,
)
from app.proxy.upstream import fetch_direct
from app.utils import redact_url
from app.utils.exception_logging import log_exception_with_details
from app.utils.traced_requests import traced_request
from app.vars import BROWSER_PATH, PROXY_PATH, PUBLIC_URL

router = APIRouter()
tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

PROXY_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]


def get_proxy_origin(request: Request) -> str:
    """Scheme and host clients use to reach this service."""
    if PUBLIC_URL:
        return PUBLIC_URL
    host = request.headers.get("host") or request.url.netloc
    return f"{request.url.scheme}://{host}"


def parse_body_params(content_type: str, body: bytes) -> Optional[Dict[str, Any]]:
    """Form or JSON object parameters of the inbound body, first value wins."""
    if not body:
        return None
    content_type = (content_type or "").lower()
    if "application/x-www-form-urlencoded" in content_type:
        params: Dict[str, Any] = {}
        for key, value in parse_qsl(
            body.decode("utf-8", errors="replace"), keep_blank_values=True
        ):
            params.setdefault(key, value)
        return params
    if "application/json" in content_type:
        try:
            payload = json.loads(body)
        except ValueError:
            return None
        return payload if isinstance(payload, dict) else None
    return None


async def _fetch_upstream(
    spec: ProxyRequestSpec, body: Optional[bytes], span, log: RequestLog
) -> FetchResult:
    if spec.fallback_provider_url:
        fallback = await fetch_via_fallback(spec.fallback_provider_url, spec.request_url)
        if not fallback.success:
            span.set_attribute("proxy.error", "fallback_failed")
            record_event(
                log,
                "fallback",
                spec.request_url,
                502,
                {"error": fallback.error, "provider": redact_url(spec.fallback_provider_url)},
            )
            raise HTTPException(status_code=502, detail=fallback.error)
        record_event(
            log,
            "fallback",
            spec.request_url,
            fallback.status,
            {"cookies": len(fallback.cookies), "userAgent": fallback.user_agent},
        )
        return fallback.to_fetch_result()

    try:
        return await fetch_direct(spec, body)
    except httpx.InvalidURL as e:
        span.set_attribute("proxy.error", "invalid_url")
        logger.warning(f"[Proxy] Invalid target {redact_url(spec.request_url)}: {e}")
        raise HTTPException(status_code=400, detail="Invalid target URL")
    except httpx.HTTPError as e:
        span.set_attribute("proxy.error", type(e).__name__)
        logger.error(f"[Proxy] Request to {redact_url(spec.request_url)} failed: {e!r}")
        record_event(log, "error", spec.request_url, 502, {"error": str(e) or type(e).__name__})
        raise HTTPException(status_code=502, detail="Proxy failed")


async def handle_proxy_request(request: Request, log: RequestLog) -> Response:
    """
    Shared pipeline of /proxy and /browser: build the outbound request, fetch
    once (directly or through the fallback provider), then decode, rewrite
    and relay the response.
    """
    body = await request.body()
    body_params = parse_body_params(request.headers.get("content-type", ""), body)

    try:
        spec = build_request_spec(
            request.method, request.url.query, request.headers, body_params
        )
    except MissingTargetError as e:
        record_event(log, "error", str(request.url), 400, {"error": e.message})
        raise HTTPException(status_code=400, detail=e.message)
    except InvalidTargetError as e:
        record_event(log, "error", e.target, 400, {"error": "invalid target"})
        raise HTTPException(status_code=400, detail="Invalid target URL")

    # A body that only carried the proxy parameters is not forwarded
    target_in_query = any(k == TARGET_PARAM for k, _ in parse_qsl(request.url.query))
    forward_body = body if body and target_in_query else None

    proxy_path = request.url.path
    with traced_request(
        tracer,
        operation="proxy_request",
        target_url=spec.request_url,
        method=spec.method,
        start_message=f"[Proxy] {spec.method} {redact_url(spec.request_url)} via {proxy_path}",
        extra_attrs={
            "proxy.path": proxy_path,
            "proxy.fallback": bool(spec.fallback_provider_url),
        },
    ) as span:
        record_event(
            log,
            "request",
            spec.request_url,
            None,
            {"method": spec.method, "path": proxy_path},
        )

        result = await _fetch_upstream(spec, forward_body, span, log)

        context = RewriteContext(
            base_url=result.url or spec.target_url,
            proxy_origin=get_proxy_origin(request),
            proxy_path=proxy_path,
        )
        try:
            response = assemble_response(result, spec, context)
        except ContentDecodingError as e:
            span.set_attribute("proxy.error", "decoding")
            log_exception_with_details(logger, "[Proxy] Processing error", e)
            record_event(log, "error", spec.request_url, 500, {"error": str(e)})
            raise HTTPException(status_code=500, detail="Proxy internal error")
        except Exception as e:
            span.set_attribute("proxy.error", str(e))
            log_exception_with_details(logger, "[Proxy]", e)
            record_event(log, "error", spec.request_url, 500, {"error": str(e)})
            raise HTTPException(status_code=500, detail="Internal Error")

        span.set_attribute("proxy.status_code", response.status_code)
        record_event(
            log,
            "response",
            spec.request_url,
            response.status_code,
            {"contentType": response.headers.get("content-type", "")},
        )
        return response


@router.api_route(PROXY_PATH, methods=PROXY_METHODS)
async def proxy(request: Request, log: RequestLog = Depends(get_request_log)):
    """Fetch ?url= on the caller's behalf and relay the (rewritten) response."""
    return await handle_proxy_request(request, log)


@router.get(BROWSER_PATH)
async def browser(request: Request, log: RequestLog = Depends(get_request_log)):
    """Same pipeline as /proxy, for top-level navigation in a browser."""
    return await handle_proxy_request(request, log)
