import logging
from typing import Dict, List, Optional

import httpx

from app.proxy.models import ContentEncoding, FetchResult, HeaderValue, ProxyRequestSpec
from app.vars import PROXY_TIMEOUT

logger = logging.getLogger("uvicorn.error")


def collect_headers(headers: httpx.Headers) -> Dict[str, HeaderValue]:
    """Lowercased header map; repeated headers (set-cookie) become lists."""
    collected: Dict[str, HeaderValue] = {}
    for name, value in headers.multi_items():
        name = name.lower()
        if name in collected:
            existing = collected[name]
            if isinstance(existing, list):
                existing.append(value)
            else:
                collected[name] = [existing, value]
        else:
            collected[name] = value
    return collected


async def fetch_direct(
    spec: ProxyRequestSpec,
    content: Optional[bytes] = None,
    timeout: float = PROXY_TIMEOUT,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FetchResult:
    """
    Single upstream attempt. The body is read undecoded so the caller
    controls decompression; httpx errors propagate.
    """
    async with httpx.AsyncClient(
        verify=False,
        timeout=httpx.Timeout(timeout),
        follow_redirects=True,
        transport=transport,
    ) as client:
        request = client.build_request(
            spec.method,
            spec.request_url,
            headers=spec.forwarded_headers,
            content=content or None,
        )
        response = await client.send(request, stream=True)
        try:
            chunks: List[bytes] = []
            async for chunk in response.aiter_raw():
                chunks.append(chunk)
        finally:
            await response.aclose()

    headers = collect_headers(response.headers)
    encoding = ContentEncoding.parse(response.headers.get("content-encoding"))
    logger.debug(
        f"[Upstream] {spec.method} {spec.request_url} -> {response.status_code} "
        f"({encoding.value}, {sum(len(c) for c in chunks)} bytes)"
    )
    return FetchResult(
        status_code=response.status_code,
        headers=headers,
        raw_body=b"".join(chunks),
        content_encoding=encoding,
        url=str(response.url),
    )
