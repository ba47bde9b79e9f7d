import logging
import re
from typing import Dict, Iterator, Tuple

from fastapi.responses import Response

from app.proxy.decoding import decode_body
from app.proxy.interception import inject_script, make_script
from app.proxy.models import ContentEncoding, FetchResult, HeaderValue, ProxyRequestSpec, RewriteContext
from app.proxy.rewrite import rewrite_html

logger = logging.getLogger("uvicorn.error")

# Hop-by-hop headers that should NOT be forwarded (RFC 2616)
HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
}

# Headers that would block framing or pin the client to the origin's policies
RESTRICTIVE_HEADERS = {
    "content-length",
    "content-security-policy",
    "content-security-policy-report-only",
    "x-content-security-policy",
    "x-webkit-csp",
    "x-frame-options",
    "strict-transport-security",
}

_CHARSET_PATTERN = re.compile(r"charset\s*=\s*[\"']?([\w.:-]+)", re.IGNORECASE)


def strip_headers(headers: Dict[str, HeaderValue]) -> Dict[str, HeaderValue]:
    return {
        name: value
        for name, value in headers.items()
        if name.lower() not in HOP_BY_HOP_HEADERS
        and name.lower() not in RESTRICTIVE_HEADERS
    }


def charset_of(content_type: str, default: str = "utf-8") -> str:
    match = _CHARSET_PATTERN.search(content_type or "")
    return match.group(1) if match else default


def decode_text(body: bytes, content_type: str) -> str:
    try:
        return body.decode(charset_of(content_type), errors="replace")
    except LookupError:
        return body.decode("utf-8", errors="replace")


def process_html(html: str, context: RewriteContext) -> str:
    """Rewrite references, then add the interception script so the rules never see it."""
    html = rewrite_html(html, context)
    return inject_script(html, make_script(context.proxy_origin, context.proxy_path))


def _iter_header_pairs(headers: Dict[str, HeaderValue]) -> Iterator[Tuple[str, str]]:
    for name, value in headers.items():
        if isinstance(value, list):
            for item in value:
                yield name, item
        else:
            yield name, value


def assemble_response(
    result: FetchResult, spec: ProxyRequestSpec, context: RewriteContext
) -> Response:
    """
    Build the client response from an upstream result.

    Raises ContentDecodingError when a gzip or deflate body cannot be decoded.
    """
    headers = strip_headers(result.headers)
    body = result.raw_body

    if result.content_encoding is not ContentEncoding.NONE:
        decoded = decode_body(body, result.content_encoding)
        body = decoded.body
        if decoded.decoded:
            headers.pop("content-encoding", None)
    else:
        headers.pop("content-encoding", None)

    content_type = result.header("content-type")
    encoded = "content-encoding" in headers
    if "text/html" in content_type.lower() and not encoded:
        html = process_html(decode_text(body, content_type), context)
        body = html.encode("utf-8")
        headers["content-type"] = "text/html; charset=utf-8"
        logger.debug(f"[Assembler] Rewrote HTML from {context.base_url} ({len(body)} bytes)")

    response = Response(content=body, status_code=result.status_code or 200)
    for name, value in _iter_header_pairs(headers):
        response.headers.append(name, value)
    for name, value in spec.response_headers.items():
        response.headers[name] = value
    return response
