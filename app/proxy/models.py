from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union
from urllib.parse import quote, urlencode, urlsplit, urlunsplit

HeaderValue = Union[str, List[str]]


def _quote_component(value, safe="", encoding=None, errors=None):
    # Slashes in values are encoded too
    return quote(value, safe="", encoding=encoding, errors=errors)


class ContentEncoding(Enum):
    NONE = "none"
    GZIP = "gzip"
    DEFLATE = "deflate"
    BROTLI = "br"
    OTHER = "other"

    @classmethod
    def parse(cls, header: Optional[str]) -> "ContentEncoding":
        value = (header or "").strip().lower()
        if not value or value == "identity":
            return cls.NONE
        if value in ("gzip", "x-gzip"):
            return cls.GZIP
        if value == "deflate":
            return cls.DEFLATE
        if value == "br":
            return cls.BROTLI
        return cls.OTHER


@dataclass(frozen=True)
class ProxyRequestSpec:
    """Outbound fetch description built once from an inbound proxy request."""

    target_url: str
    method: str
    forwarded_headers: Dict[str, str]
    query_overrides: Tuple[Tuple[str, str], ...] = ()
    use_cookies: bool = False
    user_agent: str = ""
    force_clean: bool = False
    fallback_provider_url: Optional[str] = None
    # Headers the assembler sets on the client response regardless of upstream
    response_headers: Dict[str, str] = field(default_factory=dict)

    @property
    def request_url(self) -> str:
        """Target URL with the pass-through query parameters appended."""
        if not self.query_overrides:
            return self.target_url
        qs = urlencode(self.query_overrides, quote_via=_quote_component)
        parts = urlsplit(self.target_url)
        query = f"{parts.query}&{qs}" if parts.query else qs
        return urlunsplit(parts._replace(query=query))


@dataclass
class FetchResult:
    status_code: int
    headers: Dict[str, HeaderValue]
    raw_body: bytes
    content_encoding: ContentEncoding = ContentEncoding.NONE
    url: Optional[str] = None

    def header(self, name: str) -> str:
        value = self.headers.get(name.lower(), "")
        if isinstance(value, list):
            return value[0] if value else ""
        return value


@dataclass(frozen=True)
class RewriteContext:
    base_url: str
    proxy_origin: str
    proxy_path: str

    @property
    def endpoint(self) -> str:
        return f"{self.proxy_origin}{self.proxy_path}"
