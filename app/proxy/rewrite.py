"""
Regex-based URL rewriting for fetched HTML.

Every relative reference found in the document (HTML attributes, CSS url()
and @import, SVG references, srcset candidates, meta refresh targets) is
resolved against the page URL and replaced with a proxied URL of the form
``<proxy origin><proxy path>?url=<percent-encoded absolute URL>``.

All rules share ``is_skipped``; a proxied URL is absolute, so running the
engine over its own output changes nothing.
"""

import html as html_lib
import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple
from urllib.parse import quote, urljoin

from app.proxy.models import RewriteContext

logger = logging.getLogger("uvicorn.error")

# encodeURIComponent's unreserved set without quote and parentheses, so the
# result is safe in quoted attributes and unquoted CSS url()
_URL_COMPONENT_SAFE = "-_.!~*"

_SKIP_PATTERN = re.compile(
    r"^(?:[a-z][a-z0-9+.-]*:|//|#)", re.IGNORECASE
)

HEAD_PATTERN = re.compile(r"<head(\s[^>]*)?>", re.IGNORECASE)
_BASE_PATTERN = re.compile(r"<base\s", re.IGNORECASE)

SRCSET_PATTERN = re.compile(
    r"\b(?:imagesrcset|srcset)\s*=\s*(['\"])([^'\"]*)\1", re.IGNORECASE
)
ATTR_PATTERN = re.compile(
    r"\b(?:src|href|action|data|poster|formaction|background|code|archive|manifest)"
    r"\s*=\s*(['\"])([^'\"]+)\1",
    re.IGNORECASE,
)
CSS_URL_PATTERN = re.compile(r"\burl\(\s*(['\"]?)([^'\")]+)\1\s*\)", re.IGNORECASE)
SVG_PATTERN = re.compile(
    r"(?:xlink:href|href)\s*=\s*(['\"])([^'\"]+)\1|\burl\(\s*(#[^'\")]+)\s*\)",
    re.IGNORECASE,
)
# Lazy prefix: the first url= is the target, a proxied target carries a second one
META_REFRESH_PATTERN = re.compile(
    r"<meta[^>]+http-equiv=[\"']refresh[\"'][^>]+content=[\"'][^\"']*?url=([^'\">]+)[\"'][^>]*>",
    re.IGNORECASE,
)
CSS_IMPORT_PATTERN = re.compile(
    r"@import\s+(?:url\(\s*)?(['\"]?)([^'\"\s);]+)\1", re.IGNORECASE
)


def is_skipped(token: Optional[str]) -> bool:
    """True for tokens that must never be rewritten: empty, absolute, special or fragment."""
    if not token or not token.strip():
        return True
    return bool(_SKIP_PATTERN.match(token.strip()))


def clean_base_url(base_url: str) -> str:
    return base_url.split("#", 1)[0].split("?", 1)[0]


def proxied_url(absolute_url: str, context: RewriteContext) -> str:
    return f"{context.endpoint}?url={quote(absolute_url, safe=_URL_COMPONENT_SAFE)}"


def resolve_to_proxied(token: str, context: RewriteContext) -> str:
    """Resolve a relative token against the page and wrap it; the token itself on failure."""
    try:
        resolved = urljoin(clean_base_url(context.base_url), token.strip())
    except ValueError:
        return token
    if not resolved:
        return token
    return proxied_url(resolved, context)


@dataclass(frozen=True)
class RewriteRule:
    """One reference syntax: the pattern and the groups that may hold the URL token."""

    name: str
    pattern: re.Pattern
    token_groups: Tuple[int, ...]
    # Attribute values are HTML-escaped, CSS tokens are not
    unescape: bool = True

    def extract(self, match: re.Match) -> Tuple[Optional[int], Optional[str]]:
        for group in self.token_groups:
            value = match.group(group)
            if value is not None:
                return group, value
        return None, None

    def apply(self, text: str, context: RewriteContext) -> str:
        def _replace(match: re.Match) -> str:
            group, token = self.extract(match)
            if group is None:
                return match.group(0)
            source = html_lib.unescape(token) if self.unescape else token
            if is_skipped(source):
                return match.group(0)
            replacement = resolve_to_proxied(source, context)
            if replacement == source:
                return match.group(0)
            return _splice(match, group, replacement)

        return self.pattern.sub(_replace, text)


def _splice(match: re.Match, group: int, replacement: str) -> str:
    whole = match.group(0)
    start = match.start(group) - match.start(0)
    end = match.end(group) - match.start(0)
    return whole[:start] + replacement + whole[end:]


def split_srcset(value: str) -> List[Tuple[str, str]]:
    """
    Split a srcset value into (url, descriptor) candidates.

    URLs run until whitespace, so commas inside data: URLs survive; a URL
    immediately followed by a comma has no descriptor.
    """
    candidates = []
    pos = 0
    length = len(value)
    while pos < length:
        while pos < length and (value[pos].isspace() or value[pos] == ","):
            pos += 1
        if pos >= length:
            break
        start = pos
        while pos < length and not value[pos].isspace():
            pos += 1
        url = value[start:pos]
        descriptor = ""
        if url.endswith(","):
            url = url.rstrip(",")
        else:
            descriptor_start = pos
            while pos < length and value[pos] != ",":
                pos += 1
            descriptor = value[descriptor_start:pos].strip()
            pos += 1
        candidates.append((url, descriptor))
    return candidates


def rewrite_srcset_value(value: str, context: RewriteContext) -> str:
    rewritten = []
    for url, descriptor in split_srcset(value):
        source = html_lib.unescape(url)
        if not is_skipped(source):
            url = resolve_to_proxied(source, context)
        rewritten.append(f"{url} {descriptor}" if descriptor else url)
    return ", ".join(rewritten)


def _apply_srcset(text: str, context: RewriteContext) -> str:
    def _replace(match: re.Match) -> str:
        value = match.group(2)
        candidates = split_srcset(value)
        if all(is_skipped(html_lib.unescape(url)) for url, _ in candidates):
            return match.group(0)
        return _splice(match, 2, rewrite_srcset_value(value, context))

    return SRCSET_PATTERN.sub(_replace, text)


RULES = (
    RewriteRule("attribute", ATTR_PATTERN, (2,)),
    RewriteRule("css-url", CSS_URL_PATTERN, (2,), unescape=False),
    RewriteRule("svg", SVG_PATTERN, (2, 3)),
    RewriteRule("meta-refresh", META_REFRESH_PATTERN, (1,)),
    RewriteRule("css-import", CSS_IMPORT_PATTERN, (2,), unescape=False),
)


def inject_base(html: str, base_url: str) -> str:
    if _BASE_PATTERN.search(html):
        return html
    tag = f'<base href="{html_lib.escape(clean_base_url(base_url), quote=True)}">'
    return HEAD_PATTERN.sub(lambda m: m.group(0) + tag, html, count=1)


def _rewrite(html: str, context: RewriteContext) -> str:
    html = inject_base(html, context.base_url)
    html = _apply_srcset(html, context)
    for rule in RULES:
        html = rule.apply(html, context)
    return html


def rewrite_html(html: str, context: RewriteContext) -> str:
    """Best-effort: any failure returns the document exactly as given."""
    if not html or not isinstance(html, str) or not context.base_url:
        return html
    try:
        return _rewrite(html, context)
    except Exception as e:
        logger.warning(f"[Rewrite] Rewriting {context.base_url} failed, returning original HTML: {e}")
        return html
