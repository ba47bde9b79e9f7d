"""
Translate an inbound proxy request into a ProxyRequestSpec.

The caller passes the raw query string so the target URL is percent-decoded
exactly once, by the query parser.
"""

import logging
from typing import Any, Dict, Mapping, Optional
from urllib.parse import parse_qsl, urlparse

from app.proxy.models import ProxyRequestSpec
from app.vars import DEFAULT_USER_AGENT

logger = logging.getLogger("uvicorn.error")

TARGET_PARAM = "url"
USE_COOKIES_PARAM = "useCookies"
USER_AGENT_PARAM = "userAgent"
FORCE_CLEAN_PARAM = "forceClean"
FALLBACK_PARAM = "flareSolverrUrl"

CONTROL_PARAMS = {
    TARGET_PARAM,
    USE_COOKIES_PARAM,
    USER_AGENT_PARAM,
    FORCE_CLEAN_PARAM,
    FALLBACK_PARAM,
}

NO_CACHE_HEADERS = {
    "cache-control": "no-store, no-cache, must-revalidate, proxy-revalidate",
    "pragma": "no-cache",
    "expires": "0",
}

# Framing is recomputed by the outbound client for the forwarded body
_DROPPED_REQUEST_HEADERS = {"content-length", "transfer-encoding"}

_FALSY_VALUES = {"", "0", "false", "no", "off"}


class MissingTargetError(Exception):
    """Raised when neither the query nor the body carries a url parameter."""

    def __init__(self, message: str = "Missing ?url="):
        super().__init__(message)
        self.message = message


class InvalidTargetError(Exception):
    """Raised when the target cannot be parsed as an absolute http(s) URL."""

    def __init__(self, target: str):
        super().__init__(f"Invalid target URL: {target}")
        self.target = target


def is_truthy(value: Optional[Any]) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() not in _FALSY_VALUES


def _first(params: list, name: str) -> Optional[str]:
    for key, value in params:
        if key == name:
            return value
    return None


def _body_value(body_params: Optional[Mapping[str, Any]], name: str) -> Optional[str]:
    if not body_params:
        return None
    value = body_params.get(name)
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if value is None:
        return None
    return str(value)


def _control_value(
    params: list, body_params: Optional[Mapping[str, Any]], name: str
) -> Optional[str]:
    value = _first(params, name)
    if value is None:
        value = _body_value(body_params, name)
    return value


def _validate_target(target_url: str):
    try:
        parsed = urlparse(target_url.strip())
    except ValueError as e:
        raise InvalidTargetError(target_url) from e
    if parsed.scheme.lower() not in ("http", "https") or not parsed.netloc:
        raise InvalidTargetError(target_url)
    return parsed


def build_forwarded_headers(
    headers: Mapping[str, str], target_url: str, user_agent: str, use_cookies: bool
) -> Dict[str, str]:
    """
    Inbound headers with the identity of the proxy replaced by the target's.
    Keys are lowercased; a later duplicate overwrites an earlier one.
    """
    parsed = _validate_target(target_url)
    origin = f"{parsed.scheme}://{parsed.netloc}"

    forwarded: Dict[str, str] = {}
    for name, value in headers.items():
        name_lower = name.lower()
        if name_lower in _DROPPED_REQUEST_HEADERS:
            continue
        forwarded[name_lower] = value

    forwarded.update(
        {
            "host": parsed.netloc,
            "origin": origin,
            "referer": origin,
            "connection": "keep-alive",
            "user-agent": user_agent,
            "accept": "*/*",
            "accept-encoding": "*",
            "accept-language": "*",
            "upgrade-insecure-requests": "0",
        }
    )

    if not use_cookies:
        forwarded.pop("cookie", None)

    return forwarded


def build_request_spec(
    method: str,
    query_string: str,
    headers: Mapping[str, str],
    body_params: Optional[Mapping[str, Any]] = None,
    default_user_agent: str = DEFAULT_USER_AGENT,
) -> ProxyRequestSpec:
    params = parse_qsl(query_string or "", keep_blank_values=True)

    target_url = _control_value(params, body_params, TARGET_PARAM)
    if not target_url:
        raise MissingTargetError()
    target_url = target_url.strip()
    _validate_target(target_url)

    use_cookies = is_truthy(_control_value(params, body_params, USE_COOKIES_PARAM))
    force_clean = is_truthy(_control_value(params, body_params, FORCE_CLEAN_PARAM))
    user_agent = (
        _control_value(params, body_params, USER_AGENT_PARAM) or default_user_agent
    )
    fallback_provider_url = (
        _control_value(params, body_params, FALLBACK_PARAM) or None
    )

    query_overrides = tuple(
        (key, value) for key, value in params if key not in CONTROL_PARAMS
    )

    forwarded_headers = build_forwarded_headers(
        headers, target_url, user_agent, use_cookies
    )

    logger.debug(
        f"[Options] {method} {target_url} "
        f"(passthrough={len(query_overrides)}, cookies={use_cookies}, "
        f"forceClean={force_clean}, fallback={bool(fallback_provider_url)})"
    )

    return ProxyRequestSpec(
        target_url=target_url,
        method=method.upper(),
        forwarded_headers=forwarded_headers,
        query_overrides=query_overrides,
        use_cookies=use_cookies,
        user_agent=user_agent,
        force_clean=force_clean,
        fallback_provider_url=fallback_provider_url,
        response_headers=dict(NO_CACHE_HEADERS) if force_clean else {},
    )
