import os

SERVICE_NAME = os.getenv("SERVICE_NAME", "rewrite-proxy")
BASE_PATH = os.environ.get("BASE_PATH", "").rstrip("/")
# Public-facing origin for rewritten URLs, derived from the request when empty
PUBLIC_URL = os.environ.get("PUBLIC_URL", "").rstrip("/")

HOST = os.environ.get("HOST", "0.0.0.0")
PORT = int(os.environ.get("PORT", "4006"))

PROXY_PATH = "/proxy"
BROWSER_PATH = "/browser"

PROXY_TIMEOUT = float(os.environ.get("PROXY_TIMEOUT", "20"))

FALLBACK_MAX_TIMEOUT_MS = int(os.environ.get("FALLBACK_MAX_TIMEOUT_MS", "60000"))
# Must stay above zero so the provider's own timeout fires first
FALLBACK_TIMEOUT_MARGIN = float(os.environ.get("FALLBACK_TIMEOUT_MARGIN", "5"))

DEFAULT_USER_AGENT = os.environ.get(
    "DEFAULT_USER_AGENT",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/123.0.0.0 Safari/537.36",
)

LOG_MAX_ENTRIES = int(os.environ.get("LOG_MAX_ENTRIES", "500"))

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")


def _parse_origins(raw: str) -> list:
    origins = [o.strip() for o in raw.split(",") if o.strip()]
    return origins or ["*"]


CORS_ALLOW_ORIGINS = _parse_origins(os.environ.get("CORS_ALLOW_ORIGINS", "*"))
