import pytest

from app.logstore import RequestLog
from app.proxy.models import RewriteContext

PROXY_ORIGIN = "http://proxy.test"


@pytest.fixture
def rewrite_context():
    """Rewrite context for a page fetched from https://x.test/p/q."""
    return RewriteContext(
        base_url="https://x.test/p/q", proxy_origin=PROXY_ORIGIN, proxy_path="/proxy"
    )


@pytest.fixture
def request_log():
    return RequestLog(max_entries=50)
