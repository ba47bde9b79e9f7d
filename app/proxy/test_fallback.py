"""
Tests for the FlareSolverr fallback adapter.
"""

import json

import httpx
import pytest

from app.proxy.fallback import (
    INVALID_RESPONSE_ERROR,
    FallbackResult,
    fetch_via_fallback,
    parse_solution,
    provider_timeout,
)
from app.proxy.models import ContentEncoding

PROVIDER_URL = "http://solver.test:8191/v1"

SOLUTION_PAYLOAD = {
    "status": "ok",
    "message": "Challenge solved!",
    "solution": {
        "url": "https://x.test/page",
        "status": 200,
        "headers": {"Content-Type": "text/html", "Content-Encoding": "gzip", "X-Test": "1"},
        "response": "<html><head></head><body>solved</body></html>",
        "cookies": [{"name": "cf_clearance", "value": "abc"}],
        "userAgent": "Mozilla/5.0 Solver",
    },
}


def _transport(status=200, payload=None, body=None, seen=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen["url"] = str(request.url)
            seen["json"] = json.loads(request.content)
            seen["timeout"] = request.extensions.get("timeout")
        if body is not None:
            return httpx.Response(status, content=body)
        return httpx.Response(status, json=payload)

    return httpx.MockTransport(handler)


class TestParseSolution:
    def test_success(self):
        result = parse_solution(SOLUTION_PAYLOAD)
        assert result.success
        assert result.html.startswith("<html>")
        assert result.user_agent == "Mozilla/5.0 Solver"
        assert result.cookies == [{"name": "cf_clearance", "value": "abc"}]
        assert result.status == 200

    @pytest.mark.parametrize(
        "payload",
        [
            {"status": "error", "message": "Timeout"},
            {"status": "ok", "solution": None},
            {"status": "ok", "solution": "html"},
            [],
            None,
        ],
    )
    def test_missing_solution(self, payload):
        result = parse_solution(payload)
        assert not result.success
        assert result.error == INVALID_RESPONSE_ERROR


class TestFallbackResult:
    def test_converted_to_html_fetch_result(self):
        fetch = parse_solution(SOLUTION_PAYLOAD).to_fetch_result()
        assert fetch.status_code == 200
        assert fetch.header("content-type") == "text/html; charset=utf-8"
        assert fetch.content_encoding is ContentEncoding.NONE
        assert "content-encoding" not in fetch.headers
        assert fetch.headers["x-test"] == "1"
        assert fetch.raw_body == b"<html><head></head><body>solved</body></html>"
        assert fetch.url == "https://x.test/page"

    def test_failure_factory(self):
        result = FallbackResult.failure("boom")
        assert not result.success
        assert result.error == "boom"


class TestFetchViaFallback:
    def test_timeout_exceeds_provider_budget(self):
        assert provider_timeout(60000) == 65.0

    @pytest.mark.asyncio
    async def test_posts_request_get(self):
        seen = {}
        result = await fetch_via_fallback(
            PROVIDER_URL,
            "https://x.test/page",
            max_timeout_ms=30000,
            transport=_transport(payload=SOLUTION_PAYLOAD, seen=seen),
        )

        assert result.success
        assert seen["url"] == PROVIDER_URL
        assert seen["json"] == {
            "cmd": "request.get",
            "url": "https://x.test/page",
            "maxTimeout": 30000,
        }
        assert seen["timeout"]["read"] == 35.0

    @pytest.mark.asyncio
    async def test_missing_solution_is_structured_failure(self):
        result = await fetch_via_fallback(
            PROVIDER_URL,
            "https://x.test/page",
            transport=_transport(payload={"status": "ok"}),
        )
        assert not result.success
        assert result.error == "Invalid FlareSolverr response"

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        result = await fetch_via_fallback(
            PROVIDER_URL, "https://x.test/", transport=_transport(body=b"<html>oops")
        )
        assert not result.success
        assert result.error == INVALID_RESPONSE_ERROR

    @pytest.mark.asyncio
    async def test_provider_error_status(self):
        result = await fetch_via_fallback(
            PROVIDER_URL,
            "https://x.test/",
            transport=_transport(status=500, payload={"status": "error"}),
        )
        assert not result.success
        assert "500" in result.error

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        result = await fetch_via_fallback(
            PROVIDER_URL, "https://x.test/", transport=httpx.MockTransport(handler)
        )
        assert not result.success
        assert result.error == "timed out"
