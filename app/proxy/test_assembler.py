import gzip

import brotli
import pytest

from app.proxy.assembler import (
    assemble_response,
    charset_of,
    decode_text,
    strip_headers,
)
from app.proxy.decoding import ContentDecodingError
from app.proxy.models import ContentEncoding, FetchResult
from app.proxy.options import NO_CACHE_HEADERS, build_request_spec

PAGE = '<html><head><title>t</title></head><body><a href="/next">café</a></body></html>'


def _spec(extra=""):
    return build_request_spec("GET", f"url=https%3A%2F%2Fx.test%2Fp%2Fq{extra}", {})


def _result(body, headers=None, encoding=ContentEncoding.NONE, status=200):
    return FetchResult(
        status_code=status,
        headers=headers or {},
        raw_body=body,
        content_encoding=encoding,
        url="https://x.test/p/q",
    )


class TestHeaders:
    def test_restrictive_and_hop_by_hop_removed(self):
        headers = {
            "content-security-policy": "default-src 'self'",
            "content-security-policy-report-only": "default-src 'self'",
            "x-frame-options": "DENY",
            "strict-transport-security": "max-age=1",
            "content-length": "10",
            "connection": "keep-alive",
            "transfer-encoding": "chunked",
            "x-custom": "kept",
        }
        assert strip_headers(headers) == {"x-custom": "kept"}

    def test_charset_of(self):
        assert charset_of("text/html; charset=ISO-8859-1") == "ISO-8859-1"
        assert charset_of('text/html; charset="utf-8"') == "utf-8"
        assert charset_of("text/html") == "utf-8"

    def test_unknown_charset_falls_back_to_utf8(self):
        assert decode_text("café".encode(), "text/html; charset=bogus") == "café"


class TestAssembleResponse:
    def test_gzip_html_decoded_and_rewritten(self, rewrite_context):
        result = _result(
            gzip.compress(PAGE.encode("utf-8")),
            {"content-type": "text/html", "content-encoding": "gzip"},
            ContentEncoding.GZIP,
        )

        response = assemble_response(result, _spec(), rewrite_context)
        text = response.body.decode("utf-8")

        assert "content-encoding" not in response.headers
        assert response.headers["content-type"] == "text/html; charset=utf-8"
        assert "http://proxy.test/proxy?url=https%3A%2F%2Fx.test%2Fnext" in text
        assert "café" in text
        assert 'data-proxy-intercept="true"' in text
        assert int(response.headers["content-length"]) == len(response.body)

    def test_latin1_page_reencoded_as_utf8(self, rewrite_context):
        result = _result(
            PAGE.encode("iso-8859-1"),
            {"content-type": "text/html; charset=iso-8859-1"},
        )
        response = assemble_response(result, _spec(), rewrite_context)
        assert "café" in response.body.decode("utf-8")
        assert response.headers["content-type"] == "text/html; charset=utf-8"

    def test_non_html_passthrough(self, rewrite_context):
        body = b'{"href": "/next"}'
        result = _result(body, {"content-type": "application/json", "x-custom": "1"})

        response = assemble_response(result, _spec(), rewrite_context)

        assert response.body == body
        assert response.headers["content-type"] == "application/json"
        assert response.headers["x-custom"] == "1"

    def test_gzip_non_html_decoded(self, rewrite_context):
        body = b"body { color: red }"
        result = _result(
            gzip.compress(body),
            {"content-type": "text/css", "content-encoding": "gzip"},
            ContentEncoding.GZIP,
        )
        response = assemble_response(result, _spec(), rewrite_context)
        assert response.body == body
        assert "content-encoding" not in response.headers

    def test_brotli_failure_keeps_encoded_body(self, rewrite_context):
        body = b"not brotli at all"
        result = _result(
            body,
            {"content-type": "text/html", "content-encoding": "br"},
            ContentEncoding.BROTLI,
        )

        response = assemble_response(result, _spec(), rewrite_context)

        assert response.body == body
        assert response.headers["content-encoding"] == "br"

    def test_brotli_html_rewritten(self, rewrite_context):
        result = _result(
            brotli.compress(PAGE.encode("utf-8")),
            {"content-type": "text/html", "content-encoding": "br"},
            ContentEncoding.BROTLI,
        )
        response = assemble_response(result, _spec(), rewrite_context)
        assert "content-encoding" not in response.headers
        assert b"/proxy?url=" in response.body

    def test_gzip_failure_raises(self, rewrite_context):
        result = _result(
            b"definitely not gzip",
            {"content-type": "text/html", "content-encoding": "gzip"},
            ContentEncoding.GZIP,
        )
        with pytest.raises(ContentDecodingError):
            assemble_response(result, _spec(), rewrite_context)

    def test_missing_status_defaults_to_200(self, rewrite_context):
        response = assemble_response(_result(b"", status=0), _spec(), rewrite_context)
        assert response.status_code == 200

    def test_upstream_status_preserved(self, rewrite_context):
        response = assemble_response(
            _result(b"gone", {"content-type": "text/plain"}, status=404),
            _spec(),
            rewrite_context,
        )
        assert response.status_code == 404

    def test_force_clean_overrides_cache_headers(self, rewrite_context):
        result = _result(
            b"x", {"content-type": "text/plain", "cache-control": "max-age=3600"}
        )
        response = assemble_response(result, _spec("&forceClean=true"), rewrite_context)
        assert response.headers["cache-control"] == NO_CACHE_HEADERS["cache-control"]
        assert response.headers["pragma"] == "no-cache"
        assert response.headers["expires"] == "0"

    def test_repeated_set_cookie_preserved(self, rewrite_context):
        result = _result(
            b"x", {"content-type": "text/plain", "set-cookie": ["a=1", "b=2"]}
        )
        response = assemble_response(result, _spec(), rewrite_context)
        assert response.headers.getlist("set-cookie") == ["a=1", "b=2"]
