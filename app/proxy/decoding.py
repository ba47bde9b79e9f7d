import gzip
import logging
import zlib
from dataclasses import dataclass

import brotli

from app.proxy.models import ContentEncoding

logger = logging.getLogger("uvicorn.error")


class ContentDecodingError(Exception):
    def __init__(self, encoding: ContentEncoding, cause: Exception):
        super().__init__(f"Failed to decode {encoding.value} body: {cause}")
        self.encoding = encoding
        self.cause = cause


@dataclass
class DecodedBody:
    body: bytes
    # True when the content-encoding header no longer describes the body
    decoded: bool


def _inflate(data: bytes) -> bytes:
    try:
        return zlib.decompress(data, -zlib.MAX_WBITS)
    except zlib.error:
        # Most servers actually send zlib-wrapped deflate
        return zlib.decompress(data)


def decode_body(raw: bytes, encoding: ContentEncoding) -> DecodedBody:
    """
    Decode a fetched body according to its content-encoding.

    gzip and deflate failures raise ContentDecodingError. Brotli is
    best-effort: on failure the original bytes are returned undecoded.
    """
    if encoding is ContentEncoding.NONE:
        return DecodedBody(raw, decoded=True)
    if encoding is ContentEncoding.OTHER:
        return DecodedBody(raw, decoded=False)
    if not raw:
        return DecodedBody(raw, decoded=True)

    if encoding is ContentEncoding.GZIP:
        try:
            return DecodedBody(gzip.decompress(raw), decoded=True)
        except (OSError, EOFError, zlib.error) as e:
            raise ContentDecodingError(encoding, e) from e

    if encoding is ContentEncoding.DEFLATE:
        try:
            return DecodedBody(_inflate(raw), decoded=True)
        except zlib.error as e:
            raise ContentDecodingError(encoding, e) from e

    try:
        return DecodedBody(brotli.decompress(raw), decoded=True)
    except Exception as e:
        logger.warning(f"[Decoder] Brotli decompression failed, forwarding raw body: {e}")
        return DecodedBody(raw, decoded=False)
