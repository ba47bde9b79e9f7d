from .models import ContentEncoding, FetchResult, ProxyRequestSpec, RewriteContext
from .options import InvalidTargetError, MissingTargetError, build_request_spec
from .rewrite import rewrite_html

__all__ = [
    "ContentEncoding",
    "FetchResult",
    "ProxyRequestSpec",
    "RewriteContext",
    "InvalidTargetError",
    "MissingTargetError",
    "build_request_spec",
    "rewrite_html",
]
