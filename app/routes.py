import logging

from fastapi import APIRouter
from fastapi.responses import HTMLResponse

from app.vars import BASE_PATH, BROWSER_PATH
from .proxy.route import router as proxy_router
from .logstore.route import router as logstore_router

router = APIRouter()

logger = logging.getLogger("uvicorn.error")

if BASE_PATH:
    router.prefix = BASE_PATH
    logger.info(f"Using BASE_PATH: {BASE_PATH}")
else:
    logger.info("No BASE_PATH set, using root path")


LANDING_PAGE = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Rewrite Proxy</title></head>
<body>
<h1>Rewrite Proxy</h1>
<form method="get" action="{browser_path}">
  <input type="text" name="url" placeholder="https://example.com" size="60">
  <button type="submit">Open</button>
</form>
<p>API: <code>/proxy?url=&lt;target&gt;</code>, request log at <code>/logs</code>.</p>
</body>
</html>
"""


@router.get("/", response_class=HTMLResponse)
async def landing_page():
    return LANDING_PAGE.format(browser_path=BASE_PATH + BROWSER_PATH)


router.include_router(proxy_router)
router.include_router(logstore_router)
