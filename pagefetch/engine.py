"""
Playwright session handle for a single invocation.

The session owns the browser, its context and the one page. It is opened
only after the arguments were accepted and is closed on every exit path.
"""

import asyncio
import io
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from PIL import Image
from playwright.async_api import async_playwright, Error as PWError, TimeoutError as PWTimeoutError

logger = logging.getLogger(__name__)

# Substrings of fetch errors and the abort code the browser reports for them.
ABORT_CODES = [
    ("ENOTFOUND", "namenotresolved"),
    ("EAI_AGAIN", "namenotresolved"),
    ("ECONNREFUSED", "connectionrefused"),
    ("ECONNRESET", "connectionreset"),
    ("EHOSTUNREACH", "addressunreachable"),
    ("ENETUNREACH", "addressunreachable"),
    ("socket hang up", "connectionclosed"),
]


@dataclass
class ResourceResponse:
    url: str
    status: int
    status_text: str
    content_type: str
    headers: List[Tuple[str, str]] = field(default_factory=list)


@dataclass
class NavigationResult:
    ok: bool
    status: str
    error: Optional[str] = None


OnResponse = Callable[[ResourceResponse], None]
OnFailure = Callable[[str, str], None]


def abort_code(error: Exception) -> str:
    message = str(error)
    if isinstance(error, PWTimeoutError) or "timeout" in message.lower() \
            or "timed out" in message.lower():
        return "timedout"
    for needle, code in ABORT_CODES:
        if needle in message:
            return code
    return "failed"


def content_type_of(headers: List[Tuple[str, str]]) -> str:
    for name, value in headers:
        if name.lower() == "content-type":
            return value
    return ""


def image_format(path: str) -> str:
    """Pillow format for ``path``; PNG when the extension says nothing."""
    return Image.registered_extensions().get(Path(path).suffix.lower(), "PNG")


class PlaywrightSession:
    def __init__(self, page, block_images: bool = False):
        self._page = page
        self._block_images = block_images
        self._viewport = None
        self._zoom: Optional[float] = None
        self._extra_headers: Dict[str, str] = {}
        self._resource_timeout_ms: Optional[int] = None
        self._routed = False

    # ---------- configuration ----------

    async def set_viewport(self, width: int, height: int):
        self._viewport = (width, height)
        await self._apply_viewport()

    async def set_zoom(self, zoom: float):
        self._zoom = zoom
        await self._apply_viewport()

    async def _apply_viewport(self):
        # Layout happens at viewport/zoom CSS pixels; the capture is scaled back down.
        if self._viewport is None:
            return
        width, height = self._viewport
        factor = self._zoom or 1.0
        await self._page.set_viewport_size({
            "width": max(1, round(width / factor)),
            "height": max(1, round(height / factor)),
        })

    async def set_extra_headers(self, headers: Dict[str, str]):
        self._extra_headers = dict(headers)
        await self._page.set_extra_http_headers(self._extra_headers)

    async def set_resource_timeout(self, timeout_ms: int):
        self._resource_timeout_ms = timeout_ms
        await self._ensure_route()

    async def _ensure_route(self):
        if not self._routed:
            await self._page.route("**/*", self._handle_route)
            self._routed = True

    async def _handle_route(self, route):
        request = route.request
        if self._block_images and request.resource_type == "image":
            await route.abort("blockedbyclient")
            return
        if self._resource_timeout_ms is None:
            await route.continue_()
            return
        headers = dict(request.headers)
        headers.update(self._extra_headers)
        try:
            response = await route.fetch(
                headers=headers,
                max_redirects=0,
                timeout=self._resource_timeout_ms,
            )
        except PWError as e:
            code = abort_code(e)
            logger.debug("Resource %s aborted (%s): %s", request.url, code, e)
            await route.abort(code)
            return
        await route.fulfill(response=response)

    # ---------- navigation ----------

    @asynccontextmanager
    async def observing(self, on_response: OnResponse, on_failure: OnFailure):
        """Subscribe resource observers for the duration of the block.

        Raw headers are read asynchronously, so leaving the block waits for
        every response already received to reach ``on_response``.
        """
        pending = set()

        async def _emit(response):
            # headers_array keeps security headers (Set-Cookie) and repeated names.
            headers = [(h["name"], h["value"]) for h in await response.headers_array()]
            on_response(ResourceResponse(
                url=response.url,
                status=response.status,
                status_text=response.status_text,
                content_type=content_type_of(headers),
                headers=headers,
            ))

        def _response(response):
            task = asyncio.ensure_future(_emit(response))
            pending.add(task)
            task.add_done_callback(pending.discard)

        def _failed(request):
            if self._block_images and request.resource_type == "image":
                return
            on_failure(request.url, request.failure or "unknown error")

        self._page.on("response", _response)
        self._page.on("requestfailed", _failed)
        try:
            yield self
        finally:
            self._page.remove_listener("response", _response)
            self._page.remove_listener("requestfailed", _failed)
            if pending:
                for result in await asyncio.gather(*pending, return_exceptions=True):
                    if isinstance(result, Exception):
                        logger.warning("Could not read response headers: %s", result)

    async def navigate(self, url: str) -> NavigationResult:
        if self._block_images:
            await self._ensure_route()
        try:
            await self._page.goto(url, wait_until="load", timeout=0)
        except PWError as e:
            return NavigationResult(ok=False, status="fail", error=str(e))
        return NavigationResult(ok=True, status="success")

    async def content(self) -> str:
        return await self._page.content()

    async def screenshot(self, path: str, clip: Optional[Dict[str, int]] = None):
        zoom = self._zoom or 1.0
        if clip:
            capture_clip = {
                "x": clip["x"] / zoom,
                "y": clip["y"] / zoom,
                "width": clip["width"] / zoom,
                "height": clip["height"] / zoom,
            }
            data = await self._page.screenshot(clip=capture_clip, type="png")
        else:
            data = await self._page.screenshot(full_page=True, type="png")
        image = Image.open(io.BytesIO(data))
        if clip:
            size = (clip["width"], clip["height"])
        else:
            size = (round(image.width * zoom), round(image.height * zoom))
        size = (max(1, size[0]), max(1, size[1]))
        if image.size != size:
            image = image.resize(size, Image.LANCZOS)
        image.convert("RGB").save(path, format=image_format(path))


@asynccontextmanager
async def open_session(browser: str = "chromium", proxy_server: Optional[str] = None,
                       insecure: bool = True, user_agent: Optional[str] = None,
                       block_images: bool = False):
    async with async_playwright() as p:
        launch = {"headless": True}
        if proxy_server:
            launch["proxy"] = {"server": proxy_server}
        logger.info("Launching %s (proxy: %s)", browser, proxy_server or "none")
        b = await getattr(p, browser).launch(**launch)
        try:
            context = await b.new_context(ignore_https_errors=insecure, user_agent=user_agent)
            page = await context.new_page()
            page.set_default_navigation_timeout(0)
            yield PlaywrightSession(page, block_images=block_images)
        finally:
            await b.close()
