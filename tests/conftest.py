import asyncio
import io
from contextlib import asynccontextmanager
from pathlib import Path
from types import SimpleNamespace

import pytest
from PIL import Image
from playwright.async_api import Error as PWError

from pagefetch.engine import NavigationResult, ResourceResponse

TARGET = "http://example.com/page.html"
DOCUMENT = "<html><head><title>Example</title></head><body><p>café</p></body></html>"


def make_png(width: int, height: int, color=(200, 30, 30)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


class FakeSession:
    """Records what the driver asks of the engine and replays scripted events."""

    def __init__(self, responses=(), failures=(), ok=True, document=DOCUMENT,
                 resources=(TARGET, "http://example.com/style.css")):
        self.responses = list(responses)
        self.failures = list(failures)
        self.ok = ok
        self.document = document
        self.resources = list(resources)
        self.viewport = None
        self.zoom = None
        self.extra_headers = {}
        self.resource_timeout_ms = None
        self.requests = []
        self.screenshots = []
        self.subscribed = False
        self.events = []

    async def set_viewport(self, width, height):
        self.viewport = (width, height)

    async def set_zoom(self, zoom):
        self.zoom = zoom

    async def set_extra_headers(self, headers):
        self.extra_headers = dict(headers)

    async def set_resource_timeout(self, timeout_ms):
        self.resource_timeout_ms = timeout_ms

    @asynccontextmanager
    async def observing(self, on_response, on_failure):
        self._on_response = on_response
        self._on_failure = on_failure
        self.subscribed = True
        try:
            yield self
        finally:
            self.subscribed = False

    async def navigate(self, url):
        self.events.append("navigate")
        for resource in self.resources:
            self.requests.append((resource, dict(self.extra_headers)))
        for response in self.responses:
            self._on_response(response)
        for resource, error in self.failures:
            self._on_failure(resource, error)
        if self.ok:
            return NavigationResult(ok=True, status="success")
        return NavigationResult(ok=False, status="fail", error="net::ERR_CONNECTION_REFUSED")

    async def content(self):
        self.events.append("content")
        return self.document

    async def screenshot(self, path, clip=None):
        self.events.append("screenshot")
        self.screenshots.append((path, clip))
        width, height = (clip["width"], clip["height"]) if clip else (1280, 720)
        Path(path).write_bytes(make_png(width, height))


def document_response(url=TARGET, status=200, status_text="OK",
                      content_type="text/html; charset=utf-8", headers=None):
    if headers is None:
        headers = [("content-type", content_type), ("server", "nginx"), ("x-cache", "MISS")]
    return ResourceResponse(url=url, status=status, status_text=status_text,
                            content_type=content_type, headers=headers)


class RecordingSleep:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


@pytest.fixture
def sleep():
    return RecordingSleep()


class FakePage:
    """Stands in for a Playwright page: records calls and dispatches events."""

    def __init__(self, goto_error=None):
        self.listeners = {}
        self.viewport = None
        self.extra_headers = None
        self.route_handler = None
        self.goto_error = goto_error
        self.goto_calls = []
        self.screenshot_calls = []

    def on(self, event, handler):
        self.listeners.setdefault(event, []).append(handler)

    def remove_listener(self, event, handler):
        self.listeners[event].remove(handler)

    def emit(self, event, payload):
        for handler in list(self.listeners.get(event, [])):
            handler(payload)

    async def set_viewport_size(self, size):
        self.viewport = size

    async def set_extra_http_headers(self, headers):
        self.extra_headers = headers

    async def route(self, pattern, handler):
        self.route_handler = handler

    async def goto(self, url, wait_until=None, timeout=None):
        self.goto_calls.append((url, wait_until, timeout))
        if self.goto_error:
            raise PWError(self.goto_error)

    async def content(self):
        return "<html></html>"

    async def screenshot(self, clip=None, full_page=False, type=None):
        self.screenshot_calls.append({"clip": clip, "full_page": full_page})
        if clip:
            return make_png(int(clip["width"]), int(clip["height"]))
        return make_png(1280, 2400 if full_page else 720)


class FakeResponse:
    def __init__(self, url, status=200, status_text="OK", raw_headers=()):
        self.url = url
        self.status = status
        self.status_text = status_text
        self._raw_headers = list(raw_headers)
        # Playwright's provisional map drops security headers and merges repeats.
        self.headers = {name.lower(): value for name, value in self._raw_headers
                        if name.lower() != "set-cookie"}

    async def headers_array(self):
        await asyncio.sleep(0)
        return [{"name": name, "value": value} for name, value in self._raw_headers]


class FakeRoute:
    def __init__(self, resource_type="document", fetch_error=None):
        self.request = SimpleNamespace(url="http://example.com/", resource_type=resource_type,
                                       headers={"accept": "text/html"})
        self.fetch_error = fetch_error
        self.fetch_kwargs = None
        self.outcome = None

    async def fetch(self, **kwargs):
        self.fetch_kwargs = kwargs
        if self.fetch_error:
            raise self.fetch_error
        return "api-response"

    async def fulfill(self, response=None):
        self.outcome = ("fulfill", response)

    async def abort(self, error_code=None):
        self.outcome = ("abort", error_code)

    async def continue_(self):
        self.outcome = ("continue", None)
