"""
Positional argument contract of the worker.

The calling crawler passes a fixed number of positionals; the extended
contract adds a per-resource timeout at the end. Sentinel values
(``-1``, empty strings) become ``None`` here and nowhere else.
"""

import argparse
import os
from dataclasses import dataclass
from typing import List, Optional

NO_PROXY = "-1"
UNBOUNDED = -1

MINIMAL = "minimal"
EXTENDED = "extended"


@dataclass(frozen=True)
class FetchArguments:
    url: str
    out_file: str
    settle_timeout_ms: int
    bind_id: Optional[str]
    protocol: str
    thumbnail_file: Optional[str]
    dimension: Optional[str]
    zoom: Optional[float]
    resource_timeout_ms: Optional[int] = None


@dataclass(frozen=True)
class Options:
    variant: str
    write_failure_content: bool
    browser: str
    proxy_server: Optional[str]
    insecure: bool
    load_images: bool
    user_agent: Optional[str]
    log_level: str


# ---------- value parsing ----------

def _env_str(name: str, default: Optional[str]) -> Optional[str]:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    return v


def _milliseconds(value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid milliseconds value: {value!r}")


def _zoom(value: str) -> Optional[float]:
    if value.strip() == "":
        return None
    try:
        return float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid zoom factor: {value!r}")


def _optional(value: str) -> Optional[str]:
    return value if value != "" else None


# ---------- parser ----------

def _variant_of(argv: List[str]) -> str:
    pre = argparse.ArgumentParser(add_help=False)
    pre.add_argument("--minimal", action="store_true")
    known, _ = pre.parse_known_args(argv)
    return MINIMAL if known.minimal else EXTENDED


def build_parser(variant: str = EXTENDED) -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="pagefetch",
        description="Render one URL in a headless browser, print the document's "
                    "response metadata to stdout and write the rendered HTML to a file.",
    )
    ap.add_argument("url", help="Target URL.")
    ap.add_argument("out_file", help="File receiving the rendered document (overwritten).")
    ap.add_argument("settle_timeout", type=_milliseconds,
                    help="Milliseconds to wait after a successful load before capturing.")
    ap.add_argument("bind_id", help="Proxy binding id, or -1 for no proxy routing headers.")
    ap.add_argument("protocol", help="Protocol of the original URL (http or https).")
    ap.add_argument("thumbnail_file", help="Thumbnail image path, or empty for none.")
    ap.add_argument("dimension", help="Thumbnail viewport as WIDTHxHEIGHT, or empty.")
    ap.add_argument("zoom", type=_zoom, help="Thumbnail zoom factor, e.g. 0.25.")
    if variant == EXTENDED:
        ap.add_argument("resource_timeout", type=_milliseconds,
                        help="Maximum milliseconds per network resource, or -1 for no limit.")

    ap.add_argument("--minimal", action="store_true",
                    help="Use the 8-argument contract (no per-resource timeout).")
    failure = ap.add_mutually_exclusive_group()
    failure.add_argument("--write-failure-content", dest="write_failure_content",
                         action="store_true", default=None,
                         help="On navigation failure, write non-empty page content to the output file "
                              "(default for the extended contract).")
    failure.add_argument("--skip-failure-content", dest="write_failure_content",
                         action="store_false",
                         help="On navigation failure, leave the output file untouched "
                              "(default for the minimal contract).")
    ap.add_argument("--browser", choices=("chromium", "firefox", "webkit"),
                    default=_env_str("PAGEFETCH_BROWSER", "chromium"),
                    help="Playwright browser to drive (default: chromium).")
    ap.add_argument("--proxy-server", default=_env_str("PAGEFETCH_PROXY_SERVER", None),
                    help="Proxy the browser routes its traffic through, e.g. http://localhost:8888.")
    ssl = ap.add_mutually_exclusive_group()
    ssl.add_argument("--insecure", dest="insecure", action="store_true", default=True,
                     help="Ignore HTTPS certificate errors (default).")
    ssl.add_argument("--strict-ssl", dest="insecure", action="store_false",
                     help="Fail on HTTPS certificate errors.")
    ap.add_argument("--load-images", action="store_true",
                    help="Load images even when no thumbnail is requested "
                         "(by default images load only for thumbnails).")
    ap.add_argument("--user-agent", default=_env_str("PAGEFETCH_USER_AGENT", None),
                    help="Browser user agent.")
    ap.add_argument("--log-level", default=_env_str("PAGEFETCH_LOG_LEVEL", "WARNING"),
                    help="Logging level for diagnostics on stderr (default: WARNING).")
    return ap


def parse_args(argv: List[str]):
    """Binds ``argv`` (without the program name) to the worker's contract.

    Exits with status 2 through argparse when the positional count does not
    match the contract in use or a numeric value is malformed.
    """
    variant = _variant_of(argv)
    ns = build_parser(variant).parse_args(argv)

    resource_timeout = None
    if variant == EXTENDED and ns.resource_timeout != UNBOUNDED:
        resource_timeout = ns.resource_timeout

    fetch_args = FetchArguments(
        url=ns.url,
        out_file=ns.out_file,
        settle_timeout_ms=ns.settle_timeout,
        bind_id=None if ns.bind_id == NO_PROXY else _optional(ns.bind_id),
        protocol=ns.protocol,
        thumbnail_file=_optional(ns.thumbnail_file),
        dimension=_optional(ns.dimension),
        zoom=ns.zoom,
        resource_timeout_ms=resource_timeout,
    )

    write_failure_content = ns.write_failure_content
    if write_failure_content is None:
        write_failure_content = variant == EXTENDED

    options = Options(
        variant=variant,
        write_failure_content=write_failure_content,
        browser=ns.browser,
        proxy_server=ns.proxy_server,
        insecure=ns.insecure,
        load_images=ns.load_images,
        user_agent=ns.user_agent,
        log_level=ns.log_level.upper(),
    )
    return fetch_args, options
