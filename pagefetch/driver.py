"""
Page load driver and completion handler.

Navigation is awaited with the resource observers subscribed; once the
outcome is known the observers are dropped and either the failure path or
the settle/thumbnail/write path runs. Metadata of the target document is
printed as soon as its response arrives.
"""

import asyncio
import logging
import sys
from pathlib import Path

from pagefetch.args import FetchArguments
from pagefetch.engine import ResourceResponse
from pagefetch.render_config import RenderConfig, apply_render_config

logger = logging.getLogger(__name__)

EXIT_OK = 0


# ---------- stream protocol ----------

def metadata_lines(response: ResourceResponse):
    for name, value in response.headers:
        yield f"HEADER:{name}={value}"
    yield f"STATUS:{response.status}"
    yield f"STATUSTEXT:{response.status_text}"
    yield f"CONTENTTYPE:{response.content_type}"


class ResourceObserver:
    """Prints target-document metadata to ``out`` and resource errors to ``err``."""

    def __init__(self, target_url: str, out=None, err=None):
        self.target_url = target_url
        self.out = out if out is not None else sys.stdout
        self.err = err if err is not None else sys.stderr
        self.matched = 0

    def on_response(self, response: ResourceResponse):
        if response.url != self.target_url:
            return
        self.matched += 1
        for line in metadata_lines(response):
            print(line, file=self.out, flush=True)

    def on_failure(self, url: str, error: str):
        print(f"{url}: {error}", file=self.err, flush=True)


# ---------- output ----------

def write_document(path: str, content: str):
    Path(path).write_bytes(content.encode("utf-8"))


# ---------- driver ----------

async def fetch_page(session, args: FetchArguments, config: RenderConfig,
                     write_failure_content: bool = True, out=None, err=None,
                     sleep=asyncio.sleep) -> int:
    """Run one fetch against an opened session and return the exit status."""
    err = err if err is not None else sys.stderr
    observer = ResourceObserver(args.url, out=out, err=err)

    await apply_render_config(session, config)

    logger.info("Loading %s", args.url)
    async with session.observing(observer.on_response, observer.on_failure):
        result = await session.navigate(args.url)

    if not observer.matched:
        logger.warning("No response observed for %s; no metadata was printed.", args.url)

    if not result.ok:
        return await _handle_failure(session, args, result, write_failure_content, err)
    return await _handle_success(session, args, config, sleep)


async def _handle_failure(session, args, result, write_failure_content, err) -> int:
    detail = f" ({result.error})" if result.error else ""
    print(f"Unable to load the address: {args.url} (status: {result.status}){detail}",
          file=err, flush=True)
    content = await session.content()
    print(content, file=err, flush=True)
    if write_failure_content and content:
        write_document(args.out_file, content)
        logger.info("Failure content written to %s", args.out_file)
    return EXIT_OK


async def _handle_success(session, args, config, sleep) -> int:
    logger.debug("Settling for %d ms", args.settle_timeout_ms)
    await sleep(max(args.settle_timeout_ms, 0) / 1000)

    if args.thumbnail_file:
        clip = config.geometry.clip() if config.geometry else None
        await session.screenshot(args.thumbnail_file, clip=clip)
        logger.info("Thumbnail written to %s", args.thumbnail_file)

    write_document(args.out_file, await session.content())
    logger.info("Document written to %s", args.out_file)
    return EXIT_OK
