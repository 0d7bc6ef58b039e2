#!/usr/bin/env python3
"""
pagefetch: render one URL and hand the result back to the calling crawler.

- Prints HEADER:/STATUS:/STATUSTEXT:/CONTENTTYPE: lines for the target document
- Prints resource errors and navigation failures to stderr
- Writes the rendered document to the output file after the settle time
- Optionally writes a thumbnail of the page at a given viewport and zoom
"""

import asyncio
import logging
import sys
from typing import List, Optional

from pagefetch.args import parse_args
from pagefetch.driver import fetch_page
from pagefetch.engine import open_session
from pagefetch.render_config import build_render_config

logger = logging.getLogger("pagefetch")

EXIT_ENGINE_ERROR = 1


def setup_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )


async def run(fetch_args, options) -> int:
    config = build_render_config(fetch_args)
    block_images = not options.load_images and fetch_args.thumbnail_file is None
    async with open_session(
        browser=options.browser,
        proxy_server=options.proxy_server,
        insecure=options.insecure,
        user_agent=options.user_agent,
        block_images=block_images,
    ) as session:
        return await fetch_page(
            session, fetch_args, config,
            write_failure_content=options.write_failure_content,
        )


def main(argv: Optional[List[str]] = None) -> int:
    if argv is None:
        argv = sys.argv[1:]
    # Exits with status 2 on a wrong argument count, before any browser exists.
    fetch_args, options = parse_args(argv)
    setup_logging(options.log_level)
    logger.debug("Arguments: %s (%s contract)", fetch_args, options.variant)
    try:
        return asyncio.run(run(fetch_args, options))
    except Exception:
        logger.exception("Rendering engine failed for %s", fetch_args.url)
        return EXIT_ENGINE_ERROR


if __name__ == "__main__":
    sys.exit(main())
