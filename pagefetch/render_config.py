import logging
from dataclasses import dataclass
from typing import Dict, Optional

from pagefetch.args import FetchArguments

logger = logging.getLogger(__name__)

DEFAULT_WIDTH = 1024
DEFAULT_HEIGHT = 768

BIND_ID_HEADER = "collector.proxy.bindId"
PROTOCOL_HEADER = "collector.proxy.protocol"


@dataclass(frozen=True)
class Geometry:
    width: int
    height: int

    def clip(self) -> Dict[str, int]:
        return {"x": 0, "y": 0, "width": self.width, "height": self.height}


@dataclass(frozen=True)
class RenderConfig:
    geometry: Optional[Geometry]
    zoom: Optional[float]
    routing_headers: Dict[str, str]
    resource_timeout_ms: Optional[int]


# ---------- geometry ----------

def parse_dimension(dimension: str):
    """Return (width, height) from "WIDTHxHEIGHT", or None if it cannot be read."""
    parts = dimension.strip().lower().split("x")
    if len(parts) != 2:
        return None
    try:
        return int(parts[0]), int(parts[1])
    except ValueError:
        return None


def compute_geometry(dimension: str, zoom: Optional[float]) -> Geometry:
    parsed = parse_dimension(dimension)
    if parsed is None:
        logger.warning("Invalid thumbnail dimension %r, using %dx%d.",
                       dimension, DEFAULT_WIDTH, DEFAULT_HEIGHT)
        parsed = (DEFAULT_WIDTH, DEFAULT_HEIGHT)
    factor = zoom if zoom is not None else 1.0
    width, height = parsed
    return Geometry(int(width * factor), int(height * factor))


# ---------- routing ----------

def routing_headers(bind_id: Optional[str], protocol: str) -> Dict[str, str]:
    if bind_id is None:
        return {}
    return {BIND_ID_HEADER: bind_id, PROTOCOL_HEADER: protocol}


def build_render_config(args: FetchArguments) -> RenderConfig:
    geometry = None
    zoom = None
    if args.thumbnail_file and args.dimension:
        geometry = compute_geometry(args.dimension, args.zoom)
    if args.thumbnail_file and args.zoom is not None:
        zoom = args.zoom
    return RenderConfig(
        geometry=geometry,
        zoom=zoom,
        routing_headers=routing_headers(args.bind_id, args.protocol),
        resource_timeout_ms=args.resource_timeout_ms,
    )


async def apply_render_config(session, config: RenderConfig) -> None:
    """Push the configuration to the session before navigation starts."""
    if config.geometry is not None:
        await session.set_viewport(config.geometry.width, config.geometry.height)
    if config.zoom is not None:
        await session.set_zoom(config.zoom)
    if config.routing_headers:
        await session.set_extra_headers(config.routing_headers)
    if config.resource_timeout_ms is not None:
        await session.set_resource_timeout(config.resource_timeout_ms)
