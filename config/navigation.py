"""
config/navigation.py
Loader for the static sidebar used when the backend cannot serve routes.
"""

import json
import logging
from functools import lru_cache
from pathlib import Path

from pydantic import TypeAdapter

from config.settings import settings
from shared.schemas.schemas import SidebarRoute

logger = logging.getLogger(__name__)


def sort_routes(routes: list[SidebarRoute]) -> list[SidebarRoute]:
    """Order routes and their sub-routes by `order`."""
    ordered = sorted(routes, key=lambda r: r.order)
    for route in ordered:
        if route.sub_routes:
            route.sub_routes = sort_routes(route.sub_routes)
    return ordered


def load_fallback_routes(path: str | Path) -> list[SidebarRoute]:
    with open(path, encoding="utf-8") as fh:
        raw = json.load(fh)
    return sort_routes(TypeAdapter(list[SidebarRoute]).validate_python(raw))


@lru_cache
def _cached_fallback(path: str) -> tuple[SidebarRoute, ...]:
    logger.info(f"Loading fallback sidebar from {path}")
    return tuple(load_fallback_routes(path))


def get_fallback_routes() -> list[SidebarRoute]:
    """FastAPI dependency: a fresh copy of the static sidebar."""
    return [r.model_copy(deep=True) for r in _cached_fallback(settings.FALLBACK_ROUTES_PATH)]
