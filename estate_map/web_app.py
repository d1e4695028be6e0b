from __future__ import annotations

import asyncio
import logging
from typing import Any, Sequence, Tuple

import requests
from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse

from . import properties_store, settings
from .mapview import MapContainer, MapElement
from .mapview.widget import describe
from .properties import PropertyFilters, property_filters, router as properties_router

logging.basicConfig(level=logging.INFO)

logger = logging.getLogger(__name__)

app = FastAPI()

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(properties_router)

# Shared HTTP handle for geocoding.  Each rendered map gets its own cache, the
# connection pool lives for the whole process.
_http = requests.Session()


async def _place_markers(
    properties: Sequence[properties_store.PropertyRecord],
    center: Tuple[float, float] = settings.MAP_DEFAULT_CENTER,
    zoom: int = settings.MAP_DEFAULT_ZOOM,
) -> MapContainer:
    """Mount a map, place every marker and return the still-mounted container."""

    container = MapContainer(center=center, zoom=zoom, session=_http)
    if not container.mount(MapElement()):
        raise HTTPException(status_code=503, detail=container.error)
    task = container.show_properties(properties)
    if task is not None:
        await task
    return container


def _summary(container: MapContainer) -> dict[str, Any]:
    processed, total = container.progress
    widget = container.widget
    fitted = getattr(widget, "fitted_bounds", None)
    payload = describe(widget) if widget is not None else {"markers": []}
    payload.update(
        {
            "bounds": fitted.as_list() if fitted is not None else None,
            "loading": container.loading,
            "error": container.error,
            "progress": {"processed": processed, "total": total},
            "tileProvider": container.tiles.provider.name if container.tiles and container.tiles.provider else None,
        }
    )
    return payload


async def _render(
    properties: Sequence[properties_store.PropertyRecord],
    center: Tuple[float, float] = settings.MAP_DEFAULT_CENTER,
    zoom: int = settings.MAP_DEFAULT_ZOOM,
) -> str:
    container = await _place_markers(properties, center, zoom)
    try:
        return container.widget.to_html()  # type: ignore[union-attr]
    finally:
        container.unmount()


@app.get("/map", response_class=HTMLResponse)
async def property_map(filters: PropertyFilters = Depends(property_filters)) -> str:
    """Render the listings matching ``filters`` on a Leaflet map."""

    properties = await asyncio.to_thread(filters.fetch)
    logger.info("Rendering map for %d properties", len(properties))
    return await _render(properties)


@app.get("/map/markers")
async def property_markers(filters: PropertyFilters = Depends(property_filters)) -> dict[str, Any]:
    """Return marker placement for the listings matching ``filters`` as JSON."""

    container = await _place_markers(await asyncio.to_thread(filters.fetch))
    try:
        return _summary(container)
    finally:
        container.unmount()


@app.get("/properties/{property_id}/map", response_class=HTMLResponse)
async def property_detail_map(property_id: str) -> str:
    """Render the location map shown on a listing's detail page."""

    try:
        record = await asyncio.to_thread(properties_store.get_property, property_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail="Property not found") from exc
    return await _render([record], zoom=settings.MAP_DETAIL_ZOOM)
