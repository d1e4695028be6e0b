"""Progressive marker placement for a list of listings.

Listings are geocoded one after another, never in parallel: the geocoding
provider expects paced requests, and placing markers one at a time lets the
map fill in while the rest are still resolving.  The viewport is refitted to
every marker placed so far after each new one.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import html
import logging
from typing import Callable, List, Optional, Sequence, Tuple

from .. import settings
from ..properties_store import PropertyRecord
from ..property_helpers import format_area, format_price, translate_property_type
from .geocoding import Coordinate, GeocodingClient
from .widget import Bounds, MapWidget


logger = logging.getLogger(__name__)

MarkerCallback = Callable[[PropertyRecord], None]


@dataclass(eq=False)
class Marker:
    property: PropertyRecord
    coordinate: Coordinate
    popup_html: str
    on_click: Optional[MarkerCallback] = None

    def click(self) -> None:
        if self.on_click is not None:
            self.on_click(self.property)


def build_popup_html(prop: PropertyRecord) -> str:
    """Summarise ``prop`` for the marker popup."""

    lines = [
        f'<h3 style="font-weight: bold; font-size: 14px; margin-bottom: 4px;">{html.escape(prop.title)}</h3>',
        f'<p style="font-size: 12px; color: #666; margin-bottom: 4px;">{html.escape(prop.location)}</p>',
        f'<p style="font-weight: bold; margin-bottom: 4px;">{format_price(prop.price)}</p>',
        f'<p style="font-size: 12px; margin-top: 4px;">'
        f"{html.escape(translate_property_type(prop.property_type))} • {format_area(prop.area)}</p>",
    ]
    if prop.bedrooms:
        bathrooms = prop.bathrooms if prop.bathrooms is not None else 0
        lines.append(f'<p style="font-size: 12px;">{prop.bedrooms} PN • {bathrooms} PT</p>')
    return '<div style="min-width: 200px; padding: 8px;">' + "".join(lines) + "</div>"


@dataclass(eq=False)
class PipelineRun:
    """One pass over a property list; cancelled when its inputs go stale."""

    properties: Sequence[PropertyRecord]
    on_marker_click: Optional[MarkerCallback] = None
    active: bool = True
    processed: int = 0
    placed: List[Marker] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.properties)

    def cancel(self) -> None:
        self.active = False


class MarkerPipeline:
    """Owns the markers one map widget shows for the current property list."""

    def __init__(
        self,
        widget: MapWidget,
        geocoder: GeocodingClient,
        *,
        padding: Tuple[int, int] = settings.MAP_FIT_PADDING,
        max_zoom: int = settings.MAP_FIT_MAX_ZOOM,
    ) -> None:
        self.widget = widget
        self.geocoder = geocoder
        self.padding = padding
        self.max_zoom = max_zoom
        self.markers: List[Marker] = []

    def clear(self) -> None:
        for marker in self.markers:
            self.widget.remove_marker(marker)
        self.markers = []

    async def run(self, run: PipelineRun) -> List[Marker]:
        """Place markers for ``run.properties`` in list order.

        A property whose lookup fails is skipped.  Once ``run`` is cancelled
        every remaining step is a no-op, so nothing is added to a map that has
        been unmounted or handed a newer property list.
        """

        if not run.active:
            return []
        self.clear()

        for prop in run.properties:
            if not run.active:
                break
            try:
                coordinate = await self.geocoder.resolve(prop.location)
            except Exception:
                logger.exception("Geocoding crashed for property %s (%r)", prop.id, prop.location)
                coordinate = None
            if not run.active:
                break
            run.processed += 1
            if coordinate is None:
                logger.debug("No coordinates for property %s (%r)", prop.id, prop.location)
                continue

            marker = Marker(
                property=prop,
                coordinate=coordinate,
                popup_html=build_popup_html(prop),
                on_click=run.on_marker_click,
            )
            self.widget.add_marker(marker)
            self.markers.append(marker)
            run.placed.append(marker)

            bounds = Bounds.from_points(m.coordinate for m in self.markers)
            if bounds is not None:
                self.widget.fit_bounds(bounds, self.padding, self.max_zoom)

        return list(run.placed)
