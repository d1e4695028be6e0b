from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Iterable, List, Optional, Tuple

import folium
from folium import MacroElement
from jinja2 import Template

from .geocoding import Coordinate

if TYPE_CHECKING:  # pragma: no cover
    from .markers import Marker
    from .tiles import TileLayerManager, TileProvider


@dataclass(frozen=True)
class MapElement:
    """The page element a map widget draws into."""

    element_id: str = "property-map"
    width: int = 1000
    height: int = 600


@dataclass(frozen=True)
class Bounds:
    """Smallest lat/lng rectangle holding a set of points."""

    south: float
    west: float
    north: float
    east: float

    @classmethod
    def from_points(cls, points: Iterable[Coordinate]) -> Optional["Bounds"]:
        pts = list(points)
        if not pts:
            return None
        lats = [p.lat for p in pts]
        lngs = [p.lng for p in pts]
        return cls(min(lats), min(lngs), max(lats), max(lngs))

    def contains(self, point: Coordinate) -> bool:
        return self.south <= point.lat <= self.north and self.west <= point.lng <= self.east

    def as_list(self) -> List[List[float]]:
        return [[self.south, self.west], [self.north, self.east]]


class TileFallbackScript(MacroElement):
    """Client-side counterpart of :class:`TileLayerManager` for a rendered page.

    Counts ``tileerror`` events on the primary layer and, when more than
    ``threshold`` arrive before any ``tileload``, replaces it once with the
    fallback provider.  A safety timer re-measures the map even when no tile
    event ever fires.
    """

    _template = Template(
        """
        {% macro script(this, kwargs) %}
        (function() {
            var map = {{ this._parent.get_name() }};
            var primary = {{ this.layer.get_name() }};
            var errors = 0, loaded = false, swapped = false, done = false, timer = null;

            function finish() {
                if (done) { return; }
                done = true;
                clearTimeout(timer);
                map.invalidateSize();
            }

            function arm() {
                done = false;
                clearTimeout(timer);
                timer = setTimeout(finish, {{ this.safety_timeout_ms }});
            }

            function swap() {
                swapped = true;
                map.removeLayer(primary);
                var fallback = L.tileLayer({{ this.fallback_url|tojson }}, {
                    attribution: {{ this.fallback_attribution|tojson }},
                    maxZoom: {{ this.fallback_max_zoom }}
                }).addTo(map);
                watch(fallback);
                arm();
            }

            function watch(layer) {
                errors = 0;
                layer.on('tileload', function() {
                    loaded = true;
                    finish();
                });
                layer.on('tileerror', function() {
                    errors += 1;
                    if (!loaded && !swapped && errors > {{ this.threshold }}) {
                        swap();
                    }
                });
            }

            watch(primary);
            arm();
        })();
        {% endmacro %}
        """
    )

    def __init__(self, layer: folium.TileLayer, fallback: "TileProvider", threshold: int, safety_timeout: float) -> None:
        super().__init__()
        self._name = "TileFallback"
        self.layer = layer
        self.fallback_url = fallback.url
        self.fallback_attribution = fallback.attribution
        self.fallback_max_zoom = int(fallback.max_zoom)
        self.threshold = int(threshold)
        self.safety_timeout_ms = int(safety_timeout * 1000)


class MapWidget(ABC):
    """Operations the map subsystem needs from an interactive map widget."""

    tile_manager: Optional["TileLayerManager"] = None

    def supervise_tiles(self, manager: "TileLayerManager") -> None:
        """Remember the manager that owns this widget's base layer."""

        self.tile_manager = manager

    @abstractmethod
    def add_tile_layer(self, provider: "TileProvider") -> None:
        raise NotImplementedError

    @abstractmethod
    def remove_tile_layer(self, provider: "TileProvider") -> None:
        raise NotImplementedError

    @abstractmethod
    def add_marker(self, marker: "Marker") -> None:
        raise NotImplementedError

    @abstractmethod
    def remove_marker(self, marker: "Marker") -> None:
        raise NotImplementedError

    @abstractmethod
    def fit_bounds(self, bounds: Bounds, padding: Tuple[int, int], max_zoom: int) -> None:
        raise NotImplementedError

    @abstractmethod
    def invalidate_size(self) -> None:
        """Recompute pixel dimensions after the element was resized or shown."""
        raise NotImplementedError

    @abstractmethod
    def remove(self) -> None:
        raise NotImplementedError

    def click_marker(self, property_id: str) -> bool:
        """Dispatch a click on the marker for ``property_id``.

        Returns ``False`` when no such marker is on the map.
        """

        for marker in self.markers:
            if marker.property.id == property_id:
                marker.click()
                return True
        return False

    @property
    @abstractmethod
    def markers(self) -> List["Marker"]:
        raise NotImplementedError


class FoliumMapWidget(MapWidget):
    """Map widget whose state renders to a Leaflet page through folium."""

    def __init__(self, element: MapElement, center: Tuple[float, float], zoom: int) -> None:
        if element is None:
            raise ValueError("Map container element is missing")
        self.element = element
        self.center = (float(center[0]), float(center[1]))
        self.zoom = int(zoom)
        self.tile_layers: List["TileProvider"] = []
        self._markers: List["Marker"] = []
        self.fit_history: List[Tuple[Bounds, Tuple[int, int], int]] = []
        self.size_invalidations = 0
        self.removed = False

    @property
    def markers(self) -> List["Marker"]:
        return list(self._markers)

    @property
    def fitted_bounds(self) -> Optional[Bounds]:
        return self.fit_history[-1][0] if self.fit_history else None

    def add_tile_layer(self, provider: "TileProvider") -> None:
        self._ensure_alive()
        self.tile_layers.append(provider)

    def remove_tile_layer(self, provider: "TileProvider") -> None:
        if provider in self.tile_layers:
            self.tile_layers.remove(provider)

    def add_marker(self, marker: "Marker") -> None:
        self._ensure_alive()
        self._markers.append(marker)

    def remove_marker(self, marker: "Marker") -> None:
        if marker in self._markers:
            self._markers.remove(marker)

    def fit_bounds(self, bounds: Bounds, padding: Tuple[int, int], max_zoom: int) -> None:
        self._ensure_alive()
        self.fit_history.append((bounds, padding, max_zoom))

    def invalidate_size(self) -> None:
        if not self.removed:
            self.size_invalidations += 1

    def remove(self) -> None:
        self._markers.clear()
        self.tile_layers.clear()
        self.removed = True

    def build(self) -> folium.Map:
        """Return a folium map reflecting the widget's current state."""

        self._ensure_alive()
        fmap = folium.Map(
            location=list(self.center),
            zoom_start=self.zoom,
            tiles=None,
            width=self.element.width,
            height=self.element.height,
        )
        layers = {}
        for provider in self.tile_layers:
            layers[provider] = folium.TileLayer(
                tiles=provider.url,
                attr=provider.attribution,
                name=provider.name,
                max_zoom=provider.max_zoom,
            ).add_to(fmap)
        manager = self.tile_manager
        if manager is not None and not manager.swapped and manager.primary in layers:
            TileFallbackScript(
                layers[manager.primary],
                manager.fallback,
                manager.error_threshold,
                manager.safety_timeout,
            ).add_to(fmap)
        for marker in self._markers:
            folium.Marker(
                location=[marker.coordinate.lat, marker.coordinate.lng],
                popup=folium.Popup(marker.popup_html, max_width=300),
                tooltip=marker.property.title,
                icon=folium.Icon(color="red", icon="home", prefix="fa"),
            ).add_to(fmap)
        if self.fit_history:
            bounds, padding, max_zoom = self.fit_history[-1]
            fmap.fit_bounds(bounds.as_list(), padding=padding, max_zoom=max_zoom)
        return fmap

    def to_html(self) -> str:
        return self.build().get_root().render()

    def _ensure_alive(self) -> None:
        if self.removed:
            raise RuntimeError("Map widget has been removed")

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"FoliumMapWidget(element={self.element.element_id!r}, markers={len(self._markers)})"


def describe(widget: MapWidget) -> dict[str, Any]:
    """JSON-friendly summary of the markers currently on ``widget``."""

    return {
        "markers": [
            {
                "propertyId": marker.property.id,
                "lat": marker.coordinate.lat,
                "lng": marker.coordinate.lng,
                "popup": marker.popup_html,
            }
            for marker in widget.markers
        ],
    }
