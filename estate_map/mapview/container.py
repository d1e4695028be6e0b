"""Lifecycle owner for one map widget on a page."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, List, Optional, Sequence, Set, Tuple

from .. import settings
from ..properties_store import PropertyRecord
from .geocoding import GeocodingClient
from .markers import Marker, MarkerCallback, MarkerPipeline, PipelineRun
from .tiles import CARTO_PROVIDER, OSM_PROVIDER, TileLayerManager, TileProvider
from .widget import FoliumMapWidget, MapElement, MapWidget


logger = logging.getLogger(__name__)

INIT_ERROR_MESSAGE = "Không thể khởi tạo bản đồ. Vui lòng thử lại."


class MapInitializationError(Exception):
    """Raised when the map widget cannot be constructed."""


class MapContainerMissingError(MapInitializationError):
    """Raised when there is no element to draw the map into."""


WidgetFactory = Callable[[MapElement, Tuple[float, float], int], MapWidget]


class MapContainer:
    """Create, resize and tear down a map widget and expose its page state.

    ``loading`` is true until the widget has been constructed; ``error`` holds
    a user-facing message when construction failed.  Geocoding results are
    cached for as long as the container stays mounted unless a ``geocoder`` is
    supplied, in which case its cache belongs to the caller.
    """

    def __init__(
        self,
        *,
        center: Tuple[float, float] = settings.MAP_DEFAULT_CENTER,
        zoom: int = settings.MAP_DEFAULT_ZOOM,
        session: Any = None,
        geocoder: Optional[GeocodingClient] = None,
        widget_factory: WidgetFactory = FoliumMapWidget,
        primary_tiles: TileProvider = OSM_PROVIDER,
        fallback_tiles: TileProvider = CARTO_PROVIDER,
        tile_safety_timeout: float = settings.TILE_SAFETY_TIMEOUT,
    ) -> None:
        self.center = center
        self.zoom = zoom
        self.session = session
        self.widget_factory = widget_factory
        self.primary_tiles = primary_tiles
        self.fallback_tiles = fallback_tiles
        self.tile_safety_timeout = tile_safety_timeout
        self._external_geocoder = geocoder

        self.loading = True
        self.error: Optional[str] = None
        self.visible = True
        self.element: Optional[MapElement] = None
        self.widget: Optional[MapWidget] = None
        self.tiles: Optional[TileLayerManager] = None
        self.geocoder: Optional[GeocodingClient] = None
        self.pipeline: Optional[MarkerPipeline] = None
        self._run: Optional[PipelineRun] = None
        self._task: Optional[asyncio.Task] = None
        # Runs still finishing after being superseded or unmounted.
        self._pending: Set[asyncio.Task] = set()

    @property
    def is_mounted(self) -> bool:
        return self.widget is not None

    @property
    def markers(self) -> List[Marker]:
        return list(self.pipeline.markers) if self.pipeline else []

    @property
    def progress(self) -> Tuple[int, int]:
        """``(processed, total)`` for the current marker run."""

        if self._run is None:
            return (0, 0)
        return (self._run.processed, self._run.total)

    @property
    def pending_runs(self) -> int:
        return len(self._pending)

    def mount(self, element: Optional[MapElement]) -> bool:
        """Construct the widget inside ``element``; return ``False`` on failure."""

        self.loading = True
        self.error = None
        try:
            if element is None:
                raise MapContainerMissingError("No element to mount the map into")
            widget = self.widget_factory(element, self.center, self.zoom)
        except Exception as exc:
            logger.error("Map initialization error: %s", exc)
            self.error = INIT_ERROR_MESSAGE
            self.loading = False
            return False

        self.element = element
        self.widget = widget
        self.geocoder = self._external_geocoder or GeocodingClient(self.session)
        self.pipeline = MarkerPipeline(widget, self.geocoder)
        self.tiles = TileLayerManager(
            widget,
            self.primary_tiles,
            self.fallback_tiles,
            safety_timeout=self.tile_safety_timeout,
            on_ready=self._on_tiles_ready,
        )
        self.tiles.start()

        # Reveal immediately; tile events only trigger another resize.
        self.loading = False
        widget.invalidate_size()
        return True

    def unmount(self) -> None:
        """Stop marker placement and release the widget."""

        self._cancel_run()
        self._task = None
        if self.tiles is not None:
            self.tiles.dispose()
        try:
            if self.widget is not None:
                self.widget.remove()
        finally:
            self.widget = None
            self.tiles = None
            self.pipeline = None
            self.geocoder = None
            self.loading = True

    def configure(self, center: Tuple[float, float], zoom: int) -> Optional["asyncio.Task[List[Marker]]"]:
        """Change the initial view, rebuilding the widget when it differs.

        Markers of the last run are placed again on the new widget.
        """

        if tuple(center) == tuple(self.center) and zoom == self.zoom:
            return self._task
        self.center = center
        self.zoom = zoom
        if not self.is_mounted:
            return None
        element = self.element
        previous = self._run
        self.unmount()
        if not self.mount(element) or previous is None:
            return None
        return self.show_properties(previous.properties, previous.on_marker_click)

    def show_properties(
        self,
        properties: Sequence[PropertyRecord],
        on_marker_click: Optional[MarkerCallback] = None,
    ) -> Optional["asyncio.Task[List[Marker]]"]:
        """Start placing markers for ``properties``.

        Passing the same list and callback objects as the current run keeps
        that run going; anything else abandons it and starts over.  Must be
        called from a running event loop.
        """

        if self.widget is None or self.pipeline is None:
            return None
        current = self._run
        if (
            current is not None
            and self._task is not None
            and current.properties is properties
            and current.on_marker_click is on_marker_click
        ):
            return self._task

        self._cancel_run()
        run = PipelineRun(properties, on_marker_click)
        self._run = run
        task = asyncio.get_running_loop().create_task(self._execute(self.pipeline, run))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        self._task = task
        return task

    def notify_resize(self) -> None:
        """Handle a size change of the containing element."""

        if self.loading or self.widget is None or not self.visible:
            return
        self.widget.invalidate_size()

    def set_visible(self, visible: bool) -> None:
        """Toggle visibility; a hidden map that is shown again is re-measured."""

        was_visible = self.visible
        self.visible = visible
        if visible and not was_visible and not self.loading and self.widget is not None:
            self.widget.invalidate_size()

    def _on_tiles_ready(self) -> None:
        if self.widget is not None:
            self.widget.invalidate_size()

    async def _execute(self, pipeline: MarkerPipeline, run: PipelineRun) -> List[Marker]:
        try:
            return await pipeline.run(run)
        except Exception:
            logger.exception("Error adding markers")
            return []

    def _cancel_run(self) -> None:
        if self._run is not None:
            self._run.cancel()
