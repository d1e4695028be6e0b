"""Base-layer supervision: primary tile provider with a one-time fallback."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import enum
import logging
from typing import Callable, Optional

from .. import settings
from .widget import MapWidget


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TileProvider:
    name: str
    url: str
    attribution: str
    max_zoom: int = 19


OSM_PROVIDER = TileProvider(
    name="OpenStreetMap",
    url="https://{s}.tile.openstreetmap.org/{z}/{x}/{y}.png",
    attribution='&copy; <a href="https://www.openstreetmap.org/copyright">OpenStreetMap</a> contributors',
)

CARTO_PROVIDER = TileProvider(
    name="CARTO Light",
    url="https://{s}.basemaps.cartocdn.com/light_all/{z}/{x}/{y}{r}.png",
    attribution=(
        '&copy; <a href="https://www.openstreetmap.org/copyright">OpenStreetMap</a> contributors '
        '&copy; <a href="https://carto.com/attributions">CARTO</a>'
    ),
)


class TileState(enum.Enum):
    LOADING = "loading"
    ACTIVE = "active"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


class TileLayerManager:
    """Keep exactly one base layer on ``widget`` and swap providers on early failure.

    More than ``error_threshold`` tile errors before any tile of the primary
    provider has loaded replaces it with ``fallback``, once.  Independently a
    safety timer reveals the map after ``safety_timeout`` seconds even when no
    tile event ever arrives.
    """

    def __init__(
        self,
        widget: MapWidget,
        primary: TileProvider = OSM_PROVIDER,
        fallback: TileProvider = CARTO_PROVIDER,
        *,
        error_threshold: int = settings.TILE_ERROR_THRESHOLD,
        safety_timeout: float = settings.TILE_SAFETY_TIMEOUT,
        on_ready: Optional[Callable[[], None]] = None,
    ) -> None:
        self.widget = widget
        self.primary = primary
        self.fallback = fallback
        self.error_threshold = error_threshold
        self.safety_timeout = safety_timeout
        self.on_ready = on_ready
        self.provider: Optional[TileProvider] = None
        self.state = TileState.LOADING
        self.error_count = 0
        self.swapped = False
        self.ready = False
        self._ever_loaded = False
        self._timer: Optional[asyncio.TimerHandle] = None

    def start(self) -> None:
        self.widget.supervise_tiles(self)
        self._attach(self.primary)

    def on_tile_load(self) -> None:
        self._ever_loaded = True
        self.state = TileState.ACTIVE
        self._finish()

    def on_tile_error(self) -> None:
        self.error_count += 1
        if self._ever_loaded:
            return
        if self.state is TileState.LOADING:
            self.state = TileState.FAILED
        if self.error_count > self.error_threshold and not self.swapped:
            self._swap_to_fallback()

    def dispose(self) -> None:
        self._cancel_timer()

    def _attach(self, provider: TileProvider) -> None:
        self.widget.add_tile_layer(provider)
        self.provider = provider
        self.state = TileState.LOADING
        self.error_count = 0
        self.ready = False
        self._schedule_timer()

    def _swap_to_fallback(self) -> None:
        logger.warning(
            "Tile provider %s failed %d times, switching to %s",
            self.provider.name if self.provider else None,
            self.error_count,
            self.fallback.name,
        )
        self._cancel_timer()
        if self.provider is not None:
            self.widget.remove_tile_layer(self.provider)
        self.swapped = True
        self._attach(self.fallback)

    def _finish(self) -> None:
        if self.ready:
            return
        self.ready = True
        self._cancel_timer()
        if self.on_ready is not None:
            self.on_ready()

    def _on_safety_timeout(self) -> None:
        self._timer = None
        if self.ready:
            return
        logger.info(
            "No tile loaded from %s after %.1fs; revealing map",
            self.provider.name if self.provider else None,
            self.safety_timeout,
        )
        if not self._ever_loaded:
            self.state = TileState.TIMED_OUT
        self._finish()

    def _schedule_timer(self) -> None:
        self._cancel_timer()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; tile safety timeout disabled")
            return
        self._timer = loop.call_later(self.safety_timeout, self._on_safety_timeout)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
