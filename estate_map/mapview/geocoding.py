"""Resolve free-text listing locations to coordinates.

Lookups go to a Nominatim-compatible search endpoint.  Every answer, including
"not found", is remembered in a :class:`GeocodeCache` owned by the map session
so the same text never hits the network twice.  Network and parsing failures
are logged and reported as "not found": a listing without a marker is an
acceptable outcome for the map, a crashed map is not.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
from typing import Any, Dict, Mapping, NamedTuple, Optional, Sequence

import requests

from .. import settings


LOGGER = logging.getLogger(__name__)


class Coordinate(NamedTuple):
    lat: float
    lng: float


@dataclass(frozen=True)
class GeocodeResult:
    """A cached answer; ``coordinate`` is ``None`` for a negative result."""

    coordinate: Optional[Coordinate]

    @property
    def found(self) -> bool:
        return self.coordinate is not None


class GeocodeCache:
    """Per-session memo of geocoding answers.

    There is no eviction and nothing is persisted; the cache is dropped with
    the map that owns it.
    """

    def __init__(self, initial: Mapping[str, Optional[Sequence[float]]] | None = None) -> None:
        self._entries: Dict[str, GeocodeResult] = {}
        for location, coords in (initial or {}).items():
            self.store(location, Coordinate(*coords) if coords is not None else None)

    def lookup(self, location: str) -> Optional[GeocodeResult]:
        """Return the cached result, or ``None`` when ``location`` was never resolved."""

        return self._entries.get(location)

    def store(self, location: str, coordinate: Optional[Coordinate]) -> None:
        self._entries[location] = GeocodeResult(coordinate)

    def __contains__(self, location: object) -> bool:
        return location in self._entries

    def __len__(self) -> int:
        return len(self._entries)


def qualify_query(text: str, country: str = settings.GEOCODER_COUNTRY) -> str:
    """Append ``country`` to ``text`` unless it already ends with it.

    ``"Hanoi"`` and ``"Hanoi, Vietnam"`` both become ``"Hanoi, Vietnam"`` so
    they share one cache entry.
    """

    cleaned = " ".join(text.split()).strip(" ,")
    if not country:
        return cleaned
    parts = [part.strip() for part in cleaned.split(",")]
    if parts and parts[-1].casefold() == country.casefold():
        return cleaned
    if not cleaned:
        return country
    return f"{cleaned}, {country}"


class GeocodingClient:
    """Sequential, cache-aware geocoder for one map session.

    ``session`` is the process-wide HTTP handle; anything with a
    ``requests``-style ``get`` method works.  Blocking requests run in the
    default executor so the event loop keeps servicing other work while a
    lookup is in flight.
    """

    def __init__(
        self,
        session: Any = None,
        cache: GeocodeCache | None = None,
        *,
        url: Optional[str] = None,
        country: Optional[str] = None,
        timeout: Optional[float] = None,
        pace_seconds: Optional[float] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        self.session = session if session is not None else requests.Session()
        self.cache = cache if cache is not None else GeocodeCache()
        self.url = url or settings.GEOCODER_URL
        self.country = settings.GEOCODER_COUNTRY if country is None else country
        self.timeout = settings.GEOCODER_TIMEOUT if timeout is None else timeout
        self.pace_seconds = settings.GEOCODER_PACE_SECONDS if pace_seconds is None else pace_seconds
        self.user_agent = user_agent or settings.GEOCODER_USER_AGENT
        self.request_count = 0
        # One lookup at a time per session, even across superseded pipeline runs.
        self._lock = asyncio.Lock()

    def cache_key(self, location: str) -> str:
        return qualify_query(location, self.country)

    async def resolve(self, location: str) -> Optional[Coordinate]:
        """Return coordinates for ``location`` or ``None``.

        At most two requests are issued for an unseen location: the qualified
        text and, when that finds nothing and the text has a comma, the part
        after the last comma.  The answer is cached either way.
        """

        key = self.cache_key(location)
        cached = self.cache.lookup(key)
        if cached is not None:
            return cached.coordinate

        async with self._lock:
            # An earlier holder of the lock may have resolved the same text.
            cached = self.cache.lookup(key)
            if cached is not None:
                return cached.coordinate

            if self.pace_seconds > 0:
                await asyncio.sleep(self.pace_seconds)

            loop = asyncio.get_running_loop()
            coordinate = await loop.run_in_executor(None, self._lookup_with_fallback, location, key)
            self.cache.store(key, coordinate)
            return coordinate

    def _lookup_with_fallback(self, location: str, query: str) -> Optional[Coordinate]:
        """Blocking helper executed in a thread pool."""

        results = self._search(query)
        if not results and "," in location:
            coarsest = location.rsplit(",", 1)[-1].strip()
            if coarsest:
                fallback = qualify_query(coarsest, self.country)
                LOGGER.debug("No match for %r, retrying with %r", query, fallback)
                results = self._search(fallback)
        if not results:
            return None
        try:
            first = results[0]
            return Coordinate(float(first["lat"]), float(first["lon"]))
        except (KeyError, TypeError, ValueError) as exc:
            LOGGER.warning("Malformed geocoding result for %r: %s", query, exc)
            return None

    def _search(self, query: str) -> list[Any]:
        self.request_count += 1
        try:
            response = self.session.get(
                self.url,
                params={"format": "jsonv2", "q": query, "limit": 1},
                headers={"User-Agent": self.user_agent},
                timeout=self.timeout,
            )
            if not response.ok:
                LOGGER.warning("Geocoding failed for %r: HTTP %s", query, response.status_code)
                return []
            data = response.json()
        except (requests.RequestException, ValueError) as exc:
            LOGGER.warning("Geocoding error for %r: %s", query, exc)
            return []
        if isinstance(data, dict):
            data = data.get("results")
        return list(data) if isinstance(data, list) else []

