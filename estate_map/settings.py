"""Runtime configuration for the marketplace map service.

Values come from the environment, optionally primed from a ``.env`` file at
the project root so local development does not need exported variables.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parent.parent / ".env")


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


GEOCODER_URL = os.getenv("GEOCODER_URL", "https://nominatim.openstreetmap.org/search")
GEOCODER_USER_AGENT = os.getenv("GEOCODER_USER_AGENT", "estate-map/0.1")
# Appended to every query so identically named places resolve inside the country.
GEOCODER_COUNTRY = os.getenv("GEOCODER_COUNTRY", "Vietnam")
GEOCODER_TIMEOUT = _float_env("GEOCODER_TIMEOUT", 5.0)
GEOCODER_PACE_SECONDS = _float_env("GEOCODER_PACE_SECONDS", 0.3)

TILE_ERROR_THRESHOLD = 2
TILE_SAFETY_TIMEOUT = _float_env("TILE_SAFETY_TIMEOUT", 4.0)

# Hanoi
MAP_DEFAULT_CENTER = (21.0278, 105.8342)
MAP_DEFAULT_ZOOM = 11
MAP_DETAIL_ZOOM = 14
MAP_FIT_PADDING = (50, 50)
MAP_FIT_MAX_ZOOM = int(_float_env("MAP_FIT_MAX_ZOOM", 15))
