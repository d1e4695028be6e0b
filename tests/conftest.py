import importlib
import os
import sys
import tempfile
from pathlib import Path

import pytest

# Ensure the project root is on ``sys.path`` so ``estate_map`` can be imported
# when tests are executed from the ``tests`` directory.
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

# The listings store connects on import; keep it away from the developer database.
os.environ.setdefault(
    "PROPERTIES_DB_URL", f"sqlite:///{Path(tempfile.mkdtemp()) / 'properties.db'}"
)

from estate_map.properties_store import PropertyRecord  # noqa: E402


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload if payload is not None else []

    @property
    def ok(self):
        return 200 <= self.status_code < 400

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakeSession:
    """Stand-in for ``requests.Session`` answering Nominatim-style searches.

    ``places`` maps a query string to ``(lat, lon)``; anything else returns an
    empty result list.  Every query issued is recorded in ``queries``.
    """

    def __init__(self, places=None, failures=None, status_code=200):
        self.places = dict(places or {})
        self.failures = dict(failures or {})
        self.status_code = status_code
        self.queries = []
        self.calls = []

    def get(self, url, params=None, headers=None, timeout=None):
        query = params["q"]
        self.queries.append(query)
        self.calls.append({"url": url, "params": params, "headers": headers, "timeout": timeout})
        if query in self.failures:
            raise self.failures[query]
        if self.status_code != 200:
            return FakeResponse(self.status_code, [])
        if query in self.places:
            lat, lon = self.places[query]
            return FakeResponse(200, [{"lat": str(lat), "lon": str(lon), "display_name": query}])
        return FakeResponse(200, [])


def make_property(id, location, **overrides):
    data = {
        "id": id,
        "title": f"Căn hộ {id}",
        "location": location,
        "price": 1_500_000_000,
        "property_type": "apartment",
        "area": 75.0,
        "bedrooms": 2,
        "bathrooms": 2,
    }
    data.update(overrides)
    return PropertyRecord(**data)


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def store(tmp_path, monkeypatch):
    """Listings store bound to a fresh SQLite file for the test."""

    monkeypatch.setenv("PROPERTIES_DB_URL", f"sqlite:///{tmp_path}/properties.db")
    import estate_map.properties_store as properties_store

    importlib.reload(properties_store)
    return properties_store
