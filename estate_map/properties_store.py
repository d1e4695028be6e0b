"""Persistence helpers for marketplace listings.

Listings live in a single ``properties`` table accessed through SQLAlchemy
Core, so the same code targets SQLite during development and PostgreSQL when
deployed.  The connection string comes from ``PROPERTIES_DB_URL`` and defaults
to a SQLite file under ``estate_map/data``.  The map only ever reads from this
module; writes come from the listing API.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import json
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional
from uuid import uuid4

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    insert,
    select,
)
from sqlalchemy.engine import Engine, Row
from sqlalchemy.sql import Select

from . import settings  # noqa: F401  - primes the environment from .env


DATA_DIR = Path(__file__).resolve().parent / "data"
DEFAULT_SQLITE_PATH = DATA_DIR / "properties.db"

PROPERTY_TYPES = ("apartment", "house", "villa", "townhouse", "office")
PROPERTY_STATUSES = ("available", "sold", "rented")
SORT_ORDERS = ("newest", "price_low", "price_high")


def _build_engine() -> Engine:
    """Return the SQLAlchemy engine configured from the environment."""

    url = os.getenv("PROPERTIES_DB_URL")
    if not url:
        DATA_DIR.mkdir(parents=True, exist_ok=True)
        url = f"sqlite:///{DEFAULT_SQLITE_PATH}"  # pragma: no cover - env dependent

    connect_args: dict[str, Any] = {}
    if url.startswith("sqlite"):
        connect_args["check_same_thread"] = False

    return create_engine(url, future=True, connect_args=connect_args)


engine: Engine = _build_engine()
metadata = MetaData()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


properties_table = Table(
    "properties",
    metadata,
    Column("id", String, primary_key=True),
    Column("title", String, nullable=False),
    Column("location", String, nullable=False),
    Column("price", BigInteger, nullable=False),
    Column("property_type", String, nullable=False),
    Column("status", String, nullable=False, server_default="available"),
    Column("bedrooms", Integer, nullable=True),
    Column("bathrooms", Integer, nullable=True),
    Column("area", Float, nullable=False),
    Column("description", Text, nullable=True),
    Column("images", Text, nullable=True),
    Column("created_at", DateTime, nullable=False, default=_utcnow),
)


@dataclass(frozen=True, slots=True)
class PropertyRecord:
    """Typed, read-only view of a listing row.

    ``location`` is free text ("Quận 1, TP.HCM") rather than a structured
    address and is the only input used for geocoding.
    """

    id: str
    title: str
    location: str
    price: int
    property_type: str
    area: float
    status: str = "available"
    bedrooms: Optional[int] = None
    bathrooms: Optional[int] = None
    description: Optional[str] = None
    images: tuple[str, ...] = field(default_factory=tuple)
    created_at: Optional[datetime] = None

    def to_api(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "location": self.location,
            "price": self.price,
            "propertyType": self.property_type,
            "status": self.status,
            "bedrooms": self.bedrooms,
            "bathrooms": self.bathrooms,
            "area": self.area,
            "description": self.description,
            "images": list(self.images),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


def init_db() -> None:
    """Create the listings table when it does not exist yet."""

    metadata.create_all(engine)


def list_properties(
    *,
    status: Optional[str] = "available",
    property_type: Optional[str] = None,
    min_price: Optional[int] = None,
    max_price: Optional[int] = None,
    bedrooms: Optional[int] = None,
    bathrooms: Optional[int] = None,
    sort: str = "newest",
) -> list[PropertyRecord]:
    """Return listings matching the filters, in display order.

    ``sort`` is one of ``newest`` (default), ``price_low`` or ``price_high``;
    unknown values fall back to ``newest``.
    """

    c = properties_table.c
    stmt: Select = select(properties_table)
    if status:
        stmt = stmt.where(c.status == status)
    if property_type:
        stmt = stmt.where(c.property_type == property_type)
    if min_price is not None:
        stmt = stmt.where(c.price >= min_price)
    if max_price is not None:
        stmt = stmt.where(c.price <= max_price)
    if bedrooms is not None:
        stmt = stmt.where(c.bedrooms == bedrooms)
    if bathrooms is not None:
        stmt = stmt.where(c.bathrooms == bathrooms)

    if sort == "price_low":
        stmt = stmt.order_by(c.price.asc(), c.id.asc())
    elif sort == "price_high":
        stmt = stmt.order_by(c.price.desc(), c.id.asc())
    else:
        stmt = stmt.order_by(c.created_at.desc(), c.id.asc())

    with engine.connect() as conn:
        rows = conn.execute(stmt).all()
    return [_row_to_record(row) for row in rows]


def get_property(property_id: str) -> PropertyRecord:
    """Return the listing ``property_id`` or raise ``KeyError``."""

    stmt = select(properties_table).where(properties_table.c.id == property_id)
    with engine.connect() as conn:
        row = conn.execute(stmt).first()
    if row is None:
        raise KeyError(property_id)
    return _row_to_record(row)


def create_property(payload: Mapping[str, Any]) -> PropertyRecord:
    """Insert a listing and return the stored record."""

    data = _normalise_payload(payload)
    with engine.begin() as conn:
        conn.execute(insert(properties_table).values(**data))
        row = conn.execute(
            select(properties_table).where(properties_table.c.id == data["id"])
        ).one()
    return _row_to_record(row)


def _row_to_record(row: Row[Any]) -> PropertyRecord:
    data = dict(row._mapping)
    images = data.pop("images", None)
    parsed: List[str] = []
    if isinstance(images, str) and images:
        try:
            loaded = json.loads(images)
        except json.JSONDecodeError:  # pragma: no cover - defensive
            loaded = []
        if isinstance(loaded, list):
            parsed = [str(item) for item in loaded]
    return PropertyRecord(images=tuple(parsed), **data)


def _normalise_payload(payload: Mapping[str, Any]) -> Dict[str, Any]:
    data = dict(payload)
    property_type = _require_str(data.get("propertyType") or data.get("property_type"), "Property type")
    if property_type not in PROPERTY_TYPES:
        raise ValueError(f"Unknown property type: {property_type}")
    status = str(data.get("status") or "available")
    if status not in PROPERTY_STATUSES:
        raise ValueError(f"Unknown status: {status}")

    price = _maybe_int(data.get("price"))
    if price is None or price < 0:
        raise ValueError("Price must be a non-negative integer")
    area = _maybe_float(data.get("area"))
    if area is None or area <= 0:
        raise ValueError("Area must be positive")

    images = data.get("images") or []
    return {
        "id": str(data.get("id") or uuid4()),
        "title": _require_str(data.get("title"), "Title"),
        "location": _require_str(data.get("location"), "Location"),
        "price": price,
        "property_type": property_type,
        "status": status,
        "bedrooms": _maybe_int(data.get("bedrooms")),
        "bathrooms": _maybe_int(data.get("bathrooms")),
        "area": area,
        "description": data.get("description") or None,
        "images": json.dumps([str(item) for item in images]),
        "created_at": data.get("createdAt") or _utcnow(),
    }


def _require_str(value: Any, label: str) -> str:
    if value is None or not str(value).strip():
        raise ValueError(f"{label} is required")
    return str(value).strip()


def _maybe_float(value: Any) -> Optional[float]:
    try:
        return float(value) if value not in (None, "") else None
    except (TypeError, ValueError):
        return None


def _maybe_int(value: Any) -> Optional[int]:
    try:
        return int(float(value)) if value not in (None, "") else None
    except (TypeError, ValueError):
        return None


# Initialise the database when the module is imported.
init_db()
