"""FastAPI router for marketplace listings."""

from __future__ import annotations

from typing import Any, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from . import properties_store


router = APIRouter(prefix="/properties", tags=["properties"])

PropertyType = Literal["apartment", "house", "villa", "townhouse", "office"]
SortOrder = Literal["newest", "price_low", "price_high"]


class PropertyCreate(BaseModel):
    title: str = Field(..., min_length=1)
    location: str = Field(..., min_length=1)
    price: int = Field(..., ge=0)
    propertyType: PropertyType
    area: float = Field(..., gt=0)
    status: Literal["available", "sold", "rented"] = "available"
    bedrooms: Optional[int] = Field(None, ge=0)
    bathrooms: Optional[int] = Field(None, ge=0)
    description: Optional[str] = None
    images: list[str] = Field(default_factory=list)


class Property(PropertyCreate):
    id: str
    createdAt: Optional[str] = None


class PropertyFilters(BaseModel):
    """Query filters shared by the listing and map endpoints."""

    property_type: Optional[PropertyType] = None
    min_price: Optional[int] = None
    max_price: Optional[int] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[int] = None
    sort: SortOrder = "newest"

    def fetch(self) -> list[properties_store.PropertyRecord]:
        return properties_store.list_properties(**self.model_dump())


def property_filters(
    property_type: Optional[PropertyType] = None,
    min_price: Optional[int] = Query(None, ge=0),
    max_price: Optional[int] = Query(None, ge=0),
    bedrooms: Optional[int] = Query(None, ge=0),
    bathrooms: Optional[int] = Query(None, ge=0),
    sort: SortOrder = "newest",
) -> PropertyFilters:
    return PropertyFilters(
        property_type=property_type,
        min_price=min_price,
        max_price=max_price,
        bedrooms=bedrooms,
        bathrooms=bathrooms,
        sort=sort,
    )


@router.get("", response_model=list[Property])
def list_properties(filters: PropertyFilters = Depends(property_filters)) -> list[dict[str, Any]]:
    """Return available listings matching the filters."""

    return [record.to_api() for record in filters.fetch()]


@router.get("/{property_id}", response_model=Property)
def get_property(property_id: str) -> dict[str, Any]:
    try:
        return properties_store.get_property(property_id).to_api()
    except KeyError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Property not found") from exc


@router.post("", response_model=Property, status_code=status.HTTP_201_CREATED)
def create_property(payload: PropertyCreate) -> dict[str, Any]:
    try:
        return properties_store.create_property(payload.model_dump()).to_api()
    except ValueError as exc:  # validation from persistence layer
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
