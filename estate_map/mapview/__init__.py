from .geocoding import Coordinate, GeocodeCache, GeocodeResult, GeocodingClient, qualify_query
from .widget import Bounds, FoliumMapWidget, MapElement, MapWidget
from .tiles import CARTO_PROVIDER, OSM_PROVIDER, TileLayerManager, TileProvider, TileState
from .markers import Marker, MarkerPipeline, PipelineRun, build_popup_html
from .container import (
    INIT_ERROR_MESSAGE,
    MapContainer,
    MapContainerMissingError,
    MapInitializationError,
)

__all__ = [
    "Bounds",
    "CARTO_PROVIDER",
    "Coordinate",
    "FoliumMapWidget",
    "GeocodeCache",
    "GeocodeResult",
    "GeocodingClient",
    "INIT_ERROR_MESSAGE",
    "MapContainer",
    "MapContainerMissingError",
    "MapElement",
    "MapInitializationError",
    "MapWidget",
    "Marker",
    "MarkerPipeline",
    "OSM_PROVIDER",
    "PipelineRun",
    "TileLayerManager",
    "TileProvider",
    "TileState",
    "build_popup_html",
    "qualify_query",
]
