from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pyproj import Geod

from mapchat.airports import AirportCatalog, AirportDataUnavailable
from mapchat.errors import InvalidArgument
from mapchat.map_state import DEFAULT_ZOOM, VisualizationState
from mapchat.wkt import GeometryError, parse_wkt


logger = logging.getLogger(__name__)

_GEOD = Geod(ellps="WGS84")
_CARTO_MAP_ID_RE = re.compile(r"/(viewer|builder|map)/([a-f0-9-]+)", re.IGNORECASE)

EFFECT_RANGES = {
    "brightness": (-1.0, 1.0),
    "contrast": (-1.0, 1.0),
    "sepia": (0.0, 1.0),
    "vignetteSize": (0.0, 1.0),
    "vignetteAmount": (0.0, 1.0),
    "ink": (0.0, 1.0),
    "noise": (0.0, 1.0),
}


@dataclass
class ToolContext:
    state: VisualizationState
    airports: Optional[AirportCatalog] = None


def _check_range(param: str, value: float, low: float, high: float) -> None:
    if not low <= value <= high:
        raise InvalidArgument(param, f"must be between {low:g} and {high:g}, got {value:g}")


# ==================================================
# View
# ==================================================

def zoom_to_home(ctx: ToolContext) -> str:
    ctx.state.fly_home()
    return "Successfully zoomed to London coordinates."


def zoom_to_location(
    ctx: ToolContext,
    *,
    longitude: float,
    latitude: float,
    locationName: str,
    zoom: Optional[float] = None,
) -> str:
    _check_range("longitude", longitude, -180, 180)
    _check_range("latitude", latitude, -90, 90)
    if zoom is None:
        zoom = DEFAULT_ZOOM
    _check_range("zoom", zoom, 0, 24)

    ctx.state.set_view_position(longitude, latitude, zoom)
    return f"Successfully zoomed to {locationName} at coordinates {latitude}, {longitude}."


# ==================================================
# Data lookups
# ==================================================

def lookup_airport(ctx: ToolContext, *, iataCode: str) -> str:
    if ctx.airports is None:
        return "No airport data available. Please wait for the map to load."

    try:
        airport = ctx.airports.lookup(iataCode)
    except AirportDataUnavailable as e:
        logger.warning("Airport lookup failed: %s", e)
        return "No airport data available. Please wait for the map to load."

    if airport is None:
        return f"No airport found with IATA code: {iataCode}"
    return f"Airport information for {iataCode}:\n```json\n{json.dumps(airport, indent=2)}\n```"


# ==================================================
# Geometry
# ==================================================

def _validate_color(color: Any) -> List[int]:
    if not isinstance(color, (list, tuple)) or len(color) != 4:
        raise InvalidArgument("color", "must be an RGBA array of 4 numbers")
    rgba = []
    for c in color:
        if isinstance(c, bool) or not isinstance(c, (int, float)) or not 0 <= c <= 255:
            raise InvalidArgument("color", "RGBA values must be numbers between 0 and 255")
        rgba.append(int(c))
    return rgba


def draw_wkt_geometry(
    ctx: ToolContext,
    *,
    wkt: str,
    name: Optional[str] = None,
    color: Any = None,
) -> str:
    try:
        geometry = parse_wkt(wkt)
    except GeometryError as e:
        raise InvalidArgument("wkt", str(e)) from e

    rgba = _validate_color(color) if color is not None else None
    ctx.state.set_drawn_geometry(geometry, name=name, color=rgba)

    name_str = f' "{name}"' if name else ""
    return f"Successfully drew {geometry.geom_type.upper()}{name_str} on the map."


def get_drawn_region(ctx: ToolContext) -> str:
    drawn = ctx.state.drawn_geometry
    if drawn is None:
        return (
            "Error: No region has been drawn on the map yet. "
            'Please ask the user to draw a region first using the "Draw Region" button.'
        )

    shape = drawn.geometry.to_shapely()
    area_m2, _ = _GEOD.geometry_area_perimeter(shape)
    min_lon, min_lat, max_lon, max_lat = shape.bounds

    return json.dumps({
        "wkt": drawn.wkt,
        "name": drawn.name or "User drawn region",
        "area_km2": round(abs(area_m2) / 1e6, 6),
        "bounds": [min_lon, min_lat, max_lon, max_lat],
        "message": "Successfully retrieved the drawn region. You can now use this WKT geometry with MCP tools like get_area.",
    })


# ==================================================
# External maps
# ==================================================

def add_carto_map(ctx: ToolContext, *, mapUrl: str) -> str:
    match = _CARTO_MAP_ID_RE.search(mapUrl)
    if not match:
        raise InvalidArgument(
            "mapUrl",
            "expected https://[domain].app.carto.com/viewer/[map-id], /builder/[map-id] or /map/[map-id]",
        )

    map_id = match.group(2)
    ctx.state.set_external_layers(map_id, [{"type": "carto", "mapId": map_id, "sourceUrl": mapUrl}])
    return f"Successfully added CARTO map (ID: {map_id}) to the visualization. The map layers are now being loaded."


# ==================================================
# Post-processing
# ==================================================

def _describe_effects(effects: Dict[str, Any]) -> List[str]:
    parts = []
    for key, value in effects.items():
        if key == "vignette":
            for sub in ("size", "amount"):
                if sub in value:
                    parts.append(f"vignette {sub}: {value[sub]:g}")
        else:
            parts.append(f"{key}: {value:g}")
    return parts


def apply_post_process_effect(
    ctx: ToolContext,
    *,
    brightness: Optional[float] = None,
    contrast: Optional[float] = None,
    sepia: Optional[float] = None,
    vignetteSize: Optional[float] = None,
    vignetteAmount: Optional[float] = None,
    ink: Optional[float] = None,
    noise: Optional[float] = None,
    reset: bool = False,
) -> str:
    given = {
        "brightness": brightness,
        "contrast": contrast,
        "sepia": sepia,
        "vignetteSize": vignetteSize,
        "vignetteAmount": vignetteAmount,
        "ink": ink,
        "noise": noise,
    }
    given = {k: v for k, v in given.items() if v is not None}
    for param, value in given.items():
        _check_range(param, value, *EFFECT_RANGES[param])

    delta: Dict[str, Any] = {k: v for k, v in given.items() if not k.startswith("vignette")}
    vignette = {}
    if "vignetteSize" in given:
        vignette["size"] = given["vignetteSize"]
    if "vignetteAmount" in given:
        vignette["amount"] = given["vignetteAmount"]
    if vignette:
        delta["vignette"] = vignette

    effects = ctx.state.apply_post_effects(delta, reset=bool(reset))
    active = _describe_effects(effects)
    if not active:
        return "Post-process effects reset to defaults; no effects are active."
    return f"Successfully applied post-process effects. Active effects: {', '.join(active)}"
