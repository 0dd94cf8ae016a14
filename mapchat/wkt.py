from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple, Union

from shapely.geometry import MultiPolygon as ShapelyMultiPolygon
from shapely.geometry import Polygon as ShapelyPolygon


MIN_RING_POINTS = 4

_KEYWORD_RE = re.compile(r"^([A-Za-z]+)\s*(.*)$", re.DOTALL)
_NUMBER_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")


# ==================================================
# Errors
# ==================================================

class GeometryError(ValueError):
    """Base class for every WKT parsing failure."""


class UnsupportedGeometryType(GeometryError):
    def __init__(self, prefix: str):
        self.prefix = prefix
        super().__init__(
            f"Unsupported WKT geometry type: {prefix or '<empty>'}. "
            "Only POLYGON and MULTIPOLYGON are supported."
        )


class MalformedCoordinate(GeometryError):
    pass


class UnbalancedParentheses(GeometryError):
    pass


class InvalidRingSize(GeometryError):
    pass


# ==================================================
# Geometry model
# ==================================================

@dataclass(frozen=True)
class Point:
    lon: float
    lat: float


Ring = Tuple[Point, ...]


@dataclass(frozen=True)
class Polygon:
    """
    Outer ring first, holes after it.
    """
    rings: Tuple[Ring, ...]

    geom_type = "Polygon"

    @property
    def coordinates(self) -> List[List[List[float]]]:
        return [[[p.lon, p.lat] for p in ring] for ring in self.rings]

    @property
    def __geo_interface__(self) -> Dict[str, Any]:
        return {"type": self.geom_type, "coordinates": self.coordinates}

    def to_shapely(self) -> ShapelyPolygon:
        shell, *holes = [[(p.lon, p.lat) for p in ring] for ring in self.rings]
        return ShapelyPolygon(shell, holes)

    def to_wkt(self) -> str:
        return f"POLYGON{_format_rings(self.rings)}"


@dataclass(frozen=True)
class MultiPolygon:
    polygons: Tuple[Polygon, ...]

    geom_type = "MultiPolygon"

    @property
    def coordinates(self) -> List[List[List[List[float]]]]:
        return [poly.coordinates for poly in self.polygons]

    @property
    def __geo_interface__(self) -> Dict[str, Any]:
        return {"type": self.geom_type, "coordinates": self.coordinates}

    def to_shapely(self) -> ShapelyMultiPolygon:
        return ShapelyMultiPolygon([poly.to_shapely() for poly in self.polygons])

    def to_wkt(self) -> str:
        body = ", ".join(_format_rings(poly.rings) for poly in self.polygons)
        return f"MULTIPOLYGON({body})"


Geometry = Union[Polygon, MultiPolygon]


# ==================================================
# Parsing
# ==================================================

def parse_wkt(text: str) -> Geometry:
    """
    Parse a WKT POLYGON / MULTIPOLYGON literal.

    Coordinates are read as "lon lat" pairs. Raises a GeometryError subclass
    describing the first problem found; never returns a partial geometry.
    """
    if not isinstance(text, str):
        raise MalformedCoordinate(f"WKT must be a string, got {type(text).__name__}")

    trimmed = text.strip()
    match = _KEYWORD_RE.match(trimmed)
    if not match:
        raise UnsupportedGeometryType(trimmed.split("(")[0].strip())

    keyword, body = match.group(1).upper(), match.group(2).strip()
    if keyword in ("POLYGON", "MULTIPOLYGON") and body.upper() in ("", "EMPTY"):
        raise InvalidRingSize(f"{keyword} has no rings")
    if keyword == "POLYGON":
        return _parse_polygon_body(body)
    if keyword == "MULTIPOLYGON":
        return _parse_multipolygon_body(body)
    raise UnsupportedGeometryType(match.group(1))


def _parse_polygon_body(body: str) -> Polygon:
    groups = _split_groups(body)
    if len(groups) != 1:
        raise MalformedCoordinate(
            f"POLYGON must be wrapped in exactly one outer parenthesis pair, found {len(groups)}"
        )
    return _parse_rings(groups[0])


def _parse_multipolygon_body(body: str) -> MultiPolygon:
    outer = _split_groups(body)
    if len(outer) != 1:
        raise MalformedCoordinate(
            f"MULTIPOLYGON must be wrapped in exactly one outer parenthesis pair, found {len(outer)}"
        )

    polygons = tuple(_parse_rings(group) for group in _split_groups(outer[0]))
    if not polygons:
        raise InvalidRingSize("MULTIPOLYGON has no polygons")
    return MultiPolygon(polygons)


def _parse_rings(polygon_body: str) -> Polygon:
    ring_texts = _split_groups(polygon_body)
    if not ring_texts:
        raise InvalidRingSize("Polygon has no rings")
    return Polygon(tuple(_parse_ring(ring) for ring in ring_texts))


def _parse_ring(ring_text: str) -> Ring:
    if "(" in ring_text or ")" in ring_text:
        raise MalformedCoordinate(f"Unexpected nesting inside ring: ({ring_text})")
    if not ring_text.strip():
        raise InvalidRingSize("Ring is empty")

    points = tuple(_parse_pair(pair) for pair in ring_text.split(","))
    if len(points) < MIN_RING_POINTS:
        raise InvalidRingSize(
            f"Ring has {len(points)} points; at least {MIN_RING_POINTS} are required"
        )
    if points[0] != points[-1]:
        raise InvalidRingSize("Ring is not closed (first point differs from last)")
    return points


def _parse_pair(pair: str) -> Point:
    tokens = pair.split()
    if len(tokens) != 2:
        raise MalformedCoordinate(
            f"Expected 'lon lat' but got {len(tokens)} value(s): '{pair.strip()}'"
        )
    lon, lat = (_parse_number(tok) for tok in tokens)
    return Point(lon, lat)


def _parse_number(token: str) -> float:
    if not _NUMBER_RE.match(token):
        raise MalformedCoordinate(f"Not a number: '{token}'")
    value = float(token)
    if not math.isfinite(value):
        raise MalformedCoordinate(f"Coordinate is not finite: '{token}'")
    return value


def _split_groups(body: str) -> List[str]:
    """
    Partition text into its top-level parenthesised groups.

    Returns the inside of each group. Sibling groups are separated by exactly
    one comma (whitespace allowed around it); depth may never go negative and
    must end at zero.
    """
    groups: List[str] = []
    depth = 0
    start = 0
    comma_pending = False

    for i, char in enumerate(body):
        if char == "(":
            if depth == 0:
                if groups and not comma_pending:
                    raise MalformedCoordinate(f"Missing ',' between groups at offset {i}")
                comma_pending = False
                start = i + 1
            depth += 1
        elif char == ")":
            depth -= 1
            if depth < 0:
                raise UnbalancedParentheses(f"Unmatched ')' at offset {i}")
            if depth == 0:
                groups.append(body[start:i])
        elif depth == 0 and char == ",":
            if not groups or comma_pending:
                raise MalformedCoordinate(f"Unexpected ',' at offset {i}")
            comma_pending = True
        elif depth == 0 and not char.isspace():
            raise MalformedCoordinate(f"Unexpected character '{char}' at offset {i}")

    if depth != 0:
        raise UnbalancedParentheses(f"{depth} unclosed '(' in geometry text")
    if comma_pending:
        raise MalformedCoordinate("Trailing ',' after last group")
    return groups


# ==================================================
# Serialization
# ==================================================

def to_wkt(geometry: Geometry) -> str:
    return geometry.to_wkt()


def _format_number(value: float) -> str:
    if value.is_integer() and abs(value) < 1e15:
        return str(int(value))
    return repr(value)


def _format_rings(rings: Tuple[Ring, ...]) -> str:
    parts = [
        "(" + ", ".join(f"{_format_number(p.lon)} {_format_number(p.lat)}" for p in ring) + ")"
        for ring in rings
    ]
    return "(" + ", ".join(parts) + ")"


def geometry_to_geojson(geometry: Geometry) -> Dict[str, Any]:
    return dict(geometry.__geo_interface__)


def almost_equal(a: Geometry, b: Geometry, tolerance: float = 1e-9) -> bool:
    """
    Structural equality with a per-coordinate tolerance.
    """
    if a.geom_type != b.geom_type:
        return False

    a_polys = a.polygons if isinstance(a, MultiPolygon) else (a,)
    b_polys = b.polygons if isinstance(b, MultiPolygon) else (b,)
    if len(a_polys) != len(b_polys):
        return False

    for pa, pb in zip(a_polys, b_polys):
        if len(pa.rings) != len(pb.rings):
            return False
        for ra, rb in zip(pa.rings, pb.rings):
            if len(ra) != len(rb):
                return False
            for x, y in zip(ra, rb):
                if abs(x.lon - y.lon) > tolerance or abs(x.lat - y.lat) > tolerance:
                    return False
    return True
