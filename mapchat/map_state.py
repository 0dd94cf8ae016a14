from __future__ import annotations

import copy
import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from mapchat.wkt import Geometry, geometry_to_geojson


logger = logging.getLogger(__name__)

# London (lon, lat)
HOME_VIEW = (-0.1276, 51.5074)
DEFAULT_ZOOM = 10
DEFAULT_FILL_COLOR = (0, 100, 200, 100)

SCALAR_EFFECTS = ("brightness", "contrast", "sepia", "ink", "noise")
VIGNETTE_FIELDS = ("size", "amount")


@dataclass(frozen=True)
class ViewPosition:
    lon: float
    lat: float
    zoom: float = DEFAULT_ZOOM


@dataclass(frozen=True)
class DrawnGeometry:
    geometry: Geometry
    name: Optional[str]
    color: Tuple[int, int, int, int]

    @property
    def wkt(self) -> str:
        return self.geometry.to_wkt()


class VisualizationState:
    """
    Versioned store of everything the map renders.

    Every mutation runs under the instance lock and bumps `version`;
    readers get copies, never the live containers.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._version = 0
        self._view: Optional[ViewPosition] = None
        self._drawn: Optional[DrawnGeometry] = None
        self._layer_source: Optional[str] = None
        self._layers: List[Dict[str, Any]] = []
        self._effects: Dict[str, Any] = {}

    # -----------------------------
    # Readers
    # -----------------------------
    @property
    def version(self) -> int:
        with self._lock:
            return self._version

    @property
    def view_position(self) -> Optional[ViewPosition]:
        with self._lock:
            return self._view

    @property
    def drawn_geometry(self) -> Optional[DrawnGeometry]:
        with self._lock:
            return self._drawn

    @property
    def external_layers(self) -> Tuple[Optional[str], List[Dict[str, Any]]]:
        with self._lock:
            return self._layer_source, copy.deepcopy(self._layers)

    @property
    def post_effects(self) -> Dict[str, Any]:
        with self._lock:
            return copy.deepcopy(self._effects)

    def snapshot(self) -> Dict[str, Any]:
        """
        JSON-ready copy of the whole state for the renderer.
        """
        with self._lock:
            drawn = None
            if self._drawn is not None:
                drawn = {
                    "wkt": self._drawn.wkt,
                    "name": self._drawn.name,
                    "color": list(self._drawn.color),
                    "geojson": geometry_to_geojson(self._drawn.geometry),
                }
            view = None
            if self._view is not None:
                view = {"longitude": self._view.lon, "latitude": self._view.lat, "zoom": self._view.zoom}
            return {
                "version": self._version,
                "viewState": view,
                "drawnGeometry": drawn,
                "externalLayers": {"id": self._layer_source, "layers": copy.deepcopy(self._layers)},
                "postProcessEffect": copy.deepcopy(self._effects),
            }

    # -----------------------------
    # Mutations
    # -----------------------------
    def set_view_position(self, lon: float, lat: float, zoom: float = DEFAULT_ZOOM) -> ViewPosition:
        view = ViewPosition(float(lon), float(lat), float(zoom))
        with self._lock:
            self._view = view
            self._version += 1
        logger.debug("View position set: %s", view)
        return view

    def fly_home(self) -> ViewPosition:
        return self.set_view_position(*HOME_VIEW, zoom=DEFAULT_ZOOM)

    def set_drawn_geometry(
        self,
        geometry: Optional[Geometry],
        name: Optional[str] = None,
        color: Optional[Sequence[int]] = None,
    ) -> Optional[DrawnGeometry]:
        drawn = None
        if geometry is not None:
            rgba = tuple(int(c) for c in (color if color is not None else DEFAULT_FILL_COLOR))
            drawn = DrawnGeometry(geometry, name, rgba)

        with self._lock:
            self._drawn = drawn
            self._version += 1
        logger.debug("Drawn geometry %s", "cleared" if drawn is None else f"set ({geometry.geom_type})")
        return drawn

    def set_external_layers(self, source_id: str, layers: Sequence[Mapping[str, Any]]) -> None:
        new_layers = [dict(layer) for layer in layers]
        with self._lock:
            self._layer_source = source_id
            self._layers = new_layers
            self._version += 1
        logger.debug("External layers from %s: %d layer(s)", source_id, len(new_layers))

    def apply_post_effects(self, delta: Mapping[str, Any], reset: bool = False) -> Dict[str, Any]:
        """
        Merge effect magnitudes into the current effect map.

        A neutral magnitude (0, or a vignette with size and amount both 0)
        removes the effect. Vignette size/amount merge independently.
        Returns a copy of the resulting effect map.
        """
        with self._lock:
            effects = {} if reset else copy.deepcopy(self._effects)

            for key, value in delta.items():
                if key == "vignette":
                    _merge_vignette(effects, value or {})
                elif key in SCALAR_EFFECTS:
                    if value == 0:
                        effects.pop(key, None)
                    else:
                        effects[key] = value
                else:
                    raise KeyError(f"Unknown post-process effect: {key}")

            self._effects = effects
            self._version += 1
            result = copy.deepcopy(effects)

        logger.debug("Post effects now: %s", result)
        return result

    def reset(self) -> None:
        with self._lock:
            self._view = None
            self._drawn = None
            self._layer_source = None
            self._layers = []
            self._effects = {}
            self._version += 1


def _merge_vignette(effects: Dict[str, Any], delta: Mapping[str, Any]) -> None:
    vignette = dict(effects.get("vignette", {}))
    for sub in VIGNETTE_FIELDS:
        if sub in delta:
            vignette[sub] = delta[sub]

    if all(not vignette.get(sub) for sub in VIGNETTE_FIELDS):
        effects.pop("vignette", None)
    else:
        effects["vignette"] = vignette
