from __future__ import annotations

import json
import logging
import threading
from typing import Any, Dict, Optional

import geopandas as gpd


logger = logging.getLogger(__name__)

# Natural Earth airports (points, EPSG:4326)
DEFAULT_AIRPORTS_URL = "https://d2ad6b4ur7yvpq.cloudfront.net/naturalearth-3.3.0/ne_10m_airports.geojson"
IATA_COL = "iata_code"


class AirportDataUnavailable(RuntimeError):
    pass


def _prepare(gdf: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    if gdf.empty or IATA_COL not in gdf.columns:
        raise AirportDataUnavailable(f"Airport data has no '{IATA_COL}' column.")

    if gdf.crs is not None and gdf.crs.to_epsg() != 4326:
        gdf = gdf.to_crs(epsg=4326)
    return gdf


class AirportCatalog:
    """
    Airport feature collection, loaded once on first use.

    Handed to the dispatcher explicitly so lookups read the same dataset the
    map displays. Pass `frame` to use an already loaded GeoDataFrame.
    """

    def __init__(self, source: Optional[str] = DEFAULT_AIRPORTS_URL, frame: Optional[gpd.GeoDataFrame] = None):
        self.source = source
        self._frame = _prepare(frame) if frame is not None else None
        self._lock = threading.Lock()

    def load(self) -> gpd.GeoDataFrame:
        with self._lock:
            if self._frame is not None:
                return self._frame
            if not self.source:
                raise AirportDataUnavailable("No airport data source configured.")

            try:
                gdf = gpd.read_file(self.source)
            except Exception as e:
                raise AirportDataUnavailable(f"Could not load airport data from {self.source}: {e}") from e

            gdf = _prepare(gdf)
            logger.info("Loaded %d airports from %s", len(gdf), self.source)
            self._frame = gdf
            return gdf

    def lookup(self, iata_code: str) -> Optional[Dict[str, Any]]:
        """
        Properties of the airport with this IATA code (case-insensitive), or None.
        """
        gdf = self.load()
        code = iata_code.strip().upper()
        hits = gdf[gdf[IATA_COL].astype(str).str.strip().str.upper() == code]
        if hits.empty:
            return None

        row = hits.iloc[0]
        props = json.loads(row.drop(labels=[gdf.geometry.name]).to_json())
        geom = row[gdf.geometry.name]
        if geom is not None and not geom.is_empty:
            props.setdefault("longitude", float(geom.centroid.x))
            props.setdefault("latitude", float(geom.centroid.y))
        return props
