"""
geometry.py - Normalized polygon storage for geolisa

GeometrySet holds the input polygons in feature order together with
per-feature centroids and bounding boxes. Centroids and bounding boxes
are computed once at load time and never recomputed.
"""
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import geopandas as gpd

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, List, Optional

import numpy as np
import pandas as pd
import shapely
from shapely.errors import ShapelyError
from shapely.geometry import shape
from shapely.geometry.base import BaseGeometry

from .config import InvalidGeometryError

logger = logging.getLogger(__name__)

POLYGON_TYPES = ("Polygon", "MultiPolygon")


@dataclass(frozen=True, eq=False)
class GeometrySet:
    """
    Immutable polygon collection aligned to input feature order.

    Attributes
    ----------
    geometries : np.ndarray
        Object array of shapely Polygon / MultiPolygon, one per feature
    centroids : np.ndarray
        Area-weighted centroids (n_features × 2)
    bounds : np.ndarray
        Axis-aligned bounding boxes (n_features × 4): minx, miny, maxx, maxy
    properties : pd.DataFrame
        Feature attributes, one row per feature, RangeIndex
    ids : pd.Index
        Caller identifiers aligned to feature order
    crs : object, optional
        Coordinate reference system carried over from a GeoDataFrame
    """
    geometries: np.ndarray
    centroids: np.ndarray
    bounds: np.ndarray
    properties: pd.DataFrame
    ids: pd.Index
    crs: Any = None

    def __post_init__(self):
        for arr in (self.geometries, self.centroids, self.bounds):
            arr.flags.writeable = False

    def __len__(self) -> int:
        return len(self.geometries)

    @property
    def n_features(self) -> int:
        return len(self.geometries)

    @classmethod
    def load(cls, features, id_column: Optional[str] = None) -> 'GeometrySet':
        """Alias for :func:`load_features`."""
        return load_features(features, id_column=id_column)

    def rings(self, i: int) -> List[np.ndarray]:
        """Closed coordinate arrays (m × 2) for every ring of feature i."""
        return _ring_coords(self.geometries[i])

    def get_values(self, column: str) -> np.ndarray:
        """
        Extract one numeric attribute column in feature order.

        Entries that are missing or not numeric become NaN.
        """
        if column not in self.properties.columns:
            raise ValueError(f"'{column}' not found in feature properties")
        return pd.to_numeric(self.properties[column], errors='coerce').to_numpy(dtype=np.float64)

    def to_geopandas(self, include_properties: bool = True) -> 'gpd.GeoDataFrame':
        """Convert to a GeoDataFrame indexed by feature ids."""
        import geopandas as gpd

        data = self.properties.copy() if include_properties else pd.DataFrame(index=self.properties.index)
        gdf = gpd.GeoDataFrame(data, geometry=list(self.geometries), crs=self.crs)
        gdf.index = self.ids
        return gdf


def _parts(geom: BaseGeometry) -> list:
    if geom.geom_type == "MultiPolygon":
        return list(geom.geoms)
    return [geom]


def _ring_coords(geom: BaseGeometry) -> List[np.ndarray]:
    rings = []
    for part in _parts(geom):
        rings.append(np.asarray(part.exterior.coords)[:, :2])
        for interior in part.interiors:
            rings.append(np.asarray(interior.coords)[:, :2])
    return rings


def _validate(geom: Optional[BaseGeometry], index: int) -> None:
    if geom is None:
        raise InvalidGeometryError("missing geometry", index)
    if geom.geom_type not in POLYGON_TYPES:
        raise InvalidGeometryError(
            f"expected Polygon or MultiPolygon, got {geom.geom_type}", index
        )
    if geom.is_empty:
        raise InvalidGeometryError("empty geometry", index)

    for ring in _ring_coords(geom):
        if not np.isfinite(ring).all():
            raise InvalidGeometryError("ring has non-finite coordinates", index)
        n_distinct = len(np.unique(ring, axis=0))
        if n_distinct < 3:
            raise InvalidGeometryError(
                f"degenerate ring with {n_distinct} distinct points", index
            )


def _to_shapely(obj: Any, index: int) -> Optional[BaseGeometry]:
    """Convert a GeoJSON geometry mapping or shapely object to shapely."""
    if obj is None or isinstance(obj, BaseGeometry):
        return obj
    if isinstance(obj, Mapping):
        try:
            return shape(obj)
        except (ValueError, TypeError, KeyError, AttributeError, ShapelyError) as e:
            raise InvalidGeometryError(f"could not build geometry ({e})", index) from e
    raise InvalidGeometryError(f"unsupported geometry object {type(obj).__name__}", index)


def _split_features(features) -> tuple[list, pd.DataFrame, Optional[pd.Index], Any]:
    """Return (geometries, properties, ids, crs) for any supported input."""
    import geopandas as gpd

    if isinstance(features, gpd.GeoDataFrame):
        geom_col = features.geometry.name
        props = pd.DataFrame(features.drop(columns=geom_col)).reset_index(drop=True)
        return list(features.geometry.values), props, features.index.copy(), features.crs

    if isinstance(features, gpd.GeoSeries):
        props = pd.DataFrame(index=pd.RangeIndex(len(features)))
        return list(features.values), props, features.index.copy(), features.crs

    if isinstance(features, np.ndarray):
        features = list(features)

    if isinstance(features, Mapping):
        if features.get("type") != "FeatureCollection":
            raise InvalidGeometryError(
                f"expected a FeatureCollection mapping, got type '{features.get('type')}'"
            )
        features = features.get("features", [])

    if not isinstance(features, Sequence) or isinstance(features, (str, bytes)):
        raise TypeError(
            "features must be a GeoDataFrame, a FeatureCollection mapping, "
            "or a sequence of features / geometries"
        )

    geoms = []
    records = []
    for i, item in enumerate(features):
        if isinstance(item, Mapping) and item.get("type") == "Feature":
            geoms.append(_to_shapely(item.get("geometry"), i))
            records.append(dict(item.get("properties") or {}))
        else:
            geoms.append(_to_shapely(item, i))
            records.append({})

    props = pd.DataFrame(records, index=pd.RangeIndex(len(records)))
    return geoms, props, None, None


def load_features(features, id_column: Optional[str] = None) -> GeometrySet:
    """
    Load polygon features into an immutable GeometrySet.

    Parameters
    ----------
    features : GeoDataFrame, mapping or sequence
        One of:
        - geopandas GeoDataFrame with Polygon/MultiPolygon geometry
        - GeoJSON FeatureCollection mapping
        - sequence of GeoJSON Feature mappings
        - sequence of shapely geometries or GeoJSON geometry mappings
    id_column : str, optional
        Property to use as feature identifier. Defaults to the
        GeoDataFrame index, or to positions for other inputs.

    Returns
    -------
    GeometrySet

    Raises
    ------
    InvalidGeometryError
        If any feature is missing its geometry, is not a polygon or
        multipolygon, is empty, or has a ring with fewer than 3 distinct points.

    Examples
    --------
    >>> gdf = geopandas.read_file('counties.geojson')
    >>> gs = load_features(gdf)
    >>> values = gs.get_values('median_income')
    """
    geoms, props, ids, crs = _split_features(features)

    for i, geom in enumerate(geoms):
        _validate(geom, i)

    if id_column is not None:
        if id_column not in props.columns:
            raise ValueError(f"'{id_column}' not found in feature properties")
        ids = pd.Index(props[id_column])
    elif ids is None:
        ids = pd.RangeIndex(len(geoms))

    geometries = np.empty(len(geoms), dtype=object)
    geometries[:] = geoms

    if len(geoms) > 0:
        centroid_points = shapely.centroid(geometries)
        centroids = np.column_stack([
            shapely.get_x(centroid_points),
            shapely.get_y(centroid_points),
        ]).astype(np.float64)
        bounds = shapely.bounds(geometries).astype(np.float64)
    else:
        centroids = np.empty((0, 2), dtype=np.float64)
        bounds = np.empty((0, 4), dtype=np.float64)

    n_multi = sum(g.geom_type == "MultiPolygon" for g in geoms)
    logger.info(f"[GeometrySet] ✓ Loaded {len(geoms)} features ({n_multi} multipolygons)")

    return GeometrySet(
        geometries=geometries,
        centroids=centroids,
        bounds=bounds,
        properties=props,
        ids=ids,
        crs=crs,
    )
