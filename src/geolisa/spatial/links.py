"""
links.py - Centroid link lines for visualizing spatial weights

A pure projection of SpatialWeights onto the GeometrySet centroids:
one line segment per unordered neighbor pair. Nothing is recomputed.
"""
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import geopandas as gpd
    from ..data.geometry import GeometrySet
    from .weights import SpatialWeights

from typing import Dict, List, NamedTuple, Tuple

import numpy as np

from ..data.config import InvalidGeometryError


class LinkSegment(NamedTuple):
    """Line between the centroids of two neighboring features."""
    origin: int
    dest: int
    weight: float
    start: Tuple[float, float]
    end: Tuple[float, float]


def to_line_segments(spatial_weights: 'SpatialWeights',
                     geometry_set: 'GeometrySet') -> List[LinkSegment]:
    """
    Convert neighbor pairs to centroid-to-centroid segments.

    Parameters
    ----------
    spatial_weights : SpatialWeights
        Weights built from ``geometry_set``
    geometry_set : GeometrySet
        Source of the cached centroids

    Returns
    -------
    list of LinkSegment
        One segment per pair (origin, dest) with origin < dest, ordered by
        (origin, dest). ``weight`` is the origin row's weight.

    Raises
    ------
    InvalidGeometryError
        If the weights reference features the geometry set does not
        have, or a centroid is not finite.

    Examples
    --------
    >>> w = build_contiguity_weights(gs)
    >>> segments = to_line_segments(w, gs)
    >>> segments[0].start, segments[0].end
    """
    if spatial_weights.n != len(geometry_set):
        raise InvalidGeometryError(
            f"Weights cover {spatial_weights.n} features but the geometry set "
            f"has {len(geometry_set)}"
        )

    centroids = geometry_set.centroids
    segments = []
    for i, (row, wrow) in enumerate(zip(spatial_weights.neighbors, spatial_weights.weights)):
        for j, w in zip(row, wrow):
            if j <= i:
                continue
            for k in (i, j):
                if not np.isfinite(centroids[k]).all():
                    raise InvalidGeometryError("centroid is not finite", k)
            segments.append(LinkSegment(
                origin=i,
                dest=j,
                weight=w,
                start=(float(centroids[i, 0]), float(centroids[i, 1])),
                end=(float(centroids[j, 0]), float(centroids[j, 1])),
            ))
    return segments


def links_to_geodataframe(spatial_weights: 'SpatialWeights',
                          geometry_set: 'GeometrySet') -> 'gpd.GeoDataFrame':
    """
    Link segments as a GeoDataFrame of LineStrings.

    Columns: origin, dest, weight, geometry. Uses the geometry set's CRS.
    """
    import geopandas as gpd
    from shapely.geometry import LineString

    segments = to_line_segments(spatial_weights, geometry_set)
    return gpd.GeoDataFrame(
        {
            'origin': np.array([s.origin for s in segments], dtype=np.int64),
            'dest': np.array([s.dest for s in segments], dtype=np.int64),
            'weight': np.array([s.weight for s in segments], dtype=np.float64),
        },
        geometry=[LineString([s.start, s.end]) for s in segments],
        crs=geometry_set.crs,
    )


def links_to_geojson(spatial_weights: 'SpatialWeights',
                     geometry_set: 'GeometrySet') -> Dict:
    """Link segments as a GeoJSON FeatureCollection mapping."""
    features = [
        {
            'type': 'Feature',
            'geometry': {
                'type': 'LineString',
                'coordinates': [list(s.start), list(s.end)],
            },
            'properties': {'origin': s.origin, 'dest': s.dest, 'weight': s.weight},
        }
        for s in to_line_segments(spatial_weights, geometry_set)
    ]
    return {'type': 'FeatureCollection', 'features': features}
