"""
spatial - Spatial weights and local autocorrelation for geolisa

index : Bounding-box candidate index
    NeighborIndex
weights : Weights construction
    build_contiguity_weights, build_weights, build_distance_weights,
    SpatialWeights
links : Visualization export of neighbor links
    to_line_segments, links_to_geodataframe, links_to_geojson
lisa : Local Moran's I with permutation inference
    local_moran, compute_lisa, LISAResult
shared : Utilities shared across modules

Typical workflow
----------------
>>> import geolisa as gl
>>>
>>> # 1. Load polygons
>>> gs = gl.load_features(gdf)
>>>
>>> # 2. Build row-standardized queen weights
>>> w = gl.spatial.build_contiguity_weights(gs, contiguity='queen')
>>>
>>> # 3. Export neighbor links for the map
>>> links = gl.spatial.links_to_geodataframe(w, gs)
>>>
>>> # 4. Local Moran's I
>>> lisa = gl.spatial.local_moran(w, gs.get_values('income'), seed=1)
>>> lisa.to_frame()
"""

from . import shared

# Index
from .index import NeighborIndex

# Weights
from .weights import (
    SpatialWeights,
    build_contiguity_weights,
    build_distance_weights,
    build_weights,
    shares_edge,
)

# Links
from .links import (
    LinkSegment,
    links_to_geodataframe,
    links_to_geojson,
    to_line_segments,
)

# LISA
from .lisa import (
    QUADRANTS,
    LISAResult,
    classify_quadrants,
    compute_lisa,
    local_moran,
)

__all__ = [
    # Index
    "NeighborIndex",
    # Weights
    "SpatialWeights",
    "build_contiguity_weights",
    "build_weights",
    "build_distance_weights",
    "shares_edge",
    # Links
    "LinkSegment",
    "to_line_segments",
    "links_to_geodataframe",
    "links_to_geojson",
    # LISA
    "QUADRANTS",
    "LISAResult",
    "classify_quadrants",
    "compute_lisa",
    "local_moran",
    # Submodules
    "shared",
]
