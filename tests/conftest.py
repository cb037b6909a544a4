"""
conftest.py - Shared test fixtures for geolisa

pytest reads this file before running any test. Every fixture defined
here is injected into a test that names it as an argument.

The layers are tiny on purpose: every neighbor count and every LISA
quadrant can be worked out by hand.
"""

import numpy as np
import pytest
from shapely.geometry import MultiPolygon, box

from geolisa.data.geometry import load_features

# ===========================================================================
# Constants
# ===========================================================================

GRID_SIZE = 3  # 3 × 3 grid of unit squares


def unit_grid(size):
    """
    Unit squares laid out row by row.

    Feature index = row * size + col, so for a 3 × 3 grid:

        6 7 8
        3 4 5
        0 1 2
    """
    return [
        box(col, row, col + 1, row + 1)
        for row in range(size)
        for col in range(size)
    ]


# ===========================================================================
# Fixture 1: 3 × 3 grid of shapely polygons
# ===========================================================================


@pytest.fixture
def grid_polygons():
    """Nine unit squares. Corners 0, 2, 6, 8; center 4."""
    return unit_grid(GRID_SIZE)


@pytest.fixture
def grid_gs(grid_polygons):
    """The 3 × 3 grid loaded as a GeometrySet."""
    return load_features(grid_polygons)


# ===========================================================================
# Fixture 2: three squares in a row (A | B | C)
# ===========================================================================


@pytest.fixture
def row_polygons():
    """
    A = [0,1]², B = [1,2]×[0,1], C = [2,3]×[0,1].

    A-B and B-C share an edge; A and C are disjoint.
    """
    return [box(0, 0, 1, 1), box(1, 0, 2, 1), box(2, 0, 3, 1)]


@pytest.fixture
def row_gs(row_polygons):
    return load_features(row_polygons)


# ===========================================================================
# Fixture 3: squares touching at a single corner
# ===========================================================================


@pytest.fixture
def diagonal_gs():
    """Two squares that only share the point (1, 1)."""
    return load_features([box(0, 0, 1, 1), box(1, 1, 2, 2)])


# ===========================================================================
# Fixture 4: multipolygon feature
# ===========================================================================


@pytest.fixture
def multipolygon_gs():
    """
    Feature 0 has two parts far apart; each part touches one other feature.

    0a | 2       0b | 1
    """
    multi = MultiPolygon([box(0, 0, 1, 1), box(5, 0, 6, 1)])
    return load_features([multi, box(6, 0, 7, 1), box(1, 0, 2, 1)])


# ===========================================================================
# Fixture 5: GeoJSON FeatureCollection with properties
# ===========================================================================


@pytest.fixture
def feature_collection(row_polygons):
    """The A | B | C row as a GeoJSON mapping with a 'value' property."""
    from shapely.geometry import mapping

    return {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "geometry": mapping(poly),
                "properties": {"name": name, "value": value},
            }
            for poly, name, value in zip(row_polygons, "ABC", [1.0, 10.0, 1.0])
        ],
    }


# ===========================================================================
# Fixture 6: GeoDataFrame with a clustered attribute
# ===========================================================================


@pytest.fixture
def grid_gdf():
    """
    5 × 5 grid GeoDataFrame with a 'value' column.

    High values in the lower-left corner, low values in the upper-right,
    plus some noise. Indexed by string ids, EPSG:3857.
    """
    import geopandas as gpd

    rng = np.random.default_rng(42)
    polys = unit_grid(5)
    rows, cols = np.divmod(np.arange(25), 5)
    value = 10.0 - (rows + cols) + rng.normal(0, 0.5, 25)

    return gpd.GeoDataFrame(
        {"value": value, "label": [f"cell_{i}" for i in range(25)]},
        geometry=polys,
        index=[f"f{i}" for i in range(25)],
        crs="EPSG:3857",
    )
