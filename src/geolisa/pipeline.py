"""
pipeline.py - One-call LISA analysis of a polygon layer

Chains the core steps the way a map front-end uses them:
load features → contiguity weights → link lines → local Moran's I →
features annotated with the LISA columns.
"""
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import threading
    import geopandas as gpd

import logging
from typing import NamedTuple, Optional

from .data.config import LisaConfig, WeightsConfig
from .data.geometry import GeometrySet, load_features
from .spatial.links import links_to_geodataframe
from .spatial.lisa import LISAResult, compute_lisa
from .spatial.weights import SpatialWeights, build_weights

logger = logging.getLogger(__name__)


class LisaAnalysis(NamedTuple):
    """Everything produced by :func:`analyze`."""
    geometry_set: GeometrySet
    weights: SpatialWeights
    links: 'gpd.GeoDataFrame'
    result: LISAResult
    features: 'gpd.GeoDataFrame'


def analyze(features,
            column: str,
            weights_config: Optional[WeightsConfig] = None,
            lisa_config: Optional[LisaConfig] = None,
            cancel_event: Optional['threading.Event'] = None,
            prefix: str = '') -> LisaAnalysis:
    """
    Run the full weights + LISA pipeline on a polygon layer.

    Parameters
    ----------
    features : GeoDataFrame, mapping or sequence
        Anything :func:`load_features` accepts
    column : str
        Numeric property to analyze
    weights_config : WeightsConfig, optional
        Contiguity rule, tolerance and standardization
    lisa_config : LisaConfig, optional
        Permutations, seed, threads and input policies
    cancel_event : threading.Event, optional
        Set it to abandon the LISA step
    prefix : str
        Prefix for the added columns ('moran', 'pval', 'quad')

    Returns
    -------
    LisaAnalysis
        geometry_set, weights, links, result and the annotated features

    Examples
    --------
    >>> out = analyze(gdf, 'cases', lisa_config=LisaConfig(permutations=499))
    >>> out.features.plot(column='quad', categorical=True)
    >>> out.links.plot()
    """
    logger.info(f"[Pipeline] LISA analysis of '{column}'")

    geometry_set = load_features(features)
    values = geometry_set.get_values(column)

    weights = build_weights(geometry_set, config=weights_config)
    links = links_to_geodataframe(weights, geometry_set)
    result = compute_lisa(weights, values, config=lisa_config, cancel_event=cancel_event)

    annotated = geometry_set.to_geopandas()
    annotated[f'{prefix}moran'] = result.Is
    annotated[f'{prefix}pval'] = result.p_values
    annotated[f'{prefix}quad'] = result.quadrants

    logger.info(f"[Pipeline] ✓ Added '{prefix}moran', '{prefix}pval', '{prefix}quad'")

    return LisaAnalysis(
        geometry_set=geometry_set,
        weights=weights,
        links=links,
        result=result,
        features=annotated,
    )
