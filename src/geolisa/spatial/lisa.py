"""
lisa.py - Local indicators of spatial association

Local Moran's I on a SpatialWeights structure:
- z-scores of the attribute (population standard deviation)
- spatial lag and local statistic I_i = z_i * lag_i
- HH / LL / HL / LH quadrant labels (NEUTRAL for islands)
- pseudo p-values from a conditional permutation test

Every feature draws its permutations from its own generator, seeded
from (seed, feature index). Results are therefore identical whatever
the number of worker threads.
"""
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import threading
    from .weights import SpatialWeights

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from ..data.config import (
    ComputationCancelledError,
    DegenerateInputError,
    DimensionMismatchError,
    LisaConfig,
)
from .shared.utils import (
    chunk_indices,
    feature_rng,
    resolve_n_jobs,
    resolve_seed,
    sample_without_replacement,
)

logger = logging.getLogger(__name__)

QUADRANTS = ('HH', 'LL', 'HL', 'LH', 'NEUTRAL')
NOT_SIGNIFICANT = 'NS'

# Relative tolerance when counting reference statistics tied with the observed one
TIE_RTOL = 1e-12


@dataclass(frozen=True, eq=False)
class LISAResult:
    """
    Local Moran's I results aligned to feature order.

    Attributes
    ----------
    Is : np.ndarray
        Local Moran statistic per feature
    p_values : np.ndarray
        Pseudo p-values in [1 / (permutations + 1), 1]
    quadrants : np.ndarray
        'HH', 'LL', 'HL', 'LH' or 'NEUTRAL' per feature
    z : np.ndarray
        Standardized attribute values
    lags : np.ndarray
        Spatial lag of ``z``
    permutations : int
        Permutations drawn per feature
    seed : int, optional
        Base seed the permutations were drawn with
    sims : np.ndarray, optional
        Reference statistics (n_features × permutations), NaN rows for
        islands. Only kept when requested.
    """
    Is: np.ndarray
    p_values: np.ndarray
    quadrants: np.ndarray
    z: np.ndarray
    lags: np.ndarray
    permutations: int
    seed: Optional[int] = None
    sims: Optional[np.ndarray] = None

    def __post_init__(self):
        for arr in (self.Is, self.p_values, self.quadrants, self.z, self.lags, self.sims):
            if arr is not None:
                arr.flags.writeable = False

    def __len__(self) -> int:
        return len(self.Is)

    def significant(self, alpha: float = 0.05) -> np.ndarray:
        """Boolean mask of features with p-value below alpha."""
        return self.p_values < alpha

    def cluster_labels(self, alpha: float = 0.05) -> np.ndarray:
        """Quadrant labels, with non-significant features marked 'NS'."""
        labels = self.quadrants.copy()
        labels[~self.significant(alpha)] = NOT_SIGNIFICANT
        return labels

    def to_frame(self, index: Optional[pd.Index] = None) -> pd.DataFrame:
        """
        Results as a DataFrame for merging back onto features.

        Columns: moran_i, p_value, quadrant, z, lag
        """
        return pd.DataFrame({
            'moran_i': self.Is,
            'p_value': self.p_values,
            'quadrant': self.quadrants,
            'z': self.z,
            'lag': self.lags,
        }, index=index)

    def summary(self, alpha: float = 0.05) -> Dict:
        counts = {q: int((self.quadrants == q).sum()) for q in QUADRANTS}
        return {
            'n_features': len(self),
            'permutations': self.permutations,
            'seed': self.seed,
            'quadrants': counts,
            'n_significant': int(self.significant(alpha).sum()),
            'alpha': alpha,
        }


def classify_quadrants(z: np.ndarray,
                       lags: np.ndarray,
                       cardinalities: np.ndarray) -> np.ndarray:
    """
    Quadrant label from the signs of z and its spatial lag.

    Islands, and features where either sign is zero, are NEUTRAL.
    """
    quads = np.full(len(z), 'NEUTRAL', dtype=object)
    has_neighbors = np.asarray(cardinalities) > 0
    quads[has_neighbors & (z > 0) & (lags > 0)] = 'HH'
    quads[has_neighbors & (z < 0) & (lags < 0)] = 'LL'
    quads[has_neighbors & (z > 0) & (lags < 0)] = 'HL'
    quads[has_neighbors & (z < 0) & (lags > 0)] = 'LH'
    return quads


def _prepare_values(values, n_features: int, config: LisaConfig) -> np.ndarray:
    values = np.asarray(values, dtype=np.float64).ravel()
    if len(values) != n_features:
        raise DimensionMismatchError(len(values), n_features)
    if n_features == 0:
        raise DegenerateInputError("No values to standardize")

    missing = ~np.isfinite(values)
    if missing.any():
        if config.missing != 'mean':
            raise DegenerateInputError(
                f"{int(missing.sum())} missing or non-finite values; "
                f"filter them upstream or use missing='mean'"
            )
        if missing.all():
            raise DegenerateInputError("All values are missing")
        values = values.copy()
        values[missing] = values[~missing].mean()
        logger.warning(f"  ⚠ {int(missing.sum())} missing values replaced with mean")

    return values


def _permutation_chunk(chunk: np.ndarray,
                       z: np.ndarray,
                       row_weights: List[np.ndarray],
                       Is: np.ndarray,
                       permutations: int,
                       seed: int,
                       p_values: np.ndarray,
                       sims: Optional[np.ndarray],
                       cancel_event: Optional['threading.Event']) -> bool:
    """
    Conditional permutation test for a chunk of features.

    Writes only to the chunk's own slots of ``p_values`` and ``sims``.
    Returns False if cancelled before finishing.
    """
    n = len(z)
    for i in chunk:
        if cancel_event is not None and cancel_event.is_set():
            return False

        w_i = row_weights[i]
        rng = feature_rng(seed, int(i))

        # Sample from the other n - 1 features; shift indices past i
        idx = sample_without_replacement(rng, n - 1, len(w_i), permutations)
        idx += idx >= i

        ref = z[i] * (z[idx] @ w_i)

        # Same neighbor values summed in another order differ by rounding only
        atol = TIE_RTOL * max(1.0, abs(Is[i]))
        if Is[i] >= 0:
            n_extreme = int(np.count_nonzero(ref >= Is[i] - atol))
        else:
            n_extreme = int(np.count_nonzero(ref <= Is[i] + atol))

        p_values[i] = (n_extreme + 1) / (permutations + 1)
        if sims is not None:
            sims[i] = ref
    return True


def compute_lisa(spatial_weights: 'SpatialWeights',
                 values,
                 config: Optional[LisaConfig] = None,
                 cancel_event: Optional['threading.Event'] = None) -> LISAResult:
    """
    Compute local Moran's I with permutation inference.

    Parameters
    ----------
    spatial_weights : SpatialWeights
        Neighbor structure (usually row-standardized)
    values : array-like
        Attribute values in feature order
    config : LisaConfig, optional
        Permutations, seed, worker threads and input policies
    cancel_event : threading.Event, optional
        Checked between features. Once set, the computation stops and
        raises ComputationCancelledError instead of returning.

    Returns
    -------
    LISAResult

    Raises
    ------
    DimensionMismatchError
        If ``values`` does not have one entry per feature
    DegenerateInputError
        If values have zero variance or contain NaN (unless the config
        policies say otherwise)
    ComputationCancelledError
        If ``cancel_event`` was set before the computation finished
    """
    config = config or LisaConfig()
    n = spatial_weights.n
    P = config.permutations

    logger.info(f"[LISA] Local Moran's I (permutations={P}, n_jobs={config.n_jobs})...")

    if cancel_event is not None and cancel_event.is_set():
        raise ComputationCancelledError("LISA computation cancelled before start")

    values = _prepare_values(values, n, config)
    cardinalities = spatial_weights.cardinalities
    base_seed = resolve_seed(config.seed)

    mean = values.mean()
    std = values.std()

    # Constant input leaves only rounding noise in std
    if np.ptp(values) == 0 or std <= 8 * np.finfo(np.float64).eps * np.abs(values).max():
        if config.zero_variance == 'raise':
            raise DegenerateInputError("Values have zero variance; z-scores are undefined")
        logger.warning("  ⚠ Zero variance in values, all features are NEUTRAL")
        zeros = np.zeros(n, dtype=np.float64)
        return LISAResult(
            Is=zeros.copy(),
            p_values=np.ones(n, dtype=np.float64),
            quadrants=np.full(n, 'NEUTRAL', dtype=object),
            z=zeros.copy(),
            lags=zeros.copy(),
            permutations=P,
            seed=base_seed,
            sims=np.full((n, P), np.nan) if config.keep_simulations else None,
        )

    z = (values - mean) / std
    lags = np.asarray(spatial_weights.to_sparse() @ z).ravel()
    Is = z * lags
    quadrants = classify_quadrants(z, lags, cardinalities)

    p_values = np.ones(n, dtype=np.float64)
    sims = np.full((n, P), np.nan) if config.keep_simulations else None

    tested = np.flatnonzero(cardinalities > 0)
    if P > 0 and len(tested) > 0:
        row_weights = [np.asarray(wrow, dtype=np.float64) for wrow in spatial_weights.weights]
        n_workers = resolve_n_jobs(config.n_jobs)
        args = (z, row_weights, Is, P, base_seed, p_values, sims, cancel_event)

        logger.info(f"  → Running {P} permutations for {len(tested)} features "
                    f"on {n_workers} thread(s)...")

        if n_workers == 1:
            finished = _permutation_chunk(tested, *args)
        else:
            chunks = chunk_indices(tested, n_workers * 4)
            with ThreadPoolExecutor(max_workers=n_workers) as executor:
                futures = [executor.submit(_permutation_chunk, chunk, *args) for chunk in chunks]
                finished = all([f.result() for f in futures])

        if not finished or (cancel_event is not None and cancel_event.is_set()):
            raise ComputationCancelledError("LISA computation cancelled")

    result = LISAResult(
        Is=Is,
        p_values=p_values,
        quadrants=quadrants,
        z=z,
        lags=lags,
        permutations=P,
        seed=base_seed,
        sims=sims,
    )

    counts = result.summary()['quadrants']
    logger.info("  ✓ " + ", ".join(f"{q}: {c}" for q, c in counts.items()))
    if P > 0:
        logger.info(f"    Significant (p<0.05): {result.summary()['n_significant']}")

    return result


def local_moran(spatial_weights: 'SpatialWeights',
                values,
                permutations: int = 999,
                seed: Optional[int] = 42,
                n_jobs: Optional[int] = 1,
                keep_simulations: bool = False,
                missing: str = 'raise',
                zero_variance: str = 'raise',
                cancel_event: Optional['threading.Event'] = None) -> LISAResult:
    """
    Local Moran's I for one attribute.

    Parameters
    ----------
    spatial_weights : SpatialWeights
        Neighbor structure
    values : array-like
        Attribute values in feature order
    permutations : int
        Conditional permutations per feature. 0 skips inference and
        every p-value is 1.0.
    seed : int, optional
        Base seed. None draws fresh entropy (recorded on the result).
    n_jobs : int, optional
        Worker threads for the permutation test (-1 = all CPUs)
    keep_simulations : bool
        Keep the reference statistics on the result
    missing : str
        'raise' or 'mean' (impute NaN with the mean)
    zero_variance : str
        'raise' or 'neutral' (all-neutral result for constant values)
    cancel_event : threading.Event, optional
        Set it to abandon the computation

    Returns
    -------
    LISAResult

    Examples
    --------
    >>> w = build_contiguity_weights(gs, contiguity='queen')
    >>> lisa = local_moran(w, gs.get_values('income'), permutations=999, seed=7)
    >>> hot = lisa.cluster_labels(alpha=0.05) == 'HH'
    """
    config = LisaConfig(
        permutations=permutations,
        seed=seed,
        n_jobs=n_jobs,
        keep_simulations=keep_simulations,
        missing=missing,
        zero_variance=zero_variance,
    )
    return compute_lisa(spatial_weights, values, config=config, cancel_event=cancel_event)
