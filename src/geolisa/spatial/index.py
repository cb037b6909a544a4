"""
index.py - Bounding-box candidate index for polygon adjacency

NeighborIndex prunes the O(n²) pair space before exact adjacency tests.
It only answers "which polygons could possibly touch polygon i" from
bounding boxes; it never decides adjacency itself.
"""
from __future__ import annotations

import logging
from typing import Set

import numpy as np
import shapely

from ..data.config import INDEX_METHODS

logger = logging.getLogger(__name__)

# Below this many features a dense bbox comparison beats building a tree
BRUTE_FORCE_MAX = 256


class NeighborIndex:
    """
    Candidate-pair index over feature bounding boxes.

    Boxes are expanded by ``tolerance`` on every side, so polygons that
    lie within the adjacency tolerance of each other are always returned
    as candidates.

    Attributes
    ----------
    n_features : int
        Number of indexed boxes
    tolerance : float
        Expansion applied to every box
    method : str
        'strtree' or 'brute'
    """

    def __init__(self, pairs: np.ndarray, n_features: int, tolerance: float, method: str):
        self._pairs = pairs
        self._pairs.flags.writeable = False
        self.n_features = n_features
        self.tolerance = tolerance
        self.method = method

        # CSR-style lookup of candidates per feature (both directions)
        rows = np.concatenate([pairs[:, 0], pairs[:, 1]])
        cols = np.concatenate([pairs[:, 1], pairs[:, 0]])
        order = np.lexsort((cols, rows))
        self._cols = cols[order]
        self._indptr = np.zeros(n_features + 1, dtype=np.int64)
        np.cumsum(np.bincount(rows, minlength=n_features), out=self._indptr[1:])

    @classmethod
    def build(cls,
              bounds: np.ndarray,
              tolerance: float = 0.0,
              method: str = 'auto') -> 'NeighborIndex':
        """
        Build an index from bounding boxes.

        Parameters
        ----------
        bounds : np.ndarray
            Bounding boxes (n × 4): minx, miny, maxx, maxy
        tolerance : float
            Distance by which boxes are expanded before intersection
        method : str
            'strtree': shapely STRtree over box polygons
            'brute': dense numpy overlap test, O(n²) memory
            'auto': brute for n <= 256, strtree otherwise

        Returns
        -------
        NeighborIndex
        """
        if method not in INDEX_METHODS:
            raise ValueError(f"method must be one of {INDEX_METHODS}, got '{method}'")
        if tolerance < 0:
            raise ValueError(f"tolerance must be non-negative, got {tolerance}")

        bounds = np.asarray(bounds, dtype=np.float64).reshape(-1, 4)
        n = len(bounds)

        if method == 'auto':
            method = 'brute' if n <= BRUTE_FORCE_MAX else 'strtree'

        expanded = bounds + np.array([-tolerance, -tolerance, tolerance, tolerance])

        if n < 2:
            pairs = np.empty((0, 2), dtype=np.int64)
        elif method == 'brute':
            pairs = _brute_pairs(expanded)
        else:
            pairs = _strtree_pairs(expanded)

        logger.info(f"[NeighborIndex] {method}: {n} features, {len(pairs)} candidate pairs")
        return cls(pairs, n, tolerance, method)

    @property
    def n_candidates(self) -> int:
        """Number of unordered candidate pairs."""
        return len(self._pairs)

    def candidates(self, i: int) -> Set[int]:
        """Features whose expanded box intersects feature i's box, excluding i."""
        if not 0 <= i < self.n_features:
            raise IndexError(f"Feature {i} out of range for {self.n_features} features")
        return set(self._cols[self._indptr[i]:self._indptr[i + 1]].tolist())

    def candidate_pairs(self) -> np.ndarray:
        """Unique candidate pairs (m × 2) with i < j, sorted lexicographically."""
        return self._pairs

    def __repr__(self) -> str:
        return (
            f"NeighborIndex (method={self.method}, {self.n_features} features, "
            f"{self.n_candidates} candidate pairs)"
        )


def _finalize_pairs(left: np.ndarray, right: np.ndarray) -> np.ndarray:
    """Drop self pairs, orient as i < j, de-duplicate and sort."""
    keep = left != right
    left, right = left[keep], right[keep]
    pairs = np.column_stack([np.minimum(left, right), np.maximum(left, right)]).astype(np.int64)
    if len(pairs) == 0:
        return pairs.reshape(0, 2)
    return np.unique(pairs, axis=0)


def _brute_pairs(bounds: np.ndarray) -> np.ndarray:
    minx, miny, maxx, maxy = bounds.T
    overlap = (
        (minx[:, None] <= maxx[None, :])
        & (minx[None, :] <= maxx[:, None])
        & (miny[:, None] <= maxy[None, :])
        & (miny[None, :] <= maxy[:, None])
    )
    left, right = np.nonzero(np.triu(overlap, k=1))
    return _finalize_pairs(left, right)


def _strtree_pairs(bounds: np.ndarray) -> np.ndarray:
    boxes = shapely.box(bounds[:, 0], bounds[:, 1], bounds[:, 2], bounds[:, 3])
    tree = shapely.STRtree(boxes)
    left, right = tree.query(boxes, predicate='intersects')
    return _finalize_pairs(left, right)
