# src/geolisa/spatial/shared/utils.py

"""
utils.py - Shared utilities for spatial analysis

Helpers used by both the weights builders and the LISA engine.
"""
from __future__ import annotations

import os
from typing import List, Optional

import numpy as np

# Most random keys held at once when ranking a large population
SAMPLE_BLOCK_ELEMENTS = 1 << 20


def resolve_n_jobs(n_jobs: Optional[int]) -> int:
    """Number of worker threads for a requested n_jobs (-1 = all CPUs)."""
    if n_jobs is None:
        return 1
    if n_jobs == -1:
        return os.cpu_count() or 1
    if n_jobs < 1:
        raise ValueError(f"n_jobs must be -1, None or a positive integer, got {n_jobs}")
    return n_jobs


def resolve_seed(seed: Optional[int]) -> int:
    """
    Return a concrete base seed.

    ``None`` draws fresh OS entropy so the caller can still record
    the seed that was actually used.
    """
    if seed is None:
        return int(np.random.SeedSequence().entropy)
    return int(seed)


def feature_rng(seed: int, index: int) -> np.random.Generator:
    """
    Independent random generator for one feature.

    Derived from the base seed and the feature index only, so draws
    do not depend on which thread handles the feature or in what order.
    """
    return np.random.default_rng([seed, index])


def chunk_indices(indices: np.ndarray, n_chunks: int) -> List[np.ndarray]:
    """Split indices into at most n_chunks contiguous, non-empty chunks."""
    if len(indices) == 0:
        return []
    n_chunks = max(1, min(n_chunks, len(indices)))
    return [c for c in np.array_split(indices, n_chunks) if len(c) > 0]


def sample_without_replacement(rng: np.random.Generator,
                               population: int,
                               k: int,
                               size: int) -> np.ndarray:
    """
    Draw ``size`` independent samples of k distinct indices from range(population).

    Parameters
    ----------
    rng : np.random.Generator
        Source of randomness
    population : int
        Number of items to sample from
    k : int
        Items per sample (k <= population)
    size : int
        Number of samples

    Returns
    -------
    np.ndarray
        Integer array (size × k); each row holds k distinct indices
        in random order
    """
    if k > population:
        raise ValueError(f"Cannot draw {k} distinct items from {population}")
    if size == 0 or k == 0:
        return np.empty((size, k), dtype=np.int64)

    # Large k relative to the population: rank random keys per row,
    # a block of rows at a time
    if k * k > population:
        out = np.empty((size, k), dtype=np.int64)
        block = max(1, SAMPLE_BLOCK_ELEMENTS // population)
        for start in range(0, size, block):
            stop = min(start + block, size)
            keys = rng.random((stop - start, population))
            out[start:stop] = np.argsort(keys, axis=1)[:, :k]
        return out

    # Small k: draw with replacement and redraw rows that contain a repeat.
    # Rejecting whole rows keeps every ordered k-subset equally likely.
    draws = rng.integers(0, population, size=(size, k))
    if k == 1:
        return draws
    while True:
        ordered = np.sort(draws, axis=1)
        has_repeat = (ordered[:, 1:] == ordered[:, :-1]).any(axis=1)
        n_repeat = int(has_repeat.sum())
        if n_repeat == 0:
            return draws
        draws[has_repeat] = rng.integers(0, population, size=(n_repeat, k))
