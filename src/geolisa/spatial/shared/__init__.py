# src/geolisa/spatial/shared/__init__.py

"""
Shared utilities for spatial analysis.

Common functions used by the weights builders and the LISA engine.
"""

from .utils import (
    # Parallel execution
    resolve_n_jobs,
    chunk_indices,

    # Random number generation
    resolve_seed,
    feature_rng,
    sample_without_replacement,
)

__all__ = [
    # Parallel execution
    'resolve_n_jobs',
    'chunk_indices',

    # Random number generation
    'resolve_seed',
    'feature_rng',
    'sample_without_replacement',
]
