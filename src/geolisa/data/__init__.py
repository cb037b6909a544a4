"""
data - Input geometry and configuration

This module contains the GeometrySet polygon container,
configuration classes, and the error taxonomy.
"""

from .config import (
    WeightsConfig,
    LisaConfig,
    GeolisaError,
    InvalidGeometryError,
    DimensionMismatchError,
    DegenerateInputError,
    ComputationCancelledError,
)

from .geometry import GeometrySet, load_features

__all__ = [
    # Geometry
    'GeometrySet',
    'load_features',

    # Configuration
    'WeightsConfig',
    'LisaConfig',

    # Exceptions
    'GeolisaError',
    'InvalidGeometryError',
    'DimensionMismatchError',
    'DegenerateInputError',
    'ComputationCancelledError',
]
