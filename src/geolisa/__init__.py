# src/geolisa/__init__.py

"""
geolisa - Spatial weights and local indicators of spatial association
for polygon layers
"""

# Core data structures
from .data.config import (
    WeightsConfig,
    LisaConfig,
    GeolisaError,
    InvalidGeometryError,
    DimensionMismatchError,
    DegenerateInputError,
    ComputationCancelledError,
)
from .data.geometry import GeometrySet, load_features
from .pipeline import analyze, LisaAnalysis

# Import submodules
from . import data
from . import spatial

__version__ = '0.1.0'

__all__ = [
    # Core classes
    'GeometrySet',
    'load_features',
    'WeightsConfig',
    'LisaConfig',

    # Pipeline
    'analyze',
    'LisaAnalysis',

    # Exceptions
    'GeolisaError',
    'InvalidGeometryError',
    'DimensionMismatchError',
    'DegenerateInputError',
    'ComputationCancelledError',

    # Submodules
    'data',
    'spatial',
]
