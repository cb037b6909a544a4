"""
config.py - Configuration and error types for geolisa

Contains:
- WeightsConfig: How spatial weights are derived from polygons
- LisaConfig: How local Moran statistics are computed and tested
- GeolisaError and its subclasses
"""

from dataclasses import dataclass

CONTIGUITY_RULES = ("queen", "rook")
STANDARDIZATIONS = ("binary", "row")
INDEX_METHODS = ("auto", "strtree", "brute")
MISSING_POLICIES = ("raise", "mean")
ZERO_VARIANCE_POLICIES = ("raise", "neutral")


def _check_choice(name: str, value: str, allowed: tuple[str, ...]) -> None:
    if value not in allowed:
        raise ValueError(f"{name} must be one of {allowed}, got '{value}'")


@dataclass(frozen=True)
class WeightsConfig:
    """
    Configuration for contiguity weights.

    The adjacency tolerance is a policy value: a large tolerance merges
    polygons that are merely close, a tiny one may miss boundaries that
    differ by floating-point noise. Neither is an error.
    """

    contiguity: str = "queen"
    tolerance: float = 1e-6
    standardization: str = "row"
    index_method: str = "auto"

    def __post_init__(self):
        _check_choice("contiguity", self.contiguity, CONTIGUITY_RULES)
        _check_choice("standardization", self.standardization, STANDARDIZATIONS)
        _check_choice("index_method", self.index_method, INDEX_METHODS)
        if self.tolerance < 0:
            raise ValueError(f"tolerance must be non-negative, got {self.tolerance}")


@dataclass(frozen=True)
class LisaConfig:
    """Configuration for local Moran's I and its permutation test."""

    permutations: int = 999
    seed: int | None = 42
    n_jobs: int | None = 1
    keep_simulations: bool = False

    # Input policies
    missing: str = "raise"  # 'mean' imputes NaN with the column mean
    zero_variance: str = "raise"  # 'neutral' returns an all-neutral result

    def __post_init__(self):
        if self.permutations < 0:
            raise ValueError(f"permutations must be >= 0, got {self.permutations}")
        if self.n_jobs is not None and (self.n_jobs == 0 or self.n_jobs < -1):
            raise ValueError(f"n_jobs must be -1, None or a positive integer, got {self.n_jobs}")
        _check_choice("missing", self.missing, MISSING_POLICIES)
        _check_choice("zero_variance", self.zero_variance, ZERO_VARIANCE_POLICIES)


class GeolisaError(Exception):
    """Base exception for geolisa errors."""

    pass


class InvalidGeometryError(GeolisaError):
    """Raised when a feature is not a usable polygon or multipolygon."""

    def __init__(self, message: str, index: int | None = None):
        self.index = index
        if index is not None:
            message = f"Feature {index}: {message}"
        super().__init__(message)


class DimensionMismatchError(GeolisaError):
    """Raised when a values vector does not match the weights feature count."""

    def __init__(self, n_values: int, n_features: int):
        self.n_values = n_values
        self.n_features = n_features
        super().__init__(
            f"Got {n_values} values for a weights structure with {n_features} features"
        )


class DegenerateInputError(GeolisaError):
    """Raised when values cannot be standardized (zero variance or missing entries)."""

    pass


class ComputationCancelledError(GeolisaError):
    """Raised when a computation is abandoned through its cancel event."""

    pass
