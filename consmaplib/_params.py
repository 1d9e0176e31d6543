"""
Construction parameters for a mesh-to-mesh mapping.

Usage
-----
    from consmaplib import MappingParams, ConservativeMeshToMesh

    params = MappingParams(n_threads=4, slack_bound=5e-3)
    mapper = ConservativeMeshToMesh(src, tgt, params=params)
"""

from dataclasses import dataclass, fields, replace


@dataclass
class MappingParams:
    """Parameters controlling addressing computation and caching.

    Attributes
    ----------
    n_threads : int
        Number of worker threads for the weight computation (>= 1).
    force_recalculation : bool
        Ignore any cached addressing and recompute.
    write_addressing : bool
        Store the computed addressing in the cache directory.
    volume_tolerance : float
        Relative tolerance on ``sum(weights) / targetVolume``. The overlap
        search stops once this much of the target volume is accounted for.
    slack_bound : float
        Largest relative deficit that is treated as numerical drift and
        removed by rescaling. Larger deficits are reported, not fixed.
    cache_dir : str
        Directory holding cached addressing files.
    tet_metric : str
        Name of the tet quality metric used to detect degenerate tets.
    min_tet_quality : float
        Tets with a metric value at or below this are skipped.
    report_every : float
        Fraction of cells between progress log messages.
    """
    n_threads: int = 1
    force_recalculation: bool = False
    write_addressing: bool = False
    volume_tolerance: float = 1e-8
    slack_bound: float = 1e-2
    cache_dir: str = 'addressing'
    tet_metric: str = 'Knupp'
    min_tet_quality: float = 1e-8
    report_every: float = 0.1

    def __post_init__(self):
        if int(self.n_threads) < 1:
            raise ValueError(f"n_threads must be >= 1, got {self.n_threads}")
        if self.volume_tolerance <= 0.0:
            raise ValueError("volume_tolerance must be positive")
        if self.slack_bound < self.volume_tolerance:
            raise ValueError(
                f"slack_bound ({self.slack_bound}) must not be smaller than "
                f"volume_tolerance ({self.volume_tolerance})"
            )
        self.n_threads = int(self.n_threads)

    def updated(self, **overrides) -> 'MappingParams':
        """Return a copy with the non-None ``overrides`` applied."""
        names = {f.name for f in fields(self)}
        unknown = set(overrides) - names
        if unknown:
            raise TypeError(f"Unknown mapping parameters: {sorted(unknown)}")
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes)
