"""Diagnostics collected while building a mapping."""

from dataclasses import dataclass, field


@dataclass
class MappingReport:
    """Cell-by-cell diagnostics of an addressing computation.

    None of these conditions abort the mapping; they are returned to the
    caller alongside it.

    Attributes
    ----------
    coverage_deficit : list of int
        Target cells whose overlap volume falls short of their volume by
        more than the slack bound (partly outside the source domain).
    inversion_failures : list of int
        Target cells whose weights could not be normalized within slack.
    empty_overlap : list of int
        Target cells with no overlapping source cell at all.
    degenerate : list of int
        Cells (source or target) with flat or inverted tetrahedra that were
        skipped.
    rescaled : list of int
        Target cells whose weights were rescaled to remove numerical drift.
        Cached weights are stored already rescaled, so after a cache hit
        this only lists cells that drifted again; ``degenerate`` is empty.
    """
    coverage_deficit: list = field(default_factory=list)
    inversion_failures: list = field(default_factory=list)
    empty_overlap: list = field(default_factory=list)
    degenerate: list = field(default_factory=list)
    rescaled: list = field(default_factory=list)

    @property
    def n_warnings(self) -> int:
        """Number of distinct cells with a problem.

        A coverage deficit is also an inversion failure; it counts once.
        Degenerate cells may belong to either mesh and are counted apart.
        """
        target = (set(self.coverage_deficit) | set(self.inversion_failures)
                  | set(self.empty_overlap))
        return len(target) + len(set(self.degenerate))

    def summary(self) -> str:
        return (
            f"coverage deficit: {len(self.coverage_deficit)}, "
            f"inversion failures: {len(self.inversion_failures)}, "
            f"empty overlap: {len(self.empty_overlap)}, "
            f"degenerate: {len(self.degenerate)}, "
            f"rescaled: {len(self.rescaled)}"
        )
