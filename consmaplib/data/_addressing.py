"""
Per-target-cell addressing, weights and overlap centres.

``Addressing`` holds three parallel lists, one entry per target cell:

- ``parents[i]``: source cells overlapping target cell ``i``
- ``weights[i]``: overlap volume of each parent with cell ``i``
- ``centres[i]``: centroid of each overlap region, shape ``(k, 3)``

A target cell with no overlap has empty entries.
"""

from dataclasses import dataclass, field

import numpy as np


def _empty_entry():
    return np.empty(0, dtype=int), np.empty(0), np.empty((0, 3))


@dataclass
class Addressing:
    """Addressing/weights/centres triple for every target cell."""
    parents: list = field(default_factory=list)
    weights: list = field(default_factory=list)
    centres: list = field(default_factory=list)

    @classmethod
    def empty(cls, n_cells: int) -> 'Addressing':
        """Preallocate ``n_cells`` empty slots (filled in place by workers)."""
        entries = [_empty_entry() for _ in range(n_cells)]
        return cls(
            parents=[e[0] for e in entries],
            weights=[e[1] for e in entries],
            centres=[e[2] for e in entries],
        )

    def __len__(self) -> int:
        return len(self.parents)

    def set(self, celli: int, parents, weights, centres) -> None:
        """Fill the slot of target cell ``celli``."""
        self.parents[celli] = np.asarray(parents, dtype=int)
        self.weights[celli] = np.asarray(weights, dtype=float)
        self.centres[celli] = np.asarray(centres, dtype=float).reshape(-1, 3)

    def weight_sums(self) -> np.ndarray:
        """Sum of the weights of every target cell."""
        return np.array([w.sum() for w in self.weights], dtype=float)

    def flatten(self):
        """CSR view of the addressing.

        Returns
        -------
        offsets : ndarray of int, shape (n_cells + 1,)
            Entries of cell ``i`` are ``offsets[i]:offsets[i + 1]``.
        parents : ndarray of int
        weights : ndarray of float
        centres : ndarray of shape (n_entries, 3)
        """
        counts = np.array([len(p) for p in self.parents], dtype=int)
        offsets = np.zeros(len(counts) + 1, dtype=int)
        np.cumsum(counts, out=offsets[1:])
        if offsets[-1] == 0:
            return offsets, np.empty(0, dtype=int), np.empty(0), np.empty((0, 3))
        return (
            offsets,
            np.concatenate(self.parents).astype(int),
            np.concatenate(self.weights).astype(float),
            np.concatenate(self.centres).reshape(-1, 3),
        )

    def targets(self) -> np.ndarray:
        """Target cell index of every flattened entry."""
        counts = np.array([len(p) for p in self.parents], dtype=int)
        return np.repeat(np.arange(len(counts)), counts)

    def validate(self, n_source: int) -> None:
        """Raise ValueError if the triple is inconsistent."""
        if not (len(self.parents) == len(self.weights) == len(self.centres)):
            raise ValueError("parents, weights and centres differ in length")
        for i, (p, w, c) in enumerate(zip(self.parents, self.weights, self.centres)):
            if not (len(p) == len(w) == len(c)):
                raise ValueError(f"Target cell {i}: entry lengths differ")
            if len(p) and (p.min() < 0 or p.max() >= n_source):
                raise ValueError(f"Target cell {i}: parent outside [0, {n_source})")
            if np.any(w < 0.0):
                raise ValueError(f"Target cell {i}: negative weight")
