"""
Normalization and inversion of computed addressing.

After the overlap search, ``sum(weights)`` of a target cell differs from
its volume by clipping round-off, by the early stop of the search, or by a
genuine lack of source coverage. Only the first two are corrected: cells
whose relative deficit lies between the volume tolerance and the slack
bound are rescaled; larger deviations are reported and left alone.

Usage
-----
    from consmaplib.mapping._inverter import AddressingInverter

    inverter = AddressingInverter(tolerance=1e-8, slack=1e-2)
    n_failed = inverter.normalize(addressing, tgt_mesh.cell_volumes, report)
    offsets, targets, weights = inverter.invert(addressing, src_mesh.n_cells)
"""

import logging

import numpy as np

logger = logging.getLogger(__name__)


class AddressingInverter:
    """Rescales numerical drift and builds the source-to-target view.

    Parameters
    ----------
    tolerance : float
        Relative deviations at or below this are left untouched.
    slack : float
        Relative deviations above this are reported, not corrected.
    """

    def __init__(self, tolerance: float = 1e-8, slack: float = 1e-2):
        if slack < tolerance:
            raise ValueError("slack must be >= tolerance")
        self.tolerance = tolerance
        self.slack = slack

    def relative_deviation(self, addressing, tgt_volumes) -> np.ndarray:
        """``(sum(weights) - volume) / volume`` per target cell."""
        tgt_volumes = np.asarray(tgt_volumes, dtype=float)
        return (addressing.weight_sums() - tgt_volumes) / tgt_volumes

    def normalize(self, addressing, tgt_volumes, report=None) -> int:
        """Rescale weights of cells with drift inside ``(tolerance, slack]``.

        Cells without any parent are skipped here (they are reported as
        empty overlap by the caller).

        Parameters
        ----------
        addressing : Addressing
            Modified in place.
        tgt_volumes : array_like
            Target cell volumes.
        report : MappingReport or None
            Receives rescaled cells, coverage deficits and failures.

        Returns
        -------
        int
            Number of inversion failures (cells left outside slack).
        """
        tgt_volumes = np.asarray(tgt_volumes, dtype=float)
        rel = self.relative_deviation(addressing, tgt_volumes)
        failures = 0

        for celli, r in enumerate(rel):
            if len(addressing.parents[celli]) == 0:
                continue
            dev = abs(r)
            if dev <= self.tolerance:
                continue
            if dev <= self.slack:
                addressing.weights[celli] = (
                    addressing.weights[celli] * (tgt_volumes[celli]
                                                 / addressing.weights[celli].sum())
                )
                if report is not None:
                    report.rescaled.append(celli)
                continue

            failures += 1
            if report is not None:
                report.inversion_failures.append(celli)
                if r < 0.0:
                    report.coverage_deficit.append(celli)
            logger.debug("Target cell %d: weights off by %.3e of its volume", celli, r)

        return failures

    @staticmethod
    def invert(addressing, n_source: int):
        """Source-to-target view of the addressing.

        Returns
        -------
        offsets : ndarray of int, shape (n_source + 1,)
            Entries of source cell ``j`` are ``offsets[j]:offsets[j + 1]``.
        targets : ndarray of int
            Target cells overlapping each source cell, ascending.
        weights : ndarray of float
            Matching overlap volumes.
        """
        _, parents, weights, _ = addressing.flatten()
        targets = addressing.targets()

        order = np.lexsort((targets, parents))
        counts = np.bincount(parents, minlength=n_source)
        offsets = np.zeros(n_source + 1, dtype=int)
        np.cumsum(counts, out=offsets[1:])
        return offsets, targets[order], weights[order]

    def source_coverage(self, addressing, src_volumes) -> np.ndarray:
        """Fraction of every source cell's volume claimed by target cells."""
        src_volumes = np.asarray(src_volumes, dtype=float)
        _, parents, weights, _ = addressing.flatten()
        claimed = np.bincount(parents, weights=weights, minlength=len(src_volumes))
        return claimed / src_volumes
