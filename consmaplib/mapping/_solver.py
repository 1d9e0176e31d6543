"""
Overlap weights of one target cell against the source mesh.

Starting from a seed source cell, the solver walks the source mesh through
face neighbours, breadth first. Each candidate is decomposed into
tetrahedra and intersected with the tetrahedra of the target cell; the
summed intersection volume is the candidate's weight and the
volume-weighted centroid of the pieces is its overlap centre. Only
candidates that overlap the target expand the walk, so it stays local.

Usage
-----
    from consmaplib.mapping._solver import OverlapWeightSolver

    solver = OverlapWeightSolver(src_mesh, tgt_mesh)
    result = solver.compute_weights(celli, seed, src_mesh.cell_cells, 1e-8)
    if result is not None:
        parents, weights, centres = result
"""

import logging
from collections import deque

import numpy as np

from consmaplib.geometry import decompose_cell, tet_intersection
from consmaplib.geometry.metrics import select_metric
from consmaplib.mesh import bounding_boxes_overlap

logger = logging.getLogger(__name__)

# Overlap volumes below this fraction of the target volume count as touching
_TOUCH_TOL = 1e-12


class OverlapWeightSolver:
    """Computes per-target-cell overlap weights by tetrahedral clipping.

    Parameters
    ----------
    src_mesh, tgt_mesh : PolyMesh
        Source and target meshes.
    metric : str
        Tet quality metric used to detect degenerate tetrahedra.
    min_quality : float
        Tetrahedra with metric value at or below this are skipped.
    """

    def __init__(self, src_mesh, tgt_mesh, metric: str = 'Knupp',
                 min_quality: float = 1e-8):
        self.src_mesh = src_mesh
        self.tgt_mesh = tgt_mesh
        self.metric = select_metric(metric)
        self.min_quality = min_quality

        # Decompose everything up front so that workers only read
        self._src_tets, self.degenerate_source = self._decompose_all(src_mesh)
        self._tgt_tets, self.degenerate_target = self._decompose_all(tgt_mesh)

    def _decompose_all(self, mesh):
        tets, degenerate = [], []
        for celli in range(mesh.n_cells):
            good, n_bad = self._good_tets(mesh, celli)
            tets.append(good)
            if n_bad:
                degenerate.append(celli)
                logger.debug("%s cell %d: %d tets degenerate", mesh.name, celli, n_bad)
        return tets, degenerate

    def _good_tets(self, mesh, celli):
        tets = decompose_cell(
            mesh.cells[celli],
            mesh.cell_centres[celli],
            mesh.faces,
            mesh.points,
            mesh.face_centres,
            mesh.owns(celli),
        )
        quality = np.array([self.metric(*t) for t in tets])
        keep = quality > self.min_quality
        return tets[keep], int(np.count_nonzero(~keep))

    def source_tets(self, celli: int) -> np.ndarray:
        return self._src_tets[celli]

    def target_tets(self, celli: int) -> np.ndarray:
        return self._tgt_tets[celli]

    @staticmethod
    def overlap(src_tets, tgt_tets):
        """Total intersection volume and centroid of two tet sets.

        Returns ``(0.0, None)`` when they do not overlap.
        """
        if len(src_tets) == 0 or len(tgt_tets) == 0:
            return 0.0, None
        src_lo, src_hi = src_tets.min(axis=1), src_tets.max(axis=1)
        tgt_lo, tgt_hi = tgt_tets.min(axis=1), tgt_tets.max(axis=1)
        # Tet pairs whose bounding boxes intersect
        hit = np.all(
            (src_lo[:, None, :] <= tgt_hi[None, :, :])
            & (tgt_lo[None, :, :] <= src_hi[:, None, :]),
            axis=2,
        )
        vol = 0.0
        moment = np.zeros(3)
        for i, j in zip(*np.nonzero(hit)):
            v, c = tet_intersection(src_tets[i], tgt_tets[j])
            if v > 0.0:
                vol += v
                moment += v * c
        if vol <= 0.0:
            return 0.0, None
        return vol, moment / vol

    def compute_weights(self, index, seed, neighbour_list, tolerance):
        """Overlap weights of target cell ``index``.

        Parameters
        ----------
        index : int
            Target cell.
        seed : int
            Source cell to start the walk from (nearest centroid).
        neighbour_list : sequence of array_like
            Face neighbours of every source cell.
        tolerance : float
            Stop once ``sum(weights) >= volume * (1 - tolerance)``.

        Returns
        -------
        tuple of (ndarray, ndarray, ndarray) or None
            ``(parents, weights, centres)``, or None if no source cell
            overlaps the target cell.
        """
        tgt_tets = self.target_tets(index)
        tgt_volume = self.tgt_mesh.cell_volumes[index]
        tgt_box = self.tgt_mesh.cell_bounds[index]
        touch = _TOUCH_TOL * tgt_volume
        target_sum = tgt_volume * (1.0 - tolerance)

        parents, weights, centres = [], [], []
        accumulated = 0.0

        visited = {int(seed)}
        frontier = deque([int(seed)])
        while frontier:
            cand = frontier.popleft()

            vol = 0.0
            if bounding_boxes_overlap(self.src_mesh.cell_bounds[cand], tgt_box):
                vol, ctr = self.overlap(self.source_tets(cand), tgt_tets)

            overlapping = vol > touch
            if overlapping:
                parents.append(cand)
                weights.append(vol)
                centres.append(ctr)
                accumulated += vol
                if accumulated >= target_sum:
                    break

            if overlapping or cand == seed:
                for nb in neighbour_list[cand]:
                    nb = int(nb)
                    if nb not in visited:
                        visited.add(nb)
                        frontier.append(nb)

        if not parents:
            return None

        order = np.argsort(parents, kind='stable')
        return (
            np.asarray(parents, dtype=int)[order],
            np.asarray(weights, dtype=float)[order],
            np.asarray(centres, dtype=float).reshape(-1, 3)[order],
        )
