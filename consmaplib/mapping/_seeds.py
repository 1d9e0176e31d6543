"""
Nearest-cell seed search and boundary face matching.

Both use a ``scipy.spatial.cKDTree`` over source centroids. Equidistant
candidates are resolved to the lowest source index so the result does not
depend on tree construction order.
"""

import logging

import numpy as np
from scipy.spatial import cKDTree

logger = logging.getLogger(__name__)

# Relative distance within which two candidates count as equidistant
_TIE_TOL = 1e-12


def _build_tree(points):
    """KD-tree over ``points`` and the largest extent of their bounding box."""
    points = np.asarray(points, dtype=float)
    scale = float(np.max(points.max(axis=0) - points.min(axis=0)))
    return cKDTree(points), scale


def _lowest_of_ties(tree, scale, query_points, k):
    n = tree.n
    k = min(k, n)
    dist, idx = tree.query(query_points, k=k)
    dist = np.asarray(dist, dtype=float).reshape(len(query_points), k)
    idx = np.asarray(idx, dtype=int).reshape(len(query_points), k)

    result = np.empty(len(query_points), dtype=int)
    for i in range(len(query_points)):
        d0 = dist[i, 0]
        bound = d0 * (1.0 + _TIE_TOL) + _TIE_TOL * scale
        ties = idx[i][dist[i] <= bound]
        if len(ties) == k and k < n:
            # More equidistant candidates than were queried
            ties = np.asarray(tree.query_ball_point(query_points[i], bound), dtype=int)
        result[i] = ties.min()
    return result, dist[:, 0]


def nearest_cells(src_centres, tgt_centres, k: int = 8) -> np.ndarray:
    """Nearest source cell to every target centroid (ties: lowest index).

    Parameters
    ----------
    src_centres : ndarray of shape (n_src, 3)
    tgt_centres : ndarray of shape (n_tgt, 3)
    k : int
        Candidates examined per target before falling back to a ball query.

    Returns
    -------
    ndarray of int, shape (n_tgt,)
    """
    src_centres = np.asarray(src_centres, dtype=float)
    tgt_centres = np.asarray(tgt_centres, dtype=float)
    if len(tgt_centres) == 0:
        return np.empty(0, dtype=int)
    if len(src_centres) == 0:
        raise ValueError("Cannot search an empty source mesh")
    tree, scale = _build_tree(src_centres)
    seeds, _ = _lowest_of_ties(tree, scale, tgt_centres, k)
    return seeds


def boundary_addressing(src_mesh, tgt_mesh, tol: float = 1e-8) -> dict:
    """Map every target boundary face to a source face on the same patch.

    Patches are matched by name. Each target face maps to the source face
    with the nearest centroid; faces whose match is farther than ``tol``
    times the patch extent are counted and logged.

    Returns
    -------
    dict
        Patch name -> int array of source patch-local face indices.
    """
    result = {}
    src_names = set(src_mesh.patch_names)
    for patch in tgt_mesh.patches:
        if patch.size == 0:
            result[patch.name] = np.empty(0, dtype=int)
            continue
        if patch.name not in src_names:
            logger.warning("Target patch %r has no counterpart in source mesh %r",
                           patch.name, src_mesh.name)
            continue
        src_fc = src_mesh.patch_face_centres(patch.name)
        if len(src_fc) == 0:
            logger.warning("Source patch %r is empty", patch.name)
            continue
        tgt_fc = tgt_mesh.patch_face_centres(patch.name)

        tree, scale = _build_tree(src_fc)
        faces, dist = _lowest_of_ties(tree, scale, tgt_fc, k=4)
        result[patch.name] = faces

        extent = max(scale, 1.0e-300)
        n_far = int(np.count_nonzero(dist > tol * extent))
        if n_far:
            logger.warning(
                "Patch %r: %d of %d target faces have no coincident source face; "
                "mapped to nearest", patch.name, n_far, patch.size,
            )
    return result
