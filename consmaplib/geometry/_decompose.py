"""
Decomposition of polyhedral cells into tetrahedra.

Each face of a cell is split into triangles by joining its centre to every
edge of its boundary; each triangle together with the cell centre forms a
tetrahedron. The union of these tetrahedra is the cell, without overlap,
for any star-shaped cell with planar faces.

Tetrahedra are returned as arrays of shape ``(n_tets, 4, 3)`` ordered
``(p_{i+1}, p_i, face_centre, cell_centre)``, which gives a positive signed
volume for a valid cell.
"""

import numpy as np


def decompose_cell(cell_faces, cell_centre, faces, points, face_centres, owned):
    """Decompose one cell into tetrahedra anchored at its centre.

    Parameters
    ----------
    cell_faces : sequence of int
        Face indices of the cell.
    cell_centre : ndarray of shape (3,)
        Cell centroid (apex of every tetrahedron).
    faces : sequence of ndarray
        Point indices of every mesh face.
    points : ndarray of shape (n_points, 3)
        Mesh point coordinates.
    face_centres : ndarray of shape (n_faces, 3)
        Face centroids.
    owned : sequence of bool
        True where the cell owns the face (face normal points outward);
        neighbour faces are walked in reverse.

    Returns
    -------
    ndarray of shape (n_tets, 4, 3)
    """
    blocks = []
    for fi, own in zip(cell_faces, owned):
        f = faces[fi] if own else faces[fi][::-1]
        pts = points[f]
        block = np.empty((len(f), 4, 3))
        block[:, 0] = np.roll(pts, -1, axis=0)
        block[:, 1] = pts
        block[:, 2] = face_centres[fi]
        block[:, 3] = cell_centre
        blocks.append(block)
    if not blocks:
        return np.empty((0, 4, 3))
    return np.concatenate(blocks)


def tet_volumes(tets) -> np.ndarray:
    """Signed volumes of tetrahedra with shape ``(..., 4, 3)``."""
    tets = np.asarray(tets, dtype=float)
    a = tets[..., 0, :]
    cr = np.cross(tets[..., 1, :] - a, tets[..., 2, :] - a)
    return np.einsum('...i,...i->...', cr, tets[..., 3, :] - a) / 6.0


def tet_centroids(tets) -> np.ndarray:
    """Centroids of tetrahedra with shape ``(..., 4, 3)``."""
    return np.asarray(tets, dtype=float).mean(axis=-2)
