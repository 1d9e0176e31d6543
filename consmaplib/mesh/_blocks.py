"""
Structured hexahedral block meshes.

Usage
-----
    from consmaplib.mesh import block_mesh

    fine = block_mesh(4, 4, 4, name='fine')                 # unit cube, 64 cells
    graded = block_mesh([0.0, 0.3, 1.0], 2, 2, name='graded')
    shifted = block_mesh(np.linspace(0.5, 1.5, 3), 2, 2)

Patches are named ``xmin``, ``xmax``, ``ymin``, ``ymax``, ``zmin``, ``zmax``.
"""

import numpy as np

from consmaplib.mesh._polymesh import Patch, PolyMesh


def _axis(axis) -> np.ndarray:
    """Coordinates along one axis from a division count or explicit array."""
    if isinstance(axis, (int, np.integer)):
        if axis < 1:
            raise ValueError(f"Need at least one division, got {axis}")
        return np.linspace(0.0, 1.0, int(axis) + 1)
    coords = np.asarray(axis, dtype=float)
    if coords.ndim != 1 or coords.size < 2 or np.any(np.diff(coords) <= 0.0):
        raise ValueError("Axis coordinates must be a strictly increasing 1-D array")
    return coords


def block_mesh(x=1, y=1, z=1, name: str = 'block') -> PolyMesh:
    """Build an axis-aligned hexahedral block mesh.

    Parameters
    ----------
    x, y, z : int or array_like
        Number of uniform divisions of [0, 1], or the grid coordinates.
    name : str
        Mesh name.

    Returns
    -------
    PolyMesh
    """
    xs, ys, zs = _axis(x), _axis(y), _axis(z)
    nx, ny, nz = len(xs) - 1, len(ys) - 1, len(zs) - 1

    def P(i, j, k):
        return i + (nx + 1) * (j + (ny + 1) * k)

    def C(i, j, k):
        return i + nx * (j + ny * k)

    # Quads with right-hand normal along +x, +y, +z respectively
    def qx(i, j, k):
        return [P(i, j, k), P(i, j + 1, k), P(i, j + 1, k + 1), P(i, j, k + 1)]

    def qy(i, j, k):
        return [P(i, j, k), P(i, j, k + 1), P(i + 1, j, k + 1), P(i + 1, j, k)]

    def qz(i, j, k):
        return [P(i, j, k), P(i + 1, j, k), P(i + 1, j + 1, k), P(i, j + 1, k)]

    points = np.array([
        [xs[i], ys[j], zs[k]]
        for k in range(nz + 1) for j in range(ny + 1) for i in range(nx + 1)
    ])

    faces, owner, neighbour = [], [], []

    for k in range(nz):
        for j in range(ny):
            for i in range(1, nx):
                faces.append(qx(i, j, k))
                owner.append(C(i - 1, j, k))
                neighbour.append(C(i, j, k))
    for k in range(nz):
        for j in range(1, ny):
            for i in range(nx):
                faces.append(qy(i, j, k))
                owner.append(C(i, j - 1, k))
                neighbour.append(C(i, j, k))
    for k in range(1, nz):
        for j in range(ny):
            for i in range(nx):
                faces.append(qz(i, j, k))
                owner.append(C(i, j, k - 1))
                neighbour.append(C(i, j, k))

    patches = []

    def add_patch(patch_name, entries):
        start = len(faces)
        for face, cell in entries:
            faces.append(face)
            owner.append(cell)
        patches.append(Patch(patch_name, start, len(faces) - start))

    add_patch('xmin', [(qx(0, j, k)[::-1], C(0, j, k))
                       for k in range(nz) for j in range(ny)])
    add_patch('xmax', [(qx(nx, j, k), C(nx - 1, j, k))
                       for k in range(nz) for j in range(ny)])
    add_patch('ymin', [(qy(i, 0, k)[::-1], C(i, 0, k))
                       for k in range(nz) for i in range(nx)])
    add_patch('ymax', [(qy(i, ny, k), C(i, ny - 1, k))
                       for k in range(nz) for i in range(nx)])
    add_patch('zmin', [(qz(i, j, 0)[::-1], C(i, j, 0))
                       for j in range(ny) for i in range(nx)])
    add_patch('zmax', [(qz(i, j, nz), C(i, j, nz - 1))
                       for j in range(ny) for i in range(nx)])

    return PolyMesh(points, faces, owner, neighbour, patches=patches, name=name)
