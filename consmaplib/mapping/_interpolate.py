"""
Field transfer through finished addressing.

A field is a numpy array of shape ``(n_cells, *component_shape)``: scalars
are ``(n,)``, vectors ``(n, 3)``, tensors ``(n, 3, 3)``. Gradients carry
one extra axis of length 3 after the cell axis, so ``gradient[c, k]`` is
the derivative of the field in cell ``c`` along ``x_k``.

Policies
--------
conservative_first_order
    ``sum(w_i * src[p_i]) / V``; conserves integrals exactly.
conservative
    As above, with each source value first extrapolated to the overlap
    centre with the supplied gradient; second order, same conservation.
inverse_distance
    Inverse-distance average over the overlapping source cells; does not
    conserve integrals.

Every policy writes into ``tgt_values`` in place and leaves target cells
without addressing untouched.

Usage
-----
    from consmaplib.mapping._interpolate import interpolation_methods

    fn = interpolation_methods["conservative_first_order"]
    fn(tgt_values, src_values, addressing, geometry)
"""

from collections import namedtuple
from enum import Enum

import numpy as np

from consmaplib._registry import MethodRegistry

interpolation_methods = MethodRegistry("interpolation")

TransferGeometry = namedtuple(
    'TransferGeometry', ['tgt_volumes', 'tgt_centres', 'src_centres']
)
TransferGeometry.__doc__ = "Cell volumes and centroids needed by the policies."


class Method(Enum):
    """Interpolation policies of a mesh-to-mesh mapping."""
    CONSERVATIVE = 'conservative'
    INVERSE_DISTANCE = 'inverse_distance'
    CONSERVATIVE_FIRST_ORDER = 'conservative_first_order'


def method_key(method) -> str:
    """Registry key of ``method`` (a Method or its string value)."""
    if isinstance(method, Method):
        return method.value
    return str(method)


def _as_field(values, n_cells, what):
    arr = np.asarray(values, dtype=float)
    if arr.ndim == 0 or arr.shape[0] != n_cells:
        raise ValueError(
            f"{what} must have {n_cells} entries along axis 0, got shape {arr.shape}"
        )
    return arr


def _check_target(tgt_values, n_cells, src_values):
    if not isinstance(tgt_values, np.ndarray):
        raise TypeError("tgt_values must be a numpy array (it is filled in place)")
    if tgt_values.shape != (n_cells,) + src_values.shape[1:]:
        raise ValueError(
            f"tgt_values has shape {tgt_values.shape}, expected "
            f"{(n_cells,) + src_values.shape[1:]}"
        )


def _weighted_sum(values, targets, weights, n_tgt):
    """Scatter-add ``weights * values`` onto their target cells."""
    acc = np.zeros((n_tgt,) + values.shape[1:])
    w = weights.reshape((-1,) + (1,) * (values.ndim - 1))
    np.add.at(acc, targets, w * values)
    return acc


def _store(tgt_values, acc, addressing, tgt_volumes):
    filled = np.array([len(p) > 0 for p in addressing.parents], dtype=bool)
    vol = np.asarray(tgt_volumes, dtype=float)[filled]
    tgt_values[filled] = acc[filled] / vol.reshape((-1,) + (1,) * (acc.ndim - 1))
    return tgt_values


@interpolation_methods.register('conservative_first_order')
def conservative_first_order(tgt_values, src_values, addressing, geometry,
                             gradient=None):
    """Volume-weighted average of the overlapping source values.

    ``gradient`` is accepted for a uniform policy signature and ignored.
    """
    n_tgt = len(addressing)
    src = _as_field(src_values, len(geometry.src_centres), "src_values")
    _check_target(tgt_values, n_tgt, src)

    _, parents, weights, _ = addressing.flatten()
    acc = _weighted_sum(src[parents], addressing.targets(), weights, n_tgt)
    return _store(tgt_values, acc, addressing, geometry.tgt_volumes)


@interpolation_methods.register('conservative')
def conservative(tgt_values, src_values, addressing, geometry, gradient=None):
    """Conservative transfer with gradient extrapolation to overlap centres.

    Each source value becomes
    ``src[p] + (centre - src_centre[p]) . gradient[p]`` before weighting.

    Raises
    ------
    ValueError
        If ``gradient`` is missing or its shape does not match the field.
    """
    if gradient is None:
        raise ValueError("Gradient-corrected interpolation needs a gradient field")
    n_tgt = len(addressing)
    n_src = len(geometry.src_centres)
    src = _as_field(src_values, n_src, "src_values")
    grad = _as_field(gradient, n_src, "gradient")
    if grad.shape != (n_src, 3) + src.shape[1:]:
        raise ValueError(
            f"gradient has shape {grad.shape}, expected {(n_src, 3) + src.shape[1:]}"
        )
    _check_target(tgt_values, n_tgt, src)

    _, parents, weights, centres = addressing.flatten()
    d = centres - np.asarray(geometry.src_centres)[parents]
    corrected = src[parents] + np.einsum('mk,mk...->m...', d, grad[parents])
    acc = _weighted_sum(corrected, addressing.targets(), weights, n_tgt)
    return _store(tgt_values, acc, addressing, geometry.tgt_volumes)


@interpolation_methods.register('inverse_distance')
def inverse_distance(tgt_values, src_values, addressing, geometry, gradient=None,
                     rel_eps=1e-12):
    """Inverse-distance average over the overlapping source cells.

    A source centroid coinciding with the target centroid (within
    ``rel_eps`` of the mesh extent) supplies the value directly.
    """
    n_tgt = len(addressing)
    src_centres = np.asarray(geometry.src_centres, dtype=float)
    tgt_centres = np.asarray(geometry.tgt_centres, dtype=float)
    src = _as_field(src_values, len(src_centres), "src_values")
    _check_target(tgt_values, n_tgt, src)

    _, parents, _, _ = addressing.flatten()
    targets = addressing.targets()
    if parents.size == 0:
        return tgt_values

    extent = np.max(src_centres.max(axis=0) - src_centres.min(axis=0))
    eps = rel_eps * max(extent, 1.0)
    dist = np.linalg.norm(src_centres[parents] - tgt_centres[targets], axis=1)

    far = dist > eps
    w = np.zeros_like(dist)
    w[far] = 1.0 / dist[far]
    num = _weighted_sum(src[parents], targets, w, n_tgt)
    den = np.bincount(targets, weights=w, minlength=n_tgt)

    has = den > 0.0
    tgt_values[has] = num[has] / den[has].reshape((-1,) + (1,) * (src.ndim - 1))

    # Coincident centroids: first such parent wins
    exact_tgt, first = np.unique(targets[~far], return_index=True)
    if exact_tgt.size:
        tgt_values[exact_tgt] = src[parents[~far][first]]
    return tgt_values


def map_patch_field(src_patch_values, face_addressing) -> np.ndarray:
    """Direct one-to-one mapping of boundary face values."""
    return np.asarray(src_patch_values)[np.asarray(face_addressing, dtype=int)]


def least_squares_gradient(mesh, values, boundary=None) -> np.ndarray:
    """Cell gradients by least squares over face neighbours.

    Parameters
    ----------
    mesh : PolyMesh
    values : array_like of shape (n_cells, *component_shape)
    boundary : dict or None
        Patch name -> face values; boundary faces then take part in the fit.

    Returns
    -------
    ndarray of shape (n_cells, 3, *component_shape)
        Rank-deficient neighbourhoods get the minimum-norm solution.
    """
    vals = _as_field(values, mesh.n_cells, "values")
    comp = vals.shape[1:]
    flat = vals.reshape(mesh.n_cells, -1)

    rows = [[] for _ in range(mesh.n_cells)]
    rhs = [[] for _ in range(mesh.n_cells)]
    for c in range(mesh.n_cells):
        for nb in mesh.cell_cells[c]:
            rows[c].append(mesh.cell_centres[nb] - mesh.cell_centres[c])
            rhs[c].append(flat[nb] - flat[c])

    if boundary:
        for patch in mesh.patches:
            if patch.name not in boundary:
                continue
            pv = np.asarray(boundary[patch.name], dtype=float).reshape(patch.size, -1)
            for local, f in enumerate(patch.faces):
                c = mesh.owner[f]
                rows[c].append(mesh.face_centres[f] - mesh.cell_centres[c])
                rhs[c].append(pv[local] - flat[c])

    grad = np.zeros((mesh.n_cells, 3, flat.shape[1]))
    for c in range(mesh.n_cells):
        if not rows[c]:
            continue
        a = np.array(rows[c])
        b = np.array(rhs[c])
        grad[c] = np.linalg.lstsq(a, b, rcond=None)[0]
    return grad.reshape((mesh.n_cells, 3) + comp)
