"""
Tetrahedral quality metrics selectable by name.

Every metric takes the four vertices of a tetrahedron and returns a scalar.
The shape metrics are normalized to 1 for a regular tetrahedron and are
<= 0 for flat or inverted ones, so a single threshold detects degenerate
tets regardless of the metric chosen.

Usage
-----
    from consmaplib.geometry.metrics import select_metric, tet_metrics

    metric = select_metric("Knupp")
    q = metric(p0, p1, p2, p3)
    tet_metrics.available()  # ['Knupp', 'Jacobian', 'minSinAngle', 'volume']
"""

import numpy as np

from consmaplib._registry import MethodRegistry

tet_metrics = MethodRegistry("tet metric")

# Inverse of the edge matrix of a unit regular tetrahedron
_W_INV = np.linalg.inv(np.array([
    [1.0, 0.5, 0.5],
    [0.0, np.sqrt(3.0) / 2.0, np.sqrt(3.0) / 6.0],
    [0.0, 0.0, np.sqrt(2.0 / 3.0)],
]))

# sin of the dihedral angle of a regular tetrahedron
_REGULAR_DIHEDRAL_SIN = 2.0 * np.sqrt(2.0) / 3.0


def _signed_volume(p0, p1, p2, p3) -> float:
    return float(np.dot(np.cross(p1 - p0, p2 - p0), p3 - p0)) / 6.0


@tet_metrics.register("volume")
def signed_volume(p0, p1, p2, p3) -> float:
    """Signed volume; positive when (p1 - p0, p2 - p0, p3 - p0) is right-handed."""
    p0, p1, p2, p3 = (np.asarray(p, dtype=float) for p in (p0, p1, p2, p3))
    return _signed_volume(p0, p1, p2, p3)


@tet_metrics.register("Knupp")
def knupp(p0, p1, p2, p3) -> float:
    """Mean-ratio quality ``3 det(T)^(2/3) / |T|_F^2`` of the weighted Jacobian T."""
    p0, p1, p2, p3 = (np.asarray(p, dtype=float) for p in (p0, p1, p2, p3))
    a = np.column_stack((p1 - p0, p2 - p0, p3 - p0))
    t = a @ _W_INV
    det = np.linalg.det(t)
    frob2 = np.sum(t * t)
    if frob2 == 0.0:
        return 0.0
    return float(3.0 * np.sign(det) * np.abs(det) ** (2.0 / 3.0) / frob2)


@tet_metrics.register("Jacobian")
def scaled_jacobian(p0, p1, p2, p3) -> float:
    """Minimum corner scaled Jacobian, normalized by sqrt(2)."""
    pts = [np.asarray(p, dtype=float) for p in (p0, p1, p2, p3)]
    six_v = 6.0 * _signed_volume(*pts)
    worst = np.inf
    for i in range(4):
        lengths = [np.linalg.norm(pts[j] - pts[i]) for j in range(4) if j != i]
        denom = np.prod(lengths)
        if denom == 0.0:
            return 0.0
        worst = min(worst, six_v / denom)
    return float(np.sqrt(2.0) * worst)


@tet_metrics.register("minSinAngle")
def min_sin_angle(p0, p1, p2, p3) -> float:
    """Smallest dihedral-angle sine, normalized by that of a regular tet.

    For the edge ``ij`` shared by the faces opposite ``k`` and ``l``:
    ``sin(theta_ij) = 3 V |e_ij| / (2 A_k A_l)``.
    """
    pts = [np.asarray(p, dtype=float) for p in (p0, p1, p2, p3)]
    vol = _signed_volume(*pts)

    def face_area(k):
        a, b, c = (pts[m] for m in range(4) if m != k)
        return 0.5 * np.linalg.norm(np.cross(b - a, c - a))

    areas = [face_area(k) for k in range(4)]
    worst = np.inf
    for i in range(4):
        for j in range(i + 1, 4):
            k, l = (m for m in range(4) if m not in (i, j))
            denom = 2.0 * areas[k] * areas[l]
            if denom == 0.0:
                return 0.0
            edge = np.linalg.norm(pts[j] - pts[i])
            worst = min(worst, 3.0 * vol * edge / denom)
    return float(worst / _REGULAR_DIHEDRAL_SIN)


def select_metric(name: str):
    """Return the metric registered as ``name``.

    Raises
    ------
    KeyError
        If no such metric exists; the message lists the available ones.
    """
    return tet_metrics[name]
