"""
Tetrahedron-tetrahedron intersection by half-space clipping.

A convex polyhedron is held as a list of polygon faces (arrays of shape
``(m, 3)``). Clipping by a plane applies Sutherland-Hodgman to every face
and closes the cut with a cap polygon made of the new vertices, ordered by
angle in the cutting plane. Clipping one tetrahedron by the four planes of
another leaves their intersection.

Usage
-----
    from consmaplib.geometry import tet_intersection

    vol, centroid = tet_intersection(tet_a, tet_b)
"""

import numpy as np

from consmaplib.geometry._decompose import tet_volumes

# Vertex triples of the four faces of a tetrahedron, and the vertex opposite
_TET_FACES = ((1, 2, 3), (0, 3, 2), (0, 1, 3), (0, 2, 1))
_OPPOSITE = (0, 1, 2, 3)


def tet_faces(tet) -> list:
    """The four triangular faces of a tetrahedron as a polygon list."""
    tet = np.asarray(tet, dtype=float)
    return [tet[list(tri)] for tri in _TET_FACES]


def tet_planes(tet, rel_eps=1e-14):
    """Outward unit normals and offsets of the faces of a tetrahedron.

    Parameters
    ----------
    tet : array_like of shape (4, 3)
    rel_eps : float
        The tetrahedron counts as flat when ``|volume| <= rel_eps * extent**3``.

    Returns
    -------
    normals : ndarray of shape (4, 3) or None
        None if the tetrahedron is flat.
    offsets : ndarray of shape (4,) or None
        A point ``x`` is inside face ``k`` when ``normals[k] @ x <= offsets[k]``.
    """
    tet = np.asarray(tet, dtype=float)
    scale = np.max(tet.max(axis=0) - tet.min(axis=0))
    if abs(float(tet_volumes(tet))) <= rel_eps * scale ** 3:
        return None, None
    normals = np.empty((4, 3))
    offsets = np.empty(4)
    for k, (tri, opp) in enumerate(zip(_TET_FACES, _OPPOSITE)):
        p0, p1, p2 = tet[list(tri)]
        n = np.cross(p1 - p0, p2 - p0)
        mag = np.linalg.norm(n)
        if mag == 0.0:
            return None, None
        n /= mag
        if np.dot(n, tet[opp] - p0) > 0.0:
            n = -n
        normals[k] = n
        offsets[k] = np.dot(n, p0)
    return normals, offsets


def _order_cap(points, normal, eps):
    """Deduplicate coplanar points and order them anticlockwise about ``normal``."""
    unique = []
    for p in points:
        if not any(np.linalg.norm(p - q) <= eps for q in unique):
            unique.append(p)
    if len(unique) < 3:
        return None
    pts = np.array(unique)
    c = pts.mean(axis=0)
    rel = pts - c
    u = rel[np.argmax(np.linalg.norm(rel, axis=1))]
    u = u / np.linalg.norm(u)
    v = np.cross(normal, u)
    angles = np.arctan2(rel @ v, rel @ u)
    return pts[np.argsort(angles)]


def clip_polyhedron(faces, normal, offset, eps=0.0) -> list:
    """Clip a convex polyhedron to the half-space ``normal @ x <= offset``.

    Parameters
    ----------
    faces : list of ndarray
        Polygon faces of the polyhedron.
    normal : ndarray of shape (3,)
        Unit normal of the cutting plane, pointing out of the kept region.
    offset : float
        Plane offset.
    eps : float
        Distance below which a vertex counts as lying on the plane.

    Returns
    -------
    list of ndarray
        Faces of the clipped polyhedron (possibly empty).
    """
    kept = []
    cap = []
    face_on_plane = False

    for poly in faces:
        d = poly @ normal - offset
        if np.all(d <= eps):
            kept.append(poly)
            on = np.abs(d) <= eps
            if np.all(on):
                face_on_plane = True
            cap.extend(poly[on])
            continue
        if np.all(d >= -eps):
            cap.extend(poly[np.abs(d) <= eps])
            continue

        new = []
        for i in range(len(poly)):
            cur, prev = poly[i], poly[i - 1]
            dc, dp = d[i], d[i - 1]
            cur_in = dc <= eps
            prev_in = dp <= eps
            if cur_in != prev_in:
                t = min(max(dp / (dp - dc), 0.0), 1.0)
                x = prev + t * (cur - prev)
                new.append(x)
                cap.append(x)
            if cur_in:
                new.append(cur)
                if abs(dc) <= eps:
                    cap.append(cur)
        if len(new) >= 3:
            kept.append(np.array(new))

    if kept and not face_on_plane:
        cap_poly = _order_cap(cap, normal, eps)
        if cap_poly is not None:
            kept.append(cap_poly)
    return kept


def polyhedron_volume_centroid(faces):
    """Volume and centroid of a convex polyhedron given by its faces.

    Each face is fanned into triangles which, together with the mean of
    all vertices, form tetrahedra. Returns ``(0.0, None)`` for an empty or
    flat polyhedron.
    """
    if not faces:
        return 0.0, None
    ref = np.concatenate(faces).mean(axis=0)
    vol = 0.0
    moment = np.zeros(3)
    for poly in faces:
        if len(poly) < 3:
            continue
        a = poly[0]
        b = poly[1:-1]
        c = poly[2:]
        v = np.abs(np.cross(b - a, c - a) @ (a - ref)) / 6.0
        vol += v.sum()
        moment += (v[:, None] * (ref + a + b + c)).sum(axis=0) / 4.0
    if vol <= 0.0:
        return 0.0, None
    return vol, moment / vol


def _inside_all(points, normals, offsets, eps):
    return bool(np.all(points @ normals.T - offsets <= eps))


def tet_intersection(tet_a, tet_b, rel_eps=1e-12):
    """Intersection volume and centroid of two tetrahedra.

    Parameters
    ----------
    tet_a, tet_b : ndarray of shape (4, 3)
        Vertices of the two tetrahedra.
    rel_eps : float
        On-plane tolerance relative to the size of the pair.

    Returns
    -------
    volume : float
    centroid : ndarray of shape (3,) or None
        None when the intersection is empty.
    """
    tet_a = np.asarray(tet_a, dtype=float)
    tet_b = np.asarray(tet_b, dtype=float)

    lo_a, hi_a = tet_a.min(axis=0), tet_a.max(axis=0)
    lo_b, hi_b = tet_b.min(axis=0), tet_b.max(axis=0)
    if np.any(hi_a < lo_b) or np.any(hi_b < lo_a):
        return 0.0, None

    scale = max(np.max(hi_a - lo_a), np.max(hi_b - lo_b))
    eps = rel_eps * scale

    normals_b, offsets_b = tet_planes(tet_b)
    if normals_b is None:
        return 0.0, None

    if _inside_all(tet_a, normals_b, offsets_b, eps):
        return abs(float(tet_volumes(tet_a))), tet_a.mean(axis=0)

    normals_a, offsets_a = tet_planes(tet_a)
    if normals_a is None:
        return 0.0, None
    if _inside_all(tet_b, normals_a, offsets_a, eps):
        return abs(float(tet_volumes(tet_b))), tet_b.mean(axis=0)

    faces = tet_faces(tet_a)
    for n, off in zip(normals_b, offsets_b):
        faces = clip_polyhedron(faces, n, off, eps)
        if len(faces) < 4:
            return 0.0, None
    return polyhedron_volume_centroid(faces)
