"""
Face-based polyhedral mesh used as the source and target of a mapping.

The layout follows the usual finite-volume convention:

- ``faces[f]`` lists the point indices of face ``f``. Its right-hand
  normal points from ``owner[f]`` to ``neighbour[f]`` for internal faces,
  and out of the domain for boundary faces.
- Internal faces come first (``0 .. n_internal_faces - 1``); boundary
  faces follow, grouped into named patches of contiguous faces.

All geometric quantities (face centres and area vectors, cell centres and
volumes, cell bounding boxes) are computed once in the constructor, so the
mesh is read-only afterwards and safe to share between worker threads.

Usage
-----
    from consmaplib.mesh import PolyMesh, Patch

    mesh = PolyMesh(points, faces, owner, neighbour,
                    patches=[Patch('walls', 12, 24)], name='coarse')
    mesh.check()
    mesh.cell_volumes.sum()
"""

import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from consmaplib._errors import MalformedMeshError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Patch:
    """Named range of boundary faces ``[start, start + size)``."""
    name: str
    start: int
    size: int

    @property
    def faces(self) -> range:
        return range(self.start, self.start + self.size)


class PolyMesh:
    """Read-only polyhedral mesh with precomputed geometry.

    Parameters
    ----------
    points : array_like of shape (n_points, 3)
        Point coordinates.
    faces : sequence of sequence of int
        Point indices per face.
    owner : array_like of int, shape (n_faces,)
        Owner cell of each face.
    neighbour : array_like of int, shape (n_internal_faces,)
        Neighbour cell of each internal face.
    patches : sequence of Patch
        Boundary patches, covering the faces after the internal ones.
    name : str
        Identity of the mesh (used to key cached addressing).
    """

    def __init__(
        self,
        points,
        faces: Sequence[Sequence[int]],
        owner,
        neighbour,
        patches: Sequence[Patch] = (),
        name: str = 'mesh',
    ):
        self.name = name
        self.points = np.asarray(points, dtype=float)
        self.faces = [np.asarray(f, dtype=int) for f in faces]
        self.owner = np.asarray(owner, dtype=int)
        self.neighbour = np.asarray(neighbour, dtype=int)
        self.patches = list(patches)

        if self.points.ndim != 2 or self.points.shape[1] != 3:
            raise MalformedMeshError(
                f"points must have shape (n, 3), got {self.points.shape}"
            )
        if len(self.owner) != len(self.faces):
            raise MalformedMeshError(
                f"owner has {len(self.owner)} entries for {len(self.faces)} faces"
            )

        self.n_points = len(self.points)
        for f in self.faces:
            if len(f) and (f.min() < 0 or f.max() >= self.n_points):
                raise MalformedMeshError(
                    f"Mesh {self.name!r}: face references a point outside "
                    f"[0, {self.n_points})"
                )
        self.n_faces = len(self.faces)
        self.n_internal_faces = len(self.neighbour)
        self.n_cells = int(self.owner.max()) + 1 if self.n_faces else 0
        if self.n_internal_faces:
            self.n_cells = max(self.n_cells, int(self.neighbour.max()) + 1)

        self._calc_cells()
        self._calc_face_geometry()
        self._calc_cell_geometry()

    # ------------------------------------------------------------------
    # Topology
    # ------------------------------------------------------------------

    def _calc_cells(self):
        cell_faces = [[] for _ in range(self.n_cells)]
        cell_cells = [[] for _ in range(self.n_cells)]
        for f, c in enumerate(self.owner):
            cell_faces[c].append(f)
        for f, c in enumerate(self.neighbour):
            cell_faces[c].append(f)
            o = self.owner[f]
            cell_cells[o].append(c)
            cell_cells[c].append(o)

        self.cells = [np.asarray(cf, dtype=int) for cf in cell_faces]
        self.cell_cells = [np.unique(np.asarray(cc, dtype=int)) for cc in cell_cells]

    @property
    def signature(self) -> tuple[int, int]:
        """Size signature ``(n_cells, n_points)`` used to validate caches."""
        return (self.n_cells, self.n_points)

    @property
    def patch_names(self) -> list[str]:
        return [p.name for p in self.patches]

    def patch(self, name: str) -> Patch:
        """Return the patch called ``name``."""
        for p in self.patches:
            if p.name == name:
                return p
        raise KeyError(f"Mesh {self.name!r} has no patch {name!r}. "
                       f"Available: {self.patch_names}")

    def cell_points(self, celli: int) -> np.ndarray:
        """Unique point indices of cell ``celli``."""
        return np.unique(np.concatenate([self.faces[f] for f in self.cells[celli]]))

    def owns(self, celli: int) -> np.ndarray:
        """Boolean per face of ``celli``: True where the cell owns the face."""
        return self.owner[self.cells[celli]] == celli

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    def _calc_face_geometry(self):
        """Face centres and area vectors from a triangle fan about the mean point."""
        self.face_centres = np.zeros((self.n_faces, 3))
        self.face_areas = np.zeros((self.n_faces, 3))

        for fi, f in enumerate(self.faces):
            pts = self.points[f]
            if len(f) == 3:
                self.face_centres[fi] = pts.mean(axis=0)
                self.face_areas[fi] = 0.5 * np.cross(pts[1] - pts[0], pts[2] - pts[0])
                continue

            p_avg = pts.mean(axis=0)
            nxt = np.roll(pts, -1, axis=0)
            n = np.cross(nxt - pts, p_avg - pts)
            a = np.linalg.norm(n, axis=1)
            sum_a = a.sum()
            if sum_a > 0.0:
                c = pts + nxt + p_avg
                self.face_centres[fi] = (a[:, None] * c).sum(axis=0) / (3.0 * sum_a)
            else:
                self.face_centres[fi] = p_avg
            self.face_areas[fi] = 0.5 * n.sum(axis=0)

    def _calc_cell_geometry(self):
        """Cell centres and volumes from face-based pyramids."""
        n_int = self.n_internal_faces
        c_est = np.zeros((self.n_cells, 3))
        n_cell_faces = np.zeros(self.n_cells)
        np.add.at(c_est, self.owner, self.face_centres)
        np.add.at(n_cell_faces, self.owner, 1.0)
        np.add.at(c_est, self.neighbour, self.face_centres[:n_int])
        np.add.at(n_cell_faces, self.neighbour, 1.0)
        c_est /= np.maximum(n_cell_faces, 1.0)[:, None]

        # 3 * pyramid volume, signed so that a valid cell is positive
        own_pyr = np.einsum(
            'ij,ij->i', self.face_areas, self.face_centres - c_est[self.owner]
        )
        nei_pyr = np.einsum(
            'ij,ij->i',
            self.face_areas[:n_int],
            c_est[self.neighbour] - self.face_centres[:n_int],
        )
        own_pc = 0.75 * self.face_centres + 0.25 * c_est[self.owner]
        nei_pc = 0.75 * self.face_centres[:n_int] + 0.25 * c_est[self.neighbour]

        vol = np.zeros(self.n_cells)
        ctr = np.zeros((self.n_cells, 3))
        np.add.at(vol, self.owner, own_pyr)
        np.add.at(vol, self.neighbour, nei_pyr)
        np.add.at(ctr, self.owner, own_pyr[:, None] * own_pc)
        np.add.at(ctr, self.neighbour, nei_pyr[:, None] * nei_pc)

        good = np.abs(vol) > 0.0
        ctr[good] /= vol[good][:, None]
        ctr[~good] = c_est[~good]

        self.cell_centres = ctr
        self.cell_volumes = vol / 3.0

        self.cell_bounds = np.zeros((self.n_cells, 2, 3))
        for c in range(self.n_cells):
            pts = self.points[self.cell_points(c)]
            self.cell_bounds[c, 0] = pts.min(axis=0)
            self.cell_bounds[c, 1] = pts.max(axis=0)

    def patch_face_centres(self, name: str) -> np.ndarray:
        p = self.patch(name)
        return self.face_centres[p.start:p.start + p.size]

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def check(self, closed_tol: float = 1e-6) -> None:
        """Raise MalformedMeshError if the mesh cannot be decomposed.

        Parameters
        ----------
        closed_tol : float
            Allowed ``|sum of outward area vectors| / sum |area|`` per cell.
        """
        short = [fi for fi, f in enumerate(self.faces) if len(f) < 3]
        if short:
            raise MalformedMeshError(
                f"Mesh {self.name!r}: {len(short)} faces have fewer than "
                f"3 points (first: {short[:5]})"
            )
        if self.n_internal_faces > self.n_faces:
            raise MalformedMeshError(
                f"Mesh {self.name!r}: more neighbours than faces"
            )
        if np.any(self.owner < 0) or np.any(self.neighbour < 0):
            raise MalformedMeshError(f"Mesh {self.name!r}: negative cell index")

        covered = sum(p.size for p in self.patches)
        if covered != self.n_faces - self.n_internal_faces:
            raise MalformedMeshError(
                f"Mesh {self.name!r}: patches cover {covered} faces, "
                f"expected {self.n_faces - self.n_internal_faces}"
            )
        for p in self.patches:
            if p.start < self.n_internal_faces or p.start + p.size > self.n_faces:
                raise MalformedMeshError(
                    f"Mesh {self.name!r}: patch {p.name!r} is outside the "
                    f"boundary face range"
                )

        few = [c for c in range(self.n_cells) if len(self.cells[c]) < 4]
        if few:
            raise MalformedMeshError(
                f"Mesh {self.name!r}: {len(few)} cells have fewer than "
                f"4 faces (first: {few[:5]})"
            )

        bad = np.flatnonzero(self.cell_volumes <= 0.0)
        if bad.size:
            raise MalformedMeshError(
                f"Mesh {self.name!r}: {bad.size} cells have non-positive "
                f"volume (first: {bad[:5].tolist()})"
            )

        n_int = self.n_internal_faces
        sum_sf = np.zeros((self.n_cells, 3))
        sum_mag = np.zeros(self.n_cells)
        mag = np.linalg.norm(self.face_areas, axis=1)
        np.add.at(sum_sf, self.owner, self.face_areas)
        np.add.at(sum_sf, self.neighbour, -self.face_areas[:n_int])
        np.add.at(sum_mag, self.owner, mag)
        np.add.at(sum_mag, self.neighbour, mag[:n_int])
        openness = np.linalg.norm(sum_sf, axis=1) / sum_mag
        open_cells = np.flatnonzero(openness > closed_tol)
        if open_cells.size:
            raise MalformedMeshError(
                f"Mesh {self.name!r}: {open_cells.size} cells are not closed "
                f"(first: {open_cells[:5].tolist()}, "
                f"max openness {openness.max():.3e})"
            )
        logger.debug("Mesh %r passed checks: %d cells, %d faces, %d points",
                     self.name, self.n_cells, self.n_faces, self.n_points)

    def __repr__(self):
        return (f"PolyMesh(name={self.name!r}, n_cells={self.n_cells}, "
                f"n_faces={self.n_faces}, n_points={self.n_points}, "
                f"patches={self.patch_names})")


def bounding_boxes_overlap(a: np.ndarray, b: np.ndarray, tol: float = 0.0) -> bool:
    """True if boxes ``a`` and ``b`` (each ``[[min], [max]]``) intersect."""
    return bool(np.all(a[0] <= b[1] + tol) and np.all(b[0] <= a[1] + tol))
