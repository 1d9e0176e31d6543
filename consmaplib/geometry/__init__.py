"""
Tetrahedral geometry used by the overlap search.

Submodules
----------
_decompose : cell-to-tetrahedra decomposition (decompose_cell, tet_volumes)
_clip      : tetrahedron intersection by half-space clipping
metrics    : named tet quality metrics (Knupp, Jacobian, minSinAngle, volume)
"""

from consmaplib.geometry._decompose import decompose_cell, tet_volumes, tet_centroids
from consmaplib.geometry._clip import (
    clip_polyhedron,
    polyhedron_volume_centroid,
    tet_faces,
    tet_intersection,
    tet_planes,
)
from consmaplib.geometry.metrics import select_metric, tet_metrics

__all__ = [
    'decompose_cell', 'tet_volumes', 'tet_centroids',
    'clip_polyhedron', 'polyhedron_volume_centroid', 'tet_faces',
    'tet_intersection', 'tet_planes',
    'select_metric', 'tet_metrics',
]
