"""Polyhedral mesh collaborator and structured block-mesh builder."""

from consmaplib.mesh._polymesh import PolyMesh, Patch, bounding_boxes_overlap
from consmaplib.mesh._blocks import block_mesh

__all__ = ['PolyMesh', 'Patch', 'bounding_boxes_overlap', 'block_mesh']
