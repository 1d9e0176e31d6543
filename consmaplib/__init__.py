"""Conservative mesh-to-mesh mapping of cell fields on polyhedral meshes.

Subpackages
-----------
mesh          : PolyMesh (face-based polyhedral mesh) and block_mesh builder
geometry      : tet decomposition, tet-tet intersection, tet quality metrics
mapping       : overlap addressing, parallel computation, field interpolation
data          : Addressing record and its JSON cache
visualization : VTK export of cell decompositions (optional, needs meshio)
"""

from consmaplib._errors import MalformedMeshError
from consmaplib._params import MappingParams
from consmaplib.data import Addressing, AddressingCache
from consmaplib.mesh import Patch, PolyMesh, block_mesh
from consmaplib.mapping import (
    CellField,
    ConservativeMeshToMesh,
    MappingReport,
    Method,
    interpolation_methods,
)

__all__ = [
    'Addressing',
    'AddressingCache',
    'CellField',
    'ConservativeMeshToMesh',
    'MalformedMeshError',
    'MappingParams',
    'MappingReport',
    'Method',
    'Patch',
    'PolyMesh',
    'block_mesh',
    'interpolation_methods',
]
