"""Addressing computation and field transfer between meshes."""

from consmaplib.data import Addressing
from consmaplib.mapping._interpolate import (
    Method,
    interpolation_methods,
    least_squares_gradient,
)
from consmaplib.mapping._inverter import AddressingInverter
from consmaplib.mapping._mesh_to_mesh import CellField, ConservativeMeshToMesh
from consmaplib.mapping._parallel import (
    ParallelWeightCalculator,
    ProgressCounter,
    chunk_ranges,
)
from consmaplib.mapping._report import MappingReport
from consmaplib.mapping._seeds import boundary_addressing, nearest_cells
from consmaplib.mapping._solver import OverlapWeightSolver

__all__ = [
    'Addressing',
    'AddressingInverter',
    'CellField',
    'ConservativeMeshToMesh',
    'MappingReport',
    'Method',
    'OverlapWeightSolver',
    'ParallelWeightCalculator',
    'ProgressCounter',
    'boundary_addressing',
    'chunk_ranges',
    'interpolation_methods',
    'least_squares_gradient',
    'nearest_cells',
]
