"""Visualization utilities for consmaplib mappings.

Submodules
----------
vtk_export : Tet decomposition of selected cells written through meshio (optional)
"""
