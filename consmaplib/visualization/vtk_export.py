"""VTK export of cell tet decompositions (optional dependency).

Writing fails with an ImportError message if meshio is not installed.

Usage
-----
    from consmaplib.visualization.vtk_export import write_vtk
    write_vtk(mesh, 'cell_12.vtu', [12], field=T)
"""

import numpy as np

from consmaplib.geometry import decompose_cell


def _check_meshio():
    try:
        import meshio
        return meshio
    except ImportError:
        raise ImportError(
            "meshio is required for VTK export. "
            "Install it with: pip install meshio"
        )


def cell_tets(mesh, cells):
    """Tetrahedra of ``cells`` and the cell each one came from.

    Returns
    -------
    tets : ndarray of shape (n_tets, 4, 3)
    owners : ndarray of int, shape (n_tets,)
    """
    tets, owners = [], []
    for celli in cells:
        celli = int(celli)
        t = decompose_cell(
            mesh.cells[celli],
            mesh.cell_centres[celli],
            mesh.faces,
            mesh.points,
            mesh.face_centres,
            mesh.owns(celli),
        )
        tets.append(t)
        owners.append(np.full(len(t), celli, dtype=int))
    if not tets:
        return np.empty((0, 4, 3)), np.empty(0, dtype=int)
    return np.concatenate(tets), np.concatenate(owners)


def write_vtk(mesh, path, cells, field=None) -> str:
    """Write the tets of ``cells`` to ``path`` in a meshio-supported format.

    Parameters
    ----------
    mesh : PolyMesh
    path : str or Path
        Output file; the format follows from the suffix.
    cells : sequence of int
    field : array_like of shape (n_cells,), optional
        Cell values, repeated on every tet of the cell as ``"field"``.
        The originating cell id is always written as ``"cell_id"``.

    Returns
    -------
    str
        The path written to.
    """
    meshio = _check_meshio()
    tets, owners = cell_tets(mesh, cells)
    points = tets.reshape(-1, 3)
    connectivity = np.arange(len(points), dtype=int).reshape(-1, 4)

    cell_data = {'cell_id': [owners]}
    if field is not None:
        values = np.asarray(field, dtype=float)
        if values.shape[0] != mesh.n_cells:
            raise ValueError(
                f"field has {values.shape[0]} entries, mesh {mesh.name!r} "
                f"has {mesh.n_cells} cells"
            )
        cell_data['field'] = [values[owners]]

    out = meshio.Mesh(points, [('tetra', connectivity)], cell_data=cell_data)
    meshio.write(str(path), out)
    return str(path)
