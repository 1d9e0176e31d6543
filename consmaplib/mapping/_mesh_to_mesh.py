"""
Conservative mapping of cell fields from one polyhedral mesh to another.

Construction does all of the geometric work: both meshes are checked, the
nearest source cell of every target cell is found as a search seed, the
boundary patches are matched face by face, and the overlap addressing is
computed in parallel (or read back from the cache). Afterwards any number
of fields can be transferred cheaply.

Usage
-----
    from consmaplib import ConservativeMeshToMesh, Method, block_mesh

    src = block_mesh(2, 2, 2, name='fine')
    tgt = block_mesh(1, 1, 1, name='coarse')
    mapper = ConservativeMeshToMesh(src, tgt, n_threads=4)

    tgt_T = np.zeros(tgt.n_cells)
    mapper.interpolate_internal_field(tgt_T, src_T,
                                      Method.CONSERVATIVE_FIRST_ORDER)
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np

from consmaplib._params import MappingParams
from consmaplib.data import Addressing, AddressingCache
from consmaplib.mapping._interpolate import (
    Method,
    TransferGeometry,
    interpolation_methods,
    least_squares_gradient,
    map_patch_field,
    method_key,
)
from consmaplib.mapping._inverter import AddressingInverter
from consmaplib.mapping._parallel import ParallelWeightCalculator, ProgressCounter
from consmaplib.mapping._report import MappingReport
from consmaplib.mapping._seeds import boundary_addressing, nearest_cells
from consmaplib.mapping._solver import OverlapWeightSolver

logger = logging.getLogger(__name__)


@dataclass
class CellField:
    """Cell values plus boundary face values per patch.

    Attributes
    ----------
    internal : ndarray of shape (n_cells, *component_shape)
    boundary : dict
        Patch name -> ndarray of shape (patch.size, *component_shape).
    """
    internal: np.ndarray
    boundary: dict = field(default_factory=dict)


class ConservativeMeshToMesh:
    """Overlap-volume mapping from ``src_mesh`` to ``tgt_mesh``.

    Parameters
    ----------
    src_mesh, tgt_mesh : PolyMesh
        Source and target meshes. They are only read.
    n_threads : int, optional
        Worker threads for the addressing computation.
    force_recalculation : bool, optional
        Ignore cached addressing.
    write_addressing : bool, optional
        Store the addressing in ``params.cache_dir`` once computed.
    params : MappingParams, optional
        Full parameter set; the keyword arguments above override it.

    Raises
    ------
    MalformedMeshError
        If either mesh fails its consistency check.
    """

    def __init__(self, src_mesh, tgt_mesh, n_threads=None, force_recalculation=None,
                 write_addressing=None, params=None):
        if params is None:
            params = MappingParams()
        self.params = params.updated(
            n_threads=n_threads,
            force_recalculation=force_recalculation,
            write_addressing=write_addressing,
        )
        self._src = src_mesh
        self._tgt = tgt_mesh
        self._report = MappingReport()
        self._from_cache = False

        src_mesh.check()
        tgt_mesh.check()

        self._cell_addressing = nearest_cells(src_mesh.cell_centres, tgt_mesh.cell_centres)
        self._boundary_addressing = boundary_addressing(
            src_mesh, tgt_mesh, tol=self.params.volume_tolerance
        )
        self._geometry = TransferGeometry(
            tgt_volumes=tgt_mesh.cell_volumes,
            tgt_centres=tgt_mesh.cell_centres,
            src_centres=src_mesh.cell_centres,
        )
        self._cache = AddressingCache(self.params.cache_dir)
        self._addressing = None
        self._calc_addressing()

    # Accessors

    @property
    def src_mesh(self):
        return self._src

    @property
    def tgt_mesh(self):
        return self._tgt

    @property
    def cell_addressing(self) -> np.ndarray:
        """Nearest source cell of every target cell (search seeds)."""
        return self._cell_addressing

    @property
    def addressing(self) -> Addressing:
        return self._addressing

    @property
    def boundary_addressing(self) -> dict:
        return self._boundary_addressing

    @property
    def report(self) -> MappingReport:
        return self._report

    @property
    def from_cache(self) -> bool:
        """True if the addressing was read from the cache."""
        return self._from_cache

    # Addressing

    def _calc_addressing(self):
        params = self.params
        if not params.force_recalculation:
            cached = self._cache.load(self._src, self._tgt)
            if cached is not None:
                self._addressing = cached
                self._from_cache = True
                self._report.empty_overlap.extend(
                    i for i, p in enumerate(cached.parents) if len(p) == 0
                )
                logger.info("Using cached addressing %s",
                            self._cache.path(self._src, self._tgt))
                # Stored weights are already normalized; this refills the report
                self.invert_addressing()
                self._log_summary()
                return

        self._addressing = self._compute_addressing()
        self.invert_addressing()
        self._log_summary()

        if params.write_addressing:
            self._cache.store(self._src, self._tgt, self._addressing)

    def _compute_addressing(self) -> Addressing:
        params = self.params
        src, tgt = self._src, self._tgt
        solver = OverlapWeightSolver(src, tgt, metric=params.tet_metric,
                                     min_quality=params.min_tet_quality)
        self._report.degenerate.extend(
            sorted(set(solver.degenerate_source) | set(solver.degenerate_target))
        )

        addressing = Addressing.empty(tgt.n_cells)
        empty = [False] * tgt.n_cells
        seeds = self._cell_addressing
        neighbours = src.cell_cells
        tolerance = params.volume_tolerance

        def work(start, size, progress):
            for celli in range(start, start + size):
                result = solver.compute_weights(celli, seeds[celli], neighbours, tolerance)
                if result is None:
                    empty[celli] = True
                    logger.debug("Target cell %d: no overlapping source cell", celli)
                else:
                    addressing.set(celli, *result)
                progress.increment()

        logger.info("Computing addressing %s -> %s (%d target cells, %d threads)",
                    src.name, tgt.name, tgt.n_cells, params.n_threads)
        progress = ProgressCounter(tgt.n_cells, report_every=params.report_every)
        ParallelWeightCalculator(work, progress).run(params.n_threads, tgt.n_cells)

        self._report.empty_overlap.extend(i for i, e in enumerate(empty) if e)
        return addressing

    def invert_addressing(self) -> bool:
        """Normalize the weights against the target cell volumes.

        Returns
        -------
        bool
            True if every non-empty target cell ends up within the slack
            bound of its volume.
        """
        inverter = AddressingInverter(self.params.volume_tolerance,
                                      self.params.slack_bound)
        self._report.rescaled.clear()
        self._report.inversion_failures.clear()
        self._report.coverage_deficit.clear()
        failures = inverter.normalize(self._addressing, self._tgt.cell_volumes,
                                      self._report)
        coverage = inverter.source_coverage(self._addressing, self._src.cell_volumes)
        logger.debug("Source volume claimed by target: min %.6g, max %.6g",
                     coverage.min(), coverage.max())
        return failures == 0

    def source_to_target(self):
        """Source-to-target view ``(offsets, targets, weights)`` of the addressing."""
        return AddressingInverter.invert(self._addressing, self._src.n_cells)

    def _log_summary(self):
        if self._report.n_warnings:
            logger.warning("Mapping %s -> %s: %s", self._src.name, self._tgt.name,
                           self._report.summary())
        else:
            logger.info("Mapping %s -> %s: %s", self._src.name, self._tgt.name,
                        self._report.summary())

    # Field transfer

    def interpolate_internal_field(self, tgt_values, src_values, method, gradient=None):
        """Transfer cell values into ``tgt_values`` in place.

        Parameters
        ----------
        tgt_values : ndarray of shape (n_target_cells, *component_shape)
            Overwritten wherever a target cell has overlap; other cells
            keep their value.
        src_values : array_like of shape (n_source_cells, *component_shape)
        method : Method or str
        gradient : array_like of shape (n_source_cells, 3, *component_shape)
            Required by ``Method.CONSERVATIVE``.

        Returns
        -------
        ndarray
            ``tgt_values``.
        """
        fn = interpolation_methods[method_key(method)]
        return fn(tgt_values, src_values, self._addressing, self._geometry,
                  gradient=gradient)

    def map_patch_field(self, patch, src_values) -> np.ndarray:
        """Map the face values of source patch ``patch`` onto the target patch."""
        if patch not in self._boundary_addressing:
            raise KeyError(f"No boundary addressing for patch {patch!r}")
        src_values = np.asarray(src_values)
        size = self._src.patch(patch).size
        if src_values.shape[0] != size:
            raise ValueError(
                f"Patch {patch!r} has {size} source faces, got {src_values.shape[0]} values"
            )
        return map_patch_field(src_values, self._boundary_addressing[patch])

    def interpolate(self, src_field, method, gradient=None, tgt_field=None) -> CellField:
        """Transfer a whole field: cell values and matched boundary patches.

        Parameters
        ----------
        src_field : CellField or array_like
            Source values; a bare array carries no boundary values.
        method : Method or str
        gradient : array_like, optional
            Source gradient for ``Method.CONSERVATIVE``. When omitted it is
            estimated by least squares over face neighbours (and boundary
            faces, if given).
        tgt_field : CellField or array_like, optional
            Initial target values kept where nothing maps; zeros otherwise.

        Returns
        -------
        CellField
        """
        if not isinstance(src_field, CellField):
            src_field = CellField(np.asarray(src_field, dtype=float))
        src_internal = np.asarray(src_field.internal, dtype=float)

        if tgt_field is None:
            tgt_internal = np.zeros((self._tgt.n_cells,) + src_internal.shape[1:])
            tgt_boundary = {}
        elif isinstance(tgt_field, CellField):
            tgt_internal = np.array(tgt_field.internal, dtype=float)
            tgt_boundary = dict(tgt_field.boundary)
        else:
            tgt_internal = np.array(tgt_field, dtype=float)
            tgt_boundary = {}

        if method_key(method) == Method.CONSERVATIVE.value and gradient is None:
            gradient = least_squares_gradient(self._src, src_internal,
                                              boundary=src_field.boundary)

        self.interpolate_internal_field(tgt_internal, src_internal, method, gradient)

        for name, values in src_field.boundary.items():
            if name in self._boundary_addressing:
                tgt_boundary[name] = self.map_patch_field(name, values)
        return CellField(tgt_internal, tgt_boundary)

    # Debugging

    def write_vtk(self, name, cells, field=None, on='target') -> str:
        """Write tetrahedra of ``cells`` to ``<name>.vtu`` for inspection.

        Parameters
        ----------
        name : str
            Output file name; ``.vtu`` is appended unless a suffix is given.
        cells : sequence of int
            Cells of the selected mesh to export.
        field : array_like, optional
            Per-cell values of the selected mesh.
        on : {'target', 'source'}
        """
        from consmaplib.visualization.vtk_export import write_vtk

        if on == 'target':
            mesh = self._tgt
        elif on == 'source':
            mesh = self._src
        else:
            raise ValueError(f"on must be 'target' or 'source', got {on!r}")
        path = Path(name)
        if not path.suffix:
            path = path.with_suffix('.vtu')
        return write_vtk(mesh, path, cells, field=field)

    def __repr__(self):
        return (f"ConservativeMeshToMesh({self._src.name!r} -> {self._tgt.name!r}, "
                f"from_cache={self._from_cache})")
