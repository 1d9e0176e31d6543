"""End-to-end tests for ConservativeMeshToMesh."""

import logging

import numpy as np
import numpy.testing as npt
import pytest

from consmaplib import (
    CellField,
    ConservativeMeshToMesh,
    MalformedMeshError,
    MappingParams,
    Method,
    PolyMesh,
    block_mesh,
)

ALL_METHODS = [Method.CONSERVATIVE, Method.CONSERVATIVE_FIRST_ORDER,
               Method.INVERSE_DISTANCE]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(scope='module')
def params(tmp_path_factory):
    """Keeps every mapper away from caches in the working directory."""
    return MappingParams(cache_dir=str(tmp_path_factory.mktemp('addressing')))


@pytest.fixture(scope='module')
def eight_to_one(params):
    src = block_mesh(2, 2, 2, name='eight')
    tgt = block_mesh(1, 1, 1, name='one')
    return ConservativeMeshToMesh(src, tgt, params=params)


@pytest.fixture(scope='module')
def identical(params):
    src = block_mesh([0.0, 0.4, 1.0], 2, 1, name='left')
    tgt = block_mesh([0.0, 0.4, 1.0], 2, 1, name='right')
    return ConservativeMeshToMesh(src, tgt, params=params)


@pytest.fixture(scope='module')
def two_to_three(params):
    src = block_mesh(2, 1, 1, name='two')
    tgt = block_mesh(3, 1, 1, name='three')
    return ConservativeMeshToMesh(src, tgt, n_threads=2, params=params)


# ---------------------------------------------------------------------------
# Parameters
# ---------------------------------------------------------------------------

class TestMappingParams:
    def test_defaults(self):
        params = MappingParams()
        assert params.n_threads == 1
        assert params.volume_tolerance == 1e-8
        assert params.slack_bound == 1e-2
        assert params.tet_metric == 'Knupp'

    def test_invalid(self):
        with pytest.raises(ValueError):
            MappingParams(n_threads=0)
        with pytest.raises(ValueError):
            MappingParams(volume_tolerance=1e-2, slack_bound=1e-3)
        with pytest.raises(ValueError):
            MappingParams(volume_tolerance=0.0)

    def test_updated(self):
        params = MappingParams(n_threads=2).updated(n_threads=None, write_addressing=True)
        assert params.n_threads == 2
        assert params.write_addressing is True
        with pytest.raises(TypeError):
            MappingParams().updated(threads=4)

    def test_keywords_override_params(self, params):
        src = block_mesh(1, 1, 1, name='p_src')
        tgt = block_mesh(1, 1, 1, name='p_tgt')
        mapper = ConservativeMeshToMesh(src, tgt, n_threads=3,
                                        params=params.updated(n_threads=1, slack_bound=0.05))
        assert mapper.params.n_threads == 3
        assert mapper.params.slack_bound == 0.05


# ---------------------------------------------------------------------------
# Scenarios
# ---------------------------------------------------------------------------

class TestEightToOne:
    def test_addressing(self, eight_to_one):
        a = eight_to_one.addressing
        npt.assert_array_equal(a.parents[0], np.arange(8))
        npt.assert_allclose(a.weights[0], 0.125, rtol=1e-9)
        npt.assert_array_equal(eight_to_one.cell_addressing, [0])

    @pytest.mark.parametrize("method", ALL_METHODS)
    def test_mean(self, eight_to_one, method):
        tgt = np.zeros(1)
        eight_to_one.interpolate_internal_field(
            tgt, np.arange(8, dtype=float), method, gradient=np.zeros((8, 3)))
        npt.assert_allclose(tgt, [3.5], rtol=1e-10)

    def test_string_method(self, eight_to_one):
        tgt = np.zeros(1)
        eight_to_one.interpolate_internal_field(
            tgt, np.arange(8, dtype=float), 'conservative_first_order')
        npt.assert_allclose(tgt, [3.5], rtol=1e-10)

    def test_unknown_method(self, eight_to_one):
        with pytest.raises(KeyError, match="Available"):
            eight_to_one.interpolate_internal_field(np.zeros(1), np.zeros(8), 'nearest')

    def test_report_clean(self, eight_to_one):
        report = eight_to_one.report
        assert report.n_warnings == 0
        assert eight_to_one.from_cache is False

    def test_source_to_target(self, eight_to_one):
        offsets, targets, weights = eight_to_one.source_to_target()
        npt.assert_array_equal(offsets, np.arange(9))
        npt.assert_array_equal(targets, np.zeros(8, dtype=int))
        npt.assert_allclose(weights, 0.125, rtol=1e-9)


class TestIdenticalMeshes:
    def test_one_parent_each(self, identical):
        a = identical.addressing
        vols = identical.tgt_mesh.cell_volumes
        for celli in range(identical.tgt_mesh.n_cells):
            npt.assert_array_equal(a.parents[celli], [celli])
            npt.assert_allclose(a.weights[celli], [vols[celli]], rtol=1e-9)

    @pytest.mark.parametrize("method", ALL_METHODS)
    def test_all_policies_exact(self, identical, method):
        n = identical.src_mesh.n_cells
        src = np.linspace(1.0, 2.0, n)
        tgt = np.zeros(n)
        identical.interpolate_internal_field(tgt, src, method,
                                             gradient=np.ones((n, 3)))
        npt.assert_allclose(tgt, src, rtol=1e-9)

    def test_boundary_identity(self, identical):
        for name, faces in identical.boundary_addressing.items():
            npt.assert_array_equal(faces, np.arange(identical.tgt_mesh.patch(name).size))


class TestConservation:
    def test_constant_preserved(self, two_to_three):
        tgt = np.zeros(3)
        two_to_three.interpolate_internal_field(
            tgt, np.full(2, 4.2), Method.CONSERVATIVE_FIRST_ORDER)
        npt.assert_allclose(tgt, 4.2, rtol=1e-12)

    def test_integral_preserved(self, two_to_three):
        src_mesh, tgt_mesh = two_to_three.src_mesh, two_to_three.tgt_mesh
        src = np.array([1.0, 5.0])
        tgt = np.zeros(3)
        two_to_three.interpolate_internal_field(tgt, src, Method.CONSERVATIVE_FIRST_ORDER)
        npt.assert_allclose((tgt * tgt_mesh.cell_volumes).sum(),
                            (src * src_mesh.cell_volumes).sum(), rtol=1e-12)
        npt.assert_allclose(tgt, [1.0, 3.0, 5.0], rtol=1e-9)

    def test_partition_of_unity(self, two_to_three):
        sums = two_to_three.addressing.weight_sums()
        npt.assert_allclose(sums / two_to_three.tgt_mesh.cell_volumes, 1.0, atol=1e-6)

    def test_linear_field_with_gradient(self, two_to_three):
        src_x = two_to_three.src_mesh.cell_centres[:, 0]
        tgt = np.zeros(3)
        two_to_three.interpolate_internal_field(
            tgt, 3.0 * src_x, Method.CONSERVATIVE,
            gradient=np.tile([3.0, 0.0, 0.0], (2, 1)))
        npt.assert_allclose(tgt, 3.0 * two_to_three.tgt_mesh.cell_centres[:, 0],
                            rtol=1e-9)

    def test_linear_field_estimated_gradient(self, two_to_three):
        src_x = two_to_three.src_mesh.cell_centres[:, 0]
        result = two_to_three.interpolate(3.0 * src_x, Method.CONSERVATIVE)
        npt.assert_allclose(result.internal,
                            3.0 * two_to_three.tgt_mesh.cell_centres[:, 0], rtol=1e-9)


class TestThreadInvariance:
    def test_same_result(self, params):
        src = block_mesh([0.0, 0.3, 0.7, 1.0], 2, 1, name='thr_src')
        tgt = block_mesh(2, [0.0, 0.25, 1.0], 1, name='thr_tgt')
        results = [ConservativeMeshToMesh(src, tgt, n_threads=n, params=params).addressing
                   for n in (1, 2, 8)]
        ref = results[0]
        for other in results[1:]:
            for celli in range(tgt.n_cells):
                npt.assert_array_equal(other.parents[celli], ref.parents[celli])
                npt.assert_array_equal(other.weights[celli], ref.weights[celli])
                npt.assert_array_equal(other.centres[celli], ref.centres[celli])

    def test_recomputation_repeats(self, params):
        src = block_mesh([0.0, 0.3, 0.7, 1.0], [0.0, 0.6, 1.0], 1, name='rep_src')
        tgt = block_mesh(2, [0.0, 0.25, 1.0], 1, name='rep_tgt')
        first, second = [
            ConservativeMeshToMesh(src, tgt, force_recalculation=True,
                                   params=params).addressing
            for _ in range(2)
        ]
        for celli in range(tgt.n_cells):
            a = np.argsort(first.parents[celli])
            b = np.argsort(second.parents[celli])
            npt.assert_array_equal(first.parents[celli][a], second.parents[celli][b])
            npt.assert_allclose(first.weights[celli][a], second.weights[celli][b],
                                rtol=1e-12)
            npt.assert_allclose(first.centres[celli][a], second.centres[celli][b],
                                rtol=1e-12, atol=1e-15)


class TestCoverage:
    def test_partial_coverage_reported(self, params, caplog):
        src = block_mesh(2, 2, 2, name='cov_src')
        tgt = block_mesh([0.5, 1.5], 1, 1, name='cov_tgt')
        with caplog.at_level(logging.WARNING):
            mapper = ConservativeMeshToMesh(src, tgt, params=params)
        npt.assert_array_equal(mapper.addressing.parents[0], [1, 3, 5, 7])
        npt.assert_allclose(mapper.addressing.weight_sums(), [0.5], rtol=1e-9)
        assert mapper.report.coverage_deficit == [0]
        assert mapper.report.inversion_failures == [0]
        assert "coverage deficit: 1" in caplog.text
        assert mapper.invert_addressing() is False

    def test_empty_overlap_keeps_value(self, params):
        src = block_mesh(1, 1, 1, name='gap_src')
        tgt = block_mesh([2.0, 3.0, 4.0], 1, 1, name='gap_tgt')
        mapper = ConservativeMeshToMesh(src, tgt, params=params)
        assert mapper.report.empty_overlap == [0, 1]
        for method in ALL_METHODS:
            tgt_values = np.array([-1.0, -2.0])
            mapper.interpolate_internal_field(tgt_values, np.ones(1), method,
                                              gradient=np.zeros((1, 3)))
            npt.assert_array_equal(tgt_values, [-1.0, -2.0])


class TestBoundary:
    @pytest.fixture(scope='class')
    def graded(self, params):
        src = block_mesh([0.0, 0.3, 1.0], [0.0, 0.5, 1.0], 1, name='graded_src')
        tgt = block_mesh([0.0, 0.8, 1.0], [0.0, 0.5, 1.0], 1, name='graded_tgt')
        return ConservativeMeshToMesh(src, tgt, params=params)

    def test_patch_faces(self, graded):
        npt.assert_array_equal(graded.boundary_addressing['xmin'], [0, 1])
        npt.assert_array_equal(graded.boundary_addressing['xmax'], [0, 1])

    def test_map_patch_field(self, graded):
        npt.assert_array_equal(graded.map_patch_field('xmax', [3.0, 4.0]), [3.0, 4.0])
        with pytest.raises(ValueError):
            graded.map_patch_field('xmax', [3.0, 4.0, 5.0])
        with pytest.raises(KeyError):
            graded.map_patch_field('outlet', [3.0])

    def test_interpolate_cell_field(self, graded):
        src = CellField(
            internal=np.arange(4, dtype=float),
            boundary={'xmin': np.array([10.0, 11.0]), 'xmax': np.array([20.0, 21.0])},
        )
        result = graded.interpolate(src, Method.CONSERVATIVE_FIRST_ORDER)
        assert isinstance(result, CellField)
        npt.assert_array_equal(result.boundary['xmin'], [10.0, 11.0])
        npt.assert_array_equal(result.boundary['xmax'], [20.0, 21.0])
        assert result.internal.shape == (4,)

    def test_interpolate_keeps_target_boundary(self, graded):
        tgt = CellField(np.zeros(4), boundary={'ymin': np.array([1.0, 2.0])})
        result = graded.interpolate(np.ones(4), Method.CONSERVATIVE_FIRST_ORDER,
                                    tgt_field=tgt)
        npt.assert_array_equal(result.boundary['ymin'], [1.0, 2.0])
        npt.assert_allclose(result.internal, 1.0, rtol=1e-12)


class TestMalformed:
    def test_inverted_source(self):
        good = block_mesh(1, 1, 1, name='good')
        bad = PolyMesh(good.points, [f[::-1] for f in good.faces], good.owner,
                       good.neighbour, patches=good.patches, name='bad')
        with pytest.raises(MalformedMeshError):
            ConservativeMeshToMesh(bad, good)
        with pytest.raises(MalformedMeshError):
            ConservativeMeshToMesh(good, bad)
