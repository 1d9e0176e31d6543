"""Tests for the addressing pipeline: seeds, overlap solver, inverter, threads."""

import logging
import threading

import numpy as np
import numpy.testing as npt
import pytest

from consmaplib import Addressing, MappingReport, block_mesh


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def fine():
    return block_mesh(2, 2, 2, name='fine')


@pytest.fixture
def coarse():
    return block_mesh(1, 1, 1, name='coarse')


def _addressing(entries):
    """Addressing from ``[(parents, weights), ...]`` with zero centres."""
    a = Addressing.empty(len(entries))
    for i, (p, w) in enumerate(entries):
        a.set(i, p, w, np.zeros((len(p), 3)))
    return a


# ---------------------------------------------------------------------------
# Addressing record
# ---------------------------------------------------------------------------

class TestAddressing:
    def test_empty(self):
        a = Addressing.empty(3)
        assert len(a) == 3
        npt.assert_array_equal(a.weight_sums(), 0.0)
        offsets, parents, weights, centres = a.flatten()
        npt.assert_array_equal(offsets, [0, 0, 0, 0])
        assert parents.size == 0 and centres.shape == (0, 3)

    def test_flatten(self):
        a = _addressing([([0, 2], [0.5, 0.25]), ([], []), ([1], [1.0])])
        offsets, parents, weights, centres = a.flatten()
        npt.assert_array_equal(offsets, [0, 2, 2, 3])
        npt.assert_array_equal(parents, [0, 2, 1])
        npt.assert_allclose(weights, [0.5, 0.25, 1.0])
        npt.assert_array_equal(a.targets(), [0, 0, 2])
        npt.assert_allclose(a.weight_sums(), [0.75, 0.0, 1.0])

    def test_validate(self):
        a = _addressing([([0, 2], [0.5, 0.25])])
        a.validate(3)
        with pytest.raises(ValueError, match="outside"):
            a.validate(2)
        a.weights[0] = np.array([0.5, -0.1])
        with pytest.raises(ValueError, match="negative"):
            a.validate(3)

    def test_validate_lengths(self):
        a = _addressing([([0, 1], [0.5, 0.5])])
        a.weights[0] = np.array([1.0])
        with pytest.raises(ValueError, match="lengths"):
            a.validate(2)


# ---------------------------------------------------------------------------
# Seeds and boundary matching
# ---------------------------------------------------------------------------

class TestSeeds:
    def test_nearest(self):
        from consmaplib.mapping import nearest_cells
        src = np.array([[0.0, 0, 0], [1.0, 0, 0], [2.0, 0, 0]])
        tgt = np.array([[0.9, 0, 0], [2.5, 0, 0]])
        npt.assert_array_equal(nearest_cells(src, tgt), [1, 2])

    def test_ties_go_to_lowest_index(self):
        from consmaplib.mapping import nearest_cells
        src = np.array([[2.0, 0, 0], [0.0, 0, 0]])
        npt.assert_array_equal(nearest_cells(src, np.array([[1.0, 0, 0]])), [0])
        npt.assert_array_equal(nearest_cells(src[::-1], np.array([[1.0, 0, 0]])), [0])

    def test_many_ties(self, fine, coarse):
        from consmaplib.mapping import nearest_cells
        # All eight fine cells are equidistant from the coarse centre
        seeds = nearest_cells(fine.cell_centres, coarse.cell_centres, k=2)
        npt.assert_array_equal(seeds, [0])

    def test_empty_target(self):
        from consmaplib.mapping import nearest_cells
        assert nearest_cells(np.zeros((2, 3)), np.zeros((0, 3))).size == 0

    def test_empty_source(self):
        from consmaplib.mapping import nearest_cells
        with pytest.raises(ValueError):
            nearest_cells(np.zeros((0, 3)), np.zeros((1, 3)))

    def test_boundary_identity(self):
        from consmaplib.mapping import boundary_addressing
        src = block_mesh([0.0, 0.3, 1.0], 2, 2, name='a')
        tgt = block_mesh([0.0, 0.6, 1.0], 2, 2, name='b')
        faces = boundary_addressing(src, tgt)
        assert set(faces) == set(tgt.patch_names)
        npt.assert_array_equal(faces['xmin'], np.arange(4))
        npt.assert_array_equal(faces['xmax'], np.arange(4))

    def test_boundary_nearest(self, caplog):
        from consmaplib.mapping import boundary_addressing
        src = block_mesh(1, 2, 1, name='a')
        tgt = block_mesh(1, 4, 1, name='b')
        with caplog.at_level(logging.WARNING):
            faces = boundary_addressing(src, tgt)
        npt.assert_array_equal(faces['xmin'], [0, 0, 1, 1])
        assert "no coincident source face" in caplog.text


# ---------------------------------------------------------------------------
# Overlap solver
# ---------------------------------------------------------------------------

class TestOverlapWeightSolver:
    def test_fine_to_coarse(self, fine, coarse):
        from consmaplib.mapping import OverlapWeightSolver
        solver = OverlapWeightSolver(fine, coarse)
        parents, weights, centres = solver.compute_weights(0, 0, fine.cell_cells, 1e-8)
        npt.assert_array_equal(parents, np.arange(8))
        npt.assert_allclose(weights, 0.125, rtol=1e-9)
        npt.assert_allclose(centres, fine.cell_centres, atol=1e-12)

    def test_coarse_to_fine(self, fine, coarse):
        from consmaplib.mapping import OverlapWeightSolver
        solver = OverlapWeightSolver(coarse, fine)
        for celli in range(fine.n_cells):
            parents, weights, centres = solver.compute_weights(
                celli, 0, coarse.cell_cells, 1e-8)
            npt.assert_array_equal(parents, [0])
            npt.assert_allclose(weights, [0.125], rtol=1e-9)
            npt.assert_allclose(centres[0], fine.cell_centres[celli], atol=1e-12)

    def test_no_overlap(self, fine):
        from consmaplib.mapping import OverlapWeightSolver
        far = block_mesh([3.0, 4.0], 1, 1, name='far')
        solver = OverlapWeightSolver(fine, far)
        assert solver.compute_weights(0, 7, fine.cell_cells, 1e-8) is None

    def test_seed_without_overlap_still_expands(self):
        from consmaplib.mapping import OverlapWeightSolver
        src = block_mesh(4, 1, 1, name='row')
        tgt = block_mesh([0.5, 0.75], 1, 1, name='slab')
        solver = OverlapWeightSolver(src, tgt)
        # Cell 1 touches the target only at x = 0.5
        parents, weights, _ = solver.compute_weights(0, 1, src.cell_cells, 1e-8)
        npt.assert_array_equal(parents, [2])
        npt.assert_allclose(weights, [0.25], rtol=1e-9)

    def test_degenerate_lists(self, fine, coarse):
        from consmaplib.mapping import OverlapWeightSolver
        solver = OverlapWeightSolver(fine, coarse)
        assert solver.degenerate_source == []
        assert solver.degenerate_target == []

    def test_low_quality_tets_skipped(self, fine, coarse):
        from consmaplib.mapping import OverlapWeightSolver
        # No hex tet reaches a mean ratio of 0.99, so every tet is dropped
        solver = OverlapWeightSolver(fine, coarse, metric='Knupp', min_quality=0.99)
        assert solver.degenerate_source == list(range(8))
        assert solver.degenerate_target == [0]
        assert solver.source_tets(0).shape == (0, 4, 3)
        assert solver.compute_weights(0, 0, fine.cell_cells, 1e-8) is None

    def test_overlap_empty_sets(self):
        from consmaplib.mapping import OverlapWeightSolver
        empty = np.empty((0, 4, 3))
        assert OverlapWeightSolver.overlap(empty, empty) == (0.0, None)


# ---------------------------------------------------------------------------
# Inverter
# ---------------------------------------------------------------------------

class TestAddressingInverter:
    def test_slack_must_cover_tolerance(self):
        from consmaplib.mapping import AddressingInverter
        with pytest.raises(ValueError):
            AddressingInverter(tolerance=1e-2, slack=1e-3)

    def test_untouched_within_tolerance(self):
        from consmaplib.mapping import AddressingInverter
        a = _addressing([([0], [1.0 - 1e-10])])
        report = MappingReport()
        failures = AddressingInverter().normalize(a, [1.0], report)
        assert failures == 0
        assert report.rescaled == []
        npt.assert_allclose(a.weights[0], [1.0 - 1e-10], rtol=0)

    def test_rescaled_within_slack(self):
        from consmaplib.mapping import AddressingInverter
        a = _addressing([([0, 1], [0.4995, 0.4995])])
        report = MappingReport()
        assert AddressingInverter().normalize(a, [1.0], report) == 0
        assert report.rescaled == [0]
        npt.assert_allclose(a.weight_sums(), [1.0], rtol=1e-15)
        npt.assert_allclose(a.weights[0], [0.5, 0.5])

    def test_deficit_reported(self):
        from consmaplib.mapping import AddressingInverter
        a = _addressing([([0], [0.5]), ([1], [1.0]), ([], [])])
        report = MappingReport()
        failures = AddressingInverter().normalize(a, [1.0, 1.0, 1.0], report)
        assert failures == 1
        assert report.inversion_failures == [0]
        assert report.coverage_deficit == [0]
        npt.assert_allclose(a.weights[0], [0.5])
        assert report.n_warnings == 1

    def test_warnings_count_cells_once(self):
        report = MappingReport(coverage_deficit=[3], inversion_failures=[3, 4],
                               empty_overlap=[7], degenerate=[3], rescaled=[1])
        assert report.n_warnings == 4

    def test_excess_is_failure_not_deficit(self):
        from consmaplib.mapping import AddressingInverter
        a = _addressing([([0], [1.5])])
        report = MappingReport()
        assert AddressingInverter().normalize(a, [1.0], report) == 1
        assert report.inversion_failures == [0]
        assert report.coverage_deficit == []

    def test_invert(self):
        from consmaplib.mapping import AddressingInverter
        a = _addressing([([0, 2], [0.5, 0.25]), ([0], [1.0]), ([2], [0.75])])
        offsets, targets, weights = AddressingInverter.invert(a, 4)
        npt.assert_array_equal(offsets, [0, 2, 2, 4, 4])
        npt.assert_array_equal(targets, [0, 1, 0, 2])
        npt.assert_allclose(weights, [0.5, 1.0, 0.25, 0.75])

    def test_source_coverage(self):
        from consmaplib.mapping import AddressingInverter
        a = _addressing([([0, 1], [0.5, 0.25]), ([1], [0.25])])
        coverage = AddressingInverter().source_coverage(a, [1.0, 1.0])
        npt.assert_allclose(coverage, [0.5, 0.5])


# ---------------------------------------------------------------------------
# Parallel calculator
# ---------------------------------------------------------------------------

class TestChunkRanges:
    @pytest.mark.parametrize("n_cells, n_threads, expected", [
        (10, 1, [(0, 10)]),
        (10, 3, [(0, 3), (3, 3), (6, 4)]),
        (2, 8, [(0, 1), (1, 1)]),
        (0, 4, [(0, 0)]),
    ])
    def test_chunks(self, n_cells, n_threads, expected):
        from consmaplib.mapping import chunk_ranges
        assert chunk_ranges(n_cells, n_threads) == expected

    @pytest.mark.parametrize("n_threads", [1, 2, 3, 7, 64])
    def test_cover_exactly_once(self, n_threads):
        from consmaplib.mapping import chunk_ranges
        cells = [c for start, size in chunk_ranges(37, n_threads)
                 for c in range(start, start + size)]
        assert cells == list(range(37))


class TestProgressCounter:
    def test_count(self):
        from consmaplib.mapping import ProgressCounter
        progress = ProgressCounter(5, report_every=0.0)
        for _ in range(5):
            progress.increment()
        assert progress.count == 5

    def test_logs_progress(self, caplog):
        from consmaplib.mapping import ProgressCounter
        progress = ProgressCounter(4, report_every=0.5, label='Test')
        with caplog.at_level(logging.INFO, logger='consmaplib.mapping._parallel'):
            for _ in range(4):
                progress.increment()
        messages = [r.getMessage() for r in caplog.records]
        assert messages == ["Test: 2 / 4 cells (50%)", "Test: 4 / 4 cells (100%)"]


class TestParallelWeightCalculator:
    @pytest.mark.parametrize("n_threads", [1, 2, 8])
    def test_fills_every_slot(self, n_threads):
        from consmaplib.mapping import ParallelWeightCalculator, ProgressCounter
        out = [None] * 20
        names = set()

        def work(start, size, progress):
            names.add(threading.current_thread().name)
            for c in range(start, start + size):
                out[c] = c * c
                progress.increment()

        progress = ProgressCounter(20, report_every=0.0)
        ParallelWeightCalculator(work, progress).run(n_threads, 20)
        assert out == [c * c for c in range(20)]
        assert progress.count == 20
        assert len(names) == n_threads

    def test_worker_exception_propagates(self):
        from consmaplib.mapping import ParallelWeightCalculator
        done = []

        def work(start, size, progress):
            if start == 0:
                raise RuntimeError("boom")
            done.append(start)

        with pytest.raises(RuntimeError, match="boom"):
            ParallelWeightCalculator(work).run(4, 8)
        # The other workers still ran to completion
        assert sorted(done) == [2, 4, 6]

    def test_no_cells(self):
        from consmaplib.mapping import ParallelWeightCalculator
        calls = []
        ParallelWeightCalculator(lambda s, n, p: calls.append((s, n))).run(4, 0)
        assert calls == [(0, 0)]
