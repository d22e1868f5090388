"""
Tests for Generalized Procrustes superimposition and semilandmark sliding.
"""

import numpy as np
import pytest

from cochlea_disparity.errors import AlignmentFailureError
from cochlea_disparity.procrustes import (
    centroid_size,
    generalized_procrustes,
    rotate_to,
    center,
    procrustes_sum_of_squares,
    slide_semilandmarks,
    to_shape_matrix,
    validate_sliders,
)


def random_rotation(rng):
    q, _ = np.linalg.qr(rng.normal(size=(3, 3)))
    if np.linalg.det(q) < 0:
        q[:, 0] *= -1
    return q


@pytest.fixture
def reference(rng):
    return rng.normal(size=(12, 3))


class TestSimilarityInvariance:

    def test_copies_align_to_one_shape(self, reference, rng):
        """Rotated, scaled and translated copies become identical."""
        copies = np.stack([
            rng.uniform(0.5, 3.0) * reference @ random_rotation(rng) + rng.normal(size=3)
            for _ in range(5)
        ])
        result = generalized_procrustes(copies)

        for coords in result.coords:
            np.testing.assert_allclose(coords, result.mean_shape, atol=1e-8)
            assert centroid_size(coords) == pytest.approx(1.0)
            np.testing.assert_allclose(coords.mean(axis=0), 0.0, atol=1e-12)

    def test_centroid_sizes_recorded(self, reference):
        copies = np.stack([reference, 2.0 * reference, 3.0 * reference])
        result = generalized_procrustes(copies)
        np.testing.assert_allclose(
            result.centroid_sizes / result.centroid_sizes[0], [1.0, 2.0, 3.0]
        )

    def test_rotation_keeps_handedness(self, reference):
        mirrored = center(reference) * np.array([-1.0, 1.0, 1.0])
        rotated = rotate_to(mirrored, center(reference))
        assert np.linalg.norm(rotated - center(reference)) > 1e-6


class TestConvergence:

    def test_noisy_sample_converges(self, reference, rng):
        landmarks = np.stack([
            reference + rng.normal(0, 0.05, size=reference.shape) for _ in range(10)
        ])
        result = generalized_procrustes(landmarks, tol=1e-9)
        assert result.coords.shape == landmarks.shape
        assert result.n_iter >= 1

    def test_iteration_cap(self, reference, rng):
        landmarks = np.stack([
            reference @ random_rotation(rng) + rng.normal(0, 0.2, size=reference.shape)
            for _ in range(6)
        ])
        with pytest.raises(AlignmentFailureError, match="did not converge"):
            generalized_procrustes(landmarks, max_iter=1)

    def test_single_specimen(self, reference):
        with pytest.raises(AlignmentFailureError):
            generalized_procrustes(reference[None])

    def test_non_finite(self, reference):
        landmarks = np.stack([reference, reference.copy()])
        landmarks[1, 0, 0] = np.nan
        with pytest.raises(AlignmentFailureError):
            generalized_procrustes(landmarks)

    def test_zero_size(self, reference):
        landmarks = np.stack([reference, np.ones_like(reference)])
        with pytest.raises(AlignmentFailureError):
            generalized_procrustes(landmarks)


class TestSliders:

    def test_out_of_range(self):
        with pytest.raises(AlignmentFailureError):
            validate_sliders(np.array([[0, 1, 12]]), n_landmarks=12)

    def test_wrong_shape(self):
        with pytest.raises(AlignmentFailureError):
            validate_sliders(np.array([[0, 1]]), n_landmarks=12)

    def test_coincident_neighbours(self):
        with pytest.raises(AlignmentFailureError):
            validate_sliders(np.array([[2, 3, 2]]), n_landmarks=12)

    def test_slide_along_tangent(self):
        """A semilandmark only moves along the before -> after direction."""
        config = np.array([[0.0, 0, 0], [0.3, 0.5, 0], [1.0, 0, 0]])
        target = np.array([[0.0, 0, 0], [0.6, 0.0, 0], [1.0, 0, 0]])
        slid = slide_semilandmarks(config, target, np.array([[0, 1, 2]]))
        np.testing.assert_allclose(slid[1], [0.6, 0.5, 0.0])
        np.testing.assert_allclose(slid[[0, 2]], config[[0, 2]])

    @pytest.fixture
    def arcs(self, rng):
        t = np.linspace(0, np.pi, 10)
        curve = np.column_stack([np.cos(t), np.sin(t), t / np.pi])
        return np.stack([curve + rng.normal(0, 0.01, size=curve.shape) for _ in range(4)])

    @pytest.fixture
    def arc_sliders(self):
        return np.array([[i - 1, i, i + 1] for i in range(1, 9)])

    def test_gpa_with_sliders_converges(self, arcs, arc_sliders):
        """Sliding settles at the default tolerance and iteration cap."""
        result = generalized_procrustes(arcs, sliders=arc_sliders)
        assert result.n_iter < 100
        assert np.all(np.isfinite(result.coords))
        for coords in result.coords:
            assert centroid_size(coords) == pytest.approx(1.0)

    def test_sliding_reduces_procrustes_distance(self, arcs, arc_sliders):
        fixed = generalized_procrustes(arcs)
        slid = generalized_procrustes(arcs, sliders=arc_sliders)
        assert (procrustes_sum_of_squares(slid.coords, slid.mean_shape)
                < procrustes_sum_of_squares(fixed.coords, fixed.mean_shape))

    def test_slide_uses_reference_tangent(self):
        """The slide direction comes from the reference, not the moving specimen."""
        config = np.array([[0.0, 0, 0], [0.3, 0.5, 0], [0.0, 1.0, 0]])
        target = np.array([[0.0, 0, 0], [0.6, 0.0, 0], [1.0, 0, 0]])
        slid = slide_semilandmarks(config, target, np.array([[0, 1, 2]]))
        np.testing.assert_allclose(slid[1], [0.6, 0.5, 0.0])


def test_shape_matrix_columns(reference):
    coords = np.stack([reference, reference])
    matrix = to_shape_matrix(coords, ['s1', 's2'])
    assert list(matrix.columns[:4]) == ['x1', 'y1', 'z1', 'x2']
    assert matrix.shape == (2, 36)
    assert matrix.index.name == 'id'
    assert matrix.loc['s2', 'z1'] == reference[0, 2]
