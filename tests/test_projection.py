from __future__ import annotations

import numpy as np
import pytest
import torch

from embedrec.models import RetrievalModel
from embedrec.projection import power_iteration_pca, project_item_embeddings, sample_indices


def test_axis_aligned_input_comes_back_centered() -> None:
    # Zero off-diagonal covariance, variance 4 on x and 1 on y.
    x = np.array([[2.0, 0.0], [-2.0, 0.0], [0.0, 1.0], [0.0, -1.0]]) + np.array([10.0, -3.0])

    projected, components = power_iteration_pca(x, 2)
    centered = x - x.mean(axis=0)

    np.testing.assert_allclose(np.abs(components), np.eye(2), atol=1e-4)
    np.testing.assert_allclose(np.abs(projected), np.abs(centered), atol=1e-4)


def test_equal_variance_axes_stay_distinct() -> None:
    x = np.array([[1.0, 0.0], [-1.0, 0.0], [0.0, 1.0], [0.0, -1.0]])

    projected, components = power_iteration_pca(x, 2)

    np.testing.assert_allclose(components @ components.T, np.eye(2), atol=1e-8)
    np.testing.assert_allclose(np.abs(projected), np.abs(x), atol=1e-8)


def test_rank_one_input_still_yields_orthonormal_axes() -> None:
    t = np.linspace(-1.0, 1.0, 7)[:, None]
    x = np.hstack([t, t, t])

    projected, components = power_iteration_pca(x, 2)

    np.testing.assert_allclose(components @ components.T, np.eye(2), atol=1e-8)
    np.testing.assert_allclose(np.abs(projected[:, 0]), np.abs(t[:, 0]) * np.sqrt(3.0), atol=1e-8)
    np.testing.assert_allclose(projected[:, 1], 0.0, atol=1e-8)


def test_first_component_follows_dominant_direction() -> None:
    rng = np.random.default_rng(0)
    t = rng.normal(size=(200, 1))
    x = np.hstack([t, 2 * t, 0.01 * rng.normal(size=(200, 1))])

    _, components = power_iteration_pca(x, 2)
    expected = np.array([1.0, 2.0, 0.0]) / np.sqrt(5.0)
    assert abs(float(components[0] @ expected)) == pytest.approx(1.0, abs=1e-3)
    assert np.linalg.norm(components[1]) == pytest.approx(1.0, abs=1e-6)


def test_constant_rows_project_to_origin() -> None:
    projected, _ = power_iteration_pca(np.ones((5, 3)), 2)
    assert projected.shape == (5, 2)
    assert np.isfinite(projected).all()
    np.testing.assert_allclose(projected, 0.0)


@pytest.mark.parametrize("bad", [np.zeros((0, 3)), np.zeros(3)])
def test_rejects_malformed_input(bad) -> None:
    with pytest.raises(ValueError):
        power_iteration_pca(bad, 2)


def test_rejects_too_many_components() -> None:
    with pytest.raises(ValueError):
        power_iteration_pca(np.eye(3), 4)


def test_sample_indices_evenly_spaced() -> None:
    assert sample_indices(10, 5).tolist() == [0, 2, 4, 6, 8]
    assert sample_indices(3, 500).tolist() == [0, 1, 2]
    assert sample_indices(4, None).tolist() == [0, 1, 2, 3]


def test_projected_points_align_with_items() -> None:
    torch.manual_seed(0)
    m = RetrievalModel(n_users=2, n_items=12, embed_dim=6)

    points = project_item_embeddings(m, max_points=4)
    assert [p.item_idx for p in points] == [0, 3, 6, 9]

    full = project_item_embeddings(m)
    assert len(full) == 12
    assert all(np.isfinite([p.x, p.y]).all() for p in full)
