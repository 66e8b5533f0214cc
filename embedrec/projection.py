"""Approximate PCA by power iteration, for 2-D inspection of item embeddings.

This is not an exact eigendecomposition: each component comes from a fixed
number of power-iteration steps with no convergence check, which is good
enough for a scatter plot but not for analysis that needs exact axes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .models.base import LatentFactorModel


logger = logging.getLogger(__name__)

_EPS = 1e-12


@dataclass(frozen=True)
class ProjectedPoint:
    item_idx: int
    x: float
    y: float


def power_iteration_pca(
    matrix: np.ndarray,
    n_components: int = 2,
    *,
    n_iter: int = 10,
) -> tuple[np.ndarray, np.ndarray]:
    """Project rows of `matrix` (N x k) onto `n_components` approximate principal axes.

    Returns `(projected [N x d], components [d x k])`. Steps: center columns,
    form the k x k covariance, find each axis by `n_iter` multiply-and-renormalize
    steps kept orthogonal to the axes already found, deflate by `lambda * v v^T`
    (lambda being the Rayleigh quotient), then project the centered rows.
    """
    x = np.asarray(matrix, dtype=np.float64)
    if x.ndim != 2:
        raise ValueError(f"Expected a 2D matrix, got shape={x.shape}")
    n, k = x.shape
    if n == 0:
        raise ValueError("Cannot project an empty matrix")
    if not 0 < int(n_components) <= k:
        raise ValueError(f"n_components must be in [1, {k}], got {n_components}")

    centered = x - x.mean(axis=0, keepdims=True)
    cov = centered.T @ centered / n

    components = np.zeros((int(n_components), k), dtype=np.float64)
    for d in range(int(n_components)):
        found = components[:d]
        v = _start_vector(cov, found)
        for _ in range(int(n_iter)):
            w = _orthogonalize(cov @ v, found)
            norm = float(np.linalg.norm(w))
            if norm <= _EPS:
                # No variance left along this iterate; keep the current vector.
                break
            v = w / norm
        components[d] = v
        eigenvalue = float(v @ cov @ v)
        cov = cov - eigenvalue * np.outer(v, v)

    return centered @ components.T, components


def _orthogonalize(v: np.ndarray, basis: np.ndarray) -> np.ndarray:
    """Remove from `v` its projection onto each (orthonormal) row of `basis`."""
    for b in basis:
        v = v - float(b @ v) * b
    return v


def _start_vector(cov: np.ndarray, found: np.ndarray) -> np.ndarray:
    """Unit start vector orthogonal to `found`.

    The covariance column with the largest norm is tried first, then the
    standard basis vectors in order.
    """
    k = cov.shape[0]
    col_norms = np.linalg.norm(cov, axis=0)
    candidates = [cov[:, int(np.argmax(col_norms))], *np.eye(k)]
    for c in candidates:
        v = _orthogonalize(c, found)
        norm = float(np.linalg.norm(v))
        if norm > _EPS:
            return v / norm
    raise ValueError(f"no direction left orthogonal to {len(found)} components in {k} dimensions")


def sample_indices(n: int, max_points: Optional[int]) -> np.ndarray:
    """Evenly spaced indices `floor(i * n / m)` for `m = min(n, max_points)`."""
    m = int(n) if max_points is None else min(int(n), int(max_points))
    return (np.arange(m, dtype=np.int64) * int(n)) // max(m, 1)


def project_item_embeddings(
    model: LatentFactorModel,
    *,
    max_points: Optional[int] = None,
    n_iter: int = 10,
) -> list[ProjectedPoint]:
    """2-D points for (a sample of) the model's item embeddings."""
    items = model.item_matrix()
    rows = sample_indices(items.shape[0], max_points)
    projected, _ = power_iteration_pca(items[rows], 2, n_iter=n_iter)
    logger.info("Projected %d/%d item embeddings to 2D", len(rows), items.shape[0])
    return [
        ProjectedPoint(item_idx=int(i), x=float(p[0]), y=float(p[1]))
        for i, p in zip(rows.tolist(), projected)
    ]
