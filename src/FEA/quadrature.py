"""Gauss-Legendre quadrature on the reference interval [0, 1]."""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

from .exceptions import UnsupportedConfigurationError

# Pre-computed rules mapped from [-1, 1] to [0, 1] (weights sum to 1)
_GAUSS_QUAD = {
    "linear": (np.array([0.5]), np.array([1.0])),
    "quadratic": (
        np.array([(1 - np.sqrt(3 / 5)) / 2, 0.5, (1 + np.sqrt(3 / 5)) / 2]),
        np.array([5 / 18, 8 / 18, 5 / 18]),
    ),
}


def gauss_points_weights(
    element_order: str,
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """
    Gauss points and weights on [0, 1] for the given element order.

    The linear rule has one point and is exact for linear integrands; the
    quadratic rule has three points and is exact up to degree 5.

    Parameters
    ----------
    element_order : {"linear", "quadratic"}

    Returns
    -------
    points, weights : ndarray
        Copies, safe to modify.
    """
    try:
        points, weights = _GAUSS_QUAD[element_order]
    except KeyError:
        raise UnsupportedConfigurationError(
            f"No Gauss rule for element order {element_order!r}"
        ) from None
    return points.copy(), weights.copy()


def gauss_points_weights_2d(
    element_order: str,
) -> tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]]:
    """Tensor-product rule on [0, 1]^2, flattened with ksi outer and eta inner.

    Returns ``(points_ksi, points_eta, weights)`` of length ``n**2`` where
    entry ``a*n + b`` is the pair ``(g_a, g_b)`` with weight ``w_a * w_b``.
    """
    points, weights = gauss_points_weights(element_order)
    ksi, eta = np.meshgrid(points, points, indexing="ij")
    w_ksi, w_eta = np.meshgrid(weights, weights, indexing="ij")
    return ksi.ravel(), eta.ravel(), (w_ksi * w_eta).ravel()
