"""Lagrange shape functions on the reference element.

1D elements live on [0, 1] with nodes at 0, (1/2,) 1. 2D elements are tensor
products on [0, 1]^2; local node ``n*a + b`` combines the ksi-polynomial ``a``
with the eta-polynomial ``b`` (see :class:`FEA.datastructures.Quad9Node`).
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from numpy.typing import ArrayLike, NDArray

from .datastructures import ELEMENT_ORDERS, MESH_DIMENSIONS
from .exceptions import MissingCoordinateError, UnsupportedConfigurationError


def lagrange_1d(
    element_order: str, c: ArrayLike
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """
    Evaluate the 1D Lagrange polynomials and their derivatives.

    Parameters
    ----------
    element_order : {"linear", "quadratic"}
    c : float or array_like
        Natural coordinate(s) on [0, 1].

    Returns
    -------
    values, derivs : ndarray, shape (n_nodes,) + shape(c)
    """
    c = np.asarray(c, dtype=np.float64)
    if element_order == "linear":
        one = np.ones_like(c)
        values = np.array([1 - c, c])
        derivs = np.array([-one, one])
    elif element_order == "quadratic":
        values = np.array([2 * c**2 - 3 * c + 1, -4 * c**2 + 4 * c, 2 * c**2 - c])
        derivs = np.array([4 * c - 3, -8 * c + 4, 4 * c - 1])
    else:
        raise UnsupportedConfigurationError(f"Unsupported element order {element_order!r}")
    return values, derivs


@dataclass(frozen=True)
class BasisFunctions:
    """Shape-function evaluator for one (dimension, order) configuration."""

    mesh_dimension: str
    element_order: str

    def __post_init__(self) -> None:
        if self.mesh_dimension not in MESH_DIMENSIONS:
            raise UnsupportedConfigurationError(
                f"Unsupported mesh dimension {self.mesh_dimension!r}"
            )
        if self.element_order not in ELEMENT_ORDERS:
            raise UnsupportedConfigurationError(
                f"Unsupported element order {self.element_order!r}"
            )

    @property
    def nodes_per_axis(self) -> int:
        return 2 if self.element_order == "linear" else 3

    @property
    def n_nodes(self) -> int:
        n = self.nodes_per_axis
        return n if self.mesh_dimension == "1D" else n * n

    def evaluate(
        self, ksi: float, eta: float | None = None
    ) -> tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]]:
        """
        Shape functions and natural derivatives at one point.

        Returns
        -------
        values, derivs_ksi, derivs_eta : ndarray, shape (n_nodes,)
            In 1D ``derivs_eta`` is all zeros.
        """
        if self.mesh_dimension == "1D":
            values, derivs = lagrange_1d(self.element_order, ksi)
            return values, derivs, np.zeros_like(values)

        if eta is None:
            raise MissingCoordinateError("2D basis functions need both ksi and eta")

        lx, dlx = lagrange_1d(self.element_order, ksi)
        ly, dly = lagrange_1d(self.element_order, eta)
        return (
            np.outer(lx, ly).ravel(),
            np.outer(dlx, ly).ravel(),
            np.outer(lx, dly).ravel(),
        )

    def tabulate(
        self, points_ksi: ArrayLike, points_eta: ArrayLike
    ) -> tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]]:
        """Evaluate at paired 2D points; arrays of shape (n_points, n_nodes)."""
        if self.mesh_dimension != "2D":
            raise UnsupportedConfigurationError("tabulate is defined for 2D elements only")

        points_ksi = np.atleast_1d(np.asarray(points_ksi, dtype=np.float64))
        points_eta = np.atleast_1d(np.asarray(points_eta, dtype=np.float64))
        if points_ksi.shape != points_eta.shape or points_ksi.ndim != 1:
            raise ValueError("points_ksi and points_eta must be 1D arrays of equal length")

        lx, dlx = lagrange_1d(self.element_order, points_ksi)
        ly, dly = lagrange_1d(self.element_order, points_eta)
        # (a, q) x (b, q) -> (q, a, b) -> (q, a*n + b)
        n_points = lx.shape[1]
        values = np.einsum("aq,bq->qab", lx, ly).reshape(n_points, -1)
        derivs_ksi = np.einsum("aq,bq->qab", dlx, ly).reshape(n_points, -1)
        derivs_eta = np.einsum("aq,bq->qab", lx, dly).reshape(n_points, -1)
        return values, derivs_ksi, derivs_eta
