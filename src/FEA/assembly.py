"""Galerkin assembly of the steady heat conduction system.

The weak form of ``laplace(T) = 1`` on biquadratic elements is accumulated as

    residual[m]    +=  w * detJ * N_m
    jacobian[m, n] += -w * detJ * grad(N_m) . grad(N_n)

over the tensor-product Gauss points of every element.
"""

from __future__ import annotations

import logging
from typing import NamedTuple

import numpy as np
from numba import njit
from numpy.typing import NDArray

from .basis import BasisFunctions
from .exceptions import DegenerateElementError, UnsupportedConfigurationError
from .mesh import QuadMesh2d
from .quadrature import gauss_points_weights_2d

log = logging.getLogger(__name__)


class IsoparametricMap(NamedTuple):
    """Physical coordinates and mapping derivatives, shape (n_elem, n_points)."""

    x: NDArray[np.float64]
    y: NDArray[np.float64]
    x_ksi: NDArray[np.float64]
    x_eta: NDArray[np.float64]
    y_ksi: NDArray[np.float64]
    y_eta: NDArray[np.float64]

    @property
    def det_jacobian(self) -> NDArray[np.float64]:
        return self.x_ksi * self.y_eta - self.x_eta * self.y_ksi


def _default_basis(mesh: QuadMesh2d, basis: BasisFunctions | None) -> BasisFunctions:
    if basis is None:
        basis = BasisFunctions(mesh.mesh_dimension, mesh.element_order)
    if basis.mesh_dimension != "2D" or basis.element_order != "quadratic":
        raise UnsupportedConfigurationError(
            f"Assembly is not implemented for {basis.mesh_dimension} {basis.element_order} elements"
        )
    return basis


def isoparametric_mapping(
    mesh: QuadMesh2d,
    points_ksi: NDArray[np.float64],
    points_eta: NDArray[np.float64],
    basis: BasisFunctions | None = None,
) -> IsoparametricMap:
    """
    Map reference points into every element of the mesh.

    Coordinates and their natural derivatives are interpolated from the
    nodal coordinates with the element's own shape functions.

    Parameters
    ----------
    mesh : QuadMesh2d
    points_ksi, points_eta : ndarray, shape (n_points,)
        Paired natural coordinates on [0, 1]^2.
    basis : BasisFunctions, optional
        Defaults to the mesh's element type.
    """
    basis = _default_basis(mesh, basis)
    N, dN_dksi, dN_deta = basis.tabulate(points_ksi, points_eta)

    nodes = mesh.nodes
    X = mesh.VX[nodes]  # (n_elem, n_loc)
    Y = mesh.VY[nodes]
    return IsoparametricMap(
        x=X @ N.T,
        y=Y @ N.T,
        x_ksi=X @ dN_dksi.T,
        x_eta=X @ dN_deta.T,
        y_ksi=Y @ dN_dksi.T,
        y_eta=Y @ dN_deta.T,
    )


def check_jacobian(det_jacobian: NDArray[np.float64]) -> None:
    """Raise DegenerateElementError if any determinant is not strictly positive."""
    bad = np.argwhere(~(det_jacobian > 0.0))
    if len(bad):
        element, point = bad[0]
        raise DegenerateElementError(
            f"Non-positive Jacobian determinant {det_jacobian[element, point]:.6g} "
            f"in element {element} at quadrature point {point} "
            f"({len(bad)} degenerate point(s) in total)"
        )


@njit
def _assemble_core(
    nodes, N, dN_dksi, dN_deta, weights, x_ksi, x_eta, y_ksi, y_eta, jacobian, residual
):
    n_elem, n_loc = nodes.shape
    n_points = weights.shape[0]
    dN_dx = np.empty(n_loc)
    dN_dy = np.empty(n_loc)

    for e in range(n_elem):
        for q in range(n_points):
            xk = x_ksi[e, q]
            xe = x_eta[e, q]
            yk = y_ksi[e, q]
            ye = y_eta[e, q]
            det = xk * ye - xe * yk

            # Physical derivatives through the inverse mapping
            for k in range(n_loc):
                dN_dx[k] = (ye * dN_dksi[q, k] - yk * dN_deta[q, k]) / det
                dN_dy[k] = (xk * dN_deta[q, k] - xe * dN_dksi[q, k]) / det

            wdet = weights[q] * det
            for m in range(n_loc):
                gm = nodes[e, m]
                residual[gm] += wdet * N[q, m]
                for n in range(n_loc):
                    gn = nodes[e, n]
                    jacobian[gm, gn] += -wdet * (dN_dx[m] * dN_dx[n] + dN_dy[m] * dN_dy[n])


def assemble_into(
    jacobian_matrix: NDArray[np.float64],
    residual_vector: NDArray[np.float64],
    mesh: QuadMesh2d,
    quadrature: tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]] | None = None,
    basis: BasisFunctions | None = None,
) -> None:
    """
    Accumulate the element contributions into zero-initialized buffers.

    Parameters
    ----------
    jacobian_matrix : ndarray, shape (total_nodes, total_nodes)
        Modified in place.
    residual_vector : ndarray, shape (total_nodes,)
        Modified in place.
    mesh : QuadMesh2d
    quadrature : tuple, optional
        ``(points_ksi, points_eta, weights)`` tensor rule; defaults to
        :func:`FEA.quadrature.gauss_points_weights_2d` for the mesh order.
    basis : BasisFunctions, optional

    Raises
    ------
    DegenerateElementError
        If an element has a zero or negative Jacobian determinant.
    """
    n = mesh.total_nodes
    if jacobian_matrix.shape != (n, n) or residual_vector.shape != (n,):
        raise ValueError(
            f"Buffers of shape {jacobian_matrix.shape} and {residual_vector.shape} "
            f"do not match a mesh with {n} nodes"
        )

    basis = _default_basis(mesh, basis)
    if quadrature is None:
        quadrature = gauss_points_weights_2d(basis.element_order)
    points_ksi, points_eta, weights = quadrature

    mapping = isoparametric_mapping(mesh, points_ksi, points_eta, basis)
    check_jacobian(mapping.det_jacobian)

    N, dN_dksi, dN_deta = basis.tabulate(points_ksi, points_eta)
    _assemble_core(
        mesh.nodes,
        N,
        dN_dksi,
        dN_deta,
        np.ascontiguousarray(weights, dtype=np.float64),
        mapping.x_ksi,
        mapping.x_eta,
        mapping.y_ksi,
        mapping.y_eta,
        jacobian_matrix,
        residual_vector,
    )


def assemble_solid_heat_transfer(
    mesh: QuadMesh2d,
    quadrature: tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]] | None = None,
    basis: BasisFunctions | None = None,
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Assemble the dense system before boundary conditions.

    Returns ``(jacobian_matrix, residual_vector)``.
    """
    n = mesh.total_nodes
    jacobian_matrix = np.zeros((n, n))
    residual_vector = np.zeros(n)
    assemble_into(jacobian_matrix, residual_vector, mesh, quadrature, basis)
    log.debug(f"Assembled {mesh.total_elements} elements into a {n}x{n} system")
    return jacobian_matrix, residual_vector
