from __future__ import annotations

import logging
from typing import Any, Mapping

import numpy as np
from numpy.typing import NDArray

from .basis import BasisFunctions
from .datastructures import (
    QUAD9_SIDE_NODES,
    SIDE_NATURAL_COORDS,
    BoundaryKey,
    ConstantTempBC,
    ConvectionBC,
    normalize_boundary_key,
    parse_boundary_conditions,
)
from .exceptions import BoundaryConditionError, UnsupportedConfigurationError
from .mesh import QuadMesh2d
from .quadrature import gauss_points_weights

log = logging.getLogger(__name__)


def _boundary_pairs(mesh: QuadMesh2d, key: BoundaryKey) -> tuple[tuple[int, int], ...]:
    try:
        return mesh.boundary_elements[key]
    except KeyError:
        raise BoundaryConditionError(
            f"Unknown boundary {key!r}; mesh boundaries are {list(mesh.boundary_elements)}"
        ) from None


def check_boundary_keys(mesh: QuadMesh2d, conditions: Mapping[Any, Any]) -> dict[BoundaryKey, Any]:
    """Parse ``conditions`` and reject keys the mesh has no boundary for."""
    conditions = parse_boundary_conditions(conditions)
    for key in conditions:
        _boundary_pairs(mesh, key)
    return conditions


def get_boundary_nodes(mesh: QuadMesh2d, key: Any) -> NDArray[np.int64]:
    """Sorted global node ids (1-based) on one boundary."""
    pairs = _boundary_pairs(mesh, normalize_boundary_key(key))
    if not pairs:
        return np.array([], dtype=np.int64)

    nodes = [mesh.nop[element, list(QUAD9_SIDE_NODES[side])] for element, side in pairs]
    return np.unique(np.concatenate(nodes))


def edge_points(side: int, gauss_points: NDArray[np.float64]) -> tuple[NDArray, NDArray]:
    """Natural coordinates of the Gauss points swept along one element side."""
    ksi, eta = SIDE_NATURAL_COORDS[side]
    ksi = gauss_points if ksi is None else np.full_like(gauss_points, ksi)
    eta = gauss_points if eta is None else np.full_like(gauss_points, eta)
    return ksi, eta


def robinbc_2d(
    residual: NDArray[np.float64],
    jacobian: NDArray[np.float64],
    mesh: QuadMesh2d,
    key: BoundaryKey,
    bc: ConvectionBC,
    gauss_points: NDArray[np.float64],
    gauss_weights: NDArray[np.float64],
    basis: BasisFunctions,
) -> None:
    """Add the convection edge integrals of one boundary in place.

    The edge Jacobian is the length of the tangent along the swept natural
    coordinate, so rotated elements integrate over the true edge length.
    Only the three nodes on the edge are touched.
    """
    h, t_ext = bc.heat_transfer_coeff, bc.external_temp

    for element, side in _boundary_pairs(mesh, key):
        x_nodes, y_nodes = mesh.element_coords(element)
        local = list(QUAD9_SIDE_NODES[side])
        gnodes = mesh.nop[element, local] - 1

        ksi, eta = edge_points(side, gauss_points)
        N, dN_dksi, dN_deta = basis.tabulate(ksi, eta)
        # tangent along the swept coordinate
        dN_dt = dN_dksi if SIDE_NATURAL_COORDS[side][0] is None else dN_deta
        edge_jacobian = np.hypot(dN_dt @ x_nodes, dN_dt @ y_nodes)

        for q, w in enumerate(gauss_weights):
            Ne = N[q, local]
            wj = w * edge_jacobian[q]
            residual[gnodes] += -wj * Ne * h * t_ext
            jacobian[np.ix_(gnodes, gnodes)] += -wj * np.outer(Ne, Ne) * h


def dirbc_2d(
    residual: NDArray[np.float64],
    jacobian: NDArray[np.float64],
    bnodes: NDArray[np.int64],
    value: float,
) -> None:
    """Overwrite rows of 1-based ``bnodes`` with ``T = value`` in place."""
    rows = bnodes - 1
    residual[rows] = value
    jacobian[rows, :] = 0.0
    jacobian[rows, rows] = 1.0


def impose_convection_boundary_conditions(
    residual: NDArray[np.float64],
    jacobian: NDArray[np.float64],
    mesh: QuadMesh2d,
    conditions: Mapping[Any, Any],
    quadrature: tuple[NDArray[np.float64], NDArray[np.float64]] | None = None,
    basis: BasisFunctions | None = None,
) -> None:
    """Apply every ``convection`` entry of ``conditions``."""
    conditions = parse_boundary_conditions(conditions)
    _require_quadratic(mesh)
    if basis is None:
        basis = BasisFunctions(mesh.mesh_dimension, mesh.element_order)
    if quadrature is None:
        quadrature = gauss_points_weights(mesh.element_order)
    gauss_points, gauss_weights = quadrature

    for key, bc in conditions.items():
        if isinstance(bc, ConvectionBC):
            robinbc_2d(residual, jacobian, mesh, key, bc, gauss_points, gauss_weights, basis)
            log.debug(
                f"Convection on boundary {key!r}: h={bc.heat_transfer_coeff}, "
                f"T_ext={bc.external_temp}, {len(_boundary_pairs(mesh, key))} element sides"
            )


def impose_constant_temp_boundary_conditions(
    residual: NDArray[np.float64],
    jacobian: NDArray[np.float64],
    mesh: QuadMesh2d,
    conditions: Mapping[Any, Any],
) -> None:
    """Apply every ``constantTemp`` entry of ``conditions``.

    A node shared by two constantTemp boundaries takes the value of the
    boundary listed last.
    """
    conditions = parse_boundary_conditions(conditions)
    _require_quadratic(mesh)

    assigned: dict[int, float] = {}
    for key, bc in conditions.items():
        if not isinstance(bc, ConstantTempBC):
            continue
        bnodes = get_boundary_nodes(mesh, key)
        for node in bnodes:
            previous = assigned.get(int(node))
            if previous is not None and previous != bc.value:
                log.warning(
                    f"Node {node} has constantTemp {previous} and {bc.value}; "
                    f"using {bc.value} from boundary {key!r}"
                )
            assigned[int(node)] = bc.value
        dirbc_2d(residual, jacobian, bnodes, bc.value)
        log.debug(f"constantTemp {bc.value} on boundary {key!r}: {len(bnodes)} nodes")


def impose_boundary_conditions(
    residual: NDArray[np.float64],
    jacobian: NDArray[np.float64],
    mesh: QuadMesh2d,
    conditions: Mapping[Any, Any],
    quadrature: tuple[NDArray[np.float64], NDArray[np.float64]] | None = None,
    basis: BasisFunctions | None = None,
) -> None:
    """Robin contributions first, then Dirichlet rows, so Dirichlet always wins."""
    conditions = check_boundary_keys(mesh, conditions)
    impose_convection_boundary_conditions(residual, jacobian, mesh, conditions, quadrature, basis)
    impose_constant_temp_boundary_conditions(residual, jacobian, mesh, conditions)


def _require_quadratic(mesh: QuadMesh2d) -> None:
    if mesh.mesh_dimension != "2D" or mesh.element_order != "quadratic":
        raise UnsupportedConfigurationError(
            f"Boundary conditions are not implemented for "
            f"{mesh.mesh_dimension} {mesh.element_order} elements"
        )
