from __future__ import annotations

import logging
import time
import warnings
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Callable, Mapping

import numpy as np
from numpy.typing import NDArray
from scipy.linalg import LinAlgWarning, get_lapack_funcs, lu_factor, lu_solve

from .assembly import assemble_solid_heat_transfer
from .boundary import check_boundary_keys, impose_boundary_conditions
from .datastructures import (
    AssembledSystem,
    BoundaryCondition,
    BoundaryKey,
    MeshConfig,
    NodesCoordinates,
    SolveResult,
    normalize_boundary_key,
    parse_boundary_condition,
    parse_boundary_conditions,
)
from .exceptions import ConfigurationError, SingularSystemError
from .mesh import QuadMesh2d, generate_mesh

log = logging.getLogger(__name__)


# Reciprocal condition number below which a factorized system counts as singular
RCOND_TOL = 1e-12


def solve_linear_system(
    A: NDArray[np.float64], b: NDArray[np.float64], rcond_tol: float = RCOND_TOL
) -> NDArray[np.float64]:
    """
    Dense direct solve of ``A x = b`` by LU decomposition with pivoting.

    Raises :class:`SingularSystemError` for an exactly zero pivot and for
    numerically singular systems, i.e. when the LAPACK estimate of the
    reciprocal 1-norm condition number is below ``rcond_tol``. A system with
    no constantTemp boundary and zero convection is of the second kind.
    """
    with warnings.catch_warnings():
        warnings.simplefilter("error", LinAlgWarning)
        try:
            lu, piv = lu_factor(A)
        except LinAlgWarning as exc:
            raise SingularSystemError(f"Linear system is singular: {exc}") from exc

    (gecon,) = get_lapack_funcs(("gecon",), (lu,))
    rcond, _ = gecon(lu, np.linalg.norm(A, 1), norm="1")
    log.debug(f"LU factorization of {len(A)} unknowns, rcond={rcond:.3e}")
    if not rcond >= rcond_tol:
        raise SingularSystemError(
            f"Linear system is numerically singular: rcond={rcond:.3e} < {rcond_tol:g}"
        )
    return lu_solve((lu, piv), b)


def assemble_solid_heat_transfer_system(
    mesh: QuadMesh2d, boundary_conditions: Mapping[BoundaryKey, BoundaryCondition]
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Conduction system with Robin and Dirichlet conditions applied."""
    jacobian_matrix, residual_vector = assemble_solid_heat_transfer(mesh)
    impose_boundary_conditions(residual_vector, jacobian_matrix, mesh, boundary_conditions)
    return jacobian_matrix, residual_vector


# Solver name -> system assembly
SOLVERS: dict[str, Callable[..., tuple[NDArray[np.float64], NDArray[np.float64]]]] = {
    "solidHeatTransfer": assemble_solid_heat_transfer_system,
}


def _lookup_solver(solver_config: str):
    try:
        return SOLVERS[solver_config]
    except KeyError:
        raise ConfigurationError(
            f"Unknown solver {solver_config!r}; available solvers: {sorted(SOLVERS)}"
        ) from None


def _nodes_coordinates(mesh: QuadMesh2d) -> NodesCoordinates:
    return NodesCoordinates(mesh.VX.copy(), mesh.VY.copy())


def assemble_system(
    solver_config: str,
    mesh_config: MeshConfig | Mapping[str, Any],
    boundary_conditions: Mapping[Any, Any],
    mesh: QuadMesh2d | None = None,
) -> AssembledSystem:
    """
    Generate the mesh and build the final linear system.

    Parameters
    ----------
    solver_config : str
        Key into :data:`SOLVERS`.
    mesh_config : MeshConfig or mapping
    boundary_conditions : mapping
        Boundary key -> condition (see
        :func:`FEA.datastructures.parse_boundary_conditions`).
    mesh : QuadMesh2d, optional
        Pre-built mesh; skips generation from ``mesh_config``.
    """
    assemble = _lookup_solver(solver_config)
    if not isinstance(mesh_config, MeshConfig):
        mesh_config = MeshConfig.from_dict(mesh_config)
    conditions = parse_boundary_conditions(boundary_conditions)

    if mesh is None:
        mesh = generate_mesh(mesh_config)
    check_boundary_keys(mesh, conditions)

    t0 = time.perf_counter()
    jacobian_matrix, residual_vector = assemble(mesh, conditions)
    log.info(
        f"Assembled {solver_config} system: {mesh.total_nodes} nodes, "
        f"{mesh.total_elements} elements in {time.perf_counter() - t0:.3f}s"
    )
    return AssembledSystem(jacobian_matrix, residual_vector, _nodes_coordinates(mesh))


def solve(
    solver_config: str,
    mesh_config: MeshConfig | Mapping[str, Any],
    boundary_conditions: Mapping[Any, Any],
    mesh: QuadMesh2d | None = None,
) -> SolveResult:
    """Assemble and solve; returns the nodal solution."""
    t0 = time.perf_counter()
    system = assemble_system(solver_config, mesh_config, boundary_conditions, mesh)
    t_assembly = time.perf_counter() - t0

    t0 = time.perf_counter()
    solution = solve_linear_system(system.jacobian_matrix, system.residual_vector)
    t_solve = time.perf_counter() - t0
    log.info(
        f"Solved {len(solution)} unknowns in {t_solve:.3f}s, "
        f"T in [{solution.min():.4g}, {solution.max():.4g}]"
    )

    return SolveResult(
        solution_vector=solution,
        nodes_coordinates=system.nodes_coordinates,
        timings={"assembly": t_assembly, "solve": t_solve},
    )


@dataclass(frozen=True)
class FEAModel:
    """Immutable problem description.

    Builders return new models::

        model = (
            FEAModel()
            .with_solver_config("solidHeatTransfer")
            .with_mesh_config(MeshConfig(num_elements_x=4, max_x=1.0, num_elements_y=4, max_y=1.0))
            .with_boundary_condition("left", ["constantTemp", 100])
        )
        result = model.solve()
    """

    solver_config: str | None = None
    mesh_config: MeshConfig | None = None
    boundary_conditions: Mapping[BoundaryKey, BoundaryCondition] = field(
        default_factory=lambda: MappingProxyType({})
    )

    def __post_init__(self) -> None:
        if isinstance(self.mesh_config, Mapping):
            object.__setattr__(self, "mesh_config", MeshConfig.from_dict(self.mesh_config))
        object.__setattr__(
            self,
            "boundary_conditions",
            MappingProxyType(parse_boundary_conditions(self.boundary_conditions)),
        )

    def with_solver_config(self, solver_config: str) -> FEAModel:
        _lookup_solver(solver_config)
        return replace(self, solver_config=solver_config)

    def with_mesh_config(self, mesh_config: MeshConfig | Mapping[str, Any]) -> FEAModel:
        return replace(self, mesh_config=mesh_config)

    def with_boundary_condition(self, key: Any, condition: Any) -> FEAModel:
        """Add or replace the condition on one boundary."""
        conditions = dict(self.boundary_conditions)
        conditions[normalize_boundary_key(key)] = parse_boundary_condition(condition, key)
        return replace(self, boundary_conditions=conditions)

    def _validate(self) -> None:
        missing = []
        if self.solver_config is None:
            missing.append("solver config")
        if self.mesh_config is None:
            missing.append("mesh config")
        if not self.boundary_conditions:
            missing.append("boundary conditions")
        if missing:
            raise ConfigurationError(f"Cannot solve: missing {', '.join(missing)}")

    def generate_mesh(self) -> QuadMesh2d:
        self._validate()
        return generate_mesh(self.mesh_config)

    def assemble(self) -> AssembledSystem:
        self._validate()
        return assemble_system(self.solver_config, self.mesh_config, self.boundary_conditions)

    def solve(self) -> SolveResult:
        self._validate()
        log.info(f"Solving with {self.solver_config}")
        return solve(self.solver_config, self.mesh_config, self.boundary_conditions)
