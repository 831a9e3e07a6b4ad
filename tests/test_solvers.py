"""Tests for the solve pipeline, the model builder and the linear solver.

Run with: pytest tests/test_solvers.py -v
"""

import json

import numpy as np
import pytest

from FEA.datastructures import LEFT, AssembledSystem, ConstantTempBC, MeshConfig, SolveResult
from FEA.exceptions import BoundaryConditionError, ConfigurationError, SingularSystemError
from FEA.mesh import QuadMesh2d, write_solution
from FEA.solvers import SOLVERS, FEAModel, assemble_system, solve, solve_linear_system

SOLVER = "solidHeatTransfer"


@pytest.fixture
def unit_square_2x2():
    return MeshConfig(num_elements_x=2, num_elements_y=2, max_x=1.0, max_y=1.0)


@pytest.fixture
def strip_config():
    """Strip [0, 1] x [0, 0.5] for problems that only vary in x."""
    return MeshConfig(num_elements_x=4, num_elements_y=2, max_x=1.0, max_y=0.5)


class TestLinearSolver:
    """Test the dense direct solve."""

    def test_solves(self):
        """Solution satisfies A x = b."""
        rng = np.random.default_rng(0)
        A = rng.random((6, 6)) + 6 * np.eye(6)
        b = rng.random(6)
        assert np.allclose(A @ solve_linear_system(A, b), b)

    def test_singular(self):
        """An exactly singular matrix is reported."""
        with pytest.raises(SingularSystemError):
            solve_linear_system(np.array([[1.0, 2.0], [2.0, 4.0]]), np.array([1.0, 2.0]))

    def test_numerically_singular(self):
        """A matrix singular up to rounding is reported instead of solved."""
        A = np.array([[1.0, 1.0, 0.0], [1.0, 1.0 + 1e-15, 0.0], [0.0, 0.0, 1.0]])
        with pytest.raises(SingularSystemError, match="numerically singular"):
            solve_linear_system(A, np.ones(3))


class TestHeatConduction:
    """End-to-end solves of laplace(T) = 1."""

    def test_hot_edge_with_convection(self, unit_square_2x2):
        """Hot left edge, convection elsewhere: bounded, monotone, symmetric."""
        result = solve(
            SOLVER,
            unit_square_2x2,
            {
                "leftBoundary": ["constantTemp", 100],
                "bottomBoundary": ["convection", 10, 20],
                "topBoundary": ["convection", 10, 20],
                "rightBoundary": ["convection", 10, 20],
            },
        )
        T = result.solution_vector
        x = result.nodes_coordinates.nodes_x_coordinates
        y = result.nodes_coordinates.nodes_y_coordinates
        assert len(T) == 25

        left = x == 0.0
        assert np.allclose(T[left], 100.0, rtol=0, atol=1e-10)

        on_boundary = (x == 0.0) | (x == 1.0) | (y == 0.0) | (y == 1.0)
        interior = T[~on_boundary]
        assert interior.max() < T[on_boundary].max()
        assert interior.min() > T[on_boundary].min()

        mid_row = np.isclose(y, 0.5)
        row = T[mid_row][np.argsort(x[mid_row])]
        assert np.all(np.diff(row) < 0)

        # top and bottom see the same condition
        mirror = [np.where(np.isclose(x, xi) & np.isclose(y, 1.0 - yi))[0][0] for xi, yi in zip(x, y)]
        assert np.allclose(T, T[mirror])

    def test_dirichlet_both_ends(self, strip_config):
        """T'' = 1 with T(0) = 100, T(1) = 0 is reproduced exactly by quadratics."""
        result = solve(
            SOLVER,
            strip_config,
            {"left": ["constantTemp", 100], "right": ["constantTemp", 0]},
        )
        x = result.nodes_coordinates.nodes_x_coordinates
        exact = 100.0 * (1.0 - x) + 0.5 * x * (x - 1.0)
        assert np.allclose(result.solution_vector, exact, atol=1e-9)

    def test_dirichlet_robin(self, strip_config):
        """T'' = 1, T(0) = 100, -T'(1) = h (T(1) - T_ext) has a quadratic solution."""
        h, t_ext = 10.0, 20.0
        result = solve(
            SOLVER,
            strip_config,
            {"left": ["constantTemp", 100], "right": ["convection", h, t_ext]},
        )
        x = result.nodes_coordinates.nodes_x_coordinates
        a = -(h * (100.5 - t_ext) + 1.0) / (1.0 + h)
        exact = 0.5 * x**2 + a * x + 100.0
        assert np.allclose(result.solution_vector, exact, atol=1e-9)

    def test_named_boundary_on_custom_mesh(self):
        """Named boundaries from a custom mesh document can carry conditions."""
        structured = QuadMesh2d(num_elements_x=1, num_elements_y=1, max_x=1.0, max_y=1.0)
        mesh = QuadMesh2d.from_dict(
            {
                "nodes": [{"x": float(x), "y": float(y)} for x, y in zip(structured.VX, structured.VY)],
                "elements": structured.nop.tolist(),
                "boundaryElements": {"hot": [[0, LEFT]]},
            }
        )
        result = solve(SOLVER, MeshConfig(mesh_file="inline"), {"hot": ["constantTemp", 10]}, mesh=mesh)
        x = result.nodes_coordinates.nodes_x_coordinates
        assert np.allclose(result.solution_vector, 0.5 * x**2 - x + 10.0, atol=1e-9)

    def test_mesh_file_config(self, tmp_path):
        """meshFile in the mesh settings is honoured by the pipeline."""
        structured = QuadMesh2d(num_elements_x=2, num_elements_y=1, max_x=1.0, max_y=0.5)
        path = tmp_path / "strip.json"
        path.write_text(
            json.dumps(
                {
                    "nodes": [{"x": float(x), "y": float(y)} for x, y in zip(structured.VX, structured.VY)],
                    "elements": structured.nop.tolist(),
                }
            )
        )
        result = solve(
            SOLVER,
            {"meshFile": str(path)},
            {"left": ["constantTemp", 100], "right": ["constantTemp", 0]},
        )
        x = result.nodes_coordinates.nodes_x_coordinates
        assert np.allclose(result.solution_vector, 100.0 * (1.0 - x) + 0.5 * x * (x - 1.0), atol=1e-9)

    def test_rotated_element(self):
        """A quarter-turned element from a mesh document gives the same solution."""
        nodes = [{"x": 1.0 - b / 2, "y": a / 2} for a in range(3) for b in range(3)]
        mesh = QuadMesh2d.from_dict({"nodes": nodes, "elements": [list(range(1, 10))]})
        h, t_ext = 10.0, 20.0
        result = solve(
            SOLVER,
            MeshConfig(mesh_file="inline"),
            {"left": ["constantTemp", 100], "right": ["convection", h, t_ext]},
            mesh=mesh,
        )
        x = result.nodes_coordinates.nodes_x_coordinates
        a = -(h * (100.5 - t_ext) + 1.0) / (1.0 + h)
        assert np.allclose(result.solution_vector, 0.5 * x**2 + a * x + 100.0, atol=1e-9)

    def test_no_fixed_temperature(self, unit_square_2x2):
        """Zero convection everywhere leaves T undetermined and is not solved."""
        conditions = {side: ["convection", 0, 20] for side in ["bottom", "left", "top", "right"]}
        with pytest.raises(SingularSystemError):
            solve(SOLVER, unit_square_2x2, conditions)

    def test_unknown_boundary_before_assembly(self, unit_square_2x2, monkeypatch):
        """Boundary keys the mesh lacks are rejected before the system is built."""

        def fail(mesh, conditions):
            raise AssertionError("assembly should not run")

        monkeypatch.setitem(SOLVERS, SOLVER, fail)
        with pytest.raises(BoundaryConditionError, match="Left"):
            assemble_system(SOLVER, unit_square_2x2, {"Left": ["constantTemp", 1]})

    def test_assembled_system(self, unit_square_2x2):
        """assemble_system returns the final matrix, vector and coordinates."""
        system = assemble_system(SOLVER, unit_square_2x2, {"left": ["constantTemp", 5]})
        assert isinstance(system, AssembledSystem)
        document = system.as_dict()
        assert set(document) == {"jacobianMatrix", "residualVector", "nodesCoordinates"}
        assert set(document["nodesCoordinates"]) == {"nodesXCoordinates", "nodesYCoordinates"}
        assert system.jacobian_matrix.shape == (25, 25)
        assert system.residual_vector[0] == 5.0

    def test_unknown_solver(self, unit_square_2x2):
        """Unregistered solver names are configuration errors."""
        with pytest.raises(ConfigurationError):
            solve("transientHeat", unit_square_2x2, {"left": ["constantTemp", 1]})

    def test_bad_boundary_condition(self, unit_square_2x2):
        """Unknown condition kinds abort before assembly."""
        with pytest.raises(BoundaryConditionError):
            solve(SOLVER, unit_square_2x2, {"left": ["radiation", 1]})


class TestFEAModel:
    """Test the immutable model builder."""

    @pytest.fixture
    def model(self, unit_square_2x2):
        return (
            FEAModel()
            .with_solver_config(SOLVER)
            .with_mesh_config(unit_square_2x2)
            .with_boundary_condition("leftBoundary", ["constantTemp", 100])
            .with_boundary_condition("right", ["convection", 10, 20])
        )

    def test_builders_do_not_mutate(self, model):
        """Each builder returns a new model."""
        extended = model.with_boundary_condition("top", ["convection", 1, 0])
        assert len(model.boundary_conditions) == 2
        assert len(extended.boundary_conditions) == 3
        assert model.boundary_conditions[LEFT] == ConstantTempBC(100.0)

    def test_boundary_conditions_read_only(self, model):
        """The stored mapping cannot be modified."""
        with pytest.raises(TypeError):
            model.boundary_conditions[LEFT] = ConstantTempBC(0.0)

    def test_replace_condition(self, model):
        """Setting a boundary again replaces its condition."""
        updated = model.with_boundary_condition("left", ["constantTemp", 50])
        assert updated.boundary_conditions[LEFT] == ConstantTempBC(50.0)

    def test_solve(self, model, unit_square_2x2):
        """Model.solve matches the functional pipeline."""
        result = model.solve()
        assert isinstance(result, SolveResult)
        expected = solve(
            SOLVER,
            unit_square_2x2,
            {"left": ["constantTemp", 100], "right": ["convection", 10, 20]},
        )
        assert np.allclose(result.solution_vector, expected.solution_vector)
        assert set(result.timings) == {"assembly", "solve"}

    def test_mesh_config_from_mapping(self):
        """Mesh settings may be given as a camelCase mapping."""
        model = FEAModel(mesh_config={"numElementsX": 2, "maxX": 1.0, "numElementsY": 2, "maxY": 1.0})
        assert model.mesh_config == MeshConfig(num_elements_x=2, max_x=1.0, num_elements_y=2, max_y=1.0)

    @pytest.mark.parametrize("missing", ["solver", "mesh", "boundary"])
    def test_missing_settings(self, model, missing):
        """Solving without all three settings fails at the call."""
        incomplete = {
            "solver": FEAModel(mesh_config=model.mesh_config, boundary_conditions=model.boundary_conditions),
            "mesh": FEAModel(solver_config=SOLVER, boundary_conditions=model.boundary_conditions),
            "boundary": FEAModel(solver_config=SOLVER, mesh_config=model.mesh_config),
        }[missing]
        with pytest.raises(ConfigurationError, match=missing):
            incomplete.solve()
        with pytest.raises(ConfigurationError):
            incomplete.assemble()

    def test_unknown_solver(self):
        """Unknown solver names are rejected by the builder."""
        with pytest.raises(ConfigurationError):
            FEAModel().with_solver_config("navierStokes")


class TestExport:
    """Test writing solutions through meshio."""

    def test_write_solution(self, tmp_path):
        """The temperature field round-trips through a VTU file."""
        meshio = pytest.importorskip("meshio")
        mesh = QuadMesh2d(num_elements_x=2, num_elements_y=2, max_x=1.0, max_y=1.0)
        result = solve(SOLVER, MeshConfig(num_elements_x=2, num_elements_y=2, max_x=1.0, max_y=1.0),
                       {"left": ["constantTemp", 100], "right": ["constantTemp", 0]}, mesh=mesh)
        path = tmp_path / "solution.vtu"
        write_solution(path, mesh, result.solution_vector)

        data = meshio.read(path)
        assert np.allclose(data.point_data["temperature"], result.solution_vector)
        assert data.cells[0].type == "quad9"

    def test_wrong_length(self, tmp_path):
        """Solutions must have one value per node."""
        mesh = QuadMesh2d(num_elements_x=1, num_elements_y=1, max_x=1.0, max_y=1.0)
        with pytest.raises(ValueError):
            write_solution(tmp_path / "bad.vtu", mesh, np.zeros(4))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
