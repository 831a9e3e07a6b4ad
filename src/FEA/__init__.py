"""FEA package for steady heat conduction with finite elements.

This package implements biquadratic (9-node) quadrilateral elements on
structured rectangular meshes, with convection (Robin) and constant
temperature (Dirichlet) boundary conditions and a dense direct solve.

Main components:
- QuadMesh2d, generate_mesh: structured mesh, connectivity and boundary elements
- BasisFunctions, gauss_points_weights: reference element and quadrature
- assemble_solid_heat_transfer: Jacobian matrix and residual vector assembly
- impose_boundary_conditions: Robin contributions, then Dirichlet rows
- FEAModel, solve: high-level problem description and solver
"""

from .datastructures import (
    BOTTOM,
    LEFT,
    TOP,
    RIGHT,
    QUAD9_SIDE_NODES,
    Quad9Node,
    Quad4Node,
    MeshConfig,
    ConvectionBC,
    ConstantTempBC,
    parse_boundary_conditions,
    NodesCoordinates,
    AssembledSystem,
    SolveResult,
)
from .exceptions import (
    FEAError,
    ConfigurationError,
    UnsupportedConfigurationError,
    DegenerateElementError,
    BoundaryConditionError,
    MissingCoordinateError,
    SingularSystemError,
)
from .quadrature import gauss_points_weights, gauss_points_weights_2d
from .basis import BasisFunctions
from .mesh import (
    QuadMesh2d,
    generate_mesh,
    node_coordinates_1d,
    node_coordinates_2d,
    generate_nodal_numbering,
    find_boundary_elements,
    write_solution,
)
from .assembly import (
    assemble_into,
    assemble_solid_heat_transfer,
    isoparametric_mapping,
)
from .boundary import (
    dirbc_2d,
    robinbc_2d,
    check_boundary_keys,
    get_boundary_nodes,
    impose_boundary_conditions,
    impose_convection_boundary_conditions,
    impose_constant_temp_boundary_conditions,
)
from .solvers import (
    SOLVERS,
    FEAModel,
    assemble_system,
    solve,
    solve_linear_system,
)

__all__ = [
    # Data model
    "BOTTOM",
    "LEFT",
    "TOP",
    "RIGHT",
    "QUAD9_SIDE_NODES",
    "Quad9Node",
    "Quad4Node",
    "MeshConfig",
    "ConvectionBC",
    "ConstantTempBC",
    "parse_boundary_conditions",
    "NodesCoordinates",
    "AssembledSystem",
    "SolveResult",
    # Errors
    "FEAError",
    "ConfigurationError",
    "UnsupportedConfigurationError",
    "DegenerateElementError",
    "BoundaryConditionError",
    "MissingCoordinateError",
    "SingularSystemError",
    # Reference element
    "gauss_points_weights",
    "gauss_points_weights_2d",
    "BasisFunctions",
    # Mesh
    "QuadMesh2d",
    "generate_mesh",
    "node_coordinates_1d",
    "node_coordinates_2d",
    "generate_nodal_numbering",
    "find_boundary_elements",
    "write_solution",
    # Assembly
    "assemble_into",
    "assemble_solid_heat_transfer",
    "isoparametric_mapping",
    # Boundary conditions
    "dirbc_2d",
    "robinbc_2d",
    "check_boundary_keys",
    "get_boundary_nodes",
    "impose_boundary_conditions",
    "impose_convection_boundary_conditions",
    "impose_constant_temp_boundary_conditions",
    # Solvers
    "SOLVERS",
    "FEAModel",
    "assemble_system",
    "solve",
    "solve_linear_system",
]
