from __future__ import annotations

import numbers
from dataclasses import dataclass, field, fields
from enum import IntEnum
from typing import Any, Mapping, Union

import numpy as np
from numpy.typing import NDArray

from .exceptions import BoundaryConditionError, ConfigurationError

# Boundary side constants (structured rectangle)
BOTTOM, LEFT, TOP, RIGHT = 0, 1, 2, 3
N_SIDES = 4
SIDE_NAMES = ("bottom", "left", "top", "right")

# Tolerance for boundary node detection (floating-point comparison)
BOUNDARY_TOL = 1e-10

MESH_DIMENSIONS = ("1D", "2D")
ELEMENT_ORDERS = ("linear", "quadratic")


class Quad9Node(IntEnum):
    """Local node positions of the biquadratic element on [0, 1]^2.

    ::

        NW(2) --- N(5) --- NE(8)
          |                  |
         W(1)     C(4)     E(7)
          |                  |
        SW(0) --- S(3) --- SE(6)

    The index is ``3*a + b`` where ``a`` is the node position along ksi
    (0, 1/2, 1) and ``b`` the position along eta.
    """

    SW = 0
    W = 1
    NW = 2
    S = 3
    C = 4
    N = 5
    SE = 6
    E = 7
    NE = 8


class Quad4Node(IntEnum):
    """Local node positions of the bilinear element (index ``2*a + b``)."""

    SW = 0
    NW = 1
    SE = 2
    NE = 3


# Local nodes on each side of the biquadratic element, ordered along the edge
QUAD9_SIDE_NODES = {
    BOTTOM: (Quad9Node.SW, Quad9Node.S, Quad9Node.SE),
    LEFT: (Quad9Node.SW, Quad9Node.W, Quad9Node.NW),
    TOP: (Quad9Node.NW, Quad9Node.N, Quad9Node.NE),
    RIGHT: (Quad9Node.SE, Quad9Node.E, Quad9Node.NE),
}

# Natural coordinate held fixed on each side: (ksi, eta), None = swept
SIDE_NATURAL_COORDS = {
    BOTTOM: (None, 0.0),
    LEFT: (0.0, None),
    TOP: (None, 1.0),
    RIGHT: (1.0, None),
}

BoundaryKey = Union[int, str]


# =============================================================================
# Mesh configuration
# =============================================================================

_MESH_CONFIG_ALIASES = {
    "meshDimension": "mesh_dimension",
    "elementOrder": "element_order",
    "numElementsX": "num_elements_x",
    "numElementsY": "num_elements_y",
    "maxX": "max_x",
    "maxY": "max_y",
    "meshFile": "mesh_file",
}


def _is_int(value: Any) -> bool:
    return isinstance(value, numbers.Integral) and not isinstance(value, bool)


def _is_real(value: Any) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


@dataclass(frozen=True)
class MeshConfig:
    """Structured mesh settings.

    Parameters
    ----------
    num_elements_x, num_elements_y : int
        Number of elements along each axis (``num_elements_y`` is ignored in 1D).
    max_x, max_y : float
        Domain extent; the domain is ``[0, max_x] x [0, max_y]``.
    mesh_dimension : {"1D", "2D"}
    element_order : {"linear", "quadratic"}
    mesh_file : str, optional
        Load the mesh from a file instead of generating it. The structured
        fields are then optional.
    """

    num_elements_x: int | None = None
    max_x: float | None = None
    num_elements_y: int = 1
    max_y: float = 0.0
    mesh_dimension: str = "2D"
    element_order: str = "quadratic"
    mesh_file: str | None = None

    def __post_init__(self) -> None:
        if self.mesh_dimension not in MESH_DIMENSIONS:
            raise ConfigurationError(
                f"meshDimension must be one of {MESH_DIMENSIONS}, got {self.mesh_dimension!r}"
            )
        if self.element_order not in ELEMENT_ORDERS:
            raise ConfigurationError(
                f"elementOrder must be one of {ELEMENT_ORDERS}, got {self.element_order!r}"
            )
        if self.mesh_file is not None:
            return

        self._require_count("numElementsX", self.num_elements_x)
        self._require_extent("maxX", self.max_x)
        if self.mesh_dimension == "2D":
            self._require_count("numElementsY", self.num_elements_y)
            self._require_extent("maxY", self.max_y)

    @staticmethod
    def _require_count(name: str, value: Any) -> None:
        if value is None:
            raise ConfigurationError(f"Missing required mesh setting {name!r}")
        if not _is_int(value) or value <= 0:
            raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")

    @staticmethod
    def _require_extent(name: str, value: Any) -> None:
        if value is None:
            raise ConfigurationError(f"Missing required mesh setting {name!r}")
        if not _is_real(value) or not np.isfinite(value) or value <= 0:
            raise ConfigurationError(f"{name} must be a positive number, got {value!r}")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> MeshConfig:
        """Build from camelCase (``numElementsX``) or snake_case keys."""
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in data.items():
            name = _MESH_CONFIG_ALIASES.get(key, key)
            if name not in known:
                raise ConfigurationError(f"Unknown mesh setting {key!r}")
            if name in kwargs:
                raise ConfigurationError(f"Mesh setting {key!r} given twice")
            kwargs[name] = value
        # YAML/JSON null means "use the default"
        kwargs = {k: v for k, v in kwargs.items() if v is not None}
        return cls(**kwargs)


# =============================================================================
# Boundary conditions
# =============================================================================


def _to_float(value: Any, what: str) -> float:
    if not _is_real(value) or not np.isfinite(value):
        raise BoundaryConditionError(f"{what} must be a finite number, got {value!r}")
    return float(value)


@dataclass(frozen=True)
class ConvectionBC:
    """Robin condition ``-k dT/dn = h (T - T_ext)``."""

    heat_transfer_coeff: float
    external_temp: float

    kind = "convection"

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "heat_transfer_coeff", _to_float(self.heat_transfer_coeff, "heatTransferCoeff")
        )
        object.__setattr__(self, "external_temp", _to_float(self.external_temp, "externalTemp"))


@dataclass(frozen=True)
class ConstantTempBC:
    """Dirichlet condition ``T = value``."""

    value: float

    kind = "constantTemp"

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", _to_float(self.value, "value"))


BoundaryCondition = Union[ConvectionBC, ConstantTempBC]

_BC_TYPES = {
    ConvectionBC.kind: (ConvectionBC, 2),
    ConstantTempBC.kind: (ConstantTempBC, 1),
}

_SIDE_ALIASES: dict[str, int] = {}
for _side, _name in enumerate(SIDE_NAMES):
    _SIDE_ALIASES[_name] = _side
    _SIDE_ALIASES[f"{_name}Boundary"] = _side
    _SIDE_ALIASES[str(_side)] = _side


def normalize_boundary_key(key: Any) -> BoundaryKey:
    """Map side aliases ("left", "leftBoundary", "1", 1) to the side integer.

    Any other string is returned unchanged as a named boundary id.
    """
    if _is_int(key):
        if 0 <= key < N_SIDES:
            return int(key)
        raise BoundaryConditionError(f"Boundary side must be in 0..{N_SIDES - 1}, got {key}")
    if isinstance(key, str):
        return _SIDE_ALIASES.get(key, key)
    raise BoundaryConditionError(f"Invalid boundary key {key!r}")


def parse_boundary_condition(raw: Any, key: Any = None) -> BoundaryCondition:
    """Parse ``["convection", h, T_ext]`` or ``["constantTemp", value]``."""
    if isinstance(raw, (ConvectionBC, ConstantTempBC)):
        return raw

    where = f" on boundary {key!r}" if key is not None else ""
    if isinstance(raw, str) or not isinstance(raw, (list, tuple)) or not raw:
        raise BoundaryConditionError(f"Malformed boundary condition{where}: {raw!r}")

    kind, *params = raw
    if kind not in _BC_TYPES:
        raise BoundaryConditionError(f"Unknown boundary condition kind {kind!r}{where}")

    bc_type, n_params = _BC_TYPES[kind]
    if len(params) != n_params:
        raise BoundaryConditionError(
            f"{kind!r}{where} expects {n_params} parameter(s), got {len(params)}"
        )
    return bc_type(*params)


def parse_boundary_conditions(raw: Mapping[Any, Any]) -> dict[BoundaryKey, BoundaryCondition]:
    """Parse a boundary-key -> condition mapping, one condition per boundary."""
    parsed: dict[BoundaryKey, BoundaryCondition] = {}
    for key, value in raw.items():
        boundary = normalize_boundary_key(key)
        if boundary in parsed:
            raise BoundaryConditionError(
                f"Boundary {key!r} already has a condition; only one per boundary is supported"
            )
        parsed[boundary] = parse_boundary_condition(value, key)
    return parsed


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True)
class NodesCoordinates:
    nodes_x_coordinates: NDArray[np.float64]
    nodes_y_coordinates: NDArray[np.float64] | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "nodesXCoordinates": self.nodes_x_coordinates,
            "nodesYCoordinates": self.nodes_y_coordinates,
        }


@dataclass(frozen=True)
class AssembledSystem:
    """Linear system after boundary conditions, before the solve."""

    jacobian_matrix: NDArray[np.float64]
    residual_vector: NDArray[np.float64]
    nodes_coordinates: NodesCoordinates

    def as_dict(self) -> dict[str, Any]:
        return {
            "jacobianMatrix": self.jacobian_matrix,
            "residualVector": self.residual_vector,
            "nodesCoordinates": self.nodes_coordinates.as_dict(),
        }


@dataclass(frozen=True)
class SolveResult:
    """Nodal solution, same ordering as ``nodes_coordinates``."""

    solution_vector: NDArray[np.float64]
    nodes_coordinates: NodesCoordinates
    timings: dict[str, float] = field(default_factory=dict, compare=False)

    def as_dict(self) -> dict[str, Any]:
        return {
            "solutionVector": self.solution_vector,
            "nodesCoordinates": self.nodes_coordinates.as_dict(),
        }
