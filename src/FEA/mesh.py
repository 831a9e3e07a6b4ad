"""Structured biquadratic meshes and alternate mesh sources.

Global nodes are numbered column-major: node ``i*total_nodes_y + j`` (0-based)
sits at ``(i*dx/2, j*dy/2)``. The connectivity table ``nop`` stores 1-based
global node ids in the local order of :class:`FEA.datastructures.Quad9Node`.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Mapping

import numpy as np
from numpy.typing import NDArray

from .datastructures import (
    BOTTOM,
    BOUNDARY_TOL,
    LEFT,
    N_SIDES,
    QUAD9_SIDE_NODES,
    RIGHT,
    TOP,
    BoundaryKey,
    MeshConfig,
    Quad9Node,
    normalize_boundary_key,
)
from .exceptions import ConfigurationError, UnsupportedConfigurationError

if TYPE_CHECKING:
    import meshio

log = logging.getLogger(__name__)

N_LOCAL_NODES = 9

# meshio/VTK quad9 node k corresponds to local node _MESHIO_QUAD9_ORDER[k]
_MESHIO_QUAD9_ORDER = np.array(
    [
        Quad9Node.SW,
        Quad9Node.SE,
        Quad9Node.NE,
        Quad9Node.NW,
        Quad9Node.S,
        Quad9Node.E,
        Quad9Node.N,
        Quad9Node.W,
        Quad9Node.C,
    ],
    dtype=np.int64,
)
_LOCAL_FROM_MESHIO = np.argsort(_MESHIO_QUAD9_ORDER)

BoundaryElements = dict[BoundaryKey, tuple[tuple[int, int], ...]]


def _require_quadratic_2d(mesh_dimension: str, element_order: str, what: str) -> None:
    if mesh_dimension != "2D" or element_order != "quadratic":
        raise UnsupportedConfigurationError(
            f"{what} is not implemented for {mesh_dimension} {element_order} elements"
        )


# =============================================================================
# Structured generation
# =============================================================================


def node_coordinates_1d(num_elements_x: int, max_x: float) -> NDArray[np.float64]:
    """Node x-coordinates of a 1D quadratic mesh.

    ``2n + 1`` nodes starting at 0 with spacing ``max_x / num_elements_x``.
    """
    total_nodes_x = 2 * num_elements_x + 1
    delta_x = max_x / num_elements_x
    return np.arange(total_nodes_x) * delta_x


def node_coordinates_2d(
    num_elements_x: int, num_elements_y: int, max_x: float, max_y: float
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Column-major node coordinates of a 2D quadratic mesh."""
    total_nodes_x = 2 * num_elements_x + 1
    total_nodes_y = 2 * num_elements_y + 1
    delta_x = max_x / num_elements_x
    delta_y = max_y / num_elements_y

    temp_x = np.arange(total_nodes_x) * (delta_x / 2)
    temp_y = np.arange(total_nodes_y) * (delta_y / 2)

    XX, YY = np.meshgrid(temp_x, temp_y)
    return XX.flatten(order="F"), YY.flatten(order="F")


def generate_nodal_numbering(
    num_elements_x: int,
    num_elements_y: int,
    total_nodes_y: int,
    mesh_dimension: str = "2D",
    element_order: str = "quadratic",
) -> NDArray[np.int64]:
    """
    Element-to-node connectivity (NOP) of a structured quadratic mesh.

    Element ``(i, j)`` (1-based along x and y) has index
    ``(i-1)*num_elements_y + (j-1)``. Its local nodes ``3(k-1) + {0, 1, 2}``
    are the vertical triple starting at ``total_nodes_y*(2i+k-3) + 2j - 1``.

    Returns
    -------
    nop : ndarray, shape (num_elements_x*num_elements_y, 9)
        1-based global node ids.
    """
    _require_quadratic_2d(mesh_dimension, element_order, "Nodal numbering")

    ex, ey = np.meshgrid(
        np.arange(1, num_elements_x + 1),
        np.arange(1, num_elements_y + 1),
        indexing="ij",
    )
    ex, ey = ex.ravel(), ey.ravel()

    nop = np.empty((num_elements_x * num_elements_y, N_LOCAL_NODES), dtype=np.int64)
    for k in range(1, 4):
        base = total_nodes_y * (2 * ex + k - 3) + 2 * ey - 1
        for offset in range(3):
            nop[:, 3 * (k - 1) + offset] = base + offset
    return nop


def find_boundary_elements(
    num_elements_x: int,
    num_elements_y: int,
    mesh_dimension: str = "2D",
    element_order: str = "quadratic",
) -> BoundaryElements:
    """
    Classify the elements touching each side of the rectangle.

    Returns
    -------
    dict
        ``{side: ((element_index, side), ...)}`` for BOTTOM, LEFT, TOP and
        RIGHT. Corner elements appear under both of their sides.
    """
    _require_quadratic_2d(mesh_dimension, element_order, "Boundary element classification")

    boundary: dict[int, list[tuple[int, int]]] = {side: [] for side in range(N_SIDES)}
    for i in range(num_elements_x):
        for j in range(num_elements_y):
            element = i * num_elements_y + j
            if j == 0:
                boundary[BOTTOM].append((element, BOTTOM))
            if i == 0:
                boundary[LEFT].append((element, LEFT))
            if j == num_elements_y - 1:
                boundary[TOP].append((element, TOP))
            if i == num_elements_x - 1:
                boundary[RIGHT].append((element, RIGHT))
    return {side: tuple(pairs) for side, pairs in boundary.items()}


# =============================================================================
# Mesh container
# =============================================================================


@dataclass
class QuadMesh2d:
    """2D mesh of biquadratic (9-node) elements."""

    # Domain parameters (user-provided)
    num_elements_x: int
    num_elements_y: int
    max_x: float
    max_y: float
    element_order: str = "quadratic"

    # Computed mesh properties (None for meshes read from files)
    total_nodes_x: int | None = field(init=False)
    total_nodes_y: int | None = field(init=False)

    # Mesh arrays
    VX: NDArray[np.float64] = field(init=False)
    VY: NDArray[np.float64] = field(init=False)
    nop: NDArray[np.int64] = field(init=False)

    # Boundary data
    boundary_elements: BoundaryElements = field(init=False)

    mesh_dimension = "2D"

    def __post_init__(self) -> None:
        _require_quadratic_2d(self.mesh_dimension, self.element_order, "Mesh generation")
        self._compute_mesh_properties()
        self._generate_mesh()
        self.boundary_elements = find_boundary_elements(
            self.num_elements_x, self.num_elements_y, self.mesh_dimension, self.element_order
        )
        self._freeze()
        log.debug(
            f"Generated {self.num_elements_x}x{self.num_elements_y} quadratic mesh: "
            f"{self.total_nodes} nodes, {self.total_elements} elements"
        )

    def _compute_mesh_properties(self) -> None:
        self.total_nodes_x = 2 * self.num_elements_x + 1
        self.total_nodes_y = 2 * self.num_elements_y + 1

    def _generate_mesh(self) -> None:
        self.VX, self.VY = node_coordinates_2d(
            self.num_elements_x, self.num_elements_y, self.max_x, self.max_y
        )
        self.nop = generate_nodal_numbering(
            self.num_elements_x,
            self.num_elements_y,
            self.total_nodes_y,
            self.mesh_dimension,
            self.element_order,
        )

    def _freeze(self) -> None:
        for array in (self.VX, self.VY, self.nop):
            array.flags.writeable = False

    @property
    def total_nodes(self) -> int:
        return len(self.VX)

    @property
    def total_elements(self) -> int:
        return len(self.nop)

    @property
    def nodes(self) -> NDArray[np.int64]:
        """0-based connectivity, shape (total_elements, 9)."""
        return np.ascontiguousarray(self.nop - 1)

    def element_coords(self, element: int) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
        """Nodal coordinates of one element in local order."""
        nodes = self.nop[element] - 1
        return self.VX[nodes], self.VY[nodes]

    # -------------------------------------------------------------------------
    # Alternate sources
    # -------------------------------------------------------------------------

    @classmethod
    def _from_arrays(
        cls,
        VX: NDArray[np.float64],
        VY: NDArray[np.float64],
        nop: NDArray[np.int64],
        boundary_elements: BoundaryElements | None = None,
        tol: float = BOUNDARY_TOL,
    ) -> QuadMesh2d:
        """Create a mesh from explicit arrays without structured generation."""
        if nop.ndim != 2 or nop.shape[1] != N_LOCAL_NODES:
            raise ConfigurationError(
                f"Elements must list {N_LOCAL_NODES} nodes each, got shape {nop.shape}"
            )
        if len(VX) == 0 or len(nop) == 0:
            raise ConfigurationError("Mesh has no nodes or no elements")
        if nop.min() < 1 or nop.max() > len(VX):
            raise ConfigurationError(f"Element node ids must lie in 1..{len(VX)}")

        # Create instance without calling __post_init__
        instance = object.__new__(cls)
        instance.num_elements_x = None
        instance.num_elements_y = None
        instance.max_x = float(VX.max())
        instance.max_y = float(VY.max())
        instance.element_order = "quadratic"
        instance.total_nodes_x = None
        instance.total_nodes_y = None
        instance.VX = np.ascontiguousarray(VX, dtype=np.float64)
        instance.VY = np.ascontiguousarray(VY, dtype=np.float64)
        instance.nop = np.ascontiguousarray(nop, dtype=np.int64)

        if boundary_elements is None:
            instance._compute_boundary_elements_unstructured(tol)
        else:
            instance._validate_boundary_elements(boundary_elements)
            instance.boundary_elements = boundary_elements

        instance._freeze()
        log.debug(
            f"Loaded quadratic mesh: {instance.total_nodes} nodes, "
            f"{instance.total_elements} elements, boundaries {sorted(map(str, instance.boundary_elements))}"
        )
        return instance

    def _validate_boundary_elements(self, boundary_elements: BoundaryElements) -> None:
        for key, pairs in boundary_elements.items():
            for element, side in pairs:
                if not 0 <= element < self.total_elements or side not in QUAD9_SIDE_NODES:
                    raise ConfigurationError(
                        f"Invalid boundary element ({element}, {side}) on boundary {key!r}"
                    )

    def _compute_boundary_elements_unstructured(self, tol: float = BOUNDARY_TOL) -> None:
        """Classify element sides lying on the bounding box of the mesh.

        Every local side is tested against all four box sides, so rotated
        elements land under the box side they lie on. Entries keep the local
        side: ``boundary_elements[LEFT]`` may hold ``(element, TOP)``.
        """
        x_min, x_max = self.VX.min(), self.VX.max()
        y_min, y_max = self.VY.min(), self.VY.max()
        box_sides = (
            (BOTTOM, self.VY, y_min),
            (LEFT, self.VX, x_min),
            (TOP, self.VY, y_max),
            (RIGHT, self.VX, x_max),
        )

        boundary: dict[int, list[tuple[int, int]]] = {side: [] for side in range(N_SIDES)}
        for element in range(self.total_elements):
            for local_side, local_nodes in QUAD9_SIDE_NODES.items():
                nodes = self.nop[element, list(local_nodes)] - 1
                for box_side, coords, bound in box_sides:
                    if np.all(np.abs(coords[nodes] - bound) < tol):
                        boundary[box_side].append((element, local_side))
                        break
        self.boundary_elements = {side: tuple(pairs) for side, pairs in boundary.items()}

    @classmethod
    def from_custom_file(cls, path: str | Path, tol: float = BOUNDARY_TOL) -> QuadMesh2d:
        """
        Load a mesh from a JSON document.

        Expected layout::

            {
              "nodes": [{"x": 0.0, "y": 0.0}, ...],
              "elements": [[n0, ..., n8], ...],
              "boundaryElements": {"left": [[element, side], ...], ...}
            }

        ``elements`` hold 1-based node ids in the canonical local order.
        ``boundaryElements`` is optional; without it element sides on the
        bounding box are classified automatically.
        """
        with open(path) as f:
            data = json.load(f)
        return cls.from_dict(data, tol=tol)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], tol: float = BOUNDARY_TOL) -> QuadMesh2d:
        """Build from an in-memory document (see :meth:`from_custom_file`)."""
        try:
            nodes = data["nodes"]
            elements = data["elements"]
        except KeyError as exc:
            raise ConfigurationError(f"Custom mesh is missing {exc.args[0]!r}") from None

        try:
            VX = np.array([node["x"] for node in nodes], dtype=np.float64)
            VY = np.array([node["y"] for node in nodes], dtype=np.float64)
            nop = np.array(elements, dtype=np.int64)
        except (KeyError, TypeError, ValueError) as exc:
            raise ConfigurationError(f"Malformed custom mesh: {exc}") from exc

        boundary_elements = None
        if "boundaryElements" in data:
            boundary_elements = {}
            for key, pairs in data["boundaryElements"].items():
                boundary_elements[normalize_boundary_key(key)] = tuple(
                    (int(element), int(side)) for element, side in pairs
                )

        return cls._from_arrays(VX, VY, nop, boundary_elements, tol)

    @classmethod
    def from_meshio(cls, mesh: meshio.Mesh | str | Path, tol: float = BOUNDARY_TOL) -> QuadMesh2d:
        """
        Create a mesh from a meshio mesh or mesh file with ``quad9`` cells.

        Parameters
        ----------
        mesh : meshio.Mesh or str or Path
            Either a meshio Mesh object or path to a mesh file.
        tol : float
            Tolerance for boundary detection.
        """
        import meshio as mio

        if isinstance(mesh, (str, Path)):
            mesh = mio.read(mesh)

        cells = None
        for cell_block in mesh.cells:
            if cell_block.type == "quad9":
                cells = cell_block.data.astype(np.int64)
                break

        if cells is None:
            raise ConfigurationError("No quad9 cells found in mesh")

        points = mesh.points[:, :2]
        nop = cells[:, _LOCAL_FROM_MESHIO] + 1  # 1-based indexing
        return cls._from_arrays(points[:, 0], points[:, 1], nop, tol=tol)

    def to_meshio(self, point_data: Mapping[str, NDArray[np.float64]] | None = None) -> meshio.Mesh:
        """Export as a meshio mesh with ``quad9`` cells."""
        import meshio as mio

        points = np.column_stack([self.VX, self.VY, np.zeros(self.total_nodes)])
        cells = [("quad9", self.nodes[:, _MESHIO_QUAD9_ORDER])]
        return mio.Mesh(points, cells, point_data=dict(point_data or {}))


def generate_mesh(config: MeshConfig) -> QuadMesh2d:
    """Build the mesh described by ``config``.

    Loads ``config.mesh_file`` when given (``.json`` through
    :meth:`QuadMesh2d.from_custom_file`, anything else through meshio).
    """
    if config.mesh_file is not None:
        path = Path(config.mesh_file)
        if path.suffix.lower() == ".json":
            return QuadMesh2d.from_custom_file(path)
        return QuadMesh2d.from_meshio(path)

    if config.mesh_dimension == "1D":
        raise UnsupportedConfigurationError(
            "1D meshes provide node coordinates only (node_coordinates_1d); "
            "connectivity and boundary elements are not implemented"
        )
    return QuadMesh2d(
        num_elements_x=config.num_elements_x,
        num_elements_y=config.num_elements_y,
        max_x=config.max_x,
        max_y=config.max_y,
        element_order=config.element_order,
    )


def write_solution(
    path: str | Path,
    mesh: QuadMesh2d,
    solution: NDArray[np.float64],
    name: str = "temperature",
) -> None:
    """Write the mesh and nodal solution through meshio (format from suffix)."""
    import meshio as mio

    solution = np.asarray(solution, dtype=np.float64)
    if solution.shape != (mesh.total_nodes,):
        raise ValueError(
            f"Solution has shape {solution.shape}, expected ({mesh.total_nodes},)"
        )
    mio.write(path, mesh.to_meshio({name: solution}))
    log.info(f"Solution written to {path}")
