"""
Solver driver using Hydra for configuration.

    fea-solve mesh.numElementsX=16 'boundary_conditions.top=[convection,10,20]'
"""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path

import hydra
from hydra.core.hydra_config import HydraConfig
from omegaconf import DictConfig, OmegaConf

from .datastructures import MeshConfig, SolveResult
from .mesh import generate_mesh, write_solution
from .solvers import solve

log = logging.getLogger(__name__)


def run(cfg: DictConfig, output_dir: Path | None = None) -> SolveResult:
    """Solve the configured problem and write outputs into ``output_dir``."""
    log.info(f"Configuration:\n{OmegaConf.to_yaml(cfg)}")

    mesh_config = MeshConfig.from_dict(OmegaConf.to_container(cfg.mesh, resolve=True))
    if mesh_config.mesh_file is not None:
        mesh_config = replace(
            mesh_config, mesh_file=hydra.utils.to_absolute_path(mesh_config.mesh_file)
        )
    boundary_conditions = OmegaConf.to_container(cfg.boundary_conditions, resolve=True)

    mesh = generate_mesh(mesh_config)
    result = solve(cfg.solver, mesh_config, boundary_conditions, mesh=mesh)

    if output_dir is not None:
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        OmegaConf.save(cfg, output_dir / "config_resolved.yaml", resolve=True)
        solution_file = cfg.get("output", {}).get("solution")
        if solution_file:
            write_solution(output_dir / solution_file, mesh, result.solution_vector)

    return result


@hydra.main(version_base=None, config_path="conf", config_name="config")
def main(cfg: DictConfig) -> None:
    run(cfg, Path(HydraConfig.get().runtime.output_dir))


if __name__ == "__main__":
    main()
