"""Pytest configuration for the projective fluids tests."""
import sys
import json
import itertools
from pathlib import Path

import numpy as np
import pytest
import taichi as ti


def pytest_configure(config):
    # Add workspace root to Python path for PFSPH imports
    workspace_root = Path(__file__).parent.parent
    if str(workspace_root) not in sys.path:
        sys.path.insert(0, str(workspace_root))


BASE_CONFIGURATION = {
    "domainStart": [0.0, 0.0, 0.0],
    "domainEnd": [1.0, 1.0, 1.0],
    "addDomainBox": False,
    "particleRadius": 0.025,
    "density0": 1000.0,
    "stiffness": 50000.0,
    "maxIterations": 5,
    "maxNeighbors": 100,
    "timeStepSize": 0.001,
    "gravitation": [0.0, 0.0, 0.0],
    "viscosity": 0.0,
    "surface_tension": 0.0,
    "simulationMethod": "pf",
}

# 4 x 4 x 4 lattice with the default particle diameter of 0.05
CUBE_BLOCK = {
    "objectId": 0,
    "start": [0.4, 0.4, 0.4],
    "end": [0.575, 0.575, 0.575],
    "velocity": [0.0, 0.0, 0.0],
}


@pytest.fixture(autouse=True)
def taichi_runtime():
    """Fresh Taichi runtime per test, CPU backend with 64-bit floats."""
    ti.init(arch=ti.cpu, default_fp=ti.f64, random_seed=0)
    yield
    ti.reset()


@pytest.fixture
def scene_file(tmp_path):
    """Factory writing a scene JSON file and returning its path."""
    counter = itertools.count()

    def _write(configuration=None, fluid_blocks=None, rigid_bodies=None):
        cfg = dict(BASE_CONFIGURATION)
        cfg.update(configuration or {})
        scene = {
            "Configuration": cfg,
            "FluidBlocks": [dict(block) for block in (fluid_blocks or [])],
            "RigidBodies": rigid_bodies or [],
        }
        path = tmp_path / f"scene_{next(counter)}.json"
        path.write_text(json.dumps(scene))
        return str(path)

    return _write


@pytest.fixture
def make_config(scene_file):
    from PFSPH.utils import SimConfig

    def _make(configuration=None, fluid_blocks=None, rigid_bodies=None):
        return SimConfig(scene_file(configuration, fluid_blocks, rigid_bodies))

    return _make


@pytest.fixture
def make_solver(make_config):
    """Factory returning a prepared (container, solver) pair."""
    from PFSPH.containers import PFContainer
    from PFSPH.fluid_solvers import PFSolver

    def _make(configuration=None, fluid_blocks=None):
        config = make_config(configuration, fluid_blocks)
        container = PFContainer(config)
        solver = PFSolver(container)
        solver.prepare()
        return container, solver

    return _make


def active(field, container):
    """Active particle prefix of a per-particle field as a numpy array."""
    return field.to_numpy()[:container.particle_num[None]]


def set_positions(container, positions):
    full = container.particle_positions.to_numpy()
    full[:len(positions)] = positions
    container.particle_positions.from_numpy(full)


def compress(container, factor):
    """Scale the fluid positions about their centroid."""
    pos = active(container.particle_positions, container)
    center = pos.mean(axis=0)
    set_positions(container, center + factor * (pos - center))
    return center + factor * (pos - center)


def by_tag(values, tags):
    """Reorder per-particle values so that row t belongs to the particle tagged t."""
    ordered = np.empty_like(values)
    ordered[tags] = values
    return ordered
