import os

import pytest

from run_simulation import PhysicsSimulator
from conftest import CUBE_BLOCK


def test_execute_writes_ply_frames(scene_file, tmp_path, monkeypatch):
    path = scene_file({"exportPly": True, "outputInterval": 1}, [CUBE_BLOCK])
    monkeypatch.chdir(tmp_path)

    simulator = PhysicsSimulator(path, max_steps=2)
    simulator.execute()

    scene_name = os.path.splitext(os.path.basename(path))[0]
    for step in range(2):
        assert (tmp_path / f"output_{scene_name}" / f"{step:06d}" / "fluid_0.ply").exists()
    assert simulator.container.total_time == pytest.approx(2 * simulator.time_step)


def test_unknown_method(scene_file):
    path = scene_file({"simulationMethod": "wcsph"}, [CUBE_BLOCK])
    with pytest.raises(ValueError):
        PhysicsSimulator(path)
