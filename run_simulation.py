import os
import argparse
import taichi as ti
from tqdm import tqdm
from PFSPH.utils import SimConfig
from PFSPH.containers import PFContainer
from PFSPH.fluid_solvers import PFSolver


class PhysicsSimulator:
    """Runs a scene with the projective fluids solver and exports particle frames"""

    def __init__(self, scene_path: str, max_steps=None):
        self.scene_path = scene_path
        self.config = SimConfig(scene_file_path=scene_path)
        self.scene_name = self.config.scene_name
        self._init_timing(max_steps)
        self._init_output()
        self._init_solver()

    def _init_timing(self, max_steps):
        self.time_step = self.config.get_cfg("timeStepSize", default=1e-3)
        self.fps = self.config.get_cfg("fps", default=60)
        self.total_time = self.config.get_cfg("totalTime", default=10.0)
        self.output_interval = self.config.get_cfg("outputInterval") or max(int(1.0 / (self.fps * self.time_step)), 1)
        self.max_steps = max_steps if max_steps is not None else int(self.total_time / self.time_step)

    def _init_output(self):
        self.output_root = f"output_{self.scene_name}"
        self.save_ply = self.config.get_cfg("exportPly")
        if self.save_ply:
            os.makedirs(self.output_root, exist_ok=True)

    def _init_solver(self):
        method = self.config.get_cfg("simulationMethod", default="pf")
        solver_map = {
            "pf": (PFContainer, PFSolver),
        }

        if method not in solver_map:
            raise ValueError(f"unsupported simulation method: {method}")

        container_cls, solver_cls = solver_map[method]
        self.container = container_cls(self.config)
        self.solver = solver_cls(self.container)

    def _save_outputs(self, step):
        if not self.save_ply or step % self.output_interval != 0:
            return

        frame_dir = f"{self.output_root}/{step:06d}"
        os.makedirs(frame_dir, exist_ok=True)
        for body_id in self.container.object_id_fluid_body:
            pos = self.container.dump(obj_id=body_id)["position"]
            writer = ti.tools.PLYWriter(num_vertices=len(pos))
            writer.add_vertex_pos(pos[:, 0], pos[:, 1], pos[:, 2])
            writer.export_ascii(f"{frame_dir}/fluid_{body_id}.ply")

    def execute(self):
        self.solver.prepare()

        for step in tqdm(range(self.max_steps)):
            self.solver.step()
            if self.container.neighbor_overflow[None] > 0:
                tqdm.write(f"warning: {self.container.neighbor_overflow[None]} neighbors dropped, "
                           f"increase maxNeighbors ({self.container.max_neighbors})")
            self._save_outputs(step)

        print("simulation finished")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="projective fluids SPH simulation")
    parser.add_argument('--scene_file', required=True, help='scene configuration file')
    parser.add_argument('--arch', default='cpu', choices=['cpu', 'gpu'], help='taichi backend')
    parser.add_argument('--steps', type=int, default=None, help='number of steps, overrides totalTime')
    args = parser.parse_args()

    ti.init(arch=ti.gpu if args.arch == 'gpu' else ti.cpu, default_fp=ti.f64)

    simulator = PhysicsSimulator(args.scene_file, max_steps=args.steps)
    simulator.execute()
