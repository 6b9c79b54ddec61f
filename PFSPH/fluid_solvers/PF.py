# Projective fluids implemented following "Projective Fluids" (Weiler, Koschier and Bender 2016)
import taichi as ti
from .base_solver import BaseSolver
from .simulation_data_pf import SimulationDataPF
from .pf_operator import MatrixFreeOperator
from .pf_projection import DensityProjector
from .pf_cg import ConjugateGradientSolver, CGSolveState
from ..containers import PFContainer

@ti.data_oriented
class PFSolver(BaseSolver):
    def __init__(self, container: PFContainer):
        super().__init__(container)
        self.max_iterations = container.max_iterations
        self.sort_interval = 100
        self.counter = 0

        self.simulation_data = SimulationDataPF(container)
        self.operator = MatrixFreeOperator(container, self.dt)
        self.projector = DensityProjector(container, self.simulation_data, self.kernel, self.dt)
        self.cg_solver = ConjugateGradientSolver(container, self.simulation_data, self.operator, self.projector)

        # CG outcome of every outer iteration of the last step
        self.solve_states = []

    @ti.kernel
    def initial_guess_for_positions(self):
        for i in range(self.container.particle_num[None]):
            pos = self.container.particle_positions[i]
            self.simulation_data.old_positions[i] = pos
            new_pos = pos + self.dt[None] * self.container.particle_velocities[i] + \
                (self.dt[None] * self.dt[None]) * self.container.particle_accelerations[i]
            self.container.particle_positions[i] = new_pos
            self.simulation_data.predicted_positions[i] = new_pos

    def perform_neighborhood_search(self):
        if self.counter % self.sort_interval == 0:
            self.container.prepare_sort()
            self.container.resort(self.container.sort_order)
            self.simulation_data.resort(self.container.sort_order)
        self.counter += 1

        self.container.search_neighbors()

    @ti.kernel
    def prepare_solve(self):
        for i in range(self.container.particle_num[None]):
            self.simulation_data.x[i] = self.container.particle_positions[i]
            nfn = 1
            for k in range(self.container.neighbor_num[i]):
                if self.container.neighbor_set_ids[i, k] == self.container.fluid_set_id:
                    nfn += 1
            self.simulation_data.num_fluid_neighbors[i] = nfn

    def solve_pd_constraints(self):
        self.prepare_solve()

        self.solve_states = []
        for _ in range(self.max_iterations):
            state = self.cg_solver.solve()
            self.solve_states.append(state)
            if state == CGSolveState.ALREADY_SOLVED:
                break

        self.update_positions_and_velocity()

        if self.verbose and self.solve_states:
            print(f"PF - outer iterations: {len(self.solve_states)}, "
                  f"last CG: {self.solve_states[-1].name} after {self.cg_solver.iterations} iterations, "
                  f"local projection iterations: {self.projector.max_local_iterations()}")

    @ti.kernel
    def update_positions_and_velocity(self):
        for i in range(self.container.particle_num[None]):
            new_pos = self.simulation_data.x[i]
            self.container.particle_positions[i] = new_pos
            self.container.particle_velocities[i] = (new_pos - self.simulation_data.old_positions[i]) / self.dt[None]

    def reset(self):
        self.counter = 0
        self.simulation_data.reset()
        self.solve_states = []

    def _step(self):
        self.container.insert_object()

        self.clear_accelerations()
        self.initial_guess_for_positions()
        self.perform_neighborhood_search()

        self.solve_pd_constraints()

        self.compute_non_pressure_acceleration()
        self.update_fluid_velocity()
