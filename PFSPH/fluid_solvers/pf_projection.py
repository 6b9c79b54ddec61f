import taichi as ti
from ..containers import PFContainer
from ..utils import CubicKernel
from .simulation_data_pf import SimulationDataPF

@ti.data_oriented
class DensityProjector:
    """Local step of the projective fluids solve.

    Every particle projects the positions of its neighborhood onto the
    one-sided density constraint ``C = max(rho / rho_0 - 1, 0) = 0`` with a
    regularised Newton iteration. The projected positions are summed per
    particle and, together with the momentum term, form the right-hand side
    of the global system.
    """
    def __init__(self, container: PFContainer, simulation_data: SimulationDataPF, kernel: CubicKernel, dt):
        self.container = container
        self.simulation_data = simulation_data
        self.kernel = kernel
        self.dt = dt

        self.max_steps = 100
        self.C_goal = 1e-14
        self.eps = 1e-6
        self.density_0_inv = 1.0 / container.density_0

        max_p = container.particle_max_num
        # row i holds particle i itself (column 0) followed by its neighbors
        local_shape = (max_p, container.max_neighbors + 1)
        self.local_positions = ti.Vector.field(container.dim, dtype=float, shape=local_shape)
        self.local_gradients = ti.Vector.field(container.dim, dtype=float, shape=local_shape)
        self.accumulator = ti.Vector.field(container.dim, dtype=float, shape=max_p)
        self.iterations = ti.field(dtype=int, shape=max_p)
        self.constraint = ti.field(dtype=float, shape=max_p)

    @ti.kernel
    def compute_rhs(self, result: ti.template()):
        for i in range(self.container.particle_num[None]):
            self.accumulator[i] = ti.Vector([0.0, 0.0, 0.0])

        # local step for fluid constraints
        for i in range(self.container.particle_num[None]):
            self.gather_local_positions(i)
            self.iterations[i] = self.project(i)
            self.constraint[i] = self.constraint_value(i)
            self.accumulate_projection(i)

        # influence of momentum
        system_scale = self.dt[None] * self.dt[None] * self.container.stiffness[None]
        for i in range(self.container.particle_num[None]):
            s = self.simulation_data.predicted_positions[i]
            result[i] = system_scale * self.accumulator[i] + self.container.particle_masses[i] * s

    @ti.func
    def gather_local_positions(self, i):
        self.local_positions[i, 0] = self.simulation_data.x[i]
        for k in range(self.container.neighbor_num[i]):
            j = self.container.neighbor_ids[i, k]
            if self.container.neighbor_set_ids[i, k] == self.container.fluid_set_id:
                self.local_positions[i, k + 1] = self.simulation_data.x[j]
            else:
                self.local_positions[i, k + 1] = self.container.boundary_positions[j]

    @ti.func
    def neighbor_weight(self, i, k):
        # fluid neighbors contribute their mass, boundary neighbors their psi
        j = self.container.neighbor_ids[i, k]
        w = 0.0
        if self.container.neighbor_set_ids[i, k] == self.container.fluid_set_id:
            w = self.container.particle_masses[j]
        else:
            w = self.container.boundary_psi[j]
        return w

    @ti.func
    def constraint_value(self, i):
        xi = self.local_positions[i, 0]
        density = self.container.particle_masses[i] * self.kernel.weight_zero(self.container.dh)
        for k in range(self.container.neighbor_num[i]):
            r_mod = (xi - self.local_positions[i, k + 1]).norm()
            density += self.neighbor_weight(i, k) * self.kernel.weight(r_mod, self.container.dh)
        C = density * self.density_0_inv - 1.0
        # pressure clamping
        return ti.max(C, 0.0)

    @ti.func
    def constraint_gradient(self, i):
        """Fill row i of ``local_gradients`` and return its squared norm"""
        xi = self.local_positions[i, 0]
        grad_i = ti.Vector([0.0, 0.0, 0.0])
        sq_norm = 0.0
        for k in range(self.container.neighbor_num[i]):
            grad_j = (-self.density_0_inv * self.neighbor_weight(i, k)) * \
                self.kernel.gradient(xi - self.local_positions[i, k + 1], self.container.dh)
            self.local_gradients[i, k + 1] = grad_j
            grad_i -= grad_j
            sq_norm += grad_j.norm_sqr()
        self.local_gradients[i, 0] = grad_i
        return sq_norm + grad_i.norm_sqr()

    @ti.func
    def project(self, i):
        it = 0
        C = self.constraint_value(i)
        while ti.abs(C) > self.C_goal and it < self.max_steps:
            it += 1
            dg = self.constraint_gradient(i)
            if dg == 0.0:
                # found a minimum
                break
            cdg = -C / (dg + self.eps)
            self.move_along_gradient(i, cdg)
            C = self.constraint_value(i)
        return it

    @ti.func
    def move_along_gradient(self, i, cdg):
        # steps are scaled by the fluid neighbor count of the moved particle
        nfn_i = self.simulation_data.num_fluid_neighbors[i]
        self.local_positions[i, 0] += (cdg * nfn_i) * self.local_gradients[i, 0]
        for k in range(self.container.neighbor_num[i]):
            if self.container.neighbor_set_ids[i, k] == self.container.fluid_set_id:
                nfn_j = self.simulation_data.num_fluid_neighbors[self.container.neighbor_ids[i, k]]
                self.local_positions[i, k + 1] += (cdg * nfn_j) * self.local_gradients[i, k + 1]

    @ti.func
    def accumulate_projection(self, i):
        self.accumulator[i] += self.local_positions[i, 0]
        for k in range(self.container.neighbor_num[i]):
            if self.container.neighbor_set_ids[i, k] == self.container.fluid_set_id:
                j = self.container.neighbor_ids[i, k]
                self.accumulator[j] += self.local_positions[i, k + 1]

    def max_local_iterations(self):
        num = self.container.particle_num[None]
        if num == 0:
            return 0
        return int(self.iterations.to_numpy()[:num].max())
