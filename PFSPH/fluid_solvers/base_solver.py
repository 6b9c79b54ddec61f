import taichi as ti
from ..containers import BaseContainer
from ..utils import CubicKernel, Boundary


@ti.data_oriented
class BaseSolver():
    def __init__(self, container: BaseContainer):
        self.container = container
        self.cfg = container.cfg

        # Gravity
        self.g = self.cfg.get_vector("gravitation", [0.0, -9.81, 0.0])

        # density
        self.density_0 = container.density_0

        # surface tension
        self.surface_tension = self.cfg.get_cfg("surface_tension", default=0.01)

        # viscosity
        self.viscosity = self.cfg.get_cfg("viscosity", default=0.0)
        self.viscosity_b = self.cfg.get_cfg("viscosity_b", default=self.viscosity)

        # time step
        self.dt = ti.field(float, shape=())
        self.dt[None] = self.cfg.get_cfg("timeStepSize", default=1e-3)

        # kernel
        self.kernel = CubicKernel()

        # boundary
        self.boundary = Boundary(self.container, self.kernel)

        self.verbose = bool(self.cfg.get_cfg("verbose"))

    @ti.kernel
    def clear_accelerations(self):
        """Reset accelerations to gravity"""
        for p_i in range(self.container.particle_num[None]):
            self.container.particle_accelerations[p_i] = ti.Vector([self.g[0], self.g[1], self.g[2]])

    @ti.kernel
    def zero_accelerations(self):
        for p_i in range(self.container.particle_num[None]):
            self.container.particle_accelerations[p_i] = ti.Vector([0.0, 0.0, 0.0])

    def compute_non_pressure_acceleration(self):
        """Densities, surface tension and viscosity on top of zeroed accelerations"""
        self.zero_accelerations()
        self.compute_density()
        if self.surface_tension != 0.0:
            self.compute_surface_tension_acceleration()
        if self.viscosity != 0.0 or self.viscosity_b != 0.0:
            self.compute_viscosity_acceleration()

    @ti.kernel
    def compute_density(self):
        for p_i in range(self.container.particle_num[None]):
            # Initialize density with the self-contribution
            density = self.container.particle_masses[p_i] * self.kernel.weight_zero(self.container.dh)
            pos_i = self.container.particle_positions[p_i]
            for k in range(self.container.neighbor_num[p_i]):
                p_j = self.container.neighbor_ids[p_i, k]
                if self.container.neighbor_set_ids[p_i, k] == self.container.fluid_set_id:
                    R_mod = (pos_i - self.container.particle_positions[p_j]).norm()
                    density += self.container.particle_masses[p_j] * self.kernel.weight(R_mod, self.container.dh)
                else:
                    # Boundary: Akinci2012
                    R_mod = (pos_i - self.container.boundary_positions[p_j]).norm()
                    density += self.container.boundary_psi[p_j] * self.kernel.weight(R_mod, self.container.dh)
            self.container.particle_densities[p_i] = density

    @ti.kernel
    def compute_surface_tension_acceleration(self):
        for p_i in range(self.container.particle_num[None]):
            acc = ti.Vector([0.0, 0.0, 0.0])
            for k in range(self.container.neighbor_num[p_i]):
                if self.container.neighbor_set_ids[p_i, k] == self.container.fluid_set_id:
                    acc += self._compute_tension_contribution(p_i, self.container.neighbor_ids[p_i, k])
            self.container.particle_accelerations[p_i] += acc

    @ti.func
    def _compute_tension_contribution(self, p_i, p_j):
        rel_pos = self.container.particle_positions[p_i] - self.container.particle_positions[p_j]
        mass_r = self.container.particle_masses[p_j] / self.container.particle_masses[p_i]
        return -self.surface_tension * mass_r * rel_pos * self._tension_weight(rel_pos)

    @ti.func
    def _tension_weight(self, rel_pos):
        # closer than a particle diameter the weight is held constant
        dist = ti.max(rel_pos.norm(), self.container.diameter)
        return self.kernel.weight(dist, self.container.dh)

    @ti.kernel
    def compute_viscosity_acceleration(self):
        for p_i in range(self.container.particle_num[None]):
            a_i = ti.Vector([0.0, 0.0, 0.0])
            for k in range(self.container.neighbor_num[p_i]):
                p_j = self.container.neighbor_ids[p_i, k]
                if self.container.neighbor_set_ids[p_i, k] == self.container.fluid_set_id:
                    a_i += self._fluid_viscosity_task(p_i, p_j)
                else:
                    a_i += self._boundary_viscosity_task(p_i, p_j)
            self.container.particle_accelerations[p_i] += a_i

    @ti.func
    def _fluid_viscosity_task(self, p_i, p_j):
        R = self.container.particle_positions[p_i] - self.container.particle_positions[p_j]
        nabla_ij = self.kernel.gradient(R, self.container.dh)
        v_xy = ti.math.dot(self.container.particle_velocities[p_i] - self.container.particle_velocities[p_j], R)
        regular_volume_j = self.container.particle_masses[p_j] / self.container.particle_densities[p_j]
        return 2 * (self.container.dim + 2) * self.viscosity * regular_volume_j * v_xy * nabla_ij / (R.norm()**2 + 0.01 * self.container.dh**2)

    @ti.func
    def _boundary_viscosity_task(self, p_i, p_j):
        # boundary particles are static
        R = self.container.particle_positions[p_i] - self.container.boundary_positions[p_j]
        nabla_ij = self.kernel.gradient(R, self.container.dh)
        v_xy = ti.math.dot(self.container.particle_velocities[p_i], R)
        regular_volume_j = self.container.boundary_psi[p_j] / self.container.particle_densities[p_i]
        return 2 * (self.container.dim + 2) * self.viscosity_b * regular_volume_j * v_xy * nabla_ij / (R.norm()**2 + 0.01 * self.container.dh**2)

    @ti.kernel
    def update_fluid_velocity(self):
        for p_i in range(self.container.particle_num[None]):
            acc = self.container.particle_accelerations[p_i]
            self.container.particle_velocities[p_i] += self.dt[None] * acc

    def prepare(self):
        print("inserting object")
        self.container.insert_object()
        print("preparing boundary")
        self.container.prepare_boundary_search()
        self.boundary.compute_boundary_psi()
        print("preparing neighborhood search")
        self.container.search_neighbors()
        self.compute_density()
        print("preparing finished")
        print(f"Fluid particle num: {self.container.particle_num[None]}, "
              f"boundary particle num: {self.container.boundary_num[None]}")

    def step(self):
        self._step()
        self.container.total_time += self.dt[None]
