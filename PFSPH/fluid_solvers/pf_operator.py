import taichi as ti
from ..containers import PFContainer

@ti.data_oriented
class MatrixFreeOperator:
    """System matrix of the projective fluids solve, applied without assembling it.

    ``A x = (h^2 k) P x + M x`` where ``P`` gathers a particle's own entry once
    for the particle itself and once more for every particle that lists it as
    a fluid neighbor.
    """
    def __init__(self, container: PFContainer, dt):
        self.container = container
        self.dt = dt
        self.accumulator = ti.Vector.field(container.dim, dtype=float, shape=container.particle_max_num)

    @ti.kernel
    def apply(self, src: ti.template(), result: ti.template()):
        for i in range(self.container.particle_num[None]):
            self.accumulator[i] = ti.Vector([0.0, 0.0, 0.0])

        # influence of pressure, += on a field is atomic inside parallel loops
        for i in range(self.container.particle_num[None]):
            self.accumulator[i] += src[i]
            for k in range(self.container.neighbor_num[i]):
                if self.container.neighbor_set_ids[i, k] == self.container.fluid_set_id:
                    j = self.container.neighbor_ids[i, k]
                    self.accumulator[j] += src[j]

        # influence of momentum
        system_scale = self.dt[None] * self.dt[None] * self.container.stiffness[None]
        for i in range(self.container.particle_num[None]):
            result[i] = system_scale * self.accumulator[i] + self.container.particle_masses[i] * src[i]
