import taichi as ti
from .kernel import CubicKernel

@ti.data_oriented
class Boundary():
    """Boundary particle psi following Akinci et al. 2012"""
    def __init__(self, container, kernel: CubicKernel):
        self.container = container
        self.kernel = kernel

    @ti.kernel
    def compute_boundary_psi(self):
        for p_i in range(self.container.boundary_num[None]):
            # Initialize the inverse volume with the kernel weight at zero distance
            delta = self.kernel.weight_zero(self.container.dh)
            pos_i = self.container.boundary_positions[p_i]
            self.container.boundary_grid.for_all_neighbors(p_i, pos_i, self.container.boundary_positions,
                                                           self.container.dh, self.compute_boundary_psi_task, delta)
            self.container.boundary_psi[p_i] = self.container.density_0 / delta

    @ti.func
    def compute_boundary_psi_task(self, p_i, p_j, delta: ti.template()):
        # only particles of the same boundary object contribute
        if p_i != p_j and self.container.boundary_set_ids[p_j] == self.container.boundary_set_ids[p_i]:
            distance = (self.container.boundary_positions[p_i] - self.container.boundary_positions[p_j]).norm()
            delta += self.kernel.weight(distance, self.container.dh)
