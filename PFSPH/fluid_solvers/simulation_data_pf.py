import taichi as ti
from ..containers import PFContainer

@ti.data_oriented
class SimulationDataPF:
    """Per-particle scratch data of the projective fluids solver.

    All fields are allocated for the container capacity; every stage only
    touches the active ``particle_num`` prefix, so the logical solution
    vector always holds exactly ``3 * particle_num`` reals.
    """
    def __init__(self, container: PFContainer):
        self.container = container
        max_p = container.particle_max_num
        dim = container.dim

        vector_fields = [
            'old_positions',
            'predicted_positions',
            'x'
        ]
        for name in vector_fields:
            setattr(self, name, ti.Vector.field(n=dim, dtype=float, shape=max_p))

        self.num_fluid_neighbors = ti.field(dtype=int, shape=max_p)

    def reset(self):
        self.old_positions.fill(0.0)
        self.predicted_positions.fill(0.0)
        self.x.fill(0.0)
        self.num_fluid_neighbors.fill(0)

    def resort(self, order):
        """Apply the container's sort permutation so the scratch data stays attached to its particle"""
        for field in [self.old_positions, self.predicted_positions, self.x]:
            self.container.permute(field, self.container.vector_buffer, order)
        self.container.permute(self.num_fluid_neighbors, self.container.int_buffer, order)

    def solution_vector(self):
        """Flattened view of the active solution, three reals per particle"""
        num = self.container.particle_num[None]
        return self.x.to_numpy()[:num].reshape(-1)
