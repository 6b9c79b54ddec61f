import taichi as ti
import numpy as np
from . import ObjectProcessor as op
from .neighborhood import NeighborGrid
from ..utils import SimConfig

@ti.data_oriented
class BaseContainer:
    """Particle model with a fluid point set (id 0) and static boundary point sets (id >= 1)"""
    def __init__(self, config: SimConfig):
        basic_attrs = {
            'dim': 3,
            'cfg': config,
            'total_time': 0.0,
            'domain_start': config.get_vector("domainStart", [0.0, 0.0, 0.0]),
            'domain_end': config.get_vector("domainEnd", [1.0, 1.0, 1.0]),
            'fluid_set_id': 0,
        }
        for name, value in basic_attrs.items():
            setattr(self, name, value)

        self.domain_size = self.domain_end - self.domain_start

        # particle parameters
        self.radius = self.cfg.get_cfg("particleRadius", default=0.025)
        derived_params = {
            'diameter': 2 * self.radius,
            'V0': 0.8 * (2 * self.radius) ** self.dim,
            'dh': 4 * self.radius,
            'density_0': float(self.cfg.get_cfg("density0", default=1000.0)),
            'max_neighbors': int(self.cfg.get_cfg("maxNeighbors", default=80)),
            'boundary_thickness': 4 * self.radius,
            'add_boundary': bool(self.cfg.get_cfg("addDomainBox"))
        }
        for name, value in derived_params.items():
            setattr(self, name, value)

        collections = {
            'object_collection': dict(),
            'object_id_fluid_body': set(),
            'present_object': [],
            'boundary_sets': dict(),
            'fluid_blocks': self.cfg.get_fluid_blocks(),
            'rigid_bodies': self.cfg.get_rigid_bodies()
        }
        for name, value in collections.items():
            setattr(self, name, value)

        # particle counts
        boundary_box_points = (op.create_box_points(self.dim, self.domain_start, self.domain_end,
                               self.diameter, self.boundary_thickness) if self.add_boundary else np.zeros((0, self.dim)))
        particle_counts = {
            'fluid_particle_max_num': op.fluid_block_processor(self.dim, self.cfg, self.diameter),
            'boundary_particle_max_num': op.rigid_body_processor(self.cfg, self.diameter) + len(boundary_box_points)
        }
        for name, value in particle_counts.items():
            setattr(self, name, value)

        self.particle_max_num = max(self.fluid_particle_max_num, 1)
        self.boundary_max_num = max(self.boundary_particle_max_num, 1)

        self._allocate_particle_arrays()
        self._allocate_boundary_arrays()
        self._allocate_neighbor_arrays()

        grid_start = self.domain_start - self.dh
        grid_end = self.domain_end + self.dh
        self.fluid_grid = NeighborGrid(grid_start, grid_end, self.dh, self.particle_max_num)
        self.boundary_grid = NeighborGrid(grid_start, grid_end, self.dh, self.boundary_max_num)

        if self.add_boundary:
            self._add_boundary_set(boundary_box_points, "domainBox")
        for rigid in self.rigid_bodies:
            self._add_boundary_set(np.array(rigid["voxelizedPoints"]), rigid.get("objectId", "rigid"))

    def _allocate_particle_arrays(self):
        max_p = self.particle_max_num
        dim = self.dim

        vector_fields = [
            'particle_positions',
            'particle_velocities',
            'particle_accelerations',
            'vector_buffer'
        ]
        for name in vector_fields:
            setattr(self, name, ti.Vector.field(n=dim, dtype=float, shape=max_p))

        scalar_fields = {
            'particle_masses': (float, max_p),
            'particle_densities': (float, max_p),
            'particle_tags': (int, max_p),
            'particle_object_ids': (int, max_p),
            'sort_order': (int, max_p),
            'float_buffer': (float, max_p),
            'int_buffer': (int, max_p),
            'particle_num': (int, ())
        }
        for name, (dtype, shape) in scalar_fields.items():
            setattr(self, name, ti.field(dtype=dtype, shape=shape))

    def _allocate_boundary_arrays(self):
        max_b = self.boundary_max_num
        self.boundary_positions = ti.Vector.field(n=self.dim, dtype=float, shape=max_b)
        scalar_fields = {
            'boundary_psi': (float, max_b),
            'boundary_set_ids': (int, max_b),
            'boundary_num': (int, ())
        }
        for name, (dtype, shape) in scalar_fields.items():
            setattr(self, name, ti.field(dtype=dtype, shape=shape))

    def _allocate_neighbor_arrays(self):
        max_p = self.particle_max_num
        self.neighbor_num = ti.field(dtype=int, shape=max_p)
        self.neighbor_set_ids = ti.field(dtype=int, shape=(max_p, self.max_neighbors))
        self.neighbor_ids = ti.field(dtype=int, shape=(max_p, self.max_neighbors))
        self.neighbor_overflow = ti.field(dtype=int, shape=())

    ######## add particles ########
    def _add_boundary_set(self, points, name):
        set_id = len(self.boundary_sets) + 1
        self.boundary_sets[set_id] = name
        if len(points) > 0:
            self.add_boundary_particles(set_id, len(points), np.asarray(points, dtype=np.float64))

    @ti.kernel
    def add_boundary_particles(self, set_id: int, new_particle_num: int, positions: ti.types.ndarray()):
        for p in range(self.boundary_num[None], self.boundary_num[None] + new_particle_num):
            idx = p - self.boundary_num[None]
            self.boundary_positions[p] = ti.Vector([positions[idx, d] for d in ti.static(range(self.dim))])
            self.boundary_set_ids[p] = set_id
            self.boundary_psi[p] = 0.0
        self.boundary_num[None] += new_particle_num

    def insert_object(self):
        """Insert every fluid block whose entry time has been reached"""
        for fluid in self.fluid_blocks:
            obj_id = fluid["objectId"]
            if obj_id in self.present_object:
                continue
            if fluid.get("entryTime", 0.0) > self.total_time:
                continue

            positions = op.create_block_points(self.dim, fluid, self.diameter)
            velocity = fluid.get("velocity", [0.0] * self.dim)

            self.object_id_fluid_body.add(obj_id)
            self.object_collection[obj_id] = fluid
            self.add_fluid_particles(obj_id, positions, velocity)
            self.present_object.append(obj_id)

    def add_fluid_particles(self, object_id, positions, velocity):
        num_particles = len(positions)
        if num_particles == 0:
            return
        if self.particle_num[None] + num_particles > self.particle_max_num:
            raise ValueError(f"fluid object {object_id} exceeds the particle capacity {self.particle_max_num}")
        velocities = np.tile(np.asarray(velocity, dtype=np.float64), (num_particles, 1))
        self.add_particles(object_id, num_particles, np.asarray(positions, dtype=np.float64), velocities)

    @ti.kernel
    def add_particles(self, object_id: int, new_particle_num: int,
                      positions: ti.types.ndarray(), velocities: ti.types.ndarray()):
        for p in range(self.particle_num[None], self.particle_num[None] + new_particle_num):
            idx = p - self.particle_num[None]
            self.particle_positions[p] = ti.Vector([positions[idx, d] for d in ti.static(range(self.dim))])
            self.particle_velocities[p] = ti.Vector([velocities[idx, d] for d in ti.static(range(self.dim))])
            self.particle_accelerations[p] = ti.Vector([0.0 for _ in ti.static(range(self.dim))])
            self.particle_masses[p] = self.V0 * self.density_0
            self.particle_densities[p] = self.density_0
            self.particle_object_ids[p] = object_id
            self.particle_tags[p] = p
        self.particle_num[None] += new_particle_num

    ######## neighborhood search ########
    def prepare_boundary_search(self):
        """Bin the static boundary particles, done once after insertion"""
        self.boundary_grid.update(self.boundary_positions, self.boundary_num[None])

    def search_neighbors(self):
        self.neighbor_overflow[None] = 0
        self.fluid_grid.update(self.particle_positions, self.particle_num[None])
        self._find_neighbors()

    @ti.kernel
    def _find_neighbors(self):
        for i in range(self.particle_num[None]):
            self.neighbor_num[i] = 0
            pos_i = self.particle_positions[i]
            dropped = 0
            self.fluid_grid.for_all_neighbors(i, pos_i, self.particle_positions, self.dh, self._add_fluid_neighbor, dropped)
            self.boundary_grid.for_all_neighbors(i, pos_i, self.boundary_positions, self.dh, self._add_boundary_neighbor, dropped)
            if dropped > 0:
                ti.atomic_add(self.neighbor_overflow[None], dropped)

    @ti.func
    def _add_fluid_neighbor(self, i, j, dropped: ti.template()):
        if i != j:
            self._push_neighbor(i, self.fluid_set_id, j, dropped)

    @ti.func
    def _add_boundary_neighbor(self, i, j, dropped: ti.template()):
        self._push_neighbor(i, self.boundary_set_ids[j], j, dropped)

    @ti.func
    def _push_neighbor(self, i, set_id, j, dropped: ti.template()):
        k = self.neighbor_num[i]
        if k < self.max_neighbors:
            self.neighbor_set_ids[i, k] = set_id
            self.neighbor_ids[i, k] = j
            self.neighbor_num[i] = k + 1
        else:
            dropped += 1

    ######## locality sort ########
    def prepare_sort(self):
        """Compute ``sort_order``: new index k takes the particle at old index sort_order[k]"""
        self.fluid_grid.update(self.particle_positions, self.particle_num[None])
        self._copy_sort_order()

    @ti.kernel
    def _copy_sort_order(self):
        for k in range(self.particle_num[None]):
            self.sort_order[k] = self.fluid_grid.sorted_indices[k]

    def resort(self, order):
        for field in [self.particle_positions, self.particle_velocities, self.particle_accelerations]:
            self.permute(field, self.vector_buffer, order)
        for field in [self.particle_masses, self.particle_densities]:
            self.permute(field, self.float_buffer, order)
        for field in [self.particle_tags, self.particle_object_ids]:
            self.permute(field, self.int_buffer, order)

    @ti.kernel
    def permute(self, field: ti.template(), buffer: ti.template(), order: ti.template()):
        for k in range(self.particle_num[None]):
            buffer[k] = field[order[k]]
        for k in range(self.particle_num[None]):
            field[k] = buffer[k]

    def dump(self, obj_id):
        num = self.particle_num[None]
        mask = np.where(self.particle_object_ids.to_numpy()[:num] == obj_id)
        return {'position': self.particle_positions.to_numpy()[:num][mask],
                'velocity': self.particle_velocities.to_numpy()[:num][mask]}
