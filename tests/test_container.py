import numpy as np
import pytest

from PFSPH.containers import PFContainer
from PFSPH.utils import Boundary, CubicKernel
from conftest import CUBE_BLOCK, active, set_positions


def brute_force_neighbors(positions, radius):
    diff = positions[:, None, :] - positions[None, :, :]
    dist = np.linalg.norm(diff, axis=-1)
    np.fill_diagonal(dist, np.inf)
    return [set(np.nonzero(row < radius)[0]) for row in dist]


def neighbor_sets(container):
    num = container.particle_num[None]
    counts = container.neighbor_num.to_numpy()[:num]
    ids = container.neighbor_ids.to_numpy()[:num]
    set_ids = container.neighbor_set_ids.to_numpy()[:num]
    fluid, boundary = [], []
    for i in range(num):
        fluid.append({ids[i, k] for k in range(counts[i]) if set_ids[i, k] == 0})
        boundary.append({ids[i, k] for k in range(counts[i]) if set_ids[i, k] != 0})
    return fluid, boundary


class TestInsertion:
    def test_cube_block(self, make_config):
        container = PFContainer(make_config(fluid_blocks=[CUBE_BLOCK]))
        assert container.particle_max_num == 64
        container.insert_object()

        assert container.particle_num[None] == 64
        masses = active(container.particle_masses, container)
        assert np.allclose(masses, container.V0 * container.density_0)
        assert sorted(active(container.particle_tags, container)) == list(range(64))
        assert np.all(active(container.particle_object_ids, container) == 0)

    def test_block_velocity(self, make_config):
        block = dict(CUBE_BLOCK, velocity=[0.5, 0.0, -1.0])
        container = PFContainer(make_config(fluid_blocks=[block]))
        container.insert_object()
        assert np.allclose(active(container.particle_velocities, container), [0.5, 0.0, -1.0])

    def test_entry_time(self, make_config):
        late = dict(CUBE_BLOCK, objectId=1, start=[0.1, 0.1, 0.1], end=[0.175, 0.175, 0.175], entryTime=0.5)
        container = PFContainer(make_config(fluid_blocks=[CUBE_BLOCK, late]))
        assert container.particle_max_num == 64 + 8

        container.insert_object()
        assert container.particle_num[None] == 64

        container.total_time = 0.6
        container.insert_object()
        assert container.particle_num[None] == 72
        # inserting again is a no-op
        container.insert_object()
        assert container.particle_num[None] == 72

    def test_capacity_exceeded(self, make_config):
        container = PFContainer(make_config(fluid_blocks=[CUBE_BLOCK]))
        container.insert_object()
        with pytest.raises(ValueError):
            container.add_fluid_particles(7, np.zeros((1, 3)), [0.0, 0.0, 0.0])

    def test_dump(self, make_config):
        container = PFContainer(make_config(fluid_blocks=[CUBE_BLOCK]))
        container.insert_object()
        data = container.dump(obj_id=0)
        assert data["position"].shape == (64, 3)
        assert data["velocity"].shape == (64, 3)


class TestNeighborhoodSearch:
    def test_fluid_neighbors_match_brute_force(self, make_config):
        container = PFContainer(make_config(fluid_blocks=[CUBE_BLOCK]))
        container.insert_object()
        rng = np.random.default_rng(3)
        positions = active(container.particle_positions, container) + rng.uniform(-0.01, 0.01, (64, 3))
        set_positions(container, positions)

        container.search_neighbors()

        fluid, boundary = neighbor_sets(container)
        assert fluid == brute_force_neighbors(positions, container.dh)
        assert all(len(b) == 0 for b in boundary)
        assert container.neighbor_overflow[None] == 0

    def test_boundary_neighbors(self, make_config):
        container = PFContainer(make_config({"addDomainBox": True}, fluid_blocks=[
            dict(CUBE_BLOCK, start=[0.15, 0.15, 0.15], end=[0.325, 0.325, 0.325])
        ]))
        container.insert_object()
        rng = np.random.default_rng(5)
        set_positions(container, active(container.particle_positions, container) + rng.uniform(-0.005, 0.005, (64, 3)))
        container.prepare_boundary_search()
        container.search_neighbors()

        assert container.boundary_num[None] > 0
        assert set(np.unique(container.boundary_set_ids.to_numpy()[:container.boundary_num[None]])) == {1}

        fluid_pos = active(container.particle_positions, container)
        boundary_pos = container.boundary_positions.to_numpy()[:container.boundary_num[None]]
        _, boundary = neighbor_sets(container)
        for i in range(container.particle_num[None]):
            dist = np.linalg.norm(boundary_pos - fluid_pos[i], axis=1)
            assert boundary[i] == set(np.nonzero(dist < container.dh)[0])

    def test_neighbor_overflow(self, make_config):
        container = PFContainer(make_config({"maxNeighbors": 4}, fluid_blocks=[CUBE_BLOCK]))
        container.insert_object()
        container.search_neighbors()
        assert np.all(active(container.neighbor_num, container) <= 4)
        assert container.neighbor_overflow[None] > 0


class TestBoundaryPsi:
    def test_psi_bounds(self, make_config):
        container = PFContainer(make_config({"addDomainBox": True}))
        container.prepare_boundary_search()
        Boundary(container, CubicKernel()).compute_boundary_psi()

        psi = container.boundary_psi.to_numpy()[:container.boundary_num[None]]
        w_zero = 8.0 / (np.pi * container.dh ** 3)
        assert np.all(np.isfinite(psi))
        assert np.all(psi > 0.0)
        # the self contribution bounds the inverse volume from below
        assert np.all(psi <= container.density_0 / w_zero + 1e-9)
        # particles inside the shell see more boundary neighbors than corner particles
        assert psi.min() < psi.max()


class TestResort:
    def test_resort_keeps_particle_data_attached(self, make_config):
        container = PFContainer(make_config(fluid_blocks=[CUBE_BLOCK]))
        container.insert_object()
        # reverse the spatial order so that the sort has to move particles
        positions = active(container.particle_positions, container)[::-1].copy()
        set_positions(container, positions)
        velocities = np.arange(64 * 3, dtype=np.float64).reshape(64, 3)
        full = container.particle_velocities.to_numpy()
        full[:64] = velocities
        container.particle_velocities.from_numpy(full)
        tags_before = active(container.particle_tags, container)

        container.prepare_sort()
        order = active(container.sort_order, container)
        assert sorted(order) == list(range(64))
        assert not np.array_equal(order, np.arange(64))

        container.resort(container.sort_order)

        tags = active(container.particle_tags, container)
        assert np.array_equal(tags, tags_before[order])
        pos_by_tag = dict(zip(tags_before, positions))
        vel_by_tag = dict(zip(tags_before, velocities))
        for k, tag in enumerate(tags):
            assert np.array_equal(container.particle_positions[k].to_numpy(), pos_by_tag[tag])
            assert np.array_equal(container.particle_velocities[k].to_numpy(), vel_by_tag[tag])


class TestRigidBoundary:
    def test_voxelized_mesh_becomes_boundary_set(self, make_config, tmp_path):
        import trimesh
        mesh_path = tmp_path / "box.obj"
        trimesh.creation.box(extents=[0.2, 0.2, 0.2]).export(str(mesh_path))
        rigid = {"objectId": 5, "geometryFile": str(mesh_path), "translation": [0.5, 0.3, 0.5]}
        block = dict(CUBE_BLOCK, start=[0.425, 0.45, 0.425], end=[0.6, 0.55, 0.6])
        container = PFContainer(make_config(fluid_blocks=[block], rigid_bodies=[rigid]))

        num = container.boundary_num[None]
        assert num == container.boundary_particle_max_num > 0
        assert container.boundary_sets == {1: 5}
        boundary_pos = container.boundary_positions.to_numpy()[:num]
        assert np.all(np.abs(boundary_pos - [0.5, 0.3, 0.5]) <= 0.1 + 0.05)

        container.insert_object()
        container.prepare_boundary_search()
        Boundary(container, CubicKernel()).compute_boundary_psi()
        container.search_neighbors()

        assert np.all(container.boundary_psi.to_numpy()[:num] > 0.0)
        _, boundary = neighbor_sets(container)
        assert any(len(b) > 0 for b in boundary)
