import numpy as np
import trimesh as tm
from ..utils import SimConfig

def process_mesh(mesh, transform_params):
    """Apply the rotation and translation of a scene object to its mesh"""
    if transform_params.get("rotationAngle") is not None:
        angle = transform_params["rotationAngle"] / 360 * 2 * np.pi
        direction = transform_params["rotationAxis"]
        center = mesh.vertices.mean(axis=0)
        rot_matrix = tm.transformations.rotation_matrix(angle, direction, center)
        mesh.apply_transform(rot_matrix)
    if transform_params.get("translation") is not None:
        mesh.vertices += np.array(transform_params["translation"])
    return mesh

def create_grid_points(dim, bounds, spacing):
    """Regular lattice of points with the given spacing inside bounds"""
    min_point, max_point = bounds
    grid_ranges = [np.arange(min_point[i], max_point[i], spacing) for i in range(dim)]
    return np.array(np.meshgrid(*grid_ranges, indexing='ij')).reshape(dim, -1).T

def create_block_points(dim, fluid_block, diameter):
    """Lattice points of a fluid block after translation and scaling"""
    offset = np.array(fluid_block.get("translation", [0.0] * dim))
    scale = np.array(fluid_block.get("scale", [1.0] * dim))
    start = np.array(fluid_block["start"]) * scale + offset
    end = np.array(fluid_block["end"]) * scale + offset
    return create_grid_points(dim, (start, end), diameter)

def fluid_block_processor(dim, config: SimConfig, diameter):
    total_particles = 0
    for fluid in config.get_fluid_blocks():
        num = len(create_block_points(dim, fluid, diameter))
        fluid["particleNum"] = num
        total_particles += num
    return total_particles

def load_rigid_body(body_config, pitch):
    """Voxelise a static boundary mesh into particle positions"""
    mesh = tm.load(body_config["geometryFile"], force='mesh')
    mesh.apply_scale(body_config.get("scale", 1.0))
    mesh = process_mesh(mesh, body_config)

    points = mesh.voxelized(pitch=pitch).fill().points
    print(f"boundary body {body_config.get('objectId')} particle num: {len(points)}")
    return points

def rigid_body_processor(config: SimConfig, diameter):
    total_particles = 0
    for rigid_body in config.get_rigid_bodies():
        points = load_rigid_body(rigid_body, diameter)
        rigid_body.update({
            "particleNum": len(points),
            "voxelizedPoints": points
        })
        total_particles += len(points)
    return total_particles

def create_box_points(dim, domain_start, domain_end, diameter, thickness):
    """Lattice points forming a shell of the given thickness along the domain faces"""
    points = create_grid_points(dim, (domain_start, domain_end), diameter)
    mask = np.zeros(len(points), dtype=bool)
    for i in range(dim):
        mask |= ((points[:, i] <= domain_start[i] + thickness) |
                 (points[:, i] >= domain_end[i] - thickness))
    return points[mask]
