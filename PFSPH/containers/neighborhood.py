import taichi as ti
import numpy as np
from functools import reduce

@ti.data_oriented
class NeighborGrid:
    """Uniform cell grid for one point set, rebuilt with a counting sort.

    The grid stores, per cell, a range into ``sorted_indices`` so that all
    particles of the set lying in one cell are contiguous there. Positions
    outside the grid bounds are clamped into the border cells.
    """
    def __init__(self, domain_start, domain_end, grid_size, capacity):
        self.grid_size = float(grid_size)
        self.domain_start = [float(domain_start[d]) for d in range(3)]
        self.grid_num = [max(int(np.ceil((domain_end[d] - domain_start[d]) / grid_size)), 1) for d in range(3)]
        self.cell_total = reduce(lambda x, y: x * y, self.grid_num)
        self.capacity = max(int(capacity), 1)

        cell_fields = ['cell_counts', 'cell_offsets', 'cell_fill']
        for name in cell_fields:
            setattr(self, name, ti.field(dtype=int, shape=self.cell_total))

        particle_fields = ['particle_cells', 'sorted_indices']
        for name in particle_fields:
            setattr(self, name, ti.field(dtype=int, shape=self.capacity))

    @ti.func
    def pos_to_index(self, pos):
        cell = ti.Vector([0, 0, 0])
        for d in ti.static(range(3)):
            c = ti.cast(ti.floor((pos[d] - ti.static(self.domain_start[d])) / self.grid_size), ti.i32)
            cell[d] = ti.min(ti.max(c, 0), ti.static(self.grid_num[d] - 1))
        return cell

    @ti.func
    def flatten_grid_index(self, cell):
        return (cell[0] * ti.static(self.grid_num[1]) + cell[1]) * ti.static(self.grid_num[2]) + cell[2]

    @ti.func
    def is_valid_cell(self, cell):
        valid = 1
        for d in ti.static(range(3)):
            if cell[d] < 0 or cell[d] >= ti.static(self.grid_num[d]):
                valid = 0
        return valid

    @ti.kernel
    def update(self, positions: ti.template(), num: int):
        """Bin ``num`` positions into cells and fill ``sorted_indices``"""
        for c in range(self.cell_total):
            self.cell_counts[c] = 0

        for i in range(num):
            cell = self.flatten_grid_index(self.pos_to_index(positions[i]))
            self.particle_cells[i] = cell
            ti.atomic_add(self.cell_counts[cell], 1)

        # exclusive prefix sum over the cell counts
        ti.loop_config(serialize=True)
        for c in range(self.cell_total):
            offset = 0
            if c > 0:
                offset = self.cell_offsets[c - 1] + self.cell_counts[c - 1]
            self.cell_offsets[c] = offset

        for c in range(self.cell_total):
            self.cell_fill[c] = self.cell_offsets[c]

        for i in range(num):
            slot = ti.atomic_add(self.cell_fill[self.particle_cells[i]], 1)
            self.sorted_indices[slot] = i

    @ti.func
    def for_all_neighbors(self, i, pos, positions: ti.template(), radius, task: ti.template(), ret: ti.template()):
        """Call ``task(i, j, ret)`` for every particle j of this set closer than ``radius`` to ``pos``"""
        center_cell = self.pos_to_index(pos)
        for offset in ti.grouped(ti.ndrange(*((-1, 2),) * 3)):
            cell = center_cell + offset
            if self.is_valid_cell(cell):
                flat = self.flatten_grid_index(cell)
                start = self.cell_offsets[flat]
                for s in range(start, start + self.cell_counts[flat]):
                    j = self.sorted_indices[s]
                    if (pos - positions[j]).norm() < radius:
                        task(i, j, ret)
