import taichi as ti
from .base_container import BaseContainer
from ..utils import SimConfig

@ti.data_oriented
class PFContainer(BaseContainer):
    def __init__(self, config: SimConfig):
        super().__init__(config)

        self.stiffness = ti.field(dtype=float, shape=())
        self.stiffness[None] = self.cfg.get_cfg("stiffness", default=50000.0)
        self.max_iterations = int(self.cfg.get_cfg("maxIterations", default=5))
