from .config_builder import SimConfig
from .kernel import CubicKernel
from .boundary import Boundary

__all__ = [
    'SimConfig',
    'CubicKernel',
    'Boundary'
]
