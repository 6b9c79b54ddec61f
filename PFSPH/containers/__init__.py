from .base_container import BaseContainer
from .pf_container import PFContainer
from .neighborhood import NeighborGrid

__all__ = [
    'BaseContainer',
    'PFContainer',
    'NeighborGrid'
]
