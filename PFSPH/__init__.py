from .containers import BaseContainer, PFContainer
from .fluid_solvers import PFSolver, CGSolveState
from .utils import SimConfig

__all__ = [
    'BaseContainer',
    'PFContainer',
    'PFSolver',
    'CGSolveState',
    'SimConfig'
]
