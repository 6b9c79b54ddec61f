from .base_solver import BaseSolver
from .PF import PFSolver
from .pf_cg import ConjugateGradientSolver, CGSolveState
from .pf_operator import MatrixFreeOperator
from .pf_projection import DensityProjector
from .simulation_data_pf import SimulationDataPF

__all__ = [
    'BaseSolver',
    'PFSolver',
    'ConjugateGradientSolver',
    'CGSolveState',
    'MatrixFreeOperator',
    'DensityProjector',
    'SimulationDataPF'
]
