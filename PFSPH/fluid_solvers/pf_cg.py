import taichi as ti
from enum import Enum
from ..containers import PFContainer
from .simulation_data_pf import SimulationDataPF
from .pf_operator import MatrixFreeOperator
from .pf_projection import DensityProjector


class CGSolveState(Enum):
    ALREADY_SOLVED = 0
    CONVERGED = 1
    MAX_ITER_REACHED = 2


@ti.data_oriented
class ConjugateGradientSolver:
    """Conjugate gradient on the matrix-free system, solving for ``simulation_data.x`` in place.

    The residual is recomputed from scratch every ``restart_iterations``
    iterations. Running into the iteration cap is not an error: whatever is in
    ``x`` is used.
    """
    def __init__(self, container: PFContainer, simulation_data: SimulationDataPF,
                 operator: MatrixFreeOperator, projector: DensityProjector):
        self.container = container
        self.simulation_data = simulation_data
        self.operator = operator
        self.projector = projector

        cfg = container.cfg
        self.tol_abs = cfg.get_cfg("cgTolAbs", default=1e-10)
        self.tol_rel = cfg.get_cfg("cgTolRel", default=1e-8)
        self.restart_iterations = int(cfg.get_cfg("cgRestartIterations", default=50))

        # squared residual norm per iteration and whether it followed a restart
        self.residual_history = []
        self.iterations = 0

        vector_fields = ['cg_r', 'cg_d', 'cg_q', 'cg_b']
        for name in vector_fields:
            setattr(self, name, ti.Vector.field(container.dim, dtype=float, shape=container.particle_max_num))

    @ti.kernel
    def dot(self, a: ti.template(), b: ti.template()) -> float:
        result = 0.0
        for i in range(self.container.particle_num[None]):
            result += a[i].dot(b[i])
        return result

    @ti.kernel
    def axpy(self, alpha: float, src: ti.template(), dst: ti.template()):
        for i in range(self.container.particle_num[None]):
            dst[i] += alpha * src[i]

    @ti.kernel
    def copy(self, src: ti.template(), dst: ti.template()):
        for i in range(self.container.particle_num[None]):
            dst[i] = src[i]

    @ti.kernel
    def update_search_direction(self, beta: float):
        for i in range(self.container.particle_num[None]):
            self.cg_d[i] = self.cg_r[i] + beta * self.cg_d[i]

    @ti.kernel
    def subtract_from_rhs(self):
        for i in range(self.container.particle_num[None]):
            self.cg_r[i] = self.cg_b[i] - self.cg_r[i]

    def calculate_negative_gradient(self, update_rhs):
        """r = b - A x, rebuilding b through the local projection when ``update_rhs``"""
        # cg_r holds A x until the subtraction
        self.operator.apply(self.simulation_data.x, self.cg_r)
        if update_rhs:
            self.projector.compute_rhs(self.cg_b)
        self.subtract_from_rhs()

    def is_converged(self, delta_new, delta_0):
        return delta_new < self.tol_abs or delta_new < self.tol_rel * delta_0

    def solve(self):
        num_variables = 3 * self.container.particle_num[None]

        self.calculate_negative_gradient(update_rhs=True)
        self.copy(self.cg_r, self.cg_d)

        delta_new = self.dot(self.cg_r, self.cg_r)
        delta_0 = delta_new
        self.residual_history = [(delta_new, False)]
        self.iterations = 0

        if self.is_converged(delta_new, delta_0):
            return CGSolveState.ALREADY_SOLVED

        for cg_it in range(num_variables):
            self.operator.apply(self.cg_d, self.cg_q)
            curvature = self.dot(self.cg_d, self.cg_q)
            if curvature <= 0.0:
                # a vanished residual leaves d = 0, x is exact
                if delta_new == 0.0:
                    return CGSolveState.CONVERGED
                return CGSolveState.MAX_ITER_REACHED
            alpha = delta_new / curvature
            self.axpy(alpha, self.cg_d, self.simulation_data.x)

            restarted = (cg_it + 1) % self.restart_iterations == 0
            if restarted:
                self.calculate_negative_gradient(update_rhs=False)
            else:
                self.axpy(-alpha, self.cg_q, self.cg_r)

            delta_old = delta_new
            delta_new = self.dot(self.cg_r, self.cg_r)
            self.iterations = cg_it + 1
            self.residual_history.append((delta_new, restarted))

            if self.is_converged(delta_new, delta_0):
                return CGSolveState.CONVERGED

            beta = delta_new / delta_old
            self.update_search_direction(beta)

        return CGSolveState.MAX_ITER_REACHED
