import taichi as ti
import math


@ti.data_oriented
class CubicKernel:
    """Cubic spline kernel in 3D with compact support radius h.

    Written in the normalised distance ``q = r / h``; the weight integrates
    to one over the support sphere.
    """
    weight_factor = 8.0 / math.pi
    gradient_factor = 48.0 / math.pi

    @ti.func
    def weight(self, r_mod, h):
        q = r_mod / h
        w = 0.0
        if q <= 1.0:
            if q <= 0.5:
                w = 6.0 * q * q * (q - 1.0) + 1.0
            else:
                w = 2.0 * (1.0 - q) ** 3
        return self.weight_factor / (h * h * h) * w

    @ti.func
    def weight_zero(self, h):
        return self.weight_factor / (h * h * h)

    @ti.func
    def gradient(self, r, h):
        r_mod = r.norm()
        q = r_mod / h
        grad = ti.Vector([0.0, 0.0, 0.0])
        # zero at the origin and outside the support
        if r_mod > 1e-9 and q <= 1.0:
            dq = 0.0
            if q <= 0.5:
                dq = q * (3.0 * q - 2.0)
            else:
                dq = -(1.0 - q) * (1.0 - q)
            grad = (self.gradient_factor / (h * h * h) * dq / (r_mod * h)) * r
        return grad
