import numpy as np
from .optimizers import Optimizer


class MMA(Optimizer):
    r"""Method of Moving Asymptotes (MMA), in the 2007 variant

    The responses are given per iteration to :meth:`step`: the objective followed by ``m`` constraints in negative null
    form. Without constraints a dummy constraint is added internally.

    Args:
        n: Number of design variables
        xmin: Minimum design variable (scalar or vector)
        xmax: Maximum design variable (scalar or vector)
        m (optional): Number of constraints
        move (optional): Move limit on the variable change per iteration, relative to ``xmax - xmin``
        verbosity (optional): Level of information to print
        **kwargs: Additional MMA options (``a0``, ``a``, ``c``, ``epsimin``, ``cCoef``, ``albefa``, ``asyinit``,
          ``asyincr``, ``asydecr``, ``asybound``)

    References:
      - Svanberg, K. (1987). The Method of Moving Asymptotes. IJNME, 24(2), 359–373.
        https://doi.org/10.1002/nme.1620240207
      - Svanberg, K. (2007). MMA and GCMMA – two methods for nonlinear optimization. Kth, 1, 1–15.
    """
    def __init__(self, n: int, xmin=0.0, xmax=1.0, m: int = 1, move=0.1, verbosity: int = 2, tags=None, **kwargs):
        super().__init__(n, xmin, xmax, move=move, tags=tags, verbosity=verbosity)
        self.a0 = kwargs.get("a0", 1.0)
        self.epsimin = kwargs.get("epsimin", 1e-10)
        self.cCoef = kwargs.get("cCoef", 1e3)

        # Asymptotes control
        self.albefa = kwargs.get("albefa", 0.1)
        self.asyinit = kwargs.get("asyinit", 0.5)
        self.asyincr = kwargs.get("asyincr", 1.2)
        self.asydecr = kwargs.get("asydecr", 0.7)
        self.asybound = kwargs.get("asybound", 10.0)

        self.xold1, self.xold2 = None, None
        self.low, self.upp = None, None
        self.offset = self.asyinit * np.ones(self.n)

        self.m_user = m
        self.m = max(1, m)  # At minimum 1 for the dummy constraint
        self.a = np.asarray(kwargs.get("a", np.zeros(self.m)), dtype=float)
        self.c = np.asarray(kwargs.get("c", np.full(self.m, self.cCoef)), dtype=float)
        if self.a.size != self.m or self.c.size != self.m:
            raise ValueError(f"Length of the a and c vectors should be equal to # constraints ({self.m})")
        self.d = np.ones(self.m)

    def _update_asymptote_offset(self, x):
        """ Widen the asymptotes of monotonically moving variables and narrow those of oscillating ones """
        if self.xold1 is None or self.xold2 is None:
            return
        zzz = (x - self.xold1) * (self.xold1 - self.xold2)
        self.offset[zzz > 0] *= self.asyincr
        self.offset[zzz < 0] *= self.asydecr
        self.offset = np.clip(self.offset, 1 / (self.asybound ** 2), self.asybound)

    def step(self, x, g, dg):
        x = np.asarray(x, dtype=float)
        g = np.atleast_1d(np.asarray(g, dtype=float))
        dg = np.atleast_2d(dg)
        if g.size != self.m_user + 1 or dg.shape != (self.m_user + 1, self.n):
            raise ValueError(f"Expected {self.m_user + 1} responses with {self.n} sensitivities, got g of size {g.size} "
                             f"and dg of shape {dg.shape}")

        self._update_asymptote_offset(x)
        xnew = self.mmasub(x, g, dg)
        self.xold2, self.xold1 = self.xold1, x.copy()
        self.iter += 1
        return xnew, g, dg

    def mmasub(self, xval, g, dg):
        if g.size == 1:
            g = np.hstack((g, -1.0))
            dg = np.vstack((dg, np.zeros(self.n)))

        shift = self.offset * self.dx
        self.low = xval - shift
        self.upp = xval + shift

        # Variable bounds within the asymptotes and the move limit
        alfa = np.maximum.reduce([self.low + self.albefa * shift, xval - self.move * self.dx, self.xmin])
        beta = np.minimum.reduce([self.upp - self.albefa * shift, xval + self.move * self.dx, self.xmax])

        # Convex separable approximations
        dg_plus = np.maximum(+dg, 0)
        dg_min = np.maximum(-dg, 0)
        dx2 = shift ** 2
        rho = 1e-5
        P = dx2 * (1.001 * dg_plus + 0.001 * dg_min + rho / self.dx)
        Q = dx2 * (0.001 * dg_plus + 1.001 * dg_min + rho / self.dx)
        rhs = P @ (1 / shift) + Q @ (1 / shift) - g

        sub = Subproblem(self.low, self.upp, alfa, beta, P, Q, self.a0, self.a, rhs[1:], self.c, self.d)
        return sub.solve(self.epsimin * np.sqrt(self.m + self.n), x0=xval)


class Subproblem:
    r""" The MMA subproblem, solved by a primal-dual interior point method

    minimize   :math:`f_0(\mathbf{x}) + a_0 z + \sum_i \left( c_i y_i + \frac{1}{2} d_i y_i^2 \right)`

    subject to :math:`f_i(\mathbf{x}) - a_i z - y_i \leq b_i`, :math:`\alpha_j \leq x_j \leq \beta_j`,
    :math:`y_i \geq 0` and :math:`z \geq 0`,

    with :math:`f_i(\mathbf{x}) = \sum_j \left( p_{ij}/(u_j - x_j) + q_{ij}/(x_j - l_j) \right)`.
    """
    maxit = 400

    def __init__(self, low, upp, alfa, beta, P, Q, a0, a, b, c, d):
        self.low, self.upp = low, upp
        self.alfa, self.beta = alfa, beta
        self.P0, self.Q0 = np.ascontiguousarray(P[0]), np.ascontiguousarray(Q[0])
        self.P1, self.Q1 = np.ascontiguousarray(P[1:]), np.ascontiguousarray(Q[1:])
        self.a0, self.a, self.b, self.c, self.d = a0, a, b, c, d
        self.n, self.m = alfa.size, a.size

    def residual(self, v, epsi):
        """ KKT residual of the perturbed optimality conditions for primal-dual variables ``v`` """
        x, y, z, lam, xsi, eta, mu, zet, s = v
        ux1 = self.upp - x
        xl1 = x - self.low
        plam = self.P0 + lam @ self.P1
        qlam = self.Q0 + lam @ self.Q1
        gvec = self.P1 @ (1 / ux1) + self.Q1 @ (1 / xl1)
        return np.concatenate([
            plam / ux1 ** 2 - qlam / xl1 ** 2 - xsi + eta,
            self.c + self.d * y - mu - lam,
            [self.a0 - zet - self.a @ lam],
            gvec - self.a * z - y + s - self.b,
            xsi * (x - self.alfa) - epsi,
            eta * (self.beta - x) - epsi,
            mu * y - epsi,
            [zet * z - epsi],
            lam * s - epsi,
        ])

    def newton_direction(self, v, epsi):
        """ Newton step of the perturbed KKT system, reduced to the multipliers ``lam`` and ``z`` """
        x, y, z, lam, xsi, eta, mu, zet, s = v
        a, m = self.a, self.m
        ux1 = self.upp - x
        xl1 = x - self.low
        ux2, xl2 = ux1 ** 2, xl1 ** 2

        plam = self.P0 + lam @ self.P1
        qlam = self.Q0 + lam @ self.Q1
        gvec = self.P1 @ (1 / ux1) + self.Q1 @ (1 / xl1)
        GG = self.P1 / ux2 - self.Q1 / xl2

        delx = plam / ux2 - qlam / xl2 - epsi / (x - self.alfa) + epsi / (self.beta - x)
        dely = self.c + self.d * y - lam - epsi / y
        delz = self.a0 - a @ lam - epsi / z
        dellam = gvec - a * z - y - self.b + epsi / lam

        diagx = 2 * (plam / (ux1 * ux2) + qlam / (xl1 * xl2)) + xsi / (x - self.alfa) + eta / (self.beta - x)
        diagy = self.d + mu / y
        diaglamyi = s / lam + 1.0 / diagy

        AA = np.empty((m + 1, m + 1))
        AA[:-1, :-1] = np.diag(diaglamyi) + (GG / diagx) @ GG.T
        AA[-1, :-1] = a
        AA[:-1, -1] = a
        AA[-1, -1] = -zet / z
        bb = np.concatenate([dellam + dely / diagy - GG @ (delx / diagx), [delz]])
        solut = np.linalg.solve(AA, bb)

        dlam, dz = solut[:m], solut[m]
        dx = -delx / diagx - (dlam @ GG) / diagx
        dy = -dely / diagy + dlam / diagy
        dxsi = -xsi + epsi / (x - self.alfa) - (xsi * dx) / (x - self.alfa)
        deta = -eta + epsi / (self.beta - x) + (eta * dx) / (self.beta - x)
        dmu = -mu + epsi / y - (mu * dy) / y
        dzet = -zet + epsi / z - zet * dz / z
        ds = -s + epsi / lam - (s * dlam) / lam
        return dx, dy, dz, dlam, dxsi, deta, dmu, dzet, ds

    def max_step(self, v, dv):
        """ Largest step that keeps all positive variables strictly inside their bounds """
        x, y, z, lam, xsi, eta, mu, zet, s = v
        dx, dy, dz, dlam, dxsi, deta, dmu, dzet, ds = dv
        stm = max(-1.01 * np.min(dy / y), -1.01 * dz / z, -1.01 * np.min(dlam / lam), -1.01 * np.min(dxsi / xsi),
                  -1.01 * np.min(deta / eta), -1.01 * np.min(dmu / mu), -1.01 * dzet / zet, -1.01 * np.min(ds / s),
                  -1.01 * np.min(dx / (x - self.alfa)), 1.01 * np.max(dx / (self.beta - x)))
        return 1.0 / max(stm, 1.0)

    def solve(self, epsimin, x0=None):
        """ Solve the subproblem and return the optimal design variables """
        m = self.m
        x = 0.5 * (self.alfa + self.beta) if x0 is None else np.clip(x0, self.alfa + 1e-10, self.beta - 1e-10)
        v = (x, np.ones(m), 1.0, np.ones(m), np.maximum(1.0 / (x - self.alfa), 1),
             np.maximum(1.0 / (self.beta - x), 1), np.maximum(1, 0.5 * self.c), 1.0, np.ones(m))

        epsi = 1.0
        while epsi > epsimin:
            resi2 = self.residual(v, epsi) ** 2
            residunorm, residumax = resi2.sum(), resi2.max()

            it = 0
            while residumax > (0.9 * epsi) ** 2 and it < self.maxit:
                it += 1
                dv = self.newton_direction(v, epsi)
                steg = self.max_step(v, dv)

                # Backtracking line search on the residual norm
                for _ in range(self.maxit):
                    vnew = tuple(vi + steg * dvi for vi, dvi in zip(v, dv))
                    resi2 = self.residual(vnew, epsi) ** 2
                    if resi2.sum() < residunorm:
                        break
                    steg /= 2
                v = vnew
                residunorm, residumax = resi2.sum(), resi2.max()

            if it > self.maxit - 2:
                print(f"MMA Subsolver: itt = {it}, at epsi = {'%.3e' % epsi}")
            epsi /= 10
        return v[0]
