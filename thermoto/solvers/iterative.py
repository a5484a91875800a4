import logging
import warnings
import time
import numpy as np
import scipy.sparse as sps
from scipy.linalg import solve_triangular
from scipy.sparse.linalg import splu
from .solvers import LinearSolver
from ..common.domain import StructuredGrid

logger = logging.getLogger(__name__)


class Preconditioner(LinearSolver):
    """ Abstract base class for preconditioners to inexact solvers, by itself the identity operator """
    def update(self, A):
        pass

    def solve(self, rhs, x0=None, trans='N'):
        return rhs.copy()


class DampedJacobi(Preconditioner):
    r""" Damped Jacobi preconditioner
    :math:`M = \frac{1}{\omega} D`
    Args:
        A (optional): The matrix
        w (optional): Weight factor :math:`0 < \omega \leq 1`
    """
    def __init__(self, A=None, w=1.0):
        if not 0 < w <= 1:
            raise ValueError(f"w must be between 0 and 1, got {w}")
        self.w = w
        self.D = None
        super().__init__(A)

    def update(self, A):
        self.D = A.diagonal()

    def solve(self, rhs, x0=None, trans='N'):
        if trans not in ('N', 'T'):
            raise TypeError("Only N or T transposition is possible")
        return self.w * (rhs.T/self.D).T


class SOR(Preconditioner):
    r""" Symmetric successive over-relaxation preconditioner
    The matrix :math:`A = L + D + U` is split into a lower triangular, diagonal, and upper triangular part.
    :math:`M = \left(\frac{D}{\omega} + L\right) \frac{\omega D^{-1}}{2-\omega} \left(\frac{D}{\omega} + U\right)`

    Args:
        A (optional): The matrix
        w (optional): Weight factor :math:`0 < \omega < 2`
    """
    def __init__(self, A=None, w=1.0):
        if not 0 < w < 2:
            raise ValueError(f"w must be between 0 and 2, got {w}")
        self.w = w
        self.L = None
        self.U = None
        self.Dw = None
        super().__init__(A)

    def update(self, A):
        diag = A.diagonal()
        diagw = sps.diags(diag)/self.w
        self.L = splu(sps.csc_matrix(sps.tril(A, k=-1) + diagw))  # Lower triangular part including diagonal
        self.U = splu(sps.csc_matrix(sps.triu(A, k=1) + diagw))
        self.Dw = diag * (2 - self.w) / self.w

    def _scale(self, u):
        return (u.T * self.Dw).T

    def solve(self, rhs, x0=None, trans='N'):
        if trans == 'N':
            # M^-1 = (D/w + U)^-1 D(2-w)/w (D/w + L)^-1
            u1 = self._scale(self.L.solve(rhs))
            return self.U.solve(u1)
        elif trans == 'T':
            u1 = self._scale(self.U.solve(rhs, trans='T'))
            return self.L.solve(u1, trans='T')
        raise TypeError("Only N or T transposition is possible")


class GMRES(LinearSolver):
    r""" Restarted, right-preconditioned generalized minimal residual method

    Convergence is reached when :math:`\|\mathbf{r}\| \leq \max(\text{tol} \|\mathbf{b}\|, \text{atol})`. The iteration
    is stopped as diverged when :math:`\|\mathbf{r}\| > \text{dtol} \|\mathbf{b}\|`. In flexible mode (FGMRES) the
    preconditioned vectors are stored, so the preconditioner may change between iterations, as is the case for
    multigrid cycles with Krylov smoothers.

    References:
        Saad & Schultz (1986), GMRES: A generalized minimal residual algorithm for solving nonsymmetric linear systems.
          DOI 10.1137/0907058
        Saad (1993), A flexible inner-outer preconditioned GMRES algorithm. DOI 10.1137/0914028

    Args:
        A (optional): The matrix
        preconditioner (optional): Preconditioner to use, identity by default
        restart (optional): Size of the Krylov basis before restarting
        tol (optional): Relative convergence tolerance; ``None`` disables the convergence check, so exactly ``maxit``
          iterations are done (as used for smoothing)
        atol (optional): Absolute convergence tolerance
        dtol (optional): Relative divergence tolerance
        maxit (optional): Maximum number of iterations
        flexible (optional): Use the flexible variant
        warn (optional): Warn when the solution did not converge

    Attributes:
        niter: Number of iterations done in the last solve
        rnorm: Final (true) residual norm of the last solve
        bnorm: Norm of the last right-hand side
        converged: Convergence flag of the last solve
    """
    def __init__(self, A=None, preconditioner=None, restart=30, tol=1e-5, atol=1e-50, dtol=1e5, maxit=10000,
                 flexible=False, warn=True):
        if restart < 1 or maxit < 1:
            raise ValueError(f"restart ({restart}) and maxit ({maxit}) must be positive")
        self.preconditioner = Preconditioner() if preconditioner is None else preconditioner
        self.A = A
        self.restart = restart
        self.tol = tol
        self.atol = atol
        self.dtol = dtol
        self.maxit = maxit
        self.flexible = flexible
        self.warn = warn
        self.niter = 0
        self.rnorm = np.nan
        self.bnorm = np.nan
        self.converged = False
        super().__init__(A)

    def __repr__(self):
        name = 'FGMRES' if self.flexible else 'GMRES'
        return f"{name}(restart={self.restart}, tol={self.tol}, maxit={self.maxit}, " \
               f"preconditioner={type(self.preconditioner).__name__})"

    @property
    def relative_residual(self):
        """Relative residual norm of the last solve"""
        return self.rnorm / self.bnorm if self.bnorm > 0 else self.rnorm

    def update(self, A):
        tstart = time.perf_counter()
        self.A = A
        self.preconditioner.update(A)
        logger.debug("%s set up in %.3fs", type(self.preconditioner).__name__, time.perf_counter() - tstart)

    def solve(self, rhs, x0=None, trans='N'):
        A = self.get_operator(self.A, trans)
        if rhs.ndim == 2:
            cols = [self.solve(rhs[:, i], x0=None if x0 is None else x0[:, i], trans=trans)
                    for i in range(rhs.shape[1])]
            return np.stack(cols, axis=1)

        b = rhs
        n = b.size
        x = np.zeros(n, dtype=np.result_type(b, A.dtype)) if x0 is None else np.array(x0, dtype=float).ravel()
        self.niter = 0
        self.bnorm = np.linalg.norm(b)
        if self.bnorm == 0:
            self.rnorm, self.converged = 0.0, True
            return np.zeros_like(x)

        stop_tol = -np.inf if self.tol is None else max(self.tol * self.bnorm, self.atol)
        div_tol = self.dtol * self.bnorm
        r = b - A @ x
        self.rnorm = np.linalg.norm(r)
        self.converged = self.rnorm <= stop_tol or self.rnorm == 0
        diverged = False
        m = self.restart

        while not (self.converged or diverged) and self.niter < self.maxit:
            V = np.zeros((n, m + 1))
            Z = np.zeros((n, m)) if self.flexible else None
            H = np.zeros((m + 1, m))
            cs, sn = np.zeros(m), np.zeros(m)
            g = np.zeros(m + 1)
            g[0] = self.rnorm
            V[:, 0] = r / self.rnorm

            k = 0
            for j in range(m):
                z = self.preconditioner.solve(V[:, j], trans=trans)
                if self.flexible:
                    Z[:, j] = z
                w = A @ z
                wnorm = np.linalg.norm(w)

                # Modified Gram-Schmidt
                for i in range(j + 1):
                    H[i, j] = V[:, i] @ w
                    w -= H[i, j] * V[:, i]
                H[j + 1, j] = np.linalg.norm(w)
                breakdown = H[j + 1, j] <= 1e-14 * wnorm
                if not breakdown:
                    V[:, j + 1] = w / H[j + 1, j]

                # Apply previous Givens rotations to the new column
                for i in range(j):
                    tmp = cs[i] * H[i, j] + sn[i] * H[i + 1, j]
                    H[i + 1, j] = -sn[i] * H[i, j] + cs[i] * H[i + 1, j]
                    H[i, j] = tmp
                denom = np.hypot(H[j, j], H[j + 1, j])
                if denom == 0:
                    break
                cs[j], sn[j] = H[j, j] / denom, H[j + 1, j] / denom
                H[j, j], H[j + 1, j] = denom, 0.0
                g[j + 1] = -sn[j] * g[j]
                g[j] = cs[j] * g[j]

                k = j + 1
                self.niter += 1
                res = abs(g[j + 1])
                if breakdown or res <= stop_tol or res > div_tol or self.niter >= self.maxit:
                    break

            if k == 0:
                break

            y = solve_triangular(H[:k, :k], g[:k])
            if self.flexible:
                x += Z[:, :k] @ y
            else:
                x += self.preconditioner.solve(V[:, :k] @ y, trans=trans)

            # True residual at every restart
            r = b - A @ x
            self.rnorm = np.linalg.norm(r)
            self.converged = self.rnorm <= stop_tol or self.rnorm == 0
            diverged = self.rnorm > div_tol
            if breakdown and not self.converged:
                break

        if self.warn and self.tol is not None and not self.converged:
            reason = 'diverged' if diverged else f'did not converge in {self.niter} iterations'
            warnings.warn(f"{type(self).__name__} {reason}, with final relative residual {self.relative_residual}")
        logger.debug("%r: %i iterations, relative residual %.3e", self, self.niter, self.relative_residual)
        return x


def prolongation_1d(nc: int):
    """ Linear interpolation from ``nc`` coarse to ``2 nc`` fine elements along one axis

    Returns:
        Sparse matrix of size ``(2 nc + 1, nc + 1)``
    """
    fine = np.arange(2 * nc + 1)
    even = fine[::2]
    odd = fine[1::2]
    rows = np.concatenate([even, odd, odd])
    cols = np.concatenate([even // 2, (odd - 1) // 2, (odd + 1) // 2])
    vals = np.concatenate([np.ones(even.size), np.full(2 * odd.size, 0.5)])
    return sps.coo_matrix((vals, (rows, cols)), shape=(2 * nc + 1, nc + 1))


class GeometricMultigrid(Preconditioner):
    """ Geometric multigrid preconditioner, a single V-cycle per application

    The coarse operator is the Galerkin product :math:`R^T A R` with :math:`R` the (bi/tri)linear interpolation from
    the coarse to the fine grid.

    Args:
        grid: The `StructuredGrid` of this (fine) level
        A (optional): The matrix
        inner_level (optional): Inner solver for the coarse grid, for instance another multigrid level. The default is
            a GMRES solver with SOR preconditioning.
        smoother (optional): Smoother to use before and after coarse level. Either a `Preconditioner`, which is applied
            in ``smooth_steps`` Richardson iterations, or a `LinearSolver` which is started from the current iterate.
            The default is `DampedJacobi(w=0.5)`.
        smooth_steps (optional): Number of Richardson steps for a `Preconditioner` smoother
    """
    def __init__(self, grid: StructuredGrid, A=None, inner_level=None, smoother=None, smooth_steps=4):
        if not grid.can_coarsen():
            raise ValueError(f"Grid sizes {tuple(grid.size)} must be divisible by 2")
        self.grid = grid
        self.A = A
        self.inner_level = inner_level
        self.smoother = DampedJacobi(w=0.5) if smoother is None else smoother
        self.smooth_steps = smooth_steps
        self.R = None
        self.sub_grid = grid.coarsen()
        super().__init__(A)

    def update(self, A):
        if self.R is None:
            self.setup_interpolation()
        if A.shape[0] != self.grid.nnodes:
            raise ValueError(f"Matrix of size {A.shape} does not match the {self.grid.nnodes} nodes of the grid")
        self.A = A
        self.smoother.update(A)
        Ac = sps.csr_matrix(self.R.T @ A @ self.R)
        if self.inner_level is None:
            self.inner_level = GMRES(preconditioner=SOR(), restart=30, tol=1e-8, maxit=30, warn=False)
        self.inner_level.update(Ac)

    def setup_interpolation(self):
        """Interpolation operator of size ``(#fine nodes, #coarse nodes)``, as tensor product of 1D interpolations"""
        Px = prolongation_1d(self.sub_grid.nelx)
        Py = prolongation_1d(self.sub_grid.nely)
        R = sps.kron(Py, Px)
        if self.grid.dim == 3:
            R = sps.kron(prolongation_1d(self.sub_grid.nelz), R)
        self.R = sps.csr_matrix(R)

    def _smooth(self, A, rhs, u, trans):
        if isinstance(self.smoother, Preconditioner):
            u = np.zeros_like(rhs) if u is None else u.copy()
            for i in range(self.smooth_steps):
                u += self.smoother.solve(rhs - A @ u, trans=trans)
            return u
        return self.smoother.solve(rhs, x0=u, trans=trans)

    def solve(self, rhs, x0=None, trans='N'):
        A = self.get_operator(self.A, trans)

        # Pre-smoothing
        u_f = self._smooth(A, rhs, x0, trans)

        # Restrict residual to coarse level
        r_c = self.R.T @ (rhs - A @ u_f)

        # Solve at coarse level, interpolate and correct
        u_f = u_f + self.R @ self.inner_level.solve(r_c, trans=trans)

        # Post-smoothing
        return self._smooth(A, rhs, u_f, trans)
