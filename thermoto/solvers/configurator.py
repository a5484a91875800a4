import logging
import warnings

import numpy as np

from ..common.domain import StructuredGrid
from .iterative import GMRES, SOR, GeometricMultigrid

logger = logging.getLogger(__name__)


class SolverContext:
    """ Multigrid-preconditioned FGMRES solver for a grid, configured on first use

    The grid hierarchy has ``nlvls`` levels, level 0 being the coarsest. The coarsest level is solved by SOR
    preconditioned GMRES, every finer level does one V-cycle with SOR-preconditioned GMRES smoothers, using Galerkin
    coarse operators. The finest level is the preconditioner of the main (flexible) GMRES solver.

    Args:
        grid: The (finest) grid
        nlvls (optional): Number of multigrid levels
        restart (optional): Restart size of the main solver
        rtol (optional): Relative tolerance of the main solver
        atol (optional): Absolute tolerance of the main solver
        dtol (optional): Divergence tolerance of the main solver
        maxit (optional): Maximum iterations of the main solver
        coarse_restart (optional): Restart size of the coarse level solver
        coarse_rtol (optional): Relative tolerance of the coarse level solver
        coarse_atol (optional): Absolute tolerance of the coarse level solver
        coarse_dtol (optional): Divergence tolerance of the coarse level solver
        coarse_maxit (optional): Maximum iterations of the coarse level solver
        smooth_sweeps (optional): Number of GMRES iterations per smoothing step
        sor_omega (optional): Relaxation factor of the SOR preconditioners
    """
    default_levels = 4

    def __init__(self, grid: StructuredGrid, nlvls: int = 4, restart=100, rtol=1e-5, atol=1e-50, dtol=1e5, maxit=200,
                 coarse_restart=30, coarse_rtol=1e-8, coarse_atol=1e-50, coarse_dtol=1e5, coarse_maxit=30,
                 smooth_sweeps=4, sor_omega=1.0):
        self.grid = grid
        self.nlvls = self._check_levels(grid, nlvls)
        self.restart, self.rtol, self.atol, self.dtol, self.maxit = restart, rtol, atol, dtol, maxit
        self.coarse_restart, self.coarse_rtol = coarse_restart, coarse_rtol
        self.coarse_atol, self.coarse_dtol, self.coarse_maxit = coarse_atol, coarse_dtol, coarse_maxit
        self.smooth_sweeps = smooth_sweeps
        self.sor_omega = sor_omega

        self.solver = None
        self.grids = None
        self.levels = None

    @classmethod
    def _check_levels(cls, grid, nlvls):
        if nlvls is None or nlvls < 1:
            warnings.warn(f"Invalid number of multigrid levels ({nlvls}), using {cls.default_levels}")
            nlvls = cls.default_levels
        nmax = grid.max_coarsening() + 1
        if nlvls > nmax:
            warnings.warn(f"Grid of {tuple(grid.size)} elements supports at most {nmax} multigrid levels, "
                          f"reducing from {nlvls}")
            nlvls = nmax
        return int(nlvls)

    @property
    def configured(self):
        return self.solver is not None

    @property
    def niter(self):
        return 0 if self.solver is None else self.solver.niter

    @property
    def relative_residual(self):
        return np.nan if self.solver is None else self.solver.relative_residual

    def configure(self):
        """Build the grid hierarchy and the nested solvers"""
        # Coarsened from finest to coarsest, levels are numbered the other way around
        self.grids = self.grid.coarsen_hierarchy(self.nlvls - 1)[::-1]
        for g in self.grids:
            g.set_uniform_coordinates(self.grid.extent)

        coarse = GMRES(preconditioner=SOR(w=self.sor_omega), restart=self.coarse_restart, tol=self.coarse_rtol,
                       atol=self.coarse_atol, dtol=self.coarse_dtol, maxit=self.coarse_maxit, warn=False)
        self.levels = [coarse]
        for g in self.grids[1:]:
            smoother = GMRES(preconditioner=SOR(w=self.sor_omega), restart=self.smooth_sweeps, tol=None,
                             maxit=self.smooth_sweeps, warn=False)
            self.levels.append(GeometricMultigrid(g, inner_level=self.levels[-1], smoother=smoother))

        self.solver = GMRES(preconditioner=self.levels[-1], restart=self.restart, tol=self.rtol, atol=self.atol,
                            dtol=self.dtol, maxit=self.maxit, flexible=True)
        return self.solver

    def bind(self, K):
        """ Set the operator, configuring the solvers when called for the first time

        Later calls only replace the operator, which refreshes the coarse operators and smoothers.
        """
        first = not self.configured
        if first:
            self.configure()
        self.solver.update(K)
        if first:
            self.log_settings()
        return self.solver

    def solve(self, rhs, x0=None):
        if not self.configured:
            raise RuntimeError("No operator bound to the solver, call bind() first")
        return self.solver.solve(rhs, x0=x0)

    def log_settings(self):
        logger.info("##############################################################")
        logger.info("################# Linear solver settings #####################")
        logger.info("# Main solver: FGMRES, prec.: multigrid, restart: %i, maxiter.: %i, rtol: %.1e, atol: %.1e, "
                    "dtol: %.1e", self.restart, self.maxit, self.rtol, self.atol, self.dtol)
        logger.info("# Multigrid levels: %i, Galerkin coarse operators", self.nlvls)
        for k, g in enumerate(self.grids):
            if k == 0:
                logger.info("# Level %i %s: GMRES, prec.: SOR, restart: %i, maxiter.: %i, rtol: %.1e",
                            k, tuple(g.size), self.coarse_restart, self.coarse_maxit, self.coarse_rtol)
            else:
                logger.info("# Level %i %s smoother: GMRES, prec.: SOR, sweeps: %i",
                            k, tuple(g.size), self.smooth_sweeps)
        logger.info("##############################################################")
