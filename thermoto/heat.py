""" Linear steady-state heat conduction with SIMP interpolated conductivity """
import os
import time
import logging
import warnings

import numpy as np

from .assembly import AssembleConductivity, simp_interpolation
from .common.checkpoint import RestartFiles
from .common.domain import StructuredGrid
from .common.elements import element_for_dim
from .common.passive import PassiveRegions
from .common.scenarios import LoadScenario, scenario_for
from .solvers.configurator import SolverContext

logger = logging.getLogger(__name__)

PASSIVE_SENSITIVITY = 1e9


class LinearHeatConduction:
    r""" Thermal compliance and its sensitivities for a density field on a structured grid

    The conductivity of each element is interpolated as :math:`E_\text{min} + x^p (E_\text{max} - E_\text{min})`.
    The state :math:`\mathbf{K}(\mathbf{x}) \mathbf{u} = \mathbf{b}` is solved with multigrid-preconditioned FGMRES,
    after which the thermal compliance

    .. math::
        f = \sum_{e \in \text{design}} E(x_e) \mathbf{u}_e^\text{T} \mathbf{K}_e \mathbf{u}_e

    and volume constraint :math:`g = \frac{1}{n_\text{design}} \sum_{e \in \text{design}} x_e - V_\text{frac}` are
    evaluated, together with their derivatives with respect to the densities.

    Args:
        grid: The grid; the element size is taken from the first element
        passive (optional): Non-designable `PassiveRegions`
        nlvls (optional): Number of multigrid levels
        import_geometry (optional): Use the loads and constraints of the passive flags instead of the default patch
        scenario (optional): A custom `LoadScenario`, overrides ``import_geometry``
        restart (optional): Enable reading and writing of state checkpoints
        workdir (optional): Directory of the checkpoints
        restart_file (optional): Checkpoint to start the first solve from
        only_load_design (optional): Do not load the state from ``restart_file``
        reduced_integration (optional): Use single-point integration for the element matrix
        passive_sensitivity (optional): Magnitude of the sensitivity assigned to passive elements
        **solver_settings (optional): Settings passed to `SolverContext`
    """

    def __init__(self, grid: StructuredGrid, passive: PassiveRegions = None, nlvls: int = 4,
                 import_geometry: bool = False, scenario: LoadScenario = None, restart: bool = True,
                 workdir="./", restart_file=None, only_load_design: bool = False,
                 reduced_integration: bool = False, passive_sensitivity: float = PASSIVE_SENSITIVITY,
                 **solver_settings):
        self.passive = PassiveRegions.empty(grid.nel) if passive is None else passive
        if len(self.passive) != grid.nel:
            raise ValueError(f"Passive flags have size {len(self.passive)}, the grid has {grid.nel} elements")
        self.restart = restart
        self.restart_file = restart_file
        self.only_load_design = only_load_design
        self.restart_files = RestartFiles(workdir)
        self.passive_sensitivity = passive_sensitivity

        self._grid = self.set_up_grid(grid)
        element = element_for_dim(self._grid.dim)
        xe = self._grid.element_coordinates(0)
        self._KE = element.conductivity_matrix(xe - xe[0], reduced=reduced_integration)

        self.scenario = scenario_for(import_geometry) if scenario is None else scenario
        self._N, self._RHS = self.scenario.apply(self._grid, self.passive)
        self.assembler = AssembleConductivity(self._grid, self._KE, mask=self._N)

        self._solver = SolverContext(self._grid, nlvls=nlvls, **solver_settings)
        self._U = np.zeros(self._grid.nnodes)
        self._K = None

    @staticmethod
    def set_up_grid(grid: StructuredGrid):
        """ Uniform copy of the grid with the element size measured from its first element """
        with grid.coordinates() as xyz:
            xe = xyz[grid.conn[0]]
        h = [xe[1, 0] - xe[0, 0], xe[2, 1] - xe[1, 1]]
        if grid.dim == 3:
            h.append(xe[4, 2] - xe[0, 2])
        if np.any(np.asarray(h) <= 0):
            raise ValueError(f"Element size must be positive, got {h}")
        new = StructuredGrid(grid.nelx, grid.nely, grid.nelz, *h, origin=grid.origin[:grid.dim])
        logger.debug("Grid set up: %s, extent %s", new, new.extent)
        return new

    @property
    def grid(self):
        return self._grid

    @property
    def U(self):
        return self._U

    @property
    def RHS(self):
        return self._RHS

    @property
    def N(self):
        return self._N

    @property
    def K(self):
        return self._K

    @property
    def KE(self):
        return self._KE

    @property
    def solver(self):
        return self._solver

    @property
    def element_size(self):
        return self._grid.element_size[: self._grid.dim]

    @property
    def extent(self):
        return self._grid.extent

    def _check_density(self, x):
        x = np.asarray(x, dtype=float).ravel()
        if x.size != self._grid.nel:
            raise ValueError(f"Density vector has size {x.size}, expected {self._grid.nel}")
        return x

    def solve(self, x, Emin, Emax, penal):
        """ Assemble and solve the state equation for the given densities

        Returns:
            The nodal temperatures ``U``
        """
        t1 = time.perf_counter()
        x = self._check_density(x)
        self._K = self.assembler(simp_interpolation(x, Emin, Emax, penal))
        self._RHS = self.assembler.mask_rhs(self._RHS)

        first = not self._solver.configured
        self._solver.bind(self._K)
        if first:
            self._load_restart()

        self._U = self._solver.solve(self._RHS, x0=self._U)
        t2 = time.perf_counter()
        logger.info("State solver:  iter: %i, rerr.: %e, time: %f",
                    self._solver.niter, self._solver.relative_residual, t2 - t1)
        return self._U

    solve_state = solve

    def evaluate(self, x, Emin, Emax, penal, volfrac, passive: PassiveRegions = None):
        """ Thermal compliance, volume constraint and their sensitivities

        Args:
            x: Element densities
            Emin: Minimum conductivity
            Emax: Maximum conductivity
            penal: SIMP penalization power
            volfrac: Allowed volume fraction of the designable elements
            passive (optional): Passive regions, by default the ones given at construction

        Returns:
            Tuple ``(f, dfdx, g, dgdx)``
        """
        passive = self.passive if passive is None else passive
        x = self._check_density(x)
        if len(passive) != x.size:
            raise ValueError(f"Passive flags have size {len(passive)}, expected {x.size}")
        ndes = passive.n_designable
        if ndes == 0:
            raise ValueError("There are no designable elements")

        self.solve(x, Emin, Emax, penal)

        ue = self._U[self._grid.conn]
        uKu = np.einsum('ei,ij,ej->e', ue, self._KE, ue)
        des = passive.designable

        f = float(np.sum(simp_interpolation(x[des], Emin, Emax, penal) * uKu[des]))

        dfdx = np.zeros_like(x)
        dfdx[des] = -penal * x[des]**(penal - 1) * (Emax - Emin) * uKu[des]
        dfdx[passive.solid] = self.passive_sensitivity
        dfdx[passive.fixed | passive.loaded] = -self.passive_sensitivity

        logger.info("non designable volume: %f", passive.n_nondesign)
        vol = float(np.sum(x[des]))
        logger.info("volume: %f", vol)
        g = vol / ndes - volfrac
        dgdx = np.where(des, 1.0 / ndes, 0.0)
        return f, dfdx, g, dgdx

    def checkpoint(self):
        """ Write the current state to the next restart file

        Returns:
            The path written, or ``None`` if restarting is disabled
        """
        if not self.restart:
            warnings.warn("Restart is disabled, no checkpoint is written")
            return None
        return self.restart_files.write(self._U)

    def restore(self, path=None):
        """ Load the state from a restart file, by default the one written last """
        path = self.restart_files.last_written if path is None else path
        if path is None:
            raise ValueError("No checkpoint has been written yet, provide a path")
        self._U = RestartFiles.read(path, size=self._grid.nnodes)
        logger.info("State restored from %s", path)
        return self._U

    def _load_restart(self):
        if not self.restart or self.only_load_design:
            return
        if self.restart_file is None:
            logger.info("No restart file given, starting from zero temperature")
            return
        logger.info("# Restarting with solution (State Vector) from (restart_file): %s", self.restart_file)
        if not os.path.isfile(self.restart_file):
            warnings.warn(f"Restart file {self.restart_file} NOT FOUND, starting from zero temperature")
            return
        self.restore(self.restart_file)
