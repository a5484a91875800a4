"""Load and boundary-condition set-ups

A scenario fills the Dirichlet mask ``N`` (1.0 on free nodes, 0.0 on fixed nodes) and the heat load vector of a grid.
"""
import logging
from abc import ABC, abstractmethod

import numpy as np

from .domain import StructuredGrid
from .passive import PassiveRegions

logger = logging.getLogger(__name__)


class LoadScenario(ABC):
    """ Abstract load and boundary-condition strategy

    Args:
        load_intensity (optional): Heat source intensity
    """

    def __init__(self, load_intensity: float = 0.001):
        self.load_intensity = load_intensity

    def __repr__(self):
        return f"{type(self).__name__}(load_intensity={self.load_intensity})"

    @staticmethod
    def tolerance(grid: StructuredGrid):
        """Distance for coordinate matching, 5% of the smallest element edge"""
        return 0.05 * np.min(grid.element_size[: grid.dim])

    def apply(self, grid: StructuredGrid, passive: PassiveRegions):
        """ Build the Dirichlet mask and load vector

        Returns:
            Tuple ``(N, rhs)`` of nodal vectors
        """
        if len(passive) != grid.nel:
            raise ValueError(f"Passive flags have size {len(passive)}, the grid has {grid.nel} elements")
        N = np.ones(grid.nnodes)
        rhs = np.zeros(grid.nnodes)
        self._fill(grid, passive, N, rhs)
        logger.debug("%s: %i fixed nodes, total load %.6e", self, np.count_nonzero(N == 0), rhs.sum())
        return N, rhs

    @abstractmethod
    def _fill(self, grid: StructuredGrid, passive: PassiveRegions, N: np.ndarray, rhs: np.ndarray):
        pass


class ClampedPatch(LoadScenario):
    """ Patch at the center of the ``y = ymin`` face is held at zero temperature; uniform body load everywhere

    In 2D the patch spans 3/8 to 5/8 of the x-extent, in 3D also 3/8 to 5/8 of the z-extent.
    """

    def _fill(self, grid, passive, N, rhs):
        epsi = self.tolerance(grid)
        ext = grid.extent.reshape(-1, 2)
        with grid.coordinates() as xyz:
            sel = np.abs(xyz[:, 1] - ext[1, 0]) < epsi
            for d in ([0] if grid.dim == 2 else [0, 2]):
                lo, hi = ext[d]
                sel &= (xyz[:, d] >= lo + (hi - lo) / 8 * 3) & (xyz[:, d] <= lo + (hi - lo) / 8 * 5)
        N[sel] = 0.0

        # Body load: each element spreads its share evenly over its nodes
        np.add.at(rhs, grid.conn, self.load_intensity / grid.elemnodes)


class ImportedGeometry(LoadScenario):
    """ Loads and constraints follow the passive element flags

    Each element outside the solid region puts the load intensity on all of its nodes, and all nodes of elements in
    the fixed region are held at zero temperature.
    """

    def _fill(self, grid, passive, N, rhs):
        np.add.at(rhs, grid.conn[~passive.solid], self.load_intensity)
        N[grid.conn[passive.fixed].ravel()] = 0.0


def scenario_for(import_geometry: bool, **kwargs) -> LoadScenario:
    """Default scenario, or the one driven by imported geometry flags"""
    return ImportedGeometry(**kwargs) if import_geometry else ClampedPatch(**kwargs)
