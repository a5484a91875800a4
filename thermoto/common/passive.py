import numpy as np

from .domain import StructuredGrid


class PassiveRegions:
    """ Element flags marking the non-designable regions

    Attributes:
        solid: Elements forced to be full material (flag 0)
        fixed: Elements carrying the temperature constraint, excluded from the design (flag 1)
        loaded: Elements carrying the load, excluded from the design (flag 2)
    """

    def __init__(self, solid, fixed, loaded):
        flags = [np.asarray(v).ravel() != 0 for v in (solid, fixed, loaded)]
        if not (flags[0].size == flags[1].size == flags[2].size):
            raise ValueError(f"Passive flags must have equal sizes, got {[f.size for f in flags]}")
        self.solid, self.fixed, self.loaded = flags
        overlap = np.logical_and(self.solid, np.logical_or(self.fixed, self.loaded))
        if np.any(overlap):
            raise ValueError(f"{np.count_nonzero(overlap)} element(s) are marked both solid and fixed/loaded")

    @classmethod
    def empty(cls, nel: int):
        """No passive elements at all"""
        z = np.zeros(nel, dtype=bool)
        return cls(z, z, z)

    @classmethod
    def from_boxes(cls, grid: StructuredGrid, solid=None, fixed=None, loaded=None):
        """ Flag elements whose centroid lies inside one or more axis-aligned boxes

        Each box is given as ``[xmin, xmax, ymin, ymax(, zmin, zmax)]``; multiple boxes are passed as a list.
        """
        centroids = grid.element_centroids()

        def select(boxes):
            sel = np.zeros(grid.nel, dtype=bool)
            if boxes is None:
                return sel
            boxes = np.atleast_2d(np.asarray(boxes, dtype=float))
            for box in boxes:
                lims = box.reshape(-1, 2)[: grid.dim]
                sel |= np.all((centroids >= lims[:, 0]) & (centroids <= lims[:, 1]), axis=1)
            return sel

        return cls(select(solid), select(fixed), select(loaded))

    def __len__(self):
        return self.solid.size

    @property
    def designable(self):
        """Elements with none of the flags set"""
        return ~(self.solid | self.fixed | self.loaded)

    @property
    def n_designable(self):
        return int(np.count_nonzero(self.designable))

    @property
    def n_nondesign(self):
        return len(self) - self.n_designable
