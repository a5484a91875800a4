from contextlib import contextmanager
from typing import Union, Iterable

from numpy.typing import NDArray
import numpy as np


IndexType = Union[int, Iterable[int], NDArray[np.integer]]


class StructuredGrid:
    r""" Structured, axis-aligned grid of bilinear (2D) or trilinear (3D) elements with one temperature dof per node

    Nodal numbering within each element is given below. The first node is in the lower-left (front) corner, the next
    ones follow counterclockwise in the x-y plane. In 3D the same ordering is repeated in the plane at +z.

    Quadrangle in 2D

    ::

              ^
              | y
        3 -------- 2
        |     |    |   x
        |      --- | ---->
        |          |
        0 -------- 1


    Hexahedron in 3D

    ::

               y
        3----------2
        |\     ^   |\
        | \    |   | \
        |  \   |   |  \
        |   7------+---6
        |   |  +-- |-- | -> x
        0---+---\--1   |
         \  |    \  \  |
          \ |     \  \ |
           \|      z  \|
            4----------5

    Attributes:
        dim : Dimensionality of the grid (2 or 3)
        nel : Total number of elements
        nnodes : Total number of nodes
        elemnodes : Number of nodes per element
        node_numbering : Corner signs (-1 / +1) of each local element node
        conn : Connectivity matrix of size (# elements, # nodes per element)
        elements : Helper array for element slicing of size (nelx, nely, nelz)
        nodes : Helper array for node slicing of size (nelx+1, nely+1, nelz+1)
    """

    def __init__(self, nelx: int, nely: int, nelz: int = 0, unitx: float = 1.0, unity: float = 1.0,
                 unitz: float = 1.0, origin=None):
        """Create a 2D or 3D structured grid

        Args:
            nelx (int): Number of elements in x-direction
            nely (int): Number of elements in y-direction
            nelz (int, optional): Number of elements in z-direction; if zero it is a 2D grid. Defaults to 0.
            unitx (float, optional): Element size in x-direction. Defaults to 1.0.
            unity (float, optional): Element size in y-direction. Defaults to 1.0.
            unitz (float, optional): Element size in z-direction. Defaults to 1.0.
            origin (optional): Coordinates of node 0. Defaults to zero.
        """
        if nelz is None:
            nelz = 0
        if nelx < 1 or nely < 1 or nelz < 0:
            raise ValueError(f"Invalid number of elements ({nelx}, {nely}, {nelz})")
        self.nelx, self.nely, self.nelz = int(nelx), int(nely), int(nelz)
        self.dim = 2 if self.nelz == 0 else 3

        self.origin = np.zeros(3)
        if origin is not None:
            self.origin[:len(origin)] = origin
        self.unitx, self.unity, self.unitz = unitx, unity, unitz

        if np.prod(self.element_size[: self.dim]) <= 0.0:
            raise ValueError("Element volume needs to be positive")

        self.nel = self.nelx * self.nely * max(self.nelz, 1)
        self.nnodes = (self.nelx + 1) * (self.nely + 1) * (self.nelz + 1)
        self.elemnodes = 2**self.dim

        # Counterclockwise in the x-y plane, then repeated at +z
        self.node_numbering = [[-1, -1, -1], [+1, -1, -1], [+1, +1, -1], [-1, +1, -1]]
        if self.dim == 3:
            self.node_numbering += [[-1, -1, +1], [+1, -1, +1], [+1, +1, +1], [-1, +1, +1]]

        # Element numbers with x varying fastest
        eli, elj, elk = np.meshgrid(
            np.arange(self.nelx), np.arange(self.nely), np.arange(max(self.nelz, 1)), indexing="ij"
        )
        self.elements = self.get_elemnumber(eli, elj, elk)

        el = self.elements.ravel()
        self.conn = np.zeros((self.nel, self.elemnodes), dtype=int)
        self.conn[el, :] = self.get_elemconnectivity(eli.ravel(), elj.ravel(), elk.ravel())

        ndi, ndj, ndk = np.meshgrid(
            np.arange(self.nelx + 1), np.arange(self.nely + 1), np.arange(self.nelz + 1), indexing="ij"
        )
        self.nodes = self.get_nodenumber(ndi, ndj, ndk)

    def __repr__(self):
        size = " x ".join(str(n) for n in self.size)
        return f"{type(self).__name__}({size} elements, h={self.element_size[:self.dim]})"

    @property
    def element_size(self):
        """Element size in each direction"""
        return np.array([self.unitx, self.unity, self.unitz], dtype=float)

    @property
    def domain_size(self):
        """Domain size in each direction"""
        return (self.size * self.element_size[: self.dim]).astype(float)

    @property
    def size(self):
        """Number of elements in each direction"""
        return np.array([self.nelx, self.nely, self.nelz])[: self.dim]

    @property
    def extent(self):
        """Bounding box ``[xmin, xmax, ymin, ymax(, zmin, zmax)]`` of the grid"""
        lo = self.origin[: self.dim]
        hi = lo + self.domain_size
        return np.stack([lo, hi], axis=-1).ravel()

    def get_elemnumber(self, eli: IndexType, elj: IndexType, elk: IndexType = 0):
        """Gets the element number(s) for element(s) with given Cartesian indices (i, j, k)

        Args:
            eli : Ith element in the x-direction; can be integer or array
            elj : Jth element in the y-direction; can be integer or array
            elk : Kth element in the z-direction; can be integer or array

        Returns:
            The element number(s) corresponding to selected indices
        """
        return (elk * self.nely + elj) * self.nelx + eli

    def get_nodenumber(self, nodi: IndexType, nodj: IndexType, nodk: IndexType = 0):
        """Gets the node number(s) for nodes with given Cartesian indices (i, j, k)

        Args:
            nodi : Ith node in the x-direction; can be integer or array
            nodj : Jth node in the y-direction; can be integer or array
            nodk : Kth node in the z-direction; can be integer or array

        Returns:
            The node number(s) corresponding to selected indices
        """
        return (nodk * (self.nely + 1) + nodj) * (self.nelx + 1) + nodi

    def get_node_indices(self, nod_idx: IndexType = None):
        """Gets the Cartesian index (i, j, k) for given node number(s)

        Args:
            nod_idx: Node index; can be integer or array

        Returns:
            i, j, k for requested node(s); k is only returned in 3D
        """
        if nod_idx is None:
            nod_idx = np.arange(self.nnodes)
        nodi = nod_idx % (self.nelx + 1)
        nodj = (nod_idx // (self.nelx + 1)) % (self.nely + 1)
        if self.dim == 2:
            return np.stack([nodi, nodj], axis=0)
        nodk = nod_idx // ((self.nelx + 1) * (self.nely + 1))
        return np.stack([nodi, nodj, nodk], axis=0)

    def get_node_position(self, nod_idx: IndexType = None):
        """Physical coordinates of the node(s), of shape ``(dim, ...)``"""
        ijk = self.get_node_indices(nod_idx)
        return (self.element_size[: self.dim] * ijk.T + self.origin[: self.dim]).T

    def get_elemconnectivity(self, i: IndexType, j: IndexType, k: IndexType = 0):
        """Get the connectivity for element identified with Cartesian indices (i, j, k)

        Args:
            i: Ith element in the x-direction; can be integer or array
            j: Jth element in the y-direction; can be integer or array
            k: Kth element in the z-direction; can be integer or array

        Returns:
            The node numbers corresponding to selected elements of size (# selected elements, # nodes per element)
        """
        nods = [self.get_nodenumber(i + max(n[0], 0), j + max(n[1], 0), k + max(n[2], 0)) for n in self.node_numbering]
        return np.stack(nods, axis=-1)

    def element_coordinates(self, el: int = 0):
        """Nodal coordinates of a single element as array of size ``(#nodes per element, dim)``"""
        return self.get_node_position(self.conn[el]).T

    def element_centroids(self):
        """Centroid coordinates of all elements, size ``(nel, dim)``"""
        with self.coordinates() as xyz:
            return xyz[self.conn].mean(axis=1)

    @contextmanager
    def coordinates(self):
        """Read-only view of all nodal coordinates of size ``(nnodes, dim)``

        The view is only meant to be used inside the ``with`` block.
        """
        xyz = self.get_node_position().T
        xyz.flags.writeable = False
        yield xyz

    def set_uniform_coordinates(self, extent):
        """Re-distribute the nodes uniformly over the given bounding box

        Args:
            extent: ``[xmin, xmax, ymin, ymax(, zmin, zmax)]``
        """
        extent = np.asarray(extent, dtype=float).reshape(-1, 2)
        if extent.shape[0] < self.dim:
            raise ValueError(f"Extent must contain bounds for {self.dim} dimensions")
        lo, hi = extent[: self.dim, 0], extent[: self.dim, 1]
        h = (hi - lo) / self.size
        if np.any(h <= 0):
            raise ValueError(f"Invalid extent {extent.ravel()}")
        self.origin[: self.dim] = lo
        self.unitx, self.unity = h[0], h[1]
        if self.dim == 3:
            self.unitz = h[2]
        return self

    def can_coarsen(self):
        """Checks if the grid can be coarsened by a factor of two in each direction"""
        return bool(np.all(self.size % 2 == 0))

    def coarsen(self):
        """Create a grid with half the number of elements in each direction, covering the same extent"""
        if not self.can_coarsen():
            raise ValueError(f"Grid sizes {tuple(self.size)} must be divisible by 2")
        coarse = StructuredGrid(self.nelx // 2, self.nely // 2, self.nelz // 2,
                                self.unitx * 2, self.unity * 2, self.unitz * 2)
        return coarse.set_uniform_coordinates(self.extent)

    def coarsen_hierarchy(self, nlevels: int):
        """Successively coarsen the grid

        Args:
            nlevels: Number of coarsening steps

        Returns:
            List of ``nlevels + 1`` grids, starting with this (finest) grid and ending with the coarsest
        """
        grids = [self]
        for _ in range(nlevels):
            grids.append(grids[-1].coarsen())
        return grids

    def max_coarsening(self):
        """Maximum number of times this grid can be coarsened"""
        n, g = 0, self.size.copy()
        while np.all(g % 2 == 0) and np.all(g > 0):
            g //= 2
            n += 1
        return n
