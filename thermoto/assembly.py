""" Assembly of the global conductivity matrix """
import numpy as np
import scipy.sparse as sps

from .common.domain import StructuredGrid


def simp_interpolation(x, Emin, Emax, penal):
    r""" SIMP material interpolation :math:`E_\text{min} + x^p (E_\text{max} - E_\text{min})` """
    return Emin + np.asarray(x, dtype=float)**penal * (Emax - Emin)


class AssembleConductivity:
    r""" Assembles the global conductivity matrix from a scaled, shared element matrix

    :math:`\mathbf{K} = \sum_e s_e \mathbf{K}_e`

    The sparsity pattern and the position of each element entry in the CSR data array are computed once, every call
    only sums the scaled element entries.

    When a Dirichlet mask :math:`\mathbf{N}` is given (1.0 on free, 0.0 on fixed nodes), the constrained rows and
    columns are replaced by the identity

    :math:`\mathbf{K} \leftarrow \text{diag}(\mathbf{N}) \mathbf{K} \text{diag}(\mathbf{N}) + \text{diag}(1-\mathbf{N})`

    Args:
        grid: The grid
        element_matrix: Element matrix of size ``(#nodes per element, #nodes per element)``
        mask (optional): Dirichlet mask of size ``(nnodes)``
    """
    def __init__(self, grid: StructuredGrid, element_matrix, mask=None):
        self.grid = grid
        self.elmat = np.asarray(element_matrix, dtype=float)
        nen = grid.elemnodes
        if self.elmat.shape != (nen, nen):
            raise ValueError(f"Element matrix must be of shape {(nen, nen)}, got {self.elmat.shape}")
        self.n = grid.nnodes
        self.nel = grid.nel

        if mask is not None:
            mask = np.asarray(mask, dtype=float).ravel()
            if mask.size != self.n:
                raise ValueError(f"Dirichlet mask has size {mask.size}, expected {self.n}")
        self.mask = mask

        # Global row/column of each entry of the (row-major) element matrices
        rows = np.repeat(grid.conn, nen, axis=1).ravel().astype(np.int64)
        cols = np.tile(grid.conn, (1, nen)).ravel().astype(np.int64)
        keys = rows * self.n + cols
        pattern = np.unique(keys)  # Sorted by row, then column

        self.datamap = np.searchsorted(pattern, keys)
        self.indices = pattern % self.n
        self.indptr = np.zeros(self.n + 1, dtype=np.int64)
        np.cumsum(np.bincount(pattern // self.n, minlength=self.n), out=self.indptr[1:])

    @property
    def nnz(self):
        return self.indices.size

    def __call__(self, scaling):
        """ Assemble the matrix for given element scaling factors (e.g. the interpolated conductivity)

        Args:
            scaling: Scaling per element of size ``(nel)``

        Returns:
            CSR matrix of size ``(nnodes, nnodes)``
        """
        scaling = np.asarray(scaling, dtype=float).ravel()
        if scaling.size != self.nel:
            raise ValueError(f"Scaling has size {scaling.size}, expected {self.nel}")
        values = (scaling[:, None] * self.elmat.ravel()[None, :]).ravel()
        data = np.bincount(self.datamap, weights=values, minlength=self.nnz)
        K = sps.csr_matrix((data, self.indices, self.indptr), shape=(self.n, self.n))
        return K if self.mask is None else self.apply_dirichlet(K)

    def apply_dirichlet(self, K):
        """Replace the rows and columns of fixed nodes with the identity"""
        Nd = sps.diags(self.mask)
        return sps.csr_matrix(Nd @ K @ Nd + sps.diags(1.0 - self.mask))

    def mask_rhs(self, rhs):
        """Zero the entries of fixed nodes, returns a new vector"""
        rhs = np.asarray(rhs, dtype=float)
        if rhs.shape[0] != self.n:
            raise ValueError(f"Right-hand side has size {rhs.shape[0]}, expected {self.n}")
        return rhs.copy() if self.mask is None else (rhs.T * self.mask).T
