import unittest
import pytest
import numpy as np
import numpy.testing as npt
import scipy.sparse as sps
from scipy.sparse.linalg import spsolve
import thermoto as tm


def dense_reference(grid, KE, scaling, mask=None):
    """ Straightforward element-by-element assembly """
    K = np.zeros((grid.nnodes, grid.nnodes))
    for el in range(grid.nel):
        idx = grid.conn[el]
        K[np.ix_(idx, idx)] += scaling[el] * KE
    if mask is not None:
        K = np.diag(mask) @ K @ np.diag(mask) + np.diag(1 - mask)
    return K


class TestAssembleConductivity(unittest.TestCase):
    def test_single_element_free_block(self):
        grid = tm.StructuredGrid(1, 1)
        KE = tm.Quad4().conductivity_matrix(grid.element_coordinates(0))
        idx = grid.conn[0]
        mask = np.ones(grid.nnodes)
        mask[idx[0]] = 0.0
        K = tm.AssembleConductivity(grid, KE, mask=mask)(np.array([2.5])).toarray()

        unit = np.zeros(grid.nnodes)
        unit[idx[0]] = 1.0
        npt.assert_allclose(K[idx[0]], unit)
        npt.assert_allclose(K[:, idx[0]], unit)
        # Free block in global numbering equals the local block in element order
        npt.assert_allclose(K[np.ix_(idx[1:], idx[1:])], 2.5 * KE[1:, 1:])
        npt.assert_equal(idx, [0, 1, 3, 2])

    def test_against_dense_2d(self):
        grid = tm.StructuredGrid(3, 2, unitx=0.5, unity=0.25)
        KE = tm.Quad4().conductivity_matrix(grid.element_coordinates(0))
        scaling = np.random.default_rng(0).random(grid.nel)
        K = tm.AssembleConductivity(grid, KE)(scaling)
        assert sps.isspmatrix_csr(K)
        npt.assert_allclose(K.toarray(), dense_reference(grid, KE, scaling), atol=1e-14)

    def test_against_dense_3d_masked(self):
        grid = tm.StructuredGrid(2, 3, 2)
        KE = tm.Hex8().conductivity_matrix(grid.element_coordinates(0))
        rng = np.random.default_rng(1)
        scaling = rng.random(grid.nel)
        mask = (rng.random(grid.nnodes) > 0.3).astype(float)
        K = tm.AssembleConductivity(grid, KE, mask=mask)(scaling)
        npt.assert_allclose(K.toarray(), dense_reference(grid, KE, scaling, mask), atol=1e-14)

    def test_sparsity_pattern(self):
        grid = tm.StructuredGrid(4, 3)
        KE = tm.Quad4().conductivity_matrix(grid.element_coordinates(0))
        m = tm.AssembleConductivity(grid, KE)
        # Each node couples to its (at most 9) neighbours
        nx, ny = grid.nelx + 1, grid.nely + 1
        nnz_expected = (3 * nx - 2) * (3 * ny - 2)
        assert m.nnz == nnz_expected
        K = m(np.ones(grid.nel))
        K.sort_indices()
        npt.assert_equal(K.indices, m.indices)

    def test_reassembly_from_zero(self):
        grid = tm.StructuredGrid(2, 2)
        KE = tm.Quad4().conductivity_matrix(grid.element_coordinates(0))
        m = tm.AssembleConductivity(grid, KE)
        K1 = m(np.ones(grid.nel))
        m(3 * np.ones(grid.nel))
        K2 = m(np.ones(grid.nel))
        npt.assert_allclose(K1.toarray(), K2.toarray())

    def test_wrong_sizes(self):
        grid = tm.StructuredGrid(2, 2)
        KE = tm.Quad4().conductivity_matrix(grid.element_coordinates(0))
        with self.assertRaises(ValueError):
            tm.AssembleConductivity(grid, np.eye(8))
        with self.assertRaises(ValueError):
            tm.AssembleConductivity(grid, KE, mask=np.ones(4))
        m = tm.AssembleConductivity(grid, KE)
        with self.assertRaises(ValueError):
            m(np.ones(3))
        with self.assertRaises(ValueError):
            m.mask_rhs(np.ones(3))

    def test_mask_rhs(self):
        grid = tm.StructuredGrid(1, 1)
        KE = tm.Quad4().conductivity_matrix(grid.element_coordinates(0))
        mask = np.array([0.0, 1.0, 0.0, 1.0])
        m = tm.AssembleConductivity(grid, KE, mask=mask)
        rhs = np.arange(1.0, 5.0)
        npt.assert_allclose(m.mask_rhs(rhs), [0.0, 2.0, 0.0, 4.0])
        npt.assert_allclose(rhs, [1.0, 2.0, 3.0, 4.0])  # Not modified

    def test_heat_conduction_through_wall(self):
        Lx, Ly = 2.0, 3.0
        grid = tm.StructuredGrid(4, 1, unitx=Lx/4, unity=Ly)
        nodidx_left = grid.get_nodenumber(0, np.arange(grid.nely + 1))
        nodidx_right = grid.get_nodenumber(grid.nelx, np.arange(grid.nely + 1))
        mask = np.ones(grid.nnodes)
        mask[nodidx_left] = 0.0
        kt = 1.5

        KE = tm.Quad4().conductivity_matrix(grid.element_coordinates(0))
        K = tm.AssembleConductivity(grid, KE, mask=mask)(kt * np.ones(grid.nel))

        q = np.zeros(grid.nnodes)
        Q = 1.0
        q[nodidx_right] = Q / nodidx_right.size

        # 1D heat conduction through wall Q = -k A (dT/dx)
        T = spsolve(K.tocsc(), q)
        npt.assert_allclose(T[nodidx_right], Q * Lx / (kt * Ly))
        npt.assert_allclose(T[nodidx_left], 0.0)


@pytest.mark.parametrize("x", [0.0, 0.5, 1.0])
@pytest.mark.parametrize("penal", [1.0, 3.0])
def test_simp_interpolation(x, penal):
    Emin, Emax = 1e-9, 2.0
    npt.assert_allclose(tm.simp_interpolation(x, Emin, Emax, penal), Emin + x**penal * (Emax - Emin))


def test_simp_interpolation_vector():
    x = np.array([0.0, 0.5, 1.0])
    npt.assert_allclose(tm.simp_interpolation(x, 0.0, 1.0, 3.0), [0.0, 0.125, 1.0])


if __name__ == '__main__':
    unittest.main()
