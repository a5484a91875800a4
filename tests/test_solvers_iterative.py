import unittest
import warnings
import pytest
import numpy as np
import numpy.testing as npt
import scipy.sparse as sps
from scipy.sparse.linalg import spsolve
import thermoto as tm
from thermoto.solvers import LinearSolver, Preconditioner, DampedJacobi, SOR, GMRES, GeometricMultigrid


def poisson_matrix(grid, fixed_nodes=None):
    """ Conductivity matrix with unit conductivity and the given nodes constrained """
    KE = tm.element_for_dim(grid.dim).conductivity_matrix(grid.element_coordinates(0))
    mask = np.ones(grid.nnodes)
    if fixed_nodes is not None:
        mask[fixed_nodes] = 0.0
    return tm.AssembleConductivity(grid, KE, mask=mask)(np.ones(grid.nel))


def nonsymmetric_matrix(n=60, seed=0):
    rng = np.random.default_rng(seed)
    A = sps.random(n, n, density=0.1, random_state=seed) + sps.diags(4.0 + rng.random(n))
    return sps.csr_matrix(A)


class TestMultigrid(unittest.TestCase):
    def test_interpolation_2D(self):
        grid = tm.StructuredGrid(10, 10)
        mg1 = GeometricMultigrid(grid)
        K = poisson_matrix(grid, grid.nodes[:, 0, 0])
        mg1.update(K)

        # Test restriction fine -> coarse
        uf = np.ones(grid.nnodes)
        uc = mg1.R.T @ uf
        uc = uc.reshape(grid.nelx // 2 + 1, grid.nely // 2 + 1, order='F')
        npt.assert_allclose(uc[1:-1, 1:-1], 4)
        npt.assert_allclose(uc[0, 1:-1], 3)
        npt.assert_allclose(uc[-1, 1:-1], 3)
        npt.assert_allclose(uc[1:-1, 0], 3)
        npt.assert_allclose(uc[1:-1, -1], 3)

        npt.assert_allclose(uc[0, 0], 2.25)
        npt.assert_allclose(uc[0, -1], 2.25)
        npt.assert_allclose(uc[-1, -1], 2.25)
        npt.assert_allclose(uc[-1, 0], 2.25)

        # Test interpolation coarse -> fine
        uc = np.ones(mg1.sub_grid.nnodes)
        uf = mg1.R @ uc
        npt.assert_allclose(uf, 1.0)

    def test_interpolation_3D(self):
        grid = tm.StructuredGrid(6, 4, 8)
        mg1 = GeometricMultigrid(grid)
        K = poisson_matrix(grid, grid.nodes[:, :, 0].flatten())
        mg1.update(K)

        # Test restriction fine -> coarse
        uf = np.ones(grid.nnodes)
        uc = mg1.R.T @ uf
        uc = uc.reshape(grid.nelx // 2 + 1, grid.nely // 2 + 1, grid.nelz // 2 + 1, order='F')
        npt.assert_allclose(uc[1:-1, 1:-1, 1:-1], 8)
        npt.assert_allclose(uc[0, 1:-1, 1:-1], 6)
        npt.assert_allclose(uc[-1, 1:-1, 1:-1], 6)
        npt.assert_allclose(uc[1:-1, 0, 1:-1], 6)
        npt.assert_allclose(uc[1:-1, :, -1][:, 1:-1], 6)

        npt.assert_allclose(uc[0, 0, 1:-1], 4.5)
        npt.assert_allclose(uc[-1, -1, 1:-1], 4.5)
        npt.assert_allclose(uc[0, 1:-1, 0], 4.5)
        npt.assert_allclose(uc[1:-1, -1, -1], 4.5)

        npt.assert_allclose(uc[0, 0, 0], 3.375)
        npt.assert_allclose(uc[-1, -1, -1], 3.375)

        # Test interpolation coarse -> fine
        uf = mg1.R @ np.ones(mg1.sub_grid.nnodes)
        npt.assert_allclose(uf, 1.0)

    def test_interpolation_linear_field(self):
        grid = tm.StructuredGrid(8, 4, unitx=0.5, unity=2.0)
        mg = GeometricMultigrid(grid)
        mg.setup_interpolation()
        with mg.sub_grid.coordinates() as xc:
            uc = 2.0 * xc[:, 0] - 3.0 * xc[:, 1]
        with grid.coordinates() as xf:
            npt.assert_allclose(mg.R @ uc, 2.0 * xf[:, 0] - 3.0 * xf[:, 1], atol=1e-12)

    def test_galerkin_coarse_operator(self):
        grid = tm.StructuredGrid(4, 4)
        K = poisson_matrix(grid)
        mg = GeometricMultigrid(grid, inner_level=GMRES(restart=50, tol=1e-12))
        mg.update(K)
        # Galerkin operator of the unconstrained Laplacian equals the rediscretized one
        npt.assert_allclose(mg.inner_level.A.toarray(), poisson_matrix(mg.sub_grid).toarray(), atol=1e-12)

    def test_odd_grid_raises(self):
        with self.assertRaises(ValueError):
            GeometricMultigrid(tm.StructuredGrid(5, 4))

    def test_wrong_matrix_size(self):
        mg = GeometricMultigrid(tm.StructuredGrid(4, 4))
        with self.assertRaises(ValueError):
            mg.update(sps.eye(10, format='csr'))

    def test_default_smoother(self):
        mg = GeometricMultigrid(tm.StructuredGrid(4, 4))
        assert isinstance(mg.smoother, DampedJacobi)
        smoother = SOR()
        mg = GeometricMultigrid(tm.StructuredGrid(4, 4), smoother=smoother)
        assert mg.smoother is smoother


@pytest.mark.parametrize("smoother", [None, SOR(), GMRES(preconditioner=SOR(), restart=4, tol=None, maxit=4)])
def test_multigrid_preconditioned_solve(smoother):
    grid = tm.StructuredGrid(16, 16)
    K = poisson_matrix(grid, grid.nodes[:, 0, 0])
    b = np.random.default_rng(0).random(grid.nnodes)

    inner = GeometricMultigrid(grid.coarsen(), smoother=SOR())
    mg = GeometricMultigrid(grid, inner_level=inner, smoother=smoother)
    solver = GMRES(K, preconditioner=mg, restart=50, tol=1e-10, maxit=200, flexible=True)
    x = solver.solve(b)
    assert solver.converged
    assert LinearSolver.residual(K, x, b) < 1e-9
    assert solver.niter < 40


class TestGMRES(unittest.TestCase):
    def setUp(self):
        grid = tm.StructuredGrid(8, 8)
        self.A = poisson_matrix(grid, grid.nodes[:, 0, 0])
        self.b = np.random.default_rng(1).random(grid.nnodes)
        self.xref = spsolve(self.A.tocsc(), self.b)

    def test_preconditioners(self):
        for pc in [None, Preconditioner(), DampedJacobi(), DampedJacobi(w=0.5), SOR(), SOR(w=1.5)]:
            solver = GMRES(self.A, preconditioner=pc, restart=100, tol=1e-12)
            x = solver.solve(self.b)
            assert solver.converged
            npt.assert_allclose(x, self.xref, rtol=1e-8)

    def test_flexible(self):
        solver = GMRES(self.A, preconditioner=SOR(), restart=100, tol=1e-12, flexible=True)
        npt.assert_allclose(solver.solve(self.b), self.xref, rtol=1e-8)

    def test_restarted(self):
        solver = GMRES(self.A, preconditioner=SOR(), restart=5, tol=1e-10, maxit=1000)
        x = solver.solve(self.b)
        assert solver.converged
        assert solver.niter > 5
        assert LinearSolver.residual(self.A, x, self.b) < 1e-10

    def test_initial_guess(self):
        solver = GMRES(self.A, preconditioner=SOR(), restart=100, tol=1e-8)
        solver.solve(self.b, x0=self.xref)
        assert solver.niter == 0
        assert solver.converged

    def test_zero_rhs(self):
        solver = GMRES(self.A)
        x = solver.solve(np.zeros_like(self.b), x0=np.ones_like(self.b))
        npt.assert_equal(x, 0.0)
        assert solver.converged
        assert solver.niter == 0

    def test_fixed_iterations(self):
        solver = GMRES(self.A, preconditioner=SOR(), restart=4, tol=None, maxit=4)
        x = solver.solve(self.b)
        assert solver.niter == 4
        assert not solver.converged
        # Still reduces the residual
        assert LinearSolver.residual(self.A, x, self.b) < 1.0

    def test_not_converged_warns(self):
        solver = GMRES(self.A, restart=2, tol=1e-14, maxit=2)
        with pytest.warns(UserWarning):
            solver.solve(self.b)
        assert not solver.converged
        assert solver.niter == 2

    def test_no_warning_when_disabled(self):
        solver = GMRES(self.A, restart=2, tol=1e-14, maxit=2, warn=False)
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            solver.solve(self.b)

    def test_multiple_rhs(self):
        B = np.stack([self.b, 2 * self.b], axis=1)
        X = GMRES(self.A, preconditioner=SOR(), restart=100, tol=1e-12).solve(B)
        assert X.shape == B.shape
        npt.assert_allclose(X[:, 0], self.xref, rtol=1e-8)
        npt.assert_allclose(X[:, 1], 2 * self.xref, rtol=1e-8)

    def test_invalid_trans(self):
        with self.assertRaises(TypeError):
            GMRES(self.A).solve(self.b, trans='H')

    def test_invalid_settings(self):
        with self.assertRaises(ValueError):
            GMRES(restart=0)


@pytest.mark.parametrize("trans", ['N', 'T'])
@pytest.mark.parametrize("pc", [Preconditioner(), DampedJacobi(), SOR()])
def test_gmres_nonsymmetric(trans, pc):
    A = nonsymmetric_matrix()
    b = np.random.default_rng(2).random(A.shape[0])
    solver = GMRES(A, preconditioner=pc, restart=60, tol=1e-12)
    x = solver.solve(b, trans=trans)
    Aop = A if trans == 'N' else A.T
    npt.assert_allclose(x, spsolve(sps.csc_matrix(Aop), b), rtol=1e-8, atol=1e-12)


@pytest.mark.parametrize("w", [0.5, 1.0, 1.5])
def test_sor_operator(w):
    A = nonsymmetric_matrix(30, seed=3)
    D = sps.diags(A.diagonal())
    L, U = sps.tril(A, k=-1), sps.triu(A, k=1)
    M = (D / w + L) @ sps.diags(w / ((2 - w) * A.diagonal())) @ (D / w + U)
    r = np.random.default_rng(4).random(30)
    sor = SOR(A, w=w)
    npt.assert_allclose(M @ sor.solve(r), r, rtol=1e-10)
    npt.assert_allclose(M.T @ sor.solve(r, trans='T'), r, rtol=1e-10)
    # Block of vectors
    R = np.stack([r, 2 * r], axis=1)
    npt.assert_allclose(sor.solve(R)[:, 1], 2 * sor.solve(r), rtol=1e-12)


def test_damped_jacobi():
    A = sps.diags([2.0, 4.0, 8.0])
    npt.assert_allclose(DampedJacobi(A, w=0.5).solve(np.ones(3)), [0.25, 0.125, 0.0625])
    with pytest.raises(ValueError):
        DampedJacobi(w=1.5)
    with pytest.raises(ValueError):
        SOR(w=2.0)


if __name__ == '__main__':
    unittest.main()
