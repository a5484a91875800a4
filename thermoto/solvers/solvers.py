import numpy as np


class LinearSolver:
    """ Base class of all linear solvers

    Keyword Args:
        A (matrix): Optionally provide a matrix, which is used in :method:`update` right away.
    """

    def __init__(self, A=None):
        if A is not None:
            self.update(A)

    def update(self, A):
        """ Updates with a new matrix of the same structure

        Args:
            A (matrix): The new matrix of size ``(N, N)``

        Returns:
            self
        """
        raise NotImplementedError("Solver not implemented")

    def solve(self, rhs, x0=None, trans='N'):
        r""" Solves the linear system of equations :math:`\mathbf{A} \mathbf{x} = \mathbf{b}`

        Args:
            rhs: Right hand side :math:`\mathbf{b}` of shape ``(N)``
            x0 (optional): Initial guess for the solution
            trans (optional): Option to transpose matrix
                'N':   A   @ x == rhs   (default)   Normal matrix
                'T':   A^T @ x == rhs               Transposed matrix

        Returns:
            Solution vector :math:`\mathbf{x}` of same shape as :math:`\mathbf{b}`
        """
        raise NotImplementedError("Solver not implemented")

    @staticmethod
    def get_operator(A, trans='N'):
        if trans == 'N':
            return A
        elif trans == 'T':
            return A.T
        raise TypeError("Only N or T transposition is possible")

    @staticmethod
    def residual(A, x, b, trans='N'):
        r""" Calculates the (relative) residual of the linear system of equations

        The residual is calculated as
        :math:`r = \frac{\left| \mathbf{A} \mathbf{x} - \mathbf{b} \right|}{\left| \mathbf{b} \right|}`

        Args:
            A: The matrix
            x: Solution vector
            b: Right-hand side
            trans (optional): Matrix tranformation (`N` is normal, `T` is transposed)

        Returns:
            Residual value
        """
        assert x.shape == b.shape
        mat = LinearSolver.get_operator(A, trans)
        return np.linalg.norm(mat@x - b, axis=0) / np.linalg.norm(b, axis=0)
