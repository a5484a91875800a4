r"""Isoparametric element kernels for steady-state heat conduction

The element conductivity matrix is

.. math::
    \mathbf{K}_e = \int_{\Omega_e} \mathbf{B}^\text{T} \mathbf{k} \mathbf{B} \,\mathrm{d}\Omega
                 = \int_{-1}^{1} \dotsc \int_{-1}^{1} \mathbf{B}^\text{T} \mathbf{k} \mathbf{B} \det(\mathbf{J})
                   \,\mathrm{d}\xi \dotsc

with :math:`\mathbf{B} = \mathbf{J}^{-1} \partial \mathbf{N} / \partial \boldsymbol{\xi}`. The conductivity
:math:`\mathbf{k}` defaults to identity; the actual (interpolated) conductivity is multiplied afterwards.

References:
    Cook, et al. (2002). Concepts and applications of finite element analysis (4th ed.), chapter 6
"""
from abc import ABC, abstractmethod

import numpy as np
import sympy


class DegenerateElementError(ValueError):
    """Raised for elements with a (nearly) zero or negative Jacobian determinant"""


_DET_RTOL = 1e-12


def gauss_points_weights(reduced: bool = False):
    """ One-dimensional Gauss-Legendre rule on [-1, 1]

    Args:
        reduced (optional): Use a single point instead of two

    Returns:
        Tuple of points and weights
    """
    if reduced:
        return np.array([0.0]), np.array([2.0])
    return np.array([-0.577350269189626, 0.577350269189626]), np.array([1.0, 1.0])


def _check_det(J, detJ):
    scale = np.max(np.abs(J))**J.shape[0]
    if not np.isfinite(detJ) or abs(detJ) <= _DET_RTOL * scale:
        raise DegenerateElementError(f"Singular Jacobian, determinant is {detJ}")


def inverse_2x2(J):
    """ Inverse of a 2x2 matrix by its adjugate

    Returns:
        Tuple of the inverse and the determinant
    """
    J = np.asarray(J, dtype=float)
    detJ = J[0, 0] * J[1, 1] - J[0, 1] * J[1, 0]
    _check_det(J, detJ)
    invJ = np.array([[J[1, 1], -J[0, 1]],
                     [-J[1, 0], J[0, 0]]]) / detJ
    return invJ, detJ


def inverse_3x3(J):
    """ Inverse of a 3x3 matrix by its adjugate

    Returns:
        Tuple of the inverse and the determinant
    """
    J = np.asarray(J, dtype=float)
    c00 = J[1, 1] * J[2, 2] - J[2, 1] * J[1, 2]
    c01 = J[1, 0] * J[2, 2] - J[2, 0] * J[1, 2]
    c02 = J[1, 0] * J[2, 1] - J[2, 0] * J[1, 1]
    detJ = J[0, 0] * c00 - J[0, 1] * c01 + J[0, 2] * c02
    _check_det(J, detJ)
    invJ = np.array([
        [c00, -(J[0, 1] * J[2, 2] - J[0, 2] * J[2, 1]), J[0, 1] * J[1, 2] - J[0, 2] * J[1, 1]],
        [-c01, J[0, 0] * J[2, 2] - J[0, 2] * J[2, 0], -(J[0, 0] * J[1, 2] - J[0, 2] * J[1, 0])],
        [c02, -(J[0, 0] * J[2, 1] - J[0, 1] * J[2, 0]), J[0, 0] * J[1, 1] - J[1, 0] * J[0, 1]],
    ]) / detJ
    return invJ, detJ


class IsoparametricElement(ABC):
    """ Abstract base class for isoparametric elements with one scalar dof per node

    Attributes:
        dim: Number of spatial dimensions
        nnodes: Number of nodes
        corners: Local coordinates of the nodes, of size ``(nnodes, dim)``
    """
    dim: int = None
    nnodes: int = None
    corners: np.ndarray = None

    def __repr__(self):
        return f"{type(self).__name__}()"

    def shape_fun(self, xi):
        """Evaluate the shape functions at local coordinates ``xi``"""
        xi = np.asarray(xi, dtype=float)
        return np.prod(1 + self.corners * xi[None, :], axis=1) / self.nnodes

    def shape_fun_der(self, xi):
        """Derivatives of the shape functions with respect to local coordinates, of size ``(dim, nnodes)``"""
        xi = np.asarray(xi, dtype=float)
        fac = 1 + self.corners * xi[None, :]  # (nnodes, dim)
        dN = np.empty((self.dim, self.nnodes))
        for d in range(self.dim):
            others = np.delete(fac, d, axis=1)
            dN[d] = self.corners[:, d] * np.prod(others, axis=1) / self.nnodes
        return dN

    @staticmethod
    def jacobian(dN, coords):
        """ Jacobian of the isoparametric map, ``J[a, b] = dN[a] . coords[:, b]``

        Args:
            dN: Local shape function derivatives of size ``(dim, nnodes)``
            coords: Nodal coordinates of size ``(nnodes, dim)``
        """
        return dN @ coords

    @abstractmethod
    def invert(self, J):
        """Returns the inverse and determinant of the Jacobian"""
        pass

    def integration_points(self, reduced=False):
        """Tensor-product Gauss points of size ``(#points, dim)`` and corresponding weights"""
        gp, gw = gauss_points_weights(reduced)
        pts = np.stack(np.meshgrid(*([gp] * self.dim), indexing="ij"), axis=-1).reshape(-1, self.dim)
        wts = np.prod(np.stack(np.meshgrid(*([gw] * self.dim), indexing="ij"), axis=-1).reshape(-1, self.dim), axis=1)
        return pts, wts

    def conductivity_matrix(self, coords, reduced: bool = False, kcond=None):
        """ Compute the element conductivity matrix by numerical integration

        Args:
            coords: Nodal coordinates in local node order, of size ``(nnodes, dim)``
            reduced (optional): Use reduced (single point) integration
            kcond (optional): Conductivity tensor of size ``(dim, dim)``, defaults to identity

        Returns:
            Element matrix of size ``(nnodes, nnodes)``
        """
        coords = np.asarray(coords, dtype=float)
        if coords.shape != (self.nnodes, self.dim):
            raise ValueError(f"Coordinates must be of shape {(self.nnodes, self.dim)}, got {coords.shape}")
        kcond = np.eye(self.dim) if kcond is None else np.asarray(kcond, dtype=float)

        ke = np.zeros((self.nnodes, self.nnodes))
        for xi, w in zip(*self.integration_points(reduced)):
            dN = self.shape_fun_der(xi)
            invJ, detJ = self.invert(self.jacobian(dN, coords))
            if detJ <= 0:
                raise DegenerateElementError(f"Inverted element, Jacobian determinant is {detJ}")
            B = invJ @ dN  # Physical gradients of the shape functions
            ke += w * detJ * B.T @ kcond @ B
        return ke


class Quad4(IsoparametricElement):
    """ Bilinear four-node quadrilateral """
    dim = 2
    nnodes = 4
    corners = np.array([[-1, -1], [+1, -1], [+1, +1], [-1, +1]], dtype=float)

    def invert(self, J):
        return inverse_2x2(J)


class Hex8(IsoparametricElement):
    """ Trilinear eight-node hexahedron """
    dim = 3
    nnodes = 8
    corners = np.array([[-1, -1, -1], [+1, -1, -1], [+1, +1, -1], [-1, +1, -1],
                        [-1, -1, +1], [+1, -1, +1], [+1, +1, +1], [-1, +1, +1]], dtype=float)

    def invert(self, J):
        return inverse_3x3(J)


def element_for_dim(dim: int) -> IsoparametricElement:
    """ Select the element kernel for a 2D or 3D grid """
    if dim == 2:
        return Quad4()
    elif dim == 3:
        return Hex8()
    raise ValueError(f"No element available for {dim} dimensions, only 2 or 3")


def exact_conductivity_matrix(element: IsoparametricElement, size):
    """ Exact conductivity matrix of an axis-aligned rectangle or brick, obtained by symbolic integration

    Args:
        element: The element type
        size: Element edge lengths ``(dx, dy(, dz))``

    Returns:
        Element matrix of size ``(nnodes, nnodes)``
    """
    xs = sympy.symbols(f"x0:{element.dim}", real=True)
    h = [sympy.nsimplify(s) for s in size[:element.dim]]
    N = []
    for c in element.corners:
        fn = sympy.Integer(1)
        for d in range(element.dim):
            # Linear function being 1 at the node, 0 at the opposite face
            fn *= (xs[d] / h[d]) if c[d] > 0 else (1 - xs[d] / h[d])
        N.append(fn)

    ke = sympy.zeros(element.nnodes, element.nnodes)
    for i in range(element.nnodes):
        for j in range(i, element.nnodes):
            integrand = sum(sympy.diff(N[i], x) * sympy.diff(N[j], x) for x in xs)
            for d, x in enumerate(xs):
                integrand = sympy.integrate(integrand, (x, 0, h[d]))
            ke[i, j] = ke[j, i] = integrand
    return np.array(ke.tolist(), dtype=float)
