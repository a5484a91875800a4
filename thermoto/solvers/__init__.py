from .solvers import LinearSolver
from .iterative import Preconditioner, DampedJacobi, SOR, GMRES, GeometricMultigrid, prolongation_1d
from .configurator import SolverContext

__all__ = ['LinearSolver',
           'Preconditioner', 'DampedJacobi', 'SOR', 'GMRES', 'GeometricMultigrid', 'prolongation_1d',
           'SolverContext',
           ]
