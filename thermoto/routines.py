from typing import Callable, Iterable

import numpy as np

from .heat import LinearHeatConduction


def finite_difference(
    problem: LinearHeatConduction,
    x,
    Emin: float,
    Emax: float,
    penal: float,
    volfrac: float,
    elements: Iterable[int] = None,
    dx: float = 1e-5,
    relative_dx: bool = False,
    tol: float = 1e-4,
    test_fn: Callable = None,
    verbose: bool = True,
):
    """Performs a central finite difference check on the sensitivities of the objective and the volume constraint

    The analytical objective sensitivity is that of the total thermal compliance, so the check is only meaningful for
    elements without passive regions in the problem.

    Args:
        problem: The heat conduction problem
        x: Densities around which the check is done
        Emin: Minimum conductivity
        Emax: Maximum conductivity
        penal: SIMP penalization power
        volfrac: Volume fraction

    Keyword Args:
        elements: Element numbers to perturb, by default all elements
        dx: Perturbation size
        relative_dx: Use a relative perturbation size or not
        tol: Tolerance
        test_fn: A generic test function (x, dx, df_an, df_fd)
        verbose: Print extra information to console

    Returns:
        Number of tested and failed sensitivity values
    """
    x = np.array(x, dtype=float).ravel()
    elements = np.arange(x.size) if elements is None else np.asarray(elements, dtype=int).ravel()

    print("\n=========================================================================================================")
    print(f'Starting finite difference of "{type(problem).__name__}" with dx = {dx}, and tol = {tol}')

    f0, dfdx, g0, dgdx = problem.evaluate(x, Emin, Emax, penal, volfrac)
    print(f"Outputs:\tf = {f0}\tg = {g0}")

    i_failed, i_tested = 0, 0
    for i in elements:
        x0 = x[i]
        sf = np.abs(x0) if (relative_dx and np.abs(x0) != 0) else 1.0  # Scale factor
        h = dx * sf

        x[i] = x0 + h
        fp, _, gp, _ = problem.evaluate(x, Emin, Emax, penal, volfrac)
        x[i] = x0 - h
        fm, _, gm, _ = problem.evaluate(x, Emin, Emax, penal, volfrac)
        x[i] = x0

        for tag, an, fd in (("f", dfdx[i], (fp - fm) / (2 * h)), ("g", dgdx[i], (gp - gm) / (2 * h))):
            if abs(an) == 0:
                error = abs(fd - an)
            else:
                error = abs(fd - an) / max(abs(fd), abs(an))

            i_tested += 1
            if error > tol:
                i_failed += 1

            if verbose or error > tol:
                print(
                    "δ%s/δx     i = %s \tAn :% .3e \tFD : % .3e \tError: % .3e %s"
                    % (tag, i, an, fd, error, "<--*" if error > tol else "")
                )

            if test_fn is not None:
                test_fn(x0, h, an, fd)

    print(f"{i_tested - i_failed}/{i_tested} sensitivities within tolerance")
    print("=========================================================================================================\n")
    return i_tested, i_failed
