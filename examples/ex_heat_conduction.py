""" Heat-sink design by thermal compliance minimization, using an optimality criteria update """
import logging
import numpy as np
import thermoto as tm

nx, ny = 64, 64
Emin, Emax, penal, volfrac = 1e-9, 1.0, 3.0, 0.4
xmin, move = 1e-3, 0.2


def oc_update(x, dfdx, design):
    """ Bisection on the Lagrange multiplier of the volume constraint, only designable elements are updated """
    xd, dd = x[design], dfdx[design]
    l1, l2, maxvol = 0, 100000, volfrac * xd.size
    while (l2 - l1) / (l1 + l2) > 1e-4:
        lmid = 0.5 * (l1 + l2)
        xnew = np.maximum(xmin, np.maximum(xd - move, np.minimum(1.0, np.minimum(xd + move, xd*np.sqrt(-dd/lmid)))))
        l1, l2 = (lmid, l2) if np.sum(xnew) - maxvol > 0 else (l1, lmid)
    xout = x.copy()
    xout[design] = xnew
    return xout, np.max(np.abs(xnew - xd))


if __name__ == "__main__":
    tm.setup_logging(logging.INFO)

    grid = tm.StructuredGrid(nx, ny, unitx=1/nx, unity=1/ny)
    # A solid strip along the top edge
    passive = tm.PassiveRegions.from_boxes(grid, solid=[0.0, 1.0, 0.95, 1.0])
    problem = tm.LinearHeatConduction(grid, passive=passive, nlvls=4, workdir="out")
    plot = tm.PlotDomain(grid, saveto="out/design.png", overwrite=True)

    design = passive.designable
    x = np.where(design, volfrac, 1.0)
    change, loop = 1.0, 0
    while change > 0.01 and loop < 100:
        loop += 1
        f, dfdx, g, dgdx = problem.evaluate(x, Emin, Emax, penal, volfrac)
        x, change = oc_update(x, dfdx, design)
        print("It {0: 3d}, f {1:.3e}, g {2:.3e}, change {3:.2f}".format(loop, f, g, change))
        plot(x)
        problem.checkpoint()

    tm.write_to_vti(grid, {"x": x, "T": problem.U}, "out/heat.vti")
