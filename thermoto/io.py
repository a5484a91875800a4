import os
import sys
import base64
import struct
import numbers
import warnings

import numpy as np
import matplotlib.pyplot as plt

from .common.domain import StructuredGrid


def _write_data_array(file, name, vec, len_enc):
    file.write(f'<DataArray type="Float32" Name="{name}" NumberOfComponents="1" format="binary">\n'.encode())
    enc_data = base64.b64encode(np.ascontiguousarray(vec, dtype=np.float32))
    # Length of the encoded data block goes first
    file.write(base64.b64encode(struct.pack(len_enc, len(enc_data))))
    file.write(enc_data)
    file.write(b"\n</DataArray>\n")


def write_to_vti(grid: StructuredGrid, vectors: dict, filename="out.vti", scale=1.0):
    """Write scalar fields on a grid to a Paraview (VTI) file

    Vectors of size ``nnodes`` are written as point-data, vectors of size ``nel`` as cell-data. Other vectors are
    skipped with a warning.

    Args:
        grid: The grid the vectors live on
        vectors: A dictionary of vectors to write. Keys are used as vector names.
        filename (str): The file location
        scale: Uniform scaling of the gridpoints

    Returns:
        The file name written, or ``None`` if there was nothing to write
    """
    ext = ".vti"
    if ext not in os.path.splitext(filename)[-1].lower():
        filename += ext

    point_dat = {}
    cell_dat = {}
    for key, vec in vectors.items():
        vec = np.asarray(vec)
        if np.iscomplexobj(vec):
            raise TypeError(f"Vector {key} is complex, only real data can be written")
        if vec.size == grid.nnodes:
            point_dat[key] = vec.ravel()
        elif vec.size == grid.nel:
            cell_dat[key] = vec.ravel()
        else:
            warnings.warn(f"Vector {key} of size {vec.size} is neither cell- nor point-data. Skipping vector...")

    if len(point_dat) == 0 and len(cell_dat) == 0:
        warnings.warn(f"Nothing to write to {filename}. Skipping file...")
        return None

    dirname = os.path.dirname(filename)
    if dirname:
        os.makedirs(dirname, exist_ok=True)

    len_enc = ("<" if sys.byteorder == "little" else ">") + "Q"
    byte_order = "LittleEndian" if sys.byteorder == "little" else "BigEndian"
    ext_str = f"0 {grid.nelx} 0 {grid.nely} 0 {grid.nelz}"
    ox, oy, oz = grid.origin * scale
    dx, dy, dz = grid.element_size * scale

    with open(filename, "wb") as file:
        file.write(b'<?xml version="1.0"?>\n')
        file.write(
            f'<VTKFile type="ImageData" version="0.1" header_type="UInt64" byte_order="{byte_order}">\n'.encode()
        )
        file.write(f'<ImageData WholeExtent="{ext_str}" Origin="{ox} {oy} {oz}" Spacing="{dx} {dy} {dz}">\n'.encode())
        file.write(f'<Piece Extent="{ext_str}">\n'.encode())

        if len(point_dat) > 0:
            file.write(b"<PointData>\n")
            for key, vec in point_dat.items():
                _write_data_array(file, key, vec, len_enc)
            file.write(b"</PointData>\n")

        if len(cell_dat) > 0:
            file.write(b"<CellData>\n")
            for key, vec in cell_dat.items():
                _write_data_array(file, key, vec, len_enc)
            file.write(b"</CellData>\n")

        file.write(b"</Piece>\n")
        file.write(b"</ImageData>\n")
        file.write(b"</VTKFile>")
    return filename


class PlotDomain:
    """Plots an element field on a grid (2D image or 3D voxels)

    Every call updates the figure with a new field.

    Args:
        grid: The grid layout

    Keyword Args:
        saveto (str): Save images of each call to the specified location. (default = ``None``)
        overwrite (bool): Overwrite saved image every time the figure is updated, else prefix ``_0000`` is added to the
          filename (default = ``False``)
        show (bool): Show the figure on the screen
        clim: Color limits. In 2D ``[cmin, cmax]``: the values of minimum and maximum color. In 3D ``clipval``: the
          value below which elements are clipped.
        cmap (str): Colormap (only for 2D)
    """

    def __init__(self, grid: StructuredGrid, saveto=None, overwrite=False, show=False, clim=None, cmap="gray_r"):
        self.grid = grid
        self.fig = None
        if saveto is not None:
            self.saveloc, self.saveext = os.path.splitext(saveto)
            dirname = os.path.dirname(saveto)
            if dirname:
                os.makedirs(dirname, exist_ok=True)
        else:
            self.saveloc, self.saveext = None, None
        self.overwrite = overwrite
        self.show = show
        self.clim = clim
        self.cmap = cmap
        self.iter = 0

    def __call__(self, x, title="Density"):
        x = np.asarray(x).ravel()
        if x.size != self.grid.nel:
            raise ValueError(f"Field has size {x.size}, expected {self.grid.nel}")
        if self.fig is None:
            self.fig = plt.figure()
        if self.grid.dim == 2:
            self._plot_2d(x)
        else:
            self._plot_3d(x)
        self.fig.axes[0].set_title(f"{title}, Iteration {self.iter}")
        return self._update_fig()

    def _update_fig(self):
        if self.iter == 0 and self.show:
            plt.show(block=False)

        self.fig.canvas.draw()
        self.fig.canvas.flush_events()

        filen = None
        if self.saveloc is not None:
            if self.overwrite:
                filen = f"{self.saveloc}{self.saveext}"
            else:
                filen = f"{self.saveloc}_{self.iter:04d}{self.saveext}"
            self.fig.savefig(filen)
        self.iter += 1
        return filen

    def _plot_2d(self, x):
        data = x.reshape((self.grid.nelx, self.grid.nely), order="F").T
        if hasattr(self, "im"):
            self.im.set_data(data)
        else:
            ax = self.fig.add_subplot(111)
            xmin, xmax, ymin, ymax = self.grid.extent
            self.im = ax.imshow(data, cmap=self.cmap, origin="lower", extent=(xmin, xmax, ymin, ymax))
            self.cbar = self.fig.colorbar(self.im, orientation="horizontal")
            ax.set(xlabel="x", ylabel="y")
        vmin, vmax = np.min(data), np.max(data)
        if vmin < 0:
            vabs = max(abs(vmin), abs(vmax))
            vmin, vmax = -vabs, vabs
        clim = [vmin, vmax] if self.clim is None else self.clim
        self.im.set_clim(vmin=clim[0], vmax=clim[1])

    def _plot_3d(self, x):
        ei, ej, ek = np.indices((self.grid.nelx, self.grid.nely, self.grid.nelz))
        densities = x[self.grid.get_elemnumber(ei, ej, ek)]
        clip_lim = self.clim if isinstance(self.clim, numbers.Number) else 0.4
        sel = densities > clip_lim

        shade = np.clip(1 - densities, 0, 1)
        colors = np.stack([shade, shade, shade], axis=-1)

        if len(self.fig.axes) == 0:
            ax = self.fig.add_subplot(projection="3d")
            max_ext = max(self.grid.nelx, self.grid.nely, self.grid.nelz)
            ax.set(
                xlabel="x",
                ylabel="y",
                zlabel="z",
                xlim=[(self.grid.nelx - max_ext) / 2, (self.grid.nelx + max_ext) / 2],
                ylim=[(self.grid.nely - max_ext) / 2, (self.grid.nely + max_ext) / 2],
                zlim=[(self.grid.nelz - max_ext) / 2, (self.grid.nelz + max_ext) / 2],
            )
        else:
            ax = self.fig.axes[0]

        if hasattr(self, "fac"):
            for f in self.fac.values():
                f.remove()
        self.fac = ax.voxels(sel, facecolors=colors, linewidth=0.5, edgecolors="k")

    def close(self):
        if self.fig is not None:
            plt.close(self.fig)
            self.fig = None
        for attr in ("im", "cbar", "fac"):
            if hasattr(self, attr):
                delattr(self, attr)
