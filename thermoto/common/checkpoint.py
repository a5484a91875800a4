import os
import logging
from pathlib import Path

import numpy as np

logger = logging.getLogger(__name__)


class RestartFiles:
    """ Double-buffered storage of a state vector

    Two files are written in turn, so an interrupted write never destroys the last good checkpoint. Each file holds a
    single vector in numpy's ``.npy`` format.

    Args:
        workdir (optional): Directory for the restart files
        basename (optional): Prefix of the file names, the suffixes are ``00.dat`` and ``01.dat``
    """

    def __init__(self, workdir="./", basename="RestartSol"):
        self.workdir = Path(workdir)
        self.filenames = (self.workdir / f"{basename}00.dat", self.workdir / f"{basename}01.dat")
        self.flip = True
        self.last_written = None

    def write(self, vec: np.ndarray) -> Path:
        """Write the vector to the file that was not written last time, returns the path"""
        self.flip = not self.flip
        target = self.filenames[1 if self.flip else 0]
        os.makedirs(self.workdir, exist_ok=True)
        with open(target, "wb") as f:
            np.save(f, np.asarray(vec, dtype=float), allow_pickle=False)
        self.last_written = target
        logger.debug("Restart vector written to %s", target)
        return target

    @staticmethod
    def read(filename, size: int = None) -> np.ndarray:
        """ Read a vector written by :meth:`write`

        Args:
            filename: The file
            size (optional): Expected vector length

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the file holds a vector of another length
        """
        with open(filename, "rb") as f:
            vec = np.load(f, allow_pickle=False)
        if size is not None and vec.size != size:
            raise ValueError(f"Restart vector in {filename} has size {vec.size}, expected {size}")
        return vec.ravel()
