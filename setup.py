import re
from setuptools import setup

with open("README.md", "r") as fh:
    long_description = fh.read()

with open("thermoto/__init__.py", "r") as fh:
    __version__ = re.search(r'^__version__ = "(.*)"', fh.read(), re.M).group(1)

setup(
      name='thermoto',
      version=__version__,
      description='Thermal compliance and sensitivities for density-based topology optimization of heat conduction',
      long_description=long_description,
      long_description_content_type="text/markdown",
      keywords='Topology Optimization SIMP Heat Conduction Finite Element Multigrid',
      packages=['thermoto', 'thermoto.common', 'thermoto.solvers'],
      install_requires=['numpy', 'sympy', 'scipy>=1.7', 'matplotlib'],
      extras_require={'test': ['pytest']},
      python_requires='>=3.8',
      classifiers=[
            "Programming Language :: Python :: 3",
            "Operating System :: OS Independent",
            "License :: OSI Approved :: MIT License",
            "Topic :: Scientific/Engineering"
      ],
)
