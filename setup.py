import re
from setuptools import setup

with open("README.md", "r") as fh:
    long_description = fh.read()

with open("pyrobusto/__init__.py", "r") as fh:
    __version__ = re.search(r'^__version__ = "([^"]+)"', fh.read(), re.M).group(1)

setup(
      name='pyrobusto',
      version=__version__,
      author='Arnoud Delissen',
      author_email='arnouddelissen+pymoto@gmail.com',
      description='Robust topology optimization against worst-case loads with a multigrid finite element solver',
      long_description=long_description,
      long_description_content_type="text/markdown",
      keywords='Topology Optimization Robust Worst-case Multigrid Power Method Self-support Additive Manufacturing',
      packages=['pyrobusto', 'pyrobusto.modules', 'pyrobusto.solvers'],
      package_data={'pyrobusto': ['common/*']},
      install_requires=['numpy', 'scipy>=1.8'],
      extras_require={'test': ['pytest']},
      classifiers=[
            "Programming Language :: Python :: 3",
            "Operating System :: OS Independent",
            "License :: OSI Approved :: MIT License",
            "Topic :: Scientific/Engineering"
      ],
)
