""" Writers for iteration records, field snapshots and diagnostic dumps """
from pathlib import Path

import numpy as np

from ..common.domain import VoxelDomain


class ScalarToFile:
    """Writes iteration data to a log file

    This function can also handle small vectors of scalars, i.e. multiple constraints. The header line is written on
    the first call, each call afterwards appends one row.

    Args:
        saveto: Location to save the log file, supports .txt or .csv
        fmt (optional): Value format (e.g. 'e', 'f', '.3e', '.5g', '.3f')
        separator (optional): Value separator, .csv files will automatically use a comma
    """
    def __init__(self, saveto, fmt: str = ".10e", separator: str = "\t"):
        self.saveto = str(saveto)
        Path(self.saveto).parent.mkdir(parents=True, exist_ok=True)
        self.iter = 0

        # Test the format
        (3.14).__format__(fmt)
        self.format = fmt

        self.separator = "," if ".csv" in self.saveto else separator

    def __call__(self, **values):
        tags = [] if self.iter == 0 else None

        # Add iteration as first column
        dat = [self.iter.__format__("d")]
        if tags is not None:
            tags.append("Iteration")

        for tag, val in values.items():
            val = np.asarray(val, dtype=float)
            if val.size > 1:
                it = np.nditer(val, flags=["multi_index"])
                while not it.finished:
                    dat.append(float(it.value).__format__(self.format))
                    if tags is not None:
                        tags.append(f"{tag}{list(it.multi_index)}")
                    it.iternext()
            else:
                dat.append(float(val).__format__(self.format))
                if tags is not None:
                    tags.append(tag)

        if tags is not None:
            with open(self.saveto, "w+") as f:
                f.write(self.separator.join(tags))
                f.write("\n")

        with open(self.saveto, "a+") as f:
            f.write(self.separator.join(dat))
            f.write("\n")
        self.iter += 1


class ResultsWriter:
    """ Persists the artifacts of an optimization run in an output directory

    - ``records.txt``: one row of scalars per iteration
    - ``<name>.npy``: history arrays such as ``cworst``, ``vrec`` and ``trec``
    - ``iter<N>_fs.npy``: worst support force of iteration ``N``
    - ``out.vti`` and ``sens.vti``: density and sensitivity fields, every ``vti_every`` iterations and at the end
    - ``flast.npy`` and ``ulast.npy``: the final worst support force and displacement
    - ``fserr.npy`` and ``uerr.npy``: diagnostic dump of a failed worst-case analysis

    Args:
        outdir: Output directory, created if needed
        domain: The voxel domain, for writing fields
        vti_every (optional): Interval of field snapshots
        log_density (optional): Also keep a numbered density snapshot ``density<N>.vti`` per interval
        log_support_force (optional): Save the support force of every iteration
    """
    def __init__(self, outdir, domain: VoxelDomain, vti_every: int = 5, log_density: bool = False,
                 log_support_force: bool = True):
        self.outdir = Path(outdir)
        self.outdir.mkdir(parents=True, exist_ok=True)
        self.domain = domain
        self.vti_every = vti_every
        self.log_density = log_density
        self.log_support_force = log_support_force
        self.records = ScalarToFile(self.outdir / "records.txt")

    def path(self, name: str) -> Path:
        return self.outdir / name

    def write_parameters(self, params, extra: str = None):
        params.write(self.path("parameters.txt"), extra=extra)

    def record(self, **values):
        self.records(**values)

    def save_array(self, name: str, values):
        np.save(self.path(f"{name}.npy"), np.asarray(values))

    def save_history(self, history: dict, suffix: str = ""):
        for name, values in history.items():
            self.save_array(f"{name}{suffix}", values)

    def support_force(self, it: int, fs: np.ndarray):
        if self.log_support_force:
            self.save_array(f"iter{it}_fs", fs)

    def fields(self, density: np.ndarray, sensitivity: np.ndarray = None, it: int = None, final: bool = False):
        """ Write the density (and sensitivity) fields every ``vti_every`` iterations, or when ``final`` is set """
        if not final and (it is None or it % self.vti_every != 0):
            return
        self.domain.write_to_vti({"density": density}, filename=str(self.path("out.vti")))
        if sensitivity is not None:
            self.domain.write_to_vti({"sensitivity": sensitivity}, filename=str(self.path("sens.vti")))
        if self.log_density and it is not None:
            self.domain.write_to_vti({"density": density}, filename=str(self.path(f"density{it}.vti")))

    def dump_diagnostics(self, support_force, displacement):
        """ Persist the state of a failed worst-case analysis """
        if support_force is not None:
            self.save_array("fserr", support_force)
        if displacement is not None:
            self.save_array("uerr", displacement)

    def finish(self, support_force, displacement):
        self.save_array("flast", support_force)
        self.save_array("ulast", displacement)
