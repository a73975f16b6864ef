import os
import sys
import base64
import struct
import warnings
from typing import Union, Iterable

from numpy.typing import NDArray
import numpy as np


IndexType = Union[int, Iterable[int], NDArray[np.integer]]


class VoxelDomain:
    r""" Structured 3D voxel domain of hexahedral elements
    Nodal numbering used in each element is given below.

    ::

               y
        2----------3
        |\     ^   |\
        | \    |   | \
        |  \   |   |  \
        |   6------+---7
        |   |  +-- |-- | -> x
        0---+---\--1   |
         \  |    \  \  |
          \ |     \  \ |
           \|      z  \|
            4----------5

    Elements are numbered ``(k * nely + j) * nelx + i`` and nodes ``(k * (nely+1) + j) * (nelx+1) + i``, so flat
    element fields reshape to ``(nelz, nely, nelx)`` and nodal fields to ``(nelz+1, nely+1, nelx+1)``. Nodal vector
    fields are stored interleaved: the dof of component ``d`` of node ``n`` is ``3 * n + d``.

    Attributes:
        nel : Total number of elements
        nnodes : Total number of nodes
        elemnodes : Number of nodes per element
        node_numbering : The numbering scheme used to number the nodes in each element
        conn : Connectivity matrix of size (# elements, # nodes per element)
        elements : Helper array for element slicing of size (nelx, nely, nelz)
        nodes : Helper array for node slicing of size (nelx+1, nely+1, nelz+1)
    """
    dim = 3
    elemnodes = 8
    node_numbering = np.array([[-1, -1, -1], [+1, -1, -1], [-1, +1, -1], [+1, +1, -1],
                               [-1, -1, +1], [+1, -1, +1], [-1, +1, +1], [+1, +1, +1]])

    def __init__(self, nelx: int, nely: int, nelz: int, unit: float = 1.0, origin=None):
        """Create a 3D voxel domain

        Args:
            nelx (int): Number of elements in x-direction
            nely (int): Number of elements in y-direction
            nelz (int): Number of elements in z-direction
            unit (float, optional): Edge length of the (cubic) voxels. Defaults to 1.0.
            origin (optional): Position of node 0. Defaults to ``(0, 0, 0)``.
        """
        if min(nelx, nely, nelz) < 1:
            raise ValueError(f"Domain needs at least one element in each direction, got {(nelx, nely, nelz)}")
        if unit <= 0.0:
            raise ValueError("Element size needs to be positive")
        self.nelx, self.nely, self.nelz = int(nelx), int(nely), int(nelz)
        self.unit = float(unit)
        self.origin = np.zeros(3) if origin is None else np.asarray(origin, dtype=float)

        self.nel = self.nelx * self.nely * self.nelz
        self.nnodes = (self.nelx + 1) * (self.nely + 1) * (self.nelz + 1)

        # Helper for element slicing
        eli, elj, elk = np.meshgrid(np.arange(self.nelx), np.arange(self.nely), np.arange(self.nelz), indexing="ij")
        self.elements = self.get_elemnumber(eli, elj, elk)

        # Node-element connectivity
        self.conn = np.zeros((self.nel, self.elemnodes), dtype=int)
        self.conn[self.elements.ravel(), :] = self.get_elemconnectivity(eli.ravel(), elj.ravel(), elk.ravel())

        # Helper for node slicing
        ndi, ndj, ndk = np.meshgrid(np.arange(self.nelx + 1), np.arange(self.nely + 1), np.arange(self.nelz + 1),
                                    indexing="ij")
        self.nodes = self.get_nodenumber(ndi, ndj, ndk)

    def __repr__(self):
        return f"{type(self).__name__}({self.nelx}, {self.nely}, {self.nelz}, unit={self.unit})"

    @property
    def element_size(self):
        """Element size in each direction"""
        return np.full(3, self.unit)

    @property
    def size(self):
        """Number of elements in each direction"""
        return np.array([self.nelx, self.nely, self.nelz])

    @property
    def domain_size(self):
        """Domain size in each direction"""
        return self.size * self.unit

    @property
    def ndof(self):
        """Number of displacement degrees of freedom"""
        return 3 * self.nnodes

    def get_elemnumber(self, eli: IndexType, elj: IndexType, elk: IndexType = 0):
        """Gets the element number(s) for element(s) with given Cartesian indices (i, j, k)"""
        return (elk * self.nely + elj) * self.nelx + eli

    def get_nodenumber(self, nodi: IndexType, nodj: IndexType, nodk: IndexType = 0):
        """Gets the node number(s) for nodes with given Cartesian indices (i, j, k)"""
        return (nodk * (self.nely + 1) + nodj) * (self.nelx + 1) + nodi

    def get_dofnumber(self, nod_idx: IndexType, dof_idx: IndexType = None, ndof: int = 3):
        """Gets the degree of freedom number(s) for node(s) with given node number(s)

        Args:
            nod_idx : Node number; can be integer or array
            dof_idx (optional) : Dof index to request (e.g. `0` for x, `[0, 1]` for x and y) (default is all dofs)
            ndof (optional) : Number of degrees of freedom per node

        Returns:
            The dof number(s) of shape ``(*nod_idx.shape, *dof_idx.shape)``
        """
        nod_idx = np.asarray(nod_idx)
        dof_idx = np.arange(ndof) if dof_idx is None else np.asarray(dof_idx)
        return nod_idx[(...,) + (None,) * dof_idx.ndim] * ndof + dof_idx

    def get_node_indices(self, nod_idx: IndexType = None):
        """Gets the Cartesian index (i, j, k) of given node number(s), as array of size (3, #nodes)"""
        if nod_idx is None:
            nod_idx = np.arange(self.nnodes)
        nod_idx = np.asarray(nod_idx)
        nodi = nod_idx % (self.nelx + 1)
        nodj = (nod_idx // (self.nelx + 1)) % (self.nely + 1)
        nodk = nod_idx // ((self.nelx + 1) * (self.nely + 1))
        return np.stack([nodi, nodj, nodk], axis=0)

    def get_node_position(self, nod_idx: IndexType = None):
        """Gets the positions of given node number(s), as array of size (#nodes, 3)"""
        return self.origin + self.unit * self.get_node_indices(nod_idx).T

    def get_element_centers(self):
        """Gets the center point of every element, as array of size (#elements, 3)"""
        return self.get_node_position(self.conn[:, 0]) + self.unit / 2

    def get_elemconnectivity(self, i: IndexType, j: IndexType, k: IndexType = 0):
        """Get the connectivity for element(s) identified with Cartesian indices (i, j, k)

        Returns:
            The node numbers of the selected elements, of size (# selected elements, # nodes per element)
        """
        nods = [self.get_nodenumber(i + max(n[0], 0), j + max(n[1], 0), k + max(n[2], 0)) for n in self.node_numbering]
        return np.stack(nods, axis=-1)

    def get_dofconnectivity(self, ndof: int = 3):
        """Get the connectivity in terms of degrees of freedom, of size (# elements, # dofs per element)"""
        return np.reshape(self.get_dofnumber(self.conn, ndof=ndof), (self.conn.shape[0], -1))

    def get_node_mask(self, element_mask: np.ndarray):
        """Nodes that are attached to at least one of the selected elements"""
        mask = np.zeros(self.nnodes, dtype=bool)
        mask[self.conn[np.asarray(element_mask, dtype=bool)].ravel()] = True
        return mask

    def can_coarsen(self):
        return np.all(self.size % 2 == 0)

    def coarsen(self):
        """ Create the domain with half the number of elements in every direction and double element size """
        if not self.can_coarsen():
            raise ValueError(f"Domain sizes {tuple(self.size)} must be divisible by 2")
        return VoxelDomain(self.nelx // 2, self.nely // 2, self.nelz // 2, unit=2 * self.unit, origin=self.origin)

    def eval_shape_fun_der(self, pos: np.ndarray):
        """Evaluates the trilinear shape function derivatives in x, y, and z-direction

        Args:
            pos : Evaluation coordinates [x, y, z] within bounds of [-element_size/2, element_size/2]

        Returns:
            Shape function derivatives of size (3, #shape functions)
        """
        siz = self.element_size
        dN_dx = np.ones((3, self.elemnodes)) / np.prod(siz)
        for i in range(3):
            for j in range(3):
                if i != j:  # dN/dx_i *= (w[j]/2 ± x[j])
                    dN_dx[i, :] *= siz[j] / 2 + self.node_numbering[:, j] * pos[j]
            dN_dx[i, :] *= self.node_numbering[:, i]
        return dN_dx

    def write_to_vti(self, vectors: dict, filename="out.vti", scale=1.0):
        """Write all given vectors to a Paraview (VTI) file

        The size of the vectors should be a multiple of ``nel`` or ``nnodes``. Based on their size they are marked as
        cell-data or point-data in the VTI file.

        Args:
            vectors: A dictionary of vectors to write. Keys are used as vector names.
            filename (str): The file location
            scale: Uniform scaling of the gridpoints
        """
        ext = ".vti"
        if ext not in os.path.splitext(filename)[-1].lower():
            filename += ext

        # Sort into point-data and cell-data
        point_dat = {}
        cell_dat = {}
        for key, vec in vectors.items():
            vec = np.asarray(vec)
            if vec.size % self.nel == 0:
                cell_dat[key] = (vec, vec.size // self.nel)
            elif vec.size % self.nnodes == 0:
                point_dat[key] = (vec, vec.size // self.nnodes)
            else:
                warnings.warn(f"Vector {key} is neither cell- nor point-data. Skipping vector...")

        if len(point_dat) == 0 and len(cell_dat) == 0:
            warnings.warn(f"Nothing to write to {filename}. Skipping file...")
            return

        len_enc = ("<" if sys.byteorder == "little" else ">") + "Q"
        byte_order = "LittleEndian" if sys.byteorder == "little" else "BigEndian"
        extent = f"0 {self.nelx} 0 {self.nely} 0 {self.nelz}"

        def write_arrays(file, data):
            for key, (vec, ncomponents) in data.items():
                file.write(f'<DataArray type="Float32" Name="{key}" NumberOfComponents="{ncomponents}" '
                           f'format="binary">\n'.encode())
                enc_data = base64.b64encode(vec.ravel().astype(np.float32))
                file.write(base64.b64encode(struct.pack(len_enc, len(enc_data))))  # Length of the data block
                file.write(enc_data)
                file.write(b"\n</DataArray>\n")

        with open(filename, "wb") as file:
            file.write(b'<?xml version="1.0"?>\n')
            file.write(f'<VTKFile type="ImageData" version="0.1" header_type="UInt64" '
                       f'byte_order="{byte_order}">\n'.encode())
            ox, oy, oz = self.origin * scale
            dx, dy, dz = self.element_size * scale
            file.write(f'<ImageData WholeExtent="{extent}" Origin="{ox} {oy} {oz}" '
                       f'Spacing="{dx} {dy} {dz}">\n'.encode())
            file.write(f'<Piece Extent="{extent}">\n'.encode())
            if len(point_dat) > 0:
                file.write(b"<PointData>\n")
                write_arrays(file, point_dat)
                file.write(b"</PointData>\n")
            if len(cell_dat) > 0:
                file.write(b"<CellData>\n")
                write_arrays(file, cell_dat)
                file.write(b"</CellData>\n")
            file.write(b"</Piece>\n")
            file.write(b"</ImageData>\n")
            file.write(b"</VTKFile>")
