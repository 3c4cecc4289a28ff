"""All-pairs shortest path distance between the nodes of the build network."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Collection, Hashable, Iterable, Optional

import numpy as np
import pandas as pd
from scipy.sparse import coo_matrix
from scipy.sparse.csgraph import dijkstra

from delayalloc.components.component import Component, Subcomponent
from delayalloc.logger import LogStartEnd
from delayalloc.omx import node_matrix_to_omx, omx_to_node_matrix

if TYPE_CHECKING:
    from delayalloc.controller import RunController

NumpyArray = np.array


class DistanceMatrix:
    """Read-only node to node network distances.

    Node pairs without a path, or with a node not in the matrix, have distance
    inf. The matrix array is flagged read-only.

    Example::
        matrix = DistanceMatrix([1, 2, 3], [[0, 1, 2], [1, 0, 1], [2, 1, 0]])
        matrix.distance(1, 3)  # 2.0
        matrix.distances([1, 2], [3])  # array([[2.], [1.]])
    """

    def __init__(self, node_ids: Collection[Hashable], matrix: NumpyArray):
        """Constructor for DistanceMatrix.

        Args:
            node_ids: node IDs, in matrix row / column order
            matrix: square array of distances
        """
        matrix = np.array(matrix, dtype=float)
        node_ids = list(node_ids)
        if matrix.shape != (len(node_ids), len(node_ids)):
            raise ValueError(
                f"distance matrix shape {matrix.shape} does not match\
                {len(node_ids)} node ids"
            )
        if len(set(node_ids)) != len(node_ids):
            raise ValueError("distance matrix node ids must be unique")
        matrix.setflags(write=False)
        self._matrix = matrix
        self._node_ids = tuple(node_ids)
        self._index = dict((n, i) for i, n in enumerate(node_ids))

    def __len__(self):
        return len(self._node_ids)

    def __contains__(self, node_id):
        return node_id in self._index

    @property
    def node_ids(self) -> tuple:
        """Node IDs in matrix index order."""
        return self._node_ids

    @property
    def matrix(self) -> NumpyArray:
        """The read-only distance array."""
        return self._matrix

    def indices(self, node_ids: Iterable[Hashable]) -> NumpyArray:
        """Matrix indices of node_ids, -1 for nodes not in the matrix."""
        return np.array([self._index.get(n, -1) for n in node_ids], dtype=int)

    def distance(self, node_a: Hashable, node_b: Hashable) -> float:
        """Shortest path distance from node_a to node_b."""
        i, j = self._index.get(node_a), self._index.get(node_b)
        if i is None or j is None:
            return np.inf
        return float(self._matrix[i, j])

    def distances(
        self, origins: Iterable[Hashable], destinations: Iterable[Hashable]
    ) -> NumpyArray:
        """Array of distances, one row per origin and one column per destination."""
        orig_idx = self.indices(origins)
        dest_idx = self.indices(destinations)
        if not len(self):
            return np.full((len(orig_idx), len(dest_idx)), np.inf)
        result = self._matrix[
            np.ix_(np.maximum(orig_idx, 0), np.maximum(dest_idx, 0))
        ].copy()
        result[orig_idx < 0, :] = np.inf
        result[:, dest_idx < 0] = np.inf
        return result

    @classmethod
    def from_links(
        cls,
        links: pd.DataFrame,
        a_field: str = "a_node",
        b_field: str = "b_node",
        length_field: str = "length",
    ) -> "DistanceMatrix":
        """Calculate the all-pairs shortest path distances over the links.

        Links are traversed in both directions, the distances are a measure of
        proximity along the network rather than a route.

        Args:
            links: link table with start node, end node and length
            a_field: start node field name
            b_field: end node field name
            length_field: length field name
        """
        edges = links[[a_field, b_field, length_field]].dropna()
        node_ids = np.unique(np.concatenate([edges[a_field], edges[b_field]]))
        index = pd.Series(np.arange(len(node_ids)), index=node_ids)
        edges = pd.DataFrame(
            {
                "i": index.loc[edges[a_field]].to_numpy(),
                "j": index.loc[edges[b_field]].to_numpy(),
                "length": edges[length_field].to_numpy(dtype=float),
            }
        )
        # parallel links: keep the shortest, coo -> csr would sum them
        edges["lo"] = edges[["i", "j"]].min(axis=1)
        edges["hi"] = edges[["i", "j"]].max(axis=1)
        edges = edges.groupby(["lo", "hi"], as_index=False)["length"].min()
        # zero length links would be dropped as missing edges in a sparse graph
        lengths = np.maximum(edges["length"].to_numpy(), 1e-9)
        graph = coo_matrix(
            (lengths, (edges["lo"].to_numpy(), edges["hi"].to_numpy())),
            shape=(len(node_ids), len(node_ids)),
        ).tocsr()
        matrix = dijkstra(graph, directed=False)
        return cls(node_ids.tolist(), matrix)

    @classmethod
    def from_omx(
        cls, path: str, matrix_name: str = "distance", mapping_name: str = "node_id"
    ) -> "DistanceMatrix":
        """Read distance matrix from OMX file."""
        node_ids, matrix = omx_to_node_matrix(path, matrix_name, mapping_name)
        return cls(node_ids.tolist(), matrix)

    def to_omx(
        self, path: str, matrix_name: str = "distance", mapping_name: str = "node_id"
    ):
        """Write distance matrix to OMX file."""
        node_matrix_to_omx(self._node_ids, self._matrix, path, matrix_name, mapping_name)


class DistanceMatrixBuilder(Subcomponent):
    """Get the build network distance matrix for the secondary allocation.

    If config.allocation.distance_matrix_file exists the matrix is read from
    it, otherwise the matrix is calculated from the link table. A calculated
    matrix is written to that file (if specified) by write(), called once the
    project results are written, for the next run.
    """

    def __init__(self, controller: RunController, component: Component):
        super().__init__(controller, component)
        self._unsaved: Optional[DistanceMatrix] = None

    @property
    def matrix_path(self):
        """Absolute path to the distance matrix file, or None."""
        path = self.config.allocation.distance_matrix_file
        return None if path is None else self.get_abs_path(path)

    @LogStartEnd("Distance matrix", level="INFO")
    def run(self, links: pd.DataFrame) -> DistanceMatrix:
        """Return the distance matrix for the links.

        Args:
            links: link records with a_node, b_node and length
        """
        _name = self.config.allocation.distance_matrix_name
        _path = self.matrix_path
        if _path is not None and os.path.exists(_path):
            self.logger.log(f"Reading distance matrix {_name} from {_path}")
            return DistanceMatrix.from_omx(_path, _name)

        matrix = DistanceMatrix.from_links(links)
        self.logger.log(f"Calculated distances between {len(matrix)} nodes")
        if _path is not None:
            self._unsaved = matrix
        return matrix

    def write(self):
        """Write the calculated distance matrix to distance_matrix_file, if pending."""
        if self._unsaved is None:
            return
        _name = self.config.allocation.distance_matrix_name
        _path = self.matrix_path
        self.logger.log(f"Writing distance matrix {_name} to {_path}", "DETAIL")
        os.makedirs(os.path.dirname(_path), exist_ok=True)
        self._unsaved.to_omx(_path, _name)
        self._unsaved = None
